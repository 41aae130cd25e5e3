"""Coalesced UI refresh scheduling, keyed per network id."""

from __future__ import annotations

import asyncio
import contextlib
import logging
from collections.abc import Callable

_logger = logging.getLogger(__name__)

RerenderCallback = Callable[[str], None]


class RerenderScheduler:
    """Collapse bursts of state changes into one refresh per network id.

    The first :meth:`schedule` for a network starts a timer; further calls
    before it fires are absorbed.  When it fires, every listener subscribed
    to that network is called once.
    """

    def __init__(self, *, delay_seconds: float = 0.05, logger: logging.Logger | None = None) -> None:
        self._delay = delay_seconds
        self._logger = logger or _logger
        self._listeners: dict[str, list[RerenderCallback]] = {}
        self._pending: dict[str, asyncio.TimerHandle] = {}

    @property
    def pending(self) -> frozenset[str]:
        return frozenset(self._pending)

    def subscribe(self, network_id: str, callback: RerenderCallback) -> Callable[[], None]:
        """Register *callback* for *network_id*; return an unsubscribe function."""
        self._listeners.setdefault(network_id, []).append(callback)

        def _unsubscribe() -> None:
            listeners = self._listeners.get(network_id)
            if listeners is None:
                return
            with contextlib.suppress(ValueError):
                listeners.remove(callback)
            if not listeners:
                self._listeners.pop(network_id, None)

        return _unsubscribe

    def schedule(self, network_id: str) -> None:
        if not network_id or network_id in self._pending:
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            # No loop (synchronous caller): refresh right away.
            self._fire(network_id)
            return
        self._pending[network_id] = loop.call_later(self._delay, self._fire, network_id)

    def _fire(self, network_id: str) -> None:
        self._pending.pop(network_id, None)
        for callback in list(self._listeners.get(network_id, ())):
            try:
                callback(network_id)
            except Exception:
                self._logger.debug("Rerender callback failed network=%s", network_id, exc_info=True)

    def cancel_all(self) -> None:
        for handle in self._pending.values():
            handle.cancel()
        self._pending.clear()
