"""Suspension points of a panel call: combat round, arrival delay, sound."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Generator
from typing import Any

from pyelevator.host import CombatTracker, SoundPlayer

_logger = logging.getLogger(__name__)


class NextRoundWait:
    """Awaitable that resolves on the first combat round after creation.

    Waiting is unbounded while combat continues; :meth:`cancel` releases
    the subscription and cancels any awaiter.
    """

    def __init__(self, tracker: CombatTracker, *, loop: asyncio.AbstractEventLoop | None = None) -> None:
        self._loop = loop or asyncio.get_running_loop()
        self._future: asyncio.Future[int] = self._loop.create_future()
        self._start_round = tracker.current_round()
        self._unsubscribe: Callable[[], None] | None = tracker.subscribe(self._on_round)
        self._future.add_done_callback(lambda _future: self._release())

    @property
    def start_round(self) -> int | None:
        return self._start_round

    def done(self) -> bool:
        return self._future.done()

    def _on_round(self, round_number: int) -> None:
        if self._future.done():
            return
        if self._start_round is not None and round_number <= self._start_round:
            return
        self._future.set_result(round_number)
        self._release()

    def _release(self) -> None:
        unsubscribe = self._unsubscribe
        self._unsubscribe = None
        if unsubscribe is not None:
            try:
                unsubscribe()
            except Exception:
                _logger.debug("Combat unsubscribe failed", exc_info=True)

    def cancel(self) -> None:
        self._release()
        self._future.cancel()

    def __await__(self) -> Generator[Any, None, int]:
        return self._future.__await__()


def wait_for_next_round(
    tracker: CombatTracker,
    *,
    loop: asyncio.AbstractEventLoop | None = None,
) -> NextRoundWait:
    return NextRoundWait(tracker, loop=loop)


async def play_with_timeout(
    player: SoundPlayer,
    src: str,
    *,
    timeout: float,
    logger: logging.Logger | None = None,
) -> bool:
    """Play *src*; return ``False`` if it failed or did not finish in time."""
    log = logger or _logger
    try:
        await asyncio.wait_for(player.play(src), timeout=timeout)
    except TimeoutError:
        log.debug("Sound effect timed out src=%s timeout=%s", src, timeout)
        return False
    except Exception:
        log.debug("Sound effect failed src=%s", src, exc_info=True)
        return False
    return True
