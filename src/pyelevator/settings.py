"""Persisted world-setting storage.

The host provides a scoped key/value store.  pyelevator owns two values in
it (see :mod:`pyelevator._constants`) and treats the store as opaque.
"""

from __future__ import annotations

import copy
from typing import Any, Protocol


class SettingsStore(Protocol):
    """Structural settings interface.

    Implementations: :class:`MemorySettingsStore` and
    :class:`pyelevator._transport.HttpSettingsStore`.
    """

    async def get(self, key: str) -> Any: ...

    async def set(self, key: str, value: Any) -> None: ...


class MemorySettingsStore:
    """In-process settings store.

    Values are deep-copied on the way in and out so callers can never mutate
    stored state by accident.
    """

    def __init__(self, initial: dict[str, Any] | None = None) -> None:
        self._values: dict[str, Any] = copy.deepcopy(initial) if initial else {}
        self.writes: int = 0

    async def get(self, key: str) -> Any:
        return copy.deepcopy(self._values.get(key))

    async def set(self, key: str, value: Any) -> None:
        self._values[key] = copy.deepcopy(value)
        self.writes += 1
