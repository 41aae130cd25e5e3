"""Time-windowed set of recently processed request ids."""

from __future__ import annotations

import time
from collections import OrderedDict
from collections.abc import Callable


class RecentRequestIds:
    """Bounded set of request ids seen within the last ``window_seconds``.

    The same logical message is published on the main channel and on its
    legacy channel, so every id is normally seen twice; only the first
    sighting is processed.
    """

    def __init__(
        self,
        *,
        window_seconds: float = 8.0,
        max_entries: int = 512,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._window = window_seconds
        self._max_entries = max_entries
        self._clock = clock
        self._seen: OrderedDict[str, float] = OrderedDict()

    def _purge(self, now: float) -> None:
        cutoff = now - self._window
        while self._seen:
            oldest_id, seen_at = next(iter(self._seen.items()))
            if seen_at > cutoff:
                break
            self._seen.pop(oldest_id, None)

    def remember(self, request_id: str) -> bool:
        """Record *request_id*; return ``True`` if it was not seen within the window."""
        now = self._clock()
        self._purge(now)
        if request_id in self._seen:
            return False
        self._seen[request_id] = now
        while len(self._seen) > self._max_entries:
            self._seen.popitem(last=False)
        return True

    def __contains__(self, request_id: object) -> bool:
        self._purge(self._clock())
        return request_id in self._seen

    def __len__(self) -> int:
        self._purge(self._clock())
        return len(self._seen)
