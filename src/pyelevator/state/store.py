"""Current-level state.

``CurrentLevelStore`` is the persisted source of truth (world setting
``currentLevelByElevatorId``); only the authority writes it.
``OptimisticLevelCache`` is the per-client view that answers immediately
after a local selection and converges to the authority's broadcasts.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from datetime import UTC, datetime
from enum import StrEnum

from pydantic import BaseModel, ConfigDict

from pyelevator._constants import CURRENT_LEVEL_KEY
from pyelevator.exceptions import ElevatorAuthorityError
from pyelevator.host import Actor
from pyelevator.settings import SettingsStore
from pyelevator.state.policy import should_accept_broadcast

_logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(UTC)


class CurrentLevelStore:
    """Persisted ``{networkId: stopUuid}`` map.

    Writes are serialized so concurrent updates of different networks never
    overwrite each other's key.
    """

    def __init__(self, settings: SettingsStore, *, logger: logging.Logger | None = None) -> None:
        self._settings = settings
        self._logger = logger or _logger
        self._write_lock = asyncio.Lock()

    async def get_all(self) -> dict[str, str]:
        raw = await self._settings.get(CURRENT_LEVEL_KEY)
        if not isinstance(raw, dict):
            return {}
        return {str(key): value for key, value in raw.items() if isinstance(value, str) and value}

    async def get(self, network_id: str) -> str | None:
        if not network_id:
            return None
        return (await self.get_all()).get(network_id)

    async def set(self, network_id: str, uuid: str, *, actor: Actor) -> None:
        """Persist *uuid* as the current level of *network_id*.

        Raises
        ------
        ElevatorAuthorityError
            If *actor* is not the authority.
        """
        if not actor.is_authority:
            raise ElevatorAuthorityError("Only the authority may write the current level")
        async with self._write_lock:
            current = await self.get_all()
            current[network_id] = uuid
            await self._settings.set(CURRENT_LEVEL_KEY, current)
        self._logger.debug("Current level persisted network=%s uuid=%s", network_id, uuid)


class LevelSource(StrEnum):
    LOCAL = "local"
    BROADCAST = "broadcast"


class LevelSnapshot(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    uuid: str
    source: LevelSource
    observed_at: datetime
    sent_at: float | None = None


class OptimisticLevelCache:
    """Per-client cache of the last known current level per network.

    Local selections always apply and are replaced by the next accepted
    broadcast.  Broadcasts older than the newest one already accepted for
    the same network are dropped, so every client ends on the authority's
    latest value whatever the delivery order.
    """

    def __init__(self, *, clock: Callable[[], datetime] = _utcnow) -> None:
        self._clock = clock
        self._levels: dict[str, LevelSnapshot] = {}
        self._last_broadcast_sent_at: dict[str, float] = {}

    def apply_local(self, network_id: str, uuid: str) -> None:
        if not network_id or not uuid:
            return
        self._levels[network_id] = LevelSnapshot(uuid=uuid, source=LevelSource.LOCAL, observed_at=self._clock())

    def apply_broadcast(self, network_id: str, uuid: str, *, sent_at: float | None = None) -> bool:
        """Apply an authority broadcast; return ``False`` if it was stale."""
        if not network_id or not uuid:
            return False
        if not should_accept_broadcast(
            last_sent_at=self._last_broadcast_sent_at.get(network_id),
            incoming_sent_at=sent_at,
        ):
            return False
        self._levels[network_id] = LevelSnapshot(
            uuid=uuid,
            source=LevelSource.BROADCAST,
            observed_at=self._clock(),
            sent_at=sent_at,
        )
        if sent_at is not None:
            previous = self._last_broadcast_sent_at.get(network_id)
            self._last_broadcast_sent_at[network_id] = sent_at if previous is None else max(previous, sent_at)
        return True

    def get(self, network_id: str) -> str | None:
        snapshot = self._levels.get(network_id)
        return snapshot.uuid if snapshot is not None else None

    def snapshot(self, network_id: str) -> LevelSnapshot | None:
        return self._levels.get(network_id)

    def as_dict(self) -> dict[str, str]:
        return {network_id: snapshot.uuid for network_id, snapshot in self._levels.items()}
