"""Network registry persistence (``elevatorLinksById`` world setting)."""

from __future__ import annotations

import asyncio
import logging
from typing import Any

from pydantic import ValidationError

from pyelevator._constants import ELEVATOR_LINKS_KEY
from pyelevator.exceptions import ElevatorAuthorityError
from pyelevator.host import Actor
from pyelevator.models.registry import RegistryEntry
from pyelevator.settings import SettingsStore

_logger = logging.getLogger(__name__)


class NetworkRegistry:
    """Reads and writes the ``{networkId: RegistryEntry}`` blob.

    Anyone may read; only the authority may write.  Entries that fail
    validation are skipped on read and left untouched on write.  Writes are
    serialized so concurrent saves of different entries are all kept.
    """

    def __init__(self, settings: SettingsStore, *, logger: logging.Logger | None = None) -> None:
        self._settings = settings
        self._logger = logger or _logger
        self._write_lock = asyncio.Lock()

    async def _load_raw(self) -> dict[str, Any]:
        try:
            raw = await self._settings.get(ELEVATOR_LINKS_KEY)
        except Exception:
            self._logger.warning("Failed to read elevator links", exc_info=True)
            return {}
        return dict(raw) if isinstance(raw, dict) else {}

    async def load_all(self) -> dict[str, RegistryEntry]:
        entries: dict[str, RegistryEntry] = {}
        for network_id, value in (await self._load_raw()).items():
            if not isinstance(value, dict):
                continue
            data = dict(value)
            data.setdefault("elevatorId", network_id)
            try:
                entries[network_id] = RegistryEntry.model_validate(data)
            except ValidationError:
                self._logger.debug("Skipping invalid registry entry id=%s", network_id, exc_info=True)
        return entries

    async def get(self, network_id: str) -> RegistryEntry | None:
        if not network_id:
            return None
        return (await self.load_all()).get(network_id)

    async def network_ids(self) -> list[str]:
        return list((await self.load_all()).keys())

    async def save(self, entry: RegistryEntry, *, actor: Actor) -> bool:
        """Persist *entry*, overwriting any entry with the same id.

        Returns ``False`` when the settings store rejected the write.

        Raises
        ------
        ElevatorAuthorityError
            If *actor* is not the authority.
        """
        if not actor.is_authority:
            raise ElevatorAuthorityError("Only the authority may write the elevator registry")
        async with self._write_lock:
            raw = await self._load_raw()
            raw[entry.elevator_id] = entry.to_wire()
            try:
                await self._settings.set(ELEVATOR_LINKS_KEY, raw)
            except Exception:
                self._logger.warning("Failed to persist elevator links id=%s", entry.elevator_id, exc_info=True)
                return False
        self._logger.debug("Registry entry saved id=%s stops=%d", entry.elevator_id, len(entry.stops))
        return True
