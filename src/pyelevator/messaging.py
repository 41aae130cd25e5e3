"""Current-level request/response/broadcast protocol.

Only the authority persists the current level.  Every other client keeps
an optimistic view and routes writes through the channel:

* ``setCurrentLevel``: a non-authority asks the authority to persist.
* ``getCurrentLevel``: a non-authority asks for the persisted value.
* ``currentLevelChanged``: the authority announces the persisted value.

Each message is published once on the main channel and once on its legacy
per-kind channel; the receiving side collapses the pair by ``requestId``.

On the authority, request handling and local writes run one at a time, so a
reply to ``getCurrentLevel`` never overtakes a newer ``setCurrentLevel``.
"""

from __future__ import annotations

import asyncio
import logging

from pyelevator._constants import LEGACY_CHANNELS, MAIN_CHANNEL
from pyelevator.channel import Channel, ChannelEvent
from pyelevator.config import ElevatorConfig
from pyelevator.exceptions import MessageValidationError
from pyelevator.host import Actor
from pyelevator.models.messages import (
    CurrentLevelChanged,
    GetCurrentLevel,
    SetCurrentLevel,
    parse_level_message,
)
from pyelevator.state.runtime import ElevatorRuntimeState
from pyelevator.state.store import CurrentLevelStore

_logger = logging.getLogger(__name__)


class CurrentLevelMessenger:
    """Routes current-level changes between the optimistic cache, the
    persisted store and the channel, depending on the actor's role."""

    def __init__(
        self,
        *,
        channel: Channel,
        store: CurrentLevelStore,
        state: ElevatorRuntimeState,
        config: ElevatorConfig | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        self._channel = channel
        self._store = store
        self._state = state
        self._config = config or ElevatorConfig()
        self._logger = logger or _logger
        self._authority_lock = asyncio.Lock()

    @property
    def state(self) -> ElevatorRuntimeState:
        return self._state

    def current_level(self, network_id: str) -> str | None:
        """Optimistic current level of *network_id* as seen by this client."""
        return self._state.optimistic.get(network_id)

    def _publish(self, message: SetCurrentLevel | GetCurrentLevel | CurrentLevelChanged) -> None:
        # Remember before sending so the broker echo of our own message is dropped.
        self._state.seen.remember(message.request_id)
        payload = message.to_wire()
        channels = [MAIN_CHANNEL]
        if self._config.legacy_channels_enabled:
            channels.append(LEGACY_CHANNELS[message.type])
        for channel in channels:
            try:
                self._channel.publish(channel, payload)
            except Exception:
                self._logger.warning(
                    "Publish failed channel=%s type=%s request_id=%s",
                    channel,
                    message.type,
                    message.request_id,
                    exc_info=True,
                )
        self._logger.debug(
            "Published type=%s network=%s request_id=%s",
            message.type,
            message.network_id,
            message.request_id,
        )

    def _broadcast(self, network_id: str, uuid: str) -> None:
        message = CurrentLevelChanged(network_id=network_id, uuid=uuid)
        if self._state.optimistic.apply_broadcast(network_id, uuid, sent_at=message.sent_at):
            self._state.rerender.schedule(network_id)
        self._publish(message)

    async def _persist_and_broadcast(self, actor: Actor, network_id: str, uuid: str) -> bool:
        try:
            await self._store.set(network_id, uuid, actor=actor)
        except Exception:
            self._logger.warning(
                "Persisting current level failed network=%s uuid=%s",
                network_id,
                uuid,
                exc_info=True,
            )
            return False
        self._broadcast(network_id, uuid)
        return True

    async def request_set_current_level(self, actor: Actor, network_id: str, uuid: str) -> None:
        """Move *network_id* to *uuid*.

        The optimistic cache is updated first so the caller's panel reflects
        the choice immediately.  The authority then persists and broadcasts;
        any other client asks the authority to do so.
        """
        if not network_id or not uuid:
            return
        self._state.optimistic.apply_local(network_id, uuid)
        self._state.rerender.schedule(network_id)
        if actor.is_authority:
            async with self._authority_lock:
                await self._persist_and_broadcast(actor, network_id, uuid)
            return
        self._publish(SetCurrentLevel(network_id=network_id, uuid=uuid, requester=actor.user_id))

    async def request_sync_current_level(self, actor: Actor, network_id: str) -> None:
        """Refresh this client's view of *network_id*.

        A non-authority asks the authority for a re-broadcast.  The authority
        reads its own store directly.
        """
        if not network_id:
            return
        if not actor.is_authority:
            self._publish(GetCurrentLevel(network_id=network_id, requester=actor.user_id))
            return
        try:
            async with self._authority_lock:
                uuid = await self._store.get(network_id)
        except Exception:
            self._logger.debug("Reading current level failed network=%s", network_id, exc_info=True)
            return
        if uuid and self._state.optimistic.get(network_id) != uuid:
            self._state.optimistic.apply_local(network_id, uuid)
            self._state.rerender.schedule(network_id)

    async def handle_event(self, actor: Actor, event: ChannelEvent) -> bool:
        """Process one inbound channel payload.

        Returns ``True`` if the message was acted upon, ``False`` when it was
        malformed, a duplicate, or not addressed to *actor*'s role.
        """
        try:
            message = parse_level_message(event.payload, channel=event.channel)
        except MessageValidationError:
            self._logger.debug("Dropping malformed message channel=%s", event.channel, exc_info=True)
            return False

        if not self._state.seen.remember(message.request_id):
            self._logger.debug(
                "Dropping duplicate type=%s request_id=%s channel=%s",
                message.type,
                message.request_id,
                event.channel,
            )
            return False

        if isinstance(message, CurrentLevelChanged):
            if not self._state.optimistic.apply_broadcast(message.network_id, message.uuid, sent_at=message.sent_at):
                self._logger.debug(
                    "Ignoring stale broadcast network=%s request_id=%s",
                    message.network_id,
                    message.request_id,
                )
                return False
            self._state.rerender.schedule(message.network_id)
            return True

        if not actor.is_authority:
            return False

        async with self._authority_lock:
            return await self._handle_request(actor, message)

    async def _handle_request(self, actor: Actor, message: SetCurrentLevel | GetCurrentLevel) -> bool:
        if isinstance(message, SetCurrentLevel):
            self._logger.debug(
                "Set request network=%s uuid=%s requester=%s", message.network_id, message.uuid, message.requester
            )
            self._state.optimistic.apply_local(message.network_id, message.uuid)
            return await self._persist_and_broadcast(actor, message.network_id, message.uuid)

        try:
            uuid = await self._store.get(message.network_id)
        except Exception:
            self._logger.warning("Reading current level failed network=%s", message.network_id, exc_info=True)
            return False
        if not uuid:
            self._logger.debug("No persisted level network=%s", message.network_id)
            return False
        self._broadcast(message.network_id, uuid)
        return True
