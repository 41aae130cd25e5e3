"""High-level async client wiring one connected process into its elevators."""

from __future__ import annotations

import asyncio
import contextlib
import logging
from typing import Any

import aiohttp

from pyelevator._transport import HttpSettingsStore
from pyelevator.approval import ApprovalWorkflow
from pyelevator.channel import Channel, ChannelEvent, LoopbackChannel, LoopbackHub, MqttChannel
from pyelevator.config import ElevatorConfig
from pyelevator.exceptions import ElevatorError
from pyelevator.host import Actor, CombatTracker, Host, SoundPlayer, Waypoint
from pyelevator.messaging import CurrentLevelMessenger
from pyelevator.models.approval import ApprovalOutcome
from pyelevator.panel import ElevatorPanel, Renderer
from pyelevator.registry import NetworkRegistry
from pyelevator.settings import MemorySettingsStore, SettingsStore
from pyelevator.state.runtime import ElevatorRuntimeState
from pyelevator.state.store import CurrentLevelStore
from pyelevator.sync import SyncReport, sync_network

_logger = logging.getLogger(__name__)


class ElevatorClient:
    """Async client for one connected process.

    Usage::

        async with ElevatorClient(config, actor=actor, host=host) as client:
            panel = client.panel(waypoint, renderer=draw)
            await panel.open()

    When no *channel* is given, an MQTT channel is built if
    ``config.mqtt_enabled``, otherwise the client joins *hub* (a private
    in-process loopback when *hub* is omitted).
    An injected channel must forward inbound payloads to :meth:`dispatch`.
    """

    def __init__(
        self,
        config: ElevatorConfig | None = None,
        *,
        actor: Actor,
        host: Host,
        channel: Channel | None = None,
        settings: SettingsStore | None = None,
        combat: CombatTracker | None = None,
        sound: SoundPlayer | None = None,
        session: aiohttp.ClientSession | None = None,
        hub: LoopbackHub | None = None,
    ) -> None:
        self._config = config or ElevatorConfig()
        self._actor = actor
        self._host = host
        self._injected_channel = channel
        self._injected_settings = settings
        self._hub = hub
        self._combat = combat
        self._sound = sound
        self._external_session = session is not None
        self._http_session = session
        self._loop: asyncio.AbstractEventLoop | None = None
        self._channel: Channel | None = None
        self._mqtt: MqttChannel | None = None
        self._loopback: LoopbackChannel | None = None
        self._state: ElevatorRuntimeState | None = None
        self._registry: NetworkRegistry | None = None
        self._store: CurrentLevelStore | None = None
        self._messenger: CurrentLevelMessenger | None = None
        self._approvals: ApprovalWorkflow | None = None
        self._tasks: set[asyncio.Task[Any]] = set()

    # ------------------------------------------------------------------
    # Context manager lifecycle
    # ------------------------------------------------------------------

    async def __aenter__(self) -> ElevatorClient:
        self._loop = asyncio.get_running_loop()
        settings = self._build_settings()
        self._state = ElevatorRuntimeState.from_config(self._config, logger=_logger)
        self._registry = NetworkRegistry(settings, logger=_logger)
        self._store = CurrentLevelStore(settings, logger=_logger)
        self._channel = self._build_channel()
        self._messenger = CurrentLevelMessenger(
            channel=self._channel,
            store=self._store,
            state=self._state,
            config=self._config,
            logger=_logger,
        )
        self._approvals = ApprovalWorkflow(self._host, self._messenger, config=self._config, logger=_logger)
        self._start_mqtt()
        if self._actor.is_authority:
            await self.resync_all()
        return self

    async def __aexit__(self, *exc: Any) -> None:
        self._stop_channel()
        if self._state is not None:
            self._state.close()
        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        for task in tasks:
            with contextlib.suppress(asyncio.CancelledError):
                await task
        self._tasks.clear()
        if not self._external_session and self._http_session is not None:
            await self._http_session.close()
            self._http_session = None
        self._loop = None

    def _build_settings(self) -> SettingsStore:
        if self._injected_settings is not None:
            return self._injected_settings
        if self._config.settings_url:
            if self._http_session is None:
                self._http_session = aiohttp.ClientSession()
            return HttpSettingsStore(
                self._config.settings_url,
                self._http_session,
                token=self._config.settings_token,
            )
        return MemorySettingsStore()

    def _build_channel(self) -> Channel:
        if self._injected_channel is not None:
            return self._injected_channel
        if self._config.mqtt_enabled:
            assert self._loop is not None  # noqa: S101
            self._mqtt = MqttChannel(
                self._config,
                loop=self._loop,
                on_event=self.dispatch,
                client_id=f"elevator-{self._actor.user_id}",
                logger=_logger,
            )
            return self._mqtt
        hub = self._hub or LoopbackHub(logger=_logger)
        self._loopback = hub.connect(self.dispatch)
        return self._loopback

    def _start_mqtt(self) -> None:
        """Best-effort MQTT startup; a failed broker leaves the client local-only."""
        if self._mqtt is None:
            return
        try:
            self._mqtt.start()
        except ElevatorError:
            _logger.warning("MQTT startup failed", exc_info=True)

    def _stop_channel(self) -> None:
        mqtt_channel, self._mqtt = self._mqtt, None
        if mqtt_channel is not None:
            mqtt_channel.stop()
        loopback, self._loopback = self._loopback, None
        if loopback is not None:
            loopback.close()

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _require_messenger(self) -> CurrentLevelMessenger:
        if self._messenger is None:
            raise ElevatorError("Client not initialized. Use 'async with ElevatorClient(...) as client:'")
        return self._messenger

    def _require_registry(self) -> NetworkRegistry:
        if self._registry is None:
            raise ElevatorError("Client not initialized. Use 'async with ElevatorClient(...) as client:'")
        return self._registry

    def _require_approvals(self) -> ApprovalWorkflow:
        if self._approvals is None:
            raise ElevatorError("Client not initialized. Use 'async with ElevatorClient(...) as client:'")
        return self._approvals

    # ------------------------------------------------------------------
    # Accessors
    # ------------------------------------------------------------------

    @property
    def actor(self) -> Actor:
        return self._actor

    @property
    def config(self) -> ElevatorConfig:
        return self._config

    @property
    def registry(self) -> NetworkRegistry:
        return self._require_registry()

    @property
    def messenger(self) -> CurrentLevelMessenger:
        return self._require_messenger()

    @property
    def approvals(self) -> ApprovalWorkflow:
        return self._require_approvals()

    # ------------------------------------------------------------------
    # Channel events
    # ------------------------------------------------------------------

    def dispatch(self, event: ChannelEvent) -> None:
        """Schedule handling of an inbound channel payload on the loop."""
        if self._messenger is None:
            return
        loop = self._loop or asyncio.get_running_loop()
        task = loop.create_task(self.handle_event(event))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def handle_event(self, event: ChannelEvent) -> bool:
        try:
            return await self._require_messenger().handle_event(self._actor, event)
        except Exception:
            _logger.warning("Channel event handling failed channel=%s", event.channel, exc_info=True)
            return False

    async def wait_idle(self) -> None:
        """Wait until every in-flight channel handler has finished."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    async def sync_network(self, network_id: str, *, home_uuid: str | None = None) -> SyncReport | None:
        return await sync_network(
            network_id,
            actor=self._actor,
            registry=self._require_registry(),
            host=self._host,
            home_uuid=home_uuid,
            logger=_logger,
        )

    async def resync_all(self) -> list[SyncReport]:
        """Repair every registered network (authority only)."""
        if not self._actor.is_authority:
            return []
        reports: list[SyncReport] = []
        for network_id in await self._require_registry().network_ids():
            try:
                report = await self.sync_network(network_id)
            except Exception:
                _logger.warning("Start-up sync failed network=%s", network_id, exc_info=True)
                continue
            if report is not None:
                reports.append(report)
        _logger.debug("Start-up sync done networks=%d", len(reports))
        return reports

    def current_level(self, network_id: str) -> str | None:
        return self._require_messenger().current_level(network_id)

    async def set_current_level(self, network_id: str, uuid: str) -> None:
        await self._require_messenger().request_set_current_level(self._actor, network_id, uuid)

    async def sync_current_level(self, network_id: str) -> None:
        await self._require_messenger().request_sync_current_level(self._actor, network_id)

    def panel(self, waypoint: Waypoint, *, renderer: Renderer | None = None) -> ElevatorPanel:
        return ElevatorPanel(
            waypoint,
            actor=self._actor,
            host=self._host,
            registry=self._require_registry(),
            messenger=self._require_messenger(),
            approvals=self._require_approvals(),
            config=self._config,
            combat=self._combat,
            sound=self._sound,
            renderer=renderer,
            logger=_logger,
        )

    async def approve(self, message_id: str) -> ApprovalOutcome:
        return await self._require_approvals().approve(self._actor, message_id)

    async def deny(self, message_id: str) -> ApprovalOutcome:
        return await self._require_approvals().deny(self._actor, message_id)
