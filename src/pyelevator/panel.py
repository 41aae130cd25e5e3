"""Panel controller.

One :class:`ElevatorPanel` is bound to one stop and one actor.  It turns
clicks (call, select, save config) into calls on the messaging layer, the
approval workflow and the sync engine, and hands a :class:`PanelView` to an
injected renderer whenever the network's current level changes.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from typing import Any

from pyelevator._constants import (
    DEFAULT_RETURN_LABEL,
    ERROR_INVALID_DESTINATION,
    ERROR_NOT_AUTHORITY,
    INFO_CONFIG_SAVED,
    INFO_SENT_GM_REQUEST,
    INFO_SENT_OWNER_REQUEST,
    INFO_WAIT_NEXT_ROUND,
    MOD_ID,
    WARN_NO_DESTINATION,
    WARN_NO_ELEVATOR_ID,
    WARN_NO_TOKENS_IN_REGION,
    WARN_TELEPORT_UNAVAILABLE,
)
from pyelevator._waits import NextRoundWait, play_with_timeout, wait_for_next_round
from pyelevator.approval import ApprovalWorkflow
from pyelevator.config import CombatDelayPolicy, ElevatorConfig
from pyelevator.host import (
    Actor,
    CombatTracker,
    Host,
    Movable,
    NoticeLevel,
    SoundPlayer,
    Waypoint,
    movables_inside,
    resolve_waypoint,
)
from pyelevator.messaging import CurrentLevelMessenger
from pyelevator.models.panel import LevelOption, PanelConfig, PanelConfigForm, PanelView
from pyelevator.models.registry import (
    RegistryEntry,
    Stop,
    StopFlags,
    coerce_theme,
    normalize_stops,
    strip_stop_name_prefix,
)
from pyelevator.registry import NetworkRegistry
from pyelevator.sync import sync_network

_logger = logging.getLogger(__name__)

Renderer = Callable[[PanelView], None]


class ElevatorPanel:
    """Controller for the panel of one stop."""

    def __init__(
        self,
        waypoint: Waypoint,
        *,
        actor: Actor,
        host: Host,
        registry: NetworkRegistry,
        messenger: CurrentLevelMessenger,
        approvals: ApprovalWorkflow,
        config: ElevatorConfig | None = None,
        combat: CombatTracker | None = None,
        sound: SoundPlayer | None = None,
        renderer: Renderer | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        self._waypoint = waypoint
        self._actor = actor
        self._host = host
        self._registry = registry
        self._messenger = messenger
        self._approvals = approvals
        self._config = config or ElevatorConfig()
        self._combat = combat
        self._sound = sound
        self._renderer = renderer
        self._logger = logger or _logger
        self._edit_mode = False
        self._opened = False
        self._unsubscribe: Callable[[], None] | None = None
        self._pending_wait: NextRoundWait | None = None
        self._refresh_tasks: set[asyncio.Task[Any]] = set()

    @property
    def waypoint(self) -> Waypoint:
        return self._waypoint

    @property
    def flags(self) -> StopFlags:
        return StopFlags.from_flags(self._waypoint.flags)

    @property
    def network_id(self) -> str:
        return self.flags.elevator_id

    @property
    def edit_mode(self) -> bool:
        return self._edit_mode

    @property
    def is_open(self) -> bool:
        return self._opened

    # ------------------------------------------------------------------
    # View
    # ------------------------------------------------------------------

    async def get_data(self) -> PanelView:
        flags = self.flags
        here = self._waypoint.uuid
        here_label = strip_stop_name_prefix(self._waypoint.name)
        network_id = flags.elevator_id

        entry = await self._registry.get(network_id) if network_id else None
        known = self._messenger.current_level(network_id) if network_id else None
        current = known or (here if flags.is_elevator_here else None)

        if entry is not None and entry.stops:
            stops = list(entry.stops)
        else:
            stops = normalize_stops([Stop(uuid=here, label=here_label), *flags.levels])
        if here not in {stop.uuid for stop in stops}:
            stops.append(Stop(uuid=here, label=here_label))

        total = len(stops)
        levels = [
            LevelOption(
                uuid=stop.uuid,
                label=stop.label or f"Level {index + 1}",
                floor=total - index,
                is_current=stop.uuid == (current or here),
            )
            for index, stop in enumerate(stops)
        ]
        return_to = flags.return_to
        if return_to is not None and return_to.uuid not in {level.uuid for level in levels}:
            levels.insert(
                0,
                LevelOption(
                    uuid=return_to.uuid,
                    label=return_to.label or DEFAULT_RETURN_LABEL,
                    is_current=current == return_to.uuid,
                    is_return=True,
                ),
            )

        theme = flags.theme or coerce_theme(self._config.theme)
        return PanelView(
            stop_uuid=here,
            network_id=network_id,
            is_here=current == here if known else flags.is_elevator_here,
            current_uuid=current,
            arrival_seconds=self._config.arrival_delay_ms // 1000,
            theme=theme,
            levels=levels,
            is_authority=self._actor.is_authority,
            edit_mode=self._edit_mode,
            config=PanelConfig(
                enabled=flags.enabled,
                elevator_id=network_id,
                is_elevator_here=flags.is_elevator_here,
                theme=theme,
                icon_src=flags.icon_src,
                icon_size=flags.icon_size,
                icon_always_on=flags.icon_always_on,
                levels=stops,
            ),
        )

    async def refresh(self) -> PanelView:
        view = await self.get_data()
        if self._renderer is not None:
            try:
                self._renderer(view)
            except Exception:
                self._logger.debug("Panel renderer failed stop=%s", self._waypoint.uuid, exc_info=True)
        return view

    def _on_rerender(self, network_id: str) -> None:
        if not self._opened or network_id != self.network_id:
            return
        task = asyncio.get_running_loop().create_task(self.refresh())
        self._refresh_tasks.add(task)
        task.add_done_callback(self._refresh_tasks.discard)

    def _subscribe(self) -> None:
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None
        network_id = self.network_id
        if network_id:
            self._unsubscribe = self._messenger.state.rerender.subscribe(network_id, self._on_rerender)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def open(self) -> PanelView:
        """Start following the network and render once."""
        self._opened = True
        self._subscribe()
        network_id = self.network_id
        if network_id:
            await self._messenger.request_sync_current_level(self._actor, network_id)
        return await self.refresh()

    def close(self) -> None:
        self._opened = False
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None
        if self._pending_wait is not None:
            self._pending_wait.cancel()
        for task in list(self._refresh_tasks):
            task.cancel()

    def toggle_edit(self) -> bool:
        """Flip edit mode; only the authority may edit."""
        if not self._actor.is_authority:
            self._edit_mode = False
            return False
        self._edit_mode = not self._edit_mode
        return self._edit_mode

    def _rebind(self, waypoint: Waypoint) -> None:
        self._waypoint = waypoint
        if self._opened:
            self._subscribe()

    # ------------------------------------------------------------------
    # Actions
    # ------------------------------------------------------------------

    async def call(self) -> bool:
        """Bring the elevator to this stop.

        Waits for the next combat round when an occupant is in combat and
        the policy asks for it, otherwise for the arrival delay.  Returns
        ``False`` if nothing was requested.
        """
        network_id = self.network_id
        if not network_id:
            self._host.notify(NoticeLevel.WARN, WARN_NO_ELEVATOR_ID)
            return False

        occupants = movables_inside(self._host, self._waypoint)
        needs_round = (
            self._config.combat_delay_policy == CombatDelayPolicy.NEXT_ROUND
            and self._combat is not None
            and self._combat.current_round() is not None
            and any(entity.in_combat for entity in occupants)
        )
        if needs_round and self._combat is not None:
            self._host.notify(NoticeLevel.INFO, INFO_WAIT_NEXT_ROUND)
            wait = wait_for_next_round(self._combat)
            self._pending_wait = wait
            try:
                await wait
            except asyncio.CancelledError:
                if wait.done() and not self._opened:
                    self._logger.debug("Call abandoned on close stop=%s", self._waypoint.uuid)
                    return False
                raise
            finally:
                self._pending_wait = None
        else:
            await asyncio.sleep(self._config.arrival_delay_seconds)

        await self._messenger.request_set_current_level(self._actor, network_id, self._waypoint.uuid)
        if self._config.sfx_enabled and self._sound is not None:
            await play_with_timeout(
                self._sound,
                self._config.sfx_src,
                timeout=self._config.sfx_timeout,
                logger=self._logger,
            )
        await self.refresh()
        return True

    async def _move_owned(self, dest: Waypoint, entities: list[Movable]) -> list[str]:
        moved: list[str] = []
        for entity in entities:
            try:
                await dest.teleport(entity)
            except Exception:
                self._logger.warning("Move failed entity=%s dest=%s", entity.uuid, dest.uuid, exc_info=True)
                self._host.notify(NoticeLevel.WARN, WARN_TELEPORT_UNAVAILABLE)
                continue
            moved.append(entity.uuid)
        return moved

    async def select(self, dest_uuid: str | None) -> bool:
        """Send the occupants of this stop to *dest_uuid*.

        Owned occupants move right away; the others go through approval.
        The panel then follows the elevator to the destination.
        """
        if not dest_uuid:
            self._host.notify(NoticeLevel.WARN, WARN_NO_DESTINATION)
            return False
        dest = await resolve_waypoint(self._host, dest_uuid)
        if dest is None:
            self._host.notify(NoticeLevel.ERROR, ERROR_INVALID_DESTINATION)
            return False

        here = self._waypoint.uuid
        if dest.uuid == here:
            await self.refresh()
            return False

        occupants = movables_inside(self._host, self._waypoint)
        if not occupants:
            self._host.notify(NoticeLevel.WARN, WARN_NO_TOKENS_IN_REGION)
            return False

        owned: list[Movable] = []
        not_owned: list[Movable] = []
        for entity in occupants:
            if self._actor.is_authority or self._host.is_owner(entity, self._actor.user_id):
                owned.append(entity)
            else:
                not_owned.append(entity)

        await self._move_owned(dest, owned)

        network_id = self.network_id
        if not_owned:
            message_ids = await self._approvals.request_approval(
                self._actor,
                entities=not_owned,
                dest_uuid=dest.uuid,
                dest_label=strip_stop_name_prefix(dest.name),
                network_id=network_id or None,
                scene_from_id=self._waypoint.scene_id,
                origin_uuid=here,
            )
            if message_ids:
                notice = INFO_SENT_GM_REQUEST if self._config.require_authority_for_all else INFO_SENT_OWNER_REQUEST
                self._host.notify(NoticeLevel.INFO, notice)

        if network_id:
            await self._messenger.request_set_current_level(self._actor, network_id, dest.uuid)

        if dest.scene_id and dest.scene_id != self._host.current_scene_id():
            try:
                await self._host.view_scene(dest.scene_id)
            except Exception:
                self._logger.debug("Viewing destination scene failed scene=%s", dest.scene_id, exc_info=True)

        self._rebind(dest)
        await self.refresh()
        return True

    async def save_config(self, form: PanelConfigForm) -> bool:
        """Write the config tab onto this stop and rebuild its network.

        The saved stop becomes the network's home.  Returns ``False`` when
        the actor may not edit or the stop could not be written.
        """
        if not self._actor.is_authority:
            self._host.notify(NoticeLevel.ERROR, ERROR_NOT_AUTHORITY)
            return False

        here = self._waypoint.uuid
        here_label = strip_stop_name_prefix(self._waypoint.name)
        stops = list(form.stops)
        if here not in {stop.uuid for stop in stops}:
            stops.append(Stop(uuid=here, label=here_label))
        levels = [stop for stop in stops if stop.uuid != here]

        current_raw = (self._waypoint.flags or {}).get(MOD_ID)
        current = dict(current_raw) if isinstance(current_raw, dict) else {}
        form_wire = form.model_dump(mode="json", by_alias=True, exclude={"stops"})
        next_flags = {**current, **form_wire, "levels": [stop.to_wire() for stop in levels]}
        try:
            await self._waypoint.update(flags=next_flags)
        except Exception:
            self._logger.warning("Saving stop config failed stop=%s", here, exc_info=True)
            return False

        if form.enabled and form.elevator_id:
            entry = RegistryEntry(
                elevator_id=form.elevator_id,
                home_uuid=here,
                icon_src=form.icon_src,
                icon_size=form.icon_size,
                icon_always_on=form.icon_always_on,
                theme=form.theme,
                stops=stops,
            )
            if await self._registry.save(entry, actor=self._actor):
                await sync_network(
                    form.elevator_id,
                    actor=self._actor,
                    registry=self._registry,
                    host=self._host,
                    home_uuid=here,
                    logger=self._logger,
                )

        self._edit_mode = False
        if self._opened:
            self._subscribe()
        self._host.notify(NoticeLevel.INFO, INFO_CONFIG_SAVED)
        await self.refresh()
        return True
