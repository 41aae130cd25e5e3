"""Network sync engine.

Rewrites every member stop of one network so the network is self-consistent:
each stop gets the sibling list, a return pointer to home, shared
presentation attributes and a display name encoding the floor number.

The sync is idempotent: a second run on an unchanged network performs no
writes.  Failures are isolated per stop and never raised to the caller.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass, field

from pyelevator._constants import DEFAULT_RETURN_LABEL, MOD_ID
from pyelevator.host import Actor, Host, Waypoint, resolve_waypoint
from pyelevator.models.registry import (
    ReturnPointer,
    Stop,
    StopAttributes,
    format_stop_name,
    strip_stop_name_prefix,
)
from pyelevator.registry import NetworkRegistry

_logger = logging.getLogger(__name__)


@dataclass
class SyncReport:
    """What a sync run changed."""

    network_id: str
    home_uuid: str | None = None
    updated: list[str] = field(default_factory=list)
    pruned: list[str] = field(default_factory=list)
    failed: list[str] = field(default_factory=list)
    repointed_behaviors: int = 0

    @property
    def writes(self) -> int:
        """Stop document writes performed (registry prune not included)."""
        return len(self.updated) + self.repointed_behaviors


async def _restrict_teleport_behaviors(
    doc: Waypoint,
    allowed: set[str],
    fallback: str | None,
    logger: logging.Logger,
) -> int:
    """Re-point teleport behaviors leaving the network at *fallback*."""
    if not fallback or fallback not in allowed:
        return 0
    changed = 0
    for behavior in list(doc.behaviors or ()):
        dest = behavior.destination
        if not dest or dest in allowed:
            continue
        try:
            await behavior.set_destination(fallback)
        except Exception:
            logger.warning("Teleport behavior restriction failed stop=%s dest=%s", doc.uuid, dest, exc_info=True)
            continue
        changed += 1
    return changed


def _floor_plan(stops: Iterable[Stop]) -> list[tuple[Stop, int]]:
    ordered = list(stops)
    total = len(ordered)
    return [(stop, total - index) for index, stop in enumerate(ordered)]


async def sync_network(
    network_id: str,
    *,
    actor: Actor,
    registry: NetworkRegistry,
    host: Host,
    home_uuid: str | None = None,
    logger: logging.Logger | None = None,
) -> SyncReport | None:
    """Synchronize every stop of *network_id* from its registry entry.

    Parameters
    ----------
    network_id
        Registry key of the network.
    actor
        Caller; the sync is a no-op unless it is the authority.
    registry
        Source of the registry entry; also receives the pruned stop list
        when some stops no longer resolve.
    host
        Resolves stop uuids to live waypoints.
    home_uuid
        Explicit home override.  Falls back to the stored home, then to the
        first resolved stop.

    Returns
    -------
    SyncReport or None
        ``None`` when nothing was attempted (not authority, unknown or empty
        network, or no stop resolved).
    """
    log = logger or _logger
    if not actor.is_authority or not network_id:
        return None

    entry = await registry.get(network_id)
    if entry is None or not entry.stops:
        return None

    resolved: list[tuple[Stop, Waypoint]] = []
    for stop in entry.stops:
        doc = await resolve_waypoint(host, stop.uuid)
        if doc is None:
            log.debug("Stop no longer resolves network=%s uuid=%s", network_id, stop.uuid)
            continue
        label = stop.label or strip_stop_name_prefix(doc.name)
        resolved.append((Stop(uuid=stop.uuid, label=label), doc))

    if not resolved:
        log.debug("No stop of network=%s resolves; sync aborted", network_id)
        return None

    report = SyncReport(network_id=network_id)
    cleaned = [stop for stop, _doc in resolved]
    allowed = {stop.uuid for stop in cleaned}

    if len(cleaned) != len(entry.stops):
        report.pruned = [stop.uuid for stop in entry.stops if stop.uuid not in allowed]
        await registry.save(entry.model_copy(update={"stops": cleaned}), actor=actor)
        log.debug("Pruned network=%s stops=%s", network_id, report.pruned)

    home = entry.resolve_home(home_uuid)
    if home not in allowed:
        home = cleaned[0].uuid
    report.home_uuid = home
    home_label = next((stop.label for stop in cleaned if stop.uuid == home), "") or DEFAULT_RETURN_LABEL

    docs = {stop.uuid: doc for stop, doc in resolved}
    for stop, floor_number in _floor_plan(cleaned):
        doc = docs[stop.uuid]
        desired_name = format_stop_name(network_id, floor_number, stop.label or doc.name)
        attributes = StopAttributes(
            elevator_id=network_id,
            is_elevator_here=stop.uuid == home,
            theme=entry.theme,
            icon_src=entry.icon_src,
            icon_size=entry.icon_size,
            icon_always_on=entry.icon_always_on,
            levels=[other for other in cleaned if other.uuid != stop.uuid],
            return_to=ReturnPointer(uuid=home, label=home_label) if stop.uuid != home else None,
        )

        current_raw = (doc.flags or {}).get(MOD_ID)
        current = dict(current_raw) if isinstance(current_raw, dict) else {}
        merged = {**current, **attributes.to_wire()}
        flags_changed = merged != current
        name_changed = doc.name != desired_name

        if flags_changed or name_changed:
            try:
                await doc.update(
                    flags=merged if flags_changed else None,
                    name=desired_name if name_changed else None,
                )
                report.updated.append(stop.uuid)
            except Exception:
                log.warning("Stop update failed network=%s uuid=%s", network_id, stop.uuid, exc_info=True)
                report.failed.append(stop.uuid)
                continue

        report.repointed_behaviors += await _restrict_teleport_behaviors(doc, allowed, home, log)

    log.debug(
        "Synced network=%s updated=%d pruned=%d failed=%d",
        network_id,
        len(report.updated),
        len(report.pruned),
        len(report.failed),
    )
    return report
