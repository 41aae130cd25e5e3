"""Tests for the network sync engine."""

from __future__ import annotations

import pytest
from conftest import FakeBehavior, FakeHost, build_network

from pyelevator.host import Actor
from pyelevator.registry import NetworkRegistry
from pyelevator.settings import MemorySettingsStore
from pyelevator.sync import sync_network


@pytest.mark.asyncio
async def test_sync_names_floors_top_first(
    host: FakeHost, settings: MemorySettingsStore, registry: NetworkRegistry, gm: Actor
) -> None:
    roof, lobby, basement = build_network(host, settings, "tower", ["Roof", "Lobby", "Basement"])

    report = await sync_network("tower", actor=gm, registry=registry, host=host)

    assert report is not None
    assert report.home_uuid == roof.uuid
    assert [roof.name, lobby.name, basement.name] == [
        "ELV tower 03 Roof",
        "ELV tower 02 Lobby",
        "ELV tower 01 Basement",
    ]
    assert [level["uuid"] for level in lobby.elevator_flags["levels"]] == [roof.uuid, basement.uuid]
    assert lobby.elevator_flags["elevatorId"] == "tower"
    assert lobby.elevator_flags["enabled"] is True


@pytest.mark.asyncio
async def test_sync_marks_only_home_and_points_others_back(
    host: FakeHost, settings: MemorySettingsStore, registry: NetworkRegistry, gm: Actor
) -> None:
    roof, lobby, basement = build_network(host, settings, "tower", ["Roof", "Lobby", "Basement"])

    await sync_network("tower", actor=gm, registry=registry, host=host, home_uuid=lobby.uuid)

    assert [stop.elevator_flags["isElevatorHere"] for stop in (roof, lobby, basement)] == [False, True, False]
    assert lobby.elevator_flags["returnTo"] is None
    assert roof.elevator_flags["returnTo"] == {"uuid": lobby.uuid, "label": "Lobby"}
    assert basement.elevator_flags["returnTo"] == {"uuid": lobby.uuid, "label": "Lobby"}


@pytest.mark.asyncio
async def test_second_sync_performs_no_writes(
    host: FakeHost, settings: MemorySettingsStore, registry: NetworkRegistry, gm: Actor
) -> None:
    stops = build_network(host, settings, "tower", ["Roof", "Lobby", "Basement"])
    stops[1].behaviors = [FakeBehavior("somewhere-else")]

    first = await sync_network("tower", actor=gm, registry=registry, host=host)
    writes_after_first = settings.writes
    second = await sync_network("tower", actor=gm, registry=registry, host=host)

    assert first is not None and first.writes == 4
    assert second is not None and second.writes == 0
    assert second.updated == []
    assert settings.writes == writes_after_first
    assert [stop.updates for stop in stops] == [1, 1, 1]


@pytest.mark.asyncio
async def test_sync_prunes_unresolvable_stops(
    host: FakeHost, settings: MemorySettingsStore, registry: NetworkRegistry, gm: Actor
) -> None:
    roof, lobby, basement = build_network(host, settings, "tower", ["Roof", "Lobby", "Basement"])
    del host.entities[lobby.uuid]

    report = await sync_network("tower", actor=gm, registry=registry, host=host)

    assert report is not None
    assert report.pruned == [lobby.uuid]
    entry = await registry.get("tower")
    assert entry is not None
    assert entry.stop_uuids == [roof.uuid, basement.uuid]
    assert [level["uuid"] for level in roof.elevator_flags["levels"]] == [basement.uuid]
    assert [level["uuid"] for level in basement.elevator_flags["levels"]] == [roof.uuid]
    assert roof.name == "ELV tower 02 Roof"
    assert basement.name == "ELV tower 01 Basement"


@pytest.mark.asyncio
async def test_resolver_errors_count_as_unresolvable(
    host: FakeHost, settings: MemorySettingsStore, registry: NetworkRegistry, gm: Actor
) -> None:
    roof, lobby, _basement = build_network(host, settings, "tower", ["Roof", "Lobby", "Basement"], home_index=0)
    host.broken.add(roof.uuid)

    report = await sync_network("tower", actor=gm, registry=registry, host=host)

    assert report is not None
    assert report.pruned == [roof.uuid]
    # Stored home was pruned: the first remaining stop becomes home.
    assert report.home_uuid == lobby.uuid
    assert lobby.elevator_flags["isElevatorHere"] is True


@pytest.mark.asyncio
async def test_sync_aborts_when_nothing_resolves(
    host: FakeHost, settings: MemorySettingsStore, registry: NetworkRegistry, gm: Actor
) -> None:
    stops = build_network(host, settings, "tower", ["Roof", "Lobby"])
    for stop in stops:
        del host.entities[stop.uuid]

    assert await sync_network("tower", actor=gm, registry=registry, host=host) is None
    assert settings.writes == 0
    entry = await registry.get("tower")
    assert entry is not None and len(entry.stops) == 2


@pytest.mark.asyncio
async def test_sync_is_noop_for_non_authority_and_unknown_ids(
    host: FakeHost, settings: MemorySettingsStore, registry: NetworkRegistry, gm: Actor, player: Actor
) -> None:
    stops = build_network(host, settings, "tower", ["Roof", "Lobby"])

    assert await sync_network("tower", actor=player, registry=registry, host=host) is None
    assert await sync_network("", actor=gm, registry=registry, host=host) is None
    assert await sync_network("nope", actor=gm, registry=registry, host=host) is None
    assert [stop.updates for stop in stops] == [0, 0]


@pytest.mark.asyncio
async def test_stop_failure_does_not_block_siblings(
    host: FakeHost, settings: MemorySettingsStore, registry: NetworkRegistry, gm: Actor
) -> None:
    roof, lobby, basement = build_network(host, settings, "tower", ["Roof", "Lobby", "Basement"])
    lobby.fail_update = True

    report = await sync_network("tower", actor=gm, registry=registry, host=host)

    assert report is not None
    assert report.failed == [lobby.uuid]
    assert report.updated == [roof.uuid, basement.uuid]
    assert lobby.name == "Lobby"


@pytest.mark.asyncio
async def test_teleport_behaviors_restricted_to_network(
    host: FakeHost, settings: MemorySettingsStore, registry: NetworkRegistry, gm: Actor
) -> None:
    roof, lobby, basement = build_network(host, settings, "tower", ["Roof", "Lobby", "Basement"])
    outside = FakeBehavior("other-building")
    inside = FakeBehavior(basement.uuid)
    unset = FakeBehavior(None)
    lobby.behaviors = [outside, inside, unset]
    basement.behaviors = [FakeBehavior("other-building", fail=True)]

    report = await sync_network("tower", actor=gm, registry=registry, host=host)

    assert report is not None
    assert report.repointed_behaviors == 1
    assert outside.destination == roof.uuid
    assert inside.destination == basement.uuid
    assert unset.destination is None


@pytest.mark.asyncio
async def test_failing_behavior_does_not_block_siblings(
    host: FakeHost, settings: MemorySettingsStore, registry: NetworkRegistry, gm: Actor
) -> None:
    roof, lobby = build_network(host, settings, "tower", ["Roof", "Lobby"])
    locked = FakeBehavior("other-building", fail=True)
    after_locked = FakeBehavior("far-away")
    lobby.behaviors = [locked, after_locked]

    report = await sync_network("tower", actor=gm, registry=registry, host=host)

    assert report is not None
    assert report.repointed_behaviors == 1
    assert locked.destination == "other-building"
    assert after_locked.destination == roof.uuid


@pytest.mark.asyncio
async def test_sync_keeps_unrelated_flags(
    host: FakeHost, settings: MemorySettingsStore, registry: NetworkRegistry, gm: Actor
) -> None:
    roof, _lobby = build_network(host, settings, "tower", ["ELV tower 07 Roof", "Lobby"])
    roof.flags = {"elevator": {"custom": "keep-me"}, "other-module": {"x": 1}}

    await sync_network("tower", actor=gm, registry=registry, host=host)

    assert roof.elevator_flags["custom"] == "keep-me"
    assert roof.flags["other-module"] == {"x": 1}
    assert roof.name == "ELV tower 02 Roof"
