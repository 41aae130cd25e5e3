"""Tests for the high-level client wiring several processes together."""

from __future__ import annotations

import asyncio
from typing import Any

import pytest
from conftest import FakeHost, FakeMovable, build_network

from pyelevator import ElevatorClient
from pyelevator.channel import ChannelEvent, LoopbackHub
from pyelevator.config import ElevatorConfig
from pyelevator.exceptions import ElevatorError
from pyelevator.host import Actor, Role
from pyelevator.settings import MemorySettingsStore

CONFIG = ElevatorConfig(arrival_delay_ms=0, rerender_delay_seconds=0.01)
MAIN = "module.elevator"


class SlowSettingsStore(MemorySettingsStore):
    """Settings store that suspends on every call, like a remote one."""

    def __init__(self, *, delay: float = 0.01) -> None:
        super().__init__()
        self.delay = delay
        self.in_flight = 0
        self.max_in_flight = 0

    async def _pause(self) -> None:
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            await asyncio.sleep(self.delay)
        finally:
            self.in_flight -= 1

    async def get(self, key: str) -> Any:
        await self._pause()
        return await super().get(key)

    async def set(self, key: str, value: Any) -> None:
        await self._pause()
        await super().set(key, value)


async def _settle(*clients: ElevatorClient) -> None:
    # Handlers of one client publish into the others; two passes drain the chain.
    for _ in range(2):
        for client in clients:
            await client.wait_idle()


def test_operations_require_context_manager(host: FakeHost, player: Actor) -> None:
    client = ElevatorClient(CONFIG, actor=player, host=host)

    with pytest.raises(ElevatorError):
        client.current_level("tower")
    with pytest.raises(ElevatorError):
        _ = client.registry


@pytest.mark.asyncio
async def test_authority_repairs_networks_on_start(
    host: FakeHost, settings: MemorySettingsStore, gm: Actor, player: Actor
) -> None:
    roof, lobby, _basement = build_network(host, settings, "tower", ["Roof", "Lobby", "Basement"])

    async with ElevatorClient(CONFIG, actor=player, host=host, settings=settings):
        assert roof.name == "Roof"

    async with ElevatorClient(CONFIG, actor=gm, host=host, settings=settings) as client:
        assert roof.name == "ELV tower 03 Roof"
        assert lobby.elevator_flags["returnTo"]["uuid"] == roof.uuid
        assert [report.writes for report in await client.resync_all()] == [0]


@pytest.mark.asyncio
async def test_player_request_is_persisted_once_and_broadcast(
    host: FakeHost, settings: MemorySettingsStore, gm: Actor, player: Actor
) -> None:
    _roof, lobby, _basement = build_network(host, settings, "tower", ["Roof", "Lobby", "Basement"])
    hub = LoopbackHub()

    async with (
        ElevatorClient(CONFIG, actor=gm, host=host, settings=settings, hub=hub) as gm_client,
        ElevatorClient(CONFIG, actor=player, host=host, settings=settings, hub=hub) as player_client,
    ):
        await player_client.set_current_level("tower", lobby.uuid)
        assert player_client.current_level("tower") == lobby.uuid

        await _settle(gm_client, player_client)

        assert await settings.get("currentLevelByElevatorId") == {"tower": lobby.uuid}
        assert settings.writes == 1
        assert gm_client.current_level("tower") == lobby.uuid
        assert player_client.current_level("tower") == lobby.uuid


@pytest.mark.asyncio
async def test_late_client_syncs_from_authority(
    host: FakeHost, settings: MemorySettingsStore, gm: Actor
) -> None:
    _roof, _lobby, basement = build_network(host, settings, "tower", ["Roof", "Lobby", "Basement"])
    hub = LoopbackHub()

    async with ElevatorClient(CONFIG, actor=gm, host=host, settings=settings, hub=hub) as gm_client:
        await gm_client.set_current_level("tower", basement.uuid)

        late = Actor(user_id="dave")
        async with ElevatorClient(CONFIG, actor=late, host=host, settings=settings, hub=hub) as late_client:
            assert late_client.current_level("tower") is None

            await late_client.sync_current_level("tower")
            await _settle(gm_client, late_client)

            assert late_client.current_level("tower") == basement.uuid


@pytest.mark.asyncio
async def test_owner_approves_request_from_another_client(
    host: FakeHost, settings: MemorySettingsStore, gm: Actor, player: Actor
) -> None:
    roof, lobby, _basement = build_network(host, settings, "tower", ["Roof", "Lobby", "Basement"])
    host.add_user("gm", Role.AUTHORITY)
    host.add_user("alice")
    host.add_user("bob")
    host.add(FakeMovable("tok-b", "Brutus"), owners=["bob"])
    hub = LoopbackHub()
    bob = Actor(user_id="bob", name="Bob")

    async with (
        ElevatorClient(CONFIG, actor=gm, host=host, settings=settings, hub=hub) as gm_client,
        ElevatorClient(CONFIG, actor=player, host=host, settings=settings, hub=hub) as alice_client,
        ElevatorClient(CONFIG, actor=bob, host=host, settings=settings, hub=hub) as bob_client,
    ):
        assert await alice_client.panel(roof).select(lobby.uuid)
        assert lobby.teleported == []
        [message_id] = list(host.messages)

        outcome = await bob_client.approve(message_id)
        await _settle(gm_client, alice_client, bob_client)

        assert outcome.moved == ["tok-b"]
        assert outcome.deleted
        assert lobby.teleported == ["tok-b"]
        assert message_id not in host.messages
        assert await settings.get("currentLevelByElevatorId") == {"tower": lobby.uuid}

        again = await bob_client.deny(message_id)
        assert again.already_gone


@pytest.mark.asyncio
async def test_unreachable_broker_leaves_client_local(
    host: FakeHost, settings: MemorySettingsStore, player: Actor
) -> None:
    config = ElevatorConfig(mqtt_enabled=True, mqtt_host="127.0.0.1", mqtt_port=1)

    async with ElevatorClient(config, actor=player, host=host, settings=settings) as client:
        await client.set_current_level("tower", "stop-1")

        assert client.current_level("tower") == "stop-1"


@pytest.mark.asyncio
async def test_concurrent_set_requests_keep_every_network(host: FakeHost, gm: Actor) -> None:
    settings = SlowSettingsStore()

    async with ElevatorClient(CONFIG, actor=gm, host=host, settings=settings) as client:
        client.dispatch(
            ChannelEvent(
                MAIN,
                {"type": "setCurrentLevel", "requestId": "r1", "networkId": "east", "uuid": "e2", "requester": "a"},
            )
        )
        client.dispatch(
            ChannelEvent(
                MAIN,
                {"type": "setCurrentLevel", "requestId": "r2", "networkId": "west", "uuid": "w5", "requester": "b"},
            )
        )
        await client.wait_idle()

        assert await settings.get("currentLevelByElevatorId") == {"east": "e2", "west": "w5"}
        assert client.current_level("east") == "e2"
        assert client.current_level("west") == "w5"
        assert settings.max_in_flight == 1


@pytest.mark.asyncio
async def test_get_reply_never_overtakes_newer_set(host: FakeHost, gm: Actor, player: Actor) -> None:
    settings = SlowSettingsStore()
    settings._values["currentLevelByElevatorId"] = {"tower": "old"}
    hub = LoopbackHub()

    async with (
        ElevatorClient(CONFIG, actor=gm, host=host, settings=settings, hub=hub) as gm_client,
        ElevatorClient(CONFIG, actor=player, host=host, settings=settings, hub=hub) as player_client,
    ):
        gm_client.dispatch(
            ChannelEvent(MAIN, {"type": "getCurrentLevel", "requestId": "g1", "networkId": "tower", "requester": "x"})
        )
        gm_client.dispatch(
            ChannelEvent(
                MAIN,
                {"type": "setCurrentLevel", "requestId": "s1", "networkId": "tower", "uuid": "new", "requester": "x"},
            )
        )
        gm_client.dispatch(
            ChannelEvent(MAIN, {"type": "getCurrentLevel", "requestId": "g2", "networkId": "tower", "requester": "x"})
        )
        await _settle(gm_client, player_client)

        assert await settings.get("currentLevelByElevatorId") == {"tower": "new"}
        assert gm_client.current_level("tower") == "new"
        assert player_client.current_level("tower") == "new"
        assert settings.max_in_flight == 1
