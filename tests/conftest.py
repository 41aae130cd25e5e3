from __future__ import annotations

import asyncio
import copy
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass
from typing import Any

import pytest

from pyelevator._constants import MOD_ID
from pyelevator.host import Actor, MessagePost, NoticeLevel, PostedMessage, Role, UserInfo
from pyelevator.registry import NetworkRegistry
from pyelevator.settings import MemorySettingsStore


class FakeBehavior:
    def __init__(self, destination: str | None = None, *, fail: bool = False) -> None:
        self.destination = destination
        self.fail = fail

    async def set_destination(self, uuid: str) -> None:
        if self.fail:
            raise RuntimeError("behavior is locked")
        self.destination = uuid


@dataclass
class FakeMovable:
    uuid: str
    name: str = ""
    scene_id: str | None = "scene-1"
    center: tuple[float, float] = (5.0, 5.0)
    in_combat: bool = False


class FakeWaypoint:
    def __init__(
        self,
        uuid: str,
        name: str = "",
        *,
        scene_id: str | None = "scene-1",
        flags: Mapping[str, Any] | None = None,
        behaviors: Sequence[FakeBehavior] = (),
        origin: tuple[float, float] = (0.0, 0.0),
        size: float = 10.0,
        fail_update: bool = False,
        fail_teleport: Callable[[Any], bool] | None = None,
    ) -> None:
        self.uuid = uuid
        self.name = name
        self.scene_id = scene_id
        self.flags: dict[str, Any] = copy.deepcopy(dict(flags or {}))
        self.behaviors = list(behaviors)
        self.origin = origin
        self.size = size
        self.fail_update = fail_update
        self.fail_teleport = fail_teleport
        self.updates = 0
        self.teleported: list[str] = []

    @property
    def elevator_flags(self) -> dict[str, Any]:
        return self.flags.get(MOD_ID, {})

    async def update(self, *, flags: Mapping[str, Any] | None = None, name: str | None = None) -> None:
        if self.fail_update:
            raise RuntimeError("update rejected")
        self.updates += 1
        if flags is not None:
            self.flags = {**self.flags, MOD_ID: copy.deepcopy(dict(flags))}
        if name is not None:
            self.name = name

    async def teleport(self, entity: Any) -> None:
        if self.fail_teleport is not None and self.fail_teleport(entity):
            raise RuntimeError(f"cannot move {entity.uuid}")
        self.teleported.append(entity.uuid)
        entity.scene_id = self.scene_id
        entity.center = (self.origin[0] + self.size / 2, self.origin[1] + self.size / 2)

    def contains(self, point: tuple[float, float]) -> bool:
        x, y = point
        ox, oy = self.origin
        return ox <= x <= ox + self.size and oy <= y <= oy + self.size


class FakeHost:
    def __init__(self) -> None:
        self.entities: dict[str, Any] = {}
        self.owners: dict[str, set[str]] = {}
        self.user_list: list[UserInfo] = []
        self.online: set[str] = set()
        self.notices: list[tuple[NoticeLevel, str]] = []
        self.messages: dict[str, PostedMessage] = {}
        self.posts: list[MessagePost] = []
        self.viewed: list[str] = []
        self.scene_id: str | None = "scene-1"
        self.broken: set[str] = set()
        self._message_seq = 0

    def add(self, entity: Any, *, owners: Sequence[str] = ()) -> Any:
        self.entities[entity.uuid] = entity
        if owners:
            self.owners[entity.uuid] = set(owners)
        return entity

    def add_user(self, user_id: str, role: Role = Role.PLAYER, *, online: bool = True, name: str = "") -> UserInfo:
        user = UserInfo(id=user_id, name=name or user_id, role=role)
        self.user_list.append(user)
        if online:
            self.online.add(user_id)
        return user

    def notice_keys(self, level: NoticeLevel | None = None) -> list[str]:
        return [key for notice_level, key in self.notices if level is None or notice_level == level]

    async def resolve(self, uuid: str) -> Any:
        if uuid in self.broken:
            raise RuntimeError(f"resolver failure for {uuid}")
        return self.entities.get(uuid)

    def is_owner(self, entity: Any, user_id: str) -> bool:
        return user_id in self.owners.get(entity.uuid, set())

    def users(self) -> list[UserInfo]:
        return list(self.user_list)

    def is_online(self, user_id: str) -> bool:
        return user_id in self.online

    def movables_in_scene(self, scene_id: str | None) -> list[FakeMovable]:
        return [e for e in self.entities.values() if isinstance(e, FakeMovable) and e.scene_id == scene_id]

    def notify(self, level: NoticeLevel, key: str) -> None:
        self.notices.append((level, key))

    async def post_message(self, post: MessagePost) -> str:
        self._message_seq += 1
        message_id = f"msg-{self._message_seq}"
        self.posts.append(post)
        self.messages[message_id] = PostedMessage(
            id=message_id,
            content=post.content,
            whisper=tuple(post.whisper),
            flags=copy.deepcopy(dict(post.flags)),
        )
        return message_id

    async def get_message(self, message_id: str) -> PostedMessage | None:
        return self.messages.get(message_id)

    async def delete_message(self, message_id: str) -> bool:
        return self.messages.pop(message_id, None) is not None

    async def view_scene(self, scene_id: str) -> None:
        self.viewed.append(scene_id)
        self.scene_id = scene_id

    def current_scene_id(self) -> str | None:
        return self.scene_id


class FakeCombat:
    def __init__(self, round_number: int | None = 1) -> None:
        self.round = round_number
        self._callbacks: list[Callable[[int], None]] = []

    @property
    def subscribers(self) -> int:
        return len(self._callbacks)

    def current_round(self) -> int | None:
        return self.round

    def subscribe(self, callback: Callable[[int], None]) -> Callable[[], None]:
        self._callbacks.append(callback)

        def _unsubscribe() -> None:
            if callback in self._callbacks:
                self._callbacks.remove(callback)

        return _unsubscribe

    def advance(self) -> None:
        self.round = (self.round or 0) + 1
        for callback in list(self._callbacks):
            callback(self.round)


class FakeSound:
    def __init__(self, *, duration: float = 0.0) -> None:
        self.duration = duration
        self.played: list[str] = []

    async def play(self, src: str) -> None:
        self.played.append(src)
        await asyncio.sleep(self.duration)


class RecordingChannel:
    def __init__(self, *, fail: bool = False) -> None:
        self.fail = fail
        self.published: list[tuple[str, dict[str, Any]]] = []

    def publish(self, channel: str, payload: Mapping[str, Any]) -> None:
        if self.fail:
            raise RuntimeError("broker unavailable")
        self.published.append((channel, copy.deepcopy(dict(payload))))

    def payloads(self, channel: str) -> list[dict[str, Any]]:
        return [payload for name, payload in self.published if name == channel]


@pytest.fixture
def host() -> FakeHost:
    return FakeHost()


@pytest.fixture
def settings() -> MemorySettingsStore:
    return MemorySettingsStore()


@pytest.fixture
def registry(settings: MemorySettingsStore) -> NetworkRegistry:
    return NetworkRegistry(settings)


@pytest.fixture
def gm() -> Actor:
    return Actor(user_id="gm", role=Role.AUTHORITY, name="Game Master")


@pytest.fixture
def player() -> Actor:
    return Actor(user_id="alice", role=Role.PLAYER, name="Alice")


def build_network(
    host: FakeHost,
    settings: MemorySettingsStore,
    network_id: str,
    labels: Sequence[str],
    *,
    home_index: int | None = None,
    **stop_kwargs: Any,
) -> list[FakeWaypoint]:
    """Register waypoints ``<network_id>-<n>`` top floor first and persist the entry."""
    stops = []
    for index, label in enumerate(labels):
        origin = (index * 100.0, 0.0)
        stops.append(host.add(FakeWaypoint(f"{network_id}-{index}", label, origin=origin, **stop_kwargs)))
    entry: dict[str, Any] = {
        "elevatorId": network_id,
        "stops": [{"uuid": stop.uuid, "label": stop.name} for stop in stops],
    }
    if home_index is not None:
        entry["homeUuid"] = stops[home_index].uuid
    links = settings._values.setdefault("elevatorLinksById", {})
    links[network_id] = entry
    return stops
