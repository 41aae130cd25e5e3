"""Interfaces of the host application that pyelevator consumes.

The host (a virtual tabletop, a game server, a test double) owns regions,
tokens, scenes, users, chat messages and notifications.  pyelevator treats
all of them as opaque entities reachable by uuid and talks to them only
through the protocols below.
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable, Mapping, Sequence
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any, Protocol, runtime_checkable

_logger = logging.getLogger(__name__)

Point = tuple[float, float]


class Role(StrEnum):
    """Role of a connected client.  Only the authority writes persisted state."""

    AUTHORITY = "authority"
    PLAYER = "player"


@dataclass(frozen=True)
class Actor:
    """The user on whose behalf an operation runs.

    Passed explicitly into every operation instead of being looked up from
    ambient state.
    """

    user_id: str
    role: Role = Role.PLAYER
    name: str = ""

    @property
    def is_authority(self) -> bool:
        return self.role == Role.AUTHORITY

    @property
    def display_name(self) -> str:
        return self.name or self.user_id


@dataclass(frozen=True)
class UserInfo:
    """A user known to the host, online or not."""

    id: str
    name: str = ""
    role: Role = Role.PLAYER

    @property
    def is_authority(self) -> bool:
        return self.role == Role.AUTHORITY


class NoticeLevel(StrEnum):
    INFO = "info"
    WARN = "warn"
    ERROR = "error"


@runtime_checkable
class TeleportBehavior(Protocol):
    """A single-destination teleport affordance attached to a waypoint."""

    destination: str | None

    async def set_destination(self, uuid: str) -> None: ...


@runtime_checkable
class Movable(Protocol):
    """A movable entity (token) that can ride the elevator."""

    uuid: str
    name: str
    scene_id: str | None
    center: Point
    in_combat: bool


@runtime_checkable
class Waypoint(Protocol):
    """An addressable region acting as an elevator stop."""

    uuid: str
    name: str
    scene_id: str | None
    flags: Mapping[str, Any]
    behaviors: Sequence[TeleportBehavior]

    async def update(self, *, flags: Mapping[str, Any] | None = None, name: str | None = None) -> None:
        """Persist the ``elevator`` flag namespace and/or a new name."""
        ...

    async def teleport(self, entity: Movable) -> None:
        """Move *entity* onto this waypoint.  Raises on failure."""
        ...

    def contains(self, point: Point) -> bool: ...


@dataclass(frozen=True)
class MessagePost:
    """A durable chat message to create."""

    content: str
    whisper: tuple[str, ...] = ()
    flags: Mapping[str, Any] = field(default_factory=dict)
    speaker: str | None = None


@dataclass(frozen=True)
class PostedMessage:
    """A durable chat message as stored by the host."""

    id: str
    content: str = ""
    whisper: tuple[str, ...] = ()
    flags: Mapping[str, Any] = field(default_factory=dict)


class Host(Protocol):
    """Host collaborator interface."""

    async def resolve(self, uuid: str) -> Any:
        """Return the live entity for *uuid*, or ``None``.  May raise."""
        ...

    def is_owner(self, entity: Movable, user_id: str) -> bool: ...

    def users(self) -> Sequence[UserInfo]: ...

    def is_online(self, user_id: str) -> bool: ...

    def movables_in_scene(self, scene_id: str | None) -> Sequence[Movable]: ...

    def notify(self, level: NoticeLevel, key: str) -> None:
        """Show a transient notification; *key* is an i18n key."""
        ...

    async def post_message(self, post: MessagePost) -> str: ...

    async def get_message(self, message_id: str) -> PostedMessage | None: ...

    async def delete_message(self, message_id: str) -> bool:
        """Delete a message; ``False`` when it was already gone."""
        ...

    async def view_scene(self, scene_id: str) -> None: ...

    def current_scene_id(self) -> str | None: ...


class CombatTracker(Protocol):
    """Combat round source."""

    def current_round(self) -> int | None:
        """Round of the active combat, ``None`` when no combat is running."""
        ...

    def subscribe(self, callback: Callable[[int], None]) -> Callable[[], None]:
        """Call *callback* with the new round on every round change; return an unsubscribe."""
        ...


class SoundPlayer(Protocol):
    def play(self, src: str) -> Awaitable[None]: ...


async def resolve_waypoint(host: Host, uuid: str | None) -> Waypoint | None:
    """Resolve *uuid* to a waypoint; resolver errors count as unresolved."""
    if not uuid:
        return None
    try:
        doc = await host.resolve(uuid)
    except Exception:
        _logger.debug("Waypoint resolution failed uuid=%s", uuid, exc_info=True)
        return None
    return doc if isinstance(doc, Waypoint) else None


async def resolve_movable(host: Host, uuid: str | None) -> Movable | None:
    """Resolve *uuid* to a movable entity; resolver errors count as unresolved."""
    if not uuid:
        return None
    try:
        doc = await host.resolve(uuid)
    except Exception:
        _logger.debug("Entity resolution failed uuid=%s", uuid, exc_info=True)
        return None
    if isinstance(doc, Waypoint) or not isinstance(doc, Movable):
        return None
    return doc


def movables_inside(host: Host, waypoint: Waypoint) -> list[Movable]:
    """Movable entities on *waypoint*'s scene whose center lies inside it."""
    inside: list[Movable] = []
    for entity in host.movables_in_scene(waypoint.scene_id):
        try:
            if waypoint.contains(entity.center):
                inside.append(entity)
        except Exception:
            _logger.debug("Containment test failed entity=%s", getattr(entity, "uuid", None), exc_info=True)
    return inside
