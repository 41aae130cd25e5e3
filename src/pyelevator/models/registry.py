"""Elevator network registry models.

A network (one elevator) is persisted as a :class:`RegistryEntry` in the
``elevatorLinksById`` world setting.  The sync engine derives a
:class:`StopAttributes` record for every member stop and writes it into the
stop's own flags; panels read those flags back through :class:`StopFlags`.
"""

from __future__ import annotations

import re
from collections.abc import Iterable, Mapping
from enum import StrEnum
from typing import Any

from pydantic import Field, ValidationError, field_validator

from pyelevator._constants import DEFAULT_ICON_SIZE, DEFAULT_ICON_SRC, MIN_ICON_SIZE, MOD_ID, STOP_NAME_PREFIX
from pyelevator.models._base import ElevatorBaseModel

# "ELV <id> <NN> <label>": the id may contain spaces, so match it lazily.
_NAME_PREFIX_RE = re.compile(rf"^{STOP_NAME_PREFIX}\s+.+?\s+\d{{2}}\s+")


class Theme(StrEnum):
    LIGHT = "light"
    DARK = "dark"
    SCIFI = "scifi"
    FANTASY = "fantasy"


def strip_stop_name_prefix(name: Any) -> str:
    """Remove a generated ``ELV <id> <NN> `` prefix from *name*.

    Only names following our own naming scheme are touched, so re-adding a
    stop never accumulates nested prefixes.  A name that would become empty
    is returned unchanged.
    """
    text = str(name if name is not None else "").strip()
    if not text.startswith(f"{STOP_NAME_PREFIX} "):
        return text
    stripped = _NAME_PREFIX_RE.sub("", text, count=1).strip()
    return stripped or text


def format_stop_name(elevator_id: str, floor_number: int, label: str) -> str:
    """Build the display name ``ELV <id> <NN> <label>`` for a stop."""
    try:
        floor = max(1, int(floor_number))
    except (TypeError, ValueError):
        floor = 1
    lbl = strip_stop_name_prefix(label)
    return f"{STOP_NAME_PREFIX} {str(elevator_id).strip()} {floor:02d} {lbl}".strip()


class Stop(ElevatorBaseModel):
    """One addressable waypoint of a network."""

    uuid: str = Field(..., min_length=1)
    label: str = ""

    @field_validator("label", mode="before")
    @classmethod
    def _clean_label(cls, value: Any) -> str:
        return strip_stop_name_prefix(value)


class ReturnPointer(ElevatorBaseModel):
    """Fallback destination written onto every non-home stop."""

    uuid: str
    label: str = ""


def normalize_stops(stops: Any) -> list[Stop]:
    """Dedupe *stops* by uuid (first occurrence wins) and drop empty uuids.

    Accepts :class:`Stop` instances or ``{"uuid": ..., "label": ...}``
    mappings; anything else is ignored.
    """
    if not isinstance(stops, Iterable) or isinstance(stops, (str, bytes, Mapping)):
        return []

    out: list[Stop] = []
    seen: set[str] = set()
    for item in stops:
        if isinstance(item, Stop):
            uuid, label = item.uuid, item.label
        elif isinstance(item, Mapping):
            raw_uuid = item.get("uuid")
            uuid = str(raw_uuid if raw_uuid is not None else "").strip()
            label = item.get("label")
        else:
            continue
        if not uuid or uuid in seen:
            continue
        seen.add(uuid)
        out.append(Stop(uuid=uuid, label="" if label is None else str(label)))
    return out


def coerce_icon_size(value: Any) -> int:
    try:
        size = int(float(value))
    except (TypeError, ValueError):
        return DEFAULT_ICON_SIZE
    return max(MIN_ICON_SIZE, size)


def coerce_theme(value: Any) -> Theme:
    try:
        return Theme(str(value).strip().lower())
    except ValueError:
        return Theme.LIGHT


class RegistryEntry(ElevatorBaseModel):
    """Static description of one elevator network.

    ``stops`` is ordered top to bottom: the first stored stop is the highest
    floor and the last one is floor 1.
    """

    elevator_id: str = Field(..., min_length=1)
    home_uuid: str | None = None
    icon_src: str = DEFAULT_ICON_SRC
    icon_size: int = DEFAULT_ICON_SIZE
    icon_always_on: bool = False
    theme: Theme = Theme.LIGHT
    stops: list[Stop] = Field(default_factory=list)

    @field_validator("stops", mode="before")
    @classmethod
    def _normalize_stops(cls, value: Any) -> list[Stop]:
        return normalize_stops(value)

    @field_validator("icon_size", mode="before")
    @classmethod
    def _clamp_icon_size(cls, value: Any) -> int:
        return coerce_icon_size(value)

    @field_validator("theme", mode="before")
    @classmethod
    def _known_theme(cls, value: Any) -> Theme:
        return coerce_theme(value)

    @field_validator("icon_src", mode="before")
    @classmethod
    def _default_icon(cls, value: Any) -> str:
        text = str(value if value is not None else "").strip()
        return text or DEFAULT_ICON_SRC

    @field_validator("home_uuid", mode="before")
    @classmethod
    def _blank_home(cls, value: Any) -> str | None:
        if value is None:
            return None
        text = str(value).strip()
        return text or None

    @property
    def stop_uuids(self) -> list[str]:
        return [stop.uuid for stop in self.stops]

    def resolve_home(self, override: str | None = None) -> str | None:
        """Explicit override, else stored home, else the first stop."""
        if override:
            return override
        if self.home_uuid:
            return self.home_uuid
        return self.stops[0].uuid if self.stops else None

    def floor_of(self, uuid: str) -> int | None:
        """Floor number of *uuid*: index 0 is the highest floor."""
        for index, stop in enumerate(self.stops):
            if stop.uuid == uuid:
                return len(self.stops) - index
        return None


class StopAttributes(ElevatorBaseModel):
    """Attributes the sync engine owns on a member stop's flags."""

    enabled: bool = True
    elevator_id: str
    is_elevator_here: bool = False
    theme: Theme = Theme.LIGHT
    icon_src: str = DEFAULT_ICON_SRC
    icon_size: int = DEFAULT_ICON_SIZE
    icon_always_on: bool = False
    levels: list[Stop] = Field(default_factory=list)
    return_to: ReturnPointer | None = None


class StopFlags(ElevatorBaseModel):
    """Lenient read view of the ``elevator`` flags on a waypoint."""

    enabled: bool = False
    elevator_id: str = ""
    is_elevator_here: bool = False
    theme: Theme | None = None
    icon_src: str = DEFAULT_ICON_SRC
    icon_size: int = DEFAULT_ICON_SIZE
    icon_always_on: bool = False
    levels: list[Stop] = Field(default_factory=list)
    return_to: ReturnPointer | None = None

    @field_validator("levels", mode="before")
    @classmethod
    def _normalize_levels(cls, value: Any) -> list[Stop]:
        return normalize_stops(value)

    @field_validator("icon_size", mode="before")
    @classmethod
    def _clamp_icon_size(cls, value: Any) -> int:
        return coerce_icon_size(value)

    @field_validator("theme", mode="before")
    @classmethod
    def _known_theme(cls, value: Any) -> Theme | None:
        if value is None or value == "":
            return None
        return coerce_theme(value)

    @field_validator("icon_src", mode="before")
    @classmethod
    def _default_icon(cls, value: Any) -> str:
        text = str(value if value is not None else "").strip()
        return text or DEFAULT_ICON_SRC

    @field_validator("return_to", mode="before")
    @classmethod
    def _drop_empty_return(cls, value: Any) -> Any:
        if isinstance(value, Mapping) and not str(value.get("uuid") or "").strip():
            return None
        return value

    @classmethod
    def from_flags(cls, flags: Mapping[str, Any] | None) -> StopFlags:
        """Parse the ``elevator`` namespace out of a waypoint's flags."""
        namespace = flags.get(MOD_ID) if isinstance(flags, Mapping) else None
        if not isinstance(namespace, Mapping):
            return cls()
        try:
            return cls.model_validate(dict(namespace))
        except ValidationError:
            return cls()
