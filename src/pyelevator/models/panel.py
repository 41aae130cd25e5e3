"""View and form models exchanged with the panel renderer."""

from __future__ import annotations

from typing import Any

from pydantic import Field, field_validator

from pyelevator._constants import DEFAULT_ICON_SIZE, DEFAULT_ICON_SRC
from pyelevator.models._base import ElevatorBaseModel
from pyelevator.models.registry import Stop, Theme, coerce_icon_size, coerce_theme, normalize_stops


class LevelOption(ElevatorBaseModel):
    """One selectable row of the level list."""

    uuid: str
    label: str
    floor: int | None = None
    is_current: bool = False
    is_return: bool = False


class PanelConfig(ElevatorBaseModel):
    """Snapshot of the bound stop's own flags for the config tab."""

    enabled: bool = False
    elevator_id: str = ""
    is_elevator_here: bool = False
    theme: Theme = Theme.LIGHT
    icon_src: str = DEFAULT_ICON_SRC
    icon_size: int = DEFAULT_ICON_SIZE
    icon_always_on: bool = False
    levels: list[Stop] = Field(default_factory=list)


class PanelView(ElevatorBaseModel):
    """Everything a renderer needs to draw the panel."""

    stop_uuid: str
    network_id: str = ""
    is_here: bool = False
    current_uuid: str | None = None
    arrival_seconds: int = 0
    theme: Theme = Theme.LIGHT
    levels: list[LevelOption] = Field(default_factory=list)
    is_authority: bool = False
    edit_mode: bool = False
    config: PanelConfig = Field(default_factory=PanelConfig)


class PanelConfigForm(ElevatorBaseModel):
    """Submitted config tab.  ``stops`` is ordered top floor first."""

    enabled: bool = False
    elevator_id: str = ""
    is_elevator_here: bool = False
    theme: Theme = Theme.LIGHT
    icon_src: str = DEFAULT_ICON_SRC
    icon_size: int = DEFAULT_ICON_SIZE
    icon_always_on: bool = False
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
