"""Data models for elevator networks, channel messages and approvals."""

from pyelevator.models._base import ElevatorBaseModel, new_request_id
from pyelevator.models.approval import ApprovalOutcome, ApprovalRoute, RoutedAs, TeleportRequest
from pyelevator.models.messages import (
    CurrentLevelChanged,
    GetCurrentLevel,
    LevelMessage,
    SetCurrentLevel,
    parse_level_message,
)
from pyelevator.models.panel import LevelOption, PanelConfig, PanelConfigForm, PanelView
from pyelevator.models.registry import (
    RegistryEntry,
    ReturnPointer,
    Stop,
    StopAttributes,
    StopFlags,
    Theme,
    format_stop_name,
    normalize_stops,
    strip_stop_name_prefix,
)

__all__ = [
    "ApprovalOutcome",
    "ApprovalRoute",
    "CurrentLevelChanged",
    "ElevatorBaseModel",
    "GetCurrentLevel",
    "LevelMessage",
    "LevelOption",
    "PanelConfig",
    "PanelConfigForm",
    "PanelView",
    "RegistryEntry",
    "ReturnPointer",
    "RoutedAs",
    "SetCurrentLevel",
    "Stop",
    "StopAttributes",
    "StopFlags",
    "TeleportRequest",
    "Theme",
    "format_stop_name",
    "new_request_id",
    "normalize_stops",
    "parse_level_message",
    "strip_stop_name_prefix",
]
