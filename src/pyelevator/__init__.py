"""pyelevator - Linked elevator waypoints with a shared current level."""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("pyelevator")
except PackageNotFoundError:
    __version__ = "0+local"

from pyelevator.approval import ApprovalWorkflow, route_entity
from pyelevator.channel import ChannelEvent, LoopbackHub, MqttChannel
from pyelevator.client import ElevatorClient
from pyelevator.config import CombatDelayPolicy, ElevatorConfig
from pyelevator.exceptions import (
    ElevatorAuthorityError,
    ElevatorConfigError,
    ElevatorError,
    ElevatorTransportError,
    MessageValidationError,
)
from pyelevator.host import Actor, Host, Movable, Role, UserInfo, Waypoint
from pyelevator.messaging import CurrentLevelMessenger
from pyelevator.models import (
    ApprovalOutcome,
    CurrentLevelChanged,
    GetCurrentLevel,
    LevelOption,
    PanelConfigForm,
    PanelView,
    RegistryEntry,
    SetCurrentLevel,
    Stop,
    TeleportRequest,
    Theme,
)
from pyelevator.panel import ElevatorPanel
from pyelevator.registry import NetworkRegistry
from pyelevator.settings import MemorySettingsStore, SettingsStore
from pyelevator.sync import SyncReport, sync_network

__all__ = [
    "Actor",
    "ApprovalOutcome",
    "ApprovalWorkflow",
    "ChannelEvent",
    "CombatDelayPolicy",
    "CurrentLevelChanged",
    "CurrentLevelMessenger",
    "ElevatorAuthorityError",
    "ElevatorClient",
    "ElevatorConfig",
    "ElevatorConfigError",
    "ElevatorError",
    "ElevatorPanel",
    "ElevatorTransportError",
    "GetCurrentLevel",
    "Host",
    "LevelOption",
    "LoopbackHub",
    "MemorySettingsStore",
    "MessageValidationError",
    "Movable",
    "MqttChannel",
    "NetworkRegistry",
    "PanelConfigForm",
    "PanelView",
    "RegistryEntry",
    "Role",
    "SetCurrentLevel",
    "SettingsStore",
    "Stop",
    "SyncReport",
    "TeleportRequest",
    "Theme",
    "UserInfo",
    "Waypoint",
    "__version__",
    "route_entity",
    "sync_network",
]
