"""Client configuration for pyelevator."""

from __future__ import annotations

import dataclasses
import os
from enum import StrEnum
from typing import Any

from pyelevator.exceptions import ElevatorConfigError


def _env_bool(value: str | None, default: bool) -> bool:
    if value is None:
        return default
    normalized = value.strip().lower()
    if normalized in {"1", "true", "yes", "y", "on"}:
        return True
    if normalized in {"0", "false", "no", "n", "off"}:
        return False
    return default


class CombatDelayPolicy(StrEnum):
    """How a call behaves while an occupant of the stop is in combat."""

    NEXT_ROUND = "next-round"
    NONE = "none"


@dataclasses.dataclass(frozen=True)
class ElevatorConfig:
    """Client configuration.

    Parameters
    ----------
    theme : str
        Default panel theme (``light``, ``dark``, ``scifi``, ``fantasy``).
    arrival_delay_ms : int
        Milliseconds a call waits before the elevator "arrives".
    combat_delay_policy : CombatDelayPolicy
        When ``next-round``, a call made while an occupant is in combat
        waits for the next combat round instead of the arrival delay.
    require_authority_for_all : bool
        Route every approval request to authority users, skipping owners.
    sfx_enabled : bool
        Play the arrival sound effect.
    sfx_src : str
        Sound effect path handed to the host sound player.
    sfx_timeout : float
        Upper bound in seconds to wait for the sound effect to finish.
    dedup_window_seconds : float
        How long a seen ``requestId`` suppresses repeats.
    dedup_max_entries : int
        Upper bound on remembered request ids.
    rerender_delay_seconds : float
        Coalescing window for panel refreshes, per network id.
    legacy_channels_enabled : bool
        Also publish every message on its legacy per-kind channel.
    mqtt_enabled : bool
        Build an MQTT channel when none is injected.
    mqtt_host : str
        MQTT broker host.
    mqtt_port : int
        MQTT broker port.
    mqtt_keepalive : int
        MQTT keepalive in seconds.
    mqtt_tls : bool
        Enable TLS towards the broker.
    mqtt_topic_prefix : str
        Topic prefix; channels map to ``<prefix>/<channel>``.
    settings_url : str or None
        Base URL of the host settings API.  When unset, settings are kept
        in memory.
    settings_token : str or None
        Bearer token sent to the settings API.
    """

    theme: str = "light"
    arrival_delay_ms: int = 2000
    combat_delay_policy: CombatDelayPolicy = CombatDelayPolicy.NEXT_ROUND
    require_authority_for_all: bool = False
    sfx_enabled: bool = True
    sfx_src: str = "modules/elevator/sounds/arrival.ogg"
    sfx_timeout: float = 5.0
    dedup_window_seconds: float = 8.0
    dedup_max_entries: int = 512
    rerender_delay_seconds: float = 0.05
    legacy_channels_enabled: bool = True
    mqtt_enabled: bool = False
    mqtt_host: str = "localhost"
    mqtt_port: int = 1883
    mqtt_keepalive: int = 60
    mqtt_tls: bool = False
    mqtt_topic_prefix: str = "foundry"
    settings_url: str | None = None
    settings_token: str | None = None

    def __post_init__(self) -> None:
        if self.arrival_delay_ms < 0:
            raise ElevatorConfigError("arrival_delay_ms must be >= 0")
        if self.dedup_window_seconds <= 0:
            raise ElevatorConfigError("dedup_window_seconds must be > 0")
        if self.dedup_max_entries <= 0:
            raise ElevatorConfigError("dedup_max_entries must be > 0")
        if not isinstance(self.combat_delay_policy, CombatDelayPolicy):
            try:
                policy = CombatDelayPolicy(str(self.combat_delay_policy))
            except ValueError as exc:
                raise ElevatorConfigError(f"Unknown combat_delay_policy: {self.combat_delay_policy!r}") from exc
            object.__setattr__(self, "combat_delay_policy", policy)

    @property
    def arrival_delay_seconds(self) -> float:
        return self.arrival_delay_ms / 1000.0

    @classmethod
    def from_env(cls, **overrides: Any) -> ElevatorConfig:
        """Create configuration from environment variables.

        Reads optional ``ELEVATOR_*`` variables.  Explicit keyword
        arguments override environment values.

        Parameters
        ----------
        **overrides
            Explicit field values that take precedence over env vars.

        Returns
        -------
        ElevatorConfig
            Populated configuration.
        """
        env = os.environ

        _ENV_STR_MAP = {
            "ELEVATOR_THEME": "theme",
            "ELEVATOR_COMBAT_DELAY_POLICY": "combat_delay_policy",
            "ELEVATOR_SFX_SRC": "sfx_src",
            "ELEVATOR_MQTT_HOST": "mqtt_host",
            "ELEVATOR_MQTT_TOPIC_PREFIX": "mqtt_topic_prefix",
            "ELEVATOR_SETTINGS_URL": "settings_url",
            "ELEVATOR_SETTINGS_TOKEN": "settings_token",
        }
        _ENV_INT_MAP = {
            "ELEVATOR_ARRIVAL_DELAY_MS": "arrival_delay_ms",
            "ELEVATOR_MQTT_PORT": "mqtt_port",
            "ELEVATOR_MQTT_KEEPALIVE": "mqtt_keepalive",
        }
        _ENV_FLOAT_MAP = {
            "ELEVATOR_SFX_TIMEOUT": "sfx_timeout",
            "ELEVATOR_DEDUP_WINDOW": "dedup_window_seconds",
        }
        _ENV_BOOL_MAP = {
            "ELEVATOR_REQUIRE_AUTHORITY_FOR_ALL": ("require_authority_for_all", False),
            "ELEVATOR_SFX_ENABLED": ("sfx_enabled", True),
            "ELEVATOR_LEGACY_CHANNELS": ("legacy_channels_enabled", True),
            "ELEVATOR_MQTT_ENABLED": ("mqtt_enabled", False),
            "ELEVATOR_MQTT_TLS": ("mqtt_tls", False),
        }

        config_kwargs: dict[str, Any] = {}
        for env_key, field_name in _ENV_STR_MAP.items():
            val = env.get(env_key)
            if val is not None and field_name not in overrides:
                config_kwargs[field_name] = val

        try:
            for env_key, field_name in _ENV_INT_MAP.items():
                val = env.get(env_key)
                if val is not None and field_name not in overrides:
                    config_kwargs[field_name] = int(val)
            for env_key, field_name in _ENV_FLOAT_MAP.items():
                val = env.get(env_key)
                if val is not None and field_name not in overrides:
                    config_kwargs[field_name] = float(val)
        except ValueError as exc:
            raise ElevatorConfigError(f"Invalid numeric environment value: {exc}") from exc

        for env_key, (field_name, default) in _ENV_BOOL_MAP.items():
            if field_name not in overrides:
                config_kwargs[field_name] = _env_bool(env.get(env_key), default)

        config_kwargs.update(overrides)

        return cls(**config_kwargs)
