from __future__ import annotations

import pytest

from pyelevator.config import CombatDelayPolicy, ElevatorConfig
from pyelevator.exceptions import ElevatorConfigError


def test_defaults() -> None:
    config = ElevatorConfig()

    assert config.arrival_delay_ms == 2000
    assert config.arrival_delay_seconds == 2.0
    assert config.combat_delay_policy is CombatDelayPolicy.NEXT_ROUND
    assert config.legacy_channels_enabled
    assert not config.mqtt_enabled
    assert config.settings_url is None


def test_from_env_reads_prefixed_variables(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("ELEVATOR_ARRIVAL_DELAY_MS", "1500")
    monkeypatch.setenv("ELEVATOR_COMBAT_DELAY_POLICY", "none")
    monkeypatch.setenv("ELEVATOR_SFX_ENABLED", "no")
    monkeypatch.setenv("ELEVATOR_MQTT_ENABLED", "1")
    monkeypatch.setenv("ELEVATOR_MQTT_PORT", "8883")
    monkeypatch.setenv("ELEVATOR_DEDUP_WINDOW", "2.5")

    config = ElevatorConfig.from_env()

    assert config.arrival_delay_seconds == 1.5
    assert config.combat_delay_policy is CombatDelayPolicy.NONE
    assert not config.sfx_enabled
    assert config.mqtt_enabled
    assert config.mqtt_port == 8883
    assert config.dedup_window_seconds == 2.5


def test_overrides_take_precedence(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("ELEVATOR_THEME", "dark")
    monkeypatch.setenv("ELEVATOR_LEGACY_CHANNELS", "off")

    config = ElevatorConfig.from_env(theme="fantasy", legacy_channels_enabled=True)

    assert config.theme == "fantasy"
    assert config.legacy_channels_enabled


def test_unparseable_bool_keeps_default(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("ELEVATOR_SFX_ENABLED", "maybe")

    assert ElevatorConfig.from_env().sfx_enabled


def test_invalid_number_raises(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("ELEVATOR_ARRIVAL_DELAY_MS", "soon")

    with pytest.raises(ElevatorConfigError):
        ElevatorConfig.from_env()


@pytest.mark.parametrize(
    "kwargs",
    [
        {"arrival_delay_ms": -1},
        {"dedup_window_seconds": 0},
        {"dedup_max_entries": 0},
        {"combat_delay_policy": "whenever"},
    ],
)
def test_invalid_values_raise(kwargs: dict[str, object]) -> None:
    with pytest.raises(ElevatorConfigError):
        ElevatorConfig(**kwargs)  # type: ignore[arg-type]
