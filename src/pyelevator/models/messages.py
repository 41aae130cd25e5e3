"""Current-level channel messages.

The channel carries exactly three message kinds.  They form a closed tagged
union discriminated by ``type``; anything else is rejected at parse time.
Every message carries a ``requestId`` used for de-duplication.
"""

from __future__ import annotations

import time
from collections.abc import Mapping
from typing import Annotated, Any, Literal

from pydantic import Field, TypeAdapter, ValidationError, field_validator

from pyelevator._constants import CURRENT_LEVEL_CHANGED, GET_CURRENT_LEVEL, LEGACY_CHANNELS, SET_CURRENT_LEVEL
from pyelevator.exceptions import MessageValidationError
from pyelevator.models._base import ElevatorBaseModel, new_request_id

_LEGACY_KIND_BY_CHANNEL: dict[str, str] = {channel: kind for kind, channel in LEGACY_CHANNELS.items()}


class _LevelMessage(ElevatorBaseModel):
    request_id: str = Field(default_factory=new_request_id, min_length=1)
    network_id: str = Field(..., min_length=1)


class SetCurrentLevel(_LevelMessage):
    """Non-authority request: move network ``network_id`` to ``uuid``."""

    type: Literal["setCurrentLevel"] = SET_CURRENT_LEVEL
    uuid: str = Field(..., min_length=1)
    requester: str = Field(..., min_length=1)


class GetCurrentLevel(_LevelMessage):
    """Non-authority request: re-broadcast the persisted value."""

    type: Literal["getCurrentLevel"] = GET_CURRENT_LEVEL
    requester: str = Field(..., min_length=1)


class CurrentLevelChanged(_LevelMessage):
    """Authority broadcast of the persisted value for one network."""

    type: Literal["currentLevelChanged"] = CURRENT_LEVEL_CHANGED
    uuid: str = Field(..., min_length=1)
    sent_at: float | None = Field(default_factory=time.time)

    @field_validator("sent_at", mode="before")
    @classmethod
    def _numeric_or_none(cls, value: Any) -> float | None:
        if value is None or isinstance(value, bool):
            return None
        try:
            return float(value)
        except (TypeError, ValueError):
            return None


LevelMessage = Annotated[
    SetCurrentLevel | GetCurrentLevel | CurrentLevelChanged,
    Field(discriminator="type"),
]

_ADAPTER: TypeAdapter[SetCurrentLevel | GetCurrentLevel | CurrentLevelChanged] = TypeAdapter(LevelMessage)


def kind_for_channel(channel: str) -> str | None:
    """Message kind implied by a legacy per-kind channel name."""
    return _LEGACY_KIND_BY_CHANNEL.get(channel)


def parse_level_message(
    payload: Mapping[str, Any],
    *,
    channel: str = "",
) -> SetCurrentLevel | GetCurrentLevel | CurrentLevelChanged:
    """Validate an inbound payload into one of the three message kinds.

    Legacy per-kind channels may omit the ``type`` tag; it is then taken
    from the channel name.

    Raises
    ------
    MessageValidationError
        If the payload is not a mapping, the kind is unknown, or a required
        field is missing.
    """
    if not isinstance(payload, Mapping):
        raise MessageValidationError("Payload is not an object", channel=channel)

    data = dict(payload)
    implied = kind_for_channel(channel)
    if implied is not None:
        declared = data.get("type")
        if declared is None:
            data["type"] = implied
        elif declared != implied:
            raise MessageValidationError(
                f"Message type {declared!r} does not match channel kind {implied!r}",
                channel=channel,
            )

    try:
        return _ADAPTER.validate_python(data)
    except ValidationError as exc:
        raise MessageValidationError(
            f"Unrecognized message shape: {exc.errors(include_url=False)}",
            channel=channel,
        ) from exc
