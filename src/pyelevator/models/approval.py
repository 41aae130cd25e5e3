"""Teleport/approval request models."""

from __future__ import annotations

from collections.abc import Mapping
from enum import StrEnum
from typing import Any

from pydantic import Field, ValidationError, field_validator

from pyelevator._constants import APPROVAL_FLAG, MOD_ID
from pyelevator.models._base import ElevatorBaseModel, new_request_id


class RoutedAs(StrEnum):
    """Who an approval message was routed to."""

    OWNER = "owner"
    AUTHORITY = "authority"


class TeleportRequest(ElevatorBaseModel):
    """A pending move of entities the requester does not own.

    The request is embedded verbatim into the approval message so the
    message is self-contained and survives reconnects.  ``entity_uuids``
    may be empty when the requester could not enumerate the entities; the
    approver then re-scans ``origin_uuid`` on the ``scene_from_id`` scene.
    """

    request_id: str = Field(default_factory=new_request_id, min_length=1)
    requester: str = Field(..., min_length=1)
    network_id: str | None = None
    dest_uuid: str = Field(..., min_length=1)
    dest_label: str = ""
    entity_uuids: list[str] = Field(default_factory=list)
    scene_from_id: str | None = None
    origin_uuid: str | None = None

    @field_validator("entity_uuids", mode="before")
    @classmethod
    def _dedupe_entities(cls, value: Any) -> list[str]:
        if not isinstance(value, (list, tuple)):
            return []
        out: list[str] = []
        for item in value:
            uuid = str(item if item is not None else "").strip()
            if uuid and uuid not in out:
                out.append(uuid)
        return out

    @classmethod
    def from_message_flags(cls, flags: Mapping[str, Any] | None) -> TeleportRequest | None:
        """Extract the embedded request from an approval message's flags."""
        namespace = flags.get(MOD_ID) if isinstance(flags, Mapping) else None
        payload = namespace.get(APPROVAL_FLAG) if isinstance(namespace, Mapping) else None
        if not isinstance(payload, Mapping):
            return None
        try:
            return cls.model_validate(dict(payload))
        except ValidationError:
            return None

    def to_message_flags(self) -> dict[str, Any]:
        return {MOD_ID: {APPROVAL_FLAG: self.to_wire()}}


class ApprovalRoute(ElevatorBaseModel):
    """Routing decision for one subject entity."""

    entity_uuid: str
    recipients: tuple[str, ...]
    routed_as: RoutedAs


class ApprovalOutcome(ElevatorBaseModel):
    """Result of an approve or deny action on an approval message."""

    message_id: str
    moved: list[str] = Field(default_factory=list)
    failed: list[str] = Field(default_factory=list)
    skipped: list[str] = Field(default_factory=list)
    deleted: bool = False
    already_gone: bool = False
