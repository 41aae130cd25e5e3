"""Base model for elevator data exchanged with the host and the channel.

Every persisted or transmitted model inherits from :class:`ElevatorBaseModel`
which provides:

* ``alias_generator=to_camel`` so the camelCase keys used on the wire and in
  host flags map automatically to snake_case fields.
* ``populate_by_name`` so Python callers can use field names.
* :meth:`ElevatorBaseModel.to_wire`, the one place that decides how a model
  is serialised for the host.
"""

from __future__ import annotations

import secrets
from typing import Any

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


def new_request_id() -> str:
    """Return a fresh opaque request id."""
    return secrets.token_hex(8)


class ElevatorBaseModel(BaseModel):
    """Base for elevator models."""

    model_config = ConfigDict(
        frozen=True,
        extra="ignore",
        populate_by_name=True,
        alias_generator=to_camel,
        str_strip_whitespace=True,
    )

    def to_wire(self, *, exclude_none: bool = False) -> dict[str, Any]:
        """Return a JSON-compatible dict keyed by camelCase aliases."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=exclude_none)
