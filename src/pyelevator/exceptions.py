"""Custom exception hierarchy for pyelevator."""

from __future__ import annotations


class ElevatorError(Exception):
    """Base exception for all pyelevator errors."""


class ElevatorConfigError(ElevatorError):
    """Invalid or missing configuration."""


class ElevatorTransportError(ElevatorError):
    """Channel or settings-store I/O failure (network, non-200, invalid JSON)."""

    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        endpoint: str = "",
    ) -> None:
        self.status_code = status_code
        self.endpoint = endpoint
        super().__init__(message)


class ElevatorAuthorityError(ElevatorError):
    """A persisted write was attempted by a client without the authority role.

    Persisted elevator state has a single writer.  Callers without the
    authority role must route changes through the messaging layer instead.
    """


class MessageValidationError(ElevatorError):
    """Inbound channel payload does not match any known message shape."""

    def __init__(self, message: str, *, channel: str = "") -> None:
        self.channel = channel
        super().__init__(message)
