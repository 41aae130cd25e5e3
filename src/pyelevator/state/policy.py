"""Deterministic acceptance policy for current-level broadcasts."""

from __future__ import annotations


def should_accept_broadcast(
    *,
    last_sent_at: float | None,
    incoming_sent_at: float | None,
) -> bool:
    """Decide whether a ``currentLevelChanged`` broadcast should be applied.

    Policy:
    - If both send times exist: accept unless the incoming one is older.
    - If either is missing: accept (last processed wins).

    Only the authority stamps ``sentAt``, so comparisons never mix clocks.
    """
    if last_sent_at is None or incoming_sent_at is None:
        return True
    return incoming_sent_at >= last_sent_at
