"""Exponential backoff policy for retrying failed pipeline stages.

Kept as a pure function of the attempt number so the retry schedule can be
tested without a clock or a ledger.  The orchestrator turns the returned
delay into a ``next_eligible_at`` timestamp on the ledger entry.
"""

from __future__ import annotations

# 2**64 seconds is far beyond any sane cap; clamping the exponent keeps the
# float multiplication from overflowing on absurd attempt counts.
_MAX_EXPONENT = 64


def compute_backoff_delay(
    attempt: int,
    base_seconds: float,
    cap_seconds: float,
) -> float:
    """Return the delay before retry number *attempt* becomes eligible.

    Parameters
    ----------
    attempt:
        Zero-based retry index: ``0`` for the first retry after the first
        failure, ``1`` for the second, and so on.
    base_seconds:
        Delay for the first retry.
    cap_seconds:
        Upper bound on any single delay.

    Returns
    -------
    float
        ``min(cap_seconds, base_seconds * 2 ** attempt)``.

    Raises
    ------
    ValueError
        If *attempt* is negative or either duration is negative.
    """
    if attempt < 0:
        raise ValueError(f"attempt must be >= 0, got {attempt}")
    if base_seconds < 0 or cap_seconds < 0:
        raise ValueError("backoff durations must be non-negative")

    delay = base_seconds * (2 ** min(attempt, _MAX_EXPONENT))
    return min(cap_seconds, delay)
