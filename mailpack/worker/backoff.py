"""Retry delay calculation for enrichment attempts."""

import random


def compute_backoff(
    attempt: int,
    base_seconds: float,
    max_seconds: float,
    rng: random.Random | None = None,
) -> float:
    """
    Delay before the attempt following ``attempt``.

    Exponential growth ``base * 2 ** (attempt - 1)`` capped at ``max_seconds``,
    with equal jitter: half the delay is fixed, the other half is random.

    Args:
        attempt: Attempt number that just failed (1-based)
        base_seconds: Delay after the first failure, before jitter
        max_seconds: Ceiling for the delay
        rng: Random source (module-level generator when omitted)

    Returns:
        Delay in seconds, within [delay / 2, delay]
    """
    delay = min(max_seconds, base_seconds * 2 ** (attempt - 1))
    half = delay / 2
    return half + (rng or random).uniform(0, half)
