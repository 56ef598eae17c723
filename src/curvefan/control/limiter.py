"""Duty cycle rate limiting."""

import logging

logger = logging.getLogger(__name__)


def limit_step(desired: float, last_applied: float, max_step: float) -> float:
    """Bound how far the duty cycle may move in one cycle.

    Args:
        desired: Duty cycle selected from the curve
        last_applied: Duty cycle applied on the previous cycle
        max_step: Largest allowed change

    Returns:
        desired if within max_step of last_applied, otherwise last_applied
        moved max_step towards desired

    Raises:
        ValueError: If max_step is negative
    """
    if max_step < 0:
        raise ValueError(f"max_step must be >= 0, got {max_step}")

    delta = desired - last_applied
    if abs(delta) <= max_step:
        return desired

    bounded = last_applied + max_step if delta > 0 else last_applied - max_step
    logger.debug(f"Limiting change {last_applied}% -> {desired}% to {bounded}%")
    return bounded
