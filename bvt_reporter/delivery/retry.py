"""
Retry/backoff primitives for collector delivery

Exponential backoff: ``base * 2 ** attempt_index``, no jitter, so the
schedule is deterministic. Attempt 0 is the first retry after the initial
try; with the default base of 1s the waits are 1s, 2s, 4s, ...
"""
from typing import List


def compute_backoff_seconds(attempt_index: int, base_seconds: float = 1.0) -> float:
    """
    Compute the delay before the next attempt.

    Args:
        attempt_index: Zero-based index of the failed attempt
        base_seconds: Base delay

    Returns:
        Delay in seconds
    """
    if attempt_index < 0:
        raise ValueError(f"attempt_index must be >= 0, got {attempt_index}")
    return base_seconds * (2 ** attempt_index)


def backoff_schedule(failures: int, base_seconds: float = 1.0) -> List[float]:
    """Delays slept after each of ``failures`` consecutive failed attempts."""
    return [compute_backoff_seconds(i, base_seconds) for i in range(failures)]
