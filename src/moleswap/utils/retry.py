"""Bounded exponential backoff."""

from typing import Iterator


def backoff_delays(
    attempts: int,
    initial: float = 1.0,
    maximum: float = 8.0,
    factor: float = 2.0,
) -> Iterator[float]:
    """Yield ``attempts`` delays: initial, initial*factor, ... capped at maximum.

    Example:
        >>> list(backoff_delays(5, 1.0, 4.0))
        [1.0, 2.0, 4.0, 4.0, 4.0]
    """
    delay = initial
    for _ in range(attempts):
        yield min(delay, maximum)
        delay *= factor
