"""Delay policy shared by REST retries and event stream reconnection."""

from dataclasses import dataclass


@dataclass(frozen=True)
class ExponentialBackoff:
    """Exponential backoff: ``initial_delay * factor ** attempt``, capped.

    With ``factor >= 1`` the delays never decrease; ``factor == 1`` gives a
    fixed delay.

    Args:
        initial_delay: Delay before the first retry (seconds)
        max_delay: Upper bound for any delay (seconds)
        factor: Multiplier applied per attempt
    """

    initial_delay: float = 1.0
    max_delay: float = 30.0
    factor: float = 2.0

    def __post_init__(self) -> None:
        if self.factor < 1:
            raise ValueError("Backoff factor must be >= 1")
        if self.initial_delay < 0 or self.max_delay < 0:
            raise ValueError("Backoff delays cannot be negative")

    def delay(self, attempt: int) -> float:
        """Return the delay in seconds before attempt number ``attempt`` (0-based)."""
        if attempt <= 0:
            return min(self.initial_delay, self.max_delay)
        try:
            delay = self.initial_delay * (self.factor ** attempt)
        except OverflowError:
            return self.max_delay
        return min(delay, self.max_delay)
