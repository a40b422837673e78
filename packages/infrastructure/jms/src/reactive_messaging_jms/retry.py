"""RetryPolicy for re-opening a broker session after a receive failure."""

from __future__ import annotations

import random
from typing import TYPE_CHECKING

from reactive_messaging.config import global_float, global_int

if TYPE_CHECKING:
    import threading

    from reactive_messaging.ports.config import IConfigSource

MAX_ATTEMPTS_KEY = "smallrye.jms.retry.max-attempts"
BASE_DELAY_KEY = "smallrye.jms.retry.base-delay"
MAX_DELAY_KEY = "smallrye.jms.retry.max-delay"


class RetryPolicy:
    """Exponential backoff with jitter, bounded by a number of attempts."""

    def __init__(
        self,
        *,
        max_attempts: int = 3,
        base_delay: float = 0.5,
        max_delay: float = 5.0,
        jitter: bool = True,
    ) -> None:
        """Configure reconnection.

        Args:
            max_attempts: Session openings allowed per failure streak,
                including the one that failed.
            base_delay: Delay in seconds before the first reconnection.
            max_delay: Cap on the delay in seconds.
            jitter: If True, spread delays by a random factor in [0.5, 1.5].
        """
        if max_attempts < 1:
            raise ValueError(f"At least one attempt is required, got {max_attempts}")
        if not 0 <= base_delay <= max_delay:
            raise ValueError(
                f"Retry delays must satisfy 0 <= base ({base_delay}) "
                f"<= max ({max_delay})"
            )
        self.max_attempts, self.jitter = max_attempts, jitter
        self.base_delay, self.max_delay = base_delay, max_delay

    @classmethod
    def from_config(cls, source: IConfigSource | None) -> RetryPolicy:
        if source is None:
            return cls()
        return cls(
            max_attempts=global_int(source, MAX_ATTEMPTS_KEY, 3),
            base_delay=global_float(source, BASE_DELAY_KEY, 0.5),
            max_delay=global_float(source, MAX_DELAY_KEY, 5.0),
        )

    def should_retry(self, failures: int) -> bool:
        """True while *failures* consecutive failures leave attempts to spend."""
        return 0 < failures < self.max_attempts

    def delay_for_attempt(self, attempt: int) -> float:
        """Seconds to wait after failed attempt number *attempt* (1-based)."""
        if attempt <= 0:
            return 0.0
        backoff = min(self.max_delay, self.base_delay * 2.0 ** (attempt - 1))
        if not self.jitter:
            return backoff
        return backoff * random.uniform(0.5, 1.5)  # noqa: S311

    def wait_before_retry(self, attempt: int, interrupt: threading.Event) -> bool:
        """Block the calling worker thread for the delay of *attempt*.

        Returns False when *interrupt* was set while waiting.
        """
        delay = self.delay_for_attempt(attempt)
        if delay <= 0:
            return not interrupt.is_set()
        return not interrupt.wait(delay)

    def __repr__(self) -> str:
        return (
            f"RetryPolicy(max_attempts={self.max_attempts}, "
            f"base_delay={self.base_delay}, max_delay={self.max_delay})"
        )


__all__ = ["RetryPolicy"]
