"""
Exponential backoff with jitter.

    delay = min(base * 2 ** (attempts - 1), max_delay) * (1 ± jitter)

attempts is the number of attempts already made, so the first retry waits
roughly `base`, the second `2 * base`, the third `4 * base`, until the
ceiling. Jitter spreads out retries of jobs that failed together (e.g. the
email provider was down for a minute and 200 emails failed at once).
"""

import random
from datetime import timedelta

# retries must land strictly after the failed attempt
MIN_DELAY_SECONDS = 0.001


class BackoffPolicy:

    def __init__(
        self,
        base_delay: float = 5.0,
        max_delay: float = 3600.0,
        jitter: float = 0.2,
        rng: random.Random | None = None,
    ):
        if base_delay <= 0:
            raise ValueError("base_delay must be positive")
        if max_delay < base_delay:
            raise ValueError("max_delay must be >= base_delay")
        if not 0 <= jitter < 1:
            raise ValueError("jitter must be in [0, 1)")
        self.base_delay = base_delay
        self.max_delay = max_delay
        self.jitter = jitter
        self._rng = rng or random.Random()

    def base_for(self, attempts: int) -> float:
        """Un-jittered delay in seconds after `attempts` attempts."""
        exponent = max(attempts, 1) - 1
        # cap the exponent too, 2 ** 1000 is not a useful number of seconds
        if exponent >= 64:
            return self.max_delay
        return min(self.base_delay * (2 ** exponent), self.max_delay)

    def next_delay(self, attempts: int) -> timedelta:
        delay = self.base_for(attempts)
        if self.jitter:
            delay *= 1 + self._rng.uniform(-self.jitter, self.jitter)
        return timedelta(seconds=max(delay, MIN_DELAY_SECONDS))
