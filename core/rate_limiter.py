"""
Rate Limiter Module - Per-channel cooldowns and reconnect backoff
=================================================================

This module provides the two pieces of timing arithmetic the bot needs:
- A randomized re-speak cooldown per channel
- Exponential backoff between reconnect attempts
"""

import random
from dataclasses import dataclass

from .logging import get_logger

logger = get_logger("rate_limiter")


@dataclass
class RateLimitResult:
    """
    Result of a cooldown check.

    Attributes:
        allowed (bool): Whether the message may be sent now
        retry_after (float): Seconds until the drawn cooldown ends (0 if allowed)
        reason (str): Why the check passed or failed
    """
    allowed: bool
    retry_after: float = 0.0
    reason: str = ""


@dataclass
class CooldownRange:
    """
    Half-open ``[min, max)`` range of seconds a channel must stay quiet
    after speaking. A fresh delay is drawn from it on every check.
    """
    min: float
    max: float

    @classmethod
    def ordered(cls, a: float, b: float) -> "CooldownRange":
        """Build a range from two bounds given in either order."""
        return cls(min=float(min(a, b)), max=float(max(a, b)))

    def draw(self, rng: random.Random) -> float:
        if self.max <= self.min:
            return self.min
        return self.min + (self.max - self.min) * rng.random()

    def to_dict(self) -> dict:
        return {"min": self.min, "max": self.max}

    @classmethod
    def from_dict(cls, data: dict) -> "CooldownRange":
        return cls(min=float(data["min"]), max=float(data["max"]))


def check_cooldown(
    last_message: float,
    cooldown: CooldownRange,
    now: float,
    rng: random.Random,
    direct_message: bool = False
) -> RateLimitResult:
    """
    Decide whether a throttled (non-forced) message may be sent.

    The channel may speak if the direct-message override is set, or if
    ``now`` is past ``last_message`` plus a delay drawn from ``cooldown``.

    Args:
        last_message: Epoch seconds of the channel's last transmission
        cooldown: The channel's cooldown range
        now: Current epoch seconds
        rng: Randomness source for the delay draw
        direct_message: Override flag that bypasses the cooldown

    Returns:
        RateLimitResult with the outcome
    """
    if direct_message:
        return RateLimitResult(allowed=True, reason="direct")

    deadline = last_message + cooldown.draw(rng)
    if deadline < now:
        return RateLimitResult(allowed=True, reason="cooldown elapsed")

    return RateLimitResult(
        allowed=False,
        retry_after=deadline - now,
        reason="cooldown"
    )


class ReconnectBackoff:
    """
    Exponential backoff between chat sessions.

    A session that starts less than ``stable_window`` seconds after the
    previous one counts as another failure; otherwise the failure count
    resets. The delay is ``2 ** failures`` seconds, capped at
    ``max_delay`` when it is non-zero.

    Example:
        backoff = ReconnectBackoff(stable_window=3600, max_delay=3600, now=time.time())
        ...
        delay = backoff.next_delay(session_started_at)
        await asyncio.sleep(delay)
    """

    def __init__(self, stable_window: float, max_delay: float, now: float):
        self.stable_window = stable_window
        self.max_delay = max_delay
        self.failures = 0
        self.last_start: float = now

    def next_delay(self, start_time: float) -> float:
        """
        Record a finished session and compute the sleep before the next one.

        Args:
            start_time: Epoch seconds when the finished session started

        Returns:
            Seconds to sleep before reconnecting
        """
        if start_time - self.last_start < self.stable_window:
            self.failures += 1
        else:
            self.failures = 0
        self.last_start = start_time

        delay = float(2 ** self.failures)
        if self.max_delay and delay > self.max_delay:
            delay = float(self.max_delay)

        logger.debug(f"Backoff after {self.failures} quick failures: {delay:.0f}s")
        return delay
