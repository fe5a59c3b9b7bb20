"""
Channel State - Per-channel mood, cooldown and topic tracking
=============================================================

This module holds everything the bot remembers about the channels it
sits in:
- Mood (normal or backing off) and the passive-advice schedule
- The re-speak cooldown and the per-line dedup flag
- Off-topic timers and the current topic label
- The set of users who asked to be ignored

All of it round-trips through ``to_dict``/``from_dict`` for snapshots.
"""

import random
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Iterable, List, Optional, Set

from .rate_limiter import CooldownRange, RateLimitResult, check_cooldown

PASSIVE_ADVICE_INTERVAL = 60.0 * 60 * 3    # 3h
BACKOFF_ADVICE_INTERVAL = 60.0 * 60 * 24   # 24h
DEFAULT_COOLDOWN = CooldownRange(min=1200.0, max=1800.0)


class Mood(Enum):
    """Per-channel behavioral mode."""
    NORMAL = "normal"    # speaks passively
    BACKOFF = "backoff"  # passive speech suppressed, triggers ignored


@dataclass
class ChannelState:
    """
    State for one joined channel.

    Attributes:
        channel_name (str): Channel name without the leading ``#``
        mood (Mood): Current mood
        last_message (float): Epoch seconds of the last transmission
        next_message (CooldownRange): Re-speak cooldown range
        last_advice (float): Epoch seconds the advice clock was last reset
        next_advice (float): Seconds between passive advice messages
        dedup_message (bool): Set by every transmission, cleared once per chat line
        direct_message (bool): Lets the next throttled send bypass the cooldown
        off_topic (float): Epoch seconds the off-topic timer started, if running
        current_topic (str): Topic label set by chat, if any
        total_off_topic (float): Accumulated off-topic seconds
    """
    channel_name: str
    last_message: float
    last_advice: float
    mood: Mood = Mood.NORMAL
    next_message: CooldownRange = field(
        default_factory=lambda: CooldownRange(DEFAULT_COOLDOWN.min, DEFAULT_COOLDOWN.max)
    )
    next_advice: float = PASSIVE_ADVICE_INTERVAL
    dedup_message: bool = False
    direct_message: bool = False
    off_topic: Optional[float] = None
    current_topic: Optional[str] = None
    total_off_topic: float = 0.0

    @classmethod
    def new(
        cls,
        channel_name: str,
        now: float,
        cooldown: Optional[CooldownRange] = None,
        advice_interval: float = PASSIVE_ADVICE_INTERVAL
    ) -> "ChannelState":
        """Create default state for a channel seen for the first time."""
        cooldown = cooldown or DEFAULT_COOLDOWN
        return cls(
            channel_name=channel_name,
            last_message=now,
            last_advice=now,
            next_message=CooldownRange(cooldown.min, cooldown.max),
            next_advice=advice_interval,
        )

    # === Sending ===

    def check_send(self, now: float, rng: random.Random) -> RateLimitResult:
        """Cooldown check for a throttled send."""
        return check_cooldown(
            self.last_message,
            self.next_message,
            now,
            rng,
            direct_message=self.direct_message,
        )

    def mark_sent(self, now: float) -> None:
        """Record a transmission: resets both clocks and the override."""
        self.dedup_message = True
        self.last_advice = now
        self.last_message = now
        self.direct_message = False

    def reset_cooldown(self) -> None:
        """Waive the cooldown for the next throttled send."""
        self.last_message = 0.0

    def set_cooldown(self, a: float, b: float) -> CooldownRange:
        self.next_message = CooldownRange.ordered(a, b)
        return self.next_message

    # === Mood ===

    def leave(self, interval: float = BACKOFF_ADVICE_INTERVAL) -> None:
        self.mood = Mood.BACKOFF
        self.next_advice = interval

    def join(self, interval: float = PASSIVE_ADVICE_INTERVAL) -> None:
        self.mood = Mood.NORMAL
        self.next_advice = interval

    def advice_due(self, now: float) -> bool:
        return self.last_advice + self.next_advice < now

    # === Topic tracking ===

    def start_off_topic(self, now: float) -> Optional[float]:
        """
        Start the off-topic timer.

        Returns:
            None if the timer was started, otherwise the seconds it has
            already been running.
        """
        if self.off_topic is not None:
            return max(0.0, now - self.off_topic)
        self.off_topic = now
        return None

    def stop_off_topic(self, now: float) -> Optional[float]:
        """
        Stop the off-topic timer and add the elapsed time to the total.

        Returns:
            Elapsed seconds, or None if no timer was running.
        """
        if self.off_topic is None:
            return None
        elapsed = max(0.0, now - self.off_topic)
        self.off_topic = None
        self.total_off_topic += elapsed
        return elapsed

    # === Serialization ===

    def to_dict(self) -> dict:
        return {
            "channel_name": self.channel_name,
            "mood": self.mood.value,
            "last_message": self.last_message,
            "next_message": self.next_message.to_dict(),
            "last_advice": self.last_advice,
            "next_advice": self.next_advice,
            "dedup_message": self.dedup_message,
            "direct_message": self.direct_message,
            "off_topic": self.off_topic,
            "current_topic": self.current_topic,
            "total_off_topic": self.total_off_topic,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "ChannelState":
        """
        Rebuild state from a snapshot dict.

        Raises:
            KeyError, TypeError, ValueError, OverflowError: On a malformed entry
        """
        off_topic = data.get("off_topic")
        current_topic = data.get("current_topic")
        if current_topic is not None and not isinstance(current_topic, str):
            raise TypeError("current_topic must be a string")

        return cls(
            channel_name=str(data["channel_name"]),
            mood=Mood(data["mood"]),
            last_message=float(data["last_message"]),
            next_message=CooldownRange.from_dict(data["next_message"]),
            last_advice=float(data["last_advice"]),
            next_advice=float(data["next_advice"]),
            dedup_message=bool(data.get("dedup_message", False)),
            direct_message=bool(data.get("direct_message", False)),
            off_topic=float(off_topic) if off_topic is not None else None,
            current_topic=current_topic,
            total_off_topic=float(data.get("total_off_topic", 0.0)),
        )


@dataclass
class SessionState:
    """
    Root persisted object: every channel's state plus the ignore set.

    Channels are keyed by name and are never removed during a run.
    """
    channels: Dict[str, ChannelState] = field(default_factory=dict)
    ignores: Set[str] = field(default_factory=set)

    @classmethod
    def new(cls, channels: Iterable[str], now: float, **channel_defaults) -> "SessionState":
        """Create fresh state for the configured channel list."""
        return cls(
            channels={
                name: ChannelState.new(name, now, **channel_defaults)
                for name in channels
            }
        )

    def merge(
        self,
        channels: Iterable[str],
        now: float,
        prune: bool = False,
        **channel_defaults
    ) -> List[str]:
        """
        Merge the configured channel list into restored state.

        Persisted channels keep their state; configured channels that are
        missing get defaults. Channels no longer configured are kept unless
        ``prune`` is set.

        Returns:
            Names of the channels that were added
        """
        configured = list(channels)
        added = []
        for name in configured:
            if name not in self.channels:
                self.channels[name] = ChannelState.new(name, now, **channel_defaults)
                added.append(name)

        if prune:
            for name in [n for n in self.channels if n not in configured]:
                del self.channels[name]

        return added

    def get(self, channel: str) -> Optional[ChannelState]:
        return self.channels.get(channel)

    def ignore(self, user: str) -> None:
        self.ignores.add(user)

    def notice(self, user: str) -> None:
        self.ignores.discard(user)

    def is_ignored(self, user: str) -> bool:
        return user in self.ignores

    def to_dict(self) -> dict:
        return {
            "channels": {name: state.to_dict() for name, state in self.channels.items()},
            "ignores": sorted(self.ignores),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "SessionState":
        """
        Rebuild session state from a snapshot dict.

        Raises:
            KeyError, TypeError, ValueError: On a malformed snapshot
        """
        if not isinstance(data, dict):
            raise TypeError("snapshot root must be an object")

        raw_channels = data["channels"]
        if not isinstance(raw_channels, dict):
            raise TypeError("'channels' must be an object")

        ignores = data.get("ignores", [])
        if not isinstance(ignores, list):
            raise TypeError("'ignores' must be a list")

        return cls(
            channels={
                str(name): ChannelState.from_dict(entry)
                for name, entry in raw_channels.items()
            },
            ignores={str(user) for user in ignores},
        )
