"""
Base Transport - Abstract interface to the chat network
=======================================================

This module defines the events a transport produces and the interface
every transport must implement, so the session loop behaves the same
against a live IRC server and a scripted in-memory feed.

Channel names cross this interface without the leading ``#``.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, Union


@dataclass(frozen=True)
class ChatLine:
    """
    A public chat message.

    Attributes:
        channel (str): Channel name without ``#``
        user (str): Speaking user's login name
        text (str): Message text as received
    """
    channel: str
    user: str
    text: str


@dataclass(frozen=True)
class Quit:
    """The server or the operator ended the session."""
    reason: str = ""


@dataclass(frozen=True)
class EndOfStream:
    """The connection closed."""


@dataclass(frozen=True)
class OtherEvent:
    """Any event the bot does not act on (joins, notices, pings, ...)."""
    kind: str
    raw: Dict[str, Any] = field(default_factory=dict)


Event = Union[ChatLine, Quit, EndOfStream, OtherEvent]


class BaseTransport(ABC):
    """
    Abstract base class for chat transports.

    Subclasses must implement:
    - connect(): Open the connection and authenticate
    - join(): Join one channel
    - next_event(): Wait for the next event
    - send(): Post a message to a channel
    - close(): Tear the connection down

    Example:
        class MyTransport(BaseTransport):
            async def next_event(self) -> Event:
                ...
    """

    name = "base"

    @abstractmethod
    async def connect(self) -> None:
        """
        Connect and authenticate.

        Raises:
            TransportError: If the connection cannot be established
        """

    @abstractmethod
    async def join(self, channel: str) -> None:
        """Join a channel, given without ``#``."""

    @abstractmethod
    async def next_event(self) -> Event:
        """Wait for and return the next event."""

    @abstractmethod
    async def send(self, channel: str, text: str) -> None:
        """
        Post a message to a channel.

        Raises:
            TransportError: If the connection is gone
        """

    @abstractmethod
    async def close(self) -> None:
        """Close the connection. Safe to call more than once."""
