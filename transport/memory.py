"""
Memory Transport - Scripted in-process transport
================================================

Replays a fixed list of events and records everything the bot sends.
Used by ``--test`` and by the test suite.
"""

import asyncio
from typing import Iterable, List, Optional, Tuple

from core.exceptions import TransportError
from core.logging import get_logger

from .base import BaseTransport, EndOfStream, Event

logger = get_logger("transport.memory")


class MemoryTransport(BaseTransport):
    """
    Transport backed by a script of events.

    Once the script runs out, ``next_event`` returns ``EndOfStream``.

    Attributes:
        sent (list): ``(channel, text)`` pairs in send order
        joined (list): Channels joined, in order
        connects (int): Number of ``connect`` calls

    Example:
        transport = MemoryTransport([ChatLine("chan", "alice", "hello")])
        await transport.connect()
        event = await transport.next_event()
    """

    name = "memory"

    def __init__(self, events: Optional[Iterable[Event]] = None, fail_connect: int = 0):
        """
        Args:
            events: Events to replay
            fail_connect: Number of initial ``connect`` calls that fail
        """
        self.events: List[Event] = list(events or [])
        self.fail_connect = fail_connect
        self.sent: List[Tuple[str, str]] = []
        self.joined: List[str] = []
        self.connects = 0
        self.connected = False

    def feed(self, *events: Event) -> None:
        """Append events to the script."""
        self.events.extend(events)

    async def connect(self) -> None:
        self.connects += 1
        if self.fail_connect > 0:
            self.fail_connect -= 1
            raise TransportError("Scripted connect failure", {"attempt": self.connects})
        self.connected = True

    async def join(self, channel: str) -> None:
        if not self.connected:
            raise TransportError("Not connected", {"channel": channel})
        self.joined.append(channel)

    async def next_event(self) -> Event:
        # Yield to the loop so other tasks (e.g. the web API) get scheduled
        await asyncio.sleep(0)
        if not self.events:
            return EndOfStream()
        return self.events.pop(0)

    async def send(self, channel: str, text: str) -> None:
        if not self.connected:
            raise TransportError("Not connected", {"channel": channel})
        logger.debug(f"[{channel}] > {text}")
        self.sent.append((channel, text))

    async def close(self) -> None:
        self.connected = False

    def sent_to(self, channel: str) -> List[str]:
        """Messages sent to one channel."""
        return [text for name, text in self.sent if name == channel]
