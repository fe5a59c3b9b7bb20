"""
Transport Module - Connections to the chat network
==================================================

This module provides the chat transports:
- IRC (Twitch chat)
- In-memory scripted transport for tests and dry runs
"""

from .base import BaseTransport, ChatLine, EndOfStream, Event, OtherEvent, Quit
from .factory import TRANSPORTS, create_transport, register_transport
from .irc import IRCTransport
from .memory import MemoryTransport

__all__ = [
    "BaseTransport",
    "ChatLine",
    "EndOfStream",
    "Event",
    "OtherEvent",
    "Quit",
    "TRANSPORTS",
    "create_transport",
    "register_transport",
    "IRCTransport",
    "MemoryTransport",
]
