"""
Services Module - Message handling for Rulebot
==============================================

This module provides the runtime services:
- Dispatcher: rule matching and command execution per chat line
- Messenger: throttled and forced sends
- Session and Supervisor: the receive loop and reconnects
"""

from .dispatcher import Dispatcher, format_duration
from .messenger import Messenger
from .session import Session, Supervisor

__all__ = [
    "Dispatcher",
    "format_duration",
    "Messenger",
    "Session",
    "Supervisor",
]
