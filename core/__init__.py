"""
Core Module - Foundation components for Rulebot
===============================================

This module provides the foundational components including:
- Configuration management
- Channel and session state
- Snapshot persistence
- Logging setup
- Exception handling
- Cooldowns and reconnect backoff
"""

from .config import Config, load_config, save_config
from .exceptions import (
    RulebotError,
    ConfigError,
    SnapshotError,
    TransportError,
)
from .logging import setup_logging, get_logger
from .persistence import SnapshotStore
from .rate_limiter import CooldownRange, ReconnectBackoff
from .state import ChannelState, Mood, SessionState

__all__ = [
    "Config",
    "load_config",
    "save_config",
    "RulebotError",
    "ConfigError",
    "SnapshotError",
    "TransportError",
    "setup_logging",
    "get_logger",
    "SnapshotStore",
    "CooldownRange",
    "ReconnectBackoff",
    "ChannelState",
    "Mood",
    "SessionState",
]
