"""
Transport Factory - Creates the configured transport
====================================================
"""

from typing import Dict, Type

from core.exceptions import ConfigError
from core.logging import get_logger

from .base import BaseTransport
from .irc import IRCTransport
from .memory import MemoryTransport

logger = get_logger("transport.factory")


# Registry of available transports
TRANSPORTS: Dict[str, Type[BaseTransport]] = {
    "irc": IRCTransport,
    "memory": MemoryTransport,
}


def register_transport(name: str, transport_class: Type[BaseTransport]) -> None:
    """
    Register a transport class under a name.

    Raises:
        ConfigError: If the class does not inherit from BaseTransport
    """
    if not issubclass(transport_class, BaseTransport):
        raise ConfigError(
            "Transport class must inherit from BaseTransport",
            details={"class": str(transport_class)}
        )
    TRANSPORTS[name.lower()] = transport_class
    logger.info(f"Registered transport: {name}")


def create_transport(config) -> BaseTransport:
    """
    Create the transport named by ``config.bot.transport``.

    Args:
        config: Application Config object

    Returns:
        Unconnected transport instance

    Raises:
        ConfigError: If the transport is unknown
    """
    name = config.bot.transport.lower()
    if name not in TRANSPORTS:
        raise ConfigError(
            f"Unknown transport: {name}",
            details={"available_transports": ", ".join(TRANSPORTS)}
        )

    logger.info(f"Creating {name} transport")

    if name == "irc":
        return IRCTransport(
            server=config.bot.server,
            port=config.bot.port,
            nickname=config.bot.name,
            token=config.bot.token,
            tls=config.bot.tls,
            capabilities=config.bot.capabilities,
        )

    return TRANSPORTS[name]()
