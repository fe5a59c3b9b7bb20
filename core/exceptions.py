"""
Exception Definitions - Custom exceptions for Rulebot
=====================================================

This module defines all custom exceptions used throughout the application,
providing clear error handling and meaningful error messages.
"""


class RulebotError(Exception):
    """
    Base exception for all Rulebot errors.

    All custom exceptions in this application inherit from this base class,
    allowing for easy catching of all application-specific errors.

    Attributes:
        message (str): Human-readable error description
        details (dict): Additional error details for debugging
    """

    def __init__(self, message: str, details: dict = None):
        """
        Initialize the exception.

        Args:
            message: Human-readable error description
            details: Optional dictionary with additional error context
        """
        self.message = message
        self.details = details or {}
        super().__init__(self.message)

    def __str__(self) -> str:
        """Return formatted error message with details if present."""
        if self.details:
            return f"{self.message} | Details: {self.details}"
        return self.message


class ConfigError(RulebotError):
    """
    Configuration-related errors.

    Raised when there are issues with:
    - Missing configuration, list or map files
    - Invalid configuration values
    - A map key referencing a list that does not exist
    - Configuration parsing errors

    Always fatal at startup.
    """
    pass


class SnapshotError(RulebotError):
    """
    Snapshot persistence errors.

    Raised when a snapshot file exists but cannot be decoded. Never
    recovered: the bot refuses to start rather than drop channel history.
    """
    pass


class TransportError(RulebotError):
    """
    Chat transport errors.

    Raised when there are issues with:
    - Connection or authentication failures
    - Joining a channel
    - Sending a line of chat

    Recovered by the session supervisor through reconnect with backoff.
    """
    pass
