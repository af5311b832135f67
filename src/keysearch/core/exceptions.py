"""
Custom exceptions for the key search system.

Separates transient network failures from malformed messages and
configuration problems so callers can decide what to abandon.
"""


class KeySearchException(Exception):
    """Base exception for all key search errors."""
    pass


class ConnectionFailedException(KeySearchException):
    """Raised when a request/response exchange with the allocator fails."""

    def __init__(self, host: str, port: int, reason: str):
        self.host = host
        self.port = port
        self.reason = reason
        super().__init__(f"Failed to talk to {host}:{port}: {reason}")


class ProtocolError(KeySearchException):
    """Raised when a wire message cannot be parsed."""

    def __init__(self, message: str, reason: str):
        self.message = message
        self.reason = reason
        super().__init__(f"Malformed message {message!r}: {reason}")


class KeyTesterError(KeySearchException):
    """Raised when the ciphertext cannot be used for key testing."""
    pass


class ConfigurationError(KeySearchException):
    """Raised when configuration or arguments are invalid."""
    pass
