"""
Custom exceptions for the Kafka Keyed Producer library.
"""

from typing import Any, Dict, Optional


class KeyedProducerError(Exception):
    """Base exception for all Keyed Producer errors."""

    def __init__(
        self,
        message: str,
        cause: Optional[BaseException] = None,
        context: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.cause = cause
        self.context = context or {}

    def __str__(self) -> str:
        if self.cause is not None:
            return f"{self.message}: {self.cause}"
        return self.message


class TransportError(KeyedProducerError):
    """Raised or returned when the broker client reports a send failure."""
    pass


class PartitionCountUnavailableError(KeyedProducerError):
    """Raised when the partition count of a topic cannot be resolved."""
    pass


class ConfigurationError(KeyedProducerError):
    """Raised when configuration is invalid."""
    pass
