"""Exception hierarchy for the Rdio Scanner bridge."""

from __future__ import annotations


class RdioBridgeError(Exception):
    """Base exception for all bridge errors."""


class ConfigurationError(RdioBridgeError):
    """Raised when bridge configuration cannot be loaded or validated."""


class TransportError(RdioBridgeError):
    """Raised when an HTTP transport request cannot be completed."""


class PeerConnectionError(RdioBridgeError):
    """Raised when the radio network peer connection cannot be used."""


class PacketDecodeError(RdioBridgeError):
    """Raised when an inbound peer packet cannot be parsed into typed models."""


class EncodingError(RdioBridgeError):
    """Raised when buffered call audio cannot be serialized into a container."""
