# ecauth/common/errors.py
"""
Error kinds raised inside the client.

Only ConfigurationError and TransportError ever reach a caller of the
public entry points; the others are turned into a protocol abort by the
state machine.
"""


class AuthError(Exception):
    pass


class ConfigurationError(AuthError):
    """Missing or invalid startup options. Raised before connecting."""


class CertificateError(AuthError):
    """Peer certificate incomplete, outside its validity window or for the wrong subject."""


class ProtocolViolation(AuthError):
    """Message type not legal in the current protocol state."""


class UnknownMessageType(ProtocolViolation):
    pass


class DecodeError(AuthError):
    """Malformed or unterminated wire record."""


class TransportError(AuthError):
    """TLS handshake or connection failure reported by the transport."""
