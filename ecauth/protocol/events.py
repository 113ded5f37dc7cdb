"""
Events are inputs to the client state machine.

The session driver turns transport callbacks into these, one at a time.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from ecauth.crypto.pki import PeerCertificate


@dataclass(frozen=True)
class Event:
    """Base class for all protocol events."""
    pass


@dataclass(frozen=True)
class HandshakeComplete(Event):
    """TLS handshake finished; carries what the transport knows about the server certificate."""
    peer_certificate: Optional[PeerCertificate]


@dataclass(frozen=True)
class DataReceived(Event):
    data: bytes


@dataclass(frozen=True)
class Closed(Event):
    """Peer closed the connection."""
    pass


@dataclass(frozen=True)
class ErrorOccurred(Event):
    error: str
