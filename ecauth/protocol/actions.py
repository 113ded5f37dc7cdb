"""
Actions are outputs from the client state machine.

The session driver executes them against the concrete transport and the
application callback.
"""
from __future__ import annotations

from dataclasses import dataclass

from ecauth.common.protocol import Message, MessageType


@dataclass(frozen=True)
class Action:
    """Base class for all protocol actions."""
    pass


@dataclass(frozen=True)
class SendMessage(Action):
    message: Message


@dataclass(frozen=True)
class CloseConnection(Action):
    """Tear the connection down immediately (abort)."""
    reason: str


@dataclass(frozen=True)
class StopReading(Action):
    """Stop delivering inbound data."""
    pass


@dataclass(frozen=True)
class ShutdownOutput(Action):
    """Gracefully close our side of the connection."""
    pass


@dataclass(frozen=True)
class DeliverPayload(Action):
    """Hand a session payload to the application."""
    kind: MessageType  # SUCCESS or SESSION_MESSAGE
    payload: str
