"""
Client side of the challenge-response protocol.

ClientProtocol owns the ProtocolState of one connection. It consumes
events and returns the actions the driver must perform:

    proto = ClientProtocol(identity, config)
    actions = proto.handle(HandshakeComplete(peer_cert))
    actions = proto.handle(DataReceived(b'{"type": "CHALLENGE", ...}\n'))

No I/O happens here and nothing is raised to the caller: every failure
ends in ABORT plus a CloseConnection action.
"""
from __future__ import annotations

import logging

from ecauth.common.config import ProtocolConfig, SessionPolicy
from ecauth.common.errors import CertificateError, DecodeError, UnknownMessageType
from ecauth.common.protocol import FrameDecoder, Message, MessageType, decode
from ecauth.crypto import pki
from ecauth.crypto.sign import SigningIdentity
from ecauth.protocol.actions import (
    Action,
    CloseConnection,
    DeliverPayload,
    SendMessage,
    ShutdownOutput,
    StopReading,
)
from ecauth.protocol.events import Closed, DataReceived, ErrorOccurred, Event, HandshakeComplete
from ecauth.protocol.state import ProtocolState

logger = logging.getLogger(__name__)

# state in which each inbound message type is legal; RESPONSE never is
EXPECTED_STATE = {
    MessageType.CHALLENGE: ProtocolState.START,
    MessageType.SUCCESS: ProtocolState.CHALLENGE,
    MessageType.SESSION_MESSAGE: ProtocolState.SESSION,
    MessageType.END: ProtocolState.SESSION,
}


class ClientProtocol:

    def __init__(self, identity: SigningIdentity, config: ProtocolConfig | None = None):
        self.identity = identity
        self.config = config or ProtocolConfig()
        self._state = ProtocolState.START
        self._verified = False
        self._frames = FrameDecoder(self.config.max_record_size)

    @property
    def state(self) -> ProtocolState:
        return self._state

    @property
    def is_terminal(self) -> bool:
        return self._state.is_terminal

    # === Events ===

    def handle(self, event: Event) -> list[Action]:
        if self.is_terminal:
            logger.debug("ignoring %s in state %s", type(event).__name__, self._state.name)
            return []

        match event:
            case HandshakeComplete(peer_certificate):
                return self._on_handshake(peer_certificate)
            case DataReceived(data):
                return self._on_data(data)
            case Closed():
                return self._on_closed()
            case ErrorOccurred(error):
                logger.error("transport error: %s", error)
                return self.abort(f"transport error: {error}")
        logger.warning("unhandled event: %r", event)
        return []

    def _on_handshake(self, peer_certificate) -> list[Action]:
        logger.info("connected to server")
        if self._verified:
            return self.abort("duplicate handshake notification")
        try:
            pki.check_cert(peer_certificate, self.config.identity)
        except CertificateError as e:
            logger.warning("bad certificate received: %s", e)
            return self.abort("bad certificate")
        self._verified = True
        return []

    def _on_data(self, data: bytes) -> list[Action]:
        if not self._verified:
            return self.abort("data received before server certificate was verified")
        try:
            records = self._frames.feed(data)
        except DecodeError as e:
            return self.abort(str(e))

        actions: list[Action] = []
        for record in records:
            try:
                message = decode(record)
            except UnknownMessageType as e:
                logger.warning("received message of unknown type: %s", e)
                actions += self.abort(str(e))
            except DecodeError as e:
                logger.warning("cannot decode server message: %s", e)
                actions += self.abort(str(e))
            else:
                actions += self.deliver(message)
            if self.is_terminal:
                break
        return actions

    def _on_closed(self) -> list[Action]:
        try:
            self._frames.close()
        except DecodeError as e:
            logger.warning("%s", e)
        return self.abort(f"connection closed in state {self._state.name}")

    # === Messages ===

    def deliver(self, message: Message) -> list[Action]:
        """Apply one decoded server message to the current state."""
        if self.is_terminal:
            return []

        if EXPECTED_STATE.get(message.type) is not self._state:
            logger.warning("received %s message in bad state: %s", message.type.value, self._state.name)
            return self.abort(f"{message.type.value} not allowed in {self._state.name}")

        match message.type:
            case MessageType.CHALLENGE:
                return self._on_challenge(message)
            case MessageType.SUCCESS:
                return self._on_success(message)
            case MessageType.SESSION_MESSAGE:
                logger.info("received session message: %s", message.message)
                return [DeliverPayload(MessageType.SESSION_MESSAGE, message.message)]
            case MessageType.END:
                self._state = ProtocolState.END
                logger.info("session ended")
                return [StopReading(), ShutdownOutput()]
            case _:
                return self.abort(f"no handler for {message.type.value}")

    def _on_challenge(self, message: Message) -> list[Action]:
        logger.info("received challenge: %s", message.message)
        self._state = ProtocolState.CHALLENGE
        try:
            response = self.identity.respond(message.message)
        except ValueError as e:
            return self.abort(f"cannot sign challenge: {e}")
        logger.info("sent response: %s", response)
        reply = Message(type=MessageType.RESPONSE, message=response, suid=self.identity.suid)
        return [SendMessage(reply)]

    def _on_success(self, message: Message) -> list[Action]:
        self._state = ProtocolState.SESSION
        logger.info("session established")
        logger.info("your secret session message is %s", message.message)
        actions: list[Action] = [DeliverPayload(MessageType.SUCCESS, message.message)]
        if self.config.session_policy is SessionPolicy.CLOSE_AFTER_FIRST_MESSAGE:
            actions += self.abort("closing after first session message")
        return actions

    # === Abort ===

    def abort(self, reason: str) -> list[Action]:
        """Enter ABORT and request the transport be closed. No-op if already aborted."""
        if self._state is ProtocolState.ABORT:
            return []
        logger.warning("protocol aborted: %s", reason)
        self._state = ProtocolState.ABORT
        return [CloseConnection(reason)]
