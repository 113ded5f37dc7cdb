# ecauth/client.py
"""
Session driver and command line.

ClientSession adapts asyncio's transport callbacks to ClientProtocol
events and carries out the actions it returns. run_client() opens one
TLS connection and waits for the protocol run to finish; there are no
retries.

    python -m ecauth.client connect --host ... --port ... --suid ...
    python -m ecauth.client register --suid ... --token ... --password ...
"""
import argparse
import asyncio
import datetime
import logging
import sys
from typing import Callable, Optional

from ecauth import enroll
from ecauth.common.config import (
    DEFAULT_MIN_VALIDITY,
    ClientConfig,
    EnrollmentConfig,
    ProtocolConfig,
    ServerIdentity,
    SessionPolicy,
)
from ecauth.common.errors import ConfigurationError, TransportError
from ecauth.common.protocol import MessageType, encode_message
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
from ecauth.protocol.machine import ClientProtocol
from ecauth.protocol.state import ProtocolState

logger = logging.getLogger(__name__)

PayloadCallback = Callable[[MessageType, str], None]


class ClientSession(asyncio.Protocol):
    """One connection: transport callbacks in, protocol actions out."""

    def __init__(self, machine: ClientProtocol, on_payload: Optional[PayloadCallback] = None):
        self.machine = machine
        self.on_payload = on_payload
        self.transport: Optional[asyncio.Transport] = None
        self._reading = True
        self._closed = asyncio.Event()

    @property
    def state(self) -> ProtocolState:
        return self.machine.state

    async def wait_closed(self) -> ProtocolState:
        await self._closed.wait()
        return self.machine.state

    # === Transport callbacks ===

    def connection_made(self, transport):
        # asyncio calls this once the TLS handshake has completed
        self.transport = transport
        ssl_object = transport.get_extra_info("ssl_object")
        der = ssl_object.getpeercert(binary_form=True) if ssl_object is not None else None
        self._dispatch(HandshakeComplete(pki.peer_certificate_from_der(der)))

    def data_received(self, data: bytes):
        if not self._reading:
            return
        self._dispatch(DataReceived(data))

    def eof_received(self):
        self._dispatch(Closed())
        return False

    def connection_lost(self, exc):
        if exc is not None:
            self._dispatch(ErrorOccurred(str(exc)))
        else:
            self._dispatch(Closed())
        self._closed.set()

    # === Action execution ===

    def _dispatch(self, event: Event) -> None:
        for action in self.machine.handle(event):
            self._execute(action)
        if self.machine.is_terminal:
            self._reading = False

    def _execute(self, action: Action) -> None:
        match action:
            case SendMessage(message):
                self.transport.write(encode_message(message))

            case CloseConnection(reason):
                if not self.transport.is_closing():
                    logger.debug("closing connection: %s", reason)
                    self.transport.abort()

            case StopReading():
                self._reading = False
                if not self.transport.is_closing():
                    self.transport.pause_reading()

            case ShutdownOutput():
                if self.transport.can_write_eof():
                    self.transport.write_eof()
                # reading is paused, so the peer's close would never be seen;
                # TLS transports send close_notify here
                self.transport.close()

            case DeliverPayload(kind, payload):
                if self.on_payload:
                    self.on_payload(kind, payload)

            case _:
                logger.warning("unknown action: %r", action)


async def open_session(config: ClientConfig, protocol_config: Optional[ProtocolConfig] = None,
                       on_payload: Optional[PayloadCallback] = None) -> ClientSession:
    """
    Validate configuration, load the key and connect.

    Raises ConfigurationError before any network activity, TransportError
    if the connection or TLS handshake fails.
    """
    config.check()
    try:
        identity = SigningIdentity.load(config.private_key, config.passphrase, config.suid)
    except ValueError as e:
        raise ConfigurationError(f"cannot load private key: {e}") from e
    try:
        ctx = pki.create_client_context(config.ca_cert)
    except ValueError as e:
        raise ConfigurationError(str(e)) from e

    session = ClientSession(ClientProtocol(identity, protocol_config or ProtocolConfig()), on_payload)
    loop = asyncio.get_running_loop()
    try:
        await loop.create_connection(
            lambda: session,
            config.host,
            config.port,
            ssl=ctx,
            server_hostname=config.server_hostname or config.host,
        )
    except OSError as e:
        # ssl.SSLError (including certificate verification) is an OSError
        raise TransportError(f"TLS handshake failed when trying to connect to server: {e}") from e
    return session


async def run_client(config: ClientConfig, protocol_config: Optional[ProtocolConfig] = None,
                     on_payload: Optional[PayloadCallback] = None) -> Optional[ProtocolState]:
    """Run one protocol exchange. Returns the final state, or None if no connection was made."""
    try:
        session = await open_session(config, protocol_config, on_payload)
    except TransportError as e:
        logger.error("%s", e)
        return None
    return await session.wait_closed()


# === Command line ===

def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="ecauth")
    parser.add_argument("-v", "--verbose", action="store_true")
    sub = parser.add_subparsers(dest="cmd")

    p_conn = sub.add_parser("connect", help="authenticate to the server")
    p_conn.add_argument("--host")
    p_conn.add_argument("--port", type=int)
    p_conn.add_argument("--suid")
    p_conn.add_argument("--key", help="path to the passphrase-protected secret key")
    p_conn.add_argument("--password", help="secret key passphrase")
    p_conn.add_argument("--ca", help="path to the trusted root certificate (PEM)")
    p_conn.add_argument("--server-hostname")
    p_conn.add_argument("--session-policy", choices=[p.value for p in SessionPolicy],
                        default=SessionPolicy.REMAIN_OPEN_UNTIL_END.value)
    p_conn.add_argument("--expect", action="append", default=[], metavar="FIELD=VALUE",
                        help="expected server subject field (replaces the built-in identity)")
    p_conn.add_argument("--min-validity-days", type=int, default=DEFAULT_MIN_VALIDITY.days)

    p_reg = sub.add_parser("register", help="generate a key and enroll it")
    p_reg.add_argument("--suid")
    p_reg.add_argument("--token")
    p_reg.add_argument("--password")
    p_reg.add_argument("--url")
    p_reg.add_argument("--data-dir")
    return parser


def protocol_config_from_args(args) -> ProtocolConfig:
    min_validity = datetime.timedelta(days=args.min_validity_days)
    if args.expect:
        identity = ServerIdentity.from_pairs(args.expect, min_validity)
    else:
        identity = ServerIdentity(min_remaining_validity=min_validity)
    return ProtocolConfig(identity=identity, session_policy=SessionPolicy(args.session_policy))


def cmd_connect(args) -> int:
    config = ClientConfig.from_env(
        host=args.host,
        port=args.port,
        suid=args.suid,
        key_file=args.key,
        passphrase=args.password,
        ca_file=args.ca,
        server_hostname=args.server_hostname,
    )
    protocol_config = protocol_config_from_args(args)
    received = []

    def on_payload(kind: MessageType, payload: str) -> None:
        received.append(kind)
        print(f"{kind.value}: {payload}")

    state = asyncio.run(run_client(config, protocol_config, on_payload))
    if state is None:
        return 1
    logger.info("final state: %s", state.name)
    if state is ProtocolState.END:
        return 0
    closes_early = protocol_config.session_policy is SessionPolicy.CLOSE_AFTER_FIRST_MESSAGE
    return 0 if closes_early and MessageType.SUCCESS in received else 1


def cmd_register(args) -> int:
    config = EnrollmentConfig.from_env(
        suid=args.suid,
        token=args.token,
        password=args.password,
        url=args.url,
        data_dir=args.data_dir,
    )
    return 0 if enroll.register(config) else 1


COMMANDS = {
    "connect": cmd_connect,
    "register": cmd_register,
}


def main(argv=None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(name)s: %(message)s",
    )
    if args.cmd is None:
        parser.print_help()
        return 2
    try:
        return COMMANDS[args.cmd](args)
    except ConfigurationError as e:
        logger.error("configuration error: %s", e)
        return 2
    except TransportError as e:
        logger.error("%s", e)
        return 1
    except ValueError as e:
        logger.error("%s", e)
        return 1


if __name__ == "__main__":
    sys.exit(main())
