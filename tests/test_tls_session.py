"""
End-to-end runs against a scripted TLS server on the loopback interface.
"""
import asyncio
import ssl

import pytest
from cryptography.hazmat.primitives import serialization

from ecauth.client import run_client
from ecauth.common.config import ClientConfig, ProtocolConfig, ServerIdentity
from ecauth.common.errors import DecodeError
from ecauth.common.protocol import MessageType, decode, encode
from ecauth.crypto.sign import private_key_to_pem, verify_hex
from ecauth.protocol.state import ProtocolState

CHALLENGE = "c0ffee00" * 8
TIMEOUT = 10


@pytest.fixture
def server_context(tmp_path, issue_cert, server_subject):
    key, cert = issue_cert(server_subject)
    cert_path = tmp_path / "server.pem"
    key_path = tmp_path / "server.key"
    cert_path.write_bytes(cert.public_bytes(serialization.Encoding.PEM))
    key_path.write_bytes(key.private_bytes(
        serialization.Encoding.PEM,
        serialization.PrivateFormat.PKCS8,
        serialization.NoEncryption(),
    ))
    ctx = ssl.create_default_context(ssl.Purpose.CLIENT_AUTH)
    ctx.load_cert_chain(str(cert_path), str(key_path))
    return ctx


@pytest.fixture
def client_config(signing_key, ca_pem):
    def make(port, server_hostname="localhost"):
        return ClientConfig(
            private_key=private_key_to_pem(signing_key, "pw"),
            passphrase="pw",
            ca_cert=ca_pem,
            host="127.0.0.1",
            port=port,
            suid="alice",
            server_hostname=server_hostname,
        )
    return make


def send(writer, msg_type, payload=""):
    writer.write(encode(msg_type, payload, "server").encode())


async def run_against(handler, server_context, config_for, protocol_config, **kwargs):
    got = []
    server = await asyncio.start_server(handler, "127.0.0.1", 0, ssl=server_context)
    port = server.sockets[0].getsockname()[1]
    try:
        state = await asyncio.wait_for(
            run_client(config_for(port, **kwargs), protocol_config, lambda k, p: got.append((k, p))),
            TIMEOUT,
        )
    finally:
        server.close()
    return state, got


def test_full_session(server_context, client_config, protocol_config, signing_key):
    responses = []

    async def handler(reader, writer):
        try:
            send(writer, MessageType.CHALLENGE, CHALLENGE)
            await writer.drain()
            responses.append(decode(await reader.readline()))
            send(writer, MessageType.SUCCESS, "secret")
            send(writer, MessageType.SESSION_MESSAGE, "hello")
            send(writer, MessageType.END)
            await writer.drain()
            # client closes its side after END
            await reader.read()
        except (ConnectionError, ssl.SSLError, DecodeError):
            pass
        finally:
            writer.close()

    state, got = asyncio.run(run_against(handler, server_context, client_config, protocol_config))

    assert state is ProtocolState.END
    assert got == [(MessageType.SUCCESS, "secret"), (MessageType.SESSION_MESSAGE, "hello")]
    assert len(responses) == 1
    assert responses[0].type is MessageType.RESPONSE
    assert responses[0].suid == "alice"
    assert verify_hex(signing_key.public_key(), responses[0].message, CHALLENGE)


def test_unexpected_subject_aborts_before_any_message(server_context, client_config, server_subject):
    lines = []

    async def handler(reader, writer):
        try:
            send(writer, MessageType.CHALLENGE, CHALLENGE)
            await writer.drain()
            lines.append(await reader.readline())
        except (ConnectionError, ssl.SSLError):
            pass
        finally:
            writer.close()

    expected = ProtocolConfig(identity=ServerIdentity(subject=dict(server_subject, O="Another Org")))
    state, got = asyncio.run(run_against(handler, server_context, client_config, expected))

    assert state is ProtocolState.ABORT
    assert got == []
    assert lines in ([], [b""])


def test_hostname_mismatch_fails_handshake(server_context, client_config, protocol_config):
    async def handler(reader, writer):
        writer.close()

    state, got = asyncio.run(run_against(
        handler, server_context, client_config, protocol_config, server_hostname="not-localhost"))

    assert state is None
    assert got == []
