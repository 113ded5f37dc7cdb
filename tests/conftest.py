"""
Pytest configuration for ecauth tests.

Fixtures issue throwaway ECDSA keys, a root CA and server certificates
signed by it.
"""
import datetime

import pytest
from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import ec
from cryptography.x509.oid import ExtendedKeyUsageOID, NameOID

from ecauth.common.config import DEFAULT_SUBJECT, ProtocolConfig, ServerIdentity
from ecauth.crypto.pki import SHORT_NAMES
from ecauth.crypto.sign import SigningIdentity, generate_private_key

OIDS = {short: oid for oid, short in SHORT_NAMES.items()}


def utcnow():
    return datetime.datetime.now(datetime.timezone.utc)


def make_name(fields):
    return x509.Name([x509.NameAttribute(OIDS[k], v) for k, v in fields.items()])


@pytest.fixture
def signing_key():
    return generate_private_key()


@pytest.fixture
def identity(signing_key):
    return SigningIdentity(signing_key, "alice")


@pytest.fixture
def server_subject():
    subject = dict(DEFAULT_SUBJECT)
    subject["CN"] = "localhost"
    return subject


@pytest.fixture
def protocol_config(server_subject):
    return ProtocolConfig(identity=ServerIdentity(subject=server_subject))


@pytest.fixture
def ca():
    """Root CA (EC key + self-signed X.509)."""
    key = ec.generate_private_key(ec.SECP256R1())
    name = x509.Name([x509.NameAttribute(NameOID.COMMON_NAME, "ecauth test root")])
    now = utcnow()
    cert = (
        x509.CertificateBuilder()
        .subject_name(name)
        .issuer_name(name)
        .public_key(key.public_key())
        .serial_number(x509.random_serial_number())
        .not_valid_before(now - datetime.timedelta(days=1))
        .not_valid_after(now + datetime.timedelta(days=3650))
        .add_extension(x509.BasicConstraints(ca=True, path_length=None), critical=True)
        .add_extension(
            x509.KeyUsage(
                digital_signature=True, content_commitment=False, key_encipherment=False,
                data_encipherment=False, key_agreement=False, key_cert_sign=True,
                crl_sign=True, encipher_only=False, decipher_only=False,
            ),
            critical=True,
        )
        .add_extension(x509.SubjectKeyIdentifier.from_public_key(key.public_key()), critical=False)
        .sign(key, hashes.SHA256())
    )
    return key, cert


@pytest.fixture
def issue_cert(ca):
    """Returns issue(subject, valid_days=365, not_before=None) -> (key, cert) signed by the CA."""
    ca_key, ca_cert = ca

    def issue(subject, valid_days=365, not_before=None):
        key = ec.generate_private_key(ec.SECP256R1())
        start = not_before or utcnow() - datetime.timedelta(days=1)
        cert = (
            x509.CertificateBuilder()
            .subject_name(make_name(subject))
            .issuer_name(ca_cert.subject)
            .public_key(key.public_key())
            .serial_number(x509.random_serial_number())
            .not_valid_before(start)
            .not_valid_after(utcnow() + datetime.timedelta(days=valid_days))
            .add_extension(x509.BasicConstraints(ca=False, path_length=None), critical=True)
            .add_extension(
                x509.KeyUsage(
                    digital_signature=True, content_commitment=False, key_encipherment=False,
                    data_encipherment=False, key_agreement=False, key_cert_sign=False,
                    crl_sign=False, encipher_only=False, decipher_only=False,
                ),
                critical=True,
            )
            .add_extension(x509.ExtendedKeyUsage([ExtendedKeyUsageOID.SERVER_AUTH]), critical=False)
            .add_extension(x509.SubjectAlternativeName([x509.DNSName("localhost")]), critical=False)
            .add_extension(x509.SubjectKeyIdentifier.from_public_key(key.public_key()), critical=False)
            .add_extension(
                x509.AuthorityKeyIdentifier.from_issuer_public_key(ca_key.public_key()),
                critical=False,
            )
            .sign(ca_key, hashes.SHA256())
        )
        return key, cert

    return issue


@pytest.fixture
def ca_pem(ca):
    return ca[1].public_bytes(serialization.Encoding.PEM)
