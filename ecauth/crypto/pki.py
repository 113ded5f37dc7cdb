# ecauth/crypto/pki.py

import datetime
import logging
import ssl
from dataclasses import dataclass
from typing import Dict, Optional

from cryptography import x509
from cryptography.hazmat.primitives import hashes
from cryptography.x509.oid import NameOID

from ecauth.common.config import ServerIdentity
from ecauth.common.errors import CertificateError
from ecauth.common.utils import utc_now

logger = logging.getLogger(__name__)

# short names used by the expected-subject configuration
SHORT_NAMES = {
    NameOID.COUNTRY_NAME: "C",
    NameOID.STATE_OR_PROVINCE_NAME: "ST",
    NameOID.LOCALITY_NAME: "L",
    NameOID.ORGANIZATION_NAME: "O",
    NameOID.ORGANIZATIONAL_UNIT_NAME: "OU",
    NameOID.COMMON_NAME: "CN",
    NameOID.EMAIL_ADDRESS: "emailAddress",
}


@dataclass(frozen=True)
class PeerCertificate:
    """What the policy needs to know about the server certificate. Any field may be absent."""

    valid_from: Optional[datetime.datetime] = None
    valid_to: Optional[datetime.datetime] = None
    issuer: Optional[Dict[str, str]] = None
    subject: Optional[Dict[str, str]] = None
    fingerprint: Optional[str] = None


def name_to_dict(name: x509.Name) -> Dict[str, str]:
    fields = {}
    for attr in name:
        key = SHORT_NAMES.get(attr.oid) or attr.oid.dotted_string
        value = attr.value if isinstance(attr.value, str) else attr.value.decode("utf-8", "replace")
        fields.setdefault(key, value)
    return fields


def cert_fingerprint_hex(cert: x509.Certificate) -> str:
    """Return the SHA-256 fingerprint of the certificate as a hex string."""
    return cert.fingerprint(hashes.SHA256()).hex()


def peer_certificate_from_x509(cert: x509.Certificate) -> PeerCertificate:
    return PeerCertificate(
        valid_from=cert.not_valid_before_utc,
        valid_to=cert.not_valid_after_utc,
        issuer=name_to_dict(cert.issuer),
        subject=name_to_dict(cert.subject),
        fingerprint=cert_fingerprint_hex(cert),
    )


def peer_certificate_from_der(der_bytes: Optional[bytes]) -> Optional[PeerCertificate]:
    """None when the transport has no peer certificate or it cannot be parsed."""
    if not der_bytes:
        return None
    try:
        cert = x509.load_der_x509_certificate(der_bytes)
    except ValueError as e:
        logger.warning("cannot parse peer certificate: %s", e)
        return None
    return peer_certificate_from_x509(cert)


def _as_utc(dt: datetime.datetime) -> datetime.datetime:
    # naive timestamps are taken to be UTC
    return dt if dt.tzinfo else dt.replace(tzinfo=datetime.timezone.utc)


def check_cert(cert: Optional[PeerCertificate], identity: ServerIdentity,
               now: Optional[datetime.datetime] = None) -> None:
    """
    Check a peer certificate against the expected server identity.

    Raises CertificateError if:
      - the certificate or any of valid_from, valid_to, issuer, subject,
        fingerprint is missing
      - now is before valid_from, or the certificate expires within
        identity.min_remaining_validity
      - an expected subject field differs (exact, case-sensitive match)
    """
    if cert is None:
        raise CertificateError("no peer certificate")
    for name in ("valid_from", "valid_to", "issuer", "subject", "fingerprint"):
        if not getattr(cert, name):
            raise CertificateError(f"certificate has no {name}")

    now = _as_utc(now or utc_now())
    valid_from, valid_to = _as_utc(cert.valid_from), _as_utc(cert.valid_to)
    if now < valid_from:
        raise CertificateError(f"certificate not valid before {valid_from.isoformat()}")
    if now + identity.min_remaining_validity > valid_to:
        raise CertificateError(
            f"certificate expires {valid_to.isoformat()}, "
            f"within {identity.min_remaining_validity.days} days"
        )

    for field, expected in identity.subject.items():
        found = cert.subject.get(field)
        if found != expected:
            raise CertificateError(f"subject {field} mismatch: expected {expected!r}, found {found!r}")


def validate(cert: Optional[PeerCertificate], identity: ServerIdentity,
             now: Optional[datetime.datetime] = None) -> bool:
    """Boolean form of check_cert; logs the reason on failure and never raises."""
    try:
        check_cert(cert, identity, now)
    except CertificateError as e:
        logger.warning("bad certificate received: %s", e)
        return False
    return True


def create_client_context(ca_pem: bytes) -> ssl.SSLContext:
    """
    TLS context that only trusts the given root and requires a valid,
    hostname-matching server certificate.
    """
    try:
        ctx = ssl.create_default_context(ssl.Purpose.SERVER_AUTH, cadata=ca_pem.decode("ascii"))
    except (ssl.SSLError, ValueError) as e:
        raise ValueError(f"invalid trusted root certificate: {e}") from e
    ctx.verify_mode = ssl.CERT_REQUIRED
    ctx.check_hostname = True
    return ctx
