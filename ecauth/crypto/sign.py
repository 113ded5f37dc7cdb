# ecauth/crypto/sign.py
"""
ECDSA sign / verify helpers using cryptography.

Keys live on the NIST P-256 curve; messages are hashed with SHA-256.
Signatures are carried as the fixed-width concatenation r || s (64 bytes),
hex-encoded on the wire.

Provides:
 - generate_private_key()
 - load_private_key(pem_bytes, passphrase)
 - private_key_to_pem(priv_key, passphrase) / public_key_to_pem(pub_key)
 - sign_bytes(priv_key, data) -> raw signature bytes
 - verify_bytes(pub_key, signature, data) -> bool
 - sign_hex(priv_key, hex_data) -> hex signature
 - SigningIdentity
"""
from dataclasses import dataclass, field

from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import ec
from cryptography.hazmat.primitives.asymmetric.utils import decode_dss_signature, encode_dss_signature

from ecauth.common.utils import bytes_to_hex, hex_to_bytes

CURVE = ec.SECP256R1()
COORD_LEN = 32


def generate_private_key() -> ec.EllipticCurvePrivateKey:
    return ec.generate_private_key(CURVE)


def private_key_to_pem(priv_key, passphrase: str) -> bytes:
    """PKCS#8 PEM, encrypted with the passphrase."""
    return priv_key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.PKCS8,
        encryption_algorithm=serialization.BestAvailableEncryption(passphrase.encode()),
    )


def public_key_to_pem(pub_key) -> bytes:
    return pub_key.public_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PublicFormat.SubjectPublicKeyInfo,
    )


def load_private_key(pem_bytes: bytes, passphrase: str) -> ec.EllipticCurvePrivateKey:
    """
    Load a passphrase-protected PEM private key.
    Raises ValueError on a wrong passphrase, bad encoding or a non-P-256 key.
    """
    try:
        key = serialization.load_pem_private_key(pem_bytes, password=passphrase.encode())
    except TypeError as e:
        raise ValueError(f"cannot load private key: {e}") from e
    if not isinstance(key, ec.EllipticCurvePrivateKey) or key.curve.name != CURVE.name:
        raise ValueError("private key is not an ECDSA P-256 key")
    return key


def sign_bytes(priv_key, data: bytes) -> bytes:
    """Sign data with ECDSA/SHA-256, returning r || s."""
    der = priv_key.sign(data, ec.ECDSA(hashes.SHA256()))
    r, s = decode_dss_signature(der)
    return r.to_bytes(COORD_LEN, "big") + s.to_bytes(COORD_LEN, "big")


def verify_bytes(pub_key, signature: bytes, data: bytes) -> bool:
    """Returns True if valid, False otherwise."""
    if len(signature) != 2 * COORD_LEN:
        return False
    r = int.from_bytes(signature[:COORD_LEN], "big")
    s = int.from_bytes(signature[COORD_LEN:], "big")
    try:
        pub_key.verify(encode_dss_signature(r, s), data, ec.ECDSA(hashes.SHA256()))
        return True
    except InvalidSignature:
        return False


def sign_hex(priv_key, hex_data: str) -> str:
    """hex challenge -> bytes -> signature -> hex. Raises ValueError on bad hex."""
    return bytes_to_hex(sign_bytes(priv_key, hex_to_bytes(hex_data)))


def verify_hex(pub_key, hex_signature: str, hex_data: str) -> bool:
    try:
        return verify_bytes(pub_key, hex_to_bytes(hex_signature), hex_to_bytes(hex_data))
    except ValueError:
        return False


@dataclass(frozen=True)
class SigningIdentity:
    """Private key plus the user id it is registered under. Never serialized."""

    private_key: ec.EllipticCurvePrivateKey = field(repr=False)
    suid: str

    @classmethod
    def load(cls, pem_bytes: bytes, passphrase: str, suid: str) -> "SigningIdentity":
        return cls(load_private_key(pem_bytes, passphrase), suid)

    def respond(self, challenge_hex: str) -> str:
        return sign_hex(self.private_key, challenge_hex)
