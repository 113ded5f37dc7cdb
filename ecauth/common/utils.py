# ecauth/common/utils.py
import binascii
import datetime


def hex_to_bytes(s: str) -> bytes:
    """Decode a hex string (challenge, token). Raises ValueError on bad input."""
    if not isinstance(s, str):
        raise ValueError("hex input must be a string")
    try:
        return binascii.unhexlify(s.strip())
    except (binascii.Error, ValueError) as e:
        raise ValueError(f"invalid hex string: {e}") from e


def bytes_to_hex(b: bytes) -> str:
    """Encode bytes as lowercase hex."""
    return binascii.hexlify(b).decode("ascii")


def utc_now() -> datetime.datetime:
    """Timezone-aware current time."""
    return datetime.datetime.now(datetime.timezone.utc)
