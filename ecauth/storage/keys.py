# ecauth/storage/keys.py
"""
Key files on disk.

 - save_keypair(data_dir, pub_pem, sec_pem) -> (pub_path, sec_path)
 - read_file(path) -> bytes, raising ConfigurationError if unreadable
"""
import os
from typing import Tuple

from ecauth.common.errors import ConfigurationError

PUB_NAME = "key.pub"
SEC_NAME = "key.sec"


def save_keypair(data_dir: str, pub_pem: bytes, sec_pem: bytes) -> Tuple[str, str]:
    """Write both keys, creating data_dir if needed. The secret key file is owner-only."""
    os.makedirs(data_dir, exist_ok=True)
    pub_path = os.path.join(data_dir, PUB_NAME)
    sec_path = os.path.join(data_dir, SEC_NAME)
    with open(pub_path, "wb") as f:
        f.write(pub_pem)
    fd = os.open(sec_path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
    with os.fdopen(fd, "wb") as f:
        f.write(sec_pem)
    return pub_path, sec_path


def read_file(path: str) -> bytes:
    try:
        with open(path, "rb") as f:
            return f.read().strip()
    except OSError as e:
        raise ConfigurationError(f"cannot read {path}: {e}") from e
