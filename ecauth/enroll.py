# ecauth/enroll.py
"""
Out-of-band enrollment: register a freshly generated public key for a user.

The registration server hands out a hex token; the client proves it holds
the new key by signing that token with the same primitive used for the
challenge-response flow, then POSTs {suid, pub_key, signature}. The server
answers with the literal body "SUCCESS" on success.
"""
import logging

import requests

from ecauth.common.config import EnrollmentConfig
from ecauth.common.errors import TransportError
from ecauth.crypto import sign as signmod
from ecauth.storage import keys

logger = logging.getLogger(__name__)

SUCCESS_BODY = "SUCCESS"
DEFAULT_TIMEOUT = 10


def sign_token(signing_key, token: str) -> str:
    """hex token -> hex signature."""
    return signmod.sign_hex(signing_key, token)


def submit(url: str, suid: str, pub_key: str, signature: str, timeout: float = DEFAULT_TIMEOUT) -> bool:
    """POST the enrollment form. True iff the server body is exactly SUCCESS."""
    form = {"suid": suid, "pub_key": pub_key, "signature": signature}
    try:
        resp = requests.post(url, data=form, timeout=timeout)
    except requests.RequestException as e:
        raise TransportError(f"registration request failed: {e}") from e
    return resp.text == SUCCESS_BODY


def register(config: EnrollmentConfig, timeout: float = DEFAULT_TIMEOUT) -> bool:
    """
    Generate keys, store them under config.data_dir, sign the token and
    submit. Raises ConfigurationError before doing anything if parameters
    are missing, ValueError if the token is not hex.
    """
    config.check()
    logger.info("Generating ECDSA keys...")
    key = signmod.generate_private_key()
    signature = sign_token(key, config.token)

    pub_pem = signmod.public_key_to_pem(key.public_key())
    sec_pem = signmod.private_key_to_pem(key, config.password)
    pub_path, sec_path = keys.save_keypair(config.data_dir, pub_pem, sec_pem)
    logger.info("wrote %s and %s", pub_path, sec_path)

    logger.info("Connecting to registration server...")
    ok = submit(config.url, config.suid, pub_pem.decode("ascii"), signature, timeout=timeout)
    if ok:
        logger.info("Registration successful.")
    else:
        logger.warning("Registration failed.")
    return ok
