# ecauth/common/config.py
"""
Immutable configuration values.

 - ServerIdentity: the subject the server certificate must carry and how
   long it must stay valid
 - ProtocolConfig: everything the state machine, codec buffer and
   certificate policy are constructed with
 - ClientConfig / EnrollmentConfig: startup options, checked before any
   network activity
"""
import datetime
import enum
import os
import types
from typing import ClassVar, Mapping, Optional, Tuple

from dotenv import load_dotenv
from pydantic import BaseModel, ConfigDict, Field, field_validator

from ecauth.common.errors import ConfigurationError
from ecauth.storage.keys import read_file

DEFAULT_SUBJECT = {
    "C": "US",
    "ST": "CA",
    "L": "Stanford",
    "O": "CS 255",
    "OU": "Project 2",
    "CN": "ec2-54-67-122-91.us-west-1.compute.amazonaws.com",
    "emailAddress": "cs255ta@cs.stanford.edu",
}
DEFAULT_MIN_VALIDITY = datetime.timedelta(days=120)
DEFAULT_ENROLL_URL = "http://ec2-54-67-122-91.us-west-1.compute.amazonaws.com:8900/"
MAX_RECORD_SIZE = 64 * 1024

ENV_PREFIX = "ECAUTH_"


class SessionPolicy(str, enum.Enum):
    CLOSE_AFTER_FIRST_MESSAGE = "close-after-first-message"
    REMAIN_OPEN_UNTIL_END = "remain-open-until-end"


class ServerIdentity(BaseModel):
    model_config = ConfigDict(frozen=True)

    subject: Mapping[str, str] = Field(default_factory=lambda: types.MappingProxyType(dict(DEFAULT_SUBJECT)))
    min_remaining_validity: datetime.timedelta = DEFAULT_MIN_VALIDITY

    @field_validator("subject", mode="after")
    @classmethod
    def _freeze_subject(cls, value):
        # read-only view over a private copy
        return types.MappingProxyType(dict(value))

    @classmethod
    def from_pairs(cls, pairs, min_remaining_validity=DEFAULT_MIN_VALIDITY) -> "ServerIdentity":
        """Build from FIELD=VALUE strings (command line --expect)."""
        subject = {}
        for pair in pairs:
            field, sep, value = pair.partition("=")
            if not sep or not field:
                raise ConfigurationError(f"expected FIELD=VALUE, got {pair!r}")
            subject[field] = value
        return cls(subject=subject, min_remaining_validity=min_remaining_validity)


class ProtocolConfig(BaseModel):
    model_config = ConfigDict(frozen=True)

    identity: ServerIdentity = Field(default_factory=ServerIdentity)
    session_policy: SessionPolicy = SessionPolicy.REMAIN_OPEN_UNTIL_END
    max_record_size: int = Field(default=MAX_RECORD_SIZE, gt=0)


def _env(name: str) -> Optional[str]:
    value = os.environ.get(ENV_PREFIX + name)
    return value if value else None


def _read_optional(path: Optional[str]) -> Optional[bytes]:
    return None if path is None else read_file(path)


def _missing(model: BaseModel, names) -> list:
    return [n for n in names if getattr(model, n) in (None, "", b"")]


class ClientConfig(BaseModel):
    model_config = ConfigDict(frozen=True)

    private_key: Optional[bytes] = Field(default=None, repr=False)
    passphrase: Optional[str] = Field(default=None, repr=False)
    ca_cert: Optional[bytes] = None
    host: Optional[str] = None
    port: Optional[int] = Field(default=None, ge=1, le=65535)
    suid: Optional[str] = None
    # name checked against the server certificate; defaults to host
    server_hostname: Optional[str] = None

    REQUIRED: ClassVar[Tuple[str, ...]] = ("private_key", "passphrase", "ca_cert", "host", "port", "suid")

    def check(self) -> "ClientConfig":
        missing = _missing(self, self.REQUIRED)
        if missing:
            raise ConfigurationError("client options not fully initialized: " + ", ".join(missing))
        return self

    @classmethod
    def from_env(cls, **overrides) -> "ClientConfig":
        """
        Read ECAUTH_* variables (after loading .env); explicit keyword
        overrides win over the environment. Key and CA are given as paths.
        """
        load_dotenv()
        key_path = overrides.pop("key_file", None) or _env("KEY_FILE")
        ca_path = overrides.pop("ca_file", None) or _env("CA_CERT")
        port = overrides.pop("port", None)
        if port is None:
            port = _env("PORT")
        values = {
            "private_key": _read_optional(key_path),
            "passphrase": _env("KEY_PASSWORD"),
            "ca_cert": _read_optional(ca_path),
            "host": _env("HOST"),
            "port": port,
            "suid": _env("SUID"),
            "server_hostname": _env("SERVER_HOSTNAME"),
        }
        values.update({k: v for k, v in overrides.items() if v is not None})
        try:
            return cls(**values)
        except ValueError as e:
            raise ConfigurationError(str(e)) from e


class EnrollmentConfig(BaseModel):
    model_config = ConfigDict(frozen=True)

    suid: Optional[str] = None
    token: Optional[str] = None
    password: Optional[str] = Field(default=None, repr=False)
    url: str = DEFAULT_ENROLL_URL
    data_dir: str = "data"

    REQUIRED: ClassVar[Tuple[str, ...]] = ("suid", "token", "password", "url")

    def check(self) -> "EnrollmentConfig":
        missing = _missing(self, self.REQUIRED)
        if missing:
            raise ConfigurationError("enrollment parameters missing: " + ", ".join(missing))
        return self

    @classmethod
    def from_env(cls, **overrides) -> "EnrollmentConfig":
        load_dotenv()
        values = {
            "suid": _env("SUID"),
            "token": _env("ENROLL_TOKEN"),
            "password": _env("KEY_PASSWORD"),
        }
        if _env("ENROLL_URL"):
            values["url"] = _env("ENROLL_URL")
        if _env("DATA_DIR"):
            values["data_dir"] = _env("DATA_DIR")
        values.update({k: v for k, v in overrides.items() if v is not None})
        return cls(**values)
