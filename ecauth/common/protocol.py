# ecauth/common/protocol.py
"""
Wire messages and their text framing.

Each message travels as one JSON object per line:

    {"type": "CHALLENGE", "message": "<hex>", "suid": "<user>"}\n

 - encode(type, payload, sender) -> str (newline terminated)
 - decode(record) -> Message, raising DecodeError / UnknownMessageType
 - FrameDecoder buffers transport chunks and yields complete records
"""
import enum
from typing import List, Optional, Union

from pydantic import BaseModel, ConfigDict, StrictStr, ValidationError

from ecauth.common.config import MAX_RECORD_SIZE
from ecauth.common.errors import DecodeError, UnknownMessageType

RECORD_SEPARATOR = b"\n"


class MessageType(str, enum.Enum):
    CHALLENGE = "CHALLENGE"
    RESPONSE = "RESPONSE"
    SUCCESS = "SUCCESS"
    SESSION_MESSAGE = "SESSION_MESSAGE"
    END = "END"


class Message(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")

    type: MessageType
    message: StrictStr = ""  # hex challenge, hex signature or session text
    suid: StrictStr = ""


def encode(type: MessageType, payload: str, sender: str) -> str:
    """
    Serialize one message as a newline-terminated JSON record.

    payload and sender must be UTF-8 encodable; a lone surrogate raises ValueError.
    """
    for text in (payload, sender):
        try:
            text.encode("utf-8")
        except UnicodeEncodeError as e:
            raise ValueError(f"message text is not UTF-8 encodable: {e}") from e
    return Message(type=type, message=payload, suid=sender).model_dump_json() + "\n"


def encode_message(msg: Message) -> bytes:
    return encode(msg.type, msg.message, msg.suid).encode("utf-8")


def _only_type_is_wrong(errors) -> bool:
    return len(errors) == 1 and errors[0]["loc"] == ("type",) and errors[0]["type"] == "enum"


def decode(record: Union[str, bytes]) -> Message:
    """Parse one record. Never lets a parser exception escape."""
    if isinstance(record, bytes):
        try:
            record = record.decode("utf-8")
        except UnicodeDecodeError as e:
            raise DecodeError(f"record is not valid UTF-8: {e}") from e
    record = record.rstrip("\r\n")
    if not record:
        raise DecodeError("empty record")
    try:
        return Message.model_validate_json(record)
    except ValidationError as e:
        errors = e.errors()
        if _only_type_is_wrong(errors):
            raise UnknownMessageType(f"unknown message type: {errors[0].get('input')!r}") from e
        raise DecodeError(f"malformed record: {e.error_count()} error(s), first: {errors[0]['msg']}") from e


class FrameDecoder:
    """
    Accumulates inbound bytes of one connection and splits them into records.

    Records completed before an oversized one are still returned; the
    DecodeError for the oversized record is then raised by the next
    feed() or close().
    """

    def __init__(self, max_record_size: int = MAX_RECORD_SIZE):
        self.max_record_size = max_record_size
        self._buf = bytearray()
        self._error: Optional[DecodeError] = None

    @property
    def pending(self) -> int:
        return len(self._buf)

    def feed(self, data: bytes) -> List[bytes]:
        if self._error is not None:
            raise self._error
        self._buf.extend(data)
        records = []
        while True:
            idx = self._buf.find(RECORD_SEPARATOR)
            if idx < 0:
                break
            if idx > self.max_record_size:
                return self._overflow(records)
            records.append(bytes(self._buf[:idx]))
            del self._buf[:idx + 1]
        if len(self._buf) > self.max_record_size:
            return self._overflow(records)
        return records

    def _overflow(self, records: List[bytes]) -> List[bytes]:
        error = DecodeError(f"record exceeds {self.max_record_size} bytes")
        self._buf.clear()
        if not records:
            raise error
        self._error = error
        return records

    def close(self) -> None:
        """Raises DecodeError if an oversized or unterminated record is left over."""
        if self._error is not None:
            error, self._error = self._error, None
            raise error
        if self._buf:
            leftover = len(self._buf)
            self._buf.clear()
            raise DecodeError(f"unterminated record ({leftover} bytes) at end of stream")
