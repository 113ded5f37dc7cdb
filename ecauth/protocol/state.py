"""
Client protocol state.

START -> CHALLENGE -> SESSION -> END, with a transition to ABORT allowed
from any state. END and ABORT are terminal.
"""
from enum import Enum, auto


class ProtocolState(Enum):
    START = auto()      # connected, waiting for the server's challenge
    CHALLENGE = auto()  # response sent, waiting for SUCCESS
    SESSION = auto()    # authenticated, server may push session messages
    END = auto()        # server ended the session
    ABORT = auto()      # failed; absorbing

    @property
    def is_terminal(self) -> bool:
        return self in (ProtocolState.END, ProtocolState.ABORT)
