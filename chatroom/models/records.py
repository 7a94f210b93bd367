from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict


class MessageType(str, Enum):
    """Kinds of entries in the message log.

    Values are the wire strings clients send and receive.
    """
    CHAT = "message"
    PRIVATE = "private_message"
    STATUS = "status"


# Types a client may post; status messages are only produced by the server
POSTABLE_TYPES = frozenset({MessageType.CHAT.value, MessageType.PRIVATE.value})


@dataclass
class Participant:
    """A live participant in the room.

    Attributes:
        name: Unique display name.
        last_status: Epoch milliseconds of the last registration or ping.
    """
    name: str
    last_status: int

    def is_stale(self, cutoff_ms: int) -> bool:
        return self.last_status < cutoff_ms

    def to_dict(self) -> Dict[str, Any]:
        return {"name": self.name, "lastStatus": self.last_status}


@dataclass(frozen=True)
class Message:
    """An entry in the append-only message log."""
    sender: str
    to: str
    text: str
    type: str
    time: str

    def is_visible_to(self, user: str | None, everyone: str) -> bool:
        if self.type != MessageType.PRIVATE.value:
            return True
        return self.to in (user, everyone) or self.sender == user

    def to_dict(self) -> Dict[str, Any]:
        return {
            "from": self.sender,
            "to": self.to,
            "text": self.text,
            "type": self.type,
            "time": self.time,
        }


def status_message(name: str, text: str, to: str, time: str) -> Message:
    """Build a synthetic join/leave notice."""
    return Message(sender=name, to=to, text=text, type=MessageType.STATUS.value, time=time)
