from .records import Message, MessageType, Participant, POSTABLE_TYPES, status_message

__all__ = [
    "Message",
    "MessageType",
    "Participant",
    "POSTABLE_TYPES",
    "status_message",
]
