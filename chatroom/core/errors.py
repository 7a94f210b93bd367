"""Exception types shared by the stores, the sweeper and the HTTP layer."""
from __future__ import annotations


class ChatRoomError(Exception):
    """Base class for chat room failures."""


class ConfigError(ChatRoomError, ValueError):
    """Invalid configuration value."""


class StoreUnavailable(ChatRoomError):
    """The presence store or message log could not be reached or queried."""


class PartialSweepFailure(ChatRoomError):
    """A sweep changed one collection but not the other.

    ``removed`` holds the participant names that were evicted even though their
    departure notices were not recorded.
    """

    def __init__(self, message: str, removed: tuple[str, ...] = ()) -> None:
        super().__init__(message)
        self.removed = tuple(removed)


class DuplicateParticipant(ChatRoomError):
    def __init__(self, name: str) -> None:
        super().__init__(f"Participant already registered: {name}")
        self.name = name


class UnknownParticipant(ChatRoomError):
    def __init__(self, name: str | None) -> None:
        super().__init__(f"Participant not found: {name}")
        self.name = name


class InvalidPayload(ChatRoomError):
    """Request data failed validation."""


__all__ = [
    "ChatRoomError",
    "ConfigError",
    "StoreUnavailable",
    "PartialSweepFailure",
    "DuplicateParticipant",
    "UnknownParticipant",
    "InvalidPayload",
]
