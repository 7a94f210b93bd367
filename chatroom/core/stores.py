"""Presence store and message log interfaces plus their in-memory versions.

The in-memory stores back the server when the database is disabled and are
what the tests drive. Every method is a coroutine so that callers do not care
which backend is attached; the in-memory bodies never await and guard their
state with a plain lock because the sweep may run on a different thread and
loop than the request handlers.
"""
from __future__ import annotations

import threading
from typing import Collection, Dict, List, Optional, Protocol, Sequence

from chatroom.core.config import EVERYONE
from chatroom.core.errors import DuplicateParticipant
from chatroom.models import Message, Participant


class PresenceStore(Protocol):
    async def find_stale(self, cutoff_ms: int) -> List[Participant]: ...

    async def delete_stale(self, cutoff_ms: int, names: Optional[Collection[str]] = None) -> List[str]: ...

    async def add(self, name: str, now_ms: int) -> Participant: ...

    async def get(self, name: str) -> Optional[Participant]: ...

    async def touch(self, name: str, now_ms: int) -> bool: ...

    async def list_all(self) -> List[Participant]: ...

    async def clear(self) -> None: ...


class MessageLog(Protocol):
    async def append(self, message: Message) -> None: ...

    async def append_many(self, messages: Sequence[Message]) -> None: ...

    async def visible_to(self, user: Optional[str], limit: Optional[int] = None) -> List[Message]: ...

    async def clear(self) -> None: ...


class InMemoryPresenceStore:
    """Name-keyed participant table."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._participants: Dict[str, Participant] = {}

    async def find_stale(self, cutoff_ms: int) -> List[Participant]:
        with self._lock:
            return [
                Participant(p.name, p.last_status)
                for p in self._participants.values()
                if p.is_stale(cutoff_ms)
            ]

    async def delete_stale(self, cutoff_ms: int, names: Optional[Collection[str]] = None) -> List[str]:
        """Remove stale participants and return the removed names.

        When ``names`` is given only those participants are considered, and each
        is re-checked against ``cutoff_ms`` so a fresh ping keeps it alive.
        """
        with self._lock:
            candidates = list(self._participants) if names is None else [n for n in names if n in self._participants]
            removed = [n for n in candidates if self._participants[n].is_stale(cutoff_ms)]
            for name in removed:
                del self._participants[name]
            return removed

    async def add(self, name: str, now_ms: int) -> Participant:
        with self._lock:
            if name in self._participants:
                raise DuplicateParticipant(name)
            participant = Participant(name=name, last_status=now_ms)
            self._participants[name] = participant
            return Participant(participant.name, participant.last_status)

    async def get(self, name: str) -> Optional[Participant]:
        with self._lock:
            p = self._participants.get(name)
            return Participant(p.name, p.last_status) if p is not None else None

    async def touch(self, name: str, now_ms: int) -> bool:
        with self._lock:
            p = self._participants.get(name)
            if p is None:
                return False
            p.last_status = now_ms
            return True

    async def list_all(self) -> List[Participant]:
        with self._lock:
            return [Participant(p.name, p.last_status) for p in self._participants.values()]

    async def clear(self) -> None:
        with self._lock:
            self._participants.clear()


class InMemoryMessageLog:
    """Append-only list of messages in arrival order."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._messages: List[Message] = []

    async def append(self, message: Message) -> None:
        with self._lock:
            self._messages.append(message)

    async def append_many(self, messages: Sequence[Message]) -> None:
        if not messages:
            return
        with self._lock:
            self._messages.extend(messages)

    async def visible_to(self, user: Optional[str], limit: Optional[int] = None) -> List[Message]:
        with self._lock:
            visible = [m for m in self._messages if m.is_visible_to(user, EVERYONE)]
        if limit is not None:
            visible = visible[-limit:]
        return visible

    async def clear(self) -> None:
        with self._lock:
            self._messages.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._messages)


__all__ = [
    "PresenceStore",
    "MessageLog",
    "InMemoryPresenceStore",
    "InMemoryMessageLog",
]
