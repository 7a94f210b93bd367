"""SQLAlchemy-backed presence store and message log.

Session factories are looked up at call time from chatroom.core.database so the
stores can be created before start_db() binds the engine to the server loop.
Driver and connection errors surface as StoreUnavailable.
"""
from __future__ import annotations

import logging
from typing import Collection, List, Optional, Sequence

from sqlalchemy import delete, or_, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from chatroom.core.config import EVERYONE
from chatroom.core.errors import DuplicateParticipant, StoreUnavailable
from chatroom.models import Message, MessageType, Participant
from chatroom.models.database import Message as ORMMessage, Participant as ORMParticipant

logger = logging.getLogger(__name__)


# Dynamic proxy to access SessionLocal at call time to reflect latest value from chatroom.core.database
class _SessionLocalProxy:
    def __call__(self, *args, **kwargs):
        from chatroom.core.database import SessionLocal as _SessionLocal  # dynamic lookup
        if _SessionLocal is None:
            raise StoreUnavailable("Database SessionLocal is not initialized")
        return _SessionLocal(*args, **kwargs)


def _to_participant(row: ORMParticipant) -> Participant:
    return Participant(name=row.name, last_status=int(row.last_status))


def _to_message(row: ORMMessage) -> Message:
    return Message(sender=row.sender, to=row.recipient, text=row.text, type=row.type, time=row.time)


class SqlPresenceStore:
    def __init__(self, sessionmaker=None) -> None:
        self._sessionmaker = sessionmaker or _SessionLocalProxy()

    async def find_stale(self, cutoff_ms: int) -> List[Participant]:
        try:
            async with self._sessionmaker() as session:
                result = await session.execute(
                    select(ORMParticipant).where(ORMParticipant.last_status < int(cutoff_ms))
                )
                return [_to_participant(r) for r in result.scalars().all()]
        except SQLAlchemyError as exc:
            raise StoreUnavailable(f"find_stale failed: {exc}") from exc

    async def delete_stale(self, cutoff_ms: int, names: Optional[Collection[str]] = None) -> List[str]:
        """Delete stale rows (optionally restricted to ``names``) and return the deleted names."""
        if names is not None and not names:
            return []
        stmt = delete(ORMParticipant).where(ORMParticipant.last_status < int(cutoff_ms))
        if names is not None:
            stmt = stmt.where(ORMParticipant.name.in_(list(names)))
        stmt = stmt.returning(ORMParticipant.name).execution_options(synchronize_session=False)
        try:
            async with self._sessionmaker() as session:
                result = await session.execute(stmt)
                removed = [str(n) for n in result.scalars().all()]
                await session.commit()
                return removed
        except SQLAlchemyError as exc:
            raise StoreUnavailable(f"delete_stale failed: {exc}") from exc

    async def add(self, name: str, now_ms: int) -> Participant:
        try:
            async with self._sessionmaker() as session:
                session.add(ORMParticipant(name=name, last_status=int(now_ms)))
                await session.commit()
                return Participant(name=name, last_status=int(now_ms))
        except IntegrityError as exc:
            raise DuplicateParticipant(name) from exc
        except SQLAlchemyError as exc:
            raise StoreUnavailable(f"add participant failed: {exc}") from exc

    async def get(self, name: str) -> Optional[Participant]:
        try:
            async with self._sessionmaker() as session:
                result = await session.execute(select(ORMParticipant).where(ORMParticipant.name == name))
                row = result.scalar_one_or_none()
                return _to_participant(row) if row is not None else None
        except SQLAlchemyError as exc:
            raise StoreUnavailable(f"get participant failed: {exc}") from exc

    async def touch(self, name: str, now_ms: int) -> bool:
        try:
            async with self._sessionmaker() as session:
                result = await session.execute(
                    update(ORMParticipant)
                    .where(ORMParticipant.name == name)
                    .values(last_status=int(now_ms))
                    .execution_options(synchronize_session=False)
                )
                await session.commit()
                return bool(result.rowcount)
        except SQLAlchemyError as exc:
            raise StoreUnavailable(f"touch participant failed: {exc}") from exc

    async def list_all(self) -> List[Participant]:
        try:
            async with self._sessionmaker() as session:
                result = await session.execute(select(ORMParticipant).order_by(ORMParticipant.id))
                return [_to_participant(r) for r in result.scalars().all()]
        except SQLAlchemyError as exc:
            raise StoreUnavailable(f"list participants failed: {exc}") from exc

    async def clear(self) -> None:
        try:
            async with self._sessionmaker() as session:
                await session.execute(delete(ORMParticipant))
                await session.commit()
        except SQLAlchemyError as exc:
            raise StoreUnavailable(f"clear participants failed: {exc}") from exc


class SqlMessageLog:
    def __init__(self, sessionmaker=None) -> None:
        self._sessionmaker = sessionmaker or _SessionLocalProxy()

    async def append(self, message: Message) -> None:
        await self.append_many([message])

    async def append_many(self, messages: Sequence[Message]) -> None:
        if not messages:
            return
        try:
            async with self._sessionmaker() as session:
                session.add_all([
                    ORMMessage(sender=m.sender, recipient=m.to, text=m.text, type=m.type, time=m.time)
                    for m in messages
                ])
                await session.commit()
        except SQLAlchemyError as exc:
            raise StoreUnavailable(f"append messages failed: {exc}") from exc

    async def visible_to(self, user: Optional[str], limit: Optional[int] = None) -> List[Message]:
        """Messages visible to ``user``, oldest first; ``limit`` keeps the newest N."""
        stmt = (
            select(ORMMessage)
            .where(
                or_(
                    ORMMessage.type != MessageType.PRIVATE.value,
                    ORMMessage.recipient == EVERYONE,
                    ORMMessage.recipient == user,
                    ORMMessage.sender == user,
                )
            )
            .order_by(ORMMessage.id.desc())
        )
        if limit is not None:
            stmt = stmt.limit(int(limit))
        try:
            async with self._sessionmaker() as session:
                result = await session.execute(stmt)
                rows = list(result.scalars().all())
        except SQLAlchemyError as exc:
            raise StoreUnavailable(f"list messages failed: {exc}") from exc
        rows.reverse()
        return [_to_message(r) for r in rows]

    async def clear(self) -> None:
        try:
            async with self._sessionmaker() as session:
                await session.execute(delete(ORMMessage))
                await session.commit()
        except SQLAlchemyError as exc:
            raise StoreUnavailable(f"clear messages failed: {exc}") from exc


__all__ = ["SqlPresenceStore", "SqlMessageLog"]
