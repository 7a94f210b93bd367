"""SQLAlchemy ORM models for the persistent chat room collections.

Two independent tables: live participants (presence) and the append-only
message log. There is no foreign key between them; departure notices outlive
the participant rows they describe.
"""
from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import BigInteger, DateTime, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, declarative_base, mapped_column

from chatroom.core.config import NAME_COLUMN_LENGTH

Base = declarative_base()


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Participant(Base):
    __tablename__ = "participants"
    __table_args__ = (
        Index("ix_participants_last_status", "last_status"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(NAME_COLUMN_LENGTH), unique=True, index=True, nullable=False)
    # Epoch milliseconds of the last registration or ping
    last_status: Mapped[int] = mapped_column(BigInteger, nullable=False)


class Message(Base):
    __tablename__ = "messages"
    __table_args__ = (
        Index("ix_messages_recipient", "recipient"),
        Index("ix_messages_sender", "sender"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    sender: Mapped[str] = mapped_column(String(NAME_COLUMN_LENGTH), nullable=False)
    recipient: Mapped[str] = mapped_column(String(NAME_COLUMN_LENGTH), nullable=False)
    text: Mapped[str] = mapped_column(Text, nullable=False)
    # message | private_message | status
    type: Mapped[str] = mapped_column(String(20), nullable=False)
    time: Mapped[str] = mapped_column(String(8), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow, nullable=False)
