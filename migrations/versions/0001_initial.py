"""Initial schema creation

Revision ID: 0001_initial
Revises: 
Create Date: 2026-10-19 12:00:00

Creates the two chat room collections aligned with chatroom/models/database.py:
- participants (presence; unique name, last_status epoch ms)
- messages (append-only log)
"""
from __future__ import annotations

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = "0001_initial"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "participants",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("name", sa.String(length=100), nullable=False),
        sa.Column("last_status", sa.BigInteger(), nullable=False),
    )
    op.create_index("ix_participants_name", "participants", ["name"], unique=True)
    op.create_index("ix_participants_last_status", "participants", ["last_status"], unique=False)

    op.create_table(
        "messages",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("sender", sa.String(length=100), nullable=False),
        sa.Column("recipient", sa.String(length=100), nullable=False),
        sa.Column("text", sa.Text(), nullable=False),
        sa.Column("type", sa.String(length=20), nullable=False),
        sa.Column("time", sa.String(length=8), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("ix_messages_recipient", "messages", ["recipient"], unique=False)
    op.create_index("ix_messages_sender", "messages", ["sender"], unique=False)


def downgrade() -> None:
    op.drop_index("ix_messages_sender", table_name="messages")
    op.drop_index("ix_messages_recipient", table_name="messages")
    op.drop_table("messages")
    op.drop_index("ix_participants_last_status", table_name="participants")
    op.drop_index("ix_participants_name", table_name="participants")
    op.drop_table("participants")
