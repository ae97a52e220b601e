"""LedgerRecord entity model for the durable board activity ledger."""

from datetime import datetime, timezone
from typing import Any
from uuid import UUID, uuid4

import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import JSONB
from sqlmodel import Column, Field, SQLModel

# JSONB on PostgreSQL, plain JSON elsewhere (SQLite in local runs and tests)
JSONType = sa.JSON().with_variant(JSONB(), "postgresql")


class LedgerRecord(SQLModel, table=True):
    """Append-only activity ledger row.

    ``seq`` is the native autoincrement primary key, so the database hands out
    the sequence number atomically with the insert. Rows are never updated or
    deleted by this service.
    """

    __tablename__ = "ledger_records"
    # AUTOINCREMENT keeps SQLite from reusing the highest rowid after a delete
    __table_args__ = {"sqlite_autoincrement": True}

    seq: int | None = Field(
        default=None,
        sa_column=Column(sa.Integer, primary_key=True, autoincrement=True),
    )
    id: UUID = Field(default_factory=uuid4, unique=True, index=True)
    scope_id: str = Field(max_length=64, index=True)
    subject_id: str = Field(max_length=64, index=True)
    type: str = Field(max_length=50)
    actor: str = Field(max_length=100)
    payload: dict[str, Any] = Field(default_factory=dict, sa_column=Column(JSONType))
    created_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        sa_column=Column(sa.DateTime(timezone=True), nullable=False, index=True),
    )


class LedgerRecordResponse(SQLModel):
    """Schema for an activity feed entry."""

    seq: int
    id: UUID
    scope_id: str
    subject_id: str
    type: str
    actor: str
    payload: dict[str, Any]
    created_at: datetime

    model_config = {"from_attributes": True}


class ActivityPage(SQLModel):
    """One page of the activity feed.

    ``next_cursor`` is the value to pass as ``after`` to continue an
    ascending read; for ``since`` reads it is the highest seq on the page.
    """

    records: list[LedgerRecordResponse]
    next_cursor: int
    has_more: bool
