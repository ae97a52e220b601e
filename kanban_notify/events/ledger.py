"""Durable, strictly ordered event ledger.

Sequence numbers come from the ``ledger_records.seq`` autoincrement column, so
no caller ever reads the current maximum and inserts ``max + 1``. Appends are
additionally serialized (a process lock, plus a transaction-scoped advisory
lock on PostgreSQL) so that commit order matches seq order. Without that a
reader paging with ``after=N`` could see seq 12 commit before seq 11 and
skip 11 forever.

Failure semantics: an append that fails raises ``LedgerAppendError``. The
triggering mutation must not proceed to publish, because downstream cursor
readers rely on every published event having a ledger row.
"""

import logging
import threading
from datetime import datetime, timezone
from typing import Any

from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session, select

from kanban_notify.config import get_settings
from kanban_notify.events.types import BoardEvent
from kanban_notify.models.ledger import ActivityPage, LedgerRecord, LedgerRecordResponse

logger = logging.getLogger(__name__)

# Arbitrary application-wide key for pg_advisory_xact_lock
LEDGER_ADVISORY_LOCK_KEY = 7_346_201


class LedgerAppendError(Exception):
    """Raised when a ledger record could not be durably appended."""


class InvalidCursorError(ValueError):
    """Raised for an unusable activity feed cursor combination."""


class EventLedger:
    """Append-only activity ledger with cursor-based replay."""

    def __init__(self, page_default: int | None = None, page_max: int | None = None) -> None:
        settings = get_settings()
        self.page_default = page_default or settings.ACTIVITY_PAGE_DEFAULT
        self.page_max = page_max or settings.ACTIVITY_PAGE_MAX
        self._append_lock = threading.Lock()

    def build_record(
        self,
        event: BoardEvent,
        subject_id: str,
        actor: str,
    ) -> LedgerRecord:
        """Create an unsaved ledger record for a board event."""
        return LedgerRecord(
            scope_id=event.scope_id,
            subject_id=subject_id,
            type=event.type.value,
            actor=actor,
            payload=dict(event.data),
        )

    def append(self, session: Session, record: LedgerRecord) -> int:
        """Durably append a record and return its assigned sequence number.

        Commits the session. Any pending changes the caller staged on the same
        session are committed in the same transaction.

        Raises:
            LedgerAppendError: If the insert or commit fails.
        """
        if record.seq is not None:
            raise LedgerAppendError("Ledger records are append-only; record already has a seq")

        with self._append_lock:
            try:
                self._lock_transaction(session)
                session.add(record)
                session.commit()
                session.refresh(record)
            except SQLAlchemyError as e:
                session.rollback()
                logger.error(
                    "Ledger append failed",
                    extra={
                        "scope_id": record.scope_id,
                        "subject_id": record.subject_id,
                        "event_type": record.type,
                        "error": str(e),
                    },
                    exc_info=True,
                )
                raise LedgerAppendError(f"Failed to append ledger record: {e}") from e

        logger.debug(
            "Ledger record appended",
            extra={"seq": record.seq, "scope_id": record.scope_id, "event_type": record.type},
        )
        return record.seq

    def _lock_transaction(self, session: Session) -> None:
        """Serialize appenders across processes sharing a PostgreSQL database."""
        if session.get_bind().dialect.name == "postgresql":
            session.execute(
                text("SELECT pg_advisory_xact_lock(:key)"),
                {"key": LEDGER_ADVISORY_LOCK_KEY},
            )

    def query_after(
        self,
        session: Session,
        after: int = 0,
        limit: int | None = None,
        scope_id: str | None = None,
    ) -> list[LedgerRecord]:
        """Return records with ``seq > after`` in ascending seq order.

        This is the authoritative, resumable pagination mode: feeding the last
        seq of one page back as ``after`` yields the next page with no gaps or
        duplicates.
        """
        return self._fetch_after(session, after, self._clamp(limit), scope_id)

    def _fetch_after(
        self, session: Session, after: int, limit: int, scope_id: str | None
    ) -> list[LedgerRecord]:
        if after < 0:
            raise InvalidCursorError("after must be a non-negative sequence number")

        query = select(LedgerRecord).where(LedgerRecord.seq > after)
        if scope_id is not None:
            query = query.where(LedgerRecord.scope_id == scope_id)
        query = query.order_by(LedgerRecord.seq.asc()).limit(limit)
        return list(session.exec(query).all())

    def query_since(
        self,
        session: Session,
        since: datetime,
        limit: int | None = None,
        scope_id: str | None = None,
    ) -> list[LedgerRecord]:
        """Return records created at or after ``since``, newest first.

        Best-effort only: records sharing a timestamp under concurrent writers
        may straddle page boundaries. Use ``query_after`` for replay.
        """
        return self._fetch_since(session, since, self._clamp(limit), scope_id)

    def _fetch_since(
        self, session: Session, since: datetime, limit: int, scope_id: str | None
    ) -> list[LedgerRecord]:
        # Naive timestamps are taken as UTC
        if since.tzinfo is None:
            since = since.replace(tzinfo=timezone.utc)
        since = since.astimezone(timezone.utc)
        query = select(LedgerRecord).where(LedgerRecord.created_at >= since)
        if scope_id is not None:
            query = query.where(LedgerRecord.scope_id == scope_id)
        query = query.order_by(LedgerRecord.seq.desc()).limit(limit)
        return list(session.exec(query).all())

    def query_subject(
        self,
        session: Session,
        scope_id: str,
        subject_id: str,
        after: int = 0,
        limit: int | None = None,
    ) -> list[LedgerRecord]:
        """Return one task's history on a board, oldest first.

        Same cursor semantics as ``query_after``, restricted to one subject.
        """
        if after < 0:
            raise InvalidCursorError("after must be a non-negative sequence number")

        query = (
            select(LedgerRecord)
            .where(
                LedgerRecord.scope_id == scope_id,
                LedgerRecord.subject_id == subject_id,
                LedgerRecord.seq > after,
            )
            .order_by(LedgerRecord.seq.asc())
            .limit(self._clamp(limit))
        )
        return list(session.exec(query).all())

    def activity_page(
        self,
        session: Session,
        scope_id: str,
        after: int | None = None,
        since: datetime | None = None,
        limit: int | None = None,
    ) -> ActivityPage:
        """Build one page of a board's activity feed.

        Exactly one of ``after``/``since`` may be given; neither means
        ``after=0`` (replay from the beginning).
        """
        if after is not None and since is not None:
            raise InvalidCursorError("after and since are mutually exclusive")

        page_size = self._clamp(limit)
        # Fetch one extra row to learn whether another page exists
        if since is not None:
            rows = self._fetch_since(session, since, page_size + 1, scope_id)
        else:
            rows = self._fetch_after(session, after or 0, page_size + 1, scope_id)

        has_more = len(rows) > page_size
        rows = rows[:page_size]

        if since is not None:
            next_cursor = max((r.seq for r in rows), default=0)
        else:
            next_cursor = rows[-1].seq if rows else (after or 0)

        return ActivityPage(
            records=[LedgerRecordResponse.model_validate(r) for r in rows],
            next_cursor=next_cursor,
            has_more=has_more,
        )

    def latest_seq(self, session: Session, scope_id: str | None = None) -> int:
        """Return the highest seq appended so far (0 for an empty ledger)."""
        query = select(LedgerRecord.seq).order_by(LedgerRecord.seq.desc()).limit(1)
        if scope_id is not None:
            query = query.where(LedgerRecord.scope_id == scope_id)
        value: Any = session.exec(query).first()
        return int(value or 0)

    def _clamp(self, limit: int | None) -> int:
        if limit is None:
            return self.page_default
        return max(1, min(limit, self.page_max))
