"""Board activity feed and per-task history endpoints backed by the event ledger."""

from datetime import datetime

from fastapi import APIRouter, HTTPException, Query, status

from kanban_notify.api.deps import DBSession, Ledger
from kanban_notify.events.ledger import InvalidCursorError
from kanban_notify.models.ledger import ActivityPage, LedgerRecordResponse

router = APIRouter(prefix="/api/v1/boards", tags=["Activity"])


@router.get("/{board_id}/activity", response_model=ActivityPage)
def list_board_activity(
    board_id: str,
    session: DBSession,
    ledger: Ledger,
    after: int | None = Query(default=None, ge=0, description="Return records with seq > after, ascending"),
    since: datetime | None = Query(default=None, description="Return records created since, newest first"),
    limit: int | None = Query(default=None, ge=1, description="Page size (capped by the server)"),
) -> ActivityPage:
    """Page through a board's activity.

    ``after`` is the resumable, gap-free mode. ``since`` is a best-effort
    convenience and may miss records sharing a timestamp.
    """
    try:
        return ledger.activity_page(session, board_id, after=after, since=since, limit=limit)
    except InvalidCursorError as e:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=str(e),
        ) from e


@router.get("/{board_id}/tasks/{task_id}/events", response_model=list[LedgerRecordResponse])
def list_task_events(
    board_id: str,
    task_id: str,
    session: DBSession,
    ledger: Ledger,
    after: int = Query(default=0, ge=0, description="Return records with seq > after"),
    limit: int | None = Query(default=None, ge=1, description="Page size (capped by the server)"),
) -> list[LedgerRecordResponse]:
    """Get the event history of one task, oldest first."""
    records = ledger.query_subject(session, board_id, task_id, after=after, limit=limit)
    return [LedgerRecordResponse.model_validate(r) for r in records]
