"""Live board event stream endpoint (Server-Sent Events)."""

from fastapi import APIRouter, Request
from sse_starlette.sse import EventSourceResponse

from kanban_notify.api.deps import Gateway

router = APIRouter(prefix="/api/v1/boards", tags=["Events"])


@router.get("/{board_id}/events/stream")
async def stream_board_events(
    board_id: str,
    request: Request,
    gateway: Gateway,
) -> EventSourceResponse:
    """Stream live events for a board.

    Each message is tagged with its event type. A ``heartbeat`` message is
    sent after every quiet heartbeat interval, and a ``warning`` message with
    ``events_lost`` is sent if this consumer falls too far behind.
    """
    return EventSourceResponse(
        gateway.stream(board_id, request.is_disconnected),
        headers={
            "Cache-Control": "no-cache",
            "X-Accel-Buffering": "no",
        },
    )
