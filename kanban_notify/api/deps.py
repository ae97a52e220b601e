"""API dependencies for dependency injection."""

from collections.abc import Generator
from typing import Annotated

from fastapi import Depends, Request
from sqlmodel import Session

from kanban_notify.db.session import get_session
from kanban_notify.events.bus import EventBus
from kanban_notify.events.gateway import StreamGateway
from kanban_notify.events.ledger import EventLedger


def get_db_session() -> Generator[Session, None, None]:
    """Get database session dependency."""
    yield from get_session()


def get_event_bus(request: Request) -> EventBus:
    """Get the process-wide event bus built at startup."""
    return request.app.state.bus


def get_ledger(request: Request) -> EventLedger:
    """Get the event ledger built at startup."""
    return request.app.state.ledger


def get_stream_gateway(request: Request) -> StreamGateway:
    """Get the stream gateway built at startup."""
    return request.app.state.gateway


DBSession = Annotated[Session, Depends(get_db_session)]
Bus = Annotated[EventBus, Depends(get_event_bus)]
Ledger = Annotated[EventLedger, Depends(get_ledger)]
Gateway = Annotated[StreamGateway, Depends(get_stream_gateway)]
