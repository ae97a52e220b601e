"""FastAPI application entry point."""

import asyncio
import contextlib
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlmodel import SQLModel

from kanban_notify.api.activity import router as activity_router
from kanban_notify.api.events import router as events_router
from kanban_notify.api.webhooks import router as webhooks_router
from kanban_notify.config import get_settings
from kanban_notify.db.session import engine
from kanban_notify.events.bus import EventBus
from kanban_notify.events.gateway import StreamGateway
from kanban_notify.events.ledger import EventLedger, LedgerAppendError
from kanban_notify.webhooks.dispatcher import WebhookDispatcher
from kanban_notify.workers.pool import configure_worker_logging

settings = get_settings()
settings.validate()
configure_worker_logging(settings.LOG_LEVEL)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Build the event core on startup and drain it on shutdown."""
    # Import models to register them with SQLModel
    from kanban_notify.models import LedgerRecord, WebhookTarget  # noqa: F401
    SQLModel.metadata.create_all(engine)

    dispatcher = WebhookDispatcher()
    bus = EventBus(dispatcher=dispatcher)
    app.state.dispatcher = dispatcher
    app.state.bus = bus
    app.state.ledger = EventLedger()
    app.state.gateway = StreamGateway(bus)

    dispatcher.start()
    eviction = asyncio.create_task(bus.run_eviction())
    try:
        yield
    finally:
        eviction.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await eviction
        bus.close()
        # Blocking join; run it off the event loop
        await asyncio.to_thread(dispatcher.stop, True)


app = FastAPI(
    title="Board Notifications API",
    description="Live board event streams, webhook delivery and the activity ledger",
    version="1.0.0",
    lifespan=lifespan,
)

cors_origins = [origin for origin in {settings.FRONTEND_URL, "http://localhost:3000"} if origin]

app.add_middleware(
    CORSMiddleware,
    allow_origins=cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(LedgerAppendError)
async def ledger_append_error_handler(request: Request, exc: LedgerAppendError) -> JSONResponse:
    """A mutation whose ledger append failed is aborted and reported as unavailable."""
    logger.error("Mutation aborted, ledger append failed", extra={"path": request.url.path})
    return JSONResponse(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        content={"detail": "Activity ledger unavailable, change was not applied"},
    )


# Register routers
app.include_router(events_router)
app.include_router(activity_router)
app.include_router(webhooks_router)


@app.get("/health")
def health_check() -> dict[str, str | int]:
    """Health check endpoint."""
    return {
        "status": "healthy",
        "live_channels": app.state.bus.channel_count,
        "webhook_queue_depth": app.state.dispatcher.pool.queue_depth,
    }
