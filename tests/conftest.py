"""Shared fixtures: an isolated in-memory database per test."""

import os

# Must be set before kanban_notify.config is imported anywhere
os.environ.setdefault("DATABASE_URL", "sqlite://")

import pytest
from sqlalchemy.pool import StaticPool
from sqlmodel import Session, SQLModel, create_engine

from kanban_notify.models import LedgerRecord, WebhookTarget  # noqa: F401


@pytest.fixture
def engine():
    """In-memory SQLite engine shared across threads."""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    SQLModel.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def file_engine(tmp_path):
    """File-backed SQLite engine for tests with several concurrent connections."""
    engine = create_engine(
        f"sqlite:///{tmp_path / 'ledger.db'}",
        connect_args={"check_same_thread": False, "timeout": 30},
    )
    SQLModel.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def db_session(engine):
    """Database session bound to the in-memory engine."""
    with Session(engine) as session:
        yield session


@pytest.fixture
def session_factory(engine):
    """Factory handing out new sessions on the in-memory engine."""
    return lambda: Session(engine, expire_on_commit=False)
