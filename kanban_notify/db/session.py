"""Database engine and session management."""

from collections.abc import Generator

from sqlmodel import Session, create_engine

from kanban_notify.config import get_settings

settings = get_settings()


def normalize_database_url(url: str) -> str:
    """Convert postgres:// and postgresql:// to postgresql+psycopg:// for the psycopg v3 driver."""
    if url.startswith("postgres://"):
        return url.replace("postgres://", "postgresql+psycopg://", 1)
    if url.startswith("postgresql://"):
        return url.replace("postgresql://", "postgresql+psycopg://", 1)
    return url


database_url = normalize_database_url(settings.DATABASE_URL)

if database_url.startswith("sqlite"):
    # Sessions are used from request threads and webhook worker threads
    connect_args = {"check_same_thread": False}
else:
    connect_args = {"sslmode": "require"}

engine = create_engine(
    database_url,
    echo=False,
    pool_pre_ping=True,
    connect_args=connect_args,
)


def get_session() -> Generator[Session, None, None]:
    """Get database session with automatic cleanup."""
    with Session(engine) as session:
        yield session
