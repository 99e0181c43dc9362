import functools

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from webhook_core.settings import get_settings


@functools.lru_cache()
def get_engine() -> Engine:
    """
    Get SQLAlchemy engine (cached).

    Pool size comes from DB_POOL_SIZE (a handful per instance). On
    PostgreSQL every statement is bounded by DB_STATEMENT_TIMEOUT_MS.
    """
    settings = get_settings()
    url = settings.DATABASE_URL

    if url.startswith("sqlite"):
        return create_engine(url, echo=False)

    connect_args = {}
    if url.startswith("postgresql"):
        connect_args["options"] = f"-c statement_timeout={settings.DB_STATEMENT_TIMEOUT_MS}"

    return create_engine(
        url,
        pool_size=settings.DB_POOL_SIZE,
        max_overflow=settings.DB_MAX_OVERFLOW,
        pool_timeout=settings.DB_POOL_TIMEOUT,
        pool_pre_ping=True,
        connect_args=connect_args,
        echo=False,
    )


@functools.lru_cache()
def get_sessionmaker() -> sessionmaker:
    """Get SQLAlchemy sessionmaker (cached)."""
    engine = get_engine()
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


def get_db():
    """
    Dependency generator for FastAPI to get database session.

    Yields a database session and ensures it's closed after use.
    """
    SessionLocal = get_sessionmaker()
    db: Session = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def dispose_engine() -> None:
    """Close pooled connections. Called on process shutdown."""
    if get_engine.cache_info().currsize:
        get_engine().dispose()
    get_sessionmaker.cache_clear()
    get_engine.cache_clear()
