from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, declarative_base
from sqlalchemy.pool import StaticPool
import logging

from companion_app.core.config import settings

logger = logging.getLogger(__name__)

Base = declarative_base()


def build_engine(database_url: str):
    """
    Creates the SQLAlchemy engine for the given URL.

    Postgres gets a connection pool sized for request concurrency and the configured
    SSL mode; SQLite is opened with thread checks off so FastAPI's threadpool can share it.
    An in-memory SQLite database is pinned to a single connection, otherwise every
    checkout would see a fresh empty database.
    """
    if database_url.startswith("sqlite"):
        connect_args = {"check_same_thread": False}
        if database_url in ("sqlite://", "sqlite:///:memory:"):
            return create_engine(database_url, connect_args=connect_args, poolclass=StaticPool)
        return create_engine(database_url, connect_args=connect_args)

    connect_args = {}
    if settings.SUPABASE_DB_SSL_MODE != "disable":
        connect_args["sslmode"] = settings.SUPABASE_DB_SSL_MODE
    return create_engine(
        database_url,
        connect_args=connect_args,
        pool_size=10,
        max_overflow=20,
        pool_pre_ping=True,
    )


try:
    engine = build_engine(settings.database_url)
    SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    logger.info(f"SQLAlchemy engine configured for dialect '{engine.dialect.name}'.")
except Exception as e:
    logger.error(f"Failed to create SQLAlchemy engine or configure session: {e}", exc_info=True)
    raise

def get_db():
    """
    FastAPI dependency that provides a database session per request.
    Ensures the session is always closed, even if errors occur.
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
