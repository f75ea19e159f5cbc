"""Database configuration and session management"""

from sqlalchemy import create_engine, inspect
from sqlalchemy.orm import declarative_base, sessionmaker, Session
from typing import Generator, List
from keepintouch.config import settings
import logging

logger = logging.getLogger(__name__)

_database_url = settings.get_database_url()

if _database_url.startswith("sqlite"):
    engine = create_engine(
        _database_url,
        connect_args={"check_same_thread": False},
        echo=settings.DEBUG
    )
else:
    # PostgreSQL engine
    engine = create_engine(
        _database_url,
        pool_size=settings.DATABASE_POOL_SIZE,
        max_overflow=settings.DATABASE_MAX_OVERFLOW,
        pool_timeout=30,
        pool_recycle=3600,
        pool_pre_ping=True,
        echo=settings.DEBUG
    )

# Create session factory
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

# Create base class for models
Base = declarative_base()

# Import models after Base is defined so metadata is populated.
from keepintouch import models  # noqa: E402,F401


def get_db() -> Generator[Session, None, None]:
    """
    Dependency for getting database session

    Yields:
        Session: Database session
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


REQUIRED_TABLES = ("users", "refresh_tokens", "password_reset_tokens")


def missing_tables() -> List[str]:
    """Ledger and user tables absent from the connected database"""
    existing = set(inspect(engine).get_table_names())
    return [name for name in REQUIRED_TABLES if name not in existing]


def init_db() -> None:
    """
    Prepare the schema according to DB_INIT_MODE.

    DB_INIT_MODE:
      - migrate: tables must already exist, created by `alembic upgrade head`
      - create_all: create missing tables from ORM metadata (local/dev bootstrap)
      - off: skip the check

    Raises:
        RuntimeError: migrate mode and migrations have not been applied, or
            the mode is unknown
    """
    mode = settings.DB_INIT_MODE.lower().strip()
    if mode == "off":
        logger.info("DB initialization check skipped (DB_INIT_MODE=off)")
        return

    if mode == "create_all":
        Base.metadata.create_all(bind=engine)
        logger.warning("Tables created from ORM metadata; use migrations outside local development.")
        return

    if mode == "migrate":
        missing = missing_tables()
        has_version_table = inspect(engine).has_table("alembic_version")
        if settings.DB_REQUIRE_HEAD and (missing or not has_version_table):
            raise RuntimeError(
                "Database schema is not migrated "
                f"(missing tables: {', '.join(missing) or 'alembic_version'}). "
                "Run Alembic migrations before starting the API."
            )
        logger.info("Migrated schema detected.")
        return

    raise RuntimeError(f"Unknown DB_INIT_MODE: {settings.DB_INIT_MODE}")
