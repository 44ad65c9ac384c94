"""
Database Configuration
SQLAlchemy engine and session management.
Supports both SQLite (local dev) and PostgreSQL (production).
"""

import logging

from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker, declarative_base
from sqlalchemy.pool import StaticPool

from app.core.config import settings

logger = logging.getLogger(__name__)


def make_engine(url: str):
    """Build an engine for `url`; in-memory SQLite shares one connection."""
    if not url.startswith("sqlite"):
        return create_engine(url, pool_pre_ping=True, pool_size=10, max_overflow=20)

    kwargs = {"connect_args": {"check_same_thread": False}}
    if url in ("sqlite://", "sqlite:///:memory:"):
        kwargs["poolclass"] = StaticPool
    sqlite_engine = create_engine(url, **kwargs)

    @event.listens_for(sqlite_engine, "connect")
    def _enable_foreign_keys(dbapi_connection, connection_record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    return sqlite_engine


engine = make_engine(settings.DATABASE_URL)

# Session factory shared by the API and the dispatcher
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

# Base class for models
Base = declarative_base()


def init_db(bind=None):
    """Create the job, asset, wallet and 3D model tables if missing."""
    try:
        from app.models import Product, Job, ProductAsset, UserWallet, ItcTransaction, User3DModel  # noqa
        Base.metadata.create_all(bind=bind or engine)
    except Exception as e:
        # Tables may be managed by migrations in production
        logger.warning(f"[Database] Could not create tables: {e}")
        logger.info("[Database] Continuing with existing schema")
