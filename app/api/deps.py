"""
API Dependencies
Request-scoped database session for the read-only job endpoints.
"""

from typing import Iterator

from sqlalchemy.orm import Session

from app.core.database import SessionLocal


def get_db() -> Iterator[Session]:
    """Yield a session; job rows are only read here, the dispatcher owns writes."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
