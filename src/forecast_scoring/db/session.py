from collections.abc import Iterator
from contextlib import contextmanager

from sqlalchemy.orm import Session, sessionmaker

from forecast_scoring.db.models import SessionLocal


@contextmanager
def get_session_context(session_factory: sessionmaker = SessionLocal) -> Iterator[Session]:
    db = session_factory()
    try:
        yield db
    finally:
        db.close()
