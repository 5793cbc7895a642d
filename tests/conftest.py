import datetime

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from forecast_scoring.db.models import QuestionRecord, create_db_and_tables
from forecast_scoring.db.store import SqlAlchemyStore
from forecast_scoring.models import Forecast

T0 = datetime.datetime(2024, 1, 1, 12, 0, tzinfo=datetime.timezone.utc)


def at(minutes: float) -> datetime.datetime:
    return T0 + datetime.timedelta(minutes=minutes)


def make_forecast(participant_id: str, probability: float, minutes: float, question_id: str = "q1", forecast_id: str | None = None) -> Forecast:
    return Forecast(
        id=forecast_id or f"{participant_id}-{minutes}",
        question_id=question_id,
        participant_id=participant_id,
        probability=probability,
        created_at=at(minutes),
    )


@pytest.fixture
def session_factory():
    engine = create_engine(
        "sqlite://", connect_args={"check_same_thread": False}, poolclass=StaticPool
    )
    create_db_and_tables(engine)
    yield sessionmaker(autocommit=False, autoflush=False, bind=engine)
    engine.dispose()


@pytest.fixture
def store(session_factory) -> SqlAlchemyStore:
    return SqlAlchemyStore(session_factory)


@pytest.fixture
def add_question(session_factory):
    def _add(question_id: str = "q1", title: str = "Will it rain?", **fields) -> str:
        with session_factory() as db:
            db.add(QuestionRecord(id=question_id, title=title, created_at=T0, **fields))
            db.commit()
        return question_id

    return _add
