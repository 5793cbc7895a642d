import datetime
import uuid

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    DateTime,
    Enum,
    Float,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
    create_engine,
)
from sqlalchemy.engine import Engine
from sqlalchemy.orm import declarative_base, relationship, sessionmaker

from forecast_scoring.config import settings
from forecast_scoring.models import Resolution


def _utcnow() -> datetime.datetime:
    return datetime.datetime.now(datetime.timezone.utc)


Base = declarative_base()


class QuestionRecord(Base):
    __tablename__ = "questions"
    id: Column[str] = Column(String(64), primary_key=True, default=lambda: str(uuid.uuid4()))
    title: Column[str] = Column(Text, nullable=False)
    created_at: Column[datetime.datetime] = Column(DateTime(timezone=True), default=_utcnow)
    resolve_by: Column[datetime.datetime | None] = Column(DateTime(timezone=True))
    resolution: Column[Resolution] = Column(
        Enum(Resolution, name="resolution"), nullable=False, default=Resolution.OPEN
    )
    resolved_at: Column[datetime.datetime | None] = Column(DateTime(timezone=True))
    hide_forecasts_until: Column[datetime.datetime | None] = Column(DateTime(timezone=True))
    # False until every score of the resolution event is durably written
    scoring_complete: Column[bool] = Column(Boolean, nullable=False, default=False)

    forecasts = relationship("ForecastRecord", back_populates="question")
    scores = relationship("ScoreRecord", back_populates="question")


class ForecastRecord(Base):  # Immutable; a correction is a new row
    __tablename__ = "forecasts"
    __table_args__ = (
        CheckConstraint("probability >= 0 AND probability <= 1", name="probability_in_range"),
    )
    id: Column[str] = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    question_id: Column[str] = Column(String(64), ForeignKey("questions.id"), nullable=False, index=True)
    participant_id: Column[str] = Column(String(255), nullable=False, index=True)
    probability: Column[float] = Column(Float, nullable=False)
    created_at: Column[datetime.datetime] = Column(DateTime(timezone=True), default=_utcnow)

    question = relationship("QuestionRecord", back_populates="forecasts")


class ScoreRecord(Base):
    __tablename__ = "question_scores"
    __table_args__ = (
        UniqueConstraint("question_id", "participant_id", name="one_score_per_participant"),
    )
    id: Column[int] = Column(Integer, primary_key=True, autoincrement=True)
    question_id: Column[str] = Column(String(64), ForeignKey("questions.id"), nullable=False, index=True)
    participant_id: Column[str] = Column(String(255), nullable=False, index=True)
    absolute_score: Column[float] = Column(Float, nullable=False)
    relative_score: Column[float | None] = Column(Float)  # NULL when there was no baseline
    created_at: Column[datetime.datetime] = Column(DateTime(timezone=True), nullable=False)

    question = relationship("QuestionRecord", back_populates="scores")


engine = create_engine(settings.DATABASE_URL)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def create_db_and_tables(bind: Engine = engine):
    Base.metadata.create_all(bind=bind)
