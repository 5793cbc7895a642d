"""Storage collaborators of the scoring core and their SQLAlchemy implementation."""

import datetime
import logging
from abc import ABC, abstractmethod
from collections.abc import Iterator
from contextlib import contextmanager

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from forecast_scoring.db.models import ForecastRecord, QuestionRecord, ScoreRecord, SessionLocal
from forecast_scoring.db.session import get_session_context
from forecast_scoring.errors import DuplicateScoreError, PersistenceError, QuestionNotFoundError
from forecast_scoring.models import Forecast, Question, Resolution, Score, as_utc

logger = logging.getLogger(__name__)


class ForecastReaderABC(ABC):
    @abstractmethod
    def forecasts_for(self, question_id: str) -> list[Forecast]:
        pass


class ScoreWriterABC(ABC):
    @abstractmethod
    def write_score(self, score: Score) -> None:
        """Durably persist a score; raise DuplicateScoreError if the pair already has one."""

    @abstractmethod
    def scored_participants(self, question_id: str) -> set[str]:
        pass

    @abstractmethod
    def scores_for_participant(self, participant_id: str) -> list[Score]:
        pass

    @abstractmethod
    def all_scores(self) -> list[Score]:
        pass


class ResolutionStoreABC(ABC):
    @abstractmethod
    def get_question(self, question_id: str) -> Question:
        pass

    @abstractmethod
    def try_resolve(
        self, question_id: str, resolution: Resolution, at: datetime.datetime
    ) -> bool:
        """Move an open question to ``resolution``; False if it was no longer open."""

    @abstractmethod
    def mark_scoring_complete(self, question_id: str) -> None:
        pass


def to_question(record: QuestionRecord) -> Question:
    return Question(
        id=record.id,
        title=record.title,
        created_at=record.created_at,
        resolve_by=record.resolve_by,
        resolution=record.resolution,
        resolved_at=record.resolved_at,
        hide_forecasts_until=record.hide_forecasts_until,
        scoring_complete=record.scoring_complete,
    )


def to_forecast(record: ForecastRecord) -> Forecast:
    return Forecast(
        id=record.id,
        question_id=record.question_id,
        participant_id=record.participant_id,
        probability=record.probability,
        created_at=record.created_at,
    )


def to_score(record: ScoreRecord) -> Score:
    return Score(
        question_id=record.question_id,
        participant_id=record.participant_id,
        absolute_score=record.absolute_score,
        relative_score=record.relative_score,
        created_at=record.created_at,
    )


class SqlAlchemyStore(ForecastReaderABC, ScoreWriterABC, ResolutionStoreABC):
    """Every operation runs in its own short-lived session and commits before returning."""

    def __init__(self, session_factory: sessionmaker = SessionLocal):
        self.session_factory = session_factory

    @contextmanager
    def _transaction(self) -> Iterator[Session]:
        with get_session_context(self.session_factory) as db:
            try:
                yield db
            except SQLAlchemyError as e:
                db.rollback()
                logger.error("Database operation failed: %s", e)
                raise PersistenceError(str(e)) from e

    def get_question(self, question_id: str) -> Question:
        with self._transaction() as db:
            record = db.get(QuestionRecord, question_id)
            if record is None:
                raise QuestionNotFoundError(question_id)
            return to_question(record)

    def forecasts_for(self, question_id: str) -> list[Forecast]:
        with self._transaction() as db:
            records = (
                db.query(ForecastRecord)
                .filter(ForecastRecord.question_id == question_id)
                .order_by(ForecastRecord.created_at)
                .all()
            )
            return [to_forecast(r) for r in records]

    def try_resolve(
        self, question_id: str, resolution: Resolution, at: datetime.datetime
    ) -> bool:
        with self._transaction() as db:
            # Compare-and-set: only a row that is still OPEN can be updated
            updated = (
                db.query(QuestionRecord)
                .filter(
                    QuestionRecord.id == question_id,
                    QuestionRecord.resolution == Resolution.OPEN,
                )
                .update(
                    {
                        QuestionRecord.resolution: resolution,
                        QuestionRecord.resolved_at: as_utc(at),
                        QuestionRecord.scoring_complete: False,
                    },
                    synchronize_session=False,
                )
            )
            if updated == 0 and db.get(QuestionRecord, question_id) is None:
                raise QuestionNotFoundError(question_id)
            db.commit()
            return updated == 1

    def mark_scoring_complete(self, question_id: str) -> None:
        with self._transaction() as db:
            db.query(QuestionRecord).filter(QuestionRecord.id == question_id).update(
                {QuestionRecord.scoring_complete: True}, synchronize_session=False
            )
            db.commit()

    def write_score(self, score: Score) -> None:
        with self._transaction() as db:
            db.add(
                ScoreRecord(
                    question_id=score.question_id,
                    participant_id=score.participant_id,
                    absolute_score=score.absolute_score,
                    relative_score=score.relative_score,
                    created_at=score.created_at,
                )
            )
            try:
                db.commit()
            except IntegrityError as e:
                db.rollback()
                # Only the one_score_per_participant constraint means "already scored"
                existing = (
                    db.query(ScoreRecord.id)
                    .filter(
                        ScoreRecord.question_id == score.question_id,
                        ScoreRecord.participant_id == score.participant_id,
                    )
                    .first()
                )
                if existing is not None:
                    raise DuplicateScoreError(score.question_id, score.participant_id) from e
                logger.error(
                    "Score for %s on question %s violated a constraint: %s",
                    score.participant_id,
                    score.question_id,
                    e.orig,
                )
                raise PersistenceError(
                    f"Could not write score for {score.participant_id} on question {score.question_id}: {e.orig}"
                ) from e

    def scored_participants(self, question_id: str) -> set[str]:
        with self._transaction() as db:
            rows = (
                db.query(ScoreRecord.participant_id)
                .filter(ScoreRecord.question_id == question_id)
                .all()
            )
            return {participant_id for (participant_id,) in rows}

    def scores_for_participant(self, participant_id: str) -> list[Score]:
        with self._transaction() as db:
            records = (
                db.query(ScoreRecord)
                .filter(ScoreRecord.participant_id == participant_id)
                .order_by(ScoreRecord.created_at)
                .all()
            )
            return [to_score(r) for r in records]

    def all_scores(self) -> list[Score]:
        with self._transaction() as db:
            return [to_score(r) for r in db.query(ScoreRecord).all()]

    def scores_by_participant(self) -> dict[str, list[Score]]:
        grouped: dict[str, list[Score]] = {}
        for score in self.all_scores():
            grouped.setdefault(score.participant_id, []).append(score)
        return grouped
