import datetime
import logging

from pydantic import BaseModel, field_validator
from sqlalchemy.orm import Session

from forecast_scoring.db.models import ForecastRecord, QuestionRecord
from forecast_scoring.errors import InvalidStateTransitionError, QuestionNotFoundError
from forecast_scoring.models import Resolution, as_utc, check_probability

logger = logging.getLogger(__name__)


class LoggedForecastData(BaseModel):
    question_id: str
    participant_id: str
    probability: float
    created_at: datetime.datetime | None = None  # defaults to insertion time

    @field_validator("probability", mode="before")
    @classmethod
    def _probability_in_range(cls, value: float) -> float:
        return check_probability(value)

    @field_validator("created_at")
    @classmethod
    def _normalise_timezone(cls, value: datetime.datetime | None) -> datetime.datetime | None:
        # SQLite keeps wall-clock time only, so store every instant as UTC
        return as_utc(value) if value is not None else None


class ForecastLogger:
    def log_forecast(self, data: LoggedForecastData, db: Session) -> str:
        question = db.get(QuestionRecord, data.question_id)
        if question is None:
            raise QuestionNotFoundError(data.question_id)
        if question.resolution is not Resolution.OPEN:
            raise InvalidStateTransitionError(data.question_id, question.resolution.value)

        forecast_entry = ForecastRecord(
            question_id=data.question_id,
            participant_id=data.participant_id,
            probability=data.probability,
        )
        if data.created_at is not None:
            forecast_entry.created_at = data.created_at
        db.add(forecast_entry)
        db.commit()
        db.refresh(forecast_entry)
        logger.debug(
            "Logged forecast %s: %s -> %.4f on question %s",
            forecast_entry.id,
            data.participant_id,
            data.probability,
            data.question_id,
        )
        return forecast_entry.id
