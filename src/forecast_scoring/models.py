import datetime
import enum
import math

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from forecast_scoring.errors import InputValidationError


class Resolution(str, enum.Enum):
    OPEN = "OPEN"
    YES = "YES"
    NO = "NO"
    AMBIGUOUS = "AMBIGUOUS"

    @property
    def is_terminal(self) -> bool:
        return self is not Resolution.OPEN


class AggregationMethod(str, enum.Enum):
    GEOMETRIC = "geometric"
    ARITHMETIC = "arithmetic"
    MEDIAN = "median"


def check_probability(value: float) -> float:
    """Reject anything outside [0, 1] (NaN included) instead of clamping it."""
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise InputValidationError(f"Probability must be a number, got {value!r}")
    if math.isnan(value) or not 0.0 <= value <= 1.0:
        raise InputValidationError(f"Probability must be between 0 and 1, got {value}")
    return float(value)


def as_utc(moment: datetime.datetime) -> datetime.datetime:
    # SQLite hands back naive datetimes; everything stored is UTC.
    if moment.tzinfo is None:
        return moment.replace(tzinfo=datetime.timezone.utc)
    return moment.astimezone(datetime.timezone.utc)


class Question(BaseModel):
    """A binary question as seen by the scoring core."""

    model_config = ConfigDict(frozen=True)

    id: str
    title: str
    created_at: datetime.datetime
    resolve_by: datetime.datetime | None = None
    resolution: Resolution = Resolution.OPEN
    resolved_at: datetime.datetime | None = None
    hide_forecasts_until: datetime.datetime | None = None
    scoring_complete: bool = False

    @field_validator("created_at", "resolve_by", "resolved_at", "hide_forecasts_until")
    @classmethod
    def _normalise_timezone(cls, value: datetime.datetime | None) -> datetime.datetime | None:
        return as_utc(value) if value is not None else None

    @model_validator(mode="after")
    def _resolution_time_matches_state(self) -> "Question":
        if self.resolution.is_terminal and self.resolved_at is None:
            raise InputValidationError(f"Resolved question {self.id} has no resolution time")
        if not self.resolution.is_terminal and self.resolved_at is not None:
            raise InputValidationError(f"Open question {self.id} has a resolution time")
        return self


class Forecast(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    question_id: str
    participant_id: str
    probability: float
    created_at: datetime.datetime

    @field_validator("probability", mode="before")
    @classmethod
    def _probability_in_range(cls, value: float) -> float:
        return check_probability(value)

    @field_validator("created_at")
    @classmethod
    def _normalise_timezone(cls, value: datetime.datetime) -> datetime.datetime:
        return as_utc(value)


class Score(BaseModel):
    """Brier score for one participant on one resolved question.

    ``relative_score`` is ``None`` when there was no community baseline to
    compare against.
    """

    model_config = ConfigDict(frozen=True)

    question_id: str
    participant_id: str
    absolute_score: float = Field(ge=0.0)
    relative_score: float | None = None
    created_at: datetime.datetime

    @field_validator("created_at")
    @classmethod
    def _normalise_timezone(cls, value: datetime.datetime) -> datetime.datetime:
        return as_utc(value)


class Summary(BaseModel):
    model_config = ConfigDict(frozen=True)

    mean_absolute: float | None = None
    mean_relative: float | None = None
    count: int = 0


class TrackRecord(BaseModel):
    model_config = ConfigDict(frozen=True)

    recent: Summary
    overall: Summary
