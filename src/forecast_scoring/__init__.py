"""Public API for the forecast_scoring package."""

from .errors import (
    DuplicateScoreError,
    ForecastScoringError,
    InputValidationError,
    InvalidStateTransitionError,
    PersistenceError,
    QuestionNotFoundError,
)
from .models import (
    AggregationMethod,
    Forecast,
    Question,
    Resolution,
    Score,
    Summary,
    TrackRecord,
)
from .resolution.coordinator import ResolutionCoordinator, ResolutionResult
from .scoring.calculator import ScoreCalculator, ScoreSheet, ScoringStatus, rank_participants
from .scoring.community import aggregate, community_forecast, visible_community_forecast
from .scoring.snapshot import snapshot
from .scoring.track_record import percentile, summarize, track_record_percentiles

__all__ = [
    "AggregationMethod",
    "DuplicateScoreError",
    "Forecast",
    "ForecastScoringError",
    "InputValidationError",
    "InvalidStateTransitionError",
    "PersistenceError",
    "Question",
    "QuestionNotFoundError",
    "Resolution",
    "ResolutionCoordinator",
    "ResolutionResult",
    "Score",
    "ScoreCalculator",
    "ScoreSheet",
    "ScoringStatus",
    "Summary",
    "TrackRecord",
    "aggregate",
    "community_forecast",
    "percentile",
    "rank_participants",
    "snapshot",
    "summarize",
    "track_record_percentiles",
    "visible_community_forecast",
]
