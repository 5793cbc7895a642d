import datetime
from collections.abc import Iterable, Sequence

from pydantic import BaseModel, ConfigDict

from forecast_scoring.config import settings
from forecast_scoring.models import Forecast, Question, Score, TrackRecord
from forecast_scoring.scoring.calculator import ScoreSheet, ScoringStatus, rank_participants
from forecast_scoring.scoring.snapshot import snapshot
from forecast_scoring.scoring.track_record import summarize


class ResolutionReport(BaseModel):
    """What a participant is told when a question they forecasted on resolves."""

    model_config = ConfigDict(frozen=True)

    question_id: str
    participant_id: str
    ambiguous: bool
    absolute_score: float | None = None
    relative_score: float | None = None
    ranking: int | None = None
    total_participants: int = 0
    last_forecast: float | None = None
    last_forecast_at: datetime.datetime | None = None
    track_record: TrackRecord


def build_resolution_report(
    question: Question,
    forecasts: Iterable[Forecast],
    sheet: ScoreSheet,
    participant_id: str,
    history: Sequence[Score],
    now: datetime.datetime,
    recent_window_days: int = settings.RECENT_WINDOW_DAYS,
) -> ResolutionReport:
    """Assemble a participant's resolution details.

    ``history`` is the participant's full score history and should already
    include the score from ``sheet``.
    """
    final = snapshot(forecasts, question.resolved_at or now).get(participant_id)
    score = sheet.get(participant_id)
    ranks = rank_participants(sheet)
    return ResolutionReport(
        question_id=question.id,
        participant_id=participant_id,
        ambiguous=sheet.status is ScoringStatus.AMBIGUOUS,
        absolute_score=score.absolute_score if score else None,
        relative_score=score.relative_score if score else None,
        ranking=ranks.get(participant_id),
        total_participants=len(sheet),
        last_forecast=final.probability if final else None,
        last_forecast_at=final.created_at if final else None,
        track_record=summarize(history, now, recent_window_days),
    )
