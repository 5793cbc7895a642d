import enum
import logging
from collections.abc import Iterable, Iterator, Mapping

from forecast_scoring.config import settings
from forecast_scoring.errors import InputValidationError
from forecast_scoring.models import AggregationMethod, Forecast, Question, Resolution, Score
from forecast_scoring.scoring.community import aggregate
from forecast_scoring.scoring.snapshot import snapshot

logger = logging.getLogger(__name__)


class ScoringStatus(str, enum.Enum):
    SCORED = "scored"
    AMBIGUOUS = "ambiguous"  # everybody opted out of scoring
    NO_FORECASTS = "no_forecasts"


class ScoreSheet(Mapping[str, Score]):
    """Read-only mapping of participant id to :class:`Score` for one question."""

    def __init__(self, question_id: str, status: ScoringStatus, scores: Mapping[str, Score] | None = None):
        self.question_id = question_id
        self.status = status
        self._scores = dict(scores or {})

    def __getitem__(self, participant_id: str) -> Score:
        return self._scores[participant_id]

    def __iter__(self) -> Iterator[str]:
        return iter(self._scores)

    def __len__(self) -> int:
        return len(self._scores)

    def __repr__(self) -> str:
        return f"ScoreSheet(question_id={self.question_id!r}, status={self.status.value!r}, scores={self._scores!r})"


def brier_score(probability: float, outcome: float) -> float:
    return (probability - outcome) ** 2


class ScoreCalculator:
    """Computes absolute and community-relative Brier scores for a resolved question.

    The relative score is ``absolute - community_absolute``, where the
    community forecast is pooled with ``baseline`` over the same final
    snapshot. Negative means the participant beat the community.
    """

    def __init__(
        self,
        baseline: AggregationMethod = settings.RELATIVE_BASELINE,
        min_participants: int = settings.MIN_PARTICIPANTS_FOR_RELATIVE,
    ):
        self.baseline = AggregationMethod(baseline)
        self.min_participants = min_participants

    def score(self, question: Question, forecasts: Iterable[Forecast]) -> ScoreSheet:
        if not question.resolution.is_terminal or question.resolved_at is None:
            raise InputValidationError(f"Question {question.id} is not resolved")

        if question.resolution is Resolution.AMBIGUOUS:
            logger.info("Question %s resolved ambiguous; no scores produced", question.id)
            return ScoreSheet(question.id, ScoringStatus.AMBIGUOUS)

        outcome = 1.0 if question.resolution is Resolution.YES else 0.0
        final_forecasts = snapshot(
            (f for f in forecasts if f.question_id == question.id), question.resolved_at
        )
        if not final_forecasts:
            logger.info("Question %s resolved with no forecasts to score", question.id)
            return ScoreSheet(question.id, ScoringStatus.NO_FORECASTS)

        community_absolute = None
        if len(final_forecasts) >= self.min_participants:
            community = aggregate(final_forecasts, self.baseline)
            community_absolute = brier_score(community, outcome)

        scores = {}
        for participant_id, forecast in final_forecasts.items():
            absolute = brier_score(forecast.probability, outcome)
            scores[participant_id] = Score(
                question_id=question.id,
                participant_id=participant_id,
                absolute_score=absolute,
                relative_score=(
                    absolute - community_absolute if community_absolute is not None else None
                ),
                created_at=question.resolved_at,
            )
        logger.debug(
            "Scored %d participants on question %s (community Brier %s)",
            len(scores),
            question.id,
            community_absolute,
        )
        return ScoreSheet(question.id, ScoringStatus.SCORED, scores)


def rank_participants(scores: Mapping[str, Score]) -> dict[str, int]:
    """Competition ranking by absolute score: 1 is best, ties share the better rank."""
    ordered = sorted(scores.values(), key=lambda s: s.absolute_score)
    ranks: dict[str, int] = {}
    previous = None
    rank = 0
    for position, score in enumerate(ordered, start=1):
        if score.absolute_score != previous:
            rank = position
            previous = score.absolute_score
        ranks[score.participant_id] = rank
    return ranks
