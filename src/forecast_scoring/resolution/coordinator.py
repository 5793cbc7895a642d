import datetime
import logging

from pydantic import BaseModel, ConfigDict

from forecast_scoring.db.store import ForecastReaderABC, ResolutionStoreABC, ScoreWriterABC
from forecast_scoring.errors import (
    DuplicateScoreError,
    InputValidationError,
    InvalidStateTransitionError,
)
from forecast_scoring.models import Question, Resolution, Score
from forecast_scoring.scoring.calculator import ScoreCalculator, ScoringStatus

logger = logging.getLogger(__name__)


class ResolutionResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    question: Question
    status: ScoringStatus
    scores: dict[str, Score]
    written: list[str]  # participant ids whose score was written by this call
    resumed: bool = False


class ResolutionCoordinator:
    """Drives a question from OPEN to a terminal resolution and persists its scores.

    The state change happens at most once (compare-and-set in the resolution
    store); score writes are at-least-once and skip pairs that are already
    durable, so a failed run can be retried safely.
    """

    def __init__(
        self,
        forecast_reader: ForecastReaderABC,
        score_writer: ScoreWriterABC,
        resolution_store: ResolutionStoreABC,
        calculator: ScoreCalculator | None = None,
    ):
        self.forecast_reader = forecast_reader
        self.score_writer = score_writer
        self.resolution_store = resolution_store
        self.calculator = calculator or ScoreCalculator()

    def resolve(
        self,
        question_id: str,
        resolution: Resolution,
        at: datetime.datetime | None = None,
    ) -> ResolutionResult:
        """Resolve a question and write one score per qualifying participant.

        Args:
            question_id: Question to resolve.
            resolution: YES, NO or AMBIGUOUS.
            at: Resolution instant; defaults to now.

        Returns:
            The scoring outcome of this resolution event.

        Raises:
            InputValidationError: If ``resolution`` is OPEN.
            InvalidStateTransitionError: If the question was already resolved,
                unless it was resolved the same way and still has score writes
                outstanding, in which case only those writes are retried.
            PersistenceError: If storage fails; the call can be retried.
        """
        resolution = Resolution(resolution)
        if not resolution.is_terminal:
            raise InputValidationError("A question cannot be resolved as OPEN")
        at = at or datetime.datetime.now(datetime.timezone.utc)

        if self.resolution_store.try_resolve(question_id, resolution, at):
            logger.info("Question %s resolved %s", question_id, resolution.value)
            question = self.resolution_store.get_question(question_id)
            return self._persist_scores(question)

        question = self.resolution_store.get_question(question_id)
        if question.resolution is resolution and not question.scoring_complete:
            logger.warning(
                "Question %s already resolved %s with scores outstanding; retrying writes",
                question_id,
                resolution.value,
            )
            return self._persist_scores(question, resumed=True)

        logger.warning(
            "Rejected resolution of question %s as %s: already %s",
            question_id,
            resolution.value,
            question.resolution.value,
        )
        raise InvalidStateTransitionError(question_id, question.resolution.value, resolution.value)

    def complete_pending(self, question_id: str) -> ResolutionResult:
        """Retry the missing score writes of an already-resolved question."""
        question = self.resolution_store.get_question(question_id)
        if not question.resolution.is_terminal:
            raise InvalidStateTransitionError(question_id, question.resolution.value)
        return self._persist_scores(question, resumed=True)

    def _persist_scores(self, question: Question, resumed: bool = False) -> ResolutionResult:
        sheet = self.calculator.score(question, self.forecast_reader.forecasts_for(question.id))

        written = []
        if not question.scoring_complete:
            already_written = self.score_writer.scored_participants(question.id)
            for participant_id, score in sheet.items():
                if participant_id in already_written:
                    continue
                try:
                    self.score_writer.write_score(score)
                except DuplicateScoreError:
                    # A concurrent retry got there first
                    logger.debug("Score for %s on question %s already written", participant_id, question.id)
                    continue
                written.append(participant_id)
            self.resolution_store.mark_scoring_complete(question.id)
            question = question.model_copy(update={"scoring_complete": True})

        logger.info(
            "Question %s: %d scores (%s), %d written by this call",
            question.id,
            len(sheet),
            sheet.status.value,
            len(written),
        )
        return ResolutionResult(
            question=question,
            status=sheet.status,
            scores=dict(sheet),
            written=written,
            resumed=resumed,
        )
