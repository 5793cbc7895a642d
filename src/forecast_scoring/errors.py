class ForecastScoringError(Exception):
    """Base class for every error raised by the scoring core."""


class InputValidationError(ForecastScoringError, ValueError):
    """Raised when input is rejected before any computation happens."""


class InvalidStateTransitionError(ForecastScoringError):
    """Raised when a question cannot move to the requested resolution."""

    def __init__(self, question_id: str, current: str, requested: str | None = None):
        self.question_id = question_id
        self.current = current
        self.requested = requested
        message = f"Question {question_id} is already {current}"
        if requested is not None:
            message += f"; cannot resolve it as {requested}"
        super().__init__(message)


class QuestionNotFoundError(ForecastScoringError, LookupError):
    def __init__(self, question_id: str):
        self.question_id = question_id
        super().__init__(f"Question {question_id} does not exist")


class PersistenceError(ForecastScoringError):
    """Raised when the storage layer fails; callers may retry."""


class DuplicateScoreError(PersistenceError):
    def __init__(self, question_id: str, participant_id: str):
        self.question_id = question_id
        self.participant_id = participant_id
        super().__init__(
            f"Score for participant {participant_id} on question {question_id} already exists"
        )
