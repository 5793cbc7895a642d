import pytest
from conftest import at

from forecast_scoring.db.models import ForecastRecord
from forecast_scoring.errors import (
    InputValidationError,
    InvalidStateTransitionError,
    PersistenceError,
    QuestionNotFoundError,
)
from forecast_scoring.models import Resolution, Score
from forecast_scoring.resolution.coordinator import ResolutionCoordinator
from forecast_scoring.scoring.calculator import ScoringStatus


@pytest.fixture
def coordinator(store) -> ResolutionCoordinator:
    return ResolutionCoordinator(store, store, store)


@pytest.fixture
def question_with_forecasts(add_question, session_factory) -> str:
    add_question("q1")
    with session_factory() as db:
        for participant_id, probability, minutes in [
            ("alice", 0.9, 1),
            ("bob", 0.1, 2),
            ("carol", 0.6, 3),
            ("alice", 0.8, 4),
        ]:
            db.add(
                ForecastRecord(
                    question_id="q1",
                    participant_id=participant_id,
                    probability=probability,
                    created_at=at(minutes),
                )
            )
        db.commit()
    return "q1"


def test_resolve_scores_every_participant_once(coordinator, store, question_with_forecasts):
    result = coordinator.resolve(question_with_forecasts, Resolution.YES, at(100))

    assert result.status is ScoringStatus.SCORED
    assert sorted(result.written) == ["alice", "bob", "carol"]
    assert not result.resumed
    assert result.question.scoring_complete
    assert result.scores["alice"].absolute_score == pytest.approx(0.04)
    assert store.scored_participants("q1") == {"alice", "bob", "carol"}

    question = store.get_question("q1")
    assert question.resolution is Resolution.YES
    assert question.resolved_at == at(100)
    assert question.scoring_complete


def test_second_resolution_is_rejected_without_new_scores(coordinator, store, question_with_forecasts):
    coordinator.resolve(question_with_forecasts, Resolution.YES, at(100))

    with pytest.raises(InvalidStateTransitionError) as excinfo:
        coordinator.resolve(question_with_forecasts, Resolution.YES, at(200))
    assert excinfo.value.current == "YES"
    with pytest.raises(InvalidStateTransitionError):
        coordinator.resolve(question_with_forecasts, Resolution.NO, at(200))

    assert len(store.all_scores()) == 3
    assert store.get_question("q1").resolved_at == at(100)


def test_ambiguous_resolution_writes_no_scores(coordinator, store, question_with_forecasts):
    result = coordinator.resolve(question_with_forecasts, Resolution.AMBIGUOUS, at(100))
    assert result.status is ScoringStatus.AMBIGUOUS
    assert result.scores == {}
    assert store.all_scores() == []
    assert store.get_question("q1").scoring_complete


def test_resolution_without_forecasts(coordinator, store, add_question):
    add_question("q1")
    result = coordinator.resolve("q1", Resolution.NO, at(100))
    assert result.status is ScoringStatus.NO_FORECASTS
    assert store.all_scores() == []


def test_open_is_not_a_resolution(coordinator, question_with_forecasts):
    with pytest.raises(InputValidationError):
        coordinator.resolve(question_with_forecasts, Resolution.OPEN, at(100))


def test_unknown_question(coordinator):
    with pytest.raises(QuestionNotFoundError):
        coordinator.resolve("missing", Resolution.YES, at(100))


def test_partial_write_failure_is_retried_by_a_repeated_resolution(
    coordinator, store, question_with_forecasts, mocker
):
    original_write = store.write_score
    calls = {"n": 0}

    def flaky_write(score):
        calls["n"] += 1
        if calls["n"] == 2:
            raise PersistenceError("connection reset")
        original_write(score)

    mocker.patch.object(store, "write_score", side_effect=flaky_write)
    with pytest.raises(PersistenceError):
        coordinator.resolve(question_with_forecasts, Resolution.YES, at(100))

    question = store.get_question("q1")
    assert question.resolution is Resolution.YES
    assert not question.scoring_complete
    assert len(store.scored_participants("q1")) == 1

    result = coordinator.resolve(question_with_forecasts, Resolution.YES, at(300))
    assert result.resumed
    assert len(result.written) == 2
    assert store.scored_participants("q1") == {"alice", "bob", "carol"}
    assert store.get_question("q1").resolved_at == at(100)
    assert store.get_question("q1").scoring_complete


def test_repeated_resolution_with_different_outcome_does_not_resume(
    coordinator, store, question_with_forecasts, mocker
):
    mocker.patch.object(store, "write_score", side_effect=PersistenceError("down"))
    with pytest.raises(PersistenceError):
        coordinator.resolve(question_with_forecasts, Resolution.YES, at(100))
    mocker.stopall()

    with pytest.raises(InvalidStateTransitionError):
        coordinator.resolve(question_with_forecasts, Resolution.NO, at(200))
    assert store.all_scores() == []


def test_complete_pending_writes_only_missing_scores(coordinator, store, question_with_forecasts, mocker):
    mocker.patch.object(store, "mark_scoring_complete", side_effect=PersistenceError("down"))
    with pytest.raises(PersistenceError):
        coordinator.resolve(question_with_forecasts, Resolution.NO, at(100))
    mocker.stopall()

    result = coordinator.complete_pending("q1")
    assert result.written == []
    assert len(store.all_scores()) == 3
    assert store.get_question("q1").scoring_complete

    again = coordinator.complete_pending("q1")
    assert again.written == []
    assert len(store.all_scores()) == 3


def test_complete_pending_on_open_question(coordinator, question_with_forecasts):
    with pytest.raises(InvalidStateTransitionError):
        coordinator.complete_pending("q1")


def test_concurrent_writer_duplicates_are_tolerated(coordinator, store, question_with_forecasts, mocker):
    mocker.patch.object(store, "scored_participants", return_value=set())
    store.write_score(
        coordinator.calculator.score(
            store.get_question("q1").model_copy(
                update={"resolution": Resolution.YES, "resolved_at": at(100)}
            ),
            store.forecasts_for("q1"),
        )["bob"]
    )
    result = coordinator.resolve(question_with_forecasts, Resolution.YES, at(100))
    assert sorted(result.written) == ["alice", "carol"]
    assert len(store.all_scores()) == 3


def test_failed_score_write_that_is_not_a_duplicate_leaves_scoring_incomplete(
    coordinator, store, question_with_forecasts, mocker
):
    original_write = store.write_score

    def write_with_null_score(score):
        if score.participant_id == "bob":
            score = Score.model_construct(**{**dict(score), "absolute_score": None})
        original_write(score)

    mocker.patch.object(store, "write_score", side_effect=write_with_null_score)
    with pytest.raises(PersistenceError):
        coordinator.resolve(question_with_forecasts, Resolution.YES, at(100))

    question = store.get_question("q1")
    assert question.resolution is Resolution.YES
    assert not question.scoring_complete
    assert "bob" not in store.scored_participants("q1")
