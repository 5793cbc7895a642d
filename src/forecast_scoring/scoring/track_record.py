"""Track record summaries built from a participant's persisted scores.

Everything here is recomputed on demand from the scores passed in; nothing is
cached between calls.
"""

import datetime
import logging
import math
from collections.abc import Iterable, Mapping, Sequence

from pydantic import BaseModel, ConfigDict

from forecast_scoring.config import settings
from forecast_scoring.errors import InputValidationError
from forecast_scoring.models import Forecast, Question, Resolution, Score, Summary, TrackRecord, as_utc
from forecast_scoring.scoring.snapshot import snapshot

logger = logging.getLogger(__name__)


def mean_or_none(values: Iterable[float | None]) -> float | None:
    """Mean over the defined values only; ``None`` if there are none."""
    defined = [v for v in values if v is not None]
    if not defined:
        return None
    return math.fsum(defined) / len(defined)


def summarize_scores(scores: Sequence[Score]) -> Summary:
    return Summary(
        mean_absolute=mean_or_none(s.absolute_score for s in scores),
        mean_relative=mean_or_none(s.relative_score for s in scores),
        count=len(scores),
    )


def summarize(
    scores: Iterable[Score],
    now: datetime.datetime,
    recent_window_days: int = settings.RECENT_WINDOW_DAYS,
) -> TrackRecord:
    """Average a participant's scores over the recent window and over all time.

    Args:
        scores: Every score of one participant.
        now: Reference instant for the recent window.
        recent_window_days: Width of the recent window; a score counts as
            recent when it was created strictly after ``now - recent_window_days``.

    Returns:
        A :class:`TrackRecord`. Means with nothing to average are ``None``.
    """
    scores = list(scores)
    cutoff = as_utc(now) - datetime.timedelta(days=recent_window_days)
    recent = [s for s in scores if s.created_at > cutoff]
    return TrackRecord(recent=summarize_scores(recent), overall=summarize_scores(scores))


def percentile(participant_mean: float, population_means: Sequence[float]) -> float:
    """Fraction of the population with a strictly worse (higher) mean score.

    Lower scores are better, so a higher percentile is better. Ties are not
    credited.
    """
    if not population_means:
        raise InputValidationError("Percentile needs at least one participant in the population")
    worse = sum(1 for other in population_means if other > participant_mean)
    return worse / len(population_means)


class PercentileRank(BaseModel):
    model_config = ConfigDict(frozen=True)

    absolute: float | None = None
    relative: float | None = None
    population: int = 0


def track_record_percentiles(
    participant_id: str, scores_by_participant: Mapping[str, Sequence[Score]]
) -> PercentileRank:
    """Rank a participant against everyone with at least one score."""
    absolute_means = {}
    relative_means = {}
    for pid, scores in scores_by_participant.items():
        summary = summarize_scores(scores)
        if summary.mean_absolute is not None:
            absolute_means[pid] = summary.mean_absolute
        if summary.mean_relative is not None:
            relative_means[pid] = summary.mean_relative

    if participant_id not in absolute_means:
        return PercentileRank(population=len(absolute_means))

    relative = None
    if participant_id in relative_means:
        relative = percentile(relative_means[participant_id], list(relative_means.values()))
    return PercentileRank(
        absolute=percentile(absolute_means[participant_id], list(absolute_means.values())),
        relative=relative,
        population=len(absolute_means),
    )


class CalibrationBucket(BaseModel):
    model_config = ConfigDict(frozen=True)

    lower: float
    upper: float
    count: int
    mean_forecast: float
    observed_frequency: float


def calibration_buckets(
    questions: Iterable[Question],
    forecasts: Iterable[Forecast],
    participant_id: str,
    bins: int = settings.CALIBRATION_BINS,
) -> list[CalibrationBucket]:
    """Group a participant's final forecasts into probability bins.

    Only questions resolved YES or NO count. A probability of exactly 1.0
    falls into the top bin.
    """
    if bins < 1:
        raise InputValidationError(f"Calibration needs at least one bin, got {bins}")

    forecasts_by_question: dict[str, list[Forecast]] = {}
    for forecast in forecasts:
        if forecast.participant_id == participant_id:
            forecasts_by_question.setdefault(forecast.question_id, []).append(forecast)

    grouped: dict[int, list[tuple[float, float]]] = {}
    for question in questions:
        if question.resolution not in (Resolution.YES, Resolution.NO):
            continue
        final = snapshot(forecasts_by_question.get(question.id, []), question.resolved_at)
        forecast = final.get(participant_id)
        if forecast is None:
            continue
        outcome = 1.0 if question.resolution is Resolution.YES else 0.0
        index = min(int(forecast.probability * bins), bins - 1)
        grouped.setdefault(index, []).append((forecast.probability, outcome))

    buckets = []
    for index in sorted(grouped):
        pairs = grouped[index]
        buckets.append(
            CalibrationBucket(
                lower=index / bins,
                upper=(index + 1) / bins,
                count=len(pairs),
                mean_forecast=math.fsum(p for p, _ in pairs) / len(pairs),
                observed_frequency=math.fsum(o for _, o in pairs) / len(pairs),
            )
        )
    logger.debug("Built %d calibration buckets for participant %s", len(buckets), participant_id)
    return buckets
