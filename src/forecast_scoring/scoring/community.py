import datetime
import logging
import math
import statistics
from collections.abc import Iterable, Mapping

from forecast_scoring.models import AggregationMethod, Forecast, Question, as_utc
from forecast_scoring.scoring.snapshot import snapshot

logger = logging.getLogger(__name__)


def geometric_mean(probabilities: list[float]) -> float:
    # Sum of logs instead of a running product, which underflows for large pools.
    if any(p == 0.0 for p in probabilities):
        return 0.0
    return math.exp(math.fsum(math.log(p) for p in probabilities) / len(probabilities))


def arithmetic_mean(probabilities: list[float]) -> float:
    return math.fsum(probabilities) / len(probabilities)


_AGGREGATORS = {
    AggregationMethod.GEOMETRIC: geometric_mean,
    AggregationMethod.ARITHMETIC: arithmetic_mean,
    AggregationMethod.MEDIAN: statistics.median,
}


def aggregate(
    forecasts_by_participant: Mapping[str, Forecast],
    method: AggregationMethod = AggregationMethod.GEOMETRIC,
) -> float | None:
    """Combine one forecast per participant into a community probability.

    The geometric mean is the community-facing estimate. A single forecast of
    exactly 0 pulls the geometric pool to 0.

    Args:
        forecasts_by_participant: Output of :func:`snapshot`.
        method: How to pool the probabilities.

    Returns:
        The pooled probability, or ``None`` when nobody has forecasted yet.
    """
    probabilities = [f.probability for f in forecasts_by_participant.values()]
    if not probabilities:
        return None
    return float(_AGGREGATORS[AggregationMethod(method)](probabilities))


def community_forecast(
    forecasts: Iterable[Forecast],
    as_of: datetime.datetime,
    method: AggregationMethod = AggregationMethod.GEOMETRIC,
) -> float | None:
    return aggregate(snapshot(forecasts, as_of), method)


def forecasts_are_hidden(question: Question, now: datetime.datetime) -> bool:
    return question.hide_forecasts_until is not None and question.hide_forecasts_until > as_utc(now)


def visible_community_forecast(
    question: Question,
    forecasts: Iterable[Forecast],
    now: datetime.datetime,
    method: AggregationMethod = AggregationMethod.GEOMETRIC,
) -> float | None:
    """Community forecast for display, or ``None`` while forecasts are hidden to prevent anchoring."""
    if forecasts_are_hidden(question, now):
        logger.debug("Community forecast for question %s hidden until %s", question.id, question.hide_forecasts_until)
        return None
    return community_forecast(forecasts, now, method)
