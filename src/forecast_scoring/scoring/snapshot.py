import datetime
from collections.abc import Iterable

from forecast_scoring.models import Forecast, as_utc


def snapshot(
    forecasts: Iterable[Forecast], as_of: datetime.datetime
) -> dict[str, Forecast]:
    """Return the most recent forecast per participant made strictly before ``as_of``.

    This is "what the community knew" at that instant: a forecast created at
    exactly ``as_of`` does not count. When two forecasts from the same
    participant share a timestamp, the one seen last wins.

    Args:
        forecasts: Forecast history of a single question, in any order.
        as_of: Reference instant.

    Returns:
        Mapping of participant id to that participant's latest forecast.
    """
    as_of = as_utc(as_of)
    latest: dict[str, Forecast] = {}
    for forecast in forecasts:
        if forecast.created_at >= as_of:
            continue
        current = latest.get(forecast.participant_id)
        if current is None or forecast.created_at >= current.created_at:
            latest[forecast.participant_id] = forecast
    return latest
