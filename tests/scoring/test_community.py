import datetime

import pytest
from conftest import T0, at, make_forecast

from forecast_scoring.models import AggregationMethod, Question
from forecast_scoring.scoring.community import (
    aggregate,
    community_forecast,
    forecasts_are_hidden,
    geometric_mean,
    visible_community_forecast,
)


def pool(*probabilities: float) -> dict:
    return {f"p{i}": make_forecast(f"p{i}", p, i) for i, p in enumerate(probabilities)}


def test_geometric_mean_of_equal_forecasts():
    assert aggregate(pool(0.5, 0.5)) == pytest.approx(0.5)


def test_geometric_mean_of_spread_forecasts():
    assert aggregate(pool(0.2, 0.8), AggregationMethod.GEOMETRIC) == pytest.approx(0.4)


def test_empty_snapshot_is_undefined():
    assert aggregate({}) is None
    assert aggregate({}, AggregationMethod.ARITHMETIC) is None
    assert aggregate({}, AggregationMethod.MEDIAN) is None


def test_zero_forecast_dominates_geometric_pool():
    assert aggregate(pool(0.0, 0.9, 0.8)) == 0.0


def test_arithmetic_mean():
    assert aggregate(pool(0.2, 0.8), AggregationMethod.ARITHMETIC) == pytest.approx(0.5)


def test_median():
    assert aggregate(pool(0.1, 0.7, 0.4), AggregationMethod.MEDIAN) == pytest.approx(0.4)
    assert aggregate(pool(0.1, 0.7, 0.4, 0.5), "median") == pytest.approx(0.45)


def test_geometric_mean_does_not_underflow_for_large_pools():
    probabilities = [1e-3] * 500
    assert geometric_mean(probabilities) == pytest.approx(1e-3)


def test_aggregation_is_order_independent():
    forward = pool(0.1, 0.35, 0.9)
    backward = dict(reversed(list(forward.items())))
    for method in AggregationMethod:
        assert aggregate(forward, method) == pytest.approx(aggregate(backward, method))


def test_community_forecast_uses_latest_forecast_per_participant():
    forecasts = [
        make_forecast("alice", 0.1, 1),
        make_forecast("alice", 0.5, 2),
        make_forecast("bob", 0.5, 3),
        make_forecast("bob", 0.99, 20),
    ]
    assert community_forecast(forecasts, at(10)) == pytest.approx(0.5)


def test_hidden_forecasts_are_not_shown():
    question = Question(id="q1", title="t", created_at=T0, hide_forecasts_until=at(60))
    forecasts = [make_forecast("alice", 0.3, 1)]
    assert forecasts_are_hidden(question, at(30))
    assert visible_community_forecast(question, forecasts, at(30)) is None
    assert not forecasts_are_hidden(question, at(61))
    assert visible_community_forecast(question, forecasts, at(61)) == pytest.approx(0.3)


def test_question_without_hide_date_is_visible():
    question = Question(id="q1", title="t", created_at=T0)
    now = T0 + datetime.timedelta(days=1)
    assert visible_community_forecast(question, [], now) is None
    assert not forecasts_are_hidden(question, now)
