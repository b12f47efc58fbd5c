"""Tests for the linear-regression trend forecast."""

import pytest
from hypothesis import assume, given
from hypothesis import strategies as st
from scipy import stats

from dormhealth.domain.models import ScorePoint, TrendDirection
from dormhealth.services.trend_predictor import TrendPredictor


def points(*scores: float) -> list[ScorePoint]:
    return [ScorePoint(week=index, score=score) for index, score in enumerate(scores)]


@pytest.fixture
def predictor() -> TrendPredictor:
    return TrendPredictor()


def test_single_point_is_stable_with_no_confidence(predictor: TrendPredictor) -> None:
    prediction = predictor.predict(points(10))

    assert prediction.direction is TrendDirection.STABLE
    assert prediction.confidence_percent == 0
    assert prediction.next_week_estimate == 10


def test_empty_history_is_stable(predictor: TrendPredictor) -> None:
    prediction = predictor.predict([])

    assert prediction.direction is TrendDirection.STABLE
    assert prediction.confidence_percent == 0
    assert prediction.next_week_estimate == 0.0


def test_perfect_increasing_line(predictor: TrendPredictor) -> None:
    prediction = predictor.predict(points(10, 20, 30), unit_id="Hall-A")

    assert prediction.unit_id == "Hall-A"
    assert prediction.direction is TrendDirection.INCREASING
    assert prediction.slope == pytest.approx(10.0)
    assert prediction.confidence_percent == 100
    assert prediction.next_week_estimate == pytest.approx(40.0)


def test_decreasing_line(predictor: TrendPredictor) -> None:
    prediction = predictor.predict(points(60, 50, 40))

    assert prediction.direction is TrendDirection.DECREASING
    assert prediction.slope == pytest.approx(-10.0)


def test_flat_series_is_a_perfect_stable_fit(predictor: TrendPredictor) -> None:
    prediction = predictor.predict(points(50, 50, 50, 50))

    assert prediction.direction is TrendDirection.STABLE
    assert prediction.confidence_percent == 100
    assert prediction.next_week_estimate == pytest.approx(50.0)


def test_small_slope_stays_stable(predictor: TrendPredictor) -> None:
    prediction = predictor.predict(points(30, 31, 32, 33))

    assert prediction.slope == pytest.approx(1.0)
    assert prediction.direction is TrendDirection.STABLE


def test_noisy_series_reports_partial_confidence(predictor: TrendPredictor) -> None:
    prediction = predictor.predict(points(10, 30, 20, 40))

    # slope 8, intercept 13, R^2 = 1 - 180 / 500
    assert prediction.slope == pytest.approx(8.0)
    assert prediction.direction is TrendDirection.INCREASING
    assert prediction.confidence_percent == 64


def test_week_index_is_positional(predictor: TrendPredictor) -> None:
    """Calendar gaps between points do not change the fit."""
    sparse = [
        ScorePoint(week=0, score=10),
        ScorePoint(week=5, score=20),
        ScorePoint(week=9, score=30),
    ]

    assert predictor.predict(sparse).slope == pytest.approx(10.0)


def test_numeric_failure_falls_back_to_stable(predictor: TrendPredictor) -> None:
    prediction = predictor.predict(points(10, float("inf"), 30))

    assert prediction.direction is TrendDirection.STABLE
    assert prediction.confidence_percent == 0


def test_custom_slope_threshold() -> None:
    prediction = TrendPredictor(slope_threshold=0.5).predict(points(30, 31, 32, 33))

    assert prediction.direction is TrendDirection.INCREASING


@given(scores=st.lists(st.floats(min_value=0.0, max_value=100.0), min_size=2, max_size=12))
def test_confidence_always_a_percentage(scores: list[float]) -> None:
    """Property-based test: any in-range history yields a bounded confidence."""
    prediction = TrendPredictor().predict(points(*scores))

    assert 0 <= prediction.confidence_percent <= 100
    assert prediction.direction in {
        TrendDirection.INCREASING,
        TrendDirection.DECREASING,
        TrendDirection.STABLE,
    }


@given(
    scores=st.lists(
        st.integers(min_value=0, max_value=100).map(float), min_size=3, max_size=10
    )
)
def test_fit_agrees_with_least_squares(scores: list[float]) -> None:
    assume(len(set(scores)) > 1)
    fit = stats.linregress(range(len(scores)), scores)

    prediction = TrendPredictor().predict(points(*scores))

    assert prediction.slope == pytest.approx(fit.slope, abs=1e-9)
    assert prediction.confidence_percent == round(fit.rvalue**2 * 100)
    assert prediction.next_week_estimate == pytest.approx(
        fit.slope * len(scores) + fit.intercept, abs=1e-6
    )
