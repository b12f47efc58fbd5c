"""
Next-week trend forecast from recent weekly scores.

Ordinary least squares of score against a 0-based week index (sequential
position, not calendar distance), fitted with `scipy.stats.linregress`. Slope
beyond +/-2 points per week sets the direction; r^2 becomes the confidence
percentage.
"""

import math
from collections.abc import Sequence

import numpy as np
import structlog
from scipy import stats

from dormhealth.domain.models import Prediction, ScorePoint, TrendDirection

logger = structlog.get_logger(__name__)

SLOPE_THRESHOLD = 2.0


class TrendPredictor:
    """Linear-regression forecaster. Never raises on numeric trouble."""

    def __init__(self, slope_threshold: float = SLOPE_THRESHOLD) -> None:
        self.slope_threshold = slope_threshold
        self.logger = logger.bind(component="trend_predictor")

    def predict(self, history: Sequence[ScorePoint], unit_id: str = "") -> Prediction:
        """
        Forecast the direction of the next week's score.

        `history` must be ordered by week ascending. Fewer than two points
        yields a zero-confidence stable prediction anchored on the last score.
        """
        if len(history) < 2:
            return Prediction(
                unit_id=unit_id,
                direction=TrendDirection.STABLE,
                confidence_percent=0,
                slope=0.0,
                next_week_estimate=history[-1].score if history else 0.0,
            )

        scores = np.asarray([point.score for point in history], dtype=float)
        weeks = np.arange(len(scores), dtype=float)

        # linregress reports r = 0 for a constant series; a flat line is a perfect fit
        if np.all(np.isfinite(scores)) and scores.min() == scores.max():
            return Prediction(
                unit_id=unit_id,
                direction=TrendDirection.STABLE,
                confidence_percent=100,
                slope=0.0,
                next_week_estimate=float(scores[-1]),
            )

        try:
            fit = stats.linregress(weeks, scores)
            slope = float(fit.slope)
            intercept = float(fit.intercept)
            r_squared = float(fit.rvalue) ** 2
            if not all(math.isfinite(value) for value in (slope, intercept, r_squared)):
                raise ArithmeticError("regression produced a non-finite coefficient")
            confidence = min(max(round(r_squared * 100), 0), 100)
        except Exception as e:
            self.logger.warning("trend_regression_failed", unit_id=unit_id, error=str(e))
            return Prediction(
                unit_id=unit_id, direction=TrendDirection.STABLE, confidence_percent=0
            )

        if slope > self.slope_threshold:
            direction = TrendDirection.INCREASING
        elif slope < -self.slope_threshold:
            direction = TrendDirection.DECREASING
        else:
            direction = TrendDirection.STABLE

        return Prediction(
            unit_id=unit_id,
            direction=direction,
            confidence_percent=confidence,
            slope=slope,
            next_week_estimate=slope * len(scores) + intercept,
        )
