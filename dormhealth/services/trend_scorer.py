"""
Composite 0-100 risk score for one unit-week.

    base  = sick_pct * 40 + high_severity_pct * 30 + (avg_severity / 5) * 30
    bonus = 10 when one symptom category holds more than 70% of categorized reports
    score = min(base + bonus, 100)

A diversity term (share of the five top-symptom slots in use, scaled to 20) is
computed and reported with the breakdown, but it is not added to the score:
persisted scores must stay comparable with the existing history.
"""

import structlog

from dormhealth.config import ScoringConfig
from dormhealth.domain.models import ScoreBreakdown, SymptomAnalysis, WeeklyUnitAggregate

logger = structlog.get_logger(__name__)

SICK_WEIGHT = 40.0
HIGH_SEVERITY_WEIGHT = 30.0
SEVERITY_WEIGHT = 30.0
MAX_SEVERITY = 5.0
MAX_SCORE = 100.0


class TrendScorer:
    """Stateless scorer; every method is a pure function of its inputs."""

    def __init__(self, config: ScoringConfig | None = None) -> None:
        self.config = config or ScoringConfig()

    def risk_score(self, aggregate: WeeklyUnitAggregate) -> float:
        """Base score from response counts and severity alone (no symptom data)."""
        if aggregate.total_responses == 0:
            return 0.0
        return (
            aggregate.sick_pct * SICK_WEIGHT
            + aggregate.high_severity_pct * HIGH_SEVERITY_WEIGHT
            + (aggregate.avg_severity / MAX_SEVERITY) * SEVERITY_WEIGHT
        )

    def breakdown(
        self, aggregate: WeeklyUnitAggregate, analysis: SymptomAnalysis
    ) -> ScoreBreakdown:
        sick_component = aggregate.sick_pct * SICK_WEIGHT
        high_component = aggregate.high_severity_pct * HIGH_SEVERITY_WEIGHT
        severity_component = (aggregate.avg_severity / MAX_SEVERITY) * SEVERITY_WEIGHT
        base = self.risk_score(aggregate)

        top_slots = self.config.top_symptom_count
        diversity = min(len(analysis.top_symptoms) / top_slots, 1.0) * self.config.diversity_weight

        concentration_ratio = 0.0
        bonus = 0.0
        total_categorized = sum(analysis.category_scores.values())
        if aggregate.total_responses > 0 and total_categorized > 0:
            concentration_ratio = max(analysis.category_scores.values()) / total_categorized
            if concentration_ratio > self.config.concentration_threshold:
                bonus = self.config.concentration_bonus

        return ScoreBreakdown(
            sick_component=sick_component,
            high_severity_component=high_component,
            severity_component=severity_component,
            base=base,
            diversity=diversity,
            concentration_ratio=concentration_ratio,
            concentration_bonus=bonus,
            score=min(base + bonus, MAX_SCORE),
        )

    def score(self, aggregate: WeeklyUnitAggregate, analysis: SymptomAnalysis) -> float:
        return self.breakdown(aggregate, analysis).score
