"""
Alert decisions for unit-weeks.

Two triggers exist:
- RISK_SCORE (weekly batch over persisted trend scores):
  >= 70 high, >= 55 medium, >= 40 low, otherwise no alert.
- ON_DEMAND (manual generation over the live aggregate):
  >= 70 high, >= 40 medium, otherwise low if at least 15% report being sick.

Whatever the trigger, a unit with an active notification created inside the
dedup window never gets another one. The policy only decides; writing the
notification is the caller's job.
"""

import structlog

from dormhealth.config import AlertConfig
from dormhealth.domain.models import AlertDecision, AlertTrigger, RiskLevel, Severity

logger = structlog.get_logger(__name__)

_RISK_SCORE_TEMPLATES = {
    Severity.HIGH: (
        "HEALTH ALERT: {unit} shows high illness activity ({pct} reporting symptoms). "
        "Take extra precautions and consider limiting social gatherings."
    ),
    Severity.MEDIUM: (
        "Health Advisory: {unit} has elevated illness levels ({pct} reporting symptoms). "
        "Practice good hygiene and monitor symptoms closely."
    ),
    Severity.LOW: (
        "Health Notice: {unit} is showing increased illness activity ({pct} reporting "
        "symptoms). Stay vigilant with preventive measures."
    ),
}

_ON_DEMAND_TEMPLATES = {
    Severity.HIGH: (
        "HIGH HEALTH ALERT: {unit} is experiencing elevated illness levels ({pct} reporting "
        "symptoms). Consider staying indoors, wearing masks, and avoiding common areas when "
        "possible."
    ),
    Severity.MEDIUM: (
        "HEALTH NOTICE: {unit} has moderate illness activity ({pct} reporting symptoms). "
        "Practice good hygiene and monitor your health closely."
    ),
    Severity.LOW: (
        "Health Update: {unit} has some illness activity ({pct} reporting symptoms). "
        "Continue practicing preventive measures."
    ),
}


def format_sick_pct(sick_pct: float) -> str:
    """Render a 0-1 share as a percentage with one decimal place."""
    return f"{sick_pct * 100:.1f}%"


class AlertPolicy:
    """Decides whether and how loudly to notify a unit. Never writes."""

    def __init__(self, config: AlertConfig | None = None) -> None:
        self.config = config or AlertConfig()
        self.logger = logger.bind(component="alert_policy")

    def risk_level(self, score: float) -> RiskLevel:
        """Read-side bucket: high >= 70, medium >= 40, else low."""
        if score >= self.config.high_threshold:
            return RiskLevel.HIGH
        if score >= self.config.on_demand_medium_threshold:
            return RiskLevel.MEDIUM
        return RiskLevel.LOW

    def severity_for(
        self, score: float, sick_pct: float, trigger: AlertTrigger = AlertTrigger.RISK_SCORE
    ) -> Severity | None:
        """Severity a trigger assigns to a score, or None if it stays silent."""
        if score >= self.config.high_threshold:
            return Severity.HIGH

        if trigger is AlertTrigger.RISK_SCORE:
            if score >= self.config.medium_threshold:
                return Severity.MEDIUM
            if score >= self.config.batch_floor:
                return Severity.LOW
            return None

        if score >= self.config.on_demand_medium_threshold:
            return Severity.MEDIUM
        if sick_pct >= self.config.on_demand_sick_pct_floor:
            return Severity.LOW
        return None

    def decide(
        self,
        unit_id: str,
        current_score: float,
        has_recent_active_notification: bool,
        sick_pct: float,
        trigger: AlertTrigger = AlertTrigger.RISK_SCORE,
    ) -> AlertDecision:
        severity = self.severity_for(current_score, sick_pct, trigger)
        return self.decision_for(
            unit_id, severity, current_score, has_recent_active_notification, sick_pct, trigger
        )

    def decision_for(
        self,
        unit_id: str,
        severity: Severity | None,
        current_score: float,
        has_recent_active_notification: bool,
        sick_pct: float,
        trigger: AlertTrigger = AlertTrigger.RISK_SCORE,
    ) -> AlertDecision:
        """Build the decision for a severity already chosen by `severity_for`."""
        if severity is None:
            return AlertDecision(
                unit_id=unit_id, severity=None, message="", should_emit=False, trigger=trigger
            )

        if trigger is AlertTrigger.RISK_SCORE:
            templates = _RISK_SCORE_TEMPLATES
        else:
            templates = _ON_DEMAND_TEMPLATES
        message = templates[severity].format(unit=unit_id, pct=format_sick_pct(sick_pct))

        if has_recent_active_notification:
            self.logger.info(
                "alert_suppressed_duplicate",
                unit_id=unit_id,
                severity=severity.value,
                score=round(current_score, 2),
                dedup_window_days=self.config.dedup_window_days,
            )

        return AlertDecision(
            unit_id=unit_id,
            severity=severity,
            message=message,
            should_emit=not has_recent_active_notification,
            trigger=trigger,
        )
