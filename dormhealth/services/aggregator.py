"""
Weekly aggregation of raw survey rows into per-unit counts.

The survey store hands over rows already filtered to one (unit, week). Stored
symptom payloads may be JSON text; a payload that does not decode is dropped
for that row only, while the row still counts toward responses and severity.
"""

import json
from collections.abc import Iterable
from datetime import date

import structlog

from dormhealth.domain.models import SurveyResponse, WeeklyUnitAggregate
from dormhealth.errors import AggregationError, SymptomParseError
from dormhealth.services.weeks import week_start_for

logger = structlog.get_logger(__name__)

SICK_SEVERITY = 3
HIGH_SEVERITY = 4


def parse_symptom_payload(payload: list[str] | str | None) -> list[str]:
    """Decode a stored symptom payload into a list of labels.

    Raises:
        SymptomParseError: payload is not a JSON array of strings.
    """
    if payload is None:
        return []
    if isinstance(payload, list):
        decoded: object = payload
    else:
        if not payload.strip():
            return []
        try:
            decoded = json.loads(payload)
        except json.JSONDecodeError as e:
            raise SymptomParseError(payload, f"invalid JSON ({e.msg})") from e

    if not isinstance(decoded, list):
        raise SymptomParseError(payload, f"expected a list, got {type(decoded).__name__}")
    if not all(isinstance(item, str) for item in decoded):
        raise SymptomParseError(payload, "every symptom must be a string")
    return list(decoded)


class WeeklyAggregator:
    """Turns one unit-week of survey rows into a WeeklyUnitAggregate."""

    def __init__(self) -> None:
        self.logger = logger.bind(component="weekly_aggregator")

    def aggregate(
        self, unit_id: str, week_start: date, rows: Iterable[SurveyResponse]
    ) -> WeeklyUnitAggregate:
        """
        Count responses, sick and high-severity rows, and flatten symptoms.

        Raises:
            AggregationError: a row belongs to another unit or week.
        """
        week = week_start_for(week_start)

        total = 0
        sick = 0
        high = 0
        severity_sum = 0
        symptoms: list[str] = []
        skipped_payloads = 0

        for row in rows:
            if row.unit_id != unit_id or week_start_for(row.week_start) != week:
                raise AggregationError(
                    unit_id, f"row for {row.unit_id!r}/{row.week_start} does not match {week}"
                )

            total += 1
            severity_sum += row.severity_level
            if row.severity_level >= SICK_SEVERITY:
                sick += 1
            if row.severity_level >= HIGH_SEVERITY:
                high += 1

            try:
                symptoms.extend(parse_symptom_payload(row.symptoms))
            except SymptomParseError as e:
                skipped_payloads += 1
                self.logger.warning(
                    "symptom_payload_unparseable",
                    unit_id=unit_id,
                    week_start=week.isoformat(),
                    reason=e.reason,
                )

        aggregate = WeeklyUnitAggregate(
            unit_id=unit_id,
            week_start=week,
            total_responses=total,
            sick_count=sick,
            high_severity_count=high,
            avg_severity=severity_sum / total if total else 0.0,
            symptoms=symptoms,
        )

        self.logger.debug(
            "unit_week_aggregated",
            unit_id=unit_id,
            week_start=week.isoformat(),
            total_responses=total,
            sick_count=sick,
            high_severity_count=high,
            skipped_payloads=skipped_payloads,
        )
        return aggregate
