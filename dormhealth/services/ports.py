"""
Collaborator protocols the analysis pipeline depends on.

Why Protocol over ABC: Structural typing, easier mocking, less coupling.
Design: async-first; implementations are injected into the orchestrator, so
there is no process-wide database handle. Any exception raised by a
collaborator is treated as a per-unit failure by the caller.
"""

from collections.abc import Sequence
from datetime import date, datetime
from typing import Protocol

from dormhealth.domain.models import Severity, SurveyResponse, TrendRecord


class SurveyStore(Protocol):
    """Read access to raw weekly survey rows."""

    async def fetch_units_with_responses(self, week_start: date) -> Sequence[str]:
        """Units that have at least one survey row for `week_start`."""
        ...

    async def fetch_week_rows(self, unit_id: str, week_start: date) -> Sequence[SurveyResponse]:
        """All survey rows of one unit for one week."""
        ...


class TrendStore(Protocol):
    """Durable storage of per-unit weekly trend records."""

    async def upsert_trend_record(self, record: TrendRecord) -> None:
        """Insert or overwrite the record keyed by (unit_id, week_start)."""
        ...

    async def fetch_trend_history(self, unit_id: str, since_week: date) -> Sequence[TrendRecord]:
        """Records with week_start >= since_week, ordered ascending by week."""
        ...

    async def fetch_week_records(
        self, week_start: date, min_score: float = 0.0
    ) -> Sequence[TrendRecord]:
        """Records of one week with trend_score >= min_score, highest score first."""
        ...


class NotificationStore(Protocol):
    """Write side of the notification surface plus the dedup lookup."""

    async def has_active_notification_since(self, unit_id: str, since: datetime) -> bool:
        ...

    async def insert_notification(self, unit_id: str, message: str, severity: Severity) -> int:
        """Persist a new active notification and return its id."""
        ...
