"""
In-memory implementation of the survey, trend and notification stores.

Backs unit tests and local demos. Implements all three collaborator
protocols on one object so a single instance can be passed three times.
"""

import asyncio
from collections.abc import Callable, Iterable, Sequence
from datetime import UTC, date, datetime

from dormhealth.domain.models import Notification, Severity, SurveyResponse, TrendRecord


class InMemoryHealthStore:
    """Dict-backed store. Trend records are keyed by (unit_id, week_start)."""

    def __init__(
        self,
        responses: Iterable[SurveyResponse] = (),
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self.responses: list[SurveyResponse] = list(responses)
        self.trends: dict[tuple[str, date], TrendRecord] = {}
        self.notifications: list[Notification] = []
        self._clock = clock or (lambda: datetime.now(UTC))
        self._next_notification_id = 1
        self._lock = asyncio.Lock()

    def add_survey_response(self, response: SurveyResponse) -> None:
        self.responses.append(response)

    # SurveyStore

    async def fetch_units_with_responses(self, week_start: date) -> Sequence[str]:
        units = dict.fromkeys(r.unit_id for r in self.responses if r.week_start == week_start)
        return sorted(units)

    async def fetch_week_rows(self, unit_id: str, week_start: date) -> Sequence[SurveyResponse]:
        return [
            r for r in self.responses if r.unit_id == unit_id and r.week_start == week_start
        ]

    # TrendStore

    async def upsert_trend_record(self, record: TrendRecord) -> None:
        self.trends[(record.unit_id, record.week_start)] = record

    async def fetch_trend_history(self, unit_id: str, since_week: date) -> Sequence[TrendRecord]:
        history = [
            record
            for (record_unit, week), record in self.trends.items()
            if record_unit == unit_id and week >= since_week
        ]
        return sorted(history, key=lambda record: record.week_start)

    async def fetch_week_records(
        self, week_start: date, min_score: float = 0.0
    ) -> Sequence[TrendRecord]:
        records = [
            record
            for (_, week), record in self.trends.items()
            if week == week_start and record.trend_score >= min_score
        ]
        return sorted(records, key=lambda record: record.trend_score, reverse=True)

    # NotificationStore

    async def has_active_notification_since(self, unit_id: str, since: datetime) -> bool:
        return any(
            n.active and n.unit_id == unit_id and n.created_at >= since
            for n in self.notifications
        )

    async def insert_notification(self, unit_id: str, message: str, severity: Severity) -> int:
        async with self._lock:
            notification = Notification(
                id=self._next_notification_id,
                unit_id=unit_id,
                message=message,
                severity=severity,
                created_at=self._clock(),
            )
            self._next_notification_id += 1
            self.notifications.append(notification)
        return notification.id

    # Read surface

    async def list_active_notifications(self, unit_id: str | None = None) -> list[Notification]:
        active = [
            n for n in self.notifications if n.active and (unit_id is None or n.unit_id == unit_id)
        ]
        return sorted(active, key=lambda n: n.created_at, reverse=True)

    async def deactivate_notification(self, notification_id: int) -> bool:
        for n in self.notifications:
            if n.id == notification_id and n.active:
                n.active = False
                return True
        return False
