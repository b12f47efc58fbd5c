"""
SQLite-backed survey, trend and notification stores.

Uses SQLAlchemy Core against the schema the survey application writes:
- surveys: one anonymous row per user per week, symptoms as JSON text
- health_trends: one row per (week_start, unit_id), written by upsert
- notifications: alert messages with an `active` flag

SQLAlchemy calls are blocking, so every operation runs in a worker thread and
is serialized through one lock (SQLite allows a single writer anyway).
"""

import asyncio
import json
from collections.abc import Callable, Sequence
from datetime import UTC, date, datetime
from typing import Any, TypeVar

import structlog
from sqlalchemy import (
    Boolean,
    Column,
    Date,
    DateTime,
    Float,
    Integer,
    MetaData,
    String,
    Table,
    Text,
    UniqueConstraint,
    create_engine,
    select,
    update,
)
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.engine import Engine, RowMapping
from sqlalchemy.pool import StaticPool

from dormhealth.config import DatabaseConfig
from dormhealth.domain.models import (
    Notification,
    Severity,
    SurveyResponse,
    SymptomCount,
    TrendRecord,
)

logger = structlog.get_logger(__name__)

T = TypeVar("T")

metadata = MetaData()

surveys = Table(
    "surveys",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("unit_id", String(100), nullable=False, index=True),
    Column("week_start", Date, nullable=False, index=True),
    Column("symptoms", Text),  # JSON array of labels
    Column("severity_level", Integer, nullable=False),
    Column("submitted_at", DateTime, nullable=False),
)

health_trends = Table(
    "health_trends",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("week_start", Date, nullable=False),
    Column("unit_id", String(100), nullable=False),
    Column("total_responses", Integer, nullable=False),
    Column("sick_count", Integer, nullable=False),
    Column("common_symptoms", Text, nullable=False),  # JSON list of {label, count}
    Column("trend_score", Float, nullable=False),
    Column("analyzed_at", DateTime, nullable=False),
    UniqueConstraint("week_start", "unit_id", name="uq_health_trends_week_unit"),
)

notifications = Table(
    "notifications",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("unit_id", String(100), nullable=False, index=True),
    Column("message", Text, nullable=False),
    Column("severity", String(10), nullable=False),
    Column("created_at", DateTime, nullable=False),
    Column("active", Boolean, nullable=False, default=True),
)


def _to_db_time(moment: datetime) -> datetime:
    """SQLite has no timezone support: store naive UTC."""
    if moment.tzinfo is None:
        return moment
    return moment.astimezone(UTC).replace(tzinfo=None)


def _from_db_time(moment: datetime) -> datetime:
    return moment.replace(tzinfo=UTC)


def create_sqlite_engine(config: DatabaseConfig) -> Engine:
    if config.url.startswith("sqlite"):
        return create_engine(
            config.url,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
            echo=config.echo,
        )
    return create_engine(config.url, echo=config.echo)


class SQLiteHealthStore:
    """Implements SurveyStore, TrendStore and NotificationStore on one database."""

    def __init__(
        self,
        config: DatabaseConfig | None = None,
        engine: Engine | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self.config = config or DatabaseConfig()
        self.engine = engine or create_sqlite_engine(self.config)
        self._clock = clock or (lambda: datetime.now(UTC))
        self._lock = asyncio.Lock()
        self.logger = logger.bind(component="sqlite_store", url=self.engine.url.render_as_string())

    def create_tables(self) -> None:
        metadata.create_all(self.engine)

    def dispose(self) -> None:
        self.engine.dispose()

    async def _run(self, fn: Callable[..., T], *args: Any) -> T:
        async with self._lock:
            return await asyncio.to_thread(fn, *args)

    # Seeding

    def add_survey_response(self, response: SurveyResponse) -> int:
        """Insert one survey row synchronously (demo and test seeding)."""
        payload = (
            response.symptoms
            if isinstance(response.symptoms, str)
            else json.dumps(response.symptoms)
        )
        with self.engine.begin() as conn:
            result = conn.execute(
                surveys.insert().values(
                    unit_id=response.unit_id,
                    week_start=response.week_start,
                    symptoms=payload,
                    severity_level=response.severity_level,
                    submitted_at=_to_db_time(self._clock()),
                )
            )
            return int(result.inserted_primary_key[0])

    # SurveyStore

    async def fetch_units_with_responses(self, week_start: date) -> Sequence[str]:
        def query() -> list[str]:
            stmt = (
                select(surveys.c.unit_id)
                .where(surveys.c.week_start == week_start)
                .distinct()
                .order_by(surveys.c.unit_id)
            )
            with self.engine.connect() as conn:
                return list(conn.execute(stmt).scalars())

        return await self._run(query)

    async def fetch_week_rows(self, unit_id: str, week_start: date) -> Sequence[SurveyResponse]:
        def query() -> list[SurveyResponse]:
            stmt = (
                select(
                    surveys.c.unit_id,
                    surveys.c.week_start,
                    surveys.c.symptoms,
                    surveys.c.severity_level,
                )
                .where(surveys.c.unit_id == unit_id, surveys.c.week_start == week_start)
                .order_by(surveys.c.id)
            )
            with self.engine.connect() as conn:
                rows = conn.execute(stmt).mappings().all()
            return [
                SurveyResponse(
                    unit_id=row["unit_id"],
                    week_start=row["week_start"],
                    symptoms=row["symptoms"] or "",
                    severity_level=row["severity_level"],
                )
                for row in rows
            ]

        return await self._run(query)

    # TrendStore

    async def upsert_trend_record(self, record: TrendRecord) -> None:
        values = {
            "week_start": record.week_start,
            "unit_id": record.unit_id,
            "total_responses": record.total_responses,
            "sick_count": record.sick_count,
            "common_symptoms": json.dumps([s.model_dump() for s in record.common_symptoms]),
            "trend_score": record.trend_score,
            "analyzed_at": _to_db_time(record.analyzed_at),
        }

        def write() -> None:
            stmt = sqlite_insert(health_trends).values(**values)
            stmt = stmt.on_conflict_do_update(
                index_elements=[health_trends.c.week_start, health_trends.c.unit_id],
                set_={
                    key: stmt.excluded[key]
                    for key in values
                    if key not in ("week_start", "unit_id")
                },
            )
            with self.engine.begin() as conn:
                conn.execute(stmt)

        await self._run(write)

    async def fetch_trend_history(self, unit_id: str, since_week: date) -> Sequence[TrendRecord]:
        def query() -> list[TrendRecord]:
            stmt = (
                select(health_trends)
                .where(
                    health_trends.c.unit_id == unit_id,
                    health_trends.c.week_start >= since_week,
                )
                .order_by(health_trends.c.week_start)
            )
            with self.engine.connect() as conn:
                return [self._to_record(row) for row in conn.execute(stmt).mappings()]

        return await self._run(query)

    async def fetch_week_records(
        self, week_start: date, min_score: float = 0.0
    ) -> Sequence[TrendRecord]:
        def query() -> list[TrendRecord]:
            stmt = (
                select(health_trends)
                .where(
                    health_trends.c.week_start == week_start,
                    health_trends.c.trend_score >= min_score,
                )
                .order_by(health_trends.c.trend_score.desc())
            )
            with self.engine.connect() as conn:
                return [self._to_record(row) for row in conn.execute(stmt).mappings()]

        return await self._run(query)

    @staticmethod
    def _to_record(row: RowMapping) -> TrendRecord:
        return TrendRecord(
            unit_id=row["unit_id"],
            week_start=row["week_start"],
            total_responses=row["total_responses"],
            sick_count=row["sick_count"],
            common_symptoms=[SymptomCount(**item) for item in json.loads(row["common_symptoms"])],
            trend_score=row["trend_score"],
            analyzed_at=_from_db_time(row["analyzed_at"]),
        )

    # NotificationStore

    async def has_active_notification_since(self, unit_id: str, since: datetime) -> bool:
        def query() -> bool:
            stmt = (
                select(notifications.c.id)
                .where(
                    notifications.c.unit_id == unit_id,
                    notifications.c.active.is_(True),
                    notifications.c.created_at >= _to_db_time(since),
                )
                .limit(1)
            )
            with self.engine.connect() as conn:
                return conn.execute(stmt).first() is not None

        return await self._run(query)

    async def insert_notification(self, unit_id: str, message: str, severity: Severity) -> int:
        created_at = _to_db_time(self._clock())

        def write() -> int:
            with self.engine.begin() as conn:
                result = conn.execute(
                    notifications.insert().values(
                        unit_id=unit_id,
                        message=message,
                        severity=severity.value,
                        created_at=created_at,
                        active=True,
                    )
                )
                return int(result.inserted_primary_key[0])

        notification_id = await self._run(write)
        self.logger.debug("notification_inserted", unit_id=unit_id, notification_id=notification_id)
        return notification_id

    # Read surface

    async def list_active_notifications(self, unit_id: str | None = None) -> list[Notification]:
        def query() -> list[Notification]:
            stmt = select(notifications).where(notifications.c.active.is_(True))
            if unit_id is not None:
                stmt = stmt.where(notifications.c.unit_id == unit_id)
            stmt = stmt.order_by(notifications.c.created_at.desc(), notifications.c.id.desc())
            with self.engine.connect() as conn:
                return [
                    Notification(
                        id=row["id"],
                        unit_id=row["unit_id"],
                        message=row["message"],
                        severity=Severity(row["severity"]),
                        created_at=_from_db_time(row["created_at"]),
                        active=row["active"],
                    )
                    for row in conn.execute(stmt).mappings()
                ]

        return await self._run(query)

    async def deactivate_notification(self, notification_id: int) -> bool:
        def write() -> bool:
            stmt = (
                update(notifications)
                .where(notifications.c.id == notification_id, notifications.c.active.is_(True))
                .values(active=False)
            )
            with self.engine.begin() as conn:
                return conn.execute(stmt).rowcount > 0

        return await self._run(write)
