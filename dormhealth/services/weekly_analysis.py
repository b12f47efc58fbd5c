"""
Weekly analysis orchestration: the end-to-end pipeline.

One batch run walks:
1. Fetch the units that answered surveys this week
2. Per unit (concurrently): aggregate -> classify -> score -> upsert trend record
3. Fetch each analyzed unit's recent history and forecast next week
4. Decide and emit deduplicated alerts from the persisted scores

Architecture pattern: fail-soft pipeline. A unit whose store call or data
blows up is logged and skipped; the batch itself always completes.
"""

import asyncio
import contextlib
import time
from collections.abc import Awaitable, Callable, Sequence
from datetime import UTC, date, datetime, timedelta
from typing import TypeVar

import structlog

from dormhealth.config import AppConfig, get_config
from dormhealth.domain.models import (
    AlertTrigger,
    GeneratedAlert,
    Prediction,
    RiskAssessment,
    ScorePoint,
    TrendDirection,
    TrendRecord,
    UnitInsights,
    WeeklyAnalysisReport,
    WeeklyUnitAggregate,
)
from dormhealth.errors import AggregationError
from dormhealth.services.aggregator import WeeklyAggregator
from dormhealth.services.alert_policy import AlertPolicy
from dormhealth.services.ports import NotificationStore, SurveyStore, TrendStore
from dormhealth.services.result import Result
from dormhealth.services.symptom_classifier import SymptomClassifier
from dormhealth.services.trend_predictor import TrendPredictor
from dormhealth.services.trend_scorer import TrendScorer
from dormhealth.services.weeks import week_start_for, weeks_before

logger = structlog.get_logger(__name__)

T = TypeVar("T")

INSIGHT_DIRECTION_DELTA = 5.0
COMMON_SYMPTOM_LIMIT = 5


def _utc_now() -> datetime:
    return datetime.now(UTC)


class WeeklyAnalysisOrchestrator:
    """
    Runs the weekly batch and the on-demand entry points over injected stores.

    Design principles:
    - Collaborators are passed in, never looked up globally
    - Per-unit failures are isolated (partial success is the normal case)
    - Trend records are upserts, so re-running a week is idempotent
    - Alert dedup check and insert are serialized per unit within this instance
    """

    def __init__(
        self,
        survey_store: SurveyStore,
        trend_store: TrendStore,
        notification_store: NotificationStore,
        config: AppConfig | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self.survey_store = survey_store
        self.trend_store = trend_store
        self.notification_store = notification_store
        self.config = config or get_config()
        self._clock = clock or _utc_now
        self.logger = logger.bind(component="weekly_analysis")

        self.aggregator = WeeklyAggregator()
        self.classifier = SymptomClassifier(top_n=self.config.scoring.top_symptom_count)
        self.scorer = TrendScorer(self.config.scoring)
        self.predictor = TrendPredictor()
        self.policy = AlertPolicy(self.config.alerts)

        self._alert_locks: dict[str, asyncio.Lock] = {}

    def current_week_start(self) -> date:
        return week_start_for(self._clock())

    # ------------------------------------------------------------------
    # Entry points
    # ------------------------------------------------------------------

    async def run_weekly_analysis(self, week_start: date | None = None) -> WeeklyAnalysisReport:
        """Scheduled batch: score, persist, forecast and alert for one week."""
        week = week_start_for(week_start) if week_start else self.current_week_start()
        started_at = self._clock()
        start = time.perf_counter()
        self.logger.info("weekly_analysis_started", week_start=week.isoformat())

        records, failed_units = await self._analyze_week(week)
        predictions = await self._predict_units(week, [record.unit_id for record in records])
        alerts = await self._emit_batch_alerts(week)

        duration = time.perf_counter() - start
        self.logger.info(
            "weekly_analysis_completed",
            week_start=week.isoformat(),
            units_analyzed=len(records),
            units_failed=len(failed_units),
            predictions=len(predictions),
            alerts_emitted=len(alerts),
            duration_seconds=round(duration, 3),
        )

        return WeeklyAnalysisReport(
            week_start=week,
            records=records,
            predictions=predictions,
            alerts=alerts,
            failed_units=failed_units,
            started_at=started_at,
            duration_seconds=duration,
        )

    async def analyze_current_week(self) -> list[TrendRecord]:
        """Manual trigger: refresh this week's trend records without alerting."""
        records, _ = await self._analyze_week(self.current_week_start())
        return records

    async def get_unit_insights(self, unit_id: str, weeks_back: int | None = None) -> UnitInsights:
        """Summary of a unit's most recent `weeks_back` weeks of trend records."""
        if weeks_back is None:
            weeks_back = self.config.analysis.insights_weeks
        if weeks_back < 1:
            raise ValueError(f"weeks_back must be at least 1, got {weeks_back}")
        since = weeks_before(self.current_week_start(), weeks_back - 1)
        history = list(await self.trend_store.fetch_trend_history(unit_id, since))

        newest_first = sorted(history, key=lambda record: record.week_start, reverse=True)
        current = newest_first[0] if newest_first else None
        scores = [record.trend_score for record in newest_first]

        return UnitInsights(
            unit_id=unit_id,
            current_trend=current,
            average_score=sum(scores) / len(scores) if scores else 0.0,
            trend_direction=self._recent_direction(newest_first),
            risk_level=self.policy.risk_level(current.trend_score if current else 0.0),
        )

    async def assess_risk_levels(self, week_start: date | None = None) -> list[RiskAssessment]:
        """Live risk snapshot of every unit with responses, highest risk first."""
        week = week_start_for(week_start) if week_start else self.current_week_start()
        units = await self._list_units(week)

        async def assess(unit_id: str) -> RiskAssessment:
            aggregate = await self._aggregate_unit(unit_id, week)
            risk_score = self.scorer.risk_score(aggregate)
            return RiskAssessment(
                unit_id=unit_id,
                total_responses=aggregate.total_responses,
                sick_count=aggregate.sick_count,
                sick_pct=aggregate.sick_pct,
                avg_severity=aggregate.avg_severity,
                risk_score=risk_score,
                risk_level=self.policy.risk_level(risk_score),
            )

        results = await self._for_each_unit(units, assess, event="risk_assessment_failed")
        assessments = [result.unwrap() for result in results.values() if result.is_ok()]
        return sorted(assessments, key=lambda assessment: assessment.risk_score, reverse=True)

    async def generate_alerts(self, week_start: date | None = None) -> list[GeneratedAlert]:
        """
        Manual alert generation over the live aggregates of one week.

        Every insert is awaited before returning; the result lists exactly the
        notifications that were written.
        """
        week = week_start_for(week_start) if week_start else self.current_week_start()
        units = await self._list_units(week)

        async def alert(unit_id: str) -> list[GeneratedAlert]:
            aggregate = await self._aggregate_unit(unit_id, week)
            generated = await self._process_alert(
                unit_id,
                self.scorer.risk_score(aggregate),
                aggregate.sick_pct,
                AlertTrigger.ON_DEMAND,
            )
            return [generated] if generated is not None else []

        results = await self._for_each_unit(units, alert, event="alert_generation_failed")
        alerts = [
            item for result in results.values() if result.is_ok() for item in result.unwrap()
        ]

        self.logger.info(
            "manual_alerts_generated",
            week_start=week.isoformat(),
            units=len(units),
            alerts_generated=len(alerts),
        )
        return alerts

    # ------------------------------------------------------------------
    # Pipeline stages
    # ------------------------------------------------------------------

    async def _analyze_week(self, week: date) -> tuple[list[TrendRecord], list[str]]:
        units = await self._list_units(week)
        results = await self._for_each_unit(
            units, lambda unit_id: self._analyze_unit(unit_id, week), event="unit_analysis_failed"
        )

        records: list[TrendRecord] = []
        failed: list[str] = []
        for unit_id, result in results.items():
            if result.is_ok():
                records.append(result.unwrap())
            else:
                failed.append(unit_id)
        return records, failed

    async def _list_units(self, week: date) -> list[str]:
        """Units with responses in `week`; an unreachable survey store lists none."""
        try:
            return list(await self.survey_store.fetch_units_with_responses(week))
        except Exception as e:
            self.logger.exception(
                "unit_listing_failed", week_start=week.isoformat(), error=str(e)
            )
            return []

    async def _aggregate_unit(self, unit_id: str, week: date) -> WeeklyUnitAggregate:
        rows = await self.survey_store.fetch_week_rows(unit_id, week)
        aggregate = self.aggregator.aggregate(unit_id, week, rows)
        if aggregate.total_responses == 0:
            raise AggregationError(unit_id, f"no survey rows for week {week.isoformat()}")
        return aggregate

    async def _analyze_unit(self, unit_id: str, week: date) -> TrendRecord:
        aggregate = await self._aggregate_unit(unit_id, week)
        analysis = self.classifier.classify(aggregate.symptoms)
        breakdown = self.scorer.breakdown(aggregate, analysis)

        record = TrendRecord(
            unit_id=unit_id,
            week_start=week,
            total_responses=aggregate.total_responses,
            sick_count=aggregate.sick_count,
            common_symptoms=analysis.top_symptoms[:COMMON_SYMPTOM_LIMIT],
            trend_score=breakdown.score,
            analyzed_at=self._clock(),
        )
        await self.trend_store.upsert_trend_record(record)

        self.logger.info(
            "unit_analyzed",
            unit_id=unit_id,
            week_start=week.isoformat(),
            total_responses=aggregate.total_responses,
            sick_count=aggregate.sick_count,
            trend_score=round(breakdown.score, 2),
            diversity=round(breakdown.diversity, 2),
            concentration_ratio=round(breakdown.concentration_ratio, 3),
            dominant_category=analysis.dominant_category.value,
        )
        return record

    async def _predict_units(self, week: date, unit_ids: Sequence[str]) -> list[Prediction]:
        window = self.config.analysis.prediction_window_weeks
        since = weeks_before(week, window - 1)
        predictions: list[Prediction] = []

        for unit_id in unit_ids:
            try:
                history = await self.trend_store.fetch_trend_history(unit_id, since)
            except Exception as e:
                self.logger.exception("trend_history_failed", unit_id=unit_id, error=str(e))
                continue

            points = [
                ScorePoint(week=record.week_start, score=record.trend_score)
                for record in history
                if record.week_start <= week
            ][-window:]

            if len(points) < self.config.analysis.min_prediction_points:
                prediction = Prediction(
                    unit_id=unit_id,
                    direction=TrendDirection.INSUFFICIENT_DATA,
                    confidence_percent=0,
                    next_week_estimate=points[-1].score if points else 0.0,
                )
            else:
                prediction = self.predictor.predict(points, unit_id=unit_id)

            self.logger.info(
                "trend_prediction",
                unit_id=unit_id,
                points=len(points),
                direction=prediction.direction.value,
                confidence_percent=prediction.confidence_percent,
                slope=round(prediction.slope, 3),
                next_week_estimate=round(prediction.next_week_estimate, 2),
            )
            predictions.append(prediction)

        return predictions

    async def _emit_batch_alerts(self, week: date) -> list[GeneratedAlert]:
        try:
            records = await self.trend_store.fetch_week_records(
                week, min_score=self.config.alerts.batch_floor
            )
        except Exception as e:
            self.logger.exception(
                "alert_candidates_failed", week_start=week.isoformat(), error=str(e)
            )
            return []

        alerts: list[GeneratedAlert] = []
        for record in records:
            try:
                alert = await self._process_alert(
                    record.unit_id, record.trend_score, record.sick_pct, AlertTrigger.RISK_SCORE
                )
            except Exception as e:
                self.logger.exception(
                    "alert_emission_failed", unit_id=record.unit_id, error=str(e)
                )
                continue
            if alert is not None:
                alerts.append(alert)
        return alerts

    async def _process_alert(
        self, unit_id: str, score: float, sick_pct: float, trigger: AlertTrigger
    ) -> GeneratedAlert | None:
        # Silent units never cost a dedup query
        severity = self.policy.severity_for(score, sick_pct, trigger)
        if severity is None:
            return None

        async with self._unit_lock(unit_id):
            since = self._clock() - timedelta(days=self.config.alerts.dedup_window_days)
            recent = await self.notification_store.has_active_notification_since(unit_id, since)
            decision = self.policy.decision_for(
                unit_id, severity, score, recent, sick_pct, trigger
            )
            if not decision.should_emit or decision.severity is None:
                return None

            notification_id = await self.notification_store.insert_notification(
                unit_id, decision.message, decision.severity
            )

        self.logger.info(
            "alert_emitted",
            unit_id=unit_id,
            notification_id=notification_id,
            severity=decision.severity.value,
            trigger=trigger.value,
            score=round(score, 2),
        )
        return GeneratedAlert(
            notification_id=notification_id,
            unit_id=unit_id,
            severity=decision.severity,
            score=score,
            trigger=trigger,
        )

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _unit_lock(self, unit_id: str) -> contextlib.AbstractAsyncContextManager[None]:
        if not self.config.analysis.serialize_unit_alerts:
            return contextlib.nullcontext()
        return self._alert_locks.setdefault(unit_id, asyncio.Lock())

    async def _for_each_unit(
        self,
        unit_ids: Sequence[str],
        work: Callable[[str], Awaitable[T]],
        event: str,
    ) -> dict[str, Result[T]]:
        """
        Run `work` for every unit concurrently with bounded parallelism.

        Key pattern: each task converts its own exception into a Result, so the
        TaskGroup never cancels healthy siblings because one unit failed.
        """
        semaphore = asyncio.Semaphore(self.config.analysis.max_concurrent_units)

        async def guarded(unit_id: str) -> Result[T]:
            async with semaphore:
                try:
                    return Result.ok(await work(unit_id))
                except Exception as e:
                    self.logger.exception(event, unit_id=unit_id, error=str(e))
                    return Result.err(e)

        async with asyncio.TaskGroup() as task_group:
            tasks = {
                unit_id: task_group.create_task(guarded(unit_id), name=unit_id)
                for unit_id in dict.fromkeys(unit_ids)
            }

        return {unit_id: task.result() for unit_id, task in tasks.items()}

    @staticmethod
    def _recent_direction(newest_first: Sequence[TrendRecord]) -> TrendDirection:
        if len(newest_first) < 2:
            return TrendDirection.INSUFFICIENT_DATA
        diff = newest_first[0].trend_score - newest_first[1].trend_score
        if diff > INSIGHT_DIRECTION_DELTA:
            return TrendDirection.INCREASING
        if diff < -INSIGHT_DIRECTION_DELTA:
            return TrendDirection.DECREASING
        return TrendDirection.STABLE
