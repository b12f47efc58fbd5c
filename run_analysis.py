"""
Command line entry point for the weekly health trend pipeline.

Runs against the SQLite store configured by DATABASE_URL:
1. `seed`      fill the database with several weeks of synthetic surveys
2. `analyze`   run the weekly batch (score, persist, forecast, alert)
3. `insights`  show recent trend insights for every unit or one unit
4. `risk`      show the live risk levels of the current week
5. `alerts`    generate on-demand alerts for the current week

Run with: uv run python run_analysis.py seed && uv run python run_analysis.py analyze
"""

import argparse
import asyncio
import random
from datetime import date

from rich.console import Console
from rich.table import Table

from adapters.sqlite.store import SQLiteHealthStore
from dormhealth.config import AppConfig, get_config
from dormhealth.domain.models import RiskLevel, SurveyResponse, WeeklyAnalysisReport
from dormhealth.observability import configure_logging
from dormhealth.services.weekly_analysis import WeeklyAnalysisOrchestrator
from dormhealth.services.weeks import week_start_for, weeks_before

console = Console()

DEMO_UNITS = ("Hall-A", "Hall-B", "North Tower", "Maple House")
DEMO_SYMPTOMS = (
    "cough",
    "sore throat",
    "runny nose",
    "fever",
    "fatigue",
    "headache",
    "nausea",
    "diarrhea",
    "insomnia",
    "anxiety",
)

RISK_STYLE = {RiskLevel.HIGH: "bold red", RiskLevel.MEDIUM: "yellow", RiskLevel.LOW: "green"}


def seed_demo_data(store: SQLiteHealthStore, weeks: int, seed: int) -> int:
    """Insert synthetic surveys; illness pressure rises week over week in Hall-A."""
    rng = random.Random(seed)
    current = week_start_for(date.today())
    inserted = 0

    for offset in range(weeks - 1, -1, -1):
        week = weeks_before(current, offset)
        for unit_index, unit_id in enumerate(DEMO_UNITS):
            pressure = 0.15 + 0.1 * unit_index / len(DEMO_UNITS)
            if unit_id == "Hall-A":
                pressure += 0.08 * (weeks - offset)
            for _ in range(rng.randint(8, 20)):
                sick = rng.random() < min(pressure, 0.9)
                severity = rng.randint(3, 5) if sick else rng.randint(1, 2)
                symptoms = rng.sample(DEMO_SYMPTOMS, k=rng.randint(1, 3)) if sick else []
                store.add_survey_response(
                    SurveyResponse(
                        unit_id=unit_id,
                        week_start=week,
                        symptoms=symptoms,
                        severity_level=severity,
                    )
                )
                inserted += 1

    return inserted


def print_report(report: WeeklyAnalysisReport) -> None:
    table = Table(title=f"Weekly analysis for week of {report.week_start.isoformat()}")
    table.add_column("Unit")
    table.add_column("Responses", justify="right")
    table.add_column("Sick", justify="right")
    table.add_column("Score", justify="right")
    table.add_column("Forecast")
    table.add_column("Confidence", justify="right")

    predictions = {prediction.unit_id: prediction for prediction in report.predictions}
    for record in report.records:
        prediction = predictions.get(record.unit_id)
        table.add_row(
            record.unit_id,
            str(record.total_responses),
            f"{record.sick_pct:.1%}",
            f"{record.trend_score:.1f}",
            prediction.direction.value if prediction else "-",
            f"{prediction.confidence_percent}%" if prediction else "-",
        )
    console.print(table)

    for alert in report.alerts:
        console.print(f"[bold]Alert[/bold] {alert.severity.value} for {alert.unit_id}")
    if report.failed_units:
        console.print(f"[red]Failed units:[/red] {', '.join(report.failed_units)}")
    console.print(f"Completed in {report.duration_seconds:.2f}s")


async def show_insights(orchestrator: WeeklyAnalysisOrchestrator, unit_id: str | None) -> None:
    if unit_id:
        units = [unit_id]
    else:
        week = orchestrator.current_week_start()
        units = list(await orchestrator.survey_store.fetch_units_with_responses(week))

    table = Table(title="Unit insights")
    table.add_column("Unit")
    table.add_column("Current score", justify="right")
    table.add_column("Average", justify="right")
    table.add_column("Direction")
    table.add_column("Risk")

    for unit in units:
        insights = await orchestrator.get_unit_insights(unit)
        current = insights.current_trend
        table.add_row(
            unit,
            f"{current.trend_score:.1f}" if current else "-",
            f"{insights.average_score:.1f}",
            insights.trend_direction.value,
            f"[{RISK_STYLE[insights.risk_level]}]{insights.risk_level.value}[/]",
        )
    console.print(table)


async def show_risk_levels(orchestrator: WeeklyAnalysisOrchestrator) -> None:
    table = Table(title="Current week risk levels")
    table.add_column("Unit")
    table.add_column("Responses", justify="right")
    table.add_column("Sick", justify="right")
    table.add_column("Avg severity", justify="right")
    table.add_column("Risk score", justify="right")
    table.add_column("Level")

    for assessment in await orchestrator.assess_risk_levels():
        table.add_row(
            assessment.unit_id,
            str(assessment.total_responses),
            f"{assessment.sick_pct:.1%}",
            f"{assessment.avg_severity:.2f}",
            f"{assessment.risk_score:.1f}",
            f"[{RISK_STYLE[assessment.risk_level]}]{assessment.risk_level.value}[/]",
        )
    console.print(table)


async def run(args: argparse.Namespace, config: AppConfig) -> None:
    store = SQLiteHealthStore(config.database)
    store.create_tables()
    orchestrator = WeeklyAnalysisOrchestrator(store, store, store, config=config)

    try:
        if args.command == "seed":
            count = seed_demo_data(store, weeks=args.weeks, seed=args.seed)
            console.print(f"Inserted {count} survey responses over {args.weeks} weeks")
        elif args.command == "analyze":
            week = week_start_for(date.fromisoformat(args.week)) if args.week else None
            target = week or orchestrator.current_week_start()
            # Older weeks first so each run sees the history it forecasts from
            for offset in range(args.backfill, 0, -1):
                await orchestrator.run_weekly_analysis(weeks_before(target, offset))
            print_report(await orchestrator.run_weekly_analysis(target))
        elif args.command == "insights":
            await show_insights(orchestrator, args.unit)
        elif args.command == "risk":
            await show_risk_levels(orchestrator)
        elif args.command == "alerts":
            alerts = await orchestrator.generate_alerts()
            console.print(f"Generated {len(alerts)} alert(s)")
            for alert in alerts:
                console.print(f"  {alert.unit_id}: {alert.severity.value} ({alert.score:.1f})")
    finally:
        store.dispose()


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Weekly dorm health trend analysis")
    sub = parser.add_subparsers(dest="command", required=True)

    seed = sub.add_parser("seed", help="insert synthetic survey data")
    seed.add_argument("--weeks", type=int, default=6)
    seed.add_argument("--seed", type=int, default=7)

    analyze = sub.add_parser("analyze", help="run the weekly batch analysis")
    analyze.add_argument("--week", help="any date inside the week to analyze (YYYY-MM-DD)")
    analyze.add_argument(
        "--backfill", type=int, default=0, help="also analyze this many preceding weeks first"
    )

    insights = sub.add_parser("insights", help="show recent trend insights")
    insights.add_argument("unit", nargs="?")

    sub.add_parser("risk", help="show current week risk levels")
    sub.add_parser("alerts", help="generate on-demand alerts for the current week")
    return parser


def main() -> None:
    args = build_parser().parse_args()
    config = get_config()
    configure_logging(config.logging)
    asyncio.run(run(args, config))


if __name__ == "__main__":
    main()
