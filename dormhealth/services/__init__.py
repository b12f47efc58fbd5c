"""
Core services for the application.

This package contains the analysis pipeline components and the weekly
orchestrator that wires them to the storage and notification collaborators.
"""

from .aggregator import WeeklyAggregator, parse_symptom_payload
from .alert_policy import AlertPolicy
from .ports import NotificationStore, SurveyStore, TrendStore
from .result import Result
from .symptom_classifier import DEFAULT_TAXONOMY, SymptomClassifier
from .trend_predictor import TrendPredictor
from .trend_scorer import TrendScorer
from .weekly_analysis import WeeklyAnalysisOrchestrator
from .weeks import week_start_for, weeks_before

__all__ = [
    "AlertPolicy",
    "DEFAULT_TAXONOMY",
    "NotificationStore",
    "Result",
    "SurveyStore",
    "SymptomClassifier",
    "TrendPredictor",
    "TrendScorer",
    "TrendStore",
    "WeeklyAggregator",
    "WeeklyAnalysisOrchestrator",
    "parse_symptom_payload",
    "week_start_for",
    "weeks_before",
]
