"""Weekly community health trend analysis for residential units.

This package contains the analysis-and-alerting core: symptom classification,
trend scoring, trend forecasting and alert policy, plus the weekly orchestrator
that drives them over injected storage collaborators.
"""

__version__ = "0.1.0"
