"""PTO Planner.

Track your paid-time-off balance over time and get suggested breaks that
bridge weekends and holidays into longer stretches away from work.
"""

from ptoplanner.accrual import accrued_as_of
from ptoplanner.holidays import fetch_holidays, non_working_days, us_holidays
from ptoplanner.ledger import PTOLedger
from ptoplanner.models import (
    AccrualRule,
    ConfigurationError,
    Frequency,
    Holiday,
    LedgerSettings,
    PTOStatus,
    RankingMode,
    SuggestionPreferences,
    TakenDay,
    resolve_settings,
)
from ptoplanner.optimizer import (
    BreakOptimizer,
    OptimizationResult,
    SuggestedBreak,
    suggest,
)

__all__ = [
    "AccrualRule",
    "BreakOptimizer",
    "ConfigurationError",
    "Frequency",
    "Holiday",
    "LedgerSettings",
    "OptimizationResult",
    "PTOLedger",
    "PTOStatus",
    "RankingMode",
    "SuggestedBreak",
    "SuggestionPreferences",
    "TakenDay",
    "accrued_as_of",
    "fetch_holidays",
    "non_working_days",
    "resolve_settings",
    "suggest",
    "us_holidays",
]
