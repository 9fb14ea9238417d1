"""
models.py
----------
Core domain models. These are the typed contracts between engine layers.

- Transaction: External entity owned by the persistence layer. Read-only here.

- Signal: One piece of evidence behind a detector's verdict.

- DetectionResult: Output of a confidence-bearing detector. Carries the
  smoothed confidence the caller is expected to persist for the next run.

- SavingHabitResult / TrendAnalysis: Descriptive outputs with no
  confidence-persistence contract.

- ValidationResult: Output of the message validator and AI guardrails.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Optional


@dataclass(frozen=True)
class Transaction:
    """A single ledger entry as supplied by the data store."""

    id: str
    amount: float                    # Signed: negative = expense, positive = income.
    category_id: Optional[str]
    transaction_date: str            # ISO-8601 timestamp.
    type: str = "expense"            # "expense" | "income"
    description: str = ""


@dataclass
class Signal:
    """
    Evidence contributing to a DetectionResult.

    Ephemeral: lives only inside the result that produced it.
    """

    type: str                        # e.g. "late_night_comfort", "small_recurring_purchase"
    strength: float                  # 0.0 to 1.0
    reason: str                      # Human-readable, e.g. "$4.50 at coffee"
    timestamp: Optional[datetime] = None
    time_context: Optional[str] = None   # "late_night" | "post_work" | "end_of_month" | "daytime"
    category_id: Optional[str] = None
    count: int = 1
    transaction_ids: list[str] = field(default_factory=list)


@dataclass
class DetectionResult:
    """
    Detector output. Produced fresh on every call and never persisted here.

    When `detected` is False, metadata["reason"] explains why.
    """

    detected: bool
    confidence: float                # 0.0 to 1.0, already smoothed and clamped.
    signals: list[Signal] = field(default_factory=list)
    metadata: dict[str, Any] = field(default_factory=dict)


@dataclass
class SavingHabitResult:
    has_saving_habit: bool
    consistency: float               # Fraction of qualifying weeks with positive savings.
    average_savings_rate: float      # Mean weekly savings rate, in percent of income.
    trend: str = "none"              # "improving" | "stable" | "declining" | "none"
    streak_weeks: int = 0
    message: str = ""


@dataclass
class PeriodTrend:
    direction: str                   # "up" | "down" | "stable"
    percent_change: int
    data: list[dict[str, Any]] = field(default_factory=list)


@dataclass
class CategoryTrend:
    category: str
    direction: str
    percent_change: int


@dataclass
class TrendAnalysis:
    """
    Week-over-week and month-over-month spending summaries.

    weekly_trend.data entries: {"week": "Week 1", "total": 120.0, "change": 0.0}
    monthly_trend.data entries: {"month": "Aug", "total": 480.0, "change": 0.0}
    """

    weekly_trend: PeriodTrend
    monthly_trend: PeriodTrend
    category_trends: list[CategoryTrend] = field(default_factory=list)
    insights: list[str] = field(default_factory=list)

    @property
    def week_over_week_data(self) -> list[dict[str, Any]]:
        return self.weekly_trend.data

    @property
    def month_over_month_data(self) -> list[dict[str, Any]]:
        return self.monthly_trend.data


@dataclass
class ValidationResult:
    is_valid: bool
    violations: list[str] = field(default_factory=list)
    should_block: bool = False       # Only emoji / list markup block.
    sanitized: str = ""
