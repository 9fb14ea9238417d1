"""
saving_habit.py
----------------
Saving-habit detection. Descriptive, not a nudge trigger: no prior
confidence goes in and nothing is meant to be persisted.

Weeks are 7-day windows counted back from `now` (week 0 is the most recent).
A week qualifies when it has both income and expense activity; its savings
rate is (income - expenses) / income, in percent.
"""

import logging
from datetime import datetime
from typing import Any, Callable, Iterable, Mapping

import pandas as pd

from core.models import SavingHabitResult
from core.transactions import to_frame, to_utc_naive
from config.config_loader import get_detector_config
from guardrails.message_library import SAVING_HABIT_MESSAGES

logger = logging.getLogger(__name__)

WEEK = pd.Timedelta(days=7)


class SavingHabitDetector:
    """
    Usage:
        detector = SavingHabitDetector()
        result = detector.detect(transactions)
    """

    def __init__(
        self,
        config: Mapping[str, Any] | None = None,
        clock: Callable[[], datetime] | None = None,
    ):
        self.config = config if config is not None else get_detector_config("saving_habit")
        self.clock = clock or datetime.now

    def detect(
        self,
        transactions: Iterable[Any] | pd.DataFrame,
        now: datetime | None = None,
    ) -> SavingHabitResult:
        cfg = self.config
        df = to_frame(transactions)
        if df.empty:
            return self._no_habit()

        now_ts = to_utc_naive(now if now is not None else self.clock())
        weekly = self._weekly_totals(df, now_ts, cfg["lookback_weeks"])

        qualifying = weekly[(weekly["income"] > 0) & (weekly["expenses"] > 0)]
        if len(qualifying) < cfg["min_weeks"]:
            return self._no_habit()

        positive_weeks = int((qualifying["net"] > 0).sum())
        consistency = positive_weeks / len(qualifying)
        rates = qualifying["net"] / qualifying["income"] * 100
        average_rate = round(float(rates.mean()), 1)

        streak = self._streak(weekly["net"])
        trend = self._trend(weekly["net"])

        has_habit = (
            positive_weeks >= cfg["min_positive_weeks"]
            and consistency >= cfg["min_consistency"]
            and average_rate > 0
        )
        logger.debug(
            f"Saving habit: {positive_weeks}/{len(qualifying)} positive weeks, "
            f"avg rate {average_rate}%, habit={has_habit}."
        )

        return SavingHabitResult(
            has_saving_habit=has_habit,
            consistency=round(max(0.0, min(1.0, consistency)), 4),
            average_savings_rate=average_rate,
            trend=trend,
            streak_weeks=streak,
            message=self._message(has_habit, streak, consistency, average_rate),
        )

    # -------------------------------------------------------------------------
    # INTERNAL
    # -------------------------------------------------------------------------

    @staticmethod
    def _weekly_totals(df: pd.DataFrame, now: pd.Timestamp, n_weeks: int) -> pd.DataFrame:
        """Income, expenses and net per week index 0..n_weeks-1. Empty weeks are zero."""
        age = now - df["transaction_date"]
        recent = df[(age >= pd.Timedelta(0)) & (age < WEEK * n_weeks)].copy()

        recent["week"] = ((now - recent["transaction_date"]) // WEEK).astype(int)
        recent["income"] = recent["amount"].clip(lower=0)
        recent["expenses"] = (-recent["amount"]).clip(lower=0)

        weekly = (
            recent.groupby("week")[["income", "expenses"]].sum()
            .reindex(range(n_weeks), fill_value=0.0)
        )
        weekly["net"] = weekly["income"] - weekly["expenses"]
        return weekly

    @staticmethod
    def _streak(net: pd.Series) -> int:
        """Consecutive positive weeks, starting from the most recent."""
        streak = 0
        for value in net:
            if value <= 0:
                break
            streak += 1
        return streak

    def _trend(self, net: pd.Series) -> str:
        half = len(net) // 2
        if half == 0:
            return "none"
        recent_avg = float(net.iloc[:half].mean())
        older_avg = float(net.iloc[half:2 * half].mean())
        tolerance = self.config["trend_tolerance"]

        if recent_avg == 0 and older_avg == 0:
            return "none"
        if recent_avg > older_avg * (1 + tolerance):
            return "improving"
        if recent_avg < older_avg * (1 - tolerance):
            return "declining"
        return "stable"

    def _message(self, has_habit: bool, streak: int, consistency: float, rate: float) -> str:
        if has_habit:
            if streak >= self.config["lookback_weeks"]:
                return SAVING_HABIT_MESSAGES["long_streak"].format(weeks=streak)
            if streak >= 2:
                return SAVING_HABIT_MESSAGES["short_streak"].format(weeks=streak)
            if consistency >= 0.75:
                return SAVING_HABIT_MESSAGES["strong"]
            return SAVING_HABIT_MESSAGES["building"]
        if rate > 0:
            return SAVING_HABIT_MESSAGES["inconsistent"]
        return ""

    @staticmethod
    def _no_habit() -> SavingHabitResult:
        return SavingHabitResult(
            has_saving_habit=False,
            consistency=0.0,
            average_savings_rate=0.0,
            trend="none",
            streak_weeks=0,
            message="",
        )


def detect_saving_habit(
    transactions: Iterable[Any] | pd.DataFrame,
    *,
    config: Mapping[str, Any] | None = None,
    now: datetime | None = None,
) -> SavingHabitResult:
    return SavingHabitDetector(config=config).detect(transactions, now=now)
