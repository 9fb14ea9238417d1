"""
trend_analyzer.py
------------------
Spending trend summaries. Descriptive only: no confidence, no persistence.

Produces three views over expense spend (absolute amounts):
    1. Week over week: the last N 7-day windows counted back from `now`,
       labelled "Week 1" (oldest) .. "Week N" (most recent).
    2. Month over month: the last M calendar months, labelled "Jan", "Feb", ...
    3. Category: the last two weeks against the two weeks before.

Insight strings are neutral observations and pass the short-form message
validator. All thresholds come from the `trends` section of config.yaml.
"""

import logging
from datetime import datetime
from typing import Any, Callable, Iterable, Mapping

import pandas as pd

from core.models import CategoryTrend, PeriodTrend, TrendAnalysis
from core.transactions import expenses, to_frame, to_utc_naive
from config.config_loader import get_detector_config

logger = logging.getLogger(__name__)

WEEK = pd.Timedelta(days=7)


class TrendAnalyzer:
    """
    Usage:
        analyzer = TrendAnalyzer()
        analysis = analyzer.analyze(transactions)
        analysis.weekly_trend.direction   # "up" | "down" | "stable"
    """

    def __init__(
        self,
        config: Mapping[str, Any] | None = None,
        clock: Callable[[], datetime] | None = None,
    ):
        self.config = config if config is not None else get_detector_config("trends")
        self.clock = clock or datetime.now

    # -------------------------------------------------------------------------
    # PUBLIC INTERFACE
    # -------------------------------------------------------------------------

    def analyze(
        self,
        transactions: Iterable[Any] | pd.DataFrame,
        now: datetime | None = None,
    ) -> TrendAnalysis:
        cfg = self.config
        df = to_frame(transactions)
        if len(df) < cfg["min_transactions"]:
            return self._no_trend()

        now_ts = to_utc_naive(now if now is not None else self.clock())
        spend = expenses(df).copy()
        spend["spend"] = spend["amount"].abs()

        weekly = self._period_trend(
            self._weekly_totals(spend, now_ts), "week", cfg["weekly_direction_threshold"]
        )
        monthly = self._period_trend(
            self._monthly_totals(spend, now_ts), "month", cfg["monthly_direction_threshold"]
        )
        categories = self._category_trends(spend, now_ts)

        analysis = TrendAnalysis(
            weekly_trend=weekly,
            monthly_trend=monthly,
            category_trends=categories,
            insights=self._insights(weekly, monthly, categories),
        )
        logger.debug(
            f"Trends: weekly {weekly.direction} ({weekly.percent_change}%), "
            f"monthly {monthly.direction} ({monthly.percent_change}%), "
            f"{len(categories)} category trends."
        )
        return analysis

    # -------------------------------------------------------------------------
    # INTERNAL: PERIOD TOTALS
    # -------------------------------------------------------------------------

    def _weekly_totals(self, spend: pd.DataFrame, now: pd.Timestamp) -> list[tuple[str, float]]:
        n_weeks = self.config["weeks"]
        totals = []
        for i in range(n_weeks):
            end = now - WEEK * i
            start = end - WEEK
            mask = (spend["transaction_date"] >= start) & (spend["transaction_date"] < end)
            totals.append((f"Week {n_weeks - i}", float(spend.loc[mask, "spend"].sum())))
        return list(reversed(totals))

    def _monthly_totals(self, spend: pd.DataFrame, now: pd.Timestamp) -> list[tuple[str, float]]:
        months = spend["transaction_date"].dt.to_period("M")
        current = now.to_period("M")
        totals = []
        for i in range(self.config["months"]):
            period = current - i
            total = float(spend.loc[months == period, "spend"].sum())
            totals.append((period.strftime("%b"), total))
        return list(reversed(totals))

    @staticmethod
    def _period_trend(totals: list[tuple[str, float]], label_key: str, threshold: float) -> PeriodTrend:
        """
        Needs at least two periods with spend; otherwise the trend is flat with
        no data. Percent change compares the last period with the one before.
        """
        if sum(1 for _, total in totals if total > 0) < 2:
            return PeriodTrend(direction="stable", percent_change=0, data=[])

        data = []
        previous = None
        for label, total in totals:
            change = 0.0 if previous is None else round(total - previous, 2)
            data.append({label_key: label, "total": round(total, 2), "change": change})
            previous = total

        recent, before = totals[-1][1], totals[-2][1]
        percent = _percent_change(recent, before) if before > 0 else 0
        return PeriodTrend(direction=_direction(percent, threshold), percent_change=percent, data=data)

    # -------------------------------------------------------------------------
    # INTERNAL: CATEGORY TRENDS
    # -------------------------------------------------------------------------

    def _category_trends(self, spend: pd.DataFrame, now: pd.Timestamp) -> list[CategoryTrend]:
        cfg = self.config
        window = pd.Timedelta(days=cfg["category_window_days"])
        recent_mask = spend["transaction_date"] >= now - window
        older_mask = ~recent_mask & (spend["transaction_date"] >= now - 2 * window)

        recent = spend[recent_mask].groupby("category_id")["spend"].sum()
        older = spend[older_mask].groupby("category_id")["spend"].sum()

        trends = []
        for category in sorted(set(recent.index) | set(older.index)):
            r = float(recent.get(category, 0.0))
            o = float(older.get(category, 0.0))
            if o > 0:
                percent = _percent_change(r, o)
            else:
                percent = 100 if r > 0 else 0

            if abs(percent) <= cfg["category_min_change"]:
                continue
            trends.append(CategoryTrend(
                category=category,
                direction=_direction(percent, cfg["category_direction_threshold"]),
                percent_change=percent,
            ))

        trends.sort(key=lambda t: abs(t.percent_change), reverse=True)
        return trends[:cfg["max_category_trends"]]

    # -------------------------------------------------------------------------
    # INTERNAL: INSIGHTS
    # -------------------------------------------------------------------------

    def _insights(
        self,
        weekly: PeriodTrend,
        monthly: PeriodTrend,
        categories: list[CategoryTrend],
    ) -> list[str]:
        cfg = self.config
        insights = []

        if weekly.direction == "down" and weekly.percent_change <= cfg["weekly_insight_down"]:
            insights.append(f"Spending down {abs(weekly.percent_change)}% this week.")
        elif weekly.direction == "up" and weekly.percent_change >= cfg["weekly_insight_up"]:
            insights.append(f"Spending up {weekly.percent_change}% this week.")

        if monthly.direction == "down" and monthly.percent_change <= cfg["monthly_insight_down"]:
            insights.append(f"{abs(monthly.percent_change)}% less than last month.")
        elif monthly.direction == "up" and monthly.percent_change >= cfg["monthly_insight_up"]:
            insights.append(f"Spending {monthly.percent_change}% higher than last month.")

        for trend in categories[:cfg["max_category_insights"]]:
            name = trend.category.replace("_", " ").capitalize()
            if trend.direction == "up":
                insights.append(f"{name} spending up {trend.percent_change}%.")
            elif trend.direction == "down":
                insights.append(f"{name} spending down {abs(trend.percent_change)}%.")

        return insights

    @staticmethod
    def _no_trend() -> TrendAnalysis:
        return TrendAnalysis(
            weekly_trend=PeriodTrend(direction="stable", percent_change=0, data=[]),
            monthly_trend=PeriodTrend(direction="stable", percent_change=0, data=[]),
        )


def _percent_change(recent: float, before: float) -> int:
    return int(round((recent - before) / before * 100))


def _direction(percent: int, threshold: float) -> str:
    if percent > threshold:
        return "up"
    if percent < -threshold:
        return "down"
    return "stable"


def analyze_trends(
    transactions: Iterable[Any] | pd.DataFrame,
    *,
    config: Mapping[str, Any] | None = None,
    now: datetime | None = None,
) -> TrendAnalysis:
    return TrendAnalyzer(config=config).analyze(transactions, now=now)
