"""
behavior_detectors.py
----------------------
Concrete behavior detectors. One class per spending pattern.

Each detector applies pattern-specific logic to a prepared transaction frame.
The scoring follows a consistent pattern:

    1. Hard gates: If the history fails a gate, return a non-detection with
       a reason (the prior confidence decays).
    2. Component scores: Score each dimension (frequency, amount, timing)
       independently on a 0-1 scale.
    3. Weighted composite: Blend component scores into a raw confidence,
       then smooth it against the caller's stored prior.

Thresholds and weights come from config.yaml. Only the scoring structure
lives in code.
"""

from datetime import datetime
from typing import Any, Callable, Iterable, Mapping

import pandas as pd

from core.models import DetectionResult, Signal
from core.taxonomy import CategoryClassifier, ComfortCategoryLookup
from core.transactions import expenses, within_days
from detectors.base_detector import BaseBehaviorDetector


BEHAVIOR_TYPES = ("small_recurring", "stress_spending", "end_of_month")


# =============================================================================
# SMALL RECURRING PURCHASES
# =============================================================================
class SmallRecurringDetector(BaseBehaviorDetector):
    """
    Detects frequent small purchases concentrated in one category.

    Key signals: many expenses under the small-transaction ceiling inside the
    lookback window, with one category carrying enough of them on its own.
    A diffuse mix of unrelated small purchases is not a pattern.
    """

    def __init__(self, config: Mapping[str, Any] | None = None, **kwargs):
        super().__init__("small_recurring", config=config, **kwargs)

    def _evaluate(self, df: pd.DataFrame, prior: float, now: pd.Timestamp) -> DetectionResult:
        cfg = self.config
        window = within_days(expenses(df), now, cfg["lookback_days"])
        small = window[window["amount"].abs() <= cfg["max_amount"]]

        # --- Hard gates ---
        if len(small) < cfg["min_count"]:
            return self._not_detected(
                df, prior, "Not enough small transactions", small_count=len(small)
            )

        counts = small.groupby("category_id").size().sort_values(ascending=False, kind="stable")
        dominant = str(counts.index[0])
        dominant_count = int(counts.iloc[0])

        if dominant_count < cfg["category_min"]:
            return self._not_detected(
                df, prior, "No category with enough frequency",
                small_count=len(small), category_counts=counts.to_dict(),
            )

        group = small[small["category_id"] == dominant]
        total = float(group["amount"].abs().sum())

        # --- Component scores (each 0-1) ---
        sc = cfg["scoring"]
        category_min = cfg["category_min"]
        frequency_score = self._saturate(
            dominant_count - category_min, sc["frequency_saturation"] - category_min
        )
        amount_score = self._saturate(total, sc["amount_saturation"])

        # Habituality: the same hour of day keeps coming back.
        top_hour_count = int(group["local_hour"].value_counts().max())
        habituality_score = self._saturate(top_hour_count, sc["habit_hour_saturation"])

        raw = (
            sc["frequency_weight"] * frequency_score
            + sc["amount_weight"] * amount_score
            + sc["habituality_weight"] * habituality_score
        )

        return self._detected(
            df,
            self._smooth(raw, prior),
            self._build_signals(group.tail(cfg["signal_limit"]), dominant),
            dominant_category=dominant,
            count=dominant_count,
            total=round(total, 2),
            small_count=len(small),
            raw_confidence=round(raw, 4),
        )

    def _build_signals(self, group: pd.DataFrame, category: str) -> list[Signal]:
        ceiling = self.config["max_amount"]
        signals = []
        for row in group.itertuples(index=False):
            amount = abs(row.amount)
            signals.append(Signal(
                type="small_recurring_purchase",
                strength=round(max(0.0, 1 - amount / ceiling), 4),
                reason=f"${amount:.2f} at {category}",
                timestamp=self._to_datetime(row.transaction_date),
                time_context="daytime",
                category_id=category,
                transaction_ids=[str(row.id)],
            ))
        return signals


# =============================================================================
# STRESS SPENDING
# =============================================================================
class StressSpendingDetector(BaseBehaviorDetector):
    """
    Detects comfort-category spending in the late-night and post-work bands.

    Key signals: comfort purchases (as judged by the injected classifier)
    landing in either time band often enough. Spending outside comfort
    categories never counts, however late or frequent.

    Both bands are half-open on the hour: [start, end). The late-night band
    wraps past midnight when start > end.
    """

    def __init__(
        self,
        config: Mapping[str, Any] | None = None,
        classifier: CategoryClassifier | None = None,
        **kwargs,
    ):
        super().__init__("stress_spending", config=config, **kwargs)
        self.classifier = classifier or ComfortCategoryLookup()

    def _evaluate(self, df: pd.DataFrame, prior: float, now: pd.Timestamp) -> DetectionResult:
        cfg = self.config
        window = within_days(expenses(df), now, cfg["lookback_days"])
        is_comfort = window["category_id"].map(self.classifier.is_comfort_category).astype(bool)
        comfort = window[is_comfort]

        hours = comfort["local_hour"]
        late_mask = self.in_band(hours, cfg["late_night_start_hour"], cfg["late_night_end_hour"])
        post_mask = self.in_band(hours, cfg["post_work_start_hour"], cfg["post_work_end_hour"]) & ~late_mask

        late = comfort[late_mask]
        post = comfort[post_mask]
        min_occ = cfg["min_occurrences"]

        # --- Hard gate: at least one band must reach the minimum ---
        if len(late) < min_occ and len(post) < min_occ:
            return self._not_detected(
                df, prior, "Not enough stress signals",
                late_night_count=len(late), post_work_count=len(post),
                comfort_count=len(comfort),
            )

        signals = []
        if len(late) >= min_occ:
            signals.append(self._band_signal(late, "late_night_comfort", "late_night",
                                             cfg["late_night_strength"], "Late-night"))
        if len(post) >= min_occ:
            signals.append(self._band_signal(post, "post_work_comfort", "post_work",
                                             cfg["post_work_strength"], "Post-work"))

        # --- Component scores (each 0-1) ---
        banded = pd.concat([late, post]).sort_values("transaction_date")
        cluster_count = self._count_clusters(banded["transaction_date"])
        total = len(late) + len(post)
        avg_strength = (
            len(late) * cfg["late_night_strength"] + len(post) * cfg["post_work_strength"]
        ) / total

        sc = cfg["scoring"]
        raw = (
            sc["frequency_weight"] * self._saturate(total, sc["frequency_saturation"])
            + sc["cluster_weight"] * self._saturate(cluster_count, sc["cluster_saturation"])
            + sc["strength_weight"] * avg_strength
        )

        return self._detected(
            df,
            self._smooth(raw, prior),
            signals,
            total_signals=total,
            late_night_count=len(late),
            post_work_count=len(post),
            cluster_count=cluster_count,
            raw_confidence=round(raw, 4),
        )

    @staticmethod
    def in_band(hours: pd.Series, start: int, end: int) -> pd.Series:
        """Boolean mask for hours in [start, end), wrapping midnight if start > end."""
        if start > end:
            return (hours >= start) | (hours < end)
        return (hours >= start) & (hours < end)

    def _count_clusters(self, timestamps: pd.Series) -> int:
        """Consecutive banded purchases no more than cluster_window_hours apart."""
        if len(timestamps) < 2:
            return 0
        gaps = timestamps.diff().dropna() / pd.Timedelta(hours=1)
        return int((gaps <= self.config["cluster_window_hours"]).sum())

    def _band_signal(
        self, band: pd.DataFrame, signal_type: str, time_context: str, strength: float, label: str
    ) -> Signal:
        top_category = str(band["category_id"].value_counts().index[0])
        last = band.iloc[-1]
        return Signal(
            type=signal_type,
            strength=strength,
            reason=f"{label} {top_category} spending, {len(band)} times",
            timestamp=self._to_datetime(last["transaction_date"]),
            time_context=time_context,
            category_id=top_category,
            count=len(band),
            transaction_ids=[str(i) for i in band["id"].tolist()],
        )


# =============================================================================
# END OF MONTH COLLAPSE
# =============================================================================
class EndOfMonthCollapseDetector(BaseBehaviorDetector):
    """
    Detects a spending spike in the closing days of the month.

    Hard gate: before start_day the detector always reports no detection,
    whatever the transactions say. This is the only detector whose verdict
    depends on the clock.

    Key signal: daily spend rate from start_day onwards versus the daily rate
    earlier in the same month.
    """

    def __init__(self, config: Mapping[str, Any] | None = None, **kwargs):
        super().__init__("end_of_month", config=config, **kwargs)

    def _evaluate(self, df: pd.DataFrame, prior: float, now: pd.Timestamp) -> DetectionResult:
        cfg = self.config
        start_day = cfg["start_day"]
        day = now.day

        if day < start_day:
            return self._not_detected(
                df, prior * cfg["off_window_retention"], "Not end of month period",
                day_of_month=day, time_range_days=day,
            )

        spend = expenses(df)
        dates = spend["transaction_date"]
        month_txns = spend[(dates.dt.year == now.year) & (dates.dt.month == now.month)]

        if len(month_txns) < cfg["min_month_transactions"]:
            return self._not_detected(
                df, prior, "Not enough transactions",
                day_of_month=day, month_count=len(month_txns), time_range_days=day,
            )

        in_late = month_txns["transaction_date"].dt.day >= start_day
        early = month_txns[~in_late]
        late = month_txns[in_late]

        if late.empty:
            return self._not_detected(
                df, prior, "No late period transactions", day_of_month=day, time_range_days=day,
            )

        early_total = float(early["amount"].abs().sum())
        late_total = float(late["amount"].abs().sum())
        early_days = start_day - 1
        late_days = day - start_day + 1

        early_rate = early_total / early_days if early_days > 0 else 0.0
        late_rate = late_total / late_days
        spike_ratio = late_rate / early_rate if early_rate > 0 else 0.0

        if spike_ratio < cfg["spike_ratio"]:
            return self._not_detected(
                df, prior, "No spending spike",
                day_of_month=day, spike_ratio=round(spike_ratio, 3), time_range_days=day,
            )

        # --- Component scores (each 0-1) ---
        sc = cfg["scoring"]
        raw = (
            sc["spike_weight"] * self._saturate(spike_ratio - 1, sc["spike_saturation"])
            + sc["volume_weight"] * self._saturate(len(late), sc["volume_saturation"])
            + sc["day_weight"] * self._saturate(late_days, sc["day_saturation"])
        )

        return self._detected(
            df,
            self._smooth(raw, prior),
            self._build_signals(late.tail(cfg["signal_limit"])),
            spike_ratio=round(spike_ratio, 3),
            early_total=round(early_total, 2),
            late_total=round(late_total, 2),
            day_of_month=day,
            time_range_days=day,
            raw_confidence=round(raw, 4),
        )

    def _build_signals(self, late: pd.DataFrame) -> list[Signal]:
        saturation = self.config["signal_amount_saturation"]
        signals = []
        for row in late.itertuples(index=False):
            amount = abs(row.amount)
            signals.append(Signal(
                type="end_of_month_spend",
                strength=round(self._saturate(amount, saturation), 4),
                reason=f"${amount:.2f} on day {row.transaction_date.day}",
                timestamp=self._to_datetime(row.transaction_date),
                time_context="end_of_month",
                category_id=row.category_id,
                transaction_ids=[str(row.id)],
            ))
        return signals


# =============================================================================
# REGISTRY & FUNCTIONAL ENTRY POINTS
# =============================================================================

def get_all_detectors(
    classifier: CategoryClassifier | None = None,
    clock: Callable[[], datetime] | None = None,
) -> dict[str, BaseBehaviorDetector]:
    """Returns one instance of each confidence-bearing detector, keyed by behavior type."""
    return {
        "small_recurring": SmallRecurringDetector(clock=clock),
        "stress_spending": StressSpendingDetector(classifier=classifier, clock=clock),
        "end_of_month": EndOfMonthCollapseDetector(clock=clock),
    }


def detect_small_recurring(
    transactions: Iterable[Any] | pd.DataFrame,
    prior_confidence: float = 0.0,
    *,
    config: Mapping[str, Any] | None = None,
    now: datetime | None = None,
) -> DetectionResult:
    return SmallRecurringDetector(config=config).detect(transactions, prior_confidence, now=now)


def detect_stress_spending(
    transactions: Iterable[Any] | pd.DataFrame,
    prior_confidence: float = 0.0,
    *,
    config: Mapping[str, Any] | None = None,
    classifier: CategoryClassifier | None = None,
    now: datetime | None = None,
) -> DetectionResult:
    return StressSpendingDetector(config=config, classifier=classifier).detect(
        transactions, prior_confidence, now=now
    )


def detect_end_of_month_collapse(
    transactions: Iterable[Any] | pd.DataFrame,
    prior_confidence: float = 0.0,
    *,
    config: Mapping[str, Any] | None = None,
    now: datetime | None = None,
) -> DetectionResult:
    return EndOfMonthCollapseDetector(config=config).detect(transactions, prior_confidence, now=now)
