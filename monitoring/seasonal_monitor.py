"""
seasonal_monitor.py
--------------------
Seasonal adjustment and spending drift monitoring for the behavioral engine.

Two concerns share this module because both answer "is this spending unusual
for the time of year?":

    1. Seasonal factors. Each calendar month and weekday carries a multiplier
       (1.0 = typical). A detection's confidence is divided by the combined
       factor, so a December weekend spike counts for less than the same spike
       on a February Tuesday. Factors can be recalibrated from history.

    2. Drift. Compares expense amounts in a baseline window against a recent
       window:
         - KS test (Kolmogorov-Smirnov): is the amount distribution different?
         - PSI (Population Stability Index): how far has it moved?
           <0.1 = stable, 0.1-0.25 = minor shift, >0.25 = major shift.
       A drift alert is the usual trigger for recalibrating seasonal factors.

All thresholds and window sizes come from config.yaml.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional

import numpy as np
import pandas as pd
from scipy import stats

from core.transactions import expenses, to_frame, to_utc_naive
from config.config_loader import (
    get_confidence_config,
    get_drift_monitoring_config,
    get_seasonality_config,
)

logger = logging.getLogger(__name__)


# =============================================================================
# SEASONAL FACTORS
# =============================================================================

@dataclass
class SeasonalFactors:
    """Multipliers by calendar month (1-12) and weekday (0 = Monday)."""
    monthly_factors: Dict[int, float]
    weekday_factors: Dict[int, float]
    is_holiday_period: bool = False
    last_calibrated_at: Optional[datetime] = None


def default_seasonal_factors() -> SeasonalFactors:
    """Factors as configured in the seasonality section of config.yaml."""
    cfg = get_seasonality_config()
    return SeasonalFactors(
        monthly_factors={int(k): float(v) for k, v in cfg["monthly_factors"].items()},
        weekday_factors={int(k): float(v) for k, v in cfg["weekday_factors"].items()},
    )


def is_holiday_period(when: datetime) -> bool:
    """15 November through 5 January, inclusive."""
    return (
        (when.month == 11 and when.day >= 15)
        or when.month == 12
        or (when.month == 1 and when.day <= 5)
    )


def get_seasonal_factor(
    factors: SeasonalFactors | None = None,
    now: datetime | None = None,
) -> float:
    factors = factors or default_seasonal_factors()
    now = now or datetime.now()

    month_factor = factors.monthly_factors.get(now.month, 1.0)
    day_factor = factors.weekday_factors.get(now.weekday(), 1.0)
    holiday_boost = get_seasonality_config()["holiday_boost"] if factors.is_holiday_period else 1.0

    return month_factor * day_factor * holiday_boost


def apply_seasonal_adjustment(
    confidence: float,
    factors: SeasonalFactors | None = None,
    now: datetime | None = None,
) -> float:
    """
    Divides confidence by the seasonal factor, then clamps to the confidence
    floor and ceiling. Factor > 1 means the spending is expected, so
    confidence drops.
    """
    factor = get_seasonal_factor(factors, now)
    adjusted = confidence / factor if factor > 0 else confidence

    conf_cfg = get_confidence_config()
    return round(max(conf_cfg["floor"], min(conf_cfg["ceiling"], adjusted)), 4)


def calibrate_seasonal_factors(
    transactions: Iterable[Any] | pd.DataFrame,
    existing: SeasonalFactors | None = None,
    now: datetime | None = None,
) -> SeasonalFactors:
    """
    Recomputes factors from average expense size per month and per weekday,
    relative to the mean of those averages. Months or weekdays with no history
    keep their existing factor. Returns `existing` unchanged when there are
    fewer than `min_transactions` expenses.
    """
    cfg = get_seasonality_config()
    existing = existing or default_seasonal_factors()
    now = now or datetime.now()

    spend = expenses(to_frame(transactions))
    if len(spend) < cfg["min_transactions"]:
        logger.info(
            f"Seasonal calibration skipped: {len(spend)} expenses, "
            f"need {cfg['min_transactions']}."
        )
        return existing

    amounts = spend["amount"].abs()
    dates = spend["transaction_date"]
    avg_monthly = amounts.groupby(dates.dt.month).mean()
    avg_weekday = amounts.groupby(dates.dt.weekday).mean()

    month_lo, month_hi = cfg["monthly_factor_range"]
    day_lo, day_hi = cfg["weekday_factor_range"]

    monthly = _relative_factors(avg_monthly, range(1, 13), existing.monthly_factors, month_lo, month_hi)
    weekday = _relative_factors(avg_weekday, range(7), existing.weekday_factors, day_lo, day_hi)

    logger.info(
        f"Seasonal factors recalibrated from {len(spend):,} expenses "
        f"({avg_monthly.size} months, {avg_weekday.size} weekdays)."
    )
    return SeasonalFactors(
        monthly_factors=monthly,
        weekday_factors=weekday,
        is_holiday_period=is_holiday_period(now),
        last_calibrated_at=now,
    )


def needs_recalibration(
    factors: SeasonalFactors,
    now: datetime | None = None,
    drift_detected: bool = False,
    transactions: Iterable[Any] | pd.DataFrame | None = None,
) -> bool:
    """
    True when never calibrated, drift was flagged, or calibration is older
    than `calibration_days`.

    When transactions are given, also True if recalibrating from them would
    move any month or weekday factor by more than `variance_threshold`
    (relative to the current factor).
    """
    if drift_detected or factors.last_calibrated_at is None:
        return True
    cfg = get_seasonality_config()
    now = now or datetime.now()

    if transactions is not None:
        variance = factor_variance(factors, calibrate_seasonal_factors(transactions, factors, now))
        if variance > cfg["variance_threshold"]:
            logger.info(
                f"Seasonal factors drifted by {variance:.1%} "
                f"(threshold {cfg['variance_threshold']:.0%}); recalibration due."
            )
            return True

    age_days = (to_utc_naive(now) - to_utc_naive(factors.last_calibrated_at)).days
    return age_days >= cfg["calibration_days"]


def factor_variance(current: SeasonalFactors, candidate: SeasonalFactors) -> float:
    """Largest relative change between two sets of factors."""
    changes = [
        abs(candidate_factors[key] - value) / value
        for current_factors, candidate_factors in (
            (current.monthly_factors, candidate.monthly_factors),
            (current.weekday_factors, candidate.weekday_factors),
        )
        for key, value in current_factors.items()
        if key in candidate_factors and value > 0
    ]
    return max(changes, default=0.0)


def _relative_factors(
    averages: pd.Series,
    keys: Iterable[int],
    fallback: Mapping[int, float],
    lo: float,
    hi: float,
) -> Dict[int, float]:
    overall = float(averages.mean())
    factors = {}
    for key in keys:
        if key in averages.index and overall > 0:
            value = float(averages[key]) / overall
        else:
            value = fallback.get(key, 1.0)
        factors[key] = round(float(np.clip(value, lo, hi)), 4)
    return factors


# =============================================================================
# DRIFT MONITORING
# =============================================================================

@dataclass
class DriftAlert:
    """A single drift detection alert."""
    alert_type: str                  # "AMOUNT_DISTRIBUTION" | "VOLUME"
    severity: str                    # "INFO" | "WARNING" | "CRITICAL"
    category: str                    # Category id, or "ALL"
    metric_name: str                 # e.g. "ks_p_value", "psi"
    metric_value: float
    threshold: float
    message: str
    detected_at: str = ""


@dataclass
class DriftReport:
    """Full drift monitoring report, one per run."""
    run_timestamp: str
    baseline_window: str             # e.g. "2024-06-03 to 2024-09-01"
    comparison_window: str
    alerts: List[DriftAlert] = field(default_factory=list)
    summary: dict = field(default_factory=dict)

    @property
    def drift_detected(self) -> bool:
        return any(a.severity in ("WARNING", "CRITICAL") for a in self.alerts)


class SpendingDriftMonitor:
    """
    Monitors expense amounts for distributional drift.

    Usage:
        monitor = SpendingDriftMonitor()
        report = monitor.run(transactions)
        if report.drift_detected:
            factors = calibrate_seasonal_factors(transactions)
    """

    def __init__(self, clock: Callable[[], datetime] | None = None):
        self.config = get_drift_monitoring_config()
        self.ks_alpha = self.config["ks_alpha"]
        self.psi_minor = self.config["psi_minor"]
        self.psi_major = self.config["psi_major"]
        self.baseline_days = self.config["baseline_days"]
        self.comparison_days = self.config["comparison_days"]
        self.min_baseline = self.config["min_baseline_samples"]
        self.min_comparison = self.config["min_comparison_samples"]
        self.clock = clock or datetime.now

    # -------------------------------------------------------------------------
    # PUBLIC INTERFACE
    # -------------------------------------------------------------------------

    def run(
        self,
        transactions: Iterable[Any] | pd.DataFrame,
        now: datetime | None = None,
    ) -> DriftReport:
        now = to_utc_naive(now if now is not None else self.clock())
        comparison_start = now - pd.Timedelta(days=self.comparison_days)
        baseline_start = comparison_start - pd.Timedelta(days=self.baseline_days)

        spend = expenses(to_frame(transactions)).copy()
        spend["spend"] = spend["amount"].abs()
        dates = spend["transaction_date"]
        baseline = spend[(dates >= baseline_start) & (dates < comparison_start)]
        comparison = spend[(dates >= comparison_start) & (dates <= now)]

        alerts: List[DriftAlert] = []

        # --- 1. Volume drift ---
        alerts.extend(self._check_volume_drift(baseline, comparison, now))

        # --- 2. Amount distribution drift, overall then per category ---
        alerts.extend(self._check_amount_drift(
            baseline["spend"].values, comparison["spend"].values, "ALL", now
        ))
        for category in sorted(set(comparison["category_id"]) & set(baseline["category_id"])):
            alerts.extend(self._check_amount_drift(
                baseline.loc[baseline["category_id"] == category, "spend"].values,
                comparison.loc[comparison["category_id"] == category, "spend"].values,
                category,
                now,
            ))

        summary = {
            "baseline_transactions": len(baseline),
            "comparison_transactions": len(comparison),
            "total_alerts": len(alerts),
            "critical_alerts": sum(1 for a in alerts if a.severity == "CRITICAL"),
            "warning_alerts": sum(1 for a in alerts if a.severity == "WARNING"),
            "info_alerts": sum(1 for a in alerts if a.severity == "INFO"),
        }
        logger.info(f"Drift monitor: {summary}")

        return DriftReport(
            run_timestamp=now.isoformat(),
            baseline_window=f"{baseline_start.date()} to {comparison_start.date()}",
            comparison_window=f"{comparison_start.date()} to {now.date()}",
            alerts=alerts,
            summary=summary,
        )

    # -------------------------------------------------------------------------
    # INTERNAL: VOLUME DRIFT
    # -------------------------------------------------------------------------

    def _check_volume_drift(
        self, baseline: pd.DataFrame, comparison: pd.DataFrame, now: pd.Timestamp
    ) -> List[DriftAlert]:
        """Flags a >50% change in daily expense count between windows."""
        if baseline.empty:
            return []

        # Per-day rates, since the windows differ in length
        baseline_rate = len(baseline) / self.baseline_days
        comparison_rate = len(comparison) / self.comparison_days
        ratio = comparison_rate / baseline_rate

        if 0.5 <= ratio <= 1.5:
            return []

        severity = "CRITICAL" if (ratio > 2.0 or ratio < 0.33) else "WARNING"
        return [DriftAlert(
            alert_type="VOLUME",
            severity=severity,
            category="ALL",
            metric_name="expense_volume_ratio",
            metric_value=round(ratio, 3),
            threshold=1.5,
            message=(
                f"Expense volume changed by {((ratio - 1) * 100):+.0f}%. "
                f"Baseline rate: {baseline_rate:.1f}/day, "
                f"Current rate: {comparison_rate:.1f}/day."
            ),
            detected_at=now.isoformat(),
        )]

    # -------------------------------------------------------------------------
    # INTERNAL: AMOUNT DISTRIBUTION DRIFT
    # -------------------------------------------------------------------------

    def _check_amount_drift(
        self,
        baseline: np.ndarray,
        comparison: np.ndarray,
        category: str,
        now: pd.Timestamp,
    ) -> List[DriftAlert]:
        alerts = []
        if len(baseline) < self.min_baseline or len(comparison) < self.min_comparison:
            return alerts

        # --- KS Test ---
        ks_stat, ks_pvalue = stats.ks_2samp(baseline, comparison)
        if ks_pvalue < self.ks_alpha:
            alerts.append(DriftAlert(
                alert_type="AMOUNT_DISTRIBUTION",
                severity="WARNING",
                category=category,
                metric_name="ks_p_value",
                metric_value=round(float(ks_pvalue), 4),
                threshold=self.ks_alpha,
                message=(
                    f"Amount distribution shift for {category}. "
                    f"KS statistic={ks_stat:.3f}, p-value={ks_pvalue:.4f}."
                ),
                detected_at=now.isoformat(),
            ))

        # --- PSI ---
        psi = self._compute_psi(baseline, comparison)
        if psi > self.psi_minor:
            severity = "CRITICAL" if psi > self.psi_major else "WARNING"
            alerts.append(DriftAlert(
                alert_type="AMOUNT_DISTRIBUTION",
                severity=severity,
                category=category,
                metric_name="psi",
                metric_value=round(psi, 4),
                threshold=self.psi_major if severity == "CRITICAL" else self.psi_minor,
                message=(
                    f"PSI={psi:.3f} for {category}. "
                    f"({'Major' if severity == 'CRITICAL' else 'Minor'} distribution shift.)"
                ),
                detected_at=now.isoformat(),
            ))

        return alerts

    @staticmethod
    def _compute_psi(baseline: np.ndarray, comparison: np.ndarray, n_bins: int = 10) -> float:
        """
        PSI = sum((P_actual - P_expected) * ln(P_actual / P_expected))

        Bin edges come from baseline percentiles. Returns 0.0 when the baseline
        has too little variation to bin.
        """
        bin_edges = np.unique(np.percentile(baseline, np.linspace(0, 100, n_bins + 1)))
        if len(bin_edges) < 3:
            return 0.0

        # Values outside the baseline range land in the end bins
        comparison = np.clip(comparison, bin_edges[0], bin_edges[-1])

        baseline_counts, _ = np.histogram(baseline, bins=bin_edges)
        comparison_counts, _ = np.histogram(comparison, bins=bin_edges)

        eps = 1e-6
        baseline_freq = (baseline_counts + eps) / (baseline_counts.sum() + eps * len(baseline_counts))
        comparison_freq = (comparison_counts + eps) / (comparison_counts.sum() + eps * len(comparison_counts))

        return float(np.sum((comparison_freq - baseline_freq) * np.log(comparison_freq / baseline_freq)))
