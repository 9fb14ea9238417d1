"""
pipeline.py
------------
Main orchestration layer. Wires together:
    1. Behavior detectors      →  DetectionResults with smoothed confidence
    2. Seasonal adjustment     →  optional, divides confidence by the season
    3. Descriptive analyzers   →  saving habit and spending trends
    4. Message selection       →  validated nudge copy for detected behaviors

This is the single entry point for running the engine. Everything else
is internal machinery.

Usage:
    from pipeline import BehavioralPipeline, run_all_detection

    results = run_all_detection(transactions, {"small_recurring": 0.4})

    pipeline = BehavioralPipeline()
    report = pipeline.run(transactions, prior_confidences)
    detections_df = report.to_frame()
"""

import logging
from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Any, Callable, Dict, Iterable, Mapping, Optional

import pandas as pd

from core.models import DetectionResult, SavingHabitResult, TrendAnalysis
from core.saving_habit import SavingHabitDetector
from core.taxonomy import CategoryClassifier
from core.transactions import to_frame
from core.trend_analyzer import TrendAnalyzer
from detectors.behavior_detectors import BEHAVIOR_TYPES, get_all_detectors
from guardrails.message_memory import MessageSelector
from monitoring.seasonal_monitor import SeasonalFactors, apply_seasonal_adjustment

logger = logging.getLogger(__name__)

# Signal type → moment type used to pick matching copy.
SIGNAL_MOMENTS = {
    "small_recurring_purchase": "REPEAT_PURCHASE",
    "late_night_comfort": "LATE_NIGHT_COMFORT",
    "post_work_comfort": "POST_WORK_RELEASE",
    "end_of_month_spend": "COLLAPSE_START",
}


# =============================================================================
# FUNCTIONAL ENTRY POINTS
# =============================================================================

def run_all_detection(
    transactions: Iterable[Any] | pd.DataFrame,
    prior_confidences: Mapping[str, float] | None = None,
    *,
    classifier: CategoryClassifier | None = None,
    now: datetime | None = None,
) -> Dict[str, DetectionResult]:
    """
    Runs every confidence-bearing detector over the same history.

    Detectors run one after another and never short-circuit each other.
    A missing prior confidence is treated as 0.

    Returns:
        {"small_recurring": ..., "stress_spending": ..., "end_of_month": ...}

    Raises:
        ValueError: If a transaction is structurally invalid.
    """
    priors = prior_confidences or {}
    df = to_frame(transactions)
    detectors = get_all_detectors(classifier=classifier)

    return {
        behavior: detector.detect(df, priors.get(behavior, 0.0), now=now)
        for behavior, detector in detectors.items()
    }


def run_all_detection_with_seasonal(
    transactions: Iterable[Any] | pd.DataFrame,
    prior_confidences: Mapping[str, float] | None = None,
    seasonal_factors: SeasonalFactors | None = None,
    *,
    classifier: CategoryClassifier | None = None,
    now: datetime | None = None,
) -> Dict[str, DetectionResult]:
    """run_all_detection, with each confidence divided by the seasonal factor and clamped."""
    results = run_all_detection(transactions, prior_confidences, classifier=classifier, now=now)
    return {
        behavior: replace(
            result,
            confidence=apply_seasonal_adjustment(result.confidence, seasonal_factors, now),
        )
        for behavior, result in results.items()
    }


# =============================================================================
# PIPELINE
# =============================================================================

@dataclass
class BehavioralReport:
    """Everything one pipeline run produces for a single user's history."""
    detections: Dict[str, DetectionResult]
    saving_habit: SavingHabitResult
    trends: TrendAnalysis
    nudges: Dict[str, str] = field(default_factory=dict)

    @property
    def confidences(self) -> Dict[str, float]:
        """What the caller should persist and pass back as priors next run."""
        return {behavior: d.confidence for behavior, d in self.detections.items()}

    def to_frame(self) -> pd.DataFrame:
        """One row per behavior type, in a stable order."""
        rows = []
        for behavior in BEHAVIOR_TYPES:
            d = self.detections[behavior]
            rows.append({
                "behavior_type": behavior,
                "detected": d.detected,
                "confidence": d.confidence,
                "signal_count": len(d.signals),
                "signal_types": "|".join(sorted({s.type for s in d.signals})),
                "reason": d.metadata.get("reason", ""),
                "transactions_analyzed": d.metadata.get("transactions_analyzed", 0),
                "algorithm_version": d.metadata.get("algorithm_version", ""),
                "nudge": self.nudges.get(behavior, ""),
            })
        return pd.DataFrame(rows)


class BehavioralPipeline:
    """
    End-to-end behavioral detection pipeline.

    Orchestrates detection → seasonal adjustment → analysis → messaging
    without exposing internal objects to callers.
    """

    def __init__(
        self,
        classifier: CategoryClassifier | None = None,
        clock: Callable[[], datetime] | None = None,
        selector: MessageSelector | None = None,
        seasonal_factors: SeasonalFactors | None = None,
        apply_seasonal: bool = False,
    ):
        """
        Args:
            classifier: Comfort-category classifier. Defaults to the config list.
            clock: Time source used when run() is given no `now`.
            selector: Message selector. Owns its own recency memory.
            seasonal_factors: Factors for the seasonal adjustment stage.
            apply_seasonal: Enables the seasonal adjustment stage.
        """
        self.clock = clock or datetime.now
        self.detectors = get_all_detectors(classifier=classifier, clock=self.clock)
        self.saving_habit_detector = SavingHabitDetector(clock=self.clock)
        self.trend_analyzer = TrendAnalyzer(clock=self.clock)
        self.selector = selector or MessageSelector()
        self.seasonal_factors = seasonal_factors
        self.apply_seasonal = apply_seasonal

        logger.info(
            f"Pipeline initialized. "
            f"Detectors: {list(self.detectors)}. "
            f"Seasonal adjustment: {'on' if apply_seasonal else 'off'}."
        )

    # -------------------------------------------------------------------------
    # PUBLIC INTERFACE
    # -------------------------------------------------------------------------

    def run(
        self,
        transactions: Iterable[Any] | pd.DataFrame,
        prior_confidences: Mapping[str, float] | None = None,
        now: datetime | None = None,
    ) -> BehavioralReport:
        """
        Run the full pipeline.

        Args:
            transactions: Transaction history (list of mappings or a DataFrame).
            prior_confidences: Confidences persisted from the previous run.
            now: Evaluation time. Defaults to the pipeline clock.

        Returns:
            BehavioralReport with detections, saving habit, trends and nudges.
        """
        now = now if now is not None else self.clock()
        priors = prior_confidences or {}
        df = to_frame(transactions)
        logger.info(f"Pipeline starting. Input: {len(df):,} transactions.")

        # --- Stage 1: Behavior detection ---
        detections = {
            behavior: detector.detect(df, priors.get(behavior, 0.0), now=now)
            for behavior, detector in self.detectors.items()
        }
        detected = [b for b, d in detections.items() if d.detected]
        logger.info(f"Stage 1 complete. Detected behaviors: {detected or 'none'}.")

        # --- Stage 2: Seasonal adjustment ---
        if self.apply_seasonal:
            detections = {
                behavior: replace(
                    d, confidence=apply_seasonal_adjustment(d.confidence, self.seasonal_factors, now)
                )
                for behavior, d in detections.items()
            }
            logger.info("Stage 2 complete. Seasonal adjustment applied.")

        # --- Stage 3: Descriptive analysis ---
        saving_habit = self.saving_habit_detector.detect(df, now=now)
        trends = self.trend_analyzer.analyze(df, now=now)
        logger.info(
            f"Stage 3 complete. Saving habit: {saving_habit.has_saving_habit}. "
            f"Insights: {len(trends.insights)}."
        )

        # --- Stage 4: Nudge copy ---
        nudges = self._compose_nudges(detections)
        logger.info(f"Pipeline complete. Nudges: {len(nudges)}.")

        return BehavioralReport(
            detections=detections,
            saving_habit=saving_habit,
            trends=trends,
            nudges=nudges,
        )

    # -------------------------------------------------------------------------
    # INTERNAL: MESSAGING
    # -------------------------------------------------------------------------

    def _compose_nudges(self, detections: Mapping[str, DetectionResult]) -> Dict[str, str]:
        nudges = {}
        for behavior, result in detections.items():
            if not result.detected:
                continue
            text = self.selector.compose_nudge(
                behavior, "pattern_reflection", self._moment_type(result)
            )
            if text:
                nudges[behavior] = text
        return nudges

    @staticmethod
    def _moment_type(result: DetectionResult) -> Optional[str]:
        """Moment type of the strongest signal, if it maps to one."""
        if not result.signals:
            return None
        strongest = max(result.signals, key=lambda s: s.strength)
        return SIGNAL_MOMENTS.get(strongest.type)
