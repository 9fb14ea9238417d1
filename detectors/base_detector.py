"""
base_detector.py
-----------------
Abstract base class for all confidence-bearing behavior detectors.

Each concrete detector (small recurring, stress spending, end of month)
inherits from this. Frame preparation, smoothing and decay, clamping and
the "not detected" result shape live here.

Concrete detectors only need to implement:
    - _evaluate(): pattern-specific filtering and raw scoring
"""

import logging
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any, Callable, Iterable, Mapping

import pandas as pd

from core.models import DetectionResult, Signal
from core.transactions import to_frame, to_utc_naive
from config.config_loader import (
    get_algorithm_version,
    get_confidence_config,
    get_detector_config,
)

logger = logging.getLogger(__name__)


class BaseBehaviorDetector(ABC):
    """
    Abstract base for behavior detectors.

    Subclasses implement _evaluate(). This class handles input preparation,
    prior-confidence smoothing and DetectionResult construction.

    Detectors hold no per-call state: the same instance can be reused and
    run concurrently.
    """

    def __init__(
        self,
        behavior_type: str,
        config: Mapping[str, Any] | None = None,
        confidence_config: Mapping[str, Any] | None = None,
        clock: Callable[[], datetime] | None = None,
    ):
        self.behavior_type = behavior_type
        self.config = config if config is not None else get_detector_config(behavior_type)
        self.confidence_config = (
            confidence_config if confidence_config is not None else get_confidence_config()
        )
        self.algorithm_version = get_algorithm_version()
        self.clock = clock or datetime.now

    # -------------------------------------------------------------------------
    # PUBLIC INTERFACE
    # -------------------------------------------------------------------------

    def detect(
        self,
        transactions: Iterable[Any] | pd.DataFrame,
        prior_confidence: float = 0.0,
        now: datetime | None = None,
    ) -> DetectionResult:
        """
        Run detection over a transaction history.

        Args:
            transactions: List of transaction mappings/dataclasses or a DataFrame.
            prior_confidence: Confidence stored by the caller after the last run.
            now: Evaluation time. Defaults to the detector's clock.

        Returns:
            DetectionResult with a smoothed, clamped confidence.

        Raises:
            ValueError: If a transaction is structurally invalid.
        """
        df = to_frame(transactions)
        now_ts = to_utc_naive(now if now is not None else self.clock())
        prior = self._clamp(prior_confidence or 0.0)

        result = self._evaluate(df, prior, now_ts)
        logger.debug(
            f"{self.behavior_type}: detected={result.detected} "
            f"confidence={result.confidence:.3f} over {len(df)} transactions."
        )
        return result

    # -------------------------------------------------------------------------
    # ABSTRACT METHODS: implement in each detector
    # -------------------------------------------------------------------------

    @abstractmethod
    def _evaluate(self, df: pd.DataFrame, prior: float, now: pd.Timestamp) -> DetectionResult:
        """
        Apply the pattern's gates and scoring to a prepared frame.

        Returns:
            A detected result via _detected(), or _not_detected() with a reason.
        """
        ...

    # -------------------------------------------------------------------------
    # SHARED HELPERS
    # -------------------------------------------------------------------------

    def _smooth(self, raw: float, prior: float, factor: float | None = None) -> float:
        """
        Blends a fresh raw score with the stored prior:
            new = factor * raw + (1 - factor) * prior

        With no stored prior the raw score is used as-is.
        """
        if factor is None:
            factor = self.config.get("smoothing_factor", self.confidence_config["smoothing_factor"])
        if prior <= 0:
            return self._clamp(raw)
        return self._clamp(factor * raw + (1 - factor) * prior)

    def _clamp(self, confidence: float) -> float:
        floor = max(0.0, self.confidence_config["floor"])
        ceiling = min(1.0, self.confidence_config["ceiling"])
        return round(max(floor, min(ceiling, float(confidence))), 4)

    def _metadata(self, df: pd.DataFrame, **extra: Any) -> dict[str, Any]:
        metadata: dict[str, Any] = {
            "algorithm_version": self.algorithm_version,
            "behavior_type": self.behavior_type,
            "transactions_analyzed": len(df),
            "time_range_days": self.config.get("lookback_days"),
        }
        metadata.update(extra)
        return metadata

    def _not_detected(self, df: pd.DataFrame, prior: float, reason: str, **extra: Any) -> DetectionResult:
        """Non-detection: the prior decays by one day's worth."""
        decayed = self._clamp(prior - self.confidence_config["decay_daily"])
        return DetectionResult(
            detected=False,
            confidence=decayed,
            signals=[],
            metadata=self._metadata(df, reason=reason, **extra),
        )

    def _detected(
        self,
        df: pd.DataFrame,
        confidence: float,
        signals: list[Signal],
        **extra: Any,
    ) -> DetectionResult:
        return DetectionResult(
            detected=True,
            confidence=self._clamp(confidence),
            signals=signals,
            metadata=self._metadata(df, **extra),
        )

    @staticmethod
    def _saturate(value: float, full_at: float) -> float:
        """Linear 0-1 score that reaches 1.0 at `full_at`."""
        if full_at <= 0:
            return 1.0
        return max(0.0, min(1.0, value / full_at))

    @staticmethod
    def _to_datetime(ts: pd.Timestamp) -> datetime:
        return ts.to_pydatetime() if hasattr(ts, "to_pydatetime") else ts
