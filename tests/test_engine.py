"""
test_engine.py
---------------
Test suite for the behavioral detection engine.

Run from the project root:
    python -m pytest tests/ -v

Tests are organized by layer:
    - Config & Taxonomy
    - Transaction frame preparation
    - Behavior detectors (small recurring, stress spending, end of month)
    - Saving habit & trends
    - Orchestration & pipeline (integration)
    - Seasonality & drift monitor
"""

import sys
import os
import copy
import json
import pytest
import pandas as pd
import numpy as np
from datetime import datetime, timedelta, timezone

# Ensure the project root is on the path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from config.config_loader import (
    load_config,
    get_detector_config,
    get_rulebook,
    get_seasonality_config,
    merge_config,
    reset_config,
)
from core.models import Transaction
from core.taxonomy import ComfortCategoryLookup, CategoryClassifier
from core.transactions import to_frame
from core.saving_habit import detect_saving_habit
from core.trend_analyzer import analyze_trends
from detectors.behavior_detectors import (
    SmallRecurringDetector,
    StressSpendingDetector,
    EndOfMonthCollapseDetector,
    detect_small_recurring,
    detect_stress_spending,
    detect_end_of_month_collapse,
)
from guardrails.message_validator import validate_message
from pipeline import BehavioralPipeline, run_all_detection, run_all_detection_with_seasonal
from monitoring.seasonal_monitor import (
    SeasonalFactors,
    SpendingDriftMonitor,
    apply_seasonal_adjustment,
    calibrate_seasonal_factors,
    default_seasonal_factors,
    factor_variance,
    get_seasonal_factor,
    is_holiday_period,
    needs_recalibration,
)


NOW = datetime(2024, 6, 15, 10, 0)


# =============================================================================
# FIXTURES
# =============================================================================

@pytest.fixture(autouse=True)
def reset_config_cache():
    """Clears config cache before each test for isolation."""
    reset_config()
    yield
    reset_config()


def _txn(txn_id, when, amount, category="coffee", description=""):
    return {
        "id": str(txn_id),
        "amount": amount,
        "category_id": category,
        "transaction_date": when,
        "type": "expense" if amount < 0 else "income",
        "description": description,
    }


def _make_small_txns(n: int, category: str = "coffee", now: datetime = NOW, amount: float = None) -> list:
    """Helper: one small purchase per day at 08:00, $5-7 unless an amount is given."""
    return [
        _txn(i, now - timedelta(days=i, hours=2), -(amount if amount is not None else 5 + i % 3), category)
        for i in range(n)
    ]


def _make_at_hours(hours: list, category: str = "food_delivery", now: datetime = NOW) -> list:
    """Helper: one purchase per listed hour, on consecutive days before `now`."""
    base = now.replace(hour=0, minute=0) - timedelta(days=1)
    return [
        _txn(i, base - timedelta(days=i) + timedelta(hours=h, minutes=15), -18.0, category)
        for i, h in enumerate(hours)
    ]


# =============================================================================
# CONFIG & TAXONOMY TESTS
# =============================================================================

class TestConfig:
    def test_config_loads_successfully(self):
        config = load_config()
        for section in ("confidence", "small_recurring", "stress_spending", "end_of_month",
                        "saving_habit", "trends", "message_rules", "ai_rules"):
            assert section in config

    def test_detector_config_has_required_keys(self):
        cfg = get_detector_config("small_recurring")
        assert {"lookback_days", "max_amount", "min_count", "category_min"}.issubset(cfg.keys())

    def test_missing_section_raises(self):
        with pytest.raises(KeyError):
            get_detector_config("impulse_buying")

    def test_sections_are_read_only(self):
        cfg = get_detector_config("small_recurring")
        with pytest.raises(TypeError):
            cfg["min_count"] = 1

    def test_merge_config_leaves_cache_untouched(self):
        base = get_detector_config("small_recurring")
        merged = merge_config(base, min_count=2)
        assert merged["min_count"] == 2
        assert get_detector_config("small_recurring")["min_count"] == 5

    def test_rulebook_limits(self):
        assert get_rulebook("message_rules")["max_words"] == 12
        assert get_rulebook("ai_rules")["max_words"] == 25


class TestTaxonomy:
    def test_lookup_loads_from_config(self):
        lookup = ComfortCategoryLookup()
        assert len(lookup) > 0
        assert lookup.is_comfort_category("food_delivery")

    def test_case_insensitive(self):
        lookup = ComfortCategoryLookup()
        assert "Coffee" in lookup
        assert " ENTERTAINMENT " in lookup

    def test_unknown_and_empty_are_not_comfort(self):
        lookup = ComfortCategoryLookup()
        assert not lookup.is_comfort_category("utilities")
        assert not lookup.is_comfort_category("")
        assert not lookup.is_comfort_category(None)

    def test_extend_returns_new_lookup(self):
        lookup = ComfortCategoryLookup(["coffee"])
        extended = lookup.extend(["gaming"])
        assert "gaming" in extended
        assert "gaming" not in lookup

    def test_satisfies_classifier_protocol(self):
        assert isinstance(ComfortCategoryLookup(), CategoryClassifier)


# =============================================================================
# TRANSACTION FRAME TESTS
# =============================================================================

class TestTransactionFrame:
    def test_empty_input_gives_empty_frame(self):
        df = to_frame([])
        assert df.empty
        assert "transaction_date" in df.columns

    def test_missing_date_column_raises(self):
        with pytest.raises(ValueError, match="transaction_date"):
            to_frame([{"id": "1", "amount": -5.0, "category_id": "coffee"}])

    def test_missing_date_value_raises(self):
        txns = _make_small_txns(3)
        txns[1]["transaction_date"] = None
        with pytest.raises(ValueError):
            to_frame(txns)

    def test_unparseable_date_raises(self):
        with pytest.raises(ValueError):
            to_frame([_txn(1, "not-a-date", -5.0)])

    def test_offset_timestamps_converted_to_utc(self):
        df = to_frame([_txn(1, "2024-06-14T23:30:00+02:00", -5.0)])
        assert df["transaction_date"].iloc[0] == pd.Timestamp("2024-06-14 21:30:00")

    def test_local_hour_kept_as_recorded(self):
        df = to_frame([
            _txn(1, "2024-06-14T23:30:00+02:00", -5.0),
            _txn(2, "2024-06-14T23:30:00-05:00", -5.0),
            _txn(3, "2024-06-14T08:00:00", -5.0),
        ])
        assert sorted(df["local_hour"].tolist()) == [8, 23, 23]

    def test_record_without_fields_raises(self):
        with pytest.raises(ValueError, match="Missing required columns"):
            to_frame([{}])

    def test_empty_frame_with_columns_is_empty(self):
        df = to_frame(pd.DataFrame(columns=["transaction_date", "amount"]))
        assert df.empty
        assert "local_hour" in df.columns

    def test_missing_category_filled(self):
        df = to_frame([_txn(1, "2024-06-14T08:00:00", -5.0, category=None)])
        assert df["category_id"].iloc[0] == "uncategorized"

    def test_accepts_dataclasses(self):
        txns = [Transaction(id="a", amount=-4.5, category_id="coffee", transaction_date="2024-06-14T08:00:00")]
        df = to_frame(txns)
        assert len(df) == 1
        assert df["amount"].iloc[0] == -4.5

    def test_input_not_modified(self):
        original = pd.DataFrame(_make_small_txns(3))
        snapshot = original.copy()
        to_frame(original)
        pd.testing.assert_frame_equal(original, snapshot)


# =============================================================================
# SMALL RECURRING DETECTOR TESTS
# =============================================================================

class TestSmallRecurringDetector:
    def test_two_transactions_not_detected(self):
        result = detect_small_recurring(_make_small_txns(2), now=NOW)
        assert result.detected is False
        assert result.metadata["reason"] == "Not enough small transactions"

    def test_six_transactions_detected(self):
        result = detect_small_recurring(_make_small_txns(6), now=NOW)
        assert result.detected is True
        assert 0 < result.confidence <= 0.95
        assert result.metadata["dominant_category"] == "coffee"
        assert all(s.type == "small_recurring_purchase" for s in result.signals)

    def test_minimum_count_is_inclusive(self):
        assert detect_small_recurring(_make_small_txns(5), now=NOW).detected is True
        assert detect_small_recurring(_make_small_txns(4), now=NOW).detected is False

    def test_large_amounts_ignored(self):
        result = detect_small_recurring(_make_small_txns(8, amount=40.0), now=NOW)
        assert result.detected is False

    def test_diffuse_categories_not_detected(self):
        txns = []
        for i, cat in enumerate(["coffee", "snacks", "parking", "coffee", "snacks", "parking"]):
            txns.append(_txn(i, NOW - timedelta(days=i, hours=3), -6.0, cat))
        result = detect_small_recurring(txns, now=NOW)
        assert result.detected is False
        assert result.metadata["reason"] == "No category with enough frequency"

    def test_outside_lookback_ignored(self):
        txns = _make_small_txns(6, now=NOW - timedelta(days=30))
        assert detect_small_recurring(txns, now=NOW).detected is False

    def test_signal_limit(self):
        result = detect_small_recurring(_make_small_txns(10), now=NOW)
        assert len(result.signals) == 5

    def test_smoothing_with_prior(self):
        fresh = detect_small_recurring(_make_small_txns(6), now=NOW)
        smoothed = detect_small_recurring(_make_small_txns(6), prior_confidence=0.8, now=NOW)
        raw = fresh.metadata["raw_confidence"]
        assert smoothed.confidence == pytest.approx(0.3 * raw + 0.7 * 0.8, abs=1e-3)

    def test_prior_decays_on_non_detection(self):
        result = detect_small_recurring(_make_small_txns(1), prior_confidence=0.5, now=NOW)
        assert result.confidence == pytest.approx(0.48)

    def test_confidence_never_exceeds_ceiling(self):
        result = detect_small_recurring(_make_small_txns(14), prior_confidence=1.0, now=NOW)
        assert result.confidence <= 0.95

    def test_idempotent(self):
        txns = _make_small_txns(6)
        first = detect_small_recurring(txns, 0.2, now=NOW)
        second = detect_small_recurring(txns, 0.2, now=NOW)
        assert first == second

    def test_injected_clock(self):
        detector = SmallRecurringDetector(clock=lambda: NOW)
        assert detector.detect(_make_small_txns(6)).detected is True


# =============================================================================
# STRESS SPENDING DETECTOR TESTS
# =============================================================================

class TestStressSpendingDetector:
    def test_non_comfort_never_detected(self):
        txns = _make_at_hours([23, 23, 0, 1, 2], category="utilities")
        assert detect_stress_spending(txns, now=NOW).detected is False

    def test_late_night_comfort_detected(self):
        result = detect_stress_spending(_make_at_hours([23, 23, 0]), now=NOW)
        assert result.detected is True
        late = [s for s in result.signals if s.type == "late_night_comfort"]
        assert len(late) == 1
        assert late[0].count == 3
        assert late[0].time_context == "late_night"

    def test_post_work_comfort_detected(self):
        result = detect_stress_spending(_make_at_hours([17, 18, 19]), now=NOW)
        assert result.detected is True
        assert [s.type for s in result.signals] == ["post_work_comfort"]

    def test_single_occurrence_not_detected(self):
        result = detect_stress_spending(_make_at_hours([23, 12, 13]), now=NOW)
        assert result.detected is False
        assert result.metadata["reason"] == "Not enough stress signals"

    @pytest.mark.parametrize("hour,detected", [(22, True), (3, True), (4, False), (21, False)])
    def test_late_night_band_edges(self, hour, detected):
        result = detect_stress_spending(_make_at_hours([hour, hour]), now=NOW)
        assert result.detected is detected

    @pytest.mark.parametrize("hour,detected", [(17, True), (19, True), (20, False), (16, False)])
    def test_post_work_band_edges(self, hour, detected):
        result = detect_stress_spending(_make_at_hours([hour, hour]), now=NOW)
        assert result.detected is detected

    def test_injected_classifier(self):
        class GymOnly:
            def is_comfort_category(self, category_id):
                return category_id == "gym"

        txns = _make_at_hours([23, 23], category="gym")
        assert detect_stress_spending(txns, now=NOW).detected is False
        assert detect_stress_spending(txns, classifier=GymOnly(), now=NOW).detected is True

    def test_clusters_counted(self):
        night = NOW.replace(hour=23, minute=0) - timedelta(days=1)
        txns = [
            _txn(1, night, -12.0, "food_delivery"),
            _txn(2, night + timedelta(minutes=40), -9.0, "snacks"),
            _txn(3, night + timedelta(hours=1, minutes=30), -15.0, "streaming"),
        ]
        result = StressSpendingDetector().detect(txns, now=NOW)
        assert result.detected is True
        assert result.metadata["cluster_count"] == 2

    def test_confidence_in_range(self):
        result = detect_stress_spending(_make_at_hours([23, 0, 1, 2, 22, 23, 18, 19]), now=NOW)
        assert 0 <= result.confidence <= 0.95

    def test_offset_timestamps_use_recorded_hour(self):
        """23:30 at +02:00 is 21:30 UTC, but the purchase was still late at night."""
        txns = [
            _txn(1, "2024-06-13T23:30:00+02:00", -18.0, "food_delivery"),
            _txn(2, "2024-06-14T23:30:00+02:00", -18.0, "food_delivery"),
        ]
        result = detect_stress_spending(txns, now=NOW)
        assert result.detected is True
        assert [s.type for s in result.signals] == ["late_night_comfort"]
        assert run_all_detection(txns, {}, now=NOW)["stress_spending"].detected is True

    def test_aware_now_matches_naive_utc(self):
        txns = _make_at_hours([23, 23, 0])
        aware = detect_stress_spending(txns, now=NOW.replace(tzinfo=timezone.utc))
        assert aware == detect_stress_spending(txns, now=NOW)


# =============================================================================
# END OF MONTH DETECTOR TESTS
# =============================================================================

def _make_month(year: int = 2024, month: int = 5) -> list:
    """Helper: steady spending early in the month, a spike from day 21."""
    txns = [_txn(f"e{d}", datetime(year, month, d, 12), -20.0, "groceries") for d in (3, 8, 13, 18)]
    txns += [_txn(f"l{d}", datetime(year, month, d, 9), -40.0, "shopping") for d in (21, 23, 25, 27, 28)]
    return txns


class TestEndOfMonthCollapseDetector:
    def test_day_ten_is_gated(self):
        result = detect_end_of_month_collapse(_make_month(), now=datetime(2024, 5, 10, 12))
        assert result.detected is False
        assert result.metadata["reason"] == "Not end of month period"

    def test_gate_ignores_transactions(self):
        txns = _make_month() + _make_month(2024, 4)
        result = EndOfMonthCollapseDetector(clock=lambda: datetime(2024, 5, 10, 12)).detect(txns)
        assert result.detected is False

    def test_spike_detected_on_day_28(self):
        result = detect_end_of_month_collapse(_make_month(), now=datetime(2024, 5, 28, 18))
        assert result.detected is True
        assert result.metadata["spike_ratio"] > 1.5
        assert all(s.type == "end_of_month_spend" for s in result.signals)

    def test_flat_month_not_detected(self):
        txns = [_txn(d, datetime(2024, 5, d, 12), -20.0) for d in range(1, 29)]
        result = detect_end_of_month_collapse(txns, now=datetime(2024, 5, 28, 18))
        assert result.detected is False
        assert result.metadata["reason"] == "No spending spike"

    def test_too_few_transactions(self):
        txns = _make_month()[:3]
        result = detect_end_of_month_collapse(txns, now=datetime(2024, 5, 28, 18))
        assert result.metadata["reason"] == "Not enough transactions"

    def test_prior_retained_then_decayed_before_window(self):
        result = detect_end_of_month_collapse([], prior_confidence=0.5, now=datetime(2024, 5, 10))
        assert result.confidence == pytest.approx(0.5 * 0.98 - 0.02)

    def test_uses_own_smoothing_factor(self):
        fresh = detect_end_of_month_collapse(_make_month(), now=datetime(2024, 5, 28, 18))
        smoothed = detect_end_of_month_collapse(_make_month(), 0.6, now=datetime(2024, 5, 28, 18))
        raw = fresh.metadata["raw_confidence"]
        assert smoothed.confidence == pytest.approx(0.4 * raw + 0.6 * 0.6, abs=1e-3)


# =============================================================================
# SAVING HABIT & TRENDS TESTS
# =============================================================================

class TestSavingHabit:
    def _weeks(self, income: float, expense: float, n_weeks: int = 4) -> list:
        txns = []
        for w in range(n_weeks):
            week_end = NOW - timedelta(days=7 * w)
            txns.append(_txn(f"i{w}", week_end - timedelta(hours=1), income, "salary"))
            txns.append(_txn(f"x{w}", week_end - timedelta(hours=2), -expense, "groceries"))
        return txns

    def test_four_saving_weeks(self):
        result = detect_saving_habit(self._weeks(1000, 600), now=NOW)
        assert result.has_saving_habit is True
        assert result.consistency > 0
        assert result.average_savings_rate > 0
        assert result.streak_weeks == 4
        assert result.trend == "stable"

    def test_empty_input(self):
        result = detect_saving_habit([], now=NOW)
        assert result.has_saving_habit is False
        assert result.consistency == 0

    def test_overspending_weeks(self):
        result = detect_saving_habit(self._weeks(500, 800), now=NOW)
        assert result.has_saving_habit is False
        assert result.average_savings_rate < 0

    def test_message_passes_validator(self):
        result = detect_saving_habit(self._weeks(1000, 600), now=NOW)
        assert result.message
        assert validate_message(result.message).is_valid


class TestTrendAnalyzer:
    def test_too_few_transactions(self):
        result = analyze_trends(_make_small_txns(3), now=NOW)
        assert result.weekly_trend.data == []
        assert result.monthly_trend.data == []
        assert result.weekly_trend.direction == "stable"
        assert result.insights == []

    def test_steady_spending_is_stable(self):
        txns = [_txn(i, NOW - timedelta(days=i, hours=1), -20.0, "food") for i in range(30)]
        result = analyze_trends(txns, now=NOW)
        assert [d["week"] for d in result.week_over_week_data] == ["Week 1", "Week 2", "Week 3", "Week 4"]
        assert result.weekly_trend.direction == "stable"
        assert [d["month"] for d in result.month_over_month_data] == ["Apr", "May", "Jun"]
        assert result.category_trends == []

    def test_rising_week(self):
        txns = []
        for w in range(4):
            amount = -100.0 if w == 0 else -50.0
            for k in range(2):
                txns.append(_txn(f"{w}{k}", NOW - timedelta(days=7 * w + 1, hours=k), amount, "food"))
        result = analyze_trends(txns, now=NOW)
        assert result.weekly_trend.direction == "up"
        assert result.weekly_trend.percent_change == 100
        assert "Spending up 100% this week." in result.insights
        assert result.category_trends[0].category == "food"
        assert result.category_trends[0].direction == "up"

    def test_insights_pass_validator(self):
        txns = []
        for w in range(4):
            amount = -100.0 if w == 0 else -50.0
            for k in range(2):
                txns.append(_txn(f"{w}{k}", NOW - timedelta(days=7 * w + 1, hours=k), amount, "food_dining"))
        for insight in analyze_trends(txns, now=NOW).insights:
            assert validate_message(insight).is_valid, insight

    def test_category_missing_from_one_window(self):
        """A category that stopped reads -100%, a brand-new one +100%."""
        txns = [_txn(i, NOW - timedelta(days=i, hours=1), -20.0, "food") for i in range(30)]
        txns += [_txn(f"g{d}", NOW - timedelta(days=d, hours=3), -30.0, "gym") for d in (16, 18, 20)]
        txns += [_txn(f"b{d}", NOW - timedelta(days=d, hours=3), -25.0, "books") for d in (1, 3)]
        trends = {t.category: t for t in analyze_trends(txns, now=NOW).category_trends}

        assert trends["gym"].percent_change == -100
        assert trends["gym"].direction == "down"
        assert trends["books"].percent_change == 100
        assert trends["books"].direction == "up"
        assert "food" not in trends

    def test_spending_stopped_entirely(self):
        txns = [_txn(i, NOW - timedelta(days=15 + i), -20.0, "food") for i in range(10)]
        trends = analyze_trends(txns, now=NOW).category_trends
        assert [(t.category, t.percent_change, t.direction) for t in trends] == [("food", -100, "down")]


# =============================================================================
# ORCHESTRATION & PIPELINE TESTS (INTEGRATION)
# =============================================================================

class TestRunAllDetection:
    def test_empty_input_returns_all_keys(self):
        results = run_all_detection([], {}, now=NOW)
        assert set(results) == {"small_recurring", "stress_spending", "end_of_month"}
        for result in results.values():
            assert result.detected is False
            assert 0 <= result.confidence <= 1

    def test_missing_priors_default_to_zero(self):
        results = run_all_detection(_make_small_txns(6), {"stress_spending": 0.5}, now=NOW)
        assert results["small_recurring"].detected is True
        assert results["stress_spending"].confidence == pytest.approx(0.48)

    def test_mixed_history(self):
        txns = _make_small_txns(6) + _make_at_hours([23, 23, 0])
        results = run_all_detection(txns, None, now=NOW)
        assert results["small_recurring"].detected is True
        assert results["stress_spending"].detected is True
        assert results["end_of_month"].detected is False

    def test_malformed_input_raises(self):
        with pytest.raises(ValueError):
            run_all_detection([{"amount": -5.0}], {}, now=NOW)

    def test_idempotent_and_input_untouched(self):
        eom_now = datetime(2024, 5, 28, 18)
        txns = (
            _make_small_txns(6, now=eom_now)
            + _make_at_hours([23, 23, 0], now=eom_now)
            + _make_month()
            + [_txn("tz1", "2024-05-26T23:30:00+02:00", -14.0, "snacks")]
        )
        priors = {"small_recurring": 0.4, "stress_spending": 0.3, "end_of_month": 0.2}
        snapshot = copy.deepcopy(txns)

        first = run_all_detection(txns, priors, now=eom_now)
        second = run_all_detection(txns, priors, now=eom_now)

        assert first == second
        assert all(first[b].detected for b in ("small_recurring", "stress_spending", "end_of_month"))
        assert txns == snapshot
        assert priors == {"small_recurring": 0.4, "stress_spending": 0.3, "end_of_month": 0.2}

    def test_aware_now_does_not_raise(self):
        aware_now = NOW.replace(tzinfo=timezone.utc)
        results = run_all_detection(_make_small_txns(6), {}, now=aware_now)
        assert results == run_all_detection(_make_small_txns(6), {}, now=NOW)
        assert detect_small_recurring(_make_small_txns(6), now=aware_now).detected is True

    def test_seasonal_variant_reduces_confidence_in_high_season(self):
        factors = SeasonalFactors(
            monthly_factors={m: 1.5 for m in range(1, 13)},
            weekday_factors={d: 1.0 for d in range(7)},
        )
        txns = _make_small_txns(6)
        plain = run_all_detection(txns, {}, now=NOW)
        seasonal = run_all_detection_with_seasonal(txns, {}, factors, now=NOW)
        assert seasonal["small_recurring"].confidence < plain["small_recurring"].confidence
        assert seasonal["small_recurring"].detected is True


class TestBehavioralPipeline:
    def test_pipeline_report(self):
        pipeline = BehavioralPipeline(clock=lambda: NOW)
        report = pipeline.run(_make_small_txns(6) + _make_at_hours([23, 23, 0]))

        assert report.detections["small_recurring"].detected is True
        assert set(report.nudges) == {"small_recurring", "stress_spending"}
        for text in report.nudges.values():
            assert validate_message(text).is_valid

        df = report.to_frame()
        assert list(df["behavior_type"]) == ["small_recurring", "stress_spending", "end_of_month"]
        assert set(report.confidences) == set(df["behavior_type"])

    def test_pipeline_empty_input(self):
        report = BehavioralPipeline(clock=lambda: NOW).run([])
        assert report.nudges == {}
        assert report.saving_habit.has_saving_habit is False
        assert len(report.to_frame()) == 3

    def test_cli_writes_outputs(self, tmp_path):
        import main

        csv_path = tmp_path / "txns.csv"
        recent = _make_small_txns(6, now=datetime.now())
        pd.DataFrame(recent).assign(
            transaction_date=lambda d: pd.to_datetime(d["transaction_date"]).dt.strftime("%Y-%m-%dT%H:%M:%S")
        ).to_csv(csv_path, index=False)
        priors_path = tmp_path / "priors.json"
        priors_path.write_text(json.dumps({"small_recurring": 0.3}))

        main.main(["--input", str(csv_path), "--priors", str(priors_path), "--output-dir", str(tmp_path)])

        outputs = os.listdir(tmp_path)
        assert any(name.startswith("detections_") for name in outputs)
        assert any(name.startswith("confidences_") for name in outputs)


# =============================================================================
# SEASONALITY & DRIFT MONITOR TESTS
# =============================================================================

class TestSeasonality:
    def test_default_factor(self):
        # 14 Dec 2024 is a Saturday
        factor = get_seasonal_factor(default_seasonal_factors(), datetime(2024, 12, 14))
        assert factor == pytest.approx(1.3 * 1.25)

    def test_holiday_boost(self):
        factors = default_seasonal_factors()
        factors.is_holiday_period = True
        plain = get_seasonal_factor(default_seasonal_factors(), datetime(2024, 12, 14))
        assert get_seasonal_factor(factors, datetime(2024, 12, 14)) == pytest.approx(plain * 1.2)

    def test_holiday_period_bounds(self):
        assert is_holiday_period(datetime(2024, 11, 15))
        assert is_holiday_period(datetime(2025, 1, 5))
        assert not is_holiday_period(datetime(2024, 11, 14))
        assert not is_holiday_period(datetime(2025, 1, 6))

    def test_adjustment_clamped(self):
        low_season = SeasonalFactors(
            monthly_factors={m: 0.5 for m in range(1, 13)},
            weekday_factors={d: 1.0 for d in range(7)},
        )
        assert apply_seasonal_adjustment(0.9, low_season, NOW) == 0.95
        assert apply_seasonal_adjustment(0.0, low_season, NOW) == 0.0

    def test_calibration_needs_history(self):
        existing = default_seasonal_factors()
        assert calibrate_seasonal_factors(_make_small_txns(10), existing, NOW) is existing

    def test_calibration_within_ranges(self):
        rng = np.random.default_rng(7)
        txns = [
            _txn(i, NOW - timedelta(days=i), -float(rng.uniform(5, 80)), "shopping")
            for i in range(180)
        ]
        factors = calibrate_seasonal_factors(txns, now=NOW)
        assert set(factors.monthly_factors) == set(range(1, 13))
        assert all(0.7 <= f <= 1.5 for f in factors.monthly_factors.values())
        assert all(0.8 <= f <= 1.4 for f in factors.weekday_factors.values())
        assert factors.last_calibrated_at == NOW

    def test_needs_recalibration(self):
        factors = default_seasonal_factors()
        assert needs_recalibration(factors, NOW)
        factors.last_calibrated_at = NOW - timedelta(days=10)
        assert not needs_recalibration(factors, NOW)
        assert needs_recalibration(factors, NOW, drift_detected=True)
        factors.last_calibrated_at = NOW - timedelta(days=100)
        assert needs_recalibration(factors, NOW)

    def test_needs_recalibration_on_factor_variance(self):
        factors = SeasonalFactors(
            monthly_factors={m: 1.0 for m in range(1, 13)},
            weekday_factors={d: 1.0 for d in range(7)},
            last_calibrated_at=NOW - timedelta(days=10),
        )
        steady = [_txn(i, NOW - timedelta(days=i), -10.0, "shopping") for i in range(180)]
        assert not needs_recalibration(factors, NOW, transactions=steady)

        june_heavy = [
            _txn(i, NOW - timedelta(days=i), -40.0 if (NOW - timedelta(days=i)).month == 6 else -10.0, "shopping")
            for i in range(180)
        ]
        assert needs_recalibration(factors, NOW, transactions=june_heavy)

    def test_variance_threshold_from_config(self):
        factors = SeasonalFactors(
            monthly_factors={m: 1.0 for m in range(1, 13)},
            weekday_factors={d: 1.0 for d in range(7)},
            last_calibrated_at=NOW,
        )
        shifted = SeasonalFactors(
            monthly_factors={**factors.monthly_factors, 6: 1.25},
            weekday_factors=dict(factors.weekday_factors),
        )
        assert factor_variance(factors, shifted) == pytest.approx(0.25)
        assert 0.25 < get_seasonality_config()["variance_threshold"]


class TestDriftMonitor:
    def test_drift_monitor_flags_shift(self):
        """Amounts jump in the comparison window: the KS test should flag it."""
        rng = np.random.default_rng(42)
        baseline = [
            _txn(f"b{j}", NOW - timedelta(days=30 + j, hours=1), -float(rng.normal(20, 2)), "food")
            for j in range(89)
        ]
        recent = [
            _txn(f"r{i}", NOW - timedelta(days=i, hours=1), -float(rng.normal(60, 5)), "food")
            for i in range(29)
        ]
        report = SpendingDriftMonitor().run(baseline + recent, now=NOW)

        assert "total_alerts" in report.summary
        assert report.drift_detected
        assert any(a.metric_name == "ks_p_value" for a in report.alerts)

    def test_empty_history(self):
        report = SpendingDriftMonitor(clock=lambda: NOW).run([])
        assert report.alerts == []
        assert not report.drift_detected

    def test_psi_computation(self):
        """PSI should be ~0 for identical distributions, >0 for shifted ones."""
        rng = np.random.default_rng(0)
        baseline = rng.normal(100, 10, 500)
        psi_same = SpendingDriftMonitor._compute_psi(baseline, rng.normal(100, 10, 500))
        psi_shifted = SpendingDriftMonitor._compute_psi(baseline, rng.normal(150, 10, 500))
        assert psi_same < 0.1
        assert psi_shifted > 0.25


# =============================================================================
# ENTRY POINT
# =============================================================================

if __name__ == "__main__":
    pytest.main([__file__, "-v"])
