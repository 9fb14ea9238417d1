"""
main.py
--------
Entry point for the Behavioral Detection Engine.

Reads a transaction history CSV, runs the full pipeline, prints a summary
and writes the detections to the outputs/ folder.

Usage (from the project root):
    python main.py --input path/to/transactions.csv

    # With optional arguments:
    python main.py --input txns.csv --priors priors.json
    python main.py --input txns.csv --seasonal --drift
"""

import sys
import os
import json
import argparse
import logging
import pandas as pd
from datetime import datetime

# Ensure project root is on path (for runs from any working directory)
PROJECT_ROOT = os.path.dirname(os.path.abspath(__file__))
sys.path.insert(0, PROJECT_ROOT)

from pipeline import BehavioralPipeline, BehavioralReport
from monitoring.seasonal_monitor import SpendingDriftMonitor


# =============================================================================
# LOGGING SETUP
# =============================================================================

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger("main")


# =============================================================================
# ARGUMENT PARSING
# =============================================================================

def parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Behavioral Detection Engine: spot spending patterns in a transaction history."
    )
    parser.add_argument(
        "--input", type=str, required=True,
        help="Path to input transactions CSV (transaction_date, amount, category_id, ...)."
    )
    parser.add_argument(
        "--priors", type=str, default=None,
        help="JSON file of prior confidences keyed by behavior type."
    )
    parser.add_argument(
        "--output-dir", type=str, default=None,
        help="Output directory. Defaults to outputs/ in project root."
    )
    parser.add_argument(
        "--seasonal", action="store_true", default=False,
        help="Apply the seasonal adjustment to detection confidence."
    )
    parser.add_argument(
        "--drift", action="store_true", default=False,
        help="Also run spending drift monitoring and output a drift report."
    )
    return parser.parse_args(argv)


def load_priors(path: str | None) -> dict:
    if not path:
        return {}
    with open(path, "r") as f:
        priors = json.load(f)
    if not isinstance(priors, dict):
        raise ValueError(f"Priors file must hold a JSON object, got {type(priors).__name__}")
    return {str(k): float(v) for k, v in priors.items()}


# =============================================================================
# MAIN
# =============================================================================

def main(argv=None):
    args = parse_args(argv)

    output_dir = args.output_dir or os.path.join(PROJECT_ROOT, "outputs")
    os.makedirs(output_dir, exist_ok=True)

    # --- Load transactions ---
    logger.info(f"Loading transactions from: {args.input}")
    if not os.path.exists(args.input):
        logger.error(f"Input file not found: {args.input}")
        sys.exit(1)

    transactions = pd.read_csv(args.input)
    priors = load_priors(args.priors)
    logger.info(f"Loaded {len(transactions):,} transactions. Priors: {priors or 'none'}.")

    # --- Run pipeline ---
    pipeline = BehavioralPipeline(apply_seasonal=args.seasonal)
    try:
        report = pipeline.run(transactions, priors)
    except ValueError as e:
        logger.error(f"Invalid transaction data: {e}")
        sys.exit(1)

    # --- Output: Detection Results ---
    timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
    detections_path = os.path.join(output_dir, f"detections_{timestamp}.csv")
    report.to_frame().to_csv(detections_path, index=False)
    logger.info(f"Detections saved to: {detections_path}")

    confidences_path = os.path.join(output_dir, f"confidences_{timestamp}.json")
    with open(confidences_path, "w") as f:
        json.dump(report.confidences, f, indent=2)
    logger.info(f"Confidences saved to: {confidences_path} (pass back with --priors)")

    _print_summary(report)

    # --- Optional: Drift Monitoring ---
    if args.drift:
        logger.info("Running drift monitor...")
        drift_report = SpendingDriftMonitor().run(transactions)

        for alert in drift_report.alerts:
            level = {"CRITICAL": logging.ERROR, "WARNING": logging.WARNING}.get(alert.severity, logging.INFO)
            logger.log(level, f"[{alert.alert_type}] {alert.severity}: {alert.message}")

        if drift_report.alerts:
            drift_path = os.path.join(output_dir, f"drift_report_{timestamp}.csv")
            pd.DataFrame([vars(a) for a in drift_report.alerts]).to_csv(drift_path, index=False)
            logger.info(f"Drift report saved to: {drift_path}")
        else:
            logger.info("No drift alerts detected.")


def _print_summary(report: BehavioralReport):
    """Prints a clean summary table to the console."""
    print("\n" + "=" * 80)
    print("  BEHAVIORAL DETECTION SUMMARY")
    print("=" * 80)

    print("\n  Detections:")
    print("  " + "-" * 60)
    for behavior, d in report.detections.items():
        status = "DETECTED" if d.detected else d.metadata.get("reason", "not detected")
        print(f"    {behavior:20s}  {d.confidence:>6.3f}  {status}")
        if behavior in report.nudges:
            print(f"    {'':20s}  \"{report.nudges[behavior]}\"")

    habit = report.saving_habit
    print("\n  Saving Habit:")
    print("  " + "-" * 60)
    print(
        f"    habit={habit.has_saving_habit}  consistency={habit.consistency:.2f}  "
        f"avg rate={habit.average_savings_rate:.1f}%  trend={habit.trend}"
    )
    if habit.message:
        print(f"    {habit.message}")

    trends = report.trends
    print("\n  Trends:")
    print("  " + "-" * 60)
    print(f"    weekly   {trends.weekly_trend.direction:8s} {trends.weekly_trend.percent_change:+d}%")
    print(f"    monthly  {trends.monthly_trend.direction:8s} {trends.monthly_trend.percent_change:+d}%")
    for insight in trends.insights:
        print(f"    {insight}")
    print("=" * 80 + "\n")


if __name__ == "__main__":
    main()
