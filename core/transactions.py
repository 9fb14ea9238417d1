"""
transactions.py
----------------
Turns caller-supplied transactions into a validated working DataFrame.

Accepts a list of dicts, a list of Transaction dataclasses, or a DataFrame.
The caller's object is never modified: a copy is always returned.

Structurally invalid records (missing date or amount, unparseable date) raise
ValueError. Dropping them silently would skew every confidence score built on
top of the frame.
"""

from dataclasses import asdict, is_dataclass
from typing import Any, Iterable

import pandas as pd


REQUIRED_COLUMNS = ["transaction_date", "amount"]
OPTIONAL_COLUMNS = {
    "id": None,
    "category_id": None,
    "type": None,
    "description": "",
}
UNCATEGORIZED = "uncategorized"


def to_frame(transactions: Iterable[Any] | pd.DataFrame) -> pd.DataFrame:
    """
    Validates input, parses dates and amounts.

    Returns:
        DataFrame with columns id, amount (float), category_id (str),
        transaction_date (naive UTC datetime64), local_hour (int, wall-clock
        hour as recorded), type, description. Empty input yields an empty
        frame with the same columns.
    """
    if isinstance(transactions, pd.DataFrame):
        df = transactions.copy()
    else:
        records = [asdict(t) if is_dataclass(t) else dict(t) for t in transactions]
        df = pd.DataFrame(records)

    if len(df.index) == 0:
        return _empty_frame()

    missing = [c for c in REQUIRED_COLUMNS if c not in df.columns]
    if missing:
        raise ValueError(f"Missing required columns: {missing}")

    for col, default in OPTIONAL_COLUMNS.items():
        if col not in df.columns:
            df[col] = default

    if df["transaction_date"].isna().any():
        bad = df.loc[df["transaction_date"].isna(), "id"].tolist()
        raise ValueError(f"Transactions missing transaction_date: {bad}")

    parsed = _parse_dates(df["transaction_date"])
    # A frame prepared here already carries the recorded hours.
    if "local_hour" not in df.columns:
        df["local_hour"] = _local_hours(df["transaction_date"])
    df["transaction_date"] = parsed

    try:
        df["amount"] = pd.to_numeric(df["amount"]).astype(float)
    except (TypeError, ValueError) as e:
        raise ValueError(f"Invalid transaction amount: {e}") from e
    if df["amount"].isna().any():
        bad = df.loc[df["amount"].isna(), "id"].tolist()
        raise ValueError(f"Transactions missing amount: {bad}")

    df["category_id"] = df["category_id"].fillna(UNCATEGORIZED).astype(str)
    df.loc[df["category_id"] == "", "category_id"] = UNCATEGORIZED

    return df.sort_values("transaction_date", kind="stable").reset_index(drop=True)


def _parse_dates(dates: pd.Series) -> pd.Series:
    """
    Parses ISO-8601 timestamps into naive datetimes.

    Offset-aware values are converted to UTC before the offset is dropped, so
    rows recorded in different offsets compare correctly in window checks.
    Hour-of-day comes from local_hour instead.
    """
    if pd.api.types.is_datetime64_any_dtype(dates):
        if getattr(dates.dt, "tz", None) is not None:
            return dates.dt.tz_convert("UTC").dt.tz_localize(None)
        return dates

    try:
        parsed = pd.to_datetime(dates, format="ISO8601", utc=True)
    except (TypeError, ValueError) as e:
        raise ValueError(f"Unparseable transaction_date: {e}") from e
    return parsed.dt.tz_localize(None)


def _empty_frame() -> pd.DataFrame:
    df = pd.DataFrame({
        "id": pd.Series(dtype=object),
        "amount": pd.Series(dtype=float),
        "category_id": pd.Series(dtype=object),
        "transaction_date": pd.Series(dtype="datetime64[ns]"),
        "local_hour": pd.Series(dtype=int),
        "type": pd.Series(dtype=object),
        "description": pd.Series(dtype=object),
    })
    return df


def expenses(df: pd.DataFrame) -> pd.DataFrame:
    """Expense rows only (negative amounts)."""
    return df[df["amount"] < 0]


def within_days(df: pd.DataFrame, now: pd.Timestamp, days: int) -> pd.DataFrame:
    """Rows dated on or after now - days."""
    cutoff = now - pd.Timedelta(days=days)
    return df[df["transaction_date"] >= cutoff]


def to_utc_naive(value) -> pd.Timestamp:
    """Timestamp in the frame's convention: UTC, without tzinfo."""
    ts = pd.Timestamp(value)
    if ts.tzinfo is not None:
        ts = ts.tz_convert("UTC").tz_localize(None)
    return ts


def _local_hours(dates: pd.Series) -> pd.Series:
    """Hour of day as recorded, before any offset is normalised away."""
    if pd.api.types.is_datetime64_any_dtype(dates):
        return dates.dt.hour.astype(int)
    try:
        return dates.map(lambda v: pd.Timestamp(v).hour).astype(int)
    except (TypeError, ValueError) as e:
        raise ValueError(f"Unparseable transaction_date: {e}") from e
