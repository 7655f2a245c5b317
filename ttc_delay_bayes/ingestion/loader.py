"""TTC bus delay data loading, cleaning and subsampling."""
from __future__ import annotations

from pathlib import Path

import pandas as pd

from ttc_delay_bayes.config import DAY_ORDER, REQUIRED_COLUMNS
from ttc_delay_bayes.errors import DataLoadError

__all__ = ["load_dataset", "subsample", "clean_raw_export", "write_clean_dataset"]


def _coerce_columns(df: pd.DataFrame) -> pd.DataFrame:
    """Cast the model columns to their analysis dtypes."""
    df = df.copy()
    df["incident"] = df["incident"].astype("string").str.strip()
    df["day"] = df["day"].astype("string").str.strip().str.title()
    df["min_gap"] = pd.to_numeric(df["min_gap"], errors="coerce")
    df["min_delay"] = pd.to_numeric(df["min_delay"], errors="coerce")
    return df


def load_dataset(path: Path | str) -> pd.DataFrame:
    """Load the cleaned bus delay dataset.

    Args:
        path: CSV file with ``incident``, ``day``, ``min_gap`` and
            ``min_delay`` columns

    Returns:
        DataFrame with one row per delay record; ``incident`` and ``day`` are
        categoricals (days in Monday..Sunday order), gaps and delays floats.

    Raises:
        DataLoadError: file missing or unreadable, required columns absent,
            unknown day names, or no complete rows.
    """
    path = Path(path)
    if not path.exists():
        raise DataLoadError(f"Delay data not found: {path}")

    try:
        raw = pd.read_csv(path)
    except (OSError, UnicodeDecodeError, pd.errors.ParserError, pd.errors.EmptyDataError) as e:
        raise DataLoadError(f"Could not read delay data {path}: {e}") from e

    missing = [col for col in REQUIRED_COLUMNS if col not in raw.columns]
    if missing:
        raise DataLoadError(f"{path} is missing required columns: {', '.join(missing)}")

    df = _coerce_columns(raw[REQUIRED_COLUMNS])

    n_raw = len(df)
    df = df.dropna(subset=REQUIRED_COLUMNS).reset_index(drop=True)
    if len(df) < n_raw:
        print(f"⚠️  Dropped {n_raw - len(df):,} rows with missing values")

    if df.empty:
        raise DataLoadError(f"No complete delay records in {path}")

    unknown_days = sorted(set(df["day"]) - set(DAY_ORDER))
    if unknown_days:
        raise DataLoadError(f"Unknown day values in {path}: {', '.join(unknown_days)}")

    df["incident"] = pd.Categorical(df["incident"].astype(str))
    df["day"] = pd.Categorical(df["day"].astype(str), categories=DAY_ORDER)
    df["min_gap"] = df["min_gap"].astype(float)
    df["min_delay"] = df["min_delay"].astype(float)

    print(f"📊 Loaded {len(df):,} delay records from {path}")
    return df


def subsample(df: pd.DataFrame, n: int, seed: int) -> pd.DataFrame:
    """Draw a fixed-size random subsample without replacement.

    The same ``seed`` always selects the same rows. A dataset with at most
    ``n`` rows is returned whole.
    """
    if n <= 0:
        raise ValueError(f"Sample size must be > 0, got {n}")
    if n >= len(df):
        return df.copy()
    return df.sample(n=n, random_state=seed).reset_index(drop=True)


def _normalize_headers(df: pd.DataFrame) -> pd.DataFrame:
    df = df.copy()
    df.columns = (
        df.columns.str.strip().str.lower().str.replace("[^a-z0-9]+", "_", regex=True)
    )
    return df


def clean_raw_export(source: Path | str | pd.DataFrame) -> pd.DataFrame:
    """Convert a raw TTC Open Data bus delay export to the cleaned schema.

    Args:
        source: Path to the raw CSV export, or the export already read

    Returns:
        DataFrame with exactly the ``incident``, ``day``, ``min_gap`` and
        ``min_delay`` columns
    """
    if isinstance(source, pd.DataFrame):
        raw = source
    else:
        path = Path(source)
        if not path.exists():
            raise DataLoadError(f"Raw delay export not found: {path}")
        try:
            raw = pd.read_csv(path, dtype="string")
        except (OSError, UnicodeDecodeError, pd.errors.ParserError, pd.errors.EmptyDataError) as e:
            raise DataLoadError(f"Could not read raw export {path}: {e}") from e

    df = _normalize_headers(raw)

    missing = [col for col in REQUIRED_COLUMNS if col not in df.columns]
    if missing:
        raise DataLoadError(f"Raw export is missing columns: {', '.join(missing)}")

    df = _coerce_columns(df[REQUIRED_COLUMNS])

    # Blank incident codes are reported as "Not Specified"
    df["incident"] = df["incident"].replace("", pd.NA).fillna("Not Specified")

    df = df.dropna(subset=["day", "min_gap", "min_delay"])
    df = df[df["day"].isin(DAY_ORDER)]
    df = df[(df["min_gap"] >= 0) & (df["min_delay"] >= 0)]

    result = df.reset_index(drop=True)
    print(f"🧹 Cleaned {len(raw):,} raw rows -> {len(result):,} delay records")
    return result


def write_clean_dataset(df: pd.DataFrame, path: Path | str) -> Path:
    """Write a cleaned dataset as CSV, creating parent directories."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    df[REQUIRED_COLUMNS].to_csv(path, index=False)
    print(f"💾 Cleaned data saved to {path}")
    return path
