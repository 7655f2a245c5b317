"""Exploratory summaries of the delay dataset used for the report figures."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Tuple

import numpy as np
import pandas as pd
from scipy.stats import linregress

from ttc_delay_bayes.config import DAY_ORDER, INCIDENT_CATEGORIES

__all__ = [
    "GapDelayFit",
    "DescriptiveSummary",
    "delay_histogram",
    "mean_delay_by_day",
    "gap_delay_fit",
    "incident_counts",
    "describe",
]


@dataclass(frozen=True)
class GapDelayFit:
    """Raw (min_gap, min_delay) pairs with an ordinary least-squares line."""

    min_gap: np.ndarray
    min_delay: np.ndarray
    slope: float
    intercept: float

    def predict(self, gap: np.ndarray | float) -> np.ndarray:
        return self.intercept + self.slope * np.asarray(gap, dtype=float)


@dataclass(frozen=True)
class DescriptiveSummary:
    histogram: pd.DataFrame
    by_day: pd.DataFrame
    gap_fit: GapDelayFit
    incidents: pd.DataFrame
    n_records: int


def delay_histogram(
    df: pd.DataFrame,
    bin_width: float = 5.0,
    value_range: Tuple[float, float] = (0.0, 100.0),
) -> pd.DataFrame:
    """Count ``min_delay`` values in fixed-width bins over ``value_range``.

    Delays outside the range are left out of the counts. The last bin is
    closed on the right so a delay equal to the upper bound is counted.
    """
    if bin_width <= 0:
        raise ValueError(f"bin_width must be > 0, got {bin_width}")
    low, high = value_range
    if high <= low:
        raise ValueError(f"Empty histogram range: {value_range}")

    edges = np.arange(low, high + bin_width, bin_width, dtype=float)
    edges = edges[edges <= high]
    if edges[-1] < high:
        edges = np.append(edges, high)

    delays = df["min_delay"].to_numpy(dtype=float)
    in_range = delays[(delays >= low) & (delays <= high)]
    counts, _ = np.histogram(in_range, bins=edges)

    return pd.DataFrame(
        {"bin_left": edges[:-1], "bin_right": edges[1:], "count": counts.astype(int)}
    )


def mean_delay_by_day(df: pd.DataFrame) -> pd.DataFrame:
    """Mean delay and record count for each day, Monday first.

    Days without records keep their row with a NaN mean and a zero count.
    """
    grouped = df.groupby(df["day"].astype(str), observed=True)["min_delay"].agg(
        ["mean", "count"]
    )
    out = grouped.reindex(DAY_ORDER)
    out["count"] = out["count"].fillna(0).astype(int)
    out = out.rename(columns={"mean": "mean_delay"})
    out.index.name = "day"
    return out


def gap_delay_fit(df: pd.DataFrame) -> GapDelayFit:
    """Pair gaps with delays and fit ``min_delay = intercept + slope * min_gap``."""
    gap = df["min_gap"].to_numpy(dtype=float)
    delay = df["min_delay"].to_numpy(dtype=float)

    if np.unique(gap).size < 2:
        # No spread in gap, the line is undefined
        return GapDelayFit(gap, delay, slope=float("nan"), intercept=float("nan"))

    result = linregress(gap, delay)
    return GapDelayFit(
        gap, delay, slope=float(result.slope), intercept=float(result.intercept)
    )


def incident_counts(df: pd.DataFrame) -> pd.DataFrame:
    """Number of records per incident category, most frequent first.

    Known TTC categories missing from the data are listed with a zero count.
    """
    counts = df["incident"].astype(str).value_counts()
    known_missing = [c for c in INCIDENT_CATEGORIES if c not in counts.index]
    counts = pd.concat([counts, pd.Series(0, index=known_missing, dtype=int)])

    out = counts.rename_axis("incident").reset_index(name="count")
    out["count"] = out["count"].astype(int)
    return out.sort_values(
        ["count", "incident"], ascending=[False, True], kind="mergesort"
    ).reset_index(drop=True)


def describe(
    df: pd.DataFrame,
    bin_width: float = 5.0,
    value_range: Tuple[float, float] = (0.0, 100.0),
) -> DescriptiveSummary:
    """Compute every exploratory view of ``df`` at once."""
    summary = DescriptiveSummary(
        histogram=delay_histogram(df, bin_width, value_range),
        by_day=mean_delay_by_day(df),
        gap_fit=gap_delay_fit(df),
        incidents=incident_counts(df),
        n_records=len(df),
    )
    busiest = summary.incidents.iloc[0]
    print(
        f"📈 Described {summary.n_records:,} records "
        f"(most common incident: {busiest['incident']}, {busiest['count']:,} records)"
    )
    return summary
