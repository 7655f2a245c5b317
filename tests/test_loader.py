"""Tests for delay data loading, cleaning and subsampling."""

from pathlib import Path

import pandas as pd
import pytest

from ttc_delay_bayes.config import DAY_ORDER
from ttc_delay_bayes.errors import DataLoadError
from ttc_delay_bayes.ingestion.loader import (
    clean_raw_export,
    load_dataset,
    subsample,
    write_clean_dataset,
)


def test_load_dataset_types(delays_csv: Path) -> None:
    df = load_dataset(delays_csv)

    assert list(df.columns) == ["incident", "day", "min_gap", "min_delay"]
    assert len(df) == 600
    assert list(df["day"].cat.categories) == DAY_ORDER
    assert df["min_gap"].dtype == float
    assert df["min_delay"].dtype == float


def test_load_dataset_idempotent(delays_csv: Path) -> None:
    """Loading the same file twice gives identical datasets."""
    first = load_dataset(delays_csv)
    second = load_dataset(delays_csv)
    pd.testing.assert_frame_equal(first, second)


def test_load_dataset_missing_file(tmp_path: Path) -> None:
    with pytest.raises(DataLoadError, match="not found"):
        load_dataset(tmp_path / "nope.csv")


def test_load_dataset_missing_columns(tmp_path: Path) -> None:
    path = tmp_path / "partial.csv"
    pd.DataFrame({"incident": ["Mechanical"], "day": ["Monday"], "min_gap": [5]}).to_csv(
        path, index=False
    )
    with pytest.raises(DataLoadError, match="min_delay"):
        load_dataset(path)


def test_load_dataset_empty_file(tmp_path: Path) -> None:
    path = tmp_path / "empty.csv"
    path.write_text("")
    with pytest.raises(DataLoadError):
        load_dataset(path)


def test_load_dataset_drops_incomplete_rows(tmp_path: Path) -> None:
    path = tmp_path / "gaps.csv"
    pd.DataFrame(
        {
            "incident": ["Mechanical", None, "Security"],
            "day": ["Monday", "Tuesday", "Friday"],
            "min_gap": [5, 10, None],
            "min_delay": [10, 5, 3],
        }
    ).to_csv(path, index=False)

    df = load_dataset(path)
    assert len(df) == 1
    assert df.loc[0, "incident"] == "Mechanical"


def test_load_dataset_unknown_day(tmp_path: Path) -> None:
    path = tmp_path / "days.csv"
    pd.DataFrame(
        {"incident": ["Mechanical"], "day": ["Funday"], "min_gap": [5], "min_delay": [10]}
    ).to_csv(path, index=False)
    with pytest.raises(DataLoadError, match="Funday"):
        load_dataset(path)


def test_load_dataset_extra_columns_ignored(tmp_path: Path) -> None:
    path = tmp_path / "extra.csv"
    pd.DataFrame(
        {
            "route": [7],
            "incident": ["Diversion"],
            "day": ["sunday"],
            "min_gap": [12],
            "min_delay": [6],
        }
    ).to_csv(path, index=False)

    df = load_dataset(path)
    assert "route" not in df.columns
    assert df.loc[0, "day"] == "Sunday"


def test_subsample_deterministic(delays: pd.DataFrame) -> None:
    a = subsample(delays, 100, seed=987)
    b = subsample(delays, 100, seed=987)
    c = subsample(delays, 100, seed=1)

    assert len(a) == 100
    pd.testing.assert_frame_equal(a, b)
    assert not a.equals(c)


def test_subsample_larger_than_data(delays: pd.DataFrame) -> None:
    out = subsample(delays, 10_000, seed=987)
    pd.testing.assert_frame_equal(out, delays)


def test_subsample_rejects_non_positive(delays: pd.DataFrame) -> None:
    with pytest.raises(ValueError):
        subsample(delays, 0, seed=987)


def test_clean_raw_export(tmp_path: Path) -> None:
    raw = pd.DataFrame(
        {
            "Date": ["2024-01-01"] * 5,
            "Route": ["7"] * 5,
            "Day": ["Monday", "Tuesday", "Wednesday", "Thursday", "Someday"],
            "Incident": ["Mechanical", "", "Security", "Diversion", "Vision"],
            "Min Delay": ["10", "4", "-3", "8", "2"],
            "Min Gap": ["20", "8", "6", "x", "4"],
        }
    )
    raw_path = tmp_path / "raw.csv"
    raw.to_csv(raw_path, index=False)

    df = clean_raw_export(raw_path)

    assert list(df.columns) == ["incident", "day", "min_gap", "min_delay"]
    # negative delay, unparseable gap and unknown day are dropped
    assert df["incident"].tolist() == ["Mechanical", "Not Specified"]
    assert df["min_delay"].tolist() == [10.0, 4.0]

    out = write_clean_dataset(df, tmp_path / "clean" / "data.csv")
    reloaded = load_dataset(out)
    assert len(reloaded) == 2


def test_clean_raw_export_missing_columns() -> None:
    with pytest.raises(DataLoadError, match="min_gap"):
        clean_raw_export(pd.DataFrame({"Incident": ["Mechanical"], "Day": ["Monday"], "Min Delay": [3]}))
