"""Tests for posterior summaries."""

from pathlib import Path

import arviz as az
import numpy as np
import pandas as pd
import pytest

from conftest import TRUE_PARAMS
from ttc_delay_bayes.bayes.model import FittedModel
from ttc_delay_bayes.bayes.summary import MAD_SCALE, label_for, summarize_posterior


def test_summary_recovers_known_draws(fitted: FittedModel) -> None:
    summary = summarize_posterior(fitted)

    assert len(summary) == 7
    assert summary.estimate("Intercept").estimate == pytest.approx(TRUE_PARAMS["Intercept"], abs=0.02)
    assert summary.estimate("incident[Mechanical]").estimate == pytest.approx(3.0, abs=0.02)
    # draws carry N(0, 0.05) noise, the scaled MAD estimates that spread
    assert summary.estimate("min_gap").uncertainty == pytest.approx(0.05, rel=0.15)


def test_summary_median_and_mad_exact(delays: pd.DataFrame) -> None:
    draws = np.array([[1.0, 2.0, 3.0, 4.0, 100.0], [2.0, 2.0, 3.0, 3.0, 3.0]])
    idata = az.from_dict(posterior={"min_gap": draws})
    fitted = FittedModel(idata=idata, data=delays)

    row = summarize_posterior(fitted).estimate("min_gap")
    flat = draws.ravel()
    median = np.median(flat)

    assert row.estimate == median
    assert row.uncertainty == pytest.approx(np.median(np.abs(flat - median)) * MAD_SCALE)
    assert row.lower <= row.estimate <= row.upper


def test_labels(fitted: FittedModel) -> None:
    frame = summarize_posterior(fitted).to_frame().set_index("parameter")

    assert frame.loc["min_gap", "label"] == "Inter-Bus Gap"
    assert frame.loc["incident[Mechanical]", "label"] == "Incident: Mechanical Issue"
    assert frame.loc["day[Saturday]", "label"] == "Day: Saturday"


def test_unmapped_parameter_keeps_raw_name(delays: pd.DataFrame) -> None:
    idata = az.from_dict(
        posterior={"route_effect": np.zeros((2, 5)), "incident": np.zeros((2, 5, 1))},
        coords={"incident_dim": ["Meteor Strike"]},
        dims={"incident": ["incident_dim"]},
    )
    summary = summarize_posterior(FittedModel(idata=idata, data=delays))

    assert summary.estimate("route_effect").label == "route_effect"
    assert summary.estimate("incident[Meteor Strike]").label == "incident[Meteor Strike]"
    assert label_for("nonsense") == "nonsense"


def test_summary_missing_parameter(fitted: FittedModel) -> None:
    with pytest.raises(KeyError):
        summarize_posterior(fitted).estimate("incident[Diversion]")


def test_summary_write_csv(tmp_path: Path, fitted: FittedModel) -> None:
    path = summarize_posterior(fitted).write_csv(tmp_path / "out" / "results.csv")
    table = pd.read_csv(path)

    assert list(table.columns) == ["parameter", "label", "estimate", "uncertainty", "lower", "upper"]
    assert len(table) == 7


def test_summary_rejects_bad_interval(fitted: FittedModel) -> None:
    with pytest.raises(ValueError):
        summarize_posterior(fitted, interval=1.0)
