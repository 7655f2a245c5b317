"""Tests for convergence diagnostics and posterior predictive checks."""

import numpy as np
import pandas as pd
import pytest

from conftest import make_fitted
from ttc_delay_bayes.bayes.diagnostics import (
    PosteriorPredictive,
    diagnose,
    posterior_predictive,
    rhat_table,
    trace_draws,
)
from ttc_delay_bayes.bayes.model import FittedModel


def test_rhat_converged(fitted: FittedModel) -> None:
    table = rhat_table(fitted)

    assert list(table.columns) == ["parameter", "rhat", "ess_bulk", "flagged"]
    assert (table["rhat"] < 1.1).all()
    assert not table["flagged"].any()
    assert set(table["parameter"]) == set(fitted.parameter_names())


def test_rhat_flags_unmixed_chains(unconverged: FittedModel) -> None:
    table = rhat_table(unconverged).set_index("parameter")

    assert table.loc["Intercept", "rhat"] > 1.1
    assert table.loc["Intercept", "flagged"]
    assert not table.loc["min_gap", "flagged"]


def test_rhat_threshold_configurable(fitted: FittedModel) -> None:
    table = rhat_table(fitted, threshold=0.5)
    assert table["flagged"].all()


def test_trace_draws_per_chain(fitted: FittedModel) -> None:
    traces = trace_draws(fitted)
    assert traces["Intercept"].shape == (4, 250)
    assert traces["day[Sunday]"].shape == (4, 250)


def test_posterior_predictive_matches_observed(fitted: FittedModel) -> None:
    ppc = posterior_predictive(fitted, n_draws=100, seed=987)

    assert ppc.replicates.shape == (100, len(fitted.data))
    assert ppc.mean_ratio() == pytest.approx(1.0, abs=0.2)
    assert ppc.variance_ratio() == pytest.approx(1.0, abs=0.2)


def test_posterior_predictive_deterministic(fitted: FittedModel) -> None:
    a = posterior_predictive(fitted, n_draws=20, seed=5)
    b = posterior_predictive(fitted, n_draws=20, seed=5)
    np.testing.assert_array_equal(a.replicates, b.replicates)


def test_posterior_predictive_caps_draws(fitted: FittedModel) -> None:
    ppc = posterior_predictive(fitted, n_draws=10_000)
    assert ppc.replicates.shape[0] == fitted.n_chains * fitted.n_draws


def test_posterior_predictive_rejects_zero_draws(fitted: FittedModel) -> None:
    with pytest.raises(ValueError):
        posterior_predictive(fitted, n_draws=0)


def test_diagnose_reports_without_raising(unconverged: FittedModel) -> None:
    report = diagnose(unconverged, ppc_draws=20)

    assert not report.converged
    assert report.flagged_parameters == ["Intercept"]
    assert report.max_rhat > 1.1


def test_diagnose_converged(fitted: FittedModel) -> None:
    report = diagnose(fitted, ppc_draws=20)
    assert report.converged
    assert report.flagged_parameters == []


def test_diagnose_constant_delays(delays: pd.DataFrame) -> None:
    flat = delays.assign(min_delay=10.0)

    report = diagnose(make_fitted(flat), ppc_draws=10)

    assert np.isnan(report.ppc.variance_ratio())
    assert np.isfinite(report.ppc.mean_ratio())


def test_ratios_undefined_for_zero_observed() -> None:
    ppc = PosteriorPredictive(observed=np.zeros(5), replicates=np.ones((3, 5)))

    assert np.isnan(ppc.mean_ratio())
    assert np.isnan(ppc.variance_ratio())
