"""Convergence diagnostics and posterior predictive checks."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, List

import arviz as az
import numpy as np
import pandas as pd

from ttc_delay_bayes.bayes.model import SIGMA, FittedModel, flatten_parameters
from ttc_delay_bayes.config import DEFAULT_RHAT_THRESHOLD, DEFAULT_SEED

__all__ = [
    "PosteriorPredictive",
    "DiagnosticsReport",
    "rhat_table",
    "trace_draws",
    "posterior_predictive",
    "diagnose",
]


def _ratio(num: float, den: float) -> float:
    return num / den if den != 0 else float("nan")


@dataclass(frozen=True)
class PosteriorPredictive:
    """Observed delays next to delays replicated from posterior draws.

    ``replicates`` has shape ``(n_draws, n_observations)``.
    """

    observed: np.ndarray
    replicates: np.ndarray

    def mean_ratio(self) -> float:
        """Replicated over observed mean; NaN when the observed mean is 0."""
        return _ratio(float(self.replicates.mean()), float(self.observed.mean()))

    def variance_ratio(self) -> float:
        """Replicated over observed variance; NaN for constant delays."""
        rep_var = float(np.mean(self.replicates.var(axis=1)))
        return _ratio(rep_var, float(self.observed.var()))


@dataclass(frozen=True)
class DiagnosticsReport:
    rhat: pd.DataFrame
    traces: Dict[str, np.ndarray]
    ppc: PosteriorPredictive
    threshold: float

    @property
    def flagged_parameters(self) -> List[str]:
        return self.rhat.loc[self.rhat["flagged"], "parameter"].tolist()

    @property
    def converged(self) -> bool:
        return not self.flagged_parameters

    @property
    def max_rhat(self) -> float:
        return float(self.rhat["rhat"].max())


def _flat_values(dataset) -> Dict[str, float]:
    return {name: float(da.values) for name, da in flatten_parameters(dataset).items()}


def rhat_table(
    fitted: FittedModel, threshold: float = DEFAULT_RHAT_THRESHOLD
) -> pd.DataFrame:
    """R-hat and bulk effective sample size for each parameter.

    A parameter is flagged when its R-hat is above ``threshold`` or could not
    be computed.
    """
    rhat = _flat_values(az.rhat(fitted.idata, method="rank"))
    ess = _flat_values(az.ess(fitted.idata, method="bulk"))

    df = pd.DataFrame(
        {
            "parameter": list(rhat),
            "rhat": [rhat[name] for name in rhat],
            "ess_bulk": [ess.get(name, np.nan) for name in rhat],
        }
    )
    df["flagged"] = ~(df["rhat"] <= threshold)
    return df


def trace_draws(fitted: FittedModel) -> Dict[str, np.ndarray]:
    """Per-chain draw sequences, ``(chain, draw)`` per parameter."""
    return fitted.posterior_draws()


def _linear_predictor(fitted: FittedModel, idx: np.ndarray) -> np.ndarray:
    """Mean delay for every observation under the selected draws."""
    data = fitted.data
    intercept = fitted.coefficient("Intercept")[idx]
    gap = fitted.coefficient("min_gap")[idx]

    mu = intercept[:, None] + gap[:, None] * data["min_gap"].to_numpy(dtype=float)[None, :]
    for term in ("incident", "day"):
        levels = data[term].astype(str).to_numpy()
        for level in np.unique(levels):
            coef = fitted.coefficient(term, level)[idx]
            mu[:, levels == level] += coef[:, None]
    return mu


def posterior_predictive(
    fitted: FittedModel, n_draws: int = 100, seed: int = DEFAULT_SEED
) -> PosteriorPredictive:
    """Simulate replicated delay datasets from the Gaussian likelihood.

    ``n_draws`` posterior draws are picked without replacement (all of them
    if fewer are available) and one synthetic delay is drawn per observation
    for each.
    """
    if n_draws <= 0:
        raise ValueError(f"n_draws must be > 0, got {n_draws}")

    rng = np.random.default_rng(seed)
    total = fitted.n_chains * fitted.n_draws
    idx = np.sort(rng.choice(total, size=min(n_draws, total), replace=False))

    mu = _linear_predictor(fitted, idx)
    sigma = fitted.coefficient(SIGMA)[idx]
    replicates = rng.normal(mu, sigma[:, None])

    return PosteriorPredictive(
        observed=fitted.data["min_delay"].to_numpy(dtype=float),
        replicates=replicates,
    )


def diagnose(
    fitted: FittedModel,
    threshold: float = DEFAULT_RHAT_THRESHOLD,
    ppc_draws: int = 100,
    seed: int = DEFAULT_SEED,
) -> DiagnosticsReport:
    """Run every diagnostic; poor convergence is reported, never raised."""
    print("\n📈 Convergence Diagnostics:")
    report = DiagnosticsReport(
        rhat=rhat_table(fitted, threshold),
        traces=trace_draws(fitted),
        ppc=posterior_predictive(fitted, ppc_draws, seed),
        threshold=threshold,
    )

    if report.converged:
        print(f"   - Max R-hat: {report.max_rhat:.3f} ✅")
    else:
        print(
            f"   - Max R-hat: {report.max_rhat:.3f} ⚠️ (>{threshold} indicates convergence issues)"
        )
        print(f"   - Not converged: {', '.join(report.flagged_parameters)}")

    min_ess = float(report.rhat["ess_bulk"].min())
    print(
        f"   - Min ESS: {min_ess:.0f} {'✅' if min_ess > 400 else '⚠️ (low effective sample size)'}"
    )
    print(
        f"   - Posterior predictive mean ratio: {report.ppc.mean_ratio():.2f}, "
        f"variance ratio: {report.ppc.variance_ratio():.2f}"
    )
    return report
