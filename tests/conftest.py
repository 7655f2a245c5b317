"""Shared fixtures: synthetic delay data and hand-built posteriors."""

from dataclasses import replace
from pathlib import Path

import arviz as az
import numpy as np
import pandas as pd
import pytest

from ttc_delay_bayes.bayes.model import (
    FittedModel,
    encode_reference_levels,
    model_fingerprint,
    save_model,
)
from ttc_delay_bayes.config import ReportConfig, SamplerConfig
from ttc_delay_bayes.report.pipeline import prepare_data

TRUE_PARAMS = {
    "Intercept": 10.0,
    "min_gap": 0.5,
    "incident": {"Diversion": 0.0, "Mechanical": 3.0, "Security": -2.0},
    "day": {"Monday": 0.0, "Saturday": 1.5, "Sunday": -1.0},
    "sigma": 4.0,
}


def make_delays(n: int = 600, seed: int = 0) -> pd.DataFrame:
    """Delay records drawn from the regression with TRUE_PARAMS."""
    rng = np.random.default_rng(seed)
    incident = rng.choice(list(TRUE_PARAMS["incident"]), size=n)
    day = rng.choice(list(TRUE_PARAMS["day"]), size=n)
    gap = rng.uniform(0, 30, size=n).round(1)
    mu = (
        TRUE_PARAMS["Intercept"]
        + TRUE_PARAMS["min_gap"] * gap
        + np.array([TRUE_PARAMS["incident"][i] for i in incident])
        + np.array([TRUE_PARAMS["day"][d] for d in day])
    )
    delay = rng.normal(mu, TRUE_PARAMS["sigma"])
    return pd.DataFrame(
        {"incident": incident, "day": day, "min_gap": gap, "min_delay": delay}
    )


def make_fitted(
    df: pd.DataFrame,
    chains: int = 4,
    draws: int = 250,
    chain_offsets=None,
    seed: int = 1,
) -> FittedModel:
    """FittedModel whose posterior is the true parameters plus small noise."""
    rng = np.random.default_rng(seed)
    data, refs = encode_reference_levels(df, {"incident": "Diversion", "day": "Monday"})

    def draws_around(value, *shape):
        return value + rng.normal(0, 0.05, size=(chains, draws, *shape))

    incident_levels = [lvl for lvl in data["incident"].cat.categories if lvl != refs["incident"]]
    day_levels = [lvl for lvl in data["day"].cat.categories if lvl != refs["day"]]

    intercept = draws_around(TRUE_PARAMS["Intercept"])
    if chain_offsets is not None:
        intercept = intercept + np.asarray(chain_offsets, dtype=float)[:, None]

    posterior = {
        "Intercept": intercept,
        "min_gap": draws_around(TRUE_PARAMS["min_gap"]),
        "incident": np.stack(
            [draws_around(TRUE_PARAMS["incident"][lvl]) for lvl in incident_levels], axis=-1
        ),
        "day": np.stack(
            [draws_around(TRUE_PARAMS["day"][lvl]) for lvl in day_levels], axis=-1
        ),
        "sigma": np.abs(draws_around(TRUE_PARAMS["sigma"])),
    }
    idata = az.from_dict(
        posterior=posterior,
        coords={"incident_dim": incident_levels, "day_dim": day_levels},
        dims={"incident": ["incident_dim"], "day": ["day_dim"]},
    )
    priors = {
        "Intercept": {"dist": "Normal", "mu": 0.0, "sigma": 25.0},
        "min_gap": {"dist": "Normal", "mu": 0.0, "sigma": 2.0},
        "incident": {"dist": "Normal", "mu": 0.0, "sigma": 25.0},
        "day": {"dist": "Normal", "mu": 0.0, "sigma": 25.0},
        "sigma": {"dist": "Exponential", "lam": 0.1},
    }
    return FittedModel(
        idata=idata,
        data=data,
        formula="min_delay ~ min_gap + incident + day",
        priors=priors,
        sampler=SamplerConfig(chains=chains, iterations=2 * draws, warmup=draws),
        reference_levels=refs,
    )


def cache_fitted_for(config: ReportConfig) -> FittedModel:
    """Save a hand-built model matching the data and settings of ``config``."""
    df = prepare_data(config)
    fitted = replace(
        make_fitted(df, chains=config.sampler.chains),
        fingerprint=model_fingerprint(
            df, config.priors, config.sampler, config.reference_levels
        ),
    )
    save_model(fitted, config.model_path)
    return fitted


@pytest.fixture
def delays() -> pd.DataFrame:
    return make_delays()


@pytest.fixture
def delays_csv(tmp_path: Path, delays: pd.DataFrame) -> Path:
    path = tmp_path / "cleaned_bus_delay_data.csv"
    delays.to_csv(path, index=False)
    return path


@pytest.fixture
def fitted(delays: pd.DataFrame) -> FittedModel:
    return make_fitted(delays)


@pytest.fixture
def unconverged(delays: pd.DataFrame) -> FittedModel:
    return make_fitted(delays, chain_offsets=[0.0, 5.0, 10.0, 15.0])
