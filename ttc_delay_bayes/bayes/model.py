"""Bayesian linear regression of bus delay on gap, incident type and day."""

from __future__ import annotations

import hashlib
import itertools
import pickle
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any, Dict, Optional

import arviz as az
import bambi as bmb
import numpy as np
import pandas as pd
from pymc.exceptions import SamplingError

from ttc_delay_bayes.config import (
    DAY_ORDER,
    DEFAULT_MODEL_PATH,
    REQUIRED_COLUMNS,
    PriorConfig,
    SamplerConfig,
)
from ttc_delay_bayes.errors import (
    ModelArtifactMissingError,
    SamplerConfigError,
    SamplerDivergenceError,
)

__all__ = [
    "FORMULA",
    "FittedModel",
    "PriorConfig",
    "SamplerConfig",
    "fit_model",
    "resolve_priors",
    "encode_reference_levels",
    "build_formula",
    "flatten_parameters",
    "save_model",
    "load_model",
    "model_fingerprint",
]

RESPONSE = "min_delay"
FORMULA = "min_delay ~ min_gap + incident + day"
CATEGORICAL_TERMS = ("incident", "day")
SIGMA = "sigma"


def flatten_parameters(dataset) -> Dict[str, Any]:
    """Split a posterior-like xarray Dataset into one entry per scalar parameter.

    Categorical coefficients carry a level dimension and come out as
    ``incident[Mechanical]``, ``day[Sunday]``. Variables indexed by
    observation are skipped.
    """
    out: Dict[str, Any] = {}
    for var in dataset.data_vars:
        da = dataset[var]
        extra = [d for d in da.dims if d not in ("chain", "draw")]
        if any(d.endswith("__obs__") for d in extra):
            continue
        if not extra:
            out[str(var)] = da
            continue
        coords = [da.coords[d].values for d in extra]
        for combo in itertools.product(*coords):
            label = ",".join(str(c) for c in combo)
            out[f"{var}[{label}]"] = da.sel(dict(zip(extra, combo)))
    return out


@dataclass(frozen=True)
class FittedModel:
    """Immutable snapshot of one posterior fit.

    Parameters
    ----------
    idata : az.InferenceData
        Posterior draws and sampler statistics.
    data : pd.DataFrame
        The encoded dataset the model was fitted to.
    formula : str
        Model formula in bambi syntax.
    priors : dict
        Resolved prior per term, e.g. ``{"min_gap": {"dist": "Normal",
        "mu": 0.0, "sigma": 1.3}}``.
    sampler : SamplerConfig
        Sampler settings used for the fit.
    reference_levels : dict
        Baseline level of each categorical predictor.
    fingerprint : str
        Hash of the input data and settings, see :func:`model_fingerprint`.
    """

    idata: az.InferenceData
    data: pd.DataFrame
    formula: str = FORMULA
    priors: Dict[str, Dict[str, Any]] = field(default_factory=dict)
    sampler: SamplerConfig = field(default_factory=SamplerConfig)
    reference_levels: Dict[str, str] = field(default_factory=dict)
    fingerprint: str = ""

    @property
    def posterior(self):
        return self.idata.posterior

    @property
    def n_chains(self) -> int:
        return int(self.posterior.sizes["chain"])

    @property
    def n_draws(self) -> int:
        return int(self.posterior.sizes["draw"])

    def parameter_names(self) -> list[str]:
        return list(flatten_parameters(self.posterior))

    def posterior_draws(self) -> Dict[str, np.ndarray]:
        """Draws per parameter as ``(chain, draw)`` arrays."""
        return {
            name: np.asarray(da.transpose("chain", "draw").values)
            for name, da in flatten_parameters(self.posterior).items()
        }

    def coefficient(self, term: str, level: Optional[str] = None) -> np.ndarray:
        """Flattened draws of one coefficient.

        Reference levels, and terms left out of the formula, are all zero.
        """
        if term not in self.posterior:
            return np.zeros(self.n_chains * self.n_draws)
        da = self.posterior[term]
        if level is None:
            return np.asarray(da.values).reshape(-1)
        if level == self.reference_levels.get(term):
            return np.zeros(self.n_chains * self.n_draws)
        (dim,) = [d for d in da.dims if d not in ("chain", "draw")]
        return np.asarray(da.sel({dim: level}).values).reshape(-1)


def encode_reference_levels(
    df: pd.DataFrame, reference_levels: Optional[Dict[str, Optional[str]]] = None
) -> tuple[pd.DataFrame, Dict[str, str]]:
    """Order each categorical predictor so its reference level comes first.

    Unused categories are dropped. A requested reference level that does not
    occur in the data falls back to the first level present.
    """
    reference_levels = reference_levels or {}
    df_enc = df.copy()
    chosen: Dict[str, str] = {}

    for term in CATEGORICAL_TERMS:
        values = df_enc[term].astype(str)
        if term == "day":
            present = [d for d in DAY_ORDER if d in set(values)]
            present += sorted(set(values) - set(DAY_ORDER))
        else:
            present = sorted(set(values))

        wanted = reference_levels.get(term)
        if wanted is not None and wanted not in present:
            print(f"⚠️  Reference {term} '{wanted}' not in data, using '{present[0]}'")
            wanted = None
        reference = wanted if wanted is not None else present[0]

        levels = [reference] + [lvl for lvl in present if lvl != reference]
        df_enc[term] = pd.Categorical(values, categories=levels)
        chosen[term] = reference

    return df_enc, chosen


def build_formula(df: pd.DataFrame) -> str:
    """Build the regression formula, leaving out predictors with no variation."""
    formula = f"{RESPONSE} ~ 1"
    if df["min_gap"].nunique() > 1:
        formula += " + min_gap"
    for term in CATEGORICAL_TERMS:
        if df[term].nunique() > 1:
            formula += f" + {term}"
    return formula


def _sd_or_one(values: pd.Series) -> float:
    sd = float(values.std()) if len(values) > 1 else float("nan")
    return sd if np.isfinite(sd) and sd > 0 else 1.0


def resolve_priors(df: pd.DataFrame, priors: PriorConfig) -> Dict[str, Dict[str, Any]]:
    """Turn a PriorConfig into concrete per-term prior parameters."""
    y_scale = x_scale = 1.0
    if priors.autoscale:
        y_scale = _sd_or_one(df[RESPONSE])
        x_scale = y_scale / _sd_or_one(df["min_gap"])

    def normal(prior, scale):
        return {"dist": "Normal", "mu": float(prior.mu), "sigma": float(prior.sigma * scale)}

    return {
        "Intercept": normal(priors.intercept, y_scale),
        "min_gap": normal(priors.gap, x_scale),
        "incident": normal(priors.incident, y_scale),
        "day": normal(priors.day, y_scale),
        SIGMA: {"dist": "Exponential", "lam": float(priors.sigma.rate / y_scale)},
    }


def _bambi_priors(
    resolved: Dict[str, Dict[str, Any]], formula: str
) -> Dict[str, bmb.Prior]:
    rhs = {t.strip() for t in formula.split("~", 1)[1].split("+")}
    out = {}
    for term, spec in resolved.items():
        if term not in rhs and term not in ("Intercept", SIGMA):
            continue
        params = {k: v for k, v in spec.items() if k != "dist"}
        out[term] = bmb.Prior(spec["dist"], **params)
    return out


def _check_divergences(idata: az.InferenceData, sampler: SamplerConfig) -> None:
    if "sample_stats" not in idata.groups() or "diverging" not in idata.sample_stats:
        return
    per_chain = tuple(
        int(n) for n in idata.sample_stats["diverging"].sum(dim="draw").values
    )
    total = sum(per_chain)
    if total > sampler.max_divergences:
        raise SamplerDivergenceError(
            f"Sampler reported {total} divergent transitions "
            f"(per chain: {list(per_chain)}, allowed: {sampler.max_divergences})",
            divergences=total,
            per_chain=per_chain,
        )
    if total:
        print(f"⚠️  {total} divergent transitions (within allowed {sampler.max_divergences})")


def _observed_references(
    idata: az.InferenceData, df: pd.DataFrame, references: Dict[str, str]
) -> Dict[str, str]:
    """Baseline levels as encoded by the sampler: the one level without a coefficient."""
    out = dict(references)
    for term in CATEGORICAL_TERMS:
        if term not in idata.posterior:
            continue
        da = idata.posterior[term]
        (dim,) = [d for d in da.dims if d not in ("chain", "draw")]
        missing = set(df[term].cat.categories) - {str(v) for v in da.coords[dim].values}
        if len(missing) == 1:
            out[term] = missing.pop()
    return out


def model_fingerprint(
    df: pd.DataFrame,
    priors: PriorConfig | None = None,
    sampler: SamplerConfig | None = None,
    reference_levels: Optional[Dict[str, Optional[str]]] = None,
) -> str:
    """Identify a fit by its input records and settings.

    Two runs share a fingerprint only if they would fit the same rows, in the
    same order, with the same priors, sampler settings and reference levels.
    The number of parallel cores does not change the draws and is left out.
    """
    priors = priors or PriorConfig()
    sampler = replace(sampler or SamplerConfig(), cores=None)
    records = df[REQUIRED_COLUMNS].astype(
        {"incident": str, "day": str, "min_gap": float, "min_delay": float}
    )

    h = hashlib.sha256()
    h.update(pd.util.hash_pandas_object(records, index=False).to_numpy().tobytes())
    h.update(repr((priors, sampler, sorted((reference_levels or {}).items()))).encode())
    return h.hexdigest()


def fit_model(
    df: pd.DataFrame,
    priors: PriorConfig | None = None,
    sampler: SamplerConfig | None = None,
    reference_levels: Optional[Dict[str, Optional[str]]] = None,
) -> FittedModel:
    """Fit ``min_delay ~ min_gap + incident + day`` with a Gaussian likelihood.

    Parameters
    ----------
    df : pd.DataFrame
        Delay records with ``incident``, ``day``, ``min_gap``, ``min_delay``.
    priors : PriorConfig
        Coefficient and residual-scale priors.
    sampler : SamplerConfig
        Chains, iterations (warm-up included) and random seed.
    reference_levels : dict
        Optional baseline level per categorical predictor.

    Returns
    -------
    FittedModel
        Posterior sample of ``chains * (iterations - warmup)`` draws.

    Raises
    ------
    SamplerConfigError
        Empty dataset.
    SamplerDivergenceError
        The sampler failed or reported too many divergent transitions.
    """
    priors = priors or PriorConfig()
    sampler = sampler or SamplerConfig()

    if len(df) == 0:
        raise SamplerConfigError("Cannot fit a model to an empty dataset")

    df_enc, references = encode_reference_levels(df, reference_levels)
    resolved = resolve_priors(df_enc, priors)

    formula = build_formula(df_enc)
    print("🔧 Building delay regression...")
    print(f"   Formula: {formula}")
    model = bmb.Model(
        formula, df_enc, family="gaussian", priors=_bambi_priors(resolved, formula)
    )

    print(f"   - Observations: {len(df_enc):,}")
    print(f"   - Incident types: {df_enc['incident'].nunique()} (reference: {references['incident']})")
    print(f"   - Days: {df_enc['day'].nunique()} (reference: {references['day']})")
    print(
        f"🚀 Sampling {sampler.chains} chains x {sampler.iterations} iterations "
        f"({sampler.warmup} warm-up, seed {sampler.seed})..."
    )

    try:
        idata = model.fit(
            draws=sampler.draws,
            tune=sampler.warmup,
            chains=sampler.chains,
            cores=sampler.cores,
            target_accept=sampler.target_accept,
            random_seed=sampler.seed,
        )
    except (SamplingError, FloatingPointError) as e:
        raise SamplerDivergenceError(f"Sampler failed: {e}") from e

    # Older bambi releases prefix the residual scale with the response name
    legacy_sigma = f"{RESPONSE}_sigma"
    if SIGMA not in idata.posterior and legacy_sigma in idata.posterior:
        idata = idata.rename({legacy_sigma: SIGMA})

    _check_divergences(idata, sampler)
    references = _observed_references(idata, df_enc, references)
    print("✅ Model fitting complete!")

    return FittedModel(
        idata=idata,
        data=df_enc,
        formula=formula,
        priors=resolved,
        sampler=sampler,
        reference_levels=references,
        fingerprint=model_fingerprint(df, priors, sampler, reference_levels),
    )


def save_model(fitted: FittedModel, filepath: Path | str = DEFAULT_MODEL_PATH) -> Path:
    """Cache a fitted model: trace as netcdf next to a pickle of its metadata."""
    filepath = Path(filepath)
    filepath.parent.mkdir(parents=True, exist_ok=True)

    trace_path = filepath.with_suffix(".nc")
    az.to_netcdf(fitted.idata, trace_path)

    metadata = {
        "formula": fitted.formula,
        "priors": fitted.priors,
        "sampler": fitted.sampler,
        "reference_levels": fitted.reference_levels,
        "data": fitted.data,
        "fingerprint": fitted.fingerprint,
        "trace_file": trace_path.name,
    }
    with open(filepath, "wb") as f:
        pickle.dump(metadata, f)

    size_mb = (filepath.stat().st_size + trace_path.stat().st_size) / (1024 * 1024)
    print(f"💾 Model saved to {filepath} ({size_mb:.1f} MB)")
    return filepath


def load_model(filepath: Path | str = DEFAULT_MODEL_PATH) -> FittedModel:
    """Read back a model cached by :func:`save_model`."""
    filepath = Path(filepath)
    if not filepath.exists():
        raise ModelArtifactMissingError(
            f"Model artifact not found: {filepath} (run the fit step first)"
        )

    with open(filepath, "rb") as f:
        metadata = pickle.load(f)

    trace_path = filepath.parent / metadata["trace_file"]
    if not trace_path.exists():
        raise ModelArtifactMissingError(f"Posterior trace not found: {trace_path}")

    idata = az.from_netcdf(trace_path)
    print(f"📂 Model loaded from {filepath}")
    return FittedModel(
        idata=idata,
        data=metadata["data"],
        formula=metadata["formula"],
        priors=metadata["priors"],
        sampler=metadata["sampler"],
        reference_levels=metadata["reference_levels"],
        fingerprint=metadata.get("fingerprint", ""),
    )
