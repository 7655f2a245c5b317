"""Report figures: exploratory views, posterior checks and sampler diagnostics.

Every ``plot_*`` function writes one PNG into ``out_dir`` and returns its path.
Call :func:`apply_style` once before plotting.
"""

from __future__ import annotations

from pathlib import Path
from typing import Dict

import arviz as az
import matplotlib

matplotlib.use("Agg")

import matplotlib.pyplot as plt  # noqa: E402
import numpy as np  # noqa: E402
from scipy.stats import gaussian_kde  # noqa: E402

from ttc_delay_bayes.analysis.descriptive import DescriptiveSummary  # noqa: E402
from ttc_delay_bayes.bayes.diagnostics import DiagnosticsReport  # noqa: E402
from ttc_delay_bayes.bayes.model import FittedModel  # noqa: E402
from ttc_delay_bayes.bayes.summary import label_for  # noqa: E402

__all__ = ["apply_style", "render_all_figures"]

COLORS = {
    "primary": "#4878d0",
    "secondary": "#ee854a",
    "danger": "#d65f5f",
    "gray": "gray",
}

STYLE = {
    "font.size": 11,
    "axes.titlesize": 13,
    "axes.labelsize": 11,
    "legend.fontsize": 10,
    "figure.dpi": 150,
    "figure.facecolor": "white",
    "axes.facecolor": "white",
    "font.family": "serif",
    "axes.spines.top": False,
    "axes.spines.right": False,
}

DPI = 200
PRIOR_SAMPLES = 4000


def apply_style() -> None:
    plt.rcParams.update(STYLE)


def _save(fig, out_dir: Path, name: str) -> Path:
    out_dir = Path(out_dir)
    out_dir.mkdir(parents=True, exist_ok=True)
    path = out_dir / f"{name}.png"
    fig.savefig(path, dpi=DPI, bbox_inches="tight")
    plt.close(fig)
    return path


def plot_delay_histogram(summary: DescriptiveSummary, out_dir: Path) -> Path:
    hist = summary.histogram
    fig, ax = plt.subplots(figsize=(7, 4))
    ax.bar(
        hist["bin_left"],
        hist["count"],
        width=hist["bin_right"] - hist["bin_left"],
        align="edge",
        color=COLORS["primary"],
        edgecolor="white",
    )
    ax.set_xlabel("Delay (minutes)")
    ax.set_ylabel("Number of delays")
    ax.set_title("Distribution of bus delays")
    return _save(fig, out_dir, "delay_histogram")


def plot_delay_by_day(summary: DescriptiveSummary, out_dir: Path) -> Path:
    by_day = summary.by_day
    fig, ax = plt.subplots(figsize=(7, 4))
    ax.bar(by_day.index, by_day["mean_delay"].fillna(0.0), color=COLORS["primary"])
    ax.set_xlabel("Day of week")
    ax.set_ylabel("Mean delay (minutes)")
    ax.set_title("Average delay by day")
    ax.tick_params(axis="x", rotation=30)
    return _save(fig, out_dir, "delay_by_day")


def plot_gap_vs_delay(summary: DescriptiveSummary, out_dir: Path) -> Path:
    fit = summary.gap_fit
    fig, ax = plt.subplots(figsize=(7, 4))
    ax.scatter(fit.min_gap, fit.min_delay, s=8, alpha=0.4, color=COLORS["primary"])
    if np.isfinite(fit.slope):
        xs = np.linspace(fit.min_gap.min(), fit.min_gap.max(), 100)
        ax.plot(xs, fit.predict(xs), color=COLORS["danger"], label="Least-squares fit")
        ax.legend()
    ax.set_xlabel("Gap between buses (minutes)")
    ax.set_ylabel("Delay (minutes)")
    ax.set_title("Delay against inter-bus gap")
    return _save(fig, out_dir, "gap_vs_delay")


def plot_incident_counts(summary: DescriptiveSummary, out_dir: Path) -> Path:
    incidents = summary.incidents[summary.incidents["count"] > 0]
    fig, ax = plt.subplots(figsize=(7, 0.35 * len(incidents) + 1.5))
    ax.barh(incidents["incident"], incidents["count"], color=COLORS["primary"])
    ax.invert_yaxis()
    ax.set_xlabel("Number of delays")
    ax.set_title("Delays by incident type")
    return _save(fig, out_dir, "incident_counts")


def _density(values: np.ndarray, xs: np.ndarray) -> np.ndarray | None:
    """Kernel density on ``xs``, or None when ``values`` has no spread."""
    if values.size < 2 or np.ptp(values) == 0:
        return None
    try:
        return gaussian_kde(values)(xs)
    except np.linalg.LinAlgError:
        return None


def plot_ppc(report: DiagnosticsReport, out_dir: Path, n_lines: int = 50) -> Path:
    ppc = report.ppc
    observed = ppc.observed
    lo = min(observed.min(), np.percentile(ppc.replicates, 0.5))
    hi = max(observed.max(), np.percentile(ppc.replicates, 99.5))
    xs = np.linspace(lo, hi, 200)

    fig, ax = plt.subplots(figsize=(7, 4))
    labelled = False
    for rep in ppc.replicates[:n_lines]:
        density = _density(rep, xs)
        if density is None:
            continue
        ax.plot(
            xs,
            density,
            color=COLORS["primary"],
            alpha=0.15,
            lw=0.8,
            label=None if labelled else "Replicated",
        )
        labelled = True
    density = _density(observed, xs)
    if density is None:
        # Constant delays have no density; mark the value instead
        ax.axvline(observed[0], color="black", lw=1.8, label="Observed")
    else:
        ax.plot(xs, density, color="black", lw=1.8, label="Observed")
    ax.set_xlabel("Delay (minutes)")
    ax.set_ylabel("Density")
    ax.set_title("Posterior predictive check")
    ax.legend()
    return _save(fig, out_dir, "posterior_predictive")


def _prior_samples(spec: Dict, rng: np.random.Generator) -> np.ndarray:
    if spec["dist"] == "Normal":
        return rng.normal(spec["mu"], spec["sigma"], PRIOR_SAMPLES)
    return rng.exponential(1.0 / spec["lam"], PRIOR_SAMPLES)


def plot_prior_vs_posterior(fitted: FittedModel, out_dir: Path, seed: int = 987) -> Path:
    rng = np.random.default_rng(seed)
    draws = fitted.posterior_draws()
    names = list(draws)

    ncols = 3
    nrows = int(np.ceil(len(names) / ncols))
    fig, axes = plt.subplots(nrows, ncols, figsize=(4 * ncols, 2.6 * nrows), squeeze=False)
    for ax, name in zip(axes.ravel(), names):
        term = name.split("[", 1)[0]
        post = draws[name].reshape(-1)
        if term in fitted.priors:
            prior = _prior_samples(fitted.priors[term], rng)
            ax.hist(prior, bins=40, density=True, alpha=0.5, color=COLORS["gray"], label="Prior")
        ax.hist(post, bins=40, density=True, alpha=0.7, color=COLORS["primary"], label="Posterior")
        ax.set_title(label_for(name), fontsize=9)
    for ax in axes.ravel()[len(names):]:
        ax.set_visible(False)
    axes.ravel()[0].legend(fontsize=8)
    fig.tight_layout()
    return _save(fig, out_dir, "prior_vs_posterior")


def plot_traces(fitted: FittedModel, out_dir: Path) -> Path:
    axes = az.plot_trace(fitted.idata, compact=True)
    fig = np.asarray(axes).ravel()[0].figure
    fig.tight_layout()
    return _save(fig, out_dir, "trace")


def plot_rhat(report: DiagnosticsReport, out_dir: Path) -> Path:
    table = report.rhat
    colors = [COLORS["danger"] if f else COLORS["primary"] for f in table["flagged"]]
    fig, ax = plt.subplots(figsize=(7, 0.3 * len(table) + 1.5))
    ax.scatter(table["rhat"], [label_for(p) for p in table["parameter"]], color=colors)
    ax.axvline(1.0, color=COLORS["gray"], lw=0.8)
    ax.axvline(report.threshold, color=COLORS["danger"], ls="--", lw=0.8, label=f"R-hat = {report.threshold}")
    ax.invert_yaxis()
    ax.set_xlabel("R-hat")
    ax.set_title("Chain convergence")
    ax.legend()
    return _save(fig, out_dir, "rhat")


def render_all_figures(
    summary: DescriptiveSummary,
    fitted: FittedModel,
    report: DiagnosticsReport,
    out_dir: Path,
) -> Dict[str, Path]:
    """Render every report figure; returns figure name -> PNG path."""
    apply_style()
    paths = {
        "delay_histogram": plot_delay_histogram(summary, out_dir),
        "delay_by_day": plot_delay_by_day(summary, out_dir),
        "gap_vs_delay": plot_gap_vs_delay(summary, out_dir),
        "incident_counts": plot_incident_counts(summary, out_dir),
        "posterior_predictive": plot_ppc(report, out_dir),
        "prior_vs_posterior": plot_prior_vs_posterior(fitted, out_dir),
        "trace": plot_traces(fitted, out_dir),
        "rhat": plot_rhat(report, out_dir),
    }
    print(f"🖼️  Saved {len(paths)} figures to {out_dir}")
    return paths
