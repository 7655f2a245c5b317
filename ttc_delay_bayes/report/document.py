"""Markdown report assembled from the tables and figures of one run."""
from __future__ import annotations

import os
from pathlib import Path
from typing import Dict

from ttc_delay_bayes.analysis.descriptive import DescriptiveSummary
from ttc_delay_bayes.bayes.diagnostics import DiagnosticsReport
from ttc_delay_bayes.bayes.model import FittedModel
from ttc_delay_bayes.bayes.summary import PosteriorSummary, label_for

__all__ = ["render_markdown_report"]

FIGURE_CAPTIONS = {
    "delay_histogram": "Distribution of bus delays",
    "delay_by_day": "Average delay by day of week",
    "gap_vs_delay": "Delay against the gap between buses, with least-squares line",
    "incident_counts": "Number of delays by incident type",
    "posterior_predictive": "Observed delays against posterior predictive replicates",
    "prior_vs_posterior": "Prior and posterior distribution of each parameter",
    "trace": "Trace plots of every chain",
    "rhat": "R-hat per parameter",
}


def _results_table(summary: PosteriorSummary) -> list[str]:
    lines = [
        "| Parameter | Estimate | MAD SD | 95% interval |",
        "|---|---:|---:|---|",
    ]
    for row in summary.rows:
        lines.append(
            f"| {row.label} | {row.estimate:.2f} | {row.uncertainty:.2f} "
            f"| [{row.lower:.2f}, {row.upper:.2f}] |"
        )
    return lines


def _diagnostics_table(report: DiagnosticsReport) -> list[str]:
    lines = ["| Parameter | R-hat | Bulk ESS |", "|---|---:|---:|"]
    for _, row in report.rhat.iterrows():
        mark = " ⚠️" if row["flagged"] else ""
        lines.append(
            f"| {label_for(row['parameter'])} | {row['rhat']:.3f}{mark} | {row['ess_bulk']:.0f} |"
        )
    return lines


def render_markdown_report(
    descriptive: DescriptiveSummary,
    fitted: FittedModel,
    summary: PosteriorSummary,
    diagnostics: DiagnosticsReport,
    figures: Dict[str, Path],
    path: Path | str,
) -> Path:
    """Write the report to ``path`` with figure links relative to it."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    sampler = fitted.sampler

    lines = [
        "# Delays on Toronto Transit Commission buses",
        "",
        "## Data",
        "",
        f"The analysis uses {descriptive.n_records:,} delay records.",
        "",
    ]
    for name in ("delay_histogram", "delay_by_day", "gap_vs_delay", "incident_counts"):
        if name in figures:
            lines += [_figure(name, figures[name], path), ""]

    lines += [
        "## Model",
        "",
        f"`{fitted.formula}` with a Gaussian likelihood, fitted with "
        f"{sampler.chains} chains of {sampler.iterations} iterations "
        f"({sampler.warmup} warm-up, seed {sampler.seed}).",
        f"Reference levels: incident `{fitted.reference_levels.get('incident')}`, "
        f"day `{fitted.reference_levels.get('day')}`.",
        "",
        "## Results",
        "",
        *_results_table(summary),
        "",
        "## Diagnostics",
        "",
    ]

    if diagnostics.converged:
        lines.append(
            f"All R-hat values are at or below {diagnostics.threshold} "
            f"(max {diagnostics.max_rhat:.3f})."
        )
    else:
        lines += [
            f"> **Warning:** the chains have not converged for "
            f"{len(diagnostics.flagged_parameters)} parameter(s) "
            f"(R-hat above {diagnostics.threshold}): "
            + ", ".join(label_for(p) for p in diagnostics.flagged_parameters)
            + ". Estimates for these parameters are unreliable.",
        ]
    lines += [
        "",
        *_diagnostics_table(diagnostics),
        "",
        f"Posterior predictive replicates reproduce the observed mean with ratio "
        f"{diagnostics.ppc.mean_ratio():.2f} and the variance with ratio "
        f"{diagnostics.ppc.variance_ratio():.2f}.",
        "",
    ]
    for name in ("posterior_predictive", "prior_vs_posterior", "trace", "rhat"):
        if name in figures:
            lines += [_figure(name, figures[name], path), ""]

    path.write_text("\n".join(lines), encoding="utf-8")
    print(f"📄 Report written to {path}")
    return path


def _figure(name: str, figure_path: Path, report_path: Path) -> str:
    rel = os.path.relpath(Path(figure_path), Path(report_path).parent)
    return f"![{FIGURE_CAPTIONS.get(name, name)}]({Path(rel).as_posix()})"
