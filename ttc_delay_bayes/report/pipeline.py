"""End-to-end report run: load, describe, fit, summarise, diagnose, render."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Dict

import pandas as pd

from ttc_delay_bayes.analysis.descriptive import DescriptiveSummary, describe
from ttc_delay_bayes.bayes.diagnostics import DiagnosticsReport, diagnose
from ttc_delay_bayes.bayes.model import (
    FittedModel,
    fit_model,
    load_model,
    model_fingerprint,
    save_model,
)
from ttc_delay_bayes.bayes.summary import PosteriorSummary, summarize_posterior
from ttc_delay_bayes.config import ReportConfig
from ttc_delay_bayes.ingestion.loader import load_dataset, subsample
from ttc_delay_bayes.report.document import render_markdown_report
from ttc_delay_bayes.report.figures import render_all_figures

__all__ = [
    "PipelineResult",
    "prepare_data",
    "fit_and_cache",
    "load_matching_model",
    "run_pipeline",
]


@dataclass(frozen=True)
class PipelineResult:
    data: pd.DataFrame
    descriptive: DescriptiveSummary
    fitted: FittedModel
    summary: PosteriorSummary
    diagnostics: DiagnosticsReport
    figures: Dict[str, Path]
    report_path: Path


def prepare_data(config: ReportConfig) -> pd.DataFrame:
    """Load the dataset and draw the fixed analysis subsample."""
    df = load_dataset(config.data_path)
    if config.sample_size is not None:
        df = subsample(df, config.sample_size, config.sample_seed)
        print(f"🎲 Using {len(df):,} records (seed {config.sample_seed})")
    return df


def fit_and_cache(df: pd.DataFrame, config: ReportConfig) -> FittedModel:
    fitted = fit_model(
        df,
        priors=config.priors,
        sampler=config.sampler,
        reference_levels=config.reference_levels,
    )
    save_model(fitted, config.model_path)
    return fitted


def load_matching_model(df: pd.DataFrame, config: ReportConfig) -> FittedModel | None:
    """Cached model for exactly this data and configuration, if there is one."""
    if not Path(config.model_path).exists():
        return None
    fitted = load_model(config.model_path)
    expected = model_fingerprint(
        df, config.priors, config.sampler, config.reference_levels
    )
    if fitted.fingerprint != expected:
        print("⚠️  Cached model was fitted to other data or settings, refitting")
        return None
    return fitted


def run_pipeline(config: ReportConfig | None = None, refit: bool = False) -> PipelineResult:
    """Produce every report artefact for ``config``.

    The cached model at ``config.model_path`` is reused only when it was
    fitted to the same records with the same settings, and ``refit`` is not
    set. Any error aborts the run.
    """
    config = config or ReportConfig()
    output_dir = Path(config.output_dir)

    df = prepare_data(config)
    descriptive = describe(df, config.bin_width, config.hist_range)

    fitted = None if refit else load_matching_model(df, config)
    if fitted is None:
        fitted = fit_and_cache(df, config)

    summary = summarize_posterior(fitted)
    summary.write_csv(output_dir / "results.csv")

    diagnostics = diagnose(
        fitted, config.rhat_threshold, config.ppc_draws, config.sample_seed
    )
    diagnostics.rhat.to_csv(output_dir / "diagnostics.csv", index=False)

    figures = render_all_figures(descriptive, fitted, diagnostics, config.figures_dir)
    report_path = render_markdown_report(
        descriptive, fitted, summary, diagnostics, figures, output_dir / "report.md"
    )

    return PipelineResult(
        data=df,
        descriptive=descriptive,
        fitted=fitted,
        summary=summary,
        diagnostics=diagnostics,
        figures=figures,
        report_path=report_path,
    )
