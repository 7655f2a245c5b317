"""ttc_delay_bayes CLI module."""

from pathlib import Path

import click
from rich.console import Console
from rich.table import Table

from .config import (
    DEFAULT_DATA_PATH,
    DEFAULT_MODEL_PATH,
    DEFAULT_RHAT_THRESHOLD,
    DEFAULT_SAMPLE_SIZE,
    DEFAULT_SEED,
    OUTPUT_DIR,
    ReportConfig,
    SamplerConfig,
)
from .errors import TTCDelayError

data_path_option = click.option(
    "--data-path",
    type=click.Path(path_type=Path),
    default=DEFAULT_DATA_PATH,
    show_default=True,
    help="Cleaned delay CSV",
)
model_path_option = click.option(
    "--model-path",
    type=click.Path(path_type=Path),
    default=DEFAULT_MODEL_PATH,
    show_default=True,
    help="Cached model artifact",
)
output_dir_option = click.option(
    "--output-dir",
    type=click.Path(file_okay=False, path_type=Path),
    default=OUTPUT_DIR,
    show_default=True,
    help="Directory for tables, figures and the report",
)
sample_options = [
    click.option(
        "--sample-size",
        type=click.IntRange(min=0),
        default=DEFAULT_SAMPLE_SIZE,
        show_default=True,
        help="Records drawn for the analysis (0 keeps all)",
    ),
    click.option("--seed", type=int, default=DEFAULT_SEED, show_default=True, help="Subsample and sampler seed"),
]
sampler_options = [
    click.option("--chains", type=int, default=4, show_default=True, help="Number of MCMC chains"),
    click.option("--iterations", type=int, default=2000, show_default=True, help="Iterations per chain, warm-up included"),
    click.option("--warmup", type=int, default=1000, show_default=True, help="Warm-up iterations per chain"),
    click.option("--cores", type=int, default=None, help="Parallel chains (default: sampler decides)"),
]


def _apply(options):
    def decorator(f):
        for option in reversed(options):
            f = option(f)
        return f

    return decorator


def _build_config(
    data_path: Path = DEFAULT_DATA_PATH,
    model_path: Path = DEFAULT_MODEL_PATH,
    output_dir: Path = OUTPUT_DIR,
    sample_size: int = DEFAULT_SAMPLE_SIZE,
    seed: int = DEFAULT_SEED,
    chains: int = 4,
    iterations: int = 2000,
    warmup: int = 1000,
    cores: int | None = None,
    rhat_threshold: float = DEFAULT_RHAT_THRESHOLD,
) -> ReportConfig:
    return ReportConfig(
        data_path=data_path,
        model_path=model_path,
        output_dir=output_dir,
        sample_size=sample_size or None,
        sample_seed=seed,
        rhat_threshold=rhat_threshold,
        sampler=SamplerConfig(
            chains=chains, iterations=iterations, warmup=warmup, seed=seed, cores=cores
        ),
    )


@click.group()
def cli() -> None:
    """Bayesian analysis of TTC bus delays."""


@cli.command("clean-raw")
@click.argument("raw_csv", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@data_path_option
def clean_raw_cmd(raw_csv: Path, data_path: Path) -> None:
    """Clean a raw TTC bus delay export into the analysis dataset."""
    try:
        from .ingestion.loader import clean_raw_export, write_clean_dataset

        df = clean_raw_export(raw_csv)
        write_clean_dataset(df, data_path)
        click.echo(f"Wrote {len(df):,} records to {data_path}")
    except TTCDelayError as e:
        click.echo(f"Error: {e}", err=True)
        raise click.Abort()


@cli.command("describe")
@data_path_option
@click.option("--bin-width", type=float, default=5.0, show_default=True, help="Histogram bin width (minutes)")
def describe_cmd(data_path: Path, bin_width: float) -> None:
    """Print exploratory summaries of the delay dataset."""
    try:
        from .analysis.descriptive import describe
        from .ingestion.loader import load_dataset

        summary = describe(load_dataset(data_path), bin_width=bin_width)
    except (TTCDelayError, ValueError) as e:
        click.echo(f"Error: {e}", err=True)
        raise click.Abort()

    click.echo("\nMean delay by day:")
    for day, row in summary.by_day.iterrows():
        click.echo(f"  {day:<10} {row['mean_delay']:6.1f} min  (n={int(row['count']):,})")
    click.echo("\nDelays by incident:")
    for _, row in summary.incidents[summary.incidents["count"] > 0].iterrows():
        click.echo(f"  {row['incident']:<35} {row['count']:,}")
    click.echo(
        f"\nGap vs delay OLS: delay = {summary.gap_fit.intercept:.2f} "
        f"+ {summary.gap_fit.slope:.3f} * gap"
    )


@cli.command("fit")
@data_path_option
@model_path_option
@_apply(sample_options)
@_apply(sampler_options)
def fit_cmd(
    data_path: Path,
    model_path: Path,
    sample_size: int,
    seed: int,
    chains: int,
    iterations: int,
    warmup: int,
    cores: int | None,
) -> None:
    """Fit the delay regression and cache the posterior."""
    try:
        from .report.pipeline import fit_and_cache, prepare_data

        config = _build_config(
            data_path=data_path,
            model_path=model_path,
            sample_size=sample_size,
            seed=seed,
            chains=chains,
            iterations=iterations,
            warmup=warmup,
            cores=cores,
        )
        fitted = fit_and_cache(prepare_data(config), config)
        click.echo(
            f"✅ Fitted {fitted.n_chains} chains x {fitted.n_draws} draws -> {model_path}"
        )
    except TTCDelayError as e:
        click.echo(f"Error: {e}", err=True)
        raise click.Abort()


@cli.command("summarize")
@model_path_option
@click.option(
    "--csv",
    "csv_path",
    type=click.Path(dir_okay=False, path_type=Path),
    default=None,
    help="Also write the results table to this CSV",
)
def summarize_cmd(model_path: Path, csv_path: Path | None) -> None:
    """Print posterior medians and MAD SDs from the cached model."""
    try:
        from .bayes.model import load_model
        from .bayes.summary import summarize_posterior

        summary = summarize_posterior(load_model(model_path))
    except TTCDelayError as e:
        click.echo(f"Error: {e}", err=True)
        raise click.Abort()

    table = Table(title="Posterior summary")
    table.add_column("Parameter")
    table.add_column("Estimate", justify="right")
    table.add_column("MAD SD", justify="right")
    table.add_column("95% interval", justify="right")
    for row in summary.rows:
        table.add_row(
            row.label,
            f"{row.estimate:.2f}",
            f"{row.uncertainty:.2f}",
            f"[{row.lower:.2f}, {row.upper:.2f}]",
        )
    Console().print(table)

    if csv_path:
        summary.write_csv(csv_path)
        click.echo(f"📄 Results saved to {csv_path}")


@cli.command("diagnose")
@model_path_option
@click.option("--rhat-threshold", type=float, default=DEFAULT_RHAT_THRESHOLD, show_default=True)
@click.option("--ppc-draws", type=int, default=100, show_default=True)
def diagnose_cmd(model_path: Path, rhat_threshold: float, ppc_draws: int) -> None:
    """Report convergence diagnostics for the cached model."""
    try:
        from .bayes.diagnostics import diagnose
        from .bayes.model import load_model

        report = diagnose(load_model(model_path), rhat_threshold, ppc_draws)
    except TTCDelayError as e:
        click.echo(f"Error: {e}", err=True)
        raise click.Abort()

    for _, row in report.rhat.iterrows():
        flag = " ⚠️" if row["flagged"] else ""
        click.echo(f"  {row['parameter']:<45} R-hat={row['rhat']:.3f}{flag}")
    if not report.converged:
        click.echo(
            f"⚠️  {len(report.flagged_parameters)} parameter(s) above R-hat {rhat_threshold}"
        )


@cli.command("report")
@data_path_option
@model_path_option
@output_dir_option
@_apply(sample_options)
@_apply(sampler_options)
@click.option("--refit", is_flag=True, default=False, help="Refit even if a cached model exists")
@click.option("--rhat-threshold", type=float, default=DEFAULT_RHAT_THRESHOLD, show_default=True)
def report_cmd(
    data_path: Path,
    model_path: Path,
    output_dir: Path,
    sample_size: int,
    seed: int,
    chains: int,
    iterations: int,
    warmup: int,
    cores: int | None,
    refit: bool,
    rhat_threshold: float,
) -> None:
    """Run the whole analysis and write the report."""
    try:
        from .report.pipeline import run_pipeline

        config = _build_config(
            data_path=data_path,
            model_path=model_path,
            output_dir=output_dir,
            sample_size=sample_size,
            seed=seed,
            chains=chains,
            iterations=iterations,
            warmup=warmup,
            cores=cores,
            rhat_threshold=rhat_threshold,
        )
        result = run_pipeline(config, refit=refit)
    except TTCDelayError as e:
        click.echo(f"Error: {e}", err=True)
        raise click.Abort()

    click.echo(f"✅ Report written to {result.report_path}")
    if not result.diagnostics.converged:
        click.echo("⚠️  Some parameters did not converge, see the diagnostics section")


if __name__ == "__main__":  # pragma: no cover
    cli()
