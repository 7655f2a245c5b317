"""Configuration defaults for the delay-analysis pipeline."""
from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional, Tuple

from ttc_delay_bayes.errors import SamplerConfigError

__all__ = [
    "DAY_ORDER",
    "INCIDENT_CATEGORIES",
    "REQUIRED_COLUMNS",
    "NormalPrior",
    "ExponentialPrior",
    "PriorConfig",
    "SamplerConfig",
    "ReportConfig",
]

DEFAULT_DATA_PATH = Path(
    os.getenv("TTC_DELAY_DATA", "data/analysis_data/cleaned_bus_delay_data.csv")
)
MODELS_DIR = Path(os.getenv("TTC_DELAY_MODELS_DIR", "models"))
DEFAULT_MODEL_PATH = MODELS_DIR / "delay_model.pkl"
OUTPUT_DIR = Path(os.getenv("TTC_DELAY_OUTPUT_DIR", "output"))

# Columns of the cleaned dataset, in file order
REQUIRED_COLUMNS = ["incident", "day", "min_gap", "min_delay"]

DAY_ORDER = [
    "Monday",
    "Tuesday",
    "Wednesday",
    "Thursday",
    "Friday",
    "Saturday",
    "Sunday",
]

# Incident categories published in the TTC bus delay export
INCIDENT_CATEGORIES = [
    "Cleaning - Disinfection",
    "Cleaning - Unsanitary",
    "Collision - TTC",
    "Diversion",
    "Emergency Services",
    "General Delay",
    "Held By",
    "Investigation",
    "Late Entering Service",
    "Mechanical",
    "Not Specified",
    "Operations - Operator",
    "Road Blocked - NON-TTC Collision",
    "Security",
    "Utilized Off Route",
    "Vision",
]

DEFAULT_SAMPLE_SIZE = 2000
DEFAULT_SEED = 987
DEFAULT_RHAT_THRESHOLD = 1.1


@dataclass(frozen=True)
class NormalPrior:
    """Normal(mu, sigma) prior on a regression coefficient."""

    mu: float = 0.0
    sigma: float = 2.5

    def __post_init__(self) -> None:  # noqa: D401
        if not self.sigma > 0:
            raise SamplerConfigError(f"Normal prior scale must be > 0, got {self.sigma}")


@dataclass(frozen=True)
class ExponentialPrior:
    """Exponential(rate) prior on the residual scale."""

    rate: float = 1.0

    def __post_init__(self) -> None:  # noqa: D401
        if not self.rate > 0:
            raise SamplerConfigError(f"Exponential prior rate must be > 0, got {self.rate}")


@dataclass(frozen=True)
class PriorConfig:
    """Weakly informative priors for the delay regression.

    Parameters
    ----------
    intercept, gap, incident, day
        Normal priors on the intercept, the inter-bus gap slope and every
        non-reference incident / day coefficient.
    sigma
        Exponential prior on the residual standard deviation.
    autoscale
        Rescale the priors by the spread of the data before fitting
        (``sd(min_delay)`` for intercept and categorical terms,
        ``sd(min_delay) / sd(min_gap)`` for the gap slope, and the sigma rate
        divided by ``sd(min_delay)``).
    """

    intercept: NormalPrior = field(default_factory=NormalPrior)
    gap: NormalPrior = field(default_factory=NormalPrior)
    incident: NormalPrior = field(default_factory=NormalPrior)
    day: NormalPrior = field(default_factory=NormalPrior)
    sigma: ExponentialPrior = field(default_factory=ExponentialPrior)
    autoscale: bool = True


@dataclass(frozen=True)
class SamplerConfig:
    """MCMC settings: ``iterations`` per chain includes ``warmup``."""

    chains: int = 4
    iterations: int = 2000
    warmup: int = 1000
    seed: int = DEFAULT_SEED
    target_accept: float = 0.9
    cores: Optional[int] = None
    max_divergences: int = 0

    def __post_init__(self) -> None:  # noqa: D401
        if self.chains <= 0:
            raise SamplerConfigError(f"chains must be > 0, got {self.chains}")
        if self.iterations <= 0:
            raise SamplerConfigError(f"iterations must be > 0, got {self.iterations}")
        if self.warmup < 0:
            raise SamplerConfigError(f"warmup must be >= 0, got {self.warmup}")
        if self.warmup >= self.iterations:
            raise SamplerConfigError(
                f"warmup ({self.warmup}) must be smaller than iterations ({self.iterations})"
            )
        if not 0 < self.target_accept < 1:
            raise SamplerConfigError("target_accept must lie in (0, 1)")
        if self.max_divergences < 0:
            raise SamplerConfigError("max_divergences must be >= 0")

    @property
    def draws(self) -> int:
        """Post-warm-up draws kept per chain."""
        return self.iterations - self.warmup


@dataclass(frozen=True)
class ReportConfig:
    """Everything one end-to-end report run needs."""

    data_path: Path = DEFAULT_DATA_PATH
    model_path: Path = DEFAULT_MODEL_PATH
    output_dir: Path = OUTPUT_DIR
    sample_size: Optional[int] = DEFAULT_SAMPLE_SIZE
    sample_seed: int = DEFAULT_SEED
    bin_width: float = 5.0
    hist_range: Tuple[float, float] = (0.0, 100.0)
    rhat_threshold: float = DEFAULT_RHAT_THRESHOLD
    ppc_draws: int = 100
    reference_incident: Optional[str] = None
    reference_day: str = "Monday"
    priors: PriorConfig = field(default_factory=PriorConfig)
    sampler: SamplerConfig = field(default_factory=SamplerConfig)

    @property
    def figures_dir(self) -> Path:
        return Path(self.output_dir) / "figures"

    @property
    def reference_levels(self) -> dict:
        return {"incident": self.reference_incident, "day": self.reference_day}
