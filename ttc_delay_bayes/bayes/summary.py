"""Point and interval estimates for every model coefficient."""
from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Tuple

import numpy as np
import pandas as pd
from scipy.stats import median_abs_deviation

from ttc_delay_bayes.bayes.model import FittedModel

__all__ = [
    "MAD_SCALE",
    "PARAMETER_LABELS",
    "ParameterEstimate",
    "PosteriorSummary",
    "label_for",
    "summarize_posterior",
]

# Makes the MAD a consistent estimator of a normal standard deviation
MAD_SCALE = 1.4826

PARAMETER_LABELS = {
    "Intercept": "(Intercept)",
    "min_gap": "Inter-Bus Gap",
    "sigma": "Sigma",
    "incident[Cleaning - Disinfection]": "Incident: Cleaning (Disinfection)",
    "incident[Cleaning - Unsanitary]": "Incident: Cleaning (Unsanitary)",
    "incident[Collision - TTC]": "Incident: TTC Collision",
    "incident[Diversion]": "Incident: Diversion",
    "incident[Emergency Services]": "Incident: Emergency Services",
    "incident[General Delay]": "Incident: General Delay",
    "incident[Held By]": "Incident: Held By",
    "incident[Investigation]": "Incident: Investigation",
    "incident[Late Entering Service]": "Incident: Late Entering Service",
    "incident[Mechanical]": "Incident: Mechanical Issue",
    "incident[Not Specified]": "Incident: Not Specified",
    "incident[Operations - Operator]": "Incident: Operator",
    "incident[Road Blocked - NON-TTC Collision]": "Incident: Road Blocked (Non-TTC Collision)",
    "incident[Security]": "Incident: Security",
    "incident[Utilized Off Route]": "Incident: Utilized Off Route",
    "incident[Vision]": "Incident: Vision",
    "day[Monday]": "Day: Monday",
    "day[Tuesday]": "Day: Tuesday",
    "day[Wednesday]": "Day: Wednesday",
    "day[Thursday]": "Day: Thursday",
    "day[Friday]": "Day: Friday",
    "day[Saturday]": "Day: Saturday",
    "day[Sunday]": "Day: Sunday",
}


def label_for(parameter: str) -> str:
    """Readable label for a parameter; unknown names are returned as-is."""
    return PARAMETER_LABELS.get(parameter, parameter)


@dataclass(frozen=True)
class ParameterEstimate:
    parameter: str
    label: str
    estimate: float
    uncertainty: float
    lower: float
    upper: float


@dataclass(frozen=True)
class PosteriorSummary:
    """Median / scaled-MAD estimates keyed by parameter name."""

    rows: Tuple[ParameterEstimate, ...]

    def __len__(self) -> int:
        return len(self.rows)

    def estimate(self, parameter: str) -> ParameterEstimate:
        for row in self.rows:
            if row.parameter == parameter:
                return row
        raise KeyError(parameter)

    def to_frame(self) -> pd.DataFrame:
        return pd.DataFrame(
            [vars(row) for row in self.rows],
            columns=["parameter", "label", "estimate", "uncertainty", "lower", "upper"],
        )

    def write_csv(self, path: Path | str) -> Path:
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        self.to_frame().to_csv(path, index=False)
        return path


def summarize_posterior(
    fitted: FittedModel, interval: float = 0.95
) -> PosteriorSummary:
    """Summarise each parameter by its posterior median and MAD.

    Parameters
    ----------
    fitted : FittedModel
        Model whose draws are pooled across chains.
    interval : float
        Mass of the central quantile interval reported alongside.

    Returns
    -------
    PosteriorSummary
        One row per parameter, in posterior order.
    """
    if not 0 < interval < 1:
        raise ValueError("interval must lie in (0, 1)")
    tail = (1 - interval) / 2

    rows = []
    for name, draws in fitted.posterior_draws().items():
        flat = draws.reshape(-1)
        lower, upper = np.quantile(flat, [tail, 1 - tail])
        rows.append(
            ParameterEstimate(
                parameter=name,
                label=label_for(name),
                estimate=float(np.median(flat)),
                uncertainty=float(median_abs_deviation(flat) * MAD_SCALE),
                lower=float(lower),
                upper=float(upper),
            )
        )
    return PosteriorSummary(rows=tuple(rows))
