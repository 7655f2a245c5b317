"""Exception types raised by the delay-analysis pipeline."""
from __future__ import annotations

__all__ = [
    "TTCDelayError",
    "DataLoadError",
    "SamplerConfigError",
    "SamplerDivergenceError",
    "ModelArtifactMissingError",
]


class TTCDelayError(Exception):
    """Base class for pipeline errors."""


class DataLoadError(TTCDelayError):
    """The delay dataset could not be read or lacks required columns."""


class SamplerConfigError(TTCDelayError, ValueError):
    """Invalid priors or sampler settings."""


class SamplerDivergenceError(TTCDelayError, RuntimeError):
    """The sampler failed or reported divergent transitions.

    Parameters
    ----------
    message
        Human-readable description.
    divergences
        Total number of divergent transitions across chains.
    per_chain
        Divergent transitions per chain, in chain order.
    """

    def __init__(
        self,
        message: str,
        divergences: int = 0,
        per_chain: tuple[int, ...] = (),
    ) -> None:
        super().__init__(message)
        self.divergences = divergences
        self.per_chain = per_chain


class ModelArtifactMissingError(TTCDelayError, FileNotFoundError):
    """No cached fitted-model artifact exists at the requested path."""
