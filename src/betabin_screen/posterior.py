"""
Posterior draws from an external sampler and evidence probabilities.

The hierarchical model is fitted elsewhere, either by MCMC or by variational
Bayes (VB). Both hand over a matrix of draws per parameter, shape
(n_draws, n_features); what differs is the diagnostic payload that comes
with them. ``PosteriorFit`` carries the draws together with a ``FitMode`` tag
and validates that the payload matches the tag.

Classes
-------
FitMode
    How the posterior draws were produced.
PosteriorFit
    Draws for one group plus mode-specific diagnostics.

Functions
---------
tail_prob
    Posterior tail probability of exceeding a tolerance.
compute_odds_ratio, compute_log_odds_ratio
    (Log) odds ratio between two proportions.
fix_outliers
    Clamp values into [xmin, xmax].
"""
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional

import numpy as np

from .errors import ConfigurationError


class FitMode(str, Enum):
    MCMC = "MCMC"
    VB = "VB"


@dataclass(frozen=True)
class PosteriorFit:
    """Posterior draws for one group of cells.

    Attributes
    ----------
    mode : FitMode
        How the draws were produced.
    feature_names : list of str
        Feature labels, matching the columns of every draw matrix.
    draws : dict of str to np.ndarray
        Draws per parameter (e.g. "mu", "gamma"), each of shape
        (n_draws, n_features).
    n_chains : int, optional
        Number of MCMC chains. Required for MCMC, must be None for VB.
    elbo : np.ndarray, optional
        Evidence lower bound trace. Required for VB, must be None for MCMC.
    """
    mode: FitMode
    feature_names: List[str]
    draws: Dict[str, np.ndarray]
    n_chains: Optional[int] = None
    elbo: Optional[np.ndarray] = field(default=None, repr=False)

    def __post_init__(self):
        mode = FitMode(self.mode)
        object.__setattr__(self, "mode", mode)

        if mode is FitMode.MCMC:
            if self.n_chains is None or self.n_chains < 1 or self.elbo is not None:
                raise ConfigurationError("MCMC posterior needs n_chains >= 1 and no ELBO trace.")
        elif self.elbo is None or self.n_chains is not None:
            raise ConfigurationError("VB posterior needs an ELBO trace and no chain count.")

        n_features = len(self.feature_names)
        n_draws = set()
        for name, chain in self.draws.items():
            chain = np.asarray(chain, dtype=float)
            if chain.ndim != 2 or chain.shape[1] != n_features:
                raise ConfigurationError(
                    f"Draws for '{name}' must have shape (n_draws, {n_features}), got {chain.shape}."
                )
            n_draws.add(chain.shape[0])
        if len(n_draws) > 1:
            raise ConfigurationError(f"Parameters have different numbers of draws: {sorted(n_draws)}")

    @property
    def n_features(self) -> int:
        return len(self.feature_names)

    def chain(self, param: str) -> np.ndarray:
        if param not in self.draws:
            raise ConfigurationError(f"No posterior draws for '{param}'. Available: {sorted(self.draws)}")
        return np.asarray(self.draws[param], dtype=float)

    def median(self, param: str) -> np.ndarray:
        """Posterior median per feature."""
        return np.median(self.chain(param), axis=0)


def tail_prob(chain: np.ndarray, tolerance_thresh: float) -> np.ndarray:
    """Posterior tail probabilities for a differential test.

    Parameters
    ----------
    chain : np.ndarray
        Draws of a per-feature change (e.g. log odds ratio), shape
        (n_draws, n_features).
    tolerance_thresh : float
        Minimum change of interest. If positive, returns the fraction of
        draws with |change| > tolerance_thresh. If zero, returns
        2 max(q, 1 - q) - 1 where q is the fraction of positive draws, a
        measure of how consistently the change has one sign.

    Returns
    -------
    np.ndarray
        One probability per feature.

    Notes
    -----
    See Bochkina and Richardson (2007); follows the BASiCS implementation.
    """
    chain = np.asarray(chain, dtype=float)
    if chain.ndim == 1:
        chain = chain[:, np.newaxis]

    if tolerance_thresh > 0:
        return np.mean(np.abs(chain) > tolerance_thresh, axis=0)

    q = np.mean(chain > 0, axis=0)
    return 2 * np.maximum(q, 1 - q) - 1


def compute_odds_ratio(p1, p2):
    """Odds ratio (p1 / (1 - p1)) / (p2 / (1 - p2))."""
    p1 = np.asarray(p1, dtype=float)
    p2 = np.asarray(p2, dtype=float)
    return (p1 / (1 - p1)) / (p2 / (1 - p2))


def compute_log_odds_ratio(p1, p2):
    return np.log(compute_odds_ratio(p1, p2))


def fix_outliers(x, xmin: float = 1e-2, xmax: float = 1 - 1e-2) -> np.ndarray:
    """Clamp values into [xmin, xmax] so odds ratios stay finite."""
    return np.clip(np.asarray(x, dtype=float), xmin, xmax)
