"""Shared fixtures: simulated counts and posterior draws."""

from __future__ import annotations

import numpy as np
import pytest

from betabin_screen import FitMode, PosteriorFit, simulate_bb_data


@pytest.fixture
def overdispersed_counts() -> np.ndarray:
    """500 samples from BetaBinomial(alpha=2, beta=6), mu = 0.25, gamma = 1/9."""
    return simulate_bb_data(n_samples=500, alpha=2.0, beta=6.0, trials_low=10, trials_high=50, seed=3)


@pytest.fixture
def binomial_counts() -> np.ndarray:
    """300 samples from a Binomial with p = 0.3."""
    return simulate_bb_data(n_samples=300, p=0.3, trials_low=20, trials_high=50, seed=5)


def _beta_draws(rng: np.random.Generator, means, concentration: float = 1000.0, n_draws: int = 1000):
    means = np.asarray(means, dtype=float)
    return rng.beta(means * concentration, (1 - means) * concentration, size=(n_draws, means.size))


@pytest.fixture
def posterior_pair() -> tuple[PosteriorFit, PosteriorFit]:
    """Two MCMC fits over three features.

    feat_0: mean higher in A (0.7 vs 0.3), same overdispersion.
    feat_1: same mean, overdispersion higher in A (0.3 vs 0.05).
    feat_2: mean near 1 in A, so overdispersion is not comparable.
    """
    rng = np.random.default_rng(11)
    names = ["feat_0", "feat_1", "feat_2"]
    fit_A = PosteriorFit(
        mode=FitMode.MCMC,
        feature_names=names,
        draws={
            "mu": _beta_draws(rng, [0.7, 0.5, 0.995]),
            "gamma": _beta_draws(rng, [0.1, 0.3, 0.1]),
        },
        n_chains=4,
    )
    fit_B = PosteriorFit(
        mode=FitMode.MCMC,
        feature_names=names,
        draws={
            "mu": _beta_draws(rng, [0.3, 0.5, 0.5]),
            "gamma": _beta_draws(rng, [0.1, 0.05, 0.1]),
        },
        n_chains=4,
    )
    return fit_A, fit_B
