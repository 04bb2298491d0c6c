"""Tests for posterior containers, tail probabilities and odds ratios."""

from __future__ import annotations

import numpy as np
import pytest

from betabin_screen import (
    ConfigurationError,
    FitMode,
    PosteriorFit,
    compute_log_odds_ratio,
    compute_odds_ratio,
    fix_outliers,
    tail_prob,
)


class TestTailProb:
    def test_tolerance(self) -> None:
        chain = np.array([[0.5, 2.0], [-2.0, 3.0], [0.1, -4.0], [3.0, 0.0]])
        np.testing.assert_allclose(tail_prob(chain, 1.0), [0.5, 0.75])

    def test_zero_tolerance_measures_sign_consistency(self) -> None:
        chain = np.array([[1.0, 1.0], [2.0, -1.0], [3.0, 1.0], [-1.0, -1.0]])
        # q = 0.75 -> 0.5; q = 0.5 -> 0
        np.testing.assert_allclose(tail_prob(chain, 0.0), [0.5, 0.0])

    def test_zero_draws_count_as_non_positive(self) -> None:
        chain = np.zeros((10, 1))
        np.testing.assert_allclose(tail_prob(chain, 0.0), [1.0])

    def test_single_feature_vector(self) -> None:
        assert tail_prob(np.array([0.2, 0.4, -0.1]), 0.3).shape == (1,)


class TestOddsRatio:
    def test_values(self) -> None:
        assert compute_odds_ratio(0.5, 0.5) == pytest.approx(1.0)
        assert compute_odds_ratio(0.75, 0.5) == pytest.approx(3.0)
        assert compute_log_odds_ratio(0.75, 0.5) == pytest.approx(np.log(3.0))

    def test_antisymmetric_log(self) -> None:
        p1 = np.array([0.2, 0.6])
        p2 = np.array([0.4, 0.1])
        np.testing.assert_allclose(compute_log_odds_ratio(p1, p2), -compute_log_odds_ratio(p2, p1))

    def test_fix_outliers(self) -> None:
        np.testing.assert_allclose(fix_outliers([0.0, 0.5, 1.0]), [0.01, 0.5, 0.99])
        np.testing.assert_allclose(fix_outliers([0.0, 0.5], xmin=0.1, xmax=0.4), [0.1, 0.4])


class TestPosteriorFit:
    draws = {"mu": np.full((5, 2), 0.5), "gamma": np.full((5, 2), 0.1)}

    def test_mcmc(self) -> None:
        fit = PosteriorFit(mode="MCMC", feature_names=["a", "b"], draws=self.draws, n_chains=2)
        assert fit.mode is FitMode.MCMC
        assert fit.n_features == 2
        np.testing.assert_allclose(fit.median("gamma"), [0.1, 0.1])

    def test_vb(self) -> None:
        fit = PosteriorFit(mode=FitMode.VB, feature_names=["a", "b"], draws=self.draws, elbo=np.arange(10.0))
        assert fit.mode is FitMode.VB

    @pytest.mark.parametrize(
        "kwargs",
        [
            {"mode": FitMode.MCMC},
            {"mode": FitMode.MCMC, "n_chains": 0},
            {"mode": FitMode.MCMC, "n_chains": 2, "elbo": np.ones(3)},
            {"mode": FitMode.VB},
            {"mode": FitMode.VB, "elbo": np.ones(3), "n_chains": 2},
        ],
    )
    def test_payload_must_match_mode(self, kwargs) -> None:
        with pytest.raises(ConfigurationError):
            PosteriorFit(feature_names=["a", "b"], draws=self.draws, **kwargs)

    def test_unknown_mode(self) -> None:
        with pytest.raises(ValueError):
            PosteriorFit(mode="HMC", feature_names=["a", "b"], draws=self.draws, n_chains=1)

    def test_draw_shapes(self) -> None:
        with pytest.raises(ConfigurationError):
            PosteriorFit(mode=FitMode.MCMC, feature_names=["a"], draws=self.draws, n_chains=1)
        with pytest.raises(ConfigurationError):
            PosteriorFit(
                mode=FitMode.MCMC,
                feature_names=["a", "b"],
                draws={"mu": np.ones((5, 2)), "gamma": np.ones((4, 2))},
                n_chains=1,
            )

    def test_missing_parameter(self) -> None:
        fit = PosteriorFit(mode=FitMode.MCMC, feature_names=["a", "b"], draws=self.draws, n_chains=1)
        with pytest.raises(ConfigurationError):
            fit.chain("epsilon")
