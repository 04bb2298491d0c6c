"""Tests for differential calls."""

from __future__ import annotations

import numpy as np
import pytest

from betabin_screen import (
    ConfigurationError,
    DifferentialResult,
    FitMode,
    PosteriorFit,
    classify_differential,
    differential_test,
)


class TestClassifyDifferential:
    def test_calls(self) -> None:
        calls = classify_differential(
            [0.9, 0.9, 0.5], [1.0, -1.0, 1.0], 0.8, features_selected=[True, True, True]
        )
        assert calls.tolist() == ["GroupA+", "GroupB+", "NoDiff"]

    def test_threshold_is_exclusive_and_zero_effect_is_no_diff(self) -> None:
        calls = classify_differential([0.8, 0.95], [1.0, 0.0], 0.8)
        assert calls.tolist() == ["NoDiff", "NoDiff"]

    def test_custom_labels(self) -> None:
        calls = classify_differential(
            [0.9, 0.9], [2.0, -2.0], 0.8, group_label_A="young", group_label_B="old"
        )
        assert calls.tolist() == ["young+", "old+"]

    def test_exclusion_precedence(self) -> None:
        calls = classify_differential(
            prob=[0.9, 0.9, 0.9, 0.9],
            estimate=[1.0, 1.0, 1.0, 1.0],
            evidence_thresh=0.8,
            features_selected=[True, True, False, False],
            excluded=[False, True, True, False],
        )
        assert calls.tolist() == ["GroupA+", "ExcludedFromTesting", "ExcludedByUser", "ExcludedByUser"]

    @pytest.mark.parametrize(
        "kwargs",
        [
            {"estimate": [1.0, 1.0]},
            {"features_selected": [True, True]},
            {"excluded": [False]},
        ],
    )
    def test_length_mismatch(self, kwargs) -> None:
        args = {"prob": [0.9, 0.9, 0.5], "estimate": [1.0, -1.0, 1.0], "evidence_thresh": 0.8}
        args.update(kwargs)
        with pytest.raises(ConfigurationError):
            classify_differential(**args)


class TestDifferentialTest:
    def test_fixed_thresholds(self, posterior_pair) -> None:
        fit_A, fit_B = posterior_pair

        res = differential_test(fit_A, fit_B, efdr_mu=None, efdr_gamma=None)

        assert isinstance(res, DifferentialResult)
        assert res.mu["mu_diff_test"].tolist() == ["GroupA+", "NoDiff", "GroupA+"]
        assert res.gamma["gamma_diff_test"].tolist() == ["NoDiff", "GroupA+", "ExcludedFromTesting"]
        assert res.mu_calibration.optimal_threshold == 0.8
        assert res.mu_calibration.threshold_grid is None

    def test_summary_table(self, posterior_pair) -> None:
        fit_A, fit_B = posterior_pair

        res = differential_test(fit_A, fit_B, group_label_A="A", group_label_B="B", efdr_mu=None, efdr_gamma=None)
        summary = res.summary()

        assert list(summary.index) == ["feat_0", "feat_1", "feat_2"]
        assert summary.index.name == "Feature"
        assert {"mu_A", "mu_B", "mu_LOR", "mu_OR", "mu_tail_prob", "gamma_diff_test"} <= set(summary.columns)
        assert summary.loc["feat_0", "mu_LOR"] == pytest.approx(np.log((0.7 / 0.3) / (0.3 / 0.7)), abs=0.1)
        assert summary.loc["feat_0", "mu_OR"] == pytest.approx(np.exp(summary.loc["feat_0", "mu_LOR"]))
        # medians near 1 are clamped before the odds ratio
        assert summary.loc["feat_2", "mu_A"] == pytest.approx(0.99)

    @pytest.mark.filterwarnings("ignore::betabin_screen.errors.CalibrationWarning")
    def test_calibrated_thresholds(self, posterior_pair) -> None:
        fit_A, fit_B = posterior_pair

        res = differential_test(fit_A, fit_B)

        assert res.mu_calibration.threshold_grid is not None
        assert res.mu_calibration.optimal_threshold >= 0.8
        assert res.mu["mu_diff_test"].tolist() == ["GroupA+", "NoDiff", "GroupA+"]
        assert res.gamma["gamma_diff_test"].tolist() == ["NoDiff", "GroupA+", "ExcludedFromTesting"]

    def test_user_selection(self, posterior_pair) -> None:
        fit_A, fit_B = posterior_pair

        res = differential_test(
            fit_A, fit_B, features_selected=[False, True, True], efdr_mu=None, efdr_gamma=None
        )

        assert res.mu["mu_diff_test"].iloc[0] == "ExcludedByUser"
        assert res.gamma["gamma_diff_test"].iloc[0] == "ExcludedByUser"

    def test_mismatched_modes(self, posterior_pair) -> None:
        fit_A, fit_B = posterior_pair
        vb = PosteriorFit(mode=FitMode.VB, feature_names=fit_B.feature_names, draws=fit_B.draws, elbo=np.ones(5))

        with pytest.raises(ConfigurationError, match="same method"):
            differential_test(fit_A, vb)

    def test_mismatched_features(self, posterior_pair) -> None:
        fit_A, fit_B = posterior_pair
        renamed = PosteriorFit(
            mode=FitMode.MCMC, feature_names=["x", "y", "z"], draws=fit_B.draws, n_chains=4
        )

        with pytest.raises(ConfigurationError):
            differential_test(fit_A, renamed)

    def test_invalid_odds_ratio_bound(self, posterior_pair) -> None:
        with pytest.raises(ConfigurationError):
            differential_test(*posterior_pair, min_or_mu=0.5)
