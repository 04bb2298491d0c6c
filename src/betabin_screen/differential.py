"""
Differential calls between two groups of cells.

``classify_differential`` turns per-feature evidence probabilities and signed
effect sizes into categorical calls. ``differential_test`` runs the whole
procedure on two posterior fits: log odds ratios per draw, tail
probabilities, EFDR calibration, then classification, once for the mean
(mu) and once for the overdispersion (gamma).
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

import numpy as np
import pandas as pd

from .efdr import ThresholdCalibration, calibrate_threshold
from .errors import ConfigurationError
from .posterior import PosteriorFit, compute_log_odds_ratio, fix_outliers, tail_prob
from .utils import as_vector, check_same_length

logger = logging.getLogger(__name__)

NO_DIFF = "NoDiff"
EXCLUDED_FROM_TESTING = "ExcludedFromTesting"
EXCLUDED_BY_USER = "ExcludedByUser"


def classify_differential(
    prob,
    estimate,
    evidence_thresh: float,
    features_selected=None,
    excluded=None,
    group_label_A: str = "GroupA",
    group_label_B: str = "GroupB",
) -> np.ndarray:
    """Categorical differential call per feature.

    Parameters
    ----------
    prob : array-like
        Posterior evidence probability per feature.
    estimate : array-like
        Signed effect size per feature (positive favours group A).
    evidence_thresh : float
        Calls require ``prob > evidence_thresh``.
    features_selected : array-like of bool, optional
        Features the caller wants tested. Defaults to all.
    excluded : array-like of bool, optional
        Features filtered out upstream.
    group_label_A, group_label_B : str
        Group names used in the labels.

    Returns
    -------
    np.ndarray of str
        ``"<group_label_A>+"``, ``"<group_label_B>+"``, ``"NoDiff"``,
        ``"ExcludedFromTesting"`` or ``"ExcludedByUser"``. Later rules win:
        unselected features are always ``"ExcludedByUser"``.

    Examples
    --------
    >>> classify_differential([0.9, 0.9, 0.5], [1.0, -1.0, 1.0], 0.8).tolist()
    ['GroupA+', 'GroupB+', 'NoDiff']
    """
    prob = as_vector(prob, "prob")
    estimate = as_vector(estimate, "estimate")
    if features_selected is None:
        features_selected = np.ones(prob.size, dtype=bool)
    features_selected = np.asarray(features_selected, dtype=bool).ravel()
    masks = {"prob": prob, "estimate": estimate, "features_selected": features_selected}
    if excluded is not None:
        excluded = np.asarray(excluded, dtype=bool).ravel()
        masks["excluded"] = excluded
    check_same_length(**masks)

    called = prob > evidence_thresh
    calls = np.full(prob.size, NO_DIFF, dtype=object)
    calls[called & (estimate > 0)] = f"{group_label_A}+"
    calls[called & (estimate < 0)] = f"{group_label_B}+"
    if excluded is not None:
        calls[excluded] = EXCLUDED_FROM_TESTING
    calls[~features_selected] = EXCLUDED_BY_USER
    return calls


@dataclass(frozen=True)
class DifferentialResult:
    """Outcome of ``differential_test``.

    ``mu`` and ``gamma`` are summary tables indexed by feature with the
    posterior medians in each group, the (log) odds ratio estimate, the
    tail probability and the call. The calibrations record the threshold
    used for each parameter.
    """
    mu: pd.DataFrame
    gamma: pd.DataFrame
    mu_calibration: ThresholdCalibration
    gamma_calibration: ThresholdCalibration

    def summary(self) -> pd.DataFrame:
        return pd.concat([self.mu, self.gamma], axis=1)


def _check_pair(fit_A: PosteriorFit, fit_B: PosteriorFit, params) -> None:
    if fit_A.mode is not fit_B.mode:
        raise ConfigurationError(
            f"Posterior fits must come from the same method, got {fit_A.mode.value} and {fit_B.mode.value}."
        )
    if list(fit_A.feature_names) != list(fit_B.feature_names):
        raise ConfigurationError("Posterior fits must cover the same features in the same order.")
    for param in params:
        n_A, n_B = fit_A.chain(param).shape[0], fit_B.chain(param).shape[0]
        if n_A != n_B:
            raise ConfigurationError(f"Different numbers of '{param}' draws: {n_A} vs {n_B}.")


def _test_parameter(
    param: str,
    fit_A: PosteriorFit,
    fit_B: PosteriorFit,
    min_or: float,
    evidence_thresh: float,
    efdr: Optional[float],
    features_selected: np.ndarray,
    excluded: Optional[np.ndarray],
    group_label_A: str,
    group_label_B: str,
):
    with np.errstate(divide="ignore", invalid="ignore"):
        lor_draws = compute_log_odds_ratio(fit_A.chain(param), fit_B.chain(param))
    prob = tail_prob(lor_draws, np.log(min_or))

    median_A = fix_outliers(fit_A.median(param))
    median_B = fix_outliers(fit_B.median(param))
    lor = compute_log_odds_ratio(median_A, median_B)

    # calibrate on the features that are actually tested
    tested = features_selected if excluded is None else features_selected & ~excluded
    if tested.any():
        calibration = calibrate_threshold(
            prob[tested], evidence_thresh=evidence_thresh, efdr=efdr,
            task=f"differential {param}", suffix=param,
        )
    else:
        calibration = calibrate_threshold(prob, evidence_thresh=evidence_thresh, efdr=None)

    calls = classify_differential(
        prob, lor, calibration.optimal_threshold,
        features_selected=features_selected, excluded=excluded,
        group_label_A=group_label_A, group_label_B=group_label_B,
    )
    table = pd.DataFrame(
        {
            f"{param}_{group_label_A}": median_A,
            f"{param}_{group_label_B}": median_B,
            f"{param}_LOR": lor,
            f"{param}_OR": np.exp(lor),
            f"{param}_tail_prob": prob,
            f"{param}_diff_test": calls,
        },
        index=pd.Index(fit_A.feature_names, name="Feature"),
    )
    logger.info(
        f"{param}: threshold {calibration.optimal_threshold:.4f}, "
        f"{(calls == f'{group_label_A}+').sum()} {group_label_A}+, "
        f"{(calls == f'{group_label_B}+').sum()} {group_label_B}+"
    )
    return table, calibration


def differential_test(
    fit_A: PosteriorFit,
    fit_B: PosteriorFit,
    group_label_A: str = "GroupA",
    group_label_B: str = "GroupB",
    features_selected=None,
    min_or_mu: float = 1.5,
    min_or_gamma: float = 1.5,
    evidence_thresh_mu: float = 0.8,
    evidence_thresh_gamma: float = 0.8,
    efdr_mu: Optional[float] = 0.05,
    efdr_gamma: Optional[float] = 0.05,
    filter_outlier: float = 0.05,
) -> DifferentialResult:
    """Differential mean and overdispersion test between two groups.

    Parameters
    ----------
    fit_A, fit_B : PosteriorFit
        Posterior draws of ``mu`` and ``gamma`` for each group, from the same
        fitting method and over the same features.
    group_label_A, group_label_B : str
        Group names used in the calls and column names.
    features_selected : array-like of bool, optional
        Features to test. Defaults to all.
    min_or_mu, min_or_gamma : float
        Minimum odds ratio of interest; evidence is the posterior probability
        that |log OR| exceeds log(min_or). A value of 1 switches to the
        sign-consistency measure of ``tail_prob``.
    evidence_thresh_mu, evidence_thresh_gamma : float
        Floors for the calibrated thresholds.
    efdr_mu, efdr_gamma : float or None
        Target EFDR. None keeps the evidence thresholds fixed.
    filter_outlier : float
        Overdispersion is only compared for features whose median mean lies
        in [filter_outlier, 1 - filter_outlier] in both groups; others are
        labelled "ExcludedFromTesting".

    Returns
    -------
    DifferentialResult

    Raises
    ------
    ConfigurationError
        If the fits differ in method, features or number of draws, or an odds
        ratio bound is below 1.
    """
    _check_pair(fit_A, fit_B, ("mu", "gamma"))
    if min_or_mu < 1 or min_or_gamma < 1:
        raise ConfigurationError("Minimum odds ratios must be >= 1.")

    n_features = fit_A.n_features
    if features_selected is None:
        features_selected = np.ones(n_features, dtype=bool)
    features_selected = np.asarray(features_selected, dtype=bool).ravel()
    if features_selected.size != n_features:
        raise ConfigurationError(
            f"features_selected has {features_selected.size} entries for {n_features} features."
        )

    mu_A, mu_B = fit_A.median("mu"), fit_B.median("mu")
    lo, hi = filter_outlier, 1 - filter_outlier
    outlying = (mu_A < lo) | (mu_A > hi) | (mu_B < lo) | (mu_B > hi)

    common = dict(
        features_selected=features_selected,
        group_label_A=group_label_A,
        group_label_B=group_label_B,
    )
    mu_table, mu_cal = _test_parameter(
        "mu", fit_A, fit_B, min_or_mu, evidence_thresh_mu, efdr_mu, excluded=None, **common
    )
    gamma_table, gamma_cal = _test_parameter(
        "gamma", fit_A, fit_B, min_or_gamma, evidence_thresh_gamma, efdr_gamma, excluded=outlying, **common
    )
    return DifferentialResult(
        mu=mu_table, gamma=gamma_table, mu_calibration=mu_cal, gamma_calibration=gamma_cal
    )
