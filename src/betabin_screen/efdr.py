"""
Posterior evidence thresholds calibrated by expected false discovery rate.

Given posterior tail probabilities ``prob`` (one per feature), a feature is
called when its probability exceeds an evidence threshold. Under the
posterior, the expected proportion of false calls among the called features
is the EFDR, and the expected proportion of missed effects among the features
left uncalled is the EFNR:

    EFDR(t) = sum_{prob > t} (1 - prob) / #{prob > t}
    EFNR(t) = sum_{prob <= t} prob / #{prob <= t}

``calibrate_threshold`` searches a grid of thresholds for the one whose EFDR
is closest to a target (after Bochkina & Richardson (2007), as used in
BASiCS).

Classes
-------
ThresholdCalibration
    Outcome of one calibration.

Functions
---------
eval_efdr
    EFDR at a given threshold.
eval_efnr
    EFNR at a given threshold.
calibrate_threshold
    Grid search for the threshold achieving a target EFDR.
"""
from __future__ import annotations

import logging
import warnings
from dataclasses import dataclass
from typing import Optional

import numpy as np

from .config import DEFAULT_GRID, EFDR_TOLERANCE, FALLBACK_THRESHOLD, EvidenceGrid
from .errors import CalibrationWarning, ConfigurationError
from .utils import as_vector

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ThresholdCalibration:
    """Result of an evidence threshold calibration.

    Attributes
    ----------
    optimal_threshold : float
        Threshold to use for calling features.
    achieved_efdr, achieved_efnr : float or None
        EFDR/EFNR at ``optimal_threshold``; None when undefined (no feature
        on the corresponding side of the threshold, or calibration failed).
    threshold_grid : np.ndarray or None
        Grid that was searched; None when no target EFDR was given.
    efdr_grid, efnr_grid : np.ndarray
        EFDR/EFNR over the grid, or a single value at the fixed threshold
        when no grid was searched.
    """
    optimal_threshold: float
    achieved_efdr: Optional[float]
    achieved_efnr: Optional[float]
    threshold_grid: Optional[np.ndarray]
    efdr_grid: np.ndarray
    efnr_grid: np.ndarray


def _as_optional(value: float) -> Optional[float]:
    value = float(value)
    return value if np.isfinite(value) else None


def eval_efdr(evidence_thresh: float, prob: np.ndarray) -> float:
    """EFDR among features with ``prob > evidence_thresh``; NaN if there are none."""
    prob = np.asarray(prob, dtype=float)
    called = prob > evidence_thresh
    n_called = called.sum()
    if n_called == 0:
        return np.nan
    return float(np.sum(1 - prob[called]) / n_called)


def eval_efnr(evidence_thresh: float, prob: np.ndarray) -> float:
    """EFNR among features with ``prob <= evidence_thresh``; NaN if there are none."""
    prob = np.asarray(prob, dtype=float)
    missed = prob <= evidence_thresh
    n_missed = missed.sum()
    if n_missed == 0:
        return np.nan
    return float(np.sum(prob[missed]) / n_missed)


def _fixed_threshold(evidence_thresh: float, prob: np.ndarray) -> ThresholdCalibration:
    efdr = eval_efdr(evidence_thresh, prob)
    efnr = eval_efnr(evidence_thresh, prob)
    return ThresholdCalibration(
        optimal_threshold=float(evidence_thresh),
        achieved_efdr=_as_optional(efdr),
        achieved_efnr=_as_optional(efnr),
        threshold_grid=None,
        efdr_grid=np.array([efdr]),
        efnr_grid=np.array([efnr]),
    )


def calibrate_threshold(
    prob,
    evidence_thresh: float = 0.8,
    efdr: Optional[float] = None,
    task: str = "differential",
    suffix: str = "",
    grid: Optional[EvidenceGrid] = None,
) -> ThresholdCalibration:
    """Choose the posterior evidence threshold that meets a target EFDR.

    Parameters
    ----------
    prob : array-like
        Posterior tail probabilities, one per feature, in [0, 1].
    evidence_thresh : float, default 0.8
        Minimum acceptable threshold. Used as-is when ``efdr`` is None, and
        as a floor for the calibrated threshold otherwise.
    efdr : float or None, default None
        Target EFDR. None skips calibration.
    task : str
        Name of the analysis, used in diagnostic messages.
    suffix : str
        Name of the threshold argument variant (e.g. "mu"), used in
        diagnostic messages.
    grid : EvidenceGrid, optional
        Candidate thresholds. Defaults to 0.6 to 0.9995 in steps of 0.00025.

    Returns
    -------
    ThresholdCalibration

    Notes
    -----
    Among grid points, the one with EFDR closest to the target wins. Ties go
    to the lowest EFNR, and remaining ties to the lower median grid point.
    Fallbacks, each announced with a CalibrationWarning:

    - calibrated threshold not above ``evidence_thresh``: use
      ``evidence_thresh`` instead;
    - no grid point with a defined EFDR: use 0.9 with undefined EFDR/EFNR.

    A CalibrationWarning is also issued when the closest EFDR misses the
    target by more than 0.025.

    Examples
    --------
    >>> cal = calibrate_threshold([0.99, 0.98, 0.01, 0.02], efdr=0.05)
    >>> round(cal.achieved_efdr, 3)
    0.015
    """
    prob = as_vector(prob, "prob")
    if np.any(~np.isfinite(prob)) or np.any(prob < 0) or np.any(prob > 1):
        raise ConfigurationError("Evidence probabilities must lie in [0, 1].")

    if efdr is None:
        return _fixed_threshold(evidence_thresh, prob)

    if grid is None:
        grid = DEFAULT_GRID
    thresh_grid = grid.values()
    efdr_grid = np.array([eval_efdr(t, prob) for t in thresh_grid])
    efnr_grid = np.array([eval_efnr(t, prob) for t in thresh_grid])

    abs_diff = np.abs(efdr_grid - efdr)
    defined = np.isfinite(abs_diff)

    if not defined.any():
        warnings.warn(
            f"EFDR calibration failed for {task} task. "
            f"Evidence probability threshold set equal to {FALLBACK_THRESHOLD}.",
            CalibrationWarning,
        )
        return ThresholdCalibration(
            optimal_threshold=FALLBACK_THRESHOLD,
            achieved_efdr=None,
            achieved_efnr=None,
            threshold_grid=thresh_grid,
            efdr_grid=efdr_grid,
            efnr_grid=efnr_grid,
        )

    closest = np.flatnonzero(defined & (abs_diff == np.min(abs_diff[defined])))
    efnr_closest = efnr_grid[closest]
    if np.isfinite(efnr_closest).any():
        closest = closest[efnr_closest == np.nanmin(efnr_closest)]
    optimal = int(closest[(len(closest) - 1) // 2])

    if thresh_grid[optimal] > evidence_thresh:
        achieved = efdr_grid[optimal]
        if abs(achieved - efdr) > EFDR_TOLERANCE:
            warnings.warn(
                f"For {task} task: not possible to find evidence probability threshold "
                f"(>{grid.start}) that achieves desired EFDR level (tolerance +- {EFDR_TOLERANCE}). "
                "Output based on the closest possible value.",
                CalibrationWarning,
            )
        logger.debug(f"{task}: threshold {thresh_grid[optimal]:.5f}, EFDR {achieved:.4f}")
        return ThresholdCalibration(
            optimal_threshold=float(thresh_grid[optimal]),
            achieved_efdr=_as_optional(achieved),
            achieved_efnr=_as_optional(efnr_grid[optimal]),
            threshold_grid=thresh_grid,
            efdr_grid=efdr_grid,
            efnr_grid=efnr_grid,
        )

    name = "evidence_thresh" + (f"_{suffix}" if suffix else "")
    warnings.warn(
        f"For {task} task: evidence probability threshold chosen via EFDR calibration is too low. "
        f"Probability threshold set automatically equal to '{name}'.",
        CalibrationWarning,
    )
    fixed = _fixed_threshold(evidence_thresh, prob)
    return ThresholdCalibration(
        optimal_threshold=fixed.optimal_threshold,
        achieved_efdr=fixed.achieved_efdr,
        achieved_efnr=fixed.achieved_efnr,
        threshold_grid=thresh_grid,
        efdr_grid=efdr_grid,
        efnr_grid=efnr_grid,
    )
