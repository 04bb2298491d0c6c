"""
Newton-Raphson search for the Beta-Binomial shape parameters.

Classes
-------
ConvergenceCode
    Outcome of a Newton run.
NewtonResult
    Final iterate and outcome.

Functions
---------
bb_newton
    Damped Newton iteration on the Beta-Binomial log-likelihood.
inverse_2x2
    Closed-form inverse of a 2x2 matrix with a regularized fallback.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import IntEnum
from typing import Optional

import numpy as np

from .config import DEFAULT_NEWTON, NewtonConfig
from .likelihood import bb_gradient, bb_hessian

logger = logging.getLogger(__name__)


class ConvergenceCode(IntEnum):
    CONVERGED = 0
    #: Iteration budget used up; the run may be resumed from its last iterate.
    NOT_CONVERGED = 1
    DIVERGED = 10


@dataclass(frozen=True)
class NewtonResult:
    w: np.ndarray
    conv: ConvergenceCode
    n_iter: int

    @property
    def converged(self) -> bool:
        return self.conv == ConvergenceCode.CONVERGED


def inverse_2x2(h: np.ndarray, ridge: float = 1e-8) -> np.ndarray:
    """Invert a 2x2 matrix.

    Uses the closed-form adjugate formula. When the matrix is singular or
    badly conditioned, falls back to the Tikhonov-regularized pseudo-inverse
    (H^T H + lambda I)^{-1} H^T, which tends to the Moore-Penrose inverse as
    lambda -> 0.

    Parameters
    ----------
    h : np.ndarray
        Matrix of shape (2, 2).
    ridge : float
        Relative size of the Tikhonov term.

    Returns
    -------
    np.ndarray
        Approximate inverse, shape (2, 2).
    """
    h = np.asarray(h, dtype=float)
    a, b = h[0, 0], h[0, 1]
    c, d = h[1, 0], h[1, 1]
    det = a * d - b * c
    scale = max(abs(a), abs(b), abs(c), abs(d))

    if np.isfinite(det) and scale > 0 and abs(det) > 1e-12 * scale ** 2:
        return np.array([[d, -b], [-c, a]]) / det

    if not np.isfinite(scale) or scale == 0:
        return np.zeros((2, 2))

    lam = ridge * scale ** 2
    m = h.T @ h + lam * np.eye(2)
    m_det = m[0, 0] * m[1, 1] - m[0, 1] * m[1, 0]
    m_inv = np.array([[m[1, 1], -m[0, 1]], [-m[1, 0], m[0, 0]]]) / m_det
    return m_inv @ h.T


def bb_newton(
    x,
    w=(0.1, 0.1),
    config: Optional[NewtonConfig] = None,
) -> NewtonResult:
    """Newton's method for maximizing the Beta-Binomial likelihood.

    Each step updates ``w <- w - step_size * H^{-1} g`` where ``g`` and ``H``
    are the gradient and Hessian of the log-likelihood at the current point.

    Parameters
    ----------
    x : array-like
        Table of (trials, successes), shape (n_samples, 2).
    w : array-like
        Starting values of (alpha, beta).
    config : NewtonConfig, optional
        Step size, iteration budget and stopping rules. Defaults to
        ``NewtonConfig()``.

    Returns
    -------
    NewtonResult
        Last iterate and one of:
        - CONVERGED: sum of squared parameter changes fell below epsilon.
        - DIVERGED: a parameter exceeded the divergence bound, dropped to
          zero or below, or became non-finite.
        - NOT_CONVERGED: ``max_iter`` steps without either event.

    Notes
    -----
    A run stops at the first non-positive iterate, so the Hessian is never
    evaluated outside alpha, beta > 0. Converged points may still lie below
    the caller's feasibility threshold.
    """
    if config is None:
        config = DEFAULT_NEWTON

    w_prev = np.asarray(w, dtype=float).ravel().copy()
    w_cur = w_prev
    conv = ConvergenceCode.NOT_CONVERGED
    n_iter = 0

    with np.errstate(all="ignore"):
        for n_iter in range(1, config.max_iter + 1):
            g = bb_gradient(w_prev, x)
            H = bb_hessian(w_prev, x)
            w_cur = w_prev - config.step_size * (inverse_2x2(H, ridge=config.ridge) @ g)

            # iterates must stay in alpha, beta > 0
            if (
                not np.all(np.isfinite(w_cur))
                or np.any(w_cur <= 0)
                or np.any(np.abs(w_cur) > config.divergence_bound)
            ):
                conv = ConvergenceCode.DIVERGED
                break
            if np.sum((w_cur - w_prev) ** 2) < config.epsilon:
                conv = ConvergenceCode.CONVERGED
                break
            w_prev = w_cur

    logger.debug(f"Newton from {np.asarray(w, dtype=float)}: {conv.name} after {n_iter} iterations at {w_cur}")
    return NewtonResult(w=np.asarray(w_cur, dtype=float), conv=conv, n_iter=n_iter)
