"""
Beta-Binomial likelihood with analytic derivatives.

All functions take the shape parameters ``w = (alpha, beta)`` and a
(trials, successes) table ``x`` and optionally return the negated quantity
(for minimization).

Functions
---------
bb_log_likelihood
    Log-likelihood of the Beta-Binomial.
bb_gradient
    Gradient of the log-likelihood w.r.t. (alpha, beta).
bb_hessian
    Hessian of the log-likelihood w.r.t. (alpha, beta).
binomial_log_likelihood
    Log-likelihood of the Binomial with a common success probability.
"""
from __future__ import annotations

import numpy as np
from scipy.special import digamma, polygamma
from scipy.stats import betabinom, binom

from .errors import DomainError
from .params import ShapeParameters
from .utils import as_counts


def _shape_vector(w) -> np.ndarray:
    if isinstance(w, ShapeParameters):
        w = w.as_array()
    w = np.asarray(w, dtype=float).ravel()
    if w.size != 2:
        raise DomainError(f"Expected two shape parameters, got {w.size}.")
    return w


def bb_log_likelihood(w, x, negate: bool = False) -> float:
    """Beta-Binomial log-likelihood.

    Parameters
    ----------
    w : array-like or ShapeParameters
        (alpha, beta), both strictly positive.
    x : array-like
        Table of (trials, successes), shape (n_samples, 2).
    negate : bool, default False
        Return the negative log-likelihood instead.

    Returns
    -------
    float
        Sum over samples of log BetaBinom(k_i | n_i, alpha, beta).

    Raises
    ------
    DomainError
        If alpha <= 0 or beta <= 0.
    """
    w = _shape_vector(w)
    if not (w[0] > 0 and w[1] > 0):
        raise DomainError(f"Shape parameters must be positive, got alpha={w[0]}, beta={w[1]}.")
    n, k = as_counts(x)

    f = float(np.sum(betabinom.logpmf(k, n, w[0], w[1])))
    if negate:
        f = -f
    return f


def bb_gradient(w, x, negate: bool = False) -> np.ndarray:
    """Gradient of the Beta-Binomial log-likelihood.

    d/d alpha = n (psi(a+b) - psi(a)) + sum_i [psi(a + k_i) - psi(a + b + n_i)]
    d/d beta  = n (psi(a+b) - psi(b)) + sum_i [psi(b + n_i - k_i) - psi(a + b + n_i)]

    where psi is the digamma function and n the number of samples.
    """
    w = _shape_vector(w)
    N, K = as_counts(x)
    n = N.size
    ab_sum = w.sum()

    da = n * (digamma(ab_sum) - digamma(w[0])) + np.sum(digamma(w[0] + K) - digamma(ab_sum + N))
    db = n * (digamma(ab_sum) - digamma(w[1])) + np.sum(digamma(w[1] + N - K) - digamma(ab_sum + N))

    gr = np.array([da, db], dtype=float)
    if negate:
        gr = -gr
    return gr


def bb_hessian(w, x, negate: bool = False) -> np.ndarray:
    """Hessian of the Beta-Binomial log-likelihood.

    Built from trigamma terms; the matrix is symmetric, with the mixed
    derivative n psi'(a+b) - sum_i psi'(a + b + n_i) off the diagonal.
    """
    w = _shape_vector(w)
    N, K = as_counts(x)
    n = N.size
    ab_sum = w.sum()

    trigamma_sum = polygamma(1, ab_sum)
    trigamma_total = polygamma(1, ab_sum + N)

    dada = n * (trigamma_sum - polygamma(1, w[0])) + np.sum(polygamma(1, w[0] + K) - trigamma_total)
    dadb = n * trigamma_sum - np.sum(trigamma_total)
    dbdb = n * (trigamma_sum - polygamma(1, w[1])) + np.sum(polygamma(1, w[1] + N - K) - trigamma_total)

    h = np.array([[dada, dadb], [dadb, dbdb]], dtype=float)
    if negate:
        h = -h
    return h


def binomial_log_likelihood(p: float, x) -> float:
    """Binomial log-likelihood with common success probability ``p``."""
    n, k = as_counts(x)
    return float(np.sum(binom.logpmf(k, n, p)))
