"""
Method-of-moments estimates for the Beta-Binomial.

Used to initialize the maximum likelihood search and as the fallback when
that search fails. See
https://en.wikipedia.org/wiki/Beta-binomial_distribution#Method_of_moments
"""
from __future__ import annotations

import numpy as np

from .errors import DomainError
from .params import ShapeParameters


def bb_moments(n: np.ndarray, k: np.ndarray) -> ShapeParameters:
    """Method-of-moments estimate of the Beta-Binomial shape parameters.

    Uses the first two raw moments of the successes and the average number
    of trials:

        m1 = mean(k), m2 = mean(k^2), N = mean(n)
        alpha = (N m1 - m2) / (N (m2/m1 - m1 - 1) + m1)
        beta  = (N - m1) (N - m2/m1) / (N (m2/m1 - m1 - 1) + m1)

    Parameters
    ----------
    n : np.ndarray
        Total trials per sample.
    k : np.ndarray
        Successes per sample.

    Returns
    -------
    ShapeParameters
        Estimates of (alpha, beta). These are *not* guaranteed positive:
        under-dispersed data or widely varying ``n`` can give zero or
        negative values, which the caller has to handle.

    Raises
    ------
    DomainError
        If there are no successes at all (m1 = 0), where the estimator is
        undefined.

    Examples
    --------
    >>> w = bb_moments(np.array([10, 10, 10]), np.array([2, 5, 8]))
    >>> round(w.alpha, 3), round(w.beta, 3)
    (2.714, 2.714)
    """
    n = np.asarray(n, dtype=float)
    k = np.asarray(k, dtype=float)

    m1 = np.mean(k)
    if m1 == 0:
        raise DomainError("Method of moments is undefined when there are no successes.")
    m2 = np.mean(k ** 2)
    N = np.mean(n)

    with np.errstate(divide="ignore", invalid="ignore"):
        denom = N * (m2 / m1 - m1 - 1) + m1
        a = (N * m1 - m2) / denom
        b = (N - m1) * (N - m2 / m1) / denom

    return ShapeParameters(alpha=float(a), beta=float(b))
