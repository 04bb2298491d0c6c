"""
Beta-Binomial parametrizations.

The Beta-Binomial can be written in terms of its shape parameters
(alpha, beta) or in terms of a mean proportion and an overdispersion:

    mu    = alpha / (alpha + beta)
    gamma = 1 / (alpha + beta + 1)

gamma -> 0 recovers the Binomial model, gamma -> 1 is maximal
overdispersion. The two are related one-to-one for mu, gamma in (0, 1).

Classes
-------
ShapeParameters
    (alpha, beta) parametrization.
CanonicalParameters
    (mu, gamma) parametrization.
"""
from __future__ import annotations

from dataclasses import dataclass

import numpy as np

from .errors import DomainError


@dataclass(frozen=True)
class ShapeParameters:
    """Shape parameters of the Beta prior on the success probability."""
    alpha: float
    beta: float

    def as_array(self) -> np.ndarray:
        return np.array([self.alpha, self.beta], dtype=float)

    def is_valid(self) -> bool:
        return bool(self.alpha > 0 and self.beta > 0)

    def to_canonical(self) -> "CanonicalParameters":
        """Map to (mu, gamma).

        Raises
        ------
        DomainError
            If either shape parameter is not strictly positive.
        """
        if not self.is_valid():
            raise DomainError(
                f"Shape parameters must be positive, got alpha={self.alpha}, beta={self.beta}."
            )
        total = self.alpha + self.beta
        return CanonicalParameters(mu=self.alpha / total, gamma=1.0 / (total + 1.0))

    @classmethod
    def from_array(cls, w) -> "ShapeParameters":
        w = np.asarray(w, dtype=float).ravel()
        if w.size != 2:
            raise DomainError(f"Expected two shape parameters, got {w.size}.")
        return cls(alpha=float(w[0]), beta=float(w[1]))


@dataclass(frozen=True)
class CanonicalParameters:
    """Mean proportion ``mu`` and overdispersion ``gamma``."""
    mu: float
    gamma: float

    def to_shape(self) -> ShapeParameters:
        """Map to (alpha, beta).

        The Binomial limit gamma = 0 has no finite shape parameters and is
        rejected, as is anything outside the open unit square.
        """
        if not (0.0 < self.mu < 1.0 and 0.0 < self.gamma < 1.0):
            raise DomainError(
                f"mu and gamma must lie in (0, 1), got mu={self.mu}, gamma={self.gamma}."
            )
        total = 1.0 / self.gamma - 1.0
        alpha = self.mu * total
        return ShapeParameters(alpha=alpha, beta=total - alpha)
