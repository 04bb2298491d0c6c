"""
Tuning constants for the optimizer and the threshold search.

Classes
-------
NewtonConfig
    Step size, iteration budget and stopping rules for Newton's method.
EvidenceGrid
    Grid of candidate posterior evidence thresholds for EFDR calibration.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Tuple

import numpy as np


@dataclass(frozen=True)
class NewtonConfig:
    #: Relaxation factor in (0, 1]; 1 is the plain Newton step.
    step_size: float = 1.0
    max_iter: int = 100
    #: Stop when the sum of squared parameter changes drops below this.
    epsilon: float = 1e-5
    #: Any parameter above this bound is treated as divergence.
    divergence_bound: float = 2e7
    #: Tikhonov term used when the Hessian cannot be inverted directly.
    ridge: float = 1e-8

    def __post_init__(self):
        if not 0.0 < self.step_size <= 1.0:
            raise ValueError(f"step_size must be in (0, 1], got {self.step_size}.")
        if self.max_iter < 1:
            raise ValueError(f"max_iter must be positive, got {self.max_iter}.")


@dataclass(frozen=True)
class EvidenceGrid:
    start: float = 0.6
    stop: float = 0.9995
    step: float = 0.00025

    def values(self) -> np.ndarray:
        """Grid points from ``start`` to ``stop`` inclusive."""
        n_points = int(round((self.stop - self.start) / self.step)) + 1
        return np.linspace(self.start, self.stop, n_points)


DEFAULT_NEWTON = NewtonConfig()
DEFAULT_GRID = EvidenceGrid()

# Offsets added to both coordinates of the starting point for restarts
START_OFFSETS: Tuple[float, ...] = (0.5, -0.5, 1.0, -1.0)
# Fixed (alpha, beta) restarts tried after the perturbed ones
DEFAULT_ANCHORS: Tuple[Tuple[float, float], ...] = (
    (0.1, 0.1),
    (0.5, 0.5),
    (1.0, 1.0),
    (3.0, 3.0),
    (4.0, 4.0),
)
JITTER_SD = 0.1
MIN_START = 1e-3

# Caps applied to the batch (GLM) estimates of mu and gamma
MAX_PROPORTION = 1 - 1e-3
# Batch fits that stop early are accepted if the mean score is this small
GLM_GRADIENT_TOL = 1e-3

FALLBACK_THRESHOLD = 0.9
EFDR_TOLERANCE = 0.025
