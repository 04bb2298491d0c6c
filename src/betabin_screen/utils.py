from __future__ import annotations

import logging
from typing import Tuple, Union

import numpy as np
import pandas as pd

from .errors import ConfigurationError, DomainError

logger = logging.getLogger(__name__)

ArrayLike = Union[np.ndarray, pd.DataFrame, list, tuple]


def as_counts(x: ArrayLike, drop_empty: bool = False) -> Tuple[np.ndarray, np.ndarray]:
    """Split a (trials, successes) table into two float arrays.

    Parameters
    ----------
    x : array-like or pd.DataFrame
        Table of shape (n_samples, 2). The first column holds the total number
        of trials, the second the number of successes.
    drop_empty : bool, default False
        If True, rows with zero trials are removed (and logged).

    Returns
    -------
    n : np.ndarray
        Total trials per sample.
    k : np.ndarray
        Successes per sample.

    Raises
    ------
    ConfigurationError
        If the table does not have exactly two columns.
    DomainError
        If there are no samples, or counts are negative, or k > n.
    """
    if isinstance(x, pd.DataFrame):
        arr = x.to_numpy(dtype=float)
    else:
        arr = np.asarray(x, dtype=float)

    if arr.ndim != 2 or arr.shape[1] != 2:
        raise ConfigurationError(
            f"Expected a table with 2 columns (trials, successes), got shape {arr.shape}."
        )

    n = arr[:, 0]
    k = arr[:, 1]

    if not (np.isfinite(n).all() and np.isfinite(k).all()):
        raise DomainError("Counts must be finite.")
    if np.any(n < 0) or np.any(k < 0):
        raise DomainError("Counts must be non-negative.")
    if np.any(k > n):
        raise DomainError("Number of successes cannot exceed number of trials.")

    if drop_empty:
        empty = n == 0
        if empty.any():
            logger.warning(f"Dropping {int(empty.sum())} samples with zero trials")
            n = n[~empty]
            k = k[~empty]

    if n.size == 0:
        raise DomainError("No samples with observed trials.")

    return n, k


def as_vector(values, name: str) -> np.ndarray:
    """Coerce to a non-empty 1-D float array."""
    arr = np.asarray(values, dtype=float).ravel()
    if arr.size == 0:
        raise ConfigurationError(f"'{name}' is empty.")
    return arr


def check_same_length(**arrays) -> int:
    """Return the common length of the given arrays, raising on mismatch."""
    lengths = {name: len(arr) for name, arr in arrays.items()}
    if len(set(lengths.values())) > 1:
        raise ConfigurationError(f"Length mismatch between inputs: {lengths}")
    return next(iter(lengths.values()))
