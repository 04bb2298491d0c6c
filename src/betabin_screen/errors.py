"""
Error and warning taxonomy.

Exceptions are raised for conditions the caller has to fix. Conditions the
library recovers from (optimizer failures, threshold calibration fallbacks)
are reported as warnings and annotated on the returned result.

Classes
-------
DomainError
    Invalid shape parameters or malformed count data.
ConfigurationError
    Mismatched inputs, empty inputs or wrong table layout.
ConvergenceWarning
    Beta-Binomial optimization failed and a fallback estimate was used.
CalibrationWarning
    EFDR calibration could not reach its target and a fallback was used.
"""
from __future__ import annotations


class DomainError(ValueError):
    """Raised when parameters or counts fall outside the model's domain."""
    pass


class ConfigurationError(ValueError):
    """Raised when inputs are inconsistent with each other or empty."""
    pass


class ConvergenceWarning(RuntimeWarning):
    """Issued when the maximum likelihood search falls back to moments."""
    pass


class CalibrationWarning(UserWarning):
    """Issued when the evidence threshold could not be calibrated as asked."""
    pass
