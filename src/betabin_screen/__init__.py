"""
betabin-screen: Beta-Binomial overdispersion estimation and EFDR-calibrated calls.

This package fits Beta-Binomial models to paired (trials, successes) counts by
maximum likelihood, tests for overdispersion against the Binomial, and turns
posterior evidence probabilities into differential calls at a target expected
false discovery rate.

Modules
-------
params
    Shape (alpha, beta) and canonical (mu, gamma) parameterizations.
moments
    Method-of-moments estimates of the shape parameters.
likelihood
    Beta-Binomial log-likelihood, gradient and Hessian.
newton
    Newton-Raphson optimizer with divergence detection.
bb_mle
    Full maximum likelihood fit with restarts, test statistics and batch fits.
efdr
    EFDR/EFNR evaluation and evidence threshold calibration.
posterior
    Posterior draw containers and tail probabilities.
differential
    Differential calls between two groups.
config
    Optimizer and threshold-grid settings.
errors
    Exceptions and warning categories.

Example
-------
>>> import betabin_screen as bbs
>>> x = bbs.simulate_bb_data(n_samples=300, alpha=2.0, beta=5.0, seed=1)
>>> res = bbs.fit_bb_mle(x, rng=0)
>>> res.is_conv
True
"""

__version__ = "0.1.0"

# bb_mle
from .bb_mle import (
    FIT_RESULT_COLUMNS,
    BBMLEResult,
    BetaBinomialGLM,
    fit_bb_mle,
    fit_bb_mle_features,
    simulate_bb_data,
    tarone_z,
)

# config
from .config import (
    EvidenceGrid,
    NewtonConfig,
)

# differential
from .differential import (
    DifferentialResult,
    classify_differential,
    differential_test,
)

# efdr
from .efdr import (
    ThresholdCalibration,
    calibrate_threshold,
    eval_efdr,
    eval_efnr,
)

# errors
from .errors import (
    CalibrationWarning,
    ConfigurationError,
    ConvergenceWarning,
    DomainError,
)

# likelihood
from .likelihood import (
    bb_gradient,
    bb_hessian,
    bb_log_likelihood,
    binomial_log_likelihood,
)

# moments
from .moments import bb_moments

# newton
from .newton import (
    ConvergenceCode,
    NewtonResult,
    bb_newton,
    inverse_2x2,
)

# params
from .params import (
    CanonicalParameters,
    ShapeParameters,
)

# posterior
from .posterior import (
    FitMode,
    PosteriorFit,
    compute_log_odds_ratio,
    compute_odds_ratio,
    fix_outliers,
    tail_prob,
)

__all__ = [
    # bb_mle
    "FIT_RESULT_COLUMNS",
    "BBMLEResult",
    "BetaBinomialGLM",
    "fit_bb_mle",
    "fit_bb_mle_features",
    "simulate_bb_data",
    "tarone_z",
    # config
    "EvidenceGrid",
    "NewtonConfig",
    # differential
    "DifferentialResult",
    "classify_differential",
    "differential_test",
    # efdr
    "ThresholdCalibration",
    "calibrate_threshold",
    "eval_efdr",
    "eval_efnr",
    # errors
    "CalibrationWarning",
    "ConfigurationError",
    "ConvergenceWarning",
    "DomainError",
    # likelihood
    "bb_gradient",
    "bb_hessian",
    "bb_log_likelihood",
    "binomial_log_likelihood",
    # moments
    "bb_moments",
    # newton
    "ConvergenceCode",
    "NewtonResult",
    "bb_newton",
    "inverse_2x2",
    # params
    "CanonicalParameters",
    "ShapeParameters",
    # posterior
    "FitMode",
    "PosteriorFit",
    "compute_log_odds_ratio",
    "compute_odds_ratio",
    "fix_outliers",
    "tail_prob",
]
