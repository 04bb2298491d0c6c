"""
Beta-Binomial maximum likelihood estimation (BB MLE).

For a single feature observed in many samples, each sample i contributes a
number of trials n_i and successes k_i. The Beta-Binomial model

    k_i | p_i ~ Binomial(n_i, p_i)
    p_i       ~ Beta(alpha, beta)

captures variability in p_i across samples beyond Binomial sampling noise.
The overdispersion gamma = 1 / (alpha + beta + 1) is the quantity of
interest: gamma = 0 is the Binomial model.

The fit first tries a batch likelihood optimization on the (logit mu,
logit gamma) scale (statsmodels). If that fails it runs Newton's method on
(alpha, beta) from several starting points around the method-of-moments
estimate, and if that fails too it falls back to the moments themselves.
Alongside the estimates the fit reports a likelihood ratio test against the
Binomial, BIC for both models, and Tarone's (1979) Z score for
overdispersion.

Classes
-------
BBMLEResult
    Container for a single fit.
BetaBinomialGLM
    Intercept-only Beta-Binomial likelihood model for statsmodels.

Functions
---------
fit_bb_mle
    Fit one (trials, successes) table.
fit_bb_mle_features
    Fit every feature of a long-format DataFrame.
tarone_z
    Tarone's score statistic for overdispersion.
simulate_bb_data
    Generate synthetic (trials, successes) data.
"""
from __future__ import annotations

import logging
import warnings
from dataclasses import asdict, dataclass, fields
from multiprocessing import Pool, cpu_count
from typing import Dict, Optional, Tuple, Union

import numpy as np
import pandas as pd
from scipy import stats
from scipy.special import expit, logit
from scipy.stats import betabinom
from statsmodels.base.model import GenericLikelihoodModel

from .config import (
    DEFAULT_ANCHORS,
    DEFAULT_NEWTON,
    GLM_GRADIENT_TOL,
    JITTER_SD,
    MAX_PROPORTION,
    MIN_START,
    START_OFFSETS,
    NewtonConfig,
)
from .errors import ConfigurationError, ConvergenceWarning, DomainError
from .likelihood import bb_log_likelihood, binomial_log_likelihood
from .moments import bb_moments
from .newton import ConvergenceCode, bb_newton
from .params import CanonicalParameters, ShapeParameters
from .utils import as_counts

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BBMLEResult:
    """Beta-Binomial fit for one feature.

    Attributes
    ----------
    gamma : float
        Overdispersion 1 / (alpha + beta + 1). Set to 0 when the Binomial
        fits at least as well (lrt < 0) or the data are effectively Binomial.
    mu : float
        Mean success probability.
    alpha, beta : float
        Shape parameters; both 0 when the Beta-Binomial was not fitted.
    is_conv : bool
        Whether the maximum likelihood search converged.
    lrt : float
        Likelihood ratio statistic -2 (bin_ll - bb_ll).
    chi2_test : float
        p-value of ``lrt`` under a chi-squared with one degree of freedom.
    Z_score : float
        Tarone's Z statistic.
    z_test : float
        Two-sided normal p-value of ``Z_score``.
    bb_ll, BIC_bb : float
        Beta-Binomial log-likelihood and BIC.
    bin_ll, BIC_bin : float
        Binomial log-likelihood and BIC.
    """
    gamma: float
    mu: float
    alpha: float
    beta: float
    is_conv: bool
    lrt: float
    chi2_test: float
    Z_score: float
    z_test: float
    bb_ll: float
    BIC_bb: float
    bin_ll: float
    BIC_bin: float

    @property
    def shape(self) -> ShapeParameters:
        return ShapeParameters(alpha=self.alpha, beta=self.beta)

    @property
    def canonical(self) -> CanonicalParameters:
        return CanonicalParameters(mu=self.mu, gamma=self.gamma)

    def to_dict(self) -> Dict[str, float]:
        """Flat row, e.g. for building a DataFrame of many fits."""
        return asdict(self)


FIT_RESULT_COLUMNS = [f.name for f in fields(BBMLEResult)]


class BetaBinomialGLM(GenericLikelihoodModel):
    """Intercept-only Beta-Binomial model on the (logit mu, logit gamma) scale.

    Parameters
    ----------
    successes, trials : array-like
        Per-sample counts.
    min_gamma : float
        Lower bound on gamma while optimizing. Keeps alpha + beta small enough
        for the log-likelihood to be evaluated accurately.
    """

    def __init__(self, successes, trials, min_gamma: float = 1e-7, **kwds):
        self.trials = np.asarray(trials, dtype=float)
        self.min_gamma = float(min_gamma)
        successes = np.asarray(successes, dtype=float)
        exog = np.ones((successes.size, 1))
        super().__init__(successes, exog, extra_params_names=["logit_gamma"], **kwds)

    def nloglikeobs(self, params):
        mu = np.clip(expit(params[0]), 1 - MAX_PROPORTION, MAX_PROPORTION)
        gamma = np.clip(expit(params[1]), self.min_gamma, MAX_PROPORTION)
        total = 1.0 / gamma - 1.0
        return -betabinom.logpmf(self.endog, self.trials, mu * total, (1 - mu) * total)


def _fit_bb_glm(
    n: np.ndarray,
    k: np.ndarray,
    w0: np.ndarray,
    min_gamma: float,
) -> Optional[Tuple[float, float, float, float]]:
    """Batch fit; returns (mu, gamma, alpha, beta) or None on failure."""
    start = ShapeParameters.from_array(w0).to_canonical()
    start_params = np.array([
        logit(np.clip(start.mu, 1 - MAX_PROPORTION, MAX_PROPORTION)),
        logit(np.clip(start.gamma, min_gamma, MAX_PROPORTION)),
    ])

    try:
        with warnings.catch_warnings():
            warnings.simplefilter("ignore")
            res = BetaBinomialGLM(k, n, min_gamma=min_gamma).fit(
                start_params=start_params,
                method="bfgs",
                maxiter=500,
                disp=0,
                skip_hessian=True,
            )
    except (ValueError, FloatingPointError, np.linalg.LinAlgError) as e:
        logger.debug(f"Batch Beta-Binomial fit raised: {e}")
        return None

    params = np.asarray(res.params, dtype=float)
    if not np.all(np.isfinite(params)):
        return None
    if not res.mle_retvals.get("converged", False):
        # BFGS reports precision loss when the optimum sits on the gamma floor
        gopt = np.asarray(res.mle_retvals.get("gopt", np.nan), dtype=float)
        if not (np.all(np.isfinite(gopt)) and np.max(np.abs(gopt)) < GLM_GRADIENT_TOL):
            return None
        logger.debug(f"Batch fit stopped early with score {gopt}; accepted")

    mu = float(np.clip(expit(params[0]), 1 - MAX_PROPORTION, MAX_PROPORTION))
    gamma = float(np.clip(expit(params[1]), min_gamma, MAX_PROPORTION))
    shape = CanonicalParameters(mu=mu, gamma=gamma).to_shape()
    return mu, gamma, shape.alpha, shape.beta


def _restart_candidates(w: np.ndarray, rng: np.random.Generator) -> Tuple[Tuple[float, float], ...]:
    """Starting points for Newton's method, in the order they are tried.

    The initial estimate itself, then the estimate shifted along the diagonal
    by each of START_OFFSETS plus one shared N(0, JITTER_SD) jitter (floored
    at MIN_START), then the fixed anchors.
    """
    w = np.asarray(w, dtype=float)
    jitter = rng.normal(0.0, JITTER_SD)
    offsets = np.array([[d, d] for d in START_OFFSETS])
    perturbed = np.maximum(offsets + w + jitter, MIN_START)

    rows = [w] + list(perturbed) + [np.asarray(a, dtype=float) for a in DEFAULT_ANCHORS]
    return tuple((float(r[0]), float(r[1])) for r in rows)


def _multistart_newton(
    x: np.ndarray,
    candidates: Tuple[Tuple[float, float], ...],
    n_starts: int,
    lower_thresh: float,
    config: NewtonConfig,
) -> Optional[np.ndarray]:
    """Run Newton's method from several starts; return the best feasible optimum."""
    best_w = None
    best_ll = -np.inf
    resume_from = None

    for i in range(min(len(candidates), n_starts)):
        start = candidates[i] if resume_from is None else resume_from
        resume_from = None

        fit = bb_newton(x, start, config=config)

        if fit.conv == ConvergenceCode.DIVERGED:
            warnings.warn(
                "Newton's method not converging. Trying again with different initial values.",
                ConvergenceWarning,
            )
            continue
        if fit.conv == ConvergenceCode.NOT_CONVERGED:
            # Next attempt picks up where this one stopped
            resume_from = tuple(fit.w)
            continue
        if np.any(fit.w < lower_thresh):
            logger.debug(f"Start {i}: converged to infeasible point {fit.w}")
            continue

        est_ll = bb_log_likelihood(fit.w, x)
        if est_ll > best_ll:
            best_w = fit.w
            best_ll = est_ll

    return best_w


def tarone_z(n: np.ndarray, k: np.ndarray) -> Tuple[float, float]:
    """Tarone's (1979) score test for overdispersion against the Binomial.

    Parameters
    ----------
    n, k : np.ndarray
        Trials and successes per sample.

    Returns
    -------
    Z_score : float
        (S - sum n_i) / sqrt(2 sum n_i (n_i - 1)), where
        S = sum (k_i - n_i p)^2 / (p (1 - p)) and p = sum k / sum n.
        Approximately standard normal under the Binomial model.
    z_test : float
        Two-sided p-value.

    Notes
    -----
    NaN when p is 0 or 1, or when every sample has a single trial.
    """
    n = np.asarray(n, dtype=float)
    k = np.asarray(k, dtype=float)

    with np.errstate(divide="ignore", invalid="ignore"):
        p_hat = np.sum(k) / np.sum(n)
        S = np.sum((k - n * p_hat) ** 2 / (p_hat * (1 - p_hat)))
        Z_score = (S - np.sum(n)) / np.sqrt(2 * np.sum(n * (n - 1)))

    z_test = 2 * stats.norm.sf(np.abs(Z_score))
    return float(Z_score), float(z_test)


def fit_bb_mle(
    x,
    w=None,
    n_starts: int = 10,
    lower_thresh: float = 1e-3,
    use_glm: bool = True,
    rng: Optional[Union[np.random.Generator, int]] = None,
    newton_config: Optional[NewtonConfig] = None,
) -> BBMLEResult:
    """Maximum likelihood fit of the Beta-Binomial.

    Parameters
    ----------
    x : array-like or pd.DataFrame
        Table of shape (n_samples, 2): total trials, then successes. Samples
        with zero trials are dropped.
    w : array-like or ShapeParameters, optional
        Initial (alpha, beta). If None, the method of moments is used.
    n_starts : int, default 10
        Maximum number of Newton restarts.
    lower_thresh : float, default 1e-3
        Mean proportions within this distance of 0 or 1 are treated as
        Binomial; shape parameters below it are treated as infeasible.
    use_glm : bool, default True
        Try the batch likelihood fit before Newton's method.
    rng : np.random.Generator or int, optional
        Source of the restart jitter. Pass a seed for reproducible fits.
    newton_config : NewtonConfig, optional
        Settings for Newton's method.

    Returns
    -------
    BBMLEResult
        Estimates and test statistics. Non-convergence is reported through
        ``is_conv`` and a ConvergenceWarning, never raised.

    Raises
    ------
    DomainError
        If there are no usable samples or counts are malformed.
    ConfigurationError
        If ``x`` does not have two columns.

    Examples
    --------
    >>> x = simulate_bb_data(n_samples=200, alpha=2.0, beta=5.0, seed=1)
    >>> fit = fit_bb_mle(x, rng=0)
    >>> fit.is_conv
    True
    """
    n, k = as_counts(x, drop_empty=True)
    x = np.column_stack([n, k])
    rng = np.random.default_rng(rng)
    if newton_config is None:
        newton_config = DEFAULT_NEWTON

    is_binomial = False
    is_conv = False
    gamma = a = b = 0.0
    mu = float(np.mean(k / n))

    # Proportions at ~0 or ~1 carry no information about overdispersion
    if mu < lower_thresh:
        mu = lower_thresh
        is_binomial = True
    elif mu > 1 - lower_thresh:
        mu = 1 - lower_thresh
        is_binomial = True
    else:
        if w is None:
            w0 = bb_moments(n, k).as_array()
            bad = ~np.isfinite(w0) | (w0 < lower_thresh)
            if bad.any():
                # Under-dispersion or very uneven n_i; moments are unreliable
                w0[bad] = lower_thresh
            else:
                mu = float(w0[0] / w0.sum())
        else:
            if isinstance(w, ShapeParameters):
                w = w.as_array()
            w0 = np.asarray(w, dtype=float).ravel().copy()
            if w0.size != 2:
                raise DomainError(f"Expected two initial shape parameters, got {w0.size}.")
            w0[~np.isfinite(w0) | (w0 < lower_thresh)] = lower_thresh

    if not is_binomial:
        glm_fit = None
        if use_glm:
            glm_fit = _fit_bb_glm(n, k, w0, min_gamma=1.0 / (newton_config.divergence_bound + 1.0))

        if glm_fit is not None:
            mu, gamma, a, b = glm_fit
            is_conv = True
        else:
            if use_glm:
                warnings.warn(
                    "Batch Beta-Binomial fit failed. Trying Newton's method with different initial values.",
                    ConvergenceWarning,
                )
            best_w = _multistart_newton(
                x,
                _restart_candidates(w0, rng),
                n_starts=n_starts,
                lower_thresh=lower_thresh,
                config=newton_config,
            )
            if best_w is not None:
                a, b = float(best_w[0]), float(best_w[1])
                mu = a / (a + b)
                gamma = 1.0 / (a + b + 1.0)
                is_conv = True

        if not is_conv:
            warnings.warn("Could not find MLE, using method of moments estimates.", ConvergenceWarning)
            w_mm = bb_moments(n, k).as_array()
            if np.any(~np.isfinite(w_mm) | (w_mm < lower_thresh)):
                is_binomial = True
            else:
                a, b = float(w_mm[0]), float(w_mm[1])
                mu = a / (a + b)
                gamma = 1.0 / (a + b + 1.0)

    n_obs = n.size
    bin_ll = binomial_log_likelihood(float(np.mean(k / n)), x)
    BIC_bin = -2 * bin_ll + np.log(n_obs)
    if is_binomial:
        # gamma = 0: the Beta-Binomial reduces to the Binomial
        bb_ll = bin_ll
    else:
        bb_ll = bb_log_likelihood((a, b), x)
    BIC_bb = -2 * bb_ll + np.log(n_obs) * 2

    lrt = -2 * (bin_ll - bb_ll)
    if lrt < 0:
        gamma = 0.0
    chi2_test = float(stats.chi2.sf(lrt, df=1))

    Z_score, z_test = tarone_z(n, k)

    return BBMLEResult(
        gamma=float(gamma),
        mu=float(mu),
        alpha=float(a),
        beta=float(b),
        is_conv=bool(is_conv),
        lrt=float(lrt),
        chi2_test=chi2_test,
        Z_score=Z_score,
        z_test=z_test,
        bb_ll=float(bb_ll),
        BIC_bb=float(BIC_bb),
        bin_ll=float(bin_ll),
        BIC_bin=float(BIC_bin),
    )


def _fit_feature(feature, x: np.ndarray, seed: np.random.SeedSequence, fit_kwargs: dict) -> dict:
    """Fit one feature; a module-level function so it can be sent to a Pool."""
    try:
        return fit_bb_mle(x, rng=np.random.default_rng(seed), **fit_kwargs).to_dict()
    except DomainError as e:
        logger.warning(f"{feature}: skipped ({e})")
        return {col: np.nan for col in FIT_RESULT_COLUMNS}


def fit_bb_mle_features(
    df: pd.DataFrame,
    feature_col: str = "Feature",
    trials_col: str = "total_reads",
    successes_col: str = "met_reads",
    n_jobs: int = 1,
    seed: Optional[int] = None,
    **fit_kwargs,
) -> pd.DataFrame:
    """Fit the Beta-Binomial separately to every feature.

    Parameters
    ----------
    df : pd.DataFrame
        Long format, one row per (feature, sample) with trial and success
        counts.
    feature_col, trials_col, successes_col : str
        Column names.
    n_jobs : int, default 1
        Number of worker processes; -1 uses all cores.
    seed : int, optional
        Seed for the restart jitter. Each feature gets its own independent
        stream, so results do not depend on ``n_jobs``.
    **fit_kwargs
        Passed on to :func:`fit_bb_mle`.

    Returns
    -------
    pd.DataFrame
        One row per feature (index ``feature_col``) with the fields of
        :class:`BBMLEResult` as columns. Features with malformed data get a
        row of NaN.

    Examples
    --------
    >>> res = fit_bb_mle_features(reads, n_jobs=4, seed=0)
    >>> res.sort_values("gamma", ascending=False).head()
    """
    missing = [c for c in (feature_col, trials_col, successes_col) if c not in df.columns]
    if missing:
        raise ConfigurationError(f"DataFrame missing columns: {missing}")
    if df.empty:
        raise ConfigurationError("DataFrame is empty.")

    features = []
    tables = []
    for name, group in df.groupby(feature_col, sort=False):
        features.append(name)
        tables.append(group[[trials_col, successes_col]].to_numpy(dtype=float))

    seeds = np.random.SeedSequence(seed).spawn(len(tables))
    arguments = [(f, t, s, fit_kwargs) for f, t, s in zip(features, tables, seeds)]

    logger.info(f"Fitting Beta-Binomial to {len(arguments)} features...")
    if n_jobs == -1:
        n_jobs = cpu_count()
    if n_jobs > 1:
        with Pool(processes=n_jobs) as pool:
            rows = pool.starmap(_fit_feature, arguments)
    else:
        rows = [_fit_feature(*args) for args in arguments]

    out = pd.DataFrame(rows, columns=FIT_RESULT_COLUMNS)
    out.index = pd.Index(features, name=feature_col)

    n_failed = int(out["mu"].isna().sum())
    n_unconverged = int(out["is_conv"].eq(False).sum())
    logger.info(f"Fitted {len(out)} features ({n_unconverged} not converged, {n_failed} skipped)")
    return out


def simulate_bb_data(
    n_samples: int = 200,
    alpha: float = 2.0,
    beta: float = 5.0,
    trials_low: int = 10,
    trials_high: int = 50,
    p: Optional[float] = None,
    seed: int = 42,
) -> np.ndarray:
    """Generate synthetic (trials, successes) data.

    Parameters
    ----------
    n_samples : int
        Number of samples (rows).
    alpha, beta : float
        Beta-Binomial shape parameters.
    trials_low, trials_high : int
        Trials per sample are drawn uniformly from [trials_low, trials_high].
    p : float, optional
        If given, simulate from a Binomial with this success probability
        instead (no overdispersion); ``alpha`` and ``beta`` are ignored.
    seed : int
        Random seed.

    Returns
    -------
    np.ndarray
        Integer array of shape (n_samples, 2): trials, successes.
    """
    rng = np.random.default_rng(seed)
    n = rng.integers(trials_low, trials_high + 1, size=n_samples)
    if p is None:
        probs = rng.beta(alpha, beta, size=n_samples)
    else:
        probs = np.full(n_samples, float(p))
    k = rng.binomial(n, probs)
    return np.column_stack([n, k])
