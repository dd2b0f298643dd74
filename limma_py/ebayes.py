"""
Empirical Bayes variance moderation and moderated t-statistics.

The residual variances of all genes are used to estimate a scaled
inverse-chi-square prior (prior degrees of freedom d0 and prior variance
s0^2). Each gene's variance is then shrunk toward the prior and tested with
a t-statistic on the combined degrees of freedom.

References:
    - Smyth GK (2004). Linear models and empirical Bayes methods for
      assessing differential expression in microarray experiments.
      Statistical Applications in Genetics and Molecular Biology 3:3
    - Phipson B, Lee S, Majewski IJ, Alexander WS, Smyth GK (2016).
      Robust hyperparameter estimation protects against hypervariable genes
      and improves power to detect differential expression.
      Annals of Applied Statistics 10:946-963
"""

import warnings
from dataclasses import dataclass

import numpy as np
from scipy.special import digamma, polygamma
from scipy.stats import rankdata
from scipy.stats import t as t_dist
from statsmodels.nonparametric.smoothers_lowess import lowess

from .exceptions import EmptyInputError

# smallest posterior variance, relative to the median positive residual variance
VARIANCE_FLOOR = 1e-12
# genes needed before an intensity trend is fitted to the variances
MIN_TREND_GENES = 10
# effective degrees of freedom used by the intensity trend
TREND_DF = 4
# relative spread of average expression below which no trend is fitted
COVARIATE_SPREAD_TOL = 1e-6


@dataclass(frozen=True)
class VariancePrior:
    """
    Hyperparameters of the prior on gene-wise variances.

    Attributes
    ----------
    df_prior : float
        Prior degrees of freedom d0. ``0`` means no shrinkage, ``inf``
        means complete pooling.
    var_prior : float or np.ndarray
        Prior variance s0^2. An array (one value per gene) when the prior
        follows an intensity trend.
    """

    df_prior: float
    var_prior: object

    @property
    def is_trended(self):
        return np.ndim(self.var_prior) > 0


@dataclass(frozen=True)
class ModeratedFit:
    """
    Moderated statistics for the tested coefficient.

    Attributes
    ----------
    gene_ids : np.ndarray
        Identifiers of the tested genes.
    log_fold_change : np.ndarray
        Estimated group effect per gene.
    ave_expr : np.ndarray
        Average expression per gene.
    s2_post : np.ndarray
        Posterior (shrunk) variances.
    df_total : np.ndarray
        Degrees of freedom of the moderated t-distribution.
    t : np.ndarray
        Moderated t-statistics.
    p_value : np.ndarray
        Two-sided p-values.
    lods : np.ndarray
        Log posterior odds of differential expression (B-statistic).
    prior : VariancePrior
        Prior used for the moderation.
    var_prior_coef : float
        Prior variance of the non-zero coefficients used for ``lods``.
    excluded : list
        Genes dropped before fitting.
    n_floored : int
        Number of genes whose posterior variance was raised to the floor.
    """

    gene_ids: np.ndarray
    log_fold_change: np.ndarray
    ave_expr: np.ndarray
    s2_post: np.ndarray
    df_total: np.ndarray
    t: np.ndarray
    p_value: np.ndarray
    lods: np.ndarray
    prior: VariancePrior
    var_prior_coef: float
    excluded: list
    n_floored: int = 0

    @property
    def n_genes(self):
        return self.t.shape[0]


def trigamma_inverse(x, tol=1e-8, max_iter=50):
    """
    Solve ``trigamma(y) = x`` for y.

    Newton iteration on ``1/trigamma(y)``, which is convex and nearly
    linear, started from ``y = 0.5 + 1/x``.

    Parameters
    ----------
    x : float or np.ndarray
        Positive target values.
    tol : float, default 1e-8
        Relative convergence tolerance.
    max_iter : int, default 50
        Maximum Newton iterations.

    Returns
    -------
    float or np.ndarray
        y with ``trigamma(y) ~= x``. ``inf`` for ``x == 0`` and NaN for
        negative input.
    """
    x = np.asarray(x, dtype=float)
    scalar = x.ndim == 0
    x = np.atleast_1d(x)
    y = np.full_like(x, np.nan)

    y[x == 0] = np.inf
    large = x > 1e7
    y[large] = 1.0 / np.sqrt(x[large])
    small = (x > 0) & (x < 1e-6)
    y[small] = 1.0 / x[small]

    todo = np.isfinite(x) & (x >= 1e-6) & (x <= 1e7)
    if todo.any():
        xt = x[todo]
        yt = 0.5 + 1.0 / xt
        for _ in range(max_iter):
            tri = polygamma(1, yt)
            dif = tri * (1.0 - tri / xt) / polygamma(2, yt)
            yt = yt + dif
            if np.max(-dif / yt) < tol:
                break
        else:
            warnings.warn("trigamma_inverse: iteration limit exceeded")
        y[todo] = yt

    return float(y[0]) if scalar else y


def fit_f_dist(sigma2, df, covariate=None, span=0.3):
    """
    Moment estimation of the scaled F-distribution of the sample variances.

    Assuming ``s2_g ~ s0^2 F(df, d0)``, the mean and variance of
    ``log(s2_g)`` are matched to their theoretical values:

        e    = log(s2) - digamma(df/2) + log(df/2)
        evar = var(e) - mean(trigamma(df/2))
        d0   = 2 * trigamma_inverse(evar)
        s0^2 = exp(mean(e) + digamma(d0/2) - log(d0/2))

    Parameters
    ----------
    sigma2 : np.ndarray
        Residual variances (one per gene).
    df : int or np.ndarray
        Residual degrees of freedom.
    covariate : np.ndarray, optional
        Average expression per gene. If given, the location of ``e`` follows
        a LOWESS trend in the covariate and s0^2 is returned per gene. A
        covariate with (nearly) no spread is ignored with a warning.
    span : float, default 0.3
        Fraction of genes used by each local fit of the trend.

    Returns
    -------
    d0 : float
        Prior degrees of freedom. ``inf`` when the variances are no more
        dispersed than sampling error alone explains; ``0`` when fewer than
        two usable variances are available.
    s0_sq : float or np.ndarray
        Prior variance. When ``d0`` is infinite and there is no covariate,
        this is the pooled mean variance.

    Raises
    ------
    EmptyInputError
        If ``sigma2`` is empty.
    """
    x = np.asarray(sigma2, dtype=float)
    n_genes = x.shape[0]
    if n_genes == 0:
        raise EmptyInputError("No variances supplied to fit_f_dist")
    df = np.broadcast_to(np.asarray(df, dtype=float), x.shape)

    ok = np.isfinite(x) & np.isfinite(df) & (df > 1e-15) & (x > -1e-15)
    n_ok = int(ok.sum())
    if n_ok < 2:
        warnings.warn("Fewer than two usable variances; prior degrees of freedom set to 0")
        s0 = float(x[ok][0]) if n_ok == 1 else 1.0
        return 0.0, s0

    x = np.maximum(x, 0.0)
    m = np.median(x[ok])
    if m == 0:
        warnings.warn("More than half of residual variances are exactly zero: "
                      "eBayes unreliable")
        m = 1.0
    x = np.maximum(x, 1e-5 * m)

    df_half = df / 2.0
    e = np.log(x) - digamma(df_half) + np.log(df_half)

    if covariate is not None:
        covariate = np.asarray(covariate, dtype=float)
        cov_ok = covariate[ok]
        if np.ptp(cov_ok) <= COVARIATE_SPREAD_TOL * max(1.0, np.max(np.abs(cov_ok))):
            warnings.warn("Average expression is nearly constant across genes; "
                          "fitting a constant prior variance instead of an intensity trend")
            covariate = None

    if covariate is None:
        emean = np.mean(e[ok])
        evar = np.sum((e[ok] - emean) ** 2) / (n_ok - 1)
    else:
        fitted = lowess(e[ok], covariate[ok], frac=span, it=0, return_sorted=True)
        emean = np.interp(covariate, fitted[:, 0], fitted[:, 1])
        resid = e[ok] - emean[ok]
        evar = np.sum(resid ** 2) / max(n_ok - TREND_DF, 1)

    evar = evar - np.mean(polygamma(1, df_half[ok]))

    if evar > 0:
        d0 = trigamma_inverse(evar) * 2.0
        s0_sq = np.exp(emean + digamma(d0 / 2.0) - np.log(d0 / 2.0))
    else:
        d0 = np.inf
        if covariate is None:
            s0_sq = np.mean(x[ok])
        else:
            s0_sq = np.exp(emean)

    if np.ndim(s0_sq) == 0:
        s0_sq = float(s0_sq)
    return float(d0), s0_sq


def estimate_variance_prior(fit, moderate=True, trend=False, prior_df_floor=0.0, span=0.3):
    """
    Estimate the variance prior from all genes of a linear fit.

    Parameters
    ----------
    fit : LinearFit
        Output of :func:`limma_py.lm_fit.lm_fit`.
    moderate : bool, default True
        If False, return a prior with zero degrees of freedom so that no
        shrinkage takes place.
    trend : bool, default False
        Let the prior variance depend on average expression.
    prior_df_floor : float, default 0.0
        Lower bound on the prior degrees of freedom.
    span : float, default 0.3
        LOWESS span for the intensity trend.

    Returns
    -------
    VariancePrior
    """
    if not moderate:
        return VariancePrior(df_prior=0.0, var_prior=float(np.mean(fit.sigma2)))

    covariate = None
    if trend:
        if fit.n_genes < MIN_TREND_GENES:
            warnings.warn(f"Only {fit.n_genes} genes; fitting a constant prior "
                          f"variance instead of an intensity trend")
        else:
            covariate = fit.amean

    d0, s0_sq = fit_f_dist(fit.sigma2, fit.df_residual, covariate=covariate, span=span)
    d0 = max(d0, prior_df_floor)

    return VariancePrior(df_prior=d0, var_prior=s0_sq)


def squeeze_var(sigma2, df, prior):
    """
    Shrink gene-wise variances toward the prior.

    Formula:
        s2_post = (d0 * s0^2 + df * s2) / (d0 + df)

    Parameters
    ----------
    sigma2 : np.ndarray
        Residual variances.
    df : int
        Residual degrees of freedom.
    prior : VariancePrior
        Prior from :func:`estimate_variance_prior`.

    Returns
    -------
    s2_post : np.ndarray
        Posterior variances. Equal to ``sigma2`` when ``d0 == 0`` and to
        ``s0^2`` when ``d0`` is infinite.
    df_total : np.ndarray
        ``d0 + df``, capped at the pooled residual degrees of freedom of all
        genes and floored at 1.
    """
    sigma2 = np.asarray(sigma2, dtype=float)
    n_genes = sigma2.shape[0]
    d0 = prior.df_prior
    s0_sq = np.broadcast_to(np.asarray(prior.var_prior, dtype=float), sigma2.shape)

    if d0 == 0:
        s2_post = sigma2.copy()
    elif np.isinf(d0):
        s2_post = s0_sq.copy()
    else:
        s2_post = (d0 * s0_sq + df * sigma2) / (d0 + df)

    df_pooled = float(df) * n_genes
    df_total = np.full(n_genes, min(d0 + df, df_pooled), dtype=float)
    df_total = np.maximum(df_total, 1.0)

    return s2_post, df_total


def _floor_variances(s2_post, sigma2):
    positive = sigma2[sigma2 > 0]
    floor = VARIANCE_FLOOR * (np.median(positive) if positive.size else 1.0)
    low = ~(s2_post >= floor)
    n_low = int(low.sum())
    if n_low:
        warnings.warn(f"{n_low} gene(s) have zero posterior variance; "
                      f"variance raised to {floor:.3g}")
        s2_post = np.where(low, floor, s2_post)
    return s2_post, n_low


def tmixture(tstat, stdev_unscaled, df, proportion, v0_lim=None):
    """
    Estimate the prior variance of the non-zero coefficients.

    Matches the largest ``proportion/2`` of absolute t-statistics to the
    quantiles of a mixture of central and scaled t-distributions.

    Returns
    -------
    float
        Estimated prior variance, or NaN if it cannot be estimated.
    """
    tstat = np.asarray(tstat, dtype=float)
    stdev_unscaled = np.broadcast_to(np.asarray(stdev_unscaled, dtype=float), tstat.shape)
    df = np.broadcast_to(np.asarray(df, dtype=float), tstat.shape)

    ok = np.isfinite(tstat)
    tstat, stdev_unscaled, df = tstat[ok], stdev_unscaled[ok], df[ok].copy()
    n_genes = tstat.shape[0]
    if n_genes < 2:
        return np.nan

    # put all statistics on the largest df
    max_df = df.max()
    lower = df < max_df
    if lower.any():
        tstat = tstat.copy()
        tstat[lower] = t_dist.ppf(t_dist.cdf(tstat[lower], df[lower]), max_df)
        df[lower] = max_df

    n_target = int(np.ceil(proportion / 2.0 * n_genes))
    if n_target < 1:
        return np.nan
    p = max(n_target / n_genes, proportion)

    tstat = np.abs(tstat)
    t_target = np.quantile(tstat, (n_genes - n_target) / (n_genes - 1))
    top = tstat >= t_target
    tstat = tstat[top]
    v1 = stdev_unscaled[top] ** 2
    df_top = df[top]

    r = n_target - rankdata(tstat) + 1
    p0 = t_dist.sf(tstat, df_top)
    p_target = ((r - 0.5) / 2.0 / n_genes - (1.0 - p) * p0) / p
    v0 = np.zeros(tstat.shape[0])
    pos = p_target > p0
    if pos.any():
        q_target = t_dist.isf(p_target[pos], df_top[pos])
        v0[pos] = v1[pos] * ((tstat[pos] / q_target) ** 2 - 1.0)
    if v0_lim is not None:
        v0 = np.clip(v0, v0_lim[0], v0_lim[1])
    return float(np.mean(v0))


def _log_odds(t, stdev_unscaled, df_total, prior, proportion,
              stdev_coef_lim=(0.1, 4.0)):
    s2_prior = float(np.median(np.atleast_1d(prior.var_prior)))
    if not s2_prior > 0:
        s2_prior = 1.0
    var_prior_lim = np.asarray(stdev_coef_lim, dtype=float) ** 2 / s2_prior

    var_prior = tmixture(t, stdev_unscaled, df_total, proportion, var_prior_lim)
    if not np.isfinite(var_prior):
        var_prior = 1.0 / s2_prior
        warnings.warn("Estimation of var.prior failed - set to default value")

    r = (stdev_unscaled ** 2 + var_prior) / stdev_unscaled ** 2
    t2 = t ** 2
    if prior.df_prior > 1e6:
        kernel = t2 * (1.0 - 1.0 / r) / 2.0
    else:
        kernel = (1.0 + df_total) / 2.0 * np.log((t2 + df_total) / (t2 / r + df_total))
    lods = np.log(proportion / (1.0 - proportion)) - np.log(r) / 2.0 + kernel
    return lods, var_prior


def e_bayes(fit, coef_index=1, moderate=True, trend=False, proportion=0.01,
            prior_df_floor=0.0, prior=None):
    """
    Compute moderated t-statistics for one coefficient of a linear fit.

    Parameters
    ----------
    fit : LinearFit
        Output of :func:`limma_py.lm_fit.lm_fit`.
    coef_index : int, default 1
        Column of the design to test (1 = group effect).
    moderate : bool, default True
        Apply variance shrinkage. If False, the statistics are ordinary
        t-statistics with ``df_residual`` degrees of freedom.
    trend : bool, default False
        Let the prior variance follow average expression.
    proportion : float, default 0.01
        Assumed proportion of differentially expressed genes (B-statistic).
    prior_df_floor : float, default 0.0
        Lower bound on the prior degrees of freedom.
    prior : VariancePrior, optional
        Precomputed prior. Estimated from ``fit`` when omitted.

    Returns
    -------
    ModeratedFit

    Examples
    --------
    >>> fit = lm_fit(expression, design)
    >>> mod = e_bayes(fit)
    >>> mod.prior.df_prior, mod.p_value[:5]

    Notes
    -----
    t = b_j / (sqrt(s2_post) * sqrt((X'X)^-1_jj)), and the two-sided
    p-value uses a t-distribution on ``df_total`` (possibly non-integer)
    degrees of freedom.
    """
    if coef_index < 0 or coef_index >= fit.coefficients.shape[1]:
        raise ValueError("coef_index out of bounds")

    if prior is None:
        prior = estimate_variance_prior(fit, moderate=moderate, trend=trend,
                                        prior_df_floor=prior_df_floor)

    s2_post, df_total = squeeze_var(fit.sigma2, fit.df_residual, prior)
    s2_post, n_floored = _floor_variances(s2_post, fit.sigma2)

    stdev_unscaled = float(fit.stdev_unscaled[coef_index])
    coef = fit.coefficients[:, coef_index]
    t = coef / (stdev_unscaled * np.sqrt(s2_post))
    p_value = 2.0 * t_dist.sf(np.abs(t), df_total)

    lods, var_prior_coef = _log_odds(t, stdev_unscaled, df_total, prior, proportion)

    return ModeratedFit(
        gene_ids=fit.gene_ids,
        log_fold_change=coef.copy(),
        ave_expr=fit.amean,
        s2_post=s2_post,
        df_total=df_total,
        t=t,
        p_value=p_value,
        lods=lods,
        prior=prior,
        var_prior_coef=var_prior_coef,
        excluded=list(fit.excluded),
        n_floored=n_floored,
    )
