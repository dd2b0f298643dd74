"""
Multiple testing correction of gene-wise p-values.

References:
    - Benjamini Y, Hochberg Y (1995). Controlling the false discovery rate:
      a practical and powerful approach to multiple testing. JRSS-B 57:289-300
    - Benjamini Y, Yekutieli D (2001). The control of the false discovery
      rate in multiple testing under dependency. Annals of Statistics 29:1165-1188
    - Holm S (1979). A simple sequentially rejective multiple test procedure.
      Scandinavian Journal of Statistics 6:65-70
"""

import numpy as np

from .exceptions import ConfigurationError, EmptyInputError


def _prepare(pvals):
    pvals = np.asarray(pvals, dtype=float)
    if pvals.ndim != 1:
        pvals = pvals.ravel()
    if pvals.size == 0:
        raise EmptyInputError("No p-values supplied for adjustment")
    return pvals, ~np.isnan(pvals)


def benjamini_hochberg(pvals):
    """
    Benjamini-Hochberg FDR correction.

    Parameters
    ----------
    pvals : array-like
        Raw p-values in gene order. NaN entries stay NaN and do not count
        toward the number of tests.

    Returns
    -------
    padj : np.ndarray
        Adjusted p-values (q-values) in the original gene order.

    Raises
    ------
    EmptyInputError
        If no p-values are given.

    Examples
    --------
    >>> benjamini_hochberg([0.01, 0.04, 0.03])
    array([0.03, 0.04, 0.04])

    Notes
    -----
    q(i) = min over k >= i of p(k) * m / k, clipped to [0, 1], where
    p(1) <= ... <= p(m) are the sorted p-values.
    """
    pvals, valid = _prepare(pvals)
    padj = np.full(pvals.shape, np.nan)
    p = pvals[valid]
    m = p.size
    if m == 0:
        return padj

    order = np.argsort(p, kind='mergesort')
    ranked_p = p[order]

    # m / i >= 1 exactly, so every adjusted value is at least its raw p
    adj = m / np.arange(1, m + 1) * ranked_p
    # enforce monotone non-decreasing when going backwards
    adj_rev = np.minimum.accumulate(adj[::-1])[::-1]

    out = np.empty(m)
    out[order] = np.clip(adj_rev, 0, 1)
    padj[valid] = out
    return padj


def benjamini_yekutieli(pvals):
    """Benjamini-Yekutieli FDR correction, valid under arbitrary dependence."""
    pvals, valid = _prepare(pvals)
    m = int(valid.sum())
    if m == 0:
        return np.full(pvals.shape, np.nan)
    harmonic = np.sum(1.0 / np.arange(1, m + 1))
    return np.minimum(benjamini_hochberg(pvals) * harmonic, 1.0)


def bonferroni(pvals):
    pvals, valid = _prepare(pvals)
    return np.minimum(pvals * valid.sum(), 1.0)


def holm(pvals):
    """Holm step-down family-wise error rate correction."""
    pvals, valid = _prepare(pvals)
    padj = np.full(pvals.shape, np.nan)
    p = pvals[valid]
    m = p.size
    if m == 0:
        return padj

    order = np.argsort(p, kind='mergesort')
    adj = p[order] * (m - np.arange(m))
    adj = np.maximum.accumulate(adj)

    out = np.empty(m)
    out[order] = np.clip(adj, 0, 1)
    padj[valid] = out
    return padj


_METHODS = {
    'BH': benjamini_hochberg,
    'fdr': benjamini_hochberg,
    'BY': benjamini_yekutieli,
    'bonferroni': bonferroni,
    'holm': holm,
}


def adjust_p_values(pvals, method='BH'):
    """
    Adjust p-values for multiple testing.

    Parameters
    ----------
    pvals : array-like
        Raw p-values.
    method : str, default 'BH'
        'BH' (or its alias 'fdr'), 'BY', 'bonferroni', 'holm' or 'none'.

    Returns
    -------
    np.ndarray
        Adjusted p-values in the input order.

    Raises
    ------
    ConfigurationError
        If the method is unknown.
    EmptyInputError
        If no p-values are given.
    """
    if method == 'none':
        pvals, _ = _prepare(pvals)
        return pvals.copy()
    try:
        adjust = _METHODS[method]
    except KeyError:
        raise ConfigurationError(
            f"Unknown adjust method {method!r}; expected one of "
            f"{sorted(_METHODS) + ['none']}") from None
    return adjust(pvals)
