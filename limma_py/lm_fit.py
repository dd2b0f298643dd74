"""
Gene-wise linear model fitting for limma-style analysis.

Every gene (row) of the expression matrix is regressed on the same design
matrix. The design is factorised once with a QR decomposition and the
factorisation is reused for all genes, so the fit is a handful of batched
matrix products rather than one regression per gene.

References:
    - Smyth GK (2004). Linear models and empirical Bayes methods for
      assessing differential expression in microarray experiments.
      Statistical Applications in Genetics and Molecular Biology 3:3
    - Golub GH, Van Loan CF (2013). Matrix Computations, 4th ed. Section 5.3
"""

import warnings
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass

import numpy as np
import pandas as pd
from scipy.linalg import solve_triangular

from .design import check_full_rank
from .exceptions import EmptyInputError, NumericalInstabilityError, RankDeficiencyError


@dataclass(frozen=True)
class DesignDecomposition:
    """
    QR factorisation of a design matrix, shared read-only by every gene.

    Attributes
    ----------
    X : np.ndarray
        Design matrix (samples x parameters).
    Q : np.ndarray
        Orthonormal factor (samples x parameters).
    R : np.ndarray
        Upper-triangular factor (parameters x parameters).
    rank : int
        Numerical rank of the design.
    df_residual : int
        Residual degrees of freedom, ``n_samples - rank``.
    unscaled_cov : np.ndarray
        ``(X'X)^-1`` computed from ``R``.
    """

    X: np.ndarray
    Q: np.ndarray
    R: np.ndarray
    rank: int
    df_residual: int
    unscaled_cov: np.ndarray

    @property
    def stdev_unscaled(self):
        """Square root of the diagonal of ``(X'X)^-1``."""
        return np.sqrt(np.diag(self.unscaled_cov))


@dataclass(frozen=True)
class LinearFit:
    """
    Result of fitting the design to every retained gene.

    Attributes
    ----------
    coefficients : np.ndarray
        Estimated coefficients (genes x parameters).
    sigma2 : np.ndarray
        Residual variance ``RSS / df_residual`` per gene.
    df_residual : int
        Residual degrees of freedom (identical for all genes).
    stdev_unscaled : np.ndarray
        Unscaled standard deviation of each coefficient.
    amean : np.ndarray
        Average expression per gene.
    gene_ids : np.ndarray
        Identifiers of the fitted genes, in input order.
    excluded : list
        Identifiers of genes dropped for containing NaN or infinite values.
    decomposition : DesignDecomposition
        The shared factorisation used for the fit.
    """

    coefficients: np.ndarray
    sigma2: np.ndarray
    df_residual: int
    stdev_unscaled: np.ndarray
    amean: np.ndarray
    gene_ids: np.ndarray
    excluded: list
    decomposition: DesignDecomposition

    @property
    def n_genes(self):
        return self.coefficients.shape[0]

    @property
    def sigma(self):
        return np.sqrt(self.sigma2)


def decompose_design(X, tol=1e-7):
    """
    Factorise a design matrix once for reuse across all genes.

    Parameters
    ----------
    X : np.ndarray
        Design matrix (samples x parameters).
    tol : float, default 1e-7
        Relative tolerance on the diagonal of ``R`` used to decide rank.

    Returns
    -------
    DesignDecomposition

    Raises
    ------
    EmptyInputError
        If the design has no rows.
    RankDeficiencyError
        If the design leaves no residual degrees of freedom.
    NumericalInstabilityError
        If the design contains non-finite values or is singular.
    """
    X = np.asarray(X, dtype=float)
    if X.ndim != 2:
        raise ValueError("design matrix must be two-dimensional")

    n, p = X.shape
    if n == 0:
        raise EmptyInputError("Design matrix has no samples")
    if not np.all(np.isfinite(X)):
        raise NumericalInstabilityError("Design matrix contains NaN or infinite values")
    if n <= p:
        raise RankDeficiencyError(
            f"Design has {p} parameters but only {n} samples; "
            f"no residual degrees of freedom remain")

    if not check_full_rank(X, tol=tol):
        raise NumericalInstabilityError(
            f"Design matrix is singular (its {p} columns are linearly dependent)")

    Q, R = np.linalg.qr(X, mode='reduced')
    rank = p

    df_residual = n - rank
    if df_residual <= 0:
        raise RankDeficiencyError(
            f"Residual degrees of freedom is {df_residual}; model is not estimable")

    R_inv = solve_triangular(R, np.eye(p), lower=False)
    unscaled_cov = R_inv @ R_inv.T

    return DesignDecomposition(X=X, Q=Q, R=R, rank=rank,
                               df_residual=df_residual,
                               unscaled_cov=unscaled_cov)


def _fit_chunk(Y, decomposition):
    """Least-squares coefficients and residual sums of squares for a block of genes."""
    beta = solve_triangular(decomposition.R, decomposition.Q.T @ Y.T, lower=False).T
    resid = Y - beta @ decomposition.X.T
    rss = np.sum(resid ** 2, axis=1)
    return beta, rss


def lm_fit(expression, design, gene_ids=None, n_jobs=1, chunk_size=2000):
    """
    Fit the linear model ``y_g = X b_g + e_g`` for every gene.

    Parameters
    ----------
    expression : np.ndarray or pd.DataFrame
        Log-scale expression matrix (genes x samples).
    design : np.ndarray, DesignMatrix or DesignDecomposition
        Design matrix (samples x parameters) or its factorisation.
    gene_ids : array-like, optional
        Gene identifiers. Taken from the DataFrame index when available,
        otherwise ``gene_0 .. gene_{G-1}``.
    n_jobs : int, default 1
        Number of worker threads. Genes are split into chunks of
        ``chunk_size`` and solved independently.
    chunk_size : int, default 2000
        Number of genes per task.

    Returns
    -------
    LinearFit

    Raises
    ------
    EmptyInputError
        If there are no genes or samples, or every gene was excluded.
    RankDeficiencyError, NumericalInstabilityError
        From :func:`decompose_design`, or if the solve produces non-finite
        values.

    Examples
    --------
    >>> from limma_py.design import build_design_matrix
    >>> design = build_design_matrix(['normal'] * 3 + ['cancer'] * 3)
    >>> fit = lm_fit(np.random.default_rng(0).normal(size=(100, 6)), design)
    >>> fit.coefficients.shape
    (100, 2)

    Notes
    -----
    Genes with any NaN or infinite value are excluded rather than fitted;
    their identifiers are listed in ``LinearFit.excluded`` and a warning
    reports how many were dropped.
    """
    if isinstance(expression, pd.DataFrame):
        if gene_ids is None:
            gene_ids = expression.index.to_numpy()
        Y = expression.to_numpy(dtype=float)
    else:
        Y = np.asarray(expression, dtype=float)

    if Y.ndim != 2:
        raise ValueError("expression must be a two-dimensional genes x samples matrix")
    G, S = Y.shape
    if G == 0:
        raise EmptyInputError("Expression matrix has no genes")
    if S == 0:
        raise EmptyInputError("Expression matrix has no samples")

    if gene_ids is None:
        gene_ids = np.array([f"gene_{i}" for i in range(G)], dtype=object)
    gene_ids = np.asarray(gene_ids, dtype=object)
    if gene_ids.shape[0] != G:
        raise ValueError("gene_ids length must equal number of genes")

    if isinstance(design, DesignDecomposition):
        decomposition = design
    else:
        X = getattr(design, 'matrix', design)
        decomposition = decompose_design(X)

    if decomposition.X.shape[0] != S:
        raise ValueError(
            f"design has {decomposition.X.shape[0]} rows but expression has {S} samples")

    complete = np.all(np.isfinite(Y), axis=1)
    excluded = gene_ids[~complete].tolist()
    if excluded:
        warnings.warn(
            f"Excluded {len(excluded)} of {G} genes with NaN or infinite values")
    if not complete.any():
        raise EmptyInputError("All genes contain NaN or infinite values")

    Y = Y[complete]
    gene_ids = gene_ids[complete]

    starts = range(0, Y.shape[0], chunk_size)
    chunks = [Y[s:s + chunk_size] for s in starts]
    if n_jobs > 1 and len(chunks) > 1:
        with ThreadPoolExecutor(max_workers=n_jobs) as pool:
            # map preserves submission order
            parts = list(pool.map(lambda c: _fit_chunk(c, decomposition), chunks))
    else:
        parts = [_fit_chunk(c, decomposition) for c in chunks]

    coefficients = np.vstack([beta for beta, _ in parts])
    rss = np.concatenate([r for _, r in parts])

    if not (np.all(np.isfinite(coefficients)) and np.all(np.isfinite(rss))):
        raise NumericalInstabilityError("Linear model fit produced NaN or infinite values")

    sigma2 = rss / decomposition.df_residual

    return LinearFit(
        coefficients=coefficients,
        sigma2=sigma2,
        df_residual=decomposition.df_residual,
        stdev_unscaled=decomposition.stdev_unscaled,
        amean=Y.mean(axis=1),
        gene_ids=gene_ids,
        excluded=excluded,
        decomposition=decomposition,
    )
