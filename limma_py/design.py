"""
Design matrix construction for two-group limma-style analysis.

This module encodes a two-level group factor as a treatment-coded
regression design (intercept + group indicator) using patsy.

References:
    - Wilkinson GN, Rogers CE (1973). Symbolic description of factorial
      models for analysis of variance. Applied Statistics 22:392-399
    - Smyth GK (2004). Linear models and empirical Bayes methods for
      assessing differential expression in microarray experiments.
      Statistical Applications in Genetics and Molecular Biology 3:3
"""

from dataclasses import dataclass

import numpy as np
import pandas as pd
from patsy import dmatrix

from .exceptions import ConfigurationError, EmptyInputError


@dataclass(frozen=True)
class DesignMatrix:
    """
    Numeric two-group design.

    Attributes
    ----------
    matrix : np.ndarray
        Design matrix (samples x 2). Column 0 is the intercept, column 1
        is 1 for samples in the effect level and 0 otherwise.
    column_names : list
        Column names as produced by patsy.
    reference_level : str
        Baseline group label.
    effect_level : str
        Group label whose coefficient is tested.
    group_sizes : dict
        Number of samples per group label.
    coef_index : int
        Column holding the group effect.
    """

    matrix: np.ndarray
    column_names: list
    reference_level: str
    effect_level: str
    group_sizes: dict
    coef_index: int = 1

    @property
    def n_samples(self):
        return self.matrix.shape[0]

    @property
    def n_coefficients(self):
        return self.matrix.shape[1]

    def to_dataframe(self, sample_names=None):
        return pd.DataFrame(self.matrix, columns=self.column_names,
                            index=sample_names)


def build_design_matrix(labels, reference_level="normal", effect_level="cancer",
                        min_samples_per_group=2):
    """
    Create the intercept + group-indicator design for two groups.

    Parameters
    ----------
    labels : array-like
        One group label per sample.
    reference_level : str, default "normal"
        Baseline level (absorbed into the intercept).
    effect_level : str, default "cancer"
        Level whose difference from the baseline is estimated.
    min_samples_per_group : int, default 2
        Minimum number of samples in each level.

    Returns
    -------
    DesignMatrix
        Design with ``matrix[:, 1] == 1`` for effect-level samples.

    Raises
    ------
    EmptyInputError
        If no labels are given.
    ConfigurationError
        If a label is missing, a label lies outside the configured pair,
        or either group has fewer than ``min_samples_per_group`` samples.

    Examples
    --------
    >>> design = build_design_matrix(['normal', 'normal', 'cancer', 'cancer'])
    >>> design.matrix[:, 1]
    array([0., 0., 1., 1.])
    >>> design.column_names
    ['Intercept', 'C(group, levels=group_levels)[T.cancer]']
    """
    if reference_level == effect_level:
        raise ConfigurationError(
            f"reference and effect levels must differ (both are {reference_level!r})")

    group = pd.Series(np.asarray(labels, dtype=object).ravel())
    if group.size == 0:
        raise EmptyInputError("No samples supplied: group labels are empty")

    missing = group.isna()
    if missing.any():
        raise ConfigurationError(
            f"{int(missing.sum())} sample(s) have no group label")

    unexpected = sorted(set(group) - {reference_level, effect_level}, key=str)
    if unexpected:
        raise ConfigurationError(
            f"Group labels {unexpected} are outside the configured pair "
            f"({reference_level!r}, {effect_level!r})")

    group_sizes = {
        reference_level: int((group == reference_level).sum()),
        effect_level: int((group == effect_level).sum()),
    }
    for level, size in group_sizes.items():
        if size < min_samples_per_group:
            raise ConfigurationError(
                f"Group {level!r} has {size} sample(s); at least "
                f"{min_samples_per_group} per group are required")

    # first level of the categorical is the treatment-coding baseline
    group_levels = [reference_level, effect_level]
    design_df = dmatrix("C(group, levels=group_levels)",
                        data={'group': group.tolist()},
                        return_type='dataframe')

    X = np.asarray(design_df.values, dtype=float)
    return DesignMatrix(
        matrix=X,
        column_names=list(design_df.columns),
        reference_level=reference_level,
        effect_level=effect_level,
        group_sizes=group_sizes,
    )


def check_full_rank(X, tol=1e-7):
    """
    Whether every design column is linearly independent of the others.

    Rank is read off the diagonal of the QR ``R`` factor: a column counts
    when its diagonal entry exceeds ``tol`` times the largest one.

    Parameters
    ----------
    X : np.ndarray
        Design matrix (samples x parameters).
    tol : float, default 1e-7
        Relative tolerance on the diagonal of ``R``.

    Returns
    -------
    bool

    Examples
    --------
    >>> check_full_rank(np.array([[1, 0], [1, 0], [1, 1], [1, 1]]))
    True
    >>> check_full_rank(np.array([[1, 2], [1, 2], [1, 2]]))
    False
    """
    X = np.asarray(X, dtype=float)
    if X.shape[0] < X.shape[1]:
        return False
    diag = np.abs(np.diag(np.linalg.qr(X, mode='r')))
    if diag.size == 0 or diag.max() == 0:
        return False
    return bool(np.all(diag > tol * diag.max()))
