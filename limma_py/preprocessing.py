"""
Preparation of expression data and sample metadata.

Helpers for getting an exported expression matrix and its sample metadata
into the shape the linear model expects: log-scale values, sample columns
aligned with the metadata rows, and a two-level condition factor.
"""

import numpy as np
import pandas as pd

from .exceptions import ConfigurationError, EmptyInputError


def maybe_log2_transform(data, threshold=50.0, pseudocount=1.0, quiet=True):
    """
    Apply ``log2(x + pseudocount)`` when the data look like raw intensities.

    Parameters
    ----------
    data : np.ndarray or pd.DataFrame
        Expression matrix (genes x samples).
    threshold : float, default 50.0
        Data whose maximum exceeds this value are assumed to be on the
        linear scale and are transformed.
    pseudocount : float, default 1.0
        Value added before taking logs.
    quiet : bool, default True
        Whether to suppress progress messages.

    Returns
    -------
    np.ndarray or pd.DataFrame
        Log-scale data with the same shape and labels as the input.
    bool
        True if the transformation was applied.

    Examples
    --------
    >>> import numpy as np
    >>> data, transformed = maybe_log2_transform(np.array([[100., 3.], [7., 1.]]))
    >>> transformed
    True
    """
    is_df = isinstance(data, pd.DataFrame)
    values = data.to_numpy(dtype=float) if is_df else np.asarray(data, dtype=float)
    if values.size == 0:
        raise EmptyInputError("Expression matrix is empty")

    if not quiet:
        print("Checking data transformation...")

    if np.nanmax(values) <= threshold:
        return data, False

    transformed = np.log2(values + pseudocount)
    if not quiet:
        print("Data log-transformed.")

    if is_df:
        return pd.DataFrame(transformed, index=data.index, columns=data.columns), True
    return transformed, True


def derive_condition_labels(metadata, column="source_name_ch1",
                            effect_value="Adenocarcinoma of the Lung",
                            effect_level="cancer", reference_level="normal",
                            quiet=True):
    """
    Map a free-text metadata column onto a two-level condition factor.

    Samples whose ``column`` equals ``effect_value`` get ``effect_level``;
    all others get ``reference_level``.

    Parameters
    ----------
    metadata : pd.DataFrame
        Sample metadata, one row per sample.
    column : str, default "source_name_ch1"
        Metadata column holding the sample description.
    effect_value : str, default "Adenocarcinoma of the Lung"
        Description identifying effect-level samples.
    effect_level, reference_level : str
        Labels of the two conditions.
    quiet : bool, default True
        Whether to suppress printing the condition distribution.

    Returns
    -------
    pd.Series
        Ordered categorical with categories ``[reference_level, effect_level]``,
        indexed like ``metadata``.

    Raises
    ------
    ConfigurationError
        If ``column`` is not in the metadata.
    """
    if not isinstance(metadata, pd.DataFrame):
        raise TypeError("metadata must be a pandas DataFrame")
    if column not in metadata.columns:
        raise ConfigurationError(f"Metadata has no column {column!r}")

    is_effect = metadata[column] == effect_value
    condition = pd.Series(
        pd.Categorical(np.where(is_effect, effect_level, reference_level),
                       categories=[reference_level, effect_level], ordered=True),
        index=metadata.index, name='condition')

    if not quiet:
        print("Condition distribution:")
        print(condition.value_counts(sort=False, dropna=False).to_string())

    return condition


def align_samples(expression, metadata):
    """
    Label expression columns with the metadata sample identifiers.

    Parameters
    ----------
    expression : pd.DataFrame
        Expression matrix (genes x samples), columns in metadata row order.
    metadata : pd.DataFrame
        Sample metadata, one row per sample.

    Returns
    -------
    pd.DataFrame
        Copy of ``expression`` with ``columns = metadata.index``.

    Raises
    ------
    ConfigurationError
        If the number of samples differs.
    """
    if expression.shape[1] != len(metadata):
        raise ConfigurationError(
            f"Number of samples in metadata ({len(metadata)}) "
            f"doesn't match expression ({expression.shape[1]})")
    aligned = expression.copy()
    aligned.columns = metadata.index
    return aligned
