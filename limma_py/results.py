"""
Ranked result tables for limma-style analysis.

This module turns moderated statistics into a ranked table of genes,
classifies genes as up/down/not significant and prints a short summary.

References:
    - Smyth GK (2004). Linear models and empirical Bayes methods for
      assessing differential expression in microarray experiments.
      Statistical Applications in Genetics and Molecular Biology 3:3
"""

from dataclasses import dataclass

import numpy as np
import pandas as pd

from .exceptions import ConfigurationError
from .multitest import adjust_p_values

RESULT_COLUMNS = [
    'gene_id', 'log_fold_change', 'ave_expr', 't_statistic',
    'raw_p_value', 'adjusted_p_value', 'b_statistic', 'rank',
]


@dataclass(frozen=True)
class ResultRecord:
    """One row of the ranked result table."""

    gene_id: object
    log_fold_change: float
    ave_expr: float
    t_statistic: float
    raw_p_value: float
    adjusted_p_value: float
    b_statistic: float
    rank: int


def _sort_order(table, sort_by):
    """Stable ordering by the chosen key with ties broken by gene id."""
    if sort_by == 'none':
        return np.arange(len(table))
    if sort_by == 'p':
        key = table['raw_p_value'].to_numpy()
    elif sort_by == 'logFC':
        key = -np.abs(table['log_fold_change'].to_numpy())
    elif sort_by == 't':
        key = -np.abs(table['t_statistic'].to_numpy())
    elif sort_by == 'B':
        key = -table['b_statistic'].to_numpy()
    else:
        raise ConfigurationError(f"Unknown sort_by: {sort_by!r}")

    # gene ids may mix types; compare their string form for the tie-break
    gene_key = table['gene_id'].astype(str).to_numpy()
    return np.lexsort((gene_key, key))


def top_table(moderated, n=None, sort_by='p', adjust_method='BH',
              p_value=1.0, lfc=0.0):
    """
    Extract a ranked table of genes.

    Parameters
    ----------
    moderated : ModeratedFit
        Output of :func:`limma_py.ebayes.e_bayes`.
    n : int, optional
        Number of top genes to return. None returns all genes.
    sort_by : str, default 'p'
        'p' (ascending raw p-value), 'logFC' or 't' (descending absolute
        value), 'B' (descending log-odds) or 'none' (input order).
    adjust_method : str, default 'BH'
        Multiple testing correction, applied over all genes before any
        filtering or truncation.
    p_value : float, default 1.0
        Keep only genes with adjusted p-value at or below this cutoff.
    lfc : float, default 0.0
        Keep only genes with absolute log-fold-change at or above this cutoff.

    Returns
    -------
    pd.DataFrame
        Columns: gene_id, log_fold_change, ave_expr, t_statistic,
        raw_p_value, adjusted_p_value, b_statistic, rank. ``rank`` is the
        1-based position in the returned order.

    Examples
    --------
    >>> mod = e_bayes(lm_fit(expression, design))
    >>> res = top_table(mod, n=20)
    >>> res[['gene_id', 'log_fold_change', 'adjusted_p_value']].head()
    """
    if n is not None and n < 1:
        raise ConfigurationError("n must be a positive integer or None")

    table = pd.DataFrame({
        'gene_id': moderated.gene_ids,
        'log_fold_change': moderated.log_fold_change,
        'ave_expr': moderated.ave_expr,
        't_statistic': moderated.t,
        'raw_p_value': moderated.p_value,
        'adjusted_p_value': adjust_p_values(moderated.p_value, method=adjust_method),
        'b_statistic': moderated.lods,
    })

    table = table.iloc[_sort_order(table, sort_by)]

    keep = np.ones(len(table), dtype=bool)
    if p_value < 1.0:
        keep &= table['adjusted_p_value'].to_numpy() <= p_value
    if lfc > 0.0:
        keep &= np.abs(table['log_fold_change'].to_numpy()) >= lfc
    table = table[keep]

    if n is not None:
        table = table.head(n)

    table = table.reset_index(drop=True)
    table['rank'] = np.arange(1, len(table) + 1)
    return table[RESULT_COLUMNS]


def to_records(table):
    """Convert a result table into a list of :class:`ResultRecord`."""
    return [
        ResultRecord(
            gene_id=row.gene_id,
            log_fold_change=float(row.log_fold_change),
            ave_expr=float(row.ave_expr),
            t_statistic=float(row.t_statistic),
            raw_p_value=float(row.raw_p_value),
            adjusted_p_value=float(row.adjusted_p_value),
            b_statistic=float(row.b_statistic),
            rank=int(row.rank),
        )
        for row in table[RESULT_COLUMNS].itertuples(index=False)
    ]


def decide_tests(table, alpha=0.05, lfc=0.0):
    """
    Classify genes as up (1), down (-1) or not significant (0).

    Parameters
    ----------
    table : pd.DataFrame
        Result table from :func:`top_table`.
    alpha : float, default 0.05
        Adjusted p-value threshold.
    lfc : float, default 0.0
        Minimum absolute log-fold-change.

    Returns
    -------
    pd.Series
        Integer calls indexed by gene id.
    """
    padj = table['adjusted_p_value'].to_numpy()
    log_fc = table['log_fold_change'].to_numpy()

    significant = np.isfinite(padj) & (padj < alpha) & (np.abs(log_fc) >= lfc)
    calls = np.where(significant, np.sign(log_fc), 0).astype(int)
    return pd.Series(calls, index=table['gene_id'].to_numpy(), name='call')


def summary(table, alpha=0.05, lfc_cutoff=0.0, quiet=False, excluded=None):
    """
    Print summary of differential expression results.

    Parameters
    ----------
    table : pd.DataFrame
        Result table from :func:`top_table`.
    alpha : float, default 0.05
        FDR threshold for significance.
    lfc_cutoff : float, default 0.0
        Optional LFC cutoff for reporting.
    quiet : bool, default False
        Return the counts without printing.
    excluded : list, optional
        Genes dropped before fitting, reported alongside the counts.

    Returns
    -------
    dict
        Summary statistics.
    """
    calls = decide_tests(table, alpha=alpha, lfc=lfc_cutoff)
    n_excluded = len(excluded) if excluded is not None else 0

    summary_dict = {
        'total_genes': len(table) + n_excluded,
        'genes_tested': len(table),
        'genes_excluded': n_excluded,
        'significant': int((calls != 0).sum()),
        'upregulated': int((calls > 0).sum()),
        'downregulated': int((calls < 0).sum()),
        'alpha': alpha,
        'lfc_cutoff': lfc_cutoff,
    }

    if not quiet:
        print(f"\nlimma Results Summary")
        print(f"=" * 40)
        print(f"Total genes:        {summary_dict['total_genes']}")
        print(f"Genes tested:       {summary_dict['genes_tested']}")
        print(f"Genes excluded:     {summary_dict['genes_excluded']}")
        print(f"Significant (adj.P < {alpha}): {summary_dict['significant']}")
        print(f"  - Upregulated:    {summary_dict['upregulated']}")
        print(f"  - Downregulated:  {summary_dict['downregulated']}")

    return summary_dict
