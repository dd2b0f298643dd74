"""
Plotting functions for limma-style analysis.

This module provides the visualizations that accompany a moderated t-test
analysis: a volcano plot of the result table, a clustered heatmap of the top
genes and a residual-variance (SA) plot showing the empirical Bayes prior.

References:
    - Smyth GK (2004). Linear models and empirical Bayes methods for
      assessing differential expression in microarray experiments.
      Statistical Applications in Genetics and Molecular Biology 3:3
"""

import numpy as np
import pandas as pd
import matplotlib.pyplot as plt
from matplotlib.colors import ListedColormap
from scipy.cluster.hierarchy import dendrogram, linkage
from scipy.spatial.distance import pdist


def plotVolcano(result, alpha=0.05, lfc_threshold=0.0, main="Volcano Plot",
                point_size=5, point_alpha=0.6, ax=None,
                colSig="red", colNS="black"):
    """
    Volcano plot showing -log10(p-value) vs log2 fold change.

    Points are colored by whether their adjusted p-value passes ``alpha``.

    Parameters
    ----------
    result : pd.DataFrame
        Result table with 'log_fold_change', 'raw_p_value' and
        'adjusted_p_value' columns.
    alpha : float, default 0.05
        Adjusted p-value threshold for coloring points.
    lfc_threshold : float, default 0.0
        Minimum absolute log2 fold change for a point to count as
        significant. Dashed guide lines are drawn when positive.
    main : str, default "Volcano Plot"
        Plot title.
    point_size : float, default 5
        Size of scatter points.
    point_alpha : float, default 0.6
        Transparency of points.
    ax : matplotlib.axes.Axes, optional
        Axes to plot on. If None, creates new figure.
    colSig : str, default "red"
        Color for significant genes.
    colNS : str, default "black"
        Color for non-significant genes.

    Returns
    -------
    matplotlib.axes.Axes
        The axes object with the plot.

    Examples
    --------
    >>> from limma_py.plotting import plotVolcano
    >>> plotVolcano(table, alpha=0.05)
    >>> plt.savefig("volcano_plot_limma.png")
    """
    log2_fc = result['log_fold_change'].to_numpy(dtype=float)
    pvalue = result['raw_p_value'].to_numpy(dtype=float)
    padj = result['adjusted_p_value'].to_numpy(dtype=float)

    if ax is None:
        fig, ax = plt.subplots(figsize=(8, 6))

    with np.errstate(divide='ignore'):
        neg_log10_p = -np.log10(pvalue)
    neg_log10_p = np.clip(neg_log10_p, 0, 300)  # Avoid inf

    significant = np.isfinite(padj) & (padj < alpha) & (np.abs(log2_fc) >= lfc_threshold)
    valid = np.isfinite(log2_fc) & np.isfinite(neg_log10_p)

    ax.scatter(log2_fc[valid & ~significant], neg_log10_p[valid & ~significant],
               c=colNS, s=point_size, alpha=point_alpha, label='Not significant')
    ax.scatter(log2_fc[valid & significant], neg_log10_p[valid & significant],
               c=colSig, s=point_size, alpha=point_alpha,
               label=f'adj.P < {alpha}')

    if lfc_threshold > 0:
        ax.axvline(x=lfc_threshold, color='gray', linestyle='--', linewidth=0.5)
        ax.axvline(x=-lfc_threshold, color='gray', linestyle='--', linewidth=0.5)

    ax.set_xlabel('Log2 Fold Change')
    ax.set_ylabel('-Log10 P-Value')
    ax.set_title(main)
    ax.legend(loc='upper right')

    return ax


def _cluster_order(data):
    if data.shape[0] < 2:
        return np.arange(data.shape[0])
    link = linkage(pdist(data), method='complete')
    return np.asarray(dendrogram(link, no_plot=True)['leaves'])


def plotHeatmap(expression, result, condition=None, n_top=50,
                cluster_rows=True, cluster_cols=True, cmap='Blues',
                main="Top Differentially Expressed Genes", figsize=(10, 10)):
    """
    Heatmap of the top-ranked genes with hierarchical clustering.

    Each gene is scaled to zero mean and unit variance across samples
    before plotting. Rows and columns are ordered by complete-linkage
    clustering on Euclidean distances.

    Parameters
    ----------
    expression : pd.DataFrame
        Expression matrix (genes x samples) indexed by gene id.
    result : pd.DataFrame
        Ranked result table; its first ``n_top`` gene ids are plotted.
    condition : array-like, optional
        Condition label per sample, drawn as an annotation bar.
    n_top : int, default 50
        Number of top genes to show.
    cluster_rows, cluster_cols : bool, default True
        Whether to reorder genes / samples by clustering.
    cmap : str, default 'Blues'
        Colormap name.
    main : str
        Plot title.
    figsize : tuple, default (10, 10)
        Figure size.

    Returns
    -------
    matplotlib.figure.Figure
        The figure object.
    matplotlib.axes.Axes
        The heatmap axes.

    Examples
    --------
    >>> fig, ax = plotHeatmap(expression, table, condition=labels, n_top=50)
    >>> fig.savefig("heatmap_limma.png")
    """
    top_genes = result['gene_id'].iloc[:n_top].tolist()
    data = expression.loc[top_genes].to_numpy(dtype=float)
    row_labels = [str(g) for g in top_genes]
    col_labels = [str(s) for s in expression.columns]

    # row-wise z-scores; constant genes become all zero
    with np.errstate(invalid='ignore', divide='ignore'):
        scaled = (data - data.mean(axis=1, keepdims=True)) / data.std(axis=1, ddof=1, keepdims=True)
    scaled = np.nan_to_num(scaled, nan=0.0, posinf=0.0, neginf=0.0)

    row_order = _cluster_order(scaled) if cluster_rows else np.arange(scaled.shape[0])
    col_order = _cluster_order(scaled.T) if cluster_cols else np.arange(scaled.shape[1])
    data_ordered = scaled[row_order, :][:, col_order]

    if condition is not None:
        fig, (ax_annot, ax) = plt.subplots(
            2, 1, figsize=figsize, sharex=True,
            gridspec_kw={'height_ratios': [1, 25], 'hspace': 0.02})
        codes, levels = pd.factorize(pd.Series(np.asarray(condition)), sort=False)
        palette = plt.get_cmap('tab10').colors[:len(levels)]
        ax_annot.imshow(codes[col_order][np.newaxis, :], aspect='auto',
                        cmap=ListedColormap(palette), vmin=-0.5, vmax=len(levels) - 0.5)
        ax_annot.set_yticks([0])
        ax_annot.set_yticklabels(['Condition'])
        handles = [plt.Rectangle((0, 0), 1, 1, color=palette[i]) for i in range(len(levels))]
        ax_annot.legend(handles, [str(level) for level in levels],
                        loc='lower right', bbox_to_anchor=(1.0, 1.0),
                        ncol=len(levels), fontsize=8, frameon=False)
        ax_annot.set_title(main)
    else:
        fig, ax = plt.subplots(figsize=figsize)
        ax.set_title(main)

    im = ax.imshow(data_ordered, aspect='auto', cmap=cmap)
    fig.colorbar(im, ax=ax, fraction=0.046, pad=0.04)

    ax.set_xticks(range(len(col_order)))
    ax.set_xticklabels([col_labels[i] for i in col_order], rotation=90, fontsize=6)
    ax.set_yticks(range(len(row_order)))
    ax.set_yticklabels([row_labels[i] for i in row_order], fontsize=6)

    return fig, ax


def plotSA(fit, prior=None, main="Residual standard deviation vs average log expression",
           point_size=5, point_alpha=0.5, ax=None):
    """
    Plot sqrt(residual SD) against average expression.

    Parameters
    ----------
    fit : LinearFit
        Output of :func:`limma_py.lm_fit.lm_fit`.
    prior : VariancePrior, optional
        Prior to overlay as a line (constant or trended).
    main : str
        Plot title.
    point_size : float, default 5
        Size of scatter points.
    point_alpha : float, default 0.5
        Transparency of points.
    ax : matplotlib.axes.Axes, optional
        Axes to plot on. If None, creates new figure.

    Returns
    -------
    matplotlib.axes.Axes
    """
    if ax is None:
        fig, ax = plt.subplots(figsize=(8, 6))

    amean = fit.amean
    sqrt_sigma = np.sqrt(np.sqrt(fit.sigma2))

    ax.scatter(amean, sqrt_sigma, c='black', s=point_size, alpha=point_alpha,
               label='Genes')

    if prior is not None:
        prior_sqrt_sigma = np.sqrt(np.sqrt(np.broadcast_to(prior.var_prior, amean.shape)))
        order = np.argsort(amean)
        ax.plot(amean[order], prior_sqrt_sigma[order], color='blue', linewidth=1.5,
                label=f'Prior (df = {prior.df_prior:.3g})')

    ax.set_xlabel('Average log-expression')
    ax.set_ylabel('sqrt(sigma)')
    ax.set_title(main)
    ax.legend(loc='upper right')

    return ax
