"""
End-to-end limma-style analysis for two-group expression data.

``run_limma`` chains the pipeline stages (design, per-gene fit, variance
prior, moderated statistics, ranked table) as plain functions.
``LimmaDataSet`` wraps the same stages in a container that keeps the
expression data, sample metadata and intermediate results together.

References:
    - Smyth GK (2004). Linear models and empirical Bayes methods for
      assessing differential expression in microarray experiments.
      Statistical Applications in Genetics and Molecular Biology 3:3
    - Ritchie ME et al. (2015). limma powers differential expression
      analyses for RNA-sequencing and microarray studies.
      Nucleic Acids Research 43:e47
"""

from dataclasses import dataclass

import numpy as np
import pandas as pd

from .config import LimmaConfig
from .design import build_design_matrix
from .ebayes import e_bayes, estimate_variance_prior
from .exceptions import ConfigurationError
from .lm_fit import lm_fit
from .results import summary, top_table


@dataclass(frozen=True)
class LimmaResult:
    """
    Output of :func:`run_limma`.

    Attributes
    ----------
    table : pd.DataFrame
        Ranked result table (see :func:`limma_py.results.top_table`).
    design : DesignMatrix
        Design used for the fit.
    fit : LinearFit
        Per-gene least-squares fit.
    prior : VariancePrior
        Empirical Bayes prior shared by all genes.
    moderated : ModeratedFit
        Moderated statistics for the group effect.
    config : LimmaConfig
        Settings used for the run.
    """

    table: pd.DataFrame
    design: object
    fit: object
    prior: object
    moderated: object
    config: LimmaConfig

    @property
    def excluded(self):
        """Genes dropped before fitting because of NaN or infinite values."""
        return list(self.fit.excluded)


def _resolve_config(config, overrides):
    if config is None:
        config = LimmaConfig()
    elif isinstance(config, dict):
        config = LimmaConfig.from_dict(config)
    return config.with_overrides(**overrides)


def run_limma(expression, labels, config=None, gene_ids=None, quiet=True, **overrides):
    """
    Moderated t-test of the effect level against the reference level.

    Parameters
    ----------
    expression : np.ndarray or pd.DataFrame
        Log-scale expression matrix (genes x samples).
    labels : array-like
        Group label per sample (same order as the expression columns).
    config : LimmaConfig or dict, optional
        Analysis settings. Defaults to ``LimmaConfig()``.
    gene_ids : array-like, optional
        Gene identifiers when ``expression`` is an array.
    quiet : bool, default True
        Whether to suppress progress messages.
    **overrides
        Individual settings overriding ``config`` (e.g. ``top_k=100``).

    Returns
    -------
    LimmaResult

    Raises
    ------
    ConfigurationError
        For invalid settings, bad labels or a sample-count mismatch.
    EmptyInputError
        If there are no genes or samples.
    RankDeficiencyError, NumericalInstabilityError
        If the model cannot be fitted.

    Examples
    --------
    >>> res = run_limma(expr_df, meta_df['condition'],
    ...                 reference_level='normal', effect_level='cancer')
    >>> res.table.head()
    """
    config = _resolve_config(config, overrides)

    if not isinstance(expression, pd.DataFrame):
        expression = np.asarray(expression, dtype=float)
    if expression.ndim != 2:
        raise ValueError("expression must be a two-dimensional genes x samples matrix")

    n_samples = expression.shape[1]
    labels = np.asarray(labels, dtype=object)
    if labels.shape[0] != n_samples:
        raise ConfigurationError(
            f"labels length ({labels.shape[0]}) must equal number of samples ({n_samples})")

    if not quiet:
        print("Building design matrix...")
    design = build_design_matrix(labels,
                                 reference_level=config.reference_level,
                                 effect_level=config.effect_level,
                                 min_samples_per_group=config.min_samples_per_group)

    if not quiet:
        print(f"Fitting linear models for {expression.shape[0]} genes...")
    fit = lm_fit(expression, design, gene_ids=gene_ids,
                 n_jobs=config.n_jobs, chunk_size=config.chunk_size)
    if fit.excluded and not quiet:
        print(f"  ... excluded {len(fit.excluded)} genes with missing values")

    if not quiet:
        print("Estimating variance prior...")
    prior = estimate_variance_prior(fit, moderate=config.moderate, trend=config.trend,
                                    prior_df_floor=config.prior_df_floor)
    if not quiet:
        print(f"  ... prior df = {prior.df_prior:.4g}")

    if not quiet:
        print("Computing moderated t-statistics...")
    moderated = e_bayes(fit, coef_index=design.coef_index, proportion=config.proportion,
                        prior=prior)

    table = top_table(moderated, n=config.top_k, sort_by=config.sort_by,
                      adjust_method=config.adjust_method)

    if not quiet:
        print("Done.")

    return LimmaResult(table=table, design=design, fit=fit, prior=prior,
                       moderated=moderated, config=config)


class LimmaDataSet:
    """
    Container for a two-group limma-style differential expression analysis.

    Stores the expression matrix, sample metadata and analysis results in a
    single object with methods for each pipeline stage.

    Parameters
    ----------
    expression : np.ndarray or pd.DataFrame
        Log-scale expression matrix (genes x samples).
    coldata : pd.DataFrame
        Sample metadata, one row per sample.
    condition : str, default "condition"
        Column of ``coldata`` holding the group labels.
    config : LimmaConfig, optional
        Analysis settings.

    Examples
    --------
    >>> lds = LimmaDataSet(expr_df, meta_df, condition="condition")
    >>> lds.run()
    >>> res = lds.top_table(n=50)
    """

    def __init__(self, expression, coldata, condition="condition", config=None):
        if isinstance(expression, pd.DataFrame):
            self.expression = expression.astype(float)
        else:
            expression = np.asarray(expression, dtype=float)
            self.expression = pd.DataFrame(
                expression,
                index=[f"gene_{i}" for i in range(expression.shape[0])],
                columns=[f"sample_{i}" for i in range(expression.shape[1])])

        if not isinstance(coldata, pd.DataFrame):
            raise TypeError("coldata must be a pandas DataFrame")
        if condition not in coldata.columns:
            raise ConfigurationError(f"coldata has no column {condition!r}")
        if len(coldata) != self.expression.shape[1]:
            raise ConfigurationError(
                f"Number of samples in coldata ({len(coldata)}) "
                f"doesn't match expression ({self.expression.shape[1]})")

        self.coldata = coldata
        self.condition = condition
        self.config = config if config is not None else LimmaConfig()

        self.design = None
        self.fit = None
        self.prior = None
        self.moderated = None
        self.results_df = None

    @property
    def labels(self):
        return self.coldata[self.condition].to_numpy(dtype=object)

    def build_design(self):
        self.design = build_design_matrix(
            self.labels,
            reference_level=self.config.reference_level,
            effect_level=self.config.effect_level,
            min_samples_per_group=self.config.min_samples_per_group)
        return self

    def lm_fit(self):
        """
        Fit the per-gene linear models.

        Returns
        -------
        LimmaDataSet
            Self, for method chaining.
        """
        if self.design is None:
            self.build_design()
        self.fit = lm_fit(self.expression, self.design,
                          n_jobs=self.config.n_jobs, chunk_size=self.config.chunk_size)
        return self

    def e_bayes(self):
        """
        Estimate the variance prior and compute moderated statistics.

        Returns
        -------
        LimmaDataSet
            Self, for method chaining.
        """
        if self.fit is None:
            self.lm_fit()
        self.prior = estimate_variance_prior(
            self.fit, moderate=self.config.moderate, trend=self.config.trend,
            prior_df_floor=self.config.prior_df_floor)
        self.moderated = e_bayes(self.fit, coef_index=self.design.coef_index,
                                 proportion=self.config.proportion, prior=self.prior)
        return self

    def run(self, quiet=False):
        """
        Run the full analysis pipeline.

        Parameters
        ----------
        quiet : bool, default False
            Whether to suppress progress messages.

        Returns
        -------
        LimmaDataSet
            Self, for method chaining.
        """
        if not quiet:
            print("Fitting linear models...")
        self.lm_fit()

        if not quiet:
            print("Applying empirical Bayes moderation...")
        self.e_bayes()

        if not quiet:
            print("Done.")

        return self

    def top_table(self, n=None, sort_by=None, adjust_method=None, p_value=1.0, lfc=0.0):
        """
        Extract the ranked result table.

        Parameters default to the dataset's configuration.

        Returns
        -------
        pd.DataFrame
            Ranked result table.
        """
        if self.moderated is None:
            raise ValueError("Must run() before extracting results")

        self.results_df = top_table(
            self.moderated,
            n=n if n is not None else self.config.top_k,
            sort_by=sort_by if sort_by is not None else self.config.sort_by,
            adjust_method=adjust_method if adjust_method is not None else self.config.adjust_method,
            p_value=p_value, lfc=lfc)
        return self.results_df

    def summary(self, alpha=0.05):
        """
        Print summary of results.

        Parameters
        ----------
        alpha : float, default 0.05
            Significance threshold.
        """
        if self.moderated is None:
            raise ValueError("Must run() before summarizing results")
        table = top_table(self.moderated, adjust_method=self.config.adjust_method)
        return summary(table, alpha=alpha, excluded=self.fit.excluded)

    def plot_volcano(self, alpha=0.05, **kwargs):
        from .plotting import plotVolcano

        if self.results_df is None:
            self.top_table()
        return plotVolcano(self.results_df, alpha=alpha, **kwargs)

    def plot_heatmap(self, n_top=50, **kwargs):
        from .plotting import plotHeatmap

        if self.results_df is None:
            self.top_table()
        return plotHeatmap(self.expression, self.results_df,
                           condition=self.labels, n_top=n_top, **kwargs)

    def plot_sa(self, **kwargs):
        from .plotting import plotSA

        if self.fit is None:
            raise ValueError("Must fit linear models before plotting")
        return plotSA(self.fit, prior=self.prior, **kwargs)

    def __repr__(self):
        """String representation."""
        G, S = self.expression.shape
        analyzed = "analyzed" if self.moderated is not None else "not analyzed"
        return f"LimmaDataSet with {G} genes and {S} samples ({analyzed})"
