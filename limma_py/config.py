"""
Analysis settings for the limma_py pipeline.

References:
    - Smyth GK (2004). Linear models and empirical Bayes methods for
      assessing differential expression in microarray experiments.
      Statistical Applications in Genetics and Molecular Biology 3:3
"""

from dataclasses import dataclass, fields, replace

from .exceptions import ConfigurationError

ADJUST_METHODS = ('BH', 'fdr', 'BY', 'bonferroni', 'holm', 'none')
SORT_KEYS = ('p', 'logFC', 't', 'B', 'none')


@dataclass(frozen=True)
class LimmaConfig:
    """
    Settings for a two-group moderated t-test analysis.

    Parameters
    ----------
    reference_level : str, default "normal"
        Group label used as the baseline (intercept) level.
    effect_level : str, default "cancer"
        Group label whose difference from the baseline is tested.
    min_samples_per_group : int, default 2
        Minimum number of samples required in each group.
    top_k : int, optional
        Number of top-ranked genes to report. None reports all genes.
    adjust_method : str, default "BH"
        Multiple testing correction ("BH", "fdr", "BY", "bonferroni",
        "holm" or "none").
    moderate : bool, default True
        Whether to apply empirical Bayes variance shrinkage. When False the
        statistics reduce to ordinary per-gene t-tests.
    trend : bool, default False
        Whether the prior variance follows a trend in average expression.
    proportion : float, default 0.01
        Assumed proportion of differentially expressed genes, used for the
        B-statistic.
    prior_df_floor : float, default 0.0
        Lower bound applied to the estimated prior degrees of freedom.
    sort_by : str, default "p"
        Ranking key ("p", "logFC", "t", "B" or "none").
    n_jobs : int, default 1
        Worker threads used for the per-gene fit.
    chunk_size : int, default 2000
        Number of genes solved per task.

    Examples
    --------
    >>> cfg = LimmaConfig(reference_level="ctrl", effect_level="treat")
    >>> cfg = cfg.with_overrides(top_k=50)
    """

    reference_level: str = "normal"
    effect_level: str = "cancer"
    min_samples_per_group: int = 2
    top_k: int = None
    adjust_method: str = "BH"
    moderate: bool = True
    trend: bool = False
    proportion: float = 0.01
    prior_df_floor: float = 0.0
    sort_by: str = "p"
    n_jobs: int = 1
    chunk_size: int = 2000

    def __post_init__(self):
        if self.reference_level == self.effect_level:
            raise ConfigurationError(
                f"reference_level and effect_level must differ "
                f"(both are {self.reference_level!r})")
        if self.min_samples_per_group < 1:
            raise ConfigurationError("min_samples_per_group must be at least 1")
        if self.top_k is not None and self.top_k < 1:
            raise ConfigurationError("top_k must be a positive integer or None")
        if self.adjust_method not in ADJUST_METHODS:
            raise ConfigurationError(
                f"Unknown adjust_method {self.adjust_method!r}; "
                f"expected one of {ADJUST_METHODS}")
        if not 0.0 < self.proportion < 1.0:
            raise ConfigurationError("proportion must lie strictly between 0 and 1")
        if self.prior_df_floor < 0:
            raise ConfigurationError("prior_df_floor must be non-negative")
        if self.sort_by not in SORT_KEYS:
            raise ConfigurationError(
                f"Unknown sort_by {self.sort_by!r}; expected one of {SORT_KEYS}")
        if self.n_jobs < 1:
            raise ConfigurationError("n_jobs must be at least 1")
        if self.chunk_size < 1:
            raise ConfigurationError("chunk_size must be at least 1")

    @classmethod
    def from_dict(cls, settings):
        """Build a config from a plain mapping, rejecting unknown keys."""
        known = {f.name for f in fields(cls)}
        unknown = set(settings) - known
        if unknown:
            raise ConfigurationError(f"Unknown configuration keys: {sorted(unknown)}")
        return cls(**settings)

    def with_overrides(self, **overrides):
        """Return a copy with the given settings replaced."""
        if not overrides:
            return self
        unknown = set(overrides) - {f.name for f in fields(self)}
        if unknown:
            raise ConfigurationError(f"Unknown configuration keys: {sorted(unknown)}")
        return replace(self, **overrides)
