"""
limma-like differential expression analysis for two-group expression data in Python.

This package provides a Python implementation of the core limma methodology
for log-scale expression data: per-gene linear models, empirical Bayes
variance moderation, moderated t-statistics and false discovery rate control.

Main Classes:
    LimmaDataSet : Container class for managing a limma analysis
    LimmaConfig : Analysis settings

Main Functions:
    run_limma : Run the full pipeline on an expression matrix
    lm_fit : Gene-wise least-squares fits against a shared design
    e_bayes : Empirical Bayes moderated t-statistics
    top_table : Ranked table of genes
    plotVolcano : Volcano plot of results
    plotHeatmap : Clustered heatmap of top genes

References:
    Smyth GK (2004). Linear models and empirical Bayes methods for assessing
    differential expression in microarray experiments. Statistical
    Applications in Genetics and Molecular Biology 3:3
"""

# Core pipeline
from .pipeline import run_limma, LimmaDataSet, LimmaResult
from .config import LimmaConfig

# Errors
from .exceptions import (
    LimmaError,
    ConfigurationError,
    EmptyInputError,
    RankDeficiencyError,
    NumericalInstabilityError,
)

# Design matrices
from .design import build_design_matrix, check_full_rank, DesignMatrix

# Linear models
from .lm_fit import lm_fit, decompose_design, LinearFit, DesignDecomposition

# Empirical Bayes
from .ebayes import (
    e_bayes,
    estimate_variance_prior,
    fit_f_dist,
    squeeze_var,
    trigamma_inverse,
    VariancePrior,
    ModeratedFit,
)

# Multiple testing
from .multitest import adjust_p_values, benjamini_hochberg

# Results
from .results import top_table, to_records, decide_tests, summary, ResultRecord

# Data preparation
from .preprocessing import maybe_log2_transform, derive_condition_labels, align_samples

# Plotting
from .plotting import plotVolcano, plotHeatmap, plotSA

__version__ = "0.1.0"

__all__ = [
    # Core
    'run_limma',
    'LimmaDataSet',
    'LimmaResult',
    'LimmaConfig',

    # Errors
    'LimmaError',
    'ConfigurationError',
    'EmptyInputError',
    'RankDeficiencyError',
    'NumericalInstabilityError',

    # Design
    'build_design_matrix',
    'check_full_rank',
    'DesignMatrix',

    # Linear models
    'lm_fit',
    'decompose_design',
    'LinearFit',
    'DesignDecomposition',

    # Empirical Bayes
    'e_bayes',
    'estimate_variance_prior',
    'fit_f_dist',
    'squeeze_var',
    'trigamma_inverse',
    'VariancePrior',
    'ModeratedFit',

    # Multiple testing
    'adjust_p_values',
    'benjamini_hochberg',

    # Results
    'top_table',
    'to_records',
    'decide_tests',
    'summary',
    'ResultRecord',

    # Data preparation
    'maybe_log2_transform',
    'derive_condition_labels',
    'align_samples',

    # Plotting
    'plotVolcano',
    'plotHeatmap',
    'plotSA',
]
