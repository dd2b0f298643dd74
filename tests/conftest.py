import matplotlib
matplotlib.use("Agg")

import numpy as np
import pandas as pd
import pytest


@pytest.fixture
def simulated_expression():
    """Log-expression for 200 genes, 4 normal vs 4 cancer; first 20 genes shifted by +3."""
    rng = np.random.default_rng(42)
    n_genes, n_per_group = 200, 4

    gene_sd = np.sqrt(0.3 * 4 / rng.chisquare(4, n_genes))
    base = rng.normal(8.0, 1.5, n_genes)
    expr = base[:, None] + rng.normal(0.0, 1.0, (n_genes, 2 * n_per_group)) * gene_sd[:, None]
    expr[:20, n_per_group:] += 3.0

    expression = pd.DataFrame(
        expr,
        index=[f"GENE{i:04d}" for i in range(n_genes)],
        columns=[f"S{j}" for j in range(2 * n_per_group)])
    labels = np.array(["normal"] * n_per_group + ["cancer"] * n_per_group)
    return expression, labels


@pytest.fixture
def two_vs_two():
    """Three genes on 2 normal + 2 cancer samples; only GENE_A differs between groups."""
    expression = pd.DataFrame(
        [[1.0, 1.2, 9.0, 9.2],
         [5.0, 5.4, 5.1, 5.5],
         [3.0, 3.2, 2.9, 3.3]],
        index=["GENE_A", "GENE_B", "GENE_C"],
        columns=["N1", "N2", "C1", "C2"])
    labels = ["normal", "normal", "cancer", "cancer"]
    return expression, labels
