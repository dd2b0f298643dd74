"""Tests for gene-wise least-squares fitting."""

import numpy as np
import pandas as pd
import pytest
import statsmodels.api as sm

from limma_py.design import build_design_matrix
from limma_py.exceptions import EmptyInputError, NumericalInstabilityError, RankDeficiencyError
from limma_py.lm_fit import decompose_design, lm_fit


@pytest.fixture
def design():
    return build_design_matrix(["normal"] * 3 + ["cancer"] * 4)


def test_matches_statsmodels_ols(design):
    rng = np.random.default_rng(0)
    Y = rng.normal(6.0, 1.0, (25, 7))
    Y[:5, 3:] += 2.0

    fit = lm_fit(Y, design)

    for g in range(Y.shape[0]):
        ref = sm.OLS(Y[g], design.matrix).fit()
        np.testing.assert_allclose(fit.coefficients[g], ref.params, rtol=1e-10, atol=1e-12)
        np.testing.assert_allclose(fit.sigma2[g], ref.scale, rtol=1e-10)
        np.testing.assert_allclose(fit.stdev_unscaled * np.sqrt(fit.sigma2[g]), ref.bse,
                                   rtol=1e-10)
    assert fit.df_residual == 5


def test_group_coefficient_is_mean_difference(design):
    y = np.array([[1.0, 2.0, 3.0, 10.0, 11.0, 12.0, 13.0]])
    fit = lm_fit(y, design)
    np.testing.assert_allclose(fit.coefficients[0], [2.0, 9.5])
    np.testing.assert_allclose(fit.amean, [y.mean()])


def test_unscaled_variance_factor(design):
    decomposition = decompose_design(design.matrix)
    X = design.matrix
    np.testing.assert_allclose(decomposition.unscaled_cov, np.linalg.inv(X.T @ X))
    np.testing.assert_allclose(decomposition.stdev_unscaled[1], np.sqrt(1 / 3 + 1 / 4))


def test_gene_ids_from_dataframe(design):
    df = pd.DataFrame(np.ones((2, 7)) + np.arange(7), index=["TP53", "EGFR"])
    fit = lm_fit(df, design)
    assert list(fit.gene_ids) == ["TP53", "EGFR"]


def test_default_gene_ids(design):
    fit = lm_fit(np.random.default_rng(1).normal(size=(3, 7)), design)
    assert list(fit.gene_ids) == ["gene_0", "gene_1", "gene_2"]


def test_rows_with_missing_values_are_excluded(design):
    rng = np.random.default_rng(3)
    df = pd.DataFrame(rng.normal(size=(5, 7)), index=list("abcde"))
    df.iloc[1, 2] = np.nan
    df.iloc[3, 0] = np.inf

    with pytest.warns(UserWarning, match="Excluded 2 of 5 genes"):
        fit = lm_fit(df, design)

    assert fit.n_genes == 3
    assert fit.excluded == ["b", "d"]
    assert list(fit.gene_ids) == ["a", "c", "e"]


def test_all_rows_missing(design):
    Y = np.full((2, 7), np.nan)
    with pytest.warns(UserWarning):
        with pytest.raises(EmptyInputError):
            lm_fit(Y, design)


def test_no_genes(design):
    with pytest.raises(EmptyInputError):
        lm_fit(np.empty((0, 7)), design)


def test_sample_count_mismatch(design):
    with pytest.raises(ValueError, match="samples"):
        lm_fit(np.ones((3, 6)), design)


def test_threaded_chunks_match_serial(design):
    rng = np.random.default_rng(7)
    Y = rng.normal(size=(103, 7))

    serial = lm_fit(Y, design)
    threaded = lm_fit(Y, design, n_jobs=4, chunk_size=10)

    np.testing.assert_allclose(threaded.coefficients, serial.coefficients, rtol=1e-12, atol=1e-14)
    np.testing.assert_allclose(threaded.sigma2, serial.sigma2, rtol=1e-12, atol=1e-14)
    np.testing.assert_array_equal(threaded.gene_ids, serial.gene_ids)


def test_no_residual_df():
    X = np.array([[1.0, 0.0], [1.0, 1.0]])
    with pytest.raises(RankDeficiencyError):
        decompose_design(X)


def test_singular_design():
    X = np.array([[1.0, 2.0], [1.0, 2.0], [1.0, 2.0], [1.0, 2.0]])
    with pytest.raises(NumericalInstabilityError, match="singular"):
        decompose_design(X)


def test_non_finite_design():
    X = np.array([[1.0, 0.0], [1.0, np.nan], [1.0, 1.0], [1.0, 1.0]])
    with pytest.raises(NumericalInstabilityError):
        decompose_design(X)


def test_collinear_design_rejected_before_fitting():
    # third column is the sum of the first two
    X = np.array([[1, 0, 1], [1, 0, 1], [1, 1, 2], [1, 1, 2], [1, 0, 1]], dtype=float)
    with pytest.raises(NumericalInstabilityError, match="linearly dependent"):
        lm_fit(np.ones((3, 5)), X)
