"""End-to-end tests for run_limma and LimmaDataSet."""

import numpy as np
import pandas as pd
import pytest
from scipy import stats

from limma_py import LimmaConfig, LimmaDataSet, run_limma
from limma_py.exceptions import ConfigurationError, EmptyInputError
from limma_py.results import RESULT_COLUMNS


def test_two_vs_two_detects_shifted_gene(two_vs_two):
    expression, labels = two_vs_two
    res = run_limma(expression, labels)
    table = res.table.set_index('gene_id')

    assert res.table['gene_id'].iloc[0] == "GENE_A"
    assert table.loc["GENE_A", 'adjusted_p_value'] < 0.05
    assert table.loc["GENE_B", 'raw_p_value'] > 0.5
    assert table.loc["GENE_C", 'raw_p_value'] > 0.5


def test_two_vs_two_hand_values(two_vs_two):
    expression, labels = two_vs_two
    res = run_limma(expression, labels)
    table = res.table.set_index('gene_id')

    # residual variances 0.02, 0.08 and 0.05 are no more spread than chance,
    # so every gene gets the pooled variance 0.05 on 2 + 2 + 2 df
    assert np.isinf(res.prior.df_prior)
    np.testing.assert_allclose(res.moderated.s2_post, 0.05, rtol=1e-10)
    np.testing.assert_allclose(res.moderated.df_total, 6.0)

    assert table.loc["GENE_A", 'log_fold_change'] == pytest.approx(8.0)
    assert table.loc["GENE_B", 'log_fold_change'] == pytest.approx(0.1)
    assert table.loc["GENE_C", 'log_fold_change'] == pytest.approx(0.0, abs=1e-12)

    t_b = 0.1 / np.sqrt(0.05)
    assert table.loc["GENE_B", 't_statistic'] == pytest.approx(t_b, rel=1e-8)
    assert table.loc["GENE_B", 'raw_p_value'] == pytest.approx(2 * stats.t.sf(t_b, 6), rel=1e-8)
    assert table.loc["GENE_A", 'ave_expr'] == pytest.approx(5.1)


def test_recovers_differential_genes(simulated_expression):
    expression, labels = simulated_expression
    res = run_limma(expression, labels)

    top20 = set(res.table['gene_id'].iloc[:20])
    truth = set(expression.index[:20])
    assert len(top20 & truth) >= 15
    assert (res.table.loc[res.table['gene_id'].isin(truth), 'log_fold_change'] > 0).mean() > 0.9


def test_table_shape_and_order(simulated_expression):
    expression, labels = simulated_expression
    table = run_limma(expression, labels).table

    assert list(table.columns) == RESULT_COLUMNS
    assert len(table) == expression.shape[0]
    assert list(table['rank']) == list(range(1, len(table) + 1))
    assert np.all(np.diff(table['raw_p_value']) >= 0)
    assert np.all(table['adjusted_p_value'] >= table['raw_p_value'])
    assert np.all(np.diff(table['adjusted_p_value']) >= 0)


@pytest.mark.parametrize("seed", range(20))
def test_adjusted_at_least_raw_on_small_runs(seed):
    rng = np.random.default_rng(seed)
    expression = rng.normal(6.0, 1.0, (21, 6))
    labels = ["normal"] * 3 + ["cancer"] * 3
    table = run_limma(expression, labels).table
    assert (table['adjusted_p_value'] >= table['raw_p_value']).all()
    assert table['adjusted_p_value'].iloc[-1] == table['raw_p_value'].iloc[-1]


def test_repeated_runs_identical(simulated_expression):
    expression, labels = simulated_expression
    first = run_limma(expression, labels).table
    second = run_limma(expression, labels).table
    pd.testing.assert_frame_equal(first, second)


def test_threaded_run_matches_serial(simulated_expression):
    expression, labels = simulated_expression
    serial = run_limma(expression, labels).table
    threaded = run_limma(expression, labels, n_jobs=3, chunk_size=17).table

    assert list(serial['gene_id']) == list(threaded['gene_id'])
    np.testing.assert_allclose(threaded['t_statistic'], serial['t_statistic'], rtol=1e-10)


def test_top_k_and_config_dict(simulated_expression):
    expression, labels = simulated_expression
    res = run_limma(expression, labels, config={"top_k": 10, "sort_by": "B"})
    assert len(res.table) == 10
    assert res.config.sort_by == "B"

    res = run_limma(expression, labels, config=LimmaConfig(top_k=50), top_k=5)
    assert len(res.table) == 5


def test_array_input_gets_default_ids(simulated_expression):
    expression, labels = simulated_expression
    res = run_limma(expression.to_numpy(), labels)
    assert res.table['gene_id'].str.startswith("gene_").all()


def test_missing_values_excluded_and_reported(simulated_expression):
    expression, labels = simulated_expression
    expression = expression.copy()
    expression.iloc[5, 2] = np.nan

    with pytest.warns(UserWarning, match="Excluded 1 of 200 genes"):
        res = run_limma(expression, labels)

    assert len(res.table) == 199
    assert res.excluded == ["GENE0005"]
    assert "GENE0005" not in set(res.table['gene_id'])


def test_without_moderation_is_ordinary_t_test(simulated_expression):
    expression, labels = simulated_expression
    res = run_limma(expression, labels, moderate=False, sort_by='none')

    ref = stats.ttest_ind(expression.iloc[:, 4:], expression.iloc[:, :4], axis=1)
    np.testing.assert_allclose(res.table['t_statistic'], ref.statistic, rtol=1e-10)
    np.testing.assert_allclose(res.table['raw_p_value'], ref.pvalue, rtol=1e-8)


def test_trended_prior(simulated_expression):
    expression, labels = simulated_expression
    res = run_limma(expression, labels, trend=True)
    assert res.prior.is_trended
    assert np.all(np.isfinite(res.table['t_statistic']))


def test_custom_levels(simulated_expression):
    expression, labels = simulated_expression
    labels = np.where(labels == "cancer", "treated", "control")
    res = run_limma(expression, labels, reference_level="control", effect_level="treated")
    top = res.table.set_index('gene_id').loc[expression.index[:20]]
    assert (top['log_fold_change'] > 0).all()


def test_label_length_mismatch(simulated_expression):
    expression, labels = simulated_expression
    with pytest.raises(ConfigurationError, match="labels length"):
        run_limma(expression, labels[:-1])


def test_unexpected_label(simulated_expression):
    expression, labels = simulated_expression
    labels = labels.copy()
    labels[0] = "metastasis"
    with pytest.raises(ConfigurationError):
        run_limma(expression, labels)


def test_empty_expression():
    with pytest.raises(EmptyInputError):
        run_limma(np.empty((0, 4)), ["normal", "normal", "cancer", "cancer"])


def test_progress_messages(two_vs_two, capsys):
    expression, labels = two_vs_two
    run_limma(expression, labels, quiet=False)
    out = capsys.readouterr().out
    assert "Fitting linear models for 3 genes" in out
    assert "Done." in out


# LimmaDataSet

@pytest.fixture
def dataset(simulated_expression):
    expression, labels = simulated_expression
    coldata = pd.DataFrame({"condition": labels}, index=expression.columns)
    return LimmaDataSet(expression, coldata, condition="condition")


def test_dataset_run(dataset):
    assert "not analyzed" in repr(dataset)
    dataset.run(quiet=True)
    assert "200 genes and 8 samples (analyzed)" in repr(dataset)

    table = dataset.top_table(n=5)
    assert len(table) == 5
    assert dataset.results_df is table


def test_dataset_matches_run_limma(dataset, simulated_expression):
    expression, labels = simulated_expression
    dataset.run(quiet=True)
    pd.testing.assert_frame_equal(dataset.top_table(), run_limma(expression, labels).table)


def test_dataset_summary(dataset, capsys):
    dataset.run(quiet=True)
    stats_dict = dataset.summary(alpha=0.05)
    assert stats_dict['genes_tested'] == 200
    assert stats_dict['significant'] >= 15
    assert "limma Results Summary" in capsys.readouterr().out


def test_dataset_requires_run(dataset):
    with pytest.raises(ValueError, match="run"):
        dataset.top_table()


def test_dataset_validates_coldata(simulated_expression):
    expression, labels = simulated_expression
    with pytest.raises(ConfigurationError):
        LimmaDataSet(expression, pd.DataFrame({"group": labels}))
    with pytest.raises(ConfigurationError):
        LimmaDataSet(expression, pd.DataFrame({"condition": labels[:6]}))
    with pytest.raises(TypeError):
        LimmaDataSet(expression, labels)
