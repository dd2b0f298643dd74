"""Tests for data preparation helpers."""

import numpy as np
import pandas as pd
import pytest

from limma_py.exceptions import ConfigurationError, EmptyInputError
from limma_py.preprocessing import align_samples, derive_condition_labels, maybe_log2_transform


def test_log2_applied_to_raw_intensities():
    data = pd.DataFrame([[100.0, 3.0], [7.0, 1.0]], index=["a", "b"], columns=["s1", "s2"])
    out, transformed = maybe_log2_transform(data)
    assert transformed
    np.testing.assert_allclose(out.to_numpy(), np.log2(data.to_numpy() + 1))
    assert list(out.index) == ["a", "b"]


def test_log_scale_data_untouched():
    data = np.array([[8.0, 9.5], [3.0, 12.0]])
    out, transformed = maybe_log2_transform(data)
    assert not transformed
    assert out is data


def test_log2_ignores_missing_values():
    data = np.array([[np.nan, 200.0], [3.0, 4.0]])
    out, transformed = maybe_log2_transform(data)
    assert transformed
    assert np.isnan(out[0, 0])


def test_log2_empty():
    with pytest.raises(EmptyInputError):
        maybe_log2_transform(np.empty((0, 3)))


@pytest.fixture
def metadata():
    return pd.DataFrame(
        {"source_name_ch1": ["Adenocarcinoma of the Lung", "Normal Lung Tissue",
                             "Adenocarcinoma of the Lung", "Normal Lung Tissue"]},
        index=["GSM1", "GSM2", "GSM3", "GSM4"])


def test_derive_condition_labels(metadata):
    condition = derive_condition_labels(metadata)
    assert list(condition) == ["cancer", "normal", "cancer", "normal"]
    assert list(condition.cat.categories) == ["normal", "cancer"]
    assert list(condition.index) == list(metadata.index)
    assert condition.name == "condition"


def test_derive_condition_labels_prints(metadata, capsys):
    derive_condition_labels(metadata, quiet=False)
    assert "Condition distribution" in capsys.readouterr().out


def test_derive_condition_labels_missing_column(metadata):
    with pytest.raises(ConfigurationError):
        derive_condition_labels(metadata, column="characteristics_ch1")


def test_align_samples(metadata):
    expression = pd.DataFrame(np.ones((3, 4)), columns=["c1", "c2", "c3", "c4"])
    aligned = align_samples(expression, metadata)
    assert list(aligned.columns) == ["GSM1", "GSM2", "GSM3", "GSM4"]
    assert list(expression.columns) == ["c1", "c2", "c3", "c4"]


def test_align_samples_mismatch(metadata):
    with pytest.raises(ConfigurationError, match="doesn't match"):
        align_samples(pd.DataFrame(np.ones((3, 3))), metadata)
