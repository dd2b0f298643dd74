"""Tests for analysis settings."""

import dataclasses

import pytest

from limma_py.config import LimmaConfig
from limma_py.exceptions import ConfigurationError, LimmaError


def test_defaults():
    cfg = LimmaConfig()
    assert cfg.reference_level == "normal"
    assert cfg.effect_level == "cancer"
    assert cfg.adjust_method == "BH"
    assert cfg.moderate
    assert cfg.top_k is None


def test_frozen():
    with pytest.raises(dataclasses.FrozenInstanceError):
        LimmaConfig().top_k = 5


@pytest.mark.parametrize("kwargs", [
    {"reference_level": "a", "effect_level": "a"},
    {"min_samples_per_group": 0},
    {"top_k": 0},
    {"adjust_method": "qvalue"},
    {"proportion": 0.0},
    {"proportion": 1.0},
    {"prior_df_floor": -1.0},
    {"sort_by": "gene"},
    {"n_jobs": 0},
    {"chunk_size": 0},
])
def test_invalid_settings(kwargs):
    with pytest.raises(ConfigurationError):
        LimmaConfig(**kwargs)


def test_configuration_error_is_value_error():
    with pytest.raises(ValueError):
        LimmaConfig(n_jobs=0)
    assert issubclass(ConfigurationError, LimmaError)


def test_from_dict():
    cfg = LimmaConfig.from_dict({"reference_level": "ctrl", "effect_level": "treat", "top_k": 10})
    assert cfg.reference_level == "ctrl"
    assert cfg.top_k == 10


def test_from_dict_unknown_key():
    with pytest.raises(ConfigurationError, match="Unknown configuration keys"):
        LimmaConfig.from_dict({"alpha": 0.1})


def test_with_overrides():
    cfg = LimmaConfig()
    new = cfg.with_overrides(top_k=25, sort_by="B")
    assert new.top_k == 25
    assert new.sort_by == "B"
    assert cfg.top_k is None
    assert cfg.with_overrides() is cfg


def test_with_overrides_validates():
    with pytest.raises(ConfigurationError):
        LimmaConfig().with_overrides(adjust_method="nope")
