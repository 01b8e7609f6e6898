"""Tests for matching configuration parsing and validation"""
import pytest

from libs.matching import MatchingConfig, ConfigurationError


def test_matching_config_defaults():
    config = MatchingConfig()

    assert config.category_weight == 30
    assert config.text_weight == 40
    assert config.location_weight == 15
    assert config.date_weight == 15
    assert config.total_weight == 100
    assert config.date_window_days == 30
    assert config.date_grace_days == 1
    assert config.min_score == 50
    assert config.result_limit == 5
    assert config.validate() is config


@pytest.mark.parametrize("overrides", [
    {"text_weight": -1},
    {"category_weight": 0, "text_weight": 0, "location_weight": 0, "date_weight": 0},
    {"date_window_days": 0},
    {"date_grace_days": -1},
    {"min_score": -5},
    {"min_score": 101},
    {"result_limit": 0},
])
def test_invalid_settings_raise_configuration_error(overrides):
    with pytest.raises(ConfigurationError):
        MatchingConfig(**overrides).validate()


def test_from_mapping_coerces_env_strings():
    config = MatchingConfig.from_mapping({
        "min_score": "60",
        "date_window_days": "14",
        "text_weight": "45.5",
        "ignore_stop_words": "false",
    })

    assert config.min_score == 60
    assert config.date_window_days == 14
    assert config.text_weight == 45.5
    assert config.ignore_stop_words is False


def test_from_mapping_rejects_unknown_keys():
    with pytest.raises(ConfigurationError, match="bogus"):
        MatchingConfig.from_mapping({"bogus": 1})


def test_from_mapping_rejects_unparseable_values():
    with pytest.raises(ConfigurationError):
        MatchingConfig.from_mapping({"min_score": "high"})


def test_from_mapping_empty_gives_defaults():
    assert MatchingConfig.from_mapping(None) == MatchingConfig()
    assert MatchingConfig.from_mapping({}) == MatchingConfig()
