"""Tests for config storage: defaults, section merge, validation."""

import json

import pydantic
import pytest

from backend import storage


def test_get_config_empty():
    """Returns defaults when no config file exists."""
    config = storage.get_config()
    assert config["decisions"]["min_decision_interval"] == 5.0
    assert config["decisions"]["relevance_threshold"] == 0.6
    assert config["decisions"]["max_options_per_decision"] == 4
    assert config["ai"]["model_name"] == "gpt-4o-mini"
    assert "api_key" not in config["ai"]


def test_update_config_partial_section():
    """Partial section update preserves other keys and persists."""
    storage.update_config({"decisions": {"relevance_threshold": 0.4}})
    storage.update_config({"decisions": {"max_options_per_decision": 3}})

    config = storage.get_config()
    assert config["decisions"]["relevance_threshold"] == 0.4
    assert config["decisions"]["max_options_per_decision"] == 3
    assert config["decisions"]["request_timeout"] == 30.0


def test_update_config_ignores_unknown_keys():
    config = storage.update_config({"decisions": {"bogus": 1}, "fonts": {"size": 12}})
    assert "bogus" not in config["decisions"]
    assert "fonts" not in config


def test_update_config_rejects_out_of_range():
    with pytest.raises(pydantic.ValidationError):
        storage.update_config({"decisions": {"relevance_threshold": 1.5}})
    assert not (storage.data_dir() / "config.json").exists()


def test_stored_file_merged_over_defaults():
    (storage.data_dir() / "config.json").write_text(json.dumps({"decisions": {"max_tokens": 64}}))
    assert storage.decision_config().max_tokens == 64
    assert storage.decision_config().history_in_prompt == 5


def test_ai_client_config_env_wins(monkeypatch: pytest.MonkeyPatch):
    storage.update_config({"ai": {"endpoint": "http://stored:1234/v1", "model_name": "stored-model"}})
    monkeypatch.setenv("AI_MODEL_NAME", "env-model")
    monkeypatch.delenv("AI_API_ENDPOINT", raising=False)
    config = storage.ai_client_config()
    assert config.endpoint == "http://stored:1234/v1"
    assert config.model_name == "env-model"
