"""Tests for projectbrain.config."""

from __future__ import annotations

import shutil
from pathlib import Path

import pytest
import yaml
from pydantic import ValidationError

from projectbrain.config import (
    ConfidenceThresholds,
    ConfidenceWeights,
    ControlConfig,
    _deep_merge,
    dotted_to_nested,
    get_settings,
    reset_settings,
    save_user_config,
)


def test_settings_loads_default_yaml():
    """config.default.yaml should load into Settings without error."""
    settings = get_settings()
    assert settings.active_profile == "default"
    assert "default" in settings.profiles


def test_active_profile_resolves():
    profile = get_settings().llm
    assert "anthropic" in profile.chat_model
    assert profile.embed_model == "openai/text-embedding-3-small"
    assert profile.embed_dim == 1536


def test_missing_profile_raises(monkeypatch):
    """Requesting a non-existent profile should raise KeyError."""
    monkeypatch.setenv("PROJECTBRAIN_ACTIVE_PROFILE", "nonexistent")
    reset_settings()
    settings = get_settings()
    with pytest.raises(KeyError, match="nonexistent"):
        _ = settings.llm


def test_env_var_override_profile(monkeypatch):
    monkeypatch.setenv("PROJECTBRAIN_ACTIVE_PROFILE", "local")
    reset_settings()
    settings = get_settings()
    assert settings.active_profile == "local"
    assert settings.llm.embed_dim == 768


def test_nested_env_override(monkeypatch):
    monkeypatch.setenv("PROJECTBRAIN_CONTROL__THRESHOLDS__DO_NOT_PROPOSE", "0.4")
    reset_settings()
    assert get_settings().control.thresholds.do_not_propose == 0.4


def test_all_profiles_have_required_fields():
    for name, profile in get_settings().profiles.items():
        assert profile.chat_model, f"{name}: missing chat_model"
        assert profile.embed_model, f"{name}: missing embed_model"
        assert profile.embed_dim > 0, f"{name}: invalid embed_dim"


def test_control_defaults():
    settings = get_settings()
    assert settings.control.analysis_max_chars == 15_000
    assert settings.control.proposal_max_chars == 8_000
    assert settings.control.query_threshold == 0.4
    assert settings.ingest.concurrency == 3
    assert settings.embedding.batch_size == 100
    assert settings.memory.chat_limit == 30
    assert settings.memory.doc_limit == 20


def test_weights_must_sum_to_one():
    with pytest.raises(ValidationError, match="sum to 1.0"):
        ConfidenceWeights(subject_match=0.5)


def test_thresholds_must_be_ordered():
    with pytest.raises(ValidationError, match="non-decreasing"):
        ConfidenceThresholds(do_not_propose=0.8)


def test_control_config_default_weights():
    cfg = ControlConfig()
    assert cfg.weights.subject_match == 0.3
    assert cfg.weights.scope_containment == 0.25
    assert cfg.thresholds.standard_proposal == 0.7


def test_deep_merge_nested():
    base = {"x": {"a": 1, "b": 2}, "y": 10}
    override = {"x": {"b": 99}, "z": 42}
    result = _deep_merge(base, override)
    assert result == {"x": {"a": 1, "b": 99}, "y": 10, "z": 42}


def test_dotted_to_nested():
    assert dotted_to_nested("control.thresholds.do_not_propose", 0.4) == {
        "control": {"thresholds": {"do_not_propose": 0.4}}
    }
    with pytest.raises(ValueError):
        dotted_to_nested("", 1)


def _use_tmp_root(tmp_path, monkeypatch):
    monkeypatch.setenv("PROJECTBRAIN_ROOT", str(tmp_path))
    src = Path(__file__).parent.parent / "config.default.yaml"
    shutil.copy(src, tmp_path / "config.default.yaml")
    reset_settings()


def test_save_user_config(tmp_path, monkeypatch):
    """save_user_config should write config.yaml and reset the cache."""
    _use_tmp_root(tmp_path, monkeypatch)

    path = save_user_config({"chunker": {"chunk_size": 512}})
    assert path.exists()
    with open(path) as f:
        assert yaml.safe_load(f)["chunker"]["chunk_size"] == 512

    assert get_settings().chunker.chunk_size == 512


def test_save_user_config_merges(tmp_path, monkeypatch):
    """Successive calls should merge, not overwrite."""
    _use_tmp_root(tmp_path, monkeypatch)

    save_user_config({"memory": {"threshold": 0.6}})
    save_user_config({"memory": {"chat_limit": 5}})

    with open(tmp_path / "config.yaml") as f:
        data = yaml.safe_load(f)
    assert data["memory"] == {"threshold": 0.6, "chat_limit": 5}
