"""
Tests for voxlearn configuration loading and snapshots.
"""

import json

import pytest


@pytest.fixture
def isolated(tmp_path, monkeypatch):
    """Run from an empty directory with no API keys in the environment."""
    workdir = tmp_path / "cwd"
    workdir.mkdir()
    monkeypatch.chdir(workdir)
    monkeypatch.delenv("GROQ_API_KEY", raising=False)
    monkeypatch.delenv("VOXLEARN_LLM_API_KEY", raising=False)
    return tmp_path / "data"


class TestConfig:
    """Tests for Config."""

    def test_defaults(self, isolated):
        from voxlearn.config import Config
        from voxlearn.types import CorrectionAnalysisMode, HotKey

        snapshot = Config.load(isolated).snapshot()

        assert snapshot.hotkey == HotKey.parse("option")
        assert snapshot.minimum_key_time == 0.2
        assert snapshot.language is None
        assert snapshot.max_history_entries is None
        assert snapshot.correction_analysis_mode is CorrectionAnalysisMode.TRADITIONAL
        assert snapshot.llm_config.base_url == "http://localhost:11434"
        assert snapshot.groq_api_key == ""
        assert isolated.is_dir()

    def test_settings_file_with_coercion(self, isolated):
        from voxlearn.config import Config
        from voxlearn.types import CorrectionAnalysisMode, LLMProvider

        isolated.mkdir()
        (isolated / "settings.json").write_text(json.dumps({
            "hotkey": "cmd+shift+space",
            "minimum_key_time": "0.35",
            "max_history_entries": 50,
            "language": "zh",
            "correction_analysis_mode": "LLM",
            "llm_provider": "Anthropic",
            "llm_max_tokens": "not a number",
            "unknown_key": True,
        }))

        config = Config.load(isolated)
        snapshot = config.snapshot()

        assert snapshot.hotkey.key == "space"
        assert snapshot.minimum_key_time == 0.35
        assert snapshot.max_history_entries == 50
        assert snapshot.language == "zh"
        assert snapshot.correction_analysis_mode is CorrectionAnalysisMode.LLM
        assert snapshot.llm_config.provider is LLMProvider.ANTHROPIC
        assert snapshot.llm_config.max_tokens == 500
        assert not hasattr(config, "unknown_key")

    def test_env_file_and_environment(self, isolated, monkeypatch):
        from voxlearn.config import Config

        isolated.mkdir()
        (isolated / ".env").write_text(
            "# keys\nGROQ_API_KEY='gsk_file'\nVOXLEARN_LLM_API_KEY=llm_file\nOTHER=x\n")
        monkeypatch.setenv("VOXLEARN_LLM_API_KEY", "llm_env")

        config = Config.load(isolated)

        assert config.groq_api_key == "gsk_file"
        assert config.llm_api_key == "llm_env"
        assert config.llm_config().api_key == "llm_env"

    def test_invalid_values_raise_on_snapshot(self, isolated):
        from voxlearn.config import Config

        config = Config.load(isolated)
        config.correction_analysis_mode = "Magic"

        with pytest.raises(ValueError):
            config.snapshot()

        config.correction_analysis_mode = "Traditional"
        config.hotkey = ""
        with pytest.raises(ValueError):
            config.snapshot()

    def test_save_settings_round_trip(self, isolated):
        from voxlearn.config import Config

        config = Config.load(isolated)
        config.hotkey = "f17"
        config.enable_instant_edit = True
        config.save_settings()

        reloaded = Config.load(isolated)
        assert reloaded.hotkey == "f17"
        assert reloaded.enable_instant_edit is True

    def test_snapshot_is_immutable(self, isolated):
        import dataclasses

        from voxlearn.config import Config

        snapshot = Config.load(isolated).snapshot()

        with pytest.raises(dataclasses.FrozenInstanceError):
            snapshot.minimum_key_time = 1.0
