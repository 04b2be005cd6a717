"""Tests for echojournal.config: TOML loading, env vars, CLI overrides."""

from pathlib import Path

import pytest

from echojournal.config import (
    DEFAULT_STOP_PHRASES,
    ConversationConfig,
    EchoJournalConfig,
    load_config,
    merge_cli_overrides,
)

ENV_VARS = (
    "ECHOJOURNAL_STORE_DIR",
    "ECHOJOURNAL_MODEL",
    "ECHOJOURNAL_WHISPER_MODEL",
    "ECHOJOURNAL_LATENCY_THRESHOLD",
)


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch):
    """Remove env vars that _apply_env_vars reads so tests see TOML values."""
    for key in ENV_VARS:
        monkeypatch.delenv(key, raising=False)


class TestDefaults:
    def test_store_directory(self):
        cfg = EchoJournalConfig()
        assert cfg.store.directory == "~/.echojournal"
        assert cfg.store.path == Path("~/.echojournal").expanduser()

    def test_latency(self):
        cfg = EchoJournalConfig()
        assert cfg.latency.window_size == 3
        assert cfg.latency.threshold_seconds == 4.0

    def test_analysis_and_generation(self):
        cfg = EchoJournalConfig()
        assert cfg.analysis.max_tags == 3
        assert cfg.generation.model is None
        assert cfg.generation.timeout == 120

    def test_stop_phrases(self):
        cfg = EchoJournalConfig()
        assert cfg.conversation.stop_phrases == DEFAULT_STOP_PHRASES
        assert "thank you for sharing" in cfg.conversation.stop_phrases

    def test_stop_phrases_lowercased(self):
        cfg = ConversationConfig(stop_phrases=["  All Done ", "", "WRAP UP"])
        assert cfg.stop_phrases == ["all done", "wrap up"]


class TestLoadConfig:
    def test_missing_explicit_path_uses_defaults(self, tmp_path):
        cfg = load_config(tmp_path / "nope.toml")
        assert cfg == EchoJournalConfig()

    def test_reads_toml(self, tmp_path):
        path = tmp_path / "config.toml"
        path.write_text(
            '[store]\ndirectory = "/data/journal"\n\n'
            "[latency]\nthreshold_seconds = 2.5\n\n"
            "[analysis]\nmax_tags = 5\n"
        )
        cfg = load_config(path)
        assert cfg.store.directory == "/data/journal"
        assert cfg.latency.threshold_seconds == 2.5
        assert cfg.analysis.max_tags == 5

    def test_invalid_toml_falls_back(self, tmp_path):
        path = tmp_path / "config.toml"
        path.write_text("[store\ndirectory=")
        assert load_config(path) == EchoJournalConfig()

    def test_invalid_values_fall_back(self, tmp_path):
        path = tmp_path / "config.toml"
        path.write_text("[latency]\nwindow_size = 0\n")
        assert load_config(path).latency.window_size == 3

    def test_discovers_file_in_cwd(self, tmp_path, monkeypatch):
        (tmp_path / ".echojournal.toml").write_text('[generation]\nmodel = "haiku"\n')
        monkeypatch.chdir(tmp_path)
        assert load_config().generation.model == "haiku"


class TestEnvVars:
    def test_env_overrides_toml(self, tmp_path, monkeypatch):
        path = tmp_path / "config.toml"
        path.write_text('[store]\ndirectory = "/from/toml"\n')
        monkeypatch.setenv("ECHOJOURNAL_STORE_DIR", "/from/env")
        monkeypatch.setenv("ECHOJOURNAL_MODEL", "opus")
        cfg = load_config(path)
        assert cfg.store.directory == "/from/env"
        assert cfg.generation.model == "opus"

    def test_latency_threshold(self, tmp_path, monkeypatch):
        monkeypatch.setenv("ECHOJOURNAL_LATENCY_THRESHOLD", "1.5")
        assert load_config(tmp_path / "none.toml").latency.threshold_seconds == 1.5

    def test_non_numeric_threshold_ignored(self, tmp_path, monkeypatch):
        monkeypatch.setenv("ECHOJOURNAL_LATENCY_THRESHOLD", "fast")
        assert load_config(tmp_path / "none.toml").latency.threshold_seconds == 4.0


class TestMergeCliOverrides:
    def test_none_values_are_ignored(self):
        cfg = merge_cli_overrides(EchoJournalConfig(), store_dir=None, model=None)
        assert cfg == EchoJournalConfig()

    def test_overrides_applied(self):
        cfg = merge_cli_overrides(
            EchoJournalConfig(),
            store_dir="/tmp/j",
            model="haiku",
            max_tags=4,
            latency_threshold=1.0,
            whisper_model="small",
        )
        assert cfg.store.directory == "/tmp/j"
        assert cfg.generation.model == "haiku"
        assert cfg.analysis.max_tags == 4
        assert cfg.latency.threshold_seconds == 1.0
        assert cfg.transcription.model_size == "small"

    def test_unknown_keys_ignored(self):
        cfg = merge_cli_overrides(EchoJournalConfig(), bogus="x")
        assert cfg == EchoJournalConfig()
