"""Unified configuration loaded from .echojournal.toml, env vars, and CLI flags.

Loading order: defaults → TOML file → env vars → CLI flags.
"""

from __future__ import annotations

import logging
import os
import tomllib
from pathlib import Path

from pydantic import BaseModel, Field, field_validator

logger = logging.getLogger(__name__)

CONFIG_FILENAME = ".echojournal.toml"
CONFIG_SEARCH_PATHS = [
    Path("."),
]
GLOBAL_CONFIG_PATH = Path.home() / ".config" / "echojournal" / "config.toml"

DEFAULT_STOP_PHRASES = [
    "thank you for sharing",
    "that's all for now",
    "we've covered everything",
    "done reflecting",
    "wrap up",
]


class StoreConfig(BaseModel):
    """[store] section."""

    directory: str = "~/.echojournal"

    @property
    def path(self) -> Path:
        return Path(self.directory).expanduser()


class ConversationConfig(BaseModel):
    """[conversation] section."""

    stop_phrases: list[str] = Field(default_factory=lambda: list(DEFAULT_STOP_PHRASES))
    listen_delay_seconds: float = 0.5
    affordance_delay_seconds: float = 0.2

    @field_validator("stop_phrases")
    @classmethod
    def _lowercase_phrases(cls, value: list[str]) -> list[str]:
        return [p.strip().lower() for p in value if p.strip()]


class LatencyConfig(BaseModel):
    """[latency] section."""

    window_size: int = Field(default=3, ge=1)
    threshold_seconds: float = 4.0


class AnalysisConfig(BaseModel):
    """[analysis] section."""

    max_tags: int = Field(default=3, ge=1)


class GenerationConfig(BaseModel):
    """[generation] section."""

    model: str | None = None
    timeout: int = 120


class TranscriptionConfig(BaseModel):
    """[transcription] section."""

    model_size: str = "base"
    compute_type: str = "int8"
    language: str | None = None


class EchoJournalConfig(BaseModel):
    """Top-level configuration model."""

    store: StoreConfig = Field(default_factory=StoreConfig)
    conversation: ConversationConfig = Field(default_factory=ConversationConfig)
    latency: LatencyConfig = Field(default_factory=LatencyConfig)
    analysis: AnalysisConfig = Field(default_factory=AnalysisConfig)
    generation: GenerationConfig = Field(default_factory=GenerationConfig)
    transcription: TranscriptionConfig = Field(default_factory=TranscriptionConfig)


def load_config(path: str | Path | None = None) -> EchoJournalConfig:
    """Load configuration from a TOML file.

    Search order:
    1. Explicit path (if provided)
    2. .echojournal.toml in CWD
    3. ~/.config/echojournal/config.toml

    Then overlay environment variables.

    Args:
        path: Explicit path to a TOML file.

    Returns:
        Merged EchoJournalConfig.
    """
    data: dict[str, object] = {}

    if path is not None:
        toml_path = Path(path)
        if toml_path.exists():
            data = _load_toml(toml_path)
        else:
            logger.warning("Config file not found: %s", toml_path)
    else:
        for search_dir in CONFIG_SEARCH_PATHS:
            candidate = search_dir / CONFIG_FILENAME
            if candidate.exists():
                data = _load_toml(candidate)
                logger.info("Loaded config from %s", candidate)
                break
        if not data and GLOBAL_CONFIG_PATH.exists():
            data = _load_toml(GLOBAL_CONFIG_PATH)
            logger.info("Loaded config from %s", GLOBAL_CONFIG_PATH)

    try:
        config = EchoJournalConfig.model_validate(data) if data else EchoJournalConfig()
    except ValueError as exc:
        logger.warning("Invalid configuration, using defaults: %s", exc)
        config = EchoJournalConfig()

    return _apply_env_vars(config)


def merge_cli_overrides(config: EchoJournalConfig, **cli_kwargs: object) -> EchoJournalConfig:
    """Overlay explicitly-set CLI flags onto the config.

    Only overrides values where the CLI flag was provided (not None).
    """
    data = config.model_dump()

    mapping: dict[str, tuple[str, str]] = {
        "store_dir": ("store", "directory"),
        "model": ("generation", "model"),
        "max_tags": ("analysis", "max_tags"),
        "latency_threshold": ("latency", "threshold_seconds"),
        "whisper_model": ("transcription", "model_size"),
    }

    for key, value in cli_kwargs.items():
        if value is None:
            continue
        if key in mapping:
            section, field = mapping[key]
            data[section][field] = value

    return EchoJournalConfig.model_validate(data)


def _load_toml(path: Path) -> dict[str, object]:
    """Load a TOML file and return the data dict."""
    try:
        with open(path, "rb") as f:
            return tomllib.load(f)
    except (tomllib.TOMLDecodeError, OSError) as exc:
        logger.warning("Failed to parse %s: %s", path, exc)
        return {}


def _apply_env_vars(config: EchoJournalConfig) -> EchoJournalConfig:
    """Apply environment variable overrides to config."""
    data = config.model_dump()

    env_mapping: dict[str, tuple[str, str]] = {
        "ECHOJOURNAL_STORE_DIR": ("store", "directory"),
        "ECHOJOURNAL_MODEL": ("generation", "model"),
        "ECHOJOURNAL_WHISPER_MODEL": ("transcription", "model_size"),
    }

    for env_var, (section, field) in env_mapping.items():
        value = os.environ.get(env_var)
        if value is not None:
            data[section][field] = value

    threshold_raw = os.environ.get("ECHOJOURNAL_LATENCY_THRESHOLD")
    if threshold_raw is not None:
        try:
            data["latency"]["threshold_seconds"] = float(threshold_raw)
        except ValueError:
            logger.warning("Ignoring non-numeric ECHOJOURNAL_LATENCY_THRESHOLD=%r", threshold_raw)

    return EchoJournalConfig.model_validate(data)
