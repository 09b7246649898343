"""
PotionPlay Configuration

Pydantic models for every configurable concern, YAML loading, and
environment variable overrides.

Resolution order (later wins):
    1. Model defaults
    2. YAML file (explicit path, or the first discovered file)
    3. Environment variables named POTIONPLAY_<SECTION>_<FIELD>

Usage:
    from potionplay.config import load_config

    config = load_config()                     # auto-discover
    config = load_config("cauldron.yaml")      # explicit file
"""

from __future__ import annotations

import json
import os
import re
from pathlib import Path
from typing import Any, Dict, List, Literal, Optional, get_origin

import yaml
from pydantic import BaseModel, Field, ValidationError, field_validator

from potionplay.exceptions import ConfigurationError

__all__ = [
    "CameraConfig",
    "RelayConfig",
    "WakePhraseConfig",
    "SpeechConfig",
    "LocalVoiceConfig",
    "RecognitionConfig",
    "ConversationConfig",
    "PotionPlayConfig",
    "ENV_PREFIX",
    "get_config_paths",
    "load_config",
]

ENV_PREFIX = "POTIONPLAY"

DEFAULT_VOICE_CANDIDATES = ["aria", "alloy", "verse", "luna", "coral"]
DEFAULT_VOICE_RANKING = {"aria": 5, "alloy": 4, "verse": 3, "luna": 2, "coral": 1}

LogLevel = Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]


class CameraConfig(BaseModel):
    """Webcam settings."""
    enabled: bool = True
    device_index: int = Field(default=0, ge=0)
    width: int = Field(default=640, gt=0)
    height: int = Field(default=480, gt=0)
    jpeg_quality: float = Field(default=0.8, gt=0.0, le=1.0)


class RelayConfig(BaseModel):
    """HTTP relay endpoints for interpretation, conversation and speech."""
    base_url: str = "http://localhost:8888/.netlify/functions"
    interpret_path: str = "/interpret-image"
    conversation_path: str = "/conversation"
    tts_path: str = "/tts"
    request_timeout_sec: float = Field(default=30.0, gt=0.0)

    @field_validator("base_url")
    @classmethod
    def _strip_trailing_slash(cls, value: str) -> str:
        return value.rstrip("/")


class WakePhraseConfig(BaseModel):
    """Wake phrase detection and trigger gating."""
    enabled: bool = True
    phrase: str = "abra cadabra"
    variations: List[str] = Field(default_factory=lambda: ["abracadabra", "abra kadabra"])
    cooldown_sec: float = Field(default=12.0, ge=0.0)

    @field_validator("phrase")
    @classmethod
    def _phrase_not_blank(cls, value: str) -> str:
        if not re.search(r"\w", value):
            raise ValueError("wake phrase must contain at least one word")
        return value.strip()


class SpeechConfig(BaseModel):
    """Remote text-to-speech selection."""
    backend: Literal["relay", "openai"] = "relay"
    strategy: Literal["single", "fan_out"] = "fan_out"
    voice: Optional[str] = None
    voice_candidates: List[str] = Field(default_factory=lambda: list(DEFAULT_VOICE_CANDIDATES))
    voice_ranking: Dict[str, int] = Field(default_factory=lambda: dict(DEFAULT_VOICE_RANKING))
    format: Literal["mp3", "wav", "ogg"] = "wav"
    openai_model: str = "gpt-4o-mini-tts"


class LocalVoiceConfig(BaseModel):
    """Local speech synthesis used when remote speech fails."""
    enabled: bool = True
    rate: float = Field(default=0.8, gt=0.0, le=2.0)
    pitch: float = Field(default=1.1, gt=0.0, le=2.0)
    volume: float = Field(default=0.9, ge=0.0, le=1.0)
    voice: Optional[str] = None
    preferred_keywords: List[str] = Field(default_factory=lambda: ["female", "natural"])


class RecognitionConfig(BaseModel):
    """Speech recognition backend and session loop."""
    backend: Literal["console", "whisper"] = "console"
    language: str = "en-US"
    restart_delay_sec: float = Field(default=0.25, ge=0.0)
    error_backoff_sec: float = Field(default=1.0, ge=0.0)
    silence_timeout_sec: Optional[float] = Field(default=None, gt=0.0)
    whisper_model: str = "base"
    sample_rate: int = Field(default=16000, gt=0)
    energy_threshold: float = Field(default=0.01, gt=0.0)
    end_silence_sec: float = Field(default=1.0, gt=0.0)
    max_utterance_sec: float = Field(default=15.0, gt=0.0)


class ConversationConfig(BaseModel):
    """Conversation mode."""
    auto_start: bool = True


class PotionPlayConfig(BaseModel):
    """Root configuration."""
    camera: CameraConfig = Field(default_factory=CameraConfig)
    relay: RelayConfig = Field(default_factory=RelayConfig)
    wake: WakePhraseConfig = Field(default_factory=WakePhraseConfig)
    speech: SpeechConfig = Field(default_factory=SpeechConfig)
    local_voice: LocalVoiceConfig = Field(default_factory=LocalVoiceConfig)
    recognition: RecognitionConfig = Field(default_factory=RecognitionConfig)
    conversation: ConversationConfig = Field(default_factory=ConversationConfig)
    log_level: LogLevel = "INFO"
    log_file: Optional[str] = None


# =============================================================================
# Loading
# =============================================================================


def get_config_paths() -> List[Path]:
    """Config file discovery order; the first existing file wins."""
    return [
        Path("./potionplay.yaml"),
        Path.home() / ".potionplay" / "config.yaml",
        Path("/etc/potionplay/config.yaml"),
    ]


def _read_yaml(path: Path) -> Dict[str, Any]:
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigurationError(f"Invalid YAML in config file: {e}", config_file=str(path)) from e
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigurationError("Config file must contain a mapping", config_file=str(path))
    return data


def _parse_env_value(env_key: str, raw: str, annotation: Any) -> Any:
    """Split list and mapping overrides; scalars stay strings.

    Lists are comma separated. Mappings are either a JSON object or
    comma separated ``name:value`` pairs, e.g. ``nova:3,shimmer:2``.
    """
    origin = get_origin(annotation)
    if origin in (list, List):
        return [item.strip() for item in raw.split(",") if item.strip()]
    if origin not in (dict, Dict):
        return raw

    if raw.lstrip().startswith("{"):
        try:
            return json.loads(raw)
        except json.JSONDecodeError as e:
            raise ConfigurationError(f"{env_key} is not valid JSON: {e}", config_key=env_key) from e

    mapping: Dict[str, str] = {}
    for item in raw.split(","):
        if not item.strip():
            continue
        name, sep, value = item.partition(":")
        if not sep or not name.strip():
            raise ConfigurationError(
                f"{env_key} entries must look like name:value, got '{item.strip()}'",
                config_key=env_key,
            )
        mapping[name.strip()] = value.strip()
    return mapping


def _apply_env_overrides(data: Dict[str, Any]) -> Dict[str, Any]:
    """Overlay POTIONPLAY_<SECTION>_<FIELD> variables onto raw config data.

    Values stay strings; pydantic performs type coercion during validation.
    """
    for section_name, section_field in PotionPlayConfig.model_fields.items():
        section_model = section_field.annotation
        if not (isinstance(section_model, type) and issubclass(section_model, BaseModel)):
            env_key = f"{ENV_PREFIX}_{section_name.upper()}"
            if env_key in os.environ:
                data[section_name] = os.environ[env_key]
            continue

        for field_name, field_info in section_model.model_fields.items():
            env_key = f"{ENV_PREFIX}_{section_name.upper()}_{field_name.upper()}"
            if env_key not in os.environ:
                continue
            value = _parse_env_value(env_key, os.environ[env_key], field_info.annotation)
            section = data.setdefault(section_name, {})
            if not isinstance(section, dict):
                raise ConfigurationError(
                    f"Config section '{section_name}' must be a mapping",
                    config_key=section_name,
                )
            section[field_name] = value
    return data


def load_config(path: Optional[str | Path] = None) -> PotionPlayConfig:
    """Load configuration from YAML and the environment.

    Args:
        path: Explicit config file. When omitted, the first file from
            get_config_paths() that exists is used, otherwise defaults.

    Returns:
        Validated PotionPlayConfig

    Raises:
        ConfigurationError: File missing, malformed YAML, or invalid values
    """
    data: Dict[str, Any] = {}
    source: Optional[Path] = None

    if path is not None:
        source = Path(path)
        if not source.exists():
            raise ConfigurationError(f"Config file not found: {source}", config_file=str(source))
    else:
        for candidate in get_config_paths():
            if candidate.exists():
                source = candidate
                break

    if source is not None:
        data = _read_yaml(source)

    data = _apply_env_overrides(data)

    try:
        return PotionPlayConfig.model_validate(data)
    except ValidationError as e:
        raise ConfigurationError(
            f"Configuration validation failed: {e}",
            config_file=str(source) if source else None,
        ) from e
