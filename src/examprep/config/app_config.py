"""Application settings read from ``{data_dir}/config/app_config_v1.yaml``.

Every top-level section in the file is optional and only overrides the
keys it names; anything left out keeps the dataclass default. The data
directory comes from ``EXAMPREP_DATA_DIR`` and defaults to ``./data``.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any

import structlog
import yaml

logger = structlog.get_logger(__name__)

# Environment variable that overrides the data directory
DATA_DIR_ENV = "EXAMPREP_DATA_DIR"

# Config file path (relative to the data directory)
CONFIG_FILE = Path("config/app_config_v1.yaml")


@dataclass
class ProviderConfig:
    """Endpoint, model and key variable of one OpenAI-compatible provider."""

    base_url: str | None
    default_model: str
    api_key_env: str | None = None

    def get_api_key(self) -> str | None:
        """Key from the configured environment variable, if any."""
        if self.api_key_env:
            return os.environ.get(self.api_key_env)
        return None


@dataclass
class LLMSettings:
    """Generation defaults shared by every provider."""

    temperature: float = 0.7
    max_tokens: int = 4096
    timeout: int = 120
    json_repair_retries: int = 1


@dataclass
class AdaptiveConfig:
    """Defaults for adaptive test sessions."""

    max_questions: int = 20
    min_questions: int = 5
    target_standard_error: float = 0.3
    stability_threshold: float = 0.1
    initial_difficulty: str = "intermediate"
    algorithm_type: str = "HYBRID"


@dataclass
class RecommendationConfig:
    """Default scoring weights for test recommendations."""

    weak_area_focus: float = 0.4
    journey_alignment: float = 0.25
    journey_progression: float = 0.15
    difficulty_progression: float = 0.1
    variety_bonus: float = 0.05
    freshness_bonus: float = 0.05
    use_llm: bool = True

    def weights(self) -> dict[str, float]:
        """Return the weights as a plain mapping."""
        return {
            "weak_area_focus": self.weak_area_focus,
            "journey_alignment": self.journey_alignment,
            "journey_progression": self.journey_progression,
            "difficulty_progression": self.difficulty_progression,
            "variety_bonus": self.variety_bonus,
            "freshness_bonus": self.freshness_bonus,
        }


@dataclass
class AppConfig:
    """All settings sections, as loaded by ``load_app_config``."""

    providers: dict[str, ProviderConfig] = field(default_factory=dict)
    default_provider: str = "lmstudio"
    llm: LLMSettings = field(default_factory=LLMSettings)
    adaptive: AdaptiveConfig = field(default_factory=AdaptiveConfig)
    recommendations: RecommendationConfig = field(default_factory=RecommendationConfig)
    paths: dict[str, str] = field(default_factory=dict)


DEFAULT_PROVIDERS: dict[str, dict[str, Any]] = {
    "lmstudio": {
        "base_url": "http://localhost:1234/v1",
        "default_model": "llama-3.2-3b-instruct",
        "api_key_env": None,
    },
    "openai": {
        "base_url": None,
        "default_model": "gpt-4o-mini",
        "api_key_env": "OPENAI_API_KEY",
    },
    "anthropic": {
        "base_url": "https://api.anthropic.com/v1/",
        "default_model": "claude-sonnet-4-20250514",
        "api_key_env": "ANTHROPIC_API_KEY",
    },
    "gemini": {
        "base_url": "https://generativelanguage.googleapis.com/v1beta/openai/",
        "default_model": "gemini-2.0-flash",
        "api_key_env": "GEMINI_API_KEY",
    },
}

DEFAULT_PATHS = {"db_file": "db/examprep.db"}

_SECTIONS = {
    "llm": LLMSettings,
    "adaptive": AdaptiveConfig,
    "recommendations": RecommendationConfig,
}

_cached_config: AppConfig | None = None


def get_data_dir() -> Path:
    return Path(os.environ.get(DATA_DIR_ENV, "data"))


def _build_section(name: str, cls: type, values: dict[str, Any]) -> Any:
    known = {f.name for f in fields(cls)}
    for key in values.keys() - known:
        logger.warning("config_key_ignored", section=name, key=key)
    return cls(**{k: v for k, v in values.items() if k in known})


def _build_config(raw: dict[str, Any]) -> AppConfig:
    provider_data = {**DEFAULT_PROVIDERS, **(raw.get("providers") or {})}
    providers = {
        name: ProviderConfig(
            base_url=entry.get("base_url"),
            default_model=entry.get("default_model", "default"),
            api_key_env=entry.get("api_key_env"),
        )
        for name, entry in provider_data.items()
    }
    sections = {name: _build_section(name, cls, raw.get(name) or {}) for name, cls in _SECTIONS.items()}

    return AppConfig(
        providers=providers,
        default_provider=raw.get("default_provider", "lmstudio"),
        paths={**DEFAULT_PATHS, **(raw.get("paths") or {})},
        **sections,
    )


def load_app_config(force_reload: bool = False) -> AppConfig:
    """Return the cached config, reading the YAML file on first use.

    A missing file yields the defaults.
    """
    global _cached_config
    if _cached_config is None or force_reload:
        path = get_data_dir() / CONFIG_FILE
        raw: dict[str, Any] = {}
        if path.exists():
            raw = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
            logger.debug("app_config_loaded", path=str(path), sections=sorted(raw))
        else:
            logger.info("app_config_defaults", path=str(path))
        _cached_config = _build_config(raw)
    return _cached_config


def get_provider_config(provider: str) -> ProviderConfig | None:
    """Settings for ``provider``, or None if it is not configured."""
    return load_app_config().providers.get(provider)


def clear_config_cache() -> None:
    global _cached_config
    _cached_config = None
