"""Application configuration loader.

Loads centralized configuration from data/config/app_config_v1.yaml,
falling back to built-in defaults when the file is missing.

Usage:
    from tailoredu.config.app_config import load_app_config, get_provider_config

    config = load_app_config()
    provider = get_provider_config("gateway")
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import structlog
import yaml

logger = structlog.get_logger(__name__)

# Config file path (relative to project root)
CONFIG_FILE = Path("data/config/app_config_v1.yaml")


@dataclass
class ProviderConfig:
    """Configuration for a single LLM provider."""

    base_url: str | None
    default_model: str
    api_key_env: str | None = None

    def get_api_key(self) -> str | None:
        """Get API key from environment variable."""
        if self.api_key_env:
            return os.environ.get(self.api_key_env)
        return None


@dataclass
class AIConfig:
    """Defaults for the AI-backed functions."""

    default_provider: str = "gateway"
    analysis_temperature: float = 0.3
    digest_temperature: float = 0.7


@dataclass
class BackendConfig:
    """Managed backend (Supabase) connection settings."""

    url_env: str = "SUPABASE_URL"
    service_key_env: str = "SUPABASE_SERVICE_ROLE_KEY"

    def get_url(self) -> str | None:
        return os.environ.get(self.url_env)

    def get_service_key(self) -> str | None:
        return os.environ.get(self.service_key_env)


@dataclass
class PersonalizationConfig:
    """Personalization generator settings."""

    generator: str = "rules"  # rules | llm
    default_interests: list[str] = field(
        default_factory=lambda: ["sports", "animals", "space"]
    )
    max_interests: int = 5


@dataclass
class CorsConfig:
    """CORS settings for browser callers."""

    allow_origins: list[str] = field(default_factory=lambda: ["*"])
    allow_headers: list[str] = field(
        default_factory=lambda: ["authorization", "x-client-info", "apikey", "content-type"]
    )


@dataclass
class AppConfig:
    """Application-wide configuration."""

    providers: dict[str, ProviderConfig] = field(default_factory=dict)
    ai: AIConfig = field(default_factory=AIConfig)
    backend: BackendConfig = field(default_factory=BackendConfig)
    personalization: PersonalizationConfig = field(default_factory=PersonalizationConfig)
    cors: CorsConfig = field(default_factory=CorsConfig)


# Module-level cache
_cached_config: AppConfig | None = None


def _get_defaults() -> dict[str, Any]:
    """Get default configuration values."""
    return {
        "providers": {
            "gateway": {
                "base_url": "https://ai.gateway.lovable.dev/v1",
                "default_model": "google/gemini-2.5-flash",
                "api_key_env": "LOVABLE_API_KEY",
            },
            "openai": {
                "base_url": "https://api.openai.com/v1",
                "default_model": "gpt-4o",
                "api_key_env": "OPENAI_API_KEY",
            },
            "lmstudio": {
                "base_url": "http://localhost:1234/v1",
                "default_model": "llama-3.2-3b-instruct",
                "api_key_env": None,
            },
        },
        "ai": {
            "default_provider": "gateway",
            "analysis_temperature": 0.3,
            "digest_temperature": 0.7,
        },
        "backend": {
            "url_env": "SUPABASE_URL",
            "service_key_env": "SUPABASE_SERVICE_ROLE_KEY",
        },
        "personalization": {
            "generator": "rules",
            "default_interests": ["sports", "animals", "space"],
            "max_interests": 5,
        },
        "cors": {
            "allow_origins": ["*"],
        },
    }


def _parse_config(data: dict[str, Any]) -> AppConfig:
    """Parse configuration dictionary into AppConfig object."""
    providers = {}
    for name, pconfig in data.get("providers", {}).items():
        providers[name] = ProviderConfig(
            base_url=pconfig.get("base_url"),
            default_model=pconfig.get("default_model", "default"),
            api_key_env=pconfig.get("api_key_env"),
        )

    ai_data = data.get("ai", {})
    ai = AIConfig(
        default_provider=ai_data.get("default_provider", "gateway"),
        analysis_temperature=ai_data.get("analysis_temperature", 0.3),
        digest_temperature=ai_data.get("digest_temperature", 0.7),
    )

    backend_data = data.get("backend", {})
    backend = BackendConfig(
        url_env=backend_data.get("url_env", "SUPABASE_URL"),
        service_key_env=backend_data.get("service_key_env", "SUPABASE_SERVICE_ROLE_KEY"),
    )

    pers_data = data.get("personalization", {})
    personalization = PersonalizationConfig(
        generator=pers_data.get("generator", "rules"),
        default_interests=pers_data.get(
            "default_interests", ["sports", "animals", "space"]
        ),
        max_interests=pers_data.get("max_interests", 5),
    )

    cors_data = data.get("cors", {})
    cors = CorsConfig(allow_origins=cors_data.get("allow_origins", ["*"]))
    if "allow_headers" in cors_data:
        cors.allow_headers = cors_data["allow_headers"]

    return AppConfig(
        providers=providers,
        ai=ai,
        backend=backend,
        personalization=personalization,
        cors=cors,
    )


def load_app_config(force_reload: bool = False) -> AppConfig:
    """Load application config, falling back to defaults.

    Args:
        force_reload: If True, ignore cached config and reload from file.

    Returns:
        AppConfig object with all settings.
    """
    global _cached_config

    if _cached_config is not None and not force_reload:
        return _cached_config

    data: dict[str, Any]

    if CONFIG_FILE.exists():
        logger.debug("loading_app_config", source=str(CONFIG_FILE))
        data = yaml.safe_load(CONFIG_FILE.read_text(encoding="utf-8")) or {}
    else:
        logger.info("using_default_config")
        data = _get_defaults()

    _cached_config = _parse_config(data)
    return _cached_config


def get_provider_config(provider: str) -> ProviderConfig | None:
    """Get configuration for a specific provider.

    Args:
        provider: Provider name (e.g., "gateway", "openai")

    Returns:
        ProviderConfig or None if provider not found.
    """
    config = load_app_config()
    return config.providers.get(provider)


def clear_config_cache() -> None:
    """Clear the configuration cache.

    Useful for testing or when config is modified at runtime.
    """
    global _cached_config
    _cached_config = None
