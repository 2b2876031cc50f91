"""Configuration package for the TailorEDU service layer."""

from tailoredu.config.app_config import (
    AIConfig,
    AppConfig,
    BackendConfig,
    CorsConfig,
    PersonalizationConfig,
    ProviderConfig,
    get_provider_config,
    load_app_config,
)

__all__ = [
    "AIConfig",
    "AppConfig",
    "BackendConfig",
    "CorsConfig",
    "PersonalizationConfig",
    "ProviderConfig",
    "get_provider_config",
    "load_app_config",
]
