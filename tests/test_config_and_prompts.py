"""Tests for app configuration and the prompt registry."""

import pytest

from tailoredu.config import app_config
from tailoredu.config.app_config import (
    AppConfig,
    ProviderConfig,
    clear_config_cache,
    get_provider_config,
    load_app_config,
)
from tailoredu.prompts.registry import PROMPTS_DIR, clear_cache, get_prompt


class TestLoadAppConfig:
    """Tests for load_app_config."""

    def test_loads_yaml(self):
        config = load_app_config()
        assert isinstance(config, AppConfig)
        assert config.ai.default_provider == "gateway"
        assert config.personalization.generator == "rules"

    def test_is_cached(self):
        assert load_app_config() is load_app_config()

    def test_force_reload(self):
        first = load_app_config()
        assert load_app_config(force_reload=True) is not first

    def test_missing_file_uses_defaults(self, tmp_path, monkeypatch):
        monkeypatch.setattr(app_config, "CONFIG_FILE", tmp_path / "missing.yaml")
        clear_config_cache()

        config = load_app_config()

        assert set(config.providers) == {"gateway", "openai", "lmstudio"}
        assert config.ai.analysis_temperature == 0.3
        assert config.ai.digest_temperature == 0.7
        assert config.cors.allow_origins == ["*"]
        assert "authorization" in config.cors.allow_headers

    def test_partial_file(self, tmp_path, monkeypatch):
        path = tmp_path / "config.yaml"
        path.write_text(
            "ai:\n  default_provider: openai\npersonalization:\n  generator: llm\n",
            encoding="utf-8",
        )
        monkeypatch.setattr(app_config, "CONFIG_FILE", path)
        clear_config_cache()

        config = load_app_config()

        assert config.ai.default_provider == "openai"
        assert config.ai.digest_temperature == 0.7
        assert config.personalization.generator == "llm"
        assert config.personalization.max_interests == 5
        assert config.backend.url_env == "SUPABASE_URL"


class TestProviderAndBackendConfig:
    def test_gateway_provider(self, monkeypatch):
        monkeypatch.setenv("LOVABLE_API_KEY", "secret")
        provider = get_provider_config("gateway")
        assert isinstance(provider, ProviderConfig)
        assert provider.get_api_key() == "secret"

    def test_unknown_provider(self):
        assert get_provider_config("nowhere") is None

    def test_backend_credentials_from_env(self, monkeypatch):
        monkeypatch.setenv("SUPABASE_URL", "https://example.supabase.co")
        monkeypatch.setenv("SUPABASE_SERVICE_ROLE_KEY", "service-key")
        backend = load_app_config().backend
        assert backend.get_url() == "https://example.supabase.co"
        assert backend.get_service_key() == "service-key"


class TestPromptRegistry:
    """Tests for prompt loading and substitution."""

    @pytest.mark.parametrize(
        "key",
        [
            "analysis/system",
            "analysis/guidelines",
            "personalization/system",
            "personalization/user",
            *(f"digest/{variant}_{part}" for variant in ("teacher", "student", "parent") for part in ("system", "user")),
        ],
    )
    def test_every_template_loads(self, key):
        assert get_prompt(key).strip()

    def test_substitutes_variables(self):
        prompt = get_prompt("digest/student_user", class_name="Algebra I", total_students=12)
        assert '"Algebra I"' in prompt
        assert "12 students" in prompt
        assert "{class_name}" not in prompt

    def test_unknown_variables_ignored(self):
        prompt = get_prompt("digest/parent_system", not_there="x")
        assert prompt == get_prompt("digest/parent_system")

    def test_missing_prompt(self):
        with pytest.raises(FileNotFoundError):
            get_prompt("nonexistent/prompt")

    def test_uncached_matches_cached(self):
        clear_cache()
        assert get_prompt("analysis/guidelines") == get_prompt(
            "analysis/guidelines", use_cache=False
        )

    def test_templates_dir_exists(self):
        assert PROMPTS_DIR.is_dir()
