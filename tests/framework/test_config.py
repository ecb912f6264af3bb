"""
Tests for vendor configuration, validation and library settings.
"""

import pytest
from pydantic import ValidationError

from integration_kit.core.config import Settings, clear_settings_cache
from integration_kit.framework import ConfigurationError, Environment, VendorConfig, validate_config
from integration_kit.integrations.payments import StripeClient


class TestVendorConfig:
    """VendorConfig defaults and option handling."""

    def test_defaults_come_from_settings(self):
        config = VendorConfig(credentials={"api_key": "k"})
        assert config.environment is Environment.SANDBOX
        assert config.timeout_ms == 30000
        assert config.timeout_seconds == 30.0
        assert config.test_mode is None
        assert config.is_test_mode is True

    def test_only_explicit_false_leaves_test_mode(self):
        assert VendorConfig(test_mode=True).is_test_mode is True
        assert VendorConfig(test_mode=False).is_test_mode is False

    def test_from_options_splits_credentials(self):
        config = VendorConfig.from_options(
            api_key="k",
            account_id="a",
            environment="production",
            timeout_ms=5000,
            webhook_secret="whsec",
            base_url="https://example.test/",
        )
        assert dict(config.credentials) == {"api_key": "k", "account_id": "a"}
        assert config.environment is Environment.PRODUCTION
        assert config.timeout_ms == 5000
        assert config.has_webhook_secret
        assert config.base_url == "https://example.test"

    def test_credentials_are_read_only(self):
        config = VendorConfig(credentials={"api_key": "k"})
        with pytest.raises(TypeError):
            config.credentials["api_key"] = "other"

    def test_secrets_are_not_in_repr(self):
        config = VendorConfig(credentials={"api_key": "super-secret"}, webhook_secret="whsec_hidden")
        assert "super-secret" not in repr(config)
        assert "whsec_hidden" not in repr(config)

    def test_invalid_environment(self):
        with pytest.raises(ConfigurationError) as exc_info:
            VendorConfig(environment="staging")
        assert exc_info.value.error_code == "invalid_environment"
        assert exc_info.value.missing_field == "environment"

    @pytest.mark.parametrize("timeout", [0, -1, True, "30"])
    def test_invalid_timeout(self, timeout):
        with pytest.raises(ConfigurationError) as exc_info:
            VendorConfig(timeout_ms=timeout)
        assert exc_info.value.error_code == "invalid_timeout"

    def test_with_options_returns_copy(self):
        config = VendorConfig(credentials={"api_key": "k"})
        live = config.with_options(test_mode=False)
        assert live.is_test_mode is False
        assert config.is_test_mode is True


class TestValidateConfig:
    """Required credential validation."""

    def test_passes_when_all_present(self):
        validate_config(VendorConfig(credentials={"a": "1", "b": "2"}), ("a", "b"), "Acme")

    def test_names_first_missing_field(self):
        with pytest.raises(ConfigurationError) as exc_info:
            validate_config(VendorConfig(credentials={"b": "2"}), ("a", "b"), "Acme")
        assert exc_info.value.missing_field == "a"
        assert exc_info.value.provider == "Acme"
        assert "Acme" in exc_info.value.error_message

    @pytest.mark.parametrize("value", ["", "   ", None])
    def test_blank_values_count_as_missing(self, value):
        with pytest.raises(ConfigurationError) as exc_info:
            validate_config(VendorConfig(credentials={"a": value}), ("a",))
        assert exc_info.value.missing_field == "a"

    def test_rejects_non_config(self):
        with pytest.raises(ConfigurationError) as exc_info:
            validate_config({"a": "1"}, ("a",))
        assert exc_info.value.error_code == "invalid_config"


class TestSettings:
    """Library-wide settings."""

    def test_log_level_is_normalized(self):
        assert Settings(log_level="debug").log_level == "DEBUG"

    def test_unknown_log_level_rejected(self):
        with pytest.raises(ValidationError):
            Settings(log_level="chatty")

    def test_non_positive_timeout_rejected(self):
        with pytest.raises(ValidationError):
            Settings(default_timeout_ms=0)

    def test_environment_overrides_defaults(self, monkeypatch):
        monkeypatch.setenv("INTEGRATION_KIT_DEFAULT_TIMEOUT_MS", "5000")
        monkeypatch.setenv("INTEGRATION_KIT_DEFAULT_ENVIRONMENT", "production")
        clear_settings_cache()

        config = VendorConfig()
        assert config.timeout_ms == 5000
        assert config.environment is Environment.PRODUCTION


class TestFromEnv:
    """Building clients from <PREFIX>_* environment variables."""

    @pytest.fixture
    def stripe_env(self, monkeypatch):
        monkeypatch.setenv("STRIPE_SECRET_KEY", "sk_test_env")
        monkeypatch.setenv("STRIPE_PUBLISHABLE_KEY", "pk_test_env")
        monkeypatch.setenv("STRIPE_TEST_MODE", "false")
        monkeypatch.setenv("STRIPE_TIMEOUT_MS", "1500")
        monkeypatch.setenv("STRIPE_WEBHOOK_SECRET", "whsec_env")

    def test_reads_credentials_and_options(self, stripe_env):
        client = StripeClient.from_env()
        assert client.config.credential("secret_key") == "sk_test_env"
        assert client.config.credential("publishable_key") == "pk_test_env"
        assert client.config.is_test_mode is False
        assert client.config.timeout_ms == 1500
        assert client.config.webhook_secret == "whsec_env"

    def test_overrides_win(self, stripe_env):
        client = StripeClient.from_env(test_mode=True, timeout_ms=2500)
        assert client.config.is_test_mode is True
        assert client.config.timeout_ms == 2500

    def test_reads_dotenv_file(self, tmp_path, monkeypatch):
        for name in ("SECRET_KEY", "PUBLISHABLE_KEY", "TEST_MODE", "TIMEOUT_MS", "WEBHOOK_SECRET"):
            monkeypatch.delenv(f"STRIPE_{name}", raising=False)
        (tmp_path / ".env").write_text(
            "STRIPE_SECRET_KEY=sk_test_dotenv\n"
            "STRIPE_PUBLISHABLE_KEY=pk_test_dotenv\n"
            "STRIPE_TEST_MODE=false\n"
            "OTHER_VENDOR_API_KEY=ignored\n"
        )
        monkeypatch.chdir(tmp_path)

        client = StripeClient.from_env()

        assert client.config.credential("secret_key") == "sk_test_dotenv"
        assert client.config.credential("publishable_key") == "pk_test_dotenv"
        assert client.config.is_test_mode is False

    def test_environment_wins_over_dotenv_file(self, tmp_path, monkeypatch):
        (tmp_path / ".env").write_text("STRIPE_SECRET_KEY=sk_from_file\nSTRIPE_PUBLISHABLE_KEY=pk_from_file\n")
        monkeypatch.chdir(tmp_path)
        monkeypatch.setenv("STRIPE_SECRET_KEY", "sk_from_env")
        monkeypatch.delenv("STRIPE_PUBLISHABLE_KEY", raising=False)

        client = StripeClient.from_env()

        assert client.config.credential("secret_key") == "sk_from_env"
        assert client.config.credential("publishable_key") == "pk_from_file"

    def test_missing_credential_fails(self, monkeypatch):
        monkeypatch.delenv("STRIPE_SECRET_KEY", raising=False)
        monkeypatch.setenv("STRIPE_PUBLISHABLE_KEY", "pk_test_env")
        with pytest.raises(ConfigurationError) as exc_info:
            StripeClient.from_env()
        assert exc_info.value.missing_field == "secret_key"
