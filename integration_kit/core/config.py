from functools import lru_cache
from typing import List, Optional, Tuple, Type

from pydantic import Field, create_model, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


ALLOWED_LOG_LEVELS = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="INTEGRATION_KIT_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    app_name: str = Field(default="Integration Kit")
    environment: str = Field(default="development")
    log_level: str = Field(default="INFO")
    log_json: bool = Field(default=True, description="Render log lines as JSON (console renderer otherwise)")
    allowed_origins: List[str] = Field(default_factory=list, description="CORS origins allowed to call the webhook API")
    default_timeout_ms: int = Field(default=30000, description="Transport timeout used when a vendor config sets none")
    default_environment: str = Field(
        default="sandbox", description="Vendor environment used when a vendor config sets none"
    )

    @model_validator(mode="after")
    def check_values(self) -> "Settings":
        level = self.log_level.upper()
        if level not in ALLOWED_LOG_LEVELS:
            raise ValueError(f"log_level must be one of {sorted(ALLOWED_LOG_LEVELS)}, got '{self.log_level}'")
        self.log_level = level
        if self.default_timeout_ms <= 0:
            raise ValueError("default_timeout_ms must be positive")
        if self.default_environment not in {"sandbox", "production"}:
            raise ValueError(
                f"default_environment must be 'sandbox' or 'production', got '{self.default_environment}'"
            )
        return self


class VendorEnvSettings(BaseSettings):
    """
    Generic per-vendor settings read from ``<PREFIX>_*`` environment variables.

    Instantiate with ``_env_prefix`` set to the vendor's prefix, e.g.
    ``VendorEnvSettings(_env_prefix="STRIPE_")``. Credentials are added per
    vendor by ``vendor_env_settings``.
    """

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    environment: Optional[str] = None
    base_url: Optional[str] = None
    test_mode: Optional[bool] = None
    timeout_ms: Optional[int] = None
    webhook_secret: Optional[str] = None


@lru_cache(maxsize=None)
def _vendor_env_model(credential_fields: Tuple[str, ...]) -> Type[VendorEnvSettings]:
    fields = {name: (Optional[str], None) for name in credential_fields}
    return create_model("VendorCredentialSettings", __base__=VendorEnvSettings, **fields)


def vendor_env_settings(prefix: str, credential_fields: Tuple[str, ...]) -> VendorEnvSettings:
    """
    Read a vendor's options and credentials from the environment and ``.env``.

    Args:
        prefix: Variable prefix, e.g. ``"STRIPE_"``
        credential_fields: Credential names read as ``<PREFIX><NAME>``

    Returns:
        VendorEnvSettings: Settings whose dump also carries the credential fields
    """
    return _vendor_env_model(tuple(credential_fields))(_env_prefix=prefix)


@lru_cache(maxsize=None)
def get_settings() -> Settings:
    """
    Get cached settings instance.

    Returns:
        Settings: The cached settings instance
    """
    return Settings()


def clear_settings_cache() -> None:
    """Clear the cached settings instance so the next call re-reads the environment."""
    get_settings.cache_clear()
