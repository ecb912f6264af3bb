"""
Vendor configuration and the configuration validator.
"""

from dataclasses import dataclass, field, replace
from enum import Enum
from types import MappingProxyType
from typing import Any, Iterable, Mapping, Optional

from integration_kit.core.config import get_settings

from .errors import ConfigurationError


class Environment(str, Enum):
    """Vendor environment tag."""
    SANDBOX = "sandbox"
    PRODUCTION = "production"


CONFIG_OPTION_NAMES = ("environment", "base_url", "test_mode", "timeout_ms", "webhook_secret")


@dataclass(frozen=True)
class VendorConfig:
    """
    Immutable configuration for one client instance.

    ``credentials`` holds the vendor's opaque secrets by name (for example
    ``secret_key`` or ``access_token``). ``test_mode`` left as None is treated
    as test mode: a client only reaches its live transport when ``test_mode``
    is explicitly False.
    """
    credentials: Mapping[str, str] = field(default_factory=dict, repr=False)
    environment: Optional[Environment] = None
    base_url: Optional[str] = None
    test_mode: Optional[bool] = None
    timeout_ms: Optional[int] = None
    webhook_secret: Optional[str] = field(default=None, repr=False)

    def __post_init__(self):
        settings = get_settings()
        object.__setattr__(self, "credentials", MappingProxyType(dict(self.credentials or {})))

        environment = self.environment or settings.default_environment
        try:
            environment = Environment(environment)
        except ValueError:
            raise ConfigurationError(
                f"environment must be 'sandbox' or 'production', got '{environment}'",
                missing_field="environment",
                error_code="invalid_environment",
            )
        object.__setattr__(self, "environment", environment)

        timeout_ms = settings.default_timeout_ms if self.timeout_ms is None else self.timeout_ms
        if isinstance(timeout_ms, bool) or not isinstance(timeout_ms, int) or timeout_ms <= 0:
            raise ConfigurationError(
                f"timeout_ms must be a positive integer, got {timeout_ms!r}",
                missing_field="timeout_ms",
                error_code="invalid_timeout",
            )
        object.__setattr__(self, "timeout_ms", timeout_ms)

        if self.base_url:
            object.__setattr__(self, "base_url", self.base_url.rstrip("/"))

    @classmethod
    def from_options(cls, **options: Any) -> "VendorConfig":
        """
        Build a config from flat keyword options.

        Known option names (environment, base_url, test_mode, timeout_ms,
        webhook_secret) populate the matching fields; every other keyword is
        treated as a credential.
        """
        credentials = dict(options.pop("credentials", None) or {})
        known = {name: options.pop(name) for name in CONFIG_OPTION_NAMES if name in options}
        credentials.update({name: value for name, value in options.items() if value is not None})
        return cls(credentials=credentials, **known)

    @property
    def is_test_mode(self) -> bool:
        return self.test_mode is not False

    @property
    def has_webhook_secret(self) -> bool:
        return bool(self.webhook_secret)

    @property
    def timeout_seconds(self) -> float:
        return self.timeout_ms / 1000

    def credential(self, name: str, default: Optional[str] = None) -> Optional[str]:
        return self.credentials.get(name, default)

    def with_options(self, **changes: Any) -> "VendorConfig":
        """Return a copy with the given fields replaced."""
        return replace(self, **changes)


def _is_blank(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, str):
        return value.strip() == ""
    return False


def validate_config(
    config: VendorConfig,
    required_fields: Iterable[str],
    vendor: Optional[str] = None,
) -> None:
    """
    Check that every required credential is present and non-empty.

    Args:
        config: Configuration to validate
        required_fields: Credential names the vendor requires
        vendor: Vendor display name used in the error message

    Raises:
        ConfigurationError: Naming the first missing field
    """
    label = vendor or "Vendor"
    if not isinstance(config, VendorConfig):
        raise ConfigurationError(
            f"{label} configuration must be a VendorConfig, got {type(config).__name__}",
            provider=vendor,
            error_code="invalid_config",
        )

    for field_name in required_fields:
        if _is_blank(config.credentials.get(field_name)):
            readable = field_name.replace("_", " ")
            raise ConfigurationError(
                f"{label} {readable} is required ({field_name})",
                missing_field=field_name,
                provider=vendor,
            )
