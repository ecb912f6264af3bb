"""
Integration Error Taxonomy

Every failure raised by the framework derives from IntegrationError and keeps
the original cause, both on the ``cause`` attribute and through exception
chaining.
"""

from typing import Any, Dict, Optional


class IntegrationError(Exception):
    """Base class for all integration client errors."""

    default_code = "integration_error"

    def __init__(
        self,
        message: str,
        error_code: Optional[str] = None,
        provider: Optional[str] = None,
        cause: Optional[BaseException] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message)
        self.error_message = message
        self.error_code = error_code or self.default_code
        self.provider = provider
        self.cause = cause
        self.details = details or {}


class ConfigurationError(IntegrationError):
    """A required configuration field is missing or invalid."""

    default_code = "configuration_error"

    def __init__(
        self,
        message: str,
        missing_field: Optional[str] = None,
        provider: Optional[str] = None,
        error_code: Optional[str] = None,
    ):
        super().__init__(message, error_code=error_code, provider=provider)
        self.missing_field = missing_field


class InitializationError(IntegrationError):
    """The readiness probe failed while initializing a client."""

    default_code = "initialization_failed"


class RequestError(IntegrationError):
    """A dispatched request failed on the live transport."""

    default_code = "request_failed"

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        vendor_message: Optional[str] = None,
        endpoint: Optional[str] = None,
        method: Optional[str] = None,
        provider: Optional[str] = None,
        cause: Optional[BaseException] = None,
        response_data: Any = None,
    ):
        error_code = f"http_{status_code}" if status_code is not None else None
        super().__init__(message, error_code=error_code, provider=provider, cause=cause)
        self.status_code = status_code
        self.vendor_message = vendor_message
        self.endpoint = endpoint
        self.method = method
        self.response_data = response_data


class WebhookError(IntegrationError):
    """An inbound webhook failed verification or could not be normalized."""

    default_code = "webhook_invalid"


class OperationError(IntegrationError):
    """A public operation failed; wraps the underlying cause with the operation name."""

    default_code = "operation_failed"

    def __init__(
        self,
        operation: str,
        cause: BaseException,
        provider: Optional[str] = None,
    ):
        super().__init__(
            f"{operation} failed: {cause}",
            error_code=getattr(cause, "error_code", None) or self.default_code,
            provider=provider,
            cause=cause,
        )
        self.operation = operation

    def root_cause(self) -> BaseException:
        """Follow nested operation errors down to the originating error."""
        cause = self.cause
        while isinstance(cause, OperationError):
            cause = cause.cause
        return cause
