"""Custom exception classes for the API.

Every failure category carries an HTTP status and a ``retryable`` hint so
clients can tell "try again" apart from "do not retry" and "fix configuration".
"""

from typing import Any


class APIError(Exception):
    """Base exception for API errors."""

    code: str = "API_ERROR"
    retryable: bool = False

    def __init__(self, message: str, status_code: int = 400, details: Any = None):
        self.message = message
        self.status_code = status_code
        self.details = details
        super().__init__(message)


class NotFoundError(APIError):
    """Resource not found."""

    code = "NOT_FOUND"

    def __init__(self, resource: str, resource_id: str):
        super().__init__(
            message=f"{resource} with id '{resource_id}' not found",
            status_code=404,
            details={"resource": resource, "id": resource_id},
        )


class ValidationError(APIError):
    """Bad size, disallowed mime type or signature mismatch."""

    code = "VALIDATION_ERROR"

    def __init__(self, message: str, details: Any = None):
        super().__init__(message=message, status_code=422, details=details)


class ProviderNotConfiguredError(APIError):
    """No usable inference backend is active."""

    code = "PROVIDER_NOT_CONFIGURED"

    def __init__(self, message: str = "No AI provider is active", details: Any = None):
        super().__init__(message=message, status_code=503, details=details)


class ProviderCallError(APIError):
    """Network failure, timeout or non-success response from the backend."""

    code = "PROVIDER_CALL_FAILED"
    retryable = True

    def __init__(
        self,
        message: str,
        provider: str = "unknown",
        status_code: int | None = None,
        timeout: bool = False,
        details: dict[str, Any] | None = None,
    ):
        self.provider = provider
        self.upstream_status = status_code
        self.timeout = timeout
        super().__init__(
            message=message,
            status_code=504 if timeout else 502,
            details={
                "provider": provider,
                "upstream_status": status_code,
                "timeout": timeout,
                **(details or {}),
            },
        )


class ProviderResponseError(APIError):
    """Backend answered but the payload does not fit the result schema."""

    code = "PROVIDER_RESPONSE_INVALID"
    retryable = True

    def __init__(self, message: str, provider: str = "unknown", details: Any = None):
        self.provider = provider
        super().__init__(
            message=message,
            status_code=502,
            details={"provider": provider, **(details or {})},
        )


class StorageError(APIError):
    """Blob write/read failure against the storage backend."""

    code = "STORAGE_ERROR"
    retryable = True

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__(message=message, status_code=503, details=details or {})
