"""
Custom exception classes and error handling.

Every pipeline failure is classified into one of these before it reaches the
transport layer. The app renders them as ``{"error": detail}`` with the
exception's status code, so raw provider or database errors never leak.
"""
from fastapi import HTTPException, status
from typing import Optional, Dict, Any


class APIException(HTTPException):
    """Base API exception with consistent structure."""

    def __init__(
        self,
        status_code: int,
        detail: str,
        error_code: Optional[str] = None,
        headers: Optional[Dict[str, Any]] = None
    ):
        super().__init__(status_code=status_code, detail=detail, headers=headers)
        self.error_code = error_code


class AuthError(APIException):
    """No, invalid or expired session that could not be refreshed."""

    def __init__(self, detail: str = "Unauthorized"):
        super().__init__(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=detail,
            error_code="UNAUTHORIZED",
        )


class ValidationError(APIException):
    """Malformed request body or engine input."""

    def __init__(self, detail: str, field: Optional[str] = None):
        error_code = f"VALIDATION_ERROR_{field.upper()}" if field else "VALIDATION_ERROR"
        super().__init__(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"{field}: {detail}" if field else detail,
            error_code=error_code
        )
        self.field = field


class ConfigurationError(APIException):
    """A required setting is missing."""

    def __init__(self, setting: str, capability: Optional[str] = None):
        what = f"{capability} is not configured" if capability else "Missing configuration"
        super().__init__(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"{what}: {setting} is not set",
            error_code="CONFIGURATION_ERROR",
        )
        self.setting = setting


class ProviderError(APIException):
    """Generic inference provider failure (rate limit, timeout, bad response)."""

    DEFAULT_MESSAGE = "Failed to generate AI response"

    def __init__(self, detail: Optional[str] = None, error_code: str = "PROVIDER_ERROR"):
        super().__init__(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=detail or self.DEFAULT_MESSAGE,
            error_code=error_code,
        )


class ModelUnavailableError(ProviderError):
    """Provider rejected the configured model identifier."""

    MESSAGE = "AI model unavailable — check configuration"

    def __init__(self):
        super().__init__(detail=self.MESSAGE, error_code="MODEL_UNAVAILABLE")


class DataStoreError(APIException):
    """Data store read failure. Never exposes query details."""

    def __init__(self, detail: str = "Data store unavailable"):
        super().__init__(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=detail,
            error_code="DATA_STORE_ERROR",
        )


class HistoryUnavailableError(DataStoreError):
    """Training history could not be loaded for analysis."""

    def __init__(self):
        super().__init__(detail="Training history unavailable")
