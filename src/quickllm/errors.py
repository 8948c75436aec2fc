"""Error taxonomy shared by providers, settings, and the orchestrator."""

from __future__ import annotations

from enum import StrEnum


class ErrorKind(StrEnum):
    CONFIGURATION = "configuration"
    VALIDATION = "validation"
    CONNECTIVITY = "connectivity"
    AUTH = "auth"
    RATE_LIMIT = "rate_limit"
    QUOTA = "quota"
    TIMEOUT = "timeout"
    UPSTREAM = "upstream"
    MODEL_NOT_FOUND = "model_not_found"
    PERSISTENCE = "persistence"


class QuickLLMError(Exception):
    """Base error carrying a user-facing message and an error kind."""

    kind: ErrorKind = ErrorKind.UPSTREAM

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def __str__(self) -> str:
        return self.message


class ConfigurationError(QuickLLMError):
    """Missing or unreadable credential, unknown provider or mode."""

    kind = ErrorKind.CONFIGURATION


class ValidationError(QuickLLMError):
    """Malformed input or credential format."""

    kind = ErrorKind.VALIDATION


class ProviderError(QuickLLMError):
    """Base for failures of a provider call."""

    def __init__(self, message: str, provider: str = ""):
        super().__init__(message)
        self.provider = provider


class ConnectivityError(ProviderError):
    kind = ErrorKind.CONNECTIVITY


class AuthError(ProviderError):
    kind = ErrorKind.AUTH


class RateLimitError(ProviderError):
    kind = ErrorKind.RATE_LIMIT


class QuotaError(ProviderError):
    kind = ErrorKind.QUOTA


class ProviderTimeoutError(ProviderError, TimeoutError):
    kind = ErrorKind.TIMEOUT


class UpstreamError(ProviderError):
    """Non-success response carrying provider-supplied detail."""

    kind = ErrorKind.UPSTREAM

    def __init__(self, message: str, provider: str = "", status_code: int | None = None):
        super().__init__(message, provider)
        self.status_code = status_code


class ModelNotFoundError(UpstreamError):
    kind = ErrorKind.MODEL_NOT_FOUND


class PersistenceWarning(Warning):
    """History or log write failed. Logged where it occurs, never raised further."""

    kind = ErrorKind.PERSISTENCE
