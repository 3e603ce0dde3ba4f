import traceback
from datetime import datetime
from typing import Any

# =============================================================================
# Base Exception
# =============================================================================


class ReverseApiError(Exception):
    """
    Base exception for every reverse_api failure.

    Carries:
    - a stable error code
    - structured details (status code, body fragment, ...)
    - suggestions for the caller
    - the wrapped cause, if any
    """

    error_code: str = "RAPI_000"
    error_category: str = "general"
    severity: str = "error"  # debug, info, warning, error, critical

    def __init__(
        self,
        message: str,
        details: dict[str, Any] | None = None,
        suggestions: list[str] | None = None,
        cause: Exception | None = None,
        recoverable: bool = True,
        context: dict[str, Any] | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.details = details or {}
        self.suggestions = suggestions or []
        self.cause = cause
        self.recoverable = recoverable
        self.context = context or {}
        self.timestamp = datetime.now()
        self.traceback = traceback.format_exc() if cause else None

    def to_dict(self) -> dict[str, Any]:
        """Serialize for logging and API responses."""
        return {
            "error_code": self.error_code,
            "error_category": self.error_category,
            "severity": self.severity,
            "message": self.message,
            "details": self.details,
            "suggestions": self.suggestions,
            "recoverable": self.recoverable,
            "timestamp": self.timestamp.isoformat(),
            "context": self.context,
            "cause": str(self.cause) if self.cause else None,
            "traceback": self.traceback,
        }

    def __str__(self) -> str:
        parts = [f"[{self.error_code}] {self.message}"]
        if self.details:
            parts.append(f"Details: {self.details}")
        if self.suggestions:
            parts.append(f"Suggestions: {', '.join(self.suggestions)}")
        return " | ".join(parts)


# =============================================================================
# Configuration Exceptions
# =============================================================================


class ConfigurationError(ReverseApiError):
    """Invalid or missing configuration."""

    error_code = "RAPI_CFG_001"
    error_category = "configuration"


class ConfigLoadError(ConfigurationError):
    """Configuration file could not be loaded."""

    error_code = "RAPI_CFG_002"

    def __init__(self, config_path: str, reason: str, **kwargs: Any) -> None:
        super().__init__(
            message=f"Failed to load configuration from '{config_path}'",
            details={"path": config_path, "reason": reason},
            suggestions=[
                "Check if the file exists",
                "Verify the file format (YAML/JSON)",
            ],
            **kwargs,
        )


# =============================================================================
# Provider Exceptions
# =============================================================================


class ProviderError(ReverseApiError):
    """Failure talking to a chat provider."""

    error_code = "RAPI_PRV_001"
    error_category = "provider"


class ProviderNotFoundError(ProviderError):
    """Unknown provider name."""

    error_code = "RAPI_PRV_002"

    def __init__(self, provider_name: str, available_providers: list[str], **kwargs: Any) -> None:
        super().__init__(
            message=f"Provider '{provider_name}' not found",
            details={"requested": provider_name, "available": available_providers},
            suggestions=[f"Use one of: {', '.join(available_providers)}"],
            recoverable=False,
            **kwargs,
        )


class TransportError(ProviderError):
    """Connection failure, timeout or retryable HTTP status."""

    error_code = "RAPI_PRV_003"

    def __init__(
        self,
        provider_name: str,
        reason: str,
        status_code: int | None = None,
        **kwargs: Any,
    ) -> None:
        details: dict[str, Any] = {"provider": provider_name, "reason": reason}
        if status_code is not None:
            details["status_code"] = status_code
        super().__init__(
            message=f"Transport failure for provider '{provider_name}': {reason}",
            details=details,
            suggestions=["Try again later", "Check proxy and network settings"],
            recoverable=True,
            **kwargs,
        )
        self.status_code = status_code


class ProviderResponseError(ProviderError):
    """Non-success HTTP status from a provider."""

    error_code = "RAPI_PRV_004"

    def __init__(
        self, provider_name: str, status_code: int, response_body: str, **kwargs: Any
    ) -> None:
        super().__init__(
            message=f"Provider '{provider_name}' returned error {status_code}",
            details={
                "provider": provider_name,
                "status_code": status_code,
                "response": response_body[:500],
            },
            suggestions=["Try with different parameters"],
            recoverable=False,
            **kwargs,
        )
        self.status_code = status_code


class PolicyRejectionError(ProviderError):
    """Request refused by the provider's anti-bot layer."""

    error_code = "RAPI_PRV_005"
    severity = "critical"

    def __init__(self, provider_name: str, response_body: str = "", **kwargs: Any) -> None:
        super().__init__(
            message=f"Request rejected by anti-bot rules of '{provider_name}'",
            details={"provider": provider_name, "response": response_body[:500]},
            suggestions=["Start a fresh handshake", "Use a different proxy"],
            recoverable=False,
            **kwargs,
        )


class ProviderApiError(ProviderError):
    """Provider reported an error inside an otherwise successful response."""

    error_code = "RAPI_PRV_006"

    def __init__(
        self, provider_name: str, code: str | int | None, message: str, **kwargs: Any
    ) -> None:
        super().__init__(
            message=f"{provider_name} API error ({code}): {message}",
            details={"provider": provider_name, "code": code},
            recoverable=False,
            **kwargs,
        )
        self.code = code


class AuthExpiredError(ProviderError):
    """Provider answered 401; the token must be refreshed."""

    error_code = "RAPI_PRV_007"

    def __init__(self, provider_name: str, **kwargs: Any) -> None:
        super().__init__(
            message=f"Token invalid or expired for provider '{provider_name}'",
            details={"provider": provider_name},
            suggestions=["Refresh the token"],
            recoverable=True,
            **kwargs,
        )


class MalformedResponseError(ProviderError):
    """An expected field, delimiter or index is missing from a response."""

    error_code = "RAPI_PRV_008"

    def __init__(self, provider_name: str, what: str, fragment: str = "", **kwargs: Any) -> None:
        super().__init__(
            message=f"Malformed response from '{provider_name}': {what}",
            details={"provider": provider_name, "missing": what, "response": fragment[:500]},
            recoverable=False,
            **kwargs,
        )


class RetryExhaustedError(ProviderError):
    """Retries ran out without a successful response."""

    error_code = "RAPI_PRV_009"
    severity = "critical"

    def __init__(self, attempts: int, last_error: str, **kwargs: Any) -> None:
        super().__init__(
            message=f"Gave up after {attempts} attempts",
            details={"attempts": attempts, "last_error": last_error},
            recoverable=False,
            **kwargs,
        )


# =============================================================================
# Handshake & Signing Exceptions
# =============================================================================


class HandshakeStateError(ReverseApiError):
    """Handshake step attempted out of order."""

    error_code = "RAPI_HSK_001"
    error_category = "handshake"

    def __init__(self, current: str, attempted: str, **kwargs: Any) -> None:
        super().__init__(
            message=f"Cannot run handshake step {attempted} from state {current}",
            details={"current": current, "attempted": attempted},
            recoverable=False,
            **kwargs,
        )


class SigningError(ReverseApiError):
    """Cryptographic or signature computation failure."""

    error_code = "RAPI_SIG_001"
    error_category = "signing"


class UnsupportedAlgorithmError(SigningError):
    """Proof-of-work challenge uses an unknown algorithm."""

    error_code = "RAPI_SIG_002"

    def __init__(self, algorithm: str, **kwargs: Any) -> None:
        super().__init__(
            message=f"Unsupported proof-of-work algorithm: {algorithm}",
            details={"algorithm": algorithm},
            recoverable=False,
            **kwargs,
        )


class EmbeddedModuleError(SigningError):
    """The WASM solver module failed to load or run."""

    error_code = "RAPI_SIG_003"
    severity = "critical"

    def __init__(self, reason: str, **kwargs: Any) -> None:
        super().__init__(
            message=f"Embedded proof-of-work module failed: {reason}",
            details={"reason": reason},
            suggestions=["Check the WASM module path and version"],
            recoverable=False,
            **kwargs,
        )


# =============================================================================
# Utility Functions
# =============================================================================


def wrap_exception(
    original: Exception,
    exception_class: type[ReverseApiError],
    message: str | None = None,
    **kwargs: Any,
) -> ReverseApiError:
    """Wrap a plain exception into a ReverseApiError subclass."""
    return exception_class(message=message or str(original), cause=original, **kwargs)


def is_recoverable(error: Exception) -> bool:
    if isinstance(error, ReverseApiError):
        return error.recoverable
    return True
