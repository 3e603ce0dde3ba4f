"""
reverse_api core
================

Foundation shared by the signers and provider clients:

Exceptions:
    - ReverseApiError and the provider/handshake/signing taxonomy

Configuration:
    - ReverseApiConfig, ConfigLoader, load_config, configure_from_config

Retry:
    - RetryConfig, RetryStrategy, retry_on_unauthorized

Logging:
    - get_logger, configure_logging
"""

from .config import (
    CacheConfig,
    ConfigLoader,
    CredentialsConfig,
    HttpConfig,
    LoggingConfig,
    PowConfig,
    ReverseApiConfig,
    configure_from_config,
    load_config,
)
from .exceptions import (
    AuthExpiredError,
    ConfigLoadError,
    ConfigurationError,
    EmbeddedModuleError,
    HandshakeStateError,
    MalformedResponseError,
    PolicyRejectionError,
    ProviderApiError,
    ProviderError,
    ProviderNotFoundError,
    ProviderResponseError,
    RetryExhaustedError,
    ReverseApiError,
    SigningError,
    TransportError,
    UnsupportedAlgorithmError,
    is_recoverable,
    wrap_exception,
)
from .logging import configure_logging, get_logger, get_standard_logger, set_log_level
from .retry import RetryConfig, RetryStrategy, retry_on_unauthorized

__all__ = [
    # Config
    "CacheConfig",
    "ConfigLoader",
    "CredentialsConfig",
    "HttpConfig",
    "LoggingConfig",
    "PowConfig",
    "ReverseApiConfig",
    "configure_from_config",
    "load_config",
    # Exceptions
    "AuthExpiredError",
    "ConfigLoadError",
    "ConfigurationError",
    "EmbeddedModuleError",
    "HandshakeStateError",
    "MalformedResponseError",
    "PolicyRejectionError",
    "ProviderApiError",
    "ProviderError",
    "ProviderNotFoundError",
    "ProviderResponseError",
    "RetryExhaustedError",
    "ReverseApiError",
    "SigningError",
    "TransportError",
    "UnsupportedAlgorithmError",
    "is_recoverable",
    "wrap_exception",
    # Logging
    "configure_logging",
    "get_logger",
    "get_standard_logger",
    "set_log_level",
    # Retry
    "RetryConfig",
    "RetryStrategy",
    "retry_on_unauthorized",
]
