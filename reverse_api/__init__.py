"""
reverse_api v0.4.0
==================

Web-chat clients that speak to Grok, DeepSeek, Qwen and Z.ai the way
their browser front-ends do.

Architecture:
    - signing: challenge keys, x-statsig-id, OSS upload signatures, WASM PoW
    - providers: impersonating HTTP sessions, stream interpretation, clients
    - core: errors, configuration, retry policy, logging
    - storage: atomic persistence of regenerable caches

Usage:
    from reverse_api import get_provider

    async with get_provider("grok") as grok:
        first = await grok.ask("Hello")
        second = await grok.ask("And then?", extra_data=first.extra_data)
"""

__version__ = "0.4.0"

# =============================================================================
# Core Imports
# =============================================================================
from .core import (
    AuthExpiredError,
    ConfigurationError,
    HandshakeStateError,
    MalformedResponseError,
    PolicyRejectionError,
    ProviderApiError,
    ProviderNotFoundError,
    ProviderResponseError,
    RetryExhaustedError,
    ReverseApiConfig,
    ReverseApiError,
    SigningError,
    TransportError,
    configure_from_config,
    configure_logging,
    get_logger,
    load_config,
)

# =============================================================================
# Provider Imports
# =============================================================================
from .providers import (
    DeepSeekWebChat,
    GrokWebChat,
    QwenWebChat,
    StreamingAccumulator,
    WebChatProvider,
    ZtoWebChat,
    get_provider,
    interpret_stream,
)

# =============================================================================
# Signing Imports
# =============================================================================
from .signing import Keypair, PowChallenge, WasmPowSolver, generate_sign, sign_upload

__all__ = [
    "__version__",
    # Core
    "AuthExpiredError",
    "ConfigurationError",
    "HandshakeStateError",
    "MalformedResponseError",
    "PolicyRejectionError",
    "ProviderApiError",
    "ProviderNotFoundError",
    "ProviderResponseError",
    "RetryExhaustedError",
    "ReverseApiConfig",
    "ReverseApiError",
    "SigningError",
    "TransportError",
    "configure_from_config",
    "configure_logging",
    "get_logger",
    "load_config",
    # Providers
    "DeepSeekWebChat",
    "GrokWebChat",
    "QwenWebChat",
    "StreamingAccumulator",
    "WebChatProvider",
    "ZtoWebChat",
    "get_provider",
    "interpret_stream",
    # Signing
    "Keypair",
    "PowChallenge",
    "WasmPowSolver",
    "generate_sign",
    "sign_upload",
]
