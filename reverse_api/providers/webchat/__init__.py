"""
WebChat Providers - Browser-Impersonating Web Chat Clients
==========================================================

Multi-turn conversations with consumer chat front-ends over curl_cffi
sessions that present a real browser's TLS fingerprint.

Module Structure:
  - base.py: WebChatProvider ABC, shared helpers
  - auth.py: CredentialCache for tokens and chat/session ids
  - grok/: anonymous Grok (handshake, x-statsig-id signing)
  - deepseek.py: DeepSeek (access token, WASM proof-of-work)
  - qwen/: Qwen (sign-in, uploads, image and video generation)
  - zto.py: Z.ai GLM (guest token, body signature)
  - registry.py: provider factory
"""

from .auth import CachedCredential, CredentialCache
from .base import WebChatProvider, between
from .deepseek import DeepSeekContinuation, DeepSeekResponse, DeepSeekWebChat
from .grok import GrokContinuation, GrokResponse, GrokWebChat
from .qwen import QwenContinuation, QwenFile, QwenResponse, QwenWebChat
from .registry import PROVIDERS, ask_once, available_providers, get_provider
from .zto import ZtoResponse, ZtoWebChat, process_thinking_content

__all__ = [
    "CachedCredential",
    "CredentialCache",
    "DeepSeekContinuation",
    "DeepSeekResponse",
    "DeepSeekWebChat",
    "GrokContinuation",
    "GrokResponse",
    "GrokWebChat",
    "PROVIDERS",
    "QwenContinuation",
    "QwenFile",
    "QwenResponse",
    "QwenWebChat",
    "WebChatProvider",
    "ZtoResponse",
    "ZtoWebChat",
    "ask_once",
    "available_providers",
    "between",
    "get_provider",
    "process_thinking_content",
]
