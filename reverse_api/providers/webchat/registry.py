"""
WebChat Provider Registry
=========================

Provider factory and a one-shot helper.
"""

import logging
from typing import Any

from ...core.exceptions import ProviderNotFoundError
from .base import WebChatProvider
from .deepseek import DeepSeekWebChat
from .grok import GrokWebChat
from .qwen import QwenWebChat
from .zto import ZtoWebChat

logger = logging.getLogger("reverse_api.providers.webchat")

PROVIDERS: dict[str, type[WebChatProvider]] = {
    "grok": GrokWebChat,
    "deepseek": DeepSeekWebChat,
    "qwen": QwenWebChat,
    "zto": ZtoWebChat,
}


def available_providers() -> list[str]:
    return sorted(PROVIDERS)


def get_provider(provider_name: str, **kwargs: Any) -> WebChatProvider:
    """Build a new client; ``kwargs`` go to the provider's constructor."""
    provider_cls = PROVIDERS.get(provider_name.lower())
    if provider_cls is None:
        raise ProviderNotFoundError(provider_name, available_providers())
    logger.debug(f"Creating {provider_cls.__name__}")
    return provider_cls(**kwargs)


async def ask_once(provider_name: str, message: str, **kwargs: Any) -> Any:
    """Open a client, send one message, close the client."""
    async with get_provider(provider_name, **kwargs) as provider:
        return await provider.ask(message)
