"""
WebChat Provider Base - Abstract base class for impersonating web-chat clients.

Pattern:
  1. Resolve a token (CredentialCache, shared by every call on this client)
  2. Produce request-authenticating material (handshake signature or PoW)
  3. Issue the request over a browser-impersonating curl_cffi session
  4. Feed the response through the provider's stream parser

Each instance owns its session, its cache and one asyncio.Lock. Calls on
the same instance serialise through that lock.
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from types import TracebackType
from typing import Any

import orjson

from ...core.config import ReverseApiConfig
from ...core.exceptions import (
    AuthExpiredError,
    MalformedResponseError,
    ProviderResponseError,
)
from ...core.retry import RetryStrategy
from ..async_session import AsyncSessionManager
from .auth import CredentialCache

logger = logging.getLogger("reverse_api.providers.webchat")


def between(text: str, start: str, end: str, provider_name: str = "webchat") -> str:
    """
    Text after the first ``start`` up to the next ``end``.

    A missing ``start`` is malformed; a missing ``end`` returns the rest.
    """
    _, sep, rest = text.partition(start)
    if not sep:
        raise MalformedResponseError(provider_name, f"delimiter {start!r}", text[:200])
    return rest.split(end, 1)[0]


class WebChatProvider(ABC):
    """Abstract base for web-chat clients."""

    PROVIDER_NAME: str = ""
    URL: str = ""
    DEFAULT_MODEL: str = ""
    MODELS: list[str] = []
    DEFAULT_HEADERS: dict[str, str] = {}

    def __init__(
        self,
        config: ReverseApiConfig | None = None,
        session: AsyncSessionManager | None = None,
        cache: CredentialCache | None = None,
    ):
        self.config = config or ReverseApiConfig()
        self.session = session or AsyncSessionManager(
            self.PROVIDER_NAME,
            impersonate=self.config.http.impersonate,
            timeout=self.config.http.timeout,
            proxy=self.config.http.proxy,
            headers=dict(self.DEFAULT_HEADERS),
            retry=RetryStrategy(self.config.retry),
        )
        self.cache = cache if cache is not None else CredentialCache()
        self._lock = asyncio.Lock()

    async def close(self) -> None:
        await self.session.close()

    async def __aenter__(self) -> "WebChatProvider":
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        await self.close()

    def _check_status(self, response: Any) -> None:
        """401 becomes AuthExpiredError, any other non-2xx ProviderResponseError."""
        status = response.status_code
        if status == 401:
            raise AuthExpiredError(self.PROVIDER_NAME)
        if not 200 <= status < 300:
            raise ProviderResponseError(self.PROVIDER_NAME, status, response.text)

    def _json(self, response: Any) -> Any:
        self._check_status(response)
        try:
            return orjson.loads(response.content)
        except orjson.JSONDecodeError as e:
            raise MalformedResponseError(
                self.PROVIDER_NAME, "JSON body", response.text, cause=e
            )

    def _between(self, text: str, start: str, end: str) -> str:
        return between(text, start, end, self.PROVIDER_NAME)

    @abstractmethod
    async def ask(self, message: str, **kwargs: Any) -> Any:
        """Send one conversational turn."""
        ...


__all__ = [
    "WebChatProvider",
    "between",
]
