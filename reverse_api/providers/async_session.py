"""
Async Session Manager for Providers
====================================

curl_cffi AsyncSession wrapper shared by every web-chat client:
- Browser TLS impersonation (without it targets reject before any signature check)
- Lazy initialization
- Transport retry through RetryStrategy
- Line and SSE streaming

Usage:
    from reverse_api.providers.async_session import AsyncSessionManager

    async with AsyncSessionManager("deepseek") as session:
        response = await session.post(url, json=data)
        async with session.stream("POST", url, json=data) as response:
            async for line in iter_lines(response):
                print(line)
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass
from types import TracebackType
from typing import Any, AsyncGenerator, AsyncIterator, Awaitable, Callable

from curl_cffi import CurlError
from curl_cffi.requests import AsyncSession

from ..core.exceptions import TransportError
from ..core.retry import RetryStrategy

logger = logging.getLogger("reverse_api.providers.async_session")

SessionFactory = Callable[..., Any]


@dataclass
class SSEEvent:
    """Server-Sent Event."""

    event: str = ""
    data: str = ""
    id: str = ""

    def is_close(self) -> bool:
        return self.event == "close" or self.data == "[DONE]"


def is_retryable_status(status_code: int) -> bool:
    return status_code == 429 or status_code >= 500


async def iter_lines(response: Any) -> AsyncGenerator[str, None]:
    """Decode a streaming response line by line, without trailing newlines."""
    async for raw in response.aiter_lines():
        if isinstance(raw, bytes):
            line = raw.decode("utf-8", errors="replace")
        else:
            line = str(raw)
        yield line.rstrip("\n\r")


async def iter_sse(lines: AsyncIterator[str]) -> AsyncGenerator[SSEEvent, None]:
    """Group raw lines into SSE events. A blank line terminates an event."""
    current = SSEEvent()
    async for line in lines:
        if not line:
            if current.data or current.event:
                yield current
                current = SSEEvent()
            continue

        if line.startswith(":"):
            continue

        if line.startswith("event:"):
            current.event = line[6:].strip()
        elif line.startswith("data:"):
            data_content = line[5:].lstrip(" ")
            current.data = f"{current.data}\n{data_content}" if current.data else data_content
        elif line.startswith("id:"):
            current.id = line[3:].strip()
        else:
            current.data = f"{current.data}\n{line}" if current.data else line

    if current.data or current.event:
        yield current


class AsyncSessionManager:
    """
    Manages a curl_cffi AsyncSession for one provider client.

    Attributes:
        provider_name: Used in errors and logs
        impersonate: Browser to impersonate (default: chrome)
        timeout: Request timeout in seconds
        proxy: Optional proxy URL
        retry: Backoff policy for transport failures and 429/5xx

    Tests pass ``session_factory`` to replace the real AsyncSession.
    """

    def __init__(
        self,
        provider_name: str,
        impersonate: str = "chrome",
        timeout: float = 120.0,
        proxy: str | None = None,
        headers: dict[str, str] | None = None,
        cookies: dict[str, str] | None = None,
        retry: RetryStrategy | None = None,
        session_factory: SessionFactory | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.provider_name = provider_name
        self.impersonate = impersonate
        self.timeout = timeout
        self.proxy = proxy
        self.default_headers = dict(headers or {})
        self.default_cookies = dict(cookies or {})
        self.retry = retry or RetryStrategy()

        self._session_factory = session_factory or AsyncSession
        self._sleep = sleep
        self._session: Any = None
        self._closed = False

    async def _ensure_session(self) -> Any:
        """Ensure session is initialized."""
        if self._session is None or self._closed:
            self._session = self._session_factory(
                impersonate=self.impersonate,
                proxy=self.proxy,
                timeout=self.timeout,
                headers=self.default_headers,
                cookies=self.default_cookies,
            )
            self._closed = False
        return self._session

    async def close(self) -> None:
        """Close the session."""
        if self._session and not self._closed:
            try:
                await self._session.close()
            except CurlError as e:
                logger.debug(f"Error closing session: {e}")
            finally:
                self._closed = True
                self._session = None

    async def __aenter__(self) -> "AsyncSessionManager":
        await self._ensure_session()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        await self.close()

    async def _send_once(self, method: str, url: str, **kwargs: Any) -> Any:
        session = await self._ensure_session()
        try:
            response = await session.request(method.upper(), url, **kwargs)
        except CurlError as e:
            raise TransportError(self.provider_name, str(e), cause=e)

        if is_retryable_status(response.status_code):
            if kwargs.get("stream"):
                await response.aclose()
            raise TransportError(
                self.provider_name,
                f"HTTP {response.status_code} from {url}",
                status_code=response.status_code,
            )
        return response

    async def request(self, method: str, url: str, **kwargs: Any) -> Any:
        """
        Make an async HTTP request with retry logic.

        Connection errors and 429/5xx answers are retried with backoff; when
        retries run out the last ``TransportError`` propagates. Any other
        status is returned for the caller to interpret.
        """

        async def attempt() -> Any:
            return await self._send_once(method, url, **kwargs)

        return await self.retry.execute(attempt, sleep=self._sleep)

    async def get(self, url: str, **kwargs: Any) -> Any:
        return await self.request("GET", url, **kwargs)

    async def post(self, url: str, **kwargs: Any) -> Any:
        return await self.request("POST", url, **kwargs)

    async def put(self, url: str, **kwargs: Any) -> Any:
        return await self.request("PUT", url, **kwargs)

    @asynccontextmanager
    async def stream(self, method: str, url: str, **kwargs: Any) -> AsyncGenerator[Any, None]:
        """
        Open a streaming response; it is closed when the block exits.

        Only opening the stream is retried. A failure mid-body surfaces as
        ``TransportError`` without a retry, since the turn is already partly
        consumed.
        """
        kwargs["stream"] = True
        response = await self.request(method, url, **kwargs)
        try:
            yield response
        except CurlError as e:
            raise TransportError(self.provider_name, f"stream interrupted: {e}", cause=e)
        finally:
            await response.aclose()

    def update_headers(self, headers: dict[str, str]) -> None:
        """Update default headers."""
        self.default_headers.update(headers)
        if self._session:
            self._session.headers.update(headers)

    def update_cookies(self, cookies: dict[str, str]) -> None:
        """Update default cookies."""
        self.default_cookies.update(cookies)
        if self._session:
            self._session.cookies.update(cookies)

    def cookies_dict(self) -> dict[str, str]:
        """Current cookie jar as a plain dict (for continuation data)."""
        if self._session is None:
            return dict(self.default_cookies)
        return {**self.default_cookies, **dict(self._session.cookies.items())}
