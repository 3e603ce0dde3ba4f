"""
Z.ai WebChat Provider (chat.z.ai)
=================================

GLM-4.6 via chat.z.ai, anonymous.

Auth: GET /api/v1/auths/ hands out a guest token; a 401 refreshes it.
API:  POST /api/chat/completions with X-Signature = sha256(body).
SSE:  OpenAI-style ``data:`` chunks, ``choices[].delta.content``.
"""

import hashlib
import logging
import time
from dataclasses import dataclass, field
from typing import Any

import orjson

from ...core.config import ReverseApiConfig
from ...core.exceptions import (
    AuthExpiredError,
    ProviderApiError,
    ProviderResponseError,
)
from ...core.retry import MAX_AUTH_REFRESHES, retry_on_unauthorized
from ..async_session import AsyncSessionManager, iter_lines
from .auth import CredentialCache
from .base import WebChatProvider

logger = logging.getLogger("reverse_api.providers.webchat")

TOKEN_KEY = "zto:anon"
DATA_PREFIX = "data: "
DONE_SENTINEL = "[DONE]"


def create_signature(body: bytes) -> str:
    """X-Signature header: lowercase hex SHA-256 of the exact request bytes."""
    return hashlib.sha256(body).hexdigest()


def generate_ids(now_ns: int | None = None) -> tuple[str, str]:
    """``(chat_id, message_id)`` derived from the wall clock."""
    now_ns = time.time_ns() if now_ns is None else now_ns
    return f"{now_ns}-{now_ns // 1_000_000_000}", str(now_ns)


def process_thinking_content(content: str) -> str:
    """Strip the ``<details>`` wrapper and quote markers from reasoning text."""
    result = content.replace("<details>", "").replace("</details>", "")
    if result.startswith("> "):
        result = result[2:]
    return result.replace("\n> ", "\n").strip()


@dataclass
class ZtoResponse:
    response: str
    messages: list[dict[str, str]] = field(default_factory=list)


class ZtoWebChat(WebChatProvider):
    """
    GLM via chat.z.ai with an anonymous guest token.

    Z.ai keeps no server-side history for guests, so context travels in
    the request: ``ZtoResponse.messages`` is the transcript to pass back.
    """

    PROVIDER_NAME = "zto"
    URL = "https://chat.z.ai"
    DEFAULT_MODEL = "GLM-4-6-API-V1"
    MODELS = ["GLM-4-6-API-V1"]
    DEFAULT_HEADERS = {
        "User-Agent": (
            "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
            "(KHTML, like Gecko) Chrome/140.0.0.0 Safari/537.36"
        ),
        "Accept": "*/*",
        "Accept-Language": "zh-CN,zh;q=0.9",
        "X-FE-Version": "prod-fe-1.0.94",
        "sec-ch-ua": '"Chromium";v="140", "Not=A?Brand";v="24", "Google Chrome";v="140"',
        "sec-ch-ua-mobile": "?0",
        "sec-ch-ua-platform": '"Windows"',
        "Origin": "https://chat.z.ai/",
        "Referer": "https://chat.z.ai/",
    }

    def __init__(
        self,
        config: ReverseApiConfig | None = None,
        session: AsyncSessionManager | None = None,
        cache: CredentialCache | None = None,
        max_refreshes: int = MAX_AUTH_REFRESHES,
    ):
        super().__init__(config, session, cache)
        self.max_refreshes = max_refreshes

    async def _fetch_anon_token(self) -> str:
        response = await self.session.get(f"{self.URL}/api/v1/auths/")
        data = self._json(response)
        token = data.get("token") if isinstance(data, dict) else None
        if not token:
            raise ProviderApiError(self.PROVIDER_NAME, "empty_token", "anonymous token is empty")
        logger.debug("Fetched Z.ai guest token")
        return token

    async def acquire_token(self) -> str:
        return await self.cache.get_or_fetch(TOKEN_KEY, self._fetch_anon_token)

    async def refresh_token(self) -> None:
        await self.cache.invalidate(TOKEN_KEY)
        await self.acquire_token()

    def _request_body(self, messages: list[dict[str, str]]) -> bytes:
        chat_id, message_id = generate_ids()
        return orjson.dumps(
            {
                "stream": True,
                "chat_id": chat_id,
                "id": message_id,
                "model": self.DEFAULT_MODEL,
                "messages": messages,
                "features": {"enable_thinking": False},
            }
        )

    async def _read_stream(self, response: Any) -> str:
        parts: list[str] = []
        async for line in iter_lines(response):
            if not line.startswith(DATA_PREFIX):
                continue
            data = line[len(DATA_PREFIX) :]
            if data == DONE_SENTINEL:
                break
            try:
                chunk = orjson.loads(data)
            except orjson.JSONDecodeError:
                continue
            choices = chunk.get("choices") if isinstance(chunk, dict) else None
            for choice in choices or []:
                delta = choice.get("delta") if isinstance(choice, dict) else None
                if isinstance(delta, dict) and isinstance(delta.get("content"), str):
                    parts.append(delta["content"])
        return "".join(parts)

    async def _call(self, messages: list[dict[str, str]]) -> str:
        token = await self.acquire_token()
        body = self._request_body(messages)
        headers = {
            "Authorization": f"Bearer {token}",
            "Content-Type": "application/json",
            "Connection": "keep-alive",
            "Sec-Fetch-Dest": "empty",
            "Sec-Fetch-Mode": "cors",
            "Sec-Fetch-Site": "same-origin",
            "X-Signature": create_signature(body),
        }
        async with self.session.stream(
            "POST", f"{self.URL}/api/chat/completions", headers=headers, data=body
        ) as response:
            if response.status_code == 401:
                raise AuthExpiredError(self.PROVIDER_NAME)
            if response.status_code != 200:
                text = (await response.acontent()).decode("utf-8", errors="replace")
                raise ProviderResponseError(self.PROVIDER_NAME, response.status_code, text)
            return await self._read_stream(response)

    async def ask(
        self,
        message: str,
        context: list[dict[str, str]] | None = None,
        **kwargs: Any,
    ) -> ZtoResponse:
        """Send ``message`` after the optional ``context`` transcript."""
        messages = [*(context or []), {"role": "user", "content": message}]
        async with self._lock:
            text = await retry_on_unauthorized(
                lambda: self._call(messages), self.refresh_token, self.max_refreshes
            )

        logger.info(f"Z.ai turn complete ({len(text)} chars)")
        return ZtoResponse(
            response=text,
            messages=[*messages, {"role": "assistant", "content": text}],
        )

    async def ask_question(self, question: str) -> str:
        return (await self.ask(question)).response

    async def ask_question_with_context(
        self, question: str, context: list[dict[str, str]]
    ) -> str:
        return (await self.ask(question, context)).response
