"""
DeepSeek WebChat Provider (chat.deepseek.com)
=============================================

Protocol: REST + custom SSE (text/event-stream).
Auth:     user token -> short-lived access token (/users/current), cached 1 h.
PoW:      DeepSeekHashV1, solved by the vendor's WASM module through wasmtime.
"""

import base64
import logging
import random
import string
import time
import uuid
from dataclasses import dataclass
from typing import Any

import orjson
from pydantic import BaseModel

from ...core.config import ReverseApiConfig
from ...core.exceptions import (
    ConfigurationError,
    MalformedResponseError,
    ProviderApiError,
    ProviderResponseError,
)
from ...signing.pow import PowChallenge, WasmPowSolver
from ..async_session import AsyncSessionManager, iter_lines, iter_sse
from .auth import CredentialCache
from .base import WebChatProvider

logger = logging.getLogger("reverse_api.providers.webchat")

ACCESS_TOKEN_TTL_SEC = 3600
COMPLETION_PATH = "/api/v0/chat/completion"

FAKE_HEADERS = {
    "Accept": "*/*",
    "Accept-Encoding": "gzip, deflate, br, zstd",
    "Accept-Language": "zh-CN,zh;q=0.9,en;q=0.8",
    "Origin": "https://chat.deepseek.com",
    "Pragma": "no-cache",
    "Priority": "u=1, i",
    "Referer": "https://chat.deepseek.com/",
    "Sec-Ch-Ua": '"Chromium";v="134", "Not:A-Brand";v="24", "Google Chrome";v="134"',
    "Sec-Ch-Ua-Mobile": "?0",
    "Sec-Ch-Ua-Platform": '"macOS"',
    "Sec-Fetch-Dest": "empty",
    "Sec-Fetch-Mode": "cors",
    "Sec-Fetch-Site": "same-origin",
    "User-Agent": (
        "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 "
        "(KHTML, like Gecko) Chrome/134.0.0.0 Safari/537.36"
    ),
    "X-App-Version": "20241129.1",
    "X-Client-Locale": "zh-CN",
    "X-Client-Platform": "web",
    "X-Client-Version": "1.0.0-always",
}


def generate_cookie(now: float | None = None) -> str:
    """Cookie string shaped like the one the web client carries."""
    now = time.time() if now is None else now
    seconds = int(now)
    sesid = "".join(random.choices(string.ascii_letters + string.digits, k=18))
    return (
        f"intercom-HWWAFSESTIME={int(now * 1000)}; HWWAFSESID={sesid}; "
        f"Hm_lvt_{uuid.uuid4().hex}={seconds},{seconds}; "
        f"Hm_lpvt_{uuid.uuid4().hex}={seconds}; "
        f"_frid={uuid.uuid4().hex}; _fr_ssid={uuid.uuid4().hex}; _fr_pvid={uuid.uuid4().hex}"
    )


def build_pow_header(challenge: PowChallenge, answer: float | None, target_path: str) -> str:
    """Build the x-ds-pow-response header value (base64-encoded JSON)."""
    if answer is not None and float(answer).is_integer():
        answer = int(answer)
    pow_response = {
        "algorithm": challenge.algorithm,
        "challenge": challenge.challenge,
        "salt": challenge.salt,
        "answer": answer,
        "signature": challenge.signature,
        "target_path": target_path,
    }
    return base64.b64encode(orjson.dumps(pow_response)).decode()


class DeepSeekContinuation(BaseModel):
    session_id: str
    message_id: str


@dataclass
class DeepSeekResponse:
    response: str | None
    extra_data: DeepSeekContinuation
    thinking: str | None = None


class DeepSeekWebChat(WebChatProvider):
    """
    DeepSeek via chat.deepseek.com.

    Every turn solves a fresh PoW challenge. The WASM module is loaded on
    first use and reused for the lifetime of the client.
    """

    PROVIDER_NAME = "deepseek"
    URL = "https://chat.deepseek.com"
    DEFAULT_MODEL = "deepseek"
    MODELS = ["deepseek", "deepseek-thinking"]
    DEFAULT_HEADERS = FAKE_HEADERS

    _BASE_API = "https://chat.deepseek.com/api/v0"

    def __init__(
        self,
        token: str | None = None,
        config: ReverseApiConfig | None = None,
        session: AsyncSessionManager | None = None,
        cache: CredentialCache | None = None,
        solver: WasmPowSolver | None = None,
    ):
        super().__init__(config, session, cache)
        self.token = token or self.config.credentials.deepseek_token
        if not self.token:
            raise ConfigurationError(
                "DeepSeek needs a user token",
                suggestions=["Pass token=... or set REVERSE_API_DEEPSEEK_TOKEN"],
                recoverable=False,
            )
        self._solver = solver

    @property
    def solver(self) -> WasmPowSolver:
        if self._solver is None:
            self._solver = WasmPowSolver(self.config.pow.wasm_path)
        return self._solver

    def _api_headers(self, access_token: str) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {access_token}",
            "Content-Type": "application/json",
            "Cookie": generate_cookie(),
        }

    def _biz_data(self, response: Any, what: str) -> Any:
        data = self._json(response)
        code = data.get("code") if isinstance(data, dict) else None
        if code not in (None, 0):
            raise ProviderApiError(self.PROVIDER_NAME, code, data.get("msg") or "Unknown error")
        biz_data = {}
        if isinstance(data, dict) and isinstance(data.get("data"), dict):
            biz_data = data["data"].get("biz_data") or {}
        value = biz_data.get(what)
        if not value:
            raise MalformedResponseError(self.PROVIDER_NAME, f"data.biz_data.{what}", response.text)
        return value

    async def _fetch_access_token(self) -> str:
        response = await self.session.get(
            f"{self._BASE_API}/users/current",
            headers={"Authorization": f"Bearer {self.token}"},
        )
        return self._biz_data(response, "token")

    async def acquire_token(self) -> str:
        return await self.cache.get_or_fetch(
            f"deepseek:{self.token}", self._fetch_access_token, ttl=ACCESS_TOKEN_TTL_SEC
        )

    async def create_session(self, access_token: str) -> str:
        response = await self.session.post(
            f"{self._BASE_API}/chat_session/create",
            headers=self._api_headers(access_token),
            data=orjson.dumps({"character_id": None}),
        )
        return self._biz_data(response, "id")

    async def get_challenge(
        self, access_token: str, target_path: str = COMPLETION_PATH
    ) -> PowChallenge:
        response = await self.session.post(
            f"{self._BASE_API}/chat/create_pow_challenge",
            headers=self._api_headers(access_token),
            data=orjson.dumps({"target_path": target_path}),
        )
        challenge = self._biz_data(response, "challenge")
        try:
            return PowChallenge.from_dict(challenge)
        except (KeyError, TypeError, ValueError) as e:
            raise MalformedResponseError(
                self.PROVIDER_NAME, "PoW challenge fields", response.text, cause=e
            )

    async def answer_challenge(
        self, challenge: PowChallenge, target_path: str = COMPLETION_PATH
    ) -> str:
        answer = await self.solver.solve_async(challenge)
        if answer is None:
            logger.warning("PoW module found no answer; sending null")
        return build_pow_header(challenge, answer, target_path)

    async def _read_stream(self, response: Any) -> tuple[str, str, str]:
        content: list[str] = []
        thinking: list[str] = []
        message_id = ""
        current_path: str | None = None

        async for event in iter_sse(iter_lines(response)):
            if event.is_close():
                break
            if not event.data:
                continue
            try:
                chunk = orjson.loads(event.data)
            except orjson.JSONDecodeError:
                continue
            if not isinstance(chunk, dict):
                continue

            if chunk.get("response_message_id") is not None:
                message_id = str(chunk["response_message_id"])

            # Chunks without "p" continue the last path seen
            if isinstance(chunk.get("p"), str):
                current_path = chunk["p"]

            value = chunk.get("v")
            if not isinstance(value, str) or not value:
                continue
            if current_path is None or "response/content" in current_path:
                content.append(value)
            elif "thinking_content" in current_path:
                thinking.append(value)

        return "".join(content), "".join(thinking), message_id

    async def ask(
        self,
        message: str,
        extra_data: DeepSeekContinuation | dict[str, Any] | None = None,
        thinking_enabled: bool = False,
        search_enabled: bool = False,
        **kwargs: Any,
    ) -> DeepSeekResponse:
        """Send one turn; pass the previous ``extra_data`` to continue the session."""
        if isinstance(extra_data, dict):
            extra_data = DeepSeekContinuation.model_validate(extra_data)

        async with self._lock:
            access_token = await self.acquire_token()
            if extra_data is not None:
                session_id = extra_data.session_id
            else:
                session_id = await self.create_session(access_token)

            challenge = await self.get_challenge(access_token)
            pow_header = await self.answer_challenge(challenge)

            payload = {
                "chat_session_id": session_id,
                "parent_message_id": extra_data.message_id if extra_data else None,
                "prompt": message,
                "ref_file_ids": [],
                "search_enabled": search_enabled,
                "thinking_enabled": thinking_enabled,
            }
            headers = {**self._api_headers(access_token), "X-Ds-Pow-Response": pow_header}

            async with self.session.stream(
                "POST",
                f"{self._BASE_API}/chat/completion",
                headers=headers,
                data=orjson.dumps(payload),
            ) as response:
                content_type = response.headers.get("content-type", "")
                if response.status_code != 200 or "text/event-stream" not in content_type:
                    body = (await response.acontent()).decode("utf-8", errors="replace")
                    raise ProviderResponseError(self.PROVIDER_NAME, response.status_code, body)
                content, thinking, message_id = await self._read_stream(response)

        return DeepSeekResponse(
            response=content,
            thinking=thinking or None,
            extra_data=DeepSeekContinuation(session_id=session_id, message_id=message_id),
        )

    async def ask_question(self, message: str) -> str:
        """One-shot question in a fresh session."""
        result = await self.ask(message)
        return result.response or ""
