"""
Qwen WebChat Provider (chat.qwen.ai)
====================================

Auth: email/password sign-in (token cached for the client's lifetime) or
      a pre-issued bearer token.
API:  POST /api/v2/chat/completions?chat_id=... streaming phase-tagged
      ``data:`` lines, interpreted by ``providers.streaming``.
Extras: file upload to OSS, image generation (``t2i``) and polled video
      generation (``t2v``).
"""

import logging
from pathlib import Path
from typing import Any

import orjson

from ....core.config import ReverseApiConfig
from ....core.exceptions import (
    AuthExpiredError,
    ConfigurationError,
    MalformedResponseError,
    ProviderResponseError,
)
from ...async_session import AsyncSessionManager, iter_lines
from ...streaming import StreamingOutput, interpret_stream
from ..auth import CredentialCache
from ..base import WebChatProvider
from .chats import ChatManager, read_json
from .constants import BASE_URL, DEFAULT_MODEL, FAKE_HEADERS, PROVIDER, build_headers
from .conversation import build_completion_request
from .media import MediaGenerator, ProgressCallback
from .models import (
    CHAT_TYPE_IMAGE,
    CHAT_TYPE_SEARCH,
    CHAT_TYPE_TEXT,
    CHAT_TYPE_VIDEO,
    Model,
    ModelSelector,
    QwenContinuation,
    QwenFile,
    QwenResponse,
)
from .uploader import FileUploader

logger = logging.getLogger("reverse_api.providers.webchat")

DEFAULT_VIDEO_SIZE = "16:9"


class QwenWebChat(WebChatProvider):
    """
    Qwen via chat.qwen.ai.

    Chats are created once per model and reused. Pass a response's
    ``extra_data`` back to continue that conversation.
    """

    PROVIDER_NAME = PROVIDER
    URL = BASE_URL
    DEFAULT_MODEL = DEFAULT_MODEL
    MODELS = [DEFAULT_MODEL]
    DEFAULT_HEADERS = FAKE_HEADERS

    def __init__(
        self,
        email: str | None = None,
        password: str | None = None,
        token: str | None = None,
        config: ReverseApiConfig | None = None,
        session: AsyncSessionManager | None = None,
        cache: CredentialCache | None = None,
        media: MediaGenerator | None = None,
    ):
        super().__init__(config, session, cache)
        creds = self.config.credentials
        self.email = email or creds.qwen_email
        self.password = password or creds.qwen_password
        self._token = token or creds.qwen_token
        if not self._token and not (self.email and self.password):
            raise ConfigurationError(
                "Qwen needs a token or email and password",
                suggestions=[
                    "Pass token=... or email=/password=",
                    "Or set REVERSE_API_QWEN_TOKEN",
                ],
                recoverable=False,
            )
        self.chats = ChatManager(self.session, self.cache)
        self.uploader = FileUploader(self.session)
        self.media = media or MediaGenerator(self.session)

    @classmethod
    def with_token(cls, token: str, **kwargs: Any) -> "QwenWebChat":
        return cls(token=token, **kwargs)

    # === Auth ===

    async def _signin(self) -> str:
        response = await self.session.post(
            f"{BASE_URL}/api/v1/auths/signin",
            headers=build_headers(),
            data=orjson.dumps({"email": self.email, "password": self.password}),
        )
        if not 200 <= response.status_code < 300:
            raise ProviderResponseError(PROVIDER, response.status_code, response.text)
        data = read_json(response)
        token = data.get("token")
        if not isinstance(token, str) or not token:
            raise MalformedResponseError(PROVIDER, "token", response.text)
        logger.info("Signed in to Qwen")
        return token

    async def acquire_token(self) -> str:
        if self._token:
            return self._token
        return await self.cache.get_or_fetch(f"qwen:token:{self.email}", self._signin)

    # === Models ===

    async def get_models(self) -> list[Model]:
        return await self.chats.get_models(await self.acquire_token())

    async def supports_thinking(self, model_id: str) -> bool:
        return ModelSelector.supports_thinking(await self.get_models(), model_id)

    async def supports_search(self, model_id: str) -> bool:
        return ModelSelector.supports_search(await self.get_models(), model_id)

    async def thinking_budget(self, model_id: str) -> int | None:
        return ModelSelector.thinking_budget(await self.get_models(), model_id)

    async def models_with(self, capability: str) -> list[Model]:
        return ModelSelector.with_capability(await self.get_models(), capability)

    async def select_best_model(self, **requirements: bool) -> str:
        return ModelSelector.select_best_model(await self.get_models(), **requirements)

    # === Files ===

    async def upload_file(self, file_path: Path | str) -> QwenFile:
        token = await self.acquire_token()
        user_id = await self.chats.get_user_id(token)
        return await self.uploader.upload_file(token, file_path, user_id)

    # === Conversation ===

    async def _stream_completion(
        self, token: str, chat_id: str, body: dict[str, Any]
    ) -> StreamingOutput:
        async with self.session.stream(
            "POST",
            f"{BASE_URL}/api/v2/chat/completions?chat_id={chat_id}",
            headers=build_headers(token),
            data=orjson.dumps(body),
        ) as response:
            if response.status_code != 200:
                text = (await response.acontent()).decode("utf-8", errors="replace")
                if response.status_code == 401:
                    raise AuthExpiredError(PROVIDER)
                raise ProviderResponseError(PROVIDER, response.status_code, text)
            return await interpret_stream(iter_lines(response), PROVIDER)

    async def _prepare(
        self,
        extra_data: QwenContinuation | dict[str, Any] | None,
        model: str | None,
        files: list[QwenFile] | None = None,
    ) -> tuple[str, str, str, str | None]:
        """Token, model, chat id and parent id for one turn."""
        if isinstance(extra_data, dict):
            extra_data = QwenContinuation.model_validate(extra_data)
        token = await self.acquire_token()

        if model is None and extra_data is not None:
            model = extra_data.model_id
        if model is None and files:
            model = ModelSelector.select_for_files(
                await self.chats.get_models(token), files
            )
        model = model or DEFAULT_MODEL

        if extra_data is not None:
            return token, model, extra_data.chat_id, extra_data.parent_id
        return token, model, await self.chats.create_or_get_chat(token, model), None

    async def ask(
        self,
        message: str,
        extra_data: QwenContinuation | dict[str, Any] | None = None,
        model: str | None = None,
        files: list[QwenFile] | None = None,
        search_enabled: bool = False,
        thinking_enabled: bool = False,
        thinking_budget: int | None = None,
        **kwargs: Any,
    ) -> QwenResponse:
        """
        Send one turn.

        Args:
            message: User message
            extra_data: Continuation from a previous response
            model: Model id; chosen from the attached files when omitted
            files: Descriptors returned by ``upload_file``
            search_enabled: Use the ``search`` chat type
            thinking_enabled: Ask for reasoning output
            thinking_budget: Reasoning length cap, for models that accept one
        """
        async with self._lock:
            token, model, chat_id, parent_id = await self._prepare(extra_data, model, files)
            body = build_completion_request(
                message,
                model,
                chat_id,
                parent_id=parent_id,
                files=files,
                chat_type=CHAT_TYPE_SEARCH if search_enabled else CHAT_TYPE_TEXT,
                thinking_enabled=thinking_enabled,
                thinking_budget=thinking_budget,
            )
            output = await self._stream_completion(token, chat_id, body)

        return QwenResponse(
            content=output.content,
            response_id=output.response_id,
            chat_id=chat_id,
            model_id=model,
            parent_id=parent_id,
            web_search_results=output.web_search_results,
            thinking_content=output.thinking_content,
        )

    async def ask_question(self, message: str, model: str | None = None) -> str:
        """One-shot question; returns the answer text only."""
        result = await self.ask(message, model=model)
        return result.content

    # === Media ===

    async def generate_image(
        self,
        prompt: str,
        size: str | None = None,
        model: str | None = None,
        extra_data: QwenContinuation | dict[str, Any] | None = None,
    ) -> QwenResponse:
        """Text to image; ``content`` of the result is the image URL."""
        async with self._lock:
            token, model, chat_id, parent_id = await self._prepare(extra_data, model)
            body = build_completion_request(
                prompt, model, chat_id, parent_id=parent_id, chat_type=CHAT_TYPE_IMAGE, size=size
            )
            output = await self._stream_completion(token, chat_id, body)

        return QwenResponse(
            content=output.content,
            response_id=output.response_id,
            chat_id=chat_id,
            model_id=model,
            parent_id=parent_id,
        )

    async def generate_video(
        self,
        prompt: str,
        size: str | None = DEFAULT_VIDEO_SIZE,
        model: str | None = None,
        extra_data: QwenContinuation | dict[str, Any] | None = None,
        progress: ProgressCallback | None = None,
    ) -> QwenResponse:
        """Text to video; polls the task and returns the video URL as ``content``."""
        async with self._lock:
            token, model, chat_id, parent_id = await self._prepare(extra_data, model)
            body = build_completion_request(
                prompt,
                model,
                chat_id,
                parent_id=parent_id,
                chat_type=CHAT_TYPE_VIDEO,
                size=size or DEFAULT_VIDEO_SIZE,
                stream=False,
            )
            task_id, message_id, task_parent = await self.media.submit_video(
                token, chat_id, body
            )
            logger.info(f"Qwen video task {task_id} started")
            if progress is not None:
                progress("started", 0)
            url = await self.media.poll_task(token, task_id, progress)

        return QwenResponse(
            content=url,
            response_id=message_id,
            chat_id=chat_id,
            model_id=model,
            parent_id=task_parent,
        )

    async def download_media(self, url: str, output_path: Path | str) -> int:
        return await self.media.download_media(url, output_path)
