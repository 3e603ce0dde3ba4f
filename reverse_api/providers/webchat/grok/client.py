"""
Grok WebChat Provider (grok.com)
================================

Anonymous Grok conversations.

Auth: none; an anonymous handshake signs every conversation request.
API:  POST /rest/app-chat/conversations/new and .../{id}/responses with x-statsig-id.
Body: newline-delimited JSON with tokens, the final message and ids.
"""

import logging
import uuid
from typing import Any

import orjson

from ....core.config import ReverseApiConfig
from ....core.exceptions import MalformedResponseError, PolicyRejectionError
from ....signing.keys import Keypair
from ...async_session import AsyncSessionManager
from ..auth import CredentialCache
from ..base import WebChatProvider
from .handshake import ANTI_BOT_MARKER, GrokHandshake, sentry_header
from .models import MODELS, GrokContinuation, GrokResponse, resolve_model
from .scripts import BASE_URL, ScriptCache, parse_page, resolve_actions

logger = logging.getLogger("reverse_api.providers.webchat")

NEW_CONVERSATION_PATH = "/rest/app-chat/conversations/new"
PAGE_HEADERS = {
    "accept": (
        "text/html,application/xhtml+xml,application/xml;q=0.9,image/avif,image/webp,"
        "image/apng,*/*;q=0.8,application/signed-exchange;v=b3;q=0.7"
    ),
    "accept-language": "de-DE,de;q=0.9,en-US;q=0.8,en;q=0.7",
    "cache-control": "no-cache",
}


def responses_path(conversation_id: str) -> str:
    return f"/rest/app-chat/conversations/{conversation_id}/responses"


def _dig(data: Any, *keys: str) -> Any:
    for key in keys:
        if not isinstance(data, dict):
            return None
        data = data.get(key)
    return data


def _first(result: Any, *keys: str) -> Any:
    """Look up ``keys`` under ``result.response`` first, then under ``result``."""
    value = _dig(result, "response", *keys)
    return value if value is not None else _dig(result, *keys)


def parse_conversation(text: str, conversation_id: str | None = None) -> dict[str, Any]:
    """
    Pull tokens and ids out of a conversation body.

    Returns a dict with ``response``, ``stream_response``, ``images``,
    ``conversation_id`` and ``parent_response_id``.
    """
    if ANTI_BOT_MARKER in text:
        raise PolicyRejectionError("grok", text)
    if "modelResponse" not in text:
        raise MalformedResponseError("grok", "modelResponse", text)

    tokens: list[str] = []
    message: str | None = None
    parent_response_id: str | None = None
    images: list[str] | None = None

    for line in text.splitlines():
        try:
            data = orjson.loads(line)
        except orjson.JSONDecodeError:
            continue
        result = data.get("result") if isinstance(data, dict) else None
        if not isinstance(result, dict):
            continue

        token = _first(result, "token")
        if isinstance(token, str):
            tokens.append(token)

        if message is None:
            value = _first(result, "modelResponse", "message")
            if isinstance(value, str):
                message = value

        if conversation_id is None:
            value = _dig(result, "conversation", "conversationId")
            if isinstance(value, str):
                conversation_id = value

        if parent_response_id is None:
            value = _first(result, "modelResponse", "responseId")
            if isinstance(value, str):
                parent_response_id = value

        if images is None:
            value = _first(result, "modelResponse", "generatedImageUrls")
            if isinstance(value, list):
                images = [url for url in value if isinstance(url, str)]

    return {
        "response": message,
        "stream_response": tokens,
        "images": images,
        "conversation_id": conversation_id,
        "parent_response_id": parent_response_id,
    }


class GrokWebChat(WebChatProvider):
    """
    Grok via grok.com, anonymous.

    A new conversation runs the full handshake (page load, script scan,
    three c-requests). A follow-up turn restores the session from the
    caller's ``GrokContinuation`` and re-runs the last two steps only.
    """

    PROVIDER_NAME = "grok"
    URL = BASE_URL
    DEFAULT_MODEL = "grok-3-auto"
    MODELS = list(MODELS)
    DEFAULT_HEADERS = {
        "user-agent": (
            "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
            "(KHTML, like Gecko) Chrome/140.0.0.0 Safari/537.36"
        ),
    }

    def __init__(
        self,
        model: str = "grok-3-auto",
        config: ReverseApiConfig | None = None,
        session: AsyncSessionManager | None = None,
        cache: CredentialCache | None = None,
        script_cache: ScriptCache | None = None,
    ):
        super().__init__(config, session, cache)
        self.model, self.model_mode, self.mode = resolve_model(model)
        self.script_cache = script_cache or ScriptCache(
            self.config.cache.grok_mapping_path,
            self.config.cache.offsets_mapping_path,
        )

    async def _new_handshake(self) -> tuple[GrokHandshake, list[str]]:
        response = await self.session.get(f"{BASE_URL}/c", headers=PAGE_HEADERS)
        self._check_status(response)
        page = parse_page(response.text)
        mapping = await resolve_actions(self.session, page.scripts, self.script_cache)

        handshake = GrokHandshake(
            self.session,
            Keypair.generate(),
            baggage=page.baggage,
            sentry_trace=page.sentry_trace,
            xsid_script=mapping.xsid_script,
            cache=self.script_cache,
        )
        return handshake, mapping.actions

    def _resumed_handshake(self, extra: GrokContinuation) -> GrokHandshake:
        self.session.update_cookies(extra.cookies)
        return GrokHandshake(
            self.session,
            Keypair.from_base64(extra.private_key),
            baggage=extra.baggage,
            sentry_trace=extra.sentry_trace,
            xsid_script=extra.xsid_script,
            cache=self.script_cache,
            anon_user_id=extra.anon_user,
        )

    def _new_payload(self, message: str) -> dict[str, Any]:
        return {
            "temporary": False,
            "modelName": self.model,
            "message": message,
            "fileAttachments": [],
            "imageAttachments": [],
            "disableSearch": False,
            "enableImageGeneration": True,
            "returnImageBytes": False,
            "returnRawGrokInXaiRequest": False,
            "enableImageStreaming": True,
            "imageGenerationCount": 2,
            "forceConcise": False,
            "toolOverrides": {},
            "enableSideBySide": True,
            "sendFinalMetadata": True,
            "isReasoning": False,
            "webpageUrls": [],
            "disableTextFollowUps": False,
            "responseMetadata": {"requestModelDetails": {"modelId": self.model}},
            "disableMemory": False,
            "forceSideBySide": False,
            "modelMode": self.model_mode,
            "isAsyncChat": False,
        }

    def _resume_payload(self, message: str, parent_response_id: str | None) -> dict[str, Any]:
        return {
            "message": message,
            "modelName": self.model,
            "parentResponseId": parent_response_id,
            "disableSearch": False,
            "enableImageGeneration": True,
            "imageAttachments": [],
            "returnImageBytes": False,
            "returnRawGrokInXaiRequest": False,
            "fileAttachments": [],
            "enableImageStreaming": True,
            "imageGenerationCount": 2,
            "forceConcise": False,
            "toolOverrides": {},
            "enableSideBySide": True,
            "sendFinalMetadata": True,
            "customPersonality": "",
            "isReasoning": False,
            "webpageUrls": [],
            "metadata": {
                "requestModelDetails": {"modelId": self.model},
                "request_metadata": {"model": self.model, "mode": self.mode},
            },
            "disableTextFollowUps": False,
            "disableArtifact": False,
            "isFromGrokFiles": False,
            "disableMemory": False,
            "forceSideBySide": False,
            "modelMode": self.model_mode,
            "isAsyncChat": False,
            "skipCancelCurrentInflightRequests": False,
            "isRegenRequest": False,
        }

    async def ask(
        self,
        message: str,
        extra_data: GrokContinuation | dict[str, Any] | None = None,
        **kwargs: Any,
    ) -> GrokResponse:
        """
        Send one turn. Pass the previous response's ``extra_data`` to continue.
        """
        if isinstance(extra_data, dict):
            extra_data = GrokContinuation.model_validate(extra_data)

        async with self._lock:
            if extra_data is None:
                handshake, actions = await self._new_handshake()
                await handshake.run(actions)
                conversation_id = None
                path = NEW_CONVERSATION_PATH
                payload = self._new_payload(message)
            else:
                if not extra_data.conversation_id:
                    raise MalformedResponseError(
                        self.PROVIDER_NAME, "conversationId in continuation"
                    )
                handshake = self._resumed_handshake(extra_data)
                actions = extra_data.actions
                await handshake.run(actions)
                conversation_id = extra_data.conversation_id
                path = responses_path(conversation_id)
                payload = self._resume_payload(message, extra_data.parent_response_id)

            headers = {
                "accept": "*/*",
                "content-type": "application/json",
                "baggage": handshake.baggage,
                "sentry-trace": sentry_header(handshake.sentry_trace),
                "x-statsig-id": handshake.sign(path, "POST"),
                "x-xai-request-id": str(uuid.uuid4()),
            }
            response = await self.session.post(
                f"{BASE_URL}{path}", headers=headers, data=orjson.dumps(payload)
            )
            text = response.text
            if ANTI_BOT_MARKER not in text:
                self._check_status(response)
            parsed = parse_conversation(text, conversation_id)

            continuation = GrokContinuation(
                anon_user=handshake.state.anon_user_id,
                cookies=self.session.cookies_dict(),
                actions=actions,
                xsid_script=handshake.xsid_script,
                baggage=handshake.baggage,
                sentry_trace=handshake.sentry_trace,
                conversation_id=parsed["conversation_id"],
                parent_response_id=parsed["parent_response_id"],
                private_key=handshake.keypair.private_key_b64,
            )

        logger.info(f"Grok turn complete ({len(parsed['stream_response'])} tokens)")
        return GrokResponse(
            response=parsed["response"],
            stream_response=parsed["stream_response"],
            images=parsed["images"],
            extra_data=continuation,
        )
