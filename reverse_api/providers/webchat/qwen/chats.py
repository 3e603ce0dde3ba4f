"""Qwen chat bookkeeping: model list, chat ids and the user id."""

import logging
import uuid
from typing import Any

import orjson
from pydantic import ValidationError

from ....core.exceptions import (
    AuthExpiredError,
    MalformedResponseError,
    ProviderApiError,
    ProviderResponseError,
)
from ...async_session import AsyncSessionManager
from ..auth import CredentialCache
from .constants import BASE_URL, PROVIDER, build_headers
from .models import Model

logger = logging.getLogger("reverse_api.providers.webchat")


def read_json(response: Any) -> dict[str, Any]:
    if response.status_code == 401:
        raise AuthExpiredError(PROVIDER)
    if not 200 <= response.status_code < 300:
        raise ProviderResponseError(PROVIDER, response.status_code, response.text)
    try:
        data = orjson.loads(response.content)
    except orjson.JSONDecodeError as e:
        raise MalformedResponseError(PROVIDER, "JSON body", response.text, cause=e)
    if not isinstance(data, dict):
        raise MalformedResponseError(PROVIDER, "JSON object", response.text)
    return data


class ChatManager:
    """
    Chat ids are cached per model for the lifetime of the client; every
    new conversation on the same model reuses the server-side chat.
    """

    def __init__(self, session: AsyncSessionManager, cache: CredentialCache):
        self.session = session
        self.cache = cache

    async def get_models(self, token: str) -> list[Model]:
        response = await self.session.get(
            f"{BASE_URL}/api/models", headers=build_headers(token)
        )
        data = read_json(response)
        try:
            return [Model.model_validate(item) for item in data.get("data") or []]
        except ValidationError as e:
            raise MalformedResponseError(PROVIDER, "model list", response.text, cause=e)

    async def _create_chat(self, token: str, model_id: str) -> str:
        body = {"chat": {"name": f"Chat {uuid.uuid4().hex[:8]}", "models": [model_id]}}
        response = await self.session.post(
            f"{BASE_URL}/api/v2/chats/new",
            headers=build_headers(token),
            data=orjson.dumps(body),
        )
        data = read_json(response)
        if not data.get("success"):
            raise ProviderApiError(PROVIDER, data.get("code"), f"chat creation: {response.text}")
        chat_id = (data.get("data") or {}).get("id")
        if not chat_id:
            raise MalformedResponseError(PROVIDER, "data.id", response.text)
        logger.debug(f"Created Qwen chat {chat_id} for {model_id}")
        return chat_id

    async def create_or_get_chat(self, token: str, model_id: str) -> str:
        return await self.cache.get_or_fetch(
            f"qwen:chat:{model_id}", lambda: self._create_chat(token, model_id)
        )

    async def get_user_id(self, token: str) -> str:
        """Account id from the settings endpoint; a random uuid when it is unavailable."""
        response = await self.session.get(
            f"{BASE_URL}/api/v1/users/user/settings", headers=build_headers(token)
        )
        if 200 <= response.status_code < 300:
            try:
                data = orjson.loads(response.content)
            except orjson.JSONDecodeError:
                data = None
            if isinstance(data, dict) and isinstance(data.get("id"), str):
                return data["id"]
        logger.debug("Qwen user settings unavailable, using a random user id")
        return str(uuid.uuid4())
