"""Request bodies for ``/api/v2/chat/completions``."""

import time
import uuid
from typing import Any

from .models import CHAT_TYPE_TEXT, QwenFile


def feature_config(
    thinking_enabled: bool = False, thinking_budget: int | None = None
) -> dict[str, Any]:
    config: dict[str, Any] = {
        "thinking_enabled": thinking_enabled,
        "output_schema": "phase",
        "research_mode": "normal",
    }
    if thinking_budget is not None:
        config["thinking_budget"] = thinking_budget
    return config


def build_message(
    message: str,
    model: str,
    files: list[QwenFile] | None = None,
    parent_id: str | None = None,
    chat_type: str = CHAT_TYPE_TEXT,
    thinking_enabled: bool = False,
    thinking_budget: int | None = None,
    timestamp: int | None = None,
) -> dict[str, Any]:
    return {
        "fid": str(uuid.uuid4()),
        "parentId": parent_id,
        "childrenIds": [],
        "role": "user",
        "content": message,
        "user_action": "chat",
        "files": [f.to_payload() for f in files or []],
        "timestamp": int(time.time()) if timestamp is None else timestamp,
        "models": [model],
        "chat_type": chat_type,
        "feature_config": feature_config(thinking_enabled, thinking_budget),
        "extra": {"meta": {"subChatType": chat_type}},
        "sub_chat_type": chat_type,
    }


def build_completion_request(
    message: str,
    model: str,
    chat_id: str,
    parent_id: str | None = None,
    files: list[QwenFile] | None = None,
    chat_type: str = CHAT_TYPE_TEXT,
    thinking_enabled: bool = False,
    thinking_budget: int | None = None,
    size: str | None = None,
    stream: bool = True,
) -> dict[str, Any]:
    """
    Completion body. ``size`` applies to image and video generation only
    and is omitted when unset.
    """
    timestamp = int(time.time())
    body: dict[str, Any] = {
        "stream": stream,
        "incremental_output": True,
        "chat_id": chat_id,
        "chat_mode": "normal",
        "model": model,
        "parent_id": parent_id,
        "messages": [
            build_message(
                message,
                model,
                files,
                parent_id,
                chat_type,
                thinking_enabled,
                thinking_budget,
                timestamp,
            )
        ],
        "timestamp": timestamp,
    }
    if size is not None:
        body["size"] = size
    return body
