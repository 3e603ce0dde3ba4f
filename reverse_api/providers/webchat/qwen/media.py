"""
Qwen video generation and media download.

Video generation is asynchronous on the server: the completion call
returns a task id, and the finished video URL arrives through
``/api/v1/tasks/status/{task_id}``.
"""

import asyncio
import logging
from pathlib import Path
from typing import Any, Awaitable, Callable

import orjson
from pydantic import ValidationError

from ....core.exceptions import (
    MalformedResponseError,
    ProviderApiError,
    ProviderError,
    ProviderResponseError,
)
from ....storage import atomic_write
from ...async_session import AsyncSessionManager
from .chats import read_json
from .constants import BASE_URL, PROVIDER, build_headers
from .models import TaskStatus

logger = logging.getLogger("reverse_api.providers.webchat")

POLL_INTERVAL_SEC = 1.0
MAX_POLL_ATTEMPTS = 300

ProgressCallback = Callable[[str, int], None]


def extract_task(data: dict[str, Any], body: str = "") -> tuple[str, str, str | None]:
    """``(task_id, message_id, parent_id)`` from a non-streamed ``t2v`` completion."""
    payload = data.get("data")
    if not isinstance(payload, dict):
        raise MalformedResponseError(PROVIDER, "data", body)
    messages = payload.get("messages") or []
    first = messages[0] if messages and isinstance(messages[0], dict) else {}
    wanx = (first.get("extra") or {}).get("wanx") or {}
    task_id = wanx.get("task_id")
    if not task_id:
        raise MalformedResponseError(PROVIDER, "data.messages[0].extra.wanx.task_id", body)
    return task_id, payload.get("message_id") or "", payload.get("parent_id")


class MediaGenerator:
    def __init__(
        self,
        session: AsyncSessionManager,
        poll_interval: float = POLL_INTERVAL_SEC,
        max_attempts: int = MAX_POLL_ATTEMPTS,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.session = session
        self.poll_interval = poll_interval
        self.max_attempts = max_attempts
        self._sleep = sleep

    async def submit_video(
        self, token: str, chat_id: str, body: dict[str, Any]
    ) -> tuple[str, str, str | None]:
        response = await self.session.post(
            f"{BASE_URL}/api/v2/chat/completions?chat_id={chat_id}",
            headers=build_headers(token),
            data=orjson.dumps(body),
        )
        return extract_task(read_json(response), response.text)

    async def poll_task(
        self, token: str, task_id: str, progress: ProgressCallback | None = None
    ) -> str:
        """
        Poll until the task finishes and return the media URL.

        Non-2xx polls are skipped. ``progress`` receives ``(status, percent)``.
        """
        url = f"{BASE_URL}/api/v1/tasks/status/{task_id}"
        report = progress or (lambda status, percent: None)

        for attempt in range(self.max_attempts):
            await self._sleep(self.poll_interval)
            response = await self.session.get(url, headers=build_headers(token, json_body=False))
            if not 200 <= response.status_code < 300:
                continue
            try:
                status = TaskStatus.model_validate_json(response.content)
            except ValidationError as e:
                raise MalformedResponseError(PROVIDER, "task status", response.text, cause=e)

            if status.task_status == "success":
                report("success", 100)
                logger.info(f"Qwen task {task_id} finished")
                return status.content
            if status.task_status == "failed":
                report("failed", 0)
                raise ProviderApiError(PROVIDER, "task_failed", status.message or task_id)
            if status.task_status == "running":
                report("running", attempt * 100 // self.max_attempts)

        raise ProviderApiError(
            PROVIDER, "task_timeout", f"task {task_id} unfinished after {self.max_attempts} polls"
        )

    async def download_media(self, url: str, output_path: Path | str) -> int:
        """Save ``url`` to ``output_path``; returns the byte count."""
        response = await self.session.get(url)
        if not 200 <= response.status_code < 300:
            raise ProviderResponseError(PROVIDER, response.status_code, response.text)
        content = response.content
        try:
            atomic_write(output_path, content, raise_errors=True)
        except OSError as e:
            raise ProviderError(
                message=f"Could not save media to {output_path}",
                details={"provider": PROVIDER, "path": str(output_path), "url": url},
                recoverable=False,
                cause=e,
            )
        logger.info(f"Downloaded {len(content)} bytes to {output_path}")
        return len(content)
