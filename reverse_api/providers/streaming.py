"""
Streaming Response Interpreter
==============================

Rebuilds one conversational turn from a phase-tagged ``data:`` event stream.

Each ``data: {json}`` line may carry:
- an ``error`` object (aborts the turn)
- ``response.created.response_id`` (first one wins)
- ``choices[].delta`` with an optional ``phase`` and ``content``

Routing of ``delta.content`` by the current phase:
- ``thinking``: appended to the thinking buffer
- ``web_search``: ``delta.extra.web_search_info`` replaces the search results
- ``image_gen``: replaces the answer (the payload is a complete URL)
- ``answer`` or any other tag without "thinking"/"search": appended to the answer

``[DONE]`` or the end of the byte stream finalises the turn.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, AsyncIterator

import orjson
from pydantic import BaseModel, ValidationError

from ..core.exceptions import ProviderApiError

logger = logging.getLogger("reverse_api.providers.streaming")

DATA_PREFIX = "data: "
DONE_SENTINEL = "[DONE]"

PHASE_THINKING = "thinking"
PHASE_WEB_SEARCH = "web_search"
PHASE_IMAGE_GEN = "image_gen"
PHASE_ANSWER = "answer"


class WebSearchInfo(BaseModel):
    url: str
    title: str
    snippet: str
    hostname: str | None = None
    hostlogo: str | None = None
    date: str = ""


@dataclass
class StreamingOutput:
    """The finished turn."""

    content: str
    response_id: str
    thinking_content: str | None = None
    web_search_results: list[WebSearchInfo] | None = None


@dataclass
class StreamingAccumulator:
    """Per-response buffers. Create one per HTTP response and drop it afterwards."""

    provider_name: str = "qwen"
    content: str = ""
    thinking_content: str = ""
    search_results: list[WebSearchInfo] | None = None
    current_phase: str = ""
    response_id: str | None = None
    done: bool = field(default=False)

    def feed_line(self, line: str) -> bool:
        """
        Consume one raw line. Returns True once the stream is finished.

        Lines without the data prefix, empty payloads and undecodable JSON
        are skipped.
        """
        if self.done:
            return True
        if not line.startswith(DATA_PREFIX):
            return False

        data = line[len(DATA_PREFIX) :].strip()
        if not data:
            return False
        if data == DONE_SENTINEL:
            self.done = True
            return True

        try:
            envelope = orjson.loads(data)
        except orjson.JSONDecodeError:
            logger.debug(f"Skipping undecodable stream line: {data[:80]}")
            return False
        if isinstance(envelope, dict):
            self.feed_envelope(envelope)
        return False

    def feed_envelope(self, envelope: dict[str, Any]) -> None:
        error = envelope.get("error")
        if isinstance(error, dict):
            raise ProviderApiError(
                self.provider_name,
                error.get("code") or "unknown",
                error.get("details") or "no details",
            )

        if self.response_id is None:
            created = envelope.get("response.created")
            if isinstance(created, dict) and isinstance(created.get("response_id"), str):
                self.response_id = created["response_id"]

        choices = envelope.get("choices")
        if not isinstance(choices, list):
            return
        for choice in choices:
            delta = choice.get("delta") if isinstance(choice, dict) else None
            if isinstance(delta, dict):
                self._apply_delta(delta)

    def _apply_delta(self, delta: dict[str, Any]) -> None:
        phase = delta.get("phase")
        if isinstance(phase, str):
            self.current_phase = phase

        text = delta.get("content")
        text = text if isinstance(text, str) else None
        phase = self.current_phase

        if phase == PHASE_THINKING:
            if text is not None:
                self.thinking_content += text
        elif phase == PHASE_WEB_SEARCH:
            self._apply_search_info(delta.get("extra"))
        elif phase == PHASE_IMAGE_GEN:
            if text:
                self.content = text
        elif phase == PHASE_ANSWER or ("thinking" not in phase and "search" not in phase):
            if text is not None:
                self.content += text

    def _apply_search_info(self, extra: Any) -> None:
        if not isinstance(extra, dict) or "web_search_info" not in extra:
            return
        raw = extra["web_search_info"]
        if not isinstance(raw, list):
            return
        try:
            self.search_results = [WebSearchInfo.model_validate(item) for item in raw]
        except ValidationError as e:
            logger.debug(f"Ignoring malformed web_search_info: {e}")

    def finish(self) -> StreamingOutput:
        return StreamingOutput(
            content=self.content,
            response_id=self.response_id or "",
            thinking_content=self.thinking_content or None,
            web_search_results=self.search_results,
        )


async def interpret_stream(
    lines: AsyncIterator[str], provider_name: str = "qwen"
) -> StreamingOutput:
    """Drive a fresh accumulator over ``lines`` and return the finished turn."""
    accumulator = StreamingAccumulator(provider_name=provider_name)
    async for line in lines:
        if accumulator.feed_line(line):
            break
    return accumulator.finish()
