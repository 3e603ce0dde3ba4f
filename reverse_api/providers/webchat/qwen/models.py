"""
Qwen wire models and model selection.

Pydantic models validate the JSON the web backend returns; unknown fields
are ignored so new server-side keys do not break parsing.
"""

from dataclasses import dataclass
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from ...streaming import WebSearchInfo
from .constants import DEFAULT_MODEL

CHAT_TYPE_TEXT = "t2t"
CHAT_TYPE_SEARCH = "search"
CHAT_TYPE_IMAGE = "t2i"
CHAT_TYPE_VIDEO = "t2v"


class ModelCapabilities(BaseModel):
    vision: bool = False
    document: bool = False
    video: bool = False
    audio: bool = False
    citations: bool = False
    thinking: bool = False
    thinking_budget: bool = False


class ModelMeta(BaseModel):
    description: str = ""
    short_description: str = ""
    capabilities: ModelCapabilities = Field(default_factory=ModelCapabilities)
    chat_type: list[str] = Field(default_factory=list)
    modality: list[str] = Field(default_factory=list)
    max_context_length: int = 0
    max_generation_length: int = 0
    max_thinking_generation_length: int = 0


class ModelInfo(BaseModel):
    id: str
    name: str = ""
    meta: ModelMeta = Field(default_factory=ModelMeta)


class Model(BaseModel):
    id: str
    name: str = ""
    object: str = "model"
    owned_by: str = ""
    info: ModelInfo | None = None

    @property
    def capabilities(self) -> ModelCapabilities | None:
        return self.info.meta.capabilities if self.info else None

    @property
    def supports_search(self) -> bool:
        return bool(self.info and CHAT_TYPE_SEARCH in self.info.meta.chat_type)


class StsTokenData(BaseModel):
    """STS credentials and the object location for one upload."""

    access_key_id: str
    access_key_secret: str
    security_token: str
    file_url: str
    file_path: str
    file_id: str
    bucketname: str
    region: str
    endpoint: str


class FileMeta(BaseModel):
    name: str
    content_type: str
    size: int


class FileObject(BaseModel):
    id: str
    filename: str
    user_id: str
    created_at: int
    update_at: int
    data: dict[str, Any] = Field(default_factory=dict)
    hash: str | None = None
    meta: FileMeta


class QwenFile(BaseModel):
    """File descriptor attached to a chat message after upload."""

    model_config = ConfigDict(populate_by_name=True)

    type: str
    file: FileObject
    id: str
    url: str
    name: str
    collection_name: str = ""
    progress: int = 0
    status: str = "uploaded"
    green_net: str = Field(default="success", alias="greenNet")
    size: int
    error: str = ""
    item_id: str = Field(alias="itemId")
    file_type: str
    show_type: str = Field(alias="showType")
    file_class: str
    upload_task_id: str = Field(alias="uploadTaskId")

    def to_payload(self) -> dict[str, Any]:
        payload = self.model_dump(by_alias=True, exclude_none=True)
        for key in ("collection_name", "error"):
            if not payload.get(key):
                payload.pop(key, None)
        return payload


class TaskStatus(BaseModel):
    """Video generation task as reported by ``/api/v1/tasks/status/{id}``."""

    chat_type: str = ""
    task_status: str
    message: str = ""
    remaining_time: str = ""
    content: str = ""


class QwenContinuation(BaseModel):
    chat_id: str
    model_id: str = DEFAULT_MODEL
    parent_id: str | None = None


@dataclass
class QwenResponse:
    content: str
    response_id: str
    chat_id: str
    model_id: str
    parent_id: str | None = None
    web_search_results: list[WebSearchInfo] | None = None
    thinking_content: str | None = None

    @property
    def extra_data(self) -> QwenContinuation:
        """Continuation for the next turn; the new message hangs off this response."""
        return QwenContinuation(
            chat_id=self.chat_id,
            model_id=self.model_id,
            parent_id=self.response_id or self.parent_id,
        )


def _find(models: list[Model], model_id: str) -> Model | None:
    return next((m for m in models if m.id == model_id), None)


class ModelSelector:
    """Capability queries and scoring over the ``/api/models`` list."""

    @staticmethod
    def supports_thinking(models: list[Model], model_id: str) -> bool:
        model = _find(models, model_id)
        return bool(model and model.capabilities and model.capabilities.thinking)

    @staticmethod
    def supports_search(models: list[Model], model_id: str) -> bool:
        model = _find(models, model_id)
        return bool(model and model.supports_search)

    @staticmethod
    def thinking_budget(models: list[Model], model_id: str) -> int | None:
        """Maximum thinking length, or None when the model has no adjustable budget."""
        model = _find(models, model_id)
        if model is None or model.info is None:
            return None
        if not model.info.meta.capabilities.thinking_budget:
            return None
        return model.info.meta.max_thinking_generation_length

    @staticmethod
    def with_capability(models: list[Model], capability: str) -> list[Model]:
        """Models with ``capability`` (thinking, vision, audio, video or search)."""
        if capability == CHAT_TYPE_SEARCH:
            return [m for m in models if m.supports_search]
        return [m for m in models if m.capabilities and getattr(m.capabilities, capability)]

    @staticmethod
    def score(
        model: Model,
        vision: bool = False,
        audio: bool = False,
        video: bool = False,
        thinking: bool = False,
        search: bool = False,
    ) -> int | None:
        """Score a model against requirements; None if it misses one."""
        if model.info is None:
            return None
        caps = model.info.meta.capabilities
        required = [
            (vision, caps.vision),
            (audio, caps.audio),
            (video, caps.video),
            (thinking, caps.thinking),
            (search, model.supports_search),
        ]

        score = 0
        for wanted, present in required:
            if wanted and not present:
                return None
            if wanted:
                score += 100
        if caps.document:
            score += 10
        if caps.citations:
            score += 10
        score += min(model.info.meta.max_context_length // 10000, 50)
        return score

    @classmethod
    def select_best_model(
        cls,
        models: list[Model],
        vision: bool = False,
        audio: bool = False,
        video: bool = False,
        thinking: bool = False,
        search: bool = False,
    ) -> str:
        best_id = DEFAULT_MODEL
        best_score = -1
        for model in models:
            score = cls.score(model, vision, audio, video, thinking, search)
            # Ties keep the earlier model.
            if score is not None and score > best_score:
                best_id, best_score = model.id, score
        return best_id

    @classmethod
    def select_for_files(cls, models: list[Model], files: list[QwenFile]) -> str:
        classes = {f.file_class for f in files}
        return cls.select_best_model(
            models,
            vision="vision" in classes,
            audio="audio" in classes,
            video="video" in classes,
        )
