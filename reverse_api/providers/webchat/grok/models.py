"""Grok model names, persisted mappings and conversation results."""

from dataclasses import dataclass, field

from pydantic import BaseModel, Field, RootModel

DEFAULT_MODEL = "grok-3-auto"

# model name -> (modelMode, request mode)
MODELS: dict[str, tuple[str, str]] = {
    "grok-3-auto": ("MODEL_MODE_AUTO", "auto"),
    "grok-3-fast": ("MODEL_MODE_FAST", "fast"),
    "grok-4": ("MODEL_MODE_EXPERT", "expert"),
    "grok-4-mini-thinking-tahoe": ("MODEL_MODE_GROK_4_MINI_THINKING", "grok-4-mini-thinking"),
}


def resolve_model(model: str) -> tuple[str, str, str]:
    """Return ``(model, model_mode, mode)``; unknown names fall back to the default."""
    if model not in MODELS:
        model = DEFAULT_MODEL
    model_mode, mode = MODELS[model]
    return model, model_mode, mode


class GrokMapping(BaseModel):
    """Which page script holds the server actions, and the signature script it references."""

    xsid_script: str
    action_script: str
    actions: list[str]


class GrokMappingFile(RootModel[list[GrokMapping]]):
    root: list[GrokMapping] = Field(default_factory=list)


class ScriptOffsetMapping(RootModel[dict[str, list[int]]]):
    """Script URL -> token byte offsets. Append-only and safe to lose."""

    root: dict[str, list[int]] = Field(default_factory=dict)


class GrokContinuation(BaseModel):
    """
    Everything needed to resume a conversation.

    Owned by the caller between turns. ``private_key`` is the base64 session
    key and never touches disk from inside this package.
    """

    anon_user: str
    cookies: dict[str, str] = Field(default_factory=dict)
    actions: list[str]
    xsid_script: str
    baggage: str
    sentry_trace: str
    conversation_id: str | None = None
    parent_response_id: str | None = None
    private_key: str = Field(repr=False)


@dataclass
class GrokResponse:
    response: str | None
    stream_response: list[str] = field(default_factory=list)
    images: list[str] | None = None
    extra_data: GrokContinuation | None = None
