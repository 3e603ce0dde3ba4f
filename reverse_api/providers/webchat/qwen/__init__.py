"""Qwen (chat.qwen.ai) web-chat client."""

from .client import QwenWebChat
from .conversation import build_completion_request, build_message
from .media import MediaGenerator
from .models import (
    Model,
    ModelSelector,
    QwenContinuation,
    QwenFile,
    QwenResponse,
    TaskStatus,
)
from .uploader import FileUploader, file_kind

__all__ = [
    "FileUploader",
    "MediaGenerator",
    "Model",
    "ModelSelector",
    "QwenContinuation",
    "QwenFile",
    "QwenResponse",
    "QwenWebChat",
    "TaskStatus",
    "build_completion_request",
    "build_message",
    "file_kind",
]
