# Providers
from .async_session import AsyncSessionManager, SSEEvent, iter_lines, iter_sse
from .streaming import (
    StreamingAccumulator,
    StreamingOutput,
    WebSearchInfo,
    interpret_stream,
)
from .webchat import (
    DeepSeekWebChat,
    GrokWebChat,
    QwenWebChat,
    WebChatProvider,
    ZtoWebChat,
    get_provider,
)

__all__ = [
    "AsyncSessionManager",
    "DeepSeekWebChat",
    "GrokWebChat",
    "QwenWebChat",
    "SSEEvent",
    "StreamingAccumulator",
    "StreamingOutput",
    "WebChatProvider",
    "WebSearchInfo",
    "ZtoWebChat",
    "get_provider",
    "interpret_stream",
    "iter_lines",
    "iter_sse",
]
