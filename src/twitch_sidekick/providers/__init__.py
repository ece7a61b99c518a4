"""External collaborators: completion, clips and stream info, knowledge facts."""

from .clips import (
    ClipHandle,
    ClipProvider,
    ClipProviderError,
    StreamInfo,
    StreamInfoSource,
    TwitchClipProvider,
)
from .completion import (
    AnthropicCompletionProvider,
    CompletionError,
    CompletionProvider,
    GeminiCompletionProvider,
    create_completion_provider,
)
from .knowledge import KnowledgeSource, StaticKnowledgeSource

__all__ = [
    "AnthropicCompletionProvider",
    "ClipHandle",
    "ClipProvider",
    "ClipProviderError",
    "CompletionError",
    "CompletionProvider",
    "GeminiCompletionProvider",
    "KnowledgeSource",
    "StaticKnowledgeSource",
    "StreamInfo",
    "StreamInfoSource",
    "TwitchClipProvider",
    "create_completion_provider",
]
