"""LLM streaming chat adapters.

This package provides the production streaming adapter for OpenAI and
Anthropic models and a scripted streamer for tests and demos.
"""

from chorus.adapters.llm.scripted import ScriptedCall, ScriptedChatStreamer
from chorus.adapters.llm.streaming import (
    AnthropicProvider,
    ChatPrompt,
    LLMConfig,
    LLMProvider,
    OpenAIProvider,
    StreamingChatAdapter,
    build_chat_prompt,
)

__all__ = [
    "AnthropicProvider",
    "ChatPrompt",
    "LLMConfig",
    "LLMProvider",
    "OpenAIProvider",
    "ScriptedCall",
    "ScriptedChatStreamer",
    "StreamingChatAdapter",
    "build_chat_prompt",
]
