"""Streaming chat adapter over the OpenAI and Anthropic async clients.

The model is asked to answer with a JSON array of utterance objects. Tokens
are fed through ``JsonObjectStream`` so each utterance is yielded as soon as
its object closes, long before the full answer has arrived.
"""

import asyncio
import time
from abc import ABC, abstractmethod
from collections.abc import AsyncGenerator, AsyncIterator, Mapping, Sequence
from dataclasses import dataclass
from enum import Enum

import anthropic
import openai

from chorus.config import LLMSettings
from chorus.schemas.messages import TalkRequest, Utterance
from chorus.utils.errors import LLMGenerationError, LLMTimeoutError, StreamParseError
from chorus.utils.json_stream import JsonObjectStream, decode_object
from chorus.utils.serialization import parse_emotion
from chorus.utils.telemetry import get_logger

RESPONSE_INSTRUCTION = (
    "Write the conversation as a JSON array. Each element is an object with "
    '"name" (one of: {names}), "text" (a single short line) and optionally '
    '"emotion" ({{"score": 1-100, "label": "praise|chat|insult"}}). '
    "Output only the JSON array."
)


class LLMProvider(Enum):
    """Supported LLM providers."""

    OPENAI = "openai"
    ANTHROPIC = "anthropic"


@dataclass
class LLMConfig:
    """Configuration for the streaming chat adapter."""

    provider: LLMProvider
    model: str
    api_key: str | None = None
    api_base: str | None = None
    max_tokens: int = 800
    temperature: float = 0.7
    timeout_seconds: float = 60.0
    retry_attempts: int = 2
    retry_delay_seconds: float = 1.0

    @classmethod
    def from_settings(cls, settings: LLMSettings) -> "LLMConfig":
        """Build from the ``llm`` section of the main configuration.

        Raises:
            ValueError: If the settings do not name a remote provider
        """
        if settings.provider not in ("openai", "anthropic"):
            raise ValueError(f"Not a streaming provider: {settings.provider}")
        return cls(
            provider=LLMProvider(settings.provider),
            model=settings.model,
            api_key=settings.api_key,
            api_base=settings.api_base,
            max_tokens=settings.max_tokens,
            temperature=settings.temperature,
            timeout_seconds=settings.timeout_seconds,
            retry_attempts=settings.retry_attempts,
            retry_delay_seconds=settings.retry_delay_seconds,
        )


@dataclass
class ChatPrompt:
    """Provider-neutral chat transcript."""

    system: str
    messages: list[dict[str, str]]


class BaseLLMProvider(ABC):
    """Abstract base class for streaming text providers."""

    def __init__(self, config: LLMConfig):
        self.config = config
        self._logger = get_logger(f"chorus.adapters.llm.{config.provider.value}")

    @abstractmethod
    def generate_stream(self, prompt: ChatPrompt) -> AsyncGenerator[str, None]:
        """Stream text deltas for the transcript.

        Raises:
            LLMGenerationError: If the provider call fails
        """
        ...


class OpenAIProvider(BaseLLMProvider):
    """OpenAI chat completions provider."""

    def __init__(self, config: LLMConfig):
        super().__init__(config)
        self._client = openai.AsyncOpenAI(
            api_key=config.api_key,
            base_url=config.api_base,
            timeout=config.timeout_seconds,
        )

    async def generate_stream(self, prompt: ChatPrompt) -> AsyncGenerator[str, None]:
        messages = [{"role": "system", "content": prompt.system}, *prompt.messages]
        try:
            stream = await self._client.chat.completions.create(
                model=self.config.model,
                messages=messages,
                max_tokens=self.config.max_tokens,
                temperature=self.config.temperature,
                stream=True,
            )
            async for chunk in stream:
                if chunk.choices and chunk.choices[0].delta.content:
                    yield chunk.choices[0].delta.content
        except asyncio.CancelledError:
            raise
        except Exception as e:
            self._logger.error("OpenAI generation failed", error=str(e))
            raise LLMGenerationError(
                f"OpenAI generation failed: {e}", provider="openai"
            ) from e


class AnthropicProvider(BaseLLMProvider):
    """Anthropic messages provider."""

    def __init__(self, config: LLMConfig):
        super().__init__(config)
        self._client = anthropic.AsyncAnthropic(
            api_key=config.api_key,
            base_url=config.api_base,
            timeout=config.timeout_seconds,
        )

    async def generate_stream(self, prompt: ChatPrompt) -> AsyncGenerator[str, None]:
        try:
            async with self._client.messages.stream(
                model=self.config.model,
                system=prompt.system,
                messages=prompt.messages,
                max_tokens=self.config.max_tokens,
                temperature=self.config.temperature,
            ) as stream:
                async for text in stream.text_stream:
                    yield text
        except asyncio.CancelledError:
            raise
        except Exception as e:
            self._logger.error("Anthropic generation failed", error=str(e))
            raise LLMGenerationError(
                f"Anthropic generation failed: {e}", provider="anthropic"
            ) from e


def build_chat_prompt(
    request: TalkRequest,
    history: Sequence[tuple[str, str]],
    participants_by_name: Mapping[str, str],
) -> ChatPrompt:
    """Turn a prepared request and its history into a chat transcript.

    Each remembered exchange becomes a user/assistant pair so the model sees
    its own earlier answers verbatim.
    """
    instruction = RESPONSE_INSTRUCTION.format(names=", ".join(participants_by_name))
    system = f"{request.context}\n\n{instruction}" if request.context else instruction

    messages: list[dict[str, str]] = []
    for prompt, exchange in history:
        messages.append({"role": "user", "content": prompt})
        messages.append({"role": "assistant", "content": exchange})
    messages.append({"role": "user", "content": request.prompt})

    return ChatPrompt(system=system, messages=messages)


class StreamingChatAdapter:
    """``ChatStreamer`` backed by a remote LLM.

    Failed attempts are retried with a delay, but only while nothing has been
    yielded yet: once an utterance has reached the caller a failure ends the
    stream instead of replaying it.
    """

    def __init__(self, config: LLMConfig, provider: BaseLLMProvider | None = None):
        self.config = config
        self._logger = get_logger("chorus.adapters.llm.streaming")
        self._provider = provider or self._create_provider()

    def _create_provider(self) -> BaseLLMProvider:
        if self.config.provider == LLMProvider.OPENAI:
            return OpenAIProvider(self.config)
        elif self.config.provider == LLMProvider.ANTHROPIC:
            return AnthropicProvider(self.config)
        else:
            raise ValueError(f"Unsupported provider: {self.config.provider}")

    async def stream_chat(
        self,
        request: TalkRequest,
        history: Sequence[tuple[str, str]],
        participants_by_name: Mapping[str, str],
    ) -> AsyncIterator[Utterance]:
        """Yield utterances in stream order.

        Raises:
            LLMGenerationError: If every attempt failed, or a later failure
                cut the stream short
            LLMTimeoutError: If the generation exceeded its time budget
        """
        prompt = build_chat_prompt(request, history, participants_by_name)
        attempt = 0
        yielded = 0

        while True:
            attempt += 1
            parser = JsonObjectStream()
            start_time = time.perf_counter()

            self._logger.info(
                "Starting generation attempt",
                agent_id=request.initiator_id,
                model=self.config.model,
                attempt=attempt,
                max_attempts=self.config.retry_attempts,
            )

            try:
                async for text in self._provider.generate_stream(prompt):
                    if time.perf_counter() - start_time > self.config.timeout_seconds:
                        raise LLMTimeoutError(
                            f"Generation timed out after {self.config.timeout_seconds}s",
                            timeout_seconds=self.config.timeout_seconds,
                            provider=self.config.provider.value,
                        )

                    for fragment in parser.feed(text):
                        utterance = self._to_utterance(fragment, request)
                        if utterance is not None:
                            yielded += 1
                            yield utterance

                if parser.pending:
                    self._logger.warning(
                        "Stream ended inside an object", fragment=parser.pending[:80]
                    )
                return

            except LLMGenerationError as e:
                if yielded or attempt >= self.config.retry_attempts:
                    self._logger.error(
                        "Generation failed",
                        agent_id=request.initiator_id,
                        attempts=attempt,
                        yielded=yielded,
                        error=str(e),
                    )
                    raise

                self._logger.warning(
                    "Generation attempt failed, retrying",
                    agent_id=request.initiator_id,
                    attempt=attempt,
                    error=str(e),
                    retry_delay=self.config.retry_delay_seconds,
                )
                await asyncio.sleep(self.config.retry_delay_seconds)

    def _to_utterance(self, fragment: str, request: TalkRequest) -> Utterance | None:
        try:
            data = decode_object(fragment)
        except StreamParseError as e:
            self._logger.warning("Skipping malformed object", error=str(e))
            return None

        name = data.get("name")
        text = data.get("text")
        if not isinstance(name, str) or not isinstance(text, str) or not text.strip():
            self._logger.warning("Skipping object without name or text", keys=list(data))
            return None

        return Utterance(
            speaker_name=name,
            text=text.strip(),
            talk_type=request.talk_type,
            emotion=parse_emotion(data.get("emotion")),
        )
