"""Scripted chat streamer for tests, demos and the CLI.

This module provides a stand-in for the AI collaborator that replays a
fixed list of lines with optional pacing and an injected failure, so the
scheduler can be exercised without a network connection.
"""

import asyncio
from collections.abc import AsyncIterator, Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any

from chorus.schemas.messages import EmotionResult, TalkRequest, Utterance
from chorus.utils.errors import LLMGenerationError
from chorus.utils.serialization import parse_emotion
from chorus.utils.telemetry import get_logger

ScriptLine = Utterance | tuple[str, str] | tuple[str, str, Any]


@dataclass
class ScriptedCall:
    """Arguments of one ``stream_chat`` call, kept for assertions."""

    request: TalkRequest
    history: list[tuple[str, str]]
    participants_by_name: dict[str, str]
    yielded: list[Utterance] = field(default_factory=list)


class ScriptedChatStreamer:
    """Yields the same scripted exchange on every call.

    Args:
        script: Lines as ``(name, text)``, ``(name, text, emotion)`` or
            ready-made utterances
        delay_seconds: Pause before each line
        fail_after: Raise ``LLMGenerationError`` after this many lines
    """

    def __init__(
        self,
        script: Sequence[ScriptLine],
        delay_seconds: float = 0.0,
        fail_after: int | None = None,
    ):
        self.script = list(script)
        self.delay_seconds = delay_seconds
        self.fail_after = fail_after
        self.calls: list[ScriptedCall] = []
        self._logger = get_logger("chorus.adapters.llm.scripted")

    async def stream_chat(
        self,
        request: TalkRequest,
        history: Sequence[tuple[str, str]],
        participants_by_name: Mapping[str, str],
    ) -> AsyncIterator[Utterance]:
        call = ScriptedCall(
            request=request,
            history=list(history),
            participants_by_name=dict(participants_by_name),
        )
        self.calls.append(call)

        for index, line in enumerate(self.script):
            if self.fail_after is not None and index >= self.fail_after:
                self._logger.debug("Injected failure", after=index)
                raise LLMGenerationError(
                    f"Scripted failure after {index} lines", provider="scripted"
                )

            if self.delay_seconds > 0:
                await asyncio.sleep(self.delay_seconds)
            else:
                await asyncio.sleep(0)

            utterance = self._build(line, request)
            call.yielded.append(utterance)
            yield utterance

    @staticmethod
    def _build(line: ScriptLine, request: TalkRequest) -> Utterance:
        if isinstance(line, Utterance):
            return line.model_copy(deep=True)

        name, text, *rest = line
        emotion = rest[0] if rest else None
        if not isinstance(emotion, EmotionResult):
            emotion = parse_emotion(emotion)
        return Utterance(
            speaker_name=name,
            text=text,
            talk_type=request.talk_type,
            emotion=emotion,
        )
