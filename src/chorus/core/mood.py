"""Mapping of utterance emotions to mood memories."""

from collections.abc import Callable

from chorus.schemas.messages import EmotionResult
from chorus.schemas.types import MoodKind, TalkType
from chorus.utils.telemetry import get_logger

_LABEL_KEYWORDS: list[tuple[tuple[str, ...], MoodKind]] = [
    (("insult", "negative", "angry"), MoodKind.INSULTED),
    (("praise", "compliment", "kind", "positive"), MoodKind.PRAISED),
    (("chat", "chitchat", "neutral"), MoodKind.CHATTED),
]

PRAISE_THRESHOLD = 70
INSULT_THRESHOLD = 30


def map_emotion_to_mood(emotion: EmotionResult | None) -> MoodKind | None:
    """Pick the mood an emotion annotation should leave behind.

    The label is checked for known keywords first; otherwise the score
    decides (>= 70 praised, <= 30 insulted, anything else chatted).
    """
    if emotion is None:
        return None

    label = emotion.label.strip().lower()
    if label:
        for keywords, mood in _LABEL_KEYWORDS:
            if any(keyword in label for keyword in keywords):
                return mood

    if emotion.score >= PRAISE_THRESHOLD:
        return MoodKind.PRAISED
    if emotion.score <= INSULT_THRESHOLD:
        return MoodKind.INSULTED
    return MoodKind.CHATTED


class MoodEffectApplier:
    """``MoodEffect`` implementation forwarding to a memory sink.

    Args:
        gain_memory: Called as ``gain_memory(agent_id, mood)``
    """

    def __init__(self, gain_memory: Callable[[str, MoodKind], None]):
        self._gain_memory = gain_memory
        self._logger = get_logger("chorus.mood")

    def apply_mood_effect(
        self, agent_id: str, emotion: EmotionResult, talk_type: TalkType
    ) -> None:
        mood = map_emotion_to_mood(emotion)
        if mood is None:
            return

        try:
            self._gain_memory(agent_id, mood)
        except Exception as e:
            self._logger.warning(
                "Failed to apply mood memory",
                agent_id=agent_id,
                mood=mood.value,
                error=str(e),
            )
            return

        self._logger.debug(
            "Mood memory applied",
            agent_id=agent_id,
            mood=mood.value,
            emotion=str(emotion),
            talk_type=talk_type.value,
        )
