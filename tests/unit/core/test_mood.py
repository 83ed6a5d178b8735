"""Unit tests for emotion to mood mapping."""

from unittest.mock import MagicMock

import pytest

from chorus.core.mood import MoodEffectApplier, map_emotion_to_mood
from chorus.schemas.messages import EmotionResult
from chorus.schemas.types import MoodKind, TalkType


class TestMapEmotionToMood:
    """Test label and score based mapping."""

    @pytest.mark.parametrize(
        "label, expected",
        [
            ("insult", MoodKind.INSULTED),
            ("Angry", MoodKind.INSULTED),
            ("negative_target", MoodKind.INSULTED),
            ("praise_target", MoodKind.PRAISED),
            ("compliment", MoodKind.PRAISED),
            ("positive", MoodKind.PRAISED),
            ("chitchat", MoodKind.CHATTED),
            ("neutral", MoodKind.CHATTED),
        ],
    )
    def test_label_keywords_win(self, label, expected):
        """Known labels decide regardless of the score."""
        assert map_emotion_to_mood(EmotionResult(score=50, label=label)) == expected
        assert map_emotion_to_mood(EmotionResult(score=1, label=label)) == expected

    @pytest.mark.parametrize(
        "score, expected",
        [
            (100, MoodKind.PRAISED),
            (70, MoodKind.PRAISED),
            (69, MoodKind.CHATTED),
            (31, MoodKind.CHATTED),
            (30, MoodKind.INSULTED),
            (1, MoodKind.INSULTED),
        ],
    )
    def test_score_thresholds(self, score, expected):
        assert map_emotion_to_mood(EmotionResult(score=score, label="")) == expected

    def test_unknown_label_falls_back_to_score(self):
        assert map_emotion_to_mood(EmotionResult(score=90, label="wistful")) == (
            MoodKind.PRAISED
        )

    def test_none(self):
        assert map_emotion_to_mood(None) is None


class TestMoodEffectApplier:
    """Test forwarding to the memory sink."""

    def test_forwards_mapped_mood(self):
        sink = MagicMock()
        applier = MoodEffectApplier(sink)

        applier.apply_mood_effect(
            "ann", EmotionResult(score=10, label="insult"), TalkType.NORMAL
        )

        sink.assert_called_once_with("ann", MoodKind.INSULTED)

    def test_sink_failure_is_swallowed(self):
        sink = MagicMock(side_effect=RuntimeError("no such thought"))
        applier = MoodEffectApplier(sink)

        applier.apply_mood_effect(
            "ann", EmotionResult(score=80, label="praise"), TalkType.URGENT
        )

        sink.assert_called_once()
