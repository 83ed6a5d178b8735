"""Serialization of completed exchanges for message history."""

from collections.abc import Iterable
from typing import Any

import orjson

from chorus.schemas.messages import EmotionResult, Utterance


def utterance_payload(utterance: Utterance) -> dict[str, Any]:
    """Return the fields a model sees when an exchange is replayed to it.

    Only ``name``, ``text`` and ``emotion`` (when present) are kept; ids and
    reply links are bookkeeping that never goes back into a prompt.
    """
    payload: dict[str, Any] = {
        "name": utterance.speaker_name,
        "text": utterance.text,
    }
    if utterance.emotion is not None:
        payload["emotion"] = utterance.emotion.model_dump()
    return payload


def serialize_exchange(utterances: Iterable[Utterance]) -> str:
    """Serialize an ordered exchange to a compact JSON array string.

    Args:
        utterances: Utterances in stream order

    Returns:
        JSON text, e.g. ``[{"name":"Ann","text":"Hi"}]``
    """
    return orjson.dumps([utterance_payload(u) for u in utterances]).decode("utf-8")


def deserialize_exchange(text: str) -> list[dict[str, Any]]:
    """Inverse of :func:`serialize_exchange`, returning plain dictionaries."""
    data = orjson.loads(text)
    if not isinstance(data, list):
        raise ValueError("Serialized exchange must be a JSON array")
    return data


def parse_emotion(value: Any) -> EmotionResult | None:
    """Coerce a loosely formatted emotion annotation.

    Accepts ``{"score": 80, "label": "praise"}``, a bare label string, or
    None. Anything unusable yields None rather than failing the utterance.
    """
    if value is None:
        return None
    if isinstance(value, str):
        return EmotionResult(score=50, label=value) if value.strip() else None
    if isinstance(value, dict):
        try:
            score = int(value.get("score", 50))
        except (TypeError, ValueError):
            score = 50
        return EmotionResult(score=score, label=str(value.get("label") or ""))
    return None
