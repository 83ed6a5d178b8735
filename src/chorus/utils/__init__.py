# Shared utilities and helpers

from .errors import (
    ChorusError,
    ConfigError,
    LLMGenerationError,
    LLMTimeoutError,
    RecoveryAction,
    StreamParseError,
    UnknownSpeakerError,
)
from .json_stream import JsonObjectStream, decode_object
from .serialization import deserialize_exchange, parse_emotion, serialize_exchange

__all__ = [
    "ChorusError",
    "ConfigError",
    "JsonObjectStream",
    "LLMGenerationError",
    "LLMTimeoutError",
    "RecoveryAction",
    "StreamParseError",
    "UnknownSpeakerError",
    "decode_object",
    "deserialize_exchange",
    "parse_emotion",
    "serialize_exchange",
]
