"""Incremental extraction of JSON objects from a token stream.

Language models answer with a JSON array of utterance objects, but the
tokens arrive a few characters at a time. ``JsonObjectStream`` watches the
characters go by and hands back each top-level object as soon as its closing
brace arrives, so a speaker's line can be queued before the model has
finished writing the rest of the exchange.
"""

from typing import Any

import orjson

from chorus.utils.errors import StreamParseError


class JsonObjectStream:
    """Split streamed text into complete top-level JSON object fragments.

    Text outside objects (array brackets, commas, markdown fences) is ignored.
    Braces inside string literals do not count, and escaped quotes do not end
    a string.

    Example:
        >>> stream = JsonObjectStream()
        >>> stream.feed('[{"name": "Ann", "te')
        []
        >>> stream.feed('xt": "hi {there}"}, {')
        ['{"name": "Ann", "text": "hi {there}"}']
    """

    def __init__(self) -> None:
        self._buffer: list[str] = []
        self._depth = 0
        self._in_string = False
        self._escaped = False

    @property
    def pending(self) -> str:
        """Text of the object currently being assembled, if any."""
        return "".join(self._buffer)

    def feed(self, chunk: str) -> list[str]:
        """Consume a chunk of text.

        Args:
            chunk: Next piece of streamed text

        Returns:
            Object fragments completed by this chunk, in stream order
        """
        completed: list[str] = []

        for char in chunk:
            if self._depth == 0:
                if char == "{":
                    self._depth = 1
                    self._buffer = [char]
                continue

            self._buffer.append(char)

            if self._in_string:
                if self._escaped:
                    self._escaped = False
                elif char == "\\":
                    self._escaped = True
                elif char == '"':
                    self._in_string = False
                continue

            if char == '"':
                self._in_string = True
            elif char == "{":
                self._depth += 1
            elif char == "}":
                self._depth -= 1
                if self._depth == 0:
                    completed.append("".join(self._buffer))
                    self._buffer = []

        return completed

    def reset(self) -> None:
        """Discard any partially assembled object."""
        self._buffer = []
        self._depth = 0
        self._in_string = False
        self._escaped = False


def decode_object(fragment: str) -> dict[str, Any]:
    """Decode one object fragment produced by ``JsonObjectStream``.

    Raises:
        StreamParseError: If the fragment is not a JSON object
    """
    try:
        value = orjson.loads(fragment)
    except orjson.JSONDecodeError as e:
        raise StreamParseError(fragment, str(e)) from e

    if not isinstance(value, dict):
        raise StreamParseError(fragment, "expected a JSON object")
    return value
