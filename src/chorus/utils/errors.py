"""Structured error types for the dialogue scheduler.

Nothing in this package lets these escape to the simulation loop: the
top-level trigger and tick handlers log and discard them. They exist so that
each boundary can say precisely what went wrong and what to do about it.
"""

from enum import Enum


class RecoveryAction(Enum):
    """Recovery actions for error handling."""

    RETRY = "retry"
    RETRY_WITH_DELAY = "retry_with_delay"
    ABORT = "abort"
    DROP = "drop"
    SKIP = "skip"


class ChorusError(Exception):
    """Base exception for dialogue scheduling errors."""

    def __init__(
        self, message: str, recovery_action: RecoveryAction = RecoveryAction.ABORT
    ):
        """Initialize chorus error.

        Args:
            message: Error message
            recovery_action: Suggested recovery action
        """
        super().__init__(message)
        self.recovery_action = recovery_action


class LLMGenerationError(ChorusError):
    """Error raised when the streaming transport fails.

    Utterances already yielded by the stream stay valid; only the remainder
    of the session is lost.
    """

    def __init__(self, message: str, provider: str | None = None):
        """Initialize generation error.

        Args:
            message: Error message
            provider: Provider name the failure came from (optional)
        """
        self.provider = provider
        super().__init__(message, RecoveryAction.RETRY_WITH_DELAY)


class LLMTimeoutError(LLMGenerationError):
    """Error raised when a generation exceeds its time budget."""

    def __init__(
        self, message: str, timeout_seconds: float, provider: str | None = None
    ):
        """Initialize timeout error.

        Args:
            message: Error message
            timeout_seconds: Budget that was exceeded
            provider: Provider name (optional)
        """
        self.timeout_seconds = timeout_seconds
        super().__init__(message, provider=provider)


class StreamParseError(ChorusError):
    """Error raised when a streamed JSON object cannot be decoded.

    The offending object is skipped; the stream keeps going.
    """

    def __init__(self, fragment: str, reason: str):
        """Initialize parse error.

        Args:
            fragment: Raw text of the object that failed to parse
            reason: Decoder message
        """
        self.fragment = fragment
        self.reason = reason

        preview = fragment if len(fragment) <= 80 else fragment[:77] + "..."
        super().__init__(
            f"Could not decode streamed object {preview!r}: {reason}",
            RecoveryAction.SKIP,
        )


class UnknownSpeakerError(ChorusError):
    """Error raised when a streamed utterance names no known participant."""

    def __init__(self, speaker_name: str, known_names: list[str]):
        """Initialize resolution error.

        Args:
            speaker_name: Name given by the stream
            known_names: Names that could have been resolved
        """
        self.speaker_name = speaker_name
        self.known_names = known_names

        message = (
            f"Speaker {speaker_name!r} is not a participant "
            f"(known: {', '.join(known_names) or 'none'})"
        )
        super().__init__(message, RecoveryAction.DROP)


class ConfigError(ChorusError):
    """Configuration-related errors."""

    def __init__(self, message: str):
        super().__init__(message, RecoveryAction.ABORT)
