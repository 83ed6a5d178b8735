"""Configuration models and loaders.

Settings come from three layers: model defaults, an optional YAML file and
``CHORUS_*`` environment variables.
"""

import os
from collections.abc import Callable
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Any, Literal

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from chorus.utils.errors import ConfigError


# Short names accepted in CHORUS_FEATURES.
FEATURE_ALIASES = {
    "mood": "mood_effects",
    "deferred": "deferred_requests",
    "metrics": "metrics_export",
    "tracing": "tracing",
    "logging": "structured_logging",
    "pii": "pii_redaction",
}


@dataclass
class FeatureFlags:
    """Switches for optional behavior.

    ``mood_effects`` lets spoken lines change the speaker's mood and
    ``deferred_requests`` lets queued talk requests be offered on later ticks.
    The rest toggle observability.
    """

    mood_effects: bool = True
    deferred_requests: bool = True

    metrics_export: bool = True
    tracing: bool = False
    structured_logging: bool = True
    pii_redaction: bool = True

    @classmethod
    def from_env(cls, env_var: str = "CHORUS_FEATURES") -> "FeatureFlags":
        """Parse a comma-separated list of short names, e.g. ``"mood,metrics"``.

        Listed features are enabled and every other one is disabled. An unset
        or empty variable gives the defaults.
        """
        raw = os.getenv(env_var, "")
        if not raw.strip():
            return cls()

        enabled = {name.strip().lower() for name in raw.split(",")}
        return cls(**{attr: alias in enabled for alias, attr in FEATURE_ALIASES.items()})

    def to_dict(self) -> dict[str, bool]:
        return asdict(self)


class DialogueConfig(BaseModel):
    """Pacing and admission settings for the dialogue scheduler.

    All intervals are measured in simulation ticks.
    """

    enabled: bool = True
    talk_interval_ticks: int = Field(
        default=420, description="Minimum gap between an agent's unprompted lines"
    )
    reply_interval_ticks: int = Field(
        default=180, description="Delay between a line and the reply to it"
    )
    hazard_reply_interval_ticks: int = Field(
        default=120, description="Reply delay while the speaker is in danger"
    )
    dedup_reject_limit: int = Field(
        default=2,
        description="Identical status snapshots rejected before one is forced through",
    )
    max_participants: int = 3
    request_ttl_ticks: int = Field(
        default=2500, description="Deferred requests older than this are dropped"
    )
    max_pending_requests: int = 3


class LLMSettings(BaseModel):
    """Streaming chat provider settings.

    ``provider="none"`` means no provider is configured; the gate then
    rejects every request.
    """

    provider: Literal["openai", "anthropic", "scripted", "none"] = "none"
    model: str = "gpt-4o-mini"
    api_key: str | None = None
    api_base: str | None = None
    max_tokens: int = 800
    temperature: float = 0.7
    timeout_seconds: float = 60.0
    retry_attempts: int = 2
    retry_delay_seconds: float = 1.0

    @property
    def is_configured(self) -> bool:
        return self.provider != "none"


class LoggingConfig(BaseModel):
    """How structlog renders events."""

    level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = "INFO"
    format: Literal["json", "text"] = "json"
    enable_pii_redaction: bool = True


class MetricsConfig(BaseModel):
    """Prometheus endpoint and OTLP trace export."""

    enabled: bool = False
    port: int = 8000
    otlp_endpoint: str | None = None


class Config(BaseModel):
    """Top-level settings for one dialogue service."""

    dialogue: DialogueConfig = Field(default_factory=DialogueConfig)
    llm: LLMSettings = Field(default_factory=LLMSettings)

    features: FeatureFlags = Field(default_factory=FeatureFlags)

    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    metrics: MetricsConfig = Field(default_factory=MetricsConfig)

    environment: Literal["development", "staging", "production", "testing"] = (
        "development"
    )
    debug: bool = False

    model_config = ConfigDict(arbitrary_types_allowed=True)

    @field_validator("features", mode="before")
    @classmethod
    def validate_features(cls, v):
        if isinstance(v, dict):
            return FeatureFlags(**v)
        return v


def load_config_from_file(config_path: Path) -> Config:
    """Read a YAML file; an empty file gives the defaults.

    Raises:
        ConfigError: If the file is missing, is not YAML, or fails validation
    """
    try:
        data = yaml.safe_load(config_path.read_text()) or {}
    except FileNotFoundError as e:
        raise ConfigError(f"Configuration file not found: {config_path}") from e
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in configuration file: {e}") from e

    if not isinstance(data, dict):
        raise ConfigError(f"Configuration file must hold a mapping: {config_path}")

    try:
        return Config(**data)
    except ValidationError as e:
        raise ConfigError(f"Configuration validation failed: {e}") from e


def _parse_bool(value: str) -> bool:
    return value.strip().lower() in ("true", "1", "yes", "on")


# Environment variable -> (section, field, parser). A section of None sets a
# top-level field.
ENV_VARS: dict[str, tuple[str | None, str, Callable[[str], Any]]] = {
    "CHORUS_ENVIRONMENT": (None, "environment", str.lower),
    "CHORUS_DEBUG": (None, "debug", _parse_bool),
    "CHORUS_ENABLED": ("dialogue", "enabled", _parse_bool),
    "CHORUS_TALK_INTERVAL": ("dialogue", "talk_interval_ticks", int),
    "CHORUS_REPLY_INTERVAL": ("dialogue", "reply_interval_ticks", int),
    "CHORUS_HAZARD_REPLY_INTERVAL": ("dialogue", "hazard_reply_interval_ticks", int),
    "CHORUS_DEDUP_REJECT_LIMIT": ("dialogue", "dedup_reject_limit", int),
    "CHORUS_MAX_PARTICIPANTS": ("dialogue", "max_participants", int),
    "CHORUS_REQUEST_TTL": ("dialogue", "request_ttl_ticks", int),
    "CHORUS_LLM_PROVIDER": ("llm", "provider", str.lower),
    "CHORUS_LLM_MODEL": ("llm", "model", str),
    "CHORUS_LLM_API_KEY": ("llm", "api_key", str),
    "CHORUS_LLM_API_BASE": ("llm", "api_base", str),
    "CHORUS_LOG_LEVEL": ("logging", "level", str.upper),
    "CHORUS_LOG_FORMAT": ("logging", "format", str.lower),
    "CHORUS_METRICS_ENABLED": ("metrics", "enabled", _parse_bool),
    "CHORUS_METRICS_PORT": ("metrics", "port", int),
    "CHORUS_OTLP_ENDPOINT": ("metrics", "otlp_endpoint", str),
}


def load_config_from_env() -> Config:
    """Build a configuration from ``CHORUS_*`` environment variables.

    Only variables that are set end up in the result, so
    ``model_dump(exclude_unset=True)`` yields exactly the overrides. See
    ``ENV_VARS`` for the mapping; ``CHORUS_FEATURES`` is handled by
    ``FeatureFlags.from_env``.

    Raises:
        ConfigError: If a variable cannot be parsed or fails validation
    """
    config_data: dict[str, Any] = {}

    for name, (section, field_name, parse) in ENV_VARS.items():
        raw = os.getenv(name)
        if not raw:
            continue
        try:
            value = parse(raw)
        except ValueError as e:
            raise ConfigError(f"Invalid {name}: {raw}") from e

        target = config_data if section is None else config_data.setdefault(section, {})
        target[field_name] = value

    if os.getenv("CHORUS_FEATURES"):
        config_data["features"] = FeatureFlags.from_env()

    try:
        return Config(**config_data)
    except ValidationError as e:
        raise ConfigError(f"Environment configuration validation failed: {e}") from e


def _merge(base: dict, override: dict) -> dict:
    merged = dict(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def load_config(config_path: Path | None = None) -> Config:
    """Defaults, overlaid by the YAML file (if it exists), overlaid by the environment.

    Only values a source actually sets override the layer below, so an env
    var can change one pacing interval without resetting the rest of the
    file's dialogue section.
    """
    data = Config().model_dump()

    if config_path and config_path.exists():
        file_config = load_config_from_file(config_path)
        data = _merge(data, file_config.model_dump(exclude_unset=True))

    env_config = load_config_from_env()
    data = _merge(data, env_config.model_dump(exclude_unset=True))

    try:
        return Config(**data)
    except ValidationError as e:
        raise ConfigError(f"Configuration validation failed: {e}") from e


def validate_config(config: Config) -> None:
    """Cross-field checks pydantic cannot express on single fields.

    Production additionally forbids debug mode, DEBUG logging and disabled
    redaction.

    Raises:
        ConfigError: On the first violated rule
    """
    dialogue = config.dialogue

    if dialogue.talk_interval_ticks < 0:
        raise ConfigError("talk_interval_ticks must be non-negative")

    if dialogue.reply_interval_ticks < 0:
        raise ConfigError("reply_interval_ticks must be non-negative")

    if dialogue.hazard_reply_interval_ticks < 0:
        raise ConfigError("hazard_reply_interval_ticks must be non-negative")

    if dialogue.hazard_reply_interval_ticks > dialogue.reply_interval_ticks:
        raise ConfigError(
            "hazard_reply_interval_ticks must not exceed reply_interval_ticks"
        )

    if dialogue.dedup_reject_limit < 0:
        raise ConfigError("dedup_reject_limit must be non-negative")

    if dialogue.max_participants < 1:
        raise ConfigError("max_participants must be at least 1")

    if dialogue.max_pending_requests < 1:
        raise ConfigError("max_pending_requests must be at least 1")

    if config.llm.retry_attempts < 1:
        raise ConfigError("llm.retry_attempts must be at least 1")

    if config.llm.timeout_seconds <= 0:
        raise ConfigError("llm.timeout_seconds must be positive")

    if config.llm.provider in ("openai", "anthropic") and not config.llm.model:
        raise ConfigError("llm.model is required for remote providers")

    if config.metrics.port <= 0 or config.metrics.port > 65535:
        raise ConfigError("metrics.port must be between 1 and 65535")

    if config.environment == "production":
        if config.debug:
            raise ConfigError("Debug mode should not be enabled in production")

        if config.logging.level == "DEBUG":
            raise ConfigError("DEBUG logging should not be used in production")

        if not config.features.pii_redaction:
            raise ConfigError("PII redaction should be enabled in production")
