"""Tests for configuration management."""

from pathlib import Path

import pytest
import yaml

from chorus.config import (
    Config,
    ConfigError,
    DialogueConfig,
    FeatureFlags,
    LLMSettings,
    load_config,
    load_config_from_env,
    load_config_from_file,
    validate_config,
)
from chorus.config.config import ENV_VARS
from chorus.config.environment import Environment, get_config_file_path, get_environment


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in [*ENV_VARS, "CHORUS_FEATURES", "CHORUS_CONFIG"]:
        monkeypatch.delenv(name, raising=False)


class TestFeatureFlags:
    """Test feature flags functionality."""

    def test_default_features(self):
        features = FeatureFlags()

        assert features.mood_effects is True
        assert features.deferred_requests is True
        assert features.tracing is False

    def test_from_env_empty(self):
        assert FeatureFlags.from_env("NONEXISTENT_VAR") == FeatureFlags()

    def test_from_env_with_features(self, monkeypatch):
        """Listed features are on, everything else is off."""
        monkeypatch.setenv("TEST_FEATURES", "mood, tracing")

        features = FeatureFlags.from_env("TEST_FEATURES")

        assert features.mood_effects is True
        assert features.tracing is True
        assert features.deferred_requests is False
        assert features.pii_redaction is False

    def test_to_dict(self):
        assert FeatureFlags(tracing=True).to_dict()["tracing"] is True


class TestDefaults:
    """Test default configuration values."""

    def test_dialogue_defaults(self):
        dialogue = DialogueConfig()

        assert dialogue.enabled is True
        assert dialogue.talk_interval_ticks == 420
        assert dialogue.reply_interval_ticks == 180
        assert dialogue.hazard_reply_interval_ticks == 120
        assert dialogue.dedup_reject_limit == 2
        assert dialogue.max_participants == 3

    def test_no_provider_by_default(self):
        assert Config().llm.is_configured is False
        assert LLMSettings(provider="openai").is_configured is True

    def test_defaults_are_valid(self):
        validate_config(Config())


class TestLoading:
    """Test loading from files and environment."""

    def test_load_from_file(self, tmp_path: Path):
        path = tmp_path / "chorus.yaml"
        path.write_text(
            yaml.dump(
                {
                    "dialogue": {"talk_interval_ticks": 60},
                    "llm": {"provider": "anthropic", "model": "claude-x"},
                    "features": {"mood_effects": False},
                }
            )
        )

        config = load_config_from_file(path)

        assert config.dialogue.talk_interval_ticks == 60
        assert config.dialogue.reply_interval_ticks == 180
        assert config.llm.provider == "anthropic"
        assert config.features.mood_effects is False

    def test_empty_file_gives_defaults(self, tmp_path: Path):
        path = tmp_path / "empty.yaml"
        path.write_text("")
        assert load_config_from_file(path).dialogue == DialogueConfig()

    def test_missing_file(self, tmp_path: Path):
        with pytest.raises(ConfigError, match="not found"):
            load_config_from_file(tmp_path / "missing.yaml")

    def test_invalid_yaml(self, tmp_path: Path):
        path = tmp_path / "bad.yaml"
        path.write_text("dialogue: [unclosed")
        with pytest.raises(ConfigError, match="Invalid YAML"):
            load_config_from_file(path)

    def test_invalid_values(self, tmp_path: Path):
        path = tmp_path / "bad.yaml"
        path.write_text(yaml.dump({"llm": {"provider": "carrier-pigeon"}}))
        with pytest.raises(ConfigError, match="validation failed"):
            load_config_from_file(path)

    def test_load_from_env(self, monkeypatch):
        monkeypatch.setenv("CHORUS_ENVIRONMENT", "staging")
        monkeypatch.setenv("CHORUS_DEBUG", "yes")
        monkeypatch.setenv("CHORUS_ENABLED", "false")
        monkeypatch.setenv("CHORUS_REPLY_INTERVAL", "90")
        monkeypatch.setenv("CHORUS_DEDUP_REJECT_LIMIT", "5")
        monkeypatch.setenv("CHORUS_LLM_PROVIDER", "OpenAI")
        monkeypatch.setenv("CHORUS_LOG_LEVEL", "debug")
        monkeypatch.setenv("CHORUS_METRICS_PORT", "9100")

        config = load_config_from_env()

        assert config.environment == "staging"
        assert config.debug is True
        assert config.dialogue.enabled is False
        assert config.dialogue.reply_interval_ticks == 90
        assert config.dialogue.dedup_reject_limit == 5
        assert config.llm.provider == "openai"
        assert config.logging.level == "DEBUG"
        assert config.metrics.port == 9100

    def test_bad_env_int(self, monkeypatch):
        monkeypatch.setenv("CHORUS_TALK_INTERVAL", "soon")
        with pytest.raises(ConfigError, match="CHORUS_TALK_INTERVAL"):
            load_config_from_env()

    def test_env_overrides_file(self, tmp_path: Path, monkeypatch):
        path = tmp_path / "chorus.yaml"
        path.write_text(
            yaml.dump({"dialogue": {"talk_interval_ticks": 60, "reply_interval_ticks": 30}})
        )
        monkeypatch.setenv("CHORUS_TALK_INTERVAL", "15")

        config = load_config(path)

        assert config.dialogue.talk_interval_ticks == 15
        assert config.dialogue.reply_interval_ticks == 30
        assert config.dialogue.max_participants == 3

    def test_load_config_without_file(self):
        assert load_config(None).dialogue == DialogueConfig()


class TestValidation:
    """Test consistency checks."""

    @pytest.mark.parametrize(
        "dialogue",
        [
            {"talk_interval_ticks": -1},
            {"reply_interval_ticks": -1},
            {"hazard_reply_interval_ticks": -1},
            {"reply_interval_ticks": 10, "hazard_reply_interval_ticks": 20},
            {"dedup_reject_limit": -1},
            {"max_participants": 0},
            {"max_pending_requests": 0},
        ],
    )
    def test_invalid_dialogue(self, dialogue):
        with pytest.raises(ConfigError):
            validate_config(Config(dialogue=DialogueConfig(**dialogue)))

    def test_invalid_llm(self):
        with pytest.raises(ConfigError, match="retry_attempts"):
            validate_config(Config(llm=LLMSettings(retry_attempts=0)))
        with pytest.raises(ConfigError, match="timeout_seconds"):
            validate_config(Config(llm=LLMSettings(timeout_seconds=0)))
        with pytest.raises(ConfigError, match="model"):
            validate_config(Config(llm=LLMSettings(provider="openai", model="")))

    def test_invalid_metrics_port(self):
        with pytest.raises(ConfigError, match="metrics.port"):
            validate_config(Config(metrics={"port": 70000}))

    def test_production_rules(self):
        with pytest.raises(ConfigError, match="Debug"):
            validate_config(Config(environment="production", debug=True))
        with pytest.raises(ConfigError, match="DEBUG logging"):
            validate_config(Config(environment="production", logging={"level": "DEBUG"}))
        with pytest.raises(ConfigError, match="PII"):
            validate_config(
                Config(environment="production", features=FeatureFlags(pii_redaction=False))
            )
        validate_config(Config(environment="production"))


class TestEnvironment:
    """Test environment detection."""

    def test_env_var_wins(self, monkeypatch):
        monkeypatch.setenv("CHORUS_ENVIRONMENT", "testing")
        assert get_environment() == Environment.TESTING

    def test_marker_file(self, tmp_path: Path, monkeypatch):
        monkeypatch.chdir(tmp_path)
        (tmp_path / ".env.staging").touch()
        assert get_environment() == Environment.STAGING

    def test_config_file_discovery(self, tmp_path: Path, monkeypatch):
        monkeypatch.chdir(tmp_path)
        assert get_config_file_path(Environment.DEVELOPMENT) is None

        (tmp_path / "chorus.yaml").write_text("{}")
        assert get_config_file_path(Environment.DEVELOPMENT) == Path("chorus.yaml")

    def test_explicit_config_path(self, tmp_path: Path, monkeypatch):
        monkeypatch.chdir(tmp_path)
        (tmp_path / "chorus.yaml").write_text("{}")
        monkeypatch.setenv("CHORUS_CONFIG", "elsewhere/dialogue.yaml")
        assert get_config_file_path() == Path("elsewhere/dialogue.yaml")

    def test_unknown_environment_name_ignored(self, tmp_path: Path, monkeypatch):
        monkeypatch.chdir(tmp_path)
        monkeypatch.setenv("CHORUS_ENVIRONMENT", "moon")
        assert get_environment() == Environment.DEVELOPMENT


class TestEnvMapping:
    """Test the environment variable table."""

    def test_pacing_and_observability_overrides(self, monkeypatch):
        monkeypatch.setenv("CHORUS_HAZARD_REPLY_INTERVAL", "12")
        monkeypatch.setenv("CHORUS_REQUEST_TTL", "100")
        monkeypatch.setenv("CHORUS_METRICS_ENABLED", "on")
        monkeypatch.setenv("CHORUS_OTLP_ENDPOINT", "http://collector:4317")

        config = load_config_from_env()

        assert config.dialogue.hazard_reply_interval_ticks == 12
        assert config.dialogue.request_ttl_ticks == 100
        assert config.metrics.enabled is True
        assert config.metrics.otlp_endpoint == "http://collector:4317"
        assert config.model_dump(exclude_unset=True)["dialogue"] == {
            "hazard_reply_interval_ticks": 12,
            "request_ttl_ticks": 100,
        }
