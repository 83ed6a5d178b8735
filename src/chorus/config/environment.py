"""Deployment environment detection and config file discovery."""

import os
from enum import Enum
from pathlib import Path


class Environment(Enum):
    DEVELOPMENT = "development"
    STAGING = "staging"
    PRODUCTION = "production"
    TESTING = "testing"


# Marker files checked in the working directory, first match wins.
_MARKERS = [
    (".env.production", Environment.PRODUCTION),
    (".env.staging", Environment.STAGING),
    (".env.testing", Environment.TESTING),
]


def get_environment() -> Environment:
    """``CHORUS_ENVIRONMENT`` if it names a known environment, else a marker file.

    Falls back to development.
    """
    name = os.getenv("CHORUS_ENVIRONMENT", "").strip().lower()
    if name in {env.value for env in Environment}:
        return Environment(name)

    cwd = Path.cwd()
    for marker, environment in _MARKERS:
        if (cwd / marker).exists():
            return environment
    return Environment.DEVELOPMENT


def get_config_file_path(environment: Environment | None = None) -> Path | None:
    """Locate the YAML file for ``environment``.

    ``CHORUS_CONFIG`` names a file explicitly. Otherwise the per-environment
    file under ``config/`` is preferred over the shared ``chorus.yaml``.
    """
    explicit = os.getenv("CHORUS_CONFIG")
    if explicit:
        return Path(explicit)

    env = (environment or get_environment()).value
    candidates = [
        Path("config") / f"{env}.yaml",
        Path("config") / f"{env}.yml",
        Path(f"chorus.{env}.yaml"),
        Path("config") / "chorus.yaml",
        Path("chorus.yaml"),
        Path("chorus.yml"),
    ]
    return next((path for path in candidates if path.exists()), None)
