"""``chorus config``: check and print the effective configuration."""

import argparse
import json
from pathlib import Path

import yaml

from chorus.config import (
    Config,
    ConfigError,
    load_config,
    load_config_from_env,
    validate_config,
)
from chorus.config.environment import get_config_file_path

SECRET_FIELDS = [("llm", "api_key")]


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="chorus config", description="Configuration management"
    )
    commands = parser.add_subparsers(dest="command")

    validate = commands.add_parser(
        "validate", help="Validate a configuration file or the environment"
    )
    validate.add_argument("file", nargs="?", type=Path)

    show = commands.add_parser("show", help="Print the effective configuration")
    show.add_argument("file", nargs="?", type=Path)
    show.add_argument("--format", "-f", choices=["yaml", "json"], default="yaml")

    return parser


def config_validate_command(config_path: Path | None) -> int:
    if config_path is not None and not config_path.exists():
        print(f"Error: Configuration file not found: {config_path}")
        return 1

    try:
        if config_path is not None:
            print(f"Validating configuration file: {config_path}")
            config = load_config(config_path)
        else:
            print("Validating configuration from environment variables")
            config = load_config_from_env()
        validate_config(config)
    except ConfigError as e:
        print(f"✗ Configuration validation failed: {e}")
        return 1

    print("✓ Configuration is valid")
    return 0


def masked_config(config: Config) -> dict:
    """Plain-data view of ``config`` with secrets replaced by ``***``."""
    data = config.model_dump(mode="json")
    data["features"] = config.features.to_dict()
    for section, key in SECRET_FIELDS:
        if data[section].get(key):
            data[section][key] = "***"
    return data


def config_show_command(config_path: Path | None, format_type: str) -> int:
    try:
        config = load_config(config_path or get_config_file_path())
    except ConfigError as e:
        print(f"Error loading configuration: {e}")
        return 1

    data = masked_config(config)
    if format_type == "json":
        print(json.dumps(data, indent=2))
    else:
        print(yaml.safe_dump(data, default_flow_style=False, sort_keys=True))
    return 0


def run_config_command(args: list[str]) -> int:
    """Dispatch ``chorus config`` subcommands.

    Returns:
        Exit code (0 for success, non-zero for error)
    """
    parser = _build_parser()
    try:
        parsed = parser.parse_args(args)
    except SystemExit as e:
        return int(e.code or 0)

    if parsed.command == "validate":
        return config_validate_command(parsed.file)
    if parsed.command == "show":
        return config_show_command(parsed.file, parsed.format)

    parser.print_help()
    return 0
