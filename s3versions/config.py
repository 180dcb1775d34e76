"""Configuration loading for the version lister.

Supports two configuration sources:
1. Environment variables, including a .env file - takes priority
2. config.json file

Environment Variable Format:
    ACCESS_KEY=xxx
    SECRET_KEY=xxx
    BUCKET_NAME=xxx
    REGION=us-east-1
    ENDPOINT=https://nyc3.digitaloceanspaces.com
    SESSION_TOKEN=xxx          (optional)
    ADDRESSING_STYLE=path      (optional, path or virtual)

The JSON file uses the same options as lower-case keys.
"""

import json
import os
from pathlib import Path
from typing import Mapping, Optional

from dotenv import load_dotenv

from s3versions.models import StoreConfig


class ConfigError(Exception):
    """Raised when configuration loading fails."""

    pass


# Required options, mapped to StoreConfig fields
REQUIRED_OPTIONS = {
    "ACCESS_KEY": "access_key",
    "SECRET_KEY": "secret_key",
    "BUCKET_NAME": "bucket_name",
    "REGION": "region",
    "ENDPOINT": "endpoint_url",
}

OPTIONAL_OPTIONS = {
    "SESSION_TOKEN": "session_token",
    "ADDRESSING_STYLE": "addressing_style",
}

ADDRESSING_STYLES = ("path", "virtual")


def _build_config(values: Mapping[str, Optional[str]], source: str) -> StoreConfig:
    """Validate option values and build a StoreConfig.

    Args:
        values: Option name (upper-case) to value.
        source: Where the values came from, for error messages.

    Raises:
        ConfigError: If required options are missing or values are invalid.
    """
    missing = [name for name in REQUIRED_OPTIONS if not values.get(name)]
    if missing:
        raise ConfigError(
            f"Missing required option(s) in {source}: {', '.join(missing)}"
        )

    fields = {attr: values[name] for name, attr in REQUIRED_OPTIONS.items()}
    for name, attr in OPTIONAL_OPTIONS.items():
        if values.get(name):
            fields[attr] = values[name]

    style = fields.get("addressing_style", "path")
    if style not in ADDRESSING_STYLES:
        raise ConfigError(
            f"Invalid ADDRESSING_STYLE '{style}'. Expected one of: {', '.join(ADDRESSING_STYLES)}"
        )

    endpoint = fields["endpoint_url"]
    if not endpoint.startswith(("http://", "https://")):
        raise ConfigError(f"ENDPOINT must start with http:// or https://, got '{endpoint}'")

    return StoreConfig(**fields)


def load_from_env(environ: Optional[Mapping[str, str]] = None) -> StoreConfig:
    """Load the store configuration from environment variables.

    Args:
        environ: Mapping to read from (defaults to os.environ).

    Returns:
        The StoreConfig described by the environment.

    Raises:
        ConfigError: If required variables are missing or invalid.
    """
    if environ is None:
        environ = os.environ

    names = list(REQUIRED_OPTIONS) + list(OPTIONAL_OPTIONS)
    values = {name: environ.get(name) for name in names}
    return _build_config(values, "environment")


def load_from_json(config_path: str) -> StoreConfig:
    """Load the store configuration from a JSON file.

    Args:
        config_path: Path to the config.json file.

    Returns:
        The StoreConfig described by the file.

    Raises:
        ConfigError: If file doesn't exist, contains invalid JSON,
                    or is missing required options.
    """
    path = Path(config_path)

    if not path.exists():
        raise ConfigError(f"Config file not found: {config_path}")

    try:
        with open(path, encoding="utf-8") as f:
            data = json.load(f)
    except json.JSONDecodeError as e:
        raise ConfigError(f"Invalid JSON in config file: {e}") from e

    if not isinstance(data, dict):
        raise ConfigError("Config file must contain a JSON object")

    values = {name.upper(): value for name, value in data.items() if value is not None}
    return _build_config(values, config_path)


def has_env_config(environ: Optional[Mapping[str, str]] = None) -> bool:
    """Check if any recognized option is set in the environment."""
    if environ is None:
        environ = os.environ
    return any(environ.get(name) for name in REQUIRED_OPTIONS)


def load_config(
    config_path: str = "config.json",
    env_file: Optional[str] = ".env",
) -> StoreConfig:
    """Load the store configuration with environment priority.

    Priority order:
    1. Environment variables (after loading ``env_file`` without
       overriding variables that are already set)
    2. config.json file

    Args:
        config_path: Path to config.json (used as fallback).
        env_file: Path to a .env file, or None to skip it.

    Returns:
        The resolved StoreConfig.

    Raises:
        ConfigError: If no source provides a complete configuration.
    """
    if env_file and Path(env_file).exists():
        load_dotenv(env_file, override=False)

    if has_env_config():
        return load_from_env()
    if Path(config_path).exists():
        return load_from_json(config_path)

    raise ConfigError(
        "No configuration found. Set "
        + ", ".join(REQUIRED_OPTIONS)
        + " in the environment or a .env file, or create a config.json file."
    )
