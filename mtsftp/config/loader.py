"""
YAML settings loader.

This module loads and validates the mtsftp settings file. The file path
comes from the caller, the MTSFTP_CONFIG environment variable, or falls
back to built-in defaults. REDIS_HOST and REDIS_PORT override the file so
CI jobs can point every test process at the same lease store.
"""

import logging
import os
from pathlib import Path
from typing import Optional, Union

import yaml
from dotenv import load_dotenv
from pydantic import ValidationError

from mtsftp.config.models import Settings

logger = logging.getLogger(__name__)

CONFIG_ENV_VAR = "MTSFTP_CONFIG"


class ConfigError(Exception):
    """Raised when configuration loading or validation fails."""
    pass


def _format_validation_error(e: ValidationError) -> str:
    error_messages = []
    for error in e.errors():
        location = " -> ".join(str(loc) for loc in error["loc"])
        error_messages.append(f"  {location}: {error['msg']}")
    return "\n".join(error_messages)


def load_yaml_file(file_path: Path) -> dict:
    """
    Load and parse a YAML file.

    Args:
        file_path: Path to YAML file

    Returns:
        Parsed YAML content as dictionary

    Raises:
        ConfigError: If file cannot be read or parsed
    """
    try:
        with open(file_path, "r", encoding="utf-8") as f:
            content = yaml.safe_load(f)

        if content is None:
            raise ConfigError(f"Empty configuration file: {file_path}")

        if not isinstance(content, dict):
            raise ConfigError(
                f"Invalid configuration format in {file_path}. "
                "Expected a YAML mapping (dictionary)."
            )

        return content

    except yaml.YAMLError as e:
        raise ConfigError(f"Failed to parse YAML in {file_path}: {e}") from e
    except IOError as e:
        raise ConfigError(f"Failed to read configuration file {file_path}: {e}") from e


def _apply_env_overrides(raw_config: dict) -> dict:
    redis_section = dict(raw_config.get("redis") or {})

    if os.getenv("REDIS_HOST"):
        redis_section["host"] = os.environ["REDIS_HOST"]
    if os.getenv("REDIS_PORT"):
        redis_section["port"] = os.environ["REDIS_PORT"]

    if redis_section:
        raw_config = {**raw_config, "redis": redis_section}
    return raw_config


def load_settings_from_dict(config_dict: dict) -> Settings:
    """
    Create Settings from a dictionary.

    Useful for testing or when configuration is assembled
    programmatically.

    Raises:
        ConfigError: If validation fails
    """
    try:
        return Settings(**config_dict)
    except ValidationError as e:
        raise ConfigError(
            "Invalid configuration:\n" + _format_validation_error(e)
        ) from e


def load_settings(config_path: Optional[Union[str, Path]] = None) -> Settings:
    """
    Load and validate mtsftp settings.

    Args:
        config_path: Optional path to a YAML settings file. Falls back to
            the MTSFTP_CONFIG environment variable, then to defaults.

    Returns:
        Validated Settings object

    Raises:
        ConfigError: If the file is missing, invalid YAML, or fails validation

    Example:
        >>> settings = load_settings("config/mtsftp.yaml")
        >>> settings.pool.lock_ttl_seconds
        300
    """
    load_dotenv()

    if config_path is None:
        config_path = os.getenv(CONFIG_ENV_VAR)

    if config_path is None:
        logger.debug("No settings file given, using defaults")
        raw_config: dict = {}
    else:
        path = Path(config_path).expanduser()
        if not path.exists():
            raise ConfigError(f"Configuration file not found: {path}")
        logger.info(f"Loading settings from: {path}")
        raw_config = load_yaml_file(path)

    raw_config = _apply_env_overrides(raw_config)

    try:
        return Settings(**raw_config)
    except ValidationError as e:
        raise ConfigError(
            f"Invalid configuration in {config_path or 'environment'}:\n"
            + _format_validation_error(e)
        ) from e
