"""
Loading config.json.

The config path comes from the --config argument, then the SMC100CC_CONFIG
environment variable, then ./config.json. A missing file is not an error:
the defaults are used and written out so the operator has a file to edit.
"""

import json
import logging
import os
from pathlib import Path
from typing import Optional

from pydantic import ValidationError

from .models import AppConfig


logger = logging.getLogger(__name__)

DEFAULT_CONFIG_FILE = "config.json"
CONFIG_ENV_VAR = "SMC100CC_CONFIG"

DEFAULT_HEADER = "SMC100CC stage controller configuration (auto-generated). Keys starting with '_' are ignored."


class ConfigurationError(Exception):
    """Raised when configuration is invalid or cannot be loaded."""
    pass


def resolve_config_path(path: Optional[str] = None) -> Path:
    """Pick the config file: explicit path, then $SMC100CC_CONFIG, then ./config.json."""
    return Path(path or os.environ.get(CONFIG_ENV_VAR) or DEFAULT_CONFIG_FILE)


def _write_json(data: dict, config_path: Path) -> None:
    with open(config_path, "w", encoding="utf-8") as f:
        json.dump(data, f, indent=2)
        f.write("\n")


def _strip_comments(data: dict) -> dict:
    """Drop '_'-prefixed documentation keys at any nesting level."""
    return {
        key: _strip_comments(value) if isinstance(value, dict) else value
        for key, value in data.items()
        if not key.startswith("_")
    }


def format_validation_error(error: ValidationError) -> str:
    """Render pydantic errors as one '  - section -> field: message' line each."""
    lines = []
    for item in error.errors():
        field = " -> ".join(str(x) for x in item["loc"])
        lines.append(f"  - {field}: {item['msg']}")
    return "Configuration validation failed:\n" + "\n".join(lines)


def load_config(path: Optional[str] = None) -> AppConfig:
    """
    Load and validate the daemon configuration.

    Args:
        path: Path to the JSON file. See resolve_config_path() for the fallback order.

    Returns:
        Validated AppConfig instance.

    Raises:
        ConfigurationError: If the file is unreadable, not JSON, or fails validation.
    """
    config_path = resolve_config_path(path)

    if not config_path.exists():
        logger.info(f"Config file not found: {config_path}. Using defaults.")
        config = AppConfig()
        try:
            _write_json({"_comment": DEFAULT_HEADER, **config.model_dump()}, config_path)
            logger.info(f"Created default config file: {config_path}")
        except OSError as e:
            logger.warning(f"Failed to create default config file: {e}")
        return config

    try:
        with open(config_path, "r", encoding="utf-8") as f:
            raw = json.load(f)
    except json.JSONDecodeError as e:
        raise ConfigurationError(f"Invalid JSON in {config_path}: {e}") from e
    except OSError as e:
        raise ConfigurationError(f"Failed to read {config_path}: {e}") from e

    if not isinstance(raw, dict):
        raise ConfigurationError(f"{config_path} must contain a JSON object")

    try:
        config = AppConfig(**_strip_comments(raw))
    except ValidationError as e:
        raise ConfigurationError(format_validation_error(e)) from e

    logger.info(f"Configuration loaded from {config_path}")
    return config

