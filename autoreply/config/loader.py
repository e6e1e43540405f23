"""Configuration loader for the auto-responder."""

from pathlib import Path
from typing import Any, Dict, Optional, Tuple

import yaml
from pydantic import ValidationError

from .environment import EnvironmentConfig, load_environment_config
from .exceptions import ConfigurationError
from .models import AppConfig
from .validators import check_for_warnings, emit_warnings

DEFAULT_CONFIG_CANDIDATES = (
    Path("config.yaml"),
    Path("config") / "config.yaml",
)


def load_config(config_path: Optional[Path] = None) -> Tuple[AppConfig, EnvironmentConfig]:
    """
    Load and validate configuration from a YAML file and environment variables.

    Every setting has a default, so a missing config file is not an error
    unless a path was given explicitly:
    1. Use config_path if given (must exist)
    2. Try config.yaml, then config/config.yaml
    3. Fall back to built-in defaults

    Args:
        config_path: Optional path to configuration file

    Returns:
        Tuple of (AppConfig, EnvironmentConfig)

    Raises:
        ConfigurationError: If configuration is invalid or an explicit file is missing
    """
    config_file = _find_config_file(config_path)
    config_dict = _read_yaml(config_file) if config_file else {}

    app_config = build_app_config(config_dict)

    try:
        env_config = load_environment_config()
    except ConfigurationError:
        raise
    except Exception as e:
        raise ConfigurationError(
            f"Failed to load environment configuration: {e}",
            suggestions=["Copy .env.example to .env and adjust the values"],
        ) from e

    return app_config, env_config


def build_app_config(config_dict: Optional[Dict[str, Any]]) -> AppConfig:
    """
    Validate a raw configuration mapping into an AppConfig.

    Args:
        config_dict: Parsed YAML mapping (None or empty means defaults)

    Returns:
        Validated AppConfig

    Raises:
        ConfigurationError: With one entry per Pydantic validation error
    """
    config_dict = config_dict or {}

    if not isinstance(config_dict, dict):
        raise ConfigurationError(
            "Configuration root must be a mapping",
            suggestions=["Review config.example.yaml for the expected layout"],
        )

    warnings = check_for_warnings(config_dict)
    if warnings:
        emit_warnings(warnings)

    try:
        return AppConfig.model_validate(config_dict)
    except ValidationError as e:
        raise ConfigurationError(
            "Configuration validation failed",
            errors=[_format_validation_error(error) for error in e.errors()],
            suggestions=[
                "Review config.example.yaml for correct format",
                "Durations accept values like 250ms, 3s, 5m or PT30S",
                "Verify field types match the expected schema",
            ],
        ) from e


def _format_validation_error(error: Dict[str, Any]) -> str:
    field_path = " -> ".join(str(loc) for loc in error["loc"]) or "<root>"
    error_type = error["type"]
    error_msg = error["msg"]

    if error_type == "missing":
        return f"Missing required field: {field_path}"
    if error_type in ("string_type", "int_type", "bool_type", "float_type", "int_parsing", "float_parsing"):
        expected_type = error_type.split("_")[0]
        return f"Invalid type for '{field_path}': expected {expected_type}, got {error.get('input')!r}"
    if error_type == "extra_forbidden":
        return f"Unknown field: {field_path}"
    if "enum" in error_type:
        return f"Invalid value for '{field_path}': {error_msg}"
    return f"{field_path}: {error_msg}"


def _read_yaml(config_file: Path) -> Dict[str, Any]:
    try:
        with open(config_file, "r", encoding="utf-8") as f:
            return yaml.safe_load(f) or {}
    except yaml.YAMLError as e:
        raise ConfigurationError(
            f"Failed to parse YAML configuration: {e}",
            suggestions=[
                "Check YAML syntax in your config file",
                "Ensure proper indentation (use spaces, not tabs)",
            ],
        ) from e
    except OSError as e:
        raise ConfigurationError(
            f"Failed to read configuration file: {e}",
            suggestions=[f"Ensure {config_file} is readable"],
        ) from e


def _find_config_file(config_path: Optional[Path] = None) -> Optional[Path]:
    """Return the config file to load, or None to use defaults."""
    if config_path:
        if not config_path.exists():
            raise ConfigurationError(
                f"Specified configuration file not found: {config_path}",
                suggestions=[
                    f"Ensure {config_path} exists",
                    "Copy config.example.yaml to config.yaml",
                ],
            )
        return config_path

    for candidate in DEFAULT_CONFIG_CANDIDATES:
        if candidate.exists():
            return candidate

    return None


def validate_config_file(config_path: Path) -> bool:
    """
    Validate a configuration file without loading environment variables.

    Args:
        config_path: Path to configuration file

    Returns:
        True if valid, False otherwise (errors printed to stdout)
    """
    try:
        build_app_config(_read_yaml(config_path))
    except ConfigurationError as e:
        print(f"✗ Configuration validation failed:\n{e}")
        return False

    print(f"✓ Configuration file {config_path} is valid")
    return True
