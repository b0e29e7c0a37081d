"""Config loading/saving and credential persistence.

Two files live in ``~/.config/rtm-client/``:

- ``auth.json``: application key/secret and the saved user credential.
  Written with owner-only permissions.
- ``config.json``: user-editable settings such as the default filter.
"""

from __future__ import annotations

import json
import logging
import os
from pathlib import Path
from typing import Any

import dacite

from .exceptions import (
    ConfigLoadError,
    ConfigSaveError,
    ConfigValidationError,
    record_error,
)
from .models import AppSettings, AuthConfig, Credential, model_from_dict, model_to_dict

logger = logging.getLogger(__name__)

# Configuration file locations
CONFIG_DIR = Path.home() / ".config" / "rtm-client"
AUTH_CONFIG_FILENAME = "auth.json"
SETTINGS_FILENAME = "config.json"


def get_config_dir() -> Path:
    """Return the path to the config directory."""
    return CONFIG_DIR


def get_auth_config_path() -> Path:
    """Return the path to the credentials file."""
    return CONFIG_DIR / AUTH_CONFIG_FILENAME


def get_settings_path() -> Path:
    """Return the path to the settings file."""
    return CONFIG_DIR / SETTINGS_FILENAME


def _ensure_config_dir(error_cls: type[ConfigLoadError] | type[ConfigSaveError]) -> None:
    try:
        CONFIG_DIR.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        logger.error("Failed to create config directory: %s", e)
        record_error(e)
        raise error_cls(
            f"Failed to create config directory: {CONFIG_DIR}",
            file_path=str(CONFIG_DIR),
            cause=e,
        ) from e


def _read_json(path: Path) -> dict[str, Any] | None:
    """Read a JSON object from ``path``; None if the file does not exist."""
    _ensure_config_dir(ConfigLoadError)
    if not path.exists():
        return None

    try:
        with open(path, encoding="utf-8") as f:
            data = json.load(f)
        logger.debug("Loaded %s", path)
    except json.JSONDecodeError as e:
        logger.error("Invalid JSON in %s: %s", path.name, e)
        record_error(e)
        raise ConfigLoadError(
            f"Invalid JSON in {path.name} at line {e.lineno}",
            file_path=str(path),
            context={"line": e.lineno, "column": e.colno},
            cause=e,
        ) from e
    except OSError as e:
        logger.error("Failed to read %s: %s", path.name, e)
        record_error(e)
        raise ConfigLoadError(
            f"Failed to read {path.name}",
            file_path=str(path),
            cause=e,
        ) from e

    if not isinstance(data, dict):
        raise ConfigValidationError(
            f"{path.name} must contain a JSON object",
            value=data,
            expected="object",
            context={"file_path": str(path)},
        )
    return data


def _write_json(path: Path, data: dict[str, Any], *, private: bool = False) -> None:
    _ensure_config_dir(ConfigSaveError)
    try:
        text = json.dumps(data, indent=2)
    except (TypeError, ValueError) as e:
        logger.error("Failed to serialize %s to JSON: %s", path.name, e)
        record_error(e)
        raise ConfigSaveError(
            f"Failed to serialize {path.name} to JSON",
            file_path=str(path),
            cause=e,
        ) from e

    try:
        if private:
            fd = os.open(path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(text)
            os.chmod(path, 0o600)
        else:
            with open(path, "w", encoding="utf-8") as f:
                f.write(text)
        logger.debug("Saved %s", path)
    except OSError as e:
        logger.error("Failed to write %s: %s", path.name, e)
        record_error(e)
        raise ConfigSaveError(
            f"Failed to write {path.name}",
            file_path=str(path),
            cause=e,
        ) from e


def _from_dict(data_class: type, data: dict[str, Any], path: Path) -> Any:
    try:
        return model_from_dict(data_class, data)
    except (dacite.DaciteError, ValueError) as e:
        logger.error("%s schema validation failed: %s", path.name, e)
        record_error(e)
        raise ConfigValidationError(
            f"{path.name} schema validation failed: {e}",
            context={"file_path": str(path)},
            cause=e,
        ) from e


# =============================================================================
# Credentials
# =============================================================================


def load_auth_config() -> AuthConfig:
    """
    Load the application keys and saved credential.

    Returns:
        AuthConfig, empty if nothing has been saved yet.

    Raises:
        ConfigLoadError: If the file exists but cannot be read or parsed.
        ConfigValidationError: If the file does not match the schema.
    """
    path = get_auth_config_path()
    data = _read_json(path)
    if data is None:
        logger.debug("No saved credentials found")
        return AuthConfig()
    return _from_dict(AuthConfig, data, path)


def save_auth_config(config: AuthConfig) -> None:
    """
    Save the application keys and credential with owner-only permissions.

    Raises:
        ConfigSaveError: If the file cannot be written.
    """
    _write_json(get_auth_config_path(), model_to_dict(config), private=True)


def save_credential(credential: Credential | None) -> None:
    """Store (or remove) the user credential, keeping the app keys."""
    config = load_auth_config()
    config.credential = credential
    save_auth_config(config)
    if credential is None:
        logger.info("Removed saved credential")
    else:
        logger.info("Saved credential for %s", credential.user.username)


def clear_user_data() -> AuthConfig:
    """Forget the saved user token (logout). Returns the updated config."""
    config = load_auth_config()
    config.clear_user_data()
    save_auth_config(config)
    logger.info("Cleared saved user data")
    return config


# =============================================================================
# Settings
# =============================================================================


def load_settings() -> AppSettings:
    """
    Load user settings.

    Returns:
        AppSettings, with defaults if no settings file exists.

    Raises:
        ConfigLoadError: If the file exists but cannot be read or parsed.
        ConfigValidationError: If the file does not match the schema.
    """
    path = get_settings_path()
    data = _read_json(path)
    if data is None:
        logger.debug("No settings found, using defaults")
        return AppSettings()
    settings = _from_dict(AppSettings, data, path)
    if settings.undo_capacity < 1:
        raise ConfigValidationError(
            "undo_capacity must be at least 1",
            field="undo_capacity",
            value=settings.undo_capacity,
            expected="positive integer",
        )
    return settings


def save_settings(settings: AppSettings) -> None:
    """
    Save user settings.

    Raises:
        ConfigSaveError: If the file cannot be written.
    """
    _write_json(get_settings_path(), model_to_dict(settings))
