"""Configuration management with XDG paths, atomic writes, and precedence resolution.

This module handles all persistent configuration for promptwire:

* **Directory layout** -- XDG Base Directory compliant on Linux/BSD,
  ``~/.promptwire/`` on macOS and Windows. See :func:`get_config_dir` and
  :func:`get_data_dir`.
* **Settings** -- a single :class:`~promptwire.models.Settings` JSON file
  storing the service location, credential source, retry defaults and
  output preferences.
* **Precedence resolution** -- :func:`resolve_settings` merges CLI flags,
  environment variables, project-local config, and user config into the
  effective settings.
* **Credential resolution** -- :func:`resolve_credential` reads the API key
  from an env var, a file, or an interactive prompt.
* **Client configuration** -- :func:`build_client_config` turns settings into
  the frozen :class:`~promptwire.models.ClientConfig` the client runs on.

All file writes use an atomic temp-file-then-rename strategy
(:func:`_atomic_write`) to prevent data loss on crash or power failure.
"""

from __future__ import annotations

import getpass
import json
import os
import platform
import sys
import tempfile
from pathlib import Path
from typing import Any, Optional

from pydantic import SecretStr, ValidationError

from promptwire.exceptions import ConfigError
from promptwire.models import APIType, ClientConfig, Settings

_APP_NAME = "promptwire"
_CONFIG_FILENAME = "config.json"
_PROJECT_CONFIG_FILENAME = "promptwire.json"

ENV_API_KEY = "PROMPTWIRE_API_KEY"
ENV_BASE_URL = "PROMPTWIRE_BASE_URL"


# --- XDG path resolution ---


def _is_xdg_platform() -> bool:
    """Return True if the platform supports XDG Base Directory spec (Linux/FreeBSD)."""
    return platform.system() == "Linux" or platform.system().endswith("BSD")


def _fallback_base_dir() -> Path:
    """Fallback base directory for non-XDG platforms (macOS, Windows)."""
    return Path.home() / f".{_APP_NAME}"


def _xdg_base(env_var: str, default_segments: tuple[str, ...]) -> Path:
    """Resolve an XDG base directory from an env var with fallback segments under $HOME."""
    env_value = os.environ.get(env_var, "")
    if env_value:
        return Path(env_value)
    base = Path.home()
    for seg in default_segments:
        base = base / seg
    return base


def get_config_dir() -> Path:
    """Return the configuration directory, creating it if necessary.

    On Linux/BSD: ``$XDG_CONFIG_HOME/promptwire/`` (default ``~/.config/promptwire/``).
    On macOS/Windows: ``~/.promptwire/``.
    """
    if _is_xdg_platform():
        base = _xdg_base("XDG_CONFIG_HOME", (".config",))
        path = base / _APP_NAME
    else:
        path = _fallback_base_dir()
    path.mkdir(parents=True, exist_ok=True)
    return path


def get_data_dir() -> Path:
    """Return the data directory (crash logs), creating it if necessary.

    On Linux/BSD: ``$XDG_DATA_HOME/promptwire/`` (default ``~/.local/share/promptwire/``).
    On macOS/Windows: ``~/.promptwire/logs/``.
    """
    if _is_xdg_platform():
        base = _xdg_base("XDG_DATA_HOME", (".local", "share"))
        path = base / _APP_NAME
    else:
        path = _fallback_base_dir() / "logs"
    path.mkdir(parents=True, exist_ok=True)
    return path


# --- Atomic file writes ---


def _atomic_write(path: Path, data: str) -> None:
    """Write data to file atomically using temp file + rename.

    The temporary file is created in the same directory as *path* so that
    ``os.replace`` is an atomic rename on POSIX systems. On any failure the
    temp file is cleaned up.
    """
    path.parent.mkdir(parents=True, exist_ok=True)

    fd = None
    tmp_path: Optional[str] = None
    try:
        fd = tempfile.NamedTemporaryFile(
            mode="w",
            dir=path.parent,
            prefix=f".{path.name}.",
            suffix=".tmp",
            delete=False,
            encoding="utf-8",
        )
        tmp_path = fd.name
        fd.write(data)
        fd.flush()
        os.fsync(fd.fileno())
        fd.close()
        fd = None
        os.replace(tmp_path, path)
    except BaseException:
        if fd is not None:
            fd.close()
        if tmp_path is not None:
            try:
                os.unlink(tmp_path)
            except OSError:
                pass
        raise


# --- Settings ---


def settings_path() -> Path:
    """Path to the user settings file."""
    return get_config_dir() / _CONFIG_FILENAME


def load_settings() -> Settings:
    """Load the user settings from the config directory.

    Returns:
        The deserialised :class:`~promptwire.models.Settings`, or defaults
        when the file does not exist.

    Raises:
        ConfigError: If the file exists but contains invalid JSON or fails
            Pydantic validation.
    """
    path = settings_path()
    if not path.is_file():
        return Settings()
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
        return Settings.model_validate(data)
    except (json.JSONDecodeError, ValueError) as exc:
        raise ConfigError(f"Invalid settings at {path}: {exc}") from exc


def save_settings(settings: Settings) -> None:
    """Persist the settings atomically to disk."""
    data = settings.model_dump(mode="json")
    _atomic_write(settings_path(), json.dumps(data, indent=2) + "\n")


def load_project_config() -> Optional[dict[str, Any]]:
    """Load project-local overrides from ``./promptwire.json``.

    Returns:
        The parsed JSON object, or ``None`` if the file does not exist.

    Raises:
        ConfigError: If the file exists but is not a JSON object.
    """
    path = Path.cwd() / _PROJECT_CONFIG_FILENAME
    if not path.is_file():
        return None
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (json.JSONDecodeError, ValueError) as exc:
        raise ConfigError(f"Invalid project config at {path}: {exc}") from exc
    if not isinstance(data, dict):
        raise ConfigError(f"Invalid project config at {path}: expected a JSON object")
    return data


# --- Precedence resolution ---


def resolve_settings(
    cli_base_url: Optional[str] = None,
    cli_format: Optional[str] = None,
) -> Settings:
    """Resolve settings with the full precedence chain.

    Precedence (high to low):
        1. CLI flags (``cli_base_url``, ``cli_format``)
        2. Environment variables (``PROMPTWIRE_BASE_URL``)
        3. Project config (``./promptwire.json``)
        4. User config (``~/.config/promptwire/config.json``)
        5. Defaults
    """
    settings = load_settings()

    project = load_project_config()
    if project:
        merged = settings.model_dump(mode="json")
        merged.update(project)
        try:
            settings = Settings.model_validate(merged)
        except ValidationError as exc:
            raise ConfigError(f"Invalid project config: {exc}") from exc

    env_base_url = os.environ.get(ENV_BASE_URL)
    if cli_base_url is not None:
        settings.base_url = cli_base_url
    elif env_base_url:
        settings.base_url = env_base_url

    if cli_format is not None:
        settings.output.format = cli_format

    return settings


# --- Credential source resolution ---


def resolve_credential(source: str) -> str:
    """Resolve a credential from its source descriptor.

    Supported formats:
        - ``"env:VAR_NAME"`` -- reads ``os.environ["VAR_NAME"]``
        - ``"file:/path/to/file"`` -- reads file content, stripped of whitespace
        - ``"prompt"`` -- prompts the user interactively (requires a TTY)

    Raises:
        ConfigError: If the source can't be resolved.
    """
    if source.startswith("env:"):
        var_name = source[4:]
        value = os.environ.get(var_name)
        if value is None:
            raise ConfigError(
                f"Environment variable '{var_name}' is not set (source: {source})"
            )
        return value

    if source.startswith("file:"):
        path = Path(source[5:]).expanduser()
        if not path.is_file():
            raise ConfigError(f"Credential file not found: {path} (source: {source})")
        try:
            return path.read_text(encoding="utf-8").strip()
        except OSError as exc:
            raise ConfigError(f"Cannot read credential file {path}: {exc}") from exc

    if source == "prompt":
        if not sys.stdin.isatty():
            raise ConfigError(
                "Cannot prompt for credentials: stdin is not a TTY (source: prompt)"
            )
        return getpass.getpass("Enter API key: ")

    raise ConfigError(f"Unknown credential source format: {source}")


def build_client_config(settings: Settings, api_key: Optional[str] = None) -> ClientConfig:
    """Build the immutable :class:`~promptwire.models.ClientConfig`.

    The API key comes from *api_key* if given, then ``PROMPTWIRE_API_KEY``,
    then ``settings.api_key_source``.

    Raises:
        ConfigError: If the key cannot be resolved, or an Azure service has
            no base URL.
    """
    if api_key is None:
        api_key = os.environ.get(ENV_API_KEY) or resolve_credential(settings.api_key_source)

    fields: dict[str, Any] = {
        "api_key": SecretStr(api_key),
        "api_type": settings.api_type,
        "api_version": settings.api_version,
        "organization": settings.organization,
        "azure_model_mapper": settings.azure_model_mapper,
        "empty_messages_limit": settings.empty_messages_limit,
        "timeout": settings.timeout,
        "retry": settings.retry,
    }
    if settings.base_url:
        fields["base_url"] = settings.base_url
    elif settings.api_type != APIType.OPEN_AI:
        raise ConfigError("An Azure service needs base_url (the resource endpoint)")
    return ClientConfig(**fields)
