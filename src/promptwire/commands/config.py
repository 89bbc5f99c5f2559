"""Config commands -- view and modify the user settings.

Provides the ``promptwire config`` sub-command group for reading, updating,
and resetting the settings file (:class:`~promptwire.models.Settings`).
Settings control the service location, credential source, retry defaults
and output format.
"""

from __future__ import annotations

from typing import Any

import typer

from promptwire.output import error, get_output, info, success


config_app = typer.Typer(no_args_is_help=True)

# Keys below these paths are free-form and may be created by ``config set``.
_OPEN_MAPPINGS = ("azure_model_mapper",)


@config_app.command("show")
def config_show() -> None:
    """Show the current settings.

    Example::

        promptwire config show
        promptwire config show --json
    """
    from promptwire.config import get_config_dir, load_settings

    settings = load_settings()
    info(f"Config directory: {get_config_dir()}")
    get_output().print_settings(settings.model_dump(mode="json"))


@config_app.command("path")
def config_path() -> None:
    """Print the path of the settings file."""
    from promptwire.config import settings_path

    get_output().print_line(str(settings_path()))


def _coerce(key: str, current: Any, value: str) -> Any:
    """Coerce *value* to the type of the existing field."""
    if isinstance(current, bool):
        return value.lower() in ("true", "1", "yes")
    if isinstance(current, int):
        try:
            return int(value)
        except ValueError:
            error(f"Expected integer for {key}, got: {value}")
            raise typer.Exit(code=2) from None
    if isinstance(current, float):
        try:
            return float(value)
        except ValueError:
            error(f"Expected number for {key}, got: {value}")
            raise typer.Exit(code=2) from None
    if isinstance(current, list):
        # Status-code sets such as retry.retry_codes.
        try:
            return [int(v) for v in value.split(",") if v.strip()]
        except ValueError:
            error(f"Expected comma-separated integers for {key}, got: {value}")
            raise typer.Exit(code=2) from None
    return value


@config_app.command("set")
def config_set(
    key: str = typer.Argument(
        help="Settings key (dot notation, e.g. 'retry.retries')."
    ),
    value: str = typer.Argument(help="Value to set."),
) -> None:
    """Set a settings value.

    Uses dot notation for nested keys. The value is coerced to match the
    existing field's type (bool, int, float, or a comma-separated list of
    status codes) and the result is validated before saving.

    Example::

        promptwire config set base_url https://api.example.com/v1
        promptwire config set retry.retries 3
        promptwire config set retry.retry_codes 429,503
        promptwire config set azure_model_mapper.gpt-4o my-gpt4o-deployment
    """
    from promptwire.config import load_settings, save_settings
    from promptwire.models import Settings

    settings = load_settings()
    data = settings.model_dump(mode="json")

    keys = key.split(".")
    target = data
    for k in keys[:-1]:
        if k not in target or not isinstance(target[k], dict):
            error(f"Invalid config key: {key}")
            raise typer.Exit(code=2)
        target = target[k]

    final_key = keys[-1]
    if final_key in target:
        coerced = _coerce(key, target[final_key], value)
    elif len(keys) > 1 and keys[0] in _OPEN_MAPPINGS:
        coerced = value
    else:
        error(f"Unknown config key: {key}")
        raise typer.Exit(code=2)

    target[final_key] = coerced

    try:
        new_settings = Settings.model_validate(data)
    except ValueError as exc:
        error(f"Validation error: {exc}")
        raise typer.Exit(code=2) from None

    save_settings(new_settings)
    success(f"Set {key} = {coerced}")


@config_app.command("reset")
def config_reset(
    force: bool = typer.Option(False, "--force", "-f", help="Skip confirmation."),
) -> None:
    """Reset the settings to defaults.

    Asks for confirmation unless ``--force`` is given.
    """
    from promptwire.config import save_settings
    from promptwire.models import Settings

    if not force:
        confirmed = typer.confirm("Reset all settings to defaults?")
        if not confirmed:
            info("Cancelled.")
            raise typer.Exit()

    save_settings(Settings())
    success("Settings reset to defaults.")
