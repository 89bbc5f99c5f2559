"""Helpers shared by the sub-commands that talk to the service."""

from __future__ import annotations

from typing import Optional

import typer

from promptwire.client import CancelToken, CompletionClient
from promptwire.config import build_client_config, resolve_settings
from promptwire.exceptions import ConfigError
from promptwire.models import Settings
from promptwire.output import OutputFormat, OutputManager, set_output


def settings_from_context(ctx: typer.Context) -> Settings:
    """Resolve settings, applying the root ``--base-url`` and format flags.

    When no format flag was given and the settings name a non-``auto``
    format, the global output manager is rebuilt with that format.
    """
    obj = ctx.obj or {}
    cli_format = obj.get("format")
    settings = resolve_settings(cli_base_url=obj.get("base_url"), cli_format=cli_format)

    if cli_format is None and settings.output.format != OutputFormat.AUTO.value:
        try:
            fmt = OutputFormat(settings.output.format)
        except ValueError:
            raise ConfigError(f"Unknown output format: {settings.output.format}") from None
        set_output(
            OutputManager(
                format=fmt,
                no_color=obj.get("no_color", False),
                quiet=obj.get("quiet", False),
                verbose=obj.get("verbose", False),
            )
        )
    return settings


def open_client(settings: Settings) -> CompletionClient:
    """Build an unopened :class:`CompletionClient` from *settings*."""
    return CompletionClient(build_client_config(settings))


def cancel_token(timeout: Optional[float]) -> Optional[CancelToken]:
    """A deadline token for ``--timeout``, or ``None`` without one."""
    if timeout is None:
        return None
    return CancelToken.with_timeout(timeout)
