"""Models commands -- inspect what the service can run."""

from __future__ import annotations

from typing import Optional

import typer

from promptwire.client.response import format_models
from promptwire.commands.common import cancel_token, open_client, settings_from_context
from promptwire.models import RetryPolicy
from promptwire.output import info


models_app = typer.Typer(no_args_is_help=True)


@models_app.command("list")
def models_list(
    ctx: typer.Context,
    retries: int = typer.Option(
        0, "--retries", min=0, help="Extra attempts on retryable failures."
    ),
    timeout: Optional[float] = typer.Option(
        None, "--timeout", help="Give up after this many seconds."
    ),
) -> None:
    """List the models available to the configured account.

    Example::

        promptwire models list
        promptwire --json models list
    """
    settings = settings_from_context(ctx)
    # Listing is idempotent, so any 5xx or 429 may be retried.
    retry = RetryPolicy(retries=retries, retry_above_code=499, retry_codes={429})

    with open_client(settings) as client:
        models = client.list_models(retry, cancel=cancel_token(timeout))

    info(f"{len(models.data)} models")
    format_models(models)
