"""Chat command -- send one prompt and print the completion.

Registered on the root app as ``promptwire chat``. By default the reply is
streamed token by token; ``--no-stream`` waits for the whole reply instead.
"""

from __future__ import annotations

from typing import Optional

import typer

from promptwire.client.response import drain_stream, format_chat_completion
from promptwire.commands.common import cancel_token, open_client, settings_from_context
from promptwire.models import ChatCompletionRequest, ChatMessage, RetryPolicy
from promptwire.output import debug


def chat_command(
    ctx: typer.Context,
    prompt: str = typer.Argument(help="The user message to send."),
    model: Optional[str] = typer.Option(
        None, "--model", "-m", help="Model name (default from settings)."
    ),
    system: Optional[str] = typer.Option(
        None, "--system", "-s", help="Optional system message."
    ),
    stream: bool = typer.Option(
        True, "--stream/--no-stream", help="Stream tokens as they arrive."
    ),
    max_tokens: Optional[int] = typer.Option(
        None, "--max-tokens", help="Maximum tokens to generate."
    ),
    temperature: Optional[float] = typer.Option(
        None, "--temperature", "-t", help="Sampling temperature."
    ),
    retries: int = typer.Option(
        0, "--retries", min=0, help="Extra attempts on retryable failures."
    ),
    retry_codes: Optional[list[int]] = typer.Option(
        None, "--retry-code", help="HTTP status to retry (repeatable)."
    ),
    timeout: Optional[float] = typer.Option(
        None, "--timeout", help="Give up after this many seconds, retries included."
    ),
) -> None:
    """Send PROMPT to the service and print the reply.

    Example::

        promptwire chat "Summarise RFC 2616 in one line"
        promptwire chat --no-stream --retries 2 --retry-code 503 "hello"
        promptwire --json chat "hello"
    """
    settings = settings_from_context(ctx)

    messages: list[ChatMessage] = []
    if system:
        messages.append(ChatMessage.system(system))
    messages.append(ChatMessage.user(prompt))

    request = ChatCompletionRequest(
        model=model or settings.default_model,
        messages=messages,
        max_tokens=max_tokens,
        temperature=temperature,
    )
    retry = RetryPolicy(retries=retries, retry_codes=set(retry_codes or []))
    cancel = cancel_token(timeout)

    debug(f"chat: model={request.model} stream={stream} retries={retries}")
    with open_client(settings) as client:
        if stream:
            reader = client.create_chat_completion_stream(request, retry, cancel=cancel)
            drain_stream(reader)
        else:
            response = client.create_chat_completion(request, retry, cancel=cancel)
            format_chat_completion(response)
