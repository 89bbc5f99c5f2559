"""Response formatting bridge -- maps decoded replies to the output system.

After a call completes, the helpers here hand the decoded reply to
:class:`~promptwire.output.OutputManager`, which honours ``--json`` /
``--plain`` and keeps diagnostics on stderr.
"""

from __future__ import annotations

from promptwire.client.stream import StreamReader
from promptwire.models import (
    ChatCompletionResponse,
    ChatCompletionStreamResponse,
    ModelsList,
)
from promptwire.output import get_output


def format_chat_completion(response: ChatCompletionResponse) -> None:
    """Print a buffered chat completion, with token usage as a debug line."""
    output = get_output()
    output.print_completion(response)
    usage = response.usage
    output.debug(
        f"usage: prompt={usage.prompt_tokens} completion={usage.completion_tokens} "
        f"total={usage.total_tokens}"
    )


def format_models(models: ModelsList) -> None:
    get_output().print_models(models)


def drain_stream(stream: StreamReader[ChatCompletionStreamResponse]) -> str:
    """Print every frame of *stream* as it arrives.

    The stream is closed when this returns or raises.

    Returns:
        The full concatenated completion text.
    """
    output = get_output()
    parts: list[str] = []
    with stream:
        for chunk in stream:
            output.print_chunk(chunk)
            parts.append(chunk.text())
    output.end_stream()
    return "".join(parts)
