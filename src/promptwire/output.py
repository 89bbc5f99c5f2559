"""Terminal rendering for completions, model listings and diagnostics.

Completion text, model listings and settings go to **stdout**; everything
else (retry notices, failure trails, warnings, errors) goes to **stderr**, so
``promptwire chat ... | other-tool`` only ever sees the reply.

The format is one of :class:`OutputFormat`. ``auto`` picks ``rich`` on a
colour-capable TTY and ``plain`` otherwise; ``NO_COLOR``, ``TERM=dumb`` and
``--no-color`` turn colour off.

The client library never prints on its own. The dispatcher and stream reader
hand their attempt failures to :meth:`OutputManager.retry_notice` and
:meth:`OutputManager.failure_trail`, which only show up with ``--verbose``.
"""

from __future__ import annotations

import json
import os
import sys
from datetime import datetime, timezone
from enum import Enum
from typing import TYPE_CHECKING, Any, Optional

from rich.console import Console
from rich.markdown import Markdown
from rich.markup import escape
from rich.table import Table

if TYPE_CHECKING:
    from promptwire.models import (
        ChatCompletionResponse,
        ChatCompletionStreamResponse,
        ModelsList,
    )


class OutputFormat(str, Enum):
    AUTO = "auto"
    JSON = "json"
    PLAIN = "plain"
    RICH = "rich"


class OutputManager:
    """Renders replies on stdout and diagnostics on stderr.

    Args:
        format: Requested format; ``AUTO`` is resolved at construction.
        no_color: Disable colour and markup.
        quiet: Hide ``info`` and ``success`` messages.
        verbose: Show retry notices, failure trails and other debug lines.
    """

    def __init__(
        self,
        format: OutputFormat = OutputFormat.AUTO,
        no_color: bool = False,
        quiet: bool = False,
        verbose: bool = False,
    ) -> None:
        self._no_color = no_color or _should_disable_color()
        self._quiet = quiet
        self._verbose = verbose
        if format == OutputFormat.AUTO:
            format = OutputFormat.RICH if _is_tty() and not self._no_color else OutputFormat.PLAIN
        self._format = format
        self._stdout = Console(
            file=sys.stdout,
            no_color=self._no_color,
            force_terminal=(format == OutputFormat.RICH),
        )
        self._stderr = Console(file=sys.stderr, no_color=self._no_color, stderr=True)
        # Set while a streamed reply has written text without a final newline.
        self._line_open = False

    @property
    def format(self) -> OutputFormat:
        return self._format

    @property
    def is_quiet(self) -> bool:
        return self._quiet

    @property
    def is_verbose(self) -> bool:
        return self._verbose

    # ------------------------------------------------------------------ #
    # Replies (stdout)
    # ------------------------------------------------------------------ #

    def print_line(self, text: str) -> None:
        """Write *text* and a newline to stdout, untouched by Rich."""
        print(text, file=sys.stdout, flush=True)

    def print_completion(self, response: ChatCompletionResponse) -> None:
        """Show a buffered completion.

        JSON prints the decoded body, plain prints the first choice verbatim
        and rich renders it as Markdown.
        """
        if self._format == OutputFormat.JSON:
            self._print_json(response.model_dump(mode="json", exclude_none=True))
            return
        if not response.choices:
            return
        text = response.choices[0].message.content or ""
        if self._format == OutputFormat.RICH:
            self._stdout.print(Markdown(text))
        else:
            self.print_line(text)

    def print_chunk(self, chunk: ChatCompletionStreamResponse) -> None:
        """Show one frame of a streamed completion as soon as it arrives.

        JSON prints every frame as one compact line; the other formats append
        the frame's text to the current line.
        """
        if self._format == OutputFormat.JSON:
            self.print_line(chunk.model_dump_json(exclude_none=True))
            return
        text = chunk.text()
        if not text:
            return
        sys.stdout.write(text)
        sys.stdout.flush()
        self._line_open = not text.endswith("\n")

    def end_stream(self) -> None:
        """Terminate a streamed reply with a newline if one is missing."""
        if self._line_open:
            self.print_line("")
            self._line_open = False

    def print_models(self, models: ModelsList) -> None:
        """Show a model listing: id, owner and creation time."""
        if self._format == OutputFormat.JSON:
            self._print_json(
                [{"id": m.id, "owned_by": m.owned_by, "created": m.created} for m in models.data]
            )
        elif self._format == OutputFormat.PLAIN:
            self.print_line("id\towned_by\tcreated")
            for m in models.data:
                self.print_line(f"{m.id}\t{m.owned_by}\t{m.created}")
        else:
            table = Table(title="Models", header_style="bold cyan")
            table.add_column("id")
            table.add_column("owned_by")
            table.add_column("created")
            for m in models.data:
                table.add_row(m.id, m.owned_by, _date(m.created))
            self._stdout.print(table)

    def print_settings(self, settings: dict[str, Any]) -> None:
        """Show settings as the dotted keys ``config set`` accepts."""
        if self._format == OutputFormat.JSON:
            self._print_json(settings)
            return
        pairs = list(_flatten(settings))
        if self._format == OutputFormat.PLAIN:
            for key, value in pairs:
                self.print_line(f"{key}\t{value}")
            return
        table = Table(show_header=False, box=None)
        table.add_column(style="cyan")
        table.add_column()
        for key, value in pairs:
            table.add_row(key, escape(value))
        self._stdout.print(table)

    # ------------------------------------------------------------------ #
    # Diagnostics (stderr)
    # ------------------------------------------------------------------ #

    def info(self, message: str) -> None:
        if not self._quiet:
            self._diagnostic(message)

    def success(self, message: str) -> None:
        if not self._quiet:
            self._diagnostic(message, style="green")

    def warning(self, message: str) -> None:
        self._diagnostic(message, style="yellow", label="Warning:")

    def error(self, message: str) -> None:
        self._diagnostic(message, style="bold red", label="Error:")

    def debug(self, message: str) -> None:
        """Show *message* only with ``--verbose``.

        The text is escaped before it reaches Rich because failure trails
        quote raw response bodies.
        """
        if self._verbose:
            self._diagnostic(message, style="dim", label="[debug]")

    def retry_notice(self, entry: str) -> None:
        """Report one failed attempt that may still be retried."""
        self.debug(entry)

    def failure_trail(self, operation: str, entries: list[str]) -> None:
        """Report every recorded attempt of an *operation* that gave up."""
        self.debug(f"{operation} failed: " + "; ".join(entries))

    def _diagnostic(
        self, message: str, style: Optional[str] = None, label: Optional[str] = None
    ) -> None:
        if self._no_color or style is None:
            text = f"{label} {message}" if label else message
            print(text, file=sys.stderr, flush=True)
            return
        prefix = f"[{style}]{escape(label)}[/{style}] " if label else ""
        body = escape(message)
        if style == "dim":
            self._stderr.print(f"[dim]{prefix}{body}[/dim]")
        elif label:
            self._stderr.print(prefix + body)
        else:
            self._stderr.print(f"[{style}]{body}[/{style}]")

    def _print_json(self, data: Any) -> None:
        self.print_line(json.dumps(data, indent=2, ensure_ascii=False))


def _flatten(data: dict[str, Any], prefix: str = ""):
    """Yield ``(dotted.key, text)`` pairs for every leaf of *data*."""
    for key, value in data.items():
        path = f"{prefix}{key}"
        if isinstance(value, dict) and value:
            yield from _flatten(value, prefix=path + ".")
        elif isinstance(value, list):
            yield path, ",".join(str(v) for v in value)
        elif value is None:
            yield path, ""
        else:
            yield path, str(value)


def _date(timestamp: int) -> str:
    if timestamp <= 0:
        return "-"
    return datetime.fromtimestamp(timestamp, tz=timezone.utc).strftime("%Y-%m-%d")


def _is_tty() -> bool:
    return hasattr(sys.stdout, "isatty") and sys.stdout.isatty()


def _should_disable_color() -> bool:
    """True when ``NO_COLOR`` is set to anything or ``TERM`` is ``dumb``."""
    return os.environ.get("NO_COLOR") is not None or os.environ.get("TERM") == "dumb"


# ------------------------------------------------------------------ #
# Process-wide manager
# ------------------------------------------------------------------ #

_output: Optional[OutputManager] = None


def get_output() -> OutputManager:
    """Return the installed manager, creating a default one on first use."""
    global _output
    if _output is None:
        _output = OutputManager()
    return _output


def set_output(output: OutputManager) -> None:
    global _output
    _output = output


def reset_output() -> None:
    global _output
    _output = None


def info(message: str) -> None:
    get_output().info(message)


def success(message: str) -> None:
    get_output().success(message)


def warning(message: str) -> None:
    get_output().warning(message)


def error(message: str) -> None:
    get_output().error(message)


def debug(message: str) -> None:
    get_output().debug(message)
