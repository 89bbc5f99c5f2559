"""Built-in CLI sub-commands for promptwire.

This package groups the Typer sub-command modules that form the CLI's
top-level command tree:

* :mod:`~promptwire.commands.chat` -- send a chat completion, buffered or
  streamed.
* :mod:`~promptwire.commands.models` -- list the models the service offers.
* :mod:`~promptwire.commands.config` -- view and modify user settings.

Each module either exports a :class:`typer.Typer` sub-application (for
multi-command groups like ``models`` and ``config``) or a plain callback
function registered directly on the root app (for single commands like
``chat``).
"""
