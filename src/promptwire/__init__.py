"""promptwire -- a resilient client for OpenAI-compatible chat completion APIs.

The package wraps the chat completion and model listing endpoints of OpenAI
and Azure OpenAI services behind a blocking client with per-call retry
policies, jittered exponential backoff, cooperative cancellation and a typed
reader for server-sent-event streams. A small Typer CLI sits on top.

Typical use::

    promptwire chat "hello"                # stream a reply
    promptwire --json models list          # list models as JSON

Modules:
    app: Typer application and CLI entry point.
    client: Completion client, dispatcher, stream reader, cancellation.
    models: Pydantic models for configuration and wire payloads.
    config: XDG-aware settings and credential resolution.
    exceptions: Exception hierarchy with exit-code mapping.
    exit_codes: Numeric exit codes following clig.dev conventions.
    output: stdout/stderr formatting system with Rich support.
"""

__version__ = "0.1.0"
