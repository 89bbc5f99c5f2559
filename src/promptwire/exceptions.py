"""Exception hierarchy for promptwire.

All exceptions inherit from :class:`PromptwireError`, which carries an
``exit_code`` attribute mapped to a constant from :mod:`promptwire.exit_codes`.
Library callers catch the specific subclasses; the CLI entry point in
:func:`promptwire.app.main` catches ``PromptwireError`` and exits with the
matching code.

Subclass hierarchy::

    PromptwireError                (exit 1)
    +-- InvalidUsageError          (exit 2)
    +-- ConfigError                (exit 1)
    +-- ConnectionError_           (exit 6)
    +-- StatusError                (exit 3 / 4 / 5 depending on status)
    |   +-- APIError
    |   +-- RequestError
    +-- RetryLimitExceededError    (exit 5)
    +-- CancelledError_            (exit 130)
    +-- StreamError                (exit 8)
        +-- MalformedPayloadError
        +-- TooManyEmptyMessagesError

End of a stream is not an error: :class:`~promptwire.client.stream.StreamReader`
signals it with :class:`StopIteration`.
"""

from __future__ import annotations

from typing import Optional, Union

from promptwire.exit_codes import (
    EXIT_AUTH_FAILURE,
    EXIT_CANCELLED,
    EXIT_CONNECTION_ERROR,
    EXIT_GENERIC_FAILURE,
    EXIT_INVALID_USAGE,
    EXIT_NOT_FOUND,
    EXIT_SERVER_ERROR,
    EXIT_STREAM_ERROR,
)


class PromptwireError(Exception):
    """Base exception for all promptwire errors.

    Every subclass sets a class-level ``exit_code`` corresponding to one of
    the constants in :mod:`promptwire.exit_codes`.

    Args:
        message: Human-readable error description printed to stderr.
        exit_code: Optional override for the class-level exit code.
    """

    exit_code: int = EXIT_GENERIC_FAILURE

    def __init__(self, message: str, exit_code: int | None = None):
        super().__init__(message)
        if exit_code is not None:
            self.exit_code = exit_code


class InvalidUsageError(PromptwireError):
    """Raised for invalid CLI arguments or a request that cannot be prepared."""

    exit_code = EXIT_INVALID_USAGE


class ConfigError(PromptwireError):
    """Raised for configuration problems (invalid JSON, unresolvable credential sources)."""

    exit_code = EXIT_GENERIC_FAILURE


class ConnectionError_(PromptwireError):
    """Raised on network-level failures (timeout, DNS resolution, connection refused).

    Also used when a live stream breaks while being read. Named with a
    trailing underscore to avoid shadowing the built-in ``ConnectionError``.
    """

    exit_code = EXIT_CONNECTION_ERROR


def _exit_code_for_status(status: Optional[int]) -> int:
    if status in (401, 403):
        return EXIT_AUTH_FAILURE
    if status == 404:
        return EXIT_NOT_FOUND
    return EXIT_SERVER_ERROR


class StatusError(PromptwireError):
    """Base for failures the service reported, usually through an HTTP status.

    Args:
        message: Human-readable description.
        http_status_code: The response status, or ``None`` for errors that
            arrived in-band on an already successful stream.
    """

    def __init__(self, message: str, http_status_code: Optional[int] = None):
        super().__init__(message, exit_code=_exit_code_for_status(http_status_code))
        self.http_status_code = http_status_code


class APIError(StatusError):
    """A structured error envelope returned by the service.

    Carries the fields of ``{"error": {"message", "type", "param", "code"}}``.
    """

    def __init__(
        self,
        message: str,
        http_status_code: Optional[int] = None,
        type: Optional[str] = None,
        param: Optional[str] = None,
        code: Union[str, int, None] = None,
    ):
        self.message = message
        self.type = type
        self.param = param
        self.code = code
        if http_status_code is not None:
            text = f"error, status code: {http_status_code}, message: {message}"
        else:
            text = message
        super().__init__(text, http_status_code)


class RequestError(StatusError):
    """A failure status whose body did not carry a usable error envelope."""

    def __init__(self, http_status_code: int, body: str):
        self.body = body
        super().__init__(
            f"error, status code: {http_status_code}, message: {body}", http_status_code
        )


class RetryLimitExceededError(PromptwireError):
    """Raised when every attempt allowed by the retry policy has failed.

    The message quotes the most recent failure; the underlying exception is
    chained as ``__cause__``.
    """

    exit_code = EXIT_SERVER_ERROR


class CancelledError_(PromptwireError):
    """Raised when the caller's cancellation token fires or its deadline elapses.

    Named with a trailing underscore to avoid confusion with
    :class:`asyncio.CancelledError`.
    """

    exit_code = EXIT_CANCELLED


class StreamError(PromptwireError):
    """Base for fatal problems with a streamed reply."""

    exit_code = EXIT_STREAM_ERROR


class MalformedPayloadError(StreamError):
    """Raised when a payload cannot be decoded into the expected model."""


class TooManyEmptyMessagesError(StreamError):
    """Raised when a stream sends more consecutive noise lines than allowed."""

    def __init__(self, message: str = "stream has sent too many empty messages"):
        super().__init__(message)
