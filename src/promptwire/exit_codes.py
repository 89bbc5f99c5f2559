"""Numeric process exit codes for the ``promptwire`` command line.

Each constant maps to a specific error category and is referenced by the
corresponding :class:`~promptwire.exceptions.PromptwireError` subclass.
Shell wrappers can inspect the exit code to tell a rejected API key from a
flaky network without parsing stderr.

Example::

    $ promptwire chat "hello"
    $ echo $?
    3   # EXIT_AUTH_FAILURE -- the API key was rejected
"""

EXIT_SUCCESS = 0
"""The command completed successfully."""

EXIT_GENERIC_FAILURE = 1
"""An unclassified error occurred."""

EXIT_INVALID_USAGE = 2
"""The command was invoked with invalid arguments or missing required parameters."""

EXIT_AUTH_FAILURE = 3
"""The service rejected the credentials (HTTP 401 / 403)."""

EXIT_NOT_FOUND = 4
"""The requested model or resource does not exist (HTTP 404)."""

EXIT_SERVER_ERROR = 5
"""The service answered with a failure status, or retries were exhausted."""

EXIT_CONNECTION_ERROR = 6
"""A network-level error occurred (timeout, DNS failure, connection refused)."""

EXIT_STREAM_ERROR = 8
"""A streamed reply was malformed or never terminated."""

EXIT_CANCELLED = 130
"""The call was cancelled or its deadline elapsed (same code as Ctrl-C)."""
