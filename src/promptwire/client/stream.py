"""Incremental reader for line-framed Server-Sent-Events replies.

The service streams one JSON payload per ``data: `` line and terminates the
stream with ``data: [DONE]``. Anything else on the wire -- blank separator
lines, ``:`` keep-alive comments -- is noise. An in-band failure arrives as a
``data: {"error": ...}`` line; the reader accumulates it and raises it as an
:class:`~promptwire.exceptions.APIError`.

Example::

    with client.create_chat_completion_stream(request) as stream:
        for chunk in stream:
            print(chunk.text(), end="")
"""

from __future__ import annotations

from collections.abc import Iterator, Mapping
from typing import Generic, Optional, TypeVar

import httpx
from pydantic import BaseModel, ValidationError

from promptwire.client.classifier import decode_error_envelope
from promptwire.exceptions import (
    ConnectionError_,
    MalformedPayloadError,
    TooManyEmptyMessagesError,
)
from promptwire.models import RateLimitHeaders
from promptwire.output import get_output

DATA_PREFIX = "data: "
ERROR_PREFIX = 'data: {"error":'
DONE_SENTINEL = "[DONE]"

T = TypeVar("T", bound=BaseModel)


def _split_lines(chunks: Iterator[bytes]) -> Iterator[str]:
    """Yield the lines of a byte stream, split on ``\\n`` only.

    JSON strings may hold U+2028, U+2029 and U+0085 unescaped; they stay
    inside the frame.
    """
    pending = b""
    for chunk in chunks:
        pending += chunk
        *lines, pending = pending.split(b"\n")
        for line in lines:
            yield line.decode("utf-8", errors="replace")
    if pending:
        yield pending.decode("utf-8", errors="replace")


class StreamReader(Generic[T]):
    """Pull typed payloads off a live streaming response.

    One reader owns one response body; it is not safe to call :meth:`recv`
    from several threads at once. The reader is also an iterator and a
    context manager (leaving the ``with`` block closes the response).

    Args:
        response: A successful :class:`httpx.Response` opened with
            ``stream=True``.
        payload_type: The pydantic model every data frame decodes into.
        empty_messages_limit: How many consecutive noise lines one
            :meth:`recv` call tolerates before giving up.
    """

    def __init__(
        self,
        response: httpx.Response,
        payload_type: type[T],
        empty_messages_limit: int,
    ) -> None:
        self._response = response
        self._lines: Iterator[str] = _split_lines(response.iter_bytes())
        self._payload_type = payload_type
        self._empty_messages_limit = empty_messages_limit
        self._empty_messages_count = 0
        self._error_buffer = bytearray()
        self._finished = False

    # ------------------------------------------------------------------ #
    # Public API
    # ------------------------------------------------------------------ #

    @property
    def finished(self) -> bool:
        """``True`` once the ``[DONE]`` sentinel has been consumed."""
        return self._finished

    @property
    def headers(self) -> Mapping[str, str]:
        return self._response.headers

    def rate_limit_headers(self) -> RateLimitHeaders:
        return RateLimitHeaders.from_headers(self._response.headers)

    def recv(self) -> T:
        """Return the next payload.

        Raises:
            StopIteration: The stream ended, either at the ``[DONE]``
                sentinel or because the server closed the body. Every call
                after the sentinel raises it again.
            APIError: The server sent an in-band error envelope.
            MalformedPayloadError: A data frame did not decode into the
                payload type.
            TooManyEmptyMessagesError: Too many consecutive noise lines.
            ConnectionError_: Reading the body failed.
        """
        if self._finished:
            raise StopIteration
        return self._process_lines()

    def close(self) -> None:
        """Release the underlying response."""
        self._response.close()

    def __iter__(self) -> StreamReader[T]:
        return self

    def __next__(self) -> T:
        return self.recv()

    def __enter__(self) -> StreamReader[T]:
        return self

    def __exit__(self, *args: object) -> None:
        self.close()

    # ------------------------------------------------------------------ #
    # Framing
    # ------------------------------------------------------------------ #

    def _process_lines(self) -> T:
        self._empty_messages_count = 0
        has_error_prefix = False

        while True:
            at_eof = False
            read_error: Optional[httpx.TransportError] = None
            raw_line = ""
            try:
                raw_line = next(self._lines)
            except StopIteration:
                at_eof = True
            except httpx.TransportError as exc:
                read_error = exc

            # The error lead is only acted on once the following line has
            # been read.
            if at_eof or read_error is not None or has_error_prefix:
                api_error = decode_error_envelope(bytes(self._error_buffer))
                if api_error is not None:
                    get_output().debug(f"stream returned an error: {api_error.message}")
                    raise api_error
                if read_error is not None:
                    raise ConnectionError_(f"stream read failed: {read_error}") from read_error
                if at_eof:
                    raise StopIteration
                raise MalformedPayloadError(
                    "stream sent an undecodable error payload: "
                    + self._error_buffer.decode("utf-8", errors="replace")
                )

            line = raw_line.strip()
            if line.startswith(ERROR_PREFIX):
                has_error_prefix = True

            if not line.startswith(DATA_PREFIX) or has_error_prefix:
                if has_error_prefix:
                    line = line.removeprefix(DATA_PREFIX)
                self._error_buffer += line.encode("utf-8")
                self._empty_messages_count += 1
                if self._empty_messages_count > self._empty_messages_limit:
                    raise TooManyEmptyMessagesError()
                continue

            payload = line.removeprefix(DATA_PREFIX)
            if payload == DONE_SENTINEL:
                self._finished = True
                raise StopIteration

            try:
                return self._payload_type.model_validate_json(payload)
            except ValidationError as exc:
                raise MalformedPayloadError(
                    f"cannot decode stream payload as {self._payload_type.__name__}: {exc}"
                ) from exc
