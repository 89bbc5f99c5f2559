"""Resilient request dispatch: retry, backoff, classification, cancellation.

:class:`Dispatcher` owns the attempt loop shared by buffered and streaming
sends:

- **Body replay** -- the request body is read once into immutable ``bytes``
  and a fresh :class:`httpx.Request` is built around it for every attempt.
- **Transport failures** (no response at all) are retried straight away,
  without a backoff delay, until the attempt budget runs out.
- **Failure statuses** are classified by
  :func:`~promptwire.client.classifier.classify_error_response`. Statuses the
  :class:`~promptwire.models.RetryPolicy` does not allow are raised at once;
  eligible ones are retried after a jittered exponential backoff.
- **Cancellation** -- a :class:`~promptwire.client.cancel.CancelToken` is
  checked before each attempt, caps each transport timeout by its deadline,
  and wins the race against the backoff timer.

Every failed attempt is recorded in a human-readable trail that is written to
the debug channel of :mod:`promptwire.output` when the call gives up.
"""

from __future__ import annotations

from typing import Any, Optional, TypeVar, Union

import httpx
from pydantic import BaseModel, ValidationError

from promptwire.client.backoff import BackoffPolicy
from promptwire.client.cancel import CancelToken
from promptwire.client.classifier import classify_error_response
from promptwire.client.stream import StreamReader
from promptwire.exceptions import (
    CancelledError_,
    ConnectionError_,
    InvalidUsageError,
    MalformedPayloadError,
    PromptwireError,
    RetryLimitExceededError,
    StatusError,
)
from promptwire.models import APIObject, ClientConfig, RetryPolicy
from promptwire.output import get_output

T = TypeVar("T", bound=BaseModel)

ResultType = Union[type[BaseModel], type[str], None]


def is_failure_status(status_code: int) -> bool:
    """Anything outside ``[200, 400)`` is a failure."""
    return status_code < 200 or status_code >= 400


class Dispatcher:
    """Send prepared requests with retry, backoff and cancellation.

    Args:
        http_client: The transport. Only :meth:`httpx.Client.send` is used;
            pooling, TLS and redirects stay with ``httpx``.
        config: Client configuration; supplies the client-wide retry
            defaults and the stream's empty-message limit.
        backoff: Delay schedule between retries.
    """

    def __init__(
        self,
        http_client: httpx.Client,
        config: ClientConfig,
        backoff: Optional[BackoffPolicy] = None,
    ) -> None:
        self._http = http_client
        self._config = config
        self._backoff = backoff or BackoffPolicy()

    # ------------------------------------------------------------------ #
    # Public API
    # ------------------------------------------------------------------ #

    def send(
        self,
        request: httpx.Request,
        result_type: ResultType = None,
        *retry: RetryPolicy,
        cancel: Optional[CancelToken] = None,
    ) -> Any:
        """Send a buffered request and decode the reply.

        ``Content-Type`` defaults to ``application/json`` only when the
        caller has not set one, so multipart uploads keep theirs.

        Args:
            request: The prepared request.
            result_type: ``None`` to discard the body, ``str`` for the raw
                text, or a pydantic model to decode into. Decoded
                :class:`~promptwire.models.APIObject` results carry the
                response headers.
            *retry: Retry fragments merged onto the client defaults.
            cancel: Optional cancellation token.

        Raises:
            StatusError: A failure status that may not be retried.
            RetryLimitExceededError: Every permitted attempt failed.
            CancelledError_: The token fired.
            MalformedPayloadError: The body did not decode.
        """
        request.headers["Accept"] = "application/json"
        if "Content-Type" not in request.headers:
            request.headers["Content-Type"] = "application/json"

        response = self._attempt_loop(request, retry, cancel, stream=False, name="send")
        return self._decode(response, result_type)

    def send_stream(
        self,
        request: httpx.Request,
        payload_type: type[T],
        *retry: RetryPolicy,
        cancel: Optional[CancelToken] = None,
    ) -> StreamReader[T]:
        """Send a streaming request and return a reader over the live body.

        The caller owns the returned reader and must close it.

        Raises:
            Same as :meth:`send`, except decoding happens later in
            :meth:`StreamReader.recv`.
        """
        request.headers["Content-Type"] = "application/json"
        request.headers["Accept"] = "text/event-stream"
        request.headers["Cache-Control"] = "no-cache"
        request.headers["Connection"] = "keep-alive"

        response = self._attempt_loop(request, retry, cancel, stream=True, name="send_stream")
        return StreamReader(response, payload_type, self._config.empty_messages_limit)

    # ------------------------------------------------------------------ #
    # Attempt loop
    # ------------------------------------------------------------------ #

    def _attempt_loop(
        self,
        request: httpx.Request,
        retry: tuple[RetryPolicy, ...],
        cancel: Optional[CancelToken],
        stream: bool,
        name: str,
    ) -> httpx.Response:
        """Run attempts until one succeeds; return its response."""
        policy = RetryPolicy.merged(self._config.retry, *retry)
        token = cancel or CancelToken()
        body = _capture_body(request)
        max_tries = policy.retries + 1
        output = get_output()
        failures: list[str] = []
        last_error: Optional[PromptwireError] = None

        def give_up(reason: str, exc: PromptwireError) -> PromptwireError:
            failures.append(reason)
            output.failure_trail(name, failures)
            return exc

        for i in range(max_tries):
            if token.cancelled:
                raise give_up(
                    f"exiting due to canceled context before try #{i + 1}/{max_tries}",
                    CancelledError_(token.reason()),
                )

            attempt = self._rebuild(request, body, token)
            try:
                response = self._http.send(attempt, stream=stream)
            except httpx.TransportError as exc:
                if token.cancelled:
                    raise give_up(
                        f"exiting due to canceled context in try #{i + 1}/{max_tries}: {exc}",
                        CancelledError_(token.reason()),
                    ) from exc
                failures.append(f"#{i + 1}/{max_tries} failed to send request: {exc}")
                output.retry_notice(failures[-1])
                last_error = ConnectionError_(f"failed to send request: {exc}")
                last_error.__cause__ = exc
                continue

            if not is_failure_status(response.status_code):
                return response

            status_error = _read_and_classify(response)
            failures.append(f"#{i + 1}/{max_tries} error response received: {status_error}")
            output.retry_notice(failures[-1])
            last_error = status_error

            if not policy.can_retry(response.status_code):
                raise give_up(
                    f"exiting due to non-retriable error in try #{i + 1}/{max_tries}: "
                    f"{response.status_code} {response.reason_phrase}",
                    status_error,
                )

            if i + 1 == max_tries:
                break

            if self._backoff.wait(i, token):
                raise give_up(
                    f"exiting due to canceled context after try #{i + 1}/{max_tries}",
                    CancelledError_(token.reason()),
                )

        last = failures[-1] if failures else "no attempt was made"
        raise give_up(
            "exceeded retry limit",
            RetryLimitExceededError(f"request exceeded retry limits: {last}"),
        ) from last_error

    def _rebuild(
        self, request: httpx.Request, body: bytes, token: CancelToken
    ) -> httpx.Request:
        """Wrap the captured body into a fresh request for one attempt."""
        headers = request.headers.copy()
        # httpx recomputes framing headers from the new content.
        headers.pop("Content-Length", None)
        headers.pop("Transfer-Encoding", None)
        extensions = dict(request.extensions)
        remaining = token.remaining()
        if remaining is not None:
            extensions["timeout"] = _cap_timeout(extensions.get("timeout"), remaining)
        return httpx.Request(
            request.method,
            request.url,
            headers=headers,
            content=body or None,
            extensions=extensions,
        )

    # ------------------------------------------------------------------ #
    # Decoding
    # ------------------------------------------------------------------ #

    def _decode(self, response: httpx.Response, result_type: ResultType) -> Any:
        try:
            if result_type is None:
                return None
            if result_type is str:
                return response.text
            try:
                result = result_type.model_validate_json(response.content)
            except ValidationError as exc:
                raise MalformedPayloadError(
                    f"cannot decode response as {result_type.__name__}: {exc}"
                ) from exc
            if isinstance(result, APIObject):
                result.set_headers(response.headers)
            return result
        finally:
            response.close()


# ------------------------------------------------------------------ #
# Helpers
# ------------------------------------------------------------------ #


def _capture_body(request: httpx.Request) -> bytes:
    """Read the request body once; every attempt replays these bytes."""
    try:
        return bytes(request.read())
    except (httpx.StreamError, RuntimeError) as exc:
        raise InvalidUsageError(f"failed to read request body: {exc}") from exc


def _read_and_classify(response: httpx.Response) -> StatusError:
    try:
        body = response.read()
    except httpx.TransportError as exc:
        body = str(exc).encode("utf-8")
    finally:
        response.close()
    return classify_error_response(response.status_code, body)


def _cap_timeout(timeout: Optional[dict[str, Any]], remaining: float) -> dict[str, Any]:
    """Lower every phase of an httpx timeout extension to *remaining* seconds."""
    capped: dict[str, Any] = {}
    for phase in ("connect", "read", "write", "pool"):
        current = (timeout or {}).get(phase)
        capped[phase] = remaining if current is None else min(current, remaining)
    return capped
