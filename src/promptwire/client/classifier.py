"""Turn a failed HTTP response into a domain error."""

from __future__ import annotations

from typing import Optional

from pydantic import ValidationError

from promptwire.exceptions import APIError, RequestError, StatusError
from promptwire.models import ErrorResponse


def decode_error_envelope(
    body: bytes, http_status_code: Optional[int] = None
) -> Optional[APIError]:
    """Decode ``{"error": {...}}`` from *body*.

    Returns:
        An :class:`APIError` when *body* holds an envelope with a non-empty
        message, otherwise ``None``.
    """
    if not body:
        return None
    try:
        envelope = ErrorResponse.model_validate_json(body)
    except ValidationError:
        return None
    if envelope.error is None or not envelope.error.message:
        return None
    detail = envelope.error
    return APIError(
        detail.message,
        http_status_code=http_status_code,
        type=detail.type,
        param=detail.param,
        code=detail.code,
    )


def classify_error_response(status_code: int, body: bytes) -> StatusError:
    """Classify a failure response; always returns, never raises.

    Args:
        status_code: The HTTP status of the response.
        body: The fully read response body.

    Returns:
        :class:`APIError` for a structured envelope with a message, otherwise
        :class:`RequestError` wrapping the raw body text.
    """
    api_error = decode_error_envelope(body, status_code)
    if api_error is not None:
        return api_error
    return RequestError(status_code, body.decode("utf-8", errors="replace"))
