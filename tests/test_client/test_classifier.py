"""Tests for failure-response classification."""

from __future__ import annotations

import json

from promptwire.client.classifier import classify_error_response, decode_error_envelope
from promptwire.exceptions import APIError, RequestError
from promptwire.exit_codes import EXIT_AUTH_FAILURE, EXIT_NOT_FOUND, EXIT_SERVER_ERROR


def _envelope(**fields) -> bytes:
    return json.dumps({"error": fields}).encode()


class TestClassifyErrorResponse:
    def test_structured_envelope(self) -> None:
        body = _envelope(
            message="You exceeded your quota", type="insufficient_quota", code="quota"
        )
        err = classify_error_response(429, body)
        assert isinstance(err, APIError)
        assert err.http_status_code == 429
        assert err.message == "You exceeded your quota"
        assert err.type == "insufficient_quota"
        assert err.code == "quota"
        assert str(err) == "error, status code: 429, message: You exceeded your quota"

    def test_numeric_code_is_kept(self) -> None:
        err = classify_error_response(500, _envelope(message="oops", code=500))
        assert isinstance(err, APIError)
        assert err.code == 500

    def test_non_json_body(self) -> None:
        err = classify_error_response(502, b"<html>Bad Gateway</html>")
        assert isinstance(err, RequestError)
        assert err.http_status_code == 502
        assert err.body == "<html>Bad Gateway</html>"
        assert "Bad Gateway" in str(err)

    def test_empty_body(self) -> None:
        err = classify_error_response(503, b"")
        assert isinstance(err, RequestError)
        assert err.body == ""

    def test_envelope_without_message(self) -> None:
        err = classify_error_response(400, _envelope(type="invalid_request_error"))
        assert isinstance(err, RequestError)

    def test_json_without_error_key(self) -> None:
        err = classify_error_response(400, b'{"detail": "nope"}')
        assert isinstance(err, RequestError)
        assert err.body == '{"detail": "nope"}'

    def test_invalid_utf8_is_replaced(self) -> None:
        err = classify_error_response(500, b"\xff\xfe oops")
        assert isinstance(err, RequestError)
        assert "oops" in err.body

    def test_exit_codes_follow_status(self) -> None:
        assert classify_error_response(401, b"").exit_code == EXIT_AUTH_FAILURE
        assert classify_error_response(403, b"").exit_code == EXIT_AUTH_FAILURE
        assert classify_error_response(404, b"").exit_code == EXIT_NOT_FOUND
        assert classify_error_response(500, b"").exit_code == EXIT_SERVER_ERROR


class TestDecodeErrorEnvelope:
    def test_without_status(self) -> None:
        err = decode_error_envelope(_envelope(message="boom"))
        assert err is not None
        assert err.http_status_code is None
        assert str(err) == "boom"

    def test_garbage_returns_none(self) -> None:
        assert decode_error_envelope(b"not json") is None
        assert decode_error_envelope(b"") is None
        assert decode_error_envelope(b'{"error": null}') is None
