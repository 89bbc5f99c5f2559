"""Tests for the synchronous completion client."""

from __future__ import annotations

import json
from typing import Any

import httpx
import pytest
from pydantic import SecretStr

from promptwire.client.backoff import BackoffPolicy
from promptwire.client.cancel import CancelToken
from promptwire.client.sync_client import CompletionClient
from promptwire.exceptions import APIError, RetryLimitExceededError
from promptwire.models import (
    APIType,
    ChatCompletionRequest,
    ChatCompletionResponse,
    ChatMessage,
    ClientConfig,
    ModelsList,
    RetryPolicy,
)
from promptwire.output import OutputManager, reset_output, set_output


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _config(**overrides: Any) -> ClientConfig:
    fields: dict[str, Any] = {"api_key": SecretStr("sk-test")}
    fields.update(overrides)
    return ClientConfig(**fields)


def _azure_config(**overrides: Any) -> ClientConfig:
    return ClientConfig.for_azure(
        "azure-key", "https://my-resource.openai.azure.com/", **overrides
    )


def _request(model: str = "gpt-4o-mini") -> ChatCompletionRequest:
    return ChatCompletionRequest(model=model, messages=[ChatMessage.user("Hello")])


def _json_response(data: Any, status_code: int = 200) -> httpx.Response:
    return httpx.Response(status_code, json=data)


class _NoWaitBackoff(BackoffPolicy):
    def wait(self, attempt: int, cancel: CancelToken) -> bool:
        return cancel.cancelled


class _Recorder:
    """MockTransport handler that records requests and returns *response*."""

    def __init__(self, response: httpx.Response) -> None:
        self.response = response
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        request.read()
        return self.response

    @property
    def last(self) -> httpx.Request:
        return self.requests[-1]


@pytest.fixture(autouse=True)
def _clean_output():
    """Reset the global output manager between tests."""
    set_output(OutputManager(no_color=True, quiet=True))
    yield
    reset_output()


# ---------------------------------------------------------------------------
# Context manager
# ---------------------------------------------------------------------------


class TestContextManager:
    def test_enter_creates_client(self) -> None:
        client = CompletionClient(_config())
        assert client._client is None
        with client:
            assert client._client is not None
            assert client._dispatcher is not None
        assert client._client is None
        assert client._dispatcher is None

    def test_calls_outside_context_fail(self) -> None:
        client = CompletionClient(_config())
        with pytest.raises(AssertionError, match="context manager"):
            client.list_models()


# ---------------------------------------------------------------------------
# URL construction
# ---------------------------------------------------------------------------


class TestFullURL:
    def test_openai(self) -> None:
        client = CompletionClient(_config())
        assert client.full_url("/chat/completions") == "https://api.openai.com/v1/chat/completions"

    def test_custom_base_url(self) -> None:
        client = CompletionClient(_config(base_url="http://localhost:8080/v1"))
        assert client.full_url("/models") == "http://localhost:8080/v1/models"

    def test_azure_deployment_from_model(self) -> None:
        client = CompletionClient(_azure_config())
        assert client.full_url("/chat/completions", "gpt-3.5-turbo") == (
            "https://my-resource.openai.azure.com/openai/deployments/gpt-35-turbo"
            "/chat/completions?api-version=2023-05-15"
        )

    def test_azure_mapper_wins(self) -> None:
        client = CompletionClient(
            _azure_config(azure_model_mapper={"gpt-4o": "prod-gpt4o"}, api_version="2024-02-01")
        )
        assert client.full_url("/chat/completions", "gpt-4o") == (
            "https://my-resource.openai.azure.com/openai/deployments/prod-gpt4o"
            "/chat/completions?api-version=2024-02-01"
        )

    def test_azure_models_outside_deployment(self) -> None:
        client = CompletionClient(_azure_config())
        assert client.full_url("/models") == (
            "https://my-resource.openai.azure.com/openai/models?api-version=2023-05-15"
        )

    def test_azure_without_model(self) -> None:
        client = CompletionClient(_azure_config())
        assert "/deployments/UNKNOWN/" in client.full_url("/chat/completions")

    def test_azure_ad_uses_azure_layout(self) -> None:
        config = _config(
            base_url="https://my-resource.openai.azure.com", api_type=APIType.AZURE_AD
        )
        url = CompletionClient(config).full_url("/chat/completions", "gpt-4o")
        assert url.startswith("https://my-resource.openai.azure.com/openai/deployments/gpt-4o/")


# ---------------------------------------------------------------------------
# Auth headers
# ---------------------------------------------------------------------------


class TestAuthHeaders:
    def _headers_for(self, config: ClientConfig) -> httpx.Headers:
        recorder = _Recorder(_json_response({"data": []}))
        with CompletionClient(config, transport=httpx.MockTransport(recorder)) as client:
            client.list_models()
        return recorder.last.headers

    def test_bearer_token(self) -> None:
        headers = self._headers_for(_config())
        assert headers["Authorization"] == "Bearer sk-test"
        assert "api-key" not in headers

    def test_no_key_no_header(self) -> None:
        headers = self._headers_for(ClientConfig())
        assert "Authorization" not in headers

    def test_azure_api_key_header(self) -> None:
        headers = self._headers_for(_azure_config())
        assert headers["api-key"] == "azure-key"
        assert "Authorization" not in headers

    def test_azure_ad_bearer(self) -> None:
        headers = self._headers_for(
            _config(base_url="https://r.openai.azure.com", api_type=APIType.AZURE_AD)
        )
        assert headers["Authorization"] == "Bearer sk-test"

    def test_organization_header(self) -> None:
        headers = self._headers_for(_config(organization="org-123"))
        assert headers["OpenAI-Organization"] == "org-123"

    def test_with_api_key_returns_new_client(self) -> None:
        original = CompletionClient(_config())
        rotated = original.with_api_key("sk-new")

        assert rotated is not original
        assert original.config.api_key.get_secret_value() == "sk-test"
        assert rotated.config.api_key.get_secret_value() == "sk-new"
        assert self._headers_for(rotated.config)["Authorization"] == "Bearer sk-new"


# ---------------------------------------------------------------------------
# Endpoints
# ---------------------------------------------------------------------------


class TestListModels:
    def test_list_models(self, models_payload: dict[str, Any]) -> None:
        recorder = _Recorder(_json_response(models_payload))
        with CompletionClient(_config(), transport=httpx.MockTransport(recorder)) as client:
            models = client.list_models()

        assert isinstance(models, ModelsList)
        assert models.ids() == ["gpt-4o-mini", "gpt-4o"]
        assert recorder.last.method == "GET"
        assert str(recorder.last.url) == "https://api.openai.com/v1/models"


class TestCreateChatCompletion:
    def test_buffered(self, chat_completion_payload: dict[str, Any]) -> None:
        recorder = _Recorder(_json_response(chat_completion_payload))
        with CompletionClient(_config(), transport=httpx.MockTransport(recorder)) as client:
            reply = client.create_chat_completion(_request())

        assert isinstance(reply, ChatCompletionResponse)
        assert reply.choices[0].message.content == "Hello there."
        assert reply.usage.total_tokens == 8

        sent = json.loads(recorder.last.content)
        assert sent["model"] == "gpt-4o-mini"
        assert sent["stream"] is False
        assert sent["messages"] == [{"role": "user", "content": "Hello"}]
        assert "temperature" not in sent

    def test_stream_flag_is_forced_off(self, chat_completion_payload: dict[str, Any]) -> None:
        recorder = _Recorder(_json_response(chat_completion_payload))
        request = _request().model_copy(update={"stream": True})
        with CompletionClient(_config(), transport=httpx.MockTransport(recorder)) as client:
            client.create_chat_completion(request)
        assert json.loads(recorder.last.content)["stream"] is False

    def test_error_envelope(self) -> None:
        recorder = _Recorder(
            _json_response(
                {"error": {"message": "Incorrect API key provided", "type": "invalid_request_error"}},
                status_code=401,
            )
        )
        with CompletionClient(_config(), transport=httpx.MockTransport(recorder)) as client:
            with pytest.raises(APIError) as exc_info:
                client.create_chat_completion(_request())
        assert exc_info.value.http_status_code == 401
        assert exc_info.value.exit_code == 3

    def test_per_call_retry(self, chat_completion_payload: dict[str, Any]) -> None:
        calls = {"n": 0}

        def handler(request: httpx.Request) -> httpx.Response:
            calls["n"] += 1
            if calls["n"] < 3:
                return httpx.Response(429)
            return httpx.Response(200, json=chat_completion_payload)

        with CompletionClient(
            _config(), transport=httpx.MockTransport(handler), backoff=_NoWaitBackoff()
        ) as client:
            reply = client.create_chat_completion(
                _request(), RetryPolicy(retries=2), RetryPolicy(retry_codes={429})
            )

        assert reply.id == "chatcmpl-123"
        assert calls["n"] == 3

    def test_retry_exhausted(self) -> None:
        with CompletionClient(
            _config(retry=RetryPolicy(retries=1, retry_above_code=499)),
            transport=httpx.MockTransport(lambda request: httpx.Response(500)),
            backoff=_NoWaitBackoff(),
        ) as client:
            with pytest.raises(RetryLimitExceededError):
                client.create_chat_completion(_request())


class TestCreateChatCompletionStream:
    def test_stream(self, sse_body: bytes) -> None:
        recorder = _Recorder(httpx.Response(200, content=sse_body))
        with CompletionClient(_config(), transport=httpx.MockTransport(recorder)) as client:
            with client.create_chat_completion_stream(_request()) as stream:
                chunks = [chunk.text() for chunk in stream]
                assert stream.finished is True

        assert chunks == ["Hel", "lo"]
        assert json.loads(recorder.last.content)["stream"] is True
        assert recorder.last.headers["Accept"] == "text/event-stream"

    def test_extra_headers(self, sse_body: bytes) -> None:
        recorder = _Recorder(httpx.Response(200, content=sse_body))
        with CompletionClient(_config(), transport=httpx.MockTransport(recorder)) as client:
            stream = client.create_chat_completion_stream(
                _request(), headers={"X-Request-Id": "abc"}
            )
            stream.close()
        assert recorder.last.headers["X-Request-Id"] == "abc"

    def test_azure_stream_url(self, sse_body: bytes) -> None:
        recorder = _Recorder(httpx.Response(200, content=sse_body))
        with CompletionClient(_azure_config(), transport=httpx.MockTransport(recorder)) as client:
            client.create_chat_completion_stream(_request("gpt-4o")).close()
        assert recorder.last.url.path == "/openai/deployments/gpt-4o/chat/completions"
        assert recorder.last.url.params["api-version"] == "2023-05-15"
