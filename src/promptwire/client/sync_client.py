"""Synchronous completion-service client.

This module provides :class:`CompletionClient`, the blocking client used by
library callers and the ``promptwire`` CLI. It wraps :class:`httpx.Client`
and layers on:

- **URL construction** -- plain ``base_url + suffix`` for OpenAI-style
  services, ``/openai/deployments/<deployment>/...?api-version=`` for Azure.
- **Auth injection** -- ``Authorization: Bearer`` or Azure's ``api-key``
  header, plus ``OpenAI-Organization`` when configured.
- **Resilient dispatch** -- every call goes through
  :class:`~promptwire.client.dispatcher.Dispatcher` for retry, backoff and
  cancellation.
- **Streaming** -- streamed chat completions come back as a
  :class:`~promptwire.client.stream.StreamReader`.

The configuration is immutable. :meth:`CompletionClient.with_api_key`
returns a new client instead of changing the key under in-flight requests.
"""

from __future__ import annotations

from typing import Optional

import httpx

from promptwire.client.backoff import BackoffPolicy
from promptwire.client.cancel import CancelToken
from promptwire.client.dispatcher import Dispatcher
from promptwire.client.stream import StreamReader
from promptwire.models import (
    APIType,
    ChatCompletionRequest,
    ChatCompletionResponse,
    ChatCompletionStreamResponse,
    ClientConfig,
    ModelsList,
    RetryPolicy,
)

CHAT_COMPLETIONS_SUFFIX = "/chat/completions"
MODELS_SUFFIX = "/models"

AZURE_API_KEY_HEADER = "api-key"
AZURE_API_PREFIX = "openai"
AZURE_DEPLOYMENTS_PREFIX = "deployments"

# Azure serves these resources outside of a model deployment.
_AZURE_RESOURCE_SUFFIXES = ("/models", "/assistants", "/threads", "/files")

ChatCompletionStream = StreamReader[ChatCompletionStreamResponse]


class CompletionClient:
    """Synchronous client for a completion service.

    Should be used as a context manager so that the underlying transport is
    opened and closed properly.

    Args:
        config: Immutable client configuration.
        transport: Optional :mod:`httpx` transport, e.g.
            :class:`httpx.MockTransport` in tests.
        backoff: Optional backoff schedule for retries.

    Example::

        config = ClientConfig(api_key=SecretStr("sk-..."))
        with CompletionClient(config) as client:
            reply = client.create_chat_completion(
                ChatCompletionRequest(
                    model="gpt-4o-mini",
                    messages=[ChatMessage.user("Hello")],
                )
            )
    """

    def __init__(
        self,
        config: ClientConfig,
        transport: Optional[httpx.BaseTransport] = None,
        backoff: Optional[BackoffPolicy] = None,
    ) -> None:
        self._config = config
        self._transport = transport
        self._backoff = backoff
        self._client: Optional[httpx.Client] = None
        self._dispatcher: Optional[Dispatcher] = None

    # ------------------------------------------------------------------ #
    # Context manager
    # ------------------------------------------------------------------ #

    def __enter__(self) -> CompletionClient:
        self._client = httpx.Client(
            timeout=self._config.timeout,
            transport=self._transport,
            follow_redirects=True,
        )
        self._dispatcher = Dispatcher(self._client, self._config, self._backoff)
        return self

    def __exit__(self, *args: object) -> None:
        if self._client:
            self._client.close()
            self._client = None
            self._dispatcher = None

    # ------------------------------------------------------------------ #
    # Configuration
    # ------------------------------------------------------------------ #

    @property
    def config(self) -> ClientConfig:
        return self._config

    def with_api_key(self, api_key: str) -> CompletionClient:
        """Return a new, unopened client that authenticates with *api_key*.

        The current client and its in-flight requests keep the old key.
        """
        return CompletionClient(
            self._config.with_api_key(api_key),
            transport=self._transport,
            backoff=self._backoff,
        )

    def full_url(self, suffix: str, model: Optional[str] = None) -> str:
        """Return the full URL for *suffix*.

        Args:
            suffix: Endpoint path such as ``/chat/completions``.
            model: Model name; Azure needs it to pick the deployment.
        """
        if not self._config.is_azure:
            return f"{self._config.base_url}{suffix}"

        base_url = self._config.base_url.rstrip("/")
        api_version = self._config.api_version
        if any(s in suffix for s in _AZURE_RESOURCE_SUFFIXES):
            return f"{base_url}/{AZURE_API_PREFIX}{suffix}?api-version={api_version}"

        deployment = "UNKNOWN"
        if model:
            deployment = self._config.deployment_for_model(model)
        return (
            f"{base_url}/{AZURE_API_PREFIX}/{AZURE_DEPLOYMENTS_PREFIX}/"
            f"{deployment}{suffix}?api-version={api_version}"
        )

    # ------------------------------------------------------------------ #
    # Endpoints
    # ------------------------------------------------------------------ #

    def list_models(
        self, *retry: RetryPolicy, cancel: Optional[CancelToken] = None
    ) -> ModelsList:
        """List the models available to the configured account."""
        request = self._new_request("GET", self.full_url(MODELS_SUFFIX))
        return self._require_dispatcher().send(request, ModelsList, *retry, cancel=cancel)

    def create_chat_completion(
        self,
        request: ChatCompletionRequest,
        *retry: RetryPolicy,
        cancel: Optional[CancelToken] = None,
    ) -> ChatCompletionResponse:
        """Create a chat completion and wait for the whole reply."""
        body = request.model_copy(update={"stream": False}).to_body()
        http_request = self._new_request(
            "POST", self.full_url(CHAT_COMPLETIONS_SUFFIX, request.model), body
        )
        return self._require_dispatcher().send(
            http_request, ChatCompletionResponse, *retry, cancel=cancel
        )

    def create_chat_completion_stream(
        self,
        request: ChatCompletionRequest,
        *retry: RetryPolicy,
        headers: Optional[dict[str, str]] = None,
        cancel: Optional[CancelToken] = None,
    ) -> ChatCompletionStream:
        """Create a chat completion streamed as server-sent events.

        Tokens arrive as :class:`~promptwire.models.ChatCompletionStreamResponse`
        frames; the stream ends with ``data: [DONE]``. The returned reader
        must be closed by the caller.

        Args:
            request: The completion request; ``stream`` is forced on.
            *retry: Retry fragments for establishing the stream.
            headers: Extra request headers.
            cancel: Optional cancellation token.
        """
        body = request.model_copy(update={"stream": True}).to_body()
        http_request = self._new_request(
            "POST", self.full_url(CHAT_COMPLETIONS_SUFFIX, request.model), body
        )
        for key, value in (headers or {}).items():
            http_request.headers[key] = value
        return self._require_dispatcher().send_stream(
            http_request, ChatCompletionStreamResponse, *retry, cancel=cancel
        )

    # ------------------------------------------------------------------ #
    # Private helpers
    # ------------------------------------------------------------------ #

    def _require_dispatcher(self) -> Dispatcher:
        assert self._dispatcher is not None, "Client not initialised -- use as context manager"
        return self._dispatcher

    def _new_request(
        self, method: str, url: str, body: Optional[bytes] = None
    ) -> httpx.Request:
        assert self._client is not None, "Client not initialised -- use as context manager"
        return self._client.build_request(
            method, url, content=body, headers=self._common_headers()
        )

    def _common_headers(self) -> dict[str, str]:
        headers: dict[str, str] = {}
        api_key = self._config.api_key.get_secret_value()
        if self._config.api_type == APIType.AZURE:
            headers[AZURE_API_KEY_HEADER] = api_key
        elif api_key:
            # OpenAI or Azure AD bearer token.
            headers["Authorization"] = f"Bearer {api_key}"
        if self._config.organization:
            headers["OpenAI-Organization"] = self._config.organization
        return headers
