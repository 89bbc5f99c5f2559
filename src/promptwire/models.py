"""Canonical Pydantic models shared across all promptwire modules.

This is the single source of truth for data shapes in the project. Every other
module imports from here rather than defining its own models. The models fall
into three groups:

**Client configuration** -- immutable values consumed by the dispatcher and
the completion client:
    :class:`RetryPolicy`, :class:`APIType`, :class:`ClientConfig`.

**Wire models** -- request and response bodies exchanged with the service:
    :class:`ErrorDetail`, :class:`ErrorResponse`, :class:`RateLimitHeaders`,
    :class:`APIObject`, the chat completion models and the model listing
    models.

**Persisted settings** -- serialised as JSON in the user's config directory:
    :class:`OutputConfig` and :class:`Settings`.

All models use Pydantic v2. Response models ignore unknown keys so that new
fields added by the service do not break decoding.
"""

from __future__ import annotations

import enum
import re
from collections.abc import Mapping
from types import MappingProxyType
from typing import Any, Optional, Union

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    PrivateAttr,
    SecretStr,
    field_serializer,
    field_validator,
)


# --- Retry policy ---


class RetryPolicy(BaseModel):
    """Retry budget and status-code eligibility for one dispatched call.

    A policy is assembled per call by :meth:`merged` from the default (one
    attempt, no retry) and any number of override fragments. ``retries``
    counts *additional* attempts, so ``retries=2`` allows three sends.

    Example::

        policy = RetryPolicy.merged(
            RetryPolicy(retries=2),
            RetryPolicy(retry_codes={429, 503}),
        )
        policy.can_retry(503)  # True
    """

    model_config = ConfigDict(frozen=True)

    retries: int = Field(default=0, ge=0, description="Extra attempts after the first")
    retry_above_code: int = Field(
        default=0,
        description="Statuses strictly above this are retryable; 0 disables the threshold",
    )
    retry_codes: frozenset[int] = Field(
        default_factory=frozenset, description="Statuses that are always retryable"
    )

    @classmethod
    def merged(cls, *fragments: Optional[RetryPolicy]) -> RetryPolicy:
        """Fold *fragments* onto the default policy.

        ``retries`` and ``retry_above_code`` are replaced only by positive
        values; ``retry_codes`` are unioned. ``None`` fragments are skipped.
        """
        retries = 0
        retry_above_code = 0
        retry_codes: set[int] = set()
        for fragment in fragments:
            if fragment is None:
                continue
            if fragment.retries > 0:
                retries = fragment.retries
            if fragment.retry_above_code > 0:
                retry_above_code = fragment.retry_above_code
            retry_codes |= fragment.retry_codes
        return cls(
            retries=retries,
            retry_above_code=retry_above_code,
            retry_codes=retry_codes,
        )

    def can_retry(self, status_code: int) -> bool:
        """Return ``True`` if a response with *status_code* may be retried."""
        if self.retry_above_code > 0 and status_code > self.retry_above_code:
            return True
        return status_code in self.retry_codes


# --- Client configuration ---


class APIType(str, enum.Enum):
    """Flavour of the remote service, which decides URL layout and auth header."""

    OPEN_AI = "open_ai"
    AZURE = "azure"
    AZURE_AD = "azure_ad"


_AZURE_DEPLOYMENT_STRIP = re.compile(r"[.:]")


class ClientConfig(BaseModel):
    """Immutable configuration shared by every call a client makes.

    The model is frozen: concurrent requests read it without locking. To
    change a value (for example rotating the API key) build a new config with
    :meth:`with_api_key` or :meth:`model_copy` and a new client around it.
    """

    model_config = ConfigDict(frozen=True)

    api_key: SecretStr = Field(default=SecretStr(""))
    base_url: str = "https://api.openai.com/v1"
    api_type: APIType = APIType.OPEN_AI
    api_version: str = "2023-05-15"
    organization: Optional[str] = None
    azure_model_mapper: Mapping[str, str] = Field(
        default_factory=dict,
        validate_default=True,
        description="Model name -> Azure deployment name",
    )
    empty_messages_limit: int = Field(
        default=300, ge=0, description="Consecutive noise lines tolerated in a stream"
    )
    timeout: float = Field(default=600.0, gt=0, description="Per-request timeout in seconds")
    retry: RetryPolicy = Field(default_factory=RetryPolicy)

    @field_validator("azure_model_mapper", mode="after")
    @classmethod
    def _freeze_mapper(cls, value: Mapping[str, str]) -> Mapping[str, str]:
        return MappingProxyType(dict(value))

    @field_serializer("azure_model_mapper")
    def _dump_mapper(self, value: Mapping[str, str]) -> dict[str, str]:
        return dict(value)

    @classmethod
    def for_azure(cls, api_key: str, base_url: str, **kwargs: Any) -> ClientConfig:
        """Build a config for an Azure OpenAI resource."""
        return cls(
            api_key=SecretStr(api_key),
            base_url=base_url,
            api_type=APIType.AZURE,
            **kwargs,
        )

    @property
    def is_azure(self) -> bool:
        return self.api_type in (APIType.AZURE, APIType.AZURE_AD)

    def with_api_key(self, api_key: str) -> ClientConfig:
        """Return a copy of this config that authenticates with *api_key*."""
        return self.model_copy(update={"api_key": SecretStr(api_key)})

    def deployment_for_model(self, model: str) -> str:
        """Map a model name to its Azure deployment name.

        An explicit ``azure_model_mapper`` entry wins; otherwise the model
        name with ``.`` and ``:`` removed is used (``gpt-3.5-turbo`` becomes
        ``gpt-35-turbo``).
        """
        if model in self.azure_model_mapper:
            return self.azure_model_mapper[model]
        return _AZURE_DEPLOYMENT_STRIP.sub("", model)


# --- Errors and headers ---


class ErrorDetail(BaseModel):
    """The ``error`` object of the service's error envelope."""

    message: str = ""
    type: Optional[str] = None
    param: Optional[str] = None
    code: Union[str, int, None] = None


class ErrorResponse(BaseModel):
    """Error envelope: ``{"error": {"message": ..., "type": ..., ...}}``."""

    error: Optional[ErrorDetail] = None


class RateLimitHeaders(BaseModel):
    """Rate-limit information the service reports in ``x-ratelimit-*`` headers."""

    limit_requests: int = 0
    limit_tokens: int = 0
    remaining_requests: int = 0
    remaining_tokens: int = 0
    reset_requests: str = ""
    reset_tokens: str = ""

    @classmethod
    def from_headers(cls, headers: Mapping[str, str]) -> RateLimitHeaders:
        def _int(name: str) -> int:
            try:
                return int(headers.get(name, "0"))
            except ValueError:
                return 0

        return cls(
            limit_requests=_int("x-ratelimit-limit-requests"),
            limit_tokens=_int("x-ratelimit-limit-tokens"),
            remaining_requests=_int("x-ratelimit-remaining-requests"),
            remaining_tokens=_int("x-ratelimit-remaining-tokens"),
            reset_requests=headers.get("x-ratelimit-reset-requests", ""),
            reset_tokens=headers.get("x-ratelimit-reset-tokens", ""),
        )


class APIObject(BaseModel):
    """Base for decoded response bodies that remember their HTTP headers.

    The dispatcher calls :meth:`set_headers` after a successful buffered send.
    """

    _headers: Mapping[str, str] = PrivateAttr(default_factory=dict)

    def set_headers(self, headers: Mapping[str, str]) -> None:
        self._headers = headers

    @property
    def headers(self) -> Mapping[str, str]:
        return self._headers

    def rate_limit_headers(self) -> RateLimitHeaders:
        return RateLimitHeaders.from_headers(self._headers)


# --- Chat completions ---


class ChatMessageRole(str, enum.Enum):
    """Author roles accepted in a chat conversation."""

    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"
    FUNCTION = "function"
    TOOL = "tool"


class FinishReason(str, enum.Enum):
    """Why the model stopped producing tokens for a choice."""

    STOP = "stop"
    LENGTH = "length"
    FUNCTION_CALL = "function_call"
    TOOL_CALLS = "tool_calls"
    CONTENT_FILTER = "content_filter"


class FunctionCall(BaseModel):
    name: Optional[str] = None
    # JSON-encoded arguments, possibly partial while streaming.
    arguments: Optional[str] = None


class ToolCall(BaseModel):
    index: Optional[int] = None
    id: Optional[str] = None
    type: str = "function"
    function: FunctionCall = Field(default_factory=FunctionCall)


class ChatMessage(BaseModel):
    """One message of a chat conversation."""

    role: str
    content: Optional[str] = None
    name: Optional[str] = None
    tool_calls: Optional[list[ToolCall]] = None
    tool_call_id: Optional[str] = None

    @classmethod
    def system(cls, content: str) -> ChatMessage:
        return cls(role=ChatMessageRole.SYSTEM.value, content=content)

    @classmethod
    def user(cls, content: str) -> ChatMessage:
        return cls(role=ChatMessageRole.USER.value, content=content)


class ChatCompletionRequest(BaseModel):
    """Body of ``POST /chat/completions``.

    Unset optional fields are left out of the serialised body so the service
    applies its own defaults.
    """

    model_config = ConfigDict(extra="allow")

    model: str
    messages: list[ChatMessage]
    max_tokens: Optional[int] = None
    temperature: Optional[float] = None
    top_p: Optional[float] = None
    n: Optional[int] = None
    stream: bool = False
    stop: Optional[list[str]] = None
    presence_penalty: Optional[float] = None
    frequency_penalty: Optional[float] = None
    seed: Optional[int] = None
    user: Optional[str] = None

    def to_body(self) -> bytes:
        """Serialise to the JSON bytes sent on the wire."""
        return self.model_dump_json(exclude_none=True).encode("utf-8")


class Usage(BaseModel):
    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0


class ChatCompletionChoice(BaseModel):
    index: int = 0
    message: ChatMessage
    finish_reason: Optional[str] = None


class ChatCompletionResponse(APIObject):
    """Buffered reply of ``POST /chat/completions``."""

    id: str = ""
    object: str = ""
    created: int = 0
    model: str = ""
    choices: list[ChatCompletionChoice] = Field(default_factory=list)
    usage: Usage = Field(default_factory=Usage)
    system_fingerprint: Optional[str] = None


class ChatCompletionStreamChoiceDelta(BaseModel):
    content: Optional[str] = None
    role: Optional[str] = None
    function_call: Optional[FunctionCall] = None
    tool_calls: Optional[list[ToolCall]] = None


class ChatCompletionStreamChoice(BaseModel):
    index: int = 0
    delta: ChatCompletionStreamChoiceDelta = Field(
        default_factory=ChatCompletionStreamChoiceDelta
    )
    finish_reason: Optional[str] = None


class ChatCompletionStreamResponse(BaseModel):
    """One ``data:`` frame of a streamed chat completion."""

    id: str = ""
    object: str = ""
    created: int = 0
    model: str = ""
    choices: list[ChatCompletionStreamChoice] = Field(default_factory=list)
    usage: Optional[Usage] = None

    def text(self) -> str:
        """Concatenate the content deltas of all choices in this frame."""
        return "".join(c.delta.content or "" for c in self.choices)


# --- Models ---


class Model(APIObject):
    """A model the service can run."""

    id: str
    object: str = "model"
    created: int = 0
    owned_by: str = ""
    root: Optional[str] = None
    parent: Optional[str] = None
    permission: list[dict[str, Any]] = Field(default_factory=list)


class ModelsList(APIObject):
    """Reply of ``GET /models``."""

    data: list[Model] = Field(default_factory=list)

    def ids(self) -> list[str]:
        return [m.id for m in self.data]


# --- Persisted settings ---


class OutputConfig(BaseModel):
    """Default output format preferences stored in :class:`Settings`."""

    format: str = Field(
        default="auto", description="Output format: auto, json, plain, rich"
    )


class Settings(BaseModel):
    """User-wide settings persisted at ``~/.config/promptwire/config.json``.

    Loaded and saved by :func:`~promptwire.config.load_settings` and
    :func:`~promptwire.config.save_settings`, and turned into a
    :class:`ClientConfig` by :func:`~promptwire.config.build_client_config`.
    See :func:`~promptwire.config.resolve_settings` for the precedence chain.
    """

    base_url: Optional[str] = Field(
        default=None, description="Service base URL; provider default when unset"
    )
    api_type: APIType = APIType.OPEN_AI
    api_version: str = "2023-05-15"
    organization: Optional[str] = None
    api_key_source: str = Field(
        default="env:OPENAI_API_KEY",
        description="Credential source: env:VAR, file:/path, prompt",
    )
    azure_model_mapper: dict[str, str] = Field(default_factory=dict)
    default_model: str = "gpt-4o-mini"
    empty_messages_limit: int = Field(default=300, ge=0)
    timeout: float = Field(default=600.0, gt=0)
    retry: RetryPolicy = Field(default_factory=RetryPolicy)
    output: OutputConfig = Field(default_factory=OutputConfig)
