from __future__ import annotations

import asyncio
import logging
import os
from dataclasses import replace
from typing import Callable, Protocol

from ._internal.config import get_aws_region, get_default_timeout_ms, get_provider_keys, load_env_files
from ._internal.errors import invalid_request_error
from .capabilities import (
    CapabilityRecord,
    CapabilityRegistry,
    check_chat_request,
    check_completion_request,
    check_embedding_request,
    shared_registry,
)
from .providers import AnthropicAdapter, BedrockAdapter, OllamaAdapter, OpenAIAdapter
from .types import (
    ChatRequest,
    ChatResponse,
    CompletionRequest,
    CompletionResponse,
    EmbeddingRequest,
    EmbeddingResponse,
    GenerateParams,
    Message,
)

logger = logging.getLogger(__name__)

BACKENDS = ("openai", "anthropic", "bedrock", "ollama")

# Returns None for an acceptable response, else a description of the problem.
ValidatorFn = Callable[[str], "str | None"]

_VALIDATION_FEEDBACK = (
    "Your previous output was invalid because: {problem}\nPlease try again and produce a valid response."
)


class Backend(Protocol):
    provider_name: str

    def capabilities(self, model_id: str) -> CapabilityRecord: ...
    def supports_chat(self, model_id: str) -> bool: ...
    def supports_completion(self, model_id: str) -> bool: ...
    def supports_embeddings(self, model_id: str) -> bool: ...
    def chat(self, request: ChatRequest, model_id: str) -> ChatResponse: ...
    def complete(self, request: CompletionRequest, model_id: str) -> CompletionResponse: ...
    def embed(self, request: EmbeddingRequest, model_id: str) -> EmbeddingResponse: ...


class Client:
    """
    A backend adapter bound to one model, plus request defaults.

    Built by `ClientBuilder`; immutable once built and safe to share across tasks.

    With a `validator`, chat and completion responses are checked and re-requested up
    to `validation_attempts` times in total; a chat retry carries the rejected reply and
    the validator's complaint back to the model.
    """

    __slots__ = ("_adapter", "_model_id", "_defaults", "_validator", "_validation_attempts")

    def __init__(
        self,
        *,
        adapter: Backend,
        model_id: str,
        defaults: GenerateParams | None = None,
        validator: ValidatorFn | None = None,
        validation_attempts: int = 1,
    ) -> None:
        if validation_attempts < 1:
            raise invalid_request_error("validation_attempts must be >= 1")
        if not isinstance(model_id, str) or not model_id.strip():
            raise invalid_request_error("model_id must not be empty")
        self._adapter = adapter
        self._model_id = model_id.strip()
        self._defaults = defaults or GenerateParams()
        self._validator = validator
        self._validation_attempts = validation_attempts

    @property
    def backend(self) -> str:
        return self._adapter.provider_name

    @property
    def model_id(self) -> str:
        return self._model_id

    @property
    def defaults(self) -> GenerateParams:
        return self._defaults

    @property
    def adapter(self) -> Backend:
        return self._adapter

    def describe(self) -> str:
        return f"{self.backend}:{self._model_id}"

    def __repr__(self) -> str:
        return f"Client({self.describe()!r})"

    def capabilities(self) -> CapabilityRecord:
        return self._adapter.capabilities(self._model_id)

    def chat(self, request: ChatRequest | list[Message] | str) -> ChatResponse:
        if isinstance(request, str):
            request = ChatRequest(messages=[Message.user(request)])
        elif isinstance(request, list):
            request = ChatRequest(messages=request)
        request = replace(request, params=self._with_defaults(request.params))
        check_chat_request(self.capabilities(), request)
        logger.debug("chat %s (%d message(s))", self.describe(), len(request.messages))
        resp = self._adapter.chat(request, self._model_id)
        attempt = 1
        while self._validator is not None:
            problem = self._validator(resp.text())
            if problem is None:
                break
            self._check_attempts(attempt, problem)
            attempt += 1
            feedback = Message.user(_VALIDATION_FEEDBACK.format(problem=problem))
            request = replace(request, messages=[*request.messages, resp.message, feedback])
            resp = self._adapter.chat(request, self._model_id)
        return resp

    def complete(self, request: CompletionRequest | str) -> CompletionResponse:
        if isinstance(request, str):
            request = CompletionRequest(prompt=request)
        request = replace(request, params=self._with_defaults(request.params))
        check_completion_request(self.capabilities(), request)
        logger.debug("complete %s", self.describe())
        resp = self._adapter.complete(request, self._model_id)
        attempt = 1
        while self._validator is not None:
            problem = self._validator(resp.text)
            if problem is None:
                break
            self._check_attempts(attempt, problem)
            attempt += 1
            resp = self._adapter.complete(request, self._model_id)
        return resp

    def embed(self, request: EmbeddingRequest | list[str] | str) -> EmbeddingResponse:
        if isinstance(request, str):
            request = EmbeddingRequest(inputs=[request])
        elif isinstance(request, list):
            request = EmbeddingRequest(inputs=request)
        if request.timeout_ms is None:
            request = replace(request, timeout_ms=self._timeout_ms())
        check_embedding_request(self.capabilities(), request)
        logger.debug("embed %s (%d input(s))", self.describe(), len(request.inputs))
        return self._adapter.embed(request, self._model_id)

    async def achat(self, request: ChatRequest | list[Message] | str) -> ChatResponse:
        """
        Async wrapper for `chat()`.

        Implementation: run sync HTTP calls in a worker thread via `asyncio.to_thread`.
        """
        return await asyncio.to_thread(self.chat, request)

    async def acomplete(self, request: CompletionRequest | str) -> CompletionResponse:
        return await asyncio.to_thread(self.complete, request)

    async def aembed(self, request: EmbeddingRequest | list[str] | str) -> EmbeddingResponse:
        return await asyncio.to_thread(self.embed, request)

    def _check_attempts(self, attempt: int, problem: str) -> None:
        if attempt >= self._validation_attempts:
            raise invalid_request_error(f"response failed validation after {attempt} attempt(s): {problem}")
        logger.info("%s response rejected by validator (attempt %d): %s", self.describe(), attempt, problem)

    def _timeout_ms(self) -> int:
        if self._defaults.timeout_ms is not None:
            return self._defaults.timeout_ms
        return get_default_timeout_ms()

    def _with_defaults(self, params: GenerateParams) -> GenerateParams:
        d = self._defaults
        return replace(
            params,
            temperature=params.temperature if params.temperature is not None else d.temperature,
            top_p=params.top_p if params.top_p is not None else d.top_p,
            max_output_tokens=params.max_output_tokens if params.max_output_tokens is not None else d.max_output_tokens,
            stop=params.stop if params.stop is not None else d.stop,
            timeout_ms=params.timeout_ms if params.timeout_ms is not None else self._timeout_ms(),
        )


class ClientBuilder:
    """
    Fluent builder for `Client`.

        client = ClientBuilder().backend("anthropic").model("claude-3-5-haiku-20241022").max_tokens(512).build()
    """

    def __init__(self) -> None:
        self._backend: str | None = None
        self._model: str | None = None
        self._base_url: str | None = None
        self._region: str | None = None
        self._api_key: str | None = None
        self._max_tokens: int | None = None
        self._temperature: float | None = None
        self._top_p: float | None = None
        self._timeout_ms: int | None = None
        self._proxy_url: str | None = None
        self._registry: CapabilityRegistry | None = None
        self._adapter: Backend | None = None
        self._validator: ValidatorFn | None = None
        self._validation_attempts = 1

    @classmethod
    def from_model_string(cls, model: str) -> "ClientBuilder":
        """Start from a `"backend:model"` string (e.g. `"openai:gpt-4o-mini"`)."""
        backend, model_id = split_model(model)
        return cls().backend(backend).model(model_id)

    def backend(self, name: str) -> "ClientBuilder":
        self._backend = normalize_backend(name)
        return self

    def model(self, model_id: str) -> "ClientBuilder":
        self._model = model_id
        return self

    def base_url(self, url: str) -> "ClientBuilder":
        self._base_url = url.rstrip("/")
        return self

    def region(self, region: str) -> "ClientBuilder":
        self._region = region
        return self

    def api_key(self, key: str) -> "ClientBuilder":
        self._api_key = key
        return self

    def max_tokens(self, n: int) -> "ClientBuilder":
        if n <= 0:
            raise invalid_request_error("max_tokens must be positive")
        self._max_tokens = n
        return self

    def temperature(self, t: float) -> "ClientBuilder":
        self._temperature = t
        return self

    def top_p(self, p: float) -> "ClientBuilder":
        self._top_p = p
        return self

    def timeout_ms(self, ms: int) -> "ClientBuilder":
        if ms <= 0:
            raise invalid_request_error("timeout_ms must be positive")
        self._timeout_ms = ms
        return self

    def proxy_url(self, url: str) -> "ClientBuilder":
        self._proxy_url = url.strip() or None
        return self

    def registry(self, registry: CapabilityRegistry) -> "ClientBuilder":
        self._registry = registry
        return self

    def validator(self, fn: ValidatorFn, attempts: int = 3) -> "ClientBuilder":
        """Check every chat/completion response with `fn`, trying up to `attempts` times."""
        if attempts < 1:
            raise invalid_request_error("validator attempts must be >= 1")
        self._validator = fn
        self._validation_attempts = attempts
        return self

    def adapter(self, adapter: Backend) -> "ClientBuilder":
        """Use a ready-made adapter instead of constructing one from `backend`."""
        self._adapter = adapter
        return self

    def build(self) -> Client:
        if not self._model or not self._model.strip():
            raise invalid_request_error("model is required")
        adapter = self._adapter if self._adapter is not None else self._build_adapter()
        defaults = GenerateParams(
            temperature=self._temperature,
            top_p=self._top_p,
            max_output_tokens=self._max_tokens,
            timeout_ms=self._timeout_ms,
        )
        return Client(
            adapter=adapter,
            model_id=self._model,
            defaults=defaults,
            validator=self._validator,
            validation_attempts=self._validation_attempts,
        )

    def _build_adapter(self) -> Backend:
        if self._backend is None:
            raise invalid_request_error("backend is required")
        load_env_files()
        registry = self._registry if self._registry is not None else shared_registry()
        keys = get_provider_keys()
        backend = self._backend
        if backend == "openai":
            key = self._require_key(keys.openai_api_key, "OPENAI_API_KEY")
            base_url = self._base_url or os.environ.get("OPENAI_BASE_URL", "https://api.openai.com/v1").rstrip("/")
            return OpenAIAdapter(api_key=key, base_url=base_url, proxy_url=self._proxy_url, registry=registry)
        if backend == "anthropic":
            key = self._require_key(keys.anthropic_api_key, "ANTHROPIC_API_KEY")
            return AnthropicAdapter(
                api_key=key,
                base_url=self._base_url or "https://api.anthropic.com",
                proxy_url=self._proxy_url,
                registry=registry,
            )
        if backend == "bedrock":
            key = self._require_key(keys.bedrock_api_key, "AWS_BEARER_TOKEN_BEDROCK")
            return BedrockAdapter(
                api_key=key,
                region=self._region or get_aws_region(),
                base_url=self._base_url,
                proxy_url=self._proxy_url,
                registry=registry,
            )
        if backend == "ollama":
            return OllamaAdapter(
                base_url=self._base_url or "",
                api_key=self._api_key,
                proxy_url=self._proxy_url,
                registry=registry,
            )
        raise invalid_request_error(f"unknown backend: {backend}")

    def _require_key(self, env_key: str | None, name: str) -> str:
        key = self._api_key or env_key
        if not key:
            raise invalid_request_error(f"NOUS_LLMCHAIN_{name}/{name} not configured")
        return key


def normalize_backend(name: str) -> str:
    b = name.strip().lower()
    if b in {"aws", "amazon", "aws-bedrock"}:
        return "bedrock"
    if b == "claude":
        return "anthropic"
    if b not in BACKENDS:
        raise invalid_request_error(f"unknown backend: {name}")
    return b


def split_model(model: str) -> tuple[str, str]:
    if ":" not in model:
        raise invalid_request_error('model must be "{backend}:{model_id}"')
    backend, model_id = model.split(":", 1)
    if not backend.strip() or not model_id.strip():
        raise invalid_request_error('model must be "{backend}:{model_id}"')
    return normalize_backend(backend), model_id.strip()
