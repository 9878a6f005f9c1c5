from __future__ import annotations

from dataclasses import dataclass
from typing import Any
from uuid import uuid4

from .._internal.config import get_ollama_base_url
from .._internal.errors import invalid_request_error, translation_error, unknown_model_error
from .._internal.http import request_json
from .._internal.tool_parts import (
    parse_tool_call_arguments,
    require_tool_call_meta,
    require_tool_result_meta,
    tool_declaration,
    tool_result_to_string,
)
from ..capabilities import (
    CapabilityRecord,
    CapabilityRegistry,
    check_chat_request,
    check_completion_request,
    check_embedding_request,
    shared_registry,
)
from ..types import (
    ChatRequest,
    ChatResponse,
    CompletionRequest,
    CompletionResponse,
    EmbeddingRequest,
    EmbeddingResponse,
    FinishReason,
    GenerateParams,
    Message,
    Part,
    Usage,
    make_usage,
)


_DONE_REASONS: dict[str, FinishReason] = {"stop": "stop", "length": "length"}


@dataclass(frozen=True, slots=True)
class OllamaAdapter:
    base_url: str = ""
    api_key: str | None = None
    provider_name: str = "ollama"
    proxy_url: str | None = None
    registry: CapabilityRegistry | None = None

    def capabilities(self, model_id: str) -> CapabilityRecord:
        """
        Look up `model_id`, then its untagged name (`llama3.2:3b` -> `llama3.2`).
        """
        reg = self.registry if self.registry is not None else shared_registry()
        rec = reg.get(model_id)
        if rec is None and ":" in model_id:
            rec = reg.get(model_id.rsplit(":", 1)[0])
        if rec is None:
            raise unknown_model_error(model_id)
        return rec

    def supports_chat(self, model_id: str) -> bool:
        return self.capabilities(model_id).chat

    def supports_completion(self, model_id: str) -> bool:
        return self.capabilities(model_id).completion

    def supports_embeddings(self, model_id: str) -> bool:
        return self.capabilities(model_id).embeddings

    def chat(self, request: ChatRequest, model_id: str) -> ChatResponse:
        check_chat_request(self.capabilities(model_id), request)
        obj = self._post("/api/chat", chat_body(request, model_id=model_id), request.params.timeout_ms)
        msg = obj.get("message")
        if not isinstance(msg, dict):
            raise translation_error("ollama chat response missing message")

        parts: list[Part] = []
        content = msg.get("content")
        if isinstance(content, str) and content:
            parts.append(Part.from_text(content))
        tool_calls = msg.get("tool_calls")
        if isinstance(tool_calls, list):
            for i, call in enumerate(tool_calls):
                fn = call.get("function") if isinstance(call, dict) else None
                if not isinstance(fn, dict):
                    continue
                name = fn.get("name")
                if not isinstance(name, str) or not name:
                    continue
                call_id = call.get("id")
                parts.append(
                    Part.tool_call(
                        tool_call_id=call_id if isinstance(call_id, str) and call_id else f"call_{i}",
                        name=name,
                        arguments=parse_tool_call_arguments(fn.get("arguments")),
                    )
                )
        finish: FinishReason = "tool_calls" if tool_calls else _DONE_REASONS.get(str(obj.get("done_reason")), "other")
        return ChatResponse(
            id=f"sdk_{uuid4().hex}",
            provider=self.provider_name,
            model=f"{self.provider_name}:{model_id}",
            message=Message(role="assistant", content=parts if parts else [Part.from_text("")]),
            usage=_usage_from_ollama(obj),
            finish_reason=finish,
        )

    def complete(self, request: CompletionRequest, model_id: str) -> CompletionResponse:
        check_completion_request(self.capabilities(model_id), request)
        obj = self._post("/api/generate", generate_body(request, model_id=model_id), request.params.timeout_ms)
        text = obj.get("response")
        if not isinstance(text, str):
            raise translation_error("ollama generate response missing response")
        return CompletionResponse(
            id=f"sdk_{uuid4().hex}",
            provider=self.provider_name,
            model=f"{self.provider_name}:{model_id}",
            text=text,
            usage=_usage_from_ollama(obj),
            finish_reason=_DONE_REASONS.get(str(obj.get("done_reason")), "other"),
        )

    def embed(self, request: EmbeddingRequest, model_id: str) -> EmbeddingResponse:
        check_embedding_request(self.capabilities(model_id), request)
        body: dict[str, Any] = {"model": model_id, "input": list(request.inputs)}
        if request.dimensions is not None:
            body["dimensions"] = request.dimensions
        obj = self._post("/api/embed", body, request.timeout_ms)
        raw = obj.get("embeddings")
        if not isinstance(raw, list) or len(raw) != len(request.inputs):
            raise translation_error("ollama embed response missing embeddings")
        vectors: list[list[float]] = []
        for v in raw:
            if not isinstance(v, list) or not all(isinstance(x, (int, float)) for x in v):
                raise translation_error("ollama embed response item is not a vector")
            vectors.append([float(x) for x in v])
        count = obj.get("prompt_eval_count")
        return EmbeddingResponse(
            id=f"sdk_{uuid4().hex}",
            provider=self.provider_name,
            model=f"{self.provider_name}:{model_id}",
            embeddings=vectors,
            usage=make_usage(count, None, count),
        )

    def _post(self, path: str, body: dict[str, Any], timeout_ms: int | None) -> dict[str, Any]:
        base = (self.base_url or get_ollama_base_url()).rstrip("/")
        headers = {"Authorization": f"Bearer {self.api_key}"} if self.api_key else None
        return request_json(
            method="POST",
            url=f"{base}{path}",
            headers=headers,
            json_body=body,
            timeout_ms=timeout_ms,
            proxy_url=self.proxy_url,
        )


def _options(params: GenerateParams) -> dict[str, Any]:
    options: dict[str, Any] = {}
    if params.temperature is not None:
        options["temperature"] = params.temperature
    if params.top_p is not None:
        options["top_p"] = params.top_p
    if params.max_output_tokens is not None:
        options["num_predict"] = params.max_output_tokens
    if params.stop is not None:
        options["stop"] = params.stop
    return options


def generate_body(request: CompletionRequest, *, model_id: str) -> dict[str, Any]:
    body: dict[str, Any] = {"model": model_id, "prompt": request.prompt, "stream": False}
    if request.system:
        body["system"] = request.system
    options = _options(request.params)
    if options:
        body["options"] = options
    return body


def chat_body(request: ChatRequest, *, model_id: str) -> dict[str, Any]:
    messages: list[dict[str, Any]] = []
    for m in request.messages:
        if m.role == "tool":
            for p in m.content:
                if p.type != "tool_result":
                    raise invalid_request_error("tool messages may only contain tool_result parts")
                _, name, result, _ = require_tool_result_meta(p)
                messages.append({"role": "tool", "tool_name": name, "content": tool_result_to_string(result)})
            continue
        text: list[str] = []
        images: list[str] = []
        tool_calls: list[dict[str, Any]] = []
        for p in m.content:
            if p.type == "text":
                text.append(p.require_text())
            elif p.type == "image":
                images.append(p.data or "")
            elif p.type == "tool_call":
                if m.role != "assistant":
                    raise invalid_request_error("tool_call parts are only allowed in assistant messages")
                _, name, arguments = require_tool_call_meta(p)
                args = parse_tool_call_arguments(arguments)
                tool_calls.append({"function": {"name": name, "arguments": args if isinstance(args, dict) else {}}})
            else:
                raise invalid_request_error("tool_result parts must be sent as role='tool'")
        msg: dict[str, Any] = {"role": m.role, "content": "".join(text)}
        if images:
            msg["images"] = images
        if tool_calls:
            msg["tool_calls"] = tool_calls
        messages.append(msg)

    if not messages:
        raise invalid_request_error("chat request requires at least one message")

    body: dict[str, Any] = {"model": model_id, "messages": messages, "stream": False}
    options = _options(request.params)
    if options:
        body["options"] = options
    if request.tools:
        tools: list[dict[str, Any]] = []
        for t in request.tools:
            name, description, parameters = tool_declaration(t)
            fn: dict[str, Any] = {"name": name, "parameters": parameters}
            if description:
                fn["description"] = description
            tools.append({"type": "function", "function": fn})
        body["tools"] = tools
    return body


def _usage_from_ollama(obj: dict[str, Any]) -> Usage:
    return make_usage(obj.get("prompt_eval_count"), obj.get("eval_count"))
