from __future__ import annotations

from dataclasses import dataclass
from typing import Any
from uuid import uuid4

from .._internal.errors import invalid_request_error, translation_error
from .._internal.http import request_json
from .._internal.tool_parts import (
    parse_tool_call_arguments,
    require_tool_call_meta,
    require_tool_result_meta,
    tool_arguments_to_json,
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
    Message,
    Part,
    Usage,
    make_usage,
)


_OPENAI_DEFAULT_BASE_URL = "https://api.openai.com/v1"

_FINISH_REASONS: dict[str, FinishReason] = {
    "stop": "stop",
    "length": "length",
    "tool_calls": "tool_calls",
    "function_call": "tool_calls",
    "content_filter": "content_filter",
}


@dataclass(frozen=True, slots=True)
class OpenAIAdapter:
    api_key: str
    base_url: str = _OPENAI_DEFAULT_BASE_URL
    provider_name: str = "openai"
    proxy_url: str | None = None
    registry: CapabilityRegistry | None = None

    def capabilities(self, model_id: str) -> CapabilityRecord:
        reg = self.registry if self.registry is not None else shared_registry()
        return reg.capabilities_of(model_id)

    def supports_chat(self, model_id: str) -> bool:
        return self.capabilities(model_id).chat

    def supports_completion(self, model_id: str) -> bool:
        return self.capabilities(model_id).completion

    def supports_embeddings(self, model_id: str) -> bool:
        return self.capabilities(model_id).embeddings

    def chat(self, request: ChatRequest, model_id: str) -> ChatResponse:
        check_chat_request(self.capabilities(model_id), request)
        obj = self._post("/chat/completions", chat_body(request, model_id=model_id), request.params.timeout_ms)
        return self._parse_chat_response(obj, model_id=model_id)

    def complete(self, request: CompletionRequest, model_id: str) -> CompletionResponse:
        """
        Chat-capable models answer completions as a single user turn; the rest go to
        the legacy `/completions` endpoint.
        """
        cap = self.capabilities(model_id)
        check_completion_request(cap, request)
        if cap.chat:
            chat_req = request.as_chat()
            obj = self._post("/chat/completions", chat_body(chat_req, model_id=model_id), request.params.timeout_ms)
            resp = self._parse_chat_response(obj, model_id=model_id)
            return CompletionResponse(
                id=resp.id,
                provider=resp.provider,
                model=resp.model,
                text=resp.text(),
                usage=resp.usage,
                finish_reason=resp.finish_reason,
            )
        obj = self._post("/completions", completion_body(request, model_id=model_id), request.params.timeout_ms)
        choices = obj.get("choices")
        if not isinstance(choices, list) or not choices or not isinstance(choices[0], dict):
            raise translation_error("openai completion response missing choices")
        text = choices[0].get("text")
        if not isinstance(text, str):
            raise translation_error("openai completion response missing text")
        return CompletionResponse(
            id=str(obj.get("id") or f"sdk_{uuid4().hex}"),
            provider=self.provider_name,
            model=f"{self.provider_name}:{model_id}",
            text=text,
            usage=_usage_from_openai(obj),
            finish_reason=_FINISH_REASONS.get(str(choices[0].get("finish_reason")), "other"),
        )

    def embed(self, request: EmbeddingRequest, model_id: str) -> EmbeddingResponse:
        check_embedding_request(self.capabilities(model_id), request)
        body: dict[str, Any] = {"model": model_id, "input": list(request.inputs)}
        if request.dimensions is not None:
            body["dimensions"] = request.dimensions
        obj = self._post("/embeddings", body, request.timeout_ms)
        data = obj.get("data")
        if not isinstance(data, list) or len(data) != len(request.inputs):
            raise translation_error("openai embeddings response missing data")
        ordered = sorted(
            (item for item in data if isinstance(item, dict)),
            key=lambda item: item.get("index", 0) if isinstance(item.get("index"), int) else 0,
        )
        vectors: list[list[float]] = []
        for item in ordered:
            emb = item.get("embedding")
            if not isinstance(emb, list) or not all(isinstance(x, (int, float)) for x in emb):
                raise translation_error("openai embeddings item missing embedding")
            vectors.append([float(x) for x in emb])
        if len(vectors) != len(request.inputs):
            raise translation_error("openai embeddings items must be objects")
        u = obj.get("usage")
        usage = make_usage(u.get("prompt_tokens"), None, u.get("total_tokens")) if isinstance(u, dict) else None
        return EmbeddingResponse(
            id=f"sdk_{uuid4().hex}",
            provider=self.provider_name,
            model=f"{self.provider_name}:{model_id}",
            embeddings=vectors,
            usage=usage,
        )

    def _headers(self) -> dict[str, str]:
        return {"Authorization": f"Bearer {self.api_key}"}

    def _post(self, path: str, body: dict[str, Any], timeout_ms: int | None) -> dict[str, Any]:
        return request_json(
            method="POST",
            url=f"{self.base_url.rstrip('/')}{path}",
            headers=self._headers(),
            json_body=body,
            timeout_ms=timeout_ms,
            proxy_url=self.proxy_url,
        )

    def _parse_chat_response(self, obj: dict[str, Any], *, model_id: str) -> ChatResponse:
        resp_id = obj.get("id") or f"sdk_{uuid4().hex}"
        choices = obj.get("choices")
        if not isinstance(choices, list) or not choices or not isinstance(choices[0], dict):
            raise translation_error("openai chat response missing choices")
        msg = choices[0].get("message")
        if not isinstance(msg, dict):
            raise translation_error("openai chat response missing message")

        parts: list[Part] = []
        content_text = msg.get("content")
        if isinstance(content_text, str) and content_text:
            parts.append(Part.from_text(content_text))

        tool_calls = msg.get("tool_calls")
        if isinstance(tool_calls, list):
            for call in tool_calls:
                if not isinstance(call, dict):
                    continue
                tool_call_id = call.get("id")
                if not isinstance(tool_call_id, str) or not tool_call_id:
                    continue
                fn = call.get("function")
                if not isinstance(fn, dict):
                    continue
                name = fn.get("name")
                if not isinstance(name, str) or not name:
                    continue
                parts.append(
                    Part.tool_call(
                        tool_call_id=tool_call_id,
                        name=name,
                        arguments=parse_tool_call_arguments(fn.get("arguments")),
                    )
                )

        if not parts:
            parts.append(Part.from_text(""))

        return ChatResponse(
            id=str(resp_id),
            provider=self.provider_name,
            model=f"{self.provider_name}:{model_id}",
            message=Message(role="assistant", content=parts),
            usage=_usage_from_openai(obj),
            finish_reason=_FINISH_REASONS.get(str(choices[0].get("finish_reason")), "other"),
        )


def completion_body(request: CompletionRequest, *, model_id: str) -> dict[str, Any]:
    prompt = request.prompt if not request.system else f"{request.system}\n\n{request.prompt}"
    body: dict[str, Any] = {"model": model_id, "prompt": prompt}
    params = request.params
    if params.temperature is not None:
        body["temperature"] = params.temperature
    if params.top_p is not None:
        body["top_p"] = params.top_p
    if params.max_output_tokens is not None:
        body["max_tokens"] = params.max_output_tokens
    if params.stop is not None:
        body["stop"] = params.stop
    return body


def chat_body(request: ChatRequest, *, model_id: str) -> dict[str, Any]:
    messages: list[dict[str, Any]] = []
    for m in request.messages:
        if m.role == "tool":
            for p in m.content:
                if p.type != "tool_result":
                    raise invalid_request_error("tool messages may only contain tool_result parts")
                tool_call_id, _, result, _ = require_tool_result_meta(p)
                if not tool_call_id:
                    raise invalid_request_error("tool_result.meta.tool_call_id required for OpenAI tool messages")
                messages.append({"role": "tool", "tool_call_id": tool_call_id, "content": tool_result_to_string(result)})
            continue

        tool_calls: list[dict[str, Any]] = []
        content: list[dict[str, Any]] = []
        for p in m.content:
            if p.type == "tool_call":
                if m.role != "assistant":
                    raise invalid_request_error("tool_call parts are only allowed in assistant messages")
                tool_call_id, name, arguments = require_tool_call_meta(p)
                if not tool_call_id:
                    raise invalid_request_error("tool_call.meta.tool_call_id required for OpenAI tool calls")
                tool_calls.append(
                    {
                        "id": tool_call_id,
                        "type": "function",
                        "function": {"name": name, "arguments": tool_arguments_to_json(arguments)},
                    }
                )
                continue
            if p.type == "tool_result":
                raise invalid_request_error("tool_result parts must be sent as role='tool'")
            if p.type == "image":
                if m.role != "user":
                    raise invalid_request_error("image parts are only allowed in user messages")
                content.append({"type": "image_url", "image_url": {"url": f"data:{p.mime_type};base64,{p.data}"}})
                continue
            content.append({"type": "text", "text": p.require_text()})

        msg: dict[str, Any] = {"role": m.role}
        if all(c["type"] == "text" for c in content):
            msg["content"] = "".join(c["text"] for c in content) if content else None
        else:
            msg["content"] = content
        if tool_calls:
            msg["tool_calls"] = tool_calls
        messages.append(msg)

    if not messages:
        raise invalid_request_error("chat request requires at least one message")

    body: dict[str, Any] = {"model": model_id, "messages": messages}
    params = request.params
    if params.temperature is not None:
        body["temperature"] = params.temperature
    if params.top_p is not None:
        body["top_p"] = params.top_p
    if params.max_output_tokens is not None:
        body["max_completion_tokens"] = params.max_output_tokens
    if params.stop is not None:
        body["stop"] = params.stop

    if request.tools:
        tools: list[dict[str, Any]] = []
        for t in request.tools:
            name, description, parameters = tool_declaration(t)
            fn: dict[str, Any] = {"name": name}
            if description:
                fn["description"] = description
            fn["parameters"] = parameters
            tools.append({"type": "function", "function": fn})
        body["tools"] = tools

    if request.tool_choice is not None:
        choice = request.tool_choice.normalized()
        if choice.mode in {"required", "tool"} and not request.tools:
            raise invalid_request_error("tool_choice requires request.tools")
        if choice.mode == "tool":
            body["tool_choice"] = {"type": "function", "function": {"name": choice.name}}
        else:
            body["tool_choice"] = choice.mode
    return body


def _usage_from_openai(obj: dict[str, Any]) -> Usage | None:
    usage = obj.get("usage")
    if not isinstance(usage, dict):
        return None
    return make_usage(usage.get("prompt_tokens"), usage.get("completion_tokens"), usage.get("total_tokens"))
