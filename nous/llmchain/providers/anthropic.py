from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Literal
from uuid import uuid4

from .._internal.errors import invalid_request_error, translation_error, unsupported_operation_error
from .._internal.http import request_json
from .._internal.tool_parts import (
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
    Message,
    Part,
    make_usage,
)


_ANTHROPIC_DEFAULT_BASE_URL = "https://api.anthropic.com"

_DEFAULT_VERSION = "2023-06-01"

_DEFAULT_MAX_TOKENS = 1024

_STOP_REASONS: dict[str, FinishReason] = {
    "end_turn": "stop",
    "stop_sequence": "stop",
    "max_tokens": "length",
    "tool_use": "tool_calls",
}


@dataclass(frozen=True, slots=True)
class AnthropicAdapter:
    api_key: str
    base_url: str = _ANTHROPIC_DEFAULT_BASE_URL
    provider_name: str = "anthropic"
    auth_mode: Literal["x-api-key", "bearer"] = "x-api-key"
    version: str = _DEFAULT_VERSION
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
        return self._messages(request, model_id=model_id)

    def complete(self, request: CompletionRequest, model_id: str) -> CompletionResponse:
        check_completion_request(self.capabilities(model_id), request)
        resp = self._messages(request.as_chat(), model_id=model_id)
        return CompletionResponse(
            id=resp.id,
            provider=resp.provider,
            model=resp.model,
            text=resp.text(),
            usage=resp.usage,
            finish_reason=resp.finish_reason,
        )

    def embed(self, request: EmbeddingRequest, model_id: str) -> EmbeddingResponse:
        check_embedding_request(self.capabilities(model_id), request)
        raise unsupported_operation_error("Anthropic has no embeddings endpoint")

    def _headers(self) -> dict[str, str]:
        headers: dict[str, str] = {"anthropic-version": self.version}
        if self.auth_mode == "bearer":
            headers["Authorization"] = f"Bearer {self.api_key}"
        else:
            headers["x-api-key"] = self.api_key
        return headers

    def _messages(self, request: ChatRequest, *, model_id: str) -> ChatResponse:
        obj = request_json(
            method="POST",
            url=f"{self.base_url.rstrip('/')}/v1/messages",
            headers=self._headers(),
            json_body=messages_body(request, model_id=model_id),
            timeout_ms=request.params.timeout_ms,
            proxy_url=self.proxy_url,
        )
        return self._parse_message(obj, model_id=model_id)

    def _parse_message(self, obj: dict[str, Any], *, model_id: str) -> ChatResponse:
        content = obj.get("content")
        if not isinstance(content, list):
            raise translation_error("anthropic response missing content")
        parts: list[Part] = []
        for item in content:
            if not isinstance(item, dict):
                continue
            typ = item.get("type")
            if typ == "text":
                t = item.get("text")
                if isinstance(t, str):
                    parts.append(Part.from_text(t))
                continue
            if typ == "tool_use":
                tool_use_id = item.get("id")
                name = item.get("name")
                tool_input = item.get("input")
                if isinstance(tool_use_id, str) and tool_use_id and isinstance(name, str) and name and isinstance(tool_input, dict):
                    parts.append(Part.tool_call(tool_call_id=tool_use_id, name=name, arguments=tool_input))

        usage_obj = obj.get("usage")
        usage = None
        if isinstance(usage_obj, dict):
            usage = make_usage(usage_obj.get("input_tokens"), usage_obj.get("output_tokens"))

        return ChatResponse(
            id=obj.get("id") if isinstance(obj.get("id"), str) else f"sdk_{uuid4().hex}",
            provider=self.provider_name,
            model=f"{self.provider_name}:{model_id}",
            message=Message(role="assistant", content=parts if parts else [Part.from_text("")]),
            usage=usage,
            finish_reason=_STOP_REASONS.get(str(obj.get("stop_reason")), "other"),
        )


def messages_body(request: ChatRequest, *, model_id: str) -> dict[str, Any]:
    system = _extract_system_text(request)

    messages: list[dict[str, Any]] = []
    for m in request.messages:
        if m.role == "system":
            continue
        if m.role == "user" and any(p.type == "tool_result" for p in m.content):
            raise invalid_request_error("tool_result parts must be sent as role='tool' for Anthropic")
        if m.role != "assistant" and any(p.type == "tool_call" for p in m.content):
            raise invalid_request_error("tool_call parts are only allowed in assistant messages")
        if m.role == "tool" and any(p.type != "tool_result" for p in m.content):
            raise invalid_request_error("tool messages may only contain tool_result parts")
        blocks = [_part_to_block(p) for p in m.content]
        role = "user" if m.role == "tool" else m.role
        messages.append({"role": role, "content": blocks})

    if not messages:
        raise invalid_request_error("chat request must contain at least one non-system message")

    params = request.params
    max_tokens = params.max_output_tokens if params.max_output_tokens is not None else _DEFAULT_MAX_TOKENS
    body: dict[str, Any] = {"model": model_id, "max_tokens": max(1, int(max_tokens)), "messages": messages}
    if system:
        body["system"] = system
    if params.temperature is not None:
        body["temperature"] = params.temperature
    if params.top_p is not None:
        body["top_p"] = params.top_p
    if params.stop is not None:
        body["stop_sequences"] = params.stop

    if request.tools:
        tools: list[dict[str, Any]] = []
        for t in request.tools:
            name, description, parameters = tool_declaration(t)
            tool_obj: dict[str, Any] = {"name": name, "input_schema": parameters}
            if description:
                tool_obj["description"] = description
            tools.append(tool_obj)
        body["tools"] = tools

    if request.tool_choice is not None:
        choice = request.tool_choice.normalized()
        if choice.mode in {"required", "tool"} and not request.tools:
            raise invalid_request_error("tool_choice requires request.tools")
        if choice.mode == "required":
            body["tool_choice"] = {"type": "any"}
        elif choice.mode == "tool":
            body["tool_choice"] = {"type": "tool", "name": choice.name}
        else:
            body["tool_choice"] = {"type": choice.mode}
    return body


def _extract_system_text(request: ChatRequest) -> str | None:
    chunks: list[str] = []
    for m in request.messages:
        if m.role != "system":
            continue
        for p in m.content:
            if p.type != "text":
                raise invalid_request_error("Anthropic system messages only support text")
            t = p.require_text().strip()
            if t:
                chunks.append(t)
    if not chunks:
        return None
    return "\n\n".join(chunks)


def _part_to_block(part: Part) -> dict[str, Any]:
    if part.type == "text":
        return {"type": "text", "text": part.require_text()}
    if part.type == "tool_call":
        tool_call_id, name, arguments = require_tool_call_meta(part)
        if not tool_call_id:
            raise invalid_request_error("tool_call.meta.tool_call_id required for Anthropic tool_use")
        if not isinstance(arguments, dict):
            raise invalid_request_error("Anthropic tool_call.meta.arguments must be an object")
        return {"type": "tool_use", "id": tool_call_id, "name": name, "input": arguments}
    if part.type == "tool_result":
        tool_call_id, _, result, is_error = require_tool_result_meta(part)
        if not tool_call_id:
            raise invalid_request_error("tool_result.meta.tool_call_id required for Anthropic tool_result")
        block: dict[str, Any] = {
            "type": "tool_result",
            "tool_use_id": tool_call_id,
            "content": tool_result_to_string(result),
        }
        if is_error is not None:
            block["is_error"] = is_error
        return block
    if part.type == "image":
        return {
            "type": "image",
            "source": {"type": "base64", "media_type": part.mime_type, "data": part.data},
        }
    raise unsupported_operation_error(f"Anthropic does not support part type: {part.type}")
