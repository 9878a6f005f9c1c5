from __future__ import annotations

import urllib.parse
from dataclasses import dataclass
from typing import Any
from uuid import uuid4

from .._internal.errors import invalid_request_error, translation_error, unsupported_operation_error
from .._internal.http import request_json
from .._internal.tool_parts import (
    require_tool_call_meta,
    require_tool_result_meta,
    tool_declaration,
)
from ..capabilities import (
    CapabilityRecord,
    CapabilityRegistry,
    ModelIdentifier,
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


_STOP_REASONS: dict[str, FinishReason] = {
    "end_turn": "stop",
    "stop_sequence": "stop",
    "max_tokens": "length",
    "tool_use": "tool_calls",
    "guardrail_intervened": "content_filter",
    "content_filtered": "content_filter",
}

_IMAGE_FORMATS = {
    "image/png": "png",
    "image/jpeg": "jpeg",
    "image/gif": "gif",
    "image/webp": "webp",
}


@dataclass(frozen=True, slots=True)
class BedrockAdapter:
    """
    Amazon Bedrock through the Converse API, authenticated with a Bedrock API key
    (bearer token). Model ids may be direct ids, inference profiles or ARNs.
    """

    api_key: str
    region: str = "us-east-1"
    base_url: str | None = None
    provider_name: str = "bedrock"
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

    def cross_region_model_id(self, vendor: str, model: str) -> str:
        return ModelIdentifier.cross_region(self.region, vendor, model).raw

    def chat(self, request: ChatRequest, model_id: str) -> ChatResponse:
        check_chat_request(self.capabilities(model_id), request)
        return self._converse(request, model_id=model_id)

    def complete(self, request: CompletionRequest, model_id: str) -> CompletionResponse:
        check_completion_request(self.capabilities(model_id), request)
        resp = self._converse(request.as_chat(), model_id=model_id)
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
        vendor = model_vendor(model_id)
        if vendor == "amazon":
            vectors: list[list[float]] = []
            input_tokens = 0
            for text in request.inputs:
                obj = self._post(model_id, "invoke", titan_embedding_body(text, request.dimensions), request.timeout_ms)
                vectors.append(_float_vector(obj.get("embedding"), "titan"))
                count = obj.get("inputTextTokenCount")
                if isinstance(count, int):
                    input_tokens += count
            usage = make_usage(input_tokens, None, input_tokens)
        elif vendor == "cohere":
            obj = self._post(model_id, "invoke", cohere_embedding_body(request.inputs), request.timeout_ms)
            raw = obj.get("embeddings")
            if isinstance(raw, dict):
                raw = raw.get("float")
            if not isinstance(raw, list) or len(raw) != len(request.inputs):
                raise translation_error("cohere embeddings response missing embeddings")
            vectors = [_float_vector(v, "cohere") for v in raw]
            usage = None
        else:
            raise unsupported_operation_error(f"no Bedrock embedding payload for vendor: {vendor or model_id}")
        return EmbeddingResponse(
            id=f"sdk_{uuid4().hex}",
            provider=self.provider_name,
            model=f"{self.provider_name}:{model_id}",
            embeddings=vectors,
            usage=usage,
        )

    def _endpoint(self) -> str:
        if self.base_url:
            return self.base_url.rstrip("/")
        return f"https://bedrock-runtime.{self.region}.amazonaws.com"

    def _post(self, model_id: str, action: str, body: dict[str, Any], timeout_ms: int | None) -> dict[str, Any]:
        quoted = urllib.parse.quote(model_id, safe="")
        return request_json(
            method="POST",
            url=f"{self._endpoint()}/model/{quoted}/{action}",
            headers={"Authorization": f"Bearer {self.api_key}"},
            json_body=body,
            timeout_ms=timeout_ms,
            proxy_url=self.proxy_url,
        )

    def _converse(self, request: ChatRequest, *, model_id: str) -> ChatResponse:
        obj = self._post(model_id, "converse", converse_body(request), request.params.timeout_ms)
        output = obj.get("output")
        msg = output.get("message") if isinstance(output, dict) else None
        if not isinstance(msg, dict) or not isinstance(msg.get("content"), list):
            raise translation_error("bedrock converse response missing output.message")

        parts: list[Part] = []
        for block in msg["content"]:
            if not isinstance(block, dict):
                continue
            if isinstance(block.get("text"), str):
                parts.append(Part.from_text(block["text"]))
                continue
            tool_use = block.get("toolUse")
            if isinstance(tool_use, dict):
                name = tool_use.get("name")
                if not isinstance(name, str) or not name:
                    continue
                parts.append(
                    Part.tool_call(
                        tool_call_id=tool_use.get("toolUseId") if isinstance(tool_use.get("toolUseId"), str) else None,
                        name=name,
                        arguments=tool_use.get("input") if tool_use.get("input") is not None else {},
                    )
                )
                continue
            image = block.get("image")
            if isinstance(image, dict):
                fmt = image.get("format")
                source = image.get("source")
                data = source.get("bytes") if isinstance(source, dict) else None
                if isinstance(fmt, str) and isinstance(data, str) and data:
                    parts.append(Part(type="image", data=data, mime_type=f"image/{fmt}"))

        usage_obj = obj.get("usage")
        usage = None
        if isinstance(usage_obj, dict):
            usage = make_usage(usage_obj.get("inputTokens"), usage_obj.get("outputTokens"), usage_obj.get("totalTokens"))

        return ChatResponse(
            id=f"sdk_{uuid4().hex}",
            provider=self.provider_name,
            model=f"{self.provider_name}:{model_id}",
            message=Message(role="assistant", content=parts if parts else [Part.from_text("")]),
            usage=usage,
            finish_reason=_STOP_REASONS.get(str(obj.get("stopReason")), "other"),
        )


def model_vendor(model_id: str) -> str | None:
    ident = ModelIdentifier.parse(model_id)
    if ident.vendor:
        return ident.vendor
    base = ident.model or ident.raw
    if ident.kind == "custom" or "." not in base:
        return None
    return base.split(".", 1)[0]


def titan_embedding_body(text: str, dimensions: int | None) -> dict[str, Any]:
    body: dict[str, Any] = {"inputText": text}
    if dimensions is not None:
        body["dimensions"] = dimensions
    return body


def cohere_embedding_body(texts: list[str]) -> dict[str, Any]:
    return {"texts": list(texts), "input_type": "search_document"}


def _float_vector(value: Any, label: str) -> list[float]:
    if not isinstance(value, list) or not all(isinstance(x, (int, float)) for x in value):
        raise translation_error(f"{label} embeddings response missing vector")
    return [float(x) for x in value]


def converse_body(request: ChatRequest) -> dict[str, Any]:
    system: list[dict[str, Any]] = []
    messages: list[dict[str, Any]] = []
    for m in request.messages:
        if m.role == "system":
            for p in m.content:
                system.append({"text": p.require_text()})
            continue
        if m.role != "assistant" and any(p.type == "tool_call" for p in m.content):
            raise invalid_request_error("tool_call parts are only allowed in assistant messages")
        if m.role == "tool" and any(p.type != "tool_result" for p in m.content):
            raise invalid_request_error("tool messages may only contain tool_result parts")
        role = "assistant" if m.role == "assistant" else "user"
        messages.append({"role": role, "content": [_part_to_block(p) for p in m.content]})

    if not messages:
        raise invalid_request_error("chat request must contain at least one non-system message")

    body: dict[str, Any] = {"messages": messages}
    if system:
        body["system"] = system

    params = request.params
    inference: dict[str, Any] = {}
    if params.max_output_tokens is not None:
        inference["maxTokens"] = params.max_output_tokens
    if params.temperature is not None:
        inference["temperature"] = params.temperature
    if params.top_p is not None:
        inference["topP"] = params.top_p
    if params.stop is not None:
        inference["stopSequences"] = params.stop
    if inference:
        body["inferenceConfig"] = inference

    if request.tools:
        tools: list[dict[str, Any]] = []
        for t in request.tools:
            name, description, parameters = tool_declaration(t)
            spec: dict[str, Any] = {"name": name, "inputSchema": {"json": parameters}}
            if description:
                spec["description"] = description
            tools.append({"toolSpec": spec})
        tool_config: dict[str, Any] = {"tools": tools}
        if request.tool_choice is not None:
            choice = request.tool_choice.normalized()
            if choice.mode == "none":
                raise unsupported_operation_error("Bedrock Converse has no tool_choice 'none'")
            if choice.mode == "required":
                tool_config["toolChoice"] = {"any": {}}
            elif choice.mode == "tool":
                tool_config["toolChoice"] = {"tool": {"name": choice.name}}
            else:
                tool_config["toolChoice"] = {"auto": {}}
        body["toolConfig"] = tool_config
    elif request.tool_choice is not None and request.tool_choice.normalized().mode in {"required", "tool"}:
        raise invalid_request_error("tool_choice requires request.tools")
    return body


def _part_to_block(part: Part) -> dict[str, Any]:
    if part.type == "text":
        return {"text": part.require_text()}
    if part.type == "image":
        fmt = _IMAGE_FORMATS.get(part.mime_type or "")
        if fmt is None:
            raise unsupported_operation_error(f"Bedrock does not support image type: {part.mime_type}")
        return {"image": {"format": fmt, "source": {"bytes": part.data}}}
    if part.type == "tool_call":
        tool_call_id, name, arguments = require_tool_call_meta(part)
        if not tool_call_id:
            raise invalid_request_error("tool_call.meta.tool_call_id required for Bedrock toolUse")
        if not isinstance(arguments, dict):
            raise invalid_request_error("Bedrock tool_call.meta.arguments must be an object")
        return {"toolUse": {"toolUseId": tool_call_id, "name": name, "input": arguments}}
    if part.type == "tool_result":
        tool_call_id, _, result, is_error = require_tool_result_meta(part)
        if not tool_call_id:
            raise invalid_request_error("tool_result.meta.tool_call_id required for Bedrock toolResult")
        content = [{"text": result}] if isinstance(result, str) else [{"json": result}]
        block: dict[str, Any] = {"toolUseId": tool_call_id, "content": content}
        if is_error:
            block["status"] = "error"
        return {"toolResult": block}
    raise unsupported_operation_error(f"Bedrock does not support part type: {part.type}")
