from __future__ import annotations

import base64
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Literal

from ._internal.errors import invalid_request_error

Role = Literal["system", "user", "assistant", "tool"]
PartType = Literal["text", "image", "tool_call", "tool_result"]
ToolChoiceMode = Literal["none", "auto", "required", "tool"]
FinishReason = Literal["stop", "length", "tool_calls", "content_filter", "other"]


@dataclass(frozen=True, slots=True)
class Part:
    type: PartType
    text: str | None = None
    data: str | None = None
    mime_type: str | None = None
    meta: dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if not isinstance(self.meta, dict):
            raise ValueError("Part.meta must be an object")

        if self.type == "text":
            if not isinstance(self.text, str):
                raise ValueError("text Part requires text")
            if self.data is not None:
                raise ValueError("text Part cannot have data")
            return

        if self.type == "image":
            if not isinstance(self.data, str) or not self.data:
                raise ValueError("image Part requires base64 data")
            if not isinstance(self.mime_type, str) or not self.mime_type.startswith("image/"):
                raise ValueError("image Part mime_type must start with 'image/'")
            if self.text is not None:
                raise ValueError("image Part cannot have text")
            return

        if self.type in {"tool_call", "tool_result"}:
            if self.text is not None or self.data is not None:
                raise ValueError(f"{self.type} Part only carries meta")
            if not isinstance(self.meta.get("name"), str) or not self.meta["name"].strip():
                raise ValueError(f"{self.type} Part requires meta.name")
            return

        raise ValueError(f"unknown Part.type: {self.type}")

    @staticmethod
    def from_text(text: str) -> "Part":
        return Part(type="text", text=text)

    @staticmethod
    def image(data: bytes | str, mime_type: str | None = None) -> "Part":
        """
        Build an inline image part.

        `data` is raw bytes or an already base64-encoded string. The mime type is
        sniffed from raw bytes when not given.
        """
        if isinstance(data, (bytes, bytearray)):
            raw = bytes(data)
            mime_type = mime_type or sniff_image_mime_type(raw)
            encoded = bytes_to_base64(raw)
        else:
            encoded = data
        if mime_type is None:
            raise ValueError("image Part requires mime_type")
        return Part(type="image", data=encoded, mime_type=mime_type)

    @staticmethod
    def image_file(path: str | Path) -> "Part":
        p = Path(path)
        return Part.image(p.read_bytes(), detect_mime_type(str(p)))

    @staticmethod
    def tool_call(*, name: str, arguments: Any, tool_call_id: str | None = None) -> "Part":
        meta: dict[str, Any] = {"name": name, "arguments": arguments}
        if tool_call_id is not None:
            meta["tool_call_id"] = tool_call_id
        return Part(type="tool_call", meta=meta)

    @staticmethod
    def tool_result(
        *,
        name: str,
        result: Any,
        tool_call_id: str | None = None,
        is_error: bool | None = None,
    ) -> "Part":
        meta: dict[str, Any] = {"name": name, "result": result}
        if tool_call_id is not None:
            meta["tool_call_id"] = tool_call_id
        if is_error is not None:
            meta["is_error"] = bool(is_error)
        return Part(type="tool_result", meta=meta)

    def require_text(self) -> str:
        if self.type != "text" or self.text is None:
            raise invalid_request_error("Part is not text")
        return self.text


@dataclass(frozen=True, slots=True)
class Message:
    role: Role
    content: list[Part]

    @staticmethod
    def system(text: str) -> "Message":
        return Message(role="system", content=[Part.from_text(text)])

    @staticmethod
    def user(text: str, *images: Part) -> "Message":
        return Message(role="user", content=[Part.from_text(text), *images])

    @staticmethod
    def assistant(text: str) -> "Message":
        return Message(role="assistant", content=[Part.from_text(text)])

    def text(self) -> str:
        return "".join(p.text for p in self.content if p.type == "text" and p.text is not None)

    def tool_calls(self) -> list[Part]:
        return [p for p in self.content if p.type == "tool_call"]

    def has_images(self) -> bool:
        return any(p.type == "image" for p in self.content)


@dataclass(frozen=True, slots=True)
class Tool:
    """
    Minimal function tool declaration (provider-agnostic).

    - `parameters` is a JSON Schema object describing the function arguments,
      or a Python type accepted by pydantic `TypeAdapter` (normalized by the client).
    """

    name: str
    description: str | None = None
    parameters: Any | None = None


@dataclass(frozen=True, slots=True)
class ToolChoice:
    mode: ToolChoiceMode = "auto"
    name: str | None = None

    def normalized(self) -> "ToolChoice":
        mode = self.mode.strip().lower()
        if mode not in {"none", "auto", "required", "tool"}:
            raise invalid_request_error(f"unknown tool_choice.mode: {self.mode}")
        name = self.name.strip() if isinstance(self.name, str) else None
        if mode == "tool" and not name:
            raise invalid_request_error("tool_choice.name required when mode='tool'")
        if mode != "tool" and name is not None:
            raise invalid_request_error("tool_choice.name only allowed when mode='tool'")
        return ToolChoice(mode=mode, name=name)


@dataclass(frozen=True, slots=True)
class GenerateParams:
    temperature: float | None = None
    top_p: float | None = None
    max_output_tokens: int | None = None
    stop: list[str] | None = None
    timeout_ms: int | None = None


@dataclass(frozen=True, slots=True)
class CompletionRequest:
    prompt: str
    system: str | None = None
    params: GenerateParams = field(default_factory=GenerateParams)

    def as_chat(self) -> "ChatRequest":
        """The same prompt as a single user turn."""
        messages: list[Message] = []
        if self.system:
            messages.append(Message.system(self.system))
        messages.append(Message.user(self.prompt))
        return ChatRequest(messages=messages, params=self.params)


@dataclass(frozen=True, slots=True)
class ChatRequest:
    messages: list[Message]
    params: GenerateParams = field(default_factory=GenerateParams)
    tools: list[Tool] | None = None
    tool_choice: ToolChoice | None = None

    def has_images(self) -> bool:
        return any(m.has_images() for m in self.messages)


@dataclass(frozen=True, slots=True)
class EmbeddingRequest:
    inputs: list[str]
    dimensions: int | None = None
    timeout_ms: int | None = None


@dataclass(frozen=True, slots=True)
class Usage:
    input_tokens: int | None = None
    output_tokens: int | None = None
    total_tokens: int | None = None


@dataclass(frozen=True, slots=True)
class CompletionResponse:
    id: str
    provider: str
    model: str
    text: str
    usage: Usage | None = None
    finish_reason: FinishReason | None = None


@dataclass(frozen=True, slots=True)
class ChatResponse:
    id: str
    provider: str
    model: str
    message: Message
    usage: Usage | None = None
    finish_reason: FinishReason | None = None

    def text(self) -> str:
        return self.message.text()


@dataclass(frozen=True, slots=True)
class EmbeddingResponse:
    id: str
    provider: str
    model: str
    embeddings: list[list[float]]
    usage: Usage | None = None


def make_usage(input_tokens: Any, output_tokens: Any, total_tokens: Any = None) -> Usage:
    i = input_tokens if isinstance(input_tokens, int) else None
    o = output_tokens if isinstance(output_tokens, int) else None
    t = total_tokens if isinstance(total_tokens, int) else None
    if t is None and i is not None and o is not None:
        t = i + o
    return Usage(input_tokens=i, output_tokens=o, total_tokens=t)


def detect_mime_type(path: str) -> str | None:
    suffix = Path(path).suffix.lower()
    if suffix in {".png"}:
        return "image/png"
    if suffix in {".jpg", ".jpeg"}:
        return "image/jpeg"
    if suffix in {".webp"}:
        return "image/webp"
    if suffix in {".gif"}:
        return "image/gif"
    return None


def bytes_to_base64(data: bytes) -> str:
    return base64.b64encode(data).decode("ascii")


def sniff_image_mime_type(data: bytes) -> str | None:
    if len(data) >= 8 and data.startswith(b"\x89PNG\r\n\x1a\n"):
        return "image/png"
    if len(data) >= 3 and data.startswith(b"\xff\xd8\xff"):
        return "image/jpeg"
    if len(data) >= 12 and data.startswith(b"RIFF") and data[8:12] == b"WEBP":
        return "image/webp"
    if len(data) >= 6 and data[:6] in {b"GIF87a", b"GIF89a"}:
        return "image/gif"
    return None
