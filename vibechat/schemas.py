"""Request/stream models — the contract between the chat UI and the engine.

Inbound: a conversation of UI messages, each made of typed parts.
Outbound: a stream of typed events, serialized one per SSE ``data:`` line.
"""

from __future__ import annotations

from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Discriminator, Field, Tag

# ---------------------------------------------------------------------------
# Message parts
# ---------------------------------------------------------------------------


class TextPart(BaseModel):
    model_config = ConfigDict(frozen=True)

    type: Literal["text"] = "text"
    text: str


class ReportErrorsData(BaseModel):
    model_config = ConfigDict(frozen=True)

    summary: str
    paths: list[str] | None = None


class ReportErrorsPart(BaseModel):
    """Diagnostic report the UI attaches when generated code fails to build."""

    model_config = ConfigDict(frozen=True)

    type: Literal["data-report-errors"] = "data-report-errors"
    id: str | None = None
    data: ReportErrorsData


class ToolPart(BaseModel):
    """A tool invocation recorded in an earlier assistant turn.

    ``type`` is ``tool-<name>`` (or ``dynamic-tool`` with ``toolName`` set).
    Unknown fields are kept so the part round-trips unchanged.
    """

    model_config = ConfigDict(frozen=True, extra="allow", populate_by_name=True)

    type: str
    tool_call_id: str | None = Field(default=None, alias="toolCallId")
    tool_name: str | None = Field(default=None, alias="toolName")
    state: str | None = None
    input: Any = None
    output: Any = None
    error_text: str | None = Field(default=None, alias="errorText")

    @property
    def name(self) -> str:
        return self.tool_name or self.type.removeprefix("tool-")


class OtherPart(BaseModel):
    """Any other part (step markers, reasoning, custom data parts)."""

    model_config = ConfigDict(frozen=True, extra="allow")

    type: str


def _part_kind(value: Any) -> str:
    kind = value.get("type") if isinstance(value, dict) else getattr(value, "type", None)
    if kind == "text":
        return "text"
    if kind == "data-report-errors":
        return "report-errors"
    if isinstance(kind, str) and (kind.startswith("tool-") or kind == "dynamic-tool"):
        return "tool"
    return "other"


Part = Annotated[
    Union[
        Annotated[TextPart, Tag("text")],
        Annotated[ReportErrorsPart, Tag("report-errors")],
        Annotated[ToolPart, Tag("tool")],
        Annotated[OtherPart, Tag("other")],
    ],
    Discriminator(_part_kind),
]


class Message(BaseModel):
    """One UI message. ``id`` is assigned by the client."""

    model_config = ConfigDict(frozen=True)

    id: str | None = None
    role: Literal["user", "assistant", "system"]
    parts: list[Part] = Field(default_factory=list)


class ChatRequest(BaseModel):
    """Incoming body for POST /api/chat."""

    model_config = ConfigDict(populate_by_name=True, protected_namespaces=())

    messages: list[Message]
    model_id: str | None = Field(default=None, alias="modelId")
    reasoning_effort: Literal["low", "medium"] | None = Field(
        default=None, alias="reasoningEffort"
    )


# ---------------------------------------------------------------------------
# Stream events
# ---------------------------------------------------------------------------


class _Event(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)


class ReasoningStart(_Event):
    type: Literal["reasoning-start"] = "reasoning-start"
    id: str


class ReasoningDelta(_Event):
    type: Literal["reasoning-delta"] = "reasoning-delta"
    id: str
    delta: str


class ReasoningEnd(_Event):
    type: Literal["reasoning-end"] = "reasoning-end"
    id: str


class TextStart(_Event):
    type: Literal["text-start"] = "text-start"
    id: str


class TextDelta(_Event):
    type: Literal["text-delta"] = "text-delta"
    id: str
    delta: str


class TextEnd(_Event):
    type: Literal["text-end"] = "text-end"
    id: str


class ToolInputAvailable(_Event):
    type: Literal["tool-input-available"] = "tool-input-available"
    tool_call_id: str = Field(alias="toolCallId")
    tool_name: str = Field(alias="toolName")
    input: Any = None


class ToolOutputAvailable(_Event):
    type: Literal["tool-output-available"] = "tool-output-available"
    tool_call_id: str = Field(alias="toolCallId")
    output: Any = None


class ToolOutputError(_Event):
    type: Literal["tool-output-error"] = "tool-output-error"
    tool_call_id: str = Field(alias="toolCallId")
    error_text: str = Field(alias="errorText")


class MessageMetadata(_Event):
    """Trailing event naming the model that produced the response."""

    type: Literal["message-metadata"] = "message-metadata"
    message_metadata: dict[str, Any] = Field(alias="messageMetadata")

    @property
    def model_name(self) -> str | None:
        return self.message_metadata.get("model")


StreamEvent = Annotated[
    Union[
        ReasoningStart,
        ReasoningDelta,
        ReasoningEnd,
        TextStart,
        TextDelta,
        TextEnd,
        ToolInputAvailable,
        ToolOutputAvailable,
        ToolOutputError,
        MessageMetadata,
    ],
    Field(discriminator="type"),
]


def to_sse(event: _Event) -> str:
    """Frame one event as a Server-Sent Events ``data:`` line."""
    return f"data: {event.model_dump_json(by_alias=True, exclude_none=True)}\n\n"
