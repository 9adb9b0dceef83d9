"""LangGraph node functions for the generation loop.

The loop alternates two nodes: ``model`` makes one round trip to the LLM with
the current history, ``tools`` executes whatever tool calls that round trip
produced. Routing functions decide when to stop.
"""

from __future__ import annotations

import asyncio
import json
import logging
import os
from typing import TYPE_CHECKING, Any

from langchain_anthropic import ChatAnthropic
from langchain_core.messages import (
    AIMessage,
    HumanMessage,
    SystemMessage,
    ToolMessage,
    message_chunk_to_message,
)
from typing_extensions import assert_never

# LangGraph resolves node and router type hints at graph build time
from vibechat.agents.state import StepState
from vibechat.schemas import OtherPart, ReportErrorsPart, TextPart, ToolPart
from vibechat.transform import render_error_report

if TYPE_CHECKING:
    from collections.abc import Callable, Sequence

    from langchain_core.messages import AIMessageChunk, BaseMessage
    from langchain_core.tools import BaseTool

    from vibechat.config import ModelConfig
    from vibechat.schemas import Message, Part

logger = logging.getLogger(__name__)


def content_blocks(content) -> list[dict]:
    """Normalize message content — Anthropic can return a list of blocks or a string."""
    if isinstance(content, str):
        return [{"type": "text", "text": content}] if content else []
    blocks = []
    for block in content:
        if isinstance(block, str):
            blocks.append({"type": "text", "text": block})
        elif isinstance(block, dict):
            blocks.append(block)
    return blocks


def _stringify(value: Any) -> str:
    if isinstance(value, str):
        return value
    return json.dumps(value, default=str)


# ---------------------------------------------------------------------------
# LLM factory
# ---------------------------------------------------------------------------


def get_llm(model: ModelConfig, thinking_budget: int | None = None) -> ChatAnthropic:
    """Create an Anthropic chat model, with extended thinking when budgeted."""
    api_key = os.environ.get("ANTHROPIC_API_KEY")
    if not api_key:
        raise RuntimeError("ANTHROPIC_API_KEY environment variable is not set")

    max_tokens = model.max_tokens
    extra: dict[str, Any] = {}
    if thinking_budget:
        # max_tokens must leave room for the answer on top of the thinking budget
        max_tokens += thinking_budget
        extra["thinking"] = {"type": "enabled", "budget_tokens": thinking_budget}

    return ChatAnthropic(
        model=model.provider_model, max_tokens=max_tokens, api_key=api_key, **extra
    )


# ---------------------------------------------------------------------------
# UI messages → LangChain messages
# ---------------------------------------------------------------------------


def to_langchain_messages(
    messages: Sequence[Message], system_prompt: str = ""
) -> list[BaseMessage]:
    """Convert UI messages to the history the model sees.

    System text from the conversation is folded into one leading system
    message. An assistant message is split at its ``step-start`` parts; each
    step becomes an ``AIMessage`` whose completed tool parts are tool calls,
    followed by the matching tool results.
    """
    system_texts = [system_prompt] if system_prompt else []
    converted: list[BaseMessage] = []

    for message in messages:
        match message.role:
            case "system":
                text, _, _ = _collect_parts(message.parts)
                if text:
                    system_texts.append(text)
            case "user":
                text, _, _ = _collect_parts(message.parts)
                if text:
                    converted.append(HumanMessage(content=text))
            case "assistant":
                for step in _split_steps(message.parts):
                    text, tool_calls, results = _collect_parts(step)
                    if text or tool_calls:
                        converted.append(AIMessage(content=text, tool_calls=tool_calls))
                        converted.extend(results)
            case _:
                assert_never(message.role)

    if system_texts:
        converted.insert(0, SystemMessage(content="\n\n".join(system_texts)))
    return converted


def _split_steps(parts: Sequence[Part]) -> list[list[Part]]:
    """Group an assistant message's parts into model steps."""
    steps: list[list[Part]] = [[]]
    for part in parts:
        if isinstance(part, OtherPart) and part.type == "step-start":
            if steps[-1]:
                steps.append([])
            continue
        steps[-1].append(part)
    return steps


def _collect_parts(parts: Sequence[Part]) -> tuple[str, list[dict], list[ToolMessage]]:
    texts: list[str] = []
    tool_calls: list[dict] = []
    results: list[ToolMessage] = []

    for part in parts:
        match part:
            case TextPart(text=text):
                if text:
                    texts.append(text)
            case ReportErrorsPart(data=data):
                texts.append(render_error_report(data))
            case ToolPart():
                call, result = _tool_exchange(part)
                if call is not None:
                    tool_calls.append(call)
                    results.append(result)
            case OtherPart():
                pass
            case _:
                assert_never(part)

    return "\n\n".join(texts), tool_calls, results


def _tool_exchange(part: ToolPart) -> tuple[dict | None, ToolMessage | None]:
    """Tool call + result for a finished tool part, or (None, None)."""
    if not part.tool_call_id:
        return None, None

    match part.state:
        case "output-available":
            result = ToolMessage(
                content=_stringify(part.output),
                tool_call_id=part.tool_call_id,
                name=part.name,
            )
        case "output-error":
            result = ToolMessage(
                content=part.error_text or "Tool execution failed",
                tool_call_id=part.tool_call_id,
                name=part.name,
                status="error",
            )
        case _:
            # still streaming or awaiting input — nothing the model can use
            return None, None

    call = {
        "name": part.name,
        "args": part.input if isinstance(part.input, dict) else {},
        "id": part.tool_call_id,
        "type": "tool_call",
    }
    return call, result


# ---------------------------------------------------------------------------
# Tool execution
# ---------------------------------------------------------------------------


async def _invoke_tool(tool_call: dict, tools_by_name: dict[str, BaseTool]) -> ToolMessage:
    name = tool_call["name"]
    call_id = tool_call.get("id") or ""

    tool = tools_by_name.get(name)
    if tool is None:
        logger.warning(f"Model called unknown tool '{name}'")
        return ToolMessage(
            content=f"Error: unknown tool '{name}'",
            tool_call_id=call_id,
            name=name,
            status="error",
        )

    try:
        result = await tool.ainvoke(tool_call["args"])
    except Exception as e:
        logger.error(f"Tool '{name}' failed: {e}", exc_info=True)
        return ToolMessage(
            content=f"Error: {e}", tool_call_id=call_id, name=name, status="error"
        )
    return ToolMessage(content=_stringify(result), tool_call_id=call_id, name=name)


async def execute_tool_calls(tool_calls: list[dict], tools: list[BaseTool]) -> list[ToolMessage]:
    """Run a step's tool calls concurrently; results keep the call order."""
    tools_by_name = {t.name: t for t in tools}
    results = await asyncio.gather(*(_invoke_tool(tc, tools_by_name) for tc in tool_calls))
    return list(results)


# ---------------------------------------------------------------------------
# Node factories
# ---------------------------------------------------------------------------


async def _drain(llm, history: list[BaseMessage]) -> tuple[AIMessage | None, Exception | None]:
    """Consume the model's stream and merge it into one message.

    A stream that fails part way returns what arrived before the failure
    (text and reasoning only, tool calls may be incomplete) with the error.
    A stream that fails before its first chunk returns ``(None, error)``.
    """
    aggregate: AIMessageChunk | None = None
    try:
        async for chunk in llm.astream(history):
            aggregate = chunk if aggregate is None else aggregate + chunk
    except Exception as e:
        if aggregate is None:
            return None, e
        partial = [
            block for block in content_blocks(aggregate.content)
            if block.get("type") in ("text", "thinking")
        ]
        return AIMessage(content=partial), e

    if aggregate is None:
        return AIMessage(content=""), None
    return message_chunk_to_message(aggregate), None


def make_model_node(llm) -> Callable:
    """Create the node that makes one model round trip per visit."""

    async def model_node(state: StepState) -> dict:
        step = state["steps_taken"] + 1
        logger.info(f"Generation step {step}")
        response, error = await _drain(llm, state["history"])
        if error is not None:
            logger.error(
                f"Error communicating with model at step {step}: {error}", exc_info=error
            )
            # output streamed before the failure is kept, the run stops here
            update: dict = {"steps_taken": step, "done": True}
            if response is not None and response.content:
                update["history"] = [response]
            return update

        return {
            "history": [response],
            "steps_taken": step,
            "done": not response.tool_calls,
        }

    return model_node


def make_tools_node(tools: list[BaseTool], step_budget: int) -> Callable:
    """Create the node that executes the last response's tool calls."""

    async def tools_node(state: StepState) -> dict:
        last = state["history"][-1]
        results = await execute_tool_calls(last.tool_calls, tools)

        exhausted = state["steps_taken"] >= step_budget
        if exhausted:
            logger.warning(f"Step budget of {step_budget} reached — stopping generation")
        return {"history": results, "done": exhausted}

    return tools_node


# ---------------------------------------------------------------------------
# Routing functions
# ---------------------------------------------------------------------------


def route_after_model(state: StepState) -> str:
    return "__done__" if state["done"] else "tools"


def route_after_tools(state: StepState) -> str:
    return "__done__" if state["done"] else "model"
