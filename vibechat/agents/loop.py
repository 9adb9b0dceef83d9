"""Generation loop — runs the tool graph and turns its updates into stream events.

Each model step is drained completely inside the ``model`` node before the
graph reports it, so the events for a step are only produced once the step's
text, reasoning and tool calls are final. A failure while talking to the
model ends the run early; whatever was already emitted stands, and the run
always finishes with a metadata event naming the model.
"""

from __future__ import annotations

import itertools
import logging
import uuid
from collections.abc import AsyncGenerator
from typing import TYPE_CHECKING

from langchain_core.messages import AIMessage, ToolMessage

from vibechat.agents.builder import (
    DEFAULT_STEP_BUDGET,
    build_generation_graph,
    recursion_limit,
)
from vibechat.agents.nodes import content_blocks
from vibechat.schemas import (
    MessageMetadata,
    ReasoningDelta,
    ReasoningEnd,
    ReasoningStart,
    TextDelta,
    TextEnd,
    TextStart,
    ToolInputAvailable,
    ToolOutputAvailable,
    ToolOutputError,
)

if TYPE_CHECKING:
    from collections.abc import Callable

    from langchain_core.messages import BaseMessage
    from langchain_core.tools import BaseTool

    from vibechat.config import ModelConfig
    from vibechat.schemas import StreamEvent

logger = logging.getLogger(__name__)


class _EventIds:
    """Hands out block ids unique within one run (``msg-<run>-<n>``)."""

    def __init__(self):
        self._prefix = f"msg-{uuid.uuid4().hex}"
        self._counter = itertools.count()

    def next(self) -> str:
        return f"{self._prefix}-{next(self._counter)}"


def message_events(message: BaseMessage, ids: _EventIds) -> list[StreamEvent]:
    """Typed events for one message the graph appended to the history."""
    match message:
        case AIMessage():
            events: list[StreamEvent] = []
            for block in content_blocks(message.content):
                match block.get("type"):
                    case "thinking" if block.get("thinking"):
                        block_id = ids.next()
                        events += [
                            ReasoningStart(id=block_id),
                            ReasoningDelta(id=block_id, delta=block["thinking"]),
                            ReasoningEnd(id=block_id),
                        ]
                    case "text" if block.get("text"):
                        block_id = ids.next()
                        events += [
                            TextStart(id=block_id),
                            TextDelta(id=block_id, delta=block["text"]),
                            TextEnd(id=block_id),
                        ]
                    case _:
                        # tool_use blocks surface through message.tool_calls
                        pass
            for tc in message.tool_calls:
                events.append(
                    ToolInputAvailable(
                        tool_call_id=tc.get("id") or "",
                        tool_name=tc["name"],
                        input=tc["args"],
                    )
                )
            return events
        case ToolMessage(status="error"):
            return [
                ToolOutputError(
                    tool_call_id=message.tool_call_id,
                    error_text=str(message.content),
                )
            ]
        case ToolMessage():
            return [
                ToolOutputAvailable(
                    tool_call_id=message.tool_call_id, output=message.content
                )
            ]
        case _:
            return []


async def run_generation(
    history: list[BaseMessage],
    model: ModelConfig,
    *,
    llm_factory: Callable,
    tools: list[BaseTool] | None = None,
    step_budget: int = DEFAULT_STEP_BUDGET,
    thinking_budget: int | None = None,
) -> AsyncGenerator[StreamEvent, None]:
    """Run the bounded tool loop and yield its events in emission order.

    ``llm_factory(model, thinking_budget)`` returns a LangChain chat model.
    Never raises: failures are logged and the stream ends early.
    """
    tools = list(tools or [])
    ids = _EventIds()
    logger.info(
        f"Starting generation: model={model.id}, tools={len(tools)}, budget={step_budget}"
    )

    try:
        llm = llm_factory(model, thinking_budget)
        if tools:
            llm = llm.bind_tools(tools)
        graph = build_generation_graph(llm, tools, step_budget)

        initial_state = {"history": history, "steps_taken": 0, "done": False}
        async for update in graph.astream(
            initial_state,
            config={"recursion_limit": recursion_limit(step_budget)},
            stream_mode="updates",
        ):
            for state_update in update.values():
                if not state_update:
                    continue
                for message in state_update.get("history", []):
                    for event in message_events(message, ids):
                        yield event
    except Exception as e:
        logger.error(f"Error communicating with AI: {e}", exc_info=True)

    yield MessageMetadata(message_metadata={"model": model.name})
