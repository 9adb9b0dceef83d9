"""tests/utils.py

Stand-ins for the chat model and tools, plus stream assertions.
"""

from __future__ import annotations

from langchain_core.messages import AIMessageChunk
from langchain_core.tools import tool

from vibechat.schemas import (
    ReasoningDelta,
    ReasoningEnd,
    ReasoningStart,
    TextDelta,
    TextEnd,
    TextStart,
)

# ---------------------------------------------------------------------------
# Chat model stand-in
# ---------------------------------------------------------------------------


def text_chunk(text: str) -> AIMessageChunk:
    return AIMessageChunk(content=text)


def tool_call_chunk(name: str, args: str, call_id: str, text: str = "") -> AIMessageChunk:
    return AIMessageChunk(
        content=text,
        tool_call_chunks=[{"name": name, "args": args, "id": call_id, "index": 0}],
    )


class ScriptedChatModel:
    """Replays a script of streamed responses, one per model round trip.

    Each script entry is a list of chunks, or an exception to raise. An
    exception inside a chunk list is raised after the chunks before it have
    been streamed. The last entry repeats once the script runs out.
    """

    def __init__(self, script: list):
        self.script = script
        self.calls: list[list] = []
        self.bound_tools: list | None = None

    def bind_tools(self, tools):
        self.bound_tools = list(tools)
        return self

    async def astream(self, messages):
        self.calls.append(list(messages))
        entry = self.script[min(len(self.calls), len(self.script)) - 1]
        if isinstance(entry, Exception):
            raise entry
        for chunk in entry:
            if isinstance(chunk, Exception):
                raise chunk
            yield chunk


def factory_for(llm: ScriptedChatModel):
    """An llm_factory that always returns ``llm`` and records its arguments."""
    seen: list[tuple] = []

    def llm_factory(model, thinking_budget=None):
        seen.append((model, thinking_budget))
        return llm

    llm_factory.seen = seen
    return llm_factory


@tool
def lookup(query: str) -> str:
    """Look up a value by query."""
    return f"result for {query}"


@tool
def explode(query: str) -> str:
    """Always fails."""
    raise RuntimeError("tool blew up")


# ---------------------------------------------------------------------------
# Stream helpers
# ---------------------------------------------------------------------------


async def collect(events) -> list:
    return [event async for event in events]


def bracket_violations(events: list) -> list[str]:
    """Check every id-scoped start/delta/end bracket is well formed."""
    opens = {ReasoningStart: "reasoning", TextStart: "text"}
    closes = {ReasoningEnd: "reasoning", TextEnd: "text"}
    deltas = {ReasoningDelta: "reasoning", TextDelta: "text"}

    problems = []
    open_ids: dict[str, str] = {}
    for i, event in enumerate(events):
        kind = type(event)
        if kind in opens:
            if event.id in open_ids:
                problems.append(f"#{i}: {event.id} opened twice")
            open_ids[event.id] = opens[kind]
        elif kind in closes:
            if open_ids.pop(event.id, None) != closes[kind]:
                problems.append(f"#{i}: {event.id} closed without matching start")
        elif kind in deltas:
            if open_ids.get(event.id) != deltas[kind]:
                problems.append(f"#{i}: delta for {event.id} outside its bracket")
    problems.extend(f"{i} never closed" for i in open_ids)
    return problems
