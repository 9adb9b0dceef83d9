"""Runtime — bridges a chat request to moderation and generation.

Per request: run the moderation gate, then either write the canned refusal or
normalize the messages and run the generation loop. Everything is written to
one event sink that the HTTP layer drains as SSE.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import uuid
from collections.abc import AsyncGenerator
from typing import TYPE_CHECKING

from vibechat.agents import nodes
from vibechat.agents.builder import DEFAULT_STEP_BUDGET
from vibechat.agents.loop import run_generation
from vibechat.agents.nodes import to_langchain_messages
from vibechat.config import ReasoningConfig
from vibechat.moderation import ModerationGate
from vibechat.schemas import TextDelta, TextEnd, TextStart
from vibechat.sink import EventSink
from vibechat.tools import resolve_tools
from vibechat.transform import transform_messages

if TYPE_CHECKING:
    from collections.abc import Callable, Sequence

    from langchain_core.tools import BaseTool

    from vibechat.config import AppConfig, ModelConfig
    from vibechat.schemas import Message, StreamEvent
    from vibechat.sink import EventWriter

logger = logging.getLogger(__name__)

REFUSAL_MESSAGE = (
    "I cannot assist with this request, please contact support "
    "if you believe this is an error."
)


async def write_refusal(writer: EventWriter) -> None:
    """Write the canned refusal as one text bracket."""
    refusal_id = f"refusal-{uuid.uuid4()}"
    await writer.write(TextStart(id=refusal_id))
    await writer.write(TextDelta(id=refusal_id, delta=REFUSAL_MESSAGE))
    await writer.write(TextEnd(id=refusal_id))


class ChatOrchestrator:
    """Runs one chat request against an event writer.

    ``llm_factory(model, thinking_budget)`` builds the chat model; it defaults
    to the Anthropic factory in ``vibechat.agents.nodes``.
    """

    def __init__(
        self,
        gate: ModerationGate,
        *,
        system_prompt: str = "",
        tools: list[BaseTool] | None = None,
        step_budget: int = DEFAULT_STEP_BUDGET,
        reasoning: ReasoningConfig | None = None,
        llm_factory: Callable | None = None,
    ):
        self.gate = gate
        self.system_prompt = system_prompt
        self.tools = list(tools or [])
        self.step_budget = step_budget
        self.reasoning = reasoning or ReasoningConfig()
        self._llm_factory = llm_factory

    @classmethod
    def from_config(
        cls, config: AppConfig, llm_factory: Callable | None = None
    ) -> ChatOrchestrator:
        return cls(
            ModerationGate(config.moderation),
            system_prompt=config.system_prompt,
            tools=resolve_tools(config.tools),
            step_budget=config.step_budget,
            reasoning=config.reasoning,
            llm_factory=llm_factory,
        )

    @property
    def llm_factory(self) -> Callable:
        return self._llm_factory or nodes.get_llm

    async def run(
        self,
        messages: Sequence[Message],
        model: ModelConfig,
        writer: EventWriter,
        reasoning_effort: str | None = None,
    ) -> None:
        decision = await self.gate.check(messages, writer)
        if decision.violated:
            await write_refusal(writer)
            return

        history = to_langchain_messages(transform_messages(messages), self.system_prompt)
        async for event in run_generation(
            history,
            model,
            llm_factory=self.llm_factory,
            tools=self.tools,
            step_budget=self.step_budget,
            thinking_budget=self.reasoning.budget_for(reasoning_effort),
        ):
            await writer.write(event)


async def stream_chat(
    orchestrator: ChatOrchestrator,
    messages: Sequence[Message],
    model: ModelConfig,
    *,
    reasoning_effort: str | None = None,
    maxsize: int = 64,
) -> AsyncGenerator[StreamEvent, None]:
    """Run the orchestrator in a task and yield its events as they arrive.

    The sink is always closed when the producer finishes. If the consumer
    stops early the producer task is cancelled and awaited before returning.
    """
    sink = EventSink(maxsize=maxsize)

    async def produce() -> None:
        try:
            await orchestrator.run(messages, model, sink.writer(), reasoning_effort)
        except Exception as e:
            logger.error(f"Chat run failed: {e}", exc_info=True)
        finally:
            sink.close()

    task = asyncio.create_task(produce())
    try:
        async for event in sink:
            yield event
    finally:
        if not task.done():
            task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task
