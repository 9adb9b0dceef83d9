"""Graph builder — wires the model and tools nodes into a LangGraph StateGraph.

START → [model] → conditional (route_after_model)
  → "tools"    → [tools] → conditional (route_after_tools)
                             → "model"    (next step)
                             → "__done__" → END   (step budget spent)
  → "__done__" → END   (no tool calls, or the model call failed)
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from langgraph.graph import END, StateGraph

from vibechat.agents.nodes import (
    make_model_node,
    make_tools_node,
    route_after_model,
    route_after_tools,
)
from vibechat.agents.state import StepState

if TYPE_CHECKING:
    from langchain_core.tools import BaseTool
    from langgraph.graph.state import CompiledStateGraph

logger = logging.getLogger(__name__)

DEFAULT_STEP_BUDGET = 20


def recursion_limit(step_budget: int) -> int:
    """LangGraph superstep limit that never cuts a run short of its budget."""
    # each step visits model and tools once, plus headroom for entry/exit
    return 2 * step_budget + 5


def build_generation_graph(
    llm, tools: list[BaseTool], step_budget: int = DEFAULT_STEP_BUDGET
) -> CompiledStateGraph:
    """Build and compile the bounded tool loop for one model binding."""
    graph = StateGraph(StepState)

    graph.add_node("model", make_model_node(llm))
    graph.add_node("tools", make_tools_node(tools, step_budget))
    graph.set_entry_point("model")

    graph.add_conditional_edges(
        "model", route_after_model, {"tools": "tools", "__done__": END}
    )
    graph.add_conditional_edges(
        "tools", route_after_tools, {"model": "model", "__done__": END}
    )

    logger.debug(
        f"Built generation graph: tools={[t.name for t in tools]}, budget={step_budget}"
    )
    return graph.compile()
