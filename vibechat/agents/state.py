"""LangGraph state for one generation run."""

from typing import Annotated

from langchain_core.messages import BaseMessage
from langgraph.graph.message import add_messages
from typing_extensions import TypedDict


class StepState(TypedDict):
    """State passed between the model and tools nodes.

    history      — conversation sent to the model; add_messages reducer appends
                   model responses and tool results rather than overwriting.
    steps_taken  — model round trips made so far.
    done         — set when the model stops calling tools, the step budget is
                   spent, or the model call failed.
    """

    history: Annotated[list[BaseMessage], add_messages]
    steps_taken: int
    done: bool
