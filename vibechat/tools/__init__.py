"""Tool registry — the LangChain tools the generation loop may offer the model.

The service ships no tools of its own. A deployment lists its tool modules
under ``tool_modules`` in ``config.yaml``; importing a module runs its
``@register`` decorators. The ``tools`` list then picks, by name, which
registered tools are bound to the model for every request.
"""

from __future__ import annotations

import importlib
import logging
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from langchain_core.tools import BaseTool

logger = logging.getLogger(__name__)

_registry: dict[str, BaseTool] = {}


def register(tool: BaseTool) -> BaseTool:
    """Make ``tool`` selectable by its ``.name``. Usable as a decorator::

        @register
        @tool
        def read_file(path: str) -> str:
            ...

    Registering a second tool under the same name replaces the first.
    """
    if tool.name in _registry and _registry[tool.name] is not tool:
        logger.warning(f"Tool '{tool.name}' registered twice, keeping the latest")
    _registry[tool.name] = tool
    return tool


def unregister(name: str) -> None:
    _registry.pop(name, None)


def list_tools() -> list[str]:
    """Registered tool names, in registration order."""
    return list(_registry)


def resolve_tools(names: list[str]) -> list[BaseTool]:
    """Map configured names to tools, keeping the configured order.

    Raises ``ValueError`` naming every unregistered tool.
    """
    unknown = [name for name in names if name not in _registry]
    if unknown:
        raise ValueError(f"Unknown tool(s): {unknown}. Registered: {list_tools()}")
    return [_registry[name] for name in names]


def load_tool_modules(modules: list[str]) -> None:
    """Import each dotted module path so its tools register themselves."""
    for module in modules:
        importlib.import_module(module)
        logger.info(f"Loaded tool module {module} (registered: {len(_registry)})")
