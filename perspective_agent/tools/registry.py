"""Tool registry: schemas for function calling, logged invocation that never raises."""

import inspect
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Any

logger = logging.getLogger(__name__)

ToolFilter = Callable[[str], bool]


@dataclass
class Tool:
    name: str
    description: str
    handler: Callable[..., str | Awaitable[str]]
    parameters: dict[str, Any] = field(
        default_factory=lambda: {"type": "object", "properties": {}, "required": []}
    )


class ToolRegistry:
    """Named tools exposed to the model.

    Tools report failure as an "Error: ..." string rather than raising, so a
    broken tool shows up in generated text instead of aborting a request.
    """

    def __init__(self) -> None:
        self._tools: dict[str, Tool] = {}

    def register(self, tool: Tool) -> None:
        if tool.name in self._tools:
            raise ValueError(f"Tool already registered: {tool.name}")
        self._tools[tool.name] = tool
        logger.debug("Registered tool: %s", tool.name)

    def names(self) -> list[str]:
        return list(self._tools)

    def select(self, tool_filter: ToolFilter | None = None) -> list[Tool]:
        return [t for t in self._tools.values() if tool_filter is None or tool_filter(t.name)]

    def openai_schemas(self, tool_filter: ToolFilter | None = None) -> list[dict[str, Any]]:
        """Tool definitions in OpenAI function calling format."""
        return [
            {
                "type": "function",
                "function": {
                    "name": t.name,
                    "description": t.description,
                    "parameters": t.parameters,
                },
            }
            for t in self.select(tool_filter)
        ]

    def anthropic_schemas(self, tool_filter: ToolFilter | None = None) -> list[dict[str, Any]]:
        return [
            {"name": t.name, "description": t.description, "input_schema": t.parameters}
            for t in self.select(tool_filter)
        ]

    async def invoke(
        self,
        name: str,
        arguments: dict[str, Any],
        tool_filter: ToolFilter | None = None,
    ) -> str:
        """Run a tool and return its textual result, or an error string."""
        logger.info("Invoking tool %s with %s", name, arguments)
        tool = self._tools.get(name)
        if tool is None or (tool_filter is not None and not tool_filter(name)):
            logger.warning("Tool %s is not available", name)
            return f"Error: unknown tool '{name}'"
        try:
            result = tool.handler(**arguments)
            if inspect.isawaitable(result):
                result = await result
        except TypeError as exc:
            logger.warning("Tool %s rejected arguments %s: %s", name, arguments, exc)
            return f"Error: invalid arguments for '{name}': {exc}"
        except Exception as exc:
            logger.warning("Tool %s failed: %s", name, exc)
            return f"Error: tool '{name}' failed: {exc}"
        text = str(result)
        logger.info("Tool %s returned: %s", name, text[:200])
        return text
