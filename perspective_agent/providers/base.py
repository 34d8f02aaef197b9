"""Abstract base for all text-generation backends."""

import json
import logging
from abc import ABC, abstractmethod
from collections.abc import AsyncIterator
from typing import Any

from perspective_agent.models import Completion, CompletionOptions, ConversationTurn
from perspective_agent.tools.registry import ToolRegistry

logger = logging.getLogger(__name__)

# Upper bound on model -> tool -> model round trips within one generate() call
MAX_TOOL_ROUNDS = 5


class ProviderError(Exception):
    """Raised when a provider call fails."""

    def __init__(self, provider_name: str, message: str) -> None:
        self.provider_name = provider_name
        super().__init__(f"[{provider_name}] {message}")


class EmptyResponseError(ProviderError):
    """The backend answered, but with no usable text."""


def parse_tool_arguments(raw: str | dict | None) -> dict[str, Any]:
    """Decode tool-call arguments; malformed JSON yields an empty dict."""
    if not raw:
        return {}
    if isinstance(raw, dict):
        return dict(raw)
    try:
        parsed = json.loads(raw)
    except json.JSONDecodeError:
        logger.warning("Could not decode tool arguments: %r", raw[:200])
        return {}
    return parsed if isinstance(parsed, dict) else {}


class AIProvider(ABC):
    """Abstract base for all text-generation backends.

    Providers own the tool-calling loop: when `options.tools_enabled` is set
    and a registry is attached, tool calls requested by the model are executed
    and fed back until the model produces text. Executed calls are reported in
    `Completion.metadata["tool_calls"]`.
    """

    def __init__(self, tools: ToolRegistry | None = None) -> None:
        self._tools = tools

    @abstractmethod
    def name(self) -> str:
        """Return the short provider name (e.g. 'openai', 'claude')."""
        ...

    @abstractmethod
    def model_string(self) -> str:
        """Return the actual model identifier string."""
        ...

    @abstractmethod
    async def generate(
        self,
        messages: list[ConversationTurn],
        options: CompletionOptions,
    ) -> Completion:
        """Generate one completion for an ordered list of turns.

        Raises:
            ProviderError: On API failure, timeout, or invalid response.
            EmptyResponseError: When the model returns no text.
        """
        ...

    @abstractmethod
    def stream(
        self,
        messages: list[ConversationTurn],
        options: CompletionOptions,
    ) -> AsyncIterator[str]:
        """Yield text fragments in arrival order. Finite, single use.

        Implementations are async generators; callers aclose() them to
        release the backend stream when they stop early.

        Raises:
            ProviderError: On API failure, before or during the stream.
        """
        ...

    def _tools_for(self, options: CompletionOptions) -> ToolRegistry | None:
        if not options.tools_enabled or self._tools is None or not self._tools.names():
            return None
        return self._tools

    async def _run_tool(self, name: str, arguments: dict[str, Any], options: CompletionOptions) -> str:
        if self._tools is None:
            return f"Error: no tools are available (requested '{name}')"
        return await self._tools.invoke(name, arguments, tool_filter=options.tool_filter)
