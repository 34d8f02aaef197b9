"""One perspective's reasoning call: scoped prompt in, PerspectiveResult out."""

import logging
from typing import Any

from config.config_loader import GenerationProfiles, PromptsConfig
from perspective_agent.history import DEFAULT_HISTORY_WINDOW, recent_turns
from perspective_agent.models import (
    ROLE_SYSTEM,
    ROLE_USER,
    ConversationTurn,
    Perspective,
    PerspectiveResult,
    ToolCall,
)
from perspective_agent.providers.base import AIProvider

logger = logging.getLogger(__name__)

ERROR_MARKER = "[perspective unavailable]"


def describe_tool_calls(metadata: dict[str, Any]) -> str:
    """Render metadata["tool_calls"] as `name(k=v, ...)` entries; "" when absent."""
    calls = metadata.get("tool_calls")
    if not calls:
        return ""
    if isinstance(calls, str):
        return calls.strip()
    parts: list[str] = []
    for call in calls:
        if isinstance(call, ToolCall):
            args = ", ".join(f"{k}={v!r}" for k, v in call.arguments.items())
            parts.append(f"{call.name}({args})")
        else:
            parts.append(str(call))
    return "; ".join(parts)


def build_perspective_messages(
    perspective: Perspective,
    message: str,
    history: list[ConversationTurn],
    tools_allowed: bool,
    prompts: PromptsConfig,
    history_window: int = DEFAULT_HISTORY_WINDOW,
) -> list[ConversationTurn]:
    tool_clause = prompts.tools_granted if tools_allowed else prompts.tools_withheld
    system_prompt = perspective.system_prompt_template.format(message=message, tool_clause=tool_clause)
    return [
        ConversationTurn(role=ROLE_SYSTEM, content=system_prompt),
        *recent_turns(history, history_window),
        ConversationTurn(role=ROLE_USER, content=message),
    ]


async def reason(
    provider: AIProvider,
    perspective: Perspective,
    message: str,
    history: list[ConversationTurn],
    tools_allowed: bool,
    *,
    prompts: PromptsConfig,
    generation: GenerationProfiles,
    history_window: int = DEFAULT_HISTORY_WINDOW,
    enforce_tool_eligibility: bool = False,
) -> PerspectiveResult:
    """Run one perspective. Never raises for backend failures.

    A failed call yields a result whose text starts with ERROR_MARKER, so the
    fan-out keeps one slot per selected perspective. Cancellation propagates.
    """
    messages = build_perspective_messages(
        perspective, message, history, tools_allowed, prompts, history_window
    )
    if tools_allowed:
        tool_filter = perspective.can_use_tool if enforce_tool_eligibility else None
        options = generation.perspective_tools.options(tools_enabled=True, tool_filter=tool_filter)
    else:
        options = generation.perspective_terse.options()

    try:
        completion = await provider.generate(messages, options)
    except Exception as exc:
        logger.warning("Perspective %s failed: %s", perspective.name, exc)
        return PerspectiveResult(
            perspective_name=perspective.name,
            text=f"{ERROR_MARKER} {perspective.name}: {exc}",
            failed=True,
        )

    tool_usage = describe_tool_calls(completion.metadata)
    logger.info(
        "Perspective %s done in %.2fs%s",
        perspective.name,
        completion.latency_sec,
        f" (tools: {tool_usage})" if tool_usage else "",
    )
    return PerspectiveResult(
        perspective_name=perspective.name,
        text=completion.content,
        tool_usage=tool_usage,
    )
