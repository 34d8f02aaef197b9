"""Final synthesis: render the internal dialog, call the backend, enrich the dialog."""

import logging
import re
from collections.abc import AsyncIterator
from contextlib import aclosing

from config.config_loader import GenerationProfiles, PromptsConfig
from perspective_agent.history import DEFAULT_HISTORY_WINDOW, recent_turns
from perspective_agent.models import (
    PHASE_SYNTHESIS,
    ROLE_SYSTEM,
    ROLE_USER,
    ConversationTurn,
    InternalDialog,
    ToolUsage,
)
from perspective_agent.providers.base import AIProvider
from perspective_agent.reasoner import describe_tool_calls

logger = logging.getLogger(__name__)

FOLLOW_UP_NOTE = "Asked clarifying questions to better tailor recommendations."

# Best-effort signal only: a "?" plus one of these words anywhere in the answer.
QUESTION_WORDS = frozenset({
    "what", "which", "who", "when", "where", "why", "how",
    "would", "could", "should", "can", "do", "does",
})

_WORD_RE = re.compile(r"[a-z]+")


def detect_follow_up(text: str) -> str:
    """Return FOLLOW_UP_NOTE when the answer seems to ask the user something, else ""."""
    if "?" not in text:
        return ""
    words = set(_WORD_RE.findall(text.lower()))
    return FOLLOW_UP_NOTE if words & QUESTION_WORDS else ""


def _format_perspectives(dialog: InternalDialog) -> str:
    """`[name]: thoughts` per usable entry, in stored order. Degraded entries are left out."""
    lines = [
        f"[{result.perspective_name}]: {result.text}"
        for result in dialog.reasoning_process
        if not result.failed
    ]
    return "\n".join(lines) if lines else "(no expert analysis available)"


def _format_tools_used(dialog: InternalDialog) -> str:
    summary = dialog.tools_used_summary
    if not summary:
        return ""
    return "\nTOOLS USED:\n" + "\n".join(summary)


def _synthesis_note(dialog: InternalDialog, synthesis_tools: str) -> str:
    note = "Combined expert perspectives"
    if dialog.tools_used_summary:
        note += " with tool-gathered data"
    if synthesis_tools:
        note += " and additional synthesis-time tool calls"
    return note + " to provide comprehensive guidance."


def build_synthesis_messages(
    template: str,
    message: str,
    dialog: InternalDialog,
    history: list[ConversationTurn],
    history_window: int = DEFAULT_HISTORY_WINDOW,
) -> list[ConversationTurn]:
    system_prompt = template.format(
        perspectives=_format_perspectives(dialog),
        tools_used=_format_tools_used(dialog),
        message=message,
    )
    return [
        ConversationTurn(role=ROLE_SYSTEM, content=system_prompt),
        *recent_turns(history, history_window),
        ConversationTurn(role=ROLE_USER, content=message),
    ]


async def synthesize(
    provider: AIProvider,
    message: str,
    dialog: InternalDialog,
    history: list[ConversationTurn],
    *,
    prompts: PromptsConfig,
    generation: GenerationProfiles,
    history_window: int = DEFAULT_HISTORY_WINDOW,
) -> tuple[str, str]:
    """Produce the user-visible answer and record the synthesis on `dialog`.

    Returns:
        (final_text, follow_up_needed)

    Raises:
        ProviderError: If the synthesis call fails.
        RuntimeError: If the backend returns empty content.
    """
    messages = build_synthesis_messages(prompts.synthesis, message, dialog, history, history_window)
    logger.info("Running synthesis via %s", provider.name())

    completion = await provider.generate(messages, generation.synthesis.options(tools_enabled=True))
    if not completion.content.strip():
        raise RuntimeError(f"Synthesizer {provider.name()} returned empty content")

    synthesis_tools = describe_tool_calls(completion.metadata)
    if synthesis_tools:
        dialog.tool_ledger.append(ToolUsage(phase=PHASE_SYNTHESIS, source="synthesis", descriptor=synthesis_tools))

    follow_up = detect_follow_up(completion.content)
    dialog.record_synthesis(_synthesis_note(dialog, synthesis_tools), follow_up)
    return completion.content, follow_up


async def synthesize_stream(
    provider: AIProvider,
    message: str,
    dialog: InternalDialog,
    history: list[ConversationTurn],
    *,
    prompts: PromptsConfig,
    generation: GenerationProfiles,
    history_window: int = DEFAULT_HISTORY_WINDOW,
) -> AsyncIterator[str]:
    """Stream the answer fragment by fragment; the dialog is enriched once the stream ends.

    Tool calling stays off for the streamed call.
    """
    messages = build_synthesis_messages(
        prompts.synthesis_streaming, message, dialog, history, history_window
    )
    logger.info("Streaming synthesis via %s", provider.name())

    received: list[str] = []
    async with aclosing(provider.stream(messages, generation.streaming.options())) as fragments:
        async for fragment in fragments:
            received.append(fragment)
            yield fragment

    dialog.record_synthesis(_synthesis_note(dialog, ""), detect_follow_up("".join(received)))
