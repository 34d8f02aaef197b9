"""Dataclasses for the perspective fan-out pipeline. No I/O, no deps."""

import uuid
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

ROLE_SYSTEM = "system"
ROLE_USER = "user"
ROLE_ASSISTANT = "assistant"

PHASE_PERSPECTIVE = "perspective"
PHASE_SYNTHESIS = "synthesis"


@dataclass(frozen=True)
class Perspective:
    name: str
    system_prompt_template: str        # carries {message} and {tool_clause}
    keywords: tuple[str, ...]
    tool_patterns: tuple[str, ...] | None = None   # None = eligible for every tool

    def can_use_tool(self, tool_name: str) -> bool:
        if self.tool_patterns is None:
            return True
        lowered = tool_name.lower()
        return any(pattern.lower() in lowered for pattern in self.tool_patterns)

    def matches(self, message: str) -> bool:
        lowered = message.lower()
        return any(keyword.lower() in lowered for keyword in self.keywords)


@dataclass
class ConversationTurn:
    role: str      # "system", "user" or "assistant"
    content: str


@dataclass(frozen=True)
class CompletionOptions:
    max_tokens: int
    temperature: float
    tools_enabled: bool = False
    tool_filter: Callable[[str], bool] | None = None


@dataclass
class ToolCall:
    name: str
    arguments: dict[str, Any]
    result: str


@dataclass
class Completion:
    provider: str
    model: str
    content: str
    latency_sec: float
    token_count: int | None
    metadata: dict[str, Any] = field(default_factory=dict)   # "tool_calls" -> list[ToolCall]


@dataclass(frozen=True)
class PerspectiveResult:
    perspective_name: str
    text: str
    tool_usage: str = ""     # empty when no tool was called
    failed: bool = False

    @property
    def used_tools(self) -> bool:
        return bool(self.tool_usage)


@dataclass(frozen=True)
class ToolUsage:
    phase: str         # "perspective" or "synthesis"
    source: str        # perspective name, or "synthesis"
    descriptor: str


@dataclass
class InternalDialog:
    reasoning_process: list[PerspectiveResult]
    tool_ledger: list[ToolUsage] = field(default_factory=list)
    synthesis_note: str = ""
    follow_up_needed: str = ""
    synthesized: bool = False

    @property
    def tools_used_summary(self) -> list[str]:
        return [
            f"[{entry.source}] Used tools: {entry.descriptor}"
            for entry in self.tool_ledger
            if entry.phase == PHASE_PERSPECTIVE
        ]

    def record_synthesis(self, note: str, follow_up: str) -> None:
        """Fill the post-synthesis fields. Allowed exactly once."""
        if self.synthesized:
            raise RuntimeError("Synthesis already recorded for this dialog")
        self.synthesis_note = note
        self.follow_up_needed = follow_up
        self.synthesized = True


@dataclass
class ChatResponse:
    content: str
    internal: InternalDialog
    id: str = field(default_factory=lambda: uuid.uuid4().hex)
    role: str = ROLE_ASSISTANT
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def as_turn(self) -> ConversationTurn:
        return ConversationTurn(role=self.role, content=self.content)
