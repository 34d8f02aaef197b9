"""Perspective fan-out: classify, select, reason in parallel, join, synthesize."""

import asyncio
import logging
from collections.abc import AsyncIterator, Callable
from contextlib import aclosing

from config.config_loader import AppConfig, GenerationProfiles, PromptsConfig
from perspective_agent.catalog import PerspectiveCatalog
from perspective_agent.classifier import needs_tools
from perspective_agent.history import DEFAULT_HISTORY_WINDOW
from perspective_agent.models import (
    PHASE_PERSPECTIVE,
    ChatResponse,
    ConversationTurn,
    InternalDialog,
    Perspective,
    PerspectiveResult,
    ToolUsage,
)
from perspective_agent.providers.base import AIProvider, ProviderError
from perspective_agent.reasoner import reason
from perspective_agent.selector import select_perspectives
from perspective_agent.synthesis import synthesize, synthesize_stream

logger = logging.getLogger(__name__)

PHASE_CLASSIFY = "classify"
PHASE_SELECT = "select"
PHASE_FAN_OUT = "fan_out"
PHASE_SYNTHESIZE = "synthesize"
PHASE_STREAM = "stream"


class OrchestrationError(Exception):
    """A phase of the orchestrator's own control flow failed.

    `dialog` holds whatever InternalDialog was already built, for diagnostics.
    """

    def __init__(
        self,
        phase: str,
        message: str,
        perspective: str | None = None,
        dialog: InternalDialog | None = None,
    ) -> None:
        self.phase = phase
        self.perspective = perspective
        self.dialog = dialog
        where = f"{phase}/{perspective}" if perspective else phase
        super().__init__(f"[{where}] {message}")


def build_internal_dialog(results: list[PerspectiveResult]) -> InternalDialog:
    """Fold joined results into a dialog, keeping their (selection) order."""
    ledger = [
        ToolUsage(phase=PHASE_PERSPECTIVE, source=r.perspective_name, descriptor=r.tool_usage)
        for r in results
        if r.used_tools
    ]
    return InternalDialog(reasoning_process=list(results), tool_ledger=ledger)


class Orchestrator:
    """Runs one user message through the perspective pipeline.

    Holds only read-only collaborators, so one instance can serve concurrent
    calls. The caller owns the history and must not mutate it mid-call.
    """

    def __init__(
        self,
        provider: AIProvider,
        catalog: PerspectiveCatalog,
        prompts: PromptsConfig,
        generation: GenerationProfiles,
        history_window: int = DEFAULT_HISTORY_WINDOW,
        enforce_tool_eligibility: bool = False,
    ) -> None:
        self._provider = provider
        self._catalog = catalog
        self._prompts = prompts
        self._generation = generation
        self._history_window = history_window
        self._enforce_tool_eligibility = enforce_tool_eligibility

    @classmethod
    def from_config(cls, config: AppConfig, provider: AIProvider) -> "Orchestrator":
        return cls(
            provider=provider,
            catalog=config.catalog,
            prompts=config.prompts,
            generation=config.generation,
            history_window=config.defaults.history_window,
            enforce_tool_eligibility=config.defaults.enforce_tool_eligibility,
        )

    async def _classify(self, message: str, history: list[ConversationTurn]) -> bool:
        logger.debug("Phase: %s", PHASE_CLASSIFY)
        try:
            return await needs_tools(
                self._provider,
                message,
                history,
                self._prompts.classifier,
                self._generation.classifier.options(),
            )
        except ProviderError as exc:
            raise OrchestrationError(PHASE_CLASSIFY, str(exc)) from exc

    async def _fan_out(
        self,
        perspectives: list[Perspective],
        message: str,
        history: list[ConversationTurn],
        tools_needed: bool,
    ) -> list[PerspectiveResult]:
        """Launch every perspective at once and wait for all of them.

        gather() returns results indexed by launch position, so the output
        order is the selection order whatever the completion order was.
        """
        logger.debug("Phase: %s (%d perspectives)", PHASE_FAN_OUT, len(perspectives))
        results = await asyncio.gather(*(
            reason(
                self._provider,
                perspective,
                message,
                history,
                tools_needed,
                prompts=self._prompts,
                generation=self._generation,
                history_window=self._history_window,
                enforce_tool_eligibility=self._enforce_tool_eligibility,
            )
            for perspective in perspectives
        ))

        failed = [r.perspective_name for r in results if r.failed]
        if failed and len(failed) == len(results):
            logger.warning("All %d perspectives failed; synthesizing without expert input", len(results))
        elif failed:
            logger.warning("Degraded perspectives: %s", ", ".join(failed))
        logger.info("Fan-out complete: %d/%d perspectives succeeded", len(results) - len(failed), len(results))
        return list(results)

    async def prepare_dialog(
        self,
        message: str,
        history: list[ConversationTurn] | None = None,
    ) -> InternalDialog:
        """CLASSIFY → SELECT → FAN_OUT → JOIN → BUILD_DIALOG."""
        history = history or []
        tools_needed = await self._classify(message, history)

        logger.debug("Phase: %s", PHASE_SELECT)
        perspectives = select_perspectives(message, tools_needed, self._catalog)

        results = await self._fan_out(perspectives, message, history, tools_needed)
        return build_internal_dialog(results)

    async def _process(self, message: str, history: list[ConversationTurn]) -> ChatResponse:
        dialog = await self.prepare_dialog(message, history)

        logger.debug("Phase: %s", PHASE_SYNTHESIZE)
        try:
            content, _ = await synthesize(
                self._provider,
                message,
                dialog,
                history,
                prompts=self._prompts,
                generation=self._generation,
                history_window=self._history_window,
            )
        except (ProviderError, RuntimeError) as exc:
            raise OrchestrationError(PHASE_SYNTHESIZE, str(exc), dialog=dialog) from exc

        return ChatResponse(content=content, internal=dialog)

    async def process_message(
        self,
        message: str,
        history: list[ConversationTurn] | None = None,
        *,
        timeout_sec: float | None = None,
    ) -> ChatResponse:
        """Answer one message.

        Args:
            message: The user's message.
            history: Prior turns, oldest first. Read, never modified.
            timeout_sec: Optional deadline for the whole call. On expiry every
                in-flight backend call is cancelled and TimeoutError is raised.

        Raises:
            OrchestrationError: If classification transport or synthesis fails.
            TimeoutError: If `timeout_sec` elapses.
        """
        history = history or []
        if timeout_sec is None:
            return await self._process(message, history)
        return await asyncio.wait_for(self._process(message, history), timeout=timeout_sec)

    async def process_message_streaming(
        self,
        message: str,
        history: list[ConversationTurn] | None = None,
        *,
        on_dialog_ready: Callable[[InternalDialog], None] | None = None,
        timeout_sec: float | None = None,
    ) -> AsyncIterator[str]:
        """Yield the answer as it is generated.

        The internal dialog is built in full first and handed to
        `on_dialog_ready`; it is enriched with the synthesis note once the
        stream is exhausted. `timeout_sec` bounds the dialog-building phase.
        Closing the iterator early stops reading from the backend.

        Raises:
            OrchestrationError: phase "stream" if the backend stream breaks off.
        """
        history = history or []
        if timeout_sec is None:
            dialog = await self.prepare_dialog(message, history)
        else:
            dialog = await asyncio.wait_for(self.prepare_dialog(message, history), timeout=timeout_sec)

        if on_dialog_ready:
            on_dialog_ready(dialog)

        logger.debug("Phase: %s", PHASE_STREAM)
        fragments = synthesize_stream(
            self._provider,
            message,
            dialog,
            history,
            prompts=self._prompts,
            generation=self._generation,
            history_window=self._history_window,
        )
        async with aclosing(fragments):
            try:
                async for fragment in fragments:
                    yield fragment
            except ProviderError as exc:
                raise OrchestrationError(PHASE_STREAM, str(exc), dialog=dialog) from exc
