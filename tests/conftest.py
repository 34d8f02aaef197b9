"""Shared pytest fixtures."""

import asyncio
from collections.abc import AsyncIterator
from dataclasses import replace
from pathlib import Path
from unittest.mock import AsyncMock

import pytest

from config.config_loader import (
    AppConfig,
    DefaultsConfig,
    GenerationConfig,
    GenerationProfiles,
    ModelConfig,
    PromptsConfig,
)
from perspective_agent.catalog import PerspectiveCatalog, default_catalog
from perspective_agent.models import (
    ROLE_SYSTEM,
    Completion,
    CompletionOptions,
    ConversationTurn,
    ToolCall,
)
from perspective_agent.providers.base import AIProvider, ProviderError


@pytest.fixture
def sample_model_config() -> ModelConfig:
    return ModelConfig(
        name="test_model",
        sdk="openai",
        model="test-model-1",
        api_key_env="TEST_API_KEY",
        timeout_sec=30,
        base_url=None,
    )


@pytest.fixture
def sample_prompts_config() -> PromptsConfig:
    return PromptsConfig(
        classifier="CLASSIFY: answer YES or NO.",
        perspective="PERSPECTIVE {persona}\n{tool_clause}\nQ: {message}",
        tools_granted="TOOLS GRANTED",
        tools_withheld="TOOLS WITHHELD. Answer in 2-3 sentences.",
        synthesis="SYNTHESIZE\n{perspectives}\n{tools_used}\nQ: {message}",
        synthesis_streaming="SYNTHESIZE STREAM\n{perspectives}\nQ: {message}",
    )


@pytest.fixture
def sample_generation() -> GenerationProfiles:
    return GenerationProfiles(
        classifier=GenerationConfig(max_tokens=10, temperature=0.1),
        perspective_tools=GenerationConfig(max_tokens=800, temperature=0.7),
        perspective_terse=GenerationConfig(max_tokens=200, temperature=0.7),
        synthesis=GenerationConfig(max_tokens=800, temperature=0.7),
        streaming=GenerationConfig(max_tokens=800, temperature=0.8),
    )


@pytest.fixture
def sample_catalog() -> PerspectiveCatalog:
    """The built-in five perspectives, with templates that name the perspective."""
    return PerspectiveCatalog([
        replace(p, system_prompt_template=f"PERSPECTIVE {p.name}\n{{tool_clause}}\nQ: {{message}}")
        for p in default_catalog()
    ])


@pytest.fixture
def sample_defaults_config(tmp_path: Path) -> DefaultsConfig:
    return DefaultsConfig(provider="openai", output_dir=tmp_path / "output")


@pytest.fixture
def sample_app_config(
    sample_defaults_config: DefaultsConfig,
    sample_prompts_config: PromptsConfig,
    sample_generation: GenerationProfiles,
    sample_catalog: PerspectiveCatalog,
) -> AppConfig:
    model_cfg = ModelConfig(
        name="openai",
        sdk="openai",
        model="gpt-4.1",
        api_key_env="OPENAI_API_KEY",
        timeout_sec=60,
    )
    return AppConfig(
        defaults=sample_defaults_config,
        models={"openai": model_cfg},
        prompts=sample_prompts_config,
        generation=sample_generation,
        catalog=sample_catalog,
        available_providers={"openai"},
    )


def make_completion(content: str, tool_calls: list[ToolCall] | None = None) -> Completion:
    return Completion(
        provider="mock",
        model="mock-model",
        content=content,
        latency_sec=0.1,
        token_count=10,
        metadata={"tool_calls": tool_calls} if tool_calls else {},
    )


class MockProvider(AIProvider):
    """Test double AIProvider."""

    def __init__(self, provider_name: str = "mock", response_content: str = "Mock response") -> None:
        super().__init__()
        self._name = provider_name
        self._response_content = response_content
        self.stream_fragments: list[str] = ["Mock ", "stream"]
        # Shadow the class method with an AsyncMock at the instance level.
        # ABC check passes because generate is defined in the class body below.
        self.generate = AsyncMock(return_value=make_completion(response_content))  # type: ignore[assignment]

    def name(self) -> str:
        return self._name

    def model_string(self) -> str:
        return "mock-model"

    async def generate(self, messages: list[ConversationTurn], options: CompletionOptions) -> Completion:  # type: ignore[override]
        """Default implementation; replaced by AsyncMock in __init__."""
        return make_completion(self._response_content)

    async def stream(self, messages: list[ConversationTurn], options: CompletionOptions) -> AsyncIterator[str]:
        for fragment in self.stream_fragments:
            yield fragment


def route(messages: list[ConversationTurn]) -> tuple[str, str | None]:
    """Identify a request from its system prompt: (kind, perspective name)."""
    system = next((m.content for m in messages if m.role == ROLE_SYSTEM), "")
    if system.startswith("CLASSIFY"):
        return "classify", None
    if system.startswith("SYNTHESIZE"):
        return "synthesis", None
    if system.startswith("PERSPECTIVE "):
        return "perspective", system.split()[1]
    return "other", None


class ScriptedProvider(AIProvider):
    """Fake backend that answers by request kind, with per-perspective delays and failures."""

    def __init__(
        self,
        classify: str = "NO",
        synthesis: str = "We recommend caching responses.",
        perspective_replies: dict[str, str] | None = None,
        perspective_tools: dict[str, list[ToolCall]] | None = None,
        synthesis_tools: list[ToolCall] | None = None,
        delays: dict[str, float] | None = None,
        failures: set[str] | None = None,
        synthesis_error: Exception | None = None,
        classify_error: Exception | None = None,
        stream_fragments: list[str] | None = None,
        stream_error: Exception | None = None,
    ) -> None:
        super().__init__()
        self.classify_reply = classify
        self.synthesis_reply = synthesis
        self.perspective_replies = perspective_replies or {}
        self.perspective_tools = perspective_tools or {}
        self.synthesis_tools = synthesis_tools
        self.delays = delays or {}
        self.failures = failures or set()
        self.synthesis_error = synthesis_error
        self.classify_error = classify_error
        self.stream_fragments = stream_fragments or ["Final ", "streamed ", "answer."]
        self.stream_error = stream_error
        self.calls: list[tuple[str, str | None, CompletionOptions, list[ConversationTurn]]] = []
        self.completion_order: list[str] = []
        self.cancelled: list[str] = []
        self.stream_requests: list[list[ConversationTurn]] = []
        self.stream_abandoned = False

    def name(self) -> str:
        return "scripted"

    def model_string(self) -> str:
        return "scripted-model"

    def calls_of(self, kind: str) -> list[tuple[str, str | None, CompletionOptions, list[ConversationTurn]]]:
        return [c for c in self.calls if c[0] == kind]

    async def generate(self, messages: list[ConversationTurn], options: CompletionOptions) -> Completion:
        kind, name = route(messages)
        self.calls.append((kind, name, options, messages))

        if kind == "classify":
            if self.classify_error:
                raise self.classify_error
            return make_completion(self.classify_reply)

        if kind == "synthesis":
            if self.synthesis_error:
                raise self.synthesis_error
            return make_completion(self.synthesis_reply, self.synthesis_tools)

        try:
            await asyncio.sleep(self.delays.get(name, 0))
        except asyncio.CancelledError:
            self.cancelled.append(name)
            raise
        if name in self.failures:
            raise ProviderError("scripted", f"{name} backend unavailable")
        self.completion_order.append(name)
        return make_completion(
            self.perspective_replies.get(name, f"Thoughts from {name}."),
            self.perspective_tools.get(name),
        )

    async def stream(self, messages: list[ConversationTurn], options: CompletionOptions) -> AsyncIterator[str]:
        self.stream_requests.append(messages)
        try:
            for fragment in self.stream_fragments:
                await asyncio.sleep(0)
                yield fragment
        except GeneratorExit:
            self.stream_abandoned = True
            raise
        if self.stream_error:
            raise self.stream_error


@pytest.fixture
def mock_provider() -> MockProvider:
    return MockProvider()


@pytest.fixture
def scripted_provider() -> ScriptedProvider:
    return ScriptedProvider()
