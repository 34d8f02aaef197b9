"""Anthropic Claude provider using anthropic SDK with native async."""

import asyncio
import logging
import os
import time
from collections.abc import AsyncIterator
from typing import Any

import anthropic as anthropic_sdk

from config.config_loader import ModelConfig
from perspective_agent.history import split_system
from perspective_agent.models import ROLE_USER, Completion, CompletionOptions, ConversationTurn, ToolCall
from perspective_agent.providers.base import (
    MAX_TOOL_ROUNDS,
    AIProvider,
    EmptyResponseError,
    ProviderError,
)
from perspective_agent.tools.registry import ToolRegistry

logger = logging.getLogger(__name__)


def to_anthropic_request(messages: list[ConversationTurn]) -> tuple[str, list[dict[str, Any]]]:
    """Return (system, messages). The Messages API wants the first turn from the user."""
    system, turns = split_system(messages)
    while turns and turns[0].role != ROLE_USER:
        turns = turns[1:]
    return system, [{"role": t.role, "content": t.content} for t in turns]


def _block_to_param(block: Any) -> dict[str, Any]:
    if block.type == "tool_use":
        return {"type": "tool_use", "id": block.id, "name": block.name, "input": block.input}
    return {"type": "text", "text": getattr(block, "text", "")}


class AnthropicProvider(AIProvider):
    """Anthropic Claude provider via anthropic SDK."""

    def __init__(self, config: ModelConfig, tools: ToolRegistry | None = None) -> None:
        super().__init__(tools)
        self._config = config
        api_key = os.environ.get(config.api_key_env, "").strip()
        if not api_key:
            raise ProviderError(config.name, f"Missing API key: {config.api_key_env}")
        self._client = anthropic_sdk.AsyncAnthropic(api_key=api_key)

    def name(self) -> str:
        return self._config.name

    def model_string(self) -> str:
        return self._config.model

    def _base_kwargs(self, messages: list[ConversationTurn], options: CompletionOptions) -> dict[str, Any]:
        system, convo = to_anthropic_request(messages)
        kwargs: dict[str, Any] = {
            "model": self._config.model,
            "max_tokens": options.max_tokens,
            "temperature": options.temperature,
            "messages": convo,
        }
        if system:
            kwargs["system"] = system
        return kwargs

    async def generate(self, messages: list[ConversationTurn], options: CompletionOptions) -> Completion:
        start = time.monotonic()
        kwargs = self._base_kwargs(messages, options)
        registry = self._tools_for(options)
        tool_schemas = registry.anthropic_schemas(options.tool_filter) if registry else []
        if tool_schemas:
            kwargs["tools"] = tool_schemas
        tool_calls: list[ToolCall] = []
        token_count: int | None = None

        for _ in range(MAX_TOOL_ROUNDS + 1):
            try:
                response = await asyncio.wait_for(
                    self._client.messages.create(**kwargs),
                    timeout=self._config.timeout_sec,
                )
            except TimeoutError as exc:
                raise ProviderError(self._config.name, f"Request timed out after {self._config.timeout_sec}s") from exc
            except Exception as exc:
                raise ProviderError(self._config.name, f"API call failed: {exc}") from exc

            if response.usage:
                token_count = (token_count or 0) + response.usage.input_tokens + response.usage.output_tokens

            tool_uses = [b for b in response.content if b.type == "tool_use"]
            if response.stop_reason != "tool_use" or not tool_uses or "tools" not in kwargs:
                break

            kwargs["messages"].append(
                {"role": "assistant", "content": [_block_to_param(b) for b in response.content]}
            )
            results: list[dict[str, Any]] = []
            for block in tool_uses:
                arguments = dict(block.input or {})
                result = await self._run_tool(block.name, arguments, options)
                tool_calls.append(ToolCall(name=block.name, arguments=arguments, result=result))
                results.append({"type": "tool_result", "tool_use_id": block.id, "content": result})
            kwargs["messages"].append({"role": "user", "content": results})
        else:
            raise ProviderError(self._config.name, f"Tool loop exceeded {MAX_TOOL_ROUNDS} rounds")

        latency = time.monotonic() - start

        text_blocks = [b.text for b in response.content if b.type == "text"]
        content = "\n".join(text_blocks).strip()
        if not content:
            raise EmptyResponseError(self._config.name, "No text blocks in response")

        logger.info(
            "Anthropic completion: %.2fs, %s tokens, %d tool calls",
            latency,
            token_count,
            len(tool_calls),
        )

        metadata: dict[str, Any] = {}
        if tool_calls:
            metadata["tool_calls"] = tool_calls
        return Completion(
            provider=self._config.name,
            model=self._config.model,
            content=content,
            latency_sec=latency,
            token_count=token_count,
            metadata=metadata,
        )

    async def stream(self, messages: list[ConversationTurn], options: CompletionOptions) -> AsyncIterator[str]:
        kwargs = self._base_kwargs(messages, options)
        try:
            async with self._client.messages.stream(**kwargs) as response_stream:
                async for fragment in response_stream.text_stream:
                    if fragment:
                        yield fragment
        except Exception as exc:
            raise ProviderError(self._config.name, f"Stream interrupted: {exc}") from exc
