"""OpenAI provider using openai SDK with native async."""

import asyncio
import logging
import os
import time
from collections.abc import AsyncIterator
from typing import Any

from openai import AsyncOpenAI

from config.config_loader import ModelConfig
from perspective_agent.models import Completion, CompletionOptions, ConversationTurn, ToolCall
from perspective_agent.providers.base import (
    MAX_TOOL_ROUNDS,
    AIProvider,
    EmptyResponseError,
    ProviderError,
    parse_tool_arguments,
)
from perspective_agent.tools.registry import ToolRegistry

logger = logging.getLogger(__name__)


def to_openai_messages(messages: list[ConversationTurn]) -> list[dict[str, Any]]:
    return [{"role": m.role, "content": m.content} for m in messages]


class OpenAIProvider(AIProvider):
    """OpenAI provider via openai SDK."""

    def __init__(self, config: ModelConfig, tools: ToolRegistry | None = None) -> None:
        super().__init__(tools)
        self._config = config
        api_key = os.environ.get(config.api_key_env, "").strip()
        if not api_key:
            raise ProviderError(config.name, f"Missing API key: {config.api_key_env}")
        self._client = self._make_client(api_key)

    def _make_client(self, api_key: str) -> AsyncOpenAI:
        return AsyncOpenAI(api_key=api_key)

    def name(self) -> str:
        return self._config.name

    def model_string(self) -> str:
        return self._config.model

    async def _create(self, **kwargs: Any) -> Any:
        try:
            return await asyncio.wait_for(
                self._client.chat.completions.create(model=self._config.model, **kwargs),
                timeout=self._config.timeout_sec,
            )
        except TimeoutError as exc:
            raise ProviderError(self._config.name, f"Request timed out after {self._config.timeout_sec}s") from exc
        except Exception as exc:
            raise ProviderError(self._config.name, f"API call failed: {exc}") from exc

    async def generate(self, messages: list[ConversationTurn], options: CompletionOptions) -> Completion:
        start = time.monotonic()
        request_messages = to_openai_messages(messages)
        registry = self._tools_for(options)
        tool_schemas = registry.openai_schemas(options.tool_filter) if registry else []
        tool_calls: list[ToolCall] = []
        token_count: int | None = None

        for _ in range(MAX_TOOL_ROUNDS + 1):
            kwargs: dict[str, Any] = {
                "messages": request_messages,
                "max_tokens": options.max_tokens,
                "temperature": options.temperature,
            }
            if tool_schemas:
                kwargs["tools"] = tool_schemas
            response = await self._create(**kwargs)

            if response.usage:
                token_count = (token_count or 0) + response.usage.total_tokens

            choice = response.choices[0] if response.choices else None
            if not choice:
                raise EmptyResponseError(self._config.name, "Empty response content")
            message = choice.message
            if not message.tool_calls or not tool_schemas:
                break

            request_messages.append({
                "role": "assistant",
                "content": message.content or "",
                "tool_calls": [
                    {
                        "id": tc.id,
                        "type": "function",
                        "function": {"name": tc.function.name, "arguments": tc.function.arguments},
                    }
                    for tc in message.tool_calls
                ],
            })
            for tc in message.tool_calls:
                arguments = parse_tool_arguments(tc.function.arguments)
                result = await self._run_tool(tc.function.name, arguments, options)
                tool_calls.append(ToolCall(name=tc.function.name, arguments=arguments, result=result))
                request_messages.append({"role": "tool", "tool_call_id": tc.id, "content": result})
        else:
            raise ProviderError(self._config.name, f"Tool loop exceeded {MAX_TOOL_ROUNDS} rounds")

        if not message.content:
            raise EmptyResponseError(self._config.name, "Empty response content")

        latency = time.monotonic() - start
        logger.info(
            "%s completion: %.2fs, %s tokens, %d tool calls",
            self._config.name,
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
            content=message.content,
            latency_sec=latency,
            token_count=token_count,
            metadata=metadata,
        )

    async def stream(self, messages: list[ConversationTurn], options: CompletionOptions) -> AsyncIterator[str]:
        response_stream = await self._create(
            messages=to_openai_messages(messages),
            max_tokens=options.max_tokens,
            temperature=options.temperature,
            stream=True,
        )
        try:
            async for chunk in response_stream:
                if not chunk.choices:
                    continue
                fragment = chunk.choices[0].delta.content
                if fragment:
                    yield fragment
        except Exception as exc:
            raise ProviderError(self._config.name, f"Stream interrupted: {exc}") from exc
        finally:
            # Releases the HTTP response when the consumer stops early
            await response_stream.close()
