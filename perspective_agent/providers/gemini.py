"""Gemini provider using google-genai SDK with native async."""

import asyncio
import logging
import os
import time
from collections.abc import AsyncIterator
from typing import Any

from google import genai
from google.genai import types as genai_types

from config.config_loader import ModelConfig
from perspective_agent.history import split_system
from perspective_agent.models import ROLE_ASSISTANT, Completion, CompletionOptions, ConversationTurn, ToolCall
from perspective_agent.providers.base import (
    MAX_TOOL_ROUNDS,
    AIProvider,
    EmptyResponseError,
    ProviderError,
)
from perspective_agent.tools.registry import ToolRegistry

logger = logging.getLogger(__name__)


def to_gemini_contents(messages: list[ConversationTurn]) -> tuple[str, list[genai_types.Content]]:
    """Return (system_instruction, contents). Gemini calls the assistant role 'model'."""
    system, turns = split_system(messages)
    contents = [
        genai_types.Content(
            role="model" if t.role == ROLE_ASSISTANT else "user",
            parts=[genai_types.Part(text=t.content)],
        )
        for t in turns
    ]
    return system, contents


class GeminiProvider(AIProvider):
    """Google Gemini provider via google-genai SDK."""

    def __init__(self, config: ModelConfig, tools: ToolRegistry | None = None) -> None:
        super().__init__(tools)
        self._config = config
        api_key = os.environ.get(config.api_key_env, "").strip()
        if not api_key:
            raise ProviderError(config.name, f"Missing API key: {config.api_key_env}")
        self._client = genai.Client(api_key=api_key)

    def name(self) -> str:
        return self._config.name

    def model_string(self) -> str:
        return self._config.model

    def _generation_config(
        self,
        system: str,
        options: CompletionOptions,
        registry: ToolRegistry | None = None,
    ) -> genai_types.GenerateContentConfig:
        tools = None
        if registry is not None:
            declarations = [
                genai_types.FunctionDeclaration(
                    name=t.name,
                    description=t.description,
                    parameters_json_schema=t.parameters,
                )
                for t in registry.select(options.tool_filter)
            ]
            if declarations:
                tools = [genai_types.Tool(function_declarations=declarations)]
        return genai_types.GenerateContentConfig(
            system_instruction=system or None,
            max_output_tokens=options.max_tokens,
            temperature=options.temperature,
            tools=tools,
        )

    async def generate(self, messages: list[ConversationTurn], options: CompletionOptions) -> Completion:
        start = time.monotonic()
        system, contents = to_gemini_contents(messages)
        config = self._generation_config(system, options, self._tools_for(options))
        tool_calls: list[ToolCall] = []
        token_count: int | None = None

        for _ in range(MAX_TOOL_ROUNDS + 1):
            try:
                response = await asyncio.wait_for(
                    self._client.aio.models.generate_content(
                        model=self._config.model,
                        contents=contents,
                        config=config,
                    ),
                    timeout=self._config.timeout_sec,
                )
            except TimeoutError as exc:
                raise ProviderError(self._config.name, f"Request timed out after {self._config.timeout_sec}s") from exc
            except Exception as exc:
                raise ProviderError(self._config.name, f"API call failed: {exc}") from exc

            if response.usage_metadata and response.usage_metadata.total_token_count:
                token_count = (token_count or 0) + response.usage_metadata.total_token_count

            calls = response.function_calls or []
            if not calls or config.tools is None:
                break

            contents.append(response.candidates[0].content)
            parts: list[genai_types.Part] = []
            for call in calls:
                arguments = dict(call.args or {})
                result = await self._run_tool(call.name, arguments, options)
                tool_calls.append(ToolCall(name=call.name, arguments=arguments, result=result))
                parts.append(genai_types.Part.from_function_response(name=call.name, response={"result": result}))
            contents.append(genai_types.Content(role="user", parts=parts))
        else:
            raise ProviderError(self._config.name, f"Tool loop exceeded {MAX_TOOL_ROUNDS} rounds")

        latency = time.monotonic() - start

        if not response.text:
            raise EmptyResponseError(self._config.name, "Empty response text")

        logger.info(
            "Gemini completion: %.2fs, %s tokens, %d tool calls",
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
            content=response.text,
            latency_sec=latency,
            token_count=token_count,
            metadata=metadata,
        )

    async def stream(self, messages: list[ConversationTurn], options: CompletionOptions) -> AsyncIterator[str]:
        system, contents = to_gemini_contents(messages)
        try:
            response_stream = await self._client.aio.models.generate_content_stream(
                model=self._config.model,
                contents=contents,
                config=self._generation_config(system, options),
            )
        except Exception as exc:
            raise ProviderError(self._config.name, f"API call failed: {exc}") from exc
        try:
            async for chunk in response_stream:
                if chunk.text:
                    yield chunk.text
        except Exception as exc:
            raise ProviderError(self._config.name, f"Stream interrupted: {exc}") from exc
        finally:
            await response_stream.aclose()
