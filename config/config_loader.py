"""Load settings.yaml into typed dataclasses. Reports which providers have API keys."""

import logging
import os
from collections.abc import Callable
from dataclasses import dataclass, field
from pathlib import Path

import yaml

from perspective_agent.catalog import PerspectiveCatalog, compose_template, default_catalog
from perspective_agent.models import CompletionOptions, Perspective

logger = logging.getLogger(__name__)

_SETTINGS_PATH = Path(__file__).parent / "settings.yaml"

_ALL_TOOLS = "*"


@dataclass
class ModelConfig:
    name: str
    sdk: str
    model: str
    api_key_env: str
    timeout_sec: int
    base_url: str | None = None


@dataclass
class GenerationConfig:
    max_tokens: int
    temperature: float

    def options(
        self,
        tools_enabled: bool = False,
        tool_filter: Callable[[str], bool] | None = None,
    ) -> CompletionOptions:
        return CompletionOptions(
            max_tokens=self.max_tokens,
            temperature=self.temperature,
            tools_enabled=tools_enabled,
            tool_filter=tool_filter,
        )


@dataclass
class GenerationProfiles:
    classifier: GenerationConfig
    perspective_tools: GenerationConfig
    perspective_terse: GenerationConfig
    synthesis: GenerationConfig
    streaming: GenerationConfig


@dataclass
class PromptsConfig:
    classifier: str
    perspective: str           # wrapper with {persona}, {tool_clause}, {message}
    tools_granted: str
    tools_withheld: str
    synthesis: str             # {perspectives}, {tools_used}, {message}
    synthesis_streaming: str   # {perspectives}, {message}


@dataclass
class DefaultsConfig:
    provider: str
    output_dir: Path
    history_window: int = 4
    enforce_tool_eligibility: bool = False


@dataclass
class AppConfig:
    defaults: DefaultsConfig
    models: dict[str, ModelConfig]
    prompts: PromptsConfig
    generation: GenerationProfiles
    catalog: PerspectiveCatalog
    available_providers: set[str] = field(default_factory=set)


def _generation(raw: dict) -> GenerationConfig:
    return GenerationConfig(max_tokens=int(raw["max_tokens"]), temperature=float(raw["temperature"]))


def _perspective(raw: dict, wrapper: str) -> Perspective:
    tools_raw = raw.get("tools", [])
    patterns = None if tools_raw == _ALL_TOOLS else tuple(str(t) for t in tools_raw)
    return Perspective(
        name=str(raw["name"]),
        system_prompt_template=compose_template(wrapper, str(raw["persona"]).strip()),
        keywords=tuple(str(k) for k in raw.get("keywords", [])),
        tool_patterns=patterns,
    )


def load_config(settings_path: Path = _SETTINGS_PATH) -> AppConfig:
    """Load and validate configuration from settings.yaml.

    Raises FileNotFoundError if settings file missing, ValueError if the
    perspectives section does not form a valid catalog.
    Logs missing API keys but does not raise: callers check available_providers.
    """
    if not settings_path.exists():
        raise FileNotFoundError(f"Settings file not found: {settings_path}")

    with settings_path.open("r", encoding="utf-8") as f:
        raw = yaml.safe_load(f)

    defaults_raw = raw["defaults"]
    defaults = DefaultsConfig(
        provider=str(defaults_raw["provider"]),
        output_dir=Path(defaults_raw["output_dir"]),
        history_window=int(defaults_raw.get("history_window", 4)),
        enforce_tool_eligibility=bool(defaults_raw.get("enforce_tool_eligibility", False)),
    )

    prompts_raw = raw["prompts"]
    prompts = PromptsConfig(
        classifier=prompts_raw["classifier"],
        perspective=prompts_raw["perspective"],
        tools_granted=prompts_raw["tools_granted"],
        tools_withheld=prompts_raw["tools_withheld"],
        synthesis=prompts_raw["synthesis"],
        synthesis_streaming=prompts_raw["synthesis_streaming"],
    )

    gen_raw = raw["generation"]
    generation = GenerationProfiles(
        classifier=_generation(gen_raw["classifier"]),
        perspective_tools=_generation(gen_raw["perspective_tools"]),
        perspective_terse=_generation(gen_raw["perspective_terse"]),
        synthesis=_generation(gen_raw["synthesis"]),
        streaming=_generation(gen_raw["streaming"]),
    )

    perspectives_raw = raw.get("perspectives")
    if perspectives_raw:
        catalog = PerspectiveCatalog([_perspective(p, prompts.perspective) for p in perspectives_raw])
    else:
        catalog = default_catalog(prompts.perspective)

    models: dict[str, ModelConfig] = {}
    available_providers: set[str] = set()

    for provider_name, model_raw in raw["models"].items():
        model_cfg = ModelConfig(
            name=provider_name,
            sdk=model_raw["sdk"],
            model=model_raw["model"],
            api_key_env=model_raw["api_key_env"],
            timeout_sec=int(model_raw["timeout_sec"]),
            base_url=model_raw.get("base_url"),
        )
        models[provider_name] = model_cfg

        api_key = os.environ.get(model_raw["api_key_env"], "").strip()
        if api_key:
            available_providers.add(provider_name)
            logger.info("Provider available: %s", provider_name)
        else:
            logger.info(
                "Provider skipped (no API key): %s — set %s in .env",
                provider_name,
                model_raw["api_key_env"],
            )

    return AppConfig(
        defaults=defaults,
        models=models,
        prompts=prompts,
        generation=generation,
        catalog=catalog,
        available_providers=available_providers,
    )
