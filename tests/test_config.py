"""Tests for config/config_loader.py."""

from pathlib import Path

import pytest
import yaml

from config.config_loader import (
    AppConfig,
    GenerationConfig,
    ModelConfig,
    PromptsConfig,
    load_config,
)
from perspective_agent.catalog import PerspectiveCatalog, default_catalog

_GENERATION = {
    "classifier": {"max_tokens": 10, "temperature": 0.1},
    "perspective_tools": {"max_tokens": 800, "temperature": 0.7},
    "perspective_terse": {"max_tokens": 200, "temperature": 0.7},
    "synthesis": {"max_tokens": 800, "temperature": 0.7},
    "streaming": {"max_tokens": 800, "temperature": 0.8},
}

_PROMPTS = {
    "classifier": "Answer YES or NO.",
    "perspective": "{persona}\n{tool_clause}\nQ: {message}",
    "tools_granted": "You may call tools.",
    "tools_withheld": "Answer in 2-3 sentences.",
    "synthesis": "{perspectives}\n{tools_used}\nQ: {message}",
    "synthesis_streaming": "{perspectives}\nQ: {message}",
}


def _settings(**overrides) -> dict:
    settings = {
        "defaults": {
            "provider": "claude",
            "output_dir": "./output",
            "history_window": 6,
        },
        "models": {
            "claude": {
                "sdk": "anthropic",
                "model": "claude-sonnet-4-5",
                "api_key_env": "TEST_CLAUDE_KEY",
                "timeout_sec": 120,
            },
            "grok": {
                "sdk": "xai",
                "model": "grok-4",
                "api_key_env": "TEST_GROK_KEY",
                "timeout_sec": 60,
                "base_url": "https://api.x.ai/v1",
            },
        },
        "generation": _GENERATION,
        "prompts": _PROMPTS,
        "perspectives": [
            {
                "name": "engineer",
                "persona": "You are a pragmatic engineer.",
                "keywords": ["latency", "deploy"],
                "tools": ["get_system_metrics", "calculate"],
            },
            {
                "name": "researcher",
                "persona": "You dig up facts. Use {braces} sparingly.",
                "keywords": ["data"],
                "tools": "*",
            },
        ],
    }
    settings.update(overrides)
    return settings


def _write(tmp_path: Path, settings: dict) -> Path:
    path = tmp_path / "settings.yaml"
    path.write_text(yaml.dump(settings), encoding="utf-8")
    return path


@pytest.fixture
def minimal_settings(tmp_path: Path) -> Path:
    """Write a minimal valid settings.yaml to a temp path."""
    return _write(tmp_path, _settings())


def test_load_config_returns_app_config(minimal_settings):
    config = load_config(minimal_settings)
    assert isinstance(config, AppConfig)


def test_load_config_defaults(minimal_settings):
    config = load_config(minimal_settings)
    assert config.defaults.provider == "claude"
    assert config.defaults.history_window == 6
    assert config.defaults.enforce_tool_eligibility is False
    assert isinstance(config.defaults.output_dir, Path)


def test_load_config_models(minimal_settings):
    config = load_config(minimal_settings)
    assert set(config.models) == {"claude", "grok"}
    assert isinstance(config.models["claude"], ModelConfig)
    assert config.models["claude"].model == "claude-sonnet-4-5"
    assert config.models["claude"].base_url is None
    assert config.models["grok"].base_url == "https://api.x.ai/v1"


def test_load_config_prompts(minimal_settings):
    config = load_config(minimal_settings)
    assert isinstance(config.prompts, PromptsConfig)
    assert "{tool_clause}" in config.prompts.perspective


def test_load_config_generation(minimal_settings):
    config = load_config(minimal_settings)
    assert config.generation.classifier == GenerationConfig(max_tokens=10, temperature=0.1)
    options = config.generation.perspective_tools.options(tools_enabled=True)
    assert options.max_tokens == 800
    assert options.tools_enabled is True
    assert options.tool_filter is None


def test_load_config_builds_catalog(minimal_settings):
    config = load_config(minimal_settings)
    assert isinstance(config.catalog, PerspectiveCatalog)
    assert config.catalog.names() == ["engineer", "researcher"]

    engineer = config.catalog.get("engineer")
    assert engineer.keywords == ("latency", "deploy")
    assert engineer.can_use_tool("calculate") is True
    assert engineer.can_use_tool("search_web") is False
    assert config.catalog.research_perspective().name == "researcher"


def test_persona_is_embedded_in_wrapper(minimal_settings):
    researcher = load_config(minimal_settings).catalog.get("researcher")
    rendered = researcher.system_prompt_template.format(tool_clause="TOOLS", message="Why?")
    assert rendered == "You dig up facts. Use {braces} sparingly.\nTOOLS\nQ: Why?"


def test_missing_perspectives_falls_back_to_builtin_catalog(tmp_path):
    settings = _settings()
    del settings["perspectives"]
    config = load_config(_write(tmp_path, settings))
    assert config.catalog.names() == [
        "technical_expert",
        "business_advisor",
        "user_experience_advocate",
        "systems_architect",
        "data_analyst",
    ]
    template = config.catalog.get("technical_expert").system_prompt_template
    assert "{tool_clause}" in template
    assert "{message}" in template


def test_invalid_catalog_raises(tmp_path):
    settings = _settings(perspectives=[
        {"name": "solo", "persona": "Alone.", "keywords": ["x"], "tools": "*"},
    ])
    with pytest.raises(ValueError):
        load_config(_write(tmp_path, settings))


def test_load_config_available_providers_with_key(minimal_settings, monkeypatch):
    monkeypatch.setenv("TEST_CLAUDE_KEY", "sk-test-key")
    monkeypatch.delenv("TEST_GROK_KEY", raising=False)
    config = load_config(minimal_settings)
    assert config.available_providers == {"claude"}


def test_load_config_no_available_providers_without_key(minimal_settings, monkeypatch):
    monkeypatch.delenv("TEST_CLAUDE_KEY", raising=False)
    monkeypatch.setenv("TEST_GROK_KEY", "   ")
    config = load_config(minimal_settings)
    assert config.available_providers == set()


def test_load_config_missing_file():
    with pytest.raises(FileNotFoundError):
        load_config(Path("/nonexistent/settings.yaml"))


def test_shipped_settings_load():
    config = load_config()
    assert config.defaults.provider in config.models
    assert len(config.catalog) == 5
    assert config.catalog.research_perspective().name == "data_analyst"
    assert config.models["grok"].base_url


def test_shipped_perspectives_match_builtin_catalog():
    shipped = load_config().catalog
    builtin = default_catalog()
    assert shipped.names() == builtin.names()
    for perspective in builtin:
        configured = shipped.get(perspective.name)
        assert configured.keywords == perspective.keywords
        assert configured.tool_patterns == perspective.tool_patterns
