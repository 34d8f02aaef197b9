"""Tests for perspective_agent/selector.py."""

import itertools

import pytest

from perspective_agent.catalog import PerspectiveCatalog
from perspective_agent.models import Perspective
from perspective_agent.selector import MAX_PERSPECTIVES, MIN_PERSPECTIVES, select_perspectives

_MESSAGES = [
    "",
    "hello there",
    "What's the COSTs?",
    "We're getting rate limited by our API provider. What's our system performance?",
    "Performance, cost, user experience, architecture design and data analysis all matter.",
    "the coast is clear",
    "Our technical budget for the interface integration research",
]


def _names(perspectives):
    return [p.name for p in perspectives]


@pytest.mark.parametrize("message", _MESSAGES)
@pytest.mark.parametrize("tools_needed", [True, False])
def test_cardinality_and_uniqueness(sample_catalog, message, tools_needed):
    selected = select_perspectives(message, tools_needed, sample_catalog)
    names = _names(selected)
    assert MIN_PERSPECTIVES <= len(selected) <= MAX_PERSPECTIVES
    assert len(set(names)) == len(names)
    assert all(name in sample_catalog for name in names)


@pytest.mark.parametrize("message", _MESSAGES)
def test_research_perspective_present_when_tools_needed(sample_catalog, message):
    assert "data_analyst" in _names(select_perspectives(message, True, sample_catalog))


def test_keyword_match_is_case_insensitive_substring(sample_catalog):
    assert "business_advisor" in _names(select_perspectives("What's the COSTs?", False, sample_catalog))
    assert "business_advisor" in _names(select_perspectives("the cost is high", False, sample_catalog))
    # "user" selects the UX advocate; the fill-in then takes technical_expert, not business_advisor
    assert _names(select_perspectives("the coast is clear for our user", False, sample_catalog)) == [
        "user_experience_advocate",
        "technical_expert",
    ]


def test_zero_matches_fill_from_catalog_order(sample_catalog):
    selected = select_perspectives("hello there", False, sample_catalog)
    assert _names(selected) == ["technical_expert", "business_advisor"]


def test_single_match_filled_to_two(sample_catalog):
    selected = select_perspectives("the cost is high", False, sample_catalog)
    assert _names(selected) == ["business_advisor", "technical_expert"]


def test_tools_needed_only_research_filled_to_two(sample_catalog):
    selected = select_perspectives("hello there", True, sample_catalog)
    assert _names(selected) == ["data_analyst", "technical_expert"]


def test_rate_limit_scenario(sample_catalog):
    message = "We're getting rate limited by our API provider. What's our system performance?"
    selected = select_perspectives(message, True, sample_catalog)
    assert _names(selected) == ["technical_expert", "data_analyst"]


def test_all_five_match_truncated_to_four_in_catalog_order(sample_catalog):
    message = "Performance, cost, user experience, architecture design and data analysis all matter."
    selected = select_perspectives(message, False, sample_catalog)
    assert _names(selected) == [
        "technical_expert",
        "business_advisor",
        "user_experience_advocate",
        "systems_architect",
    ]


def test_forced_research_survives_truncation(sample_catalog):
    # Four keyword matches that exclude data_analyst, plus tools needed
    message = "performance cost user design"
    selected = select_perspectives(message, True, sample_catalog)
    assert _names(selected) == [
        "technical_expert",
        "business_advisor",
        "user_experience_advocate",
        "data_analyst",
    ]


def test_keyword_matched_research_survives_truncation(sample_catalog):
    # All five match by keyword, data_analyst last in catalog order
    message = "performance cost usability design data"
    selected = _names(select_perspectives(message, True, sample_catalog))
    assert selected == [
        "technical_expert",
        "business_advisor",
        "user_experience_advocate",
        "data_analyst",
    ]


def test_keyword_matched_research_may_be_dropped_without_tools(sample_catalog):
    message = "performance cost usability design data"
    selected = _names(select_perspectives(message, False, sample_catalog))
    assert "data_analyst" not in selected
    assert len(selected) == MAX_PERSPECTIVES


def test_selection_is_deterministic(sample_catalog):
    message = "Our technical budget for the interface integration research"
    first = select_perspectives(message, True, sample_catalog)
    second = select_perspectives(message, True, sample_catalog)
    assert first == second


def test_catalog_without_research_perspective_ignores_tool_flag():
    catalog = PerspectiveCatalog([
        Perspective(name=n, system_prompt_template="{tool_clause}{message}", keywords=(n,), tool_patterns=("x",))
        for n in ["alpha", "beta", "gamma"]
    ])
    assert _names(select_perspectives("gamma", True, catalog)) == ["gamma", "alpha"]


def test_exhaustive_keyword_combinations(sample_catalog):
    """Every combination of perspective triggers keeps the invariants."""
    triggers = ["performance", "cost", "usability", "maintainability", "metrics"]
    for size in range(len(triggers) + 1):
        for combo in itertools.combinations(triggers, size):
            for tools_needed in (True, False):
                names = _names(select_perspectives(" ".join(combo), tools_needed, sample_catalog))
                assert MIN_PERSPECTIVES <= len(names) <= MAX_PERSPECTIVES
                assert len(set(names)) == len(names)
                if tools_needed:
                    assert "data_analyst" in names
