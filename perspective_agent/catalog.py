"""Read-only registry of expert perspectives."""

from collections.abc import Iterator

from perspective_agent.models import Perspective

MIN_CATALOG_SIZE = 2

DEFAULT_PERSPECTIVE_PROMPT = """{persona}

IMPORTANT: You are providing internal analysis that will be synthesized with other expert perspectives.
Focus on your domain expertise. Be concise but thorough in your analysis.

{tool_clause}

User Question: {message}

Provide your expert analysis from your specific domain perspective."""

_DEFAULT_PERSONAS: list[tuple[str, str, tuple[str, ...], tuple[str, ...] | None]] = [
    (
        "technical_expert",
        "You are a technical expert focused on implementation details, performance, scalability, "
        "and best practices. You can use available tools to gather technical data, check system "
        "status, or analyze performance metrics.",
        ("implementation", "performance", "scalability", "architecture", "code", "technical"),
        ("system", "performance", "database"),
    ),
    (
        "business_advisor",
        "You are a business strategist focused on ROI, cost-benefit analysis, and business impact. "
        "You can use tools to gather market data, financial information, or business metrics.",
        ("cost", "business", "ROI", "strategy", "budget", "value"),
        ("finance", "market", "analytics"),
    ),
    (
        "user_experience_advocate",
        "You are a UX advocate focused on user impact, usability, and user satisfaction. You can "
        "use tools to gather user feedback, analyze usage patterns, or check user interface metrics.",
        ("user", "experience", "usability", "interface", "satisfaction"),
        ("user", "feedback", "analytics"),
    ),
    (
        "systems_architect",
        "You are a systems architect focused on overall design, integration, and long-term "
        "maintainability. You can use tools to check system health, analyze architecture, or "
        "gather infrastructure data.",
        ("architecture", "design", "integration", "scalability", "maintainability"),
        ("system", "infrastructure", "monitoring"),
    ),
    (
        "data_analyst",
        "You are a data analyst focused on gathering, analyzing, and interpreting data to support "
        "decision-making. You excel at using tools to retrieve information and perform analysis.",
        ("data", "analysis", "metrics", "research", "information"),
        None,
    ),
]


def compose_template(wrapper: str, persona: str) -> str:
    """Embed a persona into the shared wrapper, keeping {message} and {tool_clause} open."""
    escaped = persona.replace("{", "{{").replace("}", "}}")
    return wrapper.format(persona=escaped, message="{message}", tool_clause="{tool_clause}")


class PerspectiveCatalog:
    """Ordered, immutable set of perspectives. Declaration order is significant."""

    def __init__(self, perspectives: list[Perspective] | tuple[Perspective, ...]) -> None:
        entries = tuple(perspectives)
        if len(entries) < MIN_CATALOG_SIZE:
            raise ValueError(
                f"Catalog needs at least {MIN_CATALOG_SIZE} perspectives, got {len(entries)}"
            )
        names = [p.name for p in entries]
        duplicates = sorted({n for n in names if names.count(n) > 1})
        if duplicates:
            raise ValueError(f"Duplicate perspective names: {', '.join(duplicates)}")
        universal = [p.name for p in entries if p.tool_patterns is None]
        if len(universal) > 1:
            raise ValueError(
                f"At most one perspective may be eligible for every tool, got: {', '.join(universal)}"
            )
        self._entries = entries
        self._by_name = {p.name: p for p in entries}

    def __iter__(self) -> Iterator[Perspective]:
        return iter(self._entries)

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, name: object) -> bool:
        return name in self._by_name

    def get(self, name: str) -> Perspective:
        try:
            return self._by_name[name]
        except KeyError:
            raise KeyError(f"Unknown perspective: {name}") from None

    def names(self) -> list[str]:
        return [p.name for p in self._entries]

    def research_perspective(self) -> Perspective | None:
        """The broad-research entry: the one whose tool eligibility is unconditional."""
        return next((p for p in self._entries if p.tool_patterns is None), None)


def default_catalog(wrapper: str = DEFAULT_PERSPECTIVE_PROMPT) -> PerspectiveCatalog:
    return PerspectiveCatalog(
        [
            Perspective(
                name=name,
                system_prompt_template=compose_template(wrapper, persona),
                keywords=keywords,
                tool_patterns=patterns,
            )
            for name, persona, keywords, patterns in _DEFAULT_PERSONAS
        ]
    )
