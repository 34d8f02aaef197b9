"""Keyword-driven perspective selection. Pure: no backend calls."""

import logging

from perspective_agent.catalog import PerspectiveCatalog
from perspective_agent.models import Perspective

logger = logging.getLogger(__name__)

MIN_PERSPECTIVES = 2
MAX_PERSPECTIVES = 4


def _truncate(selected: list[Perspective], protected: Perspective | None) -> list[Perspective]:
    """Cut to MAX_PERSPECTIVES in accumulated order; a protected entry keeps its slot."""
    if len(selected) <= MAX_PERSPECTIVES:
        return selected
    if protected is None or protected in selected[:MAX_PERSPECTIVES]:
        return selected[:MAX_PERSPECTIVES]
    kept = [p for p in selected if p != protected][: MAX_PERSPECTIVES - 1]
    return kept + [protected]


def select_perspectives(
    message: str,
    tools_needed: bool,
    catalog: PerspectiveCatalog,
) -> list[Perspective]:
    """Pick 2 to 4 perspectives for a message.

    Order of the result: keyword matches in catalog order, then the research
    perspective when tools are needed, then catalog fill-ins. The order is
    stable for identical inputs and is reused for the internal dialog.
    """
    selected = [p for p in catalog if p.matches(message)]

    # When tools are needed the research entry must survive truncation,
    # whether it matched a keyword or was appended here.
    protected: Perspective | None = None
    research = catalog.research_perspective()
    if tools_needed and research is not None:
        if research not in selected:
            selected.append(research)
        protected = research

    if len(selected) < MIN_PERSPECTIVES:
        for perspective in catalog:
            if len(selected) >= MIN_PERSPECTIVES:
                break
            if perspective not in selected:
                selected.append(perspective)
    else:
        selected = _truncate(selected, protected)

    logger.info(
        "Selected perspectives: %s (tools needed: %s)",
        ", ".join(p.name for p in selected),
        tools_needed,
    )
    return selected
