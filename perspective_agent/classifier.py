"""Tool-need classification: one constrained YES/NO backend call."""

import logging

from perspective_agent.models import ROLE_SYSTEM, ROLE_USER, CompletionOptions, ConversationTurn
from perspective_agent.providers.base import AIProvider, EmptyResponseError

logger = logging.getLogger(__name__)


def parse_answer(raw: str) -> bool | None:
    """Map a classifier reply to True/False, or None when it is neither."""
    normalized = raw.strip().upper()
    if normalized.startswith("YES"):
        return True
    if normalized.startswith("NO"):
        return False
    return None


async def needs_tools(
    provider: AIProvider,
    message: str,
    history: list[ConversationTurn],
    prompt: str,
    options: CompletionOptions,
) -> bool:
    """Ask the backend whether `message` needs tool-backed data.

    History is accepted for interface symmetry but not sent: the decision is
    made on the raw message alone. An empty or unrecognised reply resolves to
    False; transport errors propagate.
    """
    messages = [
        ConversationTurn(role=ROLE_SYSTEM, content=prompt),
        ConversationTurn(role=ROLE_USER, content=message),
    ]
    try:
        completion = await provider.generate(messages, options)
    except EmptyResponseError:
        logger.warning("Tool-need classifier returned nothing; assuming no tools needed")
        return False

    decision = parse_answer(completion.content)
    if decision is None:
        logger.warning(
            "Unparsable tool-need answer %r; assuming no tools needed",
            completion.content[:50],
        )
        return False

    logger.info("Tool-need classification: %s", "YES" if decision else "NO")
    return decision
