"""Bounded views over the caller-owned conversation history."""

from perspective_agent.models import ROLE_SYSTEM, ConversationTurn

DEFAULT_HISTORY_WINDOW = 4


def recent_turns(
    history: list[ConversationTurn],
    limit: int = DEFAULT_HISTORY_WINDOW,
) -> list[ConversationTurn]:
    """Return the last `limit` non-system turns, oldest first.

    The history itself is never modified.
    """
    if limit <= 0:
        return []
    non_system = [turn for turn in history if turn.role != ROLE_SYSTEM]
    return non_system[-limit:]


def split_system(messages: list[ConversationTurn]) -> tuple[str, list[ConversationTurn]]:
    """Separate system turns from the rest, for SDKs that take `system` apart."""
    system_parts = [m.content for m in messages if m.role == ROLE_SYSTEM]
    rest = [m for m in messages if m.role != ROLE_SYSTEM]
    return "\n\n".join(system_parts), rest
