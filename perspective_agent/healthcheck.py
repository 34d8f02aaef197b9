"""Backend health check: ping the configured provider before the first message."""

import asyncio
import logging

from perspective_agent.models import ROLE_USER, CompletionOptions, ConversationTurn
from perspective_agent.providers.base import AIProvider

logger = logging.getLogger(__name__)

_PING_PROMPT = "Reply with the word OK only."
_PING_OPTIONS = CompletionOptions(max_tokens=5, temperature=0.0)
_TIMEOUT_SEC = 15.0


async def check_provider(provider: AIProvider) -> tuple[bool, str]:
    """Ping a single provider. Returns (ok, error_message); error_message is "" when ok."""
    try:
        await asyncio.wait_for(
            provider.generate([ConversationTurn(role=ROLE_USER, content=_PING_PROMPT)], _PING_OPTIONS),
            timeout=_TIMEOUT_SEC,
        )
        return True, ""
    except Exception as exc:
        logger.debug("Health check failed for %s: %s", provider.name(), exc)
        return False, str(exc) or type(exc).__name__
