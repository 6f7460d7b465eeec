"""Rate limiting for typing notifications.

A user may send at most one typing notification per conversation within the
cooldown window. Each (conversation, user) pair gets its own leaky bucket of
capacity one that drains over the cooldown period.
"""

import asyncio
from typing import Dict, Tuple
from uuid import UUID

from aiolimiter import AsyncLimiter


class TypingLimiter:
    """Per-(conversation, user) cooldown for typing notifications.

    Example:
        >>> limiter = TypingLimiter(cooldown_seconds=10.0)
        >>> await limiter.check_and_consume(conversation_uuid, "alice")
        True
        >>> await limiter.check_and_consume(conversation_uuid, "alice")
        False
    """

    def __init__(self, cooldown_seconds: float = 10.0) -> None:
        """Initialize the limiter.

        Args:
            cooldown_seconds: Window during which a second notification is refused
        """
        self.cooldown_seconds = cooldown_seconds
        self._limiters: Dict[Tuple[UUID, str], AsyncLimiter] = {}
        self._lock = asyncio.Lock()

    async def check_and_consume(self, conversation_uuid: UUID, actor: str) -> bool:
        """Check the cooldown and consume it if the notification is allowed.

        The check and the consumption happen under one lock, so two
        simultaneous calls can never both succeed.

        Args:
            conversation_uuid: Conversation the notification is sent to
            actor: User sending the notification

        Returns:
            True if allowed and consumed, False if still cooling down
        """
        key = (conversation_uuid, actor)
        async with self._lock:
            limiter = self._limiters.get(key)
            if limiter is None:
                limiter = AsyncLimiter(max_rate=1, time_period=self.cooldown_seconds)
                self._limiters[key] = limiter

            if not limiter.has_capacity(1):
                return False

            await limiter.acquire(1)
            return True

    def forget(self, conversation_uuid: UUID, actor: str) -> None:
        """Drop the cooldown state of a user, e.g. after they leave the conversation."""
        self._limiters.pop((conversation_uuid, actor), None)
