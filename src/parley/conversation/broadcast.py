"""Fan-out of conversation events to connected sessions.

The engine hands every committed event to an ``EventSink`` after the
conversation's region is released, and service events (read markers,
typing) through a separate ephemeral channel. Delivery failures are logged
and never affect the event, which is already durable.
"""

import asyncio
from typing import Awaitable, Callable, Dict, List, Protocol, Sequence
from uuid import uuid4

from parley.conversation.events import ConversationEvent
from parley.observability.logging import get_logger

logger = get_logger(__name__)

EventCallback = Callable[[ConversationEvent], Awaitable[None]]


class EventSink(Protocol):
    """Receiver of events for delivery to other sessions."""

    async def publish(self, event: ConversationEvent, recipients: Sequence[str]) -> None:
        """Deliver a committed, sequenced event.

        Args:
            event: Durable event
            recipients: Users whose sessions should receive it
        """
        ...

    async def publish_ephemeral(
        self, event: ConversationEvent, recipients: Sequence[str]
    ) -> None:
        """Deliver a service event that is never stored."""
        ...


class NullSink:
    """EventSink that drops every event."""

    async def publish(self, event: ConversationEvent, recipients: Sequence[str]) -> None:
        return

    async def publish_ephemeral(
        self, event: ConversationEvent, recipients: Sequence[str]
    ) -> None:
        return


class Subscription:
    """Handle returned by ``Broadcaster.subscribe``."""

    def __init__(self, broadcaster: "Broadcaster", user_id: str, session_id: str) -> None:
        self.user_id = user_id
        self.session_id = session_id
        self._broadcaster = broadcaster

    def cancel(self) -> None:
        """Stop receiving events on this session."""
        self._broadcaster.unsubscribe(self.user_id, self.session_id)


class Broadcaster:
    """In-process EventSink delivering events to subscribed sessions.

    A user may hold several sessions; each receives every event addressed to
    that user. A failing callback is logged and does not prevent delivery to
    the remaining sessions.

    Example:
        >>> broadcaster = Broadcaster()
        >>> async def on_event(event):
        ...     print(event.type, event.sequence)
        >>> subscription = broadcaster.subscribe("alice", on_event)
    """

    def __init__(self) -> None:
        """Initialize a broadcaster without subscribers."""
        self._sessions: Dict[str, Dict[str, EventCallback]] = {}

    def subscribe(self, user_id: str, callback: EventCallback) -> Subscription:
        """Register a session callback for a user.

        Args:
            user_id: User owning the session
            callback: Coroutine function called with each delivered event

        Returns:
            Subscription handle used to cancel delivery
        """
        session_id = str(uuid4())
        self._sessions.setdefault(user_id, {})[session_id] = callback
        return Subscription(self, user_id, session_id)

    def unsubscribe(self, user_id: str, session_id: str) -> None:
        sessions = self._sessions.get(user_id)
        if not sessions:
            return
        sessions.pop(session_id, None)
        if not sessions:
            del self._sessions[user_id]

    def session_count(self, user_id: str) -> int:
        return len(self._sessions.get(user_id, {}))

    async def publish(self, event: ConversationEvent, recipients: Sequence[str]) -> None:
        await self._deliver(event, recipients)

    async def publish_ephemeral(
        self, event: ConversationEvent, recipients: Sequence[str]
    ) -> None:
        await self._deliver(event, recipients)

    async def _deliver(self, event: ConversationEvent, recipients: Sequence[str]) -> None:
        callbacks: List[EventCallback] = []
        for user_id in dict.fromkeys(recipients):
            callbacks.extend(self._sessions.get(user_id, {}).values())
        if not callbacks:
            return

        results = await asyncio.gather(
            *(callback(event) for callback in callbacks), return_exceptions=True
        )
        for result in results:
            if isinstance(result, Exception):
                logger.warning(
                    "broadcast_failed",
                    event_type=event.type.value,
                    sequence=event.sequence,
                    error=str(result),
                )
