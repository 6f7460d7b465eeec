"""Event log interface.

Defines the Protocol for the durable, append-only, per-conversation store of
sequenced events. Implementations must make an append durable before it
returns and must only ever expose appended events to readers.
"""

from typing import List, Protocol
from uuid import UUID

from parley.conversation.events import ConversationEvent


class EventLog(Protocol):
    """Append-only log of sequenced conversation events.

    Sequences start at 1 and are gapless per conversation. The log never
    updates or deletes an event.
    """

    async def append(self, event: ConversationEvent) -> None:
        """Durably append an event.

        Args:
            event: Sequenced event; its sequence must be ``last_sequence + 1``

        Raises:
            SequenceConflictError: If the sequence does not directly follow the log
            EventLogError: If the event could not be stored
            ValueError: If the event is a service event
        """
        ...

    async def range(
        self, conversation_uuid: UUID, from_sequence: int, to_sequence: int
    ) -> List[ConversationEvent]:
        """Read events with ``from_sequence <= sequence <= to_sequence``.

        Returns:
            Events in ascending sequence order
        """
        ...

    async def range_from(
        self, conversation_uuid: UUID, from_sequence: int, count: int
    ) -> List[ConversationEvent]:
        """Read up to ``count`` events starting at ``from_sequence``."""
        ...

    async def range_to(
        self, conversation_uuid: UUID, to_sequence: int, count: int
    ) -> List[ConversationEvent]:
        """Read up to ``count`` events ending at ``to_sequence``."""
        ...

    async def last_sequence(self, conversation_uuid: UUID) -> int:
        """Get the sequence of the most recent event, 0 if there is none."""
        ...

    async def conversations(self) -> List[UUID]:
        """List every conversation that has at least one event."""
        ...
