"""In-memory implementation of EventLog.

Provides an asyncio-safe, list-based event log suitable for development,
testing and single-process deployments.
"""

import asyncio
from typing import Dict, List
from uuid import UUID

from parley.conversation.errors import SequenceConflictError
from parley.conversation.events import ConversationEvent


class InMemoryEventLog:
    """In-memory implementation of EventLog.

    Events of a conversation are kept in a list where index ``i`` holds the
    event with sequence ``i + 1``.

    Attributes:
        _events: Mapping of conversation UUID to its ordered events
        _lock: Asyncio lock guarding appends and reads
    """

    def __init__(self) -> None:
        """Initialize an empty event log."""
        self._events: Dict[UUID, List[ConversationEvent]] = {}
        self._lock = asyncio.Lock()

    async def append(self, event: ConversationEvent) -> None:
        if not event.is_durable:
            raise ValueError(f"'{event.type.value}' events are not stored in the event log")

        async with self._lock:
            events = self._events.setdefault(event.conversation_uuid, [])
            expected = len(events) + 1
            if event.sequence != expected:
                raise SequenceConflictError(event.conversation_uuid, expected, event.sequence)
            events.append(event)

    async def range(
        self, conversation_uuid: UUID, from_sequence: int, to_sequence: int
    ) -> List[ConversationEvent]:
        if to_sequence < from_sequence:
            return []
        start = max(from_sequence, 1) - 1
        async with self._lock:
            return list(self._events.get(conversation_uuid, [])[start:to_sequence])

    async def range_from(
        self, conversation_uuid: UUID, from_sequence: int, count: int
    ) -> List[ConversationEvent]:
        return await self.range(conversation_uuid, from_sequence, from_sequence + count - 1)

    async def range_to(
        self, conversation_uuid: UUID, to_sequence: int, count: int
    ) -> List[ConversationEvent]:
        return await self.range(conversation_uuid, max(1, to_sequence - count + 1), to_sequence)

    async def last_sequence(self, conversation_uuid: UUID) -> int:
        async with self._lock:
            return len(self._events.get(conversation_uuid, []))

    async def conversations(self) -> List[UUID]:
        async with self._lock:
            return [uuid for uuid, events in self._events.items() if events]
