"""Per-conversation sequence allocation.

The sequencer is the serialization point of the engine. Each conversation
has its own asyncio lock; while a caller holds a conversation's region it is
the only one that can allocate that conversation's next sequence number,
append the event and apply it. Numbers that are allocated but never
committed are handed out again, so the log has no gaps.
"""

import asyncio
from contextlib import asynccontextmanager
from typing import AsyncIterator, Dict
from uuid import UUID

from parley.conversation.event_log import EventLog


class SequenceSlot:
    """The allocation made inside one sequencer region.

    Attributes:
        conversation_uuid: Conversation the slot belongs to
        sequence: Number that the next event of the conversation will carry
    """

    def __init__(self, conversation_uuid: UUID, sequence: int) -> None:
        self.conversation_uuid = conversation_uuid
        self.sequence = sequence
        self.reserved = False
        self.committed = False

    def next_sequence(self) -> int:
        """Reserve the slot's sequence number for the event being built."""
        self.reserved = True
        return self.sequence

    def commit(self) -> None:
        """Mark the reserved number as durably appended."""
        if not self.reserved:
            raise RuntimeError("Cannot commit a sequence that was never reserved")
        self.committed = True


class Sequencer:
    """Hands out gapless, strictly increasing sequence numbers per conversation.

    Counters are seeded lazily from the event log and cached afterwards. When
    a reserved number is not committed, the cached counter is dropped and
    re-read from the log on next use, so a failed append never leaves a gap.

    Example:
        >>> sequencer = Sequencer(event_log)
        >>> async with sequencer.region(conversation_uuid) as slot:
        ...     event = build_event(sequence=slot.next_sequence())
        ...     await event_log.append(event)
        ...     slot.commit()
    """

    def __init__(self, event_log: EventLog) -> None:
        """Initialize the sequencer.

        Args:
            event_log: Log used to seed each conversation's counter
        """
        self._log = event_log
        self._locks: Dict[UUID, asyncio.Lock] = {}
        self._counters: Dict[UUID, int] = {}

    def _lock_for(self, conversation_uuid: UUID) -> asyncio.Lock:
        lock = self._locks.get(conversation_uuid)
        if lock is None:
            lock = self._locks[conversation_uuid] = asyncio.Lock()
        return lock

    @asynccontextmanager
    async def region(self, conversation_uuid: UUID) -> AsyncIterator[SequenceSlot]:
        """Enter the conversation's mutual-exclusion region.

        Yields:
            Slot holding the next sequence number of the conversation
        """
        async with self._lock_for(conversation_uuid):
            if conversation_uuid not in self._counters:
                self._counters[conversation_uuid] = await self._log.last_sequence(
                    conversation_uuid
                )

            slot = SequenceSlot(conversation_uuid, self._counters[conversation_uuid] + 1)
            try:
                yield slot
            finally:
                if slot.committed:
                    self._counters[conversation_uuid] = slot.sequence
                elif slot.reserved:
                    self._counters.pop(conversation_uuid, None)

    def is_busy(self, conversation_uuid: UUID) -> bool:
        """Check whether a mutation currently holds the conversation's region."""
        lock = self._locks.get(conversation_uuid)
        return lock is not None and lock.locked()
