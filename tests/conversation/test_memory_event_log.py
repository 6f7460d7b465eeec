"""Tests for the in-memory event log."""

from uuid import uuid4

import pytest

from parley.conversation.errors import SequenceConflictError
from parley.conversation.events import ConversationEvent, EventType
from parley.conversation.memory_event_log import InMemoryEventLog


def event(conversation_uuid, sequence, event_type=EventType.MESSAGE_SENT):
    return ConversationEvent(
        type=event_type,
        conversation_uuid=conversation_uuid,
        sequence=sequence,
        timestamp=1000 + (sequence or 0),
        actor="alice",
        payload={"text": f"message {sequence}"},
    )


@pytest.fixture
async def filled():
    """Log holding ten events for one conversation."""
    log = InMemoryEventLog()
    conversation = uuid4()
    for sequence in range(1, 11):
        await log.append(event(conversation, sequence))
    return log, conversation


class TestInMemoryEventLog:
    """Test suite for InMemoryEventLog."""

    async def test_unknown_conversation_is_empty(self) -> None:
        log = InMemoryEventLog()

        assert await log.last_sequence(uuid4()) == 0
        assert await log.conversations() == []

    async def test_append_rejects_gap(self) -> None:
        log = InMemoryEventLog()
        conversation = uuid4()

        with pytest.raises(SequenceConflictError) as exc_info:
            await log.append(event(conversation, 2))

        assert exc_info.value.expected == 1
        assert await log.last_sequence(conversation) == 0

    async def test_append_rejects_duplicate(self, filled) -> None:
        log, conversation = filled

        with pytest.raises(SequenceConflictError):
            await log.append(event(conversation, 10))

    async def test_append_rejects_service_event(self) -> None:
        with pytest.raises(ValueError, match="typing"):
            await InMemoryEventLog().append(event(uuid4(), None, EventType.TYPING))

    async def test_range_inclusive(self, filled) -> None:
        log, conversation = filled

        events = await log.range(conversation, 5, 7)

        assert [e.sequence for e in events] == [5, 6, 7]

    async def test_range_past_end_truncated(self, filled) -> None:
        log, conversation = filled

        events = await log.range(conversation, 9, 50)

        assert [e.sequence for e in events] == [9, 10]

    async def test_inverted_range_empty(self, filled) -> None:
        log, conversation = filled

        assert await log.range(conversation, 7, 5) == []

    async def test_range_from_and_to(self, filled) -> None:
        log, conversation = filled

        from_events = await log.range_from(conversation, 3, 2)
        to_events = await log.range_to(conversation, 2, 5)

        assert [e.sequence for e in from_events] == [3, 4]
        assert [e.sequence for e in to_events] == [1, 2]

    async def test_conversations_lists_logged_uuids(self, filled) -> None:
        log, conversation = filled

        assert await log.conversations() == [conversation]
