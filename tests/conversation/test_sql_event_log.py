"""Tests for the SQL-backed event log.

Runs SQLEventLog against an in-memory SQLite database, focusing on sequence
integrity and payload round-trips through the JSON column.
"""

from uuid import uuid4

import pytest

from parley.conversation.errors import SequenceConflictError
from parley.conversation.events import ConversationEvent, EventType
from parley.conversation.models import ConversationConfig, ParticipantRef
from parley.conversation.sql_event_log import SQLEventLog


def event(conversation_uuid, sequence, event_type=EventType.MESSAGE_SENT, payload=None):
    return ConversationEvent(
        type=event_type,
        conversation_uuid=conversation_uuid,
        sequence=sequence,
        timestamp=1_700_000_000 + (sequence or 0),
        actor="alice",
        payload=payload if payload is not None else {"text": f"message {sequence}"},
    )


@pytest.fixture
def log(test_db) -> SQLEventLog:
    return SQLEventLog(test_db)


class TestSQLEventLog:
    """Test suite for SQLEventLog."""

    async def test_append_and_read_back(self, log) -> None:
        conversation = uuid4()
        participants = {"participants": [{"user_id": "bob", "permissions": {"can_write": True}}]}
        await log.append(event(conversation, 1, EventType.CREATED, payload=participants))
        await log.append(event(conversation, 2))

        events = await log.range(conversation, 1, 2)

        assert [e.sequence for e in events] == [1, 2]
        assert events[0].type == EventType.CREATED
        assert events[0].payload == participants
        assert events[0].conversation_uuid == conversation
        assert events[1].timestamp == 1_700_000_002

    async def test_last_sequence(self, log) -> None:
        conversation = uuid4()
        assert await log.last_sequence(conversation) == 0

        for sequence in range(1, 4):
            await log.append(event(conversation, sequence))

        assert await log.last_sequence(conversation) == 3

    async def test_append_rejects_gap(self, log) -> None:
        conversation = uuid4()
        await log.append(event(conversation, 1))

        with pytest.raises(SequenceConflictError):
            await log.append(event(conversation, 3))

        assert await log.last_sequence(conversation) == 1

    async def test_append_rejects_duplicate(self, log) -> None:
        conversation = uuid4()
        await log.append(event(conversation, 1))

        with pytest.raises(SequenceConflictError):
            await log.append(event(conversation, 1))

    async def test_append_rejects_service_event(self, log) -> None:
        with pytest.raises(ValueError):
            await log.append(event(uuid4(), None, EventType.READ, payload={"sequence": 1}))

    async def test_conversations_are_isolated(self, log) -> None:
        first, second = uuid4(), uuid4()
        await log.append(event(first, 1))
        await log.append(event(second, 1))
        await log.append(event(second, 2))

        assert await log.last_sequence(first) == 1
        assert [e.sequence for e in await log.range(second, 1, 10)] == [1, 2]
        assert set(await log.conversations()) == {first, second}

    async def test_range_from_and_to(self, log) -> None:
        conversation = uuid4()
        for sequence in range(1, 8):
            await log.append(event(conversation, sequence))

        from_events = await log.range_from(conversation, 6, 5)
        to_events = await log.range_to(conversation, 3, 2)

        assert [e.sequence for e in from_events] == [6, 7]
        assert [e.sequence for e in to_events] == [2, 3]


async def test_engine_restores_from_sql_log(test_db, make_engine):
    """Test that a conversation survives a restart on the SQL log."""
    engine = make_engine(log=SQLEventLog(test_db))
    conversation = await engine.create_conversation(
        "alice", ConversationConfig(uber=True, participants=[ParticipantRef(user_id="bob")])
    )
    await engine.send_message(conversation.uuid, "bob", text="persisted")
    await engine.leave_conversation(conversation.uuid, "bob")

    restarted = make_engine(log=SQLEventLog(test_db))
    assert await restarted.restore_all() == [conversation.uuid]

    restored = restarted.get_conversation(conversation.uuid)
    assert restored.uber is True
    assert restored.last_sequence == 3
    assert [p.user_id for p in restored.active_participants] == ["alice"]
    result = await restarted.retransmit_events(conversation.uuid, "bob", 1, 3)
    assert result.events[1].payload["text"] == "persisted"
