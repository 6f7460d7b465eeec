"""Tests for database configuration and session management."""

import pytest
from sqlalchemy import func, select

from parley.conversation.orm import ConversationEventModel
from parley.storage.database import Database, DatabaseConfig


def test_database_config_defaults():
    """Test DatabaseConfig default values."""
    config = DatabaseConfig()

    assert config.url == "sqlite+aiosqlite:///:memory:"
    assert config.echo is False
    assert config.pool_size == 5
    assert config.max_overflow == 10


async def test_health_check(test_db):
    """Test health check against an in-memory database."""
    assert await test_db.health_check() is True


async def test_session_commits(test_db):
    """Test that a session commits when the block exits normally."""
    async with test_db.session() as session:
        session.add(
            ConversationEventModel(
                conversation_uuid="c-1",
                sequence=1,
                event_type="created",
                timestamp=1,
                actor="alice",
                payload={},
            )
        )

    async with test_db.session() as session:
        count = await session.scalar(select(func.count(ConversationEventModel.id)))

    assert count == 1


async def test_session_rolls_back_on_error(test_db):
    """Test that a session rolls back when the block raises."""
    with pytest.raises(RuntimeError):
        async with test_db.session() as session:
            session.add(
                ConversationEventModel(
                    conversation_uuid="c-1",
                    sequence=1,
                    event_type="created",
                    timestamp=1,
                    actor="alice",
                    payload={},
                )
            )
            await session.flush()
            raise RuntimeError("boom")

    async with test_db.session() as session:
        count = await session.scalar(select(func.count(ConversationEventModel.id)))

    assert count == 0


async def test_drop_and_recreate_tables():
    """Test that tables can be dropped and created again."""
    db = Database(DatabaseConfig())
    await db.create_tables()
    await db.drop_tables()
    await db.create_tables()

    async with db.session() as session:
        count = await session.scalar(select(func.count(ConversationEventModel.id)))

    assert count == 0
    await db.close()
