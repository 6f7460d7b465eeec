"""Pytest configuration and shared fixtures for the test suite."""

from typing import AsyncGenerator, List, Sequence, Tuple

import pytest

from parley.config import MessagingConfig
from parley.conversation.engine import ConversationEngine
from parley.conversation.events import ConversationEvent
from parley.conversation.memory_event_log import InMemoryEventLog
from parley.conversation.models import ConversationConfig, ParticipantRef, PermissionFlags
from parley.identity.directory import InMemoryUserDirectory
from parley.storage.database import Database, DatabaseConfig

USERS = ["alice", "bob", "carol", "dave", "erin"]


class RecordingSink:
    """EventSink that keeps every published event for inspection."""

    def __init__(self) -> None:
        self.published: List[Tuple[ConversationEvent, List[str]]] = []
        self.ephemeral: List[Tuple[ConversationEvent, List[str]]] = []

    async def publish(self, event: ConversationEvent, recipients: Sequence[str]) -> None:
        self.published.append((event, list(recipients)))

    async def publish_ephemeral(
        self, event: ConversationEvent, recipients: Sequence[str]
    ) -> None:
        self.ephemeral.append((event, list(recipients)))

    @property
    def events(self) -> List[ConversationEvent]:
        return [event for event, _ in self.published]


class FakeClock:
    """Controllable Unix clock."""

    def __init__(self, now: int = 1_700_000_000) -> None:
        self.now = now

    def __call__(self) -> int:
        return self.now

    def advance(self, seconds: int) -> None:
        self.now += seconds


@pytest.fixture
async def test_db() -> AsyncGenerator[Database, None]:
    """Create an in-memory SQLite database for testing.

    Yields:
        Database instance with the event table created
    """
    db = Database(DatabaseConfig(url="sqlite+aiosqlite:///:memory:", echo=False))
    await db.create_tables()

    yield db

    await db.close()


@pytest.fixture
def directory() -> InMemoryUserDirectory:
    """User directory holding a handful of live users."""
    return InMemoryUserDirectory(USERS)


@pytest.fixture
def event_log() -> InMemoryEventLog:
    return InMemoryEventLog()


@pytest.fixture
def sink() -> RecordingSink:
    return RecordingSink()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def config() -> MessagingConfig:
    return MessagingConfig()


@pytest.fixture
def engine(event_log, directory, sink, config, clock) -> ConversationEngine:
    """Engine over an in-memory log, wired to a recording sink and a fake clock."""
    return ConversationEngine(event_log, directory, sink=sink, config=config, clock=clock)


@pytest.fixture
def make_engine(event_log, directory, sink, clock):
    """Build an engine sharing the fixtures above, with config overrides."""

    def _make(log=None, **overrides) -> ConversationEngine:
        return ConversationEngine(
            log or event_log,
            directory,
            sink=sink,
            config=MessagingConfig(**overrides),
            clock=clock,
        )

    return _make


@pytest.fixture
async def group(engine):
    """Group conversation owned by alice, with bob as manager and carol as member."""
    return await engine.create_conversation(
        "alice",
        ConversationConfig(
            title="Team",
            participants=[
                ParticipantRef(
                    user_id="bob",
                    permissions=PermissionFlags(can_manage_participants=True),
                ),
                ParticipantRef(user_id="carol"),
            ],
        ),
    )
