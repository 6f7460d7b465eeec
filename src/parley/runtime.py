"""Process startup and shutdown for a conversation engine.

Wires the configured logging, the SQL event log and the engine together, and
restores every conversation already in the log before handing the engine out.
"""

from contextlib import asynccontextmanager
from typing import AsyncGenerator, Optional

from parley.config import MessagingConfig, load_config_from_env
from parley.conversation.broadcast import EventSink
from parley.conversation.engine import Clock, ConversationEngine
from parley.conversation.sql_event_log import SQLEventLog
from parley.identity.directory import UserDirectory
from parley.observability.logging import get_logger, setup_logging
from parley.storage.database import Database, DatabaseConfig

logger = get_logger(__name__)


@asynccontextmanager
async def engine_lifespan(
    user_directory: UserDirectory,
    sink: Optional[EventSink] = None,
    config: Optional[MessagingConfig] = None,
    clock: Optional[Clock] = None,
) -> AsyncGenerator[ConversationEngine, None]:
    """Run a conversation engine backed by the configured database.

    Args:
        user_directory: Account lookup used to validate participants
        sink: Receiver of committed and service events
        config: Engine settings (defaults to load_config_from_env())
        clock: Callable returning the current Unix time in seconds

    Yields:
        Engine with every stored conversation restored

    Example:
        >>> async with engine_lifespan(InMemoryUserDirectory(["alice"])) as engine:
        ...     conversation = await engine.create_conversation("alice", ConversationConfig())
    """
    config = config or load_config_from_env()
    setup_logging(log_level=config.log_level, json_logs=config.json_logs)

    logger.info("engine_startup", database_url=config.database_url)
    database = Database(DatabaseConfig(url=config.database_url))
    await database.create_tables()

    try:
        engine = ConversationEngine(
            SQLEventLog(database), user_directory, sink=sink, config=config, clock=clock
        )
        restored = await engine.restore_all()
        logger.info("engine_startup_complete", restored_conversations=len(restored))

        yield engine
    finally:
        logger.info("engine_shutdown")
        await database.close()
