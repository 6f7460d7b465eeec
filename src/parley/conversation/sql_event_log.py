"""SQL-backed implementation of EventLog.

Stores sequenced events through SQLAlchemy's async session. An append is
committed before it returns, and the unique (conversation_uuid, sequence)
constraint rejects a second writer that raced for the same number.
"""

import logging
from typing import List
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from parley.conversation.errors import EventLogError, SequenceConflictError
from parley.conversation.events import ConversationEvent, EventType
from parley.conversation.orm import ConversationEventModel
from parley.storage.database import Database

logger = logging.getLogger(__name__)


class SQLEventLog:
    """SQLAlchemy implementation of EventLog.

    Attributes:
        db: Database instance for session management
    """

    def __init__(self, db: Database):
        """Initialize the event log with a database connection.

        Args:
            db: Database instance for session management
        """
        self.db = db

    async def append(self, event: ConversationEvent) -> None:
        if not event.is_durable:
            raise ValueError(f"'{event.type.value}' events are not stored in the event log")

        uuid = str(event.conversation_uuid)
        try:
            async with self.db.session() as session:
                stmt = select(func.max(ConversationEventModel.sequence)).where(
                    ConversationEventModel.conversation_uuid == uuid
                )
                last = (await session.execute(stmt)).scalar_one_or_none() or 0
                if event.sequence != last + 1:
                    raise SequenceConflictError(event.conversation_uuid, last + 1, event.sequence)

                session.add(
                    ConversationEventModel(
                        conversation_uuid=uuid,
                        sequence=event.sequence,
                        event_type=event.type.value,
                        timestamp=event.timestamp,
                        actor=event.actor,
                        payload=event.payload,
                    )
                )
                await session.flush()
        except IntegrityError as exc:
            raise SequenceConflictError(event.conversation_uuid, None, event.sequence) from exc
        except SQLAlchemyError as exc:
            logger.error(
                "Failed to append event %s/%s: %s", uuid, event.sequence, exc, exc_info=True
            )
            raise EventLogError(f"Could not append event {event.sequence} to {uuid}") from exc

    async def range(
        self, conversation_uuid: UUID, from_sequence: int, to_sequence: int
    ) -> List[ConversationEvent]:
        if to_sequence < from_sequence:
            return []

        async with self.db.session() as session:
            stmt = (
                select(ConversationEventModel)
                .where(
                    ConversationEventModel.conversation_uuid == str(conversation_uuid),
                    ConversationEventModel.sequence >= from_sequence,
                    ConversationEventModel.sequence <= to_sequence,
                )
                .order_by(ConversationEventModel.sequence)
            )
            result = await session.execute(stmt)
            return [self._orm_to_event(row) for row in result.scalars().all()]

    async def range_from(
        self, conversation_uuid: UUID, from_sequence: int, count: int
    ) -> List[ConversationEvent]:
        return await self.range(conversation_uuid, from_sequence, from_sequence + count - 1)

    async def range_to(
        self, conversation_uuid: UUID, to_sequence: int, count: int
    ) -> List[ConversationEvent]:
        return await self.range(conversation_uuid, max(1, to_sequence - count + 1), to_sequence)

    async def last_sequence(self, conversation_uuid: UUID) -> int:
        async with self.db.session() as session:
            stmt = select(func.max(ConversationEventModel.sequence)).where(
                ConversationEventModel.conversation_uuid == str(conversation_uuid)
            )
            return (await session.execute(stmt)).scalar_one_or_none() or 0

    async def conversations(self) -> List[UUID]:
        async with self.db.session() as session:
            stmt = select(ConversationEventModel.conversation_uuid).distinct()
            result = await session.execute(stmt)
            return [UUID(value) for value in result.scalars().all()]

    def _orm_to_event(self, orm: ConversationEventModel) -> ConversationEvent:
        """Convert ORM model to domain event.

        Args:
            orm: SQLAlchemy ConversationEventModel instance

        Returns:
            ConversationEvent domain model
        """
        return ConversationEvent(
            type=EventType(orm.event_type),
            conversation_uuid=UUID(orm.conversation_uuid),
            sequence=orm.sequence,
            timestamp=orm.timestamp,
            actor=orm.actor,
            payload=orm.payload or {},
        )
