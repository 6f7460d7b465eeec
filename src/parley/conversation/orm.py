"""SQLAlchemy ORM model for the conversation event log.

One row per durable event. The unique constraint on
(conversation_uuid, sequence) is the storage-level guarantee that no two
events of a conversation share a sequence number.
"""

from typing import Optional

from sqlalchemy import JSON, BigInteger, Index, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column  # type: ignore[attr-defined]

from parley.storage.base_model import Base


class ConversationEventModel(Base):  # type: ignore[valid-type,misc]
    """ORM model for sequenced conversation events.

    Attributes:
        id: Surrogate primary key
        conversation_uuid: Conversation the event belongs to (UUID string)
        sequence: Position of the event in the conversation log
        event_type: Event type tag
        timestamp: Unix time (seconds) the event was emitted
        actor: User who caused the event
        payload: Type-specific event data stored as JSON
    """

    __tablename__ = "conversation_events"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    conversation_uuid: Mapped[str] = mapped_column(String(36), nullable=False)
    sequence: Mapped[int] = mapped_column(Integer, nullable=False)

    event_type: Mapped[str] = mapped_column(String(50), nullable=False)
    timestamp: Mapped[int] = mapped_column(BigInteger, nullable=False)
    actor: Mapped[str] = mapped_column(String(255), nullable=False)

    # Avoid 'metadata' - SQLAlchemy reserved word
    payload: Mapped[Optional[dict]] = mapped_column(JSON, nullable=True)

    __table_args__ = (
        UniqueConstraint("conversation_uuid", "sequence", name="uq_conversation_sequence"),
        Index("idx_conversation_event_type", "conversation_uuid", "event_type"),
    )
