"""Conversation events.

Every change to a conversation is described by a ``ConversationEvent``: a
shared envelope (conversation, sequence, timestamp, actor) tagged with an
``EventType`` and carrying a type-specific payload. Conversation and message
events are sequenced, durable and can be retransmitted. Service events
(read markers, typing notifications) are ephemeral: they have no sequence
and never reach the event log.
"""

from enum import Enum
from typing import Any, Dict, List, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field


class EventType(str, Enum):
    """Type tag of a conversation event."""

    CREATED = "created"
    EDITED = "edited"
    PARTICIPANTS_ADDED = "participants_added"
    PARTICIPANTS_EDITED = "participants_edited"
    PARTICIPANTS_REMOVED = "participants_removed"
    JOINED = "joined"
    LEFT = "left"
    MESSAGE_SENT = "message_sent"
    READ = "read"
    TYPING = "typing"


class EventCategory(str, Enum):
    """Delivery class of an event.

    CONVERSATION and MESSAGE events are sequenced and retransmittable,
    SERVICE events are broadcast once and forgotten.
    """

    CONVERSATION = "conversation"
    MESSAGE = "message"
    SERVICE = "service"


EVENT_CATEGORIES: Dict[EventType, EventCategory] = {
    EventType.CREATED: EventCategory.CONVERSATION,
    EventType.EDITED: EventCategory.CONVERSATION,
    EventType.PARTICIPANTS_ADDED: EventCategory.CONVERSATION,
    EventType.PARTICIPANTS_EDITED: EventCategory.CONVERSATION,
    EventType.PARTICIPANTS_REMOVED: EventCategory.CONVERSATION,
    EventType.JOINED: EventCategory.CONVERSATION,
    EventType.LEFT: EventCategory.CONVERSATION,
    EventType.MESSAGE_SENT: EventCategory.MESSAGE,
    EventType.READ: EventCategory.SERVICE,
    EventType.TYPING: EventCategory.SERVICE,
}

RETRANSMITTABLE_CATEGORIES = frozenset({EventCategory.CONVERSATION, EventCategory.MESSAGE})


class ConversationEvent(BaseModel):
    """A single event emitted by a conversation.

    Attributes:
        type: Event type tag
        conversation_uuid: Conversation the event belongs to
        sequence: Position in the conversation log, None for service events
        timestamp: Unix time (seconds) the event was emitted
        actor: User who caused the event
        payload: Type-specific data
    """

    model_config = ConfigDict(frozen=True)

    type: EventType
    conversation_uuid: UUID
    sequence: Optional[int] = None
    timestamp: int
    actor: str
    payload: Dict[str, Any] = Field(default_factory=dict)

    @property
    def category(self) -> EventCategory:
        return EVENT_CATEGORIES[self.type]

    @property
    def is_durable(self) -> bool:
        """True for events that receive a sequence number and are appended to the log."""
        return self.category in RETRANSMITTABLE_CATEGORIES

    @property
    def is_retransmittable(self) -> bool:
        return self.category in RETRANSMITTABLE_CATEGORIES

    @property
    def participant_ids(self) -> List[str]:
        """User IDs listed in the payload of participant-change events."""
        return [ref["user_id"] for ref in self.payload.get("participants", [])]


class RetransmitEvent(BaseModel):
    """Result of a retransmission request.

    Attributes:
        conversation_uuid: Conversation the events belong to
        from_sequence: First sequence of the resolved range
        to_sequence: Last sequence of the resolved range
        events: Visible events of the range in ascending sequence order
    """

    model_config = ConfigDict(frozen=True)

    conversation_uuid: UUID
    from_sequence: int
    to_sequence: int
    events: List[ConversationEvent] = Field(default_factory=list)
