"""Conversation engine, events and models.

This module provides the conversation engine together with the models and
events it exchanges with callers, and the storage interface it writes to.
"""

from parley.conversation.broadcast import Broadcaster, EventSink, NullSink
from parley.conversation.engine import ConversationEngine
from parley.conversation.event_log import EventLog
from parley.conversation.events import (
    ConversationEvent,
    EventCategory,
    EventType,
    RetransmitEvent,
)
from parley.conversation.memory_event_log import InMemoryEventLog
from parley.conversation.models import (
    Conversation,
    ConversationConfig,
    ConversationUpdate,
    Participant,
    ParticipantRef,
    PermissionFlags,
)

# The SQL-backed log pulls in SQLAlchemy; import it directly when needed:
# from parley.conversation.sql_event_log import SQLEventLog

__all__ = [
    "Broadcaster",
    "Conversation",
    "ConversationConfig",
    "ConversationEngine",
    "ConversationEvent",
    "ConversationUpdate",
    "EventCategory",
    "EventLog",
    "EventSink",
    "EventType",
    "InMemoryEventLog",
    "NullSink",
    "Participant",
    "ParticipantRef",
    "PermissionFlags",
    "RetransmitEvent",
]
