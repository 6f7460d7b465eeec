"""Retransmission of conversation history.

Clients that reconnect ask for the events they missed, either as an
inclusive range, as a start plus a count, or as an end plus a count. At most
``max_retransmit_events`` may be requested at once. Only conversation and
message events are returned; for uber conversations the result is limited
to the events emitted while the requester was a member.
"""

from typing import Callable
from uuid import UUID

from parley.conversation.errors import InvalidSequenceError, RangeTooLargeError
from parley.conversation.event_log import EventLog
from parley.conversation.events import RetransmitEvent
from parley.conversation.permissions import Operation, require_permission
from parley.conversation.state import ConversationState
from parley.observability.logging import get_logger

logger = get_logger(__name__)

StateLookup = Callable[[UUID], ConversationState]


class RetransmissionService:
    """Serves bounded ranges of a conversation's event log.

    Example:
        >>> service = RetransmissionService(event_log, engine.state_of)
        >>> result = await service.retransmit_events(uuid, "alice", 5, 7)
        >>> [event.sequence for event in result.events]
        [5, 6, 7]
    """

    def __init__(
        self,
        event_log: EventLog,
        state_lookup: StateLookup,
        max_events: int = 100,
    ) -> None:
        """Initialize the service.

        Args:
            event_log: Log to read events from
            state_lookup: Returns the current state of a conversation, raising
                ConversationNotFoundError for unknown UUIDs
            max_events: Largest number of events a single request may span
        """
        self._log = event_log
        self._lookup = state_lookup
        self.max_events = max_events

    async def retransmit_events(
        self, conversation_uuid: UUID, requester: str, from_sequence: int, to_sequence: int
    ) -> RetransmitEvent:
        """Retransmit the events in ``[from_sequence, to_sequence]``.

        Raises:
            InvalidSequenceError: If a bound is below 1, the range is inverted,
                or ``from_sequence`` is past the last event
            RangeTooLargeError: If the range spans more than ``max_events`` events
            PermissionDeniedError: If the requester never belonged to the conversation
        """
        if from_sequence < 1 or to_sequence < from_sequence:
            raise InvalidSequenceError(
                f"Invalid retransmission range [{from_sequence}, {to_sequence}]"
            )
        return await self._retransmit(conversation_uuid, requester, from_sequence, to_sequence)

    async def retransmit_events_from(
        self, conversation_uuid: UUID, requester: str, from_sequence: int, count: int
    ) -> RetransmitEvent:
        """Retransmit ``count`` events starting at ``from_sequence``."""
        if from_sequence < 1 or count < 1:
            raise InvalidSequenceError(
                f"Invalid retransmission start {from_sequence} with count {count}"
            )
        return await self._retransmit(
            conversation_uuid, requester, from_sequence, from_sequence + count - 1
        )

    async def retransmit_events_to(
        self, conversation_uuid: UUID, requester: str, to_sequence: int, count: int
    ) -> RetransmitEvent:
        """Retransmit ``count`` events ending at ``to_sequence``."""
        if to_sequence < 1 or count < 1:
            raise InvalidSequenceError(
                f"Invalid retransmission end {to_sequence} with count {count}"
            )
        if count > self.max_events:
            raise RangeTooLargeError(count, self.max_events)
        return await self._retransmit(
            conversation_uuid, requester, max(1, to_sequence - count + 1), to_sequence
        )

    async def _retransmit(
        self, conversation_uuid: UUID, requester: str, from_sequence: int, to_sequence: int
    ) -> RetransmitEvent:
        requested = to_sequence - from_sequence + 1
        if requested > self.max_events:
            raise RangeTooLargeError(requested, self.max_events)

        state = self._lookup(conversation_uuid)
        participant = require_permission(requester, state, Operation.RETRANSMIT)

        last_sequence = state.last_sequence
        if from_sequence > last_sequence:
            raise InvalidSequenceError(
                f"Sequence {from_sequence} is past the last event {last_sequence}"
            )
        to_sequence = min(to_sequence, last_sequence)

        events = await self._log.range(conversation_uuid, from_sequence, to_sequence)
        visible = [
            event
            for event in events
            if event.is_retransmittable
            and (not state.uber or participant.was_member_at(event.sequence))  # type: ignore[arg-type]
        ]

        logger.debug(
            "events_retransmitted",
            conversation_uuid=str(conversation_uuid),
            requester=requester,
            from_sequence=from_sequence,
            to_sequence=to_sequence,
            returned=len(visible),
        )
        return RetransmitEvent(
            conversation_uuid=conversation_uuid,
            from_sequence=from_sequence,
            to_sequence=to_sequence,
            events=visible,
        )
