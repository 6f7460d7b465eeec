"""Conversation engine.

The engine owns the in-memory state of every conversation and is the only
component that mutates it. Each mutation runs inside the conversation's
sequencer region:

    permission check -> plan -> reserve sequence -> build event
    -> append to log -> apply to state -> commit sequence

and the resulting event is published to the sink after the region is
released. Read markers and typing notifications are service events: they
get no sequence number and are never appended.
"""

import asyncio
import time
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence
from uuid import UUID, uuid4

from parley.config import MessagingConfig, get_default_config
from parley.conversation.broadcast import EventSink, NullSink
from parley.conversation.errors import (
    ConversationNotFoundError,
    ConversationNotPublicError,
    EventLogError,
    InternalError,
    InvalidParticipantError,
    InvalidSequenceError,
    PermissionDeniedError,
    RateLimitedError,
    SequenceConflictError,
    TextTooLongError,
)
from parley.conversation.event_log import EventLog
from parley.conversation.events import ConversationEvent, EventType, RetransmitEvent
from parley.conversation.membership_index import MembershipIndex
from parley.conversation.models import (
    Conversation,
    ConversationConfig,
    ConversationUpdate,
    Participant,
    ParticipantRef,
)
from parley.conversation.permissions import Operation, require_permission
from parley.conversation.registry import ParticipantChange, ParticipantRegistry
from parley.conversation.retransmission import RetransmissionService
from parley.conversation.sequencer import SequenceSlot, Sequencer
from parley.conversation.state import ConversationState
from parley.conversation.typing_limiter import TypingLimiter
from parley.identity.directory import UserDirectory
from parley.observability.logging import conversation_context, get_logger

logger = get_logger(__name__)

Clock = Callable[[], int]


def _unix_now() -> int:
    return int(time.time())


class ConversationEngine:
    """Entry point for every conversation operation.

    Example:
        >>> engine = ConversationEngine(InMemoryEventLog(), InMemoryUserDirectory(["alice", "bob"]))
        >>> conversation = await engine.create_conversation(
        ...     "alice", ConversationConfig(participants=[ParticipantRef(user_id="bob")])
        ... )
        >>> event = await engine.send_message(conversation.uuid, "bob", text="hi")
        >>> event.sequence
        2
    """

    def __init__(
        self,
        event_log: EventLog,
        user_directory: UserDirectory,
        sink: Optional[EventSink] = None,
        config: Optional[MessagingConfig] = None,
        clock: Optional[Clock] = None,
    ) -> None:
        """Initialize the engine.

        Args:
            event_log: Durable, append-only event storage
            user_directory: Account lookup used to validate participants
            sink: Receiver of committed and service events (defaults to NullSink)
            config: Engine limits (defaults to get_default_config())
            clock: Callable returning the current Unix time in seconds
        """
        self.config = config or get_default_config()
        self._log = event_log
        self._sink: EventSink = sink or NullSink()
        self._clock = clock or _unix_now
        self._sequencer = Sequencer(event_log)
        self._registry = ParticipantRegistry(user_directory)
        self._typing = TypingLimiter(self.config.typing_cooldown_seconds)
        self._index = MembershipIndex()
        self._states: Dict[UUID, ConversationState] = {}
        self._direct_lock = asyncio.Lock()
        self.retransmission = RetransmissionService(
            event_log, self.state_of, self.config.max_retransmit_events
        )

    def state_of(self, conversation_uuid: UUID) -> ConversationState:
        """Get the live state of a conversation.

        Raises:
            ConversationNotFoundError: If the conversation is not loaded
        """
        state = self._states.get(conversation_uuid)
        if state is None:
            raise ConversationNotFoundError(conversation_uuid)
        return state

    def get_conversation(self, conversation_uuid: UUID) -> Conversation:
        """Get a snapshot of a conversation.

        Raises:
            ConversationNotFoundError: If the conversation does not exist
        """
        return self.state_of(conversation_uuid).snapshot()

    def get_participants(self, conversation_uuid: UUID) -> List[Participant]:
        return self._registry.get(self.state_of(conversation_uuid))

    def get_public_conversations(self) -> List[UUID]:
        return [uuid for uuid, state in self._states.items() if state.public_join]

    def get_user_conversations(self, user_id: str) -> List[UUID]:
        """Get the conversations a user currently belongs to."""
        return self._index.conversations_of(user_id)

    def get_user_left_conversations(self, user_id: str) -> List[UUID]:
        """Get the conversations a user has left or was removed from."""
        return self._index.left_conversations_of(user_id)

    async def create_conversation(
        self, creator: str, config: ConversationConfig
    ) -> Conversation:
        """Create a conversation with the creator as owner.

        A direct conversation must list exactly one other participant. If the
        two users already share a direct conversation, that conversation is
        returned and nothing is appended.

        Args:
            creator: User creating the conversation
            config: Flags, title, custom data and initial participants

        Returns:
            Snapshot of the new (or existing direct) conversation

        Raises:
            ValueError: If a direct conversation does not have exactly two members
            InvalidParticipantError: If a listed user does not exist or is deleted
            InternalError: If the ``created`` event can't be appended
        """
        if not config.direct:
            return await self._create(creator, config)

        others = {ref.user_id for ref in config.participants} - {creator}
        if len(others) != 1:
            raise ValueError("A direct conversation needs exactly one other participant")
        (other,) = others

        async with self._direct_lock:
            existing = self._index.direct_conversation(creator, other)
            if existing is not None:
                return self.get_conversation(existing)
            return await self._create(creator, config)

    async def _create(self, creator: str, config: ConversationConfig) -> Conversation:
        participants = await self._registry.plan_initial(creator, config)
        conversation_uuid = uuid4()
        state = ConversationState(conversation_uuid)
        payload = {
            "direct": config.direct,
            "uber": config.uber,
            "public_join": config.public_join,
            "title": config.title,
            "custom_data": config.custom_data,
            "participants": [ref.model_dump(mode="json") for ref in participants],
        }

        with conversation_context(conversation_uuid, creator):
            async with self._sequencer.region(conversation_uuid) as slot:
                event = await self._commit(slot, state, EventType.CREATED, creator, payload)
                self._states[conversation_uuid] = state
            await self._publish(event, state)

        return state.snapshot()

    async def recreate_conversation(self, conversation_uuid: UUID) -> Conversation:
        """Rebuild a conversation from its persisted events.

        Read markers and typing cooldowns are not persisted and start over.

        Raises:
            ConversationNotFoundError: If the log holds no events for the UUID
        """
        last_sequence = await self._log.last_sequence(conversation_uuid)
        if last_sequence == 0:
            raise ConversationNotFoundError(conversation_uuid)

        events = await self._log.range(conversation_uuid, 1, last_sequence)
        state = ConversationState.from_events(events)
        self._states[conversation_uuid] = state
        self._index.update(state)

        logger.info(
            "conversation_recreated",
            conversation_uuid=str(conversation_uuid),
            last_sequence=state.last_sequence,
        )
        return state.snapshot()

    async def restore_all(self) -> List[UUID]:
        """Recreate every conversation in the log and rebuild the membership index.

        Returns:
            UUIDs of the restored conversations
        """
        restored = []
        for conversation_uuid in await self._log.conversations():
            await self.recreate_conversation(conversation_uuid)
            restored.append(conversation_uuid)
        self._index.rebuild(self._states.values())
        return restored

    async def join_conversation(self, conversation_uuid: UUID, actor: str) -> ConversationEvent:
        """Join a public conversation.

        A user who left earlier gets a new membership interval. Joiners get
        default permission flags.

        Raises:
            ConversationNotPublicError: If the conversation doesn't allow public join
            InvalidParticipantError: If the user is already a member, does not
                exist or is deleted
        """
        with conversation_context(conversation_uuid, actor):
            async with self._sequencer.region(conversation_uuid) as slot:
                state = self.state_of(conversation_uuid)
                if not state.public_join:
                    raise ConversationNotPublicError(conversation_uuid)
                if state.active_participant(actor) is not None:
                    raise InvalidParticipantError(actor, "already a member")
                await self._registry.require_live_user(actor)

                change = ParticipantChange(EventType.JOINED, [ParticipantRef(user_id=actor)])
                event = await self._commit(
                    slot, state, change.event_type, actor, change.payload()
                )
            await self._publish(event, state)
        return event

    async def leave_conversation(self, conversation_uuid: UUID, actor: str) -> ConversationEvent:
        """Leave a conversation.

        The membership interval is closed at the ``left`` event's sequence.

        Raises:
            PermissionDeniedError: If the actor is not a current member, or the
                conversation is direct
        """
        with conversation_context(conversation_uuid, actor):
            async with self._sequencer.region(conversation_uuid) as slot:
                state = self.state_of(conversation_uuid)
                self._authorize(actor, state, Operation.LEAVE)
                event = await self._commit(slot, state, EventType.LEFT, actor, {})
            self._typing.forget(conversation_uuid, actor)
            await self._publish(event, state, extra_recipients=[actor])
        return event

    async def add_participants(
        self, conversation_uuid: UUID, actor: str, participants: Sequence[ParticipantRef]
    ) -> ConversationEvent:
        """Add participants to a conversation.

        Users who are already members are skipped. If every target is already
        a member, the event is still emitted with an empty participant list.

        Raises:
            ValueError: If no participants are given
            PermissionDeniedError: If the actor can't manage participants or the
                conversation is direct
            InvalidParticipantError: If a target does not exist or is deleted
        """
        return await self._change_participants(
            conversation_uuid,
            actor,
            participants,
            Operation.ADD_PARTICIPANTS,
            self._registry.plan_add,
        )

    async def edit_participants(
        self, conversation_uuid: UUID, actor: str, participants: Sequence[ParticipantRef]
    ) -> ConversationEvent:
        """Replace the permission flags of current members.

        Raises:
            ValueError: If no participants are given
            PermissionDeniedError: If the actor can't manage participants
            InvalidParticipantError: If a target is not a current member
        """
        return await self._change_participants(
            conversation_uuid,
            actor,
            participants,
            Operation.EDIT_PARTICIPANTS,
            self._registry.plan_edit,
        )

    async def remove_participants(
        self, conversation_uuid: UUID, actor: str, participants: Sequence[ParticipantRef]
    ) -> ConversationEvent:
        """Remove participants from a conversation.

        Raises:
            ValueError: If no participants are given
            PermissionDeniedError: If the actor can't manage participants or the
                conversation is direct
            InvalidParticipantError: If a target does not exist or never belonged
            AlreadyRemovedError: If a target already left
        """
        return await self._change_participants(
            conversation_uuid,
            actor,
            participants,
            Operation.REMOVE_PARTICIPANTS,
            self._registry.plan_remove,
        )

    async def _change_participants(
        self,
        conversation_uuid: UUID,
        actor: str,
        participants: Sequence[ParticipantRef],
        operation: Operation,
        plan: Callable[..., Any],
    ) -> ConversationEvent:
        if not participants:
            raise ValueError("At least one participant is required")

        with conversation_context(conversation_uuid, actor):
            async with self._sequencer.region(conversation_uuid) as slot:
                state = self.state_of(conversation_uuid)
                self._authorize(actor, state, operation)
                change: ParticipantChange = await plan(state, participants)
                event = await self._commit(
                    slot, state, change.event_type, actor, change.payload()
                )
            if change.event_type == EventType.PARTICIPANTS_REMOVED:
                for user_id in change.user_ids:
                    self._typing.forget(conversation_uuid, user_id)
            # Removed users still learn about their removal
            await self._publish(event, state, extra_recipients=change.user_ids)
        return event

    async def update(
        self, conversation_uuid: UUID, actor: str, update: ConversationUpdate
    ) -> ConversationEvent:
        """Update the title, public join flag or custom data.

        Fields that are explicitly set to None are cleared; fields left unset
        keep their current value.

        Raises:
            ValueError: If the update changes nothing
            PermissionDeniedError: If the actor is not the owner, or tries to
                make a direct conversation public
        """
        changes = update.model_dump(exclude_unset=True)
        # public_join is a flag and can only be switched, never cleared
        if changes.get("public_join", False) is None:
            del changes["public_join"]
        if not changes:
            raise ValueError("Update must set title, public_join or custom_data")

        with conversation_context(conversation_uuid, actor):
            async with self._sequencer.region(conversation_uuid) as slot:
                state = self.state_of(conversation_uuid)
                self._authorize(actor, state, Operation.UPDATE)
                if state.direct and changes.get("public_join"):
                    self._deny(actor, Operation.UPDATE, "direct conversations can't be public")
                event = await self._commit(slot, state, EventType.EDITED, actor, changes)
            await self._publish(event, state)
        return event

    async def send_message(
        self,
        conversation_uuid: UUID,
        actor: str,
        text: Optional[str] = None,
        payload: Optional[Dict[str, Any]] = None,
    ) -> ConversationEvent:
        """Send a message to a conversation.

        Args:
            conversation_uuid: Target conversation
            actor: Sender
            text: Message text, at most ``max_text_length`` characters
            payload: Optional structured content

        Returns:
            The sequenced ``message_sent`` event

        Raises:
            ValueError: If neither text nor payload is given
            TextTooLongError: If the text exceeds the limit
            PermissionDeniedError: If the sender may not write
        """
        if text is None and payload is None:
            raise ValueError("A message needs text or a payload")
        if text is not None and len(text) > self.config.max_text_length:
            raise TextTooLongError(len(text), self.config.max_text_length)

        body: Dict[str, Any] = {"message_uuid": str(uuid4())}
        if text is not None:
            body["text"] = text
        if payload is not None:
            body["payload"] = payload

        with conversation_context(conversation_uuid, actor):
            async with self._sequencer.region(conversation_uuid) as slot:
                state = self.state_of(conversation_uuid)
                self._authorize(actor, state, Operation.SEND_MESSAGE)
                event = await self._commit(slot, state, EventType.MESSAGE_SENT, actor, body)
            await self._publish(event, state)
        return event

    async def mark_as_read(
        self, conversation_uuid: UUID, actor: str, sequence: int
    ) -> ConversationEvent:
        """Set the actor's read marker.

        The marker never moves backwards, except that sequences below 1 reset
        it to 1.

        Raises:
            PermissionDeniedError: If the actor is not a current member
            InvalidSequenceError: If the sequence is past the last event, or
                below the current marker
        """
        with conversation_context(conversation_uuid, actor):
            async with self._sequencer.region(conversation_uuid):
                state = self.state_of(conversation_uuid)
                self._authorize(actor, state, Operation.MARK_AS_READ)
                current = state.participant(actor).last_read_sequence  # type: ignore[union-attr]
                if 1 <= sequence < current:
                    raise InvalidSequenceError(
                        f"Sequence {sequence} is below the read marker {current}"
                    )
                sequence = max(sequence, 1)
                if sequence > state.last_sequence:
                    raise InvalidSequenceError(
                        f"Sequence {sequence} is past the last event {state.last_sequence}"
                    )
                event = self._service_event(
                    EventType.READ, conversation_uuid, actor, {"sequence": sequence}
                )
                state.apply(event)
            await self._publish_ephemeral(event, state)
        return event

    async def typing(self, conversation_uuid: UUID, actor: str) -> ConversationEvent:
        """Notify the other participants that the actor is typing.

        Raises:
            PermissionDeniedError: If the actor is not a current member
            RateLimitedError: If the actor sent one within the cooldown
        """
        with conversation_context(conversation_uuid, actor):
            state = self.state_of(conversation_uuid)
            self._authorize(actor, state, Operation.TYPING)
            if not await self._typing.check_and_consume(conversation_uuid, actor):
                raise RateLimitedError(actor, self._typing.cooldown_seconds)

            event = self._service_event(EventType.TYPING, conversation_uuid, actor, {})
            await self._publish_ephemeral(event, state)
        return event

    async def retransmit_events(
        self, conversation_uuid: UUID, requester: str, from_sequence: int, to_sequence: int
    ) -> RetransmitEvent:
        return await self.retransmission.retransmit_events(
            conversation_uuid, requester, from_sequence, to_sequence
        )

    async def retransmit_events_from(
        self, conversation_uuid: UUID, requester: str, from_sequence: int, count: int
    ) -> RetransmitEvent:
        return await self.retransmission.retransmit_events_from(
            conversation_uuid, requester, from_sequence, count
        )

    async def retransmit_events_to(
        self, conversation_uuid: UUID, requester: str, to_sequence: int, count: int
    ) -> RetransmitEvent:
        return await self.retransmission.retransmit_events_to(
            conversation_uuid, requester, to_sequence, count
        )

    def _authorize(self, actor: str, state: ConversationState, operation: Operation) -> Participant:
        try:
            return require_permission(actor, state, operation)
        except PermissionDeniedError as e:
            logger.warning("permission_denied", operation=operation.value, reason=e.message)
            raise

    def _deny(self, actor: str, operation: Operation, reason: str) -> None:
        error = PermissionDeniedError(actor, operation.value, reason)
        logger.warning("permission_denied", operation=operation.value, reason=error.message)
        raise error

    def _service_event(
        self, event_type: EventType, conversation_uuid: UUID, actor: str, payload: Dict[str, Any]
    ) -> ConversationEvent:
        return ConversationEvent(
            type=event_type,
            conversation_uuid=conversation_uuid,
            timestamp=self._clock(),
            actor=actor,
            payload=payload,
        )

    async def _commit(
        self,
        slot: SequenceSlot,
        state: ConversationState,
        event_type: EventType,
        actor: str,
        payload: Dict[str, Any],
    ) -> ConversationEvent:
        """Append a durable event under the current region and apply it."""
        event = ConversationEvent(
            type=event_type,
            conversation_uuid=slot.conversation_uuid,
            sequence=slot.next_sequence(),
            timestamp=self._clock(),
            actor=actor,
            payload=payload,
        )
        await self._append(event)
        state.apply(event)
        slot.commit()
        self._index.update(state)

        logger.info("event_committed", event_type=event.type.value, sequence=event.sequence)
        return event

    async def _append(self, event: ConversationEvent) -> None:
        attempts = self.config.append_retries + 1
        last_error: Optional[EventLogError] = None
        for attempt in range(1, attempts + 1):
            try:
                await self._log.append(event)
                return
            except SequenceConflictError as e:
                logger.error(
                    "event_append_failed",
                    event_type=event.type.value,
                    sequence=event.sequence,
                    attempt=attempt,
                    error=str(e),
                )
                raise InternalError(
                    f"Sequence {event.sequence} is already taken in the event log"
                ) from e
            except EventLogError as e:
                last_error = e
                logger.warning(
                    "event_append_failed",
                    event_type=event.type.value,
                    sequence=event.sequence,
                    attempt=attempt,
                    max_attempts=attempts,
                    error=str(e),
                )
        raise InternalError(
            f"Failed to append event {event.sequence} after {attempts} attempts"
        ) from last_error

    async def _publish(
        self,
        event: ConversationEvent,
        state: ConversationState,
        extra_recipients: Iterable[str] = (),
    ) -> None:
        recipients = list(dict.fromkeys([*state.active_user_ids, *extra_recipients]))
        try:
            await self._sink.publish(event, recipients)
        except Exception as e:
            logger.warning(
                "broadcast_failed",
                event_type=event.type.value,
                sequence=event.sequence,
                error=str(e),
            )

    async def _publish_ephemeral(self, event: ConversationEvent, state: ConversationState) -> None:
        try:
            await self._sink.publish_ephemeral(event, state.active_user_ids)
        except Exception as e:
            logger.warning("broadcast_failed", event_type=event.type.value, error=str(e))
