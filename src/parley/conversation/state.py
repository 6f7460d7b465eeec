"""In-memory conversation state derived from the event log.

``ConversationState`` is the engine-owned, mutable view of one conversation.
It only changes by applying events, so the state of any conversation can be
rebuilt by replaying its log from the ``created`` event onward.
"""

from typing import Any, Dict, Iterable, List, Optional
from uuid import UUID

from parley.conversation.events import ConversationEvent, EventType
from parley.conversation.models import (
    Conversation,
    MembershipInterval,
    Participant,
    ParticipantRef,
)


class ConversationState:
    """Mutable state of one conversation.

    The conversation exclusively owns its participants. Departed participants
    stay in ``participants`` with a closed membership interval.

    Attributes:
        uuid: Conversation identifier
        title: Current title
        direct: Direct conversation flag (immutable)
        uber: Uber conversation flag (immutable)
        public_join: Public join flag
        custom_data: Current custom data
        created_time: Unix time of creation
        last_sequence: Sequence of the last applied durable event
        last_update_time: Timestamp of the last applied durable event
        participants: Participants keyed by user ID
    """

    def __init__(
        self,
        uuid: UUID,
        *,
        direct: bool = False,
        uber: bool = False,
        public_join: bool = False,
        title: Optional[str] = None,
        custom_data: Optional[Dict[str, Any]] = None,
        created_time: int = 0,
    ) -> None:
        self.uuid = uuid
        self.direct = direct
        self.uber = uber
        self.public_join = public_join
        self.title = title
        self.custom_data: Dict[str, Any] = dict(custom_data or {})
        self.created_time = created_time
        self.last_sequence = 0
        self.last_update_time = created_time
        self.participants: Dict[str, Participant] = {}

    @classmethod
    def from_events(cls, events: Iterable[ConversationEvent]) -> "ConversationState":
        """Rebuild a conversation by replaying its durable events in order.

        Args:
            events: Events in ascending sequence order, starting with ``created``

        Returns:
            The reconstructed state

        Raises:
            ValueError: If the events are empty, do not start with ``created``,
                or are not contiguous
        """
        iterator = iter(events)
        first = next(iterator, None)
        if first is None or first.type != EventType.CREATED:
            raise ValueError("Replay must start with a 'created' event")

        state = cls(first.conversation_uuid)
        state.apply(first)
        for event in iterator:
            state.apply(event)
        return state

    def participant(self, user_id: str) -> Optional[Participant]:
        return self.participants.get(user_id)

    def active_participant(self, user_id: str) -> Optional[Participant]:
        """Get a participant only if they are a current member."""
        participant = self.participants.get(user_id)
        if participant is None or not participant.is_active:
            return None
        return participant

    @property
    def active_user_ids(self) -> List[str]:
        return [p.user_id for p in self.participants.values() if p.is_active]

    def apply(self, event: ConversationEvent) -> None:
        """Apply one event to the state.

        Durable events must directly follow ``last_sequence``. Service events
        only touch read markers.

        Raises:
            ValueError: If the event belongs to another conversation or is out of order
        """
        if event.conversation_uuid != self.uuid:
            raise ValueError(
                f"Event for conversation {event.conversation_uuid} applied to {self.uuid}"
            )

        if event.is_durable:
            expected = self.last_sequence + 1
            if event.sequence != expected:
                raise ValueError(f"Expected sequence {expected}, got {event.sequence}")

        handler = _HANDLERS.get(event.type)
        if handler is not None:
            handler(self, event)

        if event.is_durable:
            self.last_sequence = event.sequence  # type: ignore[assignment]
            self.last_update_time = event.timestamp

    def snapshot(self) -> Conversation:
        """Return an immutable copy of the current state."""
        return Conversation(
            uuid=self.uuid,
            title=self.title,
            direct=self.direct,
            uber=self.uber,
            public_join=self.public_join,
            custom_data=dict(self.custom_data),
            participants=list(self.participants.values()),
            created_time=self.created_time,
            last_sequence=self.last_sequence,
            last_update_time=self.last_update_time,
        )

    def _admit(self, ref: ParticipantRef, sequence: int) -> None:
        existing = self.participants.get(ref.user_id)
        if existing is None:
            self.participants[ref.user_id] = Participant(
                user_id=ref.user_id,
                permissions=ref.permissions,
                intervals=[MembershipInterval(start=sequence)],
            )
        elif not existing.is_active:
            self.participants[ref.user_id] = existing.model_copy(
                update={
                    "permissions": ref.permissions,
                    "intervals": [*existing.intervals, MembershipInterval(start=sequence)],
                }
            )

    def _depart(self, user_id: str, sequence: int) -> None:
        existing = self.participants.get(user_id)
        if existing is None or not existing.is_active:
            return
        closed = existing.intervals[-1].model_copy(update={"end": sequence})
        self.participants[user_id] = existing.model_copy(
            update={"intervals": [*existing.intervals[:-1], closed]}
        )


def _refs(event: ConversationEvent) -> List[ParticipantRef]:
    return [ParticipantRef.model_validate(ref) for ref in event.payload.get("participants", [])]


def _on_created(state: ConversationState, event: ConversationEvent) -> None:
    payload = event.payload
    state.direct = payload.get("direct", False)
    state.uber = payload.get("uber", False)
    state.public_join = payload.get("public_join", False)
    state.title = payload.get("title")
    state.custom_data = dict(payload.get("custom_data") or {})
    state.created_time = event.timestamp
    for ref in _refs(event):
        state._admit(ref, event.sequence)  # type: ignore[arg-type]


def _on_edited(state: ConversationState, event: ConversationEvent) -> None:
    payload = event.payload
    if "title" in payload:
        state.title = payload["title"]
    if "public_join" in payload:
        state.public_join = payload["public_join"]
    if "custom_data" in payload:
        state.custom_data = dict(payload["custom_data"] or {})


def _on_added(state: ConversationState, event: ConversationEvent) -> None:
    for ref in _refs(event):
        state._admit(ref, event.sequence)  # type: ignore[arg-type]


def _on_participants_edited(state: ConversationState, event: ConversationEvent) -> None:
    for ref in _refs(event):
        existing = state.participants.get(ref.user_id)
        if existing is not None:
            state.participants[ref.user_id] = existing.model_copy(
                update={"permissions": ref.permissions}
            )


def _on_removed(state: ConversationState, event: ConversationEvent) -> None:
    for ref in _refs(event):
        state._depart(ref.user_id, event.sequence)  # type: ignore[arg-type]


def _on_left(state: ConversationState, event: ConversationEvent) -> None:
    state._depart(event.actor, event.sequence)  # type: ignore[arg-type]


def _on_read(state: ConversationState, event: ConversationEvent) -> None:
    existing = state.participants.get(event.actor)
    if existing is not None:
        state.participants[event.actor] = existing.model_copy(
            update={"last_read_sequence": event.payload["sequence"]}
        )


_HANDLERS = {
    EventType.CREATED: _on_created,
    EventType.EDITED: _on_edited,
    EventType.PARTICIPANTS_ADDED: _on_added,
    EventType.JOINED: _on_added,
    EventType.PARTICIPANTS_EDITED: _on_participants_edited,
    EventType.PARTICIPANTS_REMOVED: _on_removed,
    EventType.LEFT: _on_left,
    EventType.READ: _on_read,
}
