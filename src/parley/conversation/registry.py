"""Participant registry.

Plans changes to a conversation's participant list. The registry validates
targets against the current conversation state and the user directory, and
returns a ``ParticipantChange`` describing exactly which participants the
resulting event will affect. It never mutates state itself: the engine turns
the change into an event and applies that event after it has been appended.
"""

from dataclasses import dataclass, field
from typing import Iterable, List

from parley.conversation.errors import AlreadyRemovedError, InvalidParticipantError
from parley.conversation.events import EventType
from parley.conversation.models import (
    ConversationConfig,
    Participant,
    ParticipantRef,
    PermissionFlags,
)
from parley.conversation.state import ConversationState
from parley.identity.directory import UserDirectory, UserRecord


@dataclass
class ParticipantChange:
    """Participants affected by a planned change.

    Attributes:
        event_type: Event the change will be recorded as
        participants: Participants to include in the event payload
    """

    event_type: EventType
    participants: List[ParticipantRef] = field(default_factory=list)

    @property
    def user_ids(self) -> List[str]:
        return [ref.user_id for ref in self.participants]

    def payload(self) -> dict:
        return {"participants": [ref.model_dump(mode="json") for ref in self.participants]}


def _dedupe(targets: Iterable[ParticipantRef]) -> List[ParticipantRef]:
    seen = set()
    unique = []
    for ref in targets:
        if ref.user_id in seen:
            continue
        seen.add(ref.user_id)
        unique.append(ref)
    return unique


class ParticipantRegistry:
    """Validates and plans participant list changes.

    Example:
        >>> registry = ParticipantRegistry(InMemoryUserDirectory(["alice", "bob"]))
        >>> change = await registry.plan_add(state, [ParticipantRef(user_id="bob")])
        >>> change.user_ids
        ['bob']
    """

    def __init__(self, user_directory: UserDirectory) -> None:
        """Initialize the registry.

        Args:
            user_directory: Account lookup used to validate targets
        """
        self._users = user_directory

    def get(self, state: ConversationState) -> List[Participant]:
        """List every participant of a conversation, active and departed."""
        return list(state.participants.values())

    async def plan_initial(
        self, creator: str, config: ConversationConfig
    ) -> List[ParticipantRef]:
        """Plan the participant list of a new conversation.

        The creator always comes first and owns the conversation. Duplicates
        and the creator's own entry in ``config.participants`` are ignored.

        Raises:
            InvalidParticipantError: If any user does not exist or is deleted
        """
        await self.require_live_user(creator)
        refs = [ParticipantRef(user_id=creator, permissions=PermissionFlags.owner())]
        for ref in _dedupe(config.participants):
            if ref.user_id == creator:
                continue
            await self.require_live_user(ref.user_id)
            refs.append(ref)
        return refs

    async def plan_add(
        self, state: ConversationState, targets: Iterable[ParticipantRef]
    ) -> ParticipantChange:
        """Plan adding participants.

        Users who are already current members are skipped silently. Departed
        members are added back.

        Raises:
            InvalidParticipantError: If a target does not exist or is deleted
        """
        change = ParticipantChange(EventType.PARTICIPANTS_ADDED)
        for ref in _dedupe(targets):
            if state.active_participant(ref.user_id) is not None:
                continue
            await self.require_live_user(ref.user_id)
            change.participants.append(ref)
        return change

    async def plan_edit(
        self, state: ConversationState, targets: Iterable[ParticipantRef]
    ) -> ParticipantChange:
        """Plan replacing the permission flags of current members.

        Raises:
            InvalidParticipantError: If a target is not a current member
        """
        change = ParticipantChange(EventType.PARTICIPANTS_EDITED)
        for ref in _dedupe(targets):
            if state.active_participant(ref.user_id) is None:
                raise InvalidParticipantError(ref.user_id, "not a member of the conversation")
            change.participants.append(ref)
        return change

    async def plan_remove(
        self, state: ConversationState, targets: Iterable[ParticipantRef]
    ) -> ParticipantChange:
        """Plan removing participants.

        Removing a user who already left fails, except for deleted accounts,
        which are skipped silently.

        Raises:
            InvalidParticipantError: If a target does not exist or never belonged
                to the conversation
            AlreadyRemovedError: If a target already left and is not deleted
        """
        change = ParticipantChange(EventType.PARTICIPANTS_REMOVED)
        for ref in _dedupe(targets):
            record = await self._users.get_user(ref.user_id)
            if record is None:
                raise InvalidParticipantError(ref.user_id, "user does not exist")

            participant = state.participant(ref.user_id)
            if participant is None:
                raise InvalidParticipantError(ref.user_id, "not a member of the conversation")
            if not participant.is_active:
                if record.is_deleted:
                    continue
                raise AlreadyRemovedError(ref.user_id)

            change.participants.append(participant.to_ref())
        return change

    async def require_live_user(self, user_id: str) -> UserRecord:
        """Check that a user exists and is not deleted.

        Raises:
            InvalidParticipantError: If the user does not exist or is deleted
        """
        record = await self._users.get_user(user_id)
        if record is None:
            raise InvalidParticipantError(user_id, "user does not exist")
        if record.is_deleted:
            raise InvalidParticipantError(user_id, "user account is deleted")
        return record
