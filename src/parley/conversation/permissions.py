"""Permission checks for conversation operations.

Pure predicates deciding whether a participant may perform an operation on
a conversation, given a point-in-time view of that conversation.
"""

from enum import Enum
from typing import Optional

from parley.conversation.errors import PermissionDeniedError
from parley.conversation.models import Participant
from parley.conversation.state import ConversationState


class Operation(str, Enum):
    """Operations subject to a permission check."""

    ADD_PARTICIPANTS = "add_participants"
    EDIT_PARTICIPANTS = "edit_participants"
    REMOVE_PARTICIPANTS = "remove_participants"
    UPDATE = "update"
    SEND_MESSAGE = "send_message"
    MARK_AS_READ = "mark_as_read"
    TYPING = "typing"
    LEAVE = "leave"
    RETRANSMIT = "retransmit"


def may_perform(
    participant: Optional[Participant],
    conversation: ConversationState,
    operation: Operation,
) -> bool:
    """Check if a participant may perform an operation.

    Args:
        participant: The acting user's membership record (None if never a member)
        conversation: Current state of the conversation
        operation: Operation being attempted

    Returns:
        True if the operation is allowed, False otherwise

    Examples:
        >>> may_perform(None, state, Operation.SEND_MESSAGE)
        False
    """
    if participant is None:
        return False

    # History stays readable after departure, visibility is clipped elsewhere
    if operation == Operation.RETRANSMIT:
        return True

    if not participant.is_active:
        return False

    flags = participant.permissions
    if operation in (Operation.ADD_PARTICIPANTS, Operation.REMOVE_PARTICIPANTS):
        return flags.can_manage_participants and not conversation.direct
    if operation == Operation.LEAVE:
        return not conversation.direct
    if operation == Operation.EDIT_PARTICIPANTS:
        return flags.can_manage_participants
    if operation == Operation.UPDATE:
        return flags.is_owner
    if operation == Operation.SEND_MESSAGE:
        return flags.can_write
    return True


def require_permission(
    actor: str,
    conversation: ConversationState,
    operation: Operation,
) -> Participant:
    """Look up the actor and raise unless they may perform the operation.

    Returns:
        The actor's membership record

    Raises:
        PermissionDeniedError: If the operation is not allowed
    """
    participant = conversation.participant(actor)
    if not may_perform(participant, conversation, operation):
        reason = None
        if participant is None:
            reason = "not a participant"
        elif not participant.is_active and operation != Operation.RETRANSMIT:
            reason = "no longer a participant"
        elif conversation.direct and operation in (
            Operation.ADD_PARTICIPANTS,
            Operation.REMOVE_PARTICIPANTS,
            Operation.LEAVE,
        ):
            reason = "direct conversations have a fixed participant list"
        raise PermissionDeniedError(actor, operation.value, reason)
    return participant  # type: ignore[return-value]
