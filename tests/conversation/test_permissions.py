"""Tests for conversation permission checks."""

from uuid import uuid4

import pytest

from parley.conversation.errors import PermissionDeniedError
from parley.conversation.models import MembershipInterval, Participant, PermissionFlags
from parley.conversation.permissions import Operation, may_perform, require_permission
from parley.conversation.state import ConversationState


def member(user_id, permissions=None, left=None):
    return Participant(
        user_id=user_id,
        permissions=permissions or PermissionFlags(),
        intervals=[MembershipInterval(start=1, end=left)],
    )


@pytest.fixture
def state() -> ConversationState:
    state = ConversationState(uuid4())
    state.participants = {
        "owner": member("owner", PermissionFlags.owner()),
        "manager": member("manager", PermissionFlags(can_manage_participants=True)),
        "reader": member("reader", PermissionFlags(can_write=False)),
        "gone": member("gone", PermissionFlags.owner(), left=5),
    }
    state.last_sequence = 10
    return state


class TestMayPerform:
    """Tests for may_perform."""

    def test_unknown_user_denied_everything(self, state) -> None:
        for operation in Operation:
            assert may_perform(None, state, operation) is False

    def test_manager_may_add_and_remove(self, state) -> None:
        manager = state.participant("manager")

        assert may_perform(manager, state, Operation.ADD_PARTICIPANTS)
        assert may_perform(manager, state, Operation.REMOVE_PARTICIPANTS)
        assert may_perform(manager, state, Operation.EDIT_PARTICIPANTS)
        assert not may_perform(manager, state, Operation.UPDATE)

    def test_direct_conversation_blocks_add_and_remove(self, state) -> None:
        state.direct = True
        owner = state.participant("owner")

        assert not may_perform(owner, state, Operation.ADD_PARTICIPANTS)
        assert not may_perform(owner, state, Operation.REMOVE_PARTICIPANTS)
        assert not may_perform(owner, state, Operation.LEAVE)
        assert may_perform(owner, state, Operation.EDIT_PARTICIPANTS)

    def test_reader_may_not_send(self, state) -> None:
        reader = state.participant("reader")

        assert not may_perform(reader, state, Operation.SEND_MESSAGE)
        assert may_perform(reader, state, Operation.MARK_AS_READ)
        assert may_perform(reader, state, Operation.TYPING)
        assert may_perform(reader, state, Operation.LEAVE)

    def test_departed_member_only_retransmits(self, state) -> None:
        gone = state.participant("gone")

        for operation in Operation:
            expected = operation == Operation.RETRANSMIT
            assert may_perform(gone, state, operation) is expected


class TestRequirePermission:
    """Tests for require_permission."""

    def test_returns_participant(self, state) -> None:
        participant = require_permission("owner", state, Operation.UPDATE)

        assert participant.user_id == "owner"

    def test_non_participant_reason(self, state) -> None:
        with pytest.raises(PermissionDeniedError) as exc_info:
            require_permission("stranger", state, Operation.SEND_MESSAGE)

        assert exc_info.value.code == "permission_denied"
        assert exc_info.value.status_code == 403
        assert "not a participant" in exc_info.value.message

    def test_departed_reason(self, state) -> None:
        with pytest.raises(PermissionDeniedError, match="no longer a participant"):
            require_permission("gone", state, Operation.SEND_MESSAGE)

    def test_direct_reason(self, state) -> None:
        state.direct = True

        with pytest.raises(PermissionDeniedError, match="fixed participant list"):
            require_permission("owner", state, Operation.ADD_PARTICIPANTS)
