"""Tests for the user to conversation membership index."""

from uuid import uuid4

from parley.conversation.membership_index import MembershipIndex
from parley.conversation.models import MembershipInterval, Participant
from parley.conversation.state import ConversationState


def conversation(direct=False, **members):
    """Build a state whose members map user ID to a (start, end) interval."""
    state = ConversationState(uuid4(), direct=direct)
    state.participants = {
        user_id: Participant(user_id=user_id, intervals=[MembershipInterval(start=s, end=e)])
        for user_id, (s, e) in members.items()
    }
    return state


class TestMembershipIndex:
    """Test suite for MembershipIndex."""

    def test_active_and_left_lookups(self) -> None:
        index = MembershipIndex()
        state = conversation(alice=(1, None), bob=(1, 4))

        index.update(state)

        assert index.conversations_of("alice") == [state.uuid]
        assert index.conversations_of("bob") == []
        assert index.left_conversations_of("bob") == [state.uuid]

    def test_update_moves_rejoined_user_back(self) -> None:
        index = MembershipIndex()
        state = conversation(alice=(1, None), bob=(1, 4))
        index.update(state)

        state.participants["bob"] = Participant(
            user_id="bob",
            intervals=[MembershipInterval(start=1, end=4), MembershipInterval(start=6)],
        )
        index.update(state)

        assert index.conversations_of("bob") == [state.uuid]
        assert index.left_conversations_of("bob") == []

    def test_direct_conversation_lookup_is_symmetric(self) -> None:
        index = MembershipIndex()
        state = conversation(direct=True, alice=(1, None), bob=(1, None))
        index.update(state)

        assert index.direct_conversation("alice", "bob") == state.uuid
        assert index.direct_conversation("bob", "alice") == state.uuid
        assert index.direct_conversation("alice", "carol") is None

    def test_rebuild_discards_stale_entries(self) -> None:
        index = MembershipIndex()
        stale = conversation(alice=(1, None))
        fresh = conversation(bob=(1, None))
        index.update(stale)

        index.rebuild([fresh])

        assert index.conversations_of("alice") == []
        assert index.conversations_of("bob") == [fresh.uuid]
