"""Tests for ParticipantRegistry planning."""

from uuid import uuid4

import pytest

from parley.conversation.errors import AlreadyRemovedError, InvalidParticipantError
from parley.conversation.events import EventType
from parley.conversation.models import (
    ConversationConfig,
    MembershipInterval,
    Participant,
    ParticipantRef,
    PermissionFlags,
)
from parley.conversation.registry import ParticipantRegistry
from parley.conversation.state import ConversationState


@pytest.fixture
def registry(directory) -> ParticipantRegistry:
    return ParticipantRegistry(directory)


@pytest.fixture
def state() -> ConversationState:
    state = ConversationState(uuid4())
    state.participants = {
        "alice": Participant(
            user_id="alice",
            permissions=PermissionFlags.owner(),
            intervals=[MembershipInterval(start=1)],
        ),
        "bob": Participant(user_id="bob", intervals=[MembershipInterval(start=1)]),
        "carol": Participant(user_id="carol", intervals=[MembershipInterval(start=1, end=3)]),
    }
    state.last_sequence = 3
    return state


class TestPlanInitial:
    """Tests for ParticipantRegistry.plan_initial."""

    async def test_creator_first_as_owner(self, registry) -> None:
        config = ConversationConfig(
            participants=[
                ParticipantRef(user_id="bob"),
                ParticipantRef(user_id="alice"),
                ParticipantRef(user_id="bob", permissions=PermissionFlags(can_write=False)),
            ]
        )

        refs = await registry.plan_initial("alice", config)

        assert [ref.user_id for ref in refs] == ["alice", "bob"]
        assert refs[0].permissions == PermissionFlags.owner()
        assert refs[1].permissions == PermissionFlags()

    async def test_unknown_participant_rejected(self, registry) -> None:
        config = ConversationConfig(participants=[ParticipantRef(user_id="mallory")])

        with pytest.raises(InvalidParticipantError, match="does not exist"):
            await registry.plan_initial("alice", config)

    async def test_deleted_creator_rejected(self, registry, directory) -> None:
        await directory.mark_deleted("alice")

        with pytest.raises(InvalidParticipantError, match="deleted"):
            await registry.plan_initial("alice", ConversationConfig())


class TestPlanAdd:
    """Tests for ParticipantRegistry.plan_add."""

    async def test_active_members_skipped(self, registry, state) -> None:
        change = await registry.plan_add(
            state, [ParticipantRef(user_id="bob"), ParticipantRef(user_id="dave")]
        )

        assert change.event_type == EventType.PARTICIPANTS_ADDED
        assert change.user_ids == ["dave"]

    async def test_duplicates_collapsed(self, registry, state) -> None:
        change = await registry.plan_add(
            state, [ParticipantRef(user_id="dave"), ParticipantRef(user_id="dave")]
        )

        assert change.user_ids == ["dave"]

    async def test_departed_member_added_back(self, registry, state) -> None:
        change = await registry.plan_add(state, [ParticipantRef(user_id="carol")])

        assert change.user_ids == ["carol"]

    async def test_deleted_user_rejected(self, registry, state, directory) -> None:
        await directory.mark_deleted("dave")

        with pytest.raises(InvalidParticipantError):
            await registry.plan_add(state, [ParticipantRef(user_id="dave")])

    async def test_all_present_gives_empty_change(self, registry, state) -> None:
        change = await registry.plan_add(state, [ParticipantRef(user_id="alice")])

        assert change.participants == []
        assert change.payload() == {"participants": []}


class TestPlanEdit:
    """Tests for ParticipantRegistry.plan_edit."""

    async def test_replaces_flags(self, registry, state) -> None:
        flags = PermissionFlags(can_write=False)

        change = await registry.plan_edit(state, [ParticipantRef(user_id="bob", permissions=flags)])

        assert change.event_type == EventType.PARTICIPANTS_EDITED
        assert change.participants[0].permissions == flags

    async def test_departed_member_rejected(self, registry, state) -> None:
        with pytest.raises(InvalidParticipantError):
            await registry.plan_edit(state, [ParticipantRef(user_id="carol")])


class TestPlanRemove:
    """Tests for ParticipantRegistry.plan_remove."""

    async def test_active_member_removed_with_current_flags(self, registry, state) -> None:
        change = await registry.plan_remove(
            state, [ParticipantRef(user_id="bob", permissions=PermissionFlags.owner())]
        )

        assert change.event_type == EventType.PARTICIPANTS_REMOVED
        assert change.participants == [ParticipantRef(user_id="bob")]

    async def test_unknown_user_rejected(self, registry, state) -> None:
        with pytest.raises(InvalidParticipantError, match="does not exist"):
            await registry.plan_remove(state, [ParticipantRef(user_id="mallory")])

    async def test_never_member_rejected(self, registry, state) -> None:
        with pytest.raises(InvalidParticipantError, match="not a member"):
            await registry.plan_remove(state, [ParticipantRef(user_id="dave")])

    async def test_departed_member_already_removed(self, registry, state) -> None:
        with pytest.raises(AlreadyRemovedError) as exc_info:
            await registry.plan_remove(state, [ParticipantRef(user_id="carol")])

        assert exc_info.value.code == "already_removed"

    async def test_departed_deleted_member_skipped(self, registry, state, directory) -> None:
        await directory.mark_deleted("carol")

        change = await registry.plan_remove(
            state, [ParticipantRef(user_id="carol"), ParticipantRef(user_id="bob")]
        )

        assert change.user_ids == ["bob"]


def test_get_lists_active_and_departed(registry, state) -> None:
    assert [p.user_id for p in registry.get(state)] == ["alice", "bob", "carol"]
