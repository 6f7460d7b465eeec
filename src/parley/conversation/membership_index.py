"""Reverse lookup from users to the conversations they belong to.

Conversations own their participants; this index is a derived, non-owning
view that can be rebuilt at any time from the conversation states.
"""

from typing import Dict, FrozenSet, Iterable, List, Optional, Set
from uuid import UUID

from parley.conversation.state import ConversationState


class MembershipIndex:
    """User → conversation UUID lookups.

    Tracks the conversations a user currently belongs to, the ones they
    left, and the unique direct conversation of each pair of users.
    """

    def __init__(self) -> None:
        self._active: Dict[str, Set[UUID]] = {}
        self._left: Dict[str, Set[UUID]] = {}
        self._direct: Dict[FrozenSet[str], UUID] = {}

    def update(self, state: ConversationState) -> None:
        """Refresh the entries of one conversation from its current state."""
        for participant in state.participants.values():
            user_id = participant.user_id
            if participant.is_active:
                self._active.setdefault(user_id, set()).add(state.uuid)
                self._left.get(user_id, set()).discard(state.uuid)
            else:
                self._left.setdefault(user_id, set()).add(state.uuid)
                self._active.get(user_id, set()).discard(state.uuid)

        if state.direct:
            self._direct.setdefault(frozenset(state.participants), state.uuid)

    def rebuild(self, states: Iterable[ConversationState]) -> None:
        """Discard every entry and index the given conversations from scratch."""
        self._active.clear()
        self._left.clear()
        self._direct.clear()
        for state in states:
            self.update(state)

    def conversations_of(self, user_id: str) -> List[UUID]:
        return sorted(self._active.get(user_id, set()), key=str)

    def left_conversations_of(self, user_id: str) -> List[UUID]:
        return sorted(self._left.get(user_id, set()), key=str)

    def direct_conversation(self, user_a: str, user_b: str) -> Optional[UUID]:
        """Get the direct conversation between two users, if one exists."""
        return self._direct.get(frozenset((user_a, user_b)))
