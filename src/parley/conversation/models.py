"""Conversation domain models.

Provides the boundary shapes exchanged with callers (configuration, update
requests, participant references) and the read snapshots of conversations
and their participants. All models use Pydantic for validation; custom data
size and the direct/uber/public constraints are checked here, before a
request ever reaches the engine.
"""

import json
from typing import Any, Dict, List, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

MAX_CUSTOM_DATA_BYTES = 5120


def _check_custom_data_size(value: Optional[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    if value is None:
        return value
    size = len(json.dumps(value, separators=(",", ":"), default=str).encode("utf-8"))
    if size > MAX_CUSTOM_DATA_BYTES:
        raise ValueError(
            f"custom_data is {size} bytes when encoded, the limit is {MAX_CUSTOM_DATA_BYTES}"
        )
    return value


class PermissionFlags(BaseModel):
    """Capabilities of a participant within one conversation.

    Attributes:
        can_write: May send messages
        can_manage_participants: May add, edit and remove participants
        is_owner: May update title, public join flag and custom data
    """

    model_config = ConfigDict(frozen=True)

    can_write: bool = True
    can_manage_participants: bool = False
    is_owner: bool = False

    @classmethod
    def owner(cls) -> "PermissionFlags":
        """Flags granted to the creator of a conversation."""
        return cls(can_write=True, can_manage_participants=True, is_owner=True)


class ParticipantRef(BaseModel):
    """A user together with the permissions requested for them.

    Used as input for creating conversations and for adding, editing and
    removing participants. Permissions are ignored on removal.
    """

    model_config = ConfigDict(frozen=True)

    user_id: str = Field(min_length=1)
    permissions: PermissionFlags = Field(default_factory=PermissionFlags)


class MembershipInterval(BaseModel):
    """A span of sequence numbers during which a user was a member.

    Attributes:
        start: Sequence of the event that made the user a member
        end: Sequence of the event that removed them, None while still a member
    """

    model_config = ConfigDict(frozen=True)

    start: int
    end: Optional[int] = None

    def contains(self, sequence: int) -> bool:
        """Check whether a sequence falls inside this interval (both ends inclusive)."""
        if sequence < self.start:
            return False
        return self.end is None or sequence <= self.end


class Participant(BaseModel):
    """Membership record of one user in one conversation.

    A participant is never deleted. Leaving or being removed closes the
    current membership interval; being added again opens a new one.

    Attributes:
        user_id: User identifier
        permissions: Current permission flags
        last_read_sequence: Sequence of the last event marked as read
        intervals: Membership intervals in ascending order
    """

    model_config = ConfigDict(frozen=True)

    user_id: str
    permissions: PermissionFlags = Field(default_factory=PermissionFlags)
    last_read_sequence: int = 0
    intervals: List[MembershipInterval] = Field(default_factory=list)

    @property
    def is_active(self) -> bool:
        """True while the user is a current member."""
        return bool(self.intervals) and self.intervals[-1].end is None

    @property
    def joined_sequence(self) -> Optional[int]:
        """Sequence at which the user first became a member."""
        return self.intervals[0].start if self.intervals else None

    @property
    def left_sequence(self) -> Optional[int]:
        """Sequence of the most recent departure, None for active members."""
        if not self.intervals or self.is_active:
            return None
        return self.intervals[-1].end

    def was_member_at(self, sequence: int) -> bool:
        """Check whether the user was a member when the given event was emitted."""
        return any(interval.contains(sequence) for interval in self.intervals)

    def to_ref(self) -> ParticipantRef:
        return ParticipantRef(user_id=self.user_id, permissions=self.permissions)


class ConversationConfig(BaseModel):
    """Configuration used to create a conversation.

    A direct conversation can be neither uber nor public.

    Attributes:
        direct: Two-party conversation, unique per pair of users
        public_join: Anyone may join by UUID
        uber: Members cannot retrieve events emitted while they were not members
        title: Optional human-readable title
        custom_data: Arbitrary data, at most MAX_CUSTOM_DATA_BYTES when JSON-encoded
        participants: Initial participants besides the creator
    """

    direct: bool = False
    public_join: bool = False
    uber: bool = False
    title: Optional[str] = None
    custom_data: Dict[str, Any] = Field(default_factory=dict)
    participants: List[ParticipantRef] = Field(default_factory=list)

    @field_validator("custom_data")
    @classmethod
    def validate_custom_data(cls, value: Dict[str, Any]) -> Dict[str, Any]:
        """Reject custom data above the size cap."""
        return _check_custom_data_size(value)  # type: ignore[return-value]

    @model_validator(mode="after")
    def validate_direct_flags(self) -> "ConversationConfig":
        """Validate that a direct conversation is neither uber nor public.

        Raises:
            ValueError: If direct is combined with uber or public_join
        """
        if self.direct and (self.uber or self.public_join):
            raise ValueError("A direct conversation can't be uber or public")
        return self


class ConversationUpdate(BaseModel):
    """Changes sent by an owner through ``update``.

    Only title, public join flag and custom data can ever be updated. Fields
    that are not passed are not changed; passing None clears title or custom
    data.
    """

    title: Optional[str] = None
    public_join: Optional[bool] = None
    custom_data: Optional[Dict[str, Any]] = None

    @field_validator("custom_data")
    @classmethod
    def validate_custom_data(cls, value: Optional[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
        """Reject custom data above the size cap."""
        return _check_custom_data_size(value)


class Conversation(BaseModel):
    """Read snapshot of a conversation.

    Attributes:
        uuid: Immutable conversation identifier
        title: Current title
        direct: Whether the conversation is direct
        uber: Whether the conversation is uber
        public_join: Whether anyone may join by UUID
        custom_data: Current custom data
        participants: Active and departed participants
        created_time: Unix time of creation
        last_sequence: Sequence of the most recent durable event
        last_update_time: Unix time of the most recent durable event
    """

    model_config = ConfigDict(frozen=True)

    uuid: UUID
    title: Optional[str] = None
    direct: bool = False
    uber: bool = False
    public_join: bool = False
    custom_data: Dict[str, Any] = Field(default_factory=dict)
    participants: List[Participant] = Field(default_factory=list)
    created_time: int
    last_sequence: int
    last_update_time: int

    @property
    def active_participants(self) -> List[Participant]:
        return [p for p in self.participants if p.is_active]
