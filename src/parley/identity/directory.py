"""User directory interface and in-memory implementation.

The account system that owns users lives outside parley. The participant
registry only needs to know whether a user exists and whether the account
has been flagged deleted, which is what ``UserDirectory`` answers.
"""

import asyncio
from typing import Dict, Iterable, Optional, Protocol

from pydantic import BaseModel, ConfigDict


class UserRecord(BaseModel):
    """Existence and deletion status of one user account.

    Attributes:
        user_id: Unique user identifier
        is_deleted: True if the account has been deleted
    """

    model_config = ConfigDict(frozen=True)

    user_id: str
    is_deleted: bool = False


class UserDirectory(Protocol):
    """Lookup interface for user accounts."""

    async def get_user(self, user_id: str) -> Optional[UserRecord]:
        """Get a user account by ID.

        Args:
            user_id: User identifier

        Returns:
            UserRecord if the user exists (deleted or not), None otherwise
        """
        ...


class InMemoryUserDirectory:
    """Dictionary-backed UserDirectory for development and testing.

    Example:
        >>> directory = InMemoryUserDirectory(["alice", "bob"])
        >>> await directory.get_user("alice")
        UserRecord(user_id='alice', is_deleted=False)
    """

    def __init__(self, user_ids: Iterable[str] = ()) -> None:
        """Initialize the directory with a set of live users.

        Args:
            user_ids: Users that exist and are not deleted
        """
        self._users: Dict[str, UserRecord] = {
            user_id: UserRecord(user_id=user_id) for user_id in user_ids
        }
        self._lock = asyncio.Lock()

    async def add_user(self, user_id: str) -> UserRecord:
        """Register a live user account."""
        async with self._lock:
            record = UserRecord(user_id=user_id)
            self._users[user_id] = record
            return record

    async def mark_deleted(self, user_id: str) -> UserRecord:
        """Flag an existing account as deleted.

        Raises:
            KeyError: If the user does not exist
        """
        async with self._lock:
            if user_id not in self._users:
                raise KeyError(f"User '{user_id}' does not exist")
            record = self._users[user_id].model_copy(update={"is_deleted": True})
            self._users[user_id] = record
            return record

    async def get_user(self, user_id: str) -> Optional[UserRecord]:
        async with self._lock:
            return self._users.get(user_id)
