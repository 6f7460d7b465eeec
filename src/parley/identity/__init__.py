"""User identity lookups consulted when participant lists change."""

from parley.identity.directory import InMemoryUserDirectory, UserDirectory, UserRecord

__all__ = [
    "InMemoryUserDirectory",
    "UserDirectory",
    "UserRecord",
]
