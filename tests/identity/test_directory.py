"""Tests for the in-memory user directory."""

import pytest

from parley.identity.directory import InMemoryUserDirectory, UserRecord


async def test_get_user_returns_record():
    directory = InMemoryUserDirectory(["alice"])

    assert await directory.get_user("alice") == UserRecord(user_id="alice")
    assert await directory.get_user("bob") is None


async def test_add_user():
    directory = InMemoryUserDirectory()

    await directory.add_user("bob")

    assert (await directory.get_user("bob")).is_deleted is False


async def test_mark_deleted_keeps_record():
    directory = InMemoryUserDirectory(["alice"])

    await directory.mark_deleted("alice")

    record = await directory.get_user("alice")
    assert record is not None
    assert record.is_deleted is True


async def test_mark_deleted_unknown_user():
    with pytest.raises(KeyError):
        await InMemoryUserDirectory().mark_deleted("ghost")
