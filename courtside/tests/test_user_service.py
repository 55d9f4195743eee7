"""
Tests for user_service: account creation, lookup and profile edits.
"""

import pytest

from courtside.services import user_service


@pytest.mark.asyncio
async def test_create_and_get_user(db_session):
    user_id = await user_service.create_user(db_session, " Alice@Example.com ", "hash", "Alice ")

    user = await user_service.get_user_by_id(db_session, user_id)
    assert user["email"] == "alice@example.com"
    assert user["name"] == "Alice"

    by_email = await user_service.get_user_by_email(db_session, "ALICE@example.com")
    assert by_email["id"] == user_id


@pytest.mark.asyncio
async def test_duplicate_email_rejected(db_session):
    await user_service.create_user(db_session, "alice@example.com", "hash")
    with pytest.raises(ValueError, match="already registered"):
        await user_service.create_user(db_session, "ALICE@example.com", "hash")


@pytest.mark.asyncio
async def test_get_user_missing(db_session):
    assert await user_service.get_user_by_id(db_session, 404) is None
    assert await user_service.get_user_by_email(db_session, "") is None


@pytest.mark.asyncio
async def test_update_user_profile(db_session):
    user_id = await user_service.create_user(db_session, "pete@example.com", "hash", "Pete")

    assert await user_service.update_user_profile(db_session, user_id, name="Peter", img_url="https://img/p.png")
    user = await user_service.get_user_by_id(db_session, user_id)
    assert user["name"] == "Peter"
    assert user["img_url"] == "https://img/p.png"

    assert await user_service.update_user_profile(db_session, user_id) is False
    with pytest.raises(ValueError, match="Name cannot be empty"):
        await user_service.update_user_profile(db_session, user_id, name="   ")


@pytest.mark.asyncio
async def test_public_profiles_and_missing_ids(db_session):
    alice = await user_service.create_user(db_session, "alice@example.com", "hash", "Alice")
    bob = await user_service.create_user(db_session, "bob@example.com", "hash", "Bob")

    profiles = await user_service.get_users_by_ids(db_session, [alice, bob, 777])
    assert set(profiles) == {alice, bob}
    assert profiles[alice] == {"id": alice, "name": "Alice", "img_url": None}
    assert "email" not in profiles[bob]

    assert await user_service.get_missing_user_ids(db_session, [alice, 777]) == {777}
