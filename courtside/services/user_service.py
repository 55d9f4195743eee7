"""
User service layer for account and profile database operations.
"""

from typing import Dict, Iterable, Optional
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, update, func
from courtside.database.models import User
from courtside.utils.datetime_utils import isoformat_utc
import logging

logger = logging.getLogger(__name__)


def _user_to_dict(user: User) -> Dict:
    """Full user record, including the password hash, for internal callers."""
    return {
        "id": user.id,
        "email": user.email,
        "name": user.name,
        "img_url": user.img_url,
        "password_hash": user.password_hash,
        "created_at": isoformat_utc(user.created_at),
    }


def public_profile(user: Dict) -> Dict:
    """Strip private fields from a user dict."""
    return {
        "id": user["id"],
        "name": user.get("name"),
        "img_url": user.get("img_url"),
    }


async def create_user(
    session: AsyncSession, email: str, password_hash: str, name: Optional[str] = None
) -> int:
    """
    Create a new user account.

    Args:
        session: Database session
        email: Email address (will be normalized to lowercase)
        password_hash: Hashed password
        name: Optional display name

    Returns:
        User ID of the created user

    Raises:
        ValueError: If a user with this email already exists
    """
    email = email.strip().lower()
    result = await session.execute(select(User.id).where(User.email == email))
    if result.scalar_one_or_none():
        raise ValueError(f"Email {email} is already registered")

    new_user = User(email=email, password_hash=password_hash, name=name.strip() if name else None)
    session.add(new_user)
    await session.flush()
    user_id = new_user.id
    await session.commit()

    logger.info(f"Created user {user_id}")
    return user_id


async def get_user_by_email(session: AsyncSession, email: str) -> Optional[Dict]:
    """
    Get user by email address.

    Args:
        session: Database session
        email: Email address (will be normalized to lowercase)

    Returns:
        User dictionary or None if not found
    """
    email = email.strip().lower() if email else None
    if not email:
        return None

    result = await session.execute(select(User).where(func.lower(User.email) == email).limit(1))
    user = result.scalar_one_or_none()
    return _user_to_dict(user) if user else None


async def get_user_by_id(session: AsyncSession, user_id: int) -> Optional[Dict]:
    """
    Get user by ID.

    Args:
        session: Database session
        user_id: User ID

    Returns:
        User dictionary or None if not found
    """
    result = await session.execute(
        select(User).where(User.id == user_id).execution_options(populate_existing=True)
    )
    user = result.scalar_one_or_none()
    return _user_to_dict(user) if user else None


async def get_users_by_ids(session: AsyncSession, user_ids: Iterable[int]) -> Dict[int, Dict]:
    """
    Batch-fetch public profiles.

    Returns:
        Dict mapping user_id to public profile dict; unknown IDs are absent
    """
    user_ids = list(set(user_ids))
    if not user_ids:
        return {}
    result = await session.execute(select(User).where(User.id.in_(user_ids)))
    return {user.id: public_profile(_user_to_dict(user)) for user in result.scalars().all()}


async def get_missing_user_ids(session: AsyncSession, user_ids: Iterable[int]) -> set:
    """Return the subset of user_ids that do not exist."""
    wanted = set(user_ids)
    if not wanted:
        return set()
    result = await session.execute(select(User.id).where(User.id.in_(wanted)))
    return wanted - set(result.scalars().all())


async def update_user_profile(
    session: AsyncSession,
    user_id: int,
    name: Optional[str] = None,
    img_url: Optional[str] = None,
) -> bool:
    """
    Update a user's display name and/or photo URL.

    Args:
        session: Database session
        user_id: User ID
        name: Optional new display name
        img_url: Optional new photo URL (upload is handled by the storage collaborator)

    Returns:
        True if a row was updated, False otherwise
    """
    update_values = {"updated_at": func.now()}

    if name is not None:
        name = name.strip()
        if not name:
            raise ValueError("Name cannot be empty")
        update_values["name"] = name
    if img_url is not None:
        update_values["img_url"] = img_url.strip() or None

    if len(update_values) == 1:  # Only updated_at, nothing to update
        return False

    result = await session.execute(update(User).where(User.id == user_id).values(**update_values))
    await session.commit()
    return result.rowcount > 0
