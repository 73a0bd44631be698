"""User profile and role repositories."""
import logging
from typing import Optional
from uuid import UUID

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from db.models import APP_ROLES, User, UserRole

logger = logging.getLogger(__name__)

_PROFILE_FIELDS = (
    "full_name", "phone_number", "twilio_phone_number", "designation",
    "avatar_url", "is_active", "receive_sms_notifications",
)


async def get_by_id(session: AsyncSession, user_id: UUID) -> Optional[User]:
    result = await session.execute(select(User).where(User.id == user_id))
    return result.scalar_one_or_none()


async def get_by_email(session: AsyncSession, email: str) -> Optional[User]:
    result = await session.execute(select(User).where(User.email == email))
    return result.scalar_one_or_none()


async def create(session: AsyncSession, data: dict) -> User:
    """Insert a user profile row (the auth account lives elsewhere).

    data dict keys: id (optional), email, full_name, phone_number,
    twilio_phone_number, designation, is_active, receive_sms_notifications
    """
    user = User(**data)
    session.add(user)
    await session.flush()
    return user


async def get_role(session: AsyncSession, user_id: UUID) -> Optional[str]:
    result = await session.execute(
        select(UserRole.role).where(UserRole.user_id == user_id)
    )
    return result.scalar_one_or_none()


async def is_admin(session: AsyncSession, user_id: UUID) -> bool:
    return await get_role(session, user_id) == "admin"


async def set_role(session: AsyncSession, user_id: UUID, role: str) -> UserRole:
    """Insert or replace the single role row for a user."""
    if role not in APP_ROLES:
        raise ValueError(f"Unknown role {role!r}")
    result = await session.execute(select(UserRole).where(UserRole.user_id == user_id))
    user_role = result.scalar_one_or_none()
    if user_role is None:
        user_role = UserRole(user_id=user_id, role=role)
        session.add(user_role)
    else:
        user_role.role = role
    await session.flush()
    return user_role


async def update_profile(
    session: AsyncSession, user_id: UUID, data: dict
) -> Optional[User]:
    """Apply profile changes; keys outside the editable set are ignored."""
    user = await get_by_id(session, user_id)
    if user is None:
        return None
    for key, value in data.items():
        if key in _PROFILE_FIELDS:
            setattr(user, key, value)
    await session.flush()
    return user


async def set_sms_notifications(
    session: AsyncSession, user_id: UUID, enabled: bool
) -> Optional[User]:
    return await update_profile(session, user_id, {"receive_sms_notifications": enabled})


async def list_with_roles(session: AsyncSession) -> list[tuple[User, Optional[str]]]:
    """Return every user with its role (None when no role row exists)."""
    result = await session.execute(
        select(User, UserRole.role)
        .outerjoin(UserRole, UserRole.user_id == User.id)
        .order_by(User.full_name)
    )
    return [(user, role) for user, role in result.all()]


async def delete_user(session: AsyncSession, user_id: UUID) -> bool:
    """Delete a user's role row and profile. Returns True if the user existed."""
    await session.execute(delete(UserRole).where(UserRole.user_id == user_id))
    result = await session.execute(
        delete(User).where(User.id == user_id).returning(User.id)
    )
    await session.flush()
    return result.first() is not None
