"""User management: roles, profiles and the remote create/delete functions."""
import asyncio
import logging
from typing import Optional
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from db.repositories import leads as leads_repo
from db.repositories import preferences as preferences_repo
from db.repositories import users as users_repo
from errors import AuthorizationError
from integrations import admin_functions
from schemas.conversation import PreferencesRecord, UserForm, UserRecord

logger = logging.getLogger(__name__)


async def _require_admin(session: AsyncSession, actor_id: UUID) -> None:
    if not await users_repo.is_admin(session, actor_id):
        raise AuthorizationError("Only admins can manage users")


def _record(user, role: Optional[str]) -> UserRecord:
    return UserRecord(
        id=user.id,
        email=user.email,
        full_name=user.full_name,
        phone_number=user.phone_number,
        is_active=user.is_active,
        receive_sms_notifications=user.receive_sms_notifications,
        role="admin" if role == "admin" else "user",
    )


async def get_role(session: AsyncSession, user_id: UUID) -> str:
    """A user without a role row is treated as a regular user."""
    return "admin" if await users_repo.is_admin(session, user_id) else "user"


async def list_users(session: AsyncSession, actor_id: UUID) -> list[UserRecord]:
    await _require_admin(session, actor_id)
    return [_record(user, role) for user, role in await users_repo.list_with_roles(session)]


async def update_user(
    session: AsyncSession, actor_id: UUID, user_id: UUID, form: UserForm
) -> UserRecord:
    """Admin edit of another user's profile and role."""
    await _require_admin(session, actor_id)
    user = await users_repo.update_profile(session, user_id, {
        "full_name": form.full_name.strip(),
        "phone_number": (form.phone_number or "").strip() or None,
        "twilio_phone_number": (form.twilio_phone_number or "").strip() or None,
        "designation": (form.designation or "").strip() or None,
        "receive_sms_notifications": form.receive_sms_notifications,
        "is_active": form.is_active,
    })
    if user is None:
        raise ValueError(f"User {user_id} not found")
    await users_repo.set_role(session, user_id, form.role)
    await session.commit()
    return _record(user, form.role)


async def update_own_profile(session: AsyncSession, user_id: UUID, data: dict) -> UserRecord:
    """Settings page edit; role and activation are not self-editable."""
    data = {k: v for k, v in data.items() if k not in ("is_active", "role")}
    user = await users_repo.update_profile(session, user_id, data)
    if user is None:
        raise ValueError(f"User {user_id} not found")
    await session.commit()
    return _record(user, await users_repo.get_role(session, user_id))


async def set_sms_notifications(
    session: AsyncSession, actor_id: UUID, user_id: UUID, enabled: bool
) -> None:
    if actor_id != user_id:
        await _require_admin(session, actor_id)
    await users_repo.set_sms_notifications(session, user_id, enabled)
    await session.commit()


async def create_user(session: AsyncSession, actor_id: UUID, form: UserForm) -> dict:
    """Create an account through the admin function. Returns its envelope."""
    await _require_admin(session, actor_id)
    return await asyncio.to_thread(admin_functions.create_user, form)


async def delete_user(session: AsyncSession, actor_id: UUID, user_id: UUID) -> dict:
    """Delete an account through the admin function. Returns its envelope."""
    await _require_admin(session, actor_id)
    if actor_id == user_id:
        return {"success": False, "error": "You cannot delete your own account"}
    return await asyncio.to_thread(admin_functions.delete_user, str(user_id))


async def unassign_leads(session: AsyncSession, owner_id: UUID) -> int:
    """Return a departing user's leads to the pool (same step the delete function runs)."""
    count = await leads_repo.unassign_owner(session, owner_id)
    await session.commit()
    logger.info("Returned %d lead(s) from %s to the pool", count, owner_id)
    return count


async def remove_user_locally(session: AsyncSession, actor_id: UUID, user_id: UUID) -> bool:
    """Delete role, unassign leads, then delete the profile, in one transaction.

    For deployments without the hosted admin function; the auth account is
    not touched.
    """
    await _require_admin(session, actor_id)
    await leads_repo.unassign_owner(session, user_id)
    deleted = await users_repo.delete_user(session, user_id)
    await session.commit()
    return deleted


async def get_preferences(session: AsyncSession, user_id: UUID) -> PreferencesRecord:
    prefs = await preferences_repo.get_preferences(session, user_id)
    await session.commit()
    return PreferencesRecord.model_validate(prefs)


async def set_visible_columns(
    session: AsyncSession, user_id: UUID, columns: list[str]
) -> PreferencesRecord:
    prefs = await preferences_repo.set_visible_columns(session, user_id, columns)
    await session.commit()
    return PreferencesRecord.model_validate(prefs)


async def toggle_column(session: AsyncSession, user_id: UUID, column: str) -> PreferencesRecord:
    prefs = await preferences_repo.toggle_column(session, user_id, column)
    await session.commit()
    return PreferencesRecord.model_validate(prefs)


async def show_all_columns(session: AsyncSession, user_id: UUID) -> PreferencesRecord:
    prefs = await preferences_repo.show_all(session, user_id)
    await session.commit()
    return PreferencesRecord.model_validate(prefs)


async def hide_all_columns(session: AsyncSession, user_id: UUID) -> PreferencesRecord:
    prefs = await preferences_repo.hide_all(session, user_id)
    await session.commit()
    return PreferencesRecord.model_validate(prefs)


async def save_filters(session: AsyncSession, user_id: UUID, filters: dict) -> PreferencesRecord:
    prefs = await preferences_repo.set_filters(session, user_id, filters)
    await session.commit()
    return PreferencesRecord.model_validate(prefs)
