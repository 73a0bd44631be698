"""Per-user lead table preferences (visible columns and saved filters)."""
from typing import Iterable
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from db.models import UserPreference

OPTIONAL_COLUMNS = (
    "email", "address", "city", "state", "zip", "tags", "notes",
    "lead_source", "status", "created_at", "updated_at",
)
DEFAULT_VISIBLE_COLUMNS = ("email", "status", "tags")


async def get_preferences(session: AsyncSession, user_id: UUID) -> UserPreference:
    """Return the user's preferences, creating the default row on first use."""
    result = await session.execute(
        select(UserPreference).where(UserPreference.user_id == user_id)
    )
    prefs = result.scalar_one_or_none()
    if prefs is None:
        prefs = UserPreference(
            user_id=user_id,
            visible_columns=list(DEFAULT_VISIBLE_COLUMNS),
            filters={},
        )
        session.add(prefs)
        await session.flush()
    return prefs


async def set_visible_columns(
    session: AsyncSession, user_id: UUID, columns: Iterable[str]
) -> UserPreference:
    """Replace the visible column list, kept in OPTIONAL_COLUMNS order."""
    requested = set(columns)
    unknown = requested - set(OPTIONAL_COLUMNS)
    if unknown:
        raise ValueError(f"Unknown column(s): {', '.join(sorted(unknown))}")
    prefs = await get_preferences(session, user_id)
    prefs.visible_columns = [col for col in OPTIONAL_COLUMNS if col in requested]
    await session.flush()
    return prefs


async def toggle_column(
    session: AsyncSession, user_id: UUID, column: str
) -> UserPreference:
    prefs = await get_preferences(session, user_id)
    current = set(prefs.visible_columns)
    current ^= {column}
    return await set_visible_columns(session, user_id, current)


async def show_all(session: AsyncSession, user_id: UUID) -> UserPreference:
    return await set_visible_columns(session, user_id, OPTIONAL_COLUMNS)


async def hide_all(session: AsyncSession, user_id: UUID) -> UserPreference:
    return await set_visible_columns(session, user_id, [])


async def set_filters(
    session: AsyncSession, user_id: UUID, filters: dict
) -> UserPreference:
    prefs = await get_preferences(session, user_id)
    prefs.filters = dict(filters)
    await session.flush()
    return prefs
