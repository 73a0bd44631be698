"""Lead repository — phone dedup, tag/status writes and pool queries."""
import logging
from datetime import datetime, timezone
from typing import Optional, Sequence
from uuid import UUID

from sqlalchemy import delete, func, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from db.models import CampaignEnrollment, Conversation, Lead, Message

logger = logging.getLogger(__name__)

LEADS_PER_PAGE = 25

SORTABLE_COLUMNS = (
    "first_name", "last_name", "phone", "email", "city", "state",
    "status", "lead_source", "created_at", "updated_at",
)


def _matches(query: str):
    pattern = f"%{query}%"
    return or_(
        Lead.first_name.ilike(pattern),
        Lead.last_name.ilike(pattern),
        Lead.phone.ilike(pattern),
        Lead.email.ilike(pattern),
    )


async def get_by_id(session: AsyncSession, lead_id: UUID) -> Optional[Lead]:
    """Return the Lead with this id, or None."""
    result = await session.execute(select(Lead).where(Lead.id == lead_id))
    return result.scalar_one_or_none()


async def get_by_ids(session: AsyncSession, lead_ids: Sequence[UUID]) -> list[Lead]:
    """Return leads in the order the ids were given; unknown ids are dropped."""
    if not lead_ids:
        return []
    result = await session.execute(select(Lead).where(Lead.id.in_(list(lead_ids))))
    by_id = {lead.id: lead for lead in result.scalars().all()}
    return [by_id[i] for i in lead_ids if i in by_id]


async def get_by_phone(session: AsyncSession, phone: str) -> Optional[Lead]:
    """Return the Lead with this exact (already normalized) phone, or None."""
    result = await session.execute(select(Lead).where(Lead.phone == phone))
    return result.scalar_one_or_none()


async def create(session: AsyncSession, data: dict) -> Lead:
    """Insert a lead.

    data dict keys: first_name, last_name, phone, email, address, city, state,
    zip, notes, tags, lead_source, status, pipeline_stage_id, user_id, owner_id
    """
    lead = Lead(**data)
    session.add(lead)
    await session.flush()
    return lead


async def apply_changes(session: AsyncSession, lead: Lead, data: dict) -> Lead:
    """Apply a partial update to a loaded lead."""
    for key, value in data.items():
        setattr(lead, key, value)
    await session.flush()
    return lead


async def set_tags_and_status(
    session: AsyncSession, lead: Lead, tags: list[str], status: Optional[str] = None
) -> Lead:
    """Replace the tag list (new list object, so the JSON column is marked dirty)."""
    lead.tags = list(tags)
    if status is not None:
        lead.status = status
    await session.flush()
    return lead


async def move_to_stage(
    session: AsyncSession, lead_id: UUID, stage_id: UUID
) -> Optional[Lead]:
    """Reassign a lead to another pipeline stage (drag-and-drop)."""
    result = await session.execute(
        update(Lead)
        .where(Lead.id == lead_id)
        .values(pipeline_stage_id=stage_id)
        .returning(Lead),
        execution_options={"populate_existing": True},
    )
    await session.flush()
    return result.scalar_one_or_none()


async def update_notes(
    session: AsyncSession, lead_id: UUID, notes: Optional[str]
) -> Optional[Lead]:
    result = await session.execute(
        update(Lead).where(Lead.id == lead_id).values(notes=notes).returning(Lead),
        execution_options={"populate_existing": True},
    )
    await session.flush()
    return result.scalar_one_or_none()


async def exists_in_stage(session: AsyncSession, stage_id: UUID) -> bool:
    """Return True if at least one lead references this stage."""
    result = await session.execute(
        select(Lead.id).where(Lead.pipeline_stage_id == stage_id).limit(1)
    )
    return result.first() is not None


async def count_in_stage(session: AsyncSession, stage_id: UUID) -> int:
    result = await session.execute(
        select(func.count()).select_from(Lead).where(Lead.pipeline_stage_id == stage_id)
    )
    return result.scalar_one()


async def delete_many(session: AsyncSession, lead_ids: Sequence[UUID]) -> int:
    """Hard-delete leads along with their conversations, messages and enrollments.

    Returns the number of leads removed.
    """
    ids = list(lead_ids)
    if not ids:
        return 0
    conversation_ids = select(Conversation.id).where(Conversation.lead_id.in_(ids))
    await session.execute(
        delete(Message).where(Message.conversation_id.in_(conversation_ids))
    )
    await session.execute(delete(Conversation).where(Conversation.lead_id.in_(ids)))
    await session.execute(
        delete(CampaignEnrollment).where(CampaignEnrollment.lead_id.in_(ids))
    )
    result = await session.execute(
        delete(Lead).where(Lead.id.in_(ids)).returning(Lead.id)
    )
    await session.flush()
    count = len(result.fetchall())
    logger.info("Deleted %d lead(s)", count)
    return count


async def search(
    session: AsyncSession,
    *,
    user_id: Optional[UUID] = None,
    query: Optional[str] = None,
    sort_column: str = "created_at",
    descending: bool = True,
    page: int = 1,
    per_page: int = LEADS_PER_PAGE,
) -> tuple[list[Lead], int]:
    """Return one page of leads plus the total match count.

    user_id limits results to leads created by that user (non-admin view).
    query matches first/last name, phone or email case-insensitively.
    """
    if sort_column not in SORTABLE_COLUMNS:
        raise ValueError(f"Cannot sort leads by {sort_column!r}")

    stmt = select(Lead)
    if user_id is not None:
        stmt = stmt.where(Lead.user_id == user_id)
    if query:
        stmt = stmt.where(_matches(query))

    total = (
        await session.execute(select(func.count()).select_from(stmt.subquery()))
    ).scalar_one()

    column = getattr(Lead, sort_column)
    stmt = stmt.order_by(column.desc() if descending else column.asc())
    stmt = stmt.offset((page - 1) * per_page).limit(per_page)
    result = await session.execute(stmt)
    return list(result.scalars().all()), total


async def list_assigned(
    session: AsyncSession,
    owner_id: Optional[UUID] = None,
    query: Optional[str] = None,
) -> list[Lead]:
    """Return leads that have an owner (the pipeline board), newest first."""
    stmt = select(Lead).where(Lead.owner_id.isnot(None))
    if owner_id is not None:
        stmt = stmt.where(Lead.owner_id == owner_id)
    if query:
        stmt = stmt.where(_matches(query))
    result = await session.execute(stmt.order_by(Lead.created_at.desc()))
    return list(result.scalars().all())


async def list_pool(
    session: AsyncSession, viewer_id: Optional[UUID] = None
) -> list[Lead]:
    """Return leads whose conversation has been handed off to a human.

    viewer_id None returns every handed-off lead (admin view); otherwise only
    unassigned leads plus those owned by the viewer.
    """
    handed_off = select(Conversation.lead_id).where(
        Conversation.requires_human_handoff == True  # noqa: E712
    )
    stmt = select(Lead).where(Lead.id.in_(handed_off))
    if viewer_id is not None:
        stmt = stmt.where(or_(Lead.owner_id.is_(None), Lead.owner_id == viewer_id))
    result = await session.execute(stmt.order_by(Lead.created_at.desc()))
    return list(result.scalars().all())


async def claim(session: AsyncSession, lead_id: UUID, owner_id: UUID) -> Optional[Lead]:
    """Assign a pooled lead to an agent."""
    result = await session.execute(
        update(Lead)
        .where(Lead.id == lead_id)
        .values(owner_id=owner_id, claimed_at=datetime.now(timezone.utc))
        .returning(Lead),
        execution_options={"populate_existing": True},
    )
    await session.flush()
    return result.scalar_one_or_none()


async def unassign_owner(session: AsyncSession, owner_id: UUID) -> int:
    """Return every lead owned by this user to the pool. Returns the count."""
    result = await session.execute(
        update(Lead)
        .where(Lead.owner_id == owner_id)
        .values(owner_id=None)
        .returning(Lead.id)
    )
    await session.flush()
    return len(result.fetchall())


async def count_created_since(session: AsyncSession, since: datetime) -> int:
    result = await session.execute(
        select(func.count()).select_from(Lead).where(Lead.created_at >= since)
    )
    return result.scalar_one()
