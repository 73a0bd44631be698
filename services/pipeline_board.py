"""Pipeline board: admin-managed stages and drag-and-drop lead moves."""
import logging
from typing import Optional, Sequence
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from db.models import Lead, PipelineStage
from db.realtime import QueryCache
from db.repositories import leads as leads_repo
from db.repositories import pipeline_stages as stages_repo
from db.repositories import users as users_repo
from errors import AuthorizationError, LeadNotFoundError, StageNotFoundError

logger = logging.getLogger(__name__)

LEADS_QUERY_KEY = ("leads",)
STAGES_QUERY_KEY = ("pipeline-stages",)


async def _require_admin(session: AsyncSession, actor_id: UUID) -> None:
    if not await users_repo.is_admin(session, actor_id):
        raise AuthorizationError("Only admins can manage pipeline stages")


def _invalidate(cache: Optional[QueryCache], key: tuple) -> None:
    if cache is not None:
        cache.invalidate(key)


async def create_stage(
    session: AsyncSession,
    actor_id: UUID,
    name: str,
    color: Optional[str] = None,
    cache: Optional[QueryCache] = None,
) -> PipelineStage:
    await _require_admin(session, actor_id)
    if not name.strip():
        raise ValueError("Stage name is required")
    stage = await stages_repo.create_stage(
        session, name.strip(), color or stages_repo.DEFAULT_COLOR
    )
    await session.commit()
    _invalidate(cache, STAGES_QUERY_KEY)
    return stage


async def update_stage(
    session: AsyncSession,
    actor_id: UUID,
    stage_id: UUID,
    name: Optional[str] = None,
    color: Optional[str] = None,
    cache: Optional[QueryCache] = None,
) -> PipelineStage:
    await _require_admin(session, actor_id)
    stage = await stages_repo.update_stage(session, stage_id, name=name, color=color)
    await session.commit()
    _invalidate(cache, STAGES_QUERY_KEY)
    return stage


async def reorder_stages(
    session: AsyncSession,
    actor_id: UUID,
    ordered_ids: Sequence[UUID],
    cache: Optional[QueryCache] = None,
) -> list[PipelineStage]:
    await _require_admin(session, actor_id)
    stages = await stages_repo.reorder_stages(session, ordered_ids)
    await session.commit()
    _invalidate(cache, STAGES_QUERY_KEY)
    return stages


async def delete_stage(
    session: AsyncSession,
    actor_id: UUID,
    stage_id: UUID,
    cache: Optional[QueryCache] = None,
) -> None:
    """Delete a stage. StageInUseError if any lead is still in it."""
    await _require_admin(session, actor_id)
    await stages_repo.delete_stage(session, stage_id)
    await session.commit()
    _invalidate(cache, STAGES_QUERY_KEY)


async def move_lead(
    session: AsyncSession,
    lead_id: UUID,
    stage_id: UUID,
    cache: Optional[QueryCache] = None,
) -> Lead:
    """Drop a lead onto another stage column."""
    if await stages_repo.get(session, stage_id) is None:
        raise StageNotFoundError(f"Stage {stage_id} not found")
    lead = await leads_repo.move_to_stage(session, lead_id, stage_id)
    if lead is None:
        raise LeadNotFoundError(f"Lead {lead_id} not found")
    await session.commit()
    _invalidate(cache, LEADS_QUERY_KEY)
    return lead


async def update_notes(
    session: AsyncSession,
    lead_id: UUID,
    notes: Optional[str],
    cache: Optional[QueryCache] = None,
) -> Lead:
    lead = await leads_repo.update_notes(session, lead_id, notes)
    if lead is None:
        raise LeadNotFoundError(f"Lead {lead_id} not found")
    await session.commit()
    _invalidate(cache, LEADS_QUERY_KEY)
    return lead


async def board(
    session: AsyncSession,
    viewer_id: UUID,
    salesperson_id: Optional[UUID] = None,
    search: Optional[str] = None,
) -> list[tuple[PipelineStage, list[Lead]]]:
    """Assigned leads grouped by stage, in stage order.

    Admins see every assigned lead, or one salesperson's when given;
    everyone else sees only their own.
    """
    if await users_repo.is_admin(session, viewer_id):
        owner_id = salesperson_id
    else:
        owner_id = viewer_id

    stages = await stages_repo.list_stages(session)
    leads = await leads_repo.list_assigned(session, owner_id=owner_id, query=search)
    columns: dict[UUID, list[Lead]] = {stage.id: [] for stage in stages}
    for lead in leads:
        columns.setdefault(lead.pipeline_stage_id, []).append(lead)
    return [(stage, columns[stage.id]) for stage in stages]
