"""Pipeline stage repository: ordered board columns with a referential guard."""
import logging
from typing import Optional, Sequence
from uuid import UUID

from sqlalchemy import delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from db.models import Lead, PipelineStage
from db.repositories import leads as leads_repo
from errors import StageInUseError, StageNotFoundError

logger = logging.getLogger(__name__)

DEFAULT_COLOR = "#64748b"


async def list_stages(session: AsyncSession) -> list[PipelineStage]:
    """Return all stages ordered by order_position."""
    result = await session.execute(
        select(PipelineStage).order_by(PipelineStage.order_position)
    )
    return list(result.scalars().all())


async def get(session: AsyncSession, stage_id: UUID) -> Optional[PipelineStage]:
    result = await session.execute(
        select(PipelineStage).where(PipelineStage.id == stage_id)
    )
    return result.scalar_one_or_none()


async def first_stage(session: AsyncSession) -> Optional[PipelineStage]:
    """Return the lowest-ordered stage, where new imports land."""
    result = await session.execute(
        select(PipelineStage).order_by(PipelineStage.order_position).limit(1)
    )
    return result.scalar_one_or_none()


async def create_stage(
    session: AsyncSession, name: str, color: str = DEFAULT_COLOR
) -> PipelineStage:
    """Append a stage after the current highest order_position.

    Positions are gap-tolerant: deleting stage 2 of 1..3 and then creating a
    new one yields 4, not 2.
    """
    max_position = (
        await session.execute(select(func.max(PipelineStage.order_position)))
    ).scalar_one_or_none()
    stage = PipelineStage(
        name=name,
        color=color or DEFAULT_COLOR,
        order_position=(max_position or 0) + 1,
    )
    session.add(stage)
    await session.flush()
    logger.info("Created stage %r at position %d", name, stage.order_position)
    return stage


async def update_stage(
    session: AsyncSession,
    stage_id: UUID,
    name: Optional[str] = None,
    color: Optional[str] = None,
) -> PipelineStage:
    stage = await get(session, stage_id)
    if stage is None:
        raise StageNotFoundError(f"Stage {stage_id} not found")
    if name is not None:
        stage.name = name
    if color is not None:
        stage.color = color
    await session.flush()
    return stage


async def reorder_stages(
    session: AsyncSession, ordered_ids: Sequence[UUID]
) -> list[PipelineStage]:
    """Rewrite order_position as 1..n following ordered_ids.

    Stages missing from ordered_ids keep their relative order after the
    listed ones.
    """
    stages = await list_stages(session)
    by_id = {stage.id: stage for stage in stages}
    unknown = [sid for sid in ordered_ids if sid not in by_id]
    if unknown:
        raise StageNotFoundError(f"Stage {unknown[0]} not found")

    listed = [by_id[sid] for sid in ordered_ids]
    rest = [stage for stage in stages if stage.id not in set(ordered_ids)]
    for position, stage in enumerate(listed + rest, start=1):
        stage.order_position = position
    await session.flush()
    return listed + rest


async def delete_stage(session: AsyncSession, stage_id: UUID) -> None:
    """Delete a stage, refusing if any lead still references it.

    The existence check runs before the DELETE is issued, so a refused
    delete leaves the table untouched.
    """
    stage = await get(session, stage_id)
    if stage is None:
        raise StageNotFoundError(f"Stage {stage_id} not found")
    if await leads_repo.exists_in_stage(session, stage_id):
        count = await leads_repo.count_in_stage(session, stage_id)
        logger.warning("Refused to delete stage %s: %d lead(s) in it", stage_id, count)
        raise StageInUseError(stage_id, count)
    await session.execute(delete(PipelineStage).where(PipelineStage.id == stage_id))
    await session.flush()
    logger.info("Deleted stage %s (%s)", stage_id, stage.name)


async def lead_counts(session: AsyncSession) -> list[tuple[PipelineStage, int]]:
    """Return (stage, lead count) pairs in board order, zero-filled."""
    stmt = (
        select(PipelineStage, func.count(Lead.id))
        .outerjoin(Lead, Lead.pipeline_stage_id == PipelineStage.id)
        .group_by(PipelineStage.id)
        .order_by(PipelineStage.order_position)
    )
    result = await session.execute(stmt)
    return [(stage, count) for stage, count in result.all()]
