"""Campaign enrollment repository.

An enrollment tracks one lead's position in one tag campaign. The
automation platform advances it once per scheduled day; a reply from the
lead pauses it.
"""
import logging
from datetime import datetime, timezone
from typing import Optional
from uuid import UUID

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from db.models import CampaignEnrollment, TagCampaignMessage

logger = logging.getLogger(__name__)


async def get(
    session: AsyncSession, lead_id: UUID, campaign_id: UUID
) -> Optional[CampaignEnrollment]:
    result = await session.execute(
        select(CampaignEnrollment)
        .where(CampaignEnrollment.lead_id == lead_id)
        .where(CampaignEnrollment.campaign_id == campaign_id)
    )
    return result.scalar_one_or_none()


async def enroll(
    session: AsyncSession, lead_id: UUID, campaign_id: UUID
) -> tuple[CampaignEnrollment, bool]:
    """Enroll a lead in a campaign unless already enrolled.

    Returns (enrollment, created). Calling twice for the same pair returns
    the existing row with created=False.
    """
    existing = await get(session, lead_id, campaign_id)
    if existing is not None:
        return existing, False
    enrollment = CampaignEnrollment(lead_id=lead_id, campaign_id=campaign_id)
    session.add(enrollment)
    await session.flush()
    logger.info("Enrolled lead %s in campaign %s", lead_id, campaign_id)
    return enrollment, True


async def list_for_lead(session: AsyncSession, lead_id: UUID) -> list[CampaignEnrollment]:
    result = await session.execute(
        select(CampaignEnrollment)
        .where(CampaignEnrollment.lead_id == lead_id)
        .order_by(CampaignEnrollment.created_at)
    )
    return list(result.scalars().all())


async def advance(
    session: AsyncSession, enrollment: CampaignEnrollment
) -> CampaignEnrollment:
    """Record that the current step was sent and move to the next one.

    Completes the enrollment once the index passes the last message.
    Paused or completed enrollments are returned unchanged.
    """
    if enrollment.is_paused or enrollment.is_completed:
        return enrollment

    step_count = (
        await session.execute(
            select(func.count())
            .select_from(TagCampaignMessage)
            .where(TagCampaignMessage.campaign_id == enrollment.campaign_id)
        )
    ).scalar_one()

    now = datetime.now(timezone.utc)
    enrollment.current_message_index += 1
    enrollment.last_sent_at = now
    if enrollment.current_message_index >= step_count:
        enrollment.is_completed = True
        enrollment.status = "completed"
        enrollment.completed_at = now
    await session.flush()
    return enrollment


async def pause_on_reply(session: AsyncSession, lead_id: UUID) -> int:
    """Pause every running enrollment for a lead that just replied.

    Returns the number of enrollments paused.
    """
    now = datetime.now(timezone.utc)
    result = await session.execute(
        update(CampaignEnrollment)
        .where(CampaignEnrollment.lead_id == lead_id)
        .where(CampaignEnrollment.status == "active")
        .values(status="paused", is_paused=True, last_response_at=now, updated_at=now)
        .returning(CampaignEnrollment.id)
    )
    await session.flush()
    count = len(result.fetchall())
    if count:
        logger.info("Paused %d enrollment(s) for lead %s", count, lead_id)
    return count


async def count_active(session: AsyncSession) -> int:
    result = await session.execute(
        select(func.count())
        .select_from(CampaignEnrollment)
        .where(CampaignEnrollment.status == "active")
    )
    return result.scalar_one()
