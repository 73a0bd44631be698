"""Tag campaign and campaign message repositories."""
import logging
from typing import Iterable, Optional
from uuid import UUID

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from config import INITIAL_MESSAGE_TAG
from db.models import TagCampaign, TagCampaignMessage

logger = logging.getLogger(__name__)

INITIAL_MESSAGE_CAMPAIGN_NAME = "Initial Outbound Message"


def _build_messages(messages: Iterable[dict]) -> list[TagCampaignMessage]:
    """messages: dicts with keys day_number (int) and message_template (str).

    sequence_order is assigned from list position, starting at 1.
    """
    return [
        TagCampaignMessage(
            day_number=msg["day_number"],
            sequence_order=idx + 1,
            message_template=msg["message_template"],
        )
        for idx, msg in enumerate(messages)
    ]


async def get(session: AsyncSession, campaign_id: UUID) -> Optional[TagCampaign]:
    result = await session.execute(
        select(TagCampaign).where(TagCampaign.id == campaign_id)
    )
    return result.scalar_one_or_none()


async def list_active(
    session: AsyncSession, exclude_initial: bool = True
) -> list[TagCampaign]:
    """Return active campaigns newest first.

    The Initial_Message campaign has its own editor and is excluded unless
    exclude_initial is False.
    """
    stmt = select(TagCampaign).where(TagCampaign.is_active == True)  # noqa: E712
    if exclude_initial:
        stmt = stmt.where(TagCampaign.tag != INITIAL_MESSAGE_TAG)
    result = await session.execute(stmt.order_by(TagCampaign.created_at.desc()))
    return list(result.scalars().all())


async def list_tags(session: AsyncSession) -> list[str]:
    """Distinct tags of active campaigns, for the lead form tag picker."""
    result = await session.execute(
        select(TagCampaign.tag)
        .where(TagCampaign.is_active == True)  # noqa: E712
        .distinct()
        .order_by(TagCampaign.tag)
    )
    return [row[0] for row in result.all()]


async def get_initial_message_campaign(session: AsyncSession) -> Optional[TagCampaign]:
    """Return the system campaign bound to the reserved Initial_Message tag."""
    result = await session.execute(
        select(TagCampaign)
        .where(TagCampaign.tag == INITIAL_MESSAGE_TAG)
        .order_by(TagCampaign.created_at)
        .limit(1)
    )
    return result.scalar_one_or_none()


async def get_active_by_tags(
    session: AsyncSession, tags: Iterable[str]
) -> list[TagCampaign]:
    """Return active campaigns whose tag is in tags."""
    tag_list = list(tags)
    if not tag_list:
        return []
    result = await session.execute(
        select(TagCampaign)
        .where(TagCampaign.tag.in_(tag_list))
        .where(TagCampaign.is_active == True)  # noqa: E712
    )
    return list(result.scalars().all())


async def get_by_tag(session: AsyncSession, tag: str) -> Optional[TagCampaign]:
    result = await session.execute(
        select(TagCampaign).where(TagCampaign.tag == tag).limit(1)
    )
    return result.scalar_one_or_none()


async def create_campaign(
    session: AsyncSession,
    *,
    tag: str,
    name: str,
    messages: list[dict],
    user_id: Optional[UUID] = None,
    is_active: bool = True,
) -> TagCampaign:
    """Create a campaign and its ordered messages in one flush."""
    campaign = TagCampaign(
        tag=tag,
        name=name,
        user_id=user_id,
        is_active=is_active,
        messages=_build_messages(messages),
    )
    session.add(campaign)
    await session.flush()
    logger.info("Created campaign %r for tag %s (%d messages)", name, tag, len(messages))
    return campaign


async def replace_messages(
    session: AsyncSession, campaign: TagCampaign, messages: list[dict]
) -> TagCampaign:
    """Delete a campaign's messages and insert the new sequence."""
    await session.execute(
        delete(TagCampaignMessage).where(TagCampaignMessage.campaign_id == campaign.id)
    )
    await session.flush()
    new_messages = _build_messages(messages)
    for msg in new_messages:
        msg.campaign_id = campaign.id
        session.add(msg)
    await session.flush()
    await session.refresh(campaign, attribute_names=["messages"])
    return campaign


async def update_campaign(
    session: AsyncSession,
    campaign_id: UUID,
    *,
    tag: str,
    name: str,
    messages: list[dict],
) -> Optional[TagCampaign]:
    campaign = await get(session, campaign_id)
    if campaign is None:
        return None
    campaign.tag = tag
    campaign.name = name
    await session.flush()
    return await replace_messages(session, campaign, messages)


async def set_active(
    session: AsyncSession, campaign_id: UUID, is_active: bool
) -> Optional[TagCampaign]:
    campaign = await get(session, campaign_id)
    if campaign is None:
        return None
    campaign.is_active = is_active
    await session.flush()
    return campaign


async def delete_campaign(
    session: AsyncSession, campaign_id: UUID, user_id: UUID
) -> bool:
    """Delete a campaign owned by user_id.

    System campaigns (user_id NULL) never match, so they cannot be deleted
    here. Returns True if a row was removed.
    """
    await session.execute(
        delete(TagCampaignMessage).where(
            TagCampaignMessage.campaign_id.in_(
                select(TagCampaign.id)
                .where(TagCampaign.id == campaign_id)
                .where(TagCampaign.user_id == user_id)
            )
        )
    )
    result = await session.execute(
        delete(TagCampaign)
        .where(TagCampaign.id == campaign_id)
        .where(TagCampaign.user_id == user_id)
        .returning(TagCampaign.id)
    )
    await session.flush()
    deleted = result.first() is not None
    if deleted:
        logger.info("Deleted campaign %s", campaign_id)
    return deleted


async def save_initial_message(
    session: AsyncSession, messages: list[dict]
) -> TagCampaign:
    """Create or update the single system campaign for Initial_Message."""
    campaign = await get_initial_message_campaign(session)
    if campaign is None:
        return await create_campaign(
            session,
            tag=INITIAL_MESSAGE_TAG,
            name=INITIAL_MESSAGE_CAMPAIGN_NAME,
            messages=messages,
            user_id=None,
        )
    campaign.name = INITIAL_MESSAGE_CAMPAIGN_NAME
    campaign.user_id = None
    await session.flush()
    return await replace_messages(session, campaign, messages)
