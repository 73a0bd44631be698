"""Bulk "Send 1st Message" action.

For each selected lead not yet tagged Initial_Message: tag it, mark it
contacted, commit, then fire the initial-message webhook. A separate
polling workflow on the automation side picks up leads whose webhook
failed, so failures here are counted and reported, not retried.
"""
import logging
from typing import Sequence
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from config import CONTACTED_STATUS, INITIAL_MESSAGE_TAG
from db.repositories import leads as leads_repo
from errors import LeadNotFoundError
from schemas.lead import SendFirstMessageResult
from services.tag_triggers import fire_tag_webhook, normalize_tags

logger = logging.getLogger(__name__)


async def send_first_message(
    session: AsyncSession, lead_ids: Sequence[UUID]
) -> SendFirstMessageResult:
    """Tag and message each lead in lead_ids, sequentially.

    Database errors propagate immediately; leads processed before the
    failure stay committed.
    """
    leads = await leads_repo.get_by_ids(session, lead_ids)
    if not leads:
        raise LeadNotFoundError("No leads found")

    result = SendFirstMessageResult()
    for lead in leads:
        existing_tags = normalize_tags(lead.tags)
        if INITIAL_MESSAGE_TAG in existing_tags:
            logger.info("Lead %s already has %r tag, skipping", lead.id, INITIAL_MESSAGE_TAG)
            result.skipped += 1
            continue

        await leads_repo.set_tags_and_status(
            session, lead, existing_tags + [INITIAL_MESSAGE_TAG], CONTACTED_STATUS
        )
        await session.commit()
        result.updated += 1

        if await fire_tag_webhook(lead, INITIAL_MESSAGE_TAG, source="bulk_first_message"):
            result.webhooks_sent += 1
        else:
            result.webhooks_failed += 1

    logger.info(
        "Send first message: %d updated, %d sent, %d failed, %d skipped",
        result.updated, result.webhooks_sent, result.webhooks_failed, result.skipped,
    )
    return result
