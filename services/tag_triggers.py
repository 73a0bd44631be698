"""Fire campaign webhooks for tags newly added to a lead."""
import asyncio
import logging
from typing import Iterable, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from db.models import Lead
from db.repositories import tag_campaigns as campaigns_repo
from integrations import webhooks
from schemas.campaign import TriggerResult

logger = logging.getLogger(__name__)


def normalize_tags(tags: Optional[Iterable[str]]) -> list[str]:
    """Strip whitespace, drop blanks and duplicates, keep first-seen order."""
    seen = set()
    normalized = []
    for tag in tags or []:
        tag = (tag or "").strip()
        if tag and tag not in seen:
            seen.add(tag)
            normalized.append(tag)
    return normalized


def added_tags(previous: Optional[Iterable[str]], new: Optional[Iterable[str]]) -> list[str]:
    """Tags present in new but not in previous, in the order of new."""
    before = set(normalize_tags(previous))
    return [tag for tag in normalize_tags(new) if tag not in before]


async def fire_tag_webhook(lead: Lead, tag: str, source: str = "tag_added") -> bool:
    result = await asyncio.to_thread(
        webhooks.trigger_campaign_webhook,
        str(lead.id),
        lead.first_name,
        lead.last_name,
        lead.phone,
        tag,
        list(lead.tags or []),
        source,
    )
    return bool(result.get("sent"))


async def trigger_for_added_tags(
    session: AsyncSession, lead: Lead, previous_tags: Optional[Iterable[str]]
) -> TriggerResult:
    """Send one webhook per newly added tag that has an active campaign.

    The lead's tag write must already be committed; webhook failures are
    counted, not raised.
    """
    added = added_tags(previous_tags, lead.tags)
    result = TriggerResult(added_tags=added)
    if not added:
        return result

    campaigns = await campaigns_repo.get_active_by_tags(session, added)
    campaign_tags = {campaign.tag for campaign in campaigns}
    result.matched_tags = [tag for tag in added if tag in campaign_tags]

    for tag in result.matched_tags:
        if await fire_tag_webhook(lead, tag):
            result.webhooks_sent += 1
        else:
            result.webhooks_failed += 1

    if result.matched_tags:
        logger.info(
            "Lead %s: %d campaign webhook(s) sent, %d failed (tags: %s)",
            lead.id, result.webhooks_sent, result.webhooks_failed,
            ", ".join(result.matched_tags),
        )
    return result
