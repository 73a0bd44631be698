"""Conversations inbox, manual SMS, click-to-call and the lead pool."""
import asyncio
import logging
from typing import Optional
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

import config
from db.models import Conversation, Lead, Message
from db.realtime import QueryCache
from db.repositories import conversations as conversations_repo
from db.repositories import enrollments as enrollments_repo
from db.repositories import leads as leads_repo
from db.repositories import users as users_repo
from errors import ConversationNotFoundError, LeadNotFoundError, MessageNotFoundError
from integrations import webhooks

logger = logging.getLogger(__name__)

CONVERSATIONS_QUERY_KEY = ("conversations",)
POOL_QUERY_KEY = ("pooled-leads",)


async def list_conversations(
    session: AsyncSession, handoff_filter: str = "all", search: Optional[str] = None
) -> list[Conversation]:
    """Active conversations, newest activity first, optionally by lead name."""
    conversations = await conversations_repo.list_active(session, handoff_filter)
    if not search:
        return conversations
    needle = search.lower()
    return [
        c for c in conversations
        if needle in f"{c.lead.first_name} {c.lead.last_name}".lower()
    ]


async def list_messages(session: AsyncSession, conversation_id: UUID) -> list[Message]:
    return await conversations_repo.list_messages(session, conversation_id)


async def send_manual_sms(
    session: AsyncSession,
    conversation_id: UUID,
    content: str,
    sent_by: UUID,
    cache: Optional[QueryCache] = None,
) -> tuple[Message, dict]:
    """Store an outbound message typed by an agent, then hand it to the SMS workflow.

    Returns (message, webhook result). A webhook failure leaves the message
    stored with status "queued".
    """
    if not content.strip():
        raise ValueError("Message content is required")
    conversation = await conversations_repo.get(session, conversation_id)
    if conversation is None:
        raise ConversationNotFoundError(f"Conversation {conversation_id} not found")

    sender = config.twilio_phone_number()
    recipient = conversation.lead.phone
    message = await conversations_repo.add_message(
        session,
        conversation,
        direction="outbound",
        content=content,
        sender=sender,
        recipient=recipient,
        is_ai_generated=False,
    )
    await session.commit()

    result = await asyncio.to_thread(
        webhooks.send_sms_webhook,
        str(conversation.id), content, sender, recipient, str(sent_by),
    )
    if cache is not None:
        cache.invalidate(("messages", conversation.id))
        cache.invalidate(CONVERSATIONS_QUERY_KEY)
    return message, result


async def record_inbound_message(
    session: AsyncSession, conversation_id: UUID, content: str, sender: str
) -> Message:
    """Store a reply from the lead and pause its running campaign sequences."""
    conversation = await conversations_repo.get(session, conversation_id)
    if conversation is None:
        raise ConversationNotFoundError(f"Conversation {conversation_id} not found")
    message = await conversations_repo.add_message(
        session,
        conversation,
        direction="inbound",
        content=content,
        sender=sender,
        recipient=config.twilio_phone_number(),
        status="received",
    )
    await enrollments_repo.pause_on_reply(session, conversation.lead_id)
    await session.commit()
    return message


async def mark_as_read(
    session: AsyncSession, conversation_id: UUID, cache: Optional[QueryCache] = None
) -> None:
    await conversations_repo.mark_as_read(session, conversation_id)
    await session.commit()
    if cache is not None:
        cache.invalidate(CONVERSATIONS_QUERY_KEY)


async def record_delivery_status(
    session: AsyncSession,
    message_id: UUID,
    delivery_status: str,
    error_code: Optional[str] = None,
) -> Message:
    """Apply a provider delivery callback; only delivery fields change."""
    message = await conversations_repo.update_delivery_status(
        session, message_id, delivery_status, error_code
    )
    if message is None:
        raise MessageNotFoundError(f"Message {message_id} not found")
    await session.commit()
    return message


async def initiate_call(
    session: AsyncSession, lead_id: UUID, agent_id: UUID
) -> dict:
    """Ask the voice workflow to bridge the agent's phone to the lead."""
    lead = await leads_repo.get_by_id(session, lead_id)
    if lead is None:
        raise LeadNotFoundError(f"Lead {lead_id} not found")
    agent = await users_repo.get_by_id(session, agent_id)
    if agent is None or not agent.phone_number:
        return {"sent": False, "error": "Add your phone number in Settings to place calls"}
    conversation = await conversations_repo.get_for_lead(session, lead_id)
    return await asyncio.to_thread(
        webhooks.initiate_call_webhook,
        str(lead.id),
        str(agent.id),
        agent.phone_number,
        lead.phone,
        f"{lead.first_name} {lead.last_name}",
        str(conversation.id) if conversation else None,
    )


async def lead_pool(
    session: AsyncSession,
    viewer_id: UUID,
    salesperson_id: Optional[UUID] = None,
    search: Optional[str] = None,
) -> tuple[list[Lead], list[Lead]]:
    """Handed-off leads split into (available, claimed).

    Agents see unassigned leads plus their own. Admins see everything, or
    unassigned plus one salesperson's when salesperson_id is given.
    """
    if await users_repo.is_admin(session, viewer_id):
        scope = salesperson_id
    else:
        scope = viewer_id
    leads = await leads_repo.list_pool(session, viewer_id=scope)
    if search:
        needle = search.lower()
        leads = [lead for lead in leads if needle in f"{lead.first_name} {lead.last_name}".lower()]
    available = [lead for lead in leads if lead.owner_id is None]
    claimed = [lead for lead in leads if lead.owner_id is not None]
    return available, claimed


async def claim_lead(
    session: AsyncSession, lead_id: UUID, agent_id: UUID, cache: Optional[QueryCache] = None
) -> Lead:
    lead = await leads_repo.claim(session, lead_id, agent_id)
    if lead is None:
        raise LeadNotFoundError(f"Lead {lead_id} not found")
    await session.commit()
    logger.info("Lead %s claimed by %s", lead_id, agent_id)
    if cache is not None:
        cache.invalidate(POOL_QUERY_KEY)
    return lead
