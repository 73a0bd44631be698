"""Conversation and message repositories."""
import logging
from datetime import datetime, timezone
from typing import Optional
from uuid import UUID

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from db.models import Conversation, Message

logger = logging.getLogger(__name__)

_HANDOFF_FILTERS = ("all", "handoff", "ai")


async def get(session: AsyncSession, conversation_id: UUID) -> Optional[Conversation]:
    result = await session.execute(
        select(Conversation).where(Conversation.id == conversation_id)
    )
    return result.scalar_one_or_none()


async def get_for_lead(session: AsyncSession, lead_id: UUID) -> Optional[Conversation]:
    result = await session.execute(
        select(Conversation)
        .where(Conversation.lead_id == lead_id)
        .order_by(Conversation.last_message_at.desc())
        .limit(1)
    )
    return result.scalar_one_or_none()


async def create(session: AsyncSession, data: dict) -> Conversation:
    """Insert a conversation.

    data dict keys: lead_id, user_id, assigned_to, channel, status,
    requires_human_handoff, ai_controlled
    """
    conversation = Conversation(**data)
    session.add(conversation)
    await session.flush()
    return conversation


async def list_active(
    session: AsyncSession, handoff_filter: str = "all"
) -> list[Conversation]:
    """Return active conversations, most recent message first.

    handoff_filter:
      "handoff" - conversations flagged for a human
      "ai"      - not handed off and at least one AI message sent
      "all"     - no extra filter
    """
    if handoff_filter not in _HANDOFF_FILTERS:
        raise ValueError(f"Unknown handoff filter {handoff_filter!r}")

    stmt = select(Conversation).where(Conversation.status == "active")
    if handoff_filter == "handoff":
        stmt = stmt.where(Conversation.requires_human_handoff == True)  # noqa: E712
    elif handoff_filter == "ai":
        stmt = stmt.where(Conversation.requires_human_handoff == False).where(  # noqa: E712
            Conversation.ai_message_count > 0
        )
    result = await session.execute(stmt.order_by(Conversation.last_message_at.desc()))
    return list(result.scalars().all())


async def list_messages(session: AsyncSession, conversation_id: UUID) -> list[Message]:
    """Return a conversation's messages oldest first."""
    result = await session.execute(
        select(Message)
        .where(Message.conversation_id == conversation_id)
        .order_by(Message.created_at)
    )
    return list(result.scalars().all())


async def add_message(
    session: AsyncSession,
    conversation: Conversation,
    *,
    direction: str,
    content: str,
    sender: str = "",
    recipient: str = "",
    status: str = "queued",
    is_ai_generated: Optional[bool] = None,
) -> Message:
    """Insert a message and bump the conversation's activity counters.

    Inbound messages increment unread_count; outbound AI messages increment
    ai_message_count.
    """
    message = Message(
        conversation_id=conversation.id,
        direction=direction,
        content=content,
        sender=sender,
        recipient=recipient,
        status=status,
        is_ai_generated=is_ai_generated,
    )
    session.add(message)
    conversation.last_message_at = datetime.now(timezone.utc)
    if direction == "inbound":
        conversation.unread_count += 1
    elif is_ai_generated:
        conversation.ai_message_count += 1
    await session.flush()
    return message


async def mark_as_read(session: AsyncSession, conversation_id: UUID) -> None:
    await session.execute(
        update(Conversation)
        .where(Conversation.id == conversation_id)
        .values(unread_count=0)
    )
    await session.execute(
        update(Message)
        .where(Message.conversation_id == conversation_id)
        .where(Message.direction == "inbound")
        .values(is_read=True)
    )
    await session.flush()


async def set_handoff(
    session: AsyncSession, conversation_id: UUID, requires_handoff: bool = True
) -> Optional[Conversation]:
    """Flag (or clear) a conversation for human takeover."""
    conversation = await get(session, conversation_id)
    if conversation is None:
        return None
    conversation.requires_human_handoff = requires_handoff
    conversation.ai_controlled = not requires_handoff
    conversation.handoff_triggered_at = (
        datetime.now(timezone.utc) if requires_handoff else None
    )
    await session.flush()
    return conversation


async def update_delivery_status(
    session: AsyncSession,
    message_id: UUID,
    delivery_status: str,
    error_code: Optional[str] = None,
) -> Optional[Message]:
    """Update only the provider-reported delivery fields of a message."""
    result = await session.execute(
        update(Message)
        .where(Message.id == message_id)
        .values(delivery_status=delivery_status, error_code=error_code)
        .returning(Message),
        execution_options={"populate_existing": True},
    )
    await session.flush()
    return result.scalar_one_or_none()


async def count_messages(
    session: AsyncSession, since: Optional[datetime] = None
) -> int:
    stmt = select(func.count()).select_from(Message)
    if since is not None:
        stmt = stmt.where(Message.created_at >= since)
    result = await session.execute(stmt)
    return result.scalar_one()


async def list_messages_between(
    session: AsyncSession, start: datetime, end: datetime
) -> list[Message]:
    """Return messages created in [start, end], oldest first."""
    result = await session.execute(
        select(Message)
        .where(Message.created_at >= start)
        .where(Message.created_at <= end)
        .order_by(Message.created_at)
    )
    return list(result.scalars().all())


async def count_active(session: AsyncSession) -> int:
    result = await session.execute(
        select(func.count())
        .select_from(Conversation)
        .where(Conversation.status == "active")
    )
    return result.scalar_one()


async def total_unread(session: AsyncSession) -> int:
    result = await session.execute(
        select(func.coalesce(func.sum(Conversation.unread_count), 0)).where(
            Conversation.status == "active"
        )
    )
    return int(result.scalar_one())


async def count_handoff(session: AsyncSession) -> int:
    result = await session.execute(
        select(func.count())
        .select_from(Conversation)
        .where(Conversation.requires_human_handoff == True)  # noqa: E712
    )
    return result.scalar_one()
