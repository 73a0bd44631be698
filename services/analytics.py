"""Dashboard counters and analytics aggregates."""
import logging
from datetime import date, datetime, time, timedelta, timezone
from typing import Optional

from dateutil.relativedelta import relativedelta
from sqlalchemy.ext.asyncio import AsyncSession

from db.repositories import conversations as conversations_repo
from db.repositories import enrollments as enrollments_repo
from db.repositories import leads as leads_repo
from db.repositories import pipeline_stages as stages_repo
from schemas.conversation import DashboardStats, FunnelStage, MessageMetrics, VolumePoint

logger = logging.getLogger(__name__)

PRESET_RANGES = ("7", "30", "90")
CUSTOM_RANGE = "custom"


def date_range(
    preset: str = "7",
    start: Optional[date] = None,
    end: Optional[date] = None,
    now: Optional[datetime] = None,
) -> tuple[datetime, datetime]:
    """Resolve a range selector to (start, end) datetimes.

    Presets count back N days from now. A custom range spans the start of
    its first day to the last microsecond of its last day; custom without
    both dates falls back to the last 7 days.
    """
    now = now or datetime.now(timezone.utc)
    if preset == CUSTOM_RANGE:
        if start is not None and end is not None:
            tz = now.tzinfo
            return (
                datetime.combine(start, time.min, tzinfo=tz),
                datetime.combine(end, time.max, tzinfo=tz),
            )
        return now - relativedelta(days=7), now
    if preset not in PRESET_RANGES:
        raise ValueError(f"Unknown date range {preset!r}")
    return now - relativedelta(days=int(preset)), now


def response_rate(inbound: int, outbound: int) -> str:
    if outbound <= 0:
        return "0"
    return f"{inbound / outbound * 100:.1f}"


async def message_metrics(
    session: AsyncSession, start: datetime, end: datetime
) -> MessageMetrics:
    messages = await conversations_repo.list_messages_between(session, start, end)
    inbound = sum(1 for m in messages if m.direction == "inbound")
    outbound = sum(1 for m in messages if m.direction == "outbound")
    return MessageMetrics(
        total_sent=outbound,
        total_received=inbound,
        response_rate=response_rate(inbound, outbound),
    )


async def message_volume(
    session: AsyncSession, start: datetime, end: datetime
) -> list[VolumePoint]:
    """Inbound/outbound counts per calendar day, oldest first; empty days omitted."""
    messages = await conversations_repo.list_messages_between(session, start, end)
    points: dict[date, VolumePoint] = {}
    for message in messages:
        day = message.created_at.date()
        point = points.setdefault(day, VolumePoint(date=day))
        if message.direction == "inbound":
            point.inbound += 1
        else:
            point.outbound += 1
    return [points[day] for day in sorted(points)]


async def active_enrollments(session: AsyncSession) -> int:
    return await enrollments_repo.count_active(session)


async def pipeline_funnel(session: AsyncSession) -> list[FunnelStage]:
    return [
        FunnelStage(name=stage.name, color=stage.color, count=count)
        for stage, count in await stages_repo.lead_counts(session)
    ]


async def dashboard(session: AsyncSession, now: Optional[datetime] = None) -> DashboardStats:
    """Counters for the landing page: today's messages, unread replies,
    active conversations and leads added in the last week."""
    now = now or datetime.now(timezone.utc)
    start_of_today = datetime.combine(now.date(), time.min, tzinfo=now.tzinfo)
    return DashboardStats(
        today_messages=await conversations_repo.count_messages(session, since=start_of_today),
        unread_messages=await conversations_repo.total_unread(session),
        active_conversations=await conversations_repo.count_active(session),
        new_leads_week=await leads_repo.count_created_since(session, now - timedelta(days=7)),
        handoff_conversations=await conversations_repo.count_handoff(session),
    )
