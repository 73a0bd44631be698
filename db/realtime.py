"""Change-feed subscriptions that invalidate cached query results.

Row changes on the watched tables are published by database triggers via
pg_notify (see migration 001) as JSON:

    {"table": "leads", "event": "UPDATE", "record": {...}, "old_record": {...}}

A ChangeFeed matches each change against its subscriptions and invalidates
the subscribed query keys in a QueryCache. Notifications never mutate data;
the next read refetches from the database.

Usage:
    cache = QueryCache()
    feed = ChangeFeed(cache)
    feed.subscribe(Subscription(table="leads", query_key=("pooled-leads",)))
    await listen(feed)
"""
import asyncio
import json
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Hashable, Optional

import asyncpg

import config

logger = logging.getLogger(__name__)

WATCHED_TABLES = (
    "leads",
    "conversations",
    "messages",
    "pipeline_stages",
    "tag_campaigns",
    "tag_campaign_messages",
)
EVENTS = ("INSERT", "UPDATE", "DELETE", "*")

QueryKey = tuple[Hashable, ...]


def parse_filter(expression: str) -> tuple[str, str]:
    """Split a ``column=eq.value`` filter into (column, value)."""
    column, sep, rest = expression.partition("=")
    if not sep or not rest.startswith("eq.") or not column:
        raise ValueError(f"Unsupported filter {expression!r}; expected column=eq.value")
    return column.strip(), rest[len("eq."):]


@dataclass(frozen=True)
class Subscription:
    table: str
    query_key: QueryKey
    event: str = "*"
    filter: Optional[str] = None

    def __post_init__(self):
        if self.table not in WATCHED_TABLES:
            raise ValueError(f"Table {self.table!r} is not published")
        if self.event not in EVENTS:
            raise ValueError(f"Unknown event {self.event!r}")
        if self.filter is not None:
            parse_filter(self.filter)

    @property
    def channel_name(self) -> str:
        name = f"public:{self.table}:{self.event}"
        if self.filter:
            name += f":{self.filter}"
        return name

    def matches(self, change: dict) -> bool:
        if change.get("table") != self.table:
            return False
        if self.event != "*" and change.get("event") != self.event:
            return False
        if self.filter is None:
            return True
        column, value = parse_filter(self.filter)
        # rows moving into or out of the filter both count
        rows = (change.get("record") or {}, change.get("old_record") or {})
        return any(column in row and str(row[column]) == value for row in rows)


class QueryCache:
    """In-process cache of query results keyed by tuples.

    Invalidating a key drops it and every key it prefixes, so invalidating
    ("conversations",) also drops ("conversations", "handoff").
    """

    def __init__(self):
        self._entries: dict[QueryKey, Any] = {}

    def get(self, key: QueryKey, default: Any = None) -> Any:
        return self._entries.get(tuple(key), default)

    def set(self, key: QueryKey, value: Any) -> None:
        self._entries[tuple(key)] = value

    async def get_or_fetch(
        self, key: QueryKey, fetch: Callable[[], Awaitable[Any]]
    ) -> Any:
        key = tuple(key)
        if key not in self._entries:
            self._entries[key] = await fetch()
        return self._entries[key]

    def invalidate(self, prefix: QueryKey) -> int:
        prefix = tuple(prefix)
        stale = [key for key in self._entries if key[: len(prefix)] == prefix]
        for key in stale:
            del self._entries[key]
        return len(stale)

    def __contains__(self, key) -> bool:
        return tuple(key) in self._entries

    def __len__(self) -> int:
        return len(self._entries)


class ChangeFeed:
    def __init__(self, cache: QueryCache):
        self.cache = cache
        self._subscriptions: dict[tuple[str, QueryKey], Subscription] = {}

    def subscribe(self, subscription: Subscription) -> str:
        """Register a subscription; subscribing the same channel and key twice is a no-op."""
        self._subscriptions[(subscription.channel_name, subscription.query_key)] = subscription
        logger.info("Subscribed to %s", subscription.channel_name)
        return subscription.channel_name

    def unsubscribe(self, channel_name: str) -> int:
        """Drop every subscription on channel_name. Returns how many were removed."""
        keys = [key for key in self._subscriptions if key[0] == channel_name]
        for key in keys:
            del self._subscriptions[key]
        return len(keys)

    @property
    def subscriptions(self) -> list[Subscription]:
        return list(self._subscriptions.values())

    def dispatch(self, change: dict) -> list[QueryKey]:
        """Invalidate every query key whose subscription matches the change."""
        invalidated = []
        for subscription in self._subscriptions.values():
            if subscription.matches(change):
                self.cache.invalidate(subscription.query_key)
                invalidated.append(subscription.query_key)
        if invalidated:
            logger.info(
                "Real-time update received for %s (%s): invalidated %d quer%s",
                change.get("table"), change.get("event"),
                len(invalidated), "y" if len(invalidated) == 1 else "ies",
            )
        return invalidated

    def handle_notification(self, payload: str) -> list[QueryKey]:
        try:
            change = json.loads(payload)
        except json.JSONDecodeError:
            logger.warning("Ignoring malformed change notification: %.200s", payload)
            return []
        return self.dispatch(change)


def _asyncpg_dsn(url: str) -> str:
    # asyncpg takes a plain postgresql:// DSN
    return url.replace("postgresql+asyncpg://", "postgresql://", 1)


async def listen(
    feed: ChangeFeed,
    dsn: Optional[str] = None,
    channel: Optional[str] = None,
    stop: Optional[asyncio.Event] = None,
) -> None:
    """Dispatch pg_notify payloads on channel into feed until stop is set."""
    dsn = _asyncpg_dsn(dsn or config.database_url())
    channel = channel or config.realtime_channel()
    stop = stop or asyncio.Event()

    conn = await asyncpg.connect(dsn)

    def _on_notify(connection, pid, notify_channel, payload):
        feed.handle_notification(payload)

    try:
        await conn.add_listener(channel, _on_notify)
        logger.info("Listening on %s with %d subscription(s)", channel, len(feed.subscriptions))
        await stop.wait()
    finally:
        await conn.remove_listener(channel, _on_notify)
        await conn.close()
