"""Tests for change-feed subscriptions and query cache invalidation."""
import asyncio
import json
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from db.realtime import ChangeFeed, QueryCache, Subscription, listen, parse_filter


def _change(table, event, record=None, old_record=None):
    return {"table": table, "event": event, "record": record, "old_record": old_record}


class TestSubscription:
    def test_channel_names(self):
        assert Subscription(table="leads", query_key=("leads",)).channel_name == "public:leads:*"
        sub = Subscription(
            table="messages", event="INSERT", filter="conversation_id=eq.abc", query_key=("messages", "abc")
        )
        assert sub.channel_name == "public:messages:INSERT:conversation_id=eq.abc"

    def test_rejects_unpublished_tables_and_bad_filters(self):
        with pytest.raises(ValueError):
            Subscription(table="users", query_key=("users",))
        with pytest.raises(ValueError):
            Subscription(table="leads", event="TRUNCATE", query_key=("leads",))
        with pytest.raises(ValueError):
            Subscription(table="leads", filter="owner_id>5", query_key=("leads",))

    def test_parse_filter(self):
        assert parse_filter("conversation_id=eq.abc-123") == ("conversation_id", "abc-123")

    def test_event_and_filter_matching(self):
        sub = Subscription(
            table="messages", event="INSERT", filter="conversation_id=eq.c1", query_key=("messages", "c1")
        )
        assert sub.matches(_change("messages", "INSERT", {"conversation_id": "c1"}))
        assert not sub.matches(_change("messages", "INSERT", {"conversation_id": "c2"}))
        assert not sub.matches(_change("messages", "UPDATE", {"conversation_id": "c1"}))
        assert not sub.matches(_change("leads", "INSERT", {"conversation_id": "c1"}))

    def test_delete_matches_on_old_record(self):
        sub = Subscription(table="leads", filter="owner_id=eq.u1", query_key=("leads",))
        assert sub.matches(_change("leads", "DELETE", old_record={"owner_id": "u1"}))

    def test_update_moving_out_of_the_filter_matches(self):
        sub = Subscription(table="leads", filter="owner_id=eq.u1", query_key=("leads",))
        moved = _change("leads", "UPDATE", {"owner_id": "u2"}, old_record={"owner_id": "u1"})
        untouched = _change("leads", "UPDATE", {"owner_id": "u3"}, old_record={"owner_id": "u2"})
        assert sub.matches(moved)
        assert not sub.matches(untouched)


class TestQueryCache:
    def test_invalidate_drops_prefixed_keys(self):
        cache = QueryCache()
        cache.set(("conversations",), [1])
        cache.set(("conversations", "handoff"), [2])
        cache.set(("leads",), [3])

        assert cache.invalidate(("conversations",)) == 2
        assert ("leads",) in cache
        assert len(cache) == 1

    @pytest.mark.asyncio
    async def test_get_or_fetch_refetches_after_invalidation(self):
        cache = QueryCache()
        fetch = AsyncMock(side_effect=[["a"], ["b"]])

        assert await cache.get_or_fetch(("leads",), fetch) == ["a"]
        assert await cache.get_or_fetch(("leads",), fetch) == ["a"]
        cache.invalidate(("leads",))
        assert await cache.get_or_fetch(("leads",), fetch) == ["b"]
        assert fetch.await_count == 2


class TestChangeFeed:
    def test_dispatch_invalidates_matching_keys_only(self):
        cache = QueryCache()
        cache.set(("pooled-leads",), ["stale"])
        cache.set(("conversations",), ["stale"])
        feed = ChangeFeed(cache)
        feed.subscribe(Subscription(table="leads", event="UPDATE", query_key=("pooled-leads",)))
        feed.subscribe(Subscription(table="conversations", query_key=("conversations",)))

        invalidated = feed.dispatch(_change("leads", "UPDATE", {"id": "l1"}))

        assert invalidated == [("pooled-leads",)]
        assert ("pooled-leads",) not in cache
        assert ("conversations",) in cache

    def test_two_keys_on_one_channel_both_invalidate(self):
        feed = ChangeFeed(QueryCache())
        feed.subscribe(Subscription(table="messages", event="INSERT", query_key=("messages",)))
        feed.subscribe(Subscription(table="messages", event="INSERT", query_key=("conversations",)))

        assert len(feed.subscriptions) == 2
        assert feed.dispatch(_change("messages", "INSERT", {})) == [("messages",), ("conversations",)]
        assert feed.unsubscribe("public:messages:INSERT") == 2
        assert feed.dispatch(_change("messages", "INSERT", {})) == []

    def test_resubscribing_is_a_no_op(self):
        feed = ChangeFeed(QueryCache())
        sub = Subscription(table="leads", query_key=("leads",))
        feed.subscribe(sub)
        feed.subscribe(sub)
        assert len(feed.subscriptions) == 1

    def test_malformed_notification_is_ignored(self):
        feed = ChangeFeed(QueryCache())
        feed.subscribe(Subscription(table="leads", query_key=("leads",)))
        assert feed.handle_notification("not json") == []
        assert feed.handle_notification(json.dumps(_change("leads", "INSERT", {}))) == [("leads",)]


@pytest.mark.asyncio
async def test_listen_registers_and_removes_listener():
    conn = MagicMock()
    conn.add_listener = AsyncMock()
    conn.remove_listener = AsyncMock()
    conn.close = AsyncMock()
    cache = QueryCache()
    cache.set(("leads",), ["stale"])
    feed = ChangeFeed(cache)
    feed.subscribe(Subscription(table="leads", query_key=("leads",)))
    stop = asyncio.Event()
    stop.set()

    with patch("db.realtime.asyncpg.connect", new=AsyncMock(return_value=conn)) as connect:
        await listen(feed, dsn="postgresql+asyncpg://u:p@db:5432/crm", channel="table_changes", stop=stop)

    connect.assert_awaited_once_with("postgresql://u:p@db:5432/crm")
    channel, callback = conn.add_listener.await_args.args
    assert channel == "table_changes"
    conn.remove_listener.assert_awaited_once_with("table_changes", callback)
    conn.close.assert_awaited_once()

    callback(conn, 123, "table_changes", json.dumps(_change("leads", "DELETE", old_record={"id": "l1"})))
    assert ("leads",) not in cache
