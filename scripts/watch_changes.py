"""Listen for row changes and log which cached queries they invalidate.

Run alongside the service to watch the change feed:

    python scripts/watch_changes.py

Requires migration 001 (it installs the NOTIFY triggers). The channel is
REALTIME_CHANNEL (default: table_changes).
"""
import asyncio
import logging
import signal
import sys
from pathlib import Path

# Resolve project root so imports work when run from any cwd
_ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(_ROOT))

from db.realtime import ChangeFeed, QueryCache, Subscription, listen

logging.basicConfig(level=logging.INFO, format="%(levelname)s %(message)s")
logger = logging.getLogger(__name__)

SUBSCRIPTIONS = (
    Subscription(table="leads", query_key=("leads",)),
    Subscription(table="leads", event="UPDATE", query_key=("pooled-leads",)),
    Subscription(table="messages", event="INSERT", query_key=("messages",)),
    Subscription(table="messages", event="INSERT", query_key=("conversations",)),
    Subscription(table="conversations", event="UPDATE", query_key=("conversations",)),
    Subscription(table="pipeline_stages", query_key=("pipeline-stages",)),
    Subscription(table="tag_campaigns", query_key=("tag-campaigns",)),
    Subscription(table="tag_campaign_messages", query_key=("tag-campaigns",)),
)


async def main() -> None:
    feed = ChangeFeed(QueryCache())
    for subscription in SUBSCRIPTIONS:
        feed.subscribe(subscription)

    stop = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, stop.set)

    await listen(feed, stop=stop)
    logger.info("Change feed stopped")


if __name__ == "__main__":
    asyncio.run(main())
