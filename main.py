"""
Main entry point: relay feeds to Mastodon on a fixed tick.

Usage: python main.py [run|once|status] [options]

Commands:
    run       - Tick every TICK_SECONDS until SIGINT/SIGTERM (default)
    once      - Run a single tick with every enabled feed due
    status    - Print the configured feeds and their watermarks
"""

import argparse
import asyncio
import logging
import os
import signal
import sys
from datetime import datetime, timezone

from dotenv import load_dotenv

# Add project root to PYTHONPATH so imports work when running this script directly
sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

from feedrelay.config import DEFAULT_CONFIG_FILE, YamlStateStore
from feedrelay.dedup import DedupOracle
from feedrelay.errors import ConfigError
from feedrelay.fetcher import FeedparserFetcher
from feedrelay.infra.cache import CacheClient
from feedrelay.infra.http import HttpClient
from feedrelay.infra.scheduler import Scheduler
from feedrelay.monitor import DEFAULT_TICK_SECONDS, FeedsMonitor
from feedrelay.publisher import MastodonPublisher


logger = logging.getLogger("feedrelay")


def parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Relay RSS/Atom feeds to Mastodon")
    parser.add_argument("command", nargs="?", default="run", choices=["run", "once", "status"])
    parser.add_argument("--config", default=os.getenv("FEEDS_CONFIG", DEFAULT_CONFIG_FILE),
                        help="Path to the feeds YAML file")
    parser.add_argument("--redis", default=os.getenv("REDIS_URL", os.getenv("REDIS_HOST", "")),
                        help="Redis URL for dedup; empty runs on watermarks only")
    parser.add_argument("--tick", type=int, default=int(os.getenv("TICK_SECONDS", DEFAULT_TICK_SECONDS)),
                        help="Seconds between monitor ticks, defaults to 60")
    parser.add_argument("--log-level", default=os.getenv("LOG_LEVEL", "INFO"),
                        help="Log level (DEBUG, INFO, WARNING)")
    parser.add_argument("--dry-run", action="store_true",
                        help="Render posts without publishing or saving state")
    return parser.parse_args(argv)


async def build_monitor(args: argparse.Namespace) -> FeedsMonitor:
    store = YamlStateStore(args.config)
    state = store.load()

    feed_timeout = args.tick / (len(state.feeds) + 1)
    cache = await CacheClient.connect(args.redis)
    monitor = FeedsMonitor(
        state=state,
        fetcher=FeedparserFetcher(HttpClient(timeout=feed_timeout)),
        publisher=MastodonPublisher(state.url, HttpClient(timeout=feed_timeout), timeout=feed_timeout),
        dedup=DedupOracle(cache),
        store=store,
        tick_seconds=args.tick,
        dry_run=args.dry_run,
    )
    logger.info(
        f"Monitoring {len(state.enabled_feeds())}/{len(state.feeds)} feed(s), "
        f"dedup mode: {'cache' if monitor.dedup.cache_backed else 'watermark'}"
    )
    return monitor


def print_status(monitor: FeedsMonitor) -> None:
    state = monitor.state
    tz = state.location()
    print(f"Instance: {state.url or '-'} (limit {monitor.limit}, lang {state.lang})")
    print(f"Last check: {state.last_check_str() or 'never'}")
    for feed in state.feeds:
        last_run = datetime.fromtimestamp(feed.last_run, tz=timezone.utc).astimezone(tz)
        print(
            f"  {'+' if feed.enabled else '-'} {feed.name:<30} every {feed.interval:>3} min  "
            f"last run {last_run:%Y-%m-%d %H:%M:%S}  posts {feed.count}  followers {feed.followers}"
        )


async def run_forever(monitor: FeedsMonitor) -> None:
    scheduler = Scheduler(timezone=monitor.state.timezone)
    stop_event = asyncio.Event()

    def signal_handler():
        logger.info("Received shutdown signal")
        stop_event.set()

    for sig in (signal.SIGTERM, signal.SIGINT):
        asyncio.get_running_loop().add_signal_handler(sig, signal_handler)

    try:
        await scheduler.start()
        scheduler.add_interval_job(monitor.tick, seconds=monitor.tick_seconds, job_id="monitor-tick", run_now=True)
        scheduler.add_interval_job(monitor.update_followers, hours=1, job_id="followers")
        for job_id, job in scheduler.list_jobs().items():
            logger.info(f"  - {job_id}: next run {job['next_run']}")
        await stop_event.wait()
    finally:
        logger.info("Shutting down...")
        await scheduler.stop()
        monitor.save()
        logger.info("Shutdown complete")


async def main(argv=None) -> int:
    load_dotenv()
    args = parse_args(argv)
    logging.basicConfig(
        level=getattr(logging, str(args.log_level).upper(), logging.INFO),
        format="%(asctime)s | %(name)s | %(levelname)s | %(message)s"
    )

    try:
        monitor = await build_monitor(args)
    except ConfigError as e:
        logger.error(f"Cannot start: {e}")
        return 1

    try:
        await monitor.prepare()
        if args.command == "status":
            print_status(monitor)
        elif args.command == "once":
            await monitor.tick(force=True)
        else:
            await run_forever(monitor)
    finally:
        await monitor.close()
    return 0


if __name__ == "__main__":
    sys.exit(asyncio.run(main()))
