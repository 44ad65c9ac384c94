#!/usr/bin/env python3
"""
Job Dispatcher Startup Script
Polls the jobs table and advances queued and in-flight jobs.

Usage:
    python scripts/run_worker.py                  # Run until SIGINT/SIGTERM
    python scripts/run_worker.py --interval 2     # Poll every 2 seconds
    python scripts/run_worker.py --once           # Single tick, then exit
    python scripts/run_worker.py --check          # Check database connection and exit
"""

import argparse
import asyncio
import logging
import os
import signal
import sys

# Add project root to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from app.core.config import settings
from app.core.database import SessionLocal, init_db
from app.workers.dispatcher import Dispatcher


# Configure logging
logging.basicConfig(
    level=logging.DEBUG if settings.DEBUG else logging.INFO,
    format="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S"
)
logger = logging.getLogger("worker")


def database_health_check() -> dict:
    """Check that the jobs database is reachable."""
    db = SessionLocal()
    try:
        db.execute(text("SELECT 1"))
        return {"connected": True, "url": settings.DATABASE_URL.split("@")[-1]}
    except SQLAlchemyError as e:
        return {"connected": False, "error": str(e), "url": settings.DATABASE_URL.split("@")[-1]}
    finally:
        db.close()


async def run(dispatcher: Dispatcher, once: bool) -> None:
    if once:
        summary = await dispatcher.tick()
        logger.info(f"Tick complete: started={summary.started} checked={summary.checked} failed={summary.failed}")
        return

    stop_event = asyncio.Event()
    loop = asyncio.get_running_loop()

    def request_stop():
        logger.info("Received shutdown signal, finishing current tick...")
        stop_event.set()

    for signum in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(signum, request_stop)
        except NotImplementedError:
            # Windows event loops have no signal handler support
            signal.signal(signum, lambda *_: loop.call_soon_threadsafe(request_stop))

    await dispatcher.run(stop_event)


def main():
    parser = argparse.ArgumentParser(description="Run the product asset job dispatcher")
    parser.add_argument(
        "--interval", "-i",
        type=float,
        default=settings.WORKER_POLL_INTERVAL,
        help=f"Seconds between ticks (default: {settings.WORKER_POLL_INTERVAL})"
    )
    parser.add_argument(
        "--batch-size", "-b",
        type=int,
        default=settings.WORKER_QUEUED_BATCH_SIZE,
        help=f"Queued jobs started per tick (default: {settings.WORKER_QUEUED_BATCH_SIZE})"
    )
    parser.add_argument(
        "--once",
        action="store_true",
        help="Run a single tick and exit"
    )
    parser.add_argument(
        "--check",
        action="store_true",
        help="Check database connection and exit"
    )

    args = parser.parse_args()

    health = database_health_check()
    if args.check:
        print(f"Database Status: {health}")
        sys.exit(0 if health.get("connected") else 1)

    if not health.get("connected"):
        logger.error(f"Cannot connect to database: {health.get('error')}")
        logger.error(f"Database URL: {health.get('url')}")
        sys.exit(1)

    init_db()
    dispatcher = Dispatcher(poll_interval=args.interval, batch_size=args.batch_size)
    asyncio.run(run(dispatcher, args.once))


if __name__ == "__main__":
    main()
