"""
Headless entry point for the price check scheduler.

Usage:
    python scheduler_main.py          # Run scheduled checks until interrupted
    python scheduler_main.py --once   # Check every product once and exit
"""

import asyncio
import signal
import sys
from pathlib import Path

# Add project root to Python path
project_root = Path(__file__).parent
sys.path.insert(0, str(project_root))

import structlog
from utilities.logger import setup_logging
from utilities.config import config
from extractor.database import PriceStore
from scheduler.models import SchedulerConfig
from scheduler.scheduler_service import PriceCheckScheduler


async def run_once(scheduler: PriceCheckScheduler) -> bool:
    """Check every product once and print a summary. Returns True if all succeeded."""
    results = await scheduler.trigger_all_now()

    print("\n" + "=" * 60)
    print(f"Checked {len(results)} products")
    print("=" * 60)
    for result in results:
        if result.success:
            print(f"OK    [{result.product_id}] {result.name}: {result.price}")
        else:
            print(f"FAIL  [{result.product_id}] {result.name}: {result.error}")
    print("=" * 60)

    return all(result.success for result in results)


async def run_daemon(scheduler: PriceCheckScheduler, logger) -> None:
    """Run scheduled checks until SIGINT or SIGTERM."""
    stop_event = asyncio.Event()
    loop = asyncio.get_running_loop()

    def signal_handler(signum, frame):
        logger.info(f"Received signal {signum}, shutting down gracefully...")
        loop.call_soon_threadsafe(stop_event.set)

    signal.signal(signal.SIGINT, signal_handler)
    signal.signal(signal.SIGTERM, signal_handler)

    await scheduler.start()
    print(f"\nScheduler running, checks at '{scheduler.config.cron_expression}' "
          f"({scheduler.config.timezone}). Press Ctrl+C to stop.")

    await stop_event.wait()
    scheduler.shutdown()


async def main():
    """Main function to start the scheduler."""
    setup_logging(
        log_level=config.log_level,
        log_format=config.log_format,
        log_file=config.get_log_file_path(),
        debug=config.debug
    )
    logger = structlog.get_logger(__name__)

    once = False
    if len(sys.argv) > 1:
        if sys.argv[1] == '--once':
            once = True
        else:
            print(f"Unknown argument: {sys.argv[1]}")
            print("Usage: python scheduler_main.py [--once]")
            sys.exit(1)

    store = PriceStore(
        connection_url=config.mongodb_url,
        database_name=config.mongodb_database
    )
    scheduler_config = SchedulerConfig(
        cron_expression=config.cron_schedule,
        timezone=config.timezone,
        rate_limit_per_second=config.check_rate_limit_per_second
    )

    exit_code = 0
    try:
        await store.connect()
        scheduler = PriceCheckScheduler(scheduler_config, store)

        if once:
            logger.info("Running in RUN ONCE MODE")
            if not await run_once(scheduler):
                exit_code = 1
        else:
            logger.info("Running in DAEMON MODE", cron_expression=scheduler_config.cron_expression)
            await run_daemon(scheduler, logger)

    except Exception as e:
        logger.error("Failed to run price check scheduler", error=str(e))
        exit_code = 1

    finally:
        await store.disconnect()

    sys.exit(exit_code)


if __name__ == "__main__":
    asyncio.run(main())
