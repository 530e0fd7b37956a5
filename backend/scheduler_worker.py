#!/usr/bin/env python3
"""
Standalone exam scheduler: runs the sweep in-process on a fixed interval
instead of through celery beat.
"""

import asyncio
import logging
import signal

from cbt.core.config import settings
from cbt.core.database import create_db_and_tables
from cbt.core.logging_config import setup_logging
from cbt.services import create_services

logger = logging.getLogger("scheduler_worker")


async def main():
    await create_db_and_tables()
    services = create_services()
    scheduler = services.scheduler

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, scheduler.ticker.stop)

    await scheduler.run_forever()
    logger.info("Shutting down...")


if __name__ == '__main__':
    setup_logging(settings.log_level)
    asyncio.run(main())
