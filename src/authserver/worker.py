"""SAQ worker process running the periodic sweeps."""

import asyncio

from saq import Worker

from authserver.logging import setup_logging
from authserver.tasks.queue import get_queue_settings


def build_worker(concurrency: int | None = None) -> Worker:
    """Create a worker for the maintenance queue and its cron jobs."""
    queue_settings = get_queue_settings()
    return Worker(
        queue=queue_settings["queue"],
        functions=queue_settings["functions"],
        cron_jobs=queue_settings["cron_jobs"],
        concurrency=concurrency or queue_settings["concurrency"],
        startup=queue_settings["startup"],
        shutdown=queue_settings["shutdown"],
    )


def main(concurrency: int | None = None) -> None:
    setup_logging()
    asyncio.run(build_worker(concurrency).start())


if __name__ == "__main__":
    main()
