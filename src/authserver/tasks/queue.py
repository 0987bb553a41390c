"""SAQ queue configuration for background tasks."""

from saq import CronJob, Queue

from authserver.config import settings

# Main task queue
queue = Queue.from_url(settings.redis_url)


def get_queue_settings() -> dict:
    """Get SAQ queue settings for the worker."""
    # Import here to avoid circular imports
    from authserver.tasks.maintenance import sweep_expired_tokens, sweep_rate_windows

    return {
        "queue": queue,
        "functions": [
            sweep_expired_tokens,
            sweep_rate_windows,
        ],
        "cron_jobs": [
            # Daily at midnight
            CronJob(sweep_expired_tokens, cron="0 0 * * *"),
            # Hourly
            CronJob(sweep_rate_windows, cron="0 * * * *"),
        ],
        "concurrency": 2,
        "startup": startup,
        "shutdown": shutdown,
    }


async def startup(_ctx: dict) -> None:
    """Called when worker starts."""
    pass


async def shutdown(_ctx: dict) -> None:
    """Called when worker shuts down."""
    from authserver.database import close_db

    await close_db()
