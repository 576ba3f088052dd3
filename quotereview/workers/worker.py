"""
Background worker using RQ (Redis Queue).
"""
from redis import Redis
from rq import Worker, Queue

from quotereview.core.config import settings
from quotereview.core.logging import setup_logging, get_logger

setup_logging()
logger = get_logger(__name__)


def run_worker():
    """Start the RQ worker."""
    redis_conn = Redis.from_url(settings.REDIS_URL)

    worker = Worker(
        queues=[
            Queue("high", connection=redis_conn),
            Queue("default", connection=redis_conn),
        ],
        connection=redis_conn,
        name="quotereview-worker",
    )
    logger.info("Starting Quotation Review notification worker...")
    worker.work()


if __name__ == "__main__":
    run_worker()
