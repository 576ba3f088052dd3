"""
Background job definitions.
"""
from redis import Redis
from rq import Queue

from quotereview.core.config import settings
from quotereview.core.logging import get_logger

logger = get_logger(__name__)


def get_queue(name: str = "default") -> Queue:
    """Get RQ queue."""
    redis_conn = Redis.from_url(settings.REDIS_URL)
    return Queue(name, connection=redis_conn)


# ============= JOB FUNCTIONS =============

def send_notification_job(to: str, subject: str, html: str):
    """Background job to deliver a notification email."""
    from quotereview.services.notifications import deliver

    logger.info(f"Sending notification '{subject}' to {to}")
    result = deliver(to, subject, html)
    if not result["success"]:
        logger.warning(f"Notification to {to} failed: {result.get('error')}")
    return result


# ============= QUEUE HELPERS =============

def enqueue_notification(to: str, subject: str, html: str):
    """Queue a notification email."""
    queue = get_queue("high")
    return queue.enqueue(send_notification_job, to, subject, html)
