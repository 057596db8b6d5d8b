"""
RQ Worker bootstrap
"""

from rq import Worker, Queue
from escrow_core.infrastructure.redis_client import get_redis
from escrow_core.infrastructure.settings import get_settings
from escrow_core.infrastructure.logging_config import setup_logging
from escrow_core.workers.jobs import deliver_notification  # noqa: F401  Import jobs to register them

listen = [get_settings().NOTIFICATIONS_QUEUE]

if __name__ == "__main__":
    setup_logging(get_settings().LOG_LEVEL)
    redis_conn = get_redis()
    worker = Worker([Queue(name, connection=redis_conn) for name in listen], connection=redis_conn)
    worker.work()
