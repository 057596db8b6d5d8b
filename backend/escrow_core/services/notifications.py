"""
Notification events - typed domain events handed to the delivery queue

Emission is best-effort: it happens after the state change is committed, and a
publishing failure is logged and counted, never raised to the caller.
"""

import enum
import logging
from dataclasses import dataclass, field
from functools import lru_cache
from typing import Any, Dict, Optional
from uuid import UUID

from rq import Queue

from escrow_core.infrastructure.redis_client import get_redis
from escrow_core.infrastructure.settings import get_settings
from escrow_core.utils.metrics import record_notification_failure

logger = logging.getLogger(__name__)


class NotificationType(str, enum.Enum):
    """Notification type enum"""
    FUNDS_LOCKED = "funds_locked"
    DELIVERY_ASSIGNED = "delivery_assigned"
    QR_SCANNED = "qr_scanned"
    PAYMENT_RELEASED = "payment_released"
    DISPUTE_FILED = "dispute_filed"


@dataclass
class NotificationEvent:
    """One notification for one recipient"""
    type: NotificationType
    transaction_ref: str
    recipient_id: UUID
    title: str
    message: str
    data: Dict[str, Any] = field(default_factory=dict)

    def to_payload(self) -> Dict[str, Any]:
        return {
            "type": self.type.value,
            "transaction_ref": self.transaction_ref,
            "recipient_id": str(self.recipient_id),
            "title": self.title,
            "message": self.message,
            "data": {key: str(value) if value is not None else None for key, value in self.data.items()},
        }


class NotificationPublisher:
    """Interface for notification delivery"""

    def publish(self, event: NotificationEvent) -> None:
        raise NotImplementedError


class RQNotificationPublisher(NotificationPublisher):
    """Enqueue each event as an rq job on the notifications queue"""

    def __init__(self, queue_name: Optional[str] = None):
        self.queue_name = queue_name or get_settings().NOTIFICATIONS_QUEUE
        self._queue: Optional[Queue] = None

    @property
    def queue(self) -> Queue:
        if self._queue is None:
            self._queue = Queue(self.queue_name, connection=get_redis())
        return self._queue

    def publish(self, event: NotificationEvent) -> None:
        self.queue.enqueue("escrow_core.workers.jobs.deliver_notification", event.to_payload())


@lru_cache()
def get_notification_publisher() -> NotificationPublisher:
    """FastAPI dependency - process-wide publisher"""
    return RQNotificationPublisher()


def emit(publisher: NotificationPublisher, event: NotificationEvent) -> bool:
    """Publish one event; returns False (and logs) instead of raising on failure"""
    try:
        publisher.publish(event)
    except Exception as e:
        record_notification_failure(event.type.value)
        logger.error(
            "Notification publish failed",
            exc_info=e,
            extra={
                "transaction_ref": event.transaction_ref,
                "event_type": event.type.value,
                "recipient_id": str(event.recipient_id),
            },
        )
        return False
    logger.info(
        "Notification published",
        extra={
            "transaction_ref": event.transaction_ref,
            "event_type": event.type.value,
            "recipient_id": str(event.recipient_id),
        },
    )
    return True
