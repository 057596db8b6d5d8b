"""
RQ Jobs - Background tasks
"""

import logging
from typing import Any, Dict

logger = logging.getLogger(__name__)


def deliver_notification(payload: Dict[str, Any]) -> None:
    """
    Deliver one notification event.

    Push / in-app delivery belongs to the notification service; this job is the
    hand-off point and records what was delivered.
    """
    logger.info(
        "Delivering notification",
        extra={
            "event_type": payload.get("type"),
            "transaction_ref": payload.get("transaction_ref"),
            "recipient_id": payload.get("recipient_id"),
            "title": payload.get("title"),
        },
    )
