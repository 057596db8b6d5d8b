"""
Tests for notification publishing and the delivery job
"""

import logging
from uuid import uuid4
from decimal import Decimal

from escrow_core.services.notifications import (
    NotificationEvent,
    NotificationType,
    RQNotificationPublisher,
    emit,
)
from escrow_core.workers.jobs import deliver_notification

from tests.helpers import FailingPublisher, RecordingPublisher


def _event(**overrides):
    values = dict(
        type=NotificationType.FUNDS_LOCKED,
        transaction_ref="TXN-1-ABCDEF",
        recipient_id=uuid4(),
        title="Funds Locked - Order Ready",
        message="Retailer has locked 100.00 USD",
        data={"amount": Decimal("100.00"), "note": None},
    )
    values.update(overrides)
    return NotificationEvent(**values)


def test_payload_is_json_friendly():
    event = _event()
    payload = event.to_payload()
    assert payload["type"] == "funds_locked"
    assert payload["recipient_id"] == str(event.recipient_id)
    assert payload["data"] == {"amount": "100.00", "note": None}


def test_emit_success():
    publisher = RecordingPublisher()
    assert emit(publisher, _event()) is True
    assert len(publisher.events) == 1


def test_emit_failure_is_swallowed_and_logged(caplog):
    with caplog.at_level(logging.ERROR):
        assert emit(FailingPublisher(), _event()) is False
    assert "Notification publish failed" in caplog.text


def test_rq_publisher_enqueues_delivery_job():
    enqueued = []

    class FakeQueue:
        def enqueue(self, func, *args):
            enqueued.append((func, args))

    publisher = RQNotificationPublisher(queue_name="notifications-test")
    publisher._queue = FakeQueue()
    event = _event(type=NotificationType.PAYMENT_RELEASED)

    publisher.publish(event)

    assert enqueued == [("escrow_core.workers.jobs.deliver_notification", (event.to_payload(),))]


def test_deliver_notification_logs(caplog):
    with caplog.at_level(logging.INFO, logger="escrow_core.workers.jobs"):
        deliver_notification(_event().to_payload())
    assert "Delivering notification" in caplog.text
