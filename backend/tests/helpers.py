"""
Shared test helpers - clock, recording publisher and escrow flow builders
"""

from datetime import datetime, timezone
from decimal import Decimal
from typing import List

from sqlalchemy.orm import Session

from escrow_core.core.escrow.models import EscrowTransaction, PaymentMethod
from escrow_core.core.users.models import User
from escrow_core.services import escrow_service, locked_funds_service
from escrow_core.services.notifications import NotificationEvent, NotificationPublisher

from tests.auth_utils import create_test_jwt_for_user

# Fixed clock for service-level tests
NOW = datetime(2025, 6, 1, 12, 0, 0, tzinfo=timezone.utc)


class RecordingPublisher(NotificationPublisher):
    """Keeps published events in memory"""

    def __init__(self):
        self.events: List[NotificationEvent] = []

    def publish(self, event: NotificationEvent) -> None:
        self.events.append(event)

    def of_type(self, event_type) -> List[NotificationEvent]:
        return [event for event in self.events if event.type == event_type]


class FailingPublisher(NotificationPublisher):
    """Every publish raises"""

    def publish(self, event: NotificationEvent) -> None:
        raise ConnectionError("queue unavailable")


def auth_headers(user: User) -> dict:
    """Bearer header for an existing user"""
    token = create_test_jwt_for_user(str(user.id), user.email, role=user.role.value)
    return {"Authorization": f"Bearer {token}"}


def lock_funds(db_session: Session, retailer: User, amount: str = "1000.00") -> None:
    locked_funds_service.adjust_locked_funds(
        db_session,
        retailer_id=retailer.id,
        action="add",
        amount=Decimal(amount),
        reason="Test top-up",
        now=NOW,
    )


def create_txn(
    db_session: Session,
    retailer: User,
    wholesaler: User,
    amount: str = "100.00",
    **kwargs,
) -> EscrowTransaction:
    return escrow_service.create_transaction(
        db_session,
        actor=retailer,
        wholesaler_id=wholesaler.id,
        amount=amount,
        description=kwargs.pop("description", "20 cases of bottled water"),
        payment_method=kwargs.pop("payment_method", PaymentMethod.ECOCASH),
        now=kwargs.pop("now", NOW),
        **kwargs,
    )


def funded_txn(db_session, publisher, retailer, wholesaler, amount="100.00", **kwargs):
    """Locked funds topped up, transaction created and funded"""
    lock_funds(db_session, retailer, kwargs.pop("locked", "1000.00"))
    txn = create_txn(db_session, retailer, wholesaler, amount, **kwargs)
    txn, _ = escrow_service.fund_transaction(db_session, publisher, ref=txn.reference, actor=retailer, now=NOW)
    return txn


def in_transit_txn(db_session, publisher, retailer, wholesaler, amount="100.00", **kwargs):
    """Funded and QR issued; returns (txn, credential)"""
    txn = funded_txn(db_session, publisher, retailer, wholesaler, amount, **kwargs)
    return escrow_service.initiate_delivery(db_session, publisher, ref=txn.reference, actor=wholesaler, now=NOW)


def on_hold_txn(db_session, publisher, retailer, wholesaler, amount="100.00", **kwargs):
    """Delivery confirmed at NOW; hold releases at NOW + 12h"""
    txn, credential = in_transit_txn(db_session, publisher, retailer, wholesaler, amount, **kwargs)
    txn, _ = escrow_service.confirm_delivery(
        db_session, publisher,
        ref=txn.reference,
        actor=retailer,
        presented_code=credential.code,
        now=NOW,
    )
    return txn
