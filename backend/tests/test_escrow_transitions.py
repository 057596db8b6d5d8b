"""
Tests for the escrow transition table and compare-and-swap writes
"""

import pytest
from datetime import timedelta
from sqlalchemy import update

from escrow_core.core.escrow.models import EscrowTransaction, TransactionStatus as S
from escrow_core.services import escrow_transitions
from escrow_core.services.errors import InvalidStateTransitionError, StateConflictError

from tests.helpers import NOW, create_txn


@pytest.mark.parametrize("current,target", [
    (S.PENDING, S.FUNDED),
    (S.PENDING, S.CANCELLED),
    (S.FUNDED, S.IN_TRANSIT),
    (S.IN_TRANSIT, S.ON_HOLD),
    (S.IN_TRANSIT, S.DELIVERED),
    (S.IN_TRANSIT, S.DISPUTED),
    (S.DELIVERED, S.ON_HOLD),
    (S.DELIVERED, S.DISPUTED),
    (S.ON_HOLD, S.COMPLETED),
    (S.ON_HOLD, S.DISPUTED),
])
def test_listed_transitions_allowed(current, target):
    assert escrow_transitions.can_transition(current, target)


@pytest.mark.parametrize("current,target", [
    (S.PENDING, S.IN_TRANSIT),
    (S.PENDING, S.DISPUTED),
    (S.FUNDED, S.FUNDED),
    (S.FUNDED, S.DISPUTED),
    (S.FUNDED, S.CANCELLED),
    (S.ON_HOLD, S.IN_TRANSIT),
    (S.COMPLETED, S.DISPUTED),
    (S.DISPUTED, S.COMPLETED),
    (S.CANCELLED, S.FUNDED),
])
def test_unlisted_transitions_rejected(current, target):
    assert not escrow_transitions.can_transition(current, target)
    with pytest.raises(InvalidStateTransitionError):
        escrow_transitions.ensure_transition(current, target)


def test_terminal_statuses():
    assert escrow_transitions.TERMINAL_STATUSES == {S.COMPLETED, S.CANCELLED, S.DISPUTED}


def test_transition_bumps_version_and_stamps_time(db_session, retailer, wholesaler):
    txn = create_txn(db_session, retailer, wholesaler)
    assert txn.version == 0

    escrow_transitions.transition(db_session, txn, S.CANCELLED, now=NOW + timedelta(minutes=5))
    db_session.commit()

    assert txn.status == S.CANCELLED
    assert txn.version == 1
    assert txn.cancelled_at == NOW + timedelta(minutes=5)


def test_stale_version_raises_state_conflict(db_session, retailer, wholesaler):
    """A writer holding an outdated snapshot loses the compare-and-swap"""
    txn = create_txn(db_session, retailer, wholesaler)
    assert txn.version == 0

    # Concurrent writer bumps the version; our in-memory snapshot still says 0
    db_session.execute(
        update(EscrowTransaction)
        .where(EscrowTransaction.id == txn.id)
        .values(version=EscrowTransaction.version + 1)
        .execution_options(synchronize_session=False)
    )
    assert txn.version == 0

    with pytest.raises(StateConflictError):
        escrow_transitions.transition(db_session, txn, S.FUNDED, now=NOW)
    db_session.rollback()

    db_session.refresh(txn)
    assert txn.status == S.PENDING


def test_conditional_update_keeps_status(db_session, retailer, wholesaler):
    txn = create_txn(db_session, retailer, wholesaler)
    escrow_transitions.conditional_update(db_session, txn, now=NOW, values={"payment_reference": "PI-1"})
    db_session.commit()

    assert txn.status == S.PENDING
    assert txn.payment_reference == "PI-1"
    assert txn.version == 1
