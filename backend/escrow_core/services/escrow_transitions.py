"""
Escrow state machine - transition table and conditional (compare-and-swap) writes

Every write to an EscrowTransaction row goes through `transition` or
`conditional_update`. Both issue

    UPDATE escrow_transactions SET ... , version = version + 1
    WHERE id = :id AND status = :expected_status AND version = :expected_version

and raise StateConflictError when no row matched, so two racing writers can never
both succeed from the same observed state.
"""

import logging
from datetime import datetime
from typing import Any, Dict, FrozenSet, Optional
from sqlalchemy import update
from sqlalchemy.orm import Session

from escrow_core.core.escrow.models import EscrowTransaction, TransactionStatus
from escrow_core.services.errors import InvalidStateTransitionError, StateConflictError
from escrow_core.utils.metrics import record_transition, record_state_conflict

logger = logging.getLogger(__name__)

S = TransactionStatus

ALLOWED_TRANSITIONS: Dict[TransactionStatus, FrozenSet[TransactionStatus]] = {
    S.PENDING: frozenset({S.FUNDED, S.CANCELLED}),
    S.FUNDED: frozenset({S.IN_TRANSIT}),
    S.IN_TRANSIT: frozenset({S.DELIVERED, S.ON_HOLD, S.DISPUTED}),
    S.DELIVERED: frozenset({S.ON_HOLD, S.DISPUTED}),
    S.ON_HOLD: frozenset({S.COMPLETED, S.DISPUTED}),
    S.COMPLETED: frozenset(),
    S.CANCELLED: frozenset(),
    S.DISPUTED: frozenset(),
}

TERMINAL_STATUSES = frozenset(status for status, targets in ALLOWED_TRANSITIONS.items() if not targets)

# Timestamp column stamped when a transaction enters a state
_ENTERED_AT = {
    S.FUNDED: "funded_at",
    S.IN_TRANSIT: "in_transit_at",
    S.DELIVERED: "delivered_at",
    S.ON_HOLD: "on_hold_at",
    S.COMPLETED: "completed_at",
    S.CANCELLED: "cancelled_at",
    S.DISPUTED: "disputed_at",
}


def can_transition(current: TransactionStatus, target: TransactionStatus) -> bool:
    return target in ALLOWED_TRANSITIONS.get(current, frozenset())


def ensure_transition(current: TransactionStatus, target: TransactionStatus) -> None:
    """Raise InvalidStateTransitionError unless current -> target is listed in the table"""
    if not can_transition(current, target):
        raise InvalidStateTransitionError(current, target)


def ensure_status(txn: EscrowTransaction, *allowed: TransactionStatus) -> None:
    """Precondition check for operations legal only in some states"""
    if txn.status not in allowed:
        raise InvalidStateTransitionError(txn.status)


def _compare_and_swap(
    db: Session,
    txn: EscrowTransaction,
    values: Dict[str, Any],
) -> None:
    expected_status = txn.status
    expected_version = txn.version

    stmt = (
        update(EscrowTransaction)
        .where(
            EscrowTransaction.id == txn.id,
            EscrowTransaction.status == expected_status,
            EscrowTransaction.version == expected_version,
        )
        .values(version=expected_version + 1, **values)
        .execution_options(synchronize_session=False)
    )
    result = db.execute(stmt)
    if result.rowcount != 1:
        record_state_conflict()
        logger.warning(
            "Conditional write rejected - transaction changed concurrently",
            extra={
                "transaction_ref": txn.reference,
                "expected_status": expected_status.value,
                "expected_version": expected_version,
            },
        )
        raise StateConflictError(
            f"Transaction {txn.reference} changed since it was read, retry"
        )
    db.refresh(txn)


def transition(
    db: Session,
    txn: EscrowTransaction,
    target: TransactionStatus,
    *,
    now: datetime,
    values: Optional[Dict[str, Any]] = None,
) -> EscrowTransaction:
    """
    Move txn to target if the table allows it and nobody changed the row meanwhile.

    Stamps the matching `<state>_at` column with `now`. Does not commit.
    """
    current = txn.status
    ensure_transition(current, target)

    updates = dict(values or {})
    updates["status"] = target
    updates[_ENTERED_AT[target]] = now
    updates["updated_at"] = now
    _compare_and_swap(db, txn, updates)

    record_transition(current.value, target.value)
    logger.info(
        "Escrow transition",
        extra={
            "transaction_ref": txn.reference,
            "from_status": current.value,
            "to_status": target.value,
            "version": txn.version,
        },
    )
    return txn


def conditional_update(
    db: Session,
    txn: EscrowTransaction,
    *,
    now: datetime,
    values: Dict[str, Any],
) -> EscrowTransaction:
    """Write non-state columns under the same (status, version) guard. Does not commit."""
    updates = dict(values)
    updates["updated_at"] = now
    _compare_and_swap(db, txn, updates)
    return txn
