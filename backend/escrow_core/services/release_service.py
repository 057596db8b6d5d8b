"""
Release service - move held funds to wholesalers once the hold period has elapsed
"""

import logging
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, Optional
from uuid import uuid4

from sqlalchemy.orm import Session

from escrow_core.core.common.base_model import utcnow
from escrow_core.core.escrow.models import EscrowTransaction, TransactionStatus, Dispute
from escrow_core.core.ledger.models import LedgerEntryType, ESCROW_ACCOUNT, wholesaler_account
from escrow_core.core.users.models import User
from escrow_core.infrastructure.database import ping_database
from escrow_core.infrastructure.settings import get_settings
from escrow_core.services import escrow_transitions, ledger_store
from escrow_core.services.errors import StateConflictError
from escrow_core.services.notifications import (
    NotificationEvent,
    NotificationPublisher,
    NotificationType,
    emit,
)
from escrow_core.utils.metrics import record_release, record_ledger_invariant_violation, record_sweep_run

logger = logging.getLogger(__name__)


class ReleaseError(Exception):
    """Base exception for release operations"""
    pass


class ConservationViolation(ReleaseError):
    """Ledger for a transaction would not net to zero after release"""

    def __init__(self, transaction_ref: str, delta: Decimal):
        self.transaction_ref = transaction_ref
        self.delta = delta
        super().__init__(f"Conservation violation for {transaction_ref}: net escrow delta {delta}")


def release_held_funds(
    db: Session,
    *,
    now: Optional[datetime] = None,
    dry_run: bool = False,
    trace_id: Optional[str] = None,
    max_transactions: Optional[int] = None,
    publisher: Optional[NotificationPublisher] = None,
) -> Dict[str, Any]:
    """
    Run one release sweep.

    Finds on_hold transactions whose hold_release_at <= now and, for each one,
    writes a release entry (escrow -> wholesaler-<id>) and transitions it to
    completed in its own database transaction. A transaction with a dispute, or
    whose wholesaler cannot be resolved, is skipped. One failing
    transaction is rolled back and recorded; the sweep goes on with the next.

    If the database is unreachable the sweep is a no-op (skipped=True).

    Args:
        db: Database session
        now: Sweep clock (default: current UTC time)
        dry_run: If True, simulate without committing
        trace_id: Trace ID for this run (default: generated UUID)
        max_transactions: Max transactions examined (default: RELEASE_SWEEP_BATCH_SIZE)
        publisher: Where payment_released events go (None: no notifications)

    Returns:
        Dict with summary statistics:
        - found, released_count, released_amount (string)
        - skipped_disputed, skipped_unresolved, conflicts
        - errors_count, errors
        - trace_id, as_of (ISO), skipped, dry_run
    """
    if now is None:
        now = utcnow()
    if trace_id is None:
        trace_id = str(uuid4())
    if max_transactions is None:
        max_transactions = get_settings().RELEASE_SWEEP_BATCH_SIZE

    stats: Dict[str, Any] = {
        'found': 0,
        'released_count': 0,
        'released_amount': Decimal('0.00'),
        'skipped_disputed': 0,
        'skipped_unresolved': 0,
        'conflicts': 0,
        'errors_count': 0,
        'errors': [],
        'trace_id': trace_id,
        'as_of': now.isoformat(),
        'skipped': False,
        'dry_run': dry_run,
    }

    if not ping_database(db):
        logger.warning("Database unreachable, skipping release sweep", extra={"sweep_trace_id": trace_id})
        stats['skipped'] = True
        stats['released_amount'] = str(stats['released_amount'])
        record_sweep_run("skipped")
        return stats

    due = db.query(EscrowTransaction).filter(
        EscrowTransaction.status == TransactionStatus.ON_HOLD,
        EscrowTransaction.hold_release_at <= now,
    ).order_by(
        EscrowTransaction.hold_release_at.asc(),
        EscrowTransaction.created_at.asc(),
    ).limit(max_transactions).all()

    stats['found'] = len(due)
    # Snapshot what we need before per-item commits/rollbacks expire the objects
    candidates = [(txn.id, txn.reference) for txn in due]

    released = []
    for txn_id, reference in candidates:
        try:
            txn = db.query(EscrowTransaction).filter(EscrowTransaction.id == txn_id).first()
            if txn is None or txn.status != TransactionStatus.ON_HOLD:
                stats['conflicts'] += 1
                continue

            dispute = db.query(Dispute).filter(Dispute.transaction_id == txn.id).first()
            if dispute is not None and dispute.filed_at is not None:
                stats['skipped_disputed'] += 1
                logger.info("Release skipped - dispute filed", extra={"transaction_ref": reference})
                continue

            wholesaler = db.query(User).filter(User.id == txn.wholesaler_id).first()
            if wholesaler is None:
                stats['skipped_unresolved'] += 1
                logger.warning(
                    "Release skipped - wholesaler not found",
                    extra={"transaction_ref": reference, "wholesaler_id": str(txn.wholesaler_id)},
                )
                continue

            amount = txn.amount
            ledger_store.append_entry(
                db,
                transaction_ref=reference,
                entry_type=LedgerEntryType.RELEASE,
                amount=amount,
                from_account=ESCROW_ACCOUNT,
                to_account=wholesaler_account(txn.wholesaler_id),
                balance=Decimal('0.00'),
                currency=txn.currency,
                metadata={
                    "description": f"Funds released to wholesaler after hold period for transaction {reference}",
                    "sweep_trace_id": trace_id,
                },
                created_at=now,
            )
            escrow_transitions.transition(db, txn, TransactionStatus.COMPLETED, now=now)

            delta = ledger_store.net_escrow_delta(ledger_store.entries_for(db, reference))
            if delta != 0:
                raise ConservationViolation(reference, delta)

            if dry_run:
                db.rollback()
            else:
                db.commit()
                record_release()
                released.append((reference, txn.wholesaler_id, amount))

            stats['released_count'] += 1
            stats['released_amount'] += amount
            logger.info(
                "Released held funds",
                extra={"transaction_ref": reference, "amount": str(amount), "dry_run": dry_run},
            )

        except StateConflictError:
            db.rollback()
            stats['conflicts'] += 1
        except ConservationViolation as e:
            db.rollback()
            record_ledger_invariant_violation()
            logger.error(str(e), extra={"transaction_ref": reference, "delta": str(e.delta)})
            stats['errors'].append(str(e))
            stats['errors_count'] += 1
        except Exception as e:
            db.rollback()
            logger.exception("Error releasing transaction", extra={"transaction_ref": reference})
            stats['errors'].append(f"Error processing transaction {reference}: {str(e)}")
            stats['errors_count'] += 1
            # Continue with next transaction (fail-soft)

    if publisher is not None:
        for reference, wholesaler_id, amount in released:
            emit(publisher, NotificationEvent(
                type=NotificationType.PAYMENT_RELEASED,
                transaction_ref=reference,
                recipient_id=wholesaler_id,
                title="Payment Released",
                message=f"Funds for order {reference} have been released to you.",
                data={"amount": amount},
            ))

    stats['released_amount'] = str(stats['released_amount'].quantize(Decimal('0.01')))
    record_sweep_run("partial" if stats['errors_count'] else "ok")
    logger.info(
        "Release sweep finished",
        extra={key: value for key, value in stats.items() if key != 'errors'},
    )
    return stats
