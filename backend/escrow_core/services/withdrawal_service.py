"""
Withdrawal and payout service - wholesaler side of released funds

A completed transaction becomes withdrawable once available_for_withdrawal_at has
passed. Withdrawals consume transactions oldest-first and may consume one partially;
progress is tracked in withdrawn_amount / withdrawn_at.
"""

import logging
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session

from escrow_core.core.common.base_model import utcnow
from escrow_core.core.escrow.models import (
    EscrowTransaction,
    TransactionStatus,
    PENDING_PAYOUT_STATUSES,
)
from escrow_core.core.ledger.models import LedgerEntryType, EXTERNAL_ACCOUNT, wholesaler_account
from escrow_core.core.users.models import User
from escrow_core.infrastructure.settings import get_settings
from escrow_core.services import escrow_transitions, ledger_store
from escrow_core.services.errors import InsufficientFundsError
from escrow_core.utils.money import normalize_amount

logger = logging.getLogger(__name__)

ZERO = Decimal("0.00")


def _withdrawable_transactions(db: Session, wholesaler_id, now: datetime) -> List[EscrowTransaction]:
    return db.query(EscrowTransaction).filter(
        EscrowTransaction.wholesaler_id == wholesaler_id,
        EscrowTransaction.status == TransactionStatus.COMPLETED,
        EscrowTransaction.available_for_withdrawal_at <= now,
    ).order_by(
        EscrowTransaction.available_for_withdrawal_at.asc(),
        EscrowTransaction.created_at.asc(),
    ).all()


def get_available_withdrawal(db: Session, *, wholesaler: User, now: Optional[datetime] = None) -> Dict[str, Any]:
    """Sum of not-yet-withdrawn amounts over withdrawable completed transactions"""
    now = now or utcnow()
    transactions = _withdrawable_transactions(db, wholesaler.id, now)
    available = sum((txn.withdrawable_remainder for txn in transactions), ZERO)
    return {
        "available_amount": available,
        "currency": get_settings().DEFAULT_CURRENCY,
        "transactions_count": len(transactions),
    }


def request_withdrawal(
    db: Session,
    *,
    wholesaler: User,
    amount: Any,
    bank_account: Optional[str] = None,
    now: Optional[datetime] = None,
) -> Dict[str, Any]:
    """
    Withdraw up to the available amount.

    Writes one withdrawal entry (wholesaler-<id> -> external) per transaction touched;
    each transaction's withdrawn_amount is updated under its version guard. Commits.
    """
    amount = normalize_amount(amount)
    now = now or utcnow()

    try:
        transactions = _withdrawable_transactions(db, wholesaler.id, now)
        available = sum((txn.withdrawable_remainder for txn in transactions), ZERO)
        if amount > available:
            raise InsufficientFundsError(
                available=available,
                required=amount,
                message="Insufficient funds available for withdrawal",
            )

        remaining = amount
        entries = []
        for txn in transactions:
            if remaining <= 0:
                break
            remainder = txn.withdrawable_remainder
            if remainder <= 0:
                continue

            take = min(remaining, remainder)
            escrow_transitions.conditional_update(
                db, txn, now=now,
                values={"withdrawn_amount": txn.withdrawn_amount + take, "withdrawn_at": now},
            )
            remaining -= take

            entries.append(ledger_store.append_entry(
                db,
                transaction_ref=txn.reference,
                entry_type=LedgerEntryType.WITHDRAWAL,
                amount=take,
                from_account=wholesaler_account(wholesaler.id),
                to_account=EXTERNAL_ACCOUNT,
                balance=available - (amount - remaining),
                currency=txn.currency,
                metadata={
                    "description": f"Withdrawal to {bank_account or 'bank account'}",
                    "wholesaler_id": str(wholesaler.id),
                    "bank_account": bank_account or "N/A",
                },
                created_at=now,
            ))
        db.commit()
    except Exception:
        db.rollback()
        raise

    logger.info(
        "Withdrawal processed",
        extra={
            "wholesaler_id": str(wholesaler.id),
            "amount": str(amount),
            "transactions_touched": len(entries),
        },
    )
    return {
        "amount": amount,
        "available_balance": available - amount,
        "ledger_entries": entries,
    }


def get_pending_payouts(db: Session, *, wholesaler: User) -> Dict[str, Any]:
    """Funded-but-not-yet-released transactions, newest first"""
    transactions = db.query(EscrowTransaction).filter(
        EscrowTransaction.wholesaler_id == wholesaler.id,
        EscrowTransaction.status.in_(PENDING_PAYOUT_STATUSES),
    ).order_by(EscrowTransaction.created_at.desc()).all()
    return {
        "payouts": transactions,
        "total_pending": sum((txn.amount for txn in transactions), ZERO),
        "count": len(transactions),
    }


def get_payout_summary(db: Session, *, wholesaler: User, now: Optional[datetime] = None) -> Dict[str, Any]:
    """Pending / available / withdrawn amounts and counts"""
    now = now or utcnow()
    pending = db.query(EscrowTransaction).filter(
        EscrowTransaction.wholesaler_id == wholesaler.id,
        EscrowTransaction.status.in_(PENDING_PAYOUT_STATUSES),
    ).all()
    available = _withdrawable_transactions(db, wholesaler.id, now)
    withdrawn = db.query(EscrowTransaction).filter(
        EscrowTransaction.wholesaler_id == wholesaler.id,
        EscrowTransaction.status == TransactionStatus.COMPLETED,
        EscrowTransaction.withdrawn_amount > 0,
    ).all()

    return {
        "pending": {
            "amount": sum((txn.amount for txn in pending), ZERO),
            "count": len(pending),
        },
        "available": {
            "amount": sum((txn.withdrawable_remainder for txn in available), ZERO),
            "count": len([txn for txn in available if txn.withdrawable_remainder > 0]),
        },
        "withdrawn": {
            "amount": sum((txn.withdrawn_amount for txn in withdrawn), ZERO),
            "count": len(withdrawn),
        },
    }
