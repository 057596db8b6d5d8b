"""
Locked funds service - retailer pre-committed capital

available = balance - SUM(amount of the retailer's transactions in
{pending, funded, in_transit, delivered, on_hold}). The balance itself only
changes through conditional atomic updates.
"""

import logging
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, Optional
from sqlalchemy import update
from sqlalchemy.orm import Session

from escrow_core.core.accounts.locked_funds import LockedFundsAccount
from escrow_core.core.common.base_model import utcnow
from escrow_core.core.escrow.models import EscrowTransaction, NON_TERMINAL_STATUSES
from escrow_core.core.ledger.models import (
    LedgerEntryType,
    ADJUSTMENT_REF,
    EXTERNAL_ACCOUNT,
    retailer_account,
)
from escrow_core.infrastructure.settings import get_settings
from escrow_core.services import ledger_store
from escrow_core.services.errors import InsufficientFundsError, StateConflictError, ValidationError
from escrow_core.utils.money import normalize_amount

logger = logging.getLogger(__name__)

ZERO = Decimal("0.00")

ADJUST_ADD = "add"
ADJUST_SUBTRACT = "subtract"


def get_account(db: Session, retailer_id) -> Optional[LockedFundsAccount]:
    return db.query(LockedFundsAccount).filter(LockedFundsAccount.retailer_id == retailer_id).first()


def get_or_create_account(db: Session, retailer_id, currency: Optional[str] = None) -> LockedFundsAccount:
    """Return the retailer's account, creating a zero-balance one if needed (flushes, no commit)"""
    account = get_account(db, retailer_id)
    if account is None:
        account = LockedFundsAccount(
            retailer_id=retailer_id,
            balance=ZERO,
            currency=currency or get_settings().DEFAULT_CURRENCY,
            version=0,
        )
        db.add(account)
        db.flush()
    return account


def actual_locked(db: Session, retailer_id, *, exclude_transaction_id=None) -> Decimal:
    """Sum of the retailer's non-terminal transaction amounts"""
    query = db.query(EscrowTransaction.amount).filter(
        EscrowTransaction.retailer_id == retailer_id,
        EscrowTransaction.status.in_(NON_TERMINAL_STATUSES),
    )
    if exclude_transaction_id is not None:
        query = query.filter(EscrowTransaction.id != exclude_transaction_id)
    total = ZERO
    for (amount,) in query.all():
        total += amount
    return total


def available_to_fund(db: Session, retailer_id, *, exclude_transaction_id=None) -> Decimal:
    account = get_account(db, retailer_id)
    balance = account.balance if account is not None else ZERO
    return balance - actual_locked(db, retailer_id, exclude_transaction_id=exclude_transaction_id)


def get_balance_summary(db: Session, retailer_id) -> Dict[str, Any]:
    """Balance, actually-locked amount and what is left for new orders"""
    account = get_account(db, retailer_id)
    balance = account.balance if account is not None else ZERO
    currency = account.currency if account is not None else get_settings().DEFAULT_CURRENCY
    locked = actual_locked(db, retailer_id)
    return {
        "balance": balance,
        "actual_locked": locked,
        "available": max(ZERO, balance - locked),
        "currency": currency,
    }


def claim_for_funding(db: Session, account: LockedFundsAccount) -> None:
    """
    Bump the account version under a compare-and-swap.

    Two concurrent fundings for one retailer read the same version; only one claim
    succeeds, the other gets StateConflictError and must re-check availability.
    """
    expected_version = account.version
    result = db.execute(
        update(LockedFundsAccount)
        .where(LockedFundsAccount.id == account.id, LockedFundsAccount.version == expected_version)
        .values(version=expected_version + 1)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        raise StateConflictError("Locked funds changed since they were read, retry")
    db.refresh(account)


def adjust_locked_funds(
    db: Session,
    *,
    retailer_id,
    action: str,
    amount: Decimal,
    reason: Optional[str] = None,
    now: Optional[datetime] = None,
) -> Dict[str, Any]:
    """
    Add to or subtract from a retailer's locked balance and record an adjustment entry.

    Subtracting more than the balance raises InsufficientFundsError. Commits.
    """
    if action not in (ADJUST_ADD, ADJUST_SUBTRACT):
        raise ValidationError("type must be 'add' or 'subtract'")
    amount = normalize_amount(amount)
    now = now or utcnow()

    try:
        account = get_or_create_account(db, retailer_id)
        old_balance = account.balance

        if action == ADJUST_ADD:
            stmt = (
                update(LockedFundsAccount)
                .where(LockedFundsAccount.id == account.id)
                .values(
                    balance=LockedFundsAccount.balance + amount,
                    version=LockedFundsAccount.version + 1,
                    updated_at=now,
                )
            )
        else:
            stmt = (
                update(LockedFundsAccount)
                .where(LockedFundsAccount.id == account.id, LockedFundsAccount.balance >= amount)
                .values(
                    balance=LockedFundsAccount.balance - amount,
                    version=LockedFundsAccount.version + 1,
                    updated_at=now,
                )
            )
        result = db.execute(stmt.execution_options(synchronize_session=False))
        if result.rowcount != 1:
            raise InsufficientFundsError(available=old_balance, required=amount, message="Insufficient locked funds")
        db.refresh(account)

        reason_text = reason or "Manual adjustment"
        entry = ledger_store.append_entry(
            db,
            transaction_ref=ADJUSTMENT_REF,
            entry_type=LedgerEntryType.ADJUSTMENT,
            amount=amount,
            from_account=EXTERNAL_ACCOUNT if action == ADJUST_ADD else retailer_account(retailer_id),
            to_account=retailer_account(retailer_id) if action == ADJUST_ADD else EXTERNAL_ACCOUNT,
            balance=account.balance,
            currency=account.currency,
            metadata={
                "retailer_id": str(retailer_id),
                "adjustment_type": action,
                "reason": reason_text,
            },
            created_at=now,
        )
        db.commit()
    except Exception:
        db.rollback()
        raise

    logger.info(
        "Locked funds adjusted",
        extra={
            "retailer_id": str(retailer_id),
            "adjustment_type": action,
            "amount": str(amount),
            "old_balance": str(old_balance),
            "new_balance": str(account.balance),
        },
    )
    adjustment = amount if action == ADJUST_ADD else -amount
    return {
        "old_balance": old_balance,
        "new_balance": account.balance,
        "adjustment": adjustment,
        "ledger_entry": entry,
    }
