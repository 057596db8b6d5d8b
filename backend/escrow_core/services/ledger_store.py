"""
Ledger store - append-only log of monetary movements

No business logic lives here: callers decide what to record, this module only writes
and reads entries. Appends flush but never commit; the caller's database transaction
decides whether the entry becomes durable together with the state change it records.
"""

import logging
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, Iterable, List, Optional
from sqlalchemy.orm import Session

from escrow_core.core.ledger.models import (
    LedgerEntry,
    LedgerEntryType,
    INFLOW_TYPES,
    OUTFLOW_TYPES,
    generate_entry_id,
)
from escrow_core.infrastructure.settings import get_settings

logger = logging.getLogger(__name__)

ZERO = Decimal("0.00")


def append_entry(
    db: Session,
    *,
    transaction_ref: str,
    entry_type: LedgerEntryType,
    amount: Decimal,
    from_account: str,
    to_account: str,
    balance: Decimal,
    currency: Optional[str] = None,
    merchant_account_id: Optional[str] = None,
    metadata: Optional[Dict[str, Any]] = None,
    entry_id: Optional[str] = None,
    created_at: Optional[datetime] = None,
) -> LedgerEntry:
    """
    Append one ledger entry and return it.

    The entry id is generated when absent. amount must be a positive magnitude;
    direction is carried by from_account/to_account.
    """
    if amount is None or Decimal(amount) <= 0:
        raise ValueError(f"Ledger amount must be positive, got {amount}")

    settings = get_settings()
    entry = LedgerEntry(
        entry_id=entry_id or generate_entry_id(),
        transaction_ref=transaction_ref,
        entry_type=entry_type,
        amount=Decimal(amount),
        currency=currency or settings.DEFAULT_CURRENCY,
        from_account=from_account,
        to_account=to_account,
        balance=Decimal(balance),
        merchant_account_id=merchant_account_id or settings.MERCHANT_ACCOUNT_ID,
        entry_metadata=metadata,
    )
    if created_at is not None:
        entry.created_at = created_at
    db.add(entry)
    db.flush()

    logger.info(
        "Ledger entry appended",
        extra={
            "entry_id": entry.entry_id,
            "transaction_ref": transaction_ref,
            "entry_type": entry_type.value,
            "amount": str(entry.amount),
            "from_account": from_account,
            "to_account": to_account,
        },
    )
    return entry


def entries_for(db: Session, transaction_ref: str) -> List[LedgerEntry]:
    """All entries recorded for a transaction reference, newest first"""
    return db.query(LedgerEntry).filter(
        LedgerEntry.transaction_ref == transaction_ref,
    ).order_by(
        LedgerEntry.created_at.desc(),
        LedgerEntry.entry_id.desc(),
    ).all()


def entries_for_account(
    db: Session,
    merchant_account_id: str,
    *,
    entry_type: Optional[LedgerEntryType] = None,
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
    transaction_ref: Optional[str] = None,
    limit: Optional[int] = None,
) -> List[LedgerEntry]:
    """Entries for a merchant account, optionally filtered by kind, time range and reference"""
    query = db.query(LedgerEntry).filter(LedgerEntry.merchant_account_id == merchant_account_id)
    if entry_type is not None:
        query = query.filter(LedgerEntry.entry_type == entry_type)
    if start is not None:
        query = query.filter(LedgerEntry.created_at >= start)
    if end is not None:
        query = query.filter(LedgerEntry.created_at <= end)
    if transaction_ref is not None:
        query = query.filter(LedgerEntry.transaction_ref == transaction_ref)
    query = query.order_by(LedgerEntry.created_at.desc(), LedgerEntry.entry_id.desc())
    if limit is not None:
        query = query.limit(limit)
    return query.all()


def signed_amount(entry: LedgerEntry) -> Decimal:
    """
    Contribution of one entry to the escrow fold.

    + deposit/hold, - release/refund, 0 for informational kinds and for
    self-transfers (escrow -> escrow annotations move no money).
    """
    if entry.from_account == entry.to_account:
        return ZERO
    if entry.entry_type in INFLOW_TYPES:
        return entry.amount
    if entry.entry_type in OUTFLOW_TYPES:
        return -entry.amount
    return ZERO


def net_escrow_delta(entries: Iterable[LedgerEntry]) -> Decimal:
    """Signed sum over entries; zero once a transaction's escrow is fully unwound"""
    total = ZERO
    for entry in entries:
        total += signed_amount(entry)
    return total


def balance_for(
    db: Session,
    merchant_account_id: str,
    *,
    as_of: Optional[datetime] = None,
) -> Decimal:
    """Funds currently held in escrow for a merchant account (derived fold, as of a timestamp)"""
    entries = entries_for_account(db, merchant_account_id, end=as_of)
    return net_escrow_delta(entries)
