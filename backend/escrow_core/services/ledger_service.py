"""
Ledger read service - filtered, authorization-scoped ledger queries
"""

from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session

from escrow_core.core.ledger.models import LedgerEntry, LedgerEntryType
from escrow_core.core.users.models import User
from escrow_core.infrastructure.settings import get_settings
from escrow_core.services import ledger_store
from escrow_core.services.errors import NotAuthorizedError, ValidationError
from escrow_core.services.escrow_service import is_admin, load_transaction

MAX_LEDGER_PAGE = 100


def get_ledger(
    db: Session,
    *,
    actor: User,
    transaction_ref: Optional[str] = None,
    entry_type: Optional[LedgerEntryType] = None,
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
    limit: int = MAX_LEDGER_PAGE,
) -> List[LedgerEntry]:
    """
    Ledger entries for the merchant account, newest first (at most 100).

    Admins may query freely. Everyone else must name a transaction they are a
    party to.
    """
    if start is not None and end is not None and start > end:
        raise ValidationError("start must not be after end")

    if not is_admin(actor):
        if not transaction_ref:
            raise NotAuthorizedError("transaction_ref is required")
        txn = load_transaction(db, transaction_ref)
        if not txn.is_party(actor.id):
            raise NotAuthorizedError("Not authorized")
        transaction_ref = txn.reference

    return ledger_store.entries_for_account(
        db,
        get_settings().MERCHANT_ACCOUNT_ID,
        entry_type=entry_type,
        start=start,
        end=end,
        transaction_ref=transaction_ref,
        limit=min(max(limit, 1), MAX_LEDGER_PAGE),
    )


def get_ledger_balance(db: Session, *, actor: User, as_of: Optional[datetime] = None) -> Dict[str, Any]:
    """Funds currently held in escrow for the merchant account (admin only)"""
    if not is_admin(actor):
        raise NotAuthorizedError("Not authorized")
    settings = get_settings()
    return {
        "merchant_account_id": settings.MERCHANT_ACCOUNT_ID,
        "balance": ledger_store.balance_for(db, settings.MERCHANT_ACCOUNT_ID, as_of=as_of),
        "currency": settings.DEFAULT_CURRENCY,
    }
