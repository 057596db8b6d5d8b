"""
Ledger read endpoints
"""

from datetime import datetime
from typing import Optional
from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from escrow_core.auth.dependencies import get_current_user, require_role
from escrow_core.core.ledger.models import LedgerEntryType
from escrow_core.core.security.models import Role
from escrow_core.core.users.models import User
from escrow_core.infrastructure.database import get_db
from escrow_core.schemas.funds import money
from escrow_core.schemas.ledger import LedgerBalanceResponse, LedgerListResponse, ledger_entry_to_response
from escrow_core.services import ledger_service

router = APIRouter(prefix="/ledger", tags=["ledger"])


@router.get("", response_model=LedgerListResponse)
def get_ledger(
    transaction_ref: Optional[str] = Query(None, alias="transactionRef"),
    entry_type: Optional[LedgerEntryType] = Query(None, alias="type"),
    start: Optional[datetime] = Query(None, alias="startDate"),
    end: Optional[datetime] = Query(None, alias="endDate"),
    limit: int = Query(ledger_service.MAX_LEDGER_PAGE, ge=1, le=ledger_service.MAX_LEDGER_PAGE),
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    """
    Ledger entries, newest first.

    Admins may query the whole merchant account; other callers must pass the
    reference of a transaction they are a party to.
    """
    entries = ledger_service.get_ledger(
        db,
        actor=user,
        transaction_ref=transaction_ref,
        entry_type=entry_type,
        start=start,
        end=end,
        limit=limit,
    )
    return LedgerListResponse(
        entries=[ledger_entry_to_response(entry) for entry in entries],
        count=len(entries),
    )


@router.get("/balance", response_model=LedgerBalanceResponse)
def get_ledger_balance(
    as_of: Optional[datetime] = Query(None, alias="asOf"),
    db: Session = Depends(get_db),
    user: User = Depends(require_role(Role.ADMIN)),
):
    """Funds currently held in escrow (admin)"""
    result = ledger_service.get_ledger_balance(db, actor=user, as_of=as_of)
    return LedgerBalanceResponse(
        merchant_account_id=result["merchant_account_id"],
        balance=money(result["balance"]),
        currency=result["currency"],
    )
