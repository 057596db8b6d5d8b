"""
Retailer locked funds endpoints
"""

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from escrow_core.auth.dependencies import require_role
from escrow_core.core.security.models import Role
from escrow_core.core.users.models import User
from escrow_core.infrastructure.database import get_db
from escrow_core.schemas.funds import (
    AdjustLockedFundsRequest,
    AdjustLockedFundsResponse,
    LockedFundsResponse,
    money,
)
from escrow_core.schemas.ledger import ledger_entry_to_response
from escrow_core.services import locked_funds_service

router = APIRouter(prefix="/locked-funds", tags=["locked-funds"])


@router.get("", response_model=LockedFundsResponse)
def get_locked_funds(
    db: Session = Depends(get_db),
    user: User = Depends(require_role(Role.RETAILER)),
):
    """Locked balance, the amount tied up in open orders and what is left"""
    summary = locked_funds_service.get_balance_summary(db, user.id)
    return LockedFundsResponse(
        balance=money(summary["balance"]),
        actual_locked=money(summary["actual_locked"]),
        available=money(summary["available"]),
        currency=summary["currency"],
    )


@router.post("/adjust", response_model=AdjustLockedFundsResponse)
def adjust_locked_funds(
    body: AdjustLockedFundsRequest,
    db: Session = Depends(get_db),
    user: User = Depends(require_role(Role.RETAILER)),
):
    result = locked_funds_service.adjust_locked_funds(
        db,
        retailer_id=user.id,
        action=body.type,
        amount=body.amount,
        reason=body.reason,
    )
    return AdjustLockedFundsResponse(
        old_balance=money(result["old_balance"]),
        new_balance=money(result["new_balance"]),
        adjustment=money(result["adjustment"]),
        ledger_entry=ledger_entry_to_response(result["ledger_entry"]),
    )
