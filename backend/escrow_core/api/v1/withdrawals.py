"""
Wholesaler withdrawal endpoints
"""

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from escrow_core.auth.dependencies import require_role
from escrow_core.core.security.models import Role
from escrow_core.core.users.models import User
from escrow_core.infrastructure.database import get_db
from escrow_core.schemas.funds import (
    AvailableWithdrawalResponse,
    WithdrawalRequest,
    WithdrawalResponse,
    money,
)
from escrow_core.schemas.ledger import ledger_entry_to_response
from escrow_core.services import withdrawal_service

router = APIRouter(prefix="/withdrawals", tags=["withdrawals"])


@router.get("/available", response_model=AvailableWithdrawalResponse)
def get_available(
    db: Session = Depends(get_db),
    user: User = Depends(require_role(Role.WHOLESALER)),
):
    """Amount released to the wholesaler and past its withdrawal time"""
    result = withdrawal_service.get_available_withdrawal(db, wholesaler=user)
    return AvailableWithdrawalResponse(
        available_amount=money(result["available_amount"]),
        currency=result["currency"],
        transactions_count=result["transactions_count"],
    )


@router.post("", response_model=WithdrawalResponse)
def request_withdrawal(
    body: WithdrawalRequest,
    db: Session = Depends(get_db),
    user: User = Depends(require_role(Role.WHOLESALER)),
):
    result = withdrawal_service.request_withdrawal(
        db, wholesaler=user, amount=body.amount, bank_account=body.bank_account,
    )
    return WithdrawalResponse(
        amount=money(result["amount"]),
        available_balance=money(result["available_balance"]),
        ledger_entries=[ledger_entry_to_response(entry) for entry in result["ledger_entries"]],
    )
