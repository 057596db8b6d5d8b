"""
Wholesaler payout endpoints
"""

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from escrow_core.auth.dependencies import require_role
from escrow_core.core.security.models import Role
from escrow_core.core.users.models import User
from escrow_core.infrastructure.database import get_db
from escrow_core.schemas.escrow import transaction_to_response
from escrow_core.schemas.funds import AmountCount, PayoutSummaryResponse, PendingPayoutsResponse, money
from escrow_core.services import withdrawal_service

router = APIRouter(prefix="/payouts", tags=["payouts"])


@router.get("/pending", response_model=PendingPayoutsResponse)
def get_pending_payouts(
    db: Session = Depends(get_db),
    user: User = Depends(require_role(Role.WHOLESALER)),
):
    """Funded transactions not yet released to the wholesaler"""
    result = withdrawal_service.get_pending_payouts(db, wholesaler=user)
    return PendingPayoutsResponse(
        payouts=[transaction_to_response(txn) for txn in result["payouts"]],
        total_pending=money(result["total_pending"]),
        count=result["count"],
    )


@router.get("/summary", response_model=PayoutSummaryResponse)
def get_payout_summary(
    db: Session = Depends(get_db),
    user: User = Depends(require_role(Role.WHOLESALER)),
):
    summary = withdrawal_service.get_payout_summary(db, wholesaler=user)
    return PayoutSummaryResponse(**{
        key: AmountCount(amount=money(value["amount"]), count=value["count"])
        for key, value in summary.items()
    })
