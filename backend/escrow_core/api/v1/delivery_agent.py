"""
Delivery agent endpoints
"""

from typing import Optional
from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from escrow_core.auth.dependencies import require_role
from escrow_core.core.escrow.models import TransactionStatus
from escrow_core.core.security.models import Role
from escrow_core.core.users.models import User
from escrow_core.infrastructure.database import get_db
from escrow_core.schemas.escrow import OrderDetailsResponse, TransactionListResponse, transaction_to_response
from escrow_core.services import escrow_service

router = APIRouter(prefix="/delivery-agent", tags=["delivery-agent"])


@router.get("/assigned-orders", response_model=TransactionListResponse)
def get_assigned_orders(
    status_filter: Optional[TransactionStatus] = Query(None, alias="status"),
    db: Session = Depends(get_db),
    user: User = Depends(require_role(Role.DELIVERY_AGENT)),
):
    """Orders assigned to the calling agent, newest first"""
    orders = escrow_service.list_assigned_orders(db, actor=user, status=status_filter)
    return TransactionListResponse(
        transactions=[transaction_to_response(txn) for txn in orders],
        count=len(orders),
    )


@router.get("/order/{ref}", response_model=OrderDetailsResponse)
def get_order_details(
    ref: str,
    db: Session = Depends(get_db),
    user: User = Depends(require_role(Role.DELIVERY_AGENT)),
):
    """Order details with retailer contact info (assigned agent only)"""
    return OrderDetailsResponse(**escrow_service.get_order_details(db, ref=ref, actor=user))
