"""
Dispute endpoints
"""

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from escrow_core.auth.dependencies import get_current_user, require_role
from escrow_core.core.security.models import Role
from escrow_core.core.users.models import User
from escrow_core.infrastructure.database import get_db
from escrow_core.schemas.escrow import (
    DisputeResponse,
    FileDisputeRequest,
    FileDisputeResponse,
    dispute_to_response,
    transaction_to_response,
)
from escrow_core.schemas.ledger import ledger_entry_to_response
from escrow_core.services import escrow_service
from escrow_core.services.notifications import NotificationPublisher, get_notification_publisher

router = APIRouter(prefix="/disputes", tags=["disputes"])


@router.post("/{ref}", response_model=FileDisputeResponse, status_code=status.HTTP_201_CREATED)
def file_dispute(
    ref: str,
    body: FileDisputeRequest,
    db: Session = Depends(get_db),
    user: User = Depends(require_role(Role.RETAILER)),
    publisher: NotificationPublisher = Depends(get_notification_publisher),
):
    """File a dispute and freeze the escrowed funds (retailer)"""
    txn, dispute, entry = escrow_service.file_dispute(
        db, publisher, ref=ref, actor=user, reason=body.reason,
    )
    return FileDisputeResponse(
        transaction=transaction_to_response(txn),
        dispute=dispute_to_response(dispute, txn.reference),
        ledger_entry=ledger_entry_to_response(entry),
    )


@router.get("/{ref}", response_model=DisputeResponse)
def get_dispute(
    ref: str,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    dispute = escrow_service.get_dispute(db, ref=ref, actor=user)
    return dispute_to_response(dispute, dispute.transaction.reference)
