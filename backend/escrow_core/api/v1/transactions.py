"""
Escrow transactions API endpoints
"""

import logging
from typing import Optional
from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from escrow_core.auth.dependencies import get_current_user, require_role
from escrow_core.core.escrow.models import TransactionStatus
from escrow_core.core.security.models import Role
from escrow_core.core.users.models import User
from escrow_core.infrastructure.database import get_db
from escrow_core.schemas.escrow import (
    AssignDeliveryAgentRequest,
    ConfirmDeliveryRequest,
    CreateTransactionRequest,
    ExtendQRResponse,
    FundTransactionRequest,
    InitiateDeliveryRequest,
    InitiateDeliveryResponse,
    TransactionListResponse,
    TransactionResponse,
    TransactionWithEntryResponse,
    credential_to_response,
    transaction_to_response,
    with_entry,
)
from escrow_core.services import escrow_service
from escrow_core.services.notifications import NotificationPublisher, get_notification_publisher

router = APIRouter(prefix="/transactions", tags=["transactions"])
logger = logging.getLogger(__name__)


@router.post("", response_model=TransactionResponse, status_code=status.HTTP_201_CREATED)
def create_transaction(
    body: CreateTransactionRequest,
    db: Session = Depends(get_db),
    user: User = Depends(require_role(Role.RETAILER)),
):
    """Create a pending escrow transaction (retailer)"""
    txn = escrow_service.create_transaction(
        db,
        actor=user,
        wholesaler_id=body.wholesaler_id,
        amount=body.amount,
        description=body.description,
        payment_method=body.payment_method,
        cash_collection_method=body.cash_collection_method,
        delivery_agent_id=body.delivery_agent_id,
        delivery_address=body.delivery_address,
        metadata=body.metadata,
    )
    return transaction_to_response(txn)


@router.get("", response_model=TransactionListResponse)
def list_transactions(
    status_filter: Optional[TransactionStatus] = Query(None, alias="status"),
    limit: int = Query(100, ge=1, le=500),
    offset: int = Query(0, ge=0),
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    """List the caller's transactions, newest first (admins see all)"""
    transactions = escrow_service.list_transactions(
        db, actor=user, status=status_filter, limit=limit, offset=offset,
    )
    return TransactionListResponse(
        transactions=[transaction_to_response(txn) for txn in transactions],
        count=len(transactions),
    )


@router.get("/{ref}", response_model=TransactionResponse)
def get_transaction(
    ref: str,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    """Get one transaction (parties and admins)"""
    return transaction_to_response(escrow_service.get_transaction(db, ref=ref, actor=user))


@router.post("/{ref}/fund", response_model=TransactionWithEntryResponse)
def fund_transaction(
    ref: str,
    body: Optional[FundTransactionRequest] = None,
    db: Session = Depends(get_db),
    user: User = Depends(require_role(Role.RETAILER)),
    publisher: NotificationPublisher = Depends(get_notification_publisher),
):
    """Fund a pending transaction from the retailer's locked funds"""
    txn, entry = escrow_service.fund_transaction(
        db, publisher,
        ref=ref,
        actor=user,
        payment_reference=body.payment_intent_id if body else None,
    )
    return with_entry(txn, entry)


@router.post("/{ref}/initiate-delivery", response_model=InitiateDeliveryResponse)
def initiate_delivery(
    ref: str,
    body: Optional[InitiateDeliveryRequest] = None,
    db: Session = Depends(get_db),
    user: User = Depends(require_role(Role.WHOLESALER)),
    publisher: NotificationPublisher = Depends(get_notification_publisher),
):
    """Issue the QR credential and move the order in transit (wholesaler)"""
    txn, credential = escrow_service.initiate_delivery(
        db, publisher,
        ref=ref,
        actor=user,
        hardware_generator_id=body.hardware_generator_id if body else None,
    )
    return InitiateDeliveryResponse(
        transaction=transaction_to_response(txn),
        qr_code=credential_to_response(credential),
    )


@router.post("/{ref}/extend-qr", response_model=ExtendQRResponse)
def extend_qr(
    ref: str,
    db: Session = Depends(get_db),
    user: User = Depends(require_role(Role.WHOLESALER)),
):
    """Extend an unscanned QR code (wholesaler)"""
    credential = escrow_service.extend_qr_code(db, ref=ref, actor=user)
    return ExtendQRResponse(
        expires_at=credential.expires_at.isoformat(),
        extension_count=credential.extension_count,
    )


@router.post("/{ref}/confirm-delivery", response_model=TransactionWithEntryResponse)
def confirm_delivery(
    ref: str,
    body: ConfirmDeliveryRequest,
    db: Session = Depends(get_db),
    user: User = Depends(require_role(Role.RETAILER)),
    publisher: NotificationPublisher = Depends(get_notification_publisher),
):
    """Confirm delivery by presenting the scanned QR code (retailer)"""
    txn, entry = escrow_service.confirm_delivery(
        db, publisher,
        ref=ref,
        actor=user,
        presented_code=body.qr_code,
    )
    return with_entry(txn, entry)


@router.post("/{ref}/assign-agent", response_model=TransactionResponse)
def assign_delivery_agent(
    ref: str,
    body: AssignDeliveryAgentRequest,
    db: Session = Depends(get_db),
    user: User = Depends(require_role(Role.WHOLESALER)),
    publisher: NotificationPublisher = Depends(get_notification_publisher),
):
    """Assign a delivery agent before delivery starts (wholesaler)"""
    txn = escrow_service.assign_delivery_agent(
        db, publisher, ref=ref, actor=user, agent_id=body.delivery_agent_id,
    )
    return transaction_to_response(txn)


@router.post("/{ref}/mark-delivered", response_model=TransactionResponse)
def mark_delivered(
    ref: str,
    db: Session = Depends(get_db),
    user: User = Depends(require_role(Role.DELIVERY_AGENT)),
):
    """Mark an in-transit order delivered (assigned delivery agent)"""
    return transaction_to_response(escrow_service.mark_delivered(db, ref=ref, actor=user))


@router.post("/{ref}/cancel", response_model=TransactionResponse)
def cancel_transaction(
    ref: str,
    db: Session = Depends(get_db),
    user: User = Depends(require_role(Role.RETAILER)),
):
    """Cancel a pending transaction (retailer)"""
    return transaction_to_response(escrow_service.cancel_transaction(db, ref=ref, actor=user))
