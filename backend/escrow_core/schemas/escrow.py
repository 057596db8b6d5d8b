"""
Escrow transaction API schemas
"""

from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional, Union
from uuid import UUID

from pydantic import BaseModel, Field

from escrow_core.core.escrow.models import (
    EscrowTransaction,
    PaymentMethod,
    CashCollectionMethod,
    QRCredential,
    Dispute,
)
from escrow_core.core.ledger.models import LedgerEntry
from escrow_core.schemas.ledger import LedgerEntryResponse, ledger_entry_to_response


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value is not None else None


def _money(value: Optional[Decimal]) -> Optional[str]:
    return str(Decimal(value).quantize(Decimal("0.01"))) if value is not None else None


# ---------------------------------------------------------------------------
# Requests
# ---------------------------------------------------------------------------

class CreateTransactionRequest(BaseModel):
    """Create transaction request"""
    wholesaler_id: UUID = Field(..., description="Wholesaler user id")
    amount: Decimal = Field(..., gt=0, description="Order amount (max two decimal places)")
    description: str = Field(..., min_length=1, max_length=2000)
    payment_method: PaymentMethod
    cash_collection_method: Optional[CashCollectionMethod] = Field(
        None, description="Only used when payment_method is cash (default: agent)"
    )
    delivery_agent_id: Optional[UUID] = None
    delivery_address: Optional[Dict[str, Any]] = None
    metadata: Optional[Dict[str, str]] = None

    class Config:
        json_schema_extra = {
            "example": {
                "wholesaler_id": "123e4567-e89b-12d3-a456-426614174000",
                "amount": "100.00",
                "description": "20 cases of bottled water",
                "payment_method": "ecocash",
            }
        }


class FundTransactionRequest(BaseModel):
    """Fund transaction request (payment gateway is simulated)"""
    payment_intent_id: Optional[str] = Field(None, max_length=255)


class InitiateDeliveryRequest(BaseModel):
    """Initiate delivery request"""
    hardware_generator_id: Optional[str] = Field(None, max_length=255)


class ConfirmDeliveryRequest(BaseModel):
    """Confirm delivery request - the scanned QR payload"""
    qr_code: Union[str, Dict[str, Any]] = Field(..., description="Scanned QR payload (string or decoded object)")


class FileDisputeRequest(BaseModel):
    """File dispute request"""
    reason: str = Field(..., min_length=1, max_length=2000)


class AssignDeliveryAgentRequest(BaseModel):
    """Assign delivery agent request"""
    delivery_agent_id: UUID


# ---------------------------------------------------------------------------
# Responses
# ---------------------------------------------------------------------------

class QRCredentialResponse(BaseModel):
    """QR credential (no image rendering)"""
    code: str
    issued_at: str
    expires_at: str
    extension_count: int
    extended_at: Optional[str] = None
    scanned: bool
    scanned_at: Optional[str] = None
    hardware_generator_id: Optional[str] = None


class DisputeResponse(BaseModel):
    """Dispute sub-record"""
    transaction_ref: str
    reason: str
    filed_by: str
    filed_at: str
    resolution: Optional[str] = None
    resolved_at: Optional[str] = None


class TransactionResponse(BaseModel):
    """Escrow transaction"""
    id: str
    reference: str
    retailer_id: str
    wholesaler_id: str
    delivery_agent_id: Optional[str] = None
    amount: str
    currency: str
    description: str
    status: str
    version: int
    payment_method: str
    cash_collection_method: str
    payment_reference: Optional[str] = None
    funded_at: Optional[str] = None
    in_transit_at: Optional[str] = None
    delivered_at: Optional[str] = None
    on_hold_at: Optional[str] = None
    completed_at: Optional[str] = None
    cancelled_at: Optional[str] = None
    disputed_at: Optional[str] = None
    hold_release_at: Optional[str] = None
    available_for_withdrawal_at: Optional[str] = None
    withdrawn_amount: str
    withdrawn_at: Optional[str] = None
    delivery_address: Optional[Dict[str, Any]] = None
    metadata: Optional[Dict[str, Any]] = None
    created_at: str
    updated_at: Optional[str] = None


class TransactionWithEntryResponse(BaseModel):
    """Mutated transaction plus the ledger entry the operation wrote"""
    transaction: TransactionResponse
    ledger_entry: LedgerEntryResponse


class InitiateDeliveryResponse(BaseModel):
    transaction: TransactionResponse
    qr_code: QRCredentialResponse


class ExtendQRResponse(BaseModel):
    expires_at: str
    extension_count: int


class FileDisputeResponse(BaseModel):
    transaction: TransactionResponse
    dispute: DisputeResponse
    ledger_entry: LedgerEntryResponse


class TransactionListResponse(BaseModel):
    transactions: List[TransactionResponse]
    count: int


class OrderDetailsResponse(BaseModel):
    """Order details for the assigned delivery agent"""
    reference: str
    retailer: Dict[str, Optional[str]]
    delivery_address: Optional[Dict[str, Any]] = None
    description: str
    amount: str
    status: str
    qr_code: Optional[Dict[str, Optional[str]]] = None


# ---------------------------------------------------------------------------
# Builders
# ---------------------------------------------------------------------------

def transaction_to_response(txn: EscrowTransaction) -> TransactionResponse:
    return TransactionResponse(
        id=str(txn.id),
        reference=txn.reference,
        retailer_id=str(txn.retailer_id),
        wholesaler_id=str(txn.wholesaler_id),
        delivery_agent_id=str(txn.delivery_agent_id) if txn.delivery_agent_id else None,
        amount=_money(txn.amount),
        currency=txn.currency,
        description=txn.description,
        status=txn.status.value,
        version=txn.version,
        payment_method=txn.payment_method.value,
        cash_collection_method=txn.cash_collection_method.value,
        payment_reference=txn.payment_reference,
        funded_at=_iso(txn.funded_at),
        in_transit_at=_iso(txn.in_transit_at),
        delivered_at=_iso(txn.delivered_at),
        on_hold_at=_iso(txn.on_hold_at),
        completed_at=_iso(txn.completed_at),
        cancelled_at=_iso(txn.cancelled_at),
        disputed_at=_iso(txn.disputed_at),
        hold_release_at=_iso(txn.hold_release_at),
        available_for_withdrawal_at=_iso(txn.available_for_withdrawal_at),
        withdrawn_amount=_money(txn.withdrawn_amount or Decimal("0")),
        withdrawn_at=_iso(txn.withdrawn_at),
        delivery_address=txn.delivery_address,
        metadata=txn.transaction_metadata,
        created_at=_iso(txn.created_at),
        updated_at=_iso(txn.updated_at),
    )


def credential_to_response(credential: QRCredential) -> QRCredentialResponse:
    return QRCredentialResponse(
        code=credential.code,
        issued_at=_iso(credential.issued_at),
        expires_at=_iso(credential.expires_at),
        extension_count=credential.extension_count,
        extended_at=_iso(credential.extended_at),
        scanned=credential.scanned_at is not None,
        scanned_at=_iso(credential.scanned_at),
        hardware_generator_id=credential.hardware_generator_id,
    )


def dispute_to_response(dispute: Dispute, transaction_ref: str) -> DisputeResponse:
    return DisputeResponse(
        transaction_ref=transaction_ref,
        reason=dispute.reason,
        filed_by=str(dispute.filed_by),
        filed_at=_iso(dispute.filed_at),
        resolution=dispute.resolution,
        resolved_at=_iso(dispute.resolved_at),
    )


def with_entry(txn: EscrowTransaction, entry: LedgerEntry) -> TransactionWithEntryResponse:
    return TransactionWithEntryResponse(
        transaction=transaction_to_response(txn),
        ledger_entry=ledger_entry_to_response(entry),
    )
