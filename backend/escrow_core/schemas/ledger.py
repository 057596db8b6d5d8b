"""
Ledger API schemas
"""

from decimal import Decimal
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from escrow_core.core.ledger.models import LedgerEntry


class LedgerEntryResponse(BaseModel):
    """Ledger entry response schema"""
    entry_id: str = Field(..., description="Unique entry id (LEDGER-<hex>)")
    transaction_ref: str = Field(..., description="Transaction reference (or ADJUSTMENT)")
    type: str = Field(..., description="deposit, hold, release, refund, fee, adjustment, withdrawal")
    amount: str = Field(..., description="Positive magnitude")
    currency: str
    from_account: str
    to_account: str
    balance: str = Field(..., description="Resulting balance snapshot")
    merchant_account_id: str
    metadata: Optional[Dict[str, Any]] = None
    created_at: str

    class Config:
        json_schema_extra = {
            "example": {
                "entry_id": "LEDGER-3f0c8a4d9b2e4f1a8c7d6e5f4a3b2c1d",
                "transaction_ref": "TXN-1718000000000-3FA2C1",
                "type": "hold",
                "amount": "100.00",
                "currency": "USD",
                "from_account": "retailer-123e4567-e89b-12d3-a456-426614174000",
                "to_account": "escrow",
                "balance": "100.00",
                "merchant_account_id": "default-merchant",
                "metadata": {"description": "Funds held in escrow"},
                "created_at": "2025-12-18T00:00:00+00:00",
            }
        }


class LedgerListResponse(BaseModel):
    entries: List[LedgerEntryResponse]
    count: int


class LedgerBalanceResponse(BaseModel):
    merchant_account_id: str
    balance: str
    currency: str


def ledger_entry_to_response(entry: LedgerEntry) -> LedgerEntryResponse:
    return LedgerEntryResponse(
        entry_id=entry.entry_id,
        transaction_ref=entry.transaction_ref,
        type=entry.entry_type.value,
        amount=str(Decimal(entry.amount).quantize(Decimal("0.01"))),
        currency=entry.currency,
        from_account=entry.from_account,
        to_account=entry.to_account,
        balance=str(Decimal(entry.balance).quantize(Decimal("0.01"))),
        merchant_account_id=entry.merchant_account_id,
        metadata=entry.entry_metadata,
        created_at=entry.created_at.isoformat(),
    )
