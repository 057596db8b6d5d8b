"""
Locked funds, withdrawal and payout API schemas
"""

from decimal import Decimal
from typing import List, Literal, Optional

from pydantic import BaseModel, Field

from escrow_core.schemas.escrow import TransactionResponse
from escrow_core.schemas.ledger import LedgerEntryResponse


def money(value: Decimal) -> str:
    return str(Decimal(value).quantize(Decimal("0.01")))


class LockedFundsResponse(BaseModel):
    """Retailer locked funds balance"""
    balance: str
    actual_locked: str = Field(..., description="Sum of pending/funded/in_transit/delivered/on_hold transactions")
    available: str = Field(..., description="max(0, balance - actual_locked)")
    currency: str


class AdjustLockedFundsRequest(BaseModel):
    type: Literal["add", "subtract"]
    amount: Decimal = Field(..., gt=0)
    reason: Optional[str] = Field(None, max_length=500)


class AdjustLockedFundsResponse(BaseModel):
    old_balance: str
    new_balance: str
    adjustment: str
    ledger_entry: LedgerEntryResponse


class AvailableWithdrawalResponse(BaseModel):
    available_amount: str
    currency: str
    transactions_count: int


class WithdrawalRequest(BaseModel):
    amount: Decimal = Field(..., gt=0)
    bank_account: Optional[str] = Field(None, max_length=255)


class WithdrawalResponse(BaseModel):
    success: bool = True
    amount: str
    message: str = "Withdrawal request processed successfully"
    available_balance: str
    ledger_entries: List[LedgerEntryResponse]


class PendingPayoutsResponse(BaseModel):
    payouts: List[TransactionResponse]
    total_pending: str
    count: int


class AmountCount(BaseModel):
    amount: str
    count: int


class PayoutSummaryResponse(BaseModel):
    pending: AmountCount
    available: AmountCount
    withdrawn: AmountCount
