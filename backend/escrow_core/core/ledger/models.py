"""
Ledger models - LedgerEntry (IMMUTABLE)
"""

import uuid
from sqlalchemy import Column, String, Numeric, JSON, Enum as SQLEnum, Index, CheckConstraint, event
import enum
from escrow_core.core.common.base_model import BaseModel


class LedgerEntryType(str, enum.Enum):
    """Ledger entry kind"""
    DEPOSIT = "deposit"
    HOLD = "hold"
    RELEASE = "release"
    REFUND = "refund"
    FEE = "fee"
    ADJUSTMENT = "adjustment"
    WITHDRAWAL = "withdrawal"


# Kinds counted by the escrow balance fold: + for inflows, - for outflows.
# fee / adjustment / withdrawal are informational line items.
INFLOW_TYPES = (LedgerEntryType.DEPOSIT, LedgerEntryType.HOLD)
OUTFLOW_TYPES = (LedgerEntryType.RELEASE, LedgerEntryType.REFUND)

# Logical account labels
ESCROW_ACCOUNT = "escrow"
EXTERNAL_ACCOUNT = "external"

# transaction_ref used for entries not tied to an order
ADJUSTMENT_REF = "ADJUSTMENT"


def retailer_account(user_id) -> str:
    return f"retailer-{user_id}"


def wholesaler_account(user_id) -> str:
    return f"wholesaler-{user_id}"


def generate_entry_id() -> str:
    """128-bit random entry id (uniqueness also enforced by the table)"""
    return f"LEDGER-{uuid.uuid4().hex}"


class LedgerEntry(BaseModel):
    """
    LedgerEntry model - IMMUTABLE (WRITE-ONCE)

    One row per monetary movement between logical accounts
    (retailer-<id>, escrow, wholesaler-<id>, external).

    IMMUTABILITY RULES:
    - NEVER UPDATE a LedgerEntry
    - NEVER DELETE a LedgerEntry
    - Corrections are new entries (adjustment)

    ORM flushes that would update or delete a row raise (see listeners below).

    transaction_ref is a plain string, not a foreign key: the ledger stays writable
    even if the transaction row is unavailable.
    """

    __tablename__ = "ledger_entries"

    entry_id = Column(String(64), unique=True, nullable=False, index=True, default=generate_entry_id)
    transaction_ref = Column(String(64), nullable=False, index=True)
    entry_type = Column(
        SQLEnum(LedgerEntryType, name="ledger_entry_type", values_callable=lambda e: [m.value for m in e]),
        nullable=False,
        index=True,
    )
    amount = Column(Numeric(20, 2), nullable=False)  # Always a positive magnitude
    currency = Column(String(3), nullable=False)
    from_account = Column(String(128), nullable=False)
    to_account = Column(String(128), nullable=False)
    balance = Column(Numeric(20, 2), nullable=False)  # Resulting balance snapshot
    merchant_account_id = Column(String(128), nullable=False, index=True)
    entry_metadata = Column("metadata", JSON, nullable=True)
    # Note: updated_at exists in BaseModel but MUST NOT be used - entries are immutable (write-once)

    __table_args__ = (
        CheckConstraint('amount > 0', name='check_ledger_entries_amount_positive'),
        Index('ix_ledger_entries_merchant_created', 'merchant_account_id', 'created_at'),
        Index('ix_ledger_entries_ref_created', 'transaction_ref', 'created_at'),
    )

    @property
    def is_self_transfer(self) -> bool:
        return self.from_account == self.to_account


class LedgerImmutableError(Exception):
    """Raised when code attempts to modify or remove a ledger entry"""

    def __init__(self, entry_id: str):
        self.entry_id = entry_id
        super().__init__(f"Ledger entry {entry_id} is immutable")


@event.listens_for(LedgerEntry, "before_update")
def _block_ledger_update(mapper, connection, target):
    raise LedgerImmutableError(target.entry_id)


@event.listens_for(LedgerEntry, "before_delete")
def _block_ledger_delete(mapper, connection, target):
    raise LedgerImmutableError(target.entry_id)
