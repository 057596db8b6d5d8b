"""
Escrow models - EscrowTransaction (order + escrow record), QRCredential, Dispute
"""

from decimal import Decimal
from sqlalchemy import (
    Column, String, Text, Integer, Numeric, JSON, ForeignKey, Uuid,
    Enum as SQLEnum, Index, CheckConstraint,
)
from sqlalchemy.orm import relationship
import enum
from escrow_core.core.common.base_model import BaseModel, UTCDateTime


def _enum_values(enum_cls):
    return [member.value for member in enum_cls]


class TransactionStatus(str, enum.Enum):
    """Escrow lifecycle state - exactly one holds at any time"""
    PENDING = "pending"
    FUNDED = "funded"
    IN_TRANSIT = "in_transit"
    DELIVERED = "delivered"
    ON_HOLD = "on_hold"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    DISPUTED = "disputed"


# Statuses whose amount still counts against the retailer's locked funds
NON_TERMINAL_STATUSES = (
    TransactionStatus.PENDING,
    TransactionStatus.FUNDED,
    TransactionStatus.IN_TRANSIT,
    TransactionStatus.DELIVERED,
    TransactionStatus.ON_HOLD,
)

# Statuses counted as "pending payout" for the wholesaler
PENDING_PAYOUT_STATUSES = (
    TransactionStatus.FUNDED,
    TransactionStatus.IN_TRANSIT,
    TransactionStatus.DELIVERED,
    TransactionStatus.ON_HOLD,
)


class PaymentMethod(str, enum.Enum):
    """Payment method enum"""
    ECOCASH = "ecocash"
    BANK_TRANSFER = "bank_transfer"
    CASH = "cash"
    CARD = "card"


class CashCollectionMethod(str, enum.Enum):
    """Cash collection sub-method (only meaningful for PaymentMethod.CASH)"""
    AGENT = "agent"
    BOOTH = "booth"
    NONE = "none"


class EscrowTransaction(BaseModel):
    """
    EscrowTransaction model - one per order

    Lifecycle state is owned by the escrow state machine. Every state write is a
    compare-and-swap on (status, version); never assign `status` directly.

    Money is Numeric(20, 2) and handled as Decimal end to end.
    """

    __tablename__ = "escrow_transactions"

    reference = Column(String(64), unique=True, nullable=False, index=True)  # e.g. TXN-1718000000000-3FA2C1

    retailer_id = Column(Uuid(as_uuid=True), ForeignKey("users.id", name="fk_escrow_transactions_retailer_id"), nullable=False, index=True)
    wholesaler_id = Column(Uuid(as_uuid=True), ForeignKey("users.id", name="fk_escrow_transactions_wholesaler_id"), nullable=False, index=True)
    delivery_agent_id = Column(Uuid(as_uuid=True), ForeignKey("users.id", name="fk_escrow_transactions_delivery_agent_id"), nullable=True, index=True)

    amount = Column(Numeric(20, 2), nullable=False)
    currency = Column(String(3), nullable=False, default="USD")
    description = Column(Text, nullable=False)

    status = Column(
        SQLEnum(TransactionStatus, name="escrow_transaction_status", values_callable=_enum_values),
        nullable=False,
        default=TransactionStatus.PENDING,
        index=True,
    )
    version = Column(Integer, nullable=False, default=0)  # Optimistic-concurrency counter

    payment_method = Column(SQLEnum(PaymentMethod, name="payment_method", values_callable=_enum_values), nullable=False)
    cash_collection_method = Column(
        SQLEnum(CashCollectionMethod, name="cash_collection_method", values_callable=_enum_values),
        nullable=False,
        default=CashCollectionMethod.NONE,
    )
    payment_reference = Column(String(255), nullable=True)  # Caller-supplied payment intent id (simulated gateway)

    # Transition timestamps
    funded_at = Column(UTCDateTime(), nullable=True)
    in_transit_at = Column(UTCDateTime(), nullable=True)
    delivered_at = Column(UTCDateTime(), nullable=True)
    on_hold_at = Column(UTCDateTime(), nullable=True)
    completed_at = Column(UTCDateTime(), nullable=True)
    cancelled_at = Column(UTCDateTime(), nullable=True)
    disputed_at = Column(UTCDateTime(), nullable=True)

    # Set once on delivery confirmation
    hold_release_at = Column(UTCDateTime(), nullable=True)
    available_for_withdrawal_at = Column(UTCDateTime(), nullable=True)

    # Exactly-once guard for the funds_locked notification
    funds_locked_notified_at = Column(UTCDateTime(), nullable=True)

    # Withdrawal tracking (first-class, partial withdrawals allowed)
    withdrawn_amount = Column(Numeric(20, 2), nullable=False, default=Decimal("0.00"))
    withdrawn_at = Column(UTCDateTime(), nullable=True)

    delivery_address = Column(JSON, nullable=True)  # Opaque pass-through
    transaction_metadata = Column("metadata", JSON, nullable=True)  # Free-form pass-through only

    # Relationships
    retailer = relationship("User", foreign_keys=[retailer_id], lazy="select")
    wholesaler = relationship("User", foreign_keys=[wholesaler_id], lazy="select")
    delivery_agent = relationship("User", foreign_keys=[delivery_agent_id], lazy="select")
    qr_credential = relationship("QRCredential", back_populates="transaction", uselist=False, lazy="select")
    dispute = relationship("Dispute", back_populates="transaction", uselist=False, lazy="select")

    __table_args__ = (
        CheckConstraint('amount > 0', name='check_escrow_transactions_amount_positive'),
        CheckConstraint('withdrawn_amount >= 0 AND withdrawn_amount <= amount', name='check_escrow_transactions_withdrawn_range'),
        Index('ix_escrow_transactions_status_hold_release', 'status', 'hold_release_at'),
        Index('ix_escrow_transactions_retailer_status', 'retailer_id', 'status'),
        Index('ix_escrow_transactions_wholesaler_status', 'wholesaler_id', 'status'),
    )

    def is_party(self, user_id) -> bool:
        """True if user_id is the retailer, wholesaler or assigned delivery agent"""
        return user_id in (self.retailer_id, self.wholesaler_id, self.delivery_agent_id)

    @property
    def withdrawable_remainder(self) -> Decimal:
        return self.amount - (self.withdrawn_amount or Decimal("0.00"))


class QRCredential(BaseModel):
    """
    QRCredential model - delivery-confirmation token bound to one transaction

    The code is an opaque payload embedding the transaction reference and a 256-bit
    random secret. Single-use: scanned_at is set exactly once.
    """

    __tablename__ = "qr_credentials"

    transaction_id = Column(
        Uuid(as_uuid=True),
        ForeignKey("escrow_transactions.id", name="fk_qr_credentials_transaction_id"),
        nullable=False,
        unique=True,
        index=True,
    )
    code = Column(Text, nullable=False)
    issued_at = Column(UTCDateTime(), nullable=False)
    expires_at = Column(UTCDateTime(), nullable=False)
    extension_count = Column(Integer, nullable=False, default=0)
    extended_at = Column(UTCDateTime(), nullable=True)
    generated_by = Column(Uuid(as_uuid=True), ForeignKey("users.id", name="fk_qr_credentials_generated_by"), nullable=False)
    hardware_generator_id = Column(String(255), nullable=True)
    scanned_at = Column(UTCDateTime(), nullable=True)
    scanned_by = Column(Uuid(as_uuid=True), ForeignKey("users.id", name="fk_qr_credentials_scanned_by"), nullable=True)

    transaction = relationship("EscrowTransaction", back_populates="qr_credential")

    @property
    def is_scanned(self) -> bool:
        return self.scanned_at is not None


class Dispute(BaseModel):
    """
    Dispute model - at most one per transaction (unique FK)

    Filing freezes the escrowed funds; there is no automatic resolution path.
    """

    __tablename__ = "disputes"

    transaction_id = Column(
        Uuid(as_uuid=True),
        ForeignKey("escrow_transactions.id", name="fk_disputes_transaction_id"),
        nullable=False,
        unique=True,
        index=True,
    )
    reason = Column(Text, nullable=False)
    filed_by = Column(Uuid(as_uuid=True), ForeignKey("users.id", name="fk_disputes_filed_by"), nullable=False)
    filed_at = Column(UTCDateTime(), nullable=False)
    resolution = Column(Text, nullable=True)
    resolved_at = Column(UTCDateTime(), nullable=True)

    transaction = relationship("EscrowTransaction", back_populates="dispute")
