"""
LockedFundsAccount model - retailer pre-committed capital
"""

from decimal import Decimal
from sqlalchemy import Column, String, Integer, Numeric, ForeignKey, Uuid, CheckConstraint
from sqlalchemy.orm import relationship
from escrow_core.core.common.base_model import BaseModel


class LockedFundsAccount(BaseModel):
    """
    LockedFundsAccount model - one per retailer

    balance is the total capital the retailer has locked with the platform. What is
    still available for new orders is derived:

        available = balance - SUM(amount of the retailer's non-terminal transactions)

    balance only moves through conditional atomic updates; version is bumped on every
    balance change and on every funding so concurrent funds for one retailer serialize.
    """

    __tablename__ = "locked_funds_accounts"

    retailer_id = Column(
        Uuid(as_uuid=True),
        ForeignKey("users.id", name="fk_locked_funds_accounts_retailer_id"),
        nullable=False,
        unique=True,
        index=True,
    )
    balance = Column(Numeric(20, 2), nullable=False, default=Decimal("0.00"))
    currency = Column(String(3), nullable=False, default="USD")
    version = Column(Integer, nullable=False, default=0)

    retailer = relationship("User", foreign_keys=[retailer_id], lazy="select")

    __table_args__ = (
        CheckConstraint('balance >= 0', name='check_locked_funds_accounts_balance_non_negative'),
    )
