"""
Models registry for Alembic - Import all models here to ensure Base.metadata is complete

Import order matters to avoid circular dependencies:
1. Base and common models first
2. Models without foreign keys
3. Models with foreign keys (in dependency order)
"""

# Import Base first
from escrow_core.infrastructure.database import Base

# 1. Security models (no dependencies)
from escrow_core.core.security.models import Role

# 2. User model (no foreign keys to other domain models)
from escrow_core.core.users.models import User, UserStatus

# 3. Escrow models (depend on User)
from escrow_core.core.escrow.models import (
    EscrowTransaction, TransactionStatus, PaymentMethod, CashCollectionMethod,
    QRCredential, Dispute,
)

# 4. Ledger (no foreign keys - transaction_ref is a plain string)
from escrow_core.core.ledger.models import LedgerEntry, LedgerEntryType

# 5. Locked funds and hardware (depend on User)
from escrow_core.core.accounts.locked_funds import LockedFundsAccount
from escrow_core.core.hardware.models import HardwareQRGenerator, HardwareGeneratorStatus

__all__ = [
    "Base",
    "Role",
    "User",
    "UserStatus",
    "EscrowTransaction",
    "TransactionStatus",
    "PaymentMethod",
    "CashCollectionMethod",
    "QRCredential",
    "Dispute",
    "LedgerEntry",
    "LedgerEntryType",
    "LockedFundsAccount",
    "HardwareQRGenerator",
    "HardwareGeneratorStatus",
]
