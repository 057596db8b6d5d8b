"""
Core domain models - Export all models for Alembic
"""

from escrow_core.core.users.models import User
from escrow_core.core.escrow.models import EscrowTransaction, QRCredential, Dispute
from escrow_core.core.ledger.models import LedgerEntry
from escrow_core.core.accounts.locked_funds import LockedFundsAccount
from escrow_core.core.hardware.models import HardwareQRGenerator

__all__ = [
    "User",
    "EscrowTransaction",
    "QRCredential",
    "Dispute",
    "LedgerEntry",
    "LockedFundsAccount",
    "HardwareQRGenerator",
]
