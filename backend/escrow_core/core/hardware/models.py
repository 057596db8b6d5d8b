"""
Hardware QR generator model
"""

from sqlalchemy import Column, String, ForeignKey, Uuid, Enum as SQLEnum
import enum
from escrow_core.core.common.base_model import BaseModel, UTCDateTime


class HardwareGeneratorStatus(str, enum.Enum):
    """Hardware generator status enum"""
    ACTIVE = "active"
    INACTIVE = "inactive"
    LOST = "lost"
    DAMAGED = "damaged"


class HardwareQRGenerator(BaseModel):
    """
    HardwareQRGenerator model - a registered device able to mint QR credentials

    Registration bookkeeping lives elsewhere; this service only answers
    "is this device active and authorized for this caller" during issuance.
    """

    __tablename__ = "hardware_qr_generators"

    device_id = Column(String(255), unique=True, nullable=False, index=True)
    serial_number = Column(String(255), unique=True, nullable=False)
    name = Column(String(255), nullable=False)
    registered_by = Column(Uuid(as_uuid=True), ForeignKey("users.id", name="fk_hardware_qr_generators_registered_by"), nullable=False, index=True)
    assigned_to = Column(Uuid(as_uuid=True), ForeignKey("users.id", name="fk_hardware_qr_generators_assigned_to"), nullable=True, index=True)
    status = Column(
        SQLEnum(HardwareGeneratorStatus, name="hardware_generator_status", values_callable=lambda e: [m.value for m in e]),
        nullable=False,
        default=HardwareGeneratorStatus.ACTIVE,
    )
    last_used_at = Column(UTCDateTime(), nullable=True)
