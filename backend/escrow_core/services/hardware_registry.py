"""
Hardware QR generator registry - authorization check used during QR issuance
"""

import logging
from datetime import datetime
from sqlalchemy import or_
from sqlalchemy.orm import Session

from escrow_core.core.hardware.models import HardwareQRGenerator, HardwareGeneratorStatus
from escrow_core.services.errors import NotAuthorizedError

logger = logging.getLogger(__name__)


def is_authorized(db: Session, device_id: str, caller_id) -> bool:
    """True if the device is active and registered by or assigned to the caller"""
    return find_authorized(db, device_id, caller_id) is not None


def find_authorized(db: Session, device_id: str, caller_id):
    return db.query(HardwareQRGenerator).filter(
        HardwareQRGenerator.device_id == device_id,
        HardwareQRGenerator.status == HardwareGeneratorStatus.ACTIVE,
        or_(
            HardwareQRGenerator.registered_by == caller_id,
            HardwareQRGenerator.assigned_to == caller_id,
        ),
    ).first()


def authorize_generator(db: Session, device_id: str, caller_id, *, now: datetime) -> HardwareQRGenerator:
    """Raise NotAuthorizedError unless the caller may use the device; touches last_used_at"""
    generator = find_authorized(db, device_id, caller_id)
    if generator is None:
        logger.warning(
            "Hardware QR generator rejected",
            extra={"device_id": device_id, "caller_id": str(caller_id)},
        )
        raise NotAuthorizedError("Invalid or unauthorized hardware QR generator")

    generator.last_used_at = now
    db.flush()
    return generator
