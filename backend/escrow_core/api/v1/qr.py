"""
QR credential read endpoint
"""

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from escrow_core.auth.dependencies import get_current_user
from escrow_core.core.users.models import User
from escrow_core.infrastructure.database import get_db
from escrow_core.schemas.escrow import QRCredentialResponse, credential_to_response
from escrow_core.services import escrow_service

router = APIRouter(prefix="/qr", tags=["qr"])


@router.get("/{ref}", response_model=QRCredentialResponse)
def get_qr_code(
    ref: str,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    """QR code for a transaction (wholesaler, assigned agent or admin)"""
    return credential_to_response(escrow_service.get_qr_credential(db, ref=ref, actor=user))
