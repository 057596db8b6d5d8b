"""
QR credential protocol - issue, extend and verify delivery-confirmation tokens

A credential is an opaque JSON payload

    {"secret": <64 hex chars>, "timestamp": <issue time, ms>, "transactionId": <ref>}

bound to exactly one transaction. It is valid for QR_VALIDITY_HOURS after issuance
(or after the latest extension) and can be scanned once.
"""

import enum
import hmac
import json
import logging
import secrets
from datetime import datetime, timedelta
from typing import Any, Dict, Optional, Union
from sqlalchemy import update
from sqlalchemy.orm import Session

from escrow_core.core.escrow.models import EscrowTransaction, QRCredential, TransactionStatus
from escrow_core.infrastructure.settings import get_settings
from escrow_core.services import escrow_transitions
from escrow_core.services.errors import (
    CredentialAlreadyUsedError,
    InvalidStateTransitionError,
    StateConflictError,
    ValidationError,
)
from escrow_core.services.hardware_registry import authorize_generator

logger = logging.getLogger(__name__)

SECRET_BYTES = 32  # 256 bits of entropy


class VerificationOutcome(str, enum.Enum):
    """Result of presenting a code for a transaction"""
    ACCEPTED = "accepted"
    REJECTED_MISMATCH = "rejected:mismatch"
    REJECTED_EXPIRED = "rejected:expired"
    REJECTED_ALREADY_SCANNED = "rejected:already-scanned"


def validity_window() -> timedelta:
    return timedelta(hours=get_settings().QR_VALIDITY_HOURS)


def build_code(transaction_ref: str, issued_at: datetime) -> str:
    """Mint a fresh payload for a transaction (new random secret every call)"""
    payload = {
        "transactionId": transaction_ref,
        "timestamp": int(issued_at.timestamp() * 1000),
        "secret": secrets.token_hex(SECRET_BYTES),
    }
    return json.dumps(payload, sort_keys=True, separators=(",", ":"))


def parse_code(presented: Union[str, Dict[str, Any], None]) -> Optional[Dict[str, Any]]:
    """Decode a presented payload; None if it is not a credential at all"""
    if isinstance(presented, dict):
        return presented
    if not isinstance(presented, str) or not presented.strip():
        return None
    try:
        payload = json.loads(presented)
    except ValueError:
        return None
    return payload if isinstance(payload, dict) else None


def get_credential(db: Session, txn: EscrowTransaction) -> Optional[QRCredential]:
    return db.query(QRCredential).filter(QRCredential.transaction_id == txn.id).first()


def _matches(credential: QRCredential, transaction_ref: str, presented: Dict[str, Any]) -> bool:
    if presented.get("transactionId") != transaction_ref:
        return False
    stored = parse_code(credential.code) or {}
    if stored.get("transactionId") != transaction_ref:
        return False
    presented_secret = presented.get("secret")
    stored_secret = stored.get("secret")
    if not isinstance(presented_secret, str) or not isinstance(stored_secret, str):
        return False
    return hmac.compare_digest(presented_secret.encode("utf-8"), stored_secret.encode("utf-8"))


def evaluate(
    credential: QRCredential,
    transaction_ref: str,
    presented: Union[str, Dict[str, Any], None],
    now: datetime,
) -> VerificationOutcome:
    """
    Decide the outcome of a presentation without side effects.

    Checked in order: mismatch, already scanned, expired. Valid while now <= expires_at.
    """
    payload = parse_code(presented)
    if payload is None or not _matches(credential, transaction_ref, payload):
        return VerificationOutcome.REJECTED_MISMATCH
    if credential.scanned_at is not None:
        return VerificationOutcome.REJECTED_ALREADY_SCANNED
    if now > credential.expires_at:
        return VerificationOutcome.REJECTED_EXPIRED
    return VerificationOutcome.ACCEPTED


def issue(
    db: Session,
    txn: EscrowTransaction,
    *,
    issuer_id,
    now: datetime,
    hardware_generator_id: Optional[str] = None,
) -> QRCredential:
    """
    Mint the credential for a funded transaction and move it to in_transit.

    A hardware generator, when named, must be active and registered by or assigned to
    the issuer. Does not commit.
    """
    escrow_transitions.ensure_transition(txn.status, TransactionStatus.IN_TRANSIT)

    if hardware_generator_id:
        authorize_generator(db, hardware_generator_id, issuer_id, now=now)

    credential = QRCredential(
        transaction_id=txn.id,
        code=build_code(txn.reference, now),
        issued_at=now,
        expires_at=now + validity_window(),
        extension_count=0,
        generated_by=issuer_id,
        hardware_generator_id=hardware_generator_id,
    )
    db.add(credential)
    db.flush()

    escrow_transitions.transition(db, txn, TransactionStatus.IN_TRANSIT, now=now)

    logger.info(
        "QR credential issued",
        extra={
            "transaction_ref": txn.reference,
            "expires_at": credential.expires_at.isoformat(),
            "hardware_generator_id": hardware_generator_id,
        },
    )
    return credential


def extend(
    db: Session,
    txn: EscrowTransaction,
    *,
    caller_id,
    now: datetime,
) -> QRCredential:
    """
    Reset an unscanned credential's window to now + validity and bump its counter.

    The counter is unbounded unless QR_MAX_EXTENSIONS is configured. Does not commit.
    """
    credential = get_credential(db, txn)
    if credential is None:
        raise InvalidStateTransitionError(txn.status, message="QR code not generated yet")
    if credential.scanned_at is not None:
        raise CredentialAlreadyUsedError()
    escrow_transitions.ensure_status(txn, TransactionStatus.IN_TRANSIT, TransactionStatus.DELIVERED)

    max_extensions = get_settings().QR_MAX_EXTENSIONS
    if max_extensions is not None and credential.extension_count >= max_extensions:
        raise ValidationError(f"QR code cannot be extended more than {max_extensions} times")

    expected_count = credential.extension_count
    result = db.execute(
        update(QRCredential)
        .where(
            QRCredential.id == credential.id,
            QRCredential.scanned_at.is_(None),
            QRCredential.extension_count == expected_count,
        )
        .values(
            expires_at=now + validity_window(),
            extension_count=expected_count + 1,
            extended_at=now,
            updated_at=now,
        )
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        db.refresh(credential)
        if credential.scanned_at is not None:
            raise CredentialAlreadyUsedError()
        raise StateConflictError(f"QR code for {txn.reference} changed since it was read, retry")
    db.refresh(credential)

    logger.info(
        "QR credential extended",
        extra={
            "transaction_ref": txn.reference,
            "extended_by": str(caller_id),
            "expires_at": credential.expires_at.isoformat(),
            "extension_count": credential.extension_count,
        },
    )
    return credential


def verify(
    db: Session,
    txn: EscrowTransaction,
    presented: Union[str, Dict[str, Any], None],
    *,
    caller_id,
    now: datetime,
) -> VerificationOutcome:
    """
    Check a presented code and, on acceptance, mark the credential scanned.

    Marking is a conditional write on scanned_at IS NULL, so of two concurrent
    presentations exactly one is accepted. Does not commit.
    """
    credential = get_credential(db, txn)
    if credential is None:
        return VerificationOutcome.REJECTED_MISMATCH

    outcome = evaluate(credential, txn.reference, presented, now)
    if outcome is not VerificationOutcome.ACCEPTED:
        logger.info(
            "QR credential rejected",
            extra={"transaction_ref": txn.reference, "outcome": outcome.value},
        )
        return outcome

    result = db.execute(
        update(QRCredential)
        .where(QRCredential.id == credential.id, QRCredential.scanned_at.is_(None))
        .values(scanned_at=now, scanned_by=caller_id, updated_at=now)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        db.refresh(credential)
        return VerificationOutcome.REJECTED_ALREADY_SCANNED
    db.refresh(credential)

    logger.info("QR credential accepted", extra={"transaction_ref": txn.reference})
    return outcome
