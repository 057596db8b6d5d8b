"""
Escrow service - caller-facing operations of the escrow state machine

Each mutating operation:
1. loads the transaction and checks the caller is the entitled party,
2. checks the current state allows the operation,
3. writes the state change (compare-and-swap) and its ledger entries,
4. commits once, so state and ledger land together or not at all,
5. emits notifications after commit (best-effort, never raises).
"""

import logging
import secrets
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Any, Dict, List, Optional, Tuple
from uuid import UUID

from sqlalchemy.orm import Session

from escrow_core.core.common.base_model import utcnow
from escrow_core.core.escrow.models import (
    EscrowTransaction,
    TransactionStatus,
    PaymentMethod,
    CashCollectionMethod,
    QRCredential,
    Dispute,
)
from escrow_core.core.ledger.models import (
    LedgerEntry,
    LedgerEntryType,
    ESCROW_ACCOUNT,
    retailer_account,
)
from escrow_core.core.security.models import Role
from escrow_core.core.users.models import User
from escrow_core.infrastructure.settings import get_settings
from escrow_core.services import escrow_transitions, ledger_store, locked_funds_service, qr_credentials
from escrow_core.services.errors import (
    CredentialAlreadyUsedError,
    CredentialExpiredError,
    CredentialMismatchError,
    InsufficientFundsError,
    InvalidStateTransitionError,
    NotAuthorizedError,
    NotFoundError,
    ValidationError,
)
from escrow_core.services.notifications import (
    NotificationEvent,
    NotificationPublisher,
    NotificationType,
    emit,
)
from escrow_core.services.qr_credentials import VerificationOutcome
from escrow_core.utils.money import CENT, normalize_amount

logger = logging.getLogger(__name__)

S = TransactionStatus

DISPUTABLE_STATUSES = (S.IN_TRANSIT, S.DELIVERED, S.ON_HOLD)
CONFIRMABLE_STATUSES = (S.IN_TRANSIT, S.DELIVERED)
ASSIGNABLE_STATUSES = (S.PENDING, S.FUNDED)

_REJECTION_ERRORS = {
    VerificationOutcome.REJECTED_MISMATCH: CredentialMismatchError,
    VerificationOutcome.REJECTED_EXPIRED: CredentialExpiredError,
    VerificationOutcome.REJECTED_ALREADY_SCANNED: CredentialAlreadyUsedError,
}


def generate_reference(now: Optional[datetime] = None) -> str:
    """Human-debuggable unique reference: TXN-<epoch ms>-<6 random hex>"""
    now = now or utcnow()
    return f"TXN-{int(now.timestamp() * 1000)}-{secrets.token_hex(3).upper()}"


def is_admin(user: User) -> bool:
    return user.role == Role.ADMIN


# ---------------------------------------------------------------------------
# Lookups
# ---------------------------------------------------------------------------

def find_transaction(db: Session, ref: str) -> Optional[EscrowTransaction]:
    """Look a transaction up by reference (or by id)"""
    txn = db.query(EscrowTransaction).filter(EscrowTransaction.reference == ref).first()
    if txn is None:
        try:
            txn_id = UUID(str(ref))
        except ValueError:
            return None
        txn = db.query(EscrowTransaction).filter(EscrowTransaction.id == txn_id).first()
    return txn


def load_transaction(db: Session, ref: str) -> EscrowTransaction:
    txn = find_transaction(db, ref)
    if txn is None:
        raise NotFoundError(f"Transaction {ref} not found")
    return txn


def _require_party(txn: EscrowTransaction, actor: User, *parties: str) -> None:
    """parties: names of the transaction columns the actor may match"""
    for party in parties:
        if getattr(txn, party) is not None and getattr(txn, party) == actor.id:
            return
    raise NotAuthorizedError("Not authorized")


def _active_user(db: Session, user_id, role: Role, label: str) -> User:
    user = db.query(User).filter(User.id == user_id).first()
    if user is None or user.role != role:
        raise NotFoundError(f"{label} not found")
    if not user.is_active:
        raise ValidationError(f"{label} is not active")
    return user


# ---------------------------------------------------------------------------
# Operations
# ---------------------------------------------------------------------------

def create_transaction(
    db: Session,
    *,
    actor: User,
    wholesaler_id,
    amount: Any,
    description: str,
    payment_method: PaymentMethod,
    cash_collection_method: Optional[CashCollectionMethod] = None,
    delivery_agent_id=None,
    delivery_address: Optional[Dict[str, Any]] = None,
    metadata: Optional[Dict[str, Any]] = None,
    currency: Optional[str] = None,
    now: Optional[datetime] = None,
) -> EscrowTransaction:
    """Create a pending transaction. No funds move. Commits."""
    if actor.role != Role.RETAILER:
        raise NotAuthorizedError("Only retailers can create transactions")
    amount = normalize_amount(amount)
    if not description or not description.strip():
        raise ValidationError("description is required")
    now = now or utcnow()

    _active_user(db, wholesaler_id, Role.WHOLESALER, "Wholesaler")
    if delivery_agent_id is not None:
        _active_user(db, delivery_agent_id, Role.DELIVERY_AGENT, "Delivery agent")

    if payment_method == PaymentMethod.CASH:
        cash_collection_method = cash_collection_method or CashCollectionMethod.AGENT
    else:
        cash_collection_method = CashCollectionMethod.NONE

    txn = EscrowTransaction(
        reference=generate_reference(now),
        retailer_id=actor.id,
        wholesaler_id=wholesaler_id,
        delivery_agent_id=delivery_agent_id,
        amount=amount,
        currency=currency or get_settings().DEFAULT_CURRENCY,
        description=description.strip(),
        status=S.PENDING,
        version=0,
        payment_method=payment_method,
        cash_collection_method=cash_collection_method,
        withdrawn_amount=Decimal("0.00"),
        delivery_address=delivery_address,
        transaction_metadata=metadata,
        created_at=now,
    )
    try:
        db.add(txn)
        db.commit()
    except Exception:
        db.rollback()
        raise
    db.refresh(txn)

    logger.info(
        "Escrow transaction created",
        extra={
            "transaction_ref": txn.reference,
            "retailer_id": str(actor.id),
            "wholesaler_id": str(wholesaler_id),
            "amount": str(amount),
            "payment_method": payment_method.value,
        },
    )
    return txn


def fund_transaction(
    db: Session,
    publisher: NotificationPublisher,
    *,
    ref: str,
    actor: User,
    payment_reference: Optional[str] = None,
    now: Optional[datetime] = None,
) -> Tuple[EscrowTransaction, LedgerEntry]:
    """
    pending -> funded against the retailer's locked funds.

    Writes a hold entry (retailer -> escrow). The funds_locked notification is sent
    once, guarded by funds_locked_notified_at which is set in the same conditional
    write as the state change.
    """
    now = now or utcnow()
    txn = load_transaction(db, ref)
    _require_party(txn, actor, "retailer_id")
    escrow_transitions.ensure_transition(txn.status, S.FUNDED)

    try:
        account = locked_funds_service.get_or_create_account(db, txn.retailer_id, txn.currency)
        available = account.balance - locked_funds_service.actual_locked(
            db, txn.retailer_id, exclude_transaction_id=txn.id,
        )
        if available < txn.amount:
            raise InsufficientFundsError(
                available=available,
                required=txn.amount,
                message="Insufficient locked funds. Please add funds to your locked balance first.",
            )
        locked_funds_service.claim_for_funding(db, account)

        notify = txn.funds_locked_notified_at is None
        escrow_transitions.transition(
            db, txn, S.FUNDED, now=now,
            values={
                "payment_reference": payment_reference or f"PI-{int(now.timestamp() * 1000)}",
                "funds_locked_notified_at": now if notify else txn.funds_locked_notified_at,
            },
        )
        entry = ledger_store.append_entry(
            db,
            transaction_ref=txn.reference,
            entry_type=LedgerEntryType.HOLD,
            amount=txn.amount,
            from_account=retailer_account(txn.retailer_id),
            to_account=ESCROW_ACCOUNT,
            balance=txn.amount,
            currency=txn.currency,
            metadata={
                "description": f"Funds held in escrow for transaction {txn.reference} via {txn.payment_method.value}",
                "payment_reference": txn.payment_reference,
            },
            created_at=now,
        )
        db.commit()
    except Exception:
        db.rollback()
        raise

    if notify:
        emit(publisher, NotificationEvent(
            type=NotificationType.FUNDS_LOCKED,
            transaction_ref=txn.reference,
            recipient_id=txn.wholesaler_id,
            title="Funds Locked - Order Ready",
            message=f"Retailer has locked {txn.amount} {txn.currency} for order {txn.reference}",
            data={"amount": txn.amount, "retailer_id": txn.retailer_id},
        ))
    return txn, entry


def initiate_delivery(
    db: Session,
    publisher: NotificationPublisher,
    *,
    ref: str,
    actor: User,
    hardware_generator_id: Optional[str] = None,
    now: Optional[datetime] = None,
) -> Tuple[EscrowTransaction, QRCredential]:
    """funded -> in_transit by issuing the QR credential. Commits."""
    now = now or utcnow()
    txn = load_transaction(db, ref)
    _require_party(txn, actor, "wholesaler_id")

    try:
        credential = qr_credentials.issue(
            db, txn,
            issuer_id=actor.id,
            now=now,
            hardware_generator_id=hardware_generator_id,
        )
        db.commit()
    except Exception:
        db.rollback()
        raise
    db.refresh(credential)

    if txn.delivery_agent_id is not None:
        emit(publisher, NotificationEvent(
            type=NotificationType.DELIVERY_ASSIGNED,
            transaction_ref=txn.reference,
            recipient_id=txn.delivery_agent_id,
            title="Delivery Ready for Pickup",
            message=f"Order {txn.reference} is ready for delivery",
            data={"amount": txn.amount},
        ))
    return txn, credential


def extend_qr_code(
    db: Session,
    *,
    ref: str,
    actor: User,
    now: Optional[datetime] = None,
) -> QRCredential:
    """Reset an unscanned code's validity window. Commits."""
    now = now or utcnow()
    txn = load_transaction(db, ref)
    _require_party(txn, actor, "wholesaler_id")

    try:
        credential = qr_credentials.extend(db, txn, caller_id=actor.id, now=now)
        db.commit()
    except Exception:
        db.rollback()
        raise
    db.refresh(credential)
    return credential


def confirm_delivery(
    db: Session,
    publisher: NotificationPublisher,
    *,
    ref: str,
    actor: User,
    presented_code: Any,
    now: Optional[datetime] = None,
) -> Tuple[EscrowTransaction, LedgerEntry]:
    """
    in_transit/delivered -> on_hold once the retailer presents the right code.

    Sets hold_release_at = now + HOLD_PERIOD_HOURS and
    available_for_withdrawal_at = now + WITHDRAWAL_DELAY_HOURS, and writes an
    informational hold entry (escrow -> escrow). Commits.
    """
    now = now or utcnow()
    settings = get_settings()
    txn = load_transaction(db, ref)
    _require_party(txn, actor, "retailer_id")
    escrow_transitions.ensure_status(txn, *CONFIRMABLE_STATUSES)

    try:
        outcome = qr_credentials.verify(db, txn, presented_code, caller_id=actor.id, now=now)
        if outcome is not VerificationOutcome.ACCEPTED:
            raise _REJECTION_ERRORS[outcome]()

        hold_release_at = now + timedelta(hours=settings.HOLD_PERIOD_HOURS)
        available_at = now + timedelta(hours=settings.WITHDRAWAL_DELAY_HOURS)
        escrow_transitions.transition(
            db, txn, S.ON_HOLD, now=now,
            values={
                "hold_release_at": hold_release_at,
                "available_for_withdrawal_at": available_at,
            },
        )
        entry = ledger_store.append_entry(
            db,
            transaction_ref=txn.reference,
            entry_type=LedgerEntryType.HOLD,
            amount=txn.amount,
            from_account=ESCROW_ACCOUNT,
            to_account=ESCROW_ACCOUNT,
            balance=txn.amount,
            currency=txn.currency,
            metadata={
                "description": (
                    f"Funds on {settings.HOLD_PERIOD_HOURS}hr hold after delivery confirmation"
                    f" - will release at {hold_release_at.isoformat()}"
                ),
                "hold_release_at": hold_release_at.isoformat(),
            },
            created_at=now,
        )
        db.commit()
    except Exception:
        db.rollback()
        raise

    emit(publisher, NotificationEvent(
        type=NotificationType.QR_SCANNED,
        transaction_ref=txn.reference,
        recipient_id=txn.wholesaler_id,
        title="QR Code Scanned - Delivery Confirmed",
        message=(
            f"Retailer has scanned QR code for order {txn.reference}. "
            f"Funds will be released in {settings.HOLD_PERIOD_HOURS} hours."
        ),
        data={"hold_release_at": txn.hold_release_at.isoformat(), "amount": txn.amount},
    ))
    if txn.delivery_agent_id is not None:
        emit(publisher, NotificationEvent(
            type=NotificationType.QR_SCANNED,
            transaction_ref=txn.reference,
            recipient_id=txn.delivery_agent_id,
            title="QR Code Scanned Successfully",
            message=f"QR code for order {txn.reference} has been scanned successfully.",
        ))
    return txn, entry


def file_dispute(
    db: Session,
    publisher: NotificationPublisher,
    *,
    ref: str,
    actor: User,
    reason: str,
    now: Optional[datetime] = None,
) -> Tuple[EscrowTransaction, Dispute, LedgerEntry]:
    """Freeze the escrowed funds: -> disputed, with a hold entry tagged with the reason. Commits."""
    if not reason or not reason.strip():
        raise ValidationError("reason is required")
    now = now or utcnow()
    txn = load_transaction(db, ref)
    _require_party(txn, actor, "retailer_id")

    existing = db.query(Dispute).filter(Dispute.transaction_id == txn.id).first()
    if existing is not None:
        raise InvalidStateTransitionError(txn.status, message="Dispute already filed")
    escrow_transitions.ensure_status(txn, *DISPUTABLE_STATUSES)

    try:
        dispute = Dispute(
            transaction_id=txn.id,
            reason=reason.strip(),
            filed_by=actor.id,
            filed_at=now,
            created_at=now,
        )
        db.add(dispute)
        db.flush()

        escrow_transitions.transition(db, txn, S.DISPUTED, now=now)
        entry = ledger_store.append_entry(
            db,
            transaction_ref=txn.reference,
            entry_type=LedgerEntryType.HOLD,
            amount=txn.amount,
            from_account=ESCROW_ACCOUNT,
            to_account=ESCROW_ACCOUNT,
            balance=txn.amount,
            currency=txn.currency,
            metadata={
                "description": f"Funds held due to dispute: {dispute.reason}",
                "dispute_reason": dispute.reason,
            },
            created_at=now,
        )
        db.commit()
    except Exception:
        db.rollback()
        raise
    db.refresh(dispute)

    logger.warning(
        "Dispute filed - funds frozen",
        extra={"transaction_ref": txn.reference, "filed_by": str(actor.id)},
    )
    emit(publisher, NotificationEvent(
        type=NotificationType.DISPUTE_FILED,
        transaction_ref=txn.reference,
        recipient_id=txn.wholesaler_id,
        title="Dispute Filed",
        message=f"A dispute has been filed for order {txn.reference}. Funds are on hold.",
        data={"reason": dispute.reason},
    ))
    return txn, dispute, entry


def assign_delivery_agent(
    db: Session,
    publisher: NotificationPublisher,
    *,
    ref: str,
    actor: User,
    agent_id,
    now: Optional[datetime] = None,
) -> EscrowTransaction:
    """Attach an active delivery agent before delivery starts. Commits."""
    now = now or utcnow()
    txn = load_transaction(db, ref)
    _require_party(txn, actor, "wholesaler_id")
    escrow_transitions.ensure_status(txn, *ASSIGNABLE_STATUSES)
    _active_user(db, agent_id, Role.DELIVERY_AGENT, "Delivery agent")

    try:
        escrow_transitions.conditional_update(db, txn, now=now, values={"delivery_agent_id": agent_id})
        db.commit()
    except Exception:
        db.rollback()
        raise

    logger.info(
        "Delivery agent assigned",
        extra={"transaction_ref": txn.reference, "delivery_agent_id": str(agent_id)},
    )
    if txn.status == S.FUNDED:
        emit(publisher, NotificationEvent(
            type=NotificationType.DELIVERY_ASSIGNED,
            transaction_ref=txn.reference,
            recipient_id=agent_id,
            title="New Delivery Assigned",
            message=f"You have been assigned to deliver order {txn.reference}",
            data={"amount": txn.amount},
        ))
    return txn


def mark_delivered(
    db: Session,
    *,
    ref: str,
    actor: User,
    now: Optional[datetime] = None,
) -> EscrowTransaction:
    """in_transit -> delivered, by the assigned delivery agent. Commits."""
    now = now or utcnow()
    txn = load_transaction(db, ref)
    _require_party(txn, actor, "delivery_agent_id")

    try:
        escrow_transitions.transition(db, txn, S.DELIVERED, now=now)
        db.commit()
    except Exception:
        db.rollback()
        raise
    return txn


def cancel_transaction(
    db: Session,
    *,
    ref: str,
    actor: User,
    now: Optional[datetime] = None,
) -> EscrowTransaction:
    """pending -> cancelled, by the retailer. No funds moved, so no ledger entry. Commits."""
    now = now or utcnow()
    txn = load_transaction(db, ref)
    _require_party(txn, actor, "retailer_id")

    try:
        escrow_transitions.transition(db, txn, S.CANCELLED, now=now)
        db.commit()
    except Exception:
        db.rollback()
        raise
    return txn


# ---------------------------------------------------------------------------
# Reads
# ---------------------------------------------------------------------------

def get_transaction(db: Session, *, ref: str, actor: User) -> EscrowTransaction:
    """Party-or-admin read"""
    txn = load_transaction(db, ref)
    if not is_admin(actor):
        _require_party(txn, actor, "retailer_id", "wholesaler_id", "delivery_agent_id")
    return txn


def list_transactions(
    db: Session,
    *,
    actor: User,
    status: Optional[TransactionStatus] = None,
    limit: int = 100,
    offset: int = 0,
) -> List[EscrowTransaction]:
    """Role-scoped listing, newest first"""
    query = db.query(EscrowTransaction)
    if actor.role == Role.RETAILER:
        query = query.filter(EscrowTransaction.retailer_id == actor.id)
    elif actor.role == Role.WHOLESALER:
        query = query.filter(EscrowTransaction.wholesaler_id == actor.id)
    elif actor.role == Role.DELIVERY_AGENT:
        query = query.filter(EscrowTransaction.delivery_agent_id == actor.id)
    elif not is_admin(actor):
        raise NotAuthorizedError("Not authorized")
    if status is not None:
        query = query.filter(EscrowTransaction.status == status)
    return query.order_by(EscrowTransaction.created_at.desc()).offset(offset).limit(limit).all()


def get_qr_credential(db: Session, *, ref: str, actor: User) -> QRCredential:
    """Wholesaler, assigned delivery agent or admin"""
    txn = load_transaction(db, ref)
    if not is_admin(actor):
        _require_party(txn, actor, "wholesaler_id", "delivery_agent_id")
    credential = qr_credentials.get_credential(db, txn)
    if credential is None:
        raise NotFoundError("QR code not generated yet")
    return credential


def get_dispute(db: Session, *, ref: str, actor: User) -> Dispute:
    """Retailer, wholesaler or admin"""
    txn = load_transaction(db, ref)
    if not is_admin(actor):
        _require_party(txn, actor, "retailer_id", "wholesaler_id")
    dispute = db.query(Dispute).filter(Dispute.transaction_id == txn.id).first()
    if dispute is None:
        raise NotFoundError("No dispute found for this transaction")
    return dispute


def list_assigned_orders(
    db: Session,
    *,
    actor: User,
    status: Optional[TransactionStatus] = None,
) -> List[EscrowTransaction]:
    """Orders assigned to the calling delivery agent, newest first"""
    query = db.query(EscrowTransaction).filter(EscrowTransaction.delivery_agent_id == actor.id)
    if status is not None:
        query = query.filter(EscrowTransaction.status == status)
    return query.order_by(EscrowTransaction.created_at.desc()).all()


def get_order_details(db: Session, *, ref: str, actor: User) -> Dict[str, Any]:
    """Order with retailer contact and QR code, for the assigned agent only"""
    txn = load_transaction(db, ref)
    _require_party(txn, actor, "delivery_agent_id")
    retailer = txn.retailer
    credential = qr_credentials.get_credential(db, txn)
    return {
        "reference": txn.reference,
        "retailer": {
            "name": retailer.name if retailer else None,
            "email": retailer.email if retailer else None,
            "phone": retailer.phone if retailer else None,
        },
        "delivery_address": txn.delivery_address,
        "description": txn.description,
        "amount": str(Decimal(txn.amount).quantize(CENT)),
        "status": txn.status.value,
        "qr_code": {
            "code": credential.code,
            "expires_at": credential.expires_at.isoformat(),
        } if credential is not None else None,
    }
