"""
Tests for the QR credential protocol (issue, extend, verify)
"""

import json
import pytest
from datetime import timedelta

from sqlalchemy import update

from escrow_core.core.escrow.models import QRCredential, TransactionStatus
from escrow_core.core.hardware.models import HardwareQRGenerator, HardwareGeneratorStatus
from escrow_core.infrastructure.settings import get_settings
from escrow_core.services import escrow_service, qr_credentials
from escrow_core.services.errors import (
    CredentialAlreadyUsedError,
    InvalidStateTransitionError,
    NotAuthorizedError,
    StateConflictError,
    ValidationError,
)
from escrow_core.services.qr_credentials import VerificationOutcome

from tests.helpers import NOW, create_txn, funded_txn, in_transit_txn


def test_issue_binds_reference_and_256_bit_secret(db_session, publisher, retailer, wholesaler):
    txn, credential = in_transit_txn(db_session, publisher, retailer, wholesaler)

    payload = json.loads(credential.code)
    assert payload["transactionId"] == txn.reference
    assert len(payload["secret"]) == 64
    int(payload["secret"], 16)
    assert payload["timestamp"] == int(NOW.timestamp() * 1000)

    assert credential.issued_at == NOW
    assert credential.expires_at == NOW + timedelta(hours=48)
    assert credential.extension_count == 0
    assert txn.status == TransactionStatus.IN_TRANSIT
    assert txn.in_transit_at == NOW


def test_each_issue_gets_a_fresh_secret():
    first = json.loads(qr_credentials.build_code("TXN-1", NOW))
    second = json.loads(qr_credentials.build_code("TXN-1", NOW))
    assert first["secret"] != second["secret"]


def test_issue_requires_funded(db_session, retailer, wholesaler):
    txn = create_txn(db_session, retailer, wholesaler)
    with pytest.raises(InvalidStateTransitionError):
        qr_credentials.issue(db_session, txn, issuer_id=wholesaler.id, now=NOW)
    db_session.rollback()


def test_issue_with_authorized_hardware_generator(db_session, publisher, retailer, wholesaler):
    device = HardwareQRGenerator(
        device_id="QRGEN-001",
        serial_number="SN-001",
        name="Warehouse printer",
        registered_by=wholesaler.id,
        status=HardwareGeneratorStatus.ACTIVE,
    )
    db_session.add(device)
    db_session.commit()

    txn = funded_txn(db_session, publisher, retailer, wholesaler)
    txn, credential = escrow_service.initiate_delivery(
        db_session, publisher, ref=txn.reference, actor=wholesaler, hardware_generator_id="QRGEN-001", now=NOW,
    )

    assert credential.hardware_generator_id == "QRGEN-001"
    db_session.refresh(device)
    assert device.last_used_at == NOW


@pytest.mark.parametrize("status,owned", [
    (HardwareGeneratorStatus.LOST, True),
    (HardwareGeneratorStatus.ACTIVE, False),
])
def test_issue_rejects_unauthorized_hardware_generator(
    db_session, publisher, retailer, wholesaler, other_wholesaler, status, owned,
):
    device = HardwareQRGenerator(
        device_id="QRGEN-002",
        serial_number="SN-002",
        name="Printer",
        registered_by=wholesaler.id if owned else other_wholesaler.id,
        status=status,
    )
    db_session.add(device)
    db_session.commit()

    txn = funded_txn(db_session, publisher, retailer, wholesaler)
    with pytest.raises(NotAuthorizedError):
        escrow_service.initiate_delivery(
            db_session, publisher, ref=txn.reference, actor=wholesaler, hardware_generator_id="QRGEN-002", now=NOW,
        )
    db_session.refresh(txn)
    assert txn.status == TransactionStatus.FUNDED


def test_evaluate_order_mismatch_before_scanned_before_expired(db_session, publisher, retailer, wholesaler):
    txn, credential = in_transit_txn(db_session, publisher, retailer, wholesaler)
    later = credential.expires_at + timedelta(seconds=1)

    forged = json.dumps({"transactionId": txn.reference, "secret": "0" * 64, "timestamp": 0})
    assert qr_credentials.evaluate(credential, txn.reference, forged, later) == VerificationOutcome.REJECTED_MISMATCH
    assert qr_credentials.evaluate(credential, txn.reference, credential.code, later) == VerificationOutcome.REJECTED_EXPIRED

    credential.scanned_at = NOW
    assert qr_credentials.evaluate(credential, txn.reference, credential.code, later) == \
        VerificationOutcome.REJECTED_ALREADY_SCANNED
    db_session.rollback()


@pytest.mark.parametrize("presented", [None, "", "not-json", "[1, 2]", {"transactionId": "TXN-OTHER"}])
def test_garbage_is_a_mismatch(db_session, publisher, retailer, wholesaler, presented):
    txn, credential = in_transit_txn(db_session, publisher, retailer, wholesaler)
    assert qr_credentials.evaluate(credential, txn.reference, presented, NOW) == VerificationOutcome.REJECTED_MISMATCH


def test_code_for_another_transaction_is_a_mismatch(db_session, publisher, retailer, wholesaler):
    txn_a, credential_a = in_transit_txn(db_session, publisher, retailer, wholesaler)
    txn_b, credential_b = in_transit_txn(db_session, publisher, retailer, wholesaler)

    outcome = qr_credentials.verify(db_session, txn_b, credential_a.code, caller_id=retailer.id, now=NOW)
    assert outcome == VerificationOutcome.REJECTED_MISMATCH


def test_decoded_payload_is_accepted(db_session, publisher, retailer, wholesaler):
    txn, credential = in_transit_txn(db_session, publisher, retailer, wholesaler)
    outcome = qr_credentials.verify(
        db_session, txn, json.loads(credential.code), caller_id=retailer.id, now=NOW,
    )
    assert outcome == VerificationOutcome.ACCEPTED


def test_verify_is_single_use(db_session, publisher, retailer, wholesaler):
    txn, credential = in_transit_txn(db_session, publisher, retailer, wholesaler)

    first = qr_credentials.verify(db_session, txn, credential.code, caller_id=retailer.id, now=NOW)
    second = qr_credentials.verify(db_session, txn, credential.code, caller_id=retailer.id, now=NOW)

    assert first == VerificationOutcome.ACCEPTED
    assert second == VerificationOutcome.REJECTED_ALREADY_SCANNED
    db_session.refresh(credential)
    assert credential.scanned_at == NOW
    assert credential.scanned_by == retailer.id


def _race(db_session, credential, **values):
    """Write to the credential row behind the loaded object's back"""
    db_session.execute(
        update(QRCredential)
        .where(QRCredential.id == credential.id)
        .values(**values)
        .execution_options(synchronize_session=False)
    )


def test_verify_loses_race_to_concurrent_scan(db_session, publisher, retailer, wholesaler):
    txn, credential = in_transit_txn(db_session, publisher, retailer, wholesaler)
    db_session.refresh(txn)
    db_session.refresh(credential)
    assert credential.scanned_at is None

    _race(db_session, credential, scanned_at=NOW - timedelta(minutes=1), scanned_by=retailer.id)

    outcome = qr_credentials.verify(db_session, txn, credential.code, caller_id=retailer.id, now=NOW)

    assert outcome == VerificationOutcome.REJECTED_ALREADY_SCANNED
    assert credential.scanned_at is not None
    db_session.rollback()


def test_verify_expiry_boundary(db_session, publisher, retailer, wholesaler):
    txn, credential = in_transit_txn(db_session, publisher, retailer, wholesaler)

    just_after = credential.expires_at + timedelta(seconds=1)
    assert qr_credentials.verify(db_session, txn, credential.code, caller_id=retailer.id, now=just_after) == \
        VerificationOutcome.REJECTED_EXPIRED

    just_before = credential.expires_at - timedelta(seconds=1)
    assert qr_credentials.verify(db_session, txn, credential.code, caller_id=retailer.id, now=just_before) == \
        VerificationOutcome.ACCEPTED


def test_extend_resets_window_and_counts(db_session, publisher, retailer, wholesaler):
    txn, credential = in_transit_txn(db_session, publisher, retailer, wholesaler)

    first_at = NOW + timedelta(hours=40)
    credential = escrow_service.extend_qr_code(db_session, ref=txn.reference, actor=wholesaler, now=first_at)
    assert credential.expires_at == first_at + timedelta(hours=48)
    assert credential.extension_count == 1
    assert credential.extended_at == first_at

    second_at = NOW + timedelta(hours=80)
    credential = escrow_service.extend_qr_code(db_session, ref=txn.reference, actor=wholesaler, now=second_at)
    assert credential.expires_at == second_at + timedelta(hours=48)
    assert credential.extension_count == 2


def test_extend_unbounded_by_default(db_session, publisher, retailer, wholesaler):
    txn, _ = in_transit_txn(db_session, publisher, retailer, wholesaler)
    for i in range(10):
        credential = escrow_service.extend_qr_code(
            db_session, ref=txn.reference, actor=wholesaler, now=NOW + timedelta(hours=i),
        )
    assert credential.extension_count == 10


def test_extend_cap_when_configured(db_session, publisher, retailer, wholesaler, monkeypatch):
    monkeypatch.setattr(get_settings(), "QR_MAX_EXTENSIONS", 1)
    txn, _ = in_transit_txn(db_session, publisher, retailer, wholesaler)

    escrow_service.extend_qr_code(db_session, ref=txn.reference, actor=wholesaler, now=NOW)
    with pytest.raises(ValidationError):
        escrow_service.extend_qr_code(db_session, ref=txn.reference, actor=wholesaler, now=NOW)


def test_extend_after_scan_rejected(db_session, publisher, retailer, wholesaler):
    txn, credential = in_transit_txn(db_session, publisher, retailer, wholesaler)
    escrow_service.confirm_delivery(
        db_session, publisher, ref=txn.reference, actor=retailer, presented_code=credential.code, now=NOW,
    )
    with pytest.raises(CredentialAlreadyUsedError):
        escrow_service.extend_qr_code(db_session, ref=txn.reference, actor=wholesaler, now=NOW)


def test_extend_before_issue_rejected(db_session, publisher, retailer, wholesaler):
    txn = funded_txn(db_session, publisher, retailer, wholesaler)
    with pytest.raises(InvalidStateTransitionError):
        escrow_service.extend_qr_code(db_session, ref=txn.reference, actor=wholesaler, now=NOW)


def test_extend_by_other_wholesaler_rejected(db_session, publisher, retailer, wholesaler, other_wholesaler):
    txn, _ = in_transit_txn(db_session, publisher, retailer, wholesaler)
    with pytest.raises(NotAuthorizedError):
        escrow_service.extend_qr_code(db_session, ref=txn.reference, actor=other_wholesaler, now=NOW)


def test_extend_loses_race_to_concurrent_extension(db_session, publisher, retailer, wholesaler):
    txn, credential = in_transit_txn(db_session, publisher, retailer, wholesaler)
    db_session.refresh(txn)
    db_session.refresh(credential)

    _race(db_session, credential, extension_count=QRCredential.extension_count + 1)

    with pytest.raises(StateConflictError):
        qr_credentials.extend(db_session, txn, caller_id=wholesaler.id, now=NOW)
    db_session.rollback()


def test_extend_loses_race_to_concurrent_scan(db_session, publisher, retailer, wholesaler):
    txn, credential = in_transit_txn(db_session, publisher, retailer, wholesaler)
    db_session.refresh(txn)
    db_session.refresh(credential)

    _race(db_session, credential, scanned_at=NOW, scanned_by=retailer.id)

    with pytest.raises(CredentialAlreadyUsedError):
        qr_credentials.extend(db_session, txn, caller_id=wholesaler.id, now=NOW)
    db_session.rollback()
