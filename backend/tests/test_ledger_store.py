"""
Tests for the append-only ledger store
"""

import pytest
from datetime import timedelta
from decimal import Decimal

from escrow_core.core.ledger.models import (
    LedgerEntry,
    LedgerEntryType,
    LedgerImmutableError,
    ESCROW_ACCOUNT,
    EXTERNAL_ACCOUNT,
)
from escrow_core.services import ledger_store

from tests.helpers import NOW

MERCHANT = "default-merchant"


def _append(db_session, entry_type, amount, from_account="retailer-1", to_account=ESCROW_ACCOUNT,
            ref="TXN-1", created_at=NOW, **kwargs):
    return ledger_store.append_entry(
        db_session,
        transaction_ref=ref,
        entry_type=entry_type,
        amount=Decimal(amount),
        from_account=from_account,
        to_account=to_account,
        balance=Decimal(amount),
        created_at=created_at,
        **kwargs,
    )


def test_append_generates_unique_entry_ids(db_session):
    """Entry ids are generated by the store and never collide"""
    first = _append(db_session, LedgerEntryType.HOLD, "10.00")
    second = _append(db_session, LedgerEntryType.HOLD, "10.00")
    db_session.commit()

    assert first.entry_id.startswith("LEDGER-")
    assert len(first.entry_id) == len("LEDGER-") + 32
    assert first.entry_id != second.entry_id
    assert first.merchant_account_id == MERCHANT
    assert first.currency == "USD"


def test_append_rejects_non_positive_amount(db_session):
    with pytest.raises(ValueError):
        _append(db_session, LedgerEntryType.HOLD, "0.00")


def test_entries_for_newest_first(db_session):
    older = _append(db_session, LedgerEntryType.HOLD, "10.00", created_at=NOW)
    newer = _append(db_session, LedgerEntryType.RELEASE, "10.00", from_account=ESCROW_ACCOUNT,
                    to_account="wholesaler-1", created_at=NOW + timedelta(hours=1))
    _append(db_session, LedgerEntryType.HOLD, "99.00", ref="TXN-OTHER")
    db_session.commit()

    entries = ledger_store.entries_for(db_session, "TXN-1")
    assert [entry.entry_id for entry in entries] == [newer.entry_id, older.entry_id]


def test_entries_for_account_filters(db_session):
    _append(db_session, LedgerEntryType.HOLD, "10.00", created_at=NOW)
    _append(db_session, LedgerEntryType.ADJUSTMENT, "5.00", from_account=EXTERNAL_ACCOUNT,
            to_account="retailer-1", ref="ADJUSTMENT", created_at=NOW + timedelta(hours=2))
    _append(db_session, LedgerEntryType.HOLD, "20.00", ref="TXN-2", created_at=NOW + timedelta(hours=4))
    db_session.commit()

    holds = ledger_store.entries_for_account(db_session, MERCHANT, entry_type=LedgerEntryType.HOLD)
    assert {entry.transaction_ref for entry in holds} == {"TXN-1", "TXN-2"}

    window = ledger_store.entries_for_account(
        db_session, MERCHANT, start=NOW + timedelta(hours=1), end=NOW + timedelta(hours=3),
    )
    assert [entry.entry_type for entry in window] == [LedgerEntryType.ADJUSTMENT]

    assert ledger_store.entries_for_account(db_session, "another-merchant") == []
    assert len(ledger_store.entries_for_account(db_session, MERCHANT, limit=2)) == 2


def test_balance_fold_counts_only_escrow_movements(db_session):
    """
    + deposit/hold, - release/refund; fee, adjustment and withdrawal are informational,
    and escrow -> escrow annotations are ignored.
    """
    _append(db_session, LedgerEntryType.HOLD, "100.00")
    _append(db_session, LedgerEntryType.DEPOSIT, "50.00", ref="TXN-2")
    _append(db_session, LedgerEntryType.HOLD, "100.00", from_account=ESCROW_ACCOUNT, to_account=ESCROW_ACCOUNT)
    _append(db_session, LedgerEntryType.REFUND, "50.00", ref="TXN-2", from_account=ESCROW_ACCOUNT,
            to_account="retailer-1")
    _append(db_session, LedgerEntryType.FEE, "3.00", from_account=ESCROW_ACCOUNT, to_account=EXTERNAL_ACCOUNT)
    _append(db_session, LedgerEntryType.ADJUSTMENT, "500.00", ref="ADJUSTMENT", from_account=EXTERNAL_ACCOUNT,
            to_account="retailer-1")
    _append(db_session, LedgerEntryType.WITHDRAWAL, "40.00", from_account="wholesaler-1",
            to_account=EXTERNAL_ACCOUNT)
    db_session.commit()

    assert ledger_store.balance_for(db_session, MERCHANT) == Decimal("100.00")


def test_balance_as_of(db_session):
    _append(db_session, LedgerEntryType.HOLD, "100.00", created_at=NOW)
    _append(db_session, LedgerEntryType.RELEASE, "100.00", from_account=ESCROW_ACCOUNT,
            to_account="wholesaler-1", created_at=NOW + timedelta(hours=12))
    db_session.commit()

    assert ledger_store.balance_for(db_session, MERCHANT, as_of=NOW + timedelta(hours=1)) == Decimal("100.00")
    assert ledger_store.balance_for(db_session, MERCHANT) == Decimal("0.00")


def test_entries_cannot_be_updated(db_session):
    entry = _append(db_session, LedgerEntryType.HOLD, "10.00")
    db_session.commit()

    entry.amount = Decimal("20.00")
    with pytest.raises(LedgerImmutableError):
        db_session.flush()
    db_session.rollback()


def test_entries_cannot_be_deleted(db_session):
    entry = _append(db_session, LedgerEntryType.HOLD, "10.00")
    db_session.commit()

    db_session.delete(entry)
    with pytest.raises(LedgerImmutableError):
        db_session.flush()
    db_session.rollback()
    assert db_session.query(LedgerEntry).count() == 1
