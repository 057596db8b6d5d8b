"""
Tests for locked funds, withdrawal, payout, ledger and delivery agent endpoints
"""

from datetime import timedelta

from escrow_core.core.common.base_model import utcnow
from escrow_core.services.release_service import release_held_funds

from tests.helpers import NOW, auth_headers, funded_txn, in_transit_txn, on_hold_txn

API = "/api/v1"


def test_locked_funds_adjust_and_read(client, retailer):
    response = client.post(
        f"{API}/locked-funds/adjust",
        json={"type": "add", "amount": "300.00", "reason": "Monthly budget"},
        headers=auth_headers(retailer),
    )
    assert response.status_code == 200
    body = response.json()
    assert body["old_balance"] == "0.00"
    assert body["new_balance"] == "300.00"
    assert body["ledger_entry"]["type"] == "adjustment"

    response = client.get(f"{API}/locked-funds", headers=auth_headers(retailer))
    assert response.json() == {
        "balance": "300.00",
        "actual_locked": "0.00",
        "available": "300.00",
        "currency": "USD",
    }


def test_locked_funds_subtract_too_much(client, retailer):
    response = client.post(
        f"{API}/locked-funds/adjust",
        json={"type": "subtract", "amount": "1.00"},
        headers=auth_headers(retailer),
    )
    assert response.status_code == 400
    assert response.json()["error"]["code"] == "INSUFFICIENT_FUNDS"


def test_locked_funds_retailer_only(client, wholesaler):
    response = client.get(f"{API}/locked-funds", headers=auth_headers(wholesaler))
    assert response.status_code == 403


def test_withdrawal_endpoints(client, db_session, publisher, retailer, wholesaler):
    on_hold_txn(db_session, publisher, retailer, wholesaler, "80.00")
    release_held_funds(db_session, now=NOW + timedelta(hours=13))

    # NOW + 24h is long past on the real clock
    response = client.get(f"{API}/withdrawals/available", headers=auth_headers(wholesaler))
    assert response.json()["available_amount"] == "80.00"

    response = client.post(
        f"{API}/withdrawals",
        json={"amount": "30.00", "bank_account": "ACC-9"},
        headers=auth_headers(wholesaler),
    )
    assert response.status_code == 200
    body = response.json()
    assert body["success"] is True
    assert body["available_balance"] == "50.00"
    assert body["ledger_entries"][0]["type"] == "withdrawal"

    response = client.post(f"{API}/withdrawals", json={"amount": "50.01"}, headers=auth_headers(wholesaler))
    assert response.status_code == 400
    assert response.json()["error"]["code"] == "INSUFFICIENT_FUNDS"


def test_payout_endpoints(client, db_session, publisher, retailer, wholesaler):
    funded_txn(db_session, publisher, retailer, wholesaler, "25.00")

    response = client.get(f"{API}/payouts/pending", headers=auth_headers(wholesaler))
    assert response.json()["count"] == 1
    assert response.json()["total_pending"] == "25.00"

    response = client.get(f"{API}/payouts/summary", headers=auth_headers(wholesaler))
    assert response.json()["pending"] == {"amount": "25.00", "count": 1}
    assert response.json()["withdrawn"] == {"amount": "0.00", "count": 0}


def test_ledger_requires_reference_for_non_admin(client, db_session, publisher, retailer, other_retailer, wholesaler):
    txn = funded_txn(db_session, publisher, retailer, wholesaler)

    response = client.get(f"{API}/ledger", headers=auth_headers(retailer))
    assert response.status_code == 403

    response = client.get(f"{API}/ledger", params={"transactionRef": txn.reference}, headers=auth_headers(retailer))
    assert response.status_code == 200
    assert [entry["type"] for entry in response.json()["entries"]] == ["hold"]

    response = client.get(
        f"{API}/ledger", params={"transactionRef": txn.reference}, headers=auth_headers(other_retailer),
    )
    assert response.status_code == 403


def test_ledger_admin_queries_and_balance(client, db_session, publisher, retailer, wholesaler, admin):
    funded_txn(db_session, publisher, retailer, wholesaler, "100.00")
    funded_txn(db_session, publisher, retailer, wholesaler, "40.00")

    response = client.get(f"{API}/ledger", params={"type": "hold"}, headers=auth_headers(admin))
    assert response.json()["count"] == 2

    response = client.get(f"{API}/ledger/balance", headers=auth_headers(admin))
    assert response.json()["balance"] == "140.00"

    before = (NOW - timedelta(seconds=1)).isoformat()
    response = client.get(f"{API}/ledger/balance", params={"asOf": before}, headers=auth_headers(admin))
    assert response.json()["balance"] == "0.00"

    response = client.get(f"{API}/ledger/balance", headers=auth_headers(retailer))
    assert response.status_code == 403


def test_ledger_rejects_inverted_range(client, admin):
    now = utcnow()
    response = client.get(
        f"{API}/ledger",
        params={"startDate": now.isoformat(), "endDate": (now - timedelta(days=1)).isoformat()},
        headers=auth_headers(admin),
    )
    assert response.status_code == 422


def test_delivery_agent_endpoints(client, db_session, publisher, retailer, wholesaler, agent, other_agent):
    txn, credential = in_transit_txn(db_session, publisher, retailer, wholesaler, delivery_agent_id=agent.id)

    response = client.get(f"{API}/delivery-agent/assigned-orders", headers=auth_headers(agent))
    assert [order["reference"] for order in response.json()["transactions"]] == [txn.reference]

    response = client.get(
        f"{API}/delivery-agent/assigned-orders", params={"status": "funded"}, headers=auth_headers(agent),
    )
    assert response.json()["count"] == 0

    response = client.get(f"{API}/delivery-agent/order/{txn.reference}", headers=auth_headers(agent))
    assert response.status_code == 200
    assert response.json()["qr_code"]["code"] == credential.code
    assert response.json()["retailer"]["email"] == retailer.email

    response = client.get(f"{API}/delivery-agent/order/{txn.reference}", headers=auth_headers(other_agent))
    assert response.status_code == 403
