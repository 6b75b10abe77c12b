from __future__ import annotations

import uuid
from datetime import date
from decimal import Decimal

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session

from backoffice.core.db.models import Store
from backoffice.domain.cash_management.services import deposits as deposits_service
from backoffice.domain.transactions.enums import TenderType
from backoffice.domain.transactions.service import record_sale


def _post(client: TestClient, store: Store, business_date: str, category: str, amount: str) -> dict:
    r = client.post(
        f"/api/stores/{store.id}/cash/postings",
        json={"business_date": business_date, "category": category, "amount": amount},
    )
    assert r.status_code == 200, r.text
    return r.json()


@pytest.fixture()
def three_days(client: TestClient, store: Store) -> list[str]:
    _post(client, store, "2025-01-20", "cash_sales", "850")
    _post(client, store, "2025-01-21", "cash_sales", "400")
    _post(client, store, "2025-01-22", "cash_returns", "600")
    pending = client.get(f"/api/stores/{store.id}/cash/deposits/pending").json()
    return [p["id"] for p in pending]


def _deposit_body(position_ids: list[str], amount: str) -> dict:
    return {
        "position_ids": position_ids,
        "amount": amount,
        "deposit_slip_number": "SLIP-42",
        "bank_name": "State Bank",
        "deposited_by": "asha",
    }


def test_store_endpoints(client: TestClient, store: Store):
    r = client.post("/stores", json={"store_code": "blr03", "store_name": "Jayanagar"})
    assert r.status_code == 201
    assert r.json()["store_code"] == "BLR03"

    r = client.post("/stores", json={"store_code": "BLR01", "store_name": "Duplicate"})
    assert r.status_code == 400
    assert r.json()["error"] == "ValidationFailed"

    r = client.get(f"/stores/{uuid.uuid4()}")
    assert r.status_code == 404
    assert r.json()["error"] == "NotFound"


def test_position_read_creates_day(client: TestClient, store: Store):
    r = client.get(f"/api/stores/{store.id}/cash/positions/2025-01-20")
    assert r.status_code == 200
    body = r.json()
    assert Decimal(body["closing_balance"]) == 0
    assert body["deposit_status"] == "pending"
    assert body["opening_gap"] is False


def test_positions_range_most_recent_first(client: TestClient, store: Store, three_days):
    r = client.get(
        f"/api/stores/{store.id}/cash/positions", params={"date_from": "2025-01-20", "date_to": "2025-01-22"}
    )
    body = r.json()
    assert [p["business_date"] for p in body] == ["2025-01-22", "2025-01-21", "2025-01-20"]
    assert [Decimal(p["closing_balance"]) for p in body] == [Decimal("650"), Decimal("1250"), Decimal("850")]


def test_deposit_flow(client: TestClient, store: Store, three_days):
    summary = client.get(f"/api/stores/{store.id}/cash/deposits/pending/summary").json()
    assert summary["days_pending"] == 3
    assert Decimal(summary["total_pending_amount"]) == Decimal("2750")

    r = client.post(f"/api/stores/{store.id}/cash/deposits", json=_deposit_body(three_days, "2700"))
    assert r.status_code == 400
    body = r.json()
    assert body["error"] == "AmountMismatch"
    assert Decimal(str(body["details"]["expected"])) == Decimal("2750")
    assert Decimal(str(body["details"]["supplied"])) == Decimal("2700")

    r = client.post(f"/api/stores/{store.id}/cash/deposits", json=_deposit_body(three_days, "2750"))
    assert r.status_code == 201, r.text
    deposit = r.json()
    assert deposit["days_included"] == 3
    assert [m["business_date"] for m in deposit["day_mappings"]] == ["2025-01-20", "2025-01-21", "2025-01-22"]

    assert client.get(f"/api/stores/{store.id}/cash/deposits/pending").json() == []
    listed = client.get(f"/api/stores/{store.id}/cash/deposits").json()
    assert [d["id"] for d in listed] == [deposit["id"]]
    assert client.get(f"/api/stores/{store.id}/cash/deposits/{deposit['id']}").status_code == 200

    r = client.post(
        f"/api/stores/{store.id}/cash/postings",
        json={"business_date": "2025-01-21", "category": "cash_sales", "amount": "10"},
    )
    assert r.status_code == 400


def test_deposit_persistence_failure_is_503(
    client: TestClient, store: Store, three_days, monkeypatch: pytest.MonkeyPatch
):
    def _boom(*args, **kwargs):
        raise OperationalError("INSERT INTO deposit_day_mappings", {}, Exception("connection reset"))

    monkeypatch.setattr(deposits_service, "_build_day_mappings", _boom)

    r = client.post(f"/api/stores/{store.id}/cash/deposits", json=_deposit_body(three_days, "2750"))
    assert r.status_code == 503
    assert r.json()["error"] == "PersistenceFailure"
    assert len(client.get(f"/api/stores/{store.id}/cash/deposits/pending").json()) == 3


def test_variance_tolerance_endpoint(client: TestClient, store: Store):
    r = client.get(f"/api/stores/{store.id}/cash/deposits/tolerance", params={"days": 4})
    assert r.status_code == 200
    assert Decimal(r.json()["tolerance"]) == Decimal("200")

    assert client.get(f"/api/stores/{store.id}/cash/deposits/tolerance", params={"days": 0}).status_code == 422


def test_transfer_approval_over_http(client: TestClient, store: Store):
    _post(client, store, "2025-01-20", "cash_sales", "1000")

    r = client.post(
        f"/api/stores/{store.id}/cash/transfers", json={"requested_amount": "200", "requested_by": "asha"}
    )
    assert r.status_code == 201
    request_id = r.json()["id"]

    r = client.post(f"/api/cash/approvals/transfer/{request_id}/complete", json={"completed_by": "ravi"})
    assert r.status_code == 409
    assert r.json()["details"]["current_status"] == "pending"

    pending = client.get("/api/cash/approvals/transfer/pending").json()
    assert [p["id"] for p in pending] == [request_id]

    r = client.post(f"/api/cash/approvals/transfer/{request_id}/approve", json={"approver": "ravi"})
    assert r.status_code == 200
    assert r.json()["status"] == "approved"

    r = client.post(f"/api/cash/approvals/transfer/{request_id}/complete", json={"completed_by": "ravi"})
    assert r.status_code == 200
    assert r.json()["status"] == "completed"

    petty = client.get(f"/api/stores/{store.id}/cash/balances/petty_cash").json()
    assert Decimal(petty["balance"]) == Decimal("200")

    activity = client.get(f"/api/stores/{store.id}/cash/activity").json()
    assert [a["kind"] for a in activity] == ["transfer"]


def test_underflow_is_422(client: TestClient, store: Store):
    r = client.post(
        f"/api/stores/{store.id}/cash/adjustments",
        json={
            "adjustment_type": "loss",
            "account_type": "petty_cash",
            "requested_amount": "50",
            "reason": "Missing",
            "requested_by": "asha",
        },
    )
    assert r.status_code == 201
    assert Decimal(r.json()["signed_amount"]) == Decimal("-50")

    r = client.post(f"/api/cash/approvals/adjustment/{r.json()['id']}/approve", json={"approver": "ravi"})
    assert r.status_code == 422
    assert r.json()["error"] == "WouldUnderflow"


def test_cash_count_over_http(client: TestClient, store: Store):
    _post(client, store, "2025-01-20", "cash_sales", "1000")

    r = client.post(
        f"/api/stores/{store.id}/cash/counts",
        json={
            "count_date": "2025-01-20",
            "count_type": "sales_drawer",
            "denominations": {"500": 1, "100": 5},
            "counted_by": "asha",
        },
    )
    assert r.status_code == 201, r.text
    assert Decimal(r.json()["variance"]) == Decimal("0")

    latest = client.get(f"/api/stores/{store.id}/cash/counts/latest/sales_drawer")
    assert latest.status_code == 200
    assert client.get(f"/api/stores/{store.id}/cash/counts/latest/petty_cash").status_code == 404


def test_reconciliation_over_http(client: TestClient, db_session: Session, store: Store):
    sale = record_sale(
        db_session, store_id=store.id, sale_date=date(2025, 1, 20), amount=Decimal("300"), tender_type=TenderType.UPI
    )

    pending = client.get("/api/reconciliation/pending", params={"business_date": "2025-01-20"}).json()
    assert [(p["id"], p["type"]) for p in pending] == [(str(sale.id), "sale")]

    r = client.post(f"/api/reconciliation/sale/{sale.id}", json={"reconciled_by": "meena"})
    assert r.status_code == 200
    assert r.json()["reconciliation_source"] == "manual"

    r = client.post(f"/api/reconciliation/sale/{sale.id}", json={"reconciled_by": "ravi"})
    assert r.status_code == 409
    assert r.json()["error"] == "AlreadyReconciled"

    r = client.post(
        "/api/reconciliation/batch",
        json={"items": [{"id": str(sale.id), "type": "sale", "reconciled_by": "ravi"}]},
    )
    assert r.status_code == 200
    assert r.json()[0]["success"] is False

    r = client.get("/api/reconciliation/summary", params={"date_from": "2025-01-20", "date_to": "2025-01-20"})
    assert r.json()["reconciled"] == 1


def test_request_validation_is_422(client: TestClient, store: Store):
    r = client.post(
        f"/api/stores/{store.id}/cash/postings",
        json={"business_date": "2025-01-20", "category": "cash_sales", "amount": "-5"},
    )
    assert r.status_code == 422
