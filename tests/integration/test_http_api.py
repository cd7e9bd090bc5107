"""Integration tests for API endpoints"""

from datetime import datetime

import pytest
from fastapi.testclient import TestClient

from conftest import Seeder
from fakes import RecordingAuditClient

pytestmark = pytest.mark.integration


@pytest.fixture
def account(seed: Seeder):
    seed.staff()
    member = seed.member()
    return seed.account(member, balance="0")


def test_health_endpoint(client: TestClient):
    """Test health check endpoint"""
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json()["status"] == "ok"


def test_metrics_endpoint(client: TestClient, account, teller_headers: dict):
    """Processed transactions show up in the Prometheus output"""
    client.post(
        f"/v1/savings/{account.id}/deposits",
        json={"amount": "1000", "payment_method": "CASH"},
        headers=teller_headers,
    )
    response = client.get("/metrics")

    assert response.status_code == 200
    assert "koperasi_transactions_processed_total" in response.text
    assert "http_request_duration_seconds" in response.text


def test_request_id_is_propagated(client: TestClient):
    response = client.get("/health", headers={"X-Request-ID": "req-123"})
    assert response.headers["X-Request-ID"] == "req-123"

    generated = client.get("/health")
    assert generated.headers["X-Request-ID"]


def test_deposit_returns_terminal_record(client: TestClient, account, teller_headers: dict):
    response = client.post(
        f"/v1/savings/{account.id}/deposits",
        json={"amount": "500000", "payment_method": "CASH", "note": "setoran"},
        headers=teller_headers,
    )

    assert response.status_code == 201
    data = response.json()
    assert data["status"] == "APPROVED"
    assert data["amount"] == "500000.00"
    assert data["kind"] == "DEPOSIT"
    assert data["account_id"] == account.id
    assert data["loan_id"] is None

    detail = client.get(f"/v1/savings/{account.id}").json()
    assert detail["balance"] == "500000.00"


def test_rejected_withdrawal_is_still_created(client: TestClient, account, teller_headers: dict):
    """Business rule failures are outcomes: 201 with status REJECTED"""
    response = client.post(
        f"/v1/savings/{account.id}/withdrawals",
        json={"amount": "10", "payment_method": "CASH"},
        headers=teller_headers,
    )

    assert response.status_code == 201
    assert response.json()["status"] == "REJECTED"
    assert response.json()["note"] == "insufficient balance"


def test_unknown_account_returns_404(client: TestClient, account, teller_headers: dict):
    response = client.post(
        "/v1/savings/999/deposits",
        json={"amount": "10", "payment_method": "CASH"},
        headers=teller_headers,
    )
    assert response.status_code == 404
    assert response.json()["error"] == "NotFoundError"


def test_inactive_staff_returns_400(client: TestClient, seed: Seeder):
    seed.staff(user_id=200, is_active=False)
    account = seed.account(seed.member())

    response = client.post(
        f"/v1/savings/{account.id}/deposits",
        json={"amount": "10", "payment_method": "CASH"},
        headers={"X-Actor-Id": "200"},
    )
    assert response.status_code == 400
    assert response.json()["error"] == "InactiveStaffError"


def test_inactive_member_returns_400(client: TestClient, seed: Seeder, teller_headers: dict):
    seed.staff()
    account = seed.account(seed.member(status="INACTIVE"))

    response = client.post(
        f"/v1/savings/{account.id}/deposits",
        json={"amount": "10", "payment_method": "CASH"},
        headers=teller_headers,
    )
    assert response.status_code == 400
    assert response.json()["error"] == "InactiveMemberError"


@pytest.mark.parametrize("amount", ["0", "-5", "10.005", "abc"])
def test_invalid_amount_returns_422(client: TestClient, account, teller_headers: dict, amount: str):
    response = client.post(
        f"/v1/savings/{account.id}/deposits",
        json={"amount": amount, "payment_method": "CASH"},
        headers=teller_headers,
    )
    assert response.status_code == 422


def test_missing_actor_header_returns_422(client: TestClient, account):
    response = client.post(
        f"/v1/savings/{account.id}/deposits",
        json={"amount": "10", "payment_method": "CASH"},
    )
    assert response.status_code == 422


def test_deferred_operator_transaction_and_double_process(client: TestClient, account, teller_headers: dict):
    created = client.post(
        "/v1/transactions",
        json={
            "member_id": account.member_id,
            "kind": "DEPOSIT",
            "amount": "2500.50",
            "payment_method": "TRANSFER",
            "account_id": account.id,
            "defer": True,
        },
        headers=teller_headers,
    )
    assert created.status_code == 201
    assert created.json()["status"] == "PENDING"
    transaction_id = created.json()["id"]

    pending = client.get("/v1/transactions/pending").json()
    assert [item["id"] for item in pending["items"]] == [transaction_id]

    processed = client.post(f"/v1/transactions/{transaction_id}/process", headers=teller_headers)
    assert processed.status_code == 200
    assert processed.json()["status"] == "APPROVED"

    again = client.post(f"/v1/transactions/{transaction_id}/process", headers=teller_headers)
    assert again.status_code == 409
    assert again.json()["error"] == "AlreadyProcessedError"

    assert client.get(f"/v1/savings/{account.id}").json()["balance"] == "2500.50"


def test_operator_target_mismatch_returns_422(client: TestClient, seed: Seeder, account, teller_headers: dict):
    other = seed.member()
    response = client.post(
        "/v1/transactions",
        json={
            "member_id": other.id,
            "kind": "DEPOSIT",
            "amount": "10",
            "payment_method": "CASH",
            "account_id": account.id,
        },
        headers=teller_headers,
    )
    assert response.status_code == 422
    assert response.json()["error"] == "InvalidTransactionError"


def test_transaction_listing_with_cursor(client: TestClient, seed: Seeder, teller_headers: dict):
    staff = seed.staff()
    member = seed.member()
    account = seed.account(member)
    for day in range(1, 26):
        seed.transaction(member, staff, "DEPOSIT", "10", datetime(2024, 3, day), account=account)

    first = client.get("/v1/transactions").json()
    assert len(first["items"]) == 20
    assert first["has_next"] is True
    assert first["items"][0]["id"] == 25

    second = client.get("/v1/transactions", params={"cursor": first["next_cursor"]}).json()
    assert [item["id"] for item in second["items"]] == [5, 4, 3, 2, 1]
    assert second["has_next"] is False
    assert second["next_cursor"] is None

    by_member = client.get(f"/v1/members/{member.id}/transactions").json()
    assert len(by_member["items"]) == 20
    by_staff = client.get(f"/v1/staff/{staff.id}/transactions").json()
    assert len(by_staff["items"]) == 20


def test_invalid_cursor_returns_400(client: TestClient):
    response = client.get("/v1/transactions", params={"cursor": "bm90LWEtY3Vyc29y"})
    assert response.status_code == 400


def test_export_with_filters(client: TestClient, seed: Seeder):
    staff = seed.staff()
    member = seed.member()
    account = seed.account(member)
    seed.transaction(member, staff, "DEPOSIT", "10", datetime(2024, 3, 1), account=account)
    seed.transaction(member, staff, "WITHDRAWAL", "5", datetime(2024, 3, 2), status="REJECTED", account=account)

    response = client.get("/v1/transactions/export", params={"status": "REJECTED"})

    assert response.status_code == 200
    assert response.json()["count"] == 1
    assert response.json()["items"][0]["kind"] == "WITHDRAWAL"


def test_get_unknown_transaction(client: TestClient):
    assert client.get("/v1/transactions/12345").status_code == 404


def test_loan_schedule(client: TestClient, seed: Seeder):
    loan = seed.loan(seed.member(), principal="2000000", tenor_months=6, approved_at=datetime(2024, 1, 31))

    response = client.get(f"/v1/loans/{loan.id}/schedule")

    assert response.status_code == 200
    data = response.json()
    assert [i["amount"] for i in data["installments"]] == ["333334.00"] * 5 + ["333330.00"]
    assert data["installments"][0]["due_date"] == "2024-02-29"


def test_pending_loan_disbursement_returns_400(client: TestClient, seed: Seeder, teller_headers: dict):
    seed.staff()
    loan = seed.loan(seed.member(), status="PENDING")

    response = client.post(
        f"/v1/loans/{loan.id}/disbursements",
        json={"payment_method": "TRANSFER"},
        headers=teller_headers,
    )
    assert response.status_code == 400
    assert response.json()["error"] == "LoanNotApprovedError"


def test_audit_events_are_delivered(
    client: TestClient, account, teller_headers: dict, audit_client: RecordingAuditClient
):
    client.post(
        f"/v1/savings/{account.id}/deposits",
        json={"amount": "100", "payment_method": "CASH"},
        headers=teller_headers,
    )

    assert len(audit_client.payloads) == 1
    payload = audit_client.payloads[0]
    assert payload["event"] == "AUDIT"
    assert payload["action"] == "PROCESS_TRANSACTION"
    assert payload["actor_id"] == 100
    assert payload["ip"] == "testclient"
    assert payload["before"]["balance"] == "0.00"
    assert payload["after"]["balance"] == "100.00"


def test_snapshot_lifecycle(client: TestClient, seed: Seeder, teller_headers: dict):
    staff = seed.staff()
    member = seed.member()
    account = seed.account(member)
    seed.transaction(member, staff, "DEPOSIT", "1500", datetime(2024, 3, 5), account=account)

    assert client.get("/v1/reports/snapshots", params={"month": 3, "year": 2024}).status_code == 404

    generated = client.post("/v1/reports/snapshots", json={"month": 3, "year": 2024}, headers=teller_headers)
    assert generated.status_code == 201
    snapshot = generated.json()
    assert snapshot["status"] == "DRAFT"
    assert snapshot["total_deposits"] == "1500.00"
    assert snapshot["generated_by_id"] == 100

    finalized = client.post(f"/v1/reports/snapshots/{snapshot['id']}/finalize", headers=teller_headers)
    assert finalized.status_code == 200
    assert finalized.json()["status"] == "FINAL"

    again = client.post(f"/v1/reports/snapshots/{snapshot['id']}/finalize", headers=teller_headers)
    assert again.status_code == 409

    regenerate = client.post("/v1/reports/snapshots", json={"month": 3, "year": 2024}, headers=teller_headers)
    assert regenerate.status_code == 409
    assert regenerate.json()["error"] == "SnapshotFinalizedError"

    fetched = client.get("/v1/reports/snapshots", params={"month": 3, "year": 2024}).json()
    assert fetched["status"] == "FINAL"


def test_report_endpoint(client: TestClient, seed: Seeder):
    response = client.get("/v1/reports/cashflow", params={"month": 3, "year": 2024})

    assert response.status_code == 200
    data = response.json()
    assert data["period"] == {"month": 3, "year": 2024}
    assert data["ratios"]["liquidity_ratio"] is None


@pytest.mark.parametrize(
    "path,params",
    [
        ("/v1/reports/monthly", {"month": 13, "year": 2024}),
        ("/v1/reports/monthly", {"year": 2024}),
        ("/v1/reports/monthly", {"month": 12, "year": 9999}),
        ("/v1/reports/cashflow", {"month": 1, "year": 1899}),
        ("/v1/reports/snapshots", {"month": 12, "year": 9999}),
        ("/v1/reports/profit", {"month": 1, "year": 2024}),
    ],
)
def test_report_validation(client: TestClient, path: str, params: dict):
    assert client.get(path, params=params).status_code == 422


def test_snapshot_generation_rejects_unrepresentable_period(client: TestClient, teller_headers: dict):
    response = client.post("/v1/reports/snapshots", json={"month": 12, "year": 9999}, headers=teller_headers)
    assert response.status_code == 422


def test_last_supported_period_is_served(client: TestClient):
    response = client.get("/v1/reports/monthly", params={"month": 12, "year": 9998})
    assert response.status_code == 200
    assert response.json()["period"] == {"month": 12, "year": 9998}


def test_member_accounts_and_loans(client: TestClient, seed: Seeder):
    member = seed.member()
    other = seed.member()
    voluntary = seed.account(member, balance="1000", category="VOLUNTARY")
    monthly = seed.account(member, balance="50", category="MANDATORY_MONTHLY")
    seed.account(other)
    first = seed.loan(member, status="PAID_OFF")
    second = seed.loan(member, outstanding="2000000")
    seed.loan(other)

    accounts = client.get(f"/v1/members/{member.id}/savings")
    assert accounts.status_code == 200
    assert [a["id"] for a in accounts.json()["items"]] == [voluntary.id, monthly.id]
    assert accounts.json()["items"][0]["balance"] == "1000.00"

    loans = client.get(f"/v1/members/{member.id}/loans")
    assert loans.status_code == 200
    data = loans.json()
    assert [loan["id"] for loan in data["items"]] == [second.id, first.id]
    assert data["items"][0]["outstanding_balance"] == "2000000.00"
    assert data["has_next"] is False


@pytest.mark.parametrize("path", ["/v1/members/999/savings", "/v1/members/999/loans"])
def test_member_listings_for_unknown_member(client: TestClient, path: str):
    response = client.get(path)
    assert response.status_code == 404
    assert response.json()["error"] == "NotFoundError"


def test_dashboard_endpoint(client: TestClient, seed: Seeder):
    staff = seed.staff()
    member = seed.member()
    account = seed.account(member, balance="1500")
    seed.transaction(member, staff, "DEPOSIT", "1500", datetime(2024, 3, 5), account=account)

    response = client.get("/v1/reports/dashboard", params={"month": 3, "year": 2024})

    assert response.status_code == 200
    data = response.json()
    assert data["period"] == {"month": 3, "year": 2024}
    assert data["financial_summary"]["deposits"] == "1500.00"
    assert data["financial_summary"]["savings_growth"] is None
    assert len(data["cashflow_trend"]) == 6
    assert data["top_outstanding"] == []
