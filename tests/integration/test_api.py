"""Integration tests for API endpoints"""

import pytest
from unittest.mock import AsyncMock, patch
from fastapi.testclient import TestClient
from allocation_planner.domain.exceptions import BankAPIError
from allocation_planner.infrastructure.clients.bank import parse_provider_payload


def _txn(txn_id, amount, day, name, detailed, primary, account_id="chk", merchant=None):
    return {
        "transaction_id": txn_id,
        "account_id": account_id,
        "amount": amount,
        "date": day,
        "name": name,
        "merchant_name": merchant,
        "pending": False,
        "personal_finance_category": {"primary": primary, "detailed": detailed},
    }


@pytest.fixture
def provider_accounts():
    return [
        {
            "account_id": "chk",
            "type": "depository",
            "subtype": "checking",
            "name": "Everyday Checking",
            "balances": {"current": 2500.00},
            "institution_id": "ins_1",
        },
        {
            "account_id": "sav",
            "type": "depository",
            "subtype": "savings",
            "name": "Emergency Savings",
            "balances": {"current": 10000.00},
            "institution_id": "ins_1",
        },
        {
            "account_id": "brk",
            "type": "investment",
            "subtype": "brokerage",
            "name": "Vanguard Brokerage",
            "balances": {"current": 20000.00},
            "institution_id": "ins_2",
        },
    ]


@pytest.fixture
def provider_transactions():
    """Five months of payroll, rent, groceries and a Vanguard contribution"""
    transactions = []
    for month in range(1, 6):
        transactions += [
            _txn(f"pay_{month}", -5000.00, f"2024-0{month}-15", "ACME CORP PAYROLL", "INCOME_WAGES", "INCOME"),
            _txn(f"rent_{month}", 1800.00, f"2024-0{month}-16", "Sunset Apartments", "RENT_AND_UTILITIES_RENT", "RENT_AND_UTILITIES"),
            _txn(f"groc_{month}", 400.00, f"2024-0{month}-20", "Whole Foods Market", "FOOD_AND_DRINK_GROCERIES", "FOOD_AND_DRINK"),
            _txn(
                f"inv_{month}",
                500.00,
                f"2024-0{month}-16",
                "Vanguard Buy Investment",
                "TRANSFER_OUT_INVESTMENT_AND_RETIREMENT_FUNDS",
                "TRANSFER_OUT",
                merchant="Vanguard",
            ),
        ]
    transactions.append(_txn("coffee", 5.00, "2024-06-15", "Starbucks", "FOOD_AND_DRINK_COFFEE", "FOOD_AND_DRINK"))
    return transactions


@pytest.fixture
def analyzed(client: TestClient, provider_accounts, provider_transactions):
    response = client.post(
        "/v1/analysis",
        json={
            "user_id": "user_1",
            "accounts": provider_accounts,
            "transactions": provider_transactions,
            "income_stability": "stable",
        },
    )
    assert response.status_code == 200
    return response.json()


@pytest.fixture
def planned(client: TestClient, analyzed):
    response = client.post("/v1/plan", json={"user_id": "user_1"})
    assert response.status_code == 200
    return response.json()


def _amounts(plan: dict) -> dict:
    return {bucket["type"]: bucket["allocated_cents"] for bucket in plan["buckets"]}


def test_health_endpoint(client: TestClient):
    """Test health check endpoint"""
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json()["status"] == "ok"


def test_metrics_endpoint(client: TestClient):
    """Test Prometheus metrics endpoint"""
    response = client.get("/metrics")
    assert response.status_code == 200
    assert "allocation_snapshot_total" in response.text


def test_request_id_is_propagated(client: TestClient):
    response = client.get("/health", headers={"X-Request-ID": "req-123"})
    assert response.headers["X-Request-ID"] == "req-123"


def test_analysis_snapshot(analyzed):
    """Test POST /v1/analysis with an inline provider payload"""
    assert analyzed["monthly_flow"]["income_cents"] == 500000
    assert analyzed["monthly_flow"]["essential_expenses"]["total"] == 220000
    assert analyzed["monthly_flow"]["disposable_income_cents"] == 280000
    assert analyzed["position"]["emergency_cash_cents"] == 1250000
    assert analyzed["position"]["monthly_investment_contributions_cents"] == 50000
    assert analyzed["metadata"]["months_analyzed"] == 5
    assert analyzed["income_stability"] == "stable"
    assert analyzed["is_valid_for_allocation"] is True
    assert analyzed["snapshot_id"]


@patch("allocation_planner.infrastructure.clients.bank.BankClient.get_financial_data", new_callable=AsyncMock)
def test_analysis_fetches_from_provider(mock_bank: AsyncMock, client: TestClient, provider_accounts, provider_transactions):
    """Without an inline payload the banking provider is called"""
    mock_bank.return_value = parse_provider_payload(provider_accounts, provider_transactions)

    response = client.post("/v1/analysis", json={"user_id": "user_2"})

    assert response.status_code == 200
    assert response.json()["monthly_flow"]["income_cents"] == 500000
    mock_bank.assert_awaited_once_with("user_2")


@patch("allocation_planner.infrastructure.clients.bank.BankClient.get_financial_data", new_callable=AsyncMock)
def test_analysis_bank_unavailable(mock_bank: AsyncMock, client: TestClient):
    mock_bank.side_effect = BankAPIError("Bank API timeout after 5.0s")

    response = client.post("/v1/analysis", json={"user_id": "user_2"})

    assert response.status_code == 503


def test_plan_requires_analysis(client: TestClient):
    response = client.post("/v1/plan", json={"user_id": "nobody"})
    assert response.status_code == 404


def test_plan_refused_for_negative_disposable(client: TestClient, provider_accounts):
    rent_only = [_txn("rent", 1800.00, "2024-03-01", "Landlord", "RENT_AND_UTILITIES_RENT", "RENT_AND_UTILITIES")]
    client.post("/v1/analysis", json={"user_id": "broke", "accounts": provider_accounts, "transactions": rent_only})

    response = client.post("/v1/plan", json={"user_id": "broke"})

    assert response.status_code == 422
    assert response.json()["detail"]["reasons"] == ["negative_disposable_income"]


def test_create_plan(planned):
    """Test POST /v1/plan"""
    amounts = _amounts(planned)

    assert amounts == {
        "essential": 220000,
        "discretionary": 84000,
        "emergency_fund": 70000,
        "investments": 126000,
    }
    assert sum(amounts.values()) == planned["income_cents"]

    emergency = next(b for b in planned["buckets"] if b["type"] == "emergency_fund")
    assert emergency["target_amount_cents"] == 1320000
    assert emergency["shortfall_cents"] == 70000
    assert {o["months"] for o in emergency["duration_options"]} == {3, 6, 12}


def test_get_plan(client: TestClient, planned):
    """Test GET /v1/plan/{user_id}"""
    response = client.get("/v1/plan/user_1")

    assert response.status_code == 200
    assert _amounts(response.json()) == _amounts(planned)


def test_get_plan_not_found(client: TestClient):
    response = client.get("/v1/plan/nobody")
    assert response.status_code == 404


def test_edit_bucket(client: TestClient, planned):
    """Discretionary down $200 goes to Investments first"""
    response = client.post(
        "/v1/plan/user_1/edit",
        json={"bucket_id": "bucket-discretionary", "new_amount_cents": 64000},
    )

    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "applied"
    assert data["adjustments"] == [
        {
            "bucket_id": "bucket-investments",
            "bucket_type": "investments",
            "old_cents": 126000,
            "new_cents": 146000,
            "delta_cents": 20000,
        }
    ]
    assert _amounts(data["plan"])["emergency_fund"] == 70000

    # Edit is persisted
    assert _amounts(client.get("/v1/plan/user_1").json())["discretionary"] == 64000


def test_edit_essential_rejected(client: TestClient, planned):
    response = client.post(
        "/v1/plan/user_1/edit",
        json={"bucket_id": "bucket-essential", "new_amount_cents": 100000},
    )

    assert response.status_code == 200
    assert response.json()["status"] == "rejected"
    assert _amounts(client.get("/v1/plan/user_1").json()) == _amounts(planned)


def test_edit_unknown_bucket(client: TestClient, planned):
    response = client.post(
        "/v1/plan/user_1/edit",
        json={"bucket_id": "bucket-vacation", "new_amount_cents": 100},
    )
    assert response.status_code == 404


def test_preset_then_reset(client: TestClient, planned):
    response = client.post("/v1/plan/user_1/preset", json={"bucket_type": "discretionary", "tier": "low"})

    assert response.status_code == 200
    discretionary = next(b for b in response.json()["plan"]["buckets"] if b["type"] == "discretionary")
    assert discretionary["allocated_cents"] == 28000
    assert discretionary["selected_tier"] == "low"

    response = client.post("/v1/plan/user_1/reset")
    assert response.status_code == 200
    assert _amounts(response.json()) == _amounts(planned)


def test_preset_survives_regeneration(client: TestClient, planned):
    client.post("/v1/plan/user_1/preset", json={"bucket_type": "discretionary", "tier": "low"})

    response = client.post("/v1/plan", json={"user_id": "user_1"})

    assert _amounts(response.json())["discretionary"] == 28000


def test_edit_after_preset_is_not_undone_by_regeneration(client: TestClient, planned):
    """A bucket moved off its preset by an edit forgets that preset"""
    response = client.post("/v1/plan/user_1/preset", json={"bucket_type": "investments", "tier": "low"})
    assert _amounts(response.json()["plan"])["investments"] == 14000

    response = client.post(
        "/v1/plan/user_1/edit",
        json={"bucket_id": "bucket-discretionary", "new_amount_cents": 150000},
    )
    assert _amounts(response.json()["plan"])["investments"] == 60000

    response = client.post("/v1/plan", json={"user_id": "user_1"})

    assert response.status_code == 200
    assert _amounts(response.json()) == _amounts(planned)


def test_emergency_duration(client: TestClient, planned):
    response = client.post("/v1/plan/user_1/emergency-duration", json={"months": 3})

    assert response.status_code == 200
    emergency = next(b for b in response.json()["buckets"] if b["type"] == "emergency_fund")
    assert emergency["selected_duration_months"] == 3
    assert emergency["shortfall_cents"] == 0
    assert _amounts(response.json()) == _amounts(planned)


def test_emergency_duration_unknown_option(client: TestClient, planned):
    response = client.post("/v1/plan/user_1/emergency-duration", json={"months": 9})
    assert response.status_code == 422


def test_link_accounts(client: TestClient, planned):
    response = client.put("/v1/plan/user_1/links", json={"bucket_type": "emergency_fund", "account_ids": ["sav"]})

    assert response.status_code == 200
    assert response.json()["linked_balance_cents"] == 1000000

    emergency = next(b for b in client.get("/v1/plan/user_1").json()["buckets"] if b["type"] == "emergency_fund")
    assert emergency["linked_account_ids"] == ["sav"]
    assert emergency["linked_balance_cents"] == 1000000


def test_link_ineligible_account(client: TestClient, planned):
    response = client.put("/v1/plan/user_1/links", json={"bucket_type": "investments", "account_ids": ["sav"]})
    assert response.status_code == 400


def test_link_suggestions(client: TestClient, analyzed):
    """Test GET /v1/accounts/{user_id}/link-suggestions"""
    response = client.get("/v1/accounts/user_1/link-suggestions")

    assert response.status_code == 200
    suggestions = {s["account_id"]: s["bucket_type"] for s in response.json()["suggestions"]}
    assert suggestions == {"chk": "essential", "sav": "emergency_fund", "brk": "investments"}
