from fastapi.testclient import TestClient
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from database import Base, build_engine
from main import app, get_db
from models import BankAccount


USER_HEADERS = {"X-User-Id": "user-1"}


def _client():
    engine = build_engine("sqlite://", poolclass=StaticPool)
    Base.metadata.create_all(engine)
    TestingSession = sessionmaker(bind=engine, expire_on_commit=False)

    def override_get_db():
        db = TestingSession()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db
    return TestClient(app), TestingSession


def _account(factory, balance: int) -> str:
    with factory() as session:
        account = BankAccount(user_id="user-1", name="Checking", balance_cents=balance)
        session.add(account)
        session.commit()
        return account.id


def test_missing_user_header_is_unauthorized():
    client, _ = _client()
    response = client.get("/transactions")
    assert response.status_code == 401


def test_transaction_create_list_and_delete():
    client, factory = _client()
    account_id = _account(factory, 500)

    response = client.post(
        "/transactions",
        json={"amountCents": 100, "type": "EXPENSE", "accountId": account_id},
        headers=USER_HEADERS,
    )
    assert response.status_code == 201
    body = response.json()
    assert body["amountCents"] == 100
    assert body["source"] == "MANUAL"
    transaction_id = body["id"]

    listed = client.get(
        "/transactions", params={"accountId": account_id}, headers=USER_HEADERS
    )
    assert [item["id"] for item in listed.json()] == [transaction_id]

    expenses = client.get("/expenses", headers=USER_HEADERS).json()
    assert expenses[0]["transactionId"] == transaction_id

    deleted = client.delete(f"/transactions/{transaction_id}", headers=USER_HEADERS)
    assert deleted.status_code == 204
    with factory() as session:
        assert session.get(BankAccount, account_id).balance_cents == 500


def test_error_mapping():
    client, factory = _client()
    account_id = _account(factory, 500)

    bad = client.post(
        "/transactions",
        json={
            "amountCents": 100,
            "accountId": account_id,
            "toBankAccountId": account_id,
        },
        headers=USER_HEADERS,
    )
    assert bad.status_code == 400

    missing = client.patch(
        "/transactions/nope", json={"amountCents": 5}, headers=USER_HEADERS
    )
    assert missing.status_code == 404

    custom = client.get(
        "/transactions/dashboard", params={"period": "Custom"}, headers=USER_HEADERS
    )
    assert custom.status_code == 400

    unknown_card = client.post(
        "/transactions",
        json={"amountCents": 100, "creditCardId": "nope"},
        headers=USER_HEADERS,
    )
    assert unknown_card.status_code == 404

    unknown_account = client.post(
        "/expenses",
        json={"amountCents": 100, "paymentMethod": "debit_card", "accountId": "nope"},
        headers=USER_HEADERS,
    )
    assert unknown_account.status_code == 404


def test_dashboard_payload_shape():
    client, factory = _client()
    account_id = _account(factory, 0)
    client.post(
        "/transactions",
        json={"amountCents": 900, "type": "INCOME", "accountId": account_id},
        headers=USER_HEADERS,
    )

    response = client.get(
        "/transactions/dashboard", params={"period": "Daily"}, headers=USER_HEADERS
    )
    assert response.status_code == 200
    body = response.json()
    assert body["period"] == "Daily"
    assert body["summary"]["income"] == 900
    assert len(body["trend"]) == 7
    assert "categoryBreakdown" in body
    assert body["recent"][0]["amountCents"] == 900


def test_parsed_endpoint_and_expense_crud():
    client, _ = _client()

    parsed = client.post(
        "/transactions/parsed",
        json={"type": "EXPENSE", "amount": "4.50", "merchant": "Cafe", "category": "Coffee"},
        headers=USER_HEADERS,
    )
    assert parsed.status_code == 201
    assert parsed.json()["amountCents"] == 450

    gold = client.post(
        "/transactions/parsed",
        json={"type": "GOLD", "amount": "1"},
        headers=USER_HEADERS,
    )
    assert gold.status_code == 400

    created = client.post(
        "/expenses",
        json={"amountCents": 250, "category": "Books"},
        headers=USER_HEADERS,
    )
    assert created.status_code == 201
    expense_id = created.json()["id"]

    updated = client.patch(
        f"/expenses/{expense_id}", json={"amountCents": 300}, headers=USER_HEADERS
    )
    assert updated.json()["amountCents"] == 300

    assert (
        client.delete(f"/expenses/{expense_id}", headers=USER_HEADERS).status_code
        == 204
    )


def test_expense_insights_and_report():
    client, factory = _client()
    account_id = _account(factory, 1000)
    client.post(
        "/expenses",
        json={
            "amountCents": 200,
            "category": "Rent",
            "paymentMethod": "debit_card",
            "accountId": account_id,
        },
        headers=USER_HEADERS,
    )
    client.post(
        "/expenses",
        json={"amountCents": 50, "category": "Food"},
        headers=USER_HEADERS,
    )

    insights = client.get("/expenses/insights", headers=USER_HEADERS)
    assert insights.status_code == 200
    body = insights.json()
    assert body["total"] == 250
    assert body["count"] == 2
    assert body["byPaymentMethod"] == {"debit_card": 200, "cash": 50}
    assert len(body["monthlyTrend"]) == 6
    assert body["monthlyTrend"][-1]["amount"] == 250

    report = client.post(
        "/expenses/report",
        json={"datePreset": "this_month", "accountIds": [account_id]},
        headers=USER_HEADERS,
    )
    assert report.status_code == 200
    summary = report.json()["summary"]
    assert summary["count"] == 1
    assert summary["byCategory"] == {"Rent": 200}
    assert set(summary["dateRange"]) == {"from", "to"}

    half_range = client.post(
        "/expenses/report", json={"dateFrom": "2024-01-01"}, headers=USER_HEADERS
    )
    assert half_range.status_code == 400

    expense_id = report.json()["expenses"][0]["id"]
    fetched = client.get(f"/expenses/{expense_id}", headers=USER_HEADERS)
    assert fetched.json()["category"] == "Rent"
