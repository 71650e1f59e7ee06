"""
Tests for ledger API endpoints.

These test the HTTP layer: status codes, response format,
and error mapping. Ledger rules themselves are tested in
tests/services.
"""

from decimal import Decimal


def create_accounts(client):
    """Cash and owner's capital, the minimum for a balanced entry."""
    client.post("/ledger/accounts", json={
        "code": "1001",
        "name": "Bank Account",
        "account_type": "ASSET",
    })
    client.post("/ledger/accounts", json={
        "code": "3000",
        "name": "Owner's Capital",
        "account_type": "EQUITY",
    })


def entry_payload(amount="500.00", **extra):
    payload = {
        "date": "2024-01-05",
        "lines": [
            {"account_code": "1001", "debit": amount, "description": "Capital"},
            {"account_code": "3000", "credit": amount, "description": "Capital"},
        ],
    }
    payload.update(extra)
    return payload


class TestCreateAccount:

    def test_create_account_returns_201(self, client):
        response = client.post("/ledger/accounts", json={
            "code": "1001",
            "name": "Bank Account",
            "account_type": "ASSET",
        })
        assert response.status_code == 201

        data = response.json()
        assert data["code"] == "1001"
        assert data["account_type"] == "ASSET"
        assert data["category"] == "Current Assets"
        assert data["is_active"] is True

    def test_duplicate_code_returns_409(self, client):
        create_accounts(client)
        response = client.post("/ledger/accounts", json={
            "code": "1001",
            "name": "Bank Again",
            "account_type": "ASSET",
        })
        assert response.status_code == 409

    def test_wrong_family_returns_400(self, client):
        response = client.post("/ledger/accounts", json={
            "code": "4100",
            "name": "Not an asset",
            "account_type": "ASSET",
        })
        assert response.status_code == 400

    def test_list_accounts_by_type(self, client):
        create_accounts(client)
        response = client.get("/ledger/accounts", params={"account_type": "EQUITY"})
        assert [a["code"] for a in response.json()] == ["3000"]


class TestPostEntry:

    def test_post_balanced_entry_returns_201(self, client):
        create_accounts(client)
        response = client.post("/ledger/entries", json=entry_payload())
        assert response.status_code == 201

        data = response.json()
        assert data["transaction_id"].startswith("TXN")
        assert data["status"] == "posted"
        assert Decimal(data["total_debit"]) == Decimal("500.00")
        assert len(data["lines"]) == 2

    def test_metadata_round_trips(self, client):
        create_accounts(client)
        response = client.post(
            "/ledger/entries", json=entry_payload(metadata={"batch": "jan"})
        )
        assert response.json()["metadata"] == {"batch": "jan"}

    def test_unbalanced_entry_returns_400(self, client):
        create_accounts(client)
        payload = entry_payload()
        payload["lines"][1]["credit"] = "300.00"

        response = client.post("/ledger/entries", json=payload)
        assert response.status_code == 400
        assert "does not balance" in response.json()["detail"]

    def test_negative_amount_rejected(self, client):
        create_accounts(client)
        response = client.post("/ledger/entries", json=entry_payload(amount="-5.00"))
        assert response.status_code == 422

    def test_unknown_account_returns_404(self, client):
        response = client.post("/ledger/entries", json=entry_payload())
        assert response.status_code == 404

    def test_duplicate_reference_returns_409(self, client):
        create_accounts(client)
        payload = entry_payload(source="manual", reference="OPENING-1")

        assert client.post("/ledger/entries", json=payload).status_code == 201
        response = client.post("/ledger/entries", json=payload)
        assert response.status_code == 409


class TestEntryLifecycle:

    def test_get_entry(self, client):
        create_accounts(client)
        transaction_id = client.post("/ledger/entries", json=entry_payload()).json()["transaction_id"]

        response = client.get(f"/ledger/entries/{transaction_id}")
        assert response.status_code == 200
        assert response.json()["transaction_id"] == transaction_id

    def test_missing_entry_returns_404(self, client):
        assert client.get("/ledger/entries/TXN-NOPE").status_code == 404

    def test_void_entry(self, client):
        create_accounts(client)
        transaction_id = client.post("/ledger/entries", json=entry_payload()).json()["transaction_id"]

        response = client.post(
            f"/ledger/entries/{transaction_id}/void", json={"reason": "Duplicate"}
        )
        assert response.status_code == 200
        assert response.json()["status"] == "void"

        again = client.post(
            f"/ledger/entries/{transaction_id}/void", json={"reason": "Again"}
        )
        assert again.status_code == 409

        balance = client.get("/ledger/accounts/1001/balance").json()
        assert Decimal(balance["balance"]) == Decimal("0")

    def test_reverse_entry(self, client):
        create_accounts(client)
        transaction_id = client.post("/ledger/entries", json=entry_payload()).json()["transaction_id"]

        response = client.post(
            f"/ledger/entries/{transaction_id}/reverse",
            json={"date": "2024-01-31", "reason": "Wrong account"},
        )
        assert response.status_code == 201
        assert response.json()["source"] == "reversal"
        assert response.json()["source_id"] == transaction_id


class TestGetBalance:

    def test_balance_after_posting(self, client):
        create_accounts(client)
        client.post("/ledger/entries", json=entry_payload())

        response = client.get("/ledger/accounts/1001/balance")
        assert response.status_code == 200
        data = response.json()
        assert Decimal(data["balance"]) == Decimal("500.00")
        assert data["include_children"] is True

    def test_balance_as_of_before_posting(self, client):
        create_accounts(client)
        client.post("/ledger/entries", json=entry_payload())

        response = client.get(
            "/ledger/accounts/1001/balance", params={"as_of": "2024-01-04"}
        )
        assert Decimal(response.json()["balance"]) == Decimal("0")

    def test_nonexistent_account_returns_404(self, client):
        response = client.get("/ledger/accounts/1999/balance")
        assert response.status_code == 404

    def test_account_entries(self, client):
        create_accounts(client)
        client.post("/ledger/entries", json=entry_payload("100.00"))
        client.post("/ledger/entries", json=entry_payload("200.00", date="2024-02-01"))

        response = client.get("/ledger/accounts/1001/entries")
        assert response.status_code == 200
        assert [Decimal(e["total_debit"]) for e in response.json()] == [
            Decimal("200.00"), Decimal("100.00"),
        ]

    def test_entries_for_unknown_account_returns_404(self, client):
        assert client.get("/ledger/accounts/1999/entries").status_code == 404
