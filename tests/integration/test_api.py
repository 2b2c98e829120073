"""
HTTP surface - routing, headers and error mapping through FastAPI's TestClient.
"""

from decimal import Decimal
from uuid import uuid4


def _create_account(client, headers, code, account_type, name=None):
    response = client.post(
        "/api/v1/accounts",
        json={"code": code, "name": name or f"Account {code}", "account_type": account_type},
        headers=headers,
    )
    assert response.status_code == 201, response.text
    return response.json()


def _transaction_body(debit_account, credit_account, debit="100.00", credit="100.00", **extra):
    return {
        "transaction_date": "2026-01-15",
        "description": "Cash sale",
        "lines": [
            {"account_id": debit_account["id"], "debit_amount": debit},
            {"account_id": credit_account["id"], "credit_amount": credit},
        ],
        **extra,
    }


class TestService:

    def test_health(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json() == {"status": "healthy"}

    def test_request_id_echoed(self, client):
        response = client.get("/health", headers={"X-Request-Id": "req-42"})
        assert response.headers["X-Request-Id"] == "req-42"

    def test_missing_context_headers(self, client):
        response = client.get("/api/v1/accounts")
        assert response.status_code == 422

    def test_malformed_organization_id(self, client):
        response = client.get("/api/v1/accounts", headers={"X-Organization-Id": "nope", "X-User-Id": "u"})
        assert response.status_code == 422


class TestAccountsApi:

    def test_create_and_list(self, client, headers):
        created = _create_account(client, headers, "1000", "asset", "Cash")
        assert created["created_by"] == "api-tester"

        listed = client.get("/api/v1/accounts", headers=headers).json()
        assert [a["code"] for a in listed] == ["1000"]
        assert Decimal(listed[0]["balance"]) == Decimal("0")

    def test_duplicate_code_is_409(self, client, headers):
        _create_account(client, headers, "1000", "asset")
        response = client.post(
            "/api/v1/accounts",
            json={"code": "1000", "name": "Again", "account_type": "asset"},
            headers=headers,
        )
        assert response.status_code == 409
        assert response.json()["code"] == "CONFLICT"

    def test_unknown_account_is_404(self, client, headers):
        response = client.get(f"/api/v1/accounts/{uuid4()}", headers=headers)
        assert response.status_code == 404
        assert response.json()["code"] == "NOT_FOUND"

    def test_organizations_are_isolated(self, client, headers):
        created = _create_account(client, headers, "1000", "asset")
        other = {"X-Organization-Id": str(uuid4()), "X-User-Id": "intruder"}
        assert client.get("/api/v1/accounts", headers=other).json() == []
        assert client.get(f"/api/v1/accounts/{created['id']}", headers=other).status_code == 404

    def test_adjustment_and_balance(self, client, headers):
        cash = _create_account(client, headers, "1000", "asset")
        response = client.post(
            f"/api/v1/accounts/{cash['id']}/adjustments",
            json={"amount": "25.00", "description": "Counted drawer"},
            headers=headers,
        )
        assert response.status_code == 201, response.text
        balance = client.get(f"/api/v1/accounts/{cash['id']}/balance", headers=headers).json()
        assert Decimal(balance["balance"]) == Decimal("25.00")

    def test_delete_reports_outcome(self, client, headers):
        cash = _create_account(client, headers, "1000", "asset")
        response = client.delete(f"/api/v1/accounts/{cash['id']}", headers=headers)
        assert response.json()["outcome"] == "deleted"
        again = client.delete(f"/api/v1/accounts/{cash['id']}", headers=headers)
        assert again.json() == {"account_id": cash["id"], "outcome": "unchanged", "success": True}


class TestTransactionsApi:

    def test_create_post_and_list(self, client, headers):
        cash = _create_account(client, headers, "1000", "asset")
        sales = _create_account(client, headers, "4000", "revenue")

        created = client.post("/api/v1/transactions", json=_transaction_body(cash, sales), headers=headers)
        assert created.status_code == 201, created.text
        txn = created.json()
        assert txn["status"] == "draft"

        posted = client.post(f"/api/v1/transactions/{txn['id']}/post", headers=headers)
        assert posted.json()["status"] == "posted"

        page = client.get("/api/v1/transactions", params={"status": "posted"}, headers=headers).json()
        assert page["total"] == 1
        balance = client.get(f"/api/v1/accounts/{cash['id']}/balance", headers=headers).json()
        assert Decimal(balance["balance"]) == Decimal("100.00")

    def test_unbalanced_posted_body_is_422(self, client, headers):
        cash = _create_account(client, headers, "1000", "asset")
        sales = _create_account(client, headers, "4000", "revenue")
        body = _transaction_body(cash, sales, credit="90.00", status="posted")

        response = client.post("/api/v1/transactions", json=body, headers=headers)
        assert response.status_code == 422
        payload = response.json()
        assert payload["code"] == "UNBALANCED_TRANSACTION"
        assert payload["total_debit"] == "100.00"
        assert client.get("/api/v1/transactions", headers=headers).json()["total"] == 0

    def test_stale_version_is_409(self, client, headers):
        cash = _create_account(client, headers, "1000", "asset")
        sales = _create_account(client, headers, "4000", "revenue")
        txn = client.post("/api/v1/transactions", json=_transaction_body(cash, sales), headers=headers).json()

        first = client.patch(
            f"/api/v1/transactions/{txn['id']}",
            json={"description": "Edited", "expected_version": txn["version"]},
            headers=headers,
        )
        assert first.status_code == 200
        second = client.patch(
            f"/api/v1/transactions/{txn['id']}",
            json={"description": "Edited again", "expected_version": txn["version"]},
            headers=headers,
        )
        assert second.status_code == 409
        assert second.json()["code"] == "CONCURRENT_MODIFICATION"

    def test_delete_is_204(self, client, headers):
        cash = _create_account(client, headers, "1000", "asset")
        sales = _create_account(client, headers, "4000", "revenue")
        txn = client.post("/api/v1/transactions", json=_transaction_body(cash, sales), headers=headers).json()
        assert client.delete(f"/api/v1/transactions/{txn['id']}", headers=headers).status_code == 204
        assert client.get(f"/api/v1/transactions/{txn['id']}", headers=headers).status_code == 404


class TestBillingApi:

    def test_invoice_overdue_as_of(self, client, headers):
        created = client.post(
            "/api/v1/invoices",
            json={
                "customer_name": "Acme Corp",
                "issue_date": "2026-01-15",
                "due_date": "2026-02-14",
                "status": "sent",
                "items": [{"description": "Consulting", "quantity": "2", "unit_price": "100", "tax_rate": "10"}],
            },
            headers=headers,
        )
        assert created.status_code == 201, created.text
        invoice = created.json()
        assert invoice["invoice_number"] == "INV-20260115-0001"
        assert Decimal(invoice["total"]) == Decimal("220.00")

        late = client.get(f"/api/v1/invoices/{invoice['id']}", params={"as_of": "2026-03-01"}, headers=headers)
        assert late.json()["status"] == "overdue"
        assert late.json()["stored_status"] == "sent"

        sent = client.delete(f"/api/v1/invoices/{invoice['id']}", headers=headers)
        assert sent.status_code == 409


class TestPayrollApi:

    def _run(self, client, headers):
        response = client.post(
            "/api/v1/payroll/runs",
            json={"name": "January", "period_start": "2026-01-01", "period_end": "2026-01-31",
                  "payment_date": "2026-01-31"},
            headers=headers,
        )
        assert response.status_code == 201, response.text
        return response.json()

    def test_taxes(self, client, headers):
        response = client.get("/api/v1/payroll/taxes", params={"gross_amount": "1000"}, headers=headers)
        assert Decimal(response.json()["total_tax"]) == Decimal("276.50")

    def test_partial_import_is_207(self, client, headers):
        run = self._run(client, headers)
        response = client.post(
            f"/api/v1/payroll/runs/{run['id']}/items/import",
            json=[{"employee_name": "Ana", "gross_salary": "1000"}, {"gross_salary": "5"}],
            headers=headers,
        )
        assert response.status_code == 207
        payload = response.json()
        assert payload["success"] is False
        assert payload["imported"] == 1
        assert payload["errors"][0]["row"] == 2

        items = client.get(f"/api/v1/payroll/runs/{run['id']}/items", headers=headers).json()
        assert [i["employee_name"] for i in items] == ["Ana"]

    def test_clean_import_is_200(self, client, headers):
        run = self._run(client, headers)
        response = client.post(
            f"/api/v1/payroll/runs/{run['id']}/items/import",
            json=[{"employee_name": "Ana", "gross_salary": "1000"}],
            headers=headers,
        )
        assert response.status_code == 200
        assert response.json() == {"success": True, "imported": 1, "errors": []}

    def test_csv_export(self, client, headers):
        run = self._run(client, headers)
        client.post(
            f"/api/v1/payroll/runs/{run['id']}/items",
            json={"employee_name": "Ana", "gross_salary": "1000"},
            headers=headers,
        )
        response = client.get(f"/api/v1/payroll/runs/{run['id']}/export", params={"format": "csv"}, headers=headers)
        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/csv")
        assert "attachment" in response.headers["content-disposition"]
        assert "Ana" in response.text

    def test_process_without_items_is_422(self, client, headers):
        run = self._run(client, headers)
        response = client.post(f"/api/v1/payroll/runs/{run['id']}/process", headers=headers)
        assert response.status_code == 422

    def test_run_page_envelope(self, client, headers):
        self._run(client, headers)
        page = client.get("/api/v1/payroll/runs", headers=headers).json()
        assert (page["total"], page["page"], page["limit"], page["total_pages"]) == (1, 1, 10, 1)
