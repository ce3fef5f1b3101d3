"""
Tests de la API de cuentas por cobrar
"""
from datetime import date, timedelta
from decimal import Decimal
from uuid import uuid4

import pytest


@pytest.fixture
def receivable_payload():
    return {
        "counterparty_id": str(uuid4()),
        "counterparty_name": "Distribuidora Norte",
        "due_date": str(date.today() + timedelta(days=5)),
        "original_amount": "1000.00",
        "document_type": "bank_slip",
        "bank_slip_line": "23790.12345 60000.000001",
    }


@pytest.fixture
def receivable(client, auth_headers, receivable_payload):
    response = client.post("/financial/receivables", json=receivable_payload, headers=auth_headers())
    assert response.status_code == 201
    return response.json()


def receipt(amount, method="pix", **extra):
    return {"applied_amount": amount, "breakdown": [{"payment_method": method, "amount": amount}], **extra}


class TestReceivableCreation:

    def test_create_returns_open_document(self, receivable):
        assert receivable["status"] == "open"
        assert Decimal(receivable["balance"]) == Decimal("1000.00")
        assert receivable["document_number"] == "000001"
        assert receivable["document_type"] == "bank_slip"

    def test_explicit_document_number_is_kept(self, client, auth_headers, receivable_payload):
        receivable_payload["document_number"] = "NF-7788"
        response = client.post("/financial/receivables", json=receivable_payload, headers=auth_headers())
        assert response.json()["document_number"] == "NF-7788"

    def test_sequence_skips_numbers_taken_manually(self, client, auth_headers, receivable_payload):
        headers = auth_headers()
        manual = client.post(
            "/financial/receivables", json={**receivable_payload, "document_number": "000001"}, headers=headers
        )
        assert manual.status_code == 201

        automatic = client.post("/financial/receivables", json=receivable_payload, headers=headers)
        assert automatic.status_code == 201
        assert automatic.json()["document_number"] == "000002"

    def test_duplicate_manual_number_is_409(self, client, auth_headers, receivable_payload):
        headers = auth_headers()
        receivable_payload["document_number"] = "NF-100"
        assert client.post("/financial/receivables", json=receivable_payload, headers=headers).status_code == 201

        response = client.post("/financial/receivables", json=receivable_payload, headers=headers)
        assert response.status_code == 409
        assert response.json()["detail"]["code"] == "CONFLICT"

        listed = client.get("/financial/receivables", headers=headers).json()
        assert listed["pagination"]["total"] == 1

    def test_same_number_is_allowed_in_another_tenant(self, client, auth_headers, receivable_payload):
        receivable_payload["document_number"] = "NF-200"
        first = client.post("/financial/receivables", json=receivable_payload, headers=auth_headers())
        second = client.post("/financial/receivables", json=receivable_payload, headers=auth_headers(tenant=uuid4()))
        assert first.status_code == second.status_code == 201

    def test_zero_amount_is_rejected(self, client, auth_headers, receivable_payload):
        receivable_payload["original_amount"] = "0"
        response = client.post("/financial/receivables", json=receivable_payload, headers=auth_headers())
        assert response.status_code == 422

    def test_seller_cannot_create(self, client, auth_headers, receivable_payload):
        response = client.post("/financial/receivables", json=receivable_payload, headers=auth_headers(role="seller"))
        assert response.status_code == 403


class TestReceipts:

    def test_partial_and_final_receipt(self, client, auth_headers, receivable):
        headers = auth_headers()
        url = f"/financial/receivables/{receivable['id']}/receipts"

        response = client.post(url, json=receipt("400.00"), headers=headers)
        assert response.status_code == 201
        body = response.json()
        assert Decimal(body["new_balance"]) == Decimal("600.00")
        assert body["new_status"] == "open"

        detail = client.get(f"/financial/receivables/{receivable['id']}", headers=headers).json()
        assert Decimal(detail["settled_amount"]) == Decimal("400.00")

        response = client.post(url, json=receipt("600.00", method="cash"), headers=headers)
        body = response.json()
        assert Decimal(body["new_balance"]) == Decimal("0.00")
        assert body["new_status"] == "settled"
        assert "liquidada" in body["message"]

        response = client.post(url, json=receipt("1.00"), headers=headers)
        assert response.status_code == 409
        assert response.json()["detail"]["code"] == "INVALID_STATE"
        assert response.json()["detail"]["current_status"] == "settled"

    def test_detail_lists_receipts_with_breakdown(self, client, auth_headers, receivable):
        headers = auth_headers()
        client.post(
            f"/financial/receivables/{receivable['id']}/receipts",
            json={
                "applied_amount": "250.00",
                "breakdown": [
                    {"payment_method": "cash", "amount": "50.00"},
                    {"payment_method": "debit_card", "amount": "200.00"},
                ],
            },
            headers=headers,
        )

        detail = client.get(f"/financial/receivables/{receivable['id']}", headers=headers).json()
        assert len(detail["postings"]) == 1
        methods = detail["postings"][0]["methods"]
        assert [m["payment_method"] for m in methods] == ["cash", "debit_card"]
        assert Decimal(detail["balance"]) == Decimal("750.00")

    def test_breakdown_mismatch_is_422(self, client, auth_headers, receivable):
        response = client.post(
            f"/financial/receivables/{receivable['id']}/receipts",
            json={"applied_amount": "100.00", "breakdown": [{"payment_method": "cash", "amount": "90.00"}]},
            headers=auth_headers(),
        )
        assert response.status_code == 422

    def test_missing_breakdown_is_422(self, client, auth_headers, receivable):
        response = client.post(
            f"/financial/receivables/{receivable['id']}/receipts",
            json={"applied_amount": "100.00", "breakdown": []},
            headers=auth_headers(),
        )
        assert response.status_code == 422

    def test_overpayment_is_rejected(self, client, auth_headers, receivable):
        response = client.post(
            f"/financial/receivables/{receivable['id']}/receipts", json=receipt("1500.00"), headers=auth_headers()
        )
        assert response.status_code == 422
        assert response.json()["detail"]["code"] == "VALIDATION"

        detail = client.get(f"/financial/receivables/{receivable['id']}", headers=auth_headers()).json()
        assert Decimal(detail["balance"]) == Decimal("1000.00")

    def test_receipt_into_bank_account(self, client, auth_headers, receivable):
        headers = auth_headers()
        account = client.post("/financial/bank-accounts", json={"name": "Banco"}, headers=headers).json()

        response = client.post(
            f"/financial/receivables/{receivable['id']}/receipts",
            json=receipt("300.00", bank_account_id=account["id"]),
            headers=headers,
        )
        assert response.json()["bank_entry_id"] is not None

        entries = client.get(f"/financial/bank-accounts/{account['id']}/entries", headers=headers).json()
        assert entries["data"][0]["direction"] == "credit"
        assert entries["data"][0]["origin_type"] == "receivable_posting"
        balance = client.get(f"/financial/bank-accounts/{account['id']}", headers=headers).json()["current_balance"]
        assert Decimal(balance) == Decimal("300.00")


class TestReceivableLifecycle:

    def test_cancel_requires_owner_or_admin(self, client, auth_headers, receivable):
        url = f"/financial/receivables/{receivable['id']}/cancel"
        assert client.post(url, json={"reason": "Duplicado"}, headers=auth_headers(role="accountant")).status_code == 403

        response = client.post(url, json={"reason": "Duplicado"}, headers=auth_headers(role="admin"))
        assert response.status_code == 200
        assert response.json()["status"] == "canceled"
        assert Decimal(response.json()["balance"]) == Decimal("1000.00")

    def test_reschedule(self, client, auth_headers, receivable):
        new_due = str(date.today() + timedelta(days=30))
        response = client.post(
            f"/financial/receivables/{receivable['id']}/reschedule",
            json={"new_due_date": new_due, "reason": "Pedido del cliente"},
            headers=auth_headers(),
        )
        assert response.status_code == 200
        assert response.json()["due_date"] == new_due

    def test_patch_updates_allowed_metadata(self, client, auth_headers, receivable):
        response = client.patch(
            f"/financial/receivables/{receivable['id']}",
            json={"notes": "Confirmado por teléfono", "barcode": "34191790010104351004791020150008291070026000"},
            headers=auth_headers(),
        )
        assert response.status_code == 200
        assert response.json()["notes"] == "Confirmado por teléfono"

    def test_patch_rejects_balance_and_status(self, client, auth_headers, receivable):
        response = client.patch(
            f"/financial/receivables/{receivable['id']}",
            json={"balance": "1.00", "status": "settled"},
            headers=auth_headers(),
        )
        assert response.status_code == 422

        detail = client.get(f"/financial/receivables/{receivable['id']}", headers=auth_headers()).json()
        assert detail["status"] == "open"
        assert Decimal(detail["balance"]) == Decimal("1000.00")


class TestReceivableListing:

    def test_filters_and_pagination(self, client, auth_headers, receivable_payload):
        headers = auth_headers()
        for days in (-10, -1, 3, 20):
            payload = {**receivable_payload, "due_date": str(date.today() + timedelta(days=days))}
            client.post("/financial/receivables", json=payload, headers=headers)

        everything = client.get("/financial/receivables?limit=3", headers=headers).json()
        assert everything["pagination"]["total"] == 4
        assert everything["pagination"]["pages"] == 2
        assert len(everything["data"]) == 3

        overdue = client.get("/financial/receivables?overdue_only=true", headers=headers).json()
        assert overdue["pagination"]["total"] == 2

        by_range = client.get(
            f"/financial/receivables?due_from={date.today()}&due_to={date.today() + timedelta(days=5)}",
            headers=headers,
        ).json()
        assert by_range["pagination"]["total"] == 1

    def test_listing_is_tenant_scoped(self, client, auth_headers, receivable):
        other = client.get("/financial/receivables", headers=auth_headers(tenant=uuid4())).json()
        assert other["pagination"]["total"] == 0

        response = client.get(f"/financial/receivables/{receivable['id']}", headers=auth_headers(tenant=uuid4()))
        assert response.status_code == 404

    def test_summary(self, client, auth_headers, receivable):
        headers = auth_headers()
        client.post(f"/financial/receivables/{receivable['id']}/receipts", json=receipt("100.00"), headers=headers)

        summary = client.get("/financial/receivables/summary", headers=headers).json()
        assert Decimal(summary["open_total"]) == Decimal("900.00")
        assert Decimal(summary["settled_this_month"]) == Decimal("100.00")
        assert summary["open_count"] == 1
        assert len(summary["upcoming"]) == 1
        assert summary["top_counterparties"][0]["counterparty_name"] == "Distribuidora Norte"
