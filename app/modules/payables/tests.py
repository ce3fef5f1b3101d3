"""
Tests de cuentas por pagar y flujo de caja proyectado
"""
from datetime import date, timedelta
from decimal import Decimal
from uuid import uuid4

import pytest

from app.modules.banking.models import BankLedgerEntry, EntryCategory, EntryDirection, OriginType
from app.modules.banking.schemas import BankAccountCreate
from app.modules.banking.service import BankingService
from app.modules.ledger.models import DocumentStatus, PaymentMethod
from app.modules.ledger.schemas import PostingCreate
from app.modules.payables.models import PayableCategory
from app.modules.payables.schemas import PayableCreate
from app.modules.payables.service import PayableService
from app.modules.receivables.schemas import ReceivableCreate
from app.modules.receivables.service import ReceivableService


def payable_data(amount="500.00", days=10, category=PayableCategory.SERVICE, **extra) -> PayableCreate:
    return PayableCreate(
        counterparty_id=uuid4(),
        counterparty_name="Proveedor Sur",
        due_date=date.today() + timedelta(days=days),
        original_amount=Decimal(amount),
        category=category,
        **extra,
    )


class TestPayableService:

    def test_payment_posts_bank_debit(self, db_session, ctx):
        account = BankingService(db_session).create_account(
            ctx, BankAccountCreate(name="Operativa", opening_balance=Decimal("1000.00"))
        )
        service = PayableService(db_session)
        payable = service.create_payable(ctx, payable_data())

        result = service.pay(ctx, payable.id, PostingCreate(
            applied_amount=Decimal("500.00"),
            discount_amount=Decimal("20.00"),
            bank_account_id=account.id,
            breakdown=[{"payment_method": PaymentMethod.BANK_TRANSFER, "amount": Decimal("500.00")}],
        ))

        assert result["new_status"] == DocumentStatus.SETTLED
        assert result["net_amount"] == Decimal("480.00")

        entry = db_session.query(BankLedgerEntry).one()
        assert entry.direction == EntryDirection.DEBIT
        assert entry.category == EntryCategory.PAYMENT
        assert entry.origin_type == OriginType.PAYABLE_POSTING
        assert entry.description == f"Pago - {payable.document_number}"
        assert BankingService(db_session).balance(account) == Decimal("520.00")

    def test_payable_numbers_are_independent_from_receivables(self, db_session, ctx):
        payable = PayableService(db_session).create_payable(ctx, payable_data())
        receivable = ReceivableService(db_session).create_receivable(ctx, ReceivableCreate(
            counterparty_id=uuid4(), due_date=date.today(), original_amount=Decimal("10.00")
        ))
        assert payable.document_number == "000001"
        assert receivable.document_number == "000001"

    def test_summary_groups_open_balance_by_category(self, db_session, ctx):
        service = PayableService(db_session)
        service.create_payable(ctx, payable_data("100.00", category=PayableCategory.TAX))
        service.create_payable(ctx, payable_data("300.00", category=PayableCategory.GOODS))
        service.create_payable(ctx, payable_data("50.00", category=PayableCategory.GOODS))
        canceled = service.create_payable(ctx, payable_data("999.00", category=PayableCategory.TAX))
        service.cancel_payable(ctx, canceled.id, "Carga duplicada")

        summary = service.get_summary(ctx.tenant_id)

        assert summary["open_total"] == Decimal("450.00")
        assert summary["canceled_balance"] == Decimal("999.00")
        assert summary["by_category"] == [
            {"category": PayableCategory.GOODS, "open_balance": Decimal("350.00"), "documents": 2},
            {"category": PayableCategory.TAX, "open_balance": Decimal("100.00"), "documents": 1},
        ]


class TestCashFlow:

    def test_projection_is_dense_and_accumulates(self, db_session, ctx):
        today = date.today()
        PayableService(db_session).create_payable(ctx, payable_data("200.00", days=1))
        PayableService(db_session).create_payable(ctx, payable_data("50.00", days=45))
        ReceivableService(db_session).create_receivable(ctx, ReceivableCreate(
            counterparty_id=uuid4(), due_date=today + timedelta(days=2), original_amount=Decimal("500.00")
        ))

        projection = PayableService(db_session).cash_flow(ctx.tenant_id, days=5, today=today)

        assert len(projection["days"]) == 6
        assert projection["total_receivables"] == Decimal("500.00")
        assert projection["total_payables"] == Decimal("200.00")
        assert projection["net"] == Decimal("300.00")

        by_day = {row["day"]: row for row in projection["days"]}
        assert by_day[today + timedelta(days=1)]["accumulated"] == Decimal("-200.00")
        assert by_day[today + timedelta(days=2)]["accumulated"] == Decimal("300.00")
        assert by_day[today + timedelta(days=5)]["accumulated"] == Decimal("300.00")

    def test_settled_documents_leave_the_projection(self, db_session, ctx):
        service = PayableService(db_session)
        payable = service.create_payable(ctx, payable_data("80.00", days=1))
        service.pay(ctx, payable.id, PostingCreate(
            applied_amount=Decimal("80.00"),
            breakdown=[{"payment_method": PaymentMethod.PIX, "amount": Decimal("80.00")}],
        ))

        projection = service.cash_flow(ctx.tenant_id, days=3)
        assert projection["total_payables"] == Decimal("0.00")


class TestPayableAPI:

    @pytest.fixture
    def payable(self, client, auth_headers):
        response = client.post(
            "/financial/payables",
            json={
                "counterparty_id": str(uuid4()),
                "counterparty_name": "Energía SA",
                "due_date": str(date.today() + timedelta(days=3)),
                "original_amount": "320.40",
                "document_type": "bill",
                "category": "fixed_expense",
                "pix_key": "energia@pagos",
            },
            headers=auth_headers(),
        )
        assert response.status_code == 201
        return response.json()

    def test_create_and_pay_in_two_steps(self, client, auth_headers, payable):
        headers = auth_headers(role="accountant")
        url = f"/financial/payables/{payable['id']}/payments"

        first = client.post(
            url, json={"applied_amount": "120.40", "breakdown": [{"payment_method": "pix", "amount": "120.40"}]},
            headers=headers,
        ).json()
        assert Decimal(first["new_balance"]) == Decimal("200.00")

        second = client.post(
            url, json={"applied_amount": "200.00", "breakdown": [{"payment_method": "pix", "amount": "200.00"}]},
            headers=headers,
        ).json()
        assert second["new_status"] == "settled"

    def test_filter_by_category(self, client, auth_headers, payable):
        headers = auth_headers()
        assert client.get("/financial/payables?category=fixed_expense", headers=headers).json()["pagination"]["total"] == 1
        assert client.get("/financial/payables?category=tax", headers=headers).json()["pagination"]["total"] == 0

    def test_patch_cost_center(self, client, auth_headers, payable):
        response = client.patch(
            f"/financial/payables/{payable['id']}", json={"cost_center": "ADM-01"}, headers=auth_headers()
        )
        assert response.status_code == 200
        assert response.json()["cost_center"] == "ADM-01"

    def test_patch_null_category_is_422(self, client, auth_headers, payable):
        response = client.patch(
            f"/financial/payables/{payable['id']}", json={"category": None}, headers=auth_headers()
        )
        assert response.status_code == 422
        assert response.json()["detail"]["code"] == "VALIDATION"
        assert response.json()["detail"]["field"] == "category"

        detail = client.get(f"/financial/payables/{payable['id']}", headers=auth_headers()).json()
        assert detail["category"] == "fixed_expense"

    def test_patch_canceled_payable_is_invalid_state(self, client, auth_headers, payable):
        headers = auth_headers()
        client.post(f"/financial/payables/{payable['id']}/cancel", json={"reason": "Anulada"}, headers=headers)

        response = client.patch(f"/financial/payables/{payable['id']}", json={"notes": "x"}, headers=headers)
        assert response.status_code == 409

    def test_summary_endpoint(self, client, auth_headers, payable):
        summary = client.get("/financial/payables/summary", headers=auth_headers()).json()
        assert Decimal(summary["open_total"]) == Decimal("320.40")
        assert summary["by_category"][0]["category"] == "fixed_expense"

    def test_cash_flow_endpoint(self, client, auth_headers, payable):
        response = client.get("/financial/cash-flow?days=7", headers=auth_headers())
        assert response.status_code == 200
        body = response.json()
        assert len(body["days"]) == 8
        assert Decimal(body["total_payables"]) == Decimal("320.40")

    def test_cash_flow_days_must_be_positive(self, client, auth_headers):
        response = client.get("/financial/cash-flow?days=0", headers=auth_headers())
        assert response.status_code == 422
