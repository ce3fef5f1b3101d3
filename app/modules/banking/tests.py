"""
Tests de cuentas bancarias y libro bancario
"""
from datetime import date
from decimal import Decimal
from uuid import uuid4

import pytest

from app.common.exceptions import NotFoundError, ValidationError
from app.modules.banking.models import EntryCategory, EntryDirection, OriginType
from app.modules.banking.schemas import BankAccountCreate
from app.modules.banking.service import BankingService


@pytest.fixture
def account(db_session, ctx):
    return BankingService(db_session).create_account(
        ctx, BankAccountCreate(name="Cuenta corriente", bank_name="Banco Uno", opening_balance=Decimal("1000.00"))
    )


class TestBankingService:

    def test_balance_is_opening_plus_signed_entries(self, db_session, ctx, account):
        service = BankingService(db_session)
        for direction, amount in ((EntryDirection.CREDIT, "250.00"), (EntryDirection.DEBIT, "100.50")):
            service.post_entry(
                ctx.tenant_id, ctx.user_id, account.id,
                direction=direction,
                category=EntryCategory.ADJUSTMENT,
                amount=Decimal(amount),
                entry_date=date.today(),
                description="Ajuste manual",
                origin_type=OriginType.MANUAL,
            )
        db_session.commit()

        assert service.balance(account) == Decimal("1149.50")

    def test_entry_amount_must_be_positive(self, db_session, ctx, account):
        with pytest.raises(ValidationError):
            BankingService(db_session).post_entry(
                ctx.tenant_id, ctx.user_id, account.id,
                direction=EntryDirection.CREDIT,
                category=EntryCategory.ADJUSTMENT,
                amount=Decimal("0"),
                entry_date=date.today(),
                description="Sin monto",
                origin_type=OriginType.MANUAL,
            )

    def test_account_of_other_tenant_is_not_found(self, db_session, account):
        with pytest.raises(NotFoundError):
            BankingService(db_session).get_account(uuid4(), account.id)

    def test_inactive_account_rejects_entries(self, db_session, ctx, account):
        account.is_active = False
        db_session.commit()

        with pytest.raises(NotFoundError):
            BankingService(db_session).post_entry(
                ctx.tenant_id, ctx.user_id, account.id,
                direction=EntryDirection.CREDIT,
                category=EntryCategory.ADJUSTMENT,
                amount=Decimal("10"),
                entry_date=date.today(),
                description="Cuenta inactiva",
                origin_type=OriginType.MANUAL,
            )


class TestBankAccountAPI:

    def test_create_and_list_accounts(self, client, auth_headers):
        headers = auth_headers()
        response = client.post(
            "/financial/bank-accounts",
            json={"name": "Caja de ahorro", "opening_balance": "500.00"},
            headers=headers,
        )
        assert response.status_code == 201
        body = response.json()
        assert Decimal(body["current_balance"]) == Decimal("500.00")

        listed = client.get("/financial/bank-accounts", headers=headers).json()
        assert [a["name"] for a in listed] == ["Caja de ahorro"]

    def test_seller_cannot_read_bank_accounts(self, client, auth_headers):
        response = client.get("/financial/bank-accounts", headers=auth_headers(role="seller"))
        assert response.status_code == 403

    def test_entries_listing_is_paginated(self, client, auth_headers, db_session, ctx, account):
        service = BankingService(db_session)
        for i in range(3):
            service.post_entry(
                ctx.tenant_id, ctx.user_id, account.id,
                direction=EntryDirection.CREDIT,
                category=EntryCategory.ADJUSTMENT,
                amount=Decimal("10"),
                entry_date=date.today(),
                description=f"Movimiento {i}",
                origin_type=OriginType.MANUAL,
            )
        db_session.commit()

        response = client.get(
            f"/financial/bank-accounts/{account.id}/entries?page=1&limit=2", headers=auth_headers()
        )
        assert response.status_code == 200
        body = response.json()
        assert len(body["data"]) == 2
        assert body["pagination"] == {"page": 1, "limit": 2, "total": 3, "pages": 2}

    def test_unknown_account_is_404_with_code(self, client, auth_headers):
        response = client.get(f"/financial/bank-accounts/{uuid4()}", headers=auth_headers())
        assert response.status_code == 404
        assert response.json()["detail"]["code"] == "NOT_FOUND"
