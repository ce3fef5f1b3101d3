"""
Tests del módulo de Caja

- Registro de cajas y actualización con lista de campos permitidos
- Apertura exclusiva por caja y por operador
- Suministro, sangría (con y sin cuenta destino) y ventas
- Cierre con arqueo por forma de pago
"""
from decimal import Decimal
from uuid import uuid4

import pytest
from sqlalchemy.exc import IntegrityError

from app.common.exceptions import (
    ConflictError, InsufficientFundsError, InvalidStateError, NotFoundError, ValidationError
)
from app.modules.audit.service import AuditService
from app.modules.auth.schemas import AuthContext
from app.modules.banking.models import BankLedgerEntry, EntryCategory, EntryDirection, OriginType
from app.modules.banking.schemas import BankAccountCreate
from app.modules.banking.service import BankingService
from app.modules.cash.models import CashPosting, CashSession, CashSessionStatus
from app.modules.cash.schemas import (
    TillCreate, TillUpdate, SessionOpen, SupplyCreate, WithdrawalCreate, SaleEntryCreate, SessionClose
)
from app.modules.cash.service import TillService, CashSessionService
from app.modules.ledger.models import PaymentMethod


@pytest.fixture
def till(db_session, ctx):
    return TillService(db_session).create_till(ctx, TillCreate(name="Caja 1"))


@pytest.fixture
def sessions(db_session):
    return CashSessionService(db_session)


@pytest.fixture
def open_session(sessions, ctx, till):
    return sessions.open_session(ctx, SessionOpen(till_id=till.id, opening_amount=Decimal("100.00")))


class TestOpenSession:

    def test_open_session(self, open_session, ctx):
        assert open_session.status == CashSessionStatus.OPEN
        assert open_session.opening_amount == Decimal("100.00")
        assert open_session.operator_id == ctx.user_id

    def test_second_session_on_same_till_conflicts(self, sessions, open_session, till, tenant_id, db_session):
        other_operator = AuthContext(user_id=uuid4(), tenant_id=tenant_id, user_role="seller")

        with pytest.raises(ConflictError):
            sessions.open_session(other_operator, SessionOpen(till_id=till.id))
        assert db_session.query(CashSession).count() == 1

    def test_operator_with_open_session_conflicts_on_other_till(self, sessions, open_session, ctx, db_session):
        other_till = TillService(db_session).create_till(ctx, TillCreate(name="Caja 2"))

        with pytest.raises(ConflictError):
            sessions.open_session(ctx, SessionOpen(till_id=other_till.id))
        assert db_session.query(CashSession).count() == 1

    def test_inactive_till_cannot_be_opened(self, sessions, ctx, till, db_session):
        till.is_active = False
        db_session.commit()

        with pytest.raises(InvalidStateError):
            sessions.open_session(ctx, SessionOpen(till_id=till.id))

    def test_partial_index_blocks_two_open_sessions_per_till(self, db_session, open_session, till, tenant_id):
        db_session.add(CashSession(
            tenant_id=tenant_id,
            till_id=till.id,
            operator_id=uuid4(),
            status=CashSessionStatus.OPEN,
            opening_amount=Decimal("0"),
        ))
        with pytest.raises(IntegrityError):
            db_session.commit()
        db_session.rollback()

    def test_closed_sessions_do_not_block_reopening(self, sessions, open_session, ctx, till):
        sessions.close_session(ctx, SessionClose(informed=[{"payment_method": "cash", "amount": "100.00"}]))
        reopened = sessions.open_session(ctx, SessionOpen(till_id=till.id))
        assert reopened.status == CashSessionStatus.OPEN


class TestCashPostings:

    def test_supply_withdrawal_and_close_with_discrepancy(self, sessions, open_session, ctx):
        supply = sessions.post_supply(ctx, open_session.id, SupplyCreate(amount=Decimal("50.00")))
        assert supply["live_balance"] == Decimal("150.00")

        withdrawal = sessions.post_withdrawal(ctx, open_session.id, WithdrawalCreate(amount=Decimal("30.00")))
        assert withdrawal["live_balance"] == Decimal("120.00")
        assert withdrawal["bank_entry_id"] is None

        result = sessions.close_session(
            ctx, SessionClose(informed=[{"payment_method": "cash", "amount": "125.00"}])
        )
        assert result["system_amount"] == Decimal("120.00")
        assert result["informed_amount"] == Decimal("125.00")
        assert result["discrepancy"] == Decimal("5.00")
        assert result["session"].status == CashSessionStatus.CLOSED
        assert result["message"] == "Caja cerrada con diferencia de +5.00"

    def test_withdrawal_above_cash_balance_is_rejected(self, sessions, open_session, ctx, db_session):
        sessions.post_supply(ctx, open_session.id, SupplyCreate(amount=Decimal("50.00")))
        sessions.post_withdrawal(ctx, open_session.id, WithdrawalCreate(amount=Decimal("30.00")))

        with pytest.raises(InsufficientFundsError) as exc:
            sessions.post_withdrawal(ctx, open_session.id, WithdrawalCreate(amount=Decimal("500.00")))

        assert exc.value.detail["available"] == "120.00"
        assert exc.value.detail["requested"] == "500.00"
        assert db_session.query(CashPosting).count() == 2
        assert sessions.live_balance(open_session) == Decimal("120.00")

    def test_card_sales_do_not_count_as_cash_for_withdrawals(self, sessions, open_session, ctx):
        sessions.post_sale(ctx, open_session.id, SaleEntryCreate(
            payment_method=PaymentMethod.CREDIT_CARD, amount=Decimal("400.00")
        ))
        assert sessions.live_balance(open_session) == Decimal("500.00")
        assert sessions.cash_balance(open_session) == Decimal("100.00")

        with pytest.raises(InsufficientFundsError):
            sessions.post_withdrawal(ctx, open_session.id, WithdrawalCreate(amount=Decimal("150.00")))

    def test_withdrawal_to_till_default_bank_account(self, db_session, ctx, tenant_id):
        account = BankingService(db_session).create_account(ctx, BankAccountCreate(name="Depósitos"))
        till = TillService(db_session).create_till(ctx, TillCreate(name="Caja banco", bank_account_id=account.id))
        sessions = CashSessionService(db_session)
        session = sessions.open_session(ctx, SessionOpen(till_id=till.id, opening_amount=Decimal("300.00")))

        result = sessions.post_withdrawal(ctx, session.id, WithdrawalCreate(amount=Decimal("200.00")))

        entry = db_session.query(BankLedgerEntry).one()
        assert result["bank_entry_id"] == entry.id
        assert entry.bank_account_id == account.id
        assert entry.direction == EntryDirection.CREDIT
        assert entry.category == EntryCategory.TILL_WITHDRAWAL
        assert entry.origin_type == OriginType.CASH_POSTING
        assert entry.origin_id == result["posting"].id
        assert BankingService(db_session).balance(account) == Decimal("200.00")

    def test_sale_is_audited(self, sessions, open_session, ctx, db_session):
        reference_id = uuid4()
        result = sessions.post_sale(ctx, open_session.id, SaleEntryCreate(
            payment_method=PaymentMethod.PIX, amount=Decimal("42.00"), reference_id=reference_id
        ))

        trail = AuditService(db_session).list_for_entity(ctx.tenant_id, "cash_session", open_session.id)
        sale = [entry for entry in trail if entry.action == "SALE"]
        assert len(sale) == 1
        assert sale[0].after["posting_id"] == str(result["posting"].id)
        assert sale[0].after["payment_method"] == "pix"
        assert sale[0].after["reference_id"] == str(reference_id)

    def test_cash_above_withdrawal_limit_is_flagged(self, db_session, ctx):
        till = TillService(db_session).create_till(
            ctx, TillCreate(name="Caja límite", withdrawal_limit=Decimal("150.00"))
        )
        sessions = CashSessionService(db_session)
        session = sessions.open_session(ctx, SessionOpen(till_id=till.id, opening_amount=Decimal("100.00")))

        below = sessions.post_sale(ctx, session.id, SaleEntryCreate(
            payment_method=PaymentMethod.CASH, amount=Decimal("50.00")
        ))
        assert below["over_withdrawal_limit"] is False

        above = sessions.post_sale(ctx, session.id, SaleEntryCreate(
            payment_method=PaymentMethod.CASH, amount=Decimal("0.01")
        ))
        assert above["over_withdrawal_limit"] is True
        assert sessions.describe_session(session)["over_withdrawal_limit"] is True

        after_withdrawal = sessions.post_withdrawal(ctx, session.id, WithdrawalCreate(amount=Decimal("100.00")))
        assert after_withdrawal["over_withdrawal_limit"] is False

    def test_till_without_limit_is_never_flagged(self, sessions, open_session, ctx):
        result = sessions.post_supply(ctx, open_session.id, SupplyCreate(amount=Decimal("10000.00")))
        assert result["over_withdrawal_limit"] is False

    def test_postings_on_closed_session_are_invalid(self, sessions, open_session, ctx):
        sessions.close_session(ctx, SessionClose(informed=[{"payment_method": "cash", "amount": "100.00"}]))

        with pytest.raises(InvalidStateError):
            sessions.post_supply(ctx, open_session.id, SupplyCreate(amount=Decimal("1.00")))
        with pytest.raises(InvalidStateError):
            sessions.close_session(ctx, SessionClose(), session_id=open_session.id)


class TestCloseSession:

    def test_close_without_discrepancy(self, sessions, open_session, ctx):
        sessions.post_sale(ctx, open_session.id, SaleEntryCreate(payment_method=PaymentMethod.CASH, amount=Decimal("20.00")))
        sessions.post_sale(ctx, open_session.id, SaleEntryCreate(payment_method=PaymentMethod.PIX, amount=Decimal("35.00")))

        result = sessions.close_session(ctx, SessionClose(informed=[
            {"payment_method": "cash", "amount": "120.00"},
            {"payment_method": "pix", "amount": "35.00"},
        ]))

        assert result["discrepancy"] == Decimal("0.00")
        assert result["message"] == "Caja cerrada sin diferencia"
        assert [(row["payment_method"], row["difference"]) for row in result["by_method"]] == [
            (PaymentMethod.CASH, Decimal("0.00")), (PaymentMethod.PIX, Decimal("0.00"))
        ]

    def test_missing_method_counts_as_shortage(self, sessions, open_session, ctx):
        sessions.post_sale(ctx, open_session.id, SaleEntryCreate(payment_method=PaymentMethod.DEBIT_CARD, amount=Decimal("60.00")))

        result = sessions.close_session(ctx, SessionClose(informed=[{"payment_method": "cash", "amount": "100.00"}]))

        assert result["discrepancy"] == Decimal("-60.00")
        assert result["message"] == "Caja cerrada con diferencia de -60.00"
        assert result["session"].system_breakdown == {"cash": "100.00", "debit_card": "60.00"}

    def test_close_without_open_session_is_not_found(self, sessions, ctx, till):
        with pytest.raises(NotFoundError):
            sessions.close_session(ctx, SessionClose())


class TestTillUpdate:

    def test_null_on_required_field_is_rejected(self, db_session, ctx, till):
        with pytest.raises(ValidationError) as exc:
            TillService(db_session).update_till(ctx, till.id, TillUpdate(name=None))
        assert exc.value.detail["field"] == "name"

        db_session.refresh(till)
        assert till.name == "Caja 1"

    def test_null_on_optional_field_clears_it(self, db_session, ctx):
        till = TillService(db_session).create_till(ctx, TillCreate(name="Caja 9", withdrawal_limit=Decimal("50.00")))
        updated = TillService(db_session).update_till(ctx, till.id, TillUpdate(withdrawal_limit=None))
        assert updated.withdrawal_limit is None


class TestCashAPI:

    def test_till_registry(self, client, auth_headers):
        headers = auth_headers()
        created = client.post("/cash/tills", json={"name": "Caja frente"}, headers=headers)
        assert created.status_code == 201
        till_id = created.json()["id"]

        updated = client.patch(f"/cash/tills/{till_id}", json={"withdrawal_limit": "800.00"}, headers=headers)
        assert updated.status_code == 200
        assert Decimal(updated.json()["withdrawal_limit"]) == Decimal("800.00")

        rejected = client.patch(f"/cash/tills/{till_id}", json={"tenant_id": str(uuid4())}, headers=headers)
        assert rejected.status_code == 422

        for field in ("name", "is_active"):
            nulled = client.patch(f"/cash/tills/{till_id}", json={field: None}, headers=headers)
            assert nulled.status_code == 422
            assert nulled.json()["detail"]["code"] == "VALIDATION"
            assert nulled.json()["detail"]["field"] == field

        listed = client.get("/cash/tills", headers=auth_headers(role="seller")).json()
        assert listed[0]["open_session_id"] is None

    def test_my_till_flow(self, client, auth_headers):
        owner = auth_headers()
        seller = auth_headers(role="seller")
        till_id = client.post("/cash/tills", json={"name": "Caja 3"}, headers=owner).json()["id"]

        assert client.get("/cash/sessions/current", headers=seller).status_code == 404

        opened = client.post("/cash/sessions/open", json={"till_id": till_id, "opening_amount": "100.00"}, headers=seller)
        assert opened.status_code == 201
        session_id = opened.json()["id"]

        again = client.post("/cash/sessions/open", json={"till_id": till_id}, headers=seller)
        assert again.status_code == 409
        assert again.json()["detail"]["code"] == "CONFLICT"

        client.post(f"/cash/sessions/{session_id}/supply", json={"amount": "50.00"}, headers=seller)
        client.post(f"/cash/sessions/{session_id}/sales", json={"payment_method": "pix", "amount": "10.00"}, headers=seller)

        current = client.get("/cash/sessions/current", headers=seller).json()
        assert Decimal(current["live_balance"]) == Decimal("160.00")
        assert Decimal(current["cash_balance"]) == Decimal("150.00")
        assert current["till_name"] == "Caja 3"
        assert len(current["postings"]) == 2

        tills = client.get("/cash/tills", headers=owner).json()
        assert tills[0]["open_session_id"] == session_id

        too_much = client.post(f"/cash/sessions/{session_id}/withdrawal", json={"amount": "500.00"}, headers=seller)
        assert too_much.status_code == 400
        assert too_much.json()["detail"]["code"] == "INSUFFICIENT_FUNDS"

        closed = client.post(
            "/cash/sessions/close",
            json={"informed": [{"payment_method": "cash", "amount": "150.00"}, {"payment_method": "pix", "amount": "10.00"}]},
            headers=seller,
        )
        assert closed.status_code == 200
        assert closed.json()["message"] == "Caja cerrada sin diferencia"

    def test_duplicate_informed_method_is_422(self, client, auth_headers):
        response = client.post(
            "/cash/sessions/close",
            json={"informed": [{"payment_method": "cash", "amount": "1"}, {"payment_method": "cash", "amount": "2"}]},
            headers=auth_headers(),
        )
        assert response.status_code == 422

    def test_session_history(self, client, auth_headers, db_session, ctx, till):
        sessions = CashSessionService(db_session)
        sessions.open_session(ctx, SessionOpen(till_id=till.id))
        sessions.close_session(ctx, SessionClose())
        sessions.open_session(ctx, SessionOpen(till_id=till.id))

        headers = auth_headers(role="accountant")
        everything = client.get("/cash/sessions", headers=headers).json()
        assert everything["pagination"]["total"] == 2

        closed = client.get("/cash/sessions?status=closed", headers=headers).json()
        assert closed["pagination"]["total"] == 1

        seller = client.get("/cash/sessions", headers=auth_headers(role="seller"))
        assert seller.status_code == 403
