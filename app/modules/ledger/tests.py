"""
Tests del motor de liquidación

Se ejercita el motor a través de la configuración de cuentas por cobrar:
alta, abonos parciales y totales, estados terminales, cancelación,
reprogramación, conciliación del saldo y atomicidad ante fallos.
"""
from datetime import date, timedelta
from decimal import Decimal
from uuid import uuid4

import pytest
from fastapi import HTTPException
from pydantic import ValidationError as PydanticValidationError

from app.common.exceptions import InvalidStateError, NotFoundError, ValidationError
from app.modules.audit.models import AuditLog
from app.modules.auth.schemas import AuthContext
from app.modules.banking.models import BankLedgerEntry, EntryDirection, OriginType
from app.modules.banking.schemas import BankAccountCreate
from app.modules.banking.service import BankingService
from app.modules.ledger.engine import SettlementEngine, money
from app.modules.ledger.models import DocumentStatus, PaymentMethod
from app.modules.ledger.schemas import PostingCreate
from app.modules.receivables.models import Receivable, ReceivablePosting, ReceivableDocumentType
from app.modules.receivables.schemas import ReceivableCreate, ReceivableUpdate
from app.modules.receivables.service import RECEIVABLE_LEDGER


def posting(amount, method=PaymentMethod.PIX, **kwargs) -> PostingCreate:
    amount = Decimal(amount)
    return PostingCreate(
        applied_amount=amount,
        breakdown=[{"payment_method": method, "amount": amount}],
        **kwargs,
    )


@pytest.fixture
def engine(db_session):
    return SettlementEngine(db_session, RECEIVABLE_LEDGER)


@pytest.fixture
def document(engine, ctx):
    data = ReceivableCreate(
        counterparty_id=uuid4(),
        counterparty_name="Cliente Uno",
        due_date=date.today() + timedelta(days=10),
        original_amount=Decimal("1000.00"),
    )
    return engine.create(ctx, data, document_type=data.document_type)


class TestMoney:

    def test_rounds_half_up_to_cents(self):
        assert money("10.005") == Decimal("10.01")
        assert money(None) == Decimal("0.00")
        assert money(3) == Decimal("3.00")


class TestDocumentCreation:

    def test_new_document_is_open_with_full_balance(self, document):
        assert document.total_amount == Decimal("1000.00")
        assert document.balance == Decimal("1000.00")
        assert document.status == DocumentStatus.OPEN

    def test_total_includes_interest_penalty_and_discount(self, engine, ctx):
        data = ReceivableCreate(
            counterparty_id=uuid4(),
            due_date=date.today(),
            original_amount=Decimal("500.00"),
            interest_amount=Decimal("10.00"),
            penalty_amount=Decimal("5.00"),
            discount_amount=Decimal("15.50"),
        )
        created = engine.create(ctx, data, document_type=data.document_type)
        assert created.total_amount == Decimal("499.50")
        assert created.balance == Decimal("499.50")

    def test_document_number_comes_from_sequence(self, engine, ctx, document):
        second = engine.create(
            ctx,
            ReceivableCreate(counterparty_id=uuid4(), due_date=date.today(), original_amount=Decimal("1")),
            document_type=ReceivableDocumentType.DUPLICATE,
        )
        assert document.document_number == "000001"
        assert second.document_number == "000002"

    def test_total_below_one_cent_is_rejected(self):
        with pytest.raises(PydanticValidationError):
            ReceivableCreate(
                counterparty_id=uuid4(),
                due_date=date.today(),
                original_amount=Decimal("10.00"),
                discount_amount=Decimal("10.00"),
            )

    def test_installment_cannot_exceed_total_installments(self):
        with pytest.raises(PydanticValidationError):
            ReceivableCreate(
                counterparty_id=uuid4(),
                due_date=date.today(),
                original_amount=Decimal("10.00"),
                installment=3,
                total_installments=2,
            )


class TestSettlement:

    def test_full_settlement(self, engine, ctx, document):
        result = engine.apply(ctx, document.id, posting("1000.00"))

        assert result["new_balance"] == Decimal("0.00")
        assert result["new_status"] == DocumentStatus.SETTLED
        refreshed = engine.get(ctx.tenant_id, document.id)
        assert refreshed.status == DocumentStatus.SETTLED
        assert refreshed.settled_at is not None

    def test_partial_then_final_then_invalid_state(self, engine, ctx, document):
        first = engine.apply(ctx, document.id, posting("400.00"))
        assert first["new_balance"] == Decimal("600.00")
        assert first["new_status"] == DocumentStatus.OPEN

        second = engine.apply(ctx, document.id, posting("600.00"))
        assert second["new_balance"] == Decimal("0.00")
        assert second["new_status"] == DocumentStatus.SETTLED

        with pytest.raises(InvalidStateError) as exc:
            engine.apply(ctx, document.id, posting("1.00"))
        assert exc.value.detail["current_status"] == "settled"

    def test_balance_matches_posting_history(self, engine, ctx, document, db_session):
        for amount in ("100.00", "250.25", "49.75"):
            engine.apply(ctx, document.id, posting(amount))

        refreshed = engine.get(ctx.tenant_id, document.id)
        assert refreshed.balance == Decimal("600.00")
        assert engine.posted_total(document.id) == Decimal("400.00")
        assert [p.balance_after for p in sorted(refreshed.postings, key=lambda p: p.balance_after, reverse=True)] == [
            Decimal("900.00"), Decimal("649.75"), Decimal("600.00")
        ]
        engine.verify(refreshed)

    def test_overpayment_is_rejected_without_changes(self, engine, ctx, document, db_session):
        with pytest.raises(ValidationError) as exc:
            engine.apply(ctx, document.id, posting("1000.01"))
        assert exc.value.detail["field"] == "applied_amount"

        refreshed = engine.get(ctx.tenant_id, document.id)
        assert refreshed.balance == Decimal("1000.00")
        assert refreshed.status == DocumentStatus.OPEN
        assert db_session.query(ReceivablePosting).count() == 0

    def test_breakdown_must_match_applied_amount(self):
        with pytest.raises(PydanticValidationError):
            PostingCreate(
                applied_amount=Decimal("100.00"),
                breakdown=[
                    {"payment_method": PaymentMethod.CASH, "amount": Decimal("60.00")},
                    {"payment_method": PaymentMethod.PIX, "amount": Decimal("30.00")},
                ],
            )

    def test_breakdown_lines_are_stored_in_order(self, engine, ctx, document):
        data = PostingCreate(
            applied_amount=Decimal("300.00"),
            breakdown=[
                {"payment_method": PaymentMethod.CASH, "amount": Decimal("100.00")},
                {"payment_method": PaymentMethod.CREDIT_CARD, "amount": Decimal("200.00")},
            ],
        )
        engine.apply(ctx, document.id, data)

        refreshed = engine.get(ctx.tenant_id, document.id)
        methods = refreshed.postings[0].methods
        assert [(m.position, m.payment_method) for m in methods] == [
            (0, PaymentMethod.CASH), (1, PaymentMethod.CREDIT_CARD)
        ]

    def test_net_amount_adds_interest_and_penalty_minus_discount(self, engine, ctx, document):
        result = engine.apply(
            ctx, document.id,
            posting("200.00", interest_amount=Decimal("12.00"), penalty_amount=Decimal("4.00"),
                    discount_amount=Decimal("6.00")),
        )
        assert result["net_amount"] == Decimal("210.00")
        assert result["new_balance"] == Decimal("800.00")

    def test_unknown_document_is_not_found(self, engine, ctx):
        with pytest.raises(NotFoundError):
            engine.apply(ctx, uuid4(), posting("10.00"))

    def test_other_tenant_cannot_settle(self, engine, document, user_id):
        stranger = AuthContext(user_id=user_id, tenant_id=uuid4(), user_role="owner")
        with pytest.raises(NotFoundError):
            engine.apply(stranger, document.id, posting("10.00"))


class TestBankSideEffect:

    @pytest.fixture
    def account(self, db_session, ctx):
        return BankingService(db_session).create_account(ctx, BankAccountCreate(name="Banco principal"))

    def test_settlement_with_bank_account_writes_credit_entry(self, engine, ctx, document, account, db_session):
        result = engine.apply(
            ctx, document.id, posting("300.00", bank_account_id=account.id, interest_amount=Decimal("3.00"))
        )

        entry = db_session.query(BankLedgerEntry).one()
        assert result["bank_entry_id"] == entry.id
        assert entry.direction == EntryDirection.CREDIT
        assert entry.amount == Decimal("303.00")
        assert entry.origin_type == OriginType.RECEIVABLE_POSTING
        assert entry.origin_id == result["posting_id"]
        assert entry.description == f"Cobro - {document.document_number}"
        assert BankingService(db_session).balance(account) == Decimal("303.00")

    def test_settlement_without_bank_account_writes_no_entry(self, engine, ctx, document, db_session):
        result = engine.apply(ctx, document.id, posting("300.00"))
        assert result["bank_entry_id"] is None
        assert db_session.query(BankLedgerEntry).count() == 0

    def test_failed_bank_write_rolls_back_everything(self, engine, ctx, document, account, db_session):
        account.is_active = False
        db_session.commit()

        with pytest.raises(NotFoundError):
            engine.apply(ctx, document.id, posting("300.00", bank_account_id=account.id))

        refreshed = engine.get(ctx.tenant_id, document.id)
        assert refreshed.balance == Decimal("1000.00")
        assert refreshed.status == DocumentStatus.OPEN
        assert db_session.query(ReceivablePosting).count() == 0
        assert db_session.query(BankLedgerEntry).count() == 0

    def test_reconciliation_failure_aborts_the_posting(self, engine, ctx, document, db_session, monkeypatch):
        monkeypatch.setattr(engine, "posted_total", lambda document_id: Decimal("1.00"))

        with pytest.raises(HTTPException) as exc:
            engine.apply(ctx, document.id, posting("300.00"))
        assert exc.value.status_code == 500

        stored = db_session.query(Receivable).filter(Receivable.id == document.id).one()
        assert stored.balance == Decimal("1000.00")
        assert db_session.query(ReceivablePosting).count() == 0


class TestLifecycle:

    def test_cancel_keeps_balance_and_blocks_settlement(self, engine, ctx, document):
        engine.apply(ctx, document.id, posting("100.00"))
        canceled = engine.cancel(ctx, document.id, "Venta anulada")

        assert canceled.status == DocumentStatus.CANCELED
        assert canceled.balance == Decimal("900.00")
        assert canceled.cancel_reason == "Venta anulada"

        with pytest.raises(InvalidStateError):
            engine.apply(ctx, document.id, posting("10.00"))
        assert engine.get(ctx.tenant_id, document.id).balance == Decimal("900.00")

    def test_settled_document_cannot_be_canceled(self, engine, ctx, document):
        engine.apply(ctx, document.id, posting("1000.00"))
        with pytest.raises(InvalidStateError):
            engine.cancel(ctx, document.id, "Tarde")

    def test_reschedule_changes_due_date_and_audits(self, engine, ctx, document, db_session):
        new_due = document.due_date + timedelta(days=15)
        rescheduled = engine.reschedule(ctx, document.id, new_due, "Acuerdo con el cliente")

        assert rescheduled.due_date == new_due
        log = db_session.query(AuditLog).filter(AuditLog.action == "RESCHEDULE").one()
        assert log.after["reason"] == "Acuerdo con el cliente"
        assert log.before["due_date"] == str(new_due - timedelta(days=15))

    def test_reschedule_to_same_date_is_rejected(self, engine, ctx, document):
        with pytest.raises(ValidationError):
            engine.reschedule(ctx, document.id, document.due_date, "Sin cambio")

    def test_update_applies_only_allowed_fields(self, engine, ctx, document):
        updated = engine.update(ctx, document.id, ReceivableUpdate(notes="Llamar el lunes", barcode="123"))
        assert updated.notes == "Llamar el lunes"
        assert updated.barcode == "123"
        assert updated.balance == Decimal("1000.00")

    def test_update_outside_allow_list_is_rejected(self, engine, ctx, document, db_session):
        class Sneaky(ReceivableUpdate):
            balance: Decimal = None

        with pytest.raises(ValidationError) as exc:
            engine.update(ctx, document.id, Sneaky(balance=Decimal("1.00")))
        assert exc.value.detail["field"] == "balance"
        assert engine.get(ctx.tenant_id, document.id).balance == Decimal("1000.00")

    def test_every_mutation_is_audited(self, engine, ctx, document, db_session):
        engine.apply(ctx, document.id, posting("10.00"))
        engine.cancel(ctx, document.id, "Duplicado")

        actions = [row.action for row in db_session.query(AuditLog).order_by(AuditLog.created_at).all()]
        assert sorted(actions) == ["CANCEL", "CREATE", "SETTLE"]


class TestSummary:

    def test_summary_excludes_canceled_and_splits_overdue(self, engine, ctx, db_session):
        today = date.today()

        def create(amount, due):
            data = ReceivableCreate(counterparty_id=uuid4(), due_date=due, original_amount=Decimal(amount))
            return engine.create(ctx, data, document_type=data.document_type)

        overdue = create("100.00", today - timedelta(days=3))
        upcoming = create("200.00", today + timedelta(days=2))
        create("300.00", today + timedelta(days=40))
        canceled = create("50.00", today)

        engine.cancel(ctx, canceled.id, "Error de carga")
        engine.apply(ctx, upcoming.id, posting("20.00", effective_date=today))

        summary = engine.summary(ctx.tenant_id, today=today)

        assert summary["open_total"] == Decimal("580.00")
        assert summary["overdue_total"] == Decimal("100.00")
        assert summary["to_fall_due_total"] == Decimal("480.00")
        assert summary["open_count"] == 3
        assert summary["overdue_count"] == 1
        assert summary["canceled_count"] == 1
        assert summary["canceled_balance"] == Decimal("50.00")
        assert summary["settled_this_month"] == Decimal("20.00")
        assert [d.id for d in summary["upcoming"]] == [upcoming.id]
        assert summary["top_counterparties"][0]["open_balance"] == Decimal("300.00")
        assert overdue.id is not None
