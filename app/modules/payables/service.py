"""
Servicio de cuentas por pagar.

Igual que cuentas por cobrar pero el pago genera un DÉBITO bancario.
Agrega totales por categoría y la proyección de flujo de caja.
"""
from datetime import date, timedelta
from typing import Optional
from uuid import UUID

from sqlalchemy import func
from sqlalchemy.orm import Session

from app.common.pagination import PageParams
from app.modules.auth.schemas import AuthContext
from app.modules.banking.models import EntryCategory, EntryDirection, OriginType
from app.modules.ledger.engine import LedgerConfig, SettlementEngine, money, ZERO
from app.modules.ledger.models import DocumentStatus
from app.modules.ledger.schemas import DocumentFilters, PostingCreate
from app.modules.payables.models import (
    Payable, PayablePosting, PayablePostingMethod, PayableCategory, PayableDocumentType
)
from app.modules.payables.schemas import PayableCreate, PayableUpdate
from app.modules.receivables.models import Receivable
from app.modules.sequences.models import DocumentType

PAYABLE_LEDGER = LedgerConfig(
    entity_type="payable",
    label="Pago",
    document_label="Cuenta por pagar",
    document_model=Payable,
    posting_model=PayablePosting,
    method_model=PayablePostingMethod,
    bank_direction=EntryDirection.DEBIT,
    bank_category=EntryCategory.PAYMENT,
    origin_type=OriginType.PAYABLE_POSTING,
    sequence_type=DocumentType.PAYABLE,
    updatable_fields=frozenset({
        "description", "counterparty_name", "category", "cost_center", "payment_method",
        "bank_account_id", "bank_slip_line", "barcode", "pix_key", "notes",
    }),
)


class PayableService:
    """Servicio para cuentas por pagar"""

    def __init__(self, db: Session):
        self.db = db
        self.engine = SettlementEngine(db, PAYABLE_LEDGER)

    def create_payable(self, ctx: AuthContext, data: PayableCreate) -> Payable:
        return self.engine.create(
            ctx, data,
            document_type=data.document_type,
            category=data.category,
            cost_center=data.cost_center,
            purchase_order_id=data.purchase_order_id,
            bank_slip_line=data.bank_slip_line,
            barcode=data.barcode,
            pix_key=data.pix_key,
        )

    def get_payable(self, tenant_id: UUID, payable_id: UUID) -> Payable:
        return self.engine.get(tenant_id, payable_id)

    def list_payables(self, tenant_id: UUID, filters: DocumentFilters, params: PageParams,
                      category: Optional[PayableCategory] = None,
                      document_type: Optional[PayableDocumentType] = None) -> dict:
        def by_category(query):
            if category:
                query = query.filter(Payable.category == category)
            if document_type:
                query = query.filter(Payable.document_type == document_type)
            return query

        return self.engine.list(tenant_id, filters, params, extra_filters=by_category)

    def pay(self, ctx: AuthContext, payable_id: UUID, data: PostingCreate) -> dict:
        """Registrar un pago (total o parcial)"""
        return self.engine.apply(ctx, payable_id, data)

    def cancel_payable(self, ctx: AuthContext, payable_id: UUID, reason: str) -> Payable:
        return self.engine.cancel(ctx, payable_id, reason)

    def reschedule_payable(self, ctx: AuthContext, payable_id: UUID,
                           new_due_date: date, reason: str) -> Payable:
        return self.engine.reschedule(ctx, payable_id, new_due_date, reason)

    def update_payable(self, ctx: AuthContext, payable_id: UUID, data: PayableUpdate) -> Payable:
        return self.engine.update(ctx, payable_id, data)

    def get_summary(self, tenant_id: UUID, branch_id: Optional[UUID] = None) -> dict:
        summary = self.engine.summary(tenant_id, branch_id)

        query = self.db.query(
            Payable.category,
            func.coalesce(func.sum(Payable.balance), 0),
            func.count(Payable.id),
        ).filter(
            Payable.tenant_id == tenant_id,
            Payable.status == DocumentStatus.OPEN
        )
        if branch_id:
            query = query.filter(Payable.branch_id == branch_id)
        rows = query.group_by(Payable.category).order_by(func.sum(Payable.balance).desc()).all()

        summary["by_category"] = [
            {"category": row[0], "open_balance": money(row[1]), "documents": int(row[2])}
            for row in rows
        ]
        return summary

    def cash_flow(self, tenant_id: UUID, days: int, branch_id: Optional[UUID] = None,
                  today: Optional[date] = None) -> dict:
        """
        Proyección diaria de saldos abiertos a cobrar y a pagar que vencen
        entre hoy y hoy + `days`.
        """
        start = today or date.today()
        end = start + timedelta(days=days)

        def open_by_day(model):
            query = self.db.query(
                model.due_date, func.coalesce(func.sum(model.balance), 0)
            ).filter(
                model.tenant_id == tenant_id,
                model.status == DocumentStatus.OPEN,
                model.due_date >= start,
                model.due_date <= end
            )
            if branch_id:
                query = query.filter(model.branch_id == branch_id)
            return {row[0]: money(row[1]) for row in query.group_by(model.due_date).all()}

        incoming = open_by_day(Receivable)
        outgoing = open_by_day(Payable)

        result_days = []
        accumulated = ZERO
        for offset in range(days + 1):
            day = start + timedelta(days=offset)
            receivables = incoming.get(day, ZERO)
            payables = outgoing.get(day, ZERO)
            net = receivables - payables
            accumulated += net
            result_days.append({
                "day": day,
                "receivables": receivables,
                "payables": payables,
                "net": net,
                "accumulated": accumulated,
            })

        total_receivables = sum(incoming.values(), ZERO)
        total_payables = sum(outgoing.values(), ZERO)
        return {
            "start_date": start,
            "end_date": end,
            "total_receivables": total_receivables,
            "total_payables": total_payables,
            "net": total_receivables - total_payables,
            "days": result_days,
        }
