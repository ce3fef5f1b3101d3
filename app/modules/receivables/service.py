"""
Servicio de cuentas por cobrar.

Toda la lógica de saldo/estado vive en el SettlementEngine; aquí solo se
declara la configuración y los campos propios de la cuenta por cobrar.
"""
from datetime import date
from typing import Optional
from uuid import UUID

from sqlalchemy.orm import Session

from app.common.pagination import PageParams
from app.modules.auth.schemas import AuthContext
from app.modules.banking.models import EntryCategory, EntryDirection, OriginType
from app.modules.ledger.engine import LedgerConfig, SettlementEngine
from app.modules.ledger.schemas import DocumentFilters, PostingCreate
from app.modules.receivables.models import (
    Receivable, ReceivablePosting, ReceivablePostingMethod, ReceivableDocumentType
)
from app.modules.receivables.schemas import ReceivableCreate, ReceivableUpdate
from app.modules.sequences.models import DocumentType

RECEIVABLE_LEDGER = LedgerConfig(
    entity_type="receivable",
    label="Cobro",
    document_label="Cuenta por cobrar",
    document_model=Receivable,
    posting_model=ReceivablePosting,
    method_model=ReceivablePostingMethod,
    bank_direction=EntryDirection.CREDIT,
    bank_category=EntryCategory.RECEIPT,
    origin_type=OriginType.RECEIVABLE_POSTING,
    sequence_type=DocumentType.RECEIVABLE,
    updatable_fields=frozenset({
        "description", "counterparty_name", "payment_method", "bank_account_id",
        "bank_slip_line", "barcode", "notes",
    }),
)


class ReceivableService:
    """Servicio para cuentas por cobrar"""

    def __init__(self, db: Session):
        self.db = db
        self.engine = SettlementEngine(db, RECEIVABLE_LEDGER)

    def create_receivable(self, ctx: AuthContext, data: ReceivableCreate) -> Receivable:
        return self.engine.create(
            ctx, data,
            document_type=data.document_type,
            sale_id=data.sale_id,
            bank_slip_line=data.bank_slip_line,
            barcode=data.barcode,
        )

    def get_receivable(self, tenant_id: UUID, receivable_id: UUID) -> Receivable:
        return self.engine.get(tenant_id, receivable_id)

    def list_receivables(self, tenant_id: UUID, filters: DocumentFilters, params: PageParams,
                         document_type: Optional[ReceivableDocumentType] = None) -> dict:
        def by_type(query):
            if document_type:
                query = query.filter(Receivable.document_type == document_type)
            return query

        return self.engine.list(tenant_id, filters, params, extra_filters=by_type)

    def receive(self, ctx: AuthContext, receivable_id: UUID, data: PostingCreate) -> dict:
        """Registrar un cobro (total o parcial)"""
        return self.engine.apply(ctx, receivable_id, data)

    def cancel_receivable(self, ctx: AuthContext, receivable_id: UUID, reason: str) -> Receivable:
        return self.engine.cancel(ctx, receivable_id, reason)

    def reschedule_receivable(self, ctx: AuthContext, receivable_id: UUID,
                              new_due_date: date, reason: str) -> Receivable:
        return self.engine.reschedule(ctx, receivable_id, new_due_date, reason)

    def update_receivable(self, ctx: AuthContext, receivable_id: UUID, data: ReceivableUpdate) -> Receivable:
        return self.engine.update(ctx, receivable_id, data)

    def get_summary(self, tenant_id: UUID, branch_id: Optional[UUID] = None) -> dict:
        return self.engine.summary(tenant_id, branch_id)
