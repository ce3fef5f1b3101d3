from pydantic import BaseModel, Field, field_validator, model_validator
from typing import Optional, List
from uuid import UUID
from datetime import date, datetime
from decimal import Decimal

from app.modules.ledger.models import DocumentStatus, PaymentMethod

Money = Decimal
CENT = Decimal("0.01")


# ===== DOCUMENTOS =====

class LedgerDocumentCreate(BaseModel):
    """Campos comunes de alta de un documento"""
    counterparty_id: UUID
    counterparty_name: Optional[str] = Field(None, max_length=150)
    document_number: Optional[str] = Field(None, max_length=60, description="Si se omite se asigna de la secuencia")
    description: Optional[str] = Field(None, max_length=255)
    branch_id: Optional[UUID] = None
    issue_date: Optional[date] = None
    due_date: date
    original_amount: Money = Field(..., ge=CENT, max_digits=15, decimal_places=2)
    interest_amount: Money = Field(Decimal("0"), ge=0, max_digits=15, decimal_places=2)
    penalty_amount: Money = Field(Decimal("0"), ge=0, max_digits=15, decimal_places=2)
    discount_amount: Money = Field(Decimal("0"), ge=0, max_digits=15, decimal_places=2)
    installment: int = Field(1, ge=1)
    total_installments: int = Field(1, ge=1)
    payment_method: Optional[PaymentMethod] = None
    bank_account_id: Optional[UUID] = None
    notes: Optional[str] = None

    @model_validator(mode="after")
    def validate_totals(self):
        total = self.original_amount + self.interest_amount + self.penalty_amount - self.discount_amount
        if total < CENT:
            raise ValueError("El total (original + interés + multa - descuento) debe ser al menos 0.01")
        if self.installment > self.total_installments:
            raise ValueError("La cuota no puede ser mayor al total de cuotas")
        return self


class LedgerDocumentOut(BaseModel):
    id: UUID
    document_number: str
    description: Optional[str] = None
    counterparty_id: UUID
    counterparty_name: Optional[str] = None
    branch_id: Optional[UUID] = None
    issue_date: date
    due_date: date
    original_amount: Money
    interest_amount: Money
    penalty_amount: Money
    discount_amount: Money
    total_amount: Money
    balance: Money
    settled_amount: Money
    status: DocumentStatus
    installment: int
    total_installments: int
    payment_method: Optional[PaymentMethod] = None
    bank_account_id: Optional[UUID] = None
    notes: Optional[str] = None
    cancel_reason: Optional[str] = None
    settled_at: Optional[datetime] = None
    canceled_at: Optional[datetime] = None
    created_by: UUID
    created_at: datetime

    model_config = {"from_attributes": True}


# ===== ABONOS =====

class BreakdownLine(BaseModel):
    payment_method: PaymentMethod
    amount: Money = Field(..., gt=0, max_digits=15, decimal_places=2)


class BreakdownLineOut(BreakdownLine):
    position: int

    model_config = {"from_attributes": True}


class PostingCreate(BaseModel):
    """Abono (cobro o pago) contra un documento"""
    applied_amount: Money = Field(..., ge=CENT, max_digits=15, decimal_places=2)
    interest_amount: Money = Field(Decimal("0"), ge=0, max_digits=15, decimal_places=2)
    penalty_amount: Money = Field(Decimal("0"), ge=0, max_digits=15, decimal_places=2)
    discount_amount: Money = Field(Decimal("0"), ge=0, max_digits=15, decimal_places=2)
    effective_date: Optional[date] = None
    breakdown: List[BreakdownLine] = Field(..., min_length=1)
    bank_account_id: Optional[UUID] = None
    note: Optional[str] = None

    @model_validator(mode="after")
    def validate_breakdown(self):
        total = sum((line.amount for line in self.breakdown), Decimal("0"))
        if total != self.applied_amount:
            raise ValueError(
                f"La suma del desglose ({total}) debe ser igual al monto aplicado ({self.applied_amount})"
            )
        return self


class PostingOut(BaseModel):
    id: UUID
    applied_amount: Money
    interest_amount: Money
    penalty_amount: Money
    discount_amount: Money
    net_amount: Money
    balance_after: Money
    effective_date: date
    bank_account_id: Optional[UUID] = None
    note: Optional[str] = None
    created_by: UUID
    created_at: datetime
    methods: List[BreakdownLineOut] = []

    model_config = {"from_attributes": True}


class SettlementResult(BaseModel):
    posting_id: UUID
    new_balance: Money
    new_status: DocumentStatus
    net_amount: Money
    bank_entry_id: Optional[UUID] = None
    message: str


# ===== CICLO DE VIDA =====

class CancelRequest(BaseModel):
    reason: str = Field(..., min_length=3, max_length=500)


class RescheduleRequest(BaseModel):
    new_due_date: date
    reason: str = Field(..., min_length=3, max_length=500)


class DocumentFilters(BaseModel):
    status: Optional[DocumentStatus] = None
    counterparty_id: Optional[UUID] = None
    due_from: Optional[date] = None
    due_to: Optional[date] = None
    overdue_only: bool = False
    branch_id: Optional[UUID] = None
    search: Optional[str] = None

    @field_validator("search")
    @classmethod
    def strip_search(cls, v):
        if v is None:
            return v
        v = v.strip()
        return v or None


# ===== RESUMEN =====

class UpcomingDocument(BaseModel):
    id: UUID
    document_number: str
    counterparty_name: Optional[str] = None
    due_date: date
    balance: Money

    model_config = {"from_attributes": True}


class CounterpartyBalance(BaseModel):
    counterparty_id: UUID
    counterparty_name: Optional[str] = None
    open_balance: Money
    documents: int


class LedgerSummary(BaseModel):
    open_total: Money
    overdue_total: Money
    to_fall_due_total: Money
    settled_this_month: Money
    open_count: int
    overdue_count: int
    canceled_count: int
    canceled_balance: Money
    upcoming: List[UpcomingDocument]
    top_counterparties: List[CounterpartyBalance]
