from pydantic import BaseModel, Field
from typing import Optional, List
from uuid import UUID
from datetime import date
from decimal import Decimal

from app.modules.ledger.models import PaymentMethod
from app.modules.ledger.schemas import LedgerDocumentCreate, LedgerDocumentOut, LedgerSummary, PostingOut
from app.modules.payables.models import PayableCategory, PayableDocumentType


class PayableCreate(LedgerDocumentCreate):
    document_type: PayableDocumentType = PayableDocumentType.DUPLICATE
    category: PayableCategory = PayableCategory.OTHER
    cost_center: Optional[str] = Field(None, max_length=60)
    purchase_order_id: Optional[UUID] = None
    bank_slip_line: Optional[str] = Field(None, max_length=60)
    barcode: Optional[str] = Field(None, max_length=60)
    pix_key: Optional[str] = Field(None, max_length=100)


class PayableUpdate(BaseModel):
    """Metadatos editables mientras la cuenta está abierta"""
    description: Optional[str] = Field(None, max_length=255)
    counterparty_name: Optional[str] = Field(None, max_length=150)
    category: Optional[PayableCategory] = None
    cost_center: Optional[str] = Field(None, max_length=60)
    payment_method: Optional[PaymentMethod] = None
    bank_account_id: Optional[UUID] = None
    bank_slip_line: Optional[str] = Field(None, max_length=60)
    barcode: Optional[str] = Field(None, max_length=60)
    pix_key: Optional[str] = Field(None, max_length=100)
    notes: Optional[str] = None

    model_config = {"extra": "forbid"}


class PayableOut(LedgerDocumentOut):
    document_type: PayableDocumentType
    category: PayableCategory
    cost_center: Optional[str] = None
    purchase_order_id: Optional[UUID] = None
    bank_slip_line: Optional[str] = None
    barcode: Optional[str] = None
    pix_key: Optional[str] = None


class PayableDetail(PayableOut):
    postings: List[PostingOut] = []


class CategoryTotal(BaseModel):
    category: PayableCategory
    open_balance: Decimal
    documents: int


class PayableSummary(LedgerSummary):
    by_category: List[CategoryTotal] = []


class CashFlowDay(BaseModel):
    day: date
    receivables: Decimal
    payables: Decimal
    net: Decimal
    accumulated: Decimal


class CashFlowProjection(BaseModel):
    start_date: date
    end_date: date
    total_receivables: Decimal
    total_payables: Decimal
    net: Decimal
    days: List[CashFlowDay]
