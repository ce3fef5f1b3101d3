from pydantic import BaseModel, Field
from typing import Optional, List
from uuid import UUID

from app.modules.ledger.models import PaymentMethod
from app.modules.ledger.schemas import LedgerDocumentCreate, LedgerDocumentOut, PostingOut
from app.modules.receivables.models import ReceivableDocumentType


class ReceivableCreate(LedgerDocumentCreate):
    document_type: ReceivableDocumentType = ReceivableDocumentType.DUPLICATE
    sale_id: Optional[UUID] = None
    bank_slip_line: Optional[str] = Field(None, max_length=60)
    barcode: Optional[str] = Field(None, max_length=60)


class ReceivableUpdate(BaseModel):
    """Metadatos editables mientras la cuenta está abierta"""
    description: Optional[str] = Field(None, max_length=255)
    counterparty_name: Optional[str] = Field(None, max_length=150)
    payment_method: Optional[PaymentMethod] = None
    bank_account_id: Optional[UUID] = None
    bank_slip_line: Optional[str] = Field(None, max_length=60)
    barcode: Optional[str] = Field(None, max_length=60)
    notes: Optional[str] = None

    model_config = {"extra": "forbid"}


class ReceivableOut(LedgerDocumentOut):
    document_type: ReceivableDocumentType
    sale_id: Optional[UUID] = None
    bank_slip_line: Optional[str] = None
    barcode: Optional[str] = None


class ReceivableDetail(ReceivableOut):
    postings: List[PostingOut] = []
