from pydantic import BaseModel, Field, field_validator
from typing import Optional, List
from uuid import UUID
from datetime import datetime
from decimal import Decimal

from app.modules.ledger.models import PaymentMethod
from app.modules.cash.models import CashSessionStatus, CashPostingKind, CashDirection


# ===== CAJAS =====

class TillCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    branch_id: Optional[UUID] = None
    bank_account_id: Optional[UUID] = None
    withdrawal_limit: Optional[Decimal] = Field(None, ge=0, max_digits=15, decimal_places=2)


class TillUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=100)
    branch_id: Optional[UUID] = None
    bank_account_id: Optional[UUID] = None
    withdrawal_limit: Optional[Decimal] = Field(None, ge=0, max_digits=15, decimal_places=2)
    is_active: Optional[bool] = None

    model_config = {"extra": "forbid"}


class TillOut(BaseModel):
    id: UUID
    name: str
    branch_id: Optional[UUID] = None
    bank_account_id: Optional[UUID] = None
    withdrawal_limit: Optional[Decimal] = None
    is_active: bool
    open_session_id: Optional[UUID] = None
    open_operator_id: Optional[UUID] = None

    model_config = {"from_attributes": True}


# ===== SESIONES =====

class SessionOpen(BaseModel):
    till_id: UUID
    opening_amount: Decimal = Field(Decimal("0"), ge=0, max_digits=15, decimal_places=2)
    notes: Optional[str] = None


class SupplyCreate(BaseModel):
    """Suministro de efectivo"""
    amount: Decimal = Field(..., gt=0, max_digits=15, decimal_places=2)
    note: Optional[str] = None


class WithdrawalCreate(BaseModel):
    """Sangría de efectivo"""
    amount: Decimal = Field(..., gt=0, max_digits=15, decimal_places=2)
    note: Optional[str] = None
    destination_bank_account_id: Optional[UUID] = None


class SaleEntryCreate(BaseModel):
    """Cobro de venta registrado en la sesión"""
    payment_method: PaymentMethod
    amount: Decimal = Field(..., gt=0, max_digits=15, decimal_places=2)
    reference_id: Optional[UUID] = None
    note: Optional[str] = None


class InformedLine(BaseModel):
    payment_method: PaymentMethod
    amount: Decimal = Field(..., ge=0, max_digits=15, decimal_places=2)


class SessionClose(BaseModel):
    informed: List[InformedLine] = []
    notes: Optional[str] = None

    @field_validator("informed")
    @classmethod
    def unique_methods(cls, v):
        methods = [line.payment_method for line in v]
        if len(methods) != len(set(methods)):
            raise ValueError("Cada forma de pago puede informarse una sola vez")
        return v


class MethodTotal(BaseModel):
    payment_method: PaymentMethod
    amount: Decimal


class MethodComparison(BaseModel):
    payment_method: PaymentMethod
    system: Decimal
    informed: Decimal
    difference: Decimal


class CashPostingOut(BaseModel):
    id: UUID
    kind: CashPostingKind
    direction: CashDirection
    payment_method: PaymentMethod
    amount: Decimal
    note: Optional[str] = None
    reference_id: Optional[UUID] = None
    destination_bank_account_id: Optional[UUID] = None
    created_by: UUID
    created_at: datetime

    model_config = {"from_attributes": True}


class CashSessionOut(BaseModel):
    id: UUID
    till_id: UUID
    operator_id: UUID
    status: CashSessionStatus
    opening_amount: Decimal
    opened_at: datetime
    opening_notes: Optional[str] = None
    closed_at: Optional[datetime] = None
    closing_notes: Optional[str] = None
    system_amount: Optional[Decimal] = None
    informed_amount: Optional[Decimal] = None
    discrepancy: Optional[Decimal] = None

    model_config = {"from_attributes": True}


class CashSessionLive(BaseModel):
    """Estado en vivo de una sesión"""
    session: CashSessionOut
    till_name: str
    live_balance: Decimal
    cash_balance: Decimal
    over_withdrawal_limit: bool = False
    by_method: List[MethodTotal]
    postings: List[CashPostingOut] = []


class CashPostingResult(BaseModel):
    posting: CashPostingOut
    cash_balance: Decimal
    over_withdrawal_limit: bool = False
    live_balance: Decimal
    bank_entry_id: Optional[UUID] = None


class CloseResult(BaseModel):
    session: CashSessionOut
    system_amount: Decimal
    informed_amount: Decimal
    discrepancy: Decimal
    by_method: List[MethodComparison]
    message: str
