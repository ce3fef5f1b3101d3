from pydantic import BaseModel, Field
from typing import Optional
from uuid import UUID
from datetime import date, datetime
from decimal import Decimal
from app.modules.banking.models import EntryDirection, EntryCategory, OriginType


class BankAccountCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    bank_name: Optional[str] = Field(None, max_length=100)
    agency: Optional[str] = Field(None, max_length=20)
    account_number: Optional[str] = Field(None, max_length=40)
    branch_id: Optional[UUID] = None
    opening_balance: Decimal = Field(Decimal("0"), ge=0, max_digits=15, decimal_places=2)


class BankAccountOut(BaseModel):
    id: UUID
    name: str
    bank_name: Optional[str] = None
    agency: Optional[str] = None
    account_number: Optional[str] = None
    branch_id: Optional[UUID] = None
    opening_balance: Decimal
    current_balance: Decimal = Decimal("0")
    is_active: bool

    model_config = {"from_attributes": True}


class BankLedgerEntryOut(BaseModel):
    id: UUID
    bank_account_id: UUID
    direction: EntryDirection
    category: EntryCategory
    amount: Decimal
    entry_date: date
    description: str
    reference: Optional[str] = None
    origin_type: OriginType
    origin_id: Optional[UUID] = None
    created_by: UUID
    created_at: datetime

    model_config = {"from_attributes": True}
