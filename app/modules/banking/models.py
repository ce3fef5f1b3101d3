"""
Modelos de cuentas bancarias y libro bancario.

Cada movimiento referencia su origen con (origin_type, origin_id) y lleva
una etiqueta de trazabilidad (`reference`) con el número del documento.
"""
from app.database.database import Base
from sqlalchemy import Column, String, Boolean, Date, ForeignKey, Numeric, Enum, Text, Index
from sqlalchemy.orm import relationship
from sqlalchemy.dialects.postgresql import UUID
from app.common.mixins import BaseMixin, BranchMixin
import enum


class EntryDirection(str, enum.Enum):
    CREDIT = "credit"   # Entrada de dinero
    DEBIT = "debit"     # Salida de dinero


class EntryCategory(str, enum.Enum):
    RECEIPT = "receipt"                   # Cobro de cuenta por cobrar
    PAYMENT = "payment"                   # Pago de cuenta por pagar
    TILL_WITHDRAWAL = "till_withdrawal"   # Sangría de caja depositada
    ADJUSTMENT = "adjustment"


class OriginType(str, enum.Enum):
    RECEIVABLE_POSTING = "receivable_posting"
    PAYABLE_POSTING = "payable_posting"
    CASH_POSTING = "cash_posting"
    MANUAL = "manual"


class BankAccount(Base, BaseMixin, BranchMixin):
    __tablename__ = "bank_accounts"

    name = Column(String(100), nullable=False)
    bank_name = Column(String(100), nullable=True)
    agency = Column(String(20), nullable=True)
    account_number = Column(String(40), nullable=True)
    opening_balance = Column(Numeric(15, 2), nullable=False, default=0)
    is_active = Column(Boolean, nullable=False, default=True)

    entries = relationship("BankLedgerEntry", back_populates="account", lazy="dynamic")


class BankLedgerEntry(Base, BaseMixin):
    """Movimiento bancario. Nunca se edita ni se borra."""
    __tablename__ = "bank_ledger_entries"

    bank_account_id = Column(UUID(as_uuid=True), ForeignKey("bank_accounts.id"), nullable=False, index=True)
    direction = Column(Enum(EntryDirection), nullable=False)
    category = Column(Enum(EntryCategory), nullable=False)
    amount = Column(Numeric(15, 2), nullable=False)
    entry_date = Column(Date, nullable=False, index=True)
    description = Column(String(255), nullable=False)
    reference = Column(String(60), nullable=True, index=True)
    origin_type = Column(Enum(OriginType), nullable=False)
    origin_id = Column(UUID(as_uuid=True), nullable=True)
    created_by = Column(UUID(as_uuid=True), nullable=False)
    notes = Column(Text, nullable=True)

    account = relationship("BankAccount", back_populates="entries")

    __table_args__ = (
        Index("ix_bank_ledger_entries_origin", "origin_type", "origin_id"),
    )
