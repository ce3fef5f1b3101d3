"""
Mixins de columnas para documentos del libro y sus abonos.

Cada especialización (cuentas por cobrar, cuentas por pagar) declara sus
propias tablas con estos mixins y las claves foráneas hacia su documento.
"""
from sqlalchemy import Column, String, Integer, Date, DateTime, ForeignKey, Numeric, Enum, Text
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import declared_attr
from datetime import date
from decimal import Decimal
import enum


# ===== ENUMS =====

class DocumentStatus(str, enum.Enum):
    """Estados de un documento del libro"""
    OPEN = "open"           # Con saldo pendiente (incluye parcialmente liquidado)
    SETTLED = "settled"     # Saldo en cero
    CANCELED = "canceled"   # Terminal, solo desde OPEN


class PaymentMethod(str, enum.Enum):
    """Formas de pago para el desglose de abonos y movimientos de caja"""
    CASH = "cash"
    PIX = "pix"
    DEBIT_CARD = "debit_card"
    CREDIT_CARD = "credit_card"
    CHECK = "check"
    BANK_TRANSFER = "bank_transfer"
    BANK_SLIP = "bank_slip"
    OTHER = "other"


# ===== MIXINS =====

class LedgerDocumentMixin:
    """Columnas comunes de un documento con saldo"""

    document_number = Column(String(60), nullable=False, index=True)
    description = Column(String(255), nullable=True)
    counterparty_id = Column(UUID(as_uuid=True), nullable=False, index=True)
    counterparty_name = Column(String(150), nullable=True)

    issue_date = Column(Date, nullable=False, default=date.today)
    due_date = Column(Date, nullable=False, index=True)

    original_amount = Column(Numeric(15, 2), nullable=False)
    interest_amount = Column(Numeric(15, 2), nullable=False, default=0)
    penalty_amount = Column(Numeric(15, 2), nullable=False, default=0)
    discount_amount = Column(Numeric(15, 2), nullable=False, default=0)
    total_amount = Column(Numeric(15, 2), nullable=False)
    balance = Column(Numeric(15, 2), nullable=False)
    status = Column(Enum(DocumentStatus), nullable=False, default=DocumentStatus.OPEN, index=True)

    installment = Column(Integer, nullable=False, default=1)
    total_installments = Column(Integer, nullable=False, default=1)
    payment_method = Column(Enum(PaymentMethod), nullable=True)
    notes = Column(Text, nullable=True)

    settled_at = Column(DateTime(timezone=True), nullable=True)
    canceled_at = Column(DateTime(timezone=True), nullable=True)
    canceled_by = Column(UUID(as_uuid=True), nullable=True)
    cancel_reason = Column(Text, nullable=True)
    created_by = Column(UUID(as_uuid=True), nullable=False)

    @declared_attr
    def bank_account_id(cls):
        return Column(UUID(as_uuid=True), ForeignKey("bank_accounts.id"), nullable=True)

    @property
    def settled_amount(self) -> Decimal:
        return Decimal(self.total_amount) - Decimal(self.balance)


class PostingMixin:
    """Columnas comunes de un abono (inmutable una vez creado)"""

    applied_amount = Column(Numeric(15, 2), nullable=False)
    interest_amount = Column(Numeric(15, 2), nullable=False, default=0)
    penalty_amount = Column(Numeric(15, 2), nullable=False, default=0)
    discount_amount = Column(Numeric(15, 2), nullable=False, default=0)
    net_amount = Column(Numeric(15, 2), nullable=False)
    effective_date = Column(Date, nullable=False, index=True)
    balance_after = Column(Numeric(15, 2), nullable=False)
    note = Column(Text, nullable=True)
    created_by = Column(UUID(as_uuid=True), nullable=False)

    @declared_attr
    def bank_account_id(cls):
        return Column(UUID(as_uuid=True), ForeignKey("bank_accounts.id"), nullable=True)


class PostingMethodMixin:
    """Línea del desglose de un abono por forma de pago"""

    position = Column(Integer, nullable=False, default=0)
    payment_method = Column(Enum(PaymentMethod), nullable=False)
    amount = Column(Numeric(15, 2), nullable=False)
