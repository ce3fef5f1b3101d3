from app.database.database import Base
from sqlalchemy import Column, String, ForeignKey, Enum, UniqueConstraint
from sqlalchemy.orm import relationship
from sqlalchemy.dialects.postgresql import UUID
from app.common.mixins import BaseMixin, BranchMixin
from app.modules.ledger.models import LedgerDocumentMixin, PostingMixin, PostingMethodMixin
import enum


class PayableDocumentType(str, enum.Enum):
    DUPLICATE = "duplicate"
    BANK_SLIP = "bank_slip"
    INVOICE = "invoice"
    BILL = "bill"           # Servicios públicos, arriendo
    RECEIPT = "receipt"
    OTHER = "other"


class PayableCategory(str, enum.Enum):
    GOODS = "goods"
    SERVICE = "service"
    FIXED_EXPENSE = "fixed_expense"
    VARIABLE_EXPENSE = "variable_expense"
    TAX = "tax"
    OTHER = "other"


class Payable(Base, BaseMixin, BranchMixin, LedgerDocumentMixin):
    """Cuenta por pagar"""
    __tablename__ = "payables"

    document_type = Column(Enum(PayableDocumentType), nullable=False, default=PayableDocumentType.DUPLICATE)
    category = Column(Enum(PayableCategory), nullable=False, default=PayableCategory.OTHER, index=True)
    cost_center = Column(String(60), nullable=True)
    purchase_order_id = Column(UUID(as_uuid=True), nullable=True, index=True)
    bank_slip_line = Column(String(60), nullable=True)
    barcode = Column(String(60), nullable=True)
    pix_key = Column(String(100), nullable=True)

    postings = relationship(
        "PayablePosting",
        back_populates="document",
        order_by="PayablePosting.created_at",
    )

    __table_args__ = (
        UniqueConstraint("tenant_id", "document_number", name="uq_payable_tenant_number"),
    )


class PayablePosting(Base, BaseMixin, PostingMixin):
    """Pago aplicado a una cuenta por pagar"""
    __tablename__ = "payable_postings"

    document_id = Column(UUID(as_uuid=True), ForeignKey("payables.id"), nullable=False, index=True)

    document = relationship("Payable", back_populates="postings")
    methods = relationship(
        "PayablePostingMethod",
        order_by="PayablePostingMethod.position",
        cascade="all, delete-orphan",
    )


class PayablePostingMethod(Base, BaseMixin, PostingMethodMixin):
    __tablename__ = "payable_posting_methods"

    posting_id = Column(UUID(as_uuid=True), ForeignKey("payable_postings.id"), nullable=False, index=True)
