from app.database.database import Base
from sqlalchemy import Column, String, ForeignKey, Enum, UniqueConstraint
from sqlalchemy.orm import relationship
from sqlalchemy.dialects.postgresql import UUID
from app.common.mixins import BaseMixin, BranchMixin
from app.modules.ledger.models import LedgerDocumentMixin, PostingMixin, PostingMethodMixin
import enum


class ReceivableDocumentType(str, enum.Enum):
    DUPLICATE = "duplicate"
    BANK_SLIP = "bank_slip"
    CHECK = "check"
    CARD = "card"
    PIX = "pix"
    OTHER = "other"


class Receivable(Base, BaseMixin, BranchMixin, LedgerDocumentMixin):
    """Cuenta por cobrar"""
    __tablename__ = "receivables"

    document_type = Column(Enum(ReceivableDocumentType), nullable=False, default=ReceivableDocumentType.DUPLICATE)
    sale_id = Column(UUID(as_uuid=True), nullable=True, index=True)  # Venta de origen
    bank_slip_line = Column(String(60), nullable=True)
    barcode = Column(String(60), nullable=True)

    postings = relationship(
        "ReceivablePosting",
        back_populates="document",
        order_by="ReceivablePosting.created_at",
    )

    __table_args__ = (
        UniqueConstraint("tenant_id", "document_number", name="uq_receivable_tenant_number"),
    )


class ReceivablePosting(Base, BaseMixin, PostingMixin):
    """Cobro aplicado a una cuenta por cobrar"""
    __tablename__ = "receivable_postings"

    document_id = Column(UUID(as_uuid=True), ForeignKey("receivables.id"), nullable=False, index=True)

    document = relationship("Receivable", back_populates="postings")
    methods = relationship(
        "ReceivablePostingMethod",
        order_by="ReceivablePostingMethod.position",
        cascade="all, delete-orphan",
    )


class ReceivablePostingMethod(Base, BaseMixin, PostingMethodMixin):
    __tablename__ = "receivable_posting_methods"

    posting_id = Column(UUID(as_uuid=True), ForeignKey("receivable_postings.id"), nullable=False, index=True)
