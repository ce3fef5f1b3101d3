from app.database.database import Base
from sqlalchemy import Column, String, Integer, Index, text
from app.common.mixins import BaseMixin, BranchMixin
import enum


class DocumentType(str, enum.Enum):
    """Tipos de documento numerados"""
    RECEIVABLE = "receivable"
    PAYABLE = "payable"
    INVENTORY_COUNT = "inventory_count"
    PURCHASE_REQUISITION = "purchase_requisition"
    QUOTATION = "quotation"
    PURCHASE_ORDER = "purchase_order"
    BUDGET = "budget"
    TICKET = "ticket"
    FISCAL_NOTE = "fiscal_note"


class DocumentSequence(Base, BaseMixin, BranchMixin):
    """
    Fila contador por (tenant, tipo, sucursal).

    `last_number` solo se modifica con UPDATE ... SET last_number =
    last_number + 1 RETURNING, así dos peticiones concurrentes nunca
    obtienen el mismo valor.
    """
    __tablename__ = "document_sequences"

    document_type = Column(String(40), nullable=False)
    prefix = Column(String(20), nullable=False, default="")
    suffix = Column(String(20), nullable=False, default="")
    width = Column(Integer, nullable=False, default=6)
    last_number = Column(Integer, nullable=False, default=0)

    __table_args__ = (
        # NULL no es comparable en un UNIQUE, por eso hay dos índices parciales
        Index(
            "uq_document_sequences_branch",
            "tenant_id", "document_type", "branch_id",
            unique=True,
            postgresql_where=text("branch_id IS NOT NULL"),
            sqlite_where=text("branch_id IS NOT NULL"),
        ),
        Index(
            "uq_document_sequences_tenant",
            "tenant_id", "document_type",
            unique=True,
            postgresql_where=text("branch_id IS NULL"),
            sqlite_where=text("branch_id IS NULL"),
        ),
    )

    def format(self, number: int) -> str:
        return f"{self.prefix or ''}{str(number).zfill(self.width)}{self.suffix or ''}"
