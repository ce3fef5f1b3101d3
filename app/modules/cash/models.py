"""
Modelos SQLAlchemy para cajas y sesiones de caja

- Till: caja física o virtual de una sucursal
- CashSession: apertura/cierre de una caja por un operador
- CashPosting: movimientos de la sesión (suministro, sangría, venta)

Solo puede existir una sesión abierta por caja y una por operador; ambas
reglas se garantizan con índices únicos parciales.
"""
from app.database.database import Base
from sqlalchemy import Column, String, Boolean, DateTime, ForeignKey, Numeric, Enum, Text, JSON, Index, text
from sqlalchemy.orm import relationship
from sqlalchemy.dialects.postgresql import UUID
from datetime import datetime
from app.common.mixins import BaseMixin, BranchMixin
from app.modules.ledger.models import PaymentMethod
import enum


# ===== ENUMS =====

class CashSessionStatus(str, enum.Enum):
    OPEN = "open"
    CLOSED = "closed"


class CashPostingKind(str, enum.Enum):
    SUPPLY = "supply"           # Entrada de efectivo sin venta
    WITHDRAWAL = "withdrawal"   # Sangría
    SALE = "sale"               # Venta cobrada en caja


class CashDirection(str, enum.Enum):
    IN = "in"
    OUT = "out"


# ===== MODELOS =====

class Till(Base, BaseMixin, BranchMixin):
    """Caja registradora"""
    __tablename__ = "tills"

    name = Column(String(100), nullable=False)
    bank_account_id = Column(UUID(as_uuid=True), ForeignKey("bank_accounts.id"), nullable=True)  # Destino por defecto de sangrías
    withdrawal_limit = Column(Numeric(15, 2), nullable=True)  # Efectivo máximo sugerido antes de sangrar
    is_active = Column(Boolean, nullable=False, default=True)

    sessions = relationship("CashSession", back_populates="till", lazy="dynamic")


class CashSession(Base, BaseMixin):
    """
    Sesión de caja. El saldo esperado es opening_amount más la suma con
    signo de sus movimientos; se calcula siempre desde la base.
    """
    __tablename__ = "cash_sessions"

    till_id = Column(UUID(as_uuid=True), ForeignKey("tills.id"), nullable=False, index=True)
    operator_id = Column(UUID(as_uuid=True), nullable=False, index=True)
    status = Column(Enum(CashSessionStatus), nullable=False, default=CashSessionStatus.OPEN, index=True)

    opening_amount = Column(Numeric(15, 2), nullable=False, default=0)
    opened_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    opening_notes = Column(Text, nullable=True)

    closed_at = Column(DateTime, nullable=True)
    closed_by = Column(UUID(as_uuid=True), nullable=True)
    closing_notes = Column(Text, nullable=True)
    system_amount = Column(Numeric(15, 2), nullable=True)
    informed_amount = Column(Numeric(15, 2), nullable=True)
    discrepancy = Column(Numeric(15, 2), nullable=True)
    system_breakdown = Column(JSON, nullable=True)
    informed_breakdown = Column(JSON, nullable=True)

    till = relationship("Till", back_populates="sessions")
    postings = relationship("CashPosting", back_populates="session", order_by="CashPosting.created_at")

    __table_args__ = (
        Index(
            "uq_cash_sessions_open_till", "till_id",
            unique=True,
            postgresql_where=text("status = 'OPEN'"),
            sqlite_where=text("status = 'OPEN'"),
        ),
        Index(
            "uq_cash_sessions_open_operator", "tenant_id", "operator_id",
            unique=True,
            postgresql_where=text("status = 'OPEN'"),
            sqlite_where=text("status = 'OPEN'"),
        ),
    )


class CashPosting(Base, BaseMixin):
    """Movimiento de una sesión de caja (inmutable)"""
    __tablename__ = "cash_postings"

    session_id = Column(UUID(as_uuid=True), ForeignKey("cash_sessions.id"), nullable=False, index=True)
    kind = Column(Enum(CashPostingKind), nullable=False)
    direction = Column(Enum(CashDirection), nullable=False)
    payment_method = Column(Enum(PaymentMethod), nullable=False)
    amount = Column(Numeric(15, 2), nullable=False)
    note = Column(Text, nullable=True)
    reference_id = Column(UUID(as_uuid=True), nullable=True)  # Venta de origen
    destination_bank_account_id = Column(UUID(as_uuid=True), ForeignKey("bank_accounts.id"), nullable=True)
    created_by = Column(UUID(as_uuid=True), nullable=False)

    session = relationship("CashSession", back_populates="postings")