"""
Modelos del conteo de inventario

- InventoryCount: sesión de conteo sobre un depósito
- InventoryCountLine: foto de existencia/costo por producto y cantidad contada

Ciclo: DRAFT -> COUNTING -> FINALIZED -> ADJUSTED; DRAFT/COUNTING -> CANCELED.
"""
from app.database.database import Base
from sqlalchemy import Column, String, Boolean, Date, DateTime, ForeignKey, Numeric, Enum, Text, Index, UniqueConstraint, text
from sqlalchemy.orm import relationship
from sqlalchemy.dialects.postgresql import UUID
from decimal import Decimal
from app.common.mixins import BaseMixin, BranchMixin
import enum


# ===== ENUMS =====

class InventoryCountStatus(str, enum.Enum):
    DRAFT = "draft"
    COUNTING = "counting"
    FINALIZED = "finalized"
    ADJUSTED = "adjusted"
    CANCELED = "canceled"


class InventoryCountType(str, enum.Enum):
    FULL = "full"
    PARTIAL = "partial"
    ROTATING = "rotating"


# ===== MODELOS =====

class InventoryCount(Base, BaseMixin, BranchMixin):
    __tablename__ = "inventory_counts"

    number = Column(String(30), nullable=False, index=True)
    location_id = Column(UUID(as_uuid=True), ForeignKey("stock_locations.id"), nullable=False, index=True)
    count_type = Column(Enum(InventoryCountType), nullable=False, default=InventoryCountType.FULL)
    status = Column(Enum(InventoryCountStatus), nullable=False, default=InventoryCountStatus.DRAFT, index=True)
    responsible_id = Column(UUID(as_uuid=True), nullable=False)
    start_date = Column(Date, nullable=False)
    notes = Column(Text, nullable=True)

    started_at = Column(DateTime, nullable=True)
    finalized_at = Column(DateTime, nullable=True)
    adjusted_at = Column(DateTime, nullable=True)
    adjusted_by = Column(UUID(as_uuid=True), nullable=True)
    canceled_at = Column(DateTime, nullable=True)
    cancel_reason = Column(Text, nullable=True)
    created_by = Column(UUID(as_uuid=True), nullable=False)

    location = relationship("StockLocation")
    lines = relationship(
        "InventoryCountLine",
        back_populates="count",
        cascade="all, delete-orphan",
        order_by="InventoryCountLine.product_name",
    )

    __table_args__ = (
        UniqueConstraint("tenant_id", "number", name="uq_inventory_count_tenant_number"),
        # Un solo conteo en curso por depósito
        Index(
            "uq_inventory_counts_active_location", "location_id",
            unique=True,
            postgresql_where=text("status IN ('DRAFT', 'COUNTING')"),
            sqlite_where=text("status IN ('DRAFT', 'COUNTING')"),
        ),
    )


class InventoryCountLine(Base, BaseMixin):
    __tablename__ = "inventory_count_lines"

    count_id = Column(UUID(as_uuid=True), ForeignKey("inventory_counts.id"), nullable=False, index=True)
    product_id = Column(UUID(as_uuid=True), ForeignKey("products.id"), nullable=False)
    product_name = Column(String(100), nullable=False)
    sku = Column(String(50), nullable=False)

    # Foto al generar las líneas
    system_quantity = Column(Numeric(15, 3), nullable=False)
    unit_cost = Column(Numeric(15, 2), nullable=False, default=0)

    counted_quantity = Column(Numeric(15, 3), nullable=True)
    lot = Column(String(50), nullable=True)
    expiry_date = Column(Date, nullable=True)
    note = Column(String(255), nullable=True)
    counted_at = Column(DateTime, nullable=True)
    counted_by = Column(UUID(as_uuid=True), nullable=True)

    adjusted = Column(Boolean, nullable=False, default=False)
    movement_id = Column(UUID(as_uuid=True), ForeignKey("stock_movements.id"), nullable=True)

    count = relationship("InventoryCount", back_populates="lines")

    __table_args__ = (
        UniqueConstraint("count_id", "product_id", name="uq_inventory_count_line_product"),
    )

    @property
    def difference(self):
        if self.counted_quantity is None:
            return None
        return Decimal(self.counted_quantity) - Decimal(self.system_quantity)

    @property
    def divergence_value(self):
        difference = self.difference
        if difference is None:
            return None
        return (difference * Decimal(self.unit_cost or 0)).quantize(Decimal("0.01"))

    @property
    def is_divergent(self) -> bool:
        difference = self.difference
        return difference is not None and difference != 0
