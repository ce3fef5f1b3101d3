"""
Catálogo y existencias mínimos que usa el conteo de inventario.

El CRUD de productos, categorías y marcas vive fuera de este servicio; aquí
solo están las tablas que el conteo lee y ajusta.
"""
from app.database.database import Base
from sqlalchemy import Column, String, Boolean, ForeignKey, UniqueConstraint, Numeric, Enum, Index
from sqlalchemy.orm import relationship
from sqlalchemy.dialects.postgresql import UUID
from app.common.mixins import BaseMixin, BranchMixin
import enum


class StockMovementType(str, enum.Enum):
    ENTRY = "entry"   # Entrada
    EXIT = "exit"     # Salida


class StockMovementReason(str, enum.Enum):
    INVENTORY_ADJUSTMENT = "inventory_adjustment"
    PURCHASE = "purchase"
    SALE = "sale"
    TRANSFER = "transfer"
    OTHER = "other"


class StockLocation(Base, BaseMixin, BranchMixin):
    """Depósito o local de existencias"""
    __tablename__ = "stock_locations"

    name = Column(String(100), nullable=False)
    is_active = Column(Boolean, nullable=False, default=True)


class Product(Base, BaseMixin):
    __tablename__ = "products"

    name = Column(String(100), nullable=False)
    sku = Column(String(50), nullable=False)
    bar_code = Column(String(50), nullable=True)
    cost_price = Column(Numeric(15, 2), nullable=False, default=0)  # Precio de costo
    category_id = Column(UUID(as_uuid=True), nullable=True, index=True)
    brand_id = Column(UUID(as_uuid=True), nullable=True, index=True)
    is_active = Column(Boolean, nullable=False, default=True)

    stocks = relationship("Stock", back_populates="product")

    __table_args__ = (
        UniqueConstraint("tenant_id", "sku", name="uq_product_tenant_sku"),
    )


class Stock(Base, BaseMixin):
    __tablename__ = "stocks"

    product_id = Column(UUID(as_uuid=True), ForeignKey("products.id"), nullable=False)
    location_id = Column(UUID(as_uuid=True), ForeignKey("stock_locations.id"), nullable=False)
    quantity = Column(Numeric(15, 3), nullable=False, default=0)
    average_cost = Column(Numeric(15, 2), nullable=True)  # Costo medio; si falta se usa cost_price

    product = relationship("Product", back_populates="stocks")
    location = relationship("StockLocation")

    __table_args__ = (
        UniqueConstraint("tenant_id", "product_id", "location_id", name="uq_stock_tenant_product_location"),
    )


class StockMovement(Base, BaseMixin):
    """Movimiento de existencias (append-only). quantity es siempre positiva."""
    __tablename__ = "stock_movements"

    product_id = Column(UUID(as_uuid=True), ForeignKey("products.id"), nullable=False, index=True)
    location_id = Column(UUID(as_uuid=True), ForeignKey("stock_locations.id"), nullable=False, index=True)
    movement_type = Column(Enum(StockMovementType), nullable=False)
    reason = Column(Enum(StockMovementReason), nullable=False)
    quantity = Column(Numeric(15, 3), nullable=False)
    unit_cost = Column(Numeric(15, 2), nullable=True)
    previous_quantity = Column(Numeric(15, 3), nullable=False)
    new_quantity = Column(Numeric(15, 3), nullable=False)
    origin_type = Column(String(40), nullable=True)
    origin_id = Column(UUID(as_uuid=True), nullable=True)
    notes = Column(String(255), nullable=True)
    created_by = Column(UUID(as_uuid=True), nullable=False)

    product = relationship("Product")

    __table_args__ = (
        Index("ix_stock_movements_origin", "origin_type", "origin_id"),
    )

    @property
    def signed_quantity(self):
        return self.quantity if self.movement_type == StockMovementType.ENTRY else -self.quantity
