from pydantic import BaseModel, Field
from typing import Optional, List
from uuid import UUID
from datetime import date, datetime
from decimal import Decimal

from app.modules.inventory.models import InventoryCountStatus, InventoryCountType

Quantity = Decimal


class InventoryCountCreate(BaseModel):
    location_id: UUID
    count_type: InventoryCountType = InventoryCountType.FULL
    responsible_id: Optional[UUID] = Field(None, description="Por defecto el usuario que crea el conteo")
    start_date: Optional[date] = None
    branch_id: Optional[UUID] = None
    notes: Optional[str] = None


class GenerateLinesRequest(BaseModel):
    """Filtros para generar la foto de existencias"""
    category_id: Optional[UUID] = None
    brand_id: Optional[UUID] = None
    only_with_stock: bool = False


class CountEntry(BaseModel):
    product_id: UUID
    counted_quantity: Quantity = Field(..., ge=0, max_digits=15, decimal_places=3)
    lot: Optional[str] = Field(None, max_length=50)
    expiry_date: Optional[date] = None
    note: Optional[str] = Field(None, max_length=255)


class BatchCountRequest(BaseModel):
    entries: List[CountEntry] = Field(..., min_length=1)


class CancelCountRequest(BaseModel):
    reason: str = Field(..., min_length=3, max_length=500)


class InventoryCountLineOut(BaseModel):
    id: UUID
    product_id: UUID
    product_name: str
    sku: str
    system_quantity: Quantity
    unit_cost: Decimal
    counted_quantity: Optional[Quantity] = None
    difference: Optional[Quantity] = None
    divergence_value: Optional[Decimal] = None
    lot: Optional[str] = None
    expiry_date: Optional[date] = None
    note: Optional[str] = None
    counted_at: Optional[datetime] = None
    adjusted: bool
    movement_id: Optional[UUID] = None

    model_config = {"from_attributes": True}


class InventoryCountOut(BaseModel):
    id: UUID
    number: str
    location_id: UUID
    branch_id: Optional[UUID] = None
    count_type: InventoryCountType
    status: InventoryCountStatus
    responsible_id: UUID
    start_date: date
    notes: Optional[str] = None
    started_at: Optional[datetime] = None
    finalized_at: Optional[datetime] = None
    adjusted_at: Optional[datetime] = None
    canceled_at: Optional[datetime] = None
    cancel_reason: Optional[str] = None
    created_at: datetime

    model_config = {"from_attributes": True}


class InventoryCountStats(BaseModel):
    total_lines: int
    counted_lines: int
    pending_lines: int
    divergent_lines: int
    surplus_value: Decimal
    shortage_value: Decimal
    divergence_value: Decimal


class InventoryCountDetail(InventoryCountOut):
    lines: List[InventoryCountLineOut] = []
    stats: InventoryCountStats


class GenerateLinesResult(BaseModel):
    count_id: UUID
    lines_generated: int


class CountError(BaseModel):
    product_id: UUID
    error: str


class BatchCountResult(BaseModel):
    processed: int
    errors: List[CountError] = []


class AdjustResult(BaseModel):
    count_id: UUID
    status: InventoryCountStatus
    movements_created: int
    divergence_value: Decimal


class InventoryDashboard(BaseModel):
    by_status: dict[str, int]
    in_progress: List[InventoryCountOut]
    pending_adjustment: int
