from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session
from typing import Optional
from uuid import UUID

from app.common.pagination import Page, PageParams, page_params
from app.dependencies.dbDependecies import get_db
from app.modules.auth.dependencies import AuthDependencies, ALL_ROLES, INVENTORY_ROLES
from app.modules.auth.schemas import AuthContext
from app.modules.inventory.models import InventoryCountStatus
from app.modules.inventory.schemas import (
    InventoryCountCreate, InventoryCountOut, InventoryCountDetail, InventoryCountLineOut,
    GenerateLinesRequest, GenerateLinesResult, CountEntry, BatchCountRequest, BatchCountResult,
    CancelCountRequest, AdjustResult, InventoryDashboard
)
from app.modules.inventory.service import InventoryCountService

inventory_counts_router = APIRouter(prefix="/inventory/counts", tags=["Inventory Counts"])


@inventory_counts_router.post("", response_model=InventoryCountOut, status_code=status.HTTP_201_CREATED)
def create_count(
    data: InventoryCountCreate,
    auth_context: AuthContext = Depends(AuthDependencies.require_role(INVENTORY_ROLES)),
    db: Session = Depends(get_db)
):
    """Crear inventario en borrador para un depósito"""
    return InventoryCountService(db).create_count(auth_context, data)


@inventory_counts_router.get("", response_model=Page[InventoryCountOut])
def list_counts(
    count_status: Optional[InventoryCountStatus] = Query(None, alias="status"),
    location_id: Optional[UUID] = Query(None),
    params: PageParams = Depends(page_params),
    auth_context: AuthContext = Depends(AuthDependencies.require_role(ALL_ROLES)),
    db: Session = Depends(get_db)
):
    return InventoryCountService(db).list_counts(auth_context.tenant_id, params, count_status, location_id)


@inventory_counts_router.get("/dashboard", response_model=InventoryDashboard)
def counts_dashboard(
    auth_context: AuthContext = Depends(AuthDependencies.require_role(ALL_ROLES)),
    db: Session = Depends(get_db)
):
    """Conteos por estado, en curso y pendientes de ajuste"""
    return InventoryCountService(db).dashboard(auth_context.tenant_id)


@inventory_counts_router.get("/{count_id}", response_model=InventoryCountDetail)
def get_count(
    count_id: UUID,
    auth_context: AuthContext = Depends(AuthDependencies.require_role(ALL_ROLES)),
    db: Session = Depends(get_db)
):
    """Detalle con ítems y estadísticas"""
    return InventoryCountService(db).get_detail(auth_context.tenant_id, count_id)


@inventory_counts_router.post("/{count_id}/lines", response_model=GenerateLinesResult)
def generate_lines(
    count_id: UUID,
    filters: GenerateLinesRequest,
    auth_context: AuthContext = Depends(AuthDependencies.require_role(INVENTORY_ROLES)),
    db: Session = Depends(get_db)
):
    """Generar (o regenerar) la foto de existencias. Solo en borrador."""
    return InventoryCountService(db).generate_lines(auth_context, count_id, filters)


@inventory_counts_router.post("/{count_id}/start", response_model=InventoryCountOut)
def start_count(
    count_id: UUID,
    auth_context: AuthContext = Depends(AuthDependencies.require_role(INVENTORY_ROLES)),
    db: Session = Depends(get_db)
):
    return InventoryCountService(db).start(auth_context, count_id)


@inventory_counts_router.post("/{count_id}/count", response_model=InventoryCountLineOut)
def record_count(
    count_id: UUID,
    data: CountEntry,
    auth_context: AuthContext = Depends(AuthDependencies.require_role(INVENTORY_ROLES)),
    db: Session = Depends(get_db)
):
    """Registrar la cantidad contada de un producto"""
    return InventoryCountService(db).record_count(auth_context, count_id, data)


@inventory_counts_router.post("/{count_id}/count/batch", response_model=BatchCountResult)
def record_counts(
    count_id: UUID,
    data: BatchCountRequest,
    auth_context: AuthContext = Depends(AuthDependencies.require_role(INVENTORY_ROLES)),
    db: Session = Depends(get_db)
):
    """Conteo en lote; las entradas inválidas se informan sin abortar el resto"""
    return InventoryCountService(db).record_counts(auth_context, count_id, data)


@inventory_counts_router.post("/{count_id}/finalize", response_model=InventoryCountOut)
def finalize_count(
    count_id: UUID,
    auth_context: AuthContext = Depends(AuthDependencies.require_role(INVENTORY_ROLES)),
    db: Session = Depends(get_db)
):
    return InventoryCountService(db).finalize(auth_context, count_id)


@inventory_counts_router.post("/{count_id}/adjust", response_model=AdjustResult)
def adjust_stock(
    count_id: UUID,
    auth_context: AuthContext = Depends(AuthDependencies.require_role(["owner", "admin"])),
    db: Session = Depends(get_db)
):
    """Ajustar existencias según lo contado"""
    return InventoryCountService(db).adjust_stock(auth_context, count_id)


@inventory_counts_router.post("/{count_id}/cancel", response_model=InventoryCountOut)
def cancel_count(
    count_id: UUID,
    data: CancelCountRequest,
    auth_context: AuthContext = Depends(AuthDependencies.require_role(INVENTORY_ROLES)),
    db: Session = Depends(get_db)
):
    return InventoryCountService(db).cancel(auth_context, count_id, data.reason)
