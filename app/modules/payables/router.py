from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session
from typing import Optional
from uuid import UUID

from app.common.pagination import Page, PageParams, page_params
from app.core.config import settings
from app.dependencies.dbDependecies import get_db
from app.modules.auth.dependencies import AuthDependencies, FINANCE_ROLES
from app.modules.auth.schemas import AuthContext
from app.modules.ledger.dependencies import document_filters
from app.modules.ledger.schemas import (
    CancelRequest, DocumentFilters, PostingCreate, RescheduleRequest, SettlementResult
)
from app.modules.payables.models import PayableCategory, PayableDocumentType
from app.modules.payables.schemas import (
    CashFlowProjection, PayableCreate, PayableDetail, PayableOut, PayableSummary, PayableUpdate
)
from app.modules.payables.service import PayableService

payables_router = APIRouter(prefix="/financial/payables", tags=["Payables"])
cash_flow_router = APIRouter(prefix="/financial/cash-flow", tags=["Cash Flow"])


@payables_router.post("", response_model=PayableOut, status_code=status.HTTP_201_CREATED)
def create_payable(
    data: PayableCreate,
    auth_context: AuthContext = Depends(AuthDependencies.require_role(FINANCE_ROLES)),
    db: Session = Depends(get_db)
):
    """Crear cuenta por pagar. Saldo inicial = total."""
    return PayableService(db).create_payable(auth_context, data)


@payables_router.get("", response_model=Page[PayableOut])
def list_payables(
    filters: DocumentFilters = Depends(document_filters),
    category: Optional[PayableCategory] = Query(None),
    document_type: Optional[PayableDocumentType] = Query(None),
    params: PageParams = Depends(page_params),
    auth_context: AuthContext = Depends(AuthDependencies.require_role(FINANCE_ROLES)),
    db: Session = Depends(get_db)
):
    """Listar cuentas por pagar con filtros y paginación"""
    return PayableService(db).list_payables(auth_context.tenant_id, filters, params, category, document_type)


@payables_router.get("/summary", response_model=PayableSummary)
def payables_summary(
    branch_id: Optional[UUID] = Query(None),
    auth_context: AuthContext = Depends(AuthDependencies.require_role(FINANCE_ROLES)),
    db: Session = Depends(get_db)
):
    """Resumen con totales por categoría y mayores acreedores"""
    return PayableService(db).get_summary(auth_context.tenant_id, branch_id)


@payables_router.get("/{payable_id}", response_model=PayableDetail)
def get_payable(
    payable_id: UUID,
    auth_context: AuthContext = Depends(AuthDependencies.require_role(FINANCE_ROLES)),
    db: Session = Depends(get_db)
):
    return PayableService(db).get_payable(auth_context.tenant_id, payable_id)


@payables_router.patch("/{payable_id}", response_model=PayableOut)
def update_payable(
    payable_id: UUID,
    data: PayableUpdate,
    auth_context: AuthContext = Depends(AuthDependencies.require_role(FINANCE_ROLES)),
    db: Session = Depends(get_db)
):
    return PayableService(db).update_payable(auth_context, payable_id, data)


@payables_router.post("/{payable_id}/payments", response_model=SettlementResult, status_code=status.HTTP_201_CREATED)
def pay(
    payable_id: UUID,
    data: PostingCreate,
    auth_context: AuthContext = Depends(AuthDependencies.require_role(FINANCE_ROLES)),
    db: Session = Depends(get_db)
):
    """Registrar pago total o parcial"""
    return PayableService(db).pay(auth_context, payable_id, data)


@payables_router.post("/{payable_id}/cancel", response_model=PayableOut)
def cancel_payable(
    payable_id: UUID,
    data: CancelRequest,
    auth_context: AuthContext = Depends(AuthDependencies.require_role(["owner", "admin"])),
    db: Session = Depends(get_db)
):
    return PayableService(db).cancel_payable(auth_context, payable_id, data.reason)


@payables_router.post("/{payable_id}/reschedule", response_model=PayableOut)
def reschedule_payable(
    payable_id: UUID,
    data: RescheduleRequest,
    auth_context: AuthContext = Depends(AuthDependencies.require_role(FINANCE_ROLES)),
    db: Session = Depends(get_db)
):
    return PayableService(db).reschedule_payable(auth_context, payable_id, data.new_due_date, data.reason)


@cash_flow_router.get("", response_model=CashFlowProjection)
def cash_flow(
    days: int = Query(settings.CASH_FLOW_DEFAULT_DAYS, ge=1, le=365),
    branch_id: Optional[UUID] = Query(None),
    auth_context: AuthContext = Depends(AuthDependencies.require_role(FINANCE_ROLES)),
    db: Session = Depends(get_db)
):
    """Flujo de caja proyectado: a cobrar vs. a pagar por día"""
    return PayableService(db).cash_flow(auth_context.tenant_id, days, branch_id)
