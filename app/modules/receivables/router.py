from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session
from typing import Optional
from uuid import UUID

from app.common.pagination import Page, PageParams, page_params
from app.dependencies.dbDependecies import get_db
from app.modules.auth.dependencies import AuthDependencies, ALL_ROLES, FINANCE_ROLES
from app.modules.auth.schemas import AuthContext
from app.modules.ledger.dependencies import document_filters
from app.modules.ledger.schemas import (
    CancelRequest, DocumentFilters, LedgerSummary, PostingCreate, RescheduleRequest, SettlementResult
)
from app.modules.receivables.models import ReceivableDocumentType
from app.modules.receivables.schemas import (
    ReceivableCreate, ReceivableDetail, ReceivableOut, ReceivableUpdate
)
from app.modules.receivables.service import ReceivableService

receivables_router = APIRouter(prefix="/financial/receivables", tags=["Receivables"])


@receivables_router.post("", response_model=ReceivableOut, status_code=status.HTTP_201_CREATED)
def create_receivable(
    data: ReceivableCreate,
    auth_context: AuthContext = Depends(AuthDependencies.require_role(FINANCE_ROLES)),
    db: Session = Depends(get_db)
):
    """Crear cuenta por cobrar. Saldo inicial = total."""
    return ReceivableService(db).create_receivable(auth_context, data)


@receivables_router.get("", response_model=Page[ReceivableOut])
def list_receivables(
    filters: DocumentFilters = Depends(document_filters),
    document_type: Optional[ReceivableDocumentType] = Query(None),
    params: PageParams = Depends(page_params),
    auth_context: AuthContext = Depends(AuthDependencies.require_role(ALL_ROLES)),
    db: Session = Depends(get_db)
):
    """Listar cuentas por cobrar con filtros y paginación"""
    return ReceivableService(db).list_receivables(auth_context.tenant_id, filters, params, document_type)


@receivables_router.get("/summary", response_model=LedgerSummary)
def receivables_summary(
    branch_id: Optional[UUID] = Query(None),
    auth_context: AuthContext = Depends(AuthDependencies.require_role(FINANCE_ROLES)),
    db: Session = Depends(get_db)
):
    """Resumen: abierto, vencido, por vencer, cobrado en el mes, próximos vencimientos y mayores deudores"""
    return ReceivableService(db).get_summary(auth_context.tenant_id, branch_id)


@receivables_router.get("/{receivable_id}", response_model=ReceivableDetail)
def get_receivable(
    receivable_id: UUID,
    auth_context: AuthContext = Depends(AuthDependencies.require_role(ALL_ROLES)),
    db: Session = Depends(get_db)
):
    """Detalle con cobros y su desglose"""
    return ReceivableService(db).get_receivable(auth_context.tenant_id, receivable_id)


@receivables_router.patch("/{receivable_id}", response_model=ReceivableOut)
def update_receivable(
    receivable_id: UUID,
    data: ReceivableUpdate,
    auth_context: AuthContext = Depends(AuthDependencies.require_role(FINANCE_ROLES)),
    db: Session = Depends(get_db)
):
    return ReceivableService(db).update_receivable(auth_context, receivable_id, data)


@receivables_router.post("/{receivable_id}/receipts", response_model=SettlementResult, status_code=status.HTTP_201_CREATED)
def receive(
    receivable_id: UUID,
    data: PostingCreate,
    auth_context: AuthContext = Depends(AuthDependencies.require_role(FINANCE_ROLES)),
    db: Session = Depends(get_db)
):
    """Registrar cobro total o parcial"""
    return ReceivableService(db).receive(auth_context, receivable_id, data)


@receivables_router.post("/{receivable_id}/cancel", response_model=ReceivableOut)
def cancel_receivable(
    receivable_id: UUID,
    data: CancelRequest,
    auth_context: AuthContext = Depends(AuthDependencies.require_role(["owner", "admin"])),
    db: Session = Depends(get_db)
):
    return ReceivableService(db).cancel_receivable(auth_context, receivable_id, data.reason)


@receivables_router.post("/{receivable_id}/reschedule", response_model=ReceivableOut)
def reschedule_receivable(
    receivable_id: UUID,
    data: RescheduleRequest,
    auth_context: AuthContext = Depends(AuthDependencies.require_role(FINANCE_ROLES)),
    db: Session = Depends(get_db)
):
    """Cambiar vencimiento (queda auditado)"""
    return ReceivableService(db).reschedule_receivable(auth_context, receivable_id, data.new_due_date, data.reason)
