from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session
from typing import List, Optional
from uuid import UUID
from datetime import date

from app.common.pagination import Page, PageParams, page_params
from app.dependencies.dbDependecies import get_db
from app.modules.auth.dependencies import AuthDependencies, CASH_ROLES
from app.modules.auth.schemas import AuthContext
from app.modules.cash.models import CashSessionStatus
from app.modules.cash.schemas import (
    TillCreate, TillUpdate, TillOut, SessionOpen, SupplyCreate, WithdrawalCreate, SaleEntryCreate,
    SessionClose, CashSessionOut, CashSessionLive, CashPostingResult, CloseResult
)
from app.modules.cash.service import TillService, CashSessionService

tills_router = APIRouter(prefix="/cash/tills", tags=["Cash Tills"])
cash_sessions_router = APIRouter(prefix="/cash/sessions", tags=["Cash Sessions"])


# ===== CAJAS =====

@tills_router.post("", response_model=TillOut, status_code=status.HTTP_201_CREATED)
def create_till(
    data: TillCreate,
    auth_context: AuthContext = Depends(AuthDependencies.require_role(["owner", "admin"])),
    db: Session = Depends(get_db)
):
    """Crear caja"""
    service = TillService(db)
    return service.describe(service.create_till(auth_context, data))


@tills_router.get("", response_model=List[TillOut])
def list_tills(
    branch_id: Optional[UUID] = Query(None),
    active_only: bool = Query(False),
    auth_context: AuthContext = Depends(AuthDependencies.require_role(CASH_ROLES)),
    db: Session = Depends(get_db)
):
    """Listar cajas con la sesión abierta de cada una"""
    return TillService(db).list_tills(auth_context.tenant_id, branch_id, active_only)


@tills_router.get("/{till_id}", response_model=TillOut)
def get_till(
    till_id: UUID,
    auth_context: AuthContext = Depends(AuthDependencies.require_role(CASH_ROLES)),
    db: Session = Depends(get_db)
):
    service = TillService(db)
    return service.describe(service.get_till(auth_context.tenant_id, till_id))


@tills_router.patch("/{till_id}", response_model=TillOut)
def update_till(
    till_id: UUID,
    data: TillUpdate,
    auth_context: AuthContext = Depends(AuthDependencies.require_role(["owner", "admin"])),
    db: Session = Depends(get_db)
):
    service = TillService(db)
    return service.describe(service.update_till(auth_context, till_id, data))


# ===== SESIONES =====

@cash_sessions_router.post("/open", response_model=CashSessionOut, status_code=status.HTTP_201_CREATED)
def open_session(
    data: SessionOpen,
    auth_context: AuthContext = Depends(AuthDependencies.require_role(CASH_ROLES)),
    db: Session = Depends(get_db)
):
    """Abrir caja con monto inicial"""
    return CashSessionService(db).open_session(auth_context, data)


@cash_sessions_router.get("/current", response_model=CashSessionLive)
def current_session(
    auth_context: AuthContext = Depends(AuthDependencies.require_role(CASH_ROLES)),
    db: Session = Depends(get_db)
):
    """Mi caja: saldo en vivo y subtotales por forma de pago"""
    return CashSessionService(db).current_session(auth_context)


@cash_sessions_router.post("/close", response_model=CloseResult)
def close_current_session(
    data: SessionClose,
    auth_context: AuthContext = Depends(AuthDependencies.require_role(CASH_ROLES)),
    db: Session = Depends(get_db)
):
    """Cerrar la caja abierta del operador"""
    return CashSessionService(db).close_session(auth_context, data)


@cash_sessions_router.get("", response_model=Page[CashSessionOut])
def list_sessions(
    till_id: Optional[UUID] = Query(None),
    operator_id: Optional[UUID] = Query(None),
    session_status: Optional[CashSessionStatus] = Query(None, alias="status"),
    date_from: Optional[date] = Query(None),
    date_to: Optional[date] = Query(None),
    params: PageParams = Depends(page_params),
    auth_context: AuthContext = Depends(AuthDependencies.require_role(["owner", "admin", "accountant"])),
    db: Session = Depends(get_db)
):
    """Historial de sesiones de caja"""
    return CashSessionService(db).list_sessions(
        auth_context.tenant_id, params, till_id, operator_id, session_status, date_from, date_to
    )


@cash_sessions_router.get("/{session_id}", response_model=CashSessionLive)
def get_session(
    session_id: UUID,
    auth_context: AuthContext = Depends(AuthDependencies.require_role(CASH_ROLES)),
    db: Session = Depends(get_db)
):
    """Detalle de sesión con movimientos y resumen por forma de pago"""
    service = CashSessionService(db)
    return service.describe_session(service.get_session(auth_context.tenant_id, session_id))


@cash_sessions_router.post("/{session_id}/supply", response_model=CashPostingResult, status_code=status.HTTP_201_CREATED)
def post_supply(
    session_id: UUID,
    data: SupplyCreate,
    auth_context: AuthContext = Depends(AuthDependencies.require_role(CASH_ROLES)),
    db: Session = Depends(get_db)
):
    return CashSessionService(db).post_supply(auth_context, session_id, data)


@cash_sessions_router.post("/{session_id}/withdrawal", response_model=CashPostingResult, status_code=status.HTTP_201_CREATED)
def post_withdrawal(
    session_id: UUID,
    data: WithdrawalCreate,
    auth_context: AuthContext = Depends(AuthDependencies.require_role(CASH_ROLES)),
    db: Session = Depends(get_db)
):
    """Sangría. Falla si supera el efectivo disponible."""
    return CashSessionService(db).post_withdrawal(auth_context, session_id, data)


@cash_sessions_router.post("/{session_id}/sales", response_model=CashPostingResult, status_code=status.HTTP_201_CREATED)
def post_sale(
    session_id: UUID,
    data: SaleEntryCreate,
    auth_context: AuthContext = Depends(AuthDependencies.require_role(CASH_ROLES)),
    db: Session = Depends(get_db)
):
    return CashSessionService(db).post_sale(auth_context, session_id, data)


@cash_sessions_router.post("/{session_id}/close", response_model=CloseResult)
def close_session(
    session_id: UUID,
    data: SessionClose,
    auth_context: AuthContext = Depends(AuthDependencies.require_role(CASH_ROLES)),
    db: Session = Depends(get_db)
):
    return CashSessionService(db).close_session(auth_context, data, session_id)
