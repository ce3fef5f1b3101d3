from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session
from typing import List, Optional
from uuid import UUID
from datetime import date

from app.common.pagination import Page, PageParams, page_params
from app.dependencies.dbDependecies import get_db
from app.modules.auth.dependencies import AuthDependencies, FINANCE_ROLES
from app.modules.auth.schemas import AuthContext
from app.modules.banking.schemas import BankAccountCreate, BankAccountOut, BankLedgerEntryOut, OriginType
from app.modules.banking.service import BankingService

bank_accounts_router = APIRouter(prefix="/financial/bank-accounts", tags=["Bank Accounts"])


def _with_balance(service: BankingService, account) -> BankAccountOut:
    out = BankAccountOut.model_validate(account)
    out.current_balance = service.balance(account)
    return out


@bank_accounts_router.post("", response_model=BankAccountOut, status_code=status.HTTP_201_CREATED)
def create_bank_account(
    data: BankAccountCreate,
    auth_context: AuthContext = Depends(AuthDependencies.require_role(["owner", "admin"])),
    db: Session = Depends(get_db)
):
    """Crear cuenta bancaria"""
    service = BankingService(db)
    return _with_balance(service, service.create_account(auth_context, data))


@bank_accounts_router.get("", response_model=List[BankAccountOut])
def list_bank_accounts(
    auth_context: AuthContext = Depends(AuthDependencies.require_role(FINANCE_ROLES)),
    db: Session = Depends(get_db)
):
    """Listar cuentas bancarias con saldo actual"""
    service = BankingService(db)
    return [_with_balance(service, a) for a in service.list_accounts(auth_context.tenant_id)]


@bank_accounts_router.get("/{account_id}", response_model=BankAccountOut)
def get_bank_account(
    account_id: UUID,
    auth_context: AuthContext = Depends(AuthDependencies.require_role(FINANCE_ROLES)),
    db: Session = Depends(get_db)
):
    service = BankingService(db)
    return _with_balance(service, service.get_account(auth_context.tenant_id, account_id))


@bank_accounts_router.get("/{account_id}/entries", response_model=Page[BankLedgerEntryOut])
def list_bank_entries(
    account_id: UUID,
    start_date: Optional[date] = Query(None),
    end_date: Optional[date] = Query(None),
    origin_type: Optional[OriginType] = Query(None),
    params: PageParams = Depends(page_params),
    auth_context: AuthContext = Depends(AuthDependencies.require_role(FINANCE_ROLES)),
    db: Session = Depends(get_db)
):
    """Libro bancario de la cuenta (append-only)"""
    return BankingService(db).list_entries(
        auth_context.tenant_id, account_id, params, start_date, end_date, origin_type
    )
