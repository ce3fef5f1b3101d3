import logging
from datetime import date
from decimal import Decimal
from typing import Optional
from uuid import UUID

from sqlalchemy import func, case
from sqlalchemy.orm import Session

from app.common.exceptions import NotFoundError, ValidationError
from app.common.pagination import PageParams, paginate
from app.database.database import get_tenant_query
from app.modules.auth.schemas import AuthContext
from app.modules.banking.models import (
    BankAccount, BankLedgerEntry, EntryDirection, EntryCategory, OriginType
)
from app.modules.banking.schemas import BankAccountCreate

logger = logging.getLogger(__name__)


class BankingService:
    """Cuentas bancarias y libro bancario"""

    def __init__(self, db: Session):
        self.db = db

    def create_account(self, ctx: AuthContext, data: BankAccountCreate) -> BankAccount:
        try:
            account = BankAccount(
                tenant_id=ctx.tenant_id,
                branch_id=data.branch_id or ctx.branch_id,
                name=data.name,
                bank_name=data.bank_name,
                agency=data.agency,
                account_number=data.account_number,
                opening_balance=data.opening_balance,
            )
            self.db.add(account)
            self.db.commit()
            self.db.refresh(account)
            return account
        except Exception:
            self.db.rollback()
            raise

    def get_account(self, tenant_id: UUID, account_id: UUID, active_only: bool = False) -> BankAccount:
        query = get_tenant_query(self.db, BankAccount, tenant_id).filter(BankAccount.id == account_id)
        if active_only:
            query = query.filter(BankAccount.is_active == True)
        account = query.first()
        if not account:
            raise NotFoundError("Cuenta bancaria no encontrada", bank_account_id=account_id)
        return account

    def list_accounts(self, tenant_id: UUID) -> list[BankAccount]:
        return get_tenant_query(self.db, BankAccount, tenant_id).order_by(BankAccount.name).all()

    def balance(self, account: BankAccount) -> Decimal:
        """Saldo = saldo inicial + Σ créditos − Σ débitos (siempre leído de la base)."""
        signed = func.coalesce(func.sum(
            case(
                (BankLedgerEntry.direction == EntryDirection.CREDIT, BankLedgerEntry.amount),
                else_=-BankLedgerEntry.amount,
            )
        ), 0)
        total = self.db.query(signed).filter(
            BankLedgerEntry.tenant_id == account.tenant_id,
            BankLedgerEntry.bank_account_id == account.id
        ).scalar()
        return Decimal(account.opening_balance or 0) + Decimal(str(total or 0))

    def post_entry(
        self,
        tenant_id: UUID,
        user_id: UUID,
        bank_account_id: UUID,
        *,
        direction: EntryDirection,
        category: EntryCategory,
        amount: Decimal,
        entry_date: date,
        description: str,
        origin_type: OriginType,
        origin_id: Optional[UUID] = None,
        reference: Optional[str] = None,
    ) -> BankLedgerEntry:
        """
        Agrega un movimiento al libro bancario sin hacer commit.

        Lo usan los servicios de liquidación y de caja dentro de su propia
        transacción.
        """
        if amount <= 0:
            raise ValidationError("El monto del movimiento bancario debe ser mayor a cero", field="amount")
        self.get_account(tenant_id, bank_account_id, active_only=True)

        entry = BankLedgerEntry(
            tenant_id=tenant_id,
            bank_account_id=bank_account_id,
            direction=direction,
            category=category,
            amount=amount,
            entry_date=entry_date,
            description=description[:255],
            reference=reference,
            origin_type=origin_type,
            origin_id=origin_id,
            created_by=user_id,
        )
        self.db.add(entry)
        logger.debug(f"Bank entry {direction.value} {amount} on account {bank_account_id} ({origin_type.value})")
        return entry

    def list_entries(
        self,
        tenant_id: UUID,
        bank_account_id: UUID,
        params: PageParams,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
        origin_type: Optional[OriginType] = None,
    ) -> dict:
        self.get_account(tenant_id, bank_account_id)

        def apply_filters(query):
            query = query.filter(
                BankLedgerEntry.tenant_id == tenant_id,
                BankLedgerEntry.bank_account_id == bank_account_id
            )
            if start_date:
                query = query.filter(BankLedgerEntry.entry_date >= start_date)
            if end_date:
                query = query.filter(BankLedgerEntry.entry_date <= end_date)
            if origin_type:
                query = query.filter(BankLedgerEntry.origin_type == origin_type)
            return query

        return paginate(
            self.db, BankLedgerEntry, apply_filters, params,
            order_by=(BankLedgerEntry.entry_date.desc(), BankLedgerEntry.created_at.desc()),
        )
