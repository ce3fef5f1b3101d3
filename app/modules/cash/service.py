"""
Servicios de negocio para el módulo de Caja

- TillService: registro de cajas
- CashSessionService: apertura, suministro, sangría, ventas y cierre con arqueo

El saldo de una sesión nunca se guarda mientras está abierta: se calcula
como opening_amount + Σ movimientos con signo. Al cerrar se congelan el
monto del sistema, el informado y la diferencia.
"""
import logging
from datetime import date, datetime, time
from decimal import Decimal
from typing import Optional, Dict
from uuid import UUID

from fastapi import HTTPException, status
from sqlalchemy import func, case
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.common.exceptions import (
    ConflictError, InsufficientFundsError, InvalidStateError, LedgerError, NotFoundError
)
from app.common.pagination import PageParams, paginate
from app.common.updates import apply_update
from app.modules.audit.service import AuditService
from app.modules.auth.schemas import AuthContext
from app.modules.banking.models import EntryCategory, EntryDirection, OriginType
from app.modules.banking.service import BankingService
from app.modules.cash.models import (
    Till, CashSession, CashPosting, CashSessionStatus, CashPostingKind, CashDirection
)
from app.modules.cash.schemas import (
    TillCreate, TillUpdate, SessionOpen, SupplyCreate, WithdrawalCreate, SaleEntryCreate, SessionClose
)
from app.modules.ledger.engine import money, ZERO
from app.modules.ledger.models import PaymentMethod

logger = logging.getLogger(__name__)

TILL_UPDATABLE_FIELDS = frozenset({"name", "branch_id", "bank_account_id", "withdrawal_limit", "is_active"})


class TillService:
    """Servicio para el registro de cajas"""

    def __init__(self, db: Session):
        self.db = db

    def _validate_bank_account(self, tenant_id: UUID, bank_account_id: Optional[UUID]):
        if bank_account_id:
            BankingService(self.db).get_account(tenant_id, bank_account_id)

    def create_till(self, ctx: AuthContext, data: TillCreate) -> Till:
        try:
            self._validate_bank_account(ctx.tenant_id, data.bank_account_id)
            till = Till(
                tenant_id=ctx.tenant_id,
                branch_id=data.branch_id or ctx.branch_id,
                name=data.name,
                bank_account_id=data.bank_account_id,
                withdrawal_limit=data.withdrawal_limit,
            )
            self.db.add(till)
            self.db.commit()
            self.db.refresh(till)
            return till
        except IntegrityError as e:
            self.db.rollback()
            logger.warning(f"Integrity error while trying to create till: {e.orig}")
            raise ConflictError("Conflicto de integridad al crear la caja")
        except Exception:
            self.db.rollback()
            raise

    def get_till(self, tenant_id: UUID, till_id: UUID) -> Till:
        till = self.db.query(Till).filter(
            Till.id == till_id,
            Till.tenant_id == tenant_id
        ).first()
        if not till:
            raise NotFoundError("Caja no encontrada", till_id=till_id)
        return till

    def describe(self, till: Till) -> dict:
        """Caja con su sesión abierta (si hay)"""
        open_session = self.db.query(CashSession).filter(
            CashSession.till_id == till.id,
            CashSession.status == CashSessionStatus.OPEN
        ).first()
        return {
            "id": till.id,
            "name": till.name,
            "branch_id": till.branch_id,
            "bank_account_id": till.bank_account_id,
            "withdrawal_limit": till.withdrawal_limit,
            "is_active": till.is_active,
            "open_session_id": open_session.id if open_session else None,
            "open_operator_id": open_session.operator_id if open_session else None,
        }

    def list_tills(self, tenant_id: UUID, branch_id: Optional[UUID] = None,
                   active_only: bool = False) -> list[dict]:
        query = self.db.query(Till).filter(Till.tenant_id == tenant_id)
        if branch_id:
            query = query.filter(Till.branch_id == branch_id)
        if active_only:
            query = query.filter(Till.is_active == True)
        return [self.describe(till) for till in query.order_by(Till.name).all()]

    def update_till(self, ctx: AuthContext, till_id: UUID, data: TillUpdate) -> Till:
        try:
            till = self.get_till(ctx.tenant_id, till_id)
            self._validate_bank_account(ctx.tenant_id, data.bank_account_id)
            changes = apply_update(till, data, TILL_UPDATABLE_FIELDS)
            self.db.commit()
            self.db.refresh(till)
        except IntegrityError as e:
            self.db.rollback()
            logger.warning(f"Integrity error while trying to update till {till_id}: {e.orig}")
            raise ConflictError("Conflicto de integridad al actualizar la caja")
        except Exception:
            self.db.rollback()
            raise

        if changes:
            AuditService(self.db).record(
                ctx, action="UPDATE", entity_type="till", entity_id=till.id,
                before={k: v[0] for k, v in changes.items()},
                after={k: v[1] for k, v in changes.items()},
            )
        return till


class CashSessionService:
    """Servicio para sesiones de caja"""

    def __init__(self, db: Session):
        self.db = db
        self.audit = AuditService(db)

    # ===== LECTURA =====

    def get_session(self, tenant_id: UUID, session_id: UUID, lock: bool = False) -> CashSession:
        query = self.db.query(CashSession).filter(
            CashSession.id == session_id,
            CashSession.tenant_id == tenant_id
        )
        if lock:
            query = query.with_for_update()
        session = query.first()
        if not session:
            raise NotFoundError("Sesión de caja no encontrada", session_id=session_id)
        return session

    def get_operator_session(self, tenant_id: UUID, operator_id: UUID, lock: bool = False) -> CashSession:
        query = self.db.query(CashSession).filter(
            CashSession.tenant_id == tenant_id,
            CashSession.operator_id == operator_id,
            CashSession.status == CashSessionStatus.OPEN
        )
        if lock:
            query = query.with_for_update()
        session = query.first()
        if not session:
            raise NotFoundError("No tienes una caja abierta", operator_id=operator_id)
        return session

    def _signed(self):
        return case(
            (CashPosting.direction == CashDirection.IN, CashPosting.amount),
            else_=-CashPosting.amount,
        )

    def totals_by_method(self, session: CashSession) -> Dict[PaymentMethod, Decimal]:
        """Σ con signo de los movimientos agrupados por forma de pago (sin apertura)"""
        rows = self.db.query(
            CashPosting.payment_method, func.coalesce(func.sum(self._signed()), 0)
        ).filter(
            CashPosting.session_id == session.id
        ).group_by(CashPosting.payment_method).all()
        return {PaymentMethod(row[0]): money(row[1]) for row in rows}

    def cash_balance(self, session: CashSession) -> Decimal:
        """Efectivo en caja: apertura + movimientos en efectivo"""
        total = self.db.query(func.coalesce(func.sum(self._signed()), 0)).filter(
            CashPosting.session_id == session.id,
            CashPosting.payment_method == PaymentMethod.CASH
        ).scalar()
        return money(session.opening_amount) + money(total)

    def live_balance(self, session: CashSession) -> Decimal:
        total = self.db.query(func.coalesce(func.sum(self._signed()), 0)).filter(
            CashPosting.session_id == session.id
        ).scalar()
        return money(session.opening_amount) + money(total)

    def over_withdrawal_limit(self, session: CashSession, cash_balance: Decimal) -> bool:
        """Efectivo en caja por encima del límite sugerido de la caja"""
        limit = session.till.withdrawal_limit
        return limit is not None and cash_balance > money(limit)

    def _by_method_list(self, session: CashSession) -> list[dict]:
        totals = self.totals_by_method(session)
        return [
            {"payment_method": method, "amount": amount}
            for method, amount in sorted(totals.items(), key=lambda item: item[0].value)
        ]

    def current_session(self, ctx: AuthContext) -> dict:
        """Mi caja: sesión abierta del operador con saldo en vivo"""
        session = self.get_operator_session(ctx.tenant_id, ctx.user_id)
        return self.describe_session(session)

    def describe_session(self, session: CashSession) -> dict:
        cash_balance = self.cash_balance(session)
        return {
            "session": session,
            "till_name": session.till.name,
            "live_balance": self.live_balance(session),
            "cash_balance": cash_balance,
            "over_withdrawal_limit": self.over_withdrawal_limit(session, cash_balance),
            "by_method": self._by_method_list(session),
            "postings": list(session.postings),
        }

    def list_sessions(self, tenant_id: UUID, params: PageParams,
                      till_id: Optional[UUID] = None,
                      operator_id: Optional[UUID] = None,
                      session_status: Optional[CashSessionStatus] = None,
                      date_from: Optional[date] = None,
                      date_to: Optional[date] = None) -> dict:
        """Historial de sesiones"""

        def apply_filters(query):
            query = query.filter(CashSession.tenant_id == tenant_id)
            if till_id:
                query = query.filter(CashSession.till_id == till_id)
            if operator_id:
                query = query.filter(CashSession.operator_id == operator_id)
            if session_status:
                query = query.filter(CashSession.status == session_status)
            if date_from:
                query = query.filter(CashSession.opened_at >= datetime.combine(date_from, time.min))
            if date_to:
                query = query.filter(CashSession.opened_at <= datetime.combine(date_to, time.max))
            return query

        return paginate(self.db, CashSession, apply_filters, params, order_by=(CashSession.opened_at.desc(),))

    # ===== ESCRITURA =====

    def _commit(self, error_label: str):
        try:
            self.db.commit()
        except IntegrityError as e:
            self.db.rollback()
            logger.warning(f"Integrity error while trying to {error_label}: {e.orig}")
            raise ConflictError(f"Conflicto de integridad al {error_label}")

    def _fail(self, e: Exception, error_label: str):
        self.db.rollback()
        logger.error(f"Error trying to {error_label}: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Error al {error_label}: {str(e)}"
        )

    def _ensure_open(self, session: CashSession):
        if session.status != CashSessionStatus.OPEN:
            raise InvalidStateError("La sesión de caja no está abierta", current_status=session.status)

    def open_session(self, ctx: AuthContext, data: SessionOpen) -> CashSession:
        """
        Abrir caja. Falla con Conflict si la caja ya tiene sesión abierta o si
        el operador ya tiene otra sesión abierta (en cualquier caja).
        """
        try:
            till = TillService(self.db).get_till(ctx.tenant_id, data.till_id)
            if not till.is_active:
                raise InvalidStateError("La caja está inactiva", current_status="inactive")

            till_busy = self.db.query(CashSession.id).filter(
                CashSession.till_id == till.id,
                CashSession.status == CashSessionStatus.OPEN
            ).first()
            if till_busy:
                raise ConflictError(f"La caja '{till.name}' ya está abierta", till_id=till.id)

            operator_busy = self.db.query(CashSession.id).filter(
                CashSession.tenant_id == ctx.tenant_id,
                CashSession.operator_id == ctx.user_id,
                CashSession.status == CashSessionStatus.OPEN
            ).first()
            if operator_busy:
                raise ConflictError("Ya tienes una caja abierta", session_id=operator_busy[0])

            session = CashSession(
                tenant_id=ctx.tenant_id,
                till_id=till.id,
                operator_id=ctx.user_id,
                status=CashSessionStatus.OPEN,
                opening_amount=money(data.opening_amount),
                opened_at=datetime.utcnow(),
                opening_notes=data.notes,
            )
            self.db.add(session)
            self._commit("abrir la caja")
            self.db.refresh(session)
        except (LedgerError, HTTPException):
            self.db.rollback()
            raise
        except Exception as e:
            self._fail(e, "abrir la caja")

        logger.info(f"Cash session {session.id} opened on till {till.name} by {ctx.user_id}")
        self.audit.record(
            ctx, action="OPEN_SESSION", entity_type="cash_session", entity_id=session.id,
            after={"till_id": till.id, "opening_amount": session.opening_amount},
        )
        return session

    def _add_posting(self, ctx: AuthContext, session: CashSession, *, kind: CashPostingKind,
                     direction: CashDirection, payment_method: PaymentMethod, amount: Decimal,
                     note: Optional[str] = None, reference_id: Optional[UUID] = None,
                     destination_bank_account_id: Optional[UUID] = None) -> CashPosting:
        posting = CashPosting(
            tenant_id=ctx.tenant_id,
            session_id=session.id,
            kind=kind,
            direction=direction,
            payment_method=payment_method,
            amount=money(amount),
            note=note,
            reference_id=reference_id,
            destination_bank_account_id=destination_bank_account_id,
            created_by=ctx.user_id,
        )
        self.db.add(posting)
        self.db.flush()
        return posting

    def _posting_result(self, session: CashSession, posting: CashPosting, bank_entry=None) -> dict:
        cash_balance = self.cash_balance(session)
        return {
            "posting": posting,
            "cash_balance": cash_balance,
            "over_withdrawal_limit": self.over_withdrawal_limit(session, cash_balance),
            "live_balance": self.live_balance(session),
            "bank_entry_id": bank_entry.id if bank_entry is not None else None,
        }

    def post_supply(self, ctx: AuthContext, session_id: UUID, data: SupplyCreate) -> dict:
        """Suministro: entrada de efectivo"""
        try:
            session = self.get_session(ctx.tenant_id, session_id, lock=True)
            self._ensure_open(session)
            posting = self._add_posting(
                ctx, session,
                kind=CashPostingKind.SUPPLY,
                direction=CashDirection.IN,
                payment_method=PaymentMethod.CASH,
                amount=data.amount,
                note=data.note or "Suministro de caja",
            )
            self._commit("registrar el suministro")
            self.db.refresh(posting)
        except (LedgerError, HTTPException):
            self.db.rollback()
            raise
        except Exception as e:
            self._fail(e, "registrar el suministro")

        self.audit.record(
            ctx, action="SUPPLY", entity_type="cash_session", entity_id=session.id,
            after={"posting_id": posting.id, "amount": posting.amount},
        )
        return self._posting_result(session, posting)

    def post_withdrawal(self, ctx: AuthContext, session_id: UUID, data: WithdrawalCreate,
                        today: Optional[date] = None) -> dict:
        """
        Sangría: salida de efectivo. No puede superar el efectivo disponible.
        Con cuenta destino (explícita o la de la caja) genera un crédito bancario.
        """
        bank_entry = None
        try:
            session = self.get_session(ctx.tenant_id, session_id, lock=True)
            self._ensure_open(session)

            amount = money(data.amount)
            available = self.cash_balance(session)
            if amount > available:
                raise InsufficientFundsError(
                    f"Saldo en efectivo insuficiente. Disponible: {available}",
                    requested=amount, available=available,
                )

            destination = data.destination_bank_account_id or session.till.bank_account_id
            posting = self._add_posting(
                ctx, session,
                kind=CashPostingKind.WITHDRAWAL,
                direction=CashDirection.OUT,
                payment_method=PaymentMethod.CASH,
                amount=amount,
                note=data.note or "Sangría de caja",
                destination_bank_account_id=destination,
            )

            if destination:
                bank_entry = BankingService(self.db).post_entry(
                    ctx.tenant_id, ctx.user_id, destination,
                    direction=EntryDirection.CREDIT,
                    category=EntryCategory.TILL_WITHDRAWAL,
                    amount=amount,
                    entry_date=today or date.today(),
                    description=f"Sangría - {session.till.name}",
                    origin_type=OriginType.CASH_POSTING,
                    origin_id=posting.id,
                    reference=session.till.name[:60],
                )

            self._commit("registrar la sangría")
            self.db.refresh(posting)
        except (LedgerError, HTTPException):
            self.db.rollback()
            raise
        except Exception as e:
            self._fail(e, "registrar la sangría")

        logger.info(f"Withdrawal of {posting.amount} from cash session {session.id}")
        self.audit.record(
            ctx, action="WITHDRAWAL", entity_type="cash_session", entity_id=session.id,
            after={"posting_id": posting.id, "amount": posting.amount,
                   "destination_bank_account_id": posting.destination_bank_account_id},
        )
        return self._posting_result(session, posting, bank_entry)

    def post_sale(self, ctx: AuthContext, session_id: UUID, data: SaleEntryCreate) -> dict:
        """Registrar cobro de venta en la sesión"""
        try:
            session = self.get_session(ctx.tenant_id, session_id, lock=True)
            self._ensure_open(session)
            posting = self._add_posting(
                ctx, session,
                kind=CashPostingKind.SALE,
                direction=CashDirection.IN,
                payment_method=data.payment_method,
                amount=data.amount,
                note=data.note,
                reference_id=data.reference_id,
            )
            self._commit("registrar la venta")
            self.db.refresh(posting)
        except (LedgerError, HTTPException):
            self.db.rollback()
            raise
        except Exception as e:
            self._fail(e, "registrar la venta")

        logger.info(
            f"Sale of {posting.amount} ({posting.payment_method.value}) recorded in cash session {session.id}"
        )
        self.audit.record(
            ctx, action="SALE", entity_type="cash_session", entity_id=session.id,
            after={"posting_id": posting.id, "amount": posting.amount,
                   "payment_method": posting.payment_method.value, "reference_id": posting.reference_id},
        )
        return self._posting_result(session, posting)

    def close_session(self, ctx: AuthContext, data: SessionClose,
                      session_id: Optional[UUID] = None) -> dict:
        """
        Cerrar caja con arqueo.

        system_amount = apertura + Σ movimientos con signo
        informed_amount = Σ montos informados por forma de pago
        discrepancy = informed_amount - system_amount (se registra, no se corrige)
        """
        try:
            if session_id:
                session = self.get_session(ctx.tenant_id, session_id, lock=True)
            else:
                session = self.get_operator_session(ctx.tenant_id, ctx.user_id, lock=True)
            self._ensure_open(session)

            system_by_method = self.totals_by_method(session)
            opening = money(session.opening_amount)
            system_by_method[PaymentMethod.CASH] = system_by_method.get(PaymentMethod.CASH, ZERO) + opening

            informed_by_method = {line.payment_method: money(line.amount) for line in data.informed}

            system_amount = sum(system_by_method.values(), ZERO)
            informed_amount = sum(informed_by_method.values(), ZERO)
            discrepancy = informed_amount - system_amount

            methods = sorted(set(system_by_method) | set(informed_by_method), key=lambda m: m.value)
            comparison = [
                {
                    "payment_method": method,
                    "system": system_by_method.get(method, ZERO),
                    "informed": informed_by_method.get(method, ZERO),
                    "difference": informed_by_method.get(method, ZERO) - system_by_method.get(method, ZERO),
                }
                for method in methods
            ]

            session.status = CashSessionStatus.CLOSED
            session.closed_at = datetime.utcnow()
            session.closed_by = ctx.user_id
            session.closing_notes = data.notes
            session.system_amount = system_amount
            session.informed_amount = informed_amount
            session.discrepancy = discrepancy
            session.system_breakdown = {m.value: str(v) for m, v in system_by_method.items()}
            session.informed_breakdown = {m.value: str(v) for m, v in informed_by_method.items()}

            self._commit("cerrar la caja")
            self.db.refresh(session)
        except (LedgerError, HTTPException):
            self.db.rollback()
            raise
        except Exception as e:
            self._fail(e, "cerrar la caja")

        if discrepancy == ZERO:
            message = "Caja cerrada sin diferencia"
        else:
            message = f"Caja cerrada con diferencia de {discrepancy:+.2f}"

        logger.info(
            f"Cash session {session.id} closed: system {system_amount}, informed {informed_amount}, "
            f"discrepancy {discrepancy}"
        )
        self.audit.record(
            ctx, action="CLOSE_SESSION", entity_type="cash_session", entity_id=session.id,
            before={"status": CashSessionStatus.OPEN.value},
            after={"status": session.status.value, "system_amount": system_amount,
                   "informed_amount": informed_amount, "discrepancy": discrepancy},
        )
        return {
            "session": session,
            "system_amount": system_amount,
            "informed_amount": informed_amount,
            "discrepancy": discrepancy,
            "by_method": comparison,
            "message": message,
        }
