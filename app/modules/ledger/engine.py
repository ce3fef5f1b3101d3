"""
Motor de liquidación de documentos del libro.

Una sola implementación sirve a cuentas por cobrar y cuentas por pagar; la
diferencia entre ambas (tablas, sentido del movimiento bancario, tipo de
origen, secuencia) se declara en un LedgerConfig.

Reglas:
- Solo el motor escribe `balance` y `status`.
- Abono + actualización del documento + movimiento bancario se confirman en
  un único commit; antes del commit se verifica que
  balance == total_amount - Σ applied_amount.
- CANCELED solo desde OPEN; nunca altera abonos previos.
- La auditoría se escribe después del commit y no puede hacerlo fallar.
"""
import calendar
import logging
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Callable, Optional
from uuid import UUID

from fastapi import HTTPException, status
from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, selectinload

from app.common.exceptions import (
    ConflictError, InvalidStateError, LedgerError, NotFoundError, ValidationError
)
from app.common.pagination import PageParams, paginate
from app.common.updates import apply_update
from app.core.config import settings
from app.modules.audit.service import AuditService
from app.modules.auth.schemas import AuthContext
from app.modules.banking.models import EntryCategory, EntryDirection, OriginType
from app.modules.banking.service import BankingService
from app.modules.ledger.models import DocumentStatus
from app.modules.ledger.schemas import (
    DocumentFilters, LedgerDocumentCreate, PostingCreate
)
from app.modules.sequences.models import DocumentType
from app.modules.sequences.service import SequenceService

logger = logging.getLogger(__name__)

CENT = Decimal("0.01")
ZERO = Decimal("0.00")


def money(value: Any) -> Decimal:
    """Normaliza a Decimal con dos decimales."""
    if value is None:
        return ZERO
    if not isinstance(value, Decimal):
        value = Decimal(str(value))
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


class ReconciliationError(Exception):
    """El saldo guardado no coincide con el recalculado a partir de los abonos."""


@dataclass(frozen=True)
class LedgerConfig:
    entity_type: str                 # Nombre para auditoría y logs
    label: str                       # "Cobro" / "Pago", usado en la etiqueta bancaria
    document_label: str              # Mensajes de error
    document_model: Any
    posting_model: Any
    method_model: Any
    bank_direction: EntryDirection
    bank_category: EntryCategory
    origin_type: OriginType
    sequence_type: DocumentType
    updatable_fields: frozenset


class SettlementEngine:
    """Ciclo de vida y liquidación de documentos del libro"""

    def __init__(self, db: Session, config: LedgerConfig):
        self.db = db
        self.config = config
        self.audit = AuditService(db)

    # ===== LECTURA =====

    def _base_query(self, tenant_id: UUID):
        model = self.config.document_model
        return self.db.query(model).filter(model.tenant_id == tenant_id)

    def get(self, tenant_id: UUID, document_id: UUID):
        model = self.config.document_model
        document = self._base_query(tenant_id).options(
            selectinload(model.postings).selectinload(self.config.posting_model.methods)
        ).filter(model.id == document_id).first()
        if not document:
            raise NotFoundError(f"{self.config.document_label} no encontrada", id=document_id)
        return document

    def _lock(self, tenant_id: UUID, document_id: UUID):
        """Lee el documento con bloqueo de fila para la transacción actual."""
        model = self.config.document_model
        document = self._base_query(tenant_id).filter(
            model.id == document_id
        ).with_for_update().first()
        if not document:
            raise NotFoundError(f"{self.config.document_label} no encontrada", id=document_id)
        return document

    def _ensure_open(self, document, action: str):
        if document.status != DocumentStatus.OPEN:
            raise InvalidStateError(
                f"No se puede {action}: el documento ya está liquidado o cancelado",
                current_status=document.status,
            )

    def _number_taken(self, tenant_id: UUID, document_number: str) -> bool:
        model = self.config.document_model
        return self.db.query(
            self._base_query(tenant_id).filter(model.document_number == document_number).exists()
        ).scalar()

    def _allocate_number(self, tenant_id: UUID, branch_id: Optional[UUID]) -> str:
        """Siguiente número libre de la secuencia; salta los cargados a mano."""
        sequences = SequenceService(self.db)
        while True:
            _, document_number = sequences.allocate(tenant_id, self.config.sequence_type, branch_id)
            if not self._number_taken(tenant_id, document_number):
                return document_number
            logger.info(f"{self.config.entity_type} number {document_number} already used, skipping")

    def posted_total(self, document_id: UUID) -> Decimal:
        posting = self.config.posting_model
        total = self.db.query(
            func.coalesce(func.sum(posting.applied_amount), 0)
        ).filter(posting.document_id == document_id).scalar()
        return money(total)

    def verify(self, document) -> None:
        """balance == total_amount - Σ applied_amount."""
        expected = money(document.total_amount) - self.posted_total(document.id)
        if expected < ZERO:
            expected = ZERO
        if money(document.balance) != expected:
            raise ReconciliationError(
                f"{self.config.entity_type} {document.id}: balance {document.balance} != recomputed {expected}"
            )

    # ===== ESCRITURA =====

    def _run(self, operation: Callable[[], Any], error_label: str):
        """Ejecuta una operación de escritura con commit único o rollback total."""
        try:
            result = operation()
            self.db.commit()
            return result
        except (LedgerError, HTTPException):
            self.db.rollback()
            raise
        except IntegrityError as e:
            self.db.rollback()
            logger.warning(f"Integrity error while trying to {error_label}: {e.orig}")
            raise ConflictError(f"Conflicto de integridad al {error_label}")
        except Exception as e:
            self.db.rollback()
            logger.error(f"Error trying to {error_label}: {e}")
            raise HTTPException(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                detail=f"Error al {error_label}: {str(e)}"
            )

    def create(self, ctx: AuthContext, data: LedgerDocumentCreate, **extra):
        """Alta de documento: total calculado una vez, saldo = total, estado OPEN."""
        model = self.config.document_model
        branch_id = data.branch_id or ctx.branch_id

        def operation():
            if data.bank_account_id:
                BankingService(self.db).get_account(ctx.tenant_id, data.bank_account_id)

            document_number = data.document_number
            if document_number:
                if self._number_taken(ctx.tenant_id, document_number):
                    raise ConflictError(
                        f"Ya existe un documento con el número {document_number}",
                        document_number=document_number,
                    )
            else:
                document_number = self._allocate_number(ctx.tenant_id, branch_id)

            total = money(
                data.original_amount + data.interest_amount + data.penalty_amount - data.discount_amount
            )
            document = model(
                tenant_id=ctx.tenant_id,
                branch_id=branch_id,
                document_number=document_number,
                description=data.description,
                counterparty_id=data.counterparty_id,
                counterparty_name=data.counterparty_name,
                issue_date=data.issue_date or date.today(),
                due_date=data.due_date,
                original_amount=money(data.original_amount),
                interest_amount=money(data.interest_amount),
                penalty_amount=money(data.penalty_amount),
                discount_amount=money(data.discount_amount),
                total_amount=total,
                balance=total,
                status=DocumentStatus.OPEN,
                installment=data.installment,
                total_installments=data.total_installments,
                payment_method=data.payment_method,
                bank_account_id=data.bank_account_id,
                notes=data.notes,
                created_by=ctx.user_id,
                **extra,
            )
            self.db.add(document)
            self.db.flush()
            return document

        document = self._run(operation, f"crear {self.config.entity_type}")
        self.db.refresh(document)
        logger.info(f"{self.config.entity_type} {document.document_number} created, total {document.total_amount}")
        self.audit.record(
            ctx, action="CREATE", entity_type=self.config.entity_type, entity_id=document.id,
            after={"document_number": document.document_number, "total_amount": document.total_amount},
        )
        return document

    def apply(self, ctx: AuthContext, document_id: UUID, data: PostingCreate,
              today: Optional[date] = None) -> dict:
        """
        Aplica un abono al documento.

        new_balance = max(0, balance - applied_amount); SETTLED cuando llega a 0.
        El monto líquido (applied + interés + multa - descuento) es el que se
        registra en el banco cuando hay cuenta bancaria.
        """
        config = self.config
        effective_date = data.effective_date or today or date.today()

        def operation():
            document = self._lock(ctx.tenant_id, document_id)
            self._ensure_open(document, "registrar el abono")

            applied = money(data.applied_amount)
            breakdown_total = money(sum((line.amount for line in data.breakdown), ZERO))
            if breakdown_total != applied:
                raise ValidationError(
                    "La suma del desglose debe ser igual al monto aplicado",
                    field="breakdown", breakdown_total=breakdown_total, applied_amount=applied,
                )

            current_balance = money(document.balance)
            if applied > current_balance:
                raise ValidationError(
                    "El abono excede el saldo pendiente",
                    field="applied_amount", applied_amount=applied, balance=current_balance,
                )

            net = money(applied + data.interest_amount + data.penalty_amount - data.discount_amount)
            if net < ZERO:
                raise ValidationError("El monto líquido no puede ser negativo", field="discount_amount")

            new_balance = max(ZERO, current_balance - applied)
            new_status = DocumentStatus.SETTLED if new_balance == ZERO else DocumentStatus.OPEN

            posting = config.posting_model(
                tenant_id=ctx.tenant_id,
                document_id=document.id,
                applied_amount=applied,
                interest_amount=money(data.interest_amount),
                penalty_amount=money(data.penalty_amount),
                discount_amount=money(data.discount_amount),
                net_amount=net,
                balance_after=new_balance,
                effective_date=effective_date,
                bank_account_id=data.bank_account_id,
                note=data.note,
                created_by=ctx.user_id,
            )
            self.db.add(posting)
            self.db.flush()

            for position, line in enumerate(data.breakdown):
                self.db.add(config.method_model(
                    tenant_id=ctx.tenant_id,
                    posting_id=posting.id,
                    position=position,
                    payment_method=line.payment_method,
                    amount=money(line.amount),
                ))

            bank_entry = None
            if data.bank_account_id and net > ZERO:
                bank_entry = BankingService(self.db).post_entry(
                    ctx.tenant_id, ctx.user_id, data.bank_account_id,
                    direction=config.bank_direction,
                    category=config.bank_category,
                    amount=net,
                    entry_date=effective_date,
                    description=f"{config.label} - {document.document_number}",
                    origin_type=config.origin_type,
                    origin_id=posting.id,
                    reference=document.document_number,
                )

            document.balance = new_balance
            document.status = new_status
            if new_status == DocumentStatus.SETTLED:
                document.settled_at = datetime.utcnow()

            self.db.flush()
            self.verify(document)

            return {
                "posting_id": posting.id,
                "new_balance": new_balance,
                "new_status": new_status,
                "net_amount": net,
                "bank_entry_id": bank_entry.id if bank_entry is not None else None,
                "previous_balance": current_balance,
                "document_number": document.document_number,
            }

        result = self._run(operation, f"registrar abono de {config.entity_type}")
        previous_balance = result.pop("previous_balance")
        document_number = result.pop("document_number")

        if result["new_status"] == DocumentStatus.SETTLED:
            result["message"] = f"{config.document_label} {document_number} liquidada"
        else:
            result["message"] = (
                f"Abono registrado en {document_number}, saldo pendiente {result['new_balance']}"
            )

        logger.info(
            f"{config.entity_type} {document_number}: applied {data.applied_amount}, "
            f"balance {previous_balance} -> {result['new_balance']} ({result['new_status'].value})"
        )
        self.audit.record(
            ctx, action="SETTLE", entity_type=config.entity_type, entity_id=document_id,
            before={"balance": previous_balance},
            after={"balance": result["new_balance"], "status": result["new_status"].value,
                   "posting_id": result["posting_id"]},
        )
        return result

    def cancel(self, ctx: AuthContext, document_id: UUID, reason: str):
        """OPEN -> CANCELED. El saldo queda como estaba."""

        def operation():
            document = self._lock(ctx.tenant_id, document_id)
            self._ensure_open(document, "cancelar")
            document.status = DocumentStatus.CANCELED
            document.cancel_reason = reason
            document.canceled_at = datetime.utcnow()
            document.canceled_by = ctx.user_id
            return document

        document = self._run(operation, f"cancelar {self.config.entity_type}")
        self.db.refresh(document)
        logger.info(f"{self.config.entity_type} {document.document_number} canceled")
        self.audit.record(
            ctx, action="CANCEL", entity_type=self.config.entity_type, entity_id=document.id,
            before={"status": DocumentStatus.OPEN.value},
            after={"status": document.status.value, "balance": document.balance, "reason": reason},
        )
        return document

    def reschedule(self, ctx: AuthContext, document_id: UUID, new_due_date: date, reason: str):
        """Cambia la fecha de vencimiento (solo OPEN). No afecta el saldo."""
        captured = {}

        def operation():
            document = self._lock(ctx.tenant_id, document_id)
            self._ensure_open(document, "cambiar el vencimiento")
            if document.due_date == new_due_date:
                raise ValidationError("La nueva fecha de vencimiento es igual a la actual", field="new_due_date")
            captured["old_due_date"] = document.due_date
            document.due_date = new_due_date
            return document

        document = self._run(operation, f"reprogramar {self.config.entity_type}")
        self.db.refresh(document)
        logger.info(
            f"{self.config.entity_type} {document.document_number} rescheduled "
            f"{captured['old_due_date']} -> {new_due_date}"
        )
        self.audit.record(
            ctx, action="RESCHEDULE", entity_type=self.config.entity_type, entity_id=document.id,
            before={"due_date": captured["old_due_date"]},
            after={"due_date": new_due_date, "reason": reason},
        )
        return document

    def update(self, ctx: AuthContext, document_id: UUID, data):
        """Actualización parcial de metadatos permitidos (solo OPEN)."""
        captured = {}

        def operation():
            document = self._lock(ctx.tenant_id, document_id)
            self._ensure_open(document, "editar")
            if getattr(data, "bank_account_id", None):
                BankingService(self.db).get_account(ctx.tenant_id, data.bank_account_id)
            captured["changes"] = apply_update(document, data, self.config.updatable_fields)
            return document

        document = self._run(operation, f"actualizar {self.config.entity_type}")
        self.db.refresh(document)
        changes = captured["changes"]
        if changes:
            self.audit.record(
                ctx, action="UPDATE", entity_type=self.config.entity_type, entity_id=document.id,
                before={k: v[0] for k, v in changes.items()},
                after={k: v[1] for k, v in changes.items()},
            )
        return document

    # ===== LISTADOS Y RESUMEN =====

    def list(self, tenant_id: UUID, filters: DocumentFilters, params: PageParams,
             extra_filters: Optional[Callable] = None, today: Optional[date] = None) -> dict:
        model = self.config.document_model
        today = today or date.today()

        def apply_filters(query):
            query = query.filter(model.tenant_id == tenant_id)
            if filters.status:
                query = query.filter(model.status == filters.status)
            if filters.counterparty_id:
                query = query.filter(model.counterparty_id == filters.counterparty_id)
            if filters.due_from:
                query = query.filter(model.due_date >= filters.due_from)
            if filters.due_to:
                query = query.filter(model.due_date <= filters.due_to)
            if filters.overdue_only:
                query = query.filter(model.status == DocumentStatus.OPEN, model.due_date < today)
            if filters.branch_id:
                query = query.filter(model.branch_id == filters.branch_id)
            if filters.search:
                pattern = f"%{filters.search}%"
                query = query.filter(
                    model.document_number.ilike(pattern) | model.counterparty_name.ilike(pattern)
                )
            if extra_filters:
                query = extra_filters(query)
            return query

        return paginate(
            self.db, model, apply_filters, params,
            order_by=(model.due_date.asc(), model.document_number.asc()),
        )

    def summary(self, tenant_id: UUID, branch_id: Optional[UUID] = None,
                today: Optional[date] = None) -> dict:
        """
        Totales del tablero. Los documentos cancelados no entran en los
        totales abiertos; se informan aparte.
        """
        model = self.config.document_model
        posting = self.config.posting_model
        today = today or date.today()

        def scoped(query):
            query = query.filter(model.tenant_id == tenant_id)
            if branch_id:
                query = query.filter(model.branch_id == branch_id)
            return query

        def total_and_count(*conditions):
            total, count = scoped(self.db.query(
                func.coalesce(func.sum(model.balance), 0), func.count(model.id)
            )).filter(*conditions).one()
            return money(total), int(count or 0)

        open_total, open_count = total_and_count(model.status == DocumentStatus.OPEN)
        overdue_total, overdue_count = total_and_count(
            model.status == DocumentStatus.OPEN, model.due_date < today
        )
        to_fall_due_total, _ = total_and_count(
            model.status == DocumentStatus.OPEN, model.due_date >= today
        )
        canceled_balance, canceled_count = total_and_count(model.status == DocumentStatus.CANCELED)

        month_start = today.replace(day=1)
        month_end = today.replace(day=calendar.monthrange(today.year, today.month)[1])
        settled_this_month = scoped(
            self.db.query(func.coalesce(func.sum(posting.applied_amount), 0))
            .select_from(posting)
            .join(model, posting.document_id == model.id)
        ).filter(
            posting.effective_date >= month_start,
            posting.effective_date <= month_end
        ).scalar()

        upcoming = scoped(self.db.query(model)).filter(
            model.status == DocumentStatus.OPEN,
            model.due_date >= today,
            model.due_date <= today + timedelta(days=settings.UPCOMING_DUE_DAYS)
        ).order_by(model.due_date.asc()).all()

        top_rows = scoped(self.db.query(
            model.counterparty_id,
            func.max(model.counterparty_name),
            func.coalesce(func.sum(model.balance), 0).label("open_balance"),
            func.count(model.id),
        )).filter(
            model.status == DocumentStatus.OPEN
        ).group_by(model.counterparty_id).order_by(
            func.sum(model.balance).desc()
        ).limit(settings.TOP_COUNTERPARTIES).all()

        return {
            "open_total": open_total,
            "overdue_total": overdue_total,
            "to_fall_due_total": to_fall_due_total,
            "settled_this_month": money(settled_this_month),
            "open_count": open_count,
            "overdue_count": overdue_count,
            "canceled_count": canceled_count,
            "canceled_balance": canceled_balance,
            "upcoming": upcoming,
            "top_counterparties": [
                {
                    "counterparty_id": row[0],
                    "counterparty_name": row[1],
                    "open_balance": money(row[2]),
                    "documents": int(row[3]),
                }
                for row in top_rows
            ],
        }
