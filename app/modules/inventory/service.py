"""
Servicio de conteo de inventario.

La "liquidación" del conteo es el ajuste de existencias: por cada línea
divergente se emite un movimiento por |contado - sistema| y la existencia
pasa a ser la cantidad contada.
"""
import logging
from datetime import date, datetime
from decimal import Decimal
from typing import Optional
from uuid import UUID

from fastapi import HTTPException, status
from sqlalchemy import and_, func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, selectinload

from app.common.exceptions import (
    ConflictError, InvalidStateError, LedgerError, NotFoundError, PreconditionError
)
from app.common.pagination import PageParams, paginate
from app.modules.audit.service import AuditService
from app.modules.auth.schemas import AuthContext
from app.modules.inventory.models import (
    InventoryCount, InventoryCountLine, InventoryCountStatus
)
from app.modules.inventory.schemas import (
    InventoryCountCreate, InventoryCountOut, GenerateLinesRequest, CountEntry, BatchCountRequest
)
from app.modules.products.models import (
    Product, Stock, StockLocation, StockMovement, StockMovementType, StockMovementReason
)
from app.modules.sequences.models import DocumentType
from app.modules.sequences.service import SequenceService

logger = logging.getLogger(__name__)

ZERO = Decimal("0")
ACTIVE_STATUSES = (InventoryCountStatus.DRAFT, InventoryCountStatus.COUNTING)
MOVEMENT_ORIGIN = "inventory_count"


class InventoryCountService:
    """Servicio para conteos de inventario"""

    def __init__(self, db: Session):
        self.db = db
        self.audit = AuditService(db)

    # ===== LECTURA =====

    def get_count(self, tenant_id: UUID, count_id: UUID, lock: bool = False) -> InventoryCount:
        query = self.db.query(InventoryCount).filter(
            InventoryCount.id == count_id,
            InventoryCount.tenant_id == tenant_id
        )
        if lock:
            query = query.with_for_update()
        else:
            query = query.options(selectinload(InventoryCount.lines))
        count = query.first()
        if not count:
            raise NotFoundError("Inventario no encontrado", count_id=count_id)
        return count

    def _ensure_status(self, count: InventoryCount, allowed: tuple, action: str):
        if count.status not in allowed:
            raise InvalidStateError(
                f"No se puede {action} un inventario en estado {count.status.value}",
                current_status=count.status,
            )

    def statistics(self, count: InventoryCount) -> dict:
        lines = count.lines
        counted = [line for line in lines if line.counted_quantity is not None]
        divergent = [line for line in counted if line.is_divergent]
        surplus = sum((line.divergence_value for line in divergent if line.difference > 0), Decimal("0.00"))
        shortage = -sum((line.divergence_value for line in divergent if line.difference < 0), Decimal("0.00"))
        return {
            "total_lines": len(lines),
            "counted_lines": len(counted),
            "pending_lines": len(lines) - len(counted),
            "divergent_lines": len(divergent),
            "surplus_value": surplus,
            "shortage_value": shortage,
            "divergence_value": surplus - shortage,
        }

    def get_detail(self, tenant_id: UUID, count_id: UUID) -> dict:
        count = self.get_count(tenant_id, count_id)
        return {
            **InventoryCountOut.model_validate(count).model_dump(),
            "lines": count.lines,
            "stats": self.statistics(count),
        }

    def list_counts(self, tenant_id: UUID, params: PageParams,
                    count_status: Optional[InventoryCountStatus] = None,
                    location_id: Optional[UUID] = None) -> dict:
        def apply_filters(query):
            query = query.filter(InventoryCount.tenant_id == tenant_id)
            if count_status:
                query = query.filter(InventoryCount.status == count_status)
            if location_id:
                query = query.filter(InventoryCount.location_id == location_id)
            return query

        return paginate(
            self.db, InventoryCount, apply_filters, params,
            order_by=(InventoryCount.created_at.desc(), InventoryCount.number.desc()),
        )

    def dashboard(self, tenant_id: UUID) -> dict:
        """Conteos por estado, conteos en curso y finalizados pendientes de ajuste"""
        rows = self.db.query(InventoryCount.status, func.count(InventoryCount.id)).filter(
            InventoryCount.tenant_id == tenant_id
        ).group_by(InventoryCount.status).all()
        by_status = {s.value: 0 for s in InventoryCountStatus}
        by_status.update({row[0].value: int(row[1]) for row in rows})

        in_progress = self.db.query(InventoryCount).filter(
            InventoryCount.tenant_id == tenant_id,
            InventoryCount.status == InventoryCountStatus.COUNTING
        ).order_by(InventoryCount.start_date).all()

        pending_adjustment = self.db.query(func.count(func.distinct(InventoryCount.id))).join(
            InventoryCountLine, InventoryCountLine.count_id == InventoryCount.id
        ).filter(
            InventoryCount.tenant_id == tenant_id,
            InventoryCount.status == InventoryCountStatus.FINALIZED,
            InventoryCountLine.adjusted == False,
            InventoryCountLine.counted_quantity != InventoryCountLine.system_quantity
        ).scalar()

        return {
            "by_status": by_status,
            "in_progress": in_progress,
            "pending_adjustment": int(pending_adjustment or 0),
        }

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

    def create_count(self, ctx: AuthContext, data: InventoryCountCreate) -> InventoryCount:
        """Crear conteo en DRAFT. Solo uno en curso por depósito."""
        try:
            location = self.db.query(StockLocation).filter(
                StockLocation.id == data.location_id,
                StockLocation.tenant_id == ctx.tenant_id
            ).with_for_update().first()
            if not location:
                raise NotFoundError("Depósito no encontrado", location_id=data.location_id)

            active = self.db.query(InventoryCount).filter(
                InventoryCount.tenant_id == ctx.tenant_id,
                InventoryCount.location_id == location.id,
                InventoryCount.status.in_(ACTIVE_STATUSES)
            ).first()
            if active:
                raise ConflictError(
                    f"Ya existe un inventario en curso para este depósito ({active.number})",
                    count_id=active.id,
                )

            branch_id = data.branch_id or location.branch_id
            _, number = SequenceService(self.db).allocate(
                ctx.tenant_id, DocumentType.INVENTORY_COUNT, branch_id
            )
            count = InventoryCount(
                tenant_id=ctx.tenant_id,
                branch_id=branch_id,
                number=number,
                location_id=location.id,
                count_type=data.count_type,
                status=InventoryCountStatus.DRAFT,
                responsible_id=data.responsible_id or ctx.user_id,
                start_date=data.start_date or date.today(),
                notes=data.notes,
                created_by=ctx.user_id,
            )
            self.db.add(count)
            self._commit("crear el inventario")
            self.db.refresh(count)
        except (LedgerError, HTTPException):
            self.db.rollback()
            raise
        except Exception as e:
            self._fail(e, "crear el inventario")

        logger.info(f"Inventory count {count.number} created for location {location.name}")
        self.audit.record(
            ctx, action="CREATE", entity_type="inventory_count", entity_id=count.id,
            after={"number": count.number, "location_id": count.location_id, "count_type": count.count_type.value},
        )
        return count

    def generate_lines(self, ctx: AuthContext, count_id: UUID, filters: GenerateLinesRequest) -> dict:
        """
        Foto de existencia y costo por producto. Reemplaza las líneas previas.
        Costo: costo medio del depósito o, si falta, precio de costo del producto.
        """
        try:
            count = self.get_count(ctx.tenant_id, count_id, lock=True)
            self._ensure_status(count, (InventoryCountStatus.DRAFT,), "generar ítems de")

            query = self.db.query(Product, Stock).outerjoin(
                Stock,
                and_(
                    Stock.product_id == Product.id,
                    Stock.location_id == count.location_id,
                    Stock.tenant_id == ctx.tenant_id
                )
            ).filter(
                Product.tenant_id == ctx.tenant_id,
                Product.is_active == True
            )
            if filters.category_id:
                query = query.filter(Product.category_id == filters.category_id)
            if filters.brand_id:
                query = query.filter(Product.brand_id == filters.brand_id)
            if filters.only_with_stock:
                query = query.filter(Stock.quantity > 0)

            self.db.query(InventoryCountLine).filter(
                InventoryCountLine.count_id == count.id
            ).delete(synchronize_session=False)

            generated = 0
            for product, stock in query.order_by(Product.name).all():
                unit_cost = stock.average_cost if stock is not None and stock.average_cost is not None else product.cost_price
                self.db.add(InventoryCountLine(
                    tenant_id=ctx.tenant_id,
                    count_id=count.id,
                    product_id=product.id,
                    product_name=product.name,
                    sku=product.sku,
                    system_quantity=stock.quantity if stock is not None else ZERO,
                    unit_cost=unit_cost or ZERO,
                ))
                generated += 1

            self._commit("generar los ítems")
        except (LedgerError, HTTPException):
            self.db.rollback()
            raise
        except Exception as e:
            self._fail(e, "generar los ítems")

        logger.info(f"Inventory count {count.number}: {generated} lines generated")
        return {"count_id": count.id, "lines_generated": generated}

    def start(self, ctx: AuthContext, count_id: UUID) -> InventoryCount:
        """DRAFT -> COUNTING. Requiere al menos un ítem."""
        try:
            count = self.get_count(ctx.tenant_id, count_id, lock=True)
            self._ensure_status(count, (InventoryCountStatus.DRAFT,), "iniciar")

            lines = self.db.query(func.count(InventoryCountLine.id)).filter(
                InventoryCountLine.count_id == count.id
            ).scalar()
            if not lines:
                raise PreconditionError("El inventario no tiene ítems. Genere los ítems antes de iniciar", lines=0)

            count.status = InventoryCountStatus.COUNTING
            count.started_at = datetime.utcnow()
            self._commit("iniciar el inventario")
            self.db.refresh(count)
        except (LedgerError, HTTPException):
            self.db.rollback()
            raise
        except Exception as e:
            self._fail(e, "iniciar el inventario")

        self.audit.record(
            ctx, action="START", entity_type="inventory_count", entity_id=count.id,
            after={"status": count.status.value, "lines": lines},
        )
        return count

    def _apply_entry(self, ctx: AuthContext, count: InventoryCount, entry: CountEntry) -> InventoryCountLine:
        line = self.db.query(InventoryCountLine).filter(
            InventoryCountLine.count_id == count.id,
            InventoryCountLine.product_id == entry.product_id
        ).first()
        if not line:
            raise NotFoundError("Producto no pertenece a este inventario", product_id=entry.product_id)

        line.counted_quantity = entry.counted_quantity
        line.lot = entry.lot
        line.expiry_date = entry.expiry_date
        line.note = entry.note
        line.counted_at = datetime.utcnow()
        line.counted_by = ctx.user_id
        return line

    def record_count(self, ctx: AuthContext, count_id: UUID, entry: CountEntry) -> InventoryCountLine:
        """Registra (o corrige) la cantidad contada de un producto. Solo en COUNTING."""
        try:
            count = self.get_count(ctx.tenant_id, count_id, lock=True)
            self._ensure_status(count, (InventoryCountStatus.COUNTING,), "registrar conteos en")
            line = self._apply_entry(ctx, count, entry)
            self._commit("registrar el conteo")
            self.db.refresh(line)
        except (LedgerError, HTTPException):
            self.db.rollback()
            raise
        except Exception as e:
            self._fail(e, "registrar el conteo")
        return line

    def record_counts(self, ctx: AuthContext, count_id: UUID, data: BatchCountRequest) -> dict:
        """Conteo en lote: aplica las entradas válidas y devuelve los errores por entrada."""
        errors = []
        processed = 0
        try:
            count = self.get_count(ctx.tenant_id, count_id, lock=True)
            self._ensure_status(count, (InventoryCountStatus.COUNTING,), "registrar conteos en")
            for entry in data.entries:
                try:
                    self._apply_entry(ctx, count, entry)
                    processed += 1
                except NotFoundError as e:
                    errors.append({"product_id": entry.product_id, "error": e.message})
            self._commit("registrar el conteo en lote")
        except (LedgerError, HTTPException):
            self.db.rollback()
            raise
        except Exception as e:
            self._fail(e, "registrar el conteo en lote")

        if errors:
            logger.info(f"Inventory count {count.number}: batch with {len(errors)} rejected entries")
        return {"processed": processed, "errors": errors}

    def finalize(self, ctx: AuthContext, count_id: UUID) -> InventoryCount:
        """COUNTING -> FINALIZED. Falla si quedan ítems sin contar."""
        try:
            count = self.get_count(ctx.tenant_id, count_id, lock=True)
            self._ensure_status(count, (InventoryCountStatus.COUNTING,), "finalizar")

            uncounted = self.db.query(func.count(InventoryCountLine.id)).filter(
                InventoryCountLine.count_id == count.id,
                InventoryCountLine.counted_quantity.is_(None)
            ).scalar()
            if uncounted:
                raise PreconditionError(f"Existen {uncounted} ítems sin contar", uncounted=uncounted)

            count.status = InventoryCountStatus.FINALIZED
            count.finalized_at = datetime.utcnow()
            self._commit("finalizar el inventario")
            self.db.refresh(count)
        except (LedgerError, HTTPException):
            self.db.rollback()
            raise
        except Exception as e:
            self._fail(e, "finalizar el inventario")

        logger.info(f"Inventory count {count.number} finalized")
        self.audit.record(
            ctx, action="FINALIZE", entity_type="inventory_count", entity_id=count.id,
            after={"status": count.status.value},
        )
        return count

    def _stock_row(self, tenant_id: UUID, product_id: UUID, location_id: UUID) -> Stock:
        stock = self.db.query(Stock).filter(
            Stock.tenant_id == tenant_id,
            Stock.product_id == product_id,
            Stock.location_id == location_id
        ).with_for_update().first()
        if stock is None:
            stock = Stock(tenant_id=tenant_id, product_id=product_id, location_id=location_id, quantity=ZERO)
            self.db.add(stock)
            self.db.flush()
        return stock

    def adjust_stock(self, ctx: AuthContext, count_id: UUID) -> dict:
        """
        FINALIZED -> ADJUSTED.

        Por cada línea divergente sin ajustar: movimiento ENTRY/EXIT por
        |contado - sistema| y existencia = contado.
        """
        try:
            count = self.get_count(ctx.tenant_id, count_id, lock=True)
            self._ensure_status(count, (InventoryCountStatus.FINALIZED,), "ajustar existencias de")

            pending = [
                line for line in self.db.query(InventoryCountLine).filter(
                    InventoryCountLine.count_id == count.id,
                    InventoryCountLine.adjusted == False
                ).all()
                if line.is_divergent
            ]
            if not pending:
                raise PreconditionError("No hay divergencias para ajustar", divergent_lines=0)

            divergence_value = Decimal("0.00")
            for line in pending:
                difference = line.difference
                stock = self._stock_row(ctx.tenant_id, line.product_id, count.location_id)
                previous = Decimal(stock.quantity or 0)

                movement = StockMovement(
                    tenant_id=ctx.tenant_id,
                    product_id=line.product_id,
                    location_id=count.location_id,
                    movement_type=StockMovementType.ENTRY if difference > 0 else StockMovementType.EXIT,
                    reason=StockMovementReason.INVENTORY_ADJUSTMENT,
                    quantity=abs(difference),
                    unit_cost=line.unit_cost,
                    previous_quantity=previous,
                    new_quantity=line.counted_quantity,
                    origin_type=MOVEMENT_ORIGIN,
                    origin_id=count.id,
                    notes=f"Ajuste inventario {count.number}",
                    created_by=ctx.user_id,
                )
                self.db.add(movement)
                self.db.flush()

                stock.quantity = line.counted_quantity
                line.adjusted = True
                line.movement_id = movement.id
                divergence_value += line.divergence_value

            count.status = InventoryCountStatus.ADJUSTED
            count.adjusted_at = datetime.utcnow()
            count.adjusted_by = ctx.user_id
            self._commit("ajustar existencias")
            self.db.refresh(count)
        except (LedgerError, HTTPException):
            self.db.rollback()
            raise
        except Exception as e:
            self._fail(e, "ajustar existencias")

        logger.info(
            f"Inventory count {count.number} adjusted: {len(pending)} movements, value {divergence_value}"
        )
        self.audit.record(
            ctx, action="ADJUST", entity_type="inventory_count", entity_id=count.id,
            after={"movements": len(pending), "divergence_value": divergence_value},
        )
        return {
            "count_id": count.id,
            "status": count.status,
            "movements_created": len(pending),
            "divergence_value": divergence_value,
        }

    def cancel(self, ctx: AuthContext, count_id: UUID, reason: str) -> InventoryCount:
        """DRAFT/COUNTING -> CANCELED"""
        try:
            count = self.get_count(ctx.tenant_id, count_id, lock=True)
            self._ensure_status(count, ACTIVE_STATUSES, "cancelar")
            previous = count.status
            count.status = InventoryCountStatus.CANCELED
            count.canceled_at = datetime.utcnow()
            count.cancel_reason = reason
            self._commit("cancelar el inventario")
            self.db.refresh(count)
        except (LedgerError, HTTPException):
            self.db.rollback()
            raise
        except Exception as e:
            self._fail(e, "cancelar el inventario")

        self.audit.record(
            ctx, action="CANCEL", entity_type="inventory_count", entity_id=count.id,
            before={"status": previous.value},
            after={"status": count.status.value, "reason": reason},
        )
        return count
