from datetime import date
from typing import Optional
from uuid import UUID

from fastapi import Query

from app.modules.ledger.models import DocumentStatus
from app.modules.ledger.schemas import DocumentFilters


def document_filters(
    status: Optional[DocumentStatus] = Query(None, description="Estado del documento"),
    counterparty_id: Optional[UUID] = Query(None, description="Cliente o proveedor"),
    due_from: Optional[date] = Query(None, description="Vencimiento desde"),
    due_to: Optional[date] = Query(None, description="Vencimiento hasta"),
    overdue_only: bool = Query(False, description="Solo vencidos"),
    branch_id: Optional[UUID] = Query(None, description="Sucursal"),
    search: Optional[str] = Query(None, description="Número de documento o nombre"),
) -> DocumentFilters:
    """Filtros comunes de listados de documentos"""
    return DocumentFilters(
        status=status,
        counterparty_id=counterparty_id,
        due_from=due_from,
        due_to=due_to,
        overdue_only=overdue_only,
        branch_id=branch_id,
        search=search,
    )
