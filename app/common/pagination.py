"""
Paginación por página/límite.

Cada listado construye sus filtros con una sola función y los aplica a dos
consultas separadas: una de conteo y otra de página.
"""
import math
from typing import Any, Callable, Generic, List, TypeVar

from fastapi import Query
from pydantic import BaseModel, Field
from sqlalchemy import func
from sqlalchemy.orm import Query as SAQuery, Session

from app.core.config import settings

T = TypeVar("T")


class PageParams(BaseModel):
    page: int = Field(1, ge=1)
    limit: int = Field(settings.DEFAULT_PAGE_SIZE, ge=1, le=settings.MAX_PAGE_SIZE)

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.limit


def page_params(
    page: int = Query(1, ge=1, description="Número de página"),
    limit: int = Query(settings.DEFAULT_PAGE_SIZE, ge=1, le=settings.MAX_PAGE_SIZE, description="Registros por página"),
) -> PageParams:
    """Dependencia FastAPI para los parámetros de paginación."""
    return PageParams(page=page, limit=limit)


class PaginationMeta(BaseModel):
    page: int
    limit: int
    total: int
    pages: int


class Page(BaseModel, Generic[T]):
    data: List[T]
    pagination: PaginationMeta


def paginate(
    db: Session,
    model: Any,
    apply_filters: Callable[[SAQuery], SAQuery],
    params: PageParams,
    order_by: tuple = (),
) -> dict:
    """
    Ejecuta el conteo y la página con los mismos filtros.

    `apply_filters` recibe una query y devuelve la misma query filtrada;
    se usa una vez sobre `count(model.id)` y otra sobre la entidad.
    """
    count_query = apply_filters(db.query(func.count(model.id)))
    total = count_query.scalar() or 0

    page_query = apply_filters(db.query(model))
    if order_by:
        page_query = page_query.order_by(*order_by)
    items = page_query.offset(params.offset).limit(params.limit).all()

    return {
        "data": items,
        "pagination": {
            "page": params.page,
            "limit": params.limit,
            "total": total,
            "pages": math.ceil(total / params.limit) if total else 0,
        },
    }
