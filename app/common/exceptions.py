"""
Errores de negocio del dominio de libros (ledger).

Todos heredan de HTTPException para que FastAPI los convierta en respuesta
estructurada sin handlers adicionales. El cuerpo siempre es:

    {"detail": {"code": "...", "message": "...", ...extra}}
"""
from decimal import Decimal
from enum import Enum
from typing import Any, Optional
from uuid import UUID

from fastapi import HTTPException, status


def _jsonable(value: Any) -> Any:
    if isinstance(value, (Decimal, UUID)):
        return str(value)
    if isinstance(value, Enum):
        return value.value
    return value


class LedgerError(HTTPException):
    """Base de la taxonomía de errores."""

    status_code: int = status.HTTP_400_BAD_REQUEST
    code: str = "ERROR"

    def __init__(self, message: str, **extra: Any):
        self.message = message
        self.extra = {k: _jsonable(v) for k, v in extra.items()}
        super().__init__(
            status_code=self.status_code,
            detail={"code": self.code, "message": message, **self.extra},
        )


class ValidationError(LedgerError):
    """Entrada mal formada o fuera de rango."""
    status_code = status.HTTP_422_UNPROCESSABLE_ENTITY
    code = "VALIDATION"

    def __init__(self, message: str, field: Optional[str] = None, **extra: Any):
        if field:
            extra["field"] = field
        super().__init__(message, **extra)


class NotFoundError(LedgerError):
    """El recurso no existe o no pertenece al tenant."""
    status_code = status.HTTP_404_NOT_FOUND
    code = "NOT_FOUND"


class InvalidStateError(LedgerError):
    """Operación ilegal para el estado actual del documento."""
    status_code = status.HTTP_409_CONFLICT
    code = "INVALID_STATE"

    def __init__(self, message: str, current_status: Any = None, **extra: Any):
        super().__init__(message, current_status=current_status, **extra)


class ConflictError(LedgerError):
    """Violación de unicidad (sesión abierta duplicada, número repetido)."""
    status_code = status.HTTP_409_CONFLICT
    code = "CONFLICT"


class InsufficientFundsError(LedgerError):
    status_code = status.HTTP_400_BAD_REQUEST
    code = "INSUFFICIENT_FUNDS"

    def __init__(self, message: str, requested: Decimal, available: Decimal, **extra: Any):
        super().__init__(message, requested=requested, available=available, **extra)


class PreconditionError(LedgerError):
    """Regla de negocio no cumplida (p. ej. ítems sin contar)."""
    status_code = status.HTTP_400_BAD_REQUEST
    code = "PRECONDITION"
