"""
Actualizaciones parciales con lista explícita de campos permitidos.
"""
from typing import Any, Iterable

from pydantic import BaseModel
from sqlalchemy import inspect

from app.common.exceptions import ValidationError


def _required_columns(entity: Any) -> set:
    """Columnas NOT NULL del modelo mapeado de `entity`."""
    return {column.key for column in inspect(type(entity)).columns if not column.nullable}


def apply_update(entity: Any, data: BaseModel, allowed: Iterable[str]) -> dict:
    """
    Copia en `entity` solo los campos enviados que estén en `allowed`.

    Devuelve {campo: (anterior, nuevo)} con los cambios efectivos para
    auditoría. Un campo enviado fuera de la lista, o un null explícito en
    una columna obligatoria, aborta sin tocar nada.
    """
    allowed = set(allowed)
    payload = data.model_dump(exclude_unset=True)

    rejected = sorted(set(payload) - allowed)
    if rejected:
        raise ValidationError(
            f"Campos no actualizables: {', '.join(rejected)}",
            field=rejected[0],
        )

    required = _required_columns(entity)
    nulls = sorted(field for field, value in payload.items() if value is None and field in required)
    if nulls:
        raise ValidationError(
            f"Campos obligatorios no pueden ser nulos: {', '.join(nulls)}",
            field=nulls[0],
        )

    changes = {}
    for field, value in payload.items():
        old = getattr(entity, field)
        if old != value:
            setattr(entity, field, value)
            changes[field] = (old, value)
    return changes
