"""
Escritor de auditoría.

Se invoca después del commit de la operación principal. Es best-effort:
un fallo al auditar se registra en el log operativo y no se propaga.
"""
import json
import logging
from typing import Any, Optional
from uuid import UUID

from sqlalchemy.orm import Session

from app.modules.audit.models import AuditLog
from app.modules.auth.schemas import AuthContext

logger = logging.getLogger(__name__)


def _safe(payload: Optional[dict]) -> Optional[dict]:
    if payload is None:
        return None
    try:
        return json.loads(json.dumps(payload, default=str))
    except (TypeError, ValueError):
        return {"_payload_error": "non_json", "_payload_repr": repr(payload)}


class AuditService:
    def __init__(self, db: Session):
        self.db = db

    def record(
        self,
        ctx: AuthContext,
        *,
        action: str,
        entity_type: str,
        entity_id: Optional[UUID] = None,
        before: Optional[dict[str, Any]] = None,
        after: Optional[dict[str, Any]] = None,
    ) -> None:
        try:
            self.db.add(AuditLog(
                tenant_id=ctx.tenant_id,
                actor_id=ctx.user_id,
                action=action,
                entity_type=entity_type,
                entity_id=entity_id,
                before=_safe(before),
                after=_safe(after),
            ))
            self.db.commit()
        except Exception as e:
            self.db.rollback()
            logger.warning(f"Audit write failed for {entity_type}:{entity_id} ({action}): {e}")

    def list_for_entity(self, tenant_id: UUID, entity_type: str, entity_id: UUID) -> list[AuditLog]:
        return self.db.query(AuditLog).filter(
            AuditLog.tenant_id == tenant_id,
            AuditLog.entity_type == entity_type,
            AuditLog.entity_id == entity_id
        ).order_by(AuditLog.created_at).all()
