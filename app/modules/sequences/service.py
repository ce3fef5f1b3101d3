"""
Servicio de numeración de documentos.

`allocate` no hace commit: el número queda reservado dentro de la
transacción del documento que lo usa y se libera si esta hace rollback.
"""
import logging
from typing import Optional, Tuple
from uuid import UUID

from sqlalchemy import update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.orm import Session

from app.common.exceptions import ConflictError, ValidationError
from app.core.config import settings
from app.modules.audit.service import AuditService
from app.modules.auth.schemas import AuthContext
from app.modules.sequences.models import DocumentSequence, DocumentType
from app.modules.sequences.schemas import SequenceConfigure

logger = logging.getLogger(__name__)


class SequenceService:
    """Asignador de números por (tenant, tipo, sucursal)"""

    def __init__(self, db: Session):
        self.db = db

    def _query(self, tenant_id: UUID, document_type: DocumentType, branch_id: Optional[UUID]):
        query = self.db.query(DocumentSequence).filter(
            DocumentSequence.tenant_id == tenant_id,
            DocumentSequence.document_type == document_type.value,
        )
        if branch_id is None:
            return query.filter(DocumentSequence.branch_id.is_(None))
        return query.filter(DocumentSequence.branch_id == branch_id)

    def _ensure_row(self, tenant_id: UUID, document_type: DocumentType, branch_id: Optional[UUID]) -> DocumentSequence:
        """Crea la fila contador si no existe (INSERT ... ON CONFLICT DO NOTHING)."""
        sequence = self._query(tenant_id, document_type, branch_id).first()
        if sequence:
            return sequence

        dialect = self.db.get_bind().dialect.name
        insert_fn = pg_insert if dialect == "postgresql" else sqlite_insert
        stmt = insert_fn(DocumentSequence).values(
            tenant_id=tenant_id,
            branch_id=branch_id,
            document_type=document_type.value,
            prefix="",
            suffix="",
            width=settings.SEQUENCE_DEFAULT_WIDTH,
            last_number=0,
        ).on_conflict_do_nothing()
        self.db.execute(stmt)
        return self._query(tenant_id, document_type, branch_id).one()

    def allocate(self, tenant_id: UUID, document_type: DocumentType,
                 branch_id: Optional[UUID] = None) -> Tuple[int, str]:
        """Consume el siguiente número. Devuelve (número, número formateado)."""
        document_type = DocumentType(document_type)
        for attempt in range(1, settings.SEQUENCE_MAX_RETRIES + 1):
            sequence = self._ensure_row(tenant_id, document_type, branch_id)
            stmt = (
                update(DocumentSequence)
                .where(DocumentSequence.id == sequence.id)
                .values(last_number=DocumentSequence.last_number + 1)
                .returning(DocumentSequence.last_number)
                .execution_options(synchronize_session=False)
            )
            number = self.db.execute(stmt).scalar_one_or_none()
            if number is not None:
                return number, sequence.format(number)
            logger.warning(
                f"Sequence row for {document_type.value} vanished, retrying ({attempt}/{settings.SEQUENCE_MAX_RETRIES})"
            )
        raise ConflictError(
            "No se pudo asignar un número de documento",
            document_type=document_type,
        )

    def next_number(self, ctx: AuthContext, document_type: DocumentType,
                    branch_id: Optional[UUID] = None) -> dict:
        """Consume y confirma un número (uso directo desde la API)."""
        try:
            number, formatted = self.allocate(ctx.tenant_id, document_type, branch_id)
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise
        return {
            "document_type": DocumentType(document_type).value,
            "branch_id": branch_id,
            "number": number,
            "formatted": formatted,
        }

    def peek(self, tenant_id: UUID, document_type: DocumentType,
             branch_id: Optional[UUID] = None) -> dict:
        """Próximo número sin consumirlo."""
        document_type = DocumentType(document_type)
        sequence = self._query(tenant_id, document_type, branch_id).first()
        if sequence:
            number, formatted = sequence.last_number + 1, sequence.format(sequence.last_number + 1)
        else:
            number = 1
            formatted = str(number).zfill(settings.SEQUENCE_DEFAULT_WIDTH)
        return {
            "document_type": DocumentType(document_type).value,
            "branch_id": branch_id,
            "number": number,
            "formatted": formatted,
        }

    def configure(self, ctx: AuthContext, document_type: DocumentType,
                  data: SequenceConfigure) -> DocumentSequence:
        document_type = DocumentType(document_type)
        try:
            sequence = self._ensure_row(ctx.tenant_id, document_type, data.branch_id)
            self.db.refresh(sequence, with_for_update=True)
            before = {
                "prefix": sequence.prefix, "suffix": sequence.suffix,
                "width": sequence.width, "last_number": sequence.last_number,
            }

            if data.last_number is not None and data.last_number < sequence.last_number:
                raise ValidationError(
                    f"El último número no puede retroceder (actual: {sequence.last_number})",
                    field="last_number",
                )

            for field in ("prefix", "suffix", "width", "last_number"):
                value = getattr(data, field)
                if value is not None:
                    setattr(sequence, field, value)

            self.db.commit()
            self.db.refresh(sequence)
        except Exception:
            self.db.rollback()
            raise

        AuditService(self.db).record(
            ctx, action="UPDATE", entity_type="document_sequence", entity_id=sequence.id,
            before=before,
            after={"prefix": sequence.prefix, "suffix": sequence.suffix,
                   "width": sequence.width, "last_number": sequence.last_number},
        )
        return sequence

    def list(self, tenant_id: UUID) -> list[DocumentSequence]:
        return self.db.query(DocumentSequence).filter(
            DocumentSequence.tenant_id == tenant_id
        ).order_by(DocumentSequence.document_type).all()
