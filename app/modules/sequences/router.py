from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session
from typing import List, Optional
from uuid import UUID

from app.dependencies.dbDependecies import get_db
from app.modules.auth.dependencies import AuthDependencies, ALL_ROLES
from app.modules.auth.schemas import AuthContext
from app.modules.sequences.schemas import DocumentType, SequenceConfigure, SequenceOut, NumberOut
from app.modules.sequences.service import SequenceService

sequences_router = APIRouter(prefix="/settings/sequences", tags=["Sequences"])


@sequences_router.get("", response_model=List[SequenceOut])
def list_sequences(
    auth_context: AuthContext = Depends(AuthDependencies.require_role(["owner", "admin"])),
    db: Session = Depends(get_db)
):
    """Listar configuraciones de numeración del tenant"""
    return SequenceService(db).list(auth_context.tenant_id)


@sequences_router.get("/{document_type}/peek", response_model=NumberOut)
def peek_next_number(
    document_type: DocumentType,
    branch_id: Optional[UUID] = Query(None),
    auth_context: AuthContext = Depends(AuthDependencies.require_role(ALL_ROLES)),
    db: Session = Depends(get_db)
):
    """Próximo número sin consumirlo"""
    return SequenceService(db).peek(auth_context.tenant_id, document_type, branch_id)


@sequences_router.post("/{document_type}/next", response_model=NumberOut, status_code=status.HTTP_201_CREATED)
def consume_next_number(
    document_type: DocumentType,
    branch_id: Optional[UUID] = Query(None),
    auth_context: AuthContext = Depends(AuthDependencies.require_role(["owner", "admin", "accountant"])),
    db: Session = Depends(get_db)
):
    """Consumir el siguiente número de la secuencia"""
    return SequenceService(db).next_number(auth_context, document_type, branch_id)


@sequences_router.put("/{document_type}", response_model=SequenceOut)
def configure_sequence(
    document_type: DocumentType,
    data: SequenceConfigure,
    auth_context: AuthContext = Depends(AuthDependencies.require_role(["owner", "admin"])),
    db: Session = Depends(get_db)
):
    """Configurar prefijo, sufijo, ancho y último número"""
    return SequenceService(db).configure(auth_context, document_type, data)
