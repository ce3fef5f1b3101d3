from pydantic import BaseModel
from typing import Optional
from uuid import UUID


class AuthContext(BaseModel):
    """
    Contexto explícito de la petición.

    Se construye a partir del token de contexto y se pasa a cada operación
    de servicio; nunca se lee de estado global.
    """
    user_id: UUID
    tenant_id: Optional[UUID] = None
    branch_id: Optional[UUID] = None
    user_role: Optional[str] = None


class ContextTokenClaims(BaseModel):
    sub: UUID
    tenant_id: UUID
    branch_id: Optional[UUID] = None
    user_role: str
