"""
Dependencias de autenticación para FastAPI.
"""
from uuid import UUID
from fastapi import Depends, HTTPException, status, Request
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from pydantic import ValidationError as PydanticValidationError
import jwt
import logging

from app.modules.auth.schemas import AuthContext, ContextTokenClaims
from app.modules.auth.utils import decode_token

logger = logging.getLogger(__name__)

security = HTTPBearer()

ALL_ROLES = ["owner", "admin", "accountant", "seller", "viewer"]
FINANCE_ROLES = ["owner", "admin", "accountant"]
CASH_ROLES = ["owner", "admin", "accountant", "seller"]
INVENTORY_ROLES = ["owner", "admin", "seller"]


class AuthDependencies:
    """Dependencias de autenticación reutilizables."""

    @staticmethod
    def get_auth_context(
        request: Request,
        credentials: HTTPAuthorizationCredentials = Depends(security),
    ) -> AuthContext:
        """
        Obtener contexto de autenticación completo con tenant.
        Solo acepta tokens de contexto (emitidos tras seleccionar empresa).
        """
        credentials_exception = HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="No se pudieron validar las credenciales",
            headers={"WWW-Authenticate": "Bearer"},
        )

        try:
            payload = decode_token(credentials.credentials)
        except jwt.PyJWTError:
            raise credentials_exception

        if payload.get("type") != "context":
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Se requiere seleccionar una empresa"
            )

        try:
            claims = ContextTokenClaims.model_validate(payload)
        except PydanticValidationError:
            raise credentials_exception

        header_tenant = getattr(request.state, "tenant_id", None)
        if header_tenant is not None and UUID(str(header_tenant)) != claims.tenant_id:
            logger.warning(f"X-Company-ID {header_tenant} does not match token tenant {claims.tenant_id}")
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="No tienes acceso a esta empresa"
            )

        return AuthContext(
            user_id=claims.sub,
            tenant_id=claims.tenant_id,
            branch_id=claims.branch_id,
            user_role=claims.user_role,
        )

    @staticmethod
    def require_role(allowed_roles: list[str]):
        """
        Dependencia para requerir roles específicos.
        """
        def role_checker(auth_context: AuthContext = Depends(AuthDependencies.get_auth_context)):
            if not auth_context.tenant_id:
                raise HTTPException(
                    status_code=status.HTTP_400_BAD_REQUEST,
                    detail="Se requiere seleccionar una empresa"
                )

            if auth_context.user_role not in allowed_roles:
                raise HTTPException(
                    status_code=status.HTTP_403_FORBIDDEN,
                    detail=f"Se requiere uno de estos roles: {', '.join(allowed_roles)}"
                )

            return auth_context
        return role_checker


get_auth_context = AuthDependencies.get_auth_context
