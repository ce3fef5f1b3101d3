"""
Middleware for handling multi-tenancy
"""
from fastapi import Request, status
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware
from uuid import UUID
import logging

logger = logging.getLogger(__name__)


class TenantMiddleware(BaseHTTPMiddleware):
    """
    Valida el header opcional X-Company-ID y lo deja en request.state.

    El tenant efectivo siempre sale del token de contexto; el header solo
    sirve para trazabilidad y debe coincidir con el token cuando se envía.
    """

    EXEMPT_PATHS = [
        "/docs",
        "/redoc",
        "/openapi.json",
        "/health",
    ]

    async def dispatch(self, request: Request, call_next):
        if request.url.path == "/" or any(request.url.path.startswith(path) for path in self.EXEMPT_PATHS):
            return await call_next(request)

        if request.method == "OPTIONS":
            return await call_next(request)

        tenant_id = None
        tenant_header = request.headers.get("X-Company-ID")
        if tenant_header:
            try:
                tenant_id = UUID(tenant_header)
            except ValueError:
                return JSONResponse(
                    status_code=status.HTTP_400_BAD_REQUEST,
                    content={"detail": "Invalid X-Company-ID format. Must be a valid UUID"},
                )
            request.state.tenant_id = tenant_id
            logger.debug(f"Request to {request.url.path} with tenant_id: {tenant_id}")

        response = await call_next(request)

        if tenant_id:
            response.headers["X-Tenant-ID"] = str(tenant_id)

        return response


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """
    Middleware to add security headers for production
    """

    async def dispatch(self, request: Request, call_next):
        response = await call_next(request)

        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"
        response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
        response.headers["Cache-Control"] = "no-store"

        return response
