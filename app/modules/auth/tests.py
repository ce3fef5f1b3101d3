"""
Tests del contexto de autenticación

- Token de contexto válido, vencido, mal firmado o de otro tipo
- Coincidencia entre X-Company-ID y el tenant del token
- Restricción por roles
"""
from datetime import timedelta
from uuid import uuid4

import jwt

from app.core.config import settings
from app.modules.auth.utils import create_context_token, decode_token


class TestContextToken:
    """Emisión y lectura de tokens de contexto"""

    def test_token_roundtrip_keeps_claims(self, tenant_id, user_id):
        token = create_context_token({"sub": user_id, "tenant_id": tenant_id, "user_role": "admin"})
        payload = decode_token(token)

        assert payload["sub"] == str(user_id)
        assert payload["tenant_id"] == str(tenant_id)
        assert payload["user_role"] == "admin"
        assert payload["type"] == "context"

    def test_valid_token_grants_access(self, client, auth_headers):
        response = client.get("/settings/sequences", headers=auth_headers())
        assert response.status_code == 200
        assert response.json() == []

    def test_missing_token_is_rejected(self, client):
        response = client.get("/settings/sequences")
        assert response.status_code in (401, 403)

    def test_expired_token_is_rejected(self, client, auth_headers):
        response = client.get("/settings/sequences", headers=auth_headers(expires=timedelta(minutes=-5)))
        assert response.status_code == 401

    def test_token_signed_with_other_key_is_rejected(self, client, tenant_id, user_id):
        token = jwt.encode(
            {"sub": str(user_id), "tenant_id": str(tenant_id), "user_role": "owner", "type": "context"},
            "otra-clave",
            algorithm=settings.ALGORITHM,
        )
        response = client.get("/settings/sequences", headers={"Authorization": f"Bearer {token}"})
        assert response.status_code == 401

    def test_access_token_without_company_is_rejected(self, client, user_id):
        token = jwt.encode(
            {"sub": str(user_id), "type": "access"},
            settings.APP_SECRET_STRING,
            algorithm=settings.ALGORITHM,
        )
        response = client.get("/settings/sequences", headers={"Authorization": f"Bearer {token}"})
        assert response.status_code == 400


class TestTenantHeader:
    """X-Company-ID es opcional pero debe coincidir con el token"""

    def test_matching_header_is_echoed(self, client, auth_headers, tenant_id):
        headers = {**auth_headers(), "X-Company-ID": str(tenant_id)}
        response = client.get("/settings/sequences", headers=headers)
        assert response.status_code == 200
        assert response.headers["X-Tenant-ID"] == str(tenant_id)

    def test_other_tenant_header_is_forbidden(self, client, auth_headers):
        headers = {**auth_headers(), "X-Company-ID": str(uuid4())}
        response = client.get("/settings/sequences", headers=headers)
        assert response.status_code == 403

    def test_malformed_header_is_rejected(self, client, auth_headers):
        headers = {**auth_headers(), "X-Company-ID": "no-es-uuid"}
        response = client.get("/settings/sequences", headers=headers)
        assert response.status_code == 400

    def test_health_does_not_need_token(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json()["status"] == "healthy"


class TestRoles:

    def test_viewer_cannot_configure_sequences(self, client, auth_headers):
        response = client.get("/settings/sequences", headers=auth_headers(role="viewer"))
        assert response.status_code == 403

    def test_viewer_can_peek_numbers(self, client, auth_headers):
        response = client.get("/settings/sequences/receivable/peek", headers=auth_headers(role="viewer"))
        assert response.status_code == 200

    def test_unknown_role_is_forbidden(self, client, auth_headers):
        response = client.get("/settings/sequences/receivable/peek", headers=auth_headers(role="intruder"))
        assert response.status_code == 403
