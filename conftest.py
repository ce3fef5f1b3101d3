"""
Fixtures compartidas.

La base es SQLite en memoria con una única conexión (StaticPool), así que
la configuración tiene que fijarse antes de importar la aplicación.
"""
import os

os.environ["DATABASE_URL"] = "sqlite:///:memory:"
os.environ["ENVIRONMENT"] = "test"
os.environ["DEBUG"] = "false"

from datetime import timedelta
from uuid import uuid4

import pytest
from fastapi.testclient import TestClient

from app.main import app
from app.database.database import Base, SessionLocal, sync_engine, get_db
from app.modules.auth.schemas import AuthContext
from app.modules.auth.utils import create_context_token


@pytest.fixture
def db_session():
    Base.metadata.create_all(bind=sync_engine)
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=sync_engine)


@pytest.fixture
def client(db_session):
    def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture
def tenant_id():
    return uuid4()


@pytest.fixture
def user_id():
    return uuid4()


@pytest.fixture
def ctx(tenant_id, user_id):
    """Contexto de un owner para llamar a los servicios directamente"""
    return AuthContext(user_id=user_id, tenant_id=tenant_id, user_role="owner")


@pytest.fixture
def auth_headers(tenant_id, user_id):
    """Fábrica de headers con token de contexto"""

    def make(role="owner", user=None, tenant=None, branch_id=None, expires=None):
        token = create_context_token(
            {
                "sub": user or user_id,
                "tenant_id": tenant or tenant_id,
                "branch_id": branch_id,
                "user_role": role,
            },
            expires_delta=expires or timedelta(minutes=30),
        )
        return {"Authorization": f"Bearer {token}"}

    return make
