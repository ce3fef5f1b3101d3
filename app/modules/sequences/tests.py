"""
Tests de numeración de documentos

Cubre asignación secuencial, formato con prefijo/sufijo, alcance por
sucursal y tenant, vista previa sin consumo y configuración.
"""
from concurrent.futures import ThreadPoolExecutor
from uuid import uuid4

import pytest
from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker

from app.common.exceptions import ValidationError
from app.modules.sequences.models import DocumentSequence, DocumentType
from app.modules.sequences.schemas import SequenceConfigure
from app.modules.sequences.service import SequenceService


class TestSequenceAllocation:

    def test_first_number_is_one_zero_padded(self, db_session, tenant_id):
        service = SequenceService(db_session)
        number, formatted = service.allocate(tenant_id, DocumentType.QUOTATION)
        db_session.commit()

        assert number == 1
        assert formatted == "000001"

    def test_numbers_are_gapless(self, db_session, tenant_id):
        service = SequenceService(db_session)
        numbers = []
        for _ in range(5):
            numbers.append(service.allocate(tenant_id, DocumentType.PURCHASE_ORDER)[0])
            db_session.commit()

        assert numbers == [1, 2, 3, 4, 5]

    def test_rolled_back_allocation_is_released(self, db_session, tenant_id):
        service = SequenceService(db_session)
        service.allocate(tenant_id, DocumentType.BUDGET)
        db_session.commit()

        service.allocate(tenant_id, DocumentType.BUDGET)
        db_session.rollback()

        number, _ = service.allocate(tenant_id, DocumentType.BUDGET)
        assert number == 2

    def test_counters_are_scoped_by_type_branch_and_tenant(self, db_session, tenant_id):
        service = SequenceService(db_session)
        branch_id = uuid4()

        service.allocate(tenant_id, DocumentType.TICKET)
        db_session.commit()

        assert service.allocate(tenant_id, DocumentType.TICKET)[0] == 2
        assert service.allocate(tenant_id, DocumentType.FISCAL_NOTE)[0] == 1
        assert service.allocate(tenant_id, DocumentType.TICKET, branch_id)[0] == 1
        assert service.allocate(uuid4(), DocumentType.TICKET)[0] == 1
        db_session.commit()

        rows = db_session.query(DocumentSequence).filter(DocumentSequence.tenant_id == tenant_id).count()
        assert rows == 3


class TestSequenceConfiguration:

    def test_configure_prefix_suffix_and_width(self, db_session, ctx):
        service = SequenceService(db_session)
        service.configure(ctx, DocumentType.QUOTATION, SequenceConfigure(prefix="COT-", suffix="/26", width=4))

        _, formatted = service.allocate(ctx.tenant_id, DocumentType.QUOTATION)
        assert formatted == "COT-0001/26"

    def test_last_number_can_move_forward(self, db_session, ctx):
        service = SequenceService(db_session)
        service.configure(ctx, DocumentType.RECEIVABLE, SequenceConfigure(last_number=120))

        assert service.peek(ctx.tenant_id, DocumentType.RECEIVABLE)["number"] == 121

    def test_last_number_cannot_move_backwards(self, db_session, ctx):
        service = SequenceService(db_session)
        service.configure(ctx, DocumentType.RECEIVABLE, SequenceConfigure(last_number=10))

        with pytest.raises(ValidationError):
            service.configure(ctx, DocumentType.RECEIVABLE, SequenceConfigure(last_number=3))

        assert service.peek(ctx.tenant_id, DocumentType.RECEIVABLE)["number"] == 11


class TestSequenceAPI:

    def test_peek_does_not_consume(self, client, auth_headers):
        headers = auth_headers()
        first = client.get("/settings/sequences/payable/peek", headers=headers).json()
        second = client.get("/settings/sequences/payable/peek", headers=headers).json()

        assert first["number"] == second["number"] == 1
        assert first["formatted"] == "000001"

    def test_next_consumes_and_peek_follows(self, client, auth_headers):
        headers = auth_headers()
        response = client.post("/settings/sequences/payable/next", headers=headers)
        assert response.status_code == 201
        assert response.json()["number"] == 1

        response = client.post("/settings/sequences/payable/next", headers=headers)
        assert response.json()["formatted"] == "000002"

        peek = client.get("/settings/sequences/payable/peek", headers=headers).json()
        assert peek["number"] == 3

    def test_configure_and_list(self, client, auth_headers):
        headers = auth_headers()
        response = client.put(
            "/settings/sequences/ticket",
            json={"prefix": "TK", "width": 3},
            headers=headers,
        )
        assert response.status_code == 200
        assert response.json()["prefix"] == "TK"

        listed = client.get("/settings/sequences", headers=headers).json()
        assert [row["document_type"] for row in listed] == ["ticket"]

        consumed = client.post("/settings/sequences/ticket/next", headers=headers).json()
        assert consumed["formatted"] == "TK001"

    def test_unknown_document_type_is_422(self, client, auth_headers):
        response = client.get("/settings/sequences/unknown/peek", headers=auth_headers())
        assert response.status_code == 422


class TestConcurrentAllocation:
    """Varias sesiones consumiendo la misma secuencia en paralelo"""

    WORKERS = 8
    CALLS = 24

    @pytest.fixture
    def file_sessions(self, tmp_path):
        engine = create_engine(
            f"sqlite:///{tmp_path / 'sequences.db'}",
            connect_args={"check_same_thread": False, "timeout": 30},
        )

        # Transacciones IMMEDIATE: SQLite serializa a los escritores en vez de fallar
        @event.listens_for(engine, "connect")
        def disable_driver_transactions(dbapi_connection, connection_record):
            dbapi_connection.isolation_level = None

        @event.listens_for(engine, "begin")
        def begin_immediate(conn):
            conn.exec_driver_sql("BEGIN IMMEDIATE")

        DocumentSequence.__table__.create(engine)
        yield sessionmaker(bind=engine, autoflush=False)
        engine.dispose()

    def test_parallel_allocations_are_distinct_and_contiguous(self, file_sessions, tenant_id):
        with file_sessions() as session:
            for _ in range(3):
                SequenceService(session).allocate(tenant_id, DocumentType.TICKET)
                session.commit()

        def allocate_one(_):
            with file_sessions() as session:
                number, _ = SequenceService(session).allocate(tenant_id, DocumentType.TICKET)
                session.commit()
                return number

        with ThreadPoolExecutor(max_workers=self.WORKERS) as pool:
            numbers = list(pool.map(allocate_one, range(self.CALLS)))

        assert len(set(numbers)) == self.CALLS
        assert sorted(numbers) == list(range(4, 4 + self.CALLS))
