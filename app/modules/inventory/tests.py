"""
Tests del conteo de inventario

Los depósitos, productos y existencias se crean directamente en la base;
el conteo se ejercita por servicio y por API.
"""
from decimal import Decimal
from uuid import uuid4

import pytest

from app.common.exceptions import (
    ConflictError, InvalidStateError, NotFoundError, PreconditionError
)
from app.modules.audit.service import AuditService
from app.modules.inventory.models import InventoryCountStatus, InventoryCountLine
from app.modules.inventory.schemas import (
    InventoryCountCreate, GenerateLinesRequest, CountEntry, BatchCountRequest
)
from app.modules.inventory.service import InventoryCountService
from app.modules.products.models import (
    Product, Stock, StockLocation, StockMovement, StockMovementType, StockMovementReason
)


@pytest.fixture
def location(db_session, tenant_id):
    location = StockLocation(tenant_id=tenant_id, name="Depósito central")
    db_session.add(location)
    db_session.commit()
    return location


@pytest.fixture
def products(db_session, tenant_id, location):
    """Tres productos con existencia 10, 5 y 0"""
    category_id = uuid4()
    rows = []
    for sku, name, quantity, average_cost in (
        ("A-1", "Arroz 1kg", "10", "4.50"),
        ("B-2", "Café 500g", "5", None),
        ("C-3", "Azúcar 1kg", "0", "2.00"),
    ):
        product = Product(
            tenant_id=tenant_id, name=name, sku=sku, cost_price=Decimal("3.00"), category_id=category_id
        )
        db_session.add(product)
        db_session.flush()
        db_session.add(Stock(
            tenant_id=tenant_id,
            product_id=product.id,
            location_id=location.id,
            quantity=Decimal(quantity),
            average_cost=Decimal(average_cost) if average_cost else None,
        ))
        rows.append(product)
    db_session.commit()
    return rows


@pytest.fixture
def service(db_session):
    return InventoryCountService(db_session)


@pytest.fixture
def count(service, ctx, location, products):
    count = service.create_count(ctx, InventoryCountCreate(location_id=location.id))
    service.generate_lines(ctx, count.id, GenerateLinesRequest())
    return count


def stock_of(db_session, product, location):
    return db_session.query(Stock).filter(
        Stock.product_id == product.id, Stock.location_id == location.id
    ).one().quantity


class TestCountCreation:

    def test_create_allocates_number_and_starts_in_draft(self, service, ctx, location):
        count = service.create_count(ctx, InventoryCountCreate(location_id=location.id))
        assert count.status == InventoryCountStatus.DRAFT
        assert count.number == "000001"
        assert count.responsible_id == ctx.user_id

    def test_only_one_active_count_per_location(self, service, ctx, location):
        service.create_count(ctx, InventoryCountCreate(location_id=location.id))
        with pytest.raises(ConflictError):
            service.create_count(ctx, InventoryCountCreate(location_id=location.id))

    def test_canceled_count_frees_the_location(self, service, ctx, location):
        first = service.create_count(ctx, InventoryCountCreate(location_id=location.id))
        service.cancel(ctx, first.id, "Creado por error")

        second = service.create_count(ctx, InventoryCountCreate(location_id=location.id))
        assert second.number == "000002"

    def test_unknown_location_is_not_found(self, service, ctx):
        with pytest.raises(NotFoundError):
            service.create_count(ctx, InventoryCountCreate(location_id=uuid4()))


class TestLineGeneration:

    def test_snapshot_takes_quantity_and_cost(self, count, service, ctx):
        lines = {line.sku: line for line in service.get_count(ctx.tenant_id, count.id).lines}

        assert {sku: line.system_quantity for sku, line in lines.items()} == {
            "A-1": Decimal("10"), "B-2": Decimal("5"), "C-3": Decimal("0")
        }
        assert lines["A-1"].unit_cost == Decimal("4.50")
        assert lines["B-2"].unit_cost == Decimal("3.00")

    def test_only_with_stock_filter(self, count, service, ctx):
        result = service.generate_lines(ctx, count.id, GenerateLinesRequest(only_with_stock=True))
        assert result["lines_generated"] == 2

    def test_regenerating_replaces_previous_lines(self, count, service, ctx, db_session):
        service.generate_lines(ctx, count.id, GenerateLinesRequest())
        assert db_session.query(InventoryCountLine).filter(InventoryCountLine.count_id == count.id).count() == 3

    def test_products_without_stock_row_enter_with_zero(self, count, service, ctx, db_session, tenant_id):
        db_session.add(Product(tenant_id=tenant_id, name="Sal 1kg", sku="D-4", cost_price=Decimal("1.00")))
        db_session.commit()

        result = service.generate_lines(ctx, count.id, GenerateLinesRequest())
        assert result["lines_generated"] == 4
        line = next(l for l in service.get_count(ctx.tenant_id, count.id).lines if l.sku == "D-4")
        assert line.system_quantity == Decimal("0")

    def test_lines_cannot_be_generated_while_counting(self, count, service, ctx):
        service.start(ctx, count.id)
        with pytest.raises(InvalidStateError):
            service.generate_lines(ctx, count.id, GenerateLinesRequest())

    def test_start_requires_lines(self, service, ctx, location):
        empty = service.create_count(ctx, InventoryCountCreate(location_id=location.id))
        with pytest.raises(PreconditionError):
            service.start(ctx, empty.id)


class TestCounting:

    def test_full_cycle_adjusts_only_divergent_lines(self, count, service, ctx, products, location, db_session):
        rice, coffee, sugar = products
        service.start(ctx, count.id)
        for product, counted in ((rice, "10"), (coffee, "3"), (sugar, "2")):
            service.record_count(ctx, count.id, CountEntry(product_id=product.id, counted_quantity=Decimal(counted)))

        finalized = service.finalize(ctx, count.id)
        assert finalized.status == InventoryCountStatus.FINALIZED

        result = service.adjust_stock(ctx, count.id)
        assert result["movements_created"] == 2
        assert result["status"] == InventoryCountStatus.ADJUSTED

        movements = {
            m.product_id: m for m in db_session.query(StockMovement).filter(StockMovement.origin_id == count.id).all()
        }
        assert set(movements) == {coffee.id, sugar.id}
        assert movements[coffee.id].movement_type == StockMovementType.EXIT
        assert movements[coffee.id].quantity == Decimal("2")
        assert movements[sugar.id].movement_type == StockMovementType.ENTRY
        assert movements[sugar.id].quantity == Decimal("2")
        assert all(m.reason == StockMovementReason.INVENTORY_ADJUSTMENT for m in movements.values())

        assert stock_of(db_session, rice, location) == Decimal("10")
        assert stock_of(db_session, coffee, location) == Decimal("3")
        assert stock_of(db_session, sugar, location) == Decimal("2")

        lines = {line.product_id: line for line in service.get_count(ctx.tenant_id, count.id).lines}
        assert lines[rice.id].adjusted is False
        assert lines[coffee.id].movement_id == movements[coffee.id].id

        trail = AuditService(db_session).list_for_entity(ctx.tenant_id, "inventory_count", count.id)
        assert [entry.action for entry in trail] == ["CREATE", "START", "FINALIZE", "ADJUST"]

    def test_counts_only_accepted_while_counting(self, count, service, ctx, products):
        with pytest.raises(InvalidStateError):
            service.record_count(ctx, count.id, CountEntry(product_id=products[0].id, counted_quantity=Decimal("1")))

    def test_product_outside_snapshot_is_not_found(self, count, service, ctx):
        service.start(ctx, count.id)
        with pytest.raises(NotFoundError):
            service.record_count(ctx, count.id, CountEntry(product_id=uuid4(), counted_quantity=Decimal("1")))

    def test_recount_overwrites_previous_value(self, count, service, ctx, products):
        service.start(ctx, count.id)
        service.record_count(ctx, count.id, CountEntry(product_id=products[0].id, counted_quantity=Decimal("7")))
        line = service.record_count(ctx, count.id, CountEntry(product_id=products[0].id, counted_quantity=Decimal("9")))
        assert line.counted_quantity == Decimal("9")

    def test_finalize_with_uncounted_lines_fails(self, count, service, ctx, products):
        service.start(ctx, count.id)
        service.record_count(ctx, count.id, CountEntry(product_id=products[0].id, counted_quantity=Decimal("10")))

        with pytest.raises(PreconditionError) as exc:
            service.finalize(ctx, count.id)
        assert exc.value.detail["message"] == "Existen 2 ítems sin contar"
        assert service.get_count(ctx.tenant_id, count.id).status == InventoryCountStatus.COUNTING

    def test_adjust_without_divergences_fails(self, count, service, ctx, products):
        service.start(ctx, count.id)
        for product, counted in zip(products, ("10", "5", "0")):
            service.record_count(ctx, count.id, CountEntry(product_id=product.id, counted_quantity=Decimal(counted)))
        service.finalize(ctx, count.id)

        with pytest.raises(PreconditionError):
            service.adjust_stock(ctx, count.id)
        assert service.get_count(ctx.tenant_id, count.id).status == InventoryCountStatus.FINALIZED

    def test_batch_count_reports_invalid_entries(self, count, service, ctx, products):
        service.start(ctx, count.id)
        result = service.record_counts(ctx, count.id, BatchCountRequest(entries=[
            CountEntry(product_id=products[0].id, counted_quantity=Decimal("8")),
            CountEntry(product_id=uuid4(), counted_quantity=Decimal("1")),
            CountEntry(product_id=products[1].id, counted_quantity=Decimal("5")),
        ]))

        assert result["processed"] == 2
        assert len(result["errors"]) == 1

        stats = service.statistics(service.get_count(ctx.tenant_id, count.id))
        assert stats["counted_lines"] == 2
        assert stats["pending_lines"] == 1
        assert stats["divergent_lines"] == 1
        assert stats["shortage_value"] == Decimal("9.00")

    def test_finalized_count_cannot_be_canceled(self, count, service, ctx, products):
        service.start(ctx, count.id)
        for product in products:
            service.record_count(ctx, count.id, CountEntry(product_id=product.id, counted_quantity=Decimal("1")))
        service.finalize(ctx, count.id)

        with pytest.raises(InvalidStateError):
            service.cancel(ctx, count.id, "Muy tarde")


class TestInventoryCountAPI:

    def test_count_flow_over_http(self, client, auth_headers, location, products):
        headers = auth_headers(role="seller")

        created = client.post("/inventory/counts", json={"location_id": str(location.id)}, headers=headers)
        assert created.status_code == 201
        count_id = created.json()["id"]

        generated = client.post(f"/inventory/counts/{count_id}/lines", json={}, headers=headers).json()
        assert generated["lines_generated"] == 3

        assert client.post(f"/inventory/counts/{count_id}/start", headers=headers).json()["status"] == "counting"

        batch = client.post(
            f"/inventory/counts/{count_id}/count/batch",
            json={"entries": [
                {"product_id": str(products[0].id), "counted_quantity": "10"},
                {"product_id": str(products[1].id), "counted_quantity": "3"},
            ]},
            headers=headers,
        ).json()
        assert batch == {"processed": 2, "errors": []}

        early = client.post(f"/inventory/counts/{count_id}/finalize", headers=headers)
        assert early.status_code == 400
        assert early.json()["detail"]["uncounted"] == 1

        single = client.post(
            f"/inventory/counts/{count_id}/count",
            json={"product_id": str(products[2].id), "counted_quantity": "2", "lot": "L-01"},
            headers=headers,
        )
        assert single.status_code == 200
        assert single.json()["lot"] == "L-01"

        assert client.post(f"/inventory/counts/{count_id}/finalize", headers=headers).json()["status"] == "finalized"

        detail = client.get(f"/inventory/counts/{count_id}", headers=headers).json()
        assert detail["stats"]["divergent_lines"] == 2
        assert len(detail["lines"]) == 3

        dashboard = client.get("/inventory/counts/dashboard", headers=headers).json()
        assert dashboard["by_status"]["finalized"] == 1
        assert dashboard["pending_adjustment"] == 1

        assert client.post(f"/inventory/counts/{count_id}/adjust", headers=headers).status_code == 403

        adjusted = client.post(f"/inventory/counts/{count_id}/adjust", headers=auth_headers(role="admin"))
        assert adjusted.status_code == 200
        assert adjusted.json()["movements_created"] == 2

        listed = client.get("/inventory/counts?status=adjusted", headers=headers).json()
        assert listed["pagination"]["total"] == 1

    def test_second_count_on_location_is_409(self, client, auth_headers, location):
        headers = auth_headers()
        client.post("/inventory/counts", json={"location_id": str(location.id)}, headers=headers)
        response = client.post("/inventory/counts", json={"location_id": str(location.id)}, headers=headers)
        assert response.status_code == 409

    def test_cancel_count(self, client, auth_headers, location):
        headers = auth_headers()
        count_id = client.post("/inventory/counts", json={"location_id": str(location.id)}, headers=headers).json()["id"]

        response = client.post(f"/inventory/counts/{count_id}/cancel", json={"reason": "Depósito cerrado"}, headers=headers)
        assert response.status_code == 200
        assert response.json()["status"] == "canceled"
        assert response.json()["cancel_reason"] == "Depósito cerrado"
