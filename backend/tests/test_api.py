"""HTTP surface: envelope, error mapping and an end-to-end receipt."""
import uuid

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy import select

from shelfwise.api.deps import get_order_status_lookup
from shelfwise.db.session import get_db
from shelfwise.main import app
from shelfwise.models.audit import AuditLog
from tests.factories import location_of


@pytest.fixture
async def client(session_maker, order_lookup):
    async def override_get_db():
        async with session_maker() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_order_status_lookup] = lambda: order_lookup
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()


def _json_location(layout, shelf_key="s1"):
    return {k: str(v) for k, v in location_of(layout, shelf_key).items()}


async def test_health(client):
    resp = await client.get("/health")
    assert resp.status_code == 200
    assert resp.json()["status"] == "ok"


async def test_create_warehouse_and_duplicate_code(client):
    resp = await client.post("/api/v1/locations/warehouses", json={"name": "North DC", "code": "ndc"})
    assert resp.status_code == 201
    body = resp.json()
    assert body["error"] is None
    assert body["data"]["code"] == "NDC"

    resp = await client.post("/api/v1/locations/warehouses", json={"name": "North DC 2", "code": "NDC"})
    assert resp.status_code == 400
    assert resp.json()["error"]["code"] == "DUPLICATE_CODE"
    assert resp.json()["data"] is None


async def test_not_found_envelope(client):
    resp = await client.get(f"/api/v1/locations/zones/{uuid.uuid4()}")
    assert resp.status_code == 404
    error = resp.json()["error"]
    assert error["code"] == "NOT_FOUND"
    assert error["retryable"] is False


async def test_request_validation_lists_fields(client):
    resp = await client.post("/api/v1/locations/warehouses", json={"code": "X"})
    assert resp.status_code == 422
    fields = [e["field"] for e in resp.json()["error"]["field_errors"]]
    assert "name" in fields


async def test_delete_zone_with_children_is_a_conflict(client, layout):
    resp = await client.delete(f"/api/v1/locations/zones/{layout['z1'].id}")
    assert resp.status_code == 409
    assert resp.json()["error"]["code"] == "HAS_CHILDREN"


async def test_shelf_path(client, layout):
    resp = await client.get(f"/api/v1/locations/shelves/{layout['s3'].id}/path")
    assert resp.json()["data"] == ["Zone 2", "Rack 2", "Shelf 3"]


async def test_receipt_end_to_end(client, session_maker, layout, confirmed_po):
    actor = uuid.uuid4()
    resp = await client.post(
        "/api/v1/grns",
        json={"po_id": str(confirmed_po.id), "lines": [{"sku": "SKU-A", "received_qty": 5}]},
        headers={"X-Actor-Id": str(actor)},
    )
    assert resp.status_code == 201
    grn = resp.json()["data"]
    assert grn["status"] == "draft"
    assert resp.json()["meta"]["warnings"] == []

    receipt = {"lines": [{"sku": "SKU-A", "location": _json_location(layout)}]}
    resp = await client.post(f"/api/v1/grns/{grn['id']}/receive", json=receipt, headers={"X-Actor-Id": str(actor)})
    assert resp.status_code == 200
    assert resp.json()["data"]["status"] == "completed"

    resp = await client.post(f"/api/v1/grns/{grn['id']}/receive", json=receipt)
    assert resp.status_code == 409
    assert resp.json()["error"]["code"] == "STATE_CONFLICT"

    po = (await client.get(f"/api/v1/purchase-orders/{confirmed_po.id}")).json()["data"]
    assert po["status"] == "partially_received"
    assert {l["sku"]: l["received_qty"] for l in po["lines"]} == {"SKU-A": 5, "SKU-B": 0}

    placements = (await client.get(f"/api/v1/locations/shelves/{layout['s1'].id}/placements")).json()["data"]
    assert [(p["sku"], p["quantity"]) for p in placements] == [("SKU-A", 5)]

    inbound = (await client.get("/api/v1/put-away/inbound")).json()["data"]
    assert inbound["total"] == 5
    assert len(inbound["fresh_receipt"]) == 5

    async with session_maker() as session:
        actors = (await session.execute(
            select(AuditLog.actor_id).where(AuditLog.entity_type == "grn", AuditLog.action == "completed")
        )).scalars().all()
    assert actors == [actor]


async def test_receipt_with_both_location_and_placements_is_rejected(client, layout, confirmed_po):
    resp = await client.post(
        "/api/v1/grns", json={"po_id": str(confirmed_po.id), "lines": [{"sku": "SKU-A", "received_qty": 2}]}
    )
    grn_id = resp.json()["data"]["id"]
    line = {
        "sku": "SKU-A",
        "location": _json_location(layout),
        "placements": [{**_json_location(layout), "quantity": 2}],
    }
    resp = await client.post(f"/api/v1/grns/{grn_id}/receive", json={"lines": [line]})
    assert resp.status_code == 422


async def test_cancel_po_requires_reason(client, confirmed_po):
    resp = await client.post(f"/api/v1/purchase-orders/{confirmed_po.id}/cancel", json={"reason": ""})
    assert resp.status_code == 422

    resp = await client.post(f"/api/v1/purchase-orders/{confirmed_po.id}/cancel", json={"reason": "No longer needed"})
    assert resp.status_code == 200
    assert resp.json()["data"]["status"] == "cancelled"


async def test_list_purchase_orders_meta(client, confirmed_po):
    resp = await client.get("/api/v1/purchase-orders", params={"page_size": 10})
    body = resp.json()
    assert body["meta"]["total_count"] == 1
    assert body["data"][0]["po_number"] == "PO-00001"
