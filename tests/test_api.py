from __future__ import annotations

import uuid
from decimal import Decimal

import pytest
from fastapi.testclient import TestClient

from main import create_app


@pytest.fixture
def client(db_url, clock):
    with TestClient(create_app(database_url=db_url, clock=clock)) as c:
        yield c


def _create_item(client: TestClient, **overrides) -> dict:
    payload = {
        "name": "Paracetamol 500mg",
        "category": "Medicine",
        "quantity": 10,
        "min_required": 5,
        "unit_price": "0.50",
    }
    payload.update(overrides)
    res = client.post("/pharmacy/items", json=payload)
    assert res.status_code == 201, res.text
    return res.json()


def test_health(client: TestClient) -> None:
    assert client.get("/health").json() == {"status": "ok"}


def test_dispense_flow(client: TestClient) -> None:
    item = _create_item(client)
    assert item["item_code"] == "MED1001"
    assert item["status"] == "in_stock"

    res = client.post(f"/pharmacy/items/{item['id']}/dispense", json={"quantity": 6, "reason": "Ward 1"})
    assert res.status_code == 201, res.text
    body = res.json()
    assert body["item"]["quantity"] == 4
    assert body["item"]["status"] == "low_stock"
    assert body["record"]["quantity"] == 6
    assert body["record"]["reason"] == "Ward 1"
    assert body["record"]["item_name"] == "Paracetamol 500mg"

    fetched = client.get(f"/pharmacy/items/{item['id']}").json()
    assert fetched["quantity"] == 4

    low = client.get("/pharmacy/items/low-stock").json()
    assert [i["id"] for i in low] == [item["id"]]

    history = client.get(
        "/pharmacy/dispenses",
        params={"start": "2026-10-15T00:00:00Z", "end": "2026-10-16T00:00:00Z"},
    ).json()
    assert [r["id"] for r in history] == [body["record"]["id"]]


def test_dispense_errors_are_typed(client: TestClient) -> None:
    item = _create_item(client, quantity=4)
    url = f"/pharmacy/items/{item['id']}/dispense"

    res = client.post(url, json={"quantity": 5})
    assert res.status_code == 409
    assert res.json()["detail"]["code"] == "INSUFFICIENT_STOCK"
    assert res.json()["detail"]["available"] == 4

    res = client.post(url, json={"quantity": 2.5})
    assert res.status_code == 422
    assert res.json()["detail"]["code"] == "INVALID_QUANTITY"

    res = client.post(url, json={"quantity": 1, "reason": "x" * 501})
    assert res.status_code == 422
    assert res.json()["detail"]["code"] == "VALIDATION_ERROR"
    assert res.json()["detail"]["field"] == "reason"

    res = client.post(f"/pharmacy/items/{uuid.uuid4()}/dispense", json={"quantity": 1})
    assert res.status_code == 404
    assert res.json()["detail"]["code"] == "NOT_FOUND"

    # strings are not coerced into quantities
    assert client.post(url, json={"quantity": "3"}).status_code == 422

    assert client.get(f"/pharmacy/items/{item['id']}").json()["quantity"] == 4


def test_replenish_and_catalog_edits(client: TestClient) -> None:
    item = _create_item(client, quantity=0, min_required=3)
    assert item["status"] == "out_of_stock"

    res = client.post(f"/pharmacy/items/{item['id']}/replenish", json={"quantity": 5})
    assert res.status_code == 200, res.text
    assert (res.json()["quantity"], res.json()["status"]) == (5, "in_stock")

    res = client.patch(f"/pharmacy/items/{item['id']}", json={"min_required": 8, "unit_price": "1.25"})
    assert res.status_code == 200, res.text
    assert res.json()["status"] == "low_stock"
    assert Decimal(res.json()["unit_price"]) == Decimal("1.25")

    assert client.delete(f"/pharmacy/items/{item['id']}").status_code == 204
    assert client.get(f"/pharmacy/items/{item['id']}").status_code == 404


def test_item_listing_and_expiring(client: TestClient) -> None:
    _create_item(client, name="Soon", expiry_date="2026-10-20")
    _create_item(client, name="Later", expiry_date="2027-06-01")
    _create_item(client, name="Gauze", category="Supply")

    names = [i["name"] for i in client.get("/pharmacy/items", params={"category": "Medicine"}).json()]
    assert sorted(names) == ["Later", "Soon"]

    assert [i["name"] for i in client.get("/pharmacy/items/expiring").json()] == ["Soon"]
    assert len(client.get("/pharmacy/items/expiring", params={"within_days": 400}).json()) == 2

    res = client.get("/pharmacy/items/expiring", params={"within_days": -1})
    assert res.status_code == 422
    assert res.json()["detail"]["code"] == "VALIDATION_ERROR"


def test_reports(client: TestClient) -> None:
    item = _create_item(client, quantity=20)
    client.post(f"/pharmacy/items/{item['id']}/dispense", json={"quantity": 5})

    daily = client.get("/reports/daily-summary", params={"date": "2026-10-15"}).json()
    assert daily["total_dispensed_quantity"] == 5
    assert daily["top_categories"] == [{"category": "Medicine", "quantity": 5}]

    trend = client.get("/reports/six-month-trend").json()
    assert len(trend["buckets"]) == 6
    assert trend["buckets"][-1]["label"] == "October 2026"
    assert trend["buckets"][-1]["change_from_previous"] is None

    impact = client.get("/reports/stock-impact").json()
    medicine = next(c for c in impact["categories"] if c["category"] == "Medicine")
    assert (medicine["current_stock"], medicine["dispensed_this_month"]) == (15, 5)
    assert medicine["utilization"] == 25.0

    monthly = client.get("/reports/monthly", params={"year": 2026, "month": 10}).json()
    assert monthly["total_dispensed"] == 5

    assert client.get("/reports/monthly", params={"year": 2026, "month": 0}).status_code == 422


def test_suppliers_and_distribution(client: TestClient) -> None:
    res = client.post("/suppliers/", json={"name": "MediCorp", "contact_info": "orders@medicorp.example"})
    assert res.status_code == 201, res.text
    supplier = res.json()
    assert supplier["supplier_code"] == "S0001"

    assert client.post("/suppliers/", json={"name": "medicorp"}).status_code == 422
    assert [s["name"] for s in client.get("/suppliers/").json()] == ["MediCorp"]

    _create_item(client, quantity=4, unit_price="2.50", supplier_id=supplier["id"])
    dist = client.get("/reports/supplier-distribution").json()
    assert dist["total_suppliers_in_system"] == 1
    assert dist["categories"][0]["category"] == "Medicine"
    assert dist["categories"][0]["supplier_count"] == 1
    assert Decimal(dist["categories"][0]["total_value"]) == Decimal("10.00")
