import re

import pytest

CUSTOMER = {"name": "Asha", "email": "asha@example.com", "phone": "9000000001", "address": "4 Lake View"}


@pytest.fixture
def seeded(store):
    store.seed("inventory", "p1", {"name": "Toy Truck", "price": 200, "count": 10,
                                   "imageUrl": "https://proj.supabase.co/storage/v1/object/public/images/products/1_a.png"})
    store.seed("brands", "b1", {"name": "Funskool", "logoUrl": "not-a-storage-url"})
    return store


def test_health(client):
    assert client.get("/").json() == {"message": "Saaj Trading Backend Running"}
    assert client.get("/test").json()["ok"] is True


def test_checkout_route_places_pending_order(client, seeded):
    resp = client.post("/checkout", json={
        "customer": CUSTOMER,
        "items": [{"id": "p1", "name": "Toy Truck", "price": 200, "quantity": 2}],
    })

    assert resp.status_code == 201
    body = resp.json()
    assert re.fullmatch(r"SAAJ-[0-9A-Z]+-[0-9A-Z]{4}", body["orderId"])
    assert body["status"] == "pending"
    assert body["total"] == 400
    assert seeded.collections["inventory"]["p1"]["count"] == 8


def test_checkout_route_is_idempotent_on_order_id(client, seeded):
    payload = {
        "orderId": "SAAJ-RETRY-0001",
        "customer": CUSTOMER,
        "items": [{"id": "p1", "name": "Toy Truck", "price": 200, "quantity": 1}],
    }

    client.post("/checkout", json=payload)
    client.post("/checkout", json=payload)

    assert len(seeded.collections["orders"]) == 1
    assert seeded.collections["inventory"]["p1"]["count"] == 9


def test_checkout_route_rejects_empty_cart(client):
    resp = client.post("/checkout", json={"customer": CUSTOMER, "items": []})

    assert resp.status_code == 400
    assert resp.json()["code"] == "validation_error"


def test_checkout_route_reports_persistence_failure(client, store):
    store.fail_create = True

    resp = client.post("/checkout", json={
        "customer": CUSTOMER,
        "items": [{"id": "p1", "name": "Toy Truck", "price": 200, "quantity": 1}],
    })

    assert resp.status_code == 500
    assert resp.json() == {"error": "Failed to place order. Please try again.", "code": "persistence_error"}


def test_manual_order_route(client, store):
    resp = client.post("/orders/manual", json={
        "customer": {"name": "Ravi", "phone": "98", "address": "Pune"},
        "items": [{"id": "p1", "name": "Toy Truck", "price": 150, "originalPrice": 200, "quantity": 2, "stock": 1}],
        "discount": "abc",
    })

    assert resp.status_code == 201
    body = resp.json()
    assert body["type"] == "manual"
    assert body["status"] == "confirmed"
    assert body["discount"] == 0
    assert body["total"] == 300


def test_order_status_routes(client, store):
    client.post("/orders/manual", json={
        "customer": {"name": "Ravi", "phone": "98", "address": "Pune"},
        "items": [{"id": "p1", "name": "Toy Truck", "price": 150, "originalPrice": 150}],
    })
    order_id = next(iter(store.collections["orders"]))

    assert client.post(f"/orders/{order_id}/status", json={"status": "delivered"}).status_code == 200
    assert client.get("/orders", params={"status": "delivered"}).json()[0]["id"] == order_id
    assert client.get("/orders", params={"status": "bogus"}).status_code == 400
    assert client.post("/orders/missing/status", json={"status": "shipped"}).status_code == 404
    assert client.delete(f"/orders/{order_id}").status_code == 204
    assert client.get("/orders").json() == []


def test_inventory_crud(client, store):
    created = client.post("/inventory", json={"name": "Puzzle", "price": 99, "count": 4, "categoryName": "Games"})
    assert created.status_code == 201
    product_id = created.json()["id"]
    assert store.collections["inventory"][product_id]["categoryName"] == "Games"

    assert client.put(f"/inventory/{product_id}", json={"name": "Puzzle 500", "price": 120}).status_code == 200
    assert store.collections["inventory"][product_id]["name"] == "Puzzle 500"

    client.post(f"/inventory/{product_id}/count", json={"change": -6})
    assert store.collections["inventory"][product_id]["count"] == -2

    resp = client.post(f"/inventory/{product_id}/stock", json={"count": "-3"})
    assert resp.json()["count"] == 0
    resp = client.post(f"/inventory/{product_id}/stock", json={"count": "12"})
    assert store.collections["inventory"][product_id]["count"] == 12

    assert [p["id"] for p in client.get("/inventory").json()] == [product_id]


def test_delete_product_removes_image_best_effort(client, seeded, storage_transport):
    assert client.delete("/inventory/p1").status_code == 204

    assert "p1" not in seeded.collections["inventory"]
    assert storage_transport.payloads() == [{"prefixes": ["products/1_a.png"]}]


def test_delete_product_survives_storage_failure(client, seeded, storage_transport):
    import httpx
    storage_transport.handler = lambda request: httpx.Response(500)

    assert client.delete("/inventory/p1").status_code == 204
    assert "p1" not in seeded.collections["inventory"]


def test_missing_product_is_404(client):
    assert client.delete("/inventory/nope").status_code == 404
    assert client.post("/inventory/nope/count", json={"change": 1}).status_code == 404


def test_categories_get_slug_and_sort_order(client, store):
    client.post("/categories", json={"name": "Soft Toys", "color": "#EC4899"})
    second = client.post("/categories", json={"name": "Board  Games"}).json()

    assert second["slug"] == "board-games"
    assert second["sortOrder"] == 2

    client.put(f"/categories/{second['id']}", json={"name": "Card Games"})
    assert store.collections["categories"][second["id"]]["slug"] == "card-games"
    assert store.collections["categories"][second["id"]]["sortOrder"] == 2

    names = [c["name"] for c in client.get("/categories").json()]
    assert names == ["Soft Toys", "Card Games"]
    assert client.delete(f"/categories/{second['id']}").status_code == 204


def test_brands(client, seeded, storage_transport):
    client.post("/brands", json={"name": "Lego", "logoUrl": "https://x/logo.png"})

    assert [b["name"] for b in client.get("/brands").json()] == ["Funskool", "Lego"]

    assert client.delete("/brands/b1").status_code == 204
    assert storage_transport.requests == []


def test_contacts(client, store):
    created = client.post("/contacts", json={"firstName": "Meera", "email": "m@x.io", "message": "Hi"}).json()
    assert created["read"] is False

    assert len(client.get("/contacts", params={"unread": True}).json()) == 1
    client.post(f"/contacts/{created['id']}/read")
    assert client.get("/contacts", params={"unread": True}).json() == []


def test_upload_image(client, storage_transport):
    resp = client.post("/uploads/products", files={"file": ("truck.png", b"\x89PNG", "image/png")})

    assert resp.status_code == 201
    assert re.fullmatch(
        r"https://proj\.supabase\.co/storage/v1/object/public/images/products/\d+_[0-9a-z]{6}\.png",
        resp.json()["url"],
    )
    assert storage_transport.requests[0].headers["x-upsert"] == "false"


def test_upload_rejects_unknown_folder(client):
    resp = client.post("/uploads/avatars", files={"file": ("a.png", b"x", "image/png")})
    assert resp.status_code == 400
