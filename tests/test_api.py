"""Integration tests for the HTTP API via TestClient."""

import pytest
from fastapi.testclient import TestClient

from storefront.database import SEED_PRODUCTS

CEMENT_ID = 1
BACKHOE_ID = 6


def _add(client, product_id):
    response = client.post("/cart/items", json={"productId": product_id})
    assert response.status_code == 201
    return response.json()


def _deliver_latest_batch(client, clock):
    scheduler = client.app.state.scheduler
    batch_id = client.app.state.store.latest_tracker().batch_id
    clock.advance(8)
    scheduler.advance(batch_id)


class TestHealth:
    def test_health(self, client):
        assert client.get("/health").json() == {"status": "healthy"}


class TestProductEndpoints:
    def test_list_products_in_catalog_order(self, client):
        response = client.get("/api/products")

        assert response.status_code == 200
        products = response.json()
        assert [p["name"] for p in products] == [p["name"] for p in SEED_PRODUCTS]
        assert set(products[0]) == {"id", "name", "price", "image", "description", "category", "rating"}

    def test_filter_by_category_and_sort(self, client):
        products = client.get("/api/products", params={"category": "machine", "sort": "highToLow"}).json()

        prices = [p["price"] for p in products]
        assert {p["category"] for p in products} == {"machine"}
        assert prices == sorted(prices, reverse=True)

    def test_sort_low_to_high(self, client):
        prices = [p["price"] for p in client.get("/api/products", params={"sort": "lowToHigh"}).json()]
        assert prices == sorted(prices)

    def test_search_and_min_rating(self, client):
        products = client.get("/api/products", params={"search": "CEMENT", "minRating": 4}).json()
        assert [p["id"] for p in products] == [CEMENT_ID]

        assert client.get("/api/products", params={"search": "cement", "minRating": 5}).json() == []

    def test_invalid_sort(self, client):
        assert client.get("/api/products", params={"sort": "random"}).status_code == 422

    def test_catalog_grouped_by_category(self, client):
        catalog = client.get("/api/catalog").json()

        assert set(catalog) == {"material", "machine", "worker"}
        assert all(p["category"] == "worker" for p in catalog["worker"])
        assert sum(len(group) for group in catalog.values()) == len(SEED_PRODUCTS)

    def test_get_product(self, client):
        product = client.get(f"/api/products/{CEMENT_ID}").json()
        assert product["name"] == "Cement (50kg bag)"
        assert product["price"] == 500.0

    def test_unknown_product(self, client):
        response = client.get("/api/products/9999")

        assert response.status_code == 404
        assert response.json()["detail"]["title"] == "Product Not Found"


class TestCartEndpoints:
    def test_empty_cart(self, client):
        assert client.get("/cart").json() == {"entries": [], "total": 0, "count": 0}

    def test_adding_twice_keeps_two_entries(self, client):
        _add(client, CEMENT_ID)
        cart = _add(client, CEMENT_ID)

        assert cart["count"] == 2
        assert cart["total"] == 1000.0
        assert [e["id"] for e in cart["entries"]] == [CEMENT_ID, CEMENT_ID]

    def test_add_unknown_product(self, client):
        response = client.post("/cart/items", json={"productId": 9999})

        assert response.status_code == 404
        assert client.get("/cart").json()["count"] == 0

    def test_add_requires_product_id(self, client):
        assert client.post("/cart/items", json={}).status_code == 422

    def test_remove_product(self, client):
        _add(client, CEMENT_ID)
        _add(client, BACKHOE_ID)
        _add(client, CEMENT_ID)

        cart = client.delete(f"/cart/items/{CEMENT_ID}").json()

        assert [e["id"] for e in cart["entries"]] == [BACKHOE_ID]

    def test_clear_cart(self, client):
        _add(client, CEMENT_ID)
        assert client.delete("/cart").json()["count"] == 0


class TestCheckoutEndpoint:
    def test_cod_checkout(self, client):
        _add(client, CEMENT_ID)

        response = client.post("/orders/checkout", json={"paymentMethod": "COD"})

        assert response.status_code == 200
        body = response.json()
        assert body["notice"]["description"] == "Order placed successfully! Payment method: COD"
        assert body["totalAmount"] == 500.0
        assert body["latestOrder"]["productName"] == "Cement (50kg bag)"
        assert body["latestOrder"]["status"] == "Placed"
        assert body["latestOrder"]["quantity"] == 1
        assert client.get("/cart").json()["count"] == 0
        assert len(client.get("/orders").json()["orders"]) == 1

    def test_cod_over_limit_rejected(self, client):
        _add(client, BACKHOE_ID)

        response = client.post("/orders/checkout", json={"paymentMethod": "COD"})

        assert response.status_code == 400
        assert response.json()["detail"]["title"] == "COD Limit Exceeded"
        assert client.get("/cart").json()["count"] == 1
        assert client.get("/orders").json()["orders"] == []

    def test_bank_transfer_over_limit_accepted(self, client):
        _add(client, BACKHOE_ID)

        response = client.post("/orders/checkout", json={"paymentMethod": "BankTransfer"})

        assert response.status_code == 200

    def test_unknown_payment_method(self, client):
        _add(client, CEMENT_ID)
        assert client.post("/orders/checkout", json={"paymentMethod": "Card"}).status_code == 422

    def test_empty_cart_checkout(self, client):
        response = client.post("/orders/checkout", json={"paymentMethod": "UPI"})
        assert response.status_code == 400


class TestOrderEndpoints:
    def test_latest_order_tracks_fulfillment(self, client, clock):
        _add(client, CEMENT_ID)
        client.post("/orders/checkout", json={"paymentMethod": "UPI"})

        latest = client.get("/orders/latest").json()
        assert latest["order"]["status"] == "Placed"
        assert latest["nextTransitionAt"] == clock() + 4

        clock.advance(6)
        client.app.state.scheduler.advance(client.app.state.store.latest_tracker().batch_id)

        latest = client.get("/orders/latest").json()
        assert latest["order"]["status"] == "Out for Delivery"
        assert latest["message"] == "Your order is out for delivery."

    def test_latest_order_when_nothing_ordered(self, client):
        assert client.get("/orders/latest").json() == {"order": None, "message": None, "nextTransitionAt": None}

    def test_rating_flow(self, client, clock):
        _add(client, CEMENT_ID)
        order_id = client.post("/orders/checkout", json={"paymentMethod": "UPI"}).json()["latestOrder"]["id"]

        early = client.post(f"/orders/{order_id}/rating", json={"rating": 4})
        assert early.status_code == 409

        _deliver_latest_batch(client, clock)
        response = client.post(f"/orders/{order_id}/rating", json={"rating": 4})

        assert response.status_code == 200
        assert response.json()["notice"]["title"] == "Rating Submitted"
        order = client.get(f"/orders/{order_id}").json()
        assert order["rating"] == 4
        assert order["status"] == "Delivered"

    def test_rating_is_idempotent_over_http(self, client, clock):
        _add(client, CEMENT_ID)
        client.post("/orders/checkout", json={"paymentMethod": "UPI"})
        _deliver_latest_batch(client, clock)
        order_id = client.get("/orders").json()["orders"][0]["id"]

        client.post(f"/orders/{order_id}/rating", json={"rating": 3})
        once = client.get("/orders").json()
        client.post(f"/orders/{order_id}/rating", json={"rating": 3})

        assert client.get("/orders").json() == once

    @pytest.mark.parametrize("rating", [0, 6])
    def test_rating_out_of_range(self, client, rating):
        assert client.post("/orders/any/rating", json={"rating": rating}).status_code == 422

    def test_rating_with_stale_version(self, client, clock):
        _add(client, CEMENT_ID)
        client.post("/orders/checkout", json={"paymentMethod": "UPI"})
        _deliver_latest_batch(client, clock)
        order = client.get("/orders").json()["orders"][0]

        response = client.post(
            f"/orders/{order['id']}/rating",
            json={"rating": 5, "expectedVersion": order["version"] - 1}
        )

        assert response.status_code == 409
        assert response.json()["detail"]["title"] == "Order Changed"

    def test_unknown_order(self, client):
        assert client.get("/orders/missing").status_code == 404
        assert client.get("/orders/missing/tracking").status_code == 404

    def test_tracking_and_contact_delivery(self, client):
        _add(client, CEMENT_ID)
        order_id = client.post("/orders/checkout", json={"paymentMethod": "UPI"}).json()["latestOrder"]["id"]

        tracking = client.get(f"/orders/{order_id}/tracking").json()
        assert tracking == {"orderId": order_id, "status": "Placed", "trackingId": None, "trackingUrl": None}

        contact = client.post(f"/orders/{order_id}/contact-delivery")
        assert contact.status_code == 409
        assert contact.json()["detail"]["title"] == "Unable to Contact"


class TestLifespan:
    def test_interrupted_batch_resumes_on_restart(self, app, clock):
        with TestClient(app) as client:
            _add(client, CEMENT_ID)
            client.post("/orders/checkout", json={"paymentMethod": "UPI"})

        clock.advance(30)

        with TestClient(app) as client:
            orders = client.get("/orders").json()["orders"]
            assert [o["status"] for o in orders] == ["Delivered"]
            assert client.get("/orders/latest").json()["message"] == "Your order has been delivered."
