"""Tests for the FastAPI API."""

import io
import json

from sqlalchemy import func, select

from conftest import VALID_SIGNATURE, event_payload
from schemas import Order, Pet, ShopProduct

ADDRESS = "42 MG Road, Bengaluru 560001"


class TestHealth:
    def test_root(self, client):
        response = client.get("/")
        assert response.status_code == 200
        assert "running" in response.json()["message"]

    def test_health(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json() == {"status": "OK", "database": "connected"}


class TestAuth:
    def test_register_then_me(self, client):
        response = client.post("/auth/register", json={
            "username": "priya",
            "email": "Priya@Example.com",
            "password": "woofwoof",
            "full_name": "Priya Sharma",
        })
        assert response.status_code == 201
        data = response.json()
        assert data["user"]["email"] == "priya@example.com"
        assert data["user"]["role"] == "user"

        me = client.get("/auth/me", headers={"Authorization": f"Bearer {data['token']}"})
        assert me.status_code == 200
        assert me.json()["username"] == "priya"

    def test_register_duplicate(self, client, make_user):
        user = make_user()
        response = client.post("/auth/register", json={
            "username": "someone-new",
            "email": user.email,
            "password": "woofwoof",
            "full_name": "Someone New",
        })
        assert response.status_code == 409
        assert response.json()["error_type"] == "DuplicateUser"

    def test_register_validation(self, client):
        response = client.post("/auth/register", json={
            "username": "ab", "email": "not-an-email", "password": "123", "full_name": "X",
        })
        assert response.status_code == 400
        data = response.json()
        assert data["error_type"] == "ValidationError"
        fields = {err["loc"][-1] for err in data["errors"]}
        assert {"username", "email", "password", "full_name"} <= fields

    def test_login(self, client, make_user):
        user = make_user(password="kitty-cat")
        response = client.post("/auth/login", json={"email": user.email, "password": "kitty-cat"})
        assert response.status_code == 200
        assert response.json()["user"]["id"] == user.id
        assert response.json()["token"]

    def test_login_wrong_password(self, client, make_user):
        user = make_user(password="kitty-cat")
        response = client.post("/auth/login", json={"email": user.email, "password": "nope-nope"})
        assert response.status_code == 401

    def test_login_inactive(self, client, make_user):
        user = make_user(is_active=False, password="kitty-cat")
        response = client.post("/auth/login", json={"email": user.email, "password": "kitty-cat"})
        assert response.status_code == 401

    def test_me_requires_token(self, client):
        response = client.get("/auth/me")
        assert response.status_code == 401
        assert response.json()["error_type"] == "NotAuthenticated"

    def test_me_rejects_garbage_token(self, client):
        response = client.get("/auth/me", headers={"Authorization": "Bearer not.a.token"})
        assert response.status_code == 401

    def test_me_rejects_inactive_user(self, client, make_user, auth_headers):
        user = make_user(is_active=False)
        response = client.get("/auth/me", headers=auth_headers(user))
        assert response.status_code == 401


class TestCatalog:
    def test_list_products_with_filters(self, client, make_product):
        make_product(name="Chewable Dog Toy", price="599", category="Toys")
        make_product(name="Premium Cat Food", price="1299", category="Food")
        make_product(name="Squeaky Ball", price="199", category="Toys", is_available=False)

        response = client.get("/products", params={"category": "Toys"})
        assert response.status_code == 200
        data = response.json()
        assert data["pagination"]["total"] == 2

        response = client.get("/products", params={"available": "true", "max_price": 1000})
        names = [p["name"] for p in response.json()["items"]]
        assert names == ["Chewable Dog Toy"]

        response = client.get("/products", params={"search": "cat"})
        assert [p["name"] for p in response.json()["items"]] == ["Premium Cat Food"]

    def test_pagination(self, client, make_product):
        for i in range(5):
            make_product(name=f"Toy {i}")
        response = client.get("/products", params={"limit": 2, "page": 3})
        data = response.json()
        assert len(data["items"]) == 1
        assert data["pagination"] == {"page": 3, "limit": 2, "total": 5, "pages": 3}

    def test_limit_is_bounded(self, client):
        response = client.get("/products", params={"limit": 500})
        assert response.status_code == 400

    def test_categories(self, client, make_product):
        make_product(category="Toys")
        make_product(category="Toys")
        make_product(category="Food")
        response = client.get("/products/categories")
        assert response.json() == [
            {"category": "Food", "product_count": 1},
            {"category": "Toys", "product_count": 2},
        ]

    def test_get_missing_product(self, client):
        response = client.get("/products/999")
        assert response.status_code == 404
        assert response.json()["error_type"] == "NotFound"

    def test_list_pets(self, client, make_pet):
        make_pet(name="Birchy", species="Cat")
        make_pet(name="Harry", species="Dog", featured=True)
        response = client.get("/pets", params={"species": "Dog"})
        data = response.json()
        assert [p["name"] for p in data["items"]] == ["Harry"]
        assert data["items"][0]["price"] == 25000.0

    def test_get_pet(self, client, make_pet):
        pet = make_pet()
        response = client.get(f"/pets/{pet.id}")
        assert response.status_code == 200
        assert response.json()["name"] == "Birchy"


class TestAdmin:
    def test_create_product_requires_admin(self, client, make_user, auth_headers):
        user = make_user()
        response = client.post("/products", headers=auth_headers(user), json={
            "name": "Cat Tree", "price": 2499, "category": "Furniture", "stock_quantity": 4,
        })
        assert response.status_code == 403

    def test_product_crud(self, client, db, make_user, auth_headers):
        headers = auth_headers(make_user(role="admin"))
        response = client.post("/products", headers=headers, json={
            "name": "Cat Tree", "price": 2499, "category": "Furniture", "stock_quantity": 4,
        })
        assert response.status_code == 201
        product_id = response.json()["id"]
        assert response.json()["price"] == 2499.0

        response = client.put(f"/products/{product_id}", headers=headers,
                              json={"stock_quantity": 9})
        assert response.json()["updated"] is True
        assert response.json()["product"]["stock_quantity"] == 9

        response = client.put(f"/products/{product_id}", headers=headers, json={})
        assert response.json() == {"updated": False}

        response = client.delete(f"/products/{product_id}", headers=headers)
        assert response.json() == {"deleted": True}
        assert db.get(ShopProduct, product_id) is None

    def test_pet_crud(self, client, db, make_user, auth_headers):
        headers = auth_headers(make_user(role="admin"))
        response = client.post("/pets", headers=headers, json={
            "name": "Goldie", "breed": "Golden Retriever", "species": "Dog",
            "gender": "Female", "age_weeks": 10, "price": 45000,
        })
        assert response.status_code == 201
        pet_id = response.json()["id"]

        response = client.put(f"/pets/{pet_id}", headers=headers, json={"is_featured": True})
        assert response.json()["pet"]["is_featured"] is True

        response = client.delete(f"/pets/{pet_id}", headers=headers)
        assert response.status_code == 200
        assert db.get(Pet, pet_id) is None

    def test_upload_product_image(self, client, settings, make_user, make_product, auth_headers):
        headers = auth_headers(make_user(role="admin"))
        product = make_product()

        response = client.post(
            f"/products/{product.id}/image", headers=headers,
            files={"image": ("toy.png", io.BytesIO(b"\x89PNG fake"), "image/png")},
        )

        assert response.status_code == 200
        url = response.json()["image_url"]
        assert url.startswith("/uploads/products/productImage-")
        assert url.endswith(".png")

    def test_upload_rejects_non_images(self, client, make_user, make_pet, auth_headers):
        headers = auth_headers(make_user(role="admin"))
        pet = make_pet()
        response = client.post(
            f"/pets/{pet.id}/image", headers=headers,
            files={"image": ("notes.txt", io.BytesIO(b"hello"), "text/plain")},
        )
        assert response.status_code == 400
        assert response.json()["error_type"] == "UploadRejected"


class TestCheckoutFlow:
    def test_create_confirm_and_history(self, client, db, gateway, make_user, make_product,
                                        auth_headers):
        user = make_user()
        headers = auth_headers(user)
        product = make_product(price="599", stock=10)

        response = client.post("/orders", headers=headers, json={
            "items": [{"type": "product", "id": product.id, "quantity": 2, "price": 1}],
            "shipping_address": ADDRESS,
        })
        assert response.status_code == 201
        data = response.json()
        assert data["total_amount"] == 1198.0
        assert data["client_secret"]
        order_id = data["order_id"]

        intent_id = list(gateway.intents)[-1]
        gateway.settle(intent_id)
        response = client.post(f"/orders/{order_id}/confirm", headers=headers,
                               json={"payment_intent_id": intent_id})
        assert response.status_code == 200
        assert response.json()["order"]["status"] == "confirmed"

        db.expire_all()
        assert db.get(ShopProduct, product.id).stock_quantity == 8

        response = client.post(f"/orders/{order_id}/confirm", headers=headers,
                               json={"payment_intent_id": intent_id})
        assert response.status_code == 409
        assert response.json()["error_type"] == "AlreadyProcessed"

        history = client.get("/orders", headers=headers).json()
        assert history[0]["id"] == order_id
        assert history[0]["payment_status_detail"] == "completed"
        assert history[0]["total_amount"] == 1198.0

        detail = client.get(f"/orders/{order_id}", headers=headers).json()
        assert detail["items"] == [
            {"item_type": "product", "item_id": product.id, "quantity": 2, "price": 599.0}
        ]

    def test_create_requires_auth(self, client, make_product):
        product = make_product()
        response = client.post("/orders", json={
            "items": [{"type": "product", "id": product.id}], "shipping_address": ADDRESS,
        })
        assert response.status_code == 401

    def test_unavailable_item(self, client, db, make_user, make_product, auth_headers):
        headers = auth_headers(make_user())
        product = make_product(stock=1)
        response = client.post("/orders", headers=headers, json={
            "items": [{"type": "product", "id": product.id, "quantity": 5}],
            "shipping_address": ADDRESS,
        })
        assert response.status_code == 409
        body = response.json()
        assert body["error_type"] == "ItemUnavailable"
        assert body["item"] == {"type": "product", "id": product.id}
        assert db.scalar(select(func.count()).select_from(Order)) == 0

    def test_validation_errors(self, client, make_user, make_pet, auth_headers):
        headers = auth_headers(make_user())
        pet = make_pet()
        cases = [
            {"items": [], "shipping_address": ADDRESS},
            {"items": [{"type": "pet", "id": pet.id, "quantity": 2}], "shipping_address": ADDRESS},
            {"items": [{"type": "toy", "id": 1}], "shipping_address": ADDRESS},
            {"items": [{"type": "pet", "id": pet.id}], "shipping_address": "short"},
        ]
        for body in cases:
            response = client.post("/orders", headers=headers, json=body)
            assert response.status_code == 400, body
            assert response.json()["error_type"] == "ValidationError"

    def test_confirm_unsettled_payment(self, client, gateway, make_user, make_product,
                                       auth_headers):
        headers = auth_headers(make_user())
        product = make_product()
        order_id = client.post("/orders", headers=headers, json={
            "items": [{"type": "product", "id": product.id}], "shipping_address": ADDRESS,
        }).json()["order_id"]

        response = client.post(f"/orders/{order_id}/confirm", headers=headers,
                               json={"payment_intent_id": list(gateway.intents)[-1]})
        assert response.status_code == 402
        assert response.json()["error_type"] == "PaymentNotCompleted"

    def test_gateway_outage(self, client, db, gateway, make_user, make_product, auth_headers):
        headers = auth_headers(make_user())
        product = make_product()
        gateway.fail_create = True
        response = client.post("/orders", headers=headers, json={
            "items": [{"type": "product", "id": product.id}], "shipping_address": ADDRESS,
        })
        assert response.status_code == 503
        assert response.json()["error_type"] == "GatewayUnavailable"
        assert db.scalar(select(func.count()).select_from(Order)) == 0


class TestWebhookEndpoint:
    def test_rejects_bad_signature(self, client):
        response = client.post(
            "/payments/webhook",
            content=event_payload("payment_intent.succeeded", "pi_1"),
            headers={"stripe-signature": "t=1,v1=forged"},
        )
        assert response.status_code == 400
        assert response.json()["error_type"] == "InvalidSignature"

    def test_signed_event_without_intent_object(self, client):
        response = client.post(
            "/payments/webhook",
            content=json.dumps({"type": "payment_intent.succeeded", "data": {"object": "pi_x"}}),
            headers={"stripe-signature": VALID_SIGNATURE},
        )
        assert response.status_code == 400
        assert response.json()["error_type"] == "ValidationError"

    def test_confirms_order(self, client, db, gateway, make_user, make_pet, auth_headers):
        headers = auth_headers(make_user())
        pet = make_pet()
        order_id = client.post("/orders", headers=headers, json={
            "items": [{"type": "pet", "id": pet.id}], "shipping_address": ADDRESS,
        }).json()["order_id"]
        intent_id = list(gateway.intents)[-1]

        for _ in range(2):
            response = client.post(
                "/payments/webhook",
                content=event_payload("payment_intent.succeeded", intent_id),
                headers={"stripe-signature": VALID_SIGNATURE},
            )
            assert response.status_code == 200
            assert response.json()["received"] is True

        db.expire_all()
        assert db.get(Order, order_id).status == "confirmed"
        assert db.get(Pet, pet.id).is_available is False
