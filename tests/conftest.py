"""Pytest fixtures for the store API tests."""

import os

os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("LOG_LEVEL", "WARNING")

import hashlib
import hmac
import json
import threading
import time
from dataclasses import replace
from decimal import Decimal

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import Session, sessionmaker

from auth import create_token, hash_password
from config import Settings, get_settings
from database import get_db, make_engine
from errors import GatewayUnavailable, InvalidSignature
from gateway import GatewayEvent, Intent, PaymentGateway, parse_event
from main import app, get_gateway
from schemas import Base, Pet, ShopProduct, User

WEBHOOK_SECRET = "whsec_test_secret"
VALID_SIGNATURE = "t=1,v1=valid"


class FakeGateway(PaymentGateway):
    """In-memory stand-in for Stripe with the adapter's interface."""

    def __init__(self):
        self.intents = {}
        self.created = []
        self.retrieved = []
        self.fail_create = False
        self._lock = threading.Lock()

    def create_intent(self, amount, currency, metadata, description=None):
        if self.fail_create:
            raise GatewayUnavailable("Error creating payment intent")
        with self._lock:
            intent_id = f"pi_test_{len(self.intents) + 1}"
            intent = Intent(
                id=intent_id,
                status="requires_payment_method",
                client_secret=f"{intent_id}_secret_abc",
                amount=amount,
            )
            self.intents[intent_id] = intent
            self.created.append({"amount": amount, "currency": currency,
                                 "metadata": metadata, "description": description})
        return intent

    def retrieve_intent(self, intent_id):
        self.retrieved.append(intent_id)
        if intent_id not in self.intents:
            raise GatewayUnavailable("Error retrieving payment intent")
        return self.intents[intent_id]

    def verify_webhook_signature(self, payload, signature, secret):
        if signature != VALID_SIGNATURE or secret != WEBHOOK_SECRET:
            raise InvalidSignature()
        return parse_event(payload.decode() if isinstance(payload, bytes) else payload)

    def settle(self, intent_id, status="succeeded", payment_method="pm_card_visa"):
        self.intents[intent_id] = replace(
            self.intents[intent_id], status=status, payment_method=payment_method
        )


def event_payload(event_type: str, intent_id: str, payment_method: str = "pm_card_visa") -> bytes:
    return json.dumps({
        "id": "evt_test",
        "type": event_type,
        "data": {"object": {"id": intent_id, "object": "payment_intent",
                            "payment_method": payment_method}},
    }).encode()


def stripe_signature(payload: str, secret: str, timestamp: int = None) -> str:
    ts = timestamp if timestamp is not None else int(time.time())
    digest = hmac.new(secret.encode(), f"{ts}.{payload}".encode(), hashlib.sha256).hexdigest()
    return f"t={ts},v1={digest}"


@pytest.fixture
def settings(tmp_path):
    return Settings(
        jwt_secret="test-jwt-secret-that-is-long-enough-0123",
        bcrypt_rounds=4,
        stripe_webhook_secret=WEBHOOK_SECRET,
        upload_path=str(tmp_path / "uploads"),
        max_file_size=1024,
        currency="inr",
    )


@pytest.fixture
def engine(tmp_path):
    """File-backed SQLite so every session gets its own connection."""
    eng = make_engine(f"sqlite:///{tmp_path / 'store.db'}")
    Base.metadata.create_all(eng)
    yield eng
    eng.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, autoflush=False)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def gateway():
    return FakeGateway()


@pytest.fixture
def client(session_factory, gateway, settings):
    def override_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_db
    app.dependency_overrides[get_gateway] = lambda: gateway
    app.dependency_overrides[get_settings] = lambda: settings
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def make_user(db, settings):
    counter = {"n": 0}

    def _make(role="user", is_active=True, password="secret123"):
        counter["n"] += 1
        n = counter["n"]
        user = User(
            username=f"user{n}",
            email=f"user{n}@example.com",
            password_hash=hash_password(password, settings.bcrypt_rounds),
            full_name=f"Test User {n}",
            role=role,
            is_active=is_active,
        )
        db.add(user)
        db.commit()
        return user

    return _make


@pytest.fixture
def auth_headers(settings):
    def _headers(user):
        return {"Authorization": f"Bearer {create_token(user.id, settings)}"}

    return _headers


@pytest.fixture
def make_product(db):
    def _make(price="599", stock=10, name="Chewable Dog Toy", category="Toys", is_available=True):
        product = ShopProduct(
            name=name,
            description=f"{name} description",
            price=Decimal(price),
            category=category,
            stock_quantity=stock,
            is_available=is_available,
        )
        db.add(product)
        db.commit()
        return product

    return _make


@pytest.fixture
def make_pet(db):
    def _make(price="25000", name="Birchy", species="Cat", is_available=True, featured=False):
        pet = Pet(
            name=name,
            breed="Persian Cat" if species == "Cat" else "Poodle",
            species=species,
            gender="Female",
            age_weeks=12,
            price=Decimal(price) if price is not None else None,
            is_available=is_available,
            is_featured=featured,
        )
        db.add(pet)
        db.commit()
        return pet

    return _make
