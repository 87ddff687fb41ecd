
# tests/conftest.py

import uuid
from dataclasses import dataclass
from decimal import Decimal
from typing import Dict, Optional

import pytest
from fastapi.testclient import TestClient

from app.charges.model import Charge, ChargeStatus
from app.gateway.mock import MockGateway
from app.inventory.model import Product
from app.messaging.client import RecordingMessagingClient
from app.payouts.keys import resolve_key_kind
from app.store.memory import InMemoryStore
from deps.market import gateway_dep, messaging_dep, store_dep
from main import create_app
from security import create_access_token


@dataclass
class AuthedUser:
    user_id: str
    role: str
    token: str

    @property
    def headers(self) -> Dict[str, str]:
        return {"Authorization": f"Bearer {self.token}"}


def _make_user(role: str) -> AuthedUser:
    user_id = str(uuid.uuid4())
    return AuthedUser(user_id=user_id, role=role, token=create_access_token(user_id, role=role))


# ---------------------------
# Collaborators
# ---------------------------

@pytest.fixture
def store() -> InMemoryStore:
    return InMemoryStore()


@pytest.fixture
def gateway() -> MockGateway:
    return MockGateway()


@pytest.fixture
def messaging() -> RecordingMessagingClient:
    return RecordingMessagingClient()


@pytest.fixture
def client(store, gateway, messaging) -> TestClient:
    app = create_app()
    app.dependency_overrides[store_dep] = lambda: store
    app.dependency_overrides[gateway_dep] = lambda: gateway
    app.dependency_overrides[messaging_dep] = lambda: messaging
    # Needed so tests can assert 500s instead of pytest re-raising server exceptions
    return TestClient(app, raise_server_exceptions=False)


# ---------------------------
# Users
# ---------------------------

@pytest.fixture
def buyer() -> AuthedUser:
    return _make_user("buyer")


@pytest.fixture
def seller() -> AuthedUser:
    return _make_user("seller")


@pytest.fixture
def admin() -> AuthedUser:
    return _make_user("admin")


# ---------------------------
# Seed helpers
# ---------------------------

@pytest.fixture
def seed_product(store):
    def _seed(
        seller_id: str,
        *,
        price: str = "200.00",
        quantity: int = 5,
        beneficiary_key: str = "seller@mail.com",
        title: str = "Bicicleta aro 29",
    ) -> Product:
        product = Product(
            id=str(uuid.uuid4()),
            seller_id=seller_id,
            title=title,
            price=Decimal(price),
            quantity=quantity,
            beneficiary_key=beneficiary_key,
            beneficiary_key_kind=resolve_key_kind(beneficiary_key),
        )
        with store.unit_of_work() as uow:
            uow.insert_product(product)
        return product

    return _seed


@pytest.fixture
def seed_charge(store, gateway):
    """
    Creates the charge at the mock provider and locally, the way checkout does.
    """

    def _seed(product: Product, buyer_id: str, *, quantity: int = 1, status: Optional[ChargeStatus] = None) -> Charge:
        gross = (product.price * quantity).quantize(Decimal("0.01"))
        remote = gateway.create_charge(gross, f"test {product.title}")
        charge = Charge(
            id=str(uuid.uuid4()),
            buyer_id=buyer_id,
            seller_id=product.seller_id,
            product_id=product.id,
            product_title=product.title,
            quantity=quantity,
            gross_amount=gross,
            status=status or ChargeStatus.PENDING,
            external_id=remote.external_id,
            qrcode_url=remote.qrcode_url,
            copy_paste=remote.copy_paste,
        )
        with store.unit_of_work() as uow:
            uow.insert_charge(charge)
        return charge

    return _seed
