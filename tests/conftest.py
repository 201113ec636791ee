"""pytest configuration: path management, app, client and token fixtures."""
from __future__ import annotations

import sys
from decimal import Decimal
from pathlib import Path

import pytest

# Ensure the project root is available on sys.path so tests can import the app package.
PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from barbershop import create_app  # noqa: E402
from barbershop.auth import build_token  # noqa: E402
from barbershop.extensions import db  # noqa: E402
from barbershop.models import Barber, Client, Product, Service  # noqa: E402


@pytest.fixture
def app():
    app = create_app({
        "TESTING": True,
        "SQLALCHEMY_DATABASE_URI": "sqlite:///:memory:",
        "SECRET_KEY": "test-secret",
    })
    with app.app_context():
        db.create_all()
    yield app
    with app.app_context():
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app, auth_headers):
    """Test client carrying an admin token; per-request headers replace it."""
    client = app.test_client()
    client.environ_base["HTTP_AUTHORIZATION"] = auth_headers("admin")["Authorization"]
    return client


@pytest.fixture
def anonymous_client(app):
    return app.test_client()


@pytest.fixture
def auth_headers(app):
    """Factory for Authorization headers: ``auth_headers("barber", barber_id=1)``."""

    def make(role: str = "admin", barber_id: int | None = None, user_id: int = 1) -> dict[str, str]:
        with app.app_context():
            token = build_token({"user_id": user_id, "role": role, "barber_id": barber_id})
        return {"Authorization": f"Bearer {token}"}

    return make


@pytest.fixture
def shop(app) -> dict[str, int]:
    """A client, a barber with 40% service / 50% chemical / 10% product rates, services and products."""
    with app.app_context():
        customer = Client(name="Carlos Cliente", phone="555-0100", email="carlos@example.com")
        barber = Barber(
            name="Bruno Barber",
            email="bruno@example.com",
            commission_rate_service=Decimal("0.40"),
            commission_rate_chemical_service=Decimal("0.50"),
            commission_rate_product=Decimal("0.10"),
        )
        haircut = Service(name="Haircut", price_cents=3000, duration_minutes=30, is_chemical=False)
        coloring = Service(name="Coloring", price_cents=8000, duration_minutes=60, is_chemical=True)
        pomade = Product(name="Pomade", price_cents=1000, stock_quantity=10)
        shampoo = Product(name="Shampoo", price_cents=500, stock_quantity=5)
        db.session.add_all([customer, barber, haircut, coloring, pomade, shampoo])
        db.session.commit()

        return {
            "client_id": customer.client_id,
            "barber_id": barber.barber_id,
            "haircut_id": haircut.service_id,
            "coloring_id": coloring.service_id,
            "pomade_id": pomade.product_id,
            "shampoo_id": shampoo.product_id,
        }
