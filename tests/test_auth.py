"""Tests for bearer token validation and role checks."""
from __future__ import annotations

from datetime import datetime

import pytest
from flask import Flask
from itsdangerous import URLSafeTimedSerializer

from barbershop.auth import build_token, get_current_identity
from barbershop.extensions import db
from barbershop.models import Appointment, Barber


def test_valid_admin_token(app) -> None:
    with app.app_context():
        token = build_token({"user_id": 7, "role": "admin"})

    with app.test_request_context(headers={"Authorization": f"Bearer {token}"}):
        assert get_current_identity() == {"user_id": 7, "role": "admin", "barber_id": None}


def test_missing_or_malformed_header(app) -> None:
    with app.test_request_context():
        assert get_current_identity() is None
    with app.test_request_context(headers={"Authorization": "Token abc"}):
        assert get_current_identity() is None
    with app.test_request_context(headers={"Authorization": "Bearer not-a-token"}):
        assert get_current_identity() is None


def test_token_signed_with_another_key_is_rejected(app) -> None:
    forged = URLSafeTimedSerializer("other-secret", salt="auth-token").dumps({"user_id": 1, "role": "admin"})

    with app.test_request_context(headers={"Authorization": f"Bearer {forged}"}):
        assert get_current_identity() is None


def test_unknown_role_and_barber_without_id_are_rejected(app) -> None:
    with app.app_context():
        client_token = build_token({"user_id": 1, "role": "client"})
        barber_token = build_token({"user_id": 1, "role": "barber"})

    for token in (client_token, barber_token):
        with app.test_request_context(headers={"Authorization": f"Bearer {token}"}):
            assert get_current_identity() is None


def test_expired_token_is_rejected(app) -> None:
    with app.app_context():
        token = build_token({"user_id": 1, "role": "admin"})
    app.config["AUTH_TOKEN_MAX_AGE"] = -1

    with app.test_request_context(headers={"Authorization": f"Bearer {token}"}):
        assert get_current_identity() is None


def test_without_secret_key_every_token_fails() -> None:
    app = Flask(__name__)
    app.config.update(SECRET_KEY=None, AUTH_TOKEN_MAX_AGE=60)
    forged = URLSafeTimedSerializer("guess", salt="auth-token").dumps({"user_id": 1, "role": "admin"})

    with app.test_request_context(headers={"Authorization": f"Bearer {forged}"}):
        assert get_current_identity() is None


def test_admin_route_rejects_anonymous_and_barbers(client, anonymous_client, shop, auth_headers) -> None:
    url = f"/barbers/{shop['barber_id']}"

    anonymous = anonymous_client.delete(url)
    barber = client.delete(url, headers=auth_headers("barber", barber_id=shop["barber_id"]))

    assert anonymous.status_code == 401
    assert anonymous.get_json() == {"error": "unauthorized", "message": "Invalid or missing token"}
    assert barber.status_code == 403
    assert barber.get_json()["error"] == "forbidden"


@pytest.mark.parametrize("method, url", [
    ("get", "/appointments"),
    ("get", "/appointments/1"),
    ("post", "/appointments"),
    ("post", "/appointments/conflicts"),
    ("put", "/appointments/1/status"),
    ("post", "/appointments/complete-day"),
    ("delete", "/appointments/1"),
    ("get", "/schedule-blocks"),
    ("delete", "/schedule-blocks/1"),
    ("get", "/sales"),
    ("get", "/sales/1"),
    ("post", "/sales"),
    ("get", "/clients"),
    ("post", "/services"),
    ("get", "/products"),
])
def test_every_data_route_requires_a_token(anonymous_client, method, url) -> None:
    response = getattr(anonymous_client, method)(url, json={})

    assert response.status_code == 401
    assert response.get_json()["error"] == "unauthorized"


def test_anonymous_caller_cannot_delete_or_read_appointments(app, anonymous_client, shop) -> None:
    with app.app_context():
        appointment = Appointment(
            client_id=shop["client_id"],
            barber_id=shop["barber_id"],
            appointment_datetime=datetime(2025, 1, 6, 14, 0),
            total_price_cents=3000,
        )
        db.session.add(appointment)
        db.session.commit()
        appointment_id = appointment.appointment_id

    assert anonymous_client.delete(f"/appointments/{appointment_id}").status_code == 401
    with app.app_context():
        assert db.session.get(Appointment, appointment_id) is not None


def test_barber_token_sees_fewer_sales_than_admin(app, client, shop, auth_headers) -> None:
    with app.app_context():
        other = Barber(name="Otto")
        db.session.add(other)
        db.session.commit()
        other_id = other.barber_id
    for barber_id in (shop["barber_id"], other_id):
        client.post("/sales", json={
            "barber_id": barber_id,
            "items": [{"product_id": shop["pomade_id"], "quantity": 1}],
        })

    admin = client.get("/sales").get_json()
    barber = client.get("/sales", headers=auth_headers("barber", barber_id=shop["barber_id"])).get_json()

    assert admin["pagination"]["total"] == 2
    assert barber["pagination"]["total"] == 1
    assert barber["sales"][0]["barber_id"] == shop["barber_id"]
