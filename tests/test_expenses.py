"""Tests for the shop expense routes."""
from __future__ import annotations

from datetime import date

from barbershop.extensions import db
from barbershop.models import Expense


def _expense(client, **overrides):
    payload = {"description": "Electricity bill", "amount": "180.35", "category": "electricity",
               "expense_date": "2025-01-10"}
    payload.update(overrides)
    return client.post("/expenses", json=payload)


def test_create_expense(client) -> None:
    response = _expense(client, notes="  January  ")

    assert response.status_code == 201
    expense = response.get_json()["expense"]
    assert expense["amount_cents"] == 18035
    assert expense["category"] == "electricity"
    assert expense["expense_date"] == "2025-01-10"
    assert expense["notes"] == "January"


def test_expense_date_defaults_to_today(app, client) -> None:
    expense_id = _expense(client, expense_date=None).get_json()["expense"]["id"]

    with app.app_context():
        assert db.session.get(Expense, expense_id).expense_date == date.today()


def test_expense_validation(client) -> None:
    assert _expense(client, description=" ").status_code == 400
    assert _expense(client, amount=0).status_code == 400
    assert _expense(client, amount="abc").status_code == 400
    response = _expense(client, category="parties")

    assert response.status_code == 400
    assert "category must be one of" in response.get_json()["message"]


def test_list_filters_and_total(client) -> None:
    _expense(client)
    _expense(client, description="Rent", amount=1200, category="rent", expense_date="2025-01-01")
    _expense(client, description="Rent", amount=1200, category="rent", expense_date="2025-02-01")

    january = client.get("/expenses?start=2025-01-01&end=2025-01-31").get_json()
    rent = client.get("/expenses?category=rent").get_json()
    search = client.get("/expenses?search=electric").get_json()

    assert [e["expense_date"] for e in january["expenses"]] == ["2025-01-10", "2025-01-01"]
    assert january["total_amount_cents"] == 138035
    assert rent["pagination"]["total"] == 2
    assert [e["description"] for e in search["expenses"]] == ["Electricity bill"]


def test_update_and_delete_expense(client) -> None:
    expense_id = _expense(client).get_json()["expense"]["id"]

    updated = client.put(f"/expenses/{expense_id}", json={"amount": 190, "notes": ""})
    assert updated.status_code == 200
    assert updated.get_json()["expense"]["amount_cents"] == 19000
    assert updated.get_json()["expense"]["notes"] is None
    assert updated.get_json()["expense"]["category"] == "electricity"

    assert client.put(f"/expenses/{expense_id}", json={"amount": -5}).status_code == 400
    assert client.delete(f"/expenses/{expense_id}").status_code == 200
    assert client.get(f"/expenses/{expense_id}").status_code == 404


def test_expenses_are_admin_only(client, anonymous_client, auth_headers) -> None:
    barber = auth_headers("barber", barber_id=1)

    assert anonymous_client.get("/expenses").status_code == 401
    assert client.get("/expenses", headers=barber).status_code == 403
    assert _expense(client).status_code == 201
    assert client.post("/expenses", json={"description": "x", "amount": 1, "category": "other"},
                       headers=barber).status_code == 403
