"""Tests for product sales, subtotal edits, total overrides and deletion."""
from __future__ import annotations

import pytest

from barbershop.errors import ValidationError
from barbershop.extensions import db
from barbershop.models import Product, Sale, SaleProduct
from barbershop.sales import create_sale, edit_sale_subtotals


def _sell(client, shop, items, **extra):
    payload = {"barber_id": shop["barber_id"], "items": items}
    payload.update(extra)
    return client.post("/sales", json=payload)


@pytest.fixture
def two_line_sale(app, shop) -> int:
    """P1 (pomade) qty 2 at 10.00 and P2 (shampoo) qty 1 at 5.00."""
    with app.app_context():
        sale = create_sale(shop["barber_id"], [(shop["pomade_id"], 2), (shop["shampoo_id"], 1)])
        return sale.sale_id


def test_create_sale_captures_prices_and_decrements_stock(app, client, shop) -> None:
    response = _sell(client, shop, [{"product_id": shop["pomade_id"], "quantity": 3}],
                     client_id=shop["client_id"], payment_method="debit_card")

    assert response.status_code == 201
    sale = response.get_json()["sale"]
    assert sale["total_amount_cents"] == 3000
    assert sale["products"][0]["price_at_sale_cents"] == 1000
    assert sale["products"][0]["commission_rate_applied"] == 0.1
    with app.app_context():
        assert db.session.get(Product, shop["pomade_id"]).stock_quantity == 7


def test_insufficient_stock_writes_nothing(app, client, shop) -> None:
    response = _sell(client, shop, [
        {"product_id": shop["pomade_id"], "quantity": 1},
        {"product_id": shop["shampoo_id"], "quantity": 6},
    ])

    assert response.status_code == 400
    assert response.get_json()["message"] == "Insufficient stock for Shampoo"
    with app.app_context():
        assert Sale.query.count() == 0
        assert db.session.get(Product, shop["pomade_id"]).stock_quantity == 10


def test_duplicate_cart_lines_are_merged_for_stock_check(client, shop) -> None:
    response = _sell(client, shop, [
        {"product_id": shop["shampoo_id"], "quantity": 3},
        {"product_id": shop["shampoo_id"], "quantity": 3},
    ])

    assert response.status_code == 400


@pytest.mark.parametrize(
    "items",
    [[], [{"product_id": 1, "quantity": 0}], [{"product_id": 1, "quantity": "two"}], "pomade"],
)
def test_invalid_carts_are_rejected(client, shop, items) -> None:
    response = _sell(client, shop, items)

    assert response.status_code == 400
    assert response.get_json()["error"] == "invalid_payload"


def test_unknown_product_is_not_found(client, shop) -> None:
    response = _sell(client, shop, [{"product_id": 999, "quantity": 1}])

    assert response.status_code == 404
    assert response.get_json()["product_ids"] == [999]


def test_edit_subtotal_recomputes_unit_price_and_total(app, client, shop, two_line_sale, auth_headers) -> None:
    response = client.put(
        f"/sales/{two_line_sale}/items",
        json={"items": [{"product_id": shop["pomade_id"], "subtotal": 15}]},
        headers=auth_headers("admin"),
    )

    assert response.status_code == 200
    sale = response.get_json()["sale"]
    lines = {line["product_id"]: line for line in sale["products"]}
    assert lines[shop["pomade_id"]]["price_at_sale_cents"] == 750
    assert lines[shop["pomade_id"]]["quantity"] == 2
    assert lines[shop["shampoo_id"]]["price_at_sale_cents"] == 500
    assert sale["total_amount_cents"] == 2000


def test_edit_subtotal_rounds_half_up(app, shop) -> None:
    with app.app_context():
        sale = create_sale(shop["barber_id"], [(shop["shampoo_id"], 3)])
        edit_sale_subtotals(sale, {shop["shampoo_id"]: 1001})  # 333.67 cents per unit

        line = SaleProduct.query.filter_by(sale_id=sale.sale_id).one()
        assert line.price_at_sale_cents == 334
        assert sale.total_amount_cents == 1001


@pytest.mark.parametrize("subtotal", [0, -5])
def test_edit_rejects_non_positive_subtotal(app, shop, two_line_sale, subtotal) -> None:
    with app.app_context():
        sale = db.session.get(Sale, two_line_sale)
        with pytest.raises(ValidationError):
            edit_sale_subtotals(sale, {shop["pomade_id"]: subtotal})
        db.session.rollback()
        assert db.session.get(Sale, two_line_sale).total_amount_cents == 2500


def test_edit_rejects_product_outside_the_sale(client, two_line_sale, auth_headers) -> None:
    response = client.put(
        f"/sales/{two_line_sale}/items",
        json={"items": [{"product_id": 999, "subtotal": 10}]},
        headers=auth_headers("admin"),
    )

    assert response.status_code == 400
    assert response.get_json()["product_ids"] == [999]


def test_sale_edits_require_admin(client, anonymous_client, shop, two_line_sale, auth_headers) -> None:
    body = {"items": [{"product_id": shop["pomade_id"], "subtotal": 15}]}

    assert anonymous_client.put(f"/sales/{two_line_sale}/items", json=body).status_code == 401
    response = client.put(f"/sales/{two_line_sale}/amount", json={"amount": 10},
                          headers=auth_headers("barber", barber_id=shop["barber_id"]))
    assert response.status_code == 403


def test_override_total(client, two_line_sale, auth_headers) -> None:
    ok = client.put(f"/sales/{two_line_sale}/amount", json={"amount": "22.90"}, headers=auth_headers("admin"))
    zero = client.put(f"/sales/{two_line_sale}/amount", json={"amount": 0}, headers=auth_headers("admin"))

    assert ok.status_code == 200
    assert ok.get_json()["sale"]["total_amount_cents"] == 2290
    assert zero.status_code == 400


def test_delete_sale_restores_stock(app, client, shop, two_line_sale, auth_headers) -> None:
    response = client.delete(f"/sales/{two_line_sale}", headers=auth_headers("admin"))

    assert response.status_code == 200
    with app.app_context():
        assert db.session.get(Sale, two_line_sale) is None
        assert SaleProduct.query.count() == 0
        assert db.session.get(Product, shop["pomade_id"]).stock_quantity == 10
        assert db.session.get(Product, shop["shampoo_id"]).stock_quantity == 5


def test_list_and_get_sales(client, shop, two_line_sale) -> None:
    listing = client.get("/sales")
    single = client.get(f"/sales/{two_line_sale}")
    missing = client.get("/sales/999")

    assert listing.status_code == 200
    assert listing.get_json()["pagination"]["total"] == 1
    assert single.get_json()["sale"]["id"] == two_line_sale
    assert missing.status_code == 404
