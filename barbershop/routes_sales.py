"""Point-of-sale routes: product sales, manual price edits and deletion."""
from __future__ import annotations

from flask import Blueprint, current_app, g, jsonify, request
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import selectinload

from . import sales
from .auth import barber_scope, require_role
from .errors import BarbershopError, NotFoundError, ValidationError
from .extensions import db
from .models import Sale, SaleProduct
from .money import to_cents
from .parsing import (json_payload, pagination_args, pagination_meta, parse_datetime,
                      parse_int)
from .routes import store_failure

bp_sales = Blueprint("sales", __name__)


def _get_sale(sale_id: int) -> Sale:
    sale = db.session.get(Sale, sale_id)
    scope = barber_scope()
    if sale is None or (scope is not None and sale.barber_id != scope):
        raise NotFoundError("Sale not found")
    return sale


@bp_sales.get("/sales")
@require_role("admin", "barber")
def list_sales() -> tuple[dict[str, object], int]:
    """List sales, newest first.
    ---
    tags:
      - Sales
    parameters:
      - name: barber_id
        in: query
        type: integer
      - name: start
        in: query
        type: string
      - name: end
        in: query
        type: string
      - name: page
        in: query
        type: integer
        default: 1
      - name: limit
        in: query
        type: integer
        default: 10
    responses:
      200:
        description: Sales with pagination metadata
    """
    try:
        page, limit = pagination_args()
        query = Sale.query.options(
            selectinload(Sale.items).selectinload(SaleProduct.product),
            selectinload(Sale.client),
            selectinload(Sale.barber),
        )

        scope = barber_scope()
        if scope is not None:
            query = query.filter(Sale.barber_id == scope)
        elif request.args.get("barber_id"):
            query = query.filter(Sale.barber_id == parse_int(request.args["barber_id"], "barber_id"))
        if request.args.get("start"):
            query = query.filter(Sale.sale_datetime >= parse_datetime(request.args["start"], "start"))
        if request.args.get("end"):
            query = query.filter(Sale.sale_datetime < parse_datetime(request.args["end"], "end"))

        total = query.order_by(None).count()
        rows = (
            query.order_by(Sale.sale_datetime.desc(), Sale.sale_id.desc())
            .limit(limit)
            .offset((page - 1) * limit)
            .all()
        )
        return jsonify({
            "sales": [sale.to_dict() for sale in rows],
            "pagination": pagination_meta(page, limit, total),
        }), 200
    except BarbershopError as exc:
        return exc.to_response()
    except SQLAlchemyError as exc:
        return store_failure(exc, "fetch sales")


@bp_sales.get("/sales/<int:sale_id>")
@require_role("admin", "barber")
def get_sale(sale_id: int) -> tuple[dict[str, object], int]:
    try:
        return jsonify({"sale": _get_sale(sale_id).to_dict()}), 200
    except BarbershopError as exc:
        return exc.to_response()


@bp_sales.post("/sales")
@require_role("admin", "barber")
def create_sale() -> tuple[dict[str, object], int]:
    """Sell products; stock is checked and decremented in the same transaction.
    ---
    tags:
      - Sales
    parameters:
      - name: body
        in: body
        required: true
        schema:
          type: object
          required: [barber_id, items]
          properties:
            barber_id:
              type: integer
            client_id:
              type: integer
            payment_method:
              type: string
              enum: [money, pix, credit_card, debit_card]
            items:
              type: array
              items:
                type: object
                properties:
                  product_id:
                    type: integer
                  quantity:
                    type: integer
    responses:
      201:
        description: Sale created
      400:
        description: Empty cart, bad quantity or insufficient stock
      404:
        description: Barber, client or product not found
    """
    try:
        payload = json_payload()
        items = payload.get("items")
        if not isinstance(items, list):
            raise ValidationError("items must be a list")
        cart = []
        for item in items:
            if not isinstance(item, dict):
                raise ValidationError("each item needs product_id and quantity")
            cart.append((
                parse_int(item.get("product_id"), "product_id"),
                parse_int(item.get("quantity"), "quantity"),
            ))

        barber_id = parse_int(payload.get("barber_id"), "barber_id")
        scope = barber_scope()
        if scope is not None and barber_id != scope:
            raise ValidationError("barber tokens can only record their own sales")

        client_id = payload.get("client_id")
        sale = sales.create_sale(
            barber_id,
            cart,
            client_id=parse_int(client_id, "client_id") if client_id not in (None, "") else None,
            payment_method=payload.get("payment_method"),
            sale_datetime=(
                parse_datetime(payload["sale_datetime"], "sale_datetime")
                if payload.get("sale_datetime") else None
            ),
        )
        current_app.logger.info("Sale %s recorded for barber %s", sale.sale_id, barber_id)
        return jsonify({"sale": sale.to_dict()}), 201
    except BarbershopError as exc:
        return exc.to_response()
    except SQLAlchemyError as exc:
        return store_failure(exc, "create sale")


@bp_sales.put("/sales/<int:sale_id>/items")
@require_role("admin")
def edit_sale_items(sale_id: int) -> tuple[dict[str, object], int]:
    """Override product subtotals of a sale (admin only).
    ---
    tags:
      - Sales
    parameters:
      - name: body
        in: body
        required: true
        schema:
          type: object
          properties:
            items:
              type: array
              items:
                type: object
                properties:
                  product_id:
                    type: integer
                  subtotal:
                    type: number
    responses:
      200:
        description: Unit prices and total recomputed
      400:
        description: Non-positive subtotal or product not in the sale
      404:
        description: Sale not found
    """
    try:
        sale = _get_sale(sale_id)
        items = json_payload().get("items")
        if not isinstance(items, list):
            raise ValidationError("items must be a list")
        updates: dict[int, int] = {}
        for item in items:
            if not isinstance(item, dict):
                raise ValidationError("each item needs product_id and subtotal")
            updates[parse_int(item.get("product_id"), "product_id")] = to_cents(item.get("subtotal"), "subtotal")

        sales.edit_sale_subtotals(sale, updates)
        current_app.logger.info("Sale %s edited by user %s", sale_id, g.identity.get("user_id"))
        return jsonify({"sale": sale.to_dict()}), 200
    except BarbershopError as exc:
        return exc.to_response()
    except SQLAlchemyError as exc:
        return store_failure(exc, "edit sale items")


@bp_sales.put("/sales/<int:sale_id>/amount")
@require_role("admin")
def override_sale_amount(sale_id: int) -> tuple[dict[str, object], int]:
    """Set a sale's total directly (admin only).
    ---
    tags:
      - Sales
    responses:
      200:
        description: Total updated
      400:
        description: Amount not greater than zero
      404:
        description: Sale not found
    """
    try:
        sale = _get_sale(sale_id)
        amount_cents = to_cents(json_payload().get("amount"), "amount")
        sales.override_sale_total(sale, amount_cents)
        current_app.logger.info("Sale %s total set to %d cents", sale_id, amount_cents)
        return jsonify({"sale": sale.to_dict()}), 200
    except BarbershopError as exc:
        return exc.to_response()
    except SQLAlchemyError as exc:
        return store_failure(exc, "override sale amount")


@bp_sales.delete("/sales/<int:sale_id>")
@require_role("admin")
def delete_sale(sale_id: int) -> tuple[dict[str, str], int]:
    """Delete a sale and its items, returning products to stock (admin only).
    ---
    tags:
      - Sales
    parameters:
      - name: restore_stock
        in: query
        type: boolean
        default: true
    responses:
      200:
        description: Sale deleted
      404:
        description: Sale not found
    """
    try:
        sale = _get_sale(sale_id)
        restore = request.args.get("restore_stock", "true").lower() != "false"
        sales.delete_sale(sale, restore_stock=restore)
        current_app.logger.info("Sale %s deleted by user %s", sale_id, g.identity.get("user_id"))
        return jsonify({"message": "Sale deleted successfully"}), 200
    except BarbershopError as exc:
        return exc.to_response()
    except SQLAlchemyError as exc:
        return store_failure(exc, "delete sale")
