"""Point-of-sale transactions: creation with stock movement, edits and deletion."""
from __future__ import annotations

import logging
from datetime import datetime
from decimal import Decimal

from sqlalchemy.exc import SQLAlchemyError

from .errors import NotFoundError, ValidationError
from .extensions import db
from .models import PAYMENT_METHODS, Barber, Client, Product, Sale, SaleProduct
from .money import round_cents

logger = logging.getLogger(__name__)


def create_sale(
    barber_id: int,
    items,
    client_id: int | None = None,
    payment_method: str | None = None,
    sale_datetime: datetime | None = None,
) -> Sale:
    """Create a sale with its line items and stock decrements in one transaction.

    ``items`` is a list of ``(product_id, quantity)`` pairs. Unit prices and the
    barber's product commission rate are captured as they are now. Any store
    failure rolls back the sale, every line item and every stock change.
    """
    if not items:
        raise ValidationError("Cart is empty")
    if payment_method is not None and payment_method not in PAYMENT_METHODS:
        raise ValidationError(f"payment_method must be one of: {', '.join(PAYMENT_METHODS)}")

    barber = db.session.get(Barber, barber_id)
    if barber is None:
        raise NotFoundError("Barber not found")
    if client_id is not None and db.session.get(Client, client_id) is None:
        raise NotFoundError("Client not found")

    quantities: dict[int, int] = {}
    for product_id, quantity in items:
        if not isinstance(quantity, int) or isinstance(quantity, bool) or quantity <= 0:
            raise ValidationError("quantity must be a positive integer", product_id=product_id)
        quantities[product_id] = quantities.get(product_id, 0) + quantity

    products = Product.query.filter(Product.product_id.in_(list(quantities))).all()
    by_id = {product.product_id: product for product in products}
    missing = [product_id for product_id in quantities if product_id not in by_id]
    if missing:
        raise NotFoundError("Product not found", product_ids=missing)
    for product_id, quantity in quantities.items():
        product = by_id[product_id]
        if quantity > product.stock_quantity:
            raise ValidationError(
                f"Insufficient stock for {product.name}",
                product_id=product_id,
                available=product.stock_quantity,
            )

    rate = Decimal(barber.commission_rate_product)
    sale = Sale(
        client_id=client_id,
        barber_id=barber_id,
        sale_datetime=sale_datetime or datetime.now(),
        total_amount_cents=sum(by_id[pid].price_cents * qty for pid, qty in quantities.items()),
        payment_method=payment_method,
    )
    try:
        for product_id, quantity in quantities.items():
            product = by_id[product_id]
            sale.items.append(
                SaleProduct(
                    product_id=product_id,
                    quantity=quantity,
                    price_at_sale_cents=product.price_cents,
                    commission_rate_applied=rate,
                )
            )
            product.stock_quantity = product.stock_quantity - quantity
        db.session.add(sale)
        db.session.commit()
    except SQLAlchemyError:
        db.session.rollback()
        raise
    return sale


def edit_sale_subtotals(sale: Sale, updates: dict[int, int]) -> Sale:
    """Override per-product subtotals (in cents), e.g. for a manual discount.

    Quantities are preserved and each unit price becomes
    ``round(subtotal / quantity, 2)``. The sale total is the sum of the given
    subtotals plus the unchanged subtotals of lines not being edited. The
    commission basis of edited lines changes with them.
    """
    if not updates:
        raise ValidationError("At least one product subtotal is required")

    lines = {line.product_id: line for line in sale.items}
    unknown = [product_id for product_id in updates if product_id not in lines]
    if unknown:
        raise ValidationError("Product is not part of this sale", product_ids=unknown)
    for product_id, subtotal in updates.items():
        if subtotal <= 0:
            raise ValidationError("subtotal must be greater than zero", product_id=product_id)

    total = 0
    for product_id, line in lines.items():
        if product_id in updates:
            subtotal = updates[product_id]
            line.price_at_sale_cents = round_cents(Decimal(subtotal) / line.quantity)
            total += subtotal
        else:
            total += line.subtotal_cents
    sale.total_amount_cents = total

    try:
        db.session.commit()
    except SQLAlchemyError:
        db.session.rollback()
        raise
    logger.info("Sale %s subtotals edited, new total %d cents", sale.sale_id, total)
    return sale


def override_sale_total(sale: Sale, amount_cents: int) -> Sale:
    if amount_cents <= 0:
        raise ValidationError("amount must be greater than zero")
    sale.total_amount_cents = amount_cents
    try:
        db.session.commit()
    except SQLAlchemyError:
        db.session.rollback()
        raise
    return sale


def delete_sale(sale: Sale, restore_stock: bool = True) -> None:
    """Delete line items then the sale in one transaction, optionally returning stock."""
    try:
        for line in list(sale.items):
            if restore_stock and line.product is not None:
                line.product.stock_quantity = line.product.stock_quantity + line.quantity
            db.session.delete(line)
        db.session.flush()
        db.session.delete(sale)
        db.session.commit()
    except SQLAlchemyError:
        db.session.rollback()
        raise
