"""Per-barber commission and revenue aggregation.

Commissions are always computed from the price, rate and chemical flag
captured on each booked service or sold product, never from the current
barber or service, so later edits do not change historical commissions.
"""
from __future__ import annotations

from collections import defaultdict
from datetime import datetime
from decimal import Decimal

from sqlalchemy.orm import selectinload

from .models import Appointment, AppointmentService, Sale, SaleProduct, cents_to_dollars
from .money import commission_cents, round_cents

ZERO = Decimal("0")


def money_value(cents: Decimal | int) -> dict[str, object]:
    rounded = round_cents(Decimal(cents))
    return {"cents": rounded, "dollars": cents_to_dollars(rounded)}


def average_value(total: Decimal | int, count: int) -> dict[str, object]:
    return money_value(Decimal(total) / count if count else ZERO)


def aggregate(appointments, sales) -> dict[str, object]:
    """Aggregate completed appointments and sales into commission totals.

    Appointments without booked services add no commission but their
    settled amount (or total price) still counts as revenue.
    """
    service_count = chemical_count = product_count = 0
    service_revenue = chemical_revenue = product_revenue = ZERO
    service_commission = chemical_commission = product_commission = ZERO
    appointment_revenue = sale_revenue = ZERO

    service_details: dict[tuple[int, bool], dict] = {}
    product_details: dict[int, dict] = {}
    daily: dict[str, dict] = defaultdict(
        lambda: {"commission": ZERO, "revenue": ZERO, "appointments": 0, "sales": 0}
    )
    payment_methods: dict[str, dict] = defaultdict(
        lambda: {"count": 0, "revenue": ZERO, "commission": ZERO}
    )
    transactions = []

    for appointment in appointments:
        day = daily[appointment.appointment_datetime.date().isoformat()]
        appointment_commission = ZERO
        items = []
        for line in appointment.services:
            commission = commission_cents(line.price_at_booking_cents, line.commission_rate_applied)
            appointment_commission += commission
            is_chemical = bool(line.is_chemical_at_booking)
            if is_chemical:
                chemical_count += 1
                chemical_revenue += line.price_at_booking_cents
                chemical_commission += commission
            else:
                service_count += 1
                service_revenue += line.price_at_booking_cents
                service_commission += commission

            detail = service_details.setdefault(
                (line.service_id, is_chemical),
                {
                    "service_id": line.service_id,
                    "name": line.service.name if line.service else None,
                    "is_chemical": is_chemical,
                    "count": 0,
                    "revenue": ZERO,
                    "commission": ZERO,
                },
            )
            detail["count"] += 1
            detail["revenue"] += line.price_at_booking_cents
            detail["commission"] += commission
            items.append(detail["name"])

        revenue = appointment.revenue_cents
        appointment_revenue += revenue
        day["commission"] += appointment_commission
        day["revenue"] += revenue
        day["appointments"] += 1
        method = payment_methods[appointment.payment_method or "unknown"]
        method["count"] += 1
        method["revenue"] += revenue
        method["commission"] += appointment_commission
        transactions.append(
            {
                "type": "appointment",
                "id": appointment.appointment_id,
                "datetime": appointment.appointment_datetime,
                "client": appointment.client.name if appointment.client else None,
                "items": items,
                "total": revenue,
                "commission": appointment_commission,
            }
        )

    for sale in sales:
        day = daily[sale.sale_datetime.date().isoformat()]
        sale_commission = ZERO
        items = []
        for line in sale.items:
            commission = commission_cents(line.subtotal_cents, line.commission_rate_applied)
            sale_commission += commission
            product_count += line.quantity
            product_revenue += line.subtotal_cents
            product_commission += commission

            detail = product_details.setdefault(
                line.product_id,
                {
                    "product_id": line.product_id,
                    "name": line.product.name if line.product else None,
                    "quantity": 0,
                    "revenue": ZERO,
                    "commission": ZERO,
                },
            )
            detail["quantity"] += line.quantity
            detail["revenue"] += line.subtotal_cents
            detail["commission"] += commission
            items.append(f"{line.quantity}x {detail['name']}")

        sale_revenue += sale.total_amount_cents
        day["commission"] += sale_commission
        day["revenue"] += sale.total_amount_cents
        day["sales"] += 1
        method = payment_methods[sale.payment_method or "unknown"]
        method["count"] += 1
        method["revenue"] += sale.total_amount_cents
        method["commission"] += sale_commission
        transactions.append(
            {
                "type": "sale",
                "id": sale.sale_id,
                "datetime": sale.sale_datetime,
                "client": sale.client.name if sale.client else None,
                "items": items,
                "total": sale.total_amount_cents,
                "commission": sale_commission,
            }
        )

    total_revenue = appointment_revenue + sale_revenue
    appointments_count = sum(1 for t in transactions if t["type"] == "appointment")
    sales_count = len(transactions) - appointments_count
    transactions.sort(key=lambda t: (t["datetime"], t["type"], t["id"]))

    return {
        "summary": {
            "service_count": service_count,
            "chemical_service_count": chemical_count,
            "product_count": product_count,
            "appointments_count": appointments_count,
            "sales_count": sales_count,
            "service_revenue": money_value(service_revenue),
            "chemical_service_revenue": money_value(chemical_revenue),
            "product_revenue": money_value(product_revenue),
            "appointment_revenue": money_value(appointment_revenue),
            "sale_revenue": money_value(sale_revenue),
            "total_revenue": money_value(total_revenue),
            "service_commission": money_value(service_commission),
            "chemical_service_commission": money_value(chemical_commission),
            "product_commission": money_value(product_commission),
            "total_commission": money_value(service_commission + chemical_commission + product_commission),
            "average_service_ticket": average_value(service_revenue + chemical_revenue, appointments_count),
            "average_product_ticket": average_value(product_revenue, sales_count),
        },
        "service_details": [
            {**detail, "revenue": money_value(detail["revenue"]), "commission": money_value(detail["commission"])}
            for detail in sorted(service_details.values(), key=lambda d: d["commission"], reverse=True)
        ],
        "product_details": [
            {**detail, "revenue": money_value(detail["revenue"]), "commission": money_value(detail["commission"])}
            for detail in sorted(product_details.values(), key=lambda d: d["commission"], reverse=True)
        ],
        "daily": [
            {
                "date": key,
                "appointments": value["appointments"],
                "sales": value["sales"],
                "revenue": money_value(value["revenue"]),
                "commission": money_value(value["commission"]),
            }
            for key, value in sorted(daily.items())
        ],
        "payment_methods": [
            {
                "payment_method": key,
                "count": value["count"],
                "revenue": money_value(value["revenue"]),
                "commission": money_value(value["commission"]),
                "percentage": round(float(value["revenue"] / total_revenue * 100), 2) if total_revenue else 0.0,
            }
            for key, value in sorted(payment_methods.items())
        ],
        "transactions": [
            {
                **transaction,
                "datetime": transaction["datetime"].isoformat(),
                "total": money_value(transaction["total"]),
                "commission": money_value(transaction["commission"]),
            }
            for transaction in transactions
        ],
    }


def barber_report(barber_id: int, start: datetime, end: datetime) -> dict[str, object]:
    """Load a barber's completed appointments and sales in ``[start, end)`` and aggregate them."""
    appointments = (
        Appointment.query.options(
            selectinload(Appointment.services).selectinload(AppointmentService.service),
            selectinload(Appointment.client),
        )
        .filter(
            Appointment.barber_id == barber_id,
            Appointment.status == "completed",
            Appointment.appointment_datetime >= start,
            Appointment.appointment_datetime < end,
        )
        .order_by(Appointment.appointment_datetime)
        .all()
    )
    sales = (
        Sale.query.options(
            selectinload(Sale.items).selectinload(SaleProduct.product),
            selectinload(Sale.client),
        )
        .filter(
            Sale.barber_id == barber_id,
            Sale.sale_datetime >= start,
            Sale.sale_datetime < end,
        )
        .order_by(Sale.sale_datetime)
        .all()
    )
    report = aggregate(appointments, sales)
    report["period"] = {"start": start.isoformat(), "end": end.isoformat()}
    return report
