"""Shop-wide sales, appointment, client and financial reports.

Revenue and commission follow the same rules as the per-barber report:
appointments earn their settled amount (or total price), commissions use the
captured price and rate of each line.
"""
from __future__ import annotations

from collections import defaultdict
from datetime import datetime, timedelta
from decimal import Decimal

from sqlalchemy.orm import selectinload

from .commissions import average_value, money_value
from .models import (Appointment, AppointmentService, Client, Expense, Sale,
                     SaleProduct)
from .money import commission_cents

ZERO = Decimal("0")


def _ranked(stats: dict, key: str, limit: int | None = None) -> list[dict]:
    rows = sorted(stats.values(), key=lambda row: row[key], reverse=True)
    return rows[:limit] if limit else rows


def _with_money(row: dict, *fields: str) -> dict:
    return {**row, **{field: money_value(row[field]) for field in fields}}


def sales_report(sales, top_limit: int = 10) -> dict[str, object]:
    revenue = ZERO
    products: dict[int, dict] = {}
    by_day: dict[str, dict] = defaultdict(lambda: {"sales": 0, "revenue": ZERO})
    by_barber: dict[int, dict] = {}

    for sale in sales:
        revenue += sale.total_amount_cents
        day = by_day[sale.sale_datetime.date().isoformat()]
        day["sales"] += 1
        day["revenue"] += sale.total_amount_cents

        barber = by_barber.setdefault(sale.barber_id, {
            "barber_id": sale.barber_id,
            "name": sale.barber.name if sale.barber else None,
            "sales": 0,
            "revenue": ZERO,
            "commission": ZERO,
        })
        barber["sales"] += 1
        barber["revenue"] += sale.total_amount_cents

        for line in sale.items:
            barber["commission"] += commission_cents(line.subtotal_cents, line.commission_rate_applied)
            product = products.setdefault(line.product_id, {
                "product_id": line.product_id,
                "name": line.product.name if line.product else None,
                "quantity": 0,
                "revenue": ZERO,
            })
            product["quantity"] += line.quantity
            product["revenue"] += line.subtotal_cents

    return {
        "total_sales": len(sales),
        "total_revenue": money_value(revenue),
        "average_ticket": average_value(revenue, len(sales)),
        "top_products": [_with_money(p, "revenue") for p in _ranked(products, "revenue", top_limit)],
        "by_day": [
            {"date": key, "sales": value["sales"], "revenue": money_value(value["revenue"])}
            for key, value in sorted(by_day.items())
        ],
        "by_barber": [_with_money(b, "revenue", "commission") for b in _ranked(by_barber, "revenue")],
    }


def appointments_report(appointments, top_limit: int = 10) -> dict[str, object]:
    """Status counts cover every appointment; revenue and commission only completed ones."""
    status_counts = {"scheduled": 0, "completed": 0, "cancelled": 0, "no_show": 0}
    revenue = ZERO
    services: dict[int, dict] = {}
    by_day: dict[str, dict] = defaultdict(lambda: {"appointments": 0, "revenue": ZERO})
    by_barber: dict[int, dict] = {}

    for appointment in appointments:
        status_counts[appointment.status] = status_counts.get(appointment.status, 0) + 1
        day = by_day[appointment.appointment_datetime.date().isoformat()]
        day["appointments"] += 1
        barber = by_barber.setdefault(appointment.barber_id, {
            "barber_id": appointment.barber_id,
            "name": appointment.barber.name if appointment.barber else None,
            "appointments": 0,
            "revenue": ZERO,
            "commission": ZERO,
        })
        barber["appointments"] += 1
        if appointment.status != "completed":
            continue

        earned = appointment.revenue_cents
        revenue += earned
        day["revenue"] += earned
        barber["revenue"] += earned
        for line in appointment.services:
            barber["commission"] += commission_cents(line.price_at_booking_cents, line.commission_rate_applied)
            service = services.setdefault(line.service_id, {
                "service_id": line.service_id,
                "name": line.service.name if line.service else None,
                "count": 0,
                "revenue": ZERO,
            })
            service["count"] += 1
            service["revenue"] += line.price_at_booking_cents

    return {
        "total_appointments": len(appointments),
        "status_counts": status_counts,
        "total_revenue": money_value(revenue),
        "average_ticket": average_value(revenue, status_counts["completed"]),
        "top_services": [_with_money(s, "revenue") for s in _ranked(services, "revenue", top_limit)],
        "by_day": [
            {"date": key, "appointments": value["appointments"], "revenue": money_value(value["revenue"])}
            for key, value in sorted(by_day.items())
        ],
        "by_barber": [_with_money(b, "revenue", "commission") for b in _ranked(by_barber, "revenue")],
    }


def clients_report(total_clients: int, new_client_ids, appointments, top_limit: int = 10) -> dict[str, object]:
    """Active clients are those with a completed appointment in the period."""
    new_client_ids = set(new_client_ids)
    stats: dict[int, dict] = {}
    for appointment in appointments:
        if appointment.status != "completed":
            continue
        row = stats.setdefault(appointment.client_id, {
            "client_id": appointment.client_id,
            "name": appointment.client.name if appointment.client else None,
            "total_spent": ZERO,
            "appointments": 0,
            "last_visit": appointment.appointment_datetime,
        })
        row["total_spent"] += appointment.revenue_cents
        row["appointments"] += 1
        row["last_visit"] = max(row["last_visit"], appointment.appointment_datetime)

    returning = sum(1 for client_id in stats if client_id not in new_client_ids)
    return {
        "total_clients": total_clients,
        "new_clients": len(new_client_ids),
        "active_clients": len(stats),
        "top_clients": [
            {**_with_money(row, "total_spent"), "last_visit": row["last_visit"].isoformat()}
            for row in _ranked(stats, "total_spent", top_limit)
        ],
        "retention": {"returning": returning, "new": len(new_client_ids)},
    }


def financial_report(sales_part: dict, appointments_part: dict, expenses) -> dict[str, object]:
    """Combine revenue, commissions and expenses into the shop's net result."""
    sales_revenue = sales_part["total_revenue"]["cents"]
    services_revenue = appointments_part["total_revenue"]["cents"]
    total_expenses = sum(expense.amount_cents for expense in expenses)

    commissions: dict[int, dict] = {}
    for row in sales_part["by_barber"]:
        entry = commissions.setdefault(row["barber_id"], {
            "barber_id": row["barber_id"], "name": row["name"], "service_commission": 0, "product_commission": 0,
        })
        entry["product_commission"] += row["commission"]["cents"]
    for row in appointments_part["by_barber"]:
        entry = commissions.setdefault(row["barber_id"], {
            "barber_id": row["barber_id"], "name": row["name"], "service_commission": 0, "product_commission": 0,
        })
        entry["service_commission"] += row["commission"]["cents"]
    for entry in commissions.values():
        entry["total_commission"] = entry["service_commission"] + entry["product_commission"]
    total_commissions = sum(entry["total_commission"] for entry in commissions.values())

    revenue_by_day: dict[str, dict] = defaultdict(lambda: {"sales": 0, "services": 0})
    for row in sales_part["by_day"]:
        revenue_by_day[row["date"]]["sales"] += row["revenue"]["cents"]
    for row in appointments_part["by_day"]:
        revenue_by_day[row["date"]]["services"] += row["revenue"]["cents"]

    by_category: dict[str, dict] = {}
    by_expense_day: dict[str, int] = defaultdict(int)
    for expense in expenses:
        category = by_category.setdefault(expense.category, {"category": expense.category, "total": 0, "count": 0})
        category["total"] += expense.amount_cents
        category["count"] += 1
        by_expense_day[expense.expense_date.isoformat()] += expense.amount_cents

    return {
        "total_revenue": money_value(sales_revenue + services_revenue),
        "sales_revenue": money_value(sales_revenue),
        "services_revenue": money_value(services_revenue),
        "total_commissions": money_value(total_commissions),
        "total_expenses": money_value(total_expenses),
        "net_revenue": money_value(sales_revenue + services_revenue - total_commissions - total_expenses),
        "revenue_by_day": [
            {
                "date": key,
                "sales": money_value(value["sales"]),
                "services": money_value(value["services"]),
                "total": money_value(value["sales"] + value["services"]),
            }
            for key, value in sorted(revenue_by_day.items())
        ],
        "commissions_by_barber": [
            _with_money(entry, "service_commission", "product_commission", "total_commission")
            for entry in _ranked(commissions, "total_commission")
        ],
        "expenses_by_category": [_with_money(row, "total") for row in _ranked(by_category, "total")],
        "expenses_by_day": [
            {"date": key, "total": money_value(value)} for key, value in sorted(by_expense_day.items())
        ],
    }


def shop_report(
    start: datetime,
    end: datetime,
    barber_id: int | None = None,
    include_financial: bool = True,
    top_limit: int = 10,
) -> dict[str, object]:
    """Load sales, appointments, clients and expenses in ``[start, end)`` and build every report.

    With ``barber_id`` the sales, appointments and active clients are limited to
    that barber. The financial section needs shop-wide data and is left out then.
    """
    sales_query = Sale.query.options(
        selectinload(Sale.items).selectinload(SaleProduct.product),
        selectinload(Sale.barber),
    ).filter(Sale.sale_datetime >= start, Sale.sale_datetime < end)
    appointments_query = Appointment.query.options(
        selectinload(Appointment.services).selectinload(AppointmentService.service),
        selectinload(Appointment.barber),
        selectinload(Appointment.client),
    ).filter(Appointment.appointment_datetime >= start, Appointment.appointment_datetime < end)
    if barber_id is not None:
        sales_query = sales_query.filter(Sale.barber_id == barber_id)
        appointments_query = appointments_query.filter(Appointment.barber_id == barber_id)

    sales = sales_query.order_by(Sale.sale_datetime).all()
    appointments = appointments_query.order_by(Appointment.appointment_datetime).all()
    new_client_ids = [
        row.client_id
        for row in Client.query.with_entities(Client.client_id)
        .filter(Client.created_at >= start, Client.created_at < end)
        .all()
    ]

    report = {
        "period": {"start": start.isoformat(), "end": end.isoformat()},
        "sales": sales_report(sales, top_limit),
        "appointments": appointments_report(appointments, top_limit),
        "clients": clients_report(Client.query.count(), new_client_ids, appointments, top_limit),
    }
    if include_financial and barber_id is None:
        last_day = (end - timedelta(microseconds=1)).date()
        expenses = (
            Expense.query.filter(Expense.expense_date >= start.date(), Expense.expense_date <= last_day)
            .order_by(Expense.expense_date)
            .all()
        )
        report["financial"] = financial_report(report["sales"], report["appointments"], expenses)
    return report


def client_history(client: Client, barber_id: int | None = None) -> dict[str, object]:
    """A client's appointments, newest first, with spending totals over completed ones."""
    query = Appointment.query.options(
        selectinload(Appointment.services).selectinload(AppointmentService.service),
        selectinload(Appointment.barber),
    ).filter(Appointment.client_id == client.client_id)
    if barber_id is not None:
        query = query.filter(Appointment.barber_id == barber_id)
    appointments = query.order_by(Appointment.appointment_datetime.desc()).all()

    completed = [a for a in appointments if a.status == "completed"]
    spent = sum(a.revenue_cents for a in completed)
    return {
        "client": client.to_dict(),
        "appointments": [a.to_dict() for a in appointments],
        "stats": {
            "total_appointments": len(appointments),
            "completed_appointments": len(completed),
            "cancelled_appointments": sum(1 for a in appointments if a.status == "cancelled"),
            "no_show_appointments": sum(1 for a in appointments if a.status == "no_show"),
            "total_spent": money_value(spent),
            "average_ticket": average_value(spent, len(completed)),
            "last_visit": completed[0].appointment_datetime.isoformat() if completed else None,
        },
    }
