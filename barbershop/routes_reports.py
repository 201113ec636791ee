"""Commission and revenue report routes."""
from __future__ import annotations

from datetime import date, datetime, time, timedelta

from flask import Blueprint, current_app, g, jsonify, request
from sqlalchemy.exc import SQLAlchemyError

from .auth import barber_scope, require_role
from .commissions import barber_report
from .errors import BarbershopError, NotFoundError, ValidationError
from .extensions import db
from .models import Barber
from .parsing import parse_datetime
from .reports import shop_report
from .routes import store_failure

bp_reports = Blueprint("reports", __name__)


def _report_period() -> tuple[datetime, datetime]:
    """Requested [start, end), defaulting to the current month up to the end of today."""
    today = date.today()
    start = datetime.combine(today.replace(day=1), time.min)
    end = datetime.combine(today + timedelta(days=1), time.min)
    if request.args.get("start"):
        start = parse_datetime(request.args["start"], "start")
    if request.args.get("end"):
        end = parse_datetime(request.args["end"], "end")
    if start >= end:
        raise ValidationError("start must be before end")
    return start, end


@bp_reports.get("/barbers/<int:barber_id>/commissions")
@require_role("admin", "barber")
def barber_commissions(barber_id: int) -> tuple[dict[str, object], int]:
    """Commission and revenue report for a barber over a period.
    ---
    tags:
      - Reports
    parameters:
      - name: barber_id
        in: path
        type: integer
        required: true
      - name: start
        in: query
        type: string
        description: ISO date or datetime, inclusive. Defaults to the first day of the current month.
      - name: end
        in: query
        type: string
        description: ISO date or datetime, exclusive. Defaults to the start of tomorrow.
    responses:
      200:
        description: Summary, per-item details, daily and payment method breakdowns, transactions
      400:
        description: Invalid period
      401:
        description: Missing or invalid token
      403:
        description: Barber token for another barber
      404:
        description: Barber not found
    """
    if g.identity["role"] == "barber" and g.identity["barber_id"] != barber_id:
        return jsonify({"error": "forbidden", "message": "Insufficient permissions"}), 403

    try:
        barber = db.session.get(Barber, barber_id)
        if barber is None:
            raise NotFoundError("Barber not found")

        start, end = _report_period()
        report = barber_report(barber_id, start, end)
        report["barber"] = {"id": barber.barber_id, "name": barber.name}
        return jsonify(report), 200
    except BarbershopError as exc:
        return exc.to_response()
    except SQLAlchemyError as exc:
        return store_failure(exc, "build commission report")


@bp_reports.get("/reports")
@require_role("admin", "barber")
def shop_reports() -> tuple[dict[str, object], int]:
    """Shop-wide sales, appointments, clients and financial reports over a period.
    ---
    tags:
      - Reports
    parameters:
      - name: start
        in: query
        type: string
        description: ISO date or datetime, inclusive. Defaults to the first day of the current month.
      - name: end
        in: query
        type: string
        description: ISO date or datetime, exclusive. Defaults to the start of tomorrow.
    responses:
      200:
        description: sales, appointments and clients sections; financial for admins only
      400:
        description: Invalid period
      401:
        description: Missing or invalid token
    """
    try:
        start, end = _report_period()
        barber_id = barber_scope()
        report = shop_report(
            start,
            end,
            barber_id=barber_id,
            include_financial=barber_id is None,
            top_limit=current_app.config["REPORT_TOP_LIMIT"],
        )
        return jsonify(report), 200
    except BarbershopError as exc:
        return exc.to_response()
    except SQLAlchemyError as exc:
        return store_failure(exc, "build shop report")
