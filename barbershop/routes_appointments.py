"""Appointment, recurrence series and schedule block routes."""
from __future__ import annotations

from datetime import date, datetime, timedelta

from flask import Blueprint, current_app, g, jsonify, request
from sqlalchemy.exc import SQLAlchemyError

from . import blocks, booking
from .auth import barber_scope, require_role
from .conflicts import find_block_overlaps, scheduled_conflicts
from .errors import BarbershopError, NotFoundError, ValidationError
from .extensions import db
from .models import Appointment, ScheduleBlock, Service
from .money import to_cents
from .parsing import (json_payload, parse_bool, parse_date, parse_datetime, parse_int,
                      parse_time, recurrence_args)
from .recurrence import RecurrenceGrouper, WindowResolver
from .routes import store_failure
from .store import AppointmentStore

bp_appointments = Blueprint("appointments", __name__)


def _resolver(store: AppointmentStore) -> WindowResolver:
    return WindowResolver(
        store,
        days_before=current_app.config["APPOINTMENT_WINDOW_DAYS_BEFORE"],
        days_after=current_app.config["APPOINTMENT_WINDOW_DAYS_AFTER"],
    )


def _scoped_barber_id(requested: object) -> int | None:
    """Barber filter for the request; barber tokens are pinned to their own id."""
    scope = barber_scope()
    if scope is not None:
        return scope
    if requested in (None, ""):
        return None
    return parse_int(requested, "barber_id")


def _get_appointment(appointment_id: int) -> Appointment:
    appointment = db.session.get(Appointment, appointment_id)
    scope = barber_scope()
    if appointment is None or (scope is not None and appointment.barber_id != scope):
        raise NotFoundError("Appointment not found")
    return appointment


@bp_appointments.get("/appointments")
@require_role("admin", "barber")
def list_appointments() -> tuple[dict[str, object], int]:
    """List appointments in a display window with recurrence series flags.
    ---
    tags:
      - Appointments
    parameters:
      - name: start
        in: query
        type: string
        description: ISO datetime, inclusive. Defaults to the configured window.
      - name: end
        in: query
        type: string
        description: ISO datetime, exclusive. Defaults to the configured window.
      - name: barber_id
        in: query
        type: integer
      - name: expand_series
        in: query
        type: boolean
        default: false
        description: Include every member of each series shown, even outside the window
    responses:
      200:
        description: Appointments ordered by datetime, each with in_series and series_partial
      400:
        description: Invalid parameters or start not before end
    """
    try:
        store = AppointmentStore()
        resolver = _resolver(store)
        start, end = resolver.default_window(date.today())
        if request.args.get("start"):
            start = parse_datetime(request.args["start"], "start")
        if request.args.get("end"):
            end = parse_datetime(request.args["end"], "end")
        barber_id = _scoped_barber_id(request.args.get("barber_id"))
        expand = parse_bool(request.args.get("expand_series", "false"))

        resolved = resolver.resolve(start, end, barber_id=barber_id, expand_series=expand)
        return jsonify({
            "appointments": [item.to_dict() for item in resolved],
            "window": {"start": start.isoformat(), "end": end.isoformat()},
            "expand_series": expand,
        }), 200
    except BarbershopError as exc:
        return exc.to_response()
    except SQLAlchemyError as exc:
        return store_failure(exc, "fetch appointments")


@bp_appointments.get("/appointments/<int:appointment_id>")
@require_role("admin", "barber")
def get_appointment(appointment_id: int) -> tuple[dict[str, object], int]:
    try:
        return jsonify({"appointment": _get_appointment(appointment_id).to_dict()}), 200
    except BarbershopError as exc:
        return exc.to_response()


@bp_appointments.get("/appointments/series/<group_id>")
@require_role("admin", "barber")
def get_series(group_id: str) -> tuple[dict[str, object], int]:
    """Every member of a recurrence series, regardless of any window.
    ---
    tags:
      - Appointments
    responses:
      200:
        description: Series members ordered by datetime
      404:
        description: Unknown series
    """
    try:
        members = AppointmentStore().fetch_group(group_id)
        scope = barber_scope()
        if scope is not None:
            members = [m for m in members if m.barber_id == scope]
        if not members:
            raise NotFoundError("Recurrence series not found")
        return jsonify({
            "recurrence_group_id": group_id,
            "appointments": [m.to_dict() for m in members],
            "count": len(members),
        }), 200
    except BarbershopError as exc:
        return exc.to_response()
    except SQLAlchemyError as exc:
        return store_failure(exc, "fetch recurrence series")


@bp_appointments.post("/appointments")
@require_role("admin", "barber")
def create_appointment() -> tuple[dict[str, object], int]:
    """Book an appointment, or a recurring batch of appointments.
    ---
    tags:
      - Appointments
    parameters:
      - name: body
        in: body
        required: true
        schema:
          type: object
          required: [client_id, barber_id, service_ids, appointment_datetime]
          properties:
            client_id:
              type: integer
            barber_id:
              type: integer
            service_ids:
              type: array
              items:
                type: integer
            appointment_datetime:
              type: string
              format: date-time
            note:
              type: string
            allow_overlap:
              type: boolean
              description: Confirm booking over overlapping appointments
            recurrence:
              type: object
              properties:
                type:
                  type: string
                  enum: [none, weekly, biweekly, monthly]
                occurrences:
                  type: integer
                end_date:
                  type: string
                  format: date
    responses:
      201:
        description: Appointments created
      400:
        description: Invalid payload
      404:
        description: Client, barber or service not found
      409:
        description: Overlapping appointments (schedule_conflict) or blocked time (blocked_time)
    """
    try:
        payload = json_payload()
        required = ["client_id", "barber_id", "service_ids", "appointment_datetime"]
        missing = [field for field in required if payload.get(field) in (None, "")]
        if missing:
            raise ValidationError("Missing required fields", fields=missing)

        service_ids = payload["service_ids"]
        if not isinstance(service_ids, list):
            raise ValidationError("service_ids must be a list")
        barber_id = parse_int(payload["barber_id"], "barber_id")
        scope = barber_scope()
        if scope is not None and barber_id != scope:
            raise ValidationError("barber tokens can only book their own appointments")

        created = booking.book_appointments(
            AppointmentStore(),
            client_id=parse_int(payload["client_id"], "client_id"),
            barber_id=barber_id,
            service_ids=[parse_int(sid, "service_ids") for sid in service_ids],
            start=parse_datetime(payload["appointment_datetime"], "appointment_datetime"),
            note=payload.get("note"),
            recurrence=recurrence_args(payload),
            allow_overlap=parse_bool(payload.get("allow_overlap", False)),
            default_minutes=current_app.config["DEFAULT_APPOINTMENT_MINUTES"],
            max_occurrences=current_app.config["RECURRENCE_MAX_OCCURRENCES"],
        )
        current_app.logger.info(
            "Booked %d appointment(s) for client %s with barber %s",
            len(created), created[0].client_id, created[0].barber_id,
        )
        return jsonify({
            "appointments": [a.to_dict() for a in created],
            "recurrence_group_id": created[0].recurrence_group_id,
        }), 201
    except BarbershopError as exc:
        return exc.to_response()
    except SQLAlchemyError as exc:
        return store_failure(exc, "create appointment")


@bp_appointments.post("/appointments/conflicts")
@require_role("admin", "barber")
def check_conflicts() -> tuple[dict[str, object], int]:
    """Report overlapping appointments and blocks for a prospective slot without booking.
    ---
    tags:
      - Appointments
    parameters:
      - name: body
        in: body
        required: true
        schema:
          type: object
          properties:
            barber_id:
              type: integer
            appointment_datetime:
              type: string
            duration_minutes:
              type: integer
            service_ids:
              type: array
              items:
                type: integer
            exclude_id:
              type: integer
    responses:
      200:
        description: Conflicts and blocks; empty lists mean the slot is free
      400:
        description: Invalid payload
    """
    try:
        payload = json_payload()
        barber_id = parse_int(payload.get("barber_id"), "barber_id")
        start = parse_datetime(payload.get("appointment_datetime"), "appointment_datetime")

        if payload.get("duration_minutes") is not None:
            duration = parse_int(payload["duration_minutes"], "duration_minutes")
            if duration <= 0:
                raise ValidationError("duration_minutes must be greater than zero")
        else:
            service_ids = payload.get("service_ids") or []
            if not isinstance(service_ids, list):
                raise ValidationError("service_ids must be a list")
            service_ids = [parse_int(sid, "service_ids") for sid in service_ids]
            services = Service.query.filter(Service.service_id.in_(service_ids)).all() if service_ids else []
            duration = sum(s.duration_minutes or 0 for s in services)
            duration = duration or current_app.config["DEFAULT_APPOINTMENT_MINUTES"]

        exclude_id = payload.get("exclude_id")
        conflicts = scheduled_conflicts(
            AppointmentStore(),
            barber_id,
            start,
            duration,
            exclude_id=parse_int(exclude_id, "exclude_id") if exclude_id is not None else None,
        )
        blocked = find_block_overlaps(barber_id, start, start + timedelta(minutes=duration))
        return jsonify({
            "conflicts": conflicts,
            "blocks": [block.to_dict() for block in blocked],
            "has_conflicts": bool(conflicts or blocked),
        }), 200
    except BarbershopError as exc:
        return exc.to_response()
    except SQLAlchemyError as exc:
        return store_failure(exc, "check conflicts")


@bp_appointments.put("/appointments/<int:appointment_id>/status")
@require_role("admin", "barber")
def update_appointment_status(appointment_id: int) -> tuple[dict[str, object], int]:
    """Move a scheduled appointment to completed, cancelled or no_show.
    ---
    tags:
      - Appointments
    responses:
      200:
        description: Status updated
      400:
        description: Invalid status or transition out of a terminal status
      404:
        description: Appointment not found
    """
    try:
        appointment = _get_appointment(appointment_id)
        payload = json_payload()
        status = (payload.get("status") or "").strip().lower()
        booking.update_status(appointment, status, payment_method=payload.get("payment_method"))
        current_app.logger.info("Appointment %s is now %s", appointment_id, appointment.status)
        return jsonify({"appointment": appointment.to_dict()}), 200
    except BarbershopError as exc:
        return exc.to_response()
    except SQLAlchemyError as exc:
        return store_failure(exc, "update appointment status")


@bp_appointments.put("/appointments/<int:appointment_id>/settle")
@require_role("admin", "barber")
def settle_appointment(appointment_id: int) -> tuple[dict[str, object], int]:
    """Record the amount actually charged and complete the appointment.
    ---
    tags:
      - Appointments
    parameters:
      - name: body
        in: body
        required: true
        schema:
          type: object
          properties:
            final_amount:
              type: number
            payment_method:
              type: string
              enum: [money, pix, credit_card, debit_card]
    responses:
      200:
        description: Appointment settled
      400:
        description: Negative amount or appointment cancelled
      404:
        description: Appointment not found
    """
    try:
        appointment = _get_appointment(appointment_id)
        payload = json_payload()
        final_amount_cents = to_cents(payload.get("final_amount"), "final_amount")
        booking.settle(appointment, final_amount_cents, payment_method=payload.get("payment_method"))
        return jsonify({"appointment": appointment.to_dict()}), 200
    except BarbershopError as exc:
        return exc.to_response()
    except SQLAlchemyError as exc:
        return store_failure(exc, "settle appointment")


@bp_appointments.put("/appointments/<int:appointment_id>/reschedule")
@require_role("admin", "barber")
def reschedule_appointment(appointment_id: int) -> tuple[dict[str, object], int]:
    """Move a scheduled appointment to a new datetime.
    ---
    tags:
      - Appointments
    responses:
      200:
        description: Appointment rescheduled
      400:
        description: Invalid datetime or appointment not scheduled
      409:
        description: Overlapping appointments or blocked time
    """
    try:
        appointment = _get_appointment(appointment_id)
        payload = json_payload()
        new_start = parse_datetime(payload.get("appointment_datetime"), "appointment_datetime")
        booking.reschedule(
            AppointmentStore(),
            appointment,
            new_start,
            allow_overlap=parse_bool(payload.get("allow_overlap", False)),
        )
        return jsonify({"appointment": appointment.to_dict()}), 200
    except BarbershopError as exc:
        return exc.to_response()
    except SQLAlchemyError as exc:
        return store_failure(exc, "reschedule appointment")


@bp_appointments.post("/appointments/complete-day")
@require_role("admin", "barber")
def complete_day() -> tuple[dict[str, object], int]:
    """Mark every scheduled appointment of a day as completed.
    ---
    tags:
      - Appointments
    parameters:
      - name: body
        in: body
        schema:
          type: object
          properties:
            date:
              type: string
              format: date
              description: Defaults to today
            barber_id:
              type: integer
    responses:
      200:
        description: Number of appointments completed
    """
    try:
        payload = json_payload()
        day = parse_date(payload["date"], "date") if payload.get("date") else date.today()
        barber_id = _scoped_barber_id(payload.get("barber_id"))
        updated = booking.complete_day(day, barber_id=barber_id)
        current_app.logger.info("Completed %d appointments on %s", updated, day.isoformat())
        return jsonify({"date": day.isoformat(), "completed": updated}), 200
    except BarbershopError as exc:
        return exc.to_response()
    except SQLAlchemyError as exc:
        return store_failure(exc, "complete appointments")


@bp_appointments.delete("/appointments/<int:appointment_id>")
@require_role("admin", "barber")
def delete_appointment(appointment_id: int) -> tuple[dict[str, str], int]:
    try:
        appointment = _get_appointment(appointment_id)
        AppointmentStore().delete_appointment(appointment)
        return jsonify({"message": "Appointment deleted successfully"}), 200
    except BarbershopError as exc:
        return exc.to_response()
    except SQLAlchemyError as exc:
        return store_failure(exc, "delete appointment")


@bp_appointments.delete("/appointments/series/<group_id>")
@require_role("admin")
def delete_series(group_id: str) -> tuple[dict[str, object], int]:
    """Delete every appointment of a recurrence series in one transaction (admin only).
    ---
    tags:
      - Appointments
    responses:
      200:
        description: Series deleted
      404:
        description: Unknown series
    """
    try:
        deleted = AppointmentStore().delete_group(group_id)
        if not deleted:
            raise NotFoundError("Recurrence series not found")
        current_app.logger.info(
            "Recurrence series %s deleted by user %s (%d appointments)",
            group_id, g.identity.get("user_id"), deleted,
        )
        return jsonify({"recurrence_group_id": group_id, "deleted": deleted}), 200
    except BarbershopError as exc:
        return exc.to_response()
    except SQLAlchemyError as exc:
        return store_failure(exc, "delete recurrence series")


@bp_appointments.post("/appointments/recurrence/backfill")
@require_role("admin")
def backfill_recurrence() -> tuple[dict[str, object], int]:
    """Group ungrouped appointments that form repeating series (admin only).
    ---
    tags:
      - Appointments
    parameters:
      - name: body
        in: body
        schema:
          type: object
          properties:
            since:
              type: string
              description: ISO datetime; defaults to the configured look-back
    responses:
      200:
        description: Number of appointments grouped and groups created
      500:
        description: Store failure; partial_update reports groups already written
    """
    try:
        payload = json_payload()
        if payload.get("since"):
            since = parse_datetime(payload["since"], "since")
        else:
            lookback = current_app.config["RECURRENCE_BACKFILL_LOOKBACK_DAYS"]
            since = datetime.combine(date.today() - timedelta(days=lookback), datetime.min.time())

        grouper = RecurrenceGrouper(
            AppointmentStore(),
            min_members=current_app.config["RECURRENCE_MIN_MEMBERS"],
            tolerance_days=current_app.config["RECURRENCE_GAP_TOLERANCE_DAYS"],
        )
        result = grouper.run(since=since)
        return jsonify(result.to_dict()), 200
    except BarbershopError as exc:
        if exc.status >= 500:
            current_app.logger.error("Recurrence back-fill failed: %s", exc.message)
        return exc.to_response()
    except SQLAlchemyError as exc:
        return store_failure(exc, "back-fill recurrence groups")


# --- Schedule blocks ---


@bp_appointments.get("/schedule-blocks")
@require_role("admin", "barber")
def list_schedule_blocks() -> tuple[dict[str, object], int]:
    """List schedule blocks between two dates.
    ---
    tags:
      - Schedule Blocks
    parameters:
      - name: start
        in: query
        type: string
        format: date
      - name: end
        in: query
        type: string
        format: date
        description: Inclusive
      - name: barber_id
        in: query
        type: integer
        description: A barber also sees shop-wide blocks
    responses:
      200:
        description: Blocks ordered by date and start time
    """
    try:
        today = date.today()
        start_day = today - timedelta(days=current_app.config["APPOINTMENT_WINDOW_DAYS_BEFORE"])
        end_day = today + timedelta(days=current_app.config["APPOINTMENT_WINDOW_DAYS_AFTER"])
        if request.args.get("start"):
            start_day = parse_date(request.args["start"], "start")
        if request.args.get("end"):
            end_day = parse_date(request.args["end"], "end")
        if start_day > end_day:
            raise ValidationError("start must not be after end")

        found = blocks.blocks_between(start_day, end_day, barber_id=_scoped_barber_id(request.args.get("barber_id")))
        return jsonify({"schedule_blocks": [block.to_dict() for block in found]}), 200
    except BarbershopError as exc:
        return exc.to_response()
    except SQLAlchemyError as exc:
        return store_failure(exc, "fetch schedule blocks")


@bp_appointments.post("/schedule-blocks")
@require_role("admin", "barber")
def create_schedule_block() -> tuple[dict[str, object], int]:
    """Block a period for one barber or, without barber_id, the whole shop.
    ---
    tags:
      - Schedule Blocks
    parameters:
      - name: body
        in: body
        required: true
        schema:
          type: object
          required: [block_date, start_time, end_time]
          properties:
            barber_id:
              type: integer
            block_date:
              type: string
              format: date
            start_time:
              type: string
              example: "12:00"
            end_time:
              type: string
              example: "13:00"
            reason:
              type: string
            recurrence:
              type: object
    responses:
      201:
        description: Block (and recurring children) created
      400:
        description: Invalid payload
      409:
        description: Overlaps an existing block
    """
    try:
        payload = json_payload()
        barber_id = barber_scope() or payload.get("barber_id")
        created = blocks.create_block(
            parse_date(payload.get("block_date"), "block_date"),
            parse_time(payload.get("start_time"), "start_time"),
            parse_time(payload.get("end_time"), "end_time"),
            barber_id=parse_int(barber_id, "barber_id") if barber_id not in (None, "") else None,
            reason=payload.get("reason"),
            recurrence=recurrence_args(payload),
            created_by=g.identity.get("user_id"),
            max_occurrences=current_app.config["RECURRENCE_MAX_OCCURRENCES"],
        )
        return jsonify({"schedule_blocks": [block.to_dict() for block in created]}), 201
    except BarbershopError as exc:
        return exc.to_response()
    except SQLAlchemyError as exc:
        return store_failure(exc, "create schedule block")


@bp_appointments.delete("/schedule-blocks/<int:block_id>")
@require_role("admin", "barber")
def delete_schedule_block(block_id: int) -> tuple[dict[str, object], int]:
    """Delete a block; scope future or all reaches the rest of its series (admin only).
    ---
    tags:
      - Schedule Blocks
    parameters:
      - name: scope
        in: query
        type: string
        enum: [single, future, all]
        default: single
    responses:
      200:
        description: Number of blocks deleted
      401:
        description: Missing or invalid token
      403:
        description: Series deletion by a non-admin
      404:
        description: Block not found
    """
    scope = request.args.get("scope", "single")
    if scope != "single" and g.identity["role"] != "admin":
        return jsonify({"error": "forbidden", "message": "Insufficient permissions"}), 403

    try:
        block = db.session.get(ScheduleBlock, block_id)
        barber = barber_scope()
        if block is None or (barber is not None and block.barber_id != barber):
            raise NotFoundError("Schedule block not found")
        deleted = blocks.delete_block(block, scope=scope)
        return jsonify({"deleted": deleted, "scope": scope}), 200
    except BarbershopError as exc:
        return exc.to_response()
    except SQLAlchemyError as exc:
        return store_failure(exc, "delete schedule block")
