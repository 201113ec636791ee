"""Appointment booking, status transitions, settlement and rescheduling."""
from __future__ import annotations

import logging
from datetime import date, datetime, time, timedelta

from sqlalchemy.exc import SQLAlchemyError

from .conflicts import find_block_overlaps, scheduled_conflicts
from .errors import (BlockedTimeError, DoubleBookingError, InvalidTransitionError,
                     NotFoundError, ValidationError)
from .extensions import db
from .models import (APPOINTMENT_STATUSES, PAYMENT_METHODS, Appointment,
                     AppointmentService, Barber, Client, Service)
from .recurrence import generate_recurrence_dates, new_group_id

logger = logging.getLogger(__name__)

TERMINAL_STATUSES = ("completed", "cancelled", "no_show")


def _load_services(service_ids) -> list[Service]:
    if not service_ids:
        raise ValidationError("at least one service is required")
    unique_ids = list(dict.fromkeys(service_ids))
    services = Service.query.filter(Service.service_id.in_(unique_ids)).all()
    found = {service.service_id: service for service in services}
    missing = [service_id for service_id in unique_ids if service_id not in found]
    if missing:
        raise NotFoundError("Service not found", service_ids=missing)
    return [found[service_id] for service_id in unique_ids]


def _check_payment_method(payment_method: str | None) -> None:
    if payment_method is not None and payment_method not in PAYMENT_METHODS:
        raise ValidationError(f"payment_method must be one of: {', '.join(PAYMENT_METHODS)}")


def _check_blocks(barber_id: int, start: datetime, duration_minutes: int) -> None:
    blocks = find_block_overlaps(barber_id, start, start + timedelta(minutes=duration_minutes))
    if blocks:
        raise BlockedTimeError(
            f"Barber is blocked on {start.date().isoformat()}: {blocks[0].reason or 'blocked period'}",
            blocks=[block.to_dict() for block in blocks],
        )


def book_appointments(
    store,
    client_id: int,
    barber_id: int,
    service_ids,
    start: datetime,
    note: str | None = None,
    recurrence: dict | None = None,
    allow_overlap: bool = False,
    default_minutes: int = 30,
    max_occurrences: int = 52,
) -> list[Appointment]:
    """Book one appointment, or a recurring batch sharing one recurrence group id.

    Every date is checked before anything is written. Schedule blocks reject
    the booking; overlaps with other appointments raise ``DoubleBookingError``
    unless ``allow_overlap`` confirms them. Prices and commission rates are
    captured from the services and the barber as they are now.
    """
    client = db.session.get(Client, client_id)
    if client is None:
        raise NotFoundError("Client not found")
    barber = db.session.get(Barber, barber_id)
    if barber is None:
        raise NotFoundError("Barber not found")
    services = _load_services(service_ids)

    recurrence = recurrence or {}
    dates = generate_recurrence_dates(
        start,
        kind=recurrence.get("type", "none"),
        occurrences=recurrence.get("occurrences") or 1,
        end_date=recurrence.get("end_date"),
        max_occurrences=max_occurrences,
    )

    total_price = sum(service.price_cents for service in services)
    duration = sum(service.duration_minutes or 0 for service in services) or default_minutes

    conflicts = []
    for when in dates:
        _check_blocks(barber_id, when, duration)
        found = scheduled_conflicts(store, barber_id, when, duration)
        if found:
            conflicts.append({"date": when.date().isoformat(), "conflicts": found})
    if conflicts and not allow_overlap:
        raise DoubleBookingError("Barber already has appointments at this time", conflicts=conflicts)

    group_id = new_group_id() if len(dates) > 1 else None
    created = []
    try:
        for when in dates:
            appointment = Appointment(
                client_id=client_id,
                barber_id=barber_id,
                appointment_datetime=when,
                duration_minutes=duration,
                status="scheduled",
                total_price_cents=total_price,
                note=(note or "").strip() or None,
                recurrence_group_id=group_id,
            )
            for service in services:
                appointment.services.append(
                    AppointmentService(
                        service_id=service.service_id,
                        price_at_booking_cents=service.price_cents,
                        commission_rate_applied=barber.rate_for_service(service),
                        is_chemical_at_booking=bool(service.is_chemical),
                    )
                )
            db.session.add(appointment)
            created.append(appointment)
        db.session.commit()
    except SQLAlchemyError:
        db.session.rollback()
        raise

    if conflicts:
        logger.info("Double booking confirmed for barber %s on %d dates", barber_id, len(conflicts))
    return created


def update_status(appointment: Appointment, status: str, payment_method: str | None = None) -> Appointment:
    if status not in APPOINTMENT_STATUSES:
        raise ValidationError(f"status must be one of: {', '.join(APPOINTMENT_STATUSES)}")
    _check_payment_method(payment_method)
    if appointment.status == status:
        return appointment
    if appointment.status in TERMINAL_STATUSES:
        raise InvalidTransitionError(
            f"Cannot change status of an appointment with status '{appointment.status}'"
        )

    appointment.status = status
    if status == "completed" and payment_method:
        appointment.payment_method = payment_method
    try:
        db.session.commit()
    except SQLAlchemyError:
        db.session.rollback()
        raise
    return appointment


def settle(appointment: Appointment, final_amount_cents: int, payment_method: str | None = None) -> Appointment:
    """Record the amount actually charged and complete the appointment."""
    if final_amount_cents < 0:
        raise ValidationError("final_amount must not be negative")
    _check_payment_method(payment_method)
    if appointment.status in ("cancelled", "no_show"):
        raise ValidationError(f"Cannot settle an appointment with status '{appointment.status}'")

    appointment.final_amount_cents = final_amount_cents
    appointment.status = "completed"
    if payment_method:
        appointment.payment_method = payment_method
    try:
        db.session.commit()
    except SQLAlchemyError:
        db.session.rollback()
        raise
    return appointment


def reschedule(store, appointment: Appointment, new_start: datetime, allow_overlap: bool = False) -> Appointment:
    if appointment.status != "scheduled":
        raise ValidationError(f"Cannot reschedule an appointment with status '{appointment.status}'")

    _check_blocks(appointment.barber_id, new_start, appointment.duration_minutes)
    conflicts = scheduled_conflicts(
        store,
        appointment.barber_id,
        new_start,
        appointment.duration_minutes,
        exclude_id=appointment.appointment_id,
    )
    if conflicts and not allow_overlap:
        raise DoubleBookingError(
            "Barber already has appointments at this time",
            conflicts=[{"date": new_start.date().isoformat(), "conflicts": conflicts}],
        )

    appointment.appointment_datetime = new_start
    try:
        db.session.commit()
    except SQLAlchemyError:
        db.session.rollback()
        raise
    return appointment


def complete_day(day: date, barber_id: int | None = None) -> int:
    """Mark every scheduled appointment of ``day`` as completed."""
    start = datetime.combine(day, time.min)
    query = Appointment.query.filter(
        Appointment.status == "scheduled",
        Appointment.appointment_datetime >= start,
        Appointment.appointment_datetime < start + timedelta(days=1),
    )
    if barber_id is not None:
        query = query.filter(Appointment.barber_id == barber_id)
    try:
        appointments = query.all()
        for appointment in appointments:
            appointment.status = "completed"
        db.session.commit()
    except SQLAlchemyError:
        db.session.rollback()
        raise
    return len(appointments)
