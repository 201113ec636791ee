"""Schedule conflict detection for appointments and schedule blocks."""
from __future__ import annotations

from datetime import datetime, timedelta

from sqlalchemy import or_

from .models import ScheduleBlock


def overlaps(start_a: datetime, end_a: datetime, start_b: datetime, end_b: datetime) -> bool:
    """Half-open interval overlap; touching endpoints do not overlap."""
    return start_a < end_b and start_b < end_a


def find_conflicts(start: datetime, duration_minutes: int, existing) -> list[dict[str, object]]:
    """Return the existing non-cancelled appointments overlapping ``[start, start + duration)``.

    An empty list means the slot is free. Conflicts are information for the
    caller to confirm, never a refusal.
    """
    end = start + timedelta(minutes=duration_minutes)
    conflicts = []
    for appointment in existing:
        if appointment.status == "cancelled":
            continue
        if overlaps(start, end, appointment.appointment_datetime, appointment.ends_at):
            conflicts.append(
                {
                    "id": appointment.appointment_id,
                    "client_name": appointment.client.name if appointment.client else None,
                    "appointment_datetime": appointment.appointment_datetime.isoformat(),
                    "duration_minutes": appointment.duration_minutes,
                }
            )
    return conflicts


def find_block_overlaps(barber_id: int, start: datetime, end: datetime) -> list[ScheduleBlock]:
    """Blocks of this barber, or shop-wide ones, overlapping ``[start, end)``."""
    candidates = ScheduleBlock.query.filter(
        ScheduleBlock.block_date >= start.date(),
        ScheduleBlock.block_date <= end.date(),
        or_(ScheduleBlock.barber_id == barber_id, ScheduleBlock.barber_id.is_(None)),
    ).all()
    return [block for block in candidates if overlaps(start, end, block.starts_at, block.ends_at)]


def scheduled_conflicts(store, barber_id: int, start: datetime, duration_minutes: int, exclude_id: int | None = None):
    existing = store.fetch_barber_day(barber_id, start.date(), exclude_id=exclude_id)
    return find_conflicts(start, duration_minutes, existing)
