"""Range-filtered reads and writes against the appointments table."""
from __future__ import annotations

import logging
from datetime import date, datetime, time, timedelta

from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import selectinload

from .extensions import db
from .models import Appointment, AppointmentService

logger = logging.getLogger(__name__)


class AppointmentStore:
    """Query construction for appointments; no business rules live here."""

    def __init__(self, session=None) -> None:
        self.session = session if session is not None else db.session

    def _query(self):
        return self.session.query(Appointment).options(
            selectinload(Appointment.services).selectinload(AppointmentService.service),
            selectinload(Appointment.client),
            selectinload(Appointment.barber),
        )

    def fetch_range(
        self,
        start: datetime,
        end: datetime,
        barber_id: int | None = None,
        status: str | None = None,
        page: int | None = None,
        limit: int | None = None,
    ) -> tuple[list[Appointment], int]:
        query = self._query().filter(
            Appointment.appointment_datetime >= start,
            Appointment.appointment_datetime < end,
        )
        if barber_id is not None:
            query = query.filter(Appointment.barber_id == barber_id)
        if status is not None:
            query = query.filter(Appointment.status == status)

        total = query.order_by(None).count()
        query = query.order_by(Appointment.appointment_datetime, Appointment.appointment_id)
        if limit is not None:
            query = query.limit(limit).offset(((page or 1) - 1) * limit)
        return query.all(), total

    def fetch_group(self, group_id: str) -> list[Appointment]:
        return (
            self._query()
            .filter(Appointment.recurrence_group_id == group_id)
            .order_by(Appointment.appointment_datetime, Appointment.appointment_id)
            .all()
        )

    def count_groups(self, group_ids) -> dict[str, int]:
        group_ids = list(group_ids)
        if not group_ids:
            return {}
        rows = (
            self.session.query(Appointment.recurrence_group_id, func.count(Appointment.appointment_id))
            .filter(Appointment.recurrence_group_id.in_(group_ids))
            .group_by(Appointment.recurrence_group_id)
            .all()
        )
        return {group_id: count for group_id, count in rows}

    def fetch_ungrouped(self, since: datetime | None = None) -> list[Appointment]:
        query = self._query().filter(
            Appointment.recurrence_group_id.is_(None),
            Appointment.status != "cancelled",
        )
        if since is not None:
            query = query.filter(Appointment.appointment_datetime >= since)
        return query.order_by(Appointment.appointment_datetime).all()

    def fetch_barber_day(self, barber_id: int, day: date, exclude_id: int | None = None) -> list[Appointment]:
        start = datetime.combine(day, time.min)
        query = self._query().filter(
            Appointment.barber_id == barber_id,
            Appointment.status != "cancelled",
            Appointment.appointment_datetime >= start,
            Appointment.appointment_datetime < start + timedelta(days=1),
        )
        if exclude_id is not None:
            query = query.filter(Appointment.appointment_id != exclude_id)
        return query.order_by(Appointment.appointment_datetime).all()

    def assign_group(self, appointment_ids: list[int], group_id: str) -> int:
        try:
            members = (
                self.session.query(Appointment)
                .filter(Appointment.appointment_id.in_(appointment_ids))
                .all()
            )
            for member in members:
                member.recurrence_group_id = group_id
            self.session.commit()
        except SQLAlchemyError:
            self.session.rollback()
            raise
        return len(members)

    def delete_group(self, group_id: str) -> int:
        """Delete every member of a series in one transaction.

        Service lines go before their appointment; a failure leaves the whole
        series in place.
        """
        members = self.fetch_group(group_id)
        if not members:
            return 0
        try:
            for member in members:
                self.session.delete(member)
            self.session.commit()
        except SQLAlchemyError:
            self.session.rollback()
            logger.exception("Deleting recurrence group %s failed, nothing was removed", group_id)
            raise
        return len(members)

    def delete_appointment(self, appointment: Appointment) -> None:
        try:
            # delete-orphan cascade removes the service lines before the parent row
            self.session.delete(appointment)
            self.session.commit()
        except SQLAlchemyError:
            self.session.rollback()
            raise
