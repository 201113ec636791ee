"""Recurring appointment series: date generation, back-fill grouping and display windows."""
from __future__ import annotations

import calendar
import logging
import uuid
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import date, datetime, time, timedelta

from sqlalchemy.exc import SQLAlchemyError

from .errors import PartialUpdateError, ValidationError
from .models import Appointment

logger = logging.getLogger(__name__)

RECURRENCE_KINDS = ("none", "weekly", "biweekly", "monthly")


def new_group_id() -> str:
    return str(uuid.uuid4())


def _add_months(value: datetime, months: int) -> datetime:
    month_index = value.month - 1 + months
    year = value.year + month_index // 12
    month = month_index % 12 + 1
    day = min(value.day, calendar.monthrange(year, month)[1])
    return value.replace(year=year, month=month, day=day)


def generate_recurrence_dates(
    start: datetime,
    kind: str = "none",
    occurrences: int = 1,
    end_date: date | None = None,
    max_occurrences: int = 52,
) -> list[datetime]:
    """Return the booking datetimes of a series starting at ``start``.

    ``end_date`` is inclusive. Monthly series keep the day of month, clamped to
    the last day of shorter months.
    """
    if kind not in RECURRENCE_KINDS:
        raise ValidationError(f"recurrence type must be one of: {', '.join(RECURRENCE_KINDS)}")
    if kind == "none" or occurrences <= 1:
        return [start]

    dates = [start]
    for i in range(1, min(occurrences, max_occurrences)):
        if kind == "weekly":
            next_date = start + timedelta(days=7 * i)
        elif kind == "biweekly":
            next_date = start + timedelta(days=14 * i)
        else:
            next_date = _add_months(start, i)

        if end_date is not None and next_date.date() > end_date:
            break
        dates.append(next_date)
    return dates


def bucket_key(appointment: Appointment) -> tuple:
    when = appointment.appointment_datetime
    return (
        appointment.client_id,
        appointment.barber_id,
        appointment.service_ids,
        when.hour,
        when.minute,
        when.weekday(),
    )


def day_gaps(members: list[Appointment]) -> list[int]:
    return [
        (later.appointment_datetime - earlier.appointment_datetime).days
        for earlier, later in zip(members, members[1:])
    ]


def is_consistent_series(gaps: list[int], tolerance_days: int) -> bool:
    if not gaps:
        return False
    mean_gap = sum(gaps) / len(gaps)
    return all(abs(gap - mean_gap) <= tolerance_days for gap in gaps)


@dataclass
class GroupingResult:
    grouped: int = 0
    groups_created: int = 0
    groups: dict[str, list[int]] = field(default_factory=dict)

    def to_dict(self) -> dict[str, object]:
        return {
            "grouped": self.grouped,
            "groups_created": self.groups_created,
            "groups": self.groups,
        }


class RecurrenceGrouper:
    """Assign a shared group id to ungrouped appointments that form a repeating series.

    Candidates are bucketed by client, barber, service set, time of day and
    weekday. A bucket becomes a series only when it has at least
    ``min_members`` appointments and every day gap between consecutive members
    is within ``tolerance_days`` of the mean gap. One outlier gap disqualifies
    the whole bucket; buckets are never split.
    """

    def __init__(self, store, min_members: int = 3, tolerance_days: int = 1) -> None:
        self.store = store
        self.min_members = min_members
        self.tolerance_days = tolerance_days

    def find_series(self, candidates) -> list[list[Appointment]]:
        buckets: dict[tuple, list[Appointment]] = defaultdict(list)
        for appointment in candidates:
            if appointment.recurrence_group_id is not None or appointment.status == "cancelled":
                continue
            buckets[bucket_key(appointment)].append(appointment)

        series = []
        for members in buckets.values():
            if len(members) < self.min_members:
                continue
            members.sort(key=lambda a: (a.appointment_datetime, a.appointment_id))
            if is_consistent_series(day_gaps(members), self.tolerance_days):
                series.append(members)
        return series

    def run(self, candidates=None, since: datetime | None = None) -> GroupingResult:
        if candidates is None:
            candidates = self.store.fetch_ungrouped(since)

        series = self.find_series(candidates)
        result = GroupingResult()
        for index, members in enumerate(series):
            group_id = new_group_id()
            ids = [member.appointment_id for member in members]
            try:
                self.store.assign_group(ids, group_id)
            except SQLAlchemyError as exc:
                pending = [m.appointment_id for remaining in series[index:] for m in remaining]
                logger.error(
                    "Recurrence grouping stopped after %d groups; %d appointments left ungrouped",
                    result.groups_created,
                    len(pending),
                )
                raise PartialUpdateError(
                    "Recurrence grouping was interrupted by a store error",
                    grouped=result.grouped,
                    groups_created=result.groups_created,
                    pending_ids=pending,
                ) from exc

            result.grouped += len(ids)
            result.groups_created += 1
            result.groups[group_id] = ids
            logger.info(
                "Grouped %d appointments for client %s with barber %s every %.0f days",
                len(ids),
                members[0].client_id,
                members[0].barber_id,
                sum(day_gaps(members)) / (len(members) - 1),
            )
        return result


@dataclass
class ResolvedAppointment:
    appointment: Appointment
    in_series: bool
    series_partial: bool

    def to_dict(self) -> dict[str, object]:
        payload = self.appointment.to_dict()
        payload["in_series"] = self.in_series
        payload["series_partial"] = self.series_partial
        return payload


class WindowResolver:
    """Computes the appointment list shown for a display window.

    The default window is configuration, not a constant. Listings clip to the
    window and flag series with members outside it; ``expand_series`` is the
    on-demand path that pulls in every member of each displayed series.
    """

    def __init__(self, store, days_before: int = 7, days_after: int = 60) -> None:
        self.store = store
        self.days_before = days_before
        self.days_after = days_after

    def default_window(self, today: date) -> tuple[datetime, datetime]:
        start = datetime.combine(today - timedelta(days=self.days_before), time.min)
        end = datetime.combine(today + timedelta(days=self.days_after + 1), time.min)
        return start, end

    def resolve(
        self,
        start: datetime,
        end: datetime,
        barber_id: int | None = None,
        expand_series: bool = False,
    ) -> list[ResolvedAppointment]:
        if start >= end:
            raise ValidationError("start must be before end")

        rows, _ = self.store.fetch_range(start, end, barber_id=barber_id)
        by_id = {row.appointment_id: row for row in rows}
        group_ids = sorted({row.recurrence_group_id for row in rows if row.recurrence_group_id})

        if expand_series:
            for group_id in group_ids:
                for member in self.store.fetch_group(group_id):
                    by_id.setdefault(member.appointment_id, member)

        shown_per_group: dict[str, int] = defaultdict(int)
        for row in by_id.values():
            if row.recurrence_group_id:
                shown_per_group[row.recurrence_group_id] += 1
        totals = self.store.count_groups(group_ids)

        ordered = sorted(by_id.values(), key=lambda a: (a.appointment_datetime, a.appointment_id))
        return [
            ResolvedAppointment(
                appointment=row,
                in_series=row.recurrence_group_id is not None,
                series_partial=(
                    row.recurrence_group_id is not None
                    and totals.get(row.recurrence_group_id, 0) > shown_per_group[row.recurrence_group_id]
                ),
            )
            for row in ordered
        ]
