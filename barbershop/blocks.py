"""Schedule blocks: periods in which a barber, or the whole shop, takes no bookings."""
from __future__ import annotations

from datetime import date, datetime, time

from sqlalchemy.exc import SQLAlchemyError

from .conflicts import overlaps
from .errors import ConflictError, NotFoundError, ValidationError
from .extensions import db
from .models import Barber, ScheduleBlock
from .recurrence import generate_recurrence_dates

DELETE_SCOPES = ("single", "future", "all")


def _overlapping_block(barber_id: int | None, day: date, start: time, end: time) -> ScheduleBlock | None:
    query = ScheduleBlock.query.filter(ScheduleBlock.block_date == day)
    if barber_id is None:
        query = query.filter(ScheduleBlock.barber_id.is_(None))
    else:
        query = query.filter(ScheduleBlock.barber_id == barber_id)
    new_start, new_end = datetime.combine(day, start), datetime.combine(day, end)
    for existing in query:
        if overlaps(new_start, new_end, existing.starts_at, existing.ends_at):
            return existing
    return None


def create_block(
    day: date,
    start: time,
    end: time,
    barber_id: int | None = None,
    reason: str | None = None,
    recurrence: dict | None = None,
    created_by: int | None = None,
    max_occurrences: int = 52,
) -> list[ScheduleBlock]:
    """Create a block, or a recurring series of blocks linked to the first one.

    Each block lies within a single day and may not overlap another block of
    the same barber on that day.
    """
    if start >= end:
        raise ValidationError("start_time must be before end_time")
    if barber_id is not None and db.session.get(Barber, barber_id) is None:
        raise NotFoundError("Barber not found")

    recurrence = recurrence or {}
    days = [
        when.date()
        for when in generate_recurrence_dates(
            datetime.combine(day, start),
            kind=recurrence.get("type", "none"),
            occurrences=recurrence.get("occurrences") or 1,
            end_date=recurrence.get("end_date"),
            max_occurrences=max_occurrences,
        )
    ]
    for block_day in days:
        clash = _overlapping_block(barber_id, block_day, start, end)
        if clash is not None:
            raise ConflictError(
                f"Block overlaps an existing block on {block_day.isoformat()}",
                block=clash.to_dict(),
            )

    reason = (reason or "").strip() or None
    created = []
    try:
        parent = ScheduleBlock(
            barber_id=barber_id,
            block_date=days[0],
            start_time=start,
            end_time=end,
            reason=reason,
            created_by=created_by,
        )
        db.session.add(parent)
        db.session.flush()
        created.append(parent)
        for block_day in days[1:]:
            child = ScheduleBlock(
                barber_id=barber_id,
                block_date=block_day,
                start_time=start,
                end_time=end,
                reason=reason,
                parent_block_id=parent.block_id,
                created_by=created_by,
            )
            db.session.add(child)
            created.append(child)
        db.session.commit()
    except SQLAlchemyError:
        db.session.rollback()
        raise
    return created


def series_of(block: ScheduleBlock) -> list[ScheduleBlock]:
    root_id = block.parent_block_id or block.block_id
    return (
        ScheduleBlock.query.filter(
            (ScheduleBlock.block_id == root_id) | (ScheduleBlock.parent_block_id == root_id)
        )
        .order_by(ScheduleBlock.block_date, ScheduleBlock.block_id)
        .all()
    )


def delete_block(block: ScheduleBlock, scope: str = "single") -> int:
    """Delete one block, it and the later blocks of its series, or the whole series.

    Deleting the first block of a series on its own re-links the remaining
    blocks to the next one so the series stays connected.
    """
    if scope not in DELETE_SCOPES:
        raise ValidationError(f"scope must be one of: {', '.join(DELETE_SCOPES)}")

    series = series_of(block)
    if scope == "single":
        doomed = [block]
    elif scope == "future":
        doomed = [member for member in series if member.block_date >= block.block_date]
    else:
        doomed = series

    doomed_ids = {member.block_id for member in doomed}
    survivors = [member for member in series if member.block_id not in doomed_ids]
    try:
        root_id = block.parent_block_id or block.block_id
        if root_id in doomed_ids and survivors:
            new_root = survivors[0]
            new_root.parent_block_id = None
            for member in survivors[1:]:
                member.parent_block_id = new_root.block_id
            db.session.flush()
        # children before the parent they reference
        for member in sorted(doomed, key=lambda m: m.parent_block_id is None):
            db.session.delete(member)
            db.session.flush()
        db.session.commit()
    except SQLAlchemyError:
        db.session.rollback()
        raise
    return len(doomed)


def blocks_between(start_day: date, end_day: date, barber_id: int | None = None) -> list[ScheduleBlock]:
    """Blocks dated in ``[start_day, end_day]``; a barber also sees shop-wide blocks."""
    query = ScheduleBlock.query.filter(
        ScheduleBlock.block_date >= start_day,
        ScheduleBlock.block_date <= end_day,
    )
    if barber_id is not None:
        query = query.filter(
            (ScheduleBlock.barber_id == barber_id) | (ScheduleBlock.barber_id.is_(None))
        )
    return query.order_by(ScheduleBlock.block_date, ScheduleBlock.start_time).all()
