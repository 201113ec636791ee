"""Error taxonomy shared by the service layer and the HTTP routes."""
from __future__ import annotations

from flask import jsonify
from sqlalchemy.exc import IntegrityError


class BarbershopError(Exception):
    """Base class for errors reported to API callers."""

    error = "error"
    status = 400

    def __init__(self, message: str, **details: object) -> None:
        super().__init__(message)
        self.message = message
        self.details = details

    def to_response(self):
        body: dict[str, object] = {"error": self.error, "message": self.message}
        body.update(self.details)
        return jsonify(body), self.status


class ValidationError(BarbershopError):
    error = "invalid_payload"
    status = 400


class NotFoundError(BarbershopError):
    error = "not_found"
    status = 404


class ConflictError(BarbershopError):
    """Uniqueness violation reported by the store."""

    error = "conflict"
    status = 409


class ReferentialError(BarbershopError):
    """Foreign-key violation, e.g. deleting a client that still has appointments."""

    error = "has_dependents"
    status = 409


class BlockedTimeError(BarbershopError):
    error = "blocked_time"
    status = 409


class StoreError(BarbershopError):
    error = "database_error"
    status = 500


class PartialUpdateError(StoreError):
    """Some writes of a multi-step operation were persisted before a store failure.

    The caller decides whether to retry ``pending_ids``.
    """

    error = "partial_update"

    def __init__(self, message: str, *, grouped: int, groups_created: int, pending_ids: list[int]) -> None:
        super().__init__(
            message,
            grouped=grouped,
            groups_created=groups_created,
            pending_ids=pending_ids,
        )
        self.grouped = grouped
        self.groups_created = groups_created
        self.pending_ids = pending_ids


def classify_integrity_error(exc: IntegrityError) -> BarbershopError:
    text = str(exc.orig).lower() if exc.orig is not None else str(exc).lower()
    if "foreign key" in text:
        return ReferentialError("Record is still referenced by other records")
    if "unique" in text or "duplicate" in text:
        return ConflictError("A record with the same unique value already exists")
    return StoreError("Integrity check failed")


class DoubleBookingError(BarbershopError):
    """The requested slot overlaps existing appointments; the caller may confirm the overlap."""

    error = "schedule_conflict"
    status = 409


class InvalidTransitionError(ValidationError):
    error = "invalid_transition"
