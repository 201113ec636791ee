"""In-process table change feed.

Subscribers register callbacks per table and are called with the changed row,
as a mapping of column name to value, once the transaction commits. Changes
of a rolled back transaction are discarded.
"""
from __future__ import annotations

import logging
from collections import defaultdict

from sqlalchemy import event, inspect
from sqlalchemy.orm import Session, object_session

from .extensions import db

logger = logging.getLogger(__name__)

_PENDING_KEY = "pending_changes"


class ChangeFeed:
    def __init__(self) -> None:
        self._subscribers: dict[str, list[dict]] = defaultdict(list)
        self._installed = False

    def subscribe(self, table: str, on_insert=None, on_update=None, on_delete=None):
        """Register callbacks for ``table``; returns a function that unsubscribes them."""
        entry = {"insert": on_insert, "update": on_update, "delete": on_delete}
        self._subscribers[table].append(entry)

        def unsubscribe() -> None:
            if entry in self._subscribers[table]:
                self._subscribers[table].remove(entry)

        return unsubscribe

    def install(self) -> None:
        if self._installed:
            return
        for kind in ("insert", "update", "delete"):
            event.listen(db.Model, f"after_{kind}", self._recorder(kind), propagate=True)
        event.listen(Session, "after_commit", self._dispatch)
        event.listen(Session, "after_rollback", self._discard)
        self._installed = True

    def _recorder(self, kind: str):
        def record(mapper, connection, target) -> None:
            table = mapper.local_table.name
            if not self._subscribers.get(table):
                return
            session = object_session(target)
            if session is None:
                return
            if kind == "delete":
                # the row is gone; expired attributes cannot be loaded any more
                state = inspect(target)
                row = {attr.key: state.dict.get(attr.key) for attr in mapper.column_attrs}
                for column, value in zip(mapper.primary_key, state.identity or ()):
                    row[mapper.get_property_by_column(column).key] = value
            else:
                row = {attr.key: getattr(target, attr.key) for attr in mapper.column_attrs}
            session.info.setdefault(_PENDING_KEY, []).append((table, kind, row))

        return record

    def _discard(self, session) -> None:
        session.info.pop(_PENDING_KEY, None)

    def _dispatch(self, session) -> None:
        for table, kind, payload in session.info.pop(_PENDING_KEY, []):
            for entry in list(self._subscribers.get(table, [])):
                callback = entry[kind]
                if callback is None:
                    continue
                try:
                    callback(payload)
                except Exception:
                    logger.exception("Change handler for %s %s failed", table, kind)


change_feed = ChangeFeed()
