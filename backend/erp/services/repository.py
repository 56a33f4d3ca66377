# Overview: Per-collection snapshot with explicit refresh/invalidate.

from __future__ import annotations

from ..extensions import db
from .concurrency import lock_for_update


class Repository:
    """
    Snapshot of one table, loaded on demand.

    Refresh policy is pull-on-demand: the first read loads the snapshot, every
    mutation through the owning ledger calls invalidate(), and the next read
    reloads. get() always reads through to the database, so mutations never act
    on a stale snapshot row.
    """

    def __init__(self, model, *order_by, session=None):
        self.model = model
        self.order_by = order_by or (model.id.asc(),)
        self._session = session
        self._rows = None
        self._index: dict = {}

    @property
    def session(self):
        return self._session if self._session is not None else db.session

    @property
    def is_loaded(self) -> bool:
        return self._rows is not None

    def refresh(self) -> list:
        rows = self.session.query(self.model).order_by(*self.order_by).all()
        self._rows = rows
        self._index = {row.id: row for row in rows}
        return list(rows)

    def invalidate(self) -> None:
        self._rows = None
        self._index = {}

    def all(self) -> list:
        if self._rows is None:
            return self.refresh()
        return list(self._rows)

    def find(self, record_id):
        """Lookup in the current snapshot (loads it if needed)."""
        if self._rows is None:
            self.refresh()
        return self._index.get(record_id)

    def get(self, record_id, *, lock: bool = False):
        query = self.session.query(self.model).filter_by(id=record_id)
        if lock:
            query = lock_for_update(query)
        return query.first()

    def __len__(self) -> int:
        return len(self.all())
