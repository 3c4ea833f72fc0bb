"""Dense display-order maintenance for ``OrderableMixin`` models.

Among rows with ``is_active`` and not ``is_deleted`` (the active population)
``sort_order`` is always exactly ``1..N``. Rows outside the population carry
0. Requested positions are clamped to the valid range, never rejected.

Shifts are single bulk UPDATE statements executed before the moved row is
written, all inside one transaction held under a per-model lock. A storage
error rolls the whole operation back and surfaces as ``PersistenceFailure``.
"""
from __future__ import annotations
import logging
import threading
from contextlib import contextmanager
from typing import Dict, Iterable, List, Optional

from sqlalchemy import select, update, func, and_, inspect
from sqlalchemy.exc import SQLAlchemyError

from backoffice.errors import PersistenceFailure, InvalidPosition

logger = logging.getLogger(__name__)

POSITION_FIELDS = ['sort_order', 'is_active', 'is_deleted']

_locks: Dict[str, threading.RLock] = {}
_locks_guard = threading.Lock()


def _lock_for(model) -> threading.RLock:
    with _locks_guard:
        lock = _locks.get(model.__tablename__)
        if lock is None:
            lock = _locks[model.__tablename__] = threading.RLock()
        return lock


def clamp(position: int, low: int, high: int) -> int:
    return max(low, min(int(position), high))


class OrderedCollectionManager:
    def __init__(self, session, model):
        self.session = session
        self.model = model
        self._depth = 0

    # --- queries ---

    def _active_clause(self):
        m = self.model
        return and_(m.is_active.is_(True), m.is_deleted.is_(False))

    def is_in_population(self, entity) -> bool:
        return bool(entity.is_active) and not entity.is_deleted

    def active_count(self, exclude_id: Optional[int] = None) -> int:
        q = select(func.count(self.model.id)).where(self._active_clause())
        if exclude_id is not None:
            q = q.where(self.model.id != exclude_id)
        return self.session.execute(q).scalar_one()

    def next_order(self) -> int:
        top = self.session.execute(select(func.max(self.model.sort_order)).where(self._active_clause())).scalar()
        return (top or 0) + 1

    def ordered_ids(self) -> List[int]:
        m = self.model
        return list(self.session.execute(
            select(m.id).where(self._active_clause()).order_by(m.sort_order.asc(), m.id.asc())
        ).scalars())

    # --- transaction boundary ---

    @contextmanager
    def atomic(self):
        """Serialize writers on this model and commit once at the outermost level."""
        with _lock_for(self.model):
            self._depth += 1
            try:
                yield self
                if self._depth == 1:
                    self.session.commit()
            except SQLAlchemyError as e:
                self.session.rollback()
                logger.error('Reorder on %s failed, rolled back: %s', self.model.__tablename__, e)
                raise PersistenceFailure() from e
            except Exception:
                if self._depth == 1:
                    self.session.rollback()
                raise
            finally:
                self._depth -= 1

    # --- primitive steps (caller holds atomic()) ---

    def _sync(self, entity):
        """Reload the ordering columns of a stored row; in-memory copies may predate another writer."""
        if inspect(entity).persistent:
            self.session.refresh(entity, attribute_names=POSITION_FIELDS)

    def _shift(self, delta: int, *criteria, exclude_id: Optional[int] = None) -> int:
        m = self.model
        stmt = update(m).where(self._active_clause(), *criteria)
        if exclude_id is not None:
            stmt = stmt.where(m.id != exclude_id)
        result = self.session.execute(stmt.values(sort_order=m.sort_order + delta))
        return result.rowcount

    def _place(self, entity, position: int):
        entity.is_active = True
        entity.is_deleted = False
        entity.sort_order = position
        self.session.add(entity)
        self.session.flush()

    def _retire(self, entity):
        entity.is_active = False
        entity.sort_order = 0
        self.session.flush()

    # --- public operations ---

    def insert(self, entity, position: Optional[int] = None):
        """Place ``entity`` into the active population at ``position`` (default: end)."""
        with self.atomic():
            self.session.add(entity)
            self.session.flush()
            n = self.active_count(exclude_id=entity.id)
            target = clamp(position if position is not None else n + 1, 1, n + 1)
            shifted = self._shift(1, self.model.sort_order >= target, exclude_id=entity.id)
            self._place(entity, target)
            logger.debug('%s #%s inserted at %s (%s shifted)', self.model.__tablename__, entity.id, target, shifted)
        return entity

    def move(self, entity, new_position: int):
        with self.atomic():
            self.session.flush()
            self._sync(entity)
            if not self.is_in_population(entity):
                raise InvalidPosition('Only active entries can be moved')
            n = self.active_count()
            old = entity.sort_order
            new = clamp(new_position, 1, n)
            if new == old:
                return entity
            m = self.model
            if new < old:
                self._shift(1, m.sort_order >= new, m.sort_order <= old - 1, exclude_id=entity.id)
            else:
                self._shift(-1, m.sort_order >= old + 1, m.sort_order <= new, exclude_id=entity.id)
            self._place(entity, new)
            logger.debug('%s #%s moved %s -> %s', self.model.__tablename__, entity.id, old, new)
        return entity

    def close_gap(self, position: int) -> int:
        with self.atomic():
            shifted = self._shift(-1, self.model.sort_order > position)
            logger.debug('%s gap at %s closed (%s shifted)', self.model.__tablename__, position, shifted)
        return shifted

    def update(self, entity, new_position: Optional[int] = None, new_active: Optional[bool] = None):
        """Apply a position and/or status change with status-transition coupling.

        active -> active     move (only if a position is given)
        active -> inactive   close the gap at the old position
        inactive -> active   insert at the requested position or the end
        inactive -> inactive no reindex
        """
        with self.atomic():
            self._sync(entity)
            was_active = self.is_in_population(entity)
            will_active = (bool(new_active) if new_active is not None else bool(entity.is_active)) and not entity.is_deleted
            if was_active and will_active:
                if new_position is not None:
                    self.move(entity, new_position)
            elif was_active:
                old = entity.sort_order
                self._retire(entity)
                self.close_gap(old)
            elif will_active:
                self.insert(entity, new_position)
            else:
                entity.is_active = bool(will_active)
                entity.sort_order = 0
                self.session.flush()
        return entity

    def remove(self, entity, hard: bool = False):
        with self.atomic():
            self._sync(entity)
            was_active = self.is_in_population(entity)
            old = entity.sort_order
            if hard:
                self.session.delete(entity)
                self.session.flush()
            else:
                entity.is_deleted = True
                self._retire(entity)
            if was_active:
                self.close_gap(old)
        return entity

    def _load(self, ids: Iterable[int]) -> list:
        m = self.model
        ids = list({int(i) for i in ids})
        if not ids:
            return []
        return list(self.session.execute(
            select(m).where(m.id.in_(ids), m.is_deleted.is_(False)).order_by(m.sort_order.asc(), m.id.asc())
            .execution_options(populate_existing=True)
        ).scalars())

    def bulk_set_active(self, ids: Iterable[int], active: bool) -> int:
        changed = 0
        with self.atomic():
            for entity in self._load(ids):
                if bool(entity.is_active) == bool(active):
                    continue
                self.update(entity, new_active=active)
                changed += 1
        return changed

    def bulk_soft_delete(self, ids: Iterable[int]) -> int:
        with self.atomic():
            entities = self._load(ids)
            for entity in entities:
                self.remove(entity)
        return len(entities)

    def normalize(self) -> int:
        """Renumber the active population 1..N by (sort_order, id); zero the rest."""
        m = self.model
        changed = 0
        with self.atomic():
            self.session.flush()
            rows = self.session.execute(
                select(m).where(self._active_clause()).order_by(m.sort_order.asc(), m.id.asc())
            ).scalars()
            for index, entity in enumerate(rows, start=1):
                if entity.sort_order != index:
                    entity.sort_order = index
                    changed += 1
            outside = self.session.execute(
                select(m).where(~self._active_clause(), m.sort_order != 0)
            ).scalars()
            for entity in outside:
                entity.sort_order = 0
                changed += 1
            self.session.flush()
        if changed:
            logger.info('Normalized %s: %s rows renumbered', m.__tablename__, changed)
        return changed


__all__ = ['OrderedCollectionManager', 'clamp']
