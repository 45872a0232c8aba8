"""
Local mirror: durable per-entity-type record store.

Provides the offline half of every entity store:
- One durable key per entity type holding the full collection
- Whole-collection overwrite on remote reads, record-level edits offline
- Thread-safe operations (the refresher and late remote answers write
  from worker threads)

Design rationale:
Records are kept exactly as the remote returns them, with no dirty or
version metadata. Offline mutations are additionally appended to the
pending-operations log so the gap between the stores is at least visible.
"""

import logging
import threading
import time
from typing import Any, Dict, List, Optional

from sqlalchemy import select, func
from sqlalchemy.engine import Engine

from fleetdesk.errors import NotFound
from fleetdesk.entities import Record, serialize_record
from fleetdesk.models import (
    MirrorCollection,
    PendingOperation,
    create_mirror_engine,
    init_db,
    make_session_factory,
    session_scope,
)

logger = logging.getLogger(__name__)


class LocalMirror:
    """
    Keyed, persistent record store backed by the mirror database.

    One instance is built per process and shared by all entity stores.
    """

    def __init__(
        self,
        engine: Optional[Engine] = None,
        database_url: Optional[str] = None,
    ):
        self.engine = engine or create_mirror_engine(database_url)
        init_db(self.engine)
        self._session_factory = make_session_factory(self.engine)
        self._lock = threading.RLock()

        # Statistics
        self._reads = 0
        self._writes = 0
        self._last_write: float = 0

    # -------------------------------------------------------------------------
    # Collection access
    # -------------------------------------------------------------------------

    def load(self, key: str) -> List[Record]:
        """Return a copy of the collection stored under key (empty if none)."""
        with self._lock:
            self._reads += 1
            with session_scope(self._session_factory) as session:
                row = session.get(MirrorCollection, key)
                payload = list(row.payload) if row and row.payload else []
        return [dict(record) for record in payload]

    def replace(self, key: str, records: List[Record]) -> int:
        """Overwrite the whole collection. Returns the record count."""
        payload = [serialize_record(r) for r in records]
        with self._lock:
            with session_scope(self._session_factory) as session:
                row = session.get(MirrorCollection, key)
                if row is None:
                    session.add(MirrorCollection(key=key, payload=payload))
                else:
                    row.payload = payload
            self._writes += 1
            self._last_write = time.time()

        logger.debug(f'Mirror {key} replaced with {len(payload)} records')
        return len(payload)

    def keys(self) -> List[str]:
        with session_scope(self._session_factory) as session:
            return list(session.scalars(select(MirrorCollection.key)))

    # -------------------------------------------------------------------------
    # Record-level edits (read-modify-write of one collection)
    # -------------------------------------------------------------------------

    def find(self, key: str, record_id: str) -> Optional[Record]:
        for record in self.load(key):
            if record.get('id') == record_id:
                return record
        return None

    def prepend(self, key: str, record: Record) -> Record:
        """Insert a new record at the front of the collection."""
        with self._lock:
            records = self.load(key)
            records.insert(0, record)
            self.replace(key, records)
        return record

    def put(self, key: str, record: Record) -> Record:
        """Replace the record with the same id, or prepend it if absent."""
        with self._lock:
            records = self.load(key)
            for index, existing in enumerate(records):
                if existing.get('id') == record.get('id'):
                    records[index] = record
                    break
            else:
                records.insert(0, record)
            self.replace(key, records)
        return record

    def upsert(self, key: str, records: List[Record]) -> int:
        """Put several records, keeping the position of the ones already known."""
        with self._lock:
            current = self.load(key)
            positions = {r.get('id'): i for i, r in enumerate(current)}
            fresh = []
            for record in records:
                index = positions.get(record.get('id'))
                if index is None:
                    fresh.append(record)
                else:
                    current[index] = record
            self.replace(key, fresh + current)
        return len(records)

    def merge(self, key: str, record_id: str, patch: Dict[str, Any], entity: str = 'Record') -> Record:
        """Shallow-merge a patch into a stored record, or raise NotFound."""
        with self._lock:
            records = self.load(key)
            for index, existing in enumerate(records):
                if existing.get('id') == record_id:
                    merged = {**existing, **patch}
                    records[index] = merged
                    self.replace(key, records)
                    return merged
        raise NotFound(entity, record_id)

    def remove(self, key: str, record_id: str) -> bool:
        """Drop a record. Returns False when it was not stored."""
        with self._lock:
            records = self.load(key)
            remaining = [r for r in records if r.get('id') != record_id]
            if len(remaining) == len(records):
                return False
            self.replace(key, remaining)
        return True

    # -------------------------------------------------------------------------
    # Pending-operations log
    # -------------------------------------------------------------------------

    def log_pending(
        self,
        entity: str,
        operation: str,
        record_id: str,
        payload: Optional[Record] = None,
    ) -> None:
        """Append an offline mutation to the pending-operations log."""
        with session_scope(self._session_factory) as session:
            session.add(PendingOperation(
                entity=entity,
                operation=operation,
                record_id=record_id,
                payload=serialize_record(payload) if payload else None,
            ))
        logger.debug(f'Pending {operation} recorded for {entity} {record_id}')

    def pending_operations(self, entity: Optional[str] = None) -> List[dict]:
        """Pending operations in the order they happened."""
        with session_scope(self._session_factory) as session:
            query = select(PendingOperation).order_by(PendingOperation.id)
            if entity:
                query = query.where(PendingOperation.entity == entity)
            return [op.to_dict() for op in session.scalars(query)]

    def pending_count(self) -> int:
        with session_scope(self._session_factory) as session:
            return session.scalar(select(func.count(PendingOperation.id))) or 0

    @property
    def stats(self) -> dict:
        """Get mirror statistics."""
        with self._lock:
            return {
                'reads': self._reads,
                'writes': self._writes,
                'last_write': self._last_write,
                'pending_operations': self.pending_count(),
            }
