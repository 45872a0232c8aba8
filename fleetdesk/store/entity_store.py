"""
Entity store - uniform CRUD facade with offline fallback.

Every operation follows the same resilience contract:
1. Race the remote call against a fixed time budget
2. On success, write the result through to the local mirror
3. On timeout or transport failure, serve (or write) the local mirror
4. On permission refusal, raise - the caller must decide what to do

The remote call is never cancelled at the deadline. If it finishes later,
its result is still written through to the mirror, but the value the
caller already received is not corrected.
"""

import logging
import threading
import uuid
from concurrent.futures import Future, ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeoutError
from typing import Any, Callable, Dict, List, Mapping, Optional

from fleetdesk.config import config
from fleetdesk.entities import (
    EntityType,
    Predicate,
    Record,
    apply_predicate,
    matches,
    serialize_record,
    sort_records,
    utc_now_iso,
)
from fleetdesk.errors import NotFound, RemoteTimeout, Unreachable
from fleetdesk.store.mirror import LocalMirror
from fleetdesk.store.remote import RemoteAdapter

logger = logging.getLogger(__name__)

# Failures that degrade to the mirror instead of reaching the caller
DEGRADABLE = (RemoteTimeout, Unreachable)


class EntityStore:
    """
    CRUD over one entity type.

    Composes a remote adapter (optional) and the shared local mirror.
    Passing remote=None runs the store purely on the mirror.
    """

    def __init__(
        self,
        entity: EntityType,
        mirror: LocalMirror,
        remote: Optional[RemoteAdapter] = None,
        timeout_seconds: Optional[float] = None,
        executor: Optional[ThreadPoolExecutor] = None,
    ):
        self.entity = entity
        self.mirror = mirror
        self.remote = remote
        self.timeout_seconds = timeout_seconds or config.store.timeout_seconds

        self._executor = executor
        if remote is not None and executor is None:
            self._executor = ThreadPoolExecutor(
                max_workers=config.store.max_workers,
                thread_name_prefix=f'remote-{entity.collection}',
            )

        # Statistics
        self._lock = threading.Lock()
        self._remote_ok = 0
        self._fallbacks = 0
        self._timeouts = 0
        self._late_writes = 0

    def __repr__(self) -> str:
        mode = 'remote+mirror' if self.remote_enabled else 'mirror-only'
        return f'<EntityStore {self.entity.name} {mode}>'

    @property
    def remote_enabled(self) -> bool:
        return self.remote is not None

    @property
    def _key(self) -> str:
        return self.entity.storage_key

    def _count(self, counter: str) -> None:
        with self._lock:
            setattr(self, counter, getattr(self, counter) + 1)

    # -------------------------------------------------------------------------
    # Remote race
    # -------------------------------------------------------------------------

    def _race(
        self,
        operation: str,
        call: Callable[..., Any],
        *args: Any,
        on_late_success: Optional[Callable[[Any], None]] = None,
    ) -> Any:
        """
        Run a remote call and wait at most timeout_seconds for it.

        Raises Unreachable immediately when no remote is configured and
        RemoteTimeout when the budget runs out. Errors raised by the adapter
        propagate unchanged.
        """
        if not self.remote_enabled:
            raise Unreachable('remote not configured')

        future = self._executor.submit(call, *args)
        try:
            result = future.result(timeout=self.timeout_seconds)
        except FutureTimeoutError:
            self._count('_timeouts')
            logger.debug(
                f'{self.entity.name}.{operation} exceeded {self.timeout_seconds}s, '
                'serving local mirror'
            )
            if on_late_success is not None:
                future.add_done_callback(self._late_callback(operation, on_late_success))
            raise RemoteTimeout(f'{self.entity.name}.{operation} timed out')

        self._count('_remote_ok')
        return result

    def _late_callback(self, operation: str, write_through: Callable[[Any], None]) -> Callable[[Future], None]:
        def _done(future: Future) -> None:
            if future.cancelled() or future.exception() is not None:
                return
            try:
                write_through(future.result())
                self._count('_late_writes')
                logger.debug(f'Late {self.entity.name}.{operation} written through to mirror')
            except Exception as e:
                logger.error(f'Late write-through failed for {self.entity.name}.{operation}: {e}')
        return _done

    # -------------------------------------------------------------------------
    # Mirror helpers
    # -------------------------------------------------------------------------

    def _local_records(self) -> List[Record]:
        """Mirror contents, seeding an empty mirror when the type has seed data."""
        records = self.mirror.load(self._key)
        if not records and self.entity.seed:
            records = [dict(r) for r in self.entity.seed]
            self.mirror.replace(self._key, records)
            logger.info(f'Seeded local mirror with {len(records)} {self.entity.name} records')
        return records

    def _fallback(self, operation: str, error: Exception) -> None:
        self._count('_fallbacks')
        if self.remote_enabled:
            logger.warning(f'{self.entity.name}.{operation} degraded to local mirror: {error}')

    # -------------------------------------------------------------------------
    # Reads
    # -------------------------------------------------------------------------

    def list(self, order_by: Optional[str] = None) -> List[Record]:
        """
        All records of this type.

        Args:
            order_by: Field name, prefixed with '-' for descending order.
                      Defaults to the entity type's default order.
        """
        order_by = order_by or self.entity.default_order
        try:
            records = self._race(
                'list',
                self.remote.list if self.remote else None,
                self.entity.collection,
                order_by,
                on_late_success=lambda rows: self.mirror.replace(self._key, rows),
            )
        except DEGRADABLE as e:
            self._fallback('list', e)
            return sort_records(self._local_records(), order_by)

        self.mirror.replace(self._key, records)
        return records

    def filter(self, predicate: Predicate) -> List[Record]:
        """
        Records matching a predicate.

        A mapping of field=value pairs is pushed to the remote as equality
        filters. A callable can only run here, so the full collection is
        fetched (with the usual fallback) and filtered locally.
        """
        if callable(predicate):
            return apply_predicate(self.list(), predicate)

        criteria = serialize_record(predicate)
        try:
            records = self._race(
                'filter',
                self.remote.filter if self.remote else None,
                self.entity.collection,
                criteria,
                on_late_success=lambda rows: self.mirror.upsert(self._key, rows),
            )
        except DEGRADABLE as e:
            self._fallback('filter', e)
            return [r for r in self._local_records() if matches(r, criteria)]

        self.mirror.upsert(self._key, records)
        return records

    def get(self, record_id: str) -> Record:
        """Single record by id, or NotFound."""
        found = self.filter({'id': record_id})
        if not found:
            raise NotFound(self.entity.name, record_id)
        return found[0]

    # -------------------------------------------------------------------------
    # Writes
    # -------------------------------------------------------------------------

    def create(self, record: Mapping[str, Any]) -> Record:
        """
        Insert a record.

        With the remote reachable, the remote-assigned record is the record of
        identity. Otherwise a local id and creation timestamp are minted; that
        id is permanent and is never renamed.
        """
        payload = serialize_record(record)
        try:
            created = self._race(
                'create',
                self.remote.insert if self.remote else None,
                self.entity.collection,
                payload,
                on_late_success=lambda row: self.mirror.put(self._key, row),
            )
        except DEGRADABLE as e:
            self._fallback('create', e)
            created = {
                **payload,
                'id': payload.get('id') or str(uuid.uuid4()),
                'created_at': payload.get('created_at') or utc_now_iso(),
            }
            self.mirror.prepend(self._key, created)
            self.mirror.log_pending(self.entity.name, 'create', created['id'], created)
            return created

        self.mirror.put(self._key, created)
        return created

    def update(self, record_id: str, patch: Mapping[str, Any]) -> Record:
        """
        Apply a partial patch. Only the entity's mutable fields are accepted.

        Raises:
            InvalidPatch: patch names a field outside the mutable set
            NotFound: id unknown to the remote, or to the mirror while offline
            PermissionDenied: remote refused the change
        """
        changes = self.entity.validate_patch(patch)
        try:
            updated = self._race(
                'update',
                self.remote.update if self.remote else None,
                self.entity.collection,
                record_id,
                changes,
                on_late_success=lambda row: self.mirror.put(self._key, row),
            )
        except DEGRADABLE as e:
            self._fallback('update', e)
            updated = self.mirror.merge(self._key, record_id, changes, entity=self.entity.name)
            self.mirror.log_pending(self.entity.name, 'update', record_id, changes)
            return updated

        self.mirror.put(self._key, updated)
        return updated

    def delete(self, record_id: str) -> None:
        """Best-effort delete. Offline deletes keep no tombstone."""
        try:
            self._race(
                'delete',
                self.remote.delete if self.remote else None,
                self.entity.collection,
                record_id,
                on_late_success=lambda _: self.mirror.remove(self._key, record_id),
            )
        except DEGRADABLE as e:
            self._fallback('delete', e)
            if self.mirror.remove(self._key, record_id):
                self.mirror.log_pending(self.entity.name, 'delete', record_id)
            return

        self.mirror.remove(self._key, record_id)

    @property
    def stats(self) -> Dict[str, Any]:
        """Get store statistics."""
        with self._lock:
            return {
                'entity': self.entity.name,
                'remote_enabled': self.remote_enabled,
                'remote_ok': self._remote_ok,
                'fallbacks': self._fallbacks,
                'timeouts': self._timeouts,
                'late_writes': self._late_writes,
            }

    def shutdown(self) -> None:
        if self._executor is not None:
            self._executor.shutdown(wait=False)
