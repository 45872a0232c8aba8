"""
Pytest configuration and shared fixtures.

Provides:
- A throwaway SQLite local mirror per test
- FakeRemote: in-memory remote backend that can go offline, answer
  slowly, or refuse operations with a permission error
- A fully wired Fleet on top of both
"""

import itertools
import threading
import time
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, List, Optional, Set, Tuple

import pytest

from fleetdesk.entities import Record, matches, sort_records
from fleetdesk.errors import NotFound, PermissionDenied, Unreachable
from fleetdesk.fleet import Fleet
from fleetdesk.services import BlobStore
from fleetdesk.store import LocalMirror, RemoteAdapter


# =============================================================================
# FAKE REMOTE
# =============================================================================


class FakeRemote(RemoteAdapter):
    """
    In-memory stand-in for the remote backend.

    Knobs:
        offline: every call raises Unreachable
        delay: seconds to sleep before answering
        denied: (operation, collection) pairs refused with PermissionDenied
        denied_ids: record ids whose update is refused
    """

    def __init__(self):
        self.collections: Dict[str, List[Record]] = {}
        self.offline = False
        self.delay = 0.0
        self.denied: Set[Tuple[str, str]] = set()
        self.denied_ids: Set[str] = set()
        self.calls: List[Tuple[str, str]] = []
        self._ids = itertools.count(1)
        self._lock = threading.Lock()

    def seed(self, collection: str, *records: Record) -> None:
        with self._lock:
            self.collections.setdefault(collection, []).extend(dict(r) for r in records)

    def rows(self, collection: str) -> List[Record]:
        with self._lock:
            return [dict(r) for r in self.collections.get(collection, [])]

    def _enter(self, operation: str, collection: str) -> None:
        with self._lock:
            self.calls.append((operation, collection))
        if self.delay:
            time.sleep(self.delay)
        if self.offline:
            raise Unreachable('connection refused')
        if (operation, collection) in self.denied:
            raise PermissionDenied(f'new row violates row-level security policy for "{collection}"')

    def list(self, collection: str, order_by: Optional[str] = None) -> List[Record]:
        self._enter('list', collection)
        return sort_records(self.rows(collection), order_by)

    def filter(self, collection: str, criteria) -> List[Record]:
        self._enter('filter', collection)
        return [r for r in self.rows(collection) if matches(r, criteria)]

    def insert(self, collection: str, record: Record) -> Record:
        self._enter('insert', collection)
        with self._lock:
            row = {
                'created_at': datetime.now(timezone.utc).isoformat(),
                **record,
                'id': record.get('id') or f'remote-{next(self._ids)}',
            }
            self.collections.setdefault(collection, []).append(row)
        return dict(row)

    def update(self, collection: str, record_id: str, patch: Record) -> Record:
        self._enter('update', collection)
        if record_id in self.denied_ids:
            raise PermissionDenied(f'permission denied for {collection} {record_id}')
        with self._lock:
            for row in self.collections.get(collection, []):
                if row.get('id') == record_id:
                    row.update(patch)
                    return dict(row)
        raise NotFound(collection, record_id)

    def delete(self, collection: str, record_id: str) -> None:
        self._enter('delete', collection)
        with self._lock:
            rows = self.collections.get(collection, [])
            self.collections[collection] = [r for r in rows if r.get('id') != record_id]

    def ping(self, collection: str) -> bool:
        self._enter('ping', collection)
        return True


def wait_until(condition: Callable[[], bool], timeout: float = 3.0) -> bool:
    """Poll a condition (late remote answers land on worker threads)."""
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if condition():
            return True
        time.sleep(0.02)
    return condition()


# =============================================================================
# FIXTURES
# =============================================================================


@pytest.fixture
def mirror(tmp_path) -> LocalMirror:
    return LocalMirror(database_url=f'sqlite:///{tmp_path / "mirror.db"}')


@pytest.fixture
def remote() -> FakeRemote:
    return FakeRemote()


@pytest.fixture
def fleet(mirror, remote, tmp_path):
    fleet = Fleet(
        mirror=mirror,
        remote=remote,
        timeout_seconds=0.5,
        blobs=BlobStore(local_dir=str(tmp_path / 'uploads')),
    )
    yield fleet
    fleet.shutdown()


@pytest.fixture
def offline_fleet(mirror, tmp_path):
    """Fleet with no remote configured at all."""
    fleet = Fleet(
        mirror=mirror,
        remote=None,
        blobs=BlobStore(local_dir=str(tmp_path / 'uploads')),
    )
    yield fleet
    fleet.shutdown()


@pytest.fixture
def seeded(fleet, remote):
    """Fleet with two aircraft and two pilots on the remote."""
    remote.seed(
        'aircraft',
        {'id': 'ac-1', 'prefix': 'HARPIA 01', 'status': 'available', 'total_flight_hours': 10.0,
         'created_at': '2024-01-01T00:00:00+00:00'},
        {'id': 'ac-2', 'prefix': 'HARPIA 02', 'status': 'available', 'total_flight_hours': 3.4,
         'created_at': '2024-01-02T00:00:00+00:00'},
        {'id': 'ac-3', 'prefix': 'HARPIA 03', 'status': 'available', 'total_flight_hours': 0.0,
         'created_at': '2024-01-03T00:00:00+00:00'},
    )
    remote.seed(
        'pilots',
        {'id': 'p-1', 'full_name': 'Ana Souza', 'phone': '41 99999-0001', 'unit': '1º GB'},
        {'id': 'p-2', 'full_name': 'Bruno Lima', 'phone': '41 99999-0002', 'unit': '1º GB'},
    )
    return fleet


def mission_data(**overrides: Any) -> dict:
    """Mission payload centred on Curitiba."""
    data = {
        'name': 'Search and rescue',
        'latitude': -25.4284,
        'longitude': -49.2733,
        'radius': 500,
        'altitude': 120,
        'pilot_id': 'p-1',
        'aircraft_id': 'ac-1',
        'mission_type': 'search_rescue',
        'unit': '1º GB',
        'start_time': (datetime.now(timezone.utc) - timedelta(hours=2)).isoformat(),
    }
    data.update(overrides)
    return data


@pytest.fixture
def make_mission() -> Callable[..., dict]:
    return mission_data


@pytest.fixture
def eventually() -> Callable[..., bool]:
    return wait_until
