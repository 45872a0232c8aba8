"""
Entity access layer.

Components:
- LocalMirror: durable per-entity-type copy of the remote collections
- RemoteAdapter / RestRemoteAdapter: capability interface to the backend
- EntityStore: bounded-latency CRUD with mirror fallback
- NoOpReconciler: reports (but never replays) offline writes
- MirrorRefresher: background re-listing of every store
"""

from fleetdesk.store.mirror import LocalMirror
from fleetdesk.store.remote import RemoteAdapter, RestRemoteAdapter
from fleetdesk.store.entity_store import EntityStore
from fleetdesk.store.reconciler import NoOpReconciler, ReconcileReport
from fleetdesk.store.refresher import MirrorRefresher

__all__ = [
    'LocalMirror',
    'RemoteAdapter',
    'RestRemoteAdapter',
    'EntityStore',
    'NoOpReconciler',
    'ReconcileReport',
    'MirrorRefresher',
]
