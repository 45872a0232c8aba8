"""
Application wiring.

A Fleet is built once per process and passed by reference to whatever
needs it (the Flask app, scripts, tests). It owns the shared local mirror,
the remote adapter, one entity store per entity type, and the lifecycles
built on top of them.
"""

import logging
from concurrent.futures import ThreadPoolExecutor
from typing import Dict, Optional

from fleetdesk.config import config
from fleetdesk.conflicts import ConflictNotifier
from fleetdesk.entities import (
    AIRCRAFT,
    CONFLICT_NOTICE,
    ENTITY_TYPES,
    FLIGHT_LOG,
    MAINTENANCE_EVENT,
    MISSION,
    MISSION_DAY,
    MISSION_DAY_AIRCRAFT,
    MISSION_DAY_PERSONNEL,
    PILOT,
    SEASONAL_FLIGHT,
    MissionDayStatus,
)
from fleetdesk.errors import StoreError
from fleetdesk.lifecycle import (
    AircraftLifecycle,
    AllocationLedger,
    MaintenanceLifecycle,
    MissionDayLifecycle,
    MissionLifecycle,
)
from fleetdesk.services import BlobStore, SeasonalReporter
from fleetdesk.store import (
    EntityStore,
    LocalMirror,
    MirrorRefresher,
    NoOpReconciler,
    RemoteAdapter,
    RestRemoteAdapter,
)

logger = logging.getLogger(__name__)


class Fleet:
    """Entity stores and lifecycles for one process."""

    def __init__(
        self,
        mirror: Optional[LocalMirror] = None,
        remote: Optional[RemoteAdapter] = None,
        timeout_seconds: Optional[float] = None,
        blobs: Optional[BlobStore] = None,
        refresh_interval: Optional[float] = None,
    ):
        self.mirror = mirror or LocalMirror(database_url=config.mirror.url)
        self.remote = remote

        self._executor: Optional[ThreadPoolExecutor] = None
        if remote is not None:
            self._executor = ThreadPoolExecutor(
                max_workers=config.store.max_workers,
                thread_name_prefix='remote',
            )

        self.stores: Dict[str, EntityStore] = {
            entity.name: EntityStore(
                entity,
                self.mirror,
                remote=remote,
                timeout_seconds=timeout_seconds,
                executor=self._executor,
            )
            for entity in ENTITY_TYPES
        }

        self.missions = self.stores[MISSION.name]
        self.aircraft = self.stores[AIRCRAFT.name]
        self.pilots = self.stores[PILOT.name]
        self.maintenance_events = self.stores[MAINTENANCE_EVENT.name]
        self.mission_days = self.stores[MISSION_DAY.name]
        self.day_aircraft = self.stores[MISSION_DAY_AIRCRAFT.name]
        self.day_personnel = self.stores[MISSION_DAY_PERSONNEL.name]
        self.conflict_notices = self.stores[CONFLICT_NOTICE.name]
        self.flight_logs = self.stores[FLIGHT_LOG.name]
        self.seasonal_flights = self.stores[SEASONAL_FLIGHT.name]

        # Collaborators
        self.blobs = blobs or BlobStore()
        self.seasonal = SeasonalReporter(self.seasonal_flights)
        self.notifier = ConflictNotifier(self.conflict_notices, self.pilots)
        self.reconciler = NoOpReconciler(self.mirror)
        self.refresher = MirrorRefresher(self.stores.values(), interval=refresh_interval)

        # Lifecycles
        self.ledger = AllocationLedger()
        self.aircraft_lifecycle = AircraftLifecycle(self.aircraft, self.ledger)
        self.day_lifecycle = MissionDayLifecycle(
            self.missions,
            self.mission_days,
            self.day_aircraft,
            self.day_personnel,
            self.aircraft_lifecycle,
        )
        self.mission_lifecycle = MissionLifecycle(
            self.missions,
            self.aircraft_lifecycle,
            notifier=self.notifier,
            flight_logs=self.flight_logs,
            seasonal=self.seasonal,
            days=self.day_lifecycle,
        )
        self.maintenance_lifecycle = MaintenanceLifecycle(
            self.maintenance_events,
            self.aircraft_lifecycle,
            blobs=self.blobs,
        )

        mode = 'remote+mirror' if remote is not None else 'mirror-only'
        logger.info(f'Fleet initialized ({mode}, {len(self.stores)} entity stores)')

    @classmethod
    def from_config(cls) -> 'Fleet':
        """Build the fleet from application configuration."""
        remote = RestRemoteAdapter.from_config() if config.remote.is_configured else None
        if remote is None:
            logger.warning('Remote backend not configured - running on the local mirror only')
        return cls(
            mirror=LocalMirror(database_url=config.mirror.url),
            remote=remote,
            blobs=BlobStore.from_config(),
        )

    def rebuild_ledger(self) -> int:
        """Recompute aircraft claims from missions, open days and maintenance."""
        open_days = self.mission_days.filter({'status': MissionDayStatus.OPEN.value})
        return self.ledger.rebuild(
            missions=self.missions.list(),
            day_links=self.day_aircraft.list(),
            open_day_ids=[d['id'] for d in open_days],
            maintenance_events=self.maintenance_events.list(),
        )

    def diagnose(self) -> dict:
        """Connectivity and offline-state summary for operators."""
        remote_ok = False
        remote_error = None
        if self.remote is not None:
            ping = getattr(self.remote, 'ping', None)
            try:
                remote_ok = bool(ping(MISSION.collection)) if ping else True
            except StoreError as e:
                remote_error = str(e)
                logger.warning(f'Remote diagnostic failed: {e}')

        return {
            'remote_configured': self.remote is not None,
            'remote_reachable': remote_ok,
            'remote_error': remote_error,
            'pending_operations': self.reconciler.pending_count(),
            'mirror': self.mirror.stats,
            'ledger': self.ledger.snapshot(),
        }

    def shutdown(self) -> None:
        self.refresher.stop()
        if self._executor is not None:
            self._executor.shutdown(wait=False)
        logger.info('Fleet shut down')
