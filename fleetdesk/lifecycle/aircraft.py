"""
Aircraft lifecycle and allocation ledger.

Aircraft status is not written by whoever touched the aircraft last. Every
reason an aircraft is busy is held as a claim in the allocation ledger:

    mission:<mission id>          assigned to an active mission
    day:<mission day id>          allocated to an open mission day
    maintenance:<event id>        grounded by a maintenance event

and the stored status is derived from the claim set:

    any maintenance claim   -> maintenance
    any other claim         -> in_operation
    no claims               -> available

Releasing one claim therefore never frees an aircraft another mission is
still using. The ledger lives in memory and is rebuilt from the entity
stores at start-up.
"""

import logging
import threading
from typing import Dict, Iterable, List, Mapping, Optional, Set

from fleetdesk.entities import (
    AircraftStatus,
    MaintenanceStatus,
    MissionStatus,
    Record,
)
from fleetdesk.errors import (
    AircraftUnavailable,
    NotFound,
    PermissionDenied,
    StoreError,
)
from fleetdesk.lifecycle.reports import ReleaseFailure, ReleaseReason, ReleaseReport

logger = logging.getLogger(__name__)

MAINTENANCE_PREFIX = 'maintenance:'


def mission_claim(mission_id: str) -> str:
    return f'mission:{mission_id}'


def day_claim(day_id: str) -> str:
    return f'day:{day_id}'


def maintenance_claim(event_id: str) -> str:
    return f'{MAINTENANCE_PREFIX}{event_id}'


def is_grounding_event(event: Mapping) -> bool:
    """Corrective work and in-flight incidents take the aircraft out of service."""
    return event.get('maintenance_type') == 'corrective' or bool(event.get('in_flight_incident'))


class AllocationLedger:
    """Thread-safe map of aircraft id to the set of active claims."""

    def __init__(self):
        self._claims: Dict[str, Set[str]] = {}
        self._lock = threading.Lock()

    def claim(self, aircraft_id: str, claim: str) -> None:
        with self._lock:
            self._claims.setdefault(aircraft_id, set()).add(claim)

    def drop(self, aircraft_id: str, claim: str) -> bool:
        """Remove a claim. Returns False when it was not held."""
        with self._lock:
            claims = self._claims.get(aircraft_id)
            if not claims or claim not in claims:
                return False
            claims.discard(claim)
            if not claims:
                del self._claims[aircraft_id]
            return True

    def drop_all(self, aircraft_id: str) -> Set[str]:
        with self._lock:
            return self._claims.pop(aircraft_id, set())

    def claims_for(self, aircraft_id: str) -> Set[str]:
        with self._lock:
            return set(self._claims.get(aircraft_id, ()))

    def holders(self, claim: str) -> List[str]:
        """Aircraft currently holding the given claim."""
        with self._lock:
            return sorted(aid for aid, claims in self._claims.items() if claim in claims)

    def is_grounded(self, aircraft_id: str) -> bool:
        return any(c.startswith(MAINTENANCE_PREFIX) for c in self.claims_for(aircraft_id))

    def is_operating(self, aircraft_id: str) -> bool:
        return any(not c.startswith(MAINTENANCE_PREFIX) for c in self.claims_for(aircraft_id))

    def status_for(self, aircraft_id: str) -> AircraftStatus:
        claims = self.claims_for(aircraft_id)
        if any(c.startswith(MAINTENANCE_PREFIX) for c in claims):
            return AircraftStatus.MAINTENANCE
        if claims:
            return AircraftStatus.IN_OPERATION
        return AircraftStatus.AVAILABLE

    def clear(self) -> None:
        with self._lock:
            self._claims.clear()

    def rebuild(
        self,
        missions: Iterable[Record],
        day_links: Iterable[Record],
        open_day_ids: Iterable[str],
        maintenance_events: Iterable[Record],
    ) -> int:
        """
        Recompute every claim from stored records.

        Returns the number of claims held afterwards.
        """
        open_days = set(open_day_ids)
        claims: Dict[str, Set[str]] = {}

        for mission in missions:
            if mission.get('status') == MissionStatus.ACTIVE.value and mission.get('aircraft_id'):
                claims.setdefault(mission['aircraft_id'], set()).add(mission_claim(mission['id']))

        for link in day_links:
            if link.get('mission_day_id') in open_days and link.get('aircraft_id'):
                claims.setdefault(link['aircraft_id'], set()).add(day_claim(link['mission_day_id']))

        for event in maintenance_events:
            if (
                event.get('status') != MaintenanceStatus.COMPLETED.value
                and event.get('aircraft_id')
                and is_grounding_event(event)
            ):
                claims.setdefault(event['aircraft_id'], set()).add(maintenance_claim(event['id']))

        with self._lock:
            self._claims = claims
        total = sum(len(c) for c in claims.values())
        logger.info(f'Allocation ledger rebuilt: {total} claims on {len(claims)} aircraft')
        return total

    def snapshot(self) -> Dict[str, List[str]]:
        with self._lock:
            return {aid: sorted(claims) for aid, claims in self._claims.items()}


class AircraftLifecycle:
    """
    Status transitions for aircraft, driven by the allocation ledger.

    Mission, mission-day and maintenance workflows go through assign(),
    ground() and release(); nothing else writes aircraft status.
    """

    def __init__(self, aircraft_store, ledger: Optional[AllocationLedger] = None):
        self.store = aircraft_store
        self.ledger = ledger or AllocationLedger()

    def _write_status(self, aircraft_id: str, extra: Optional[Mapping] = None) -> Record:
        status = self.ledger.status_for(aircraft_id)
        patch = {'status': status.value}
        if extra:
            patch.update(extra)
        return self.store.update(aircraft_id, patch)

    def check_available(self, aircraft_id: str) -> Record:
        """
        Return the aircraft if it can take an operational claim.

        Raises:
            NotFound: unknown aircraft
            AircraftUnavailable: aircraft is grounded for maintenance
        """
        aircraft = self.store.get(aircraft_id)
        if self.ledger.is_grounded(aircraft_id) or aircraft.get('status') == AircraftStatus.MAINTENANCE.value:
            raise AircraftUnavailable(f'Aircraft {aircraft.get("prefix") or aircraft_id} is under maintenance')
        if self.ledger.is_operating(aircraft_id):
            logger.warning(
                f'Aircraft {aircraft_id} already holds {sorted(self.ledger.claims_for(aircraft_id))}, '
                'adding another operational claim'
            )
        return aircraft

    def assign(self, aircraft_id: str, claim: str) -> Record:
        """
        Put an aircraft into operation under a claim.

        The claim is kept even when the status write fails; the error
        propagates so the caller can report it.
        """
        self.check_available(aircraft_id)
        self.ledger.claim(aircraft_id, claim)
        logger.info(f'Aircraft {aircraft_id} claimed by {claim}')
        return self._write_status(aircraft_id)

    def check_groundable(self, aircraft_id: str) -> Record:
        """Return the aircraft if it may be grounded. Refused while it is in operation."""
        aircraft = self.store.get(aircraft_id)
        if self.ledger.is_operating(aircraft_id) or aircraft.get('status') == AircraftStatus.IN_OPERATION.value:
            raise AircraftUnavailable(
                f'Aircraft {aircraft.get("prefix") or aircraft_id} is in operation and cannot be grounded'
            )
        return aircraft

    def ground(self, aircraft_id: str, claim: str) -> Record:
        """Take an aircraft out of service."""
        self.check_groundable(aircraft_id)
        self.ledger.claim(aircraft_id, claim)
        logger.info(f'Aircraft {aircraft_id} grounded by {claim}')
        return self._write_status(aircraft_id)

    def release(
        self,
        aircraft_ids: Iterable[str],
        claim: str,
        halt_on_permission: bool = True,
        extra: Optional[Dict[str, Mapping]] = None,
    ) -> ReleaseReport:
        """
        Drop a claim from each aircraft in turn and write the derived status.

        Per-aircraft failures never raise; they are itemized in the report
        and the claim is restored so the ledger keeps matching the stored
        status. A permission refusal stops the loop when halt_on_permission
        is set, and the aircraft not yet attempted are reported as skipped.

        Args:
            aircraft_ids: Aircraft to release, in order
            claim: Claim being released (e.g. 'day:<id>')
            halt_on_permission: Stop at the first PermissionDenied
            extra: Optional per-aircraft fields written with the status
        """
        report = ReleaseReport()
        pending = list(dict.fromkeys(aircraft_ids))

        for index, aircraft_id in enumerate(pending):
            held = self.ledger.drop(aircraft_id, claim)
            report.statuses[aircraft_id] = self.ledger.status_for(aircraft_id).value
            try:
                self._write_status(aircraft_id, (extra or {}).get(aircraft_id))
            except PermissionDenied as e:
                self._restore(aircraft_id, claim, held)
                report.failures.append(ReleaseFailure(aircraft_id, ReleaseReason.PERMISSION_DENIED, str(e)))
                logger.error(f'Release of aircraft {aircraft_id} from {claim} refused: {e}')
                if halt_on_permission:
                    report.halted = True
                    report.skipped = pending[index + 1:]
                    break
                continue
            except NotFound as e:
                self._restore(aircraft_id, claim, held)
                report.failures.append(ReleaseFailure(aircraft_id, ReleaseReason.NOT_FOUND, str(e)))
                logger.warning(f'Release of aircraft {aircraft_id} from {claim} failed: {e}')
                continue
            except StoreError as e:
                self._restore(aircraft_id, claim, held)
                report.failures.append(ReleaseFailure(aircraft_id, ReleaseReason.ERROR, str(e)))
                logger.error(f'Release of aircraft {aircraft_id} from {claim} failed: {e}')
                continue

            report.released.append(aircraft_id)

        logger.info(
            f'Released {len(report.released)}/{len(pending)} aircraft from {claim}'
            + (' (halted)' if report.halted else '')
        )
        return report

    def _restore(self, aircraft_id: str, claim: str, held: bool) -> None:
        if held:
            self.ledger.claim(aircraft_id, claim)

    def reclaim(self, aircraft_ids: Iterable[str], claim: str) -> List[str]:
        """
        Put a released claim back after the parent transition was refused.

        Status writes are best effort. Returns the aircraft whose status
        could not be written back.
        """
        aircraft_ids = list(dict.fromkeys(aircraft_ids))
        unwritten = []
        for aircraft_id in aircraft_ids:
            self.ledger.claim(aircraft_id, claim)
            try:
                self._write_status(aircraft_id)
            except StoreError as e:
                unwritten.append(aircraft_id)
                logger.error(f'Aircraft {aircraft_id} reclaimed by {claim} but status not written back: {e}')
        logger.info(f'Claim {claim} restored on {aircraft_ids}')
        return unwritten

    def abandon_claims(self, aircraft_ids: Iterable[str], claim: str) -> None:
        """Forget a claim without writing status (forced transitions)."""
        aircraft_ids = list(aircraft_ids)
        for aircraft_id in aircraft_ids:
            self.ledger.drop(aircraft_id, claim)
        logger.warning(f'Claim {claim} abandoned for {aircraft_ids}; stored status may be stale')

    def reset(self, aircraft_id: str) -> Record:
        """Operator correction: drop every claim and mark the aircraft available."""
        dropped = self.ledger.drop_all(aircraft_id)
        if dropped:
            logger.warning(f'Aircraft {aircraft_id} reset, dropped claims {sorted(dropped)}')
        return self._write_status(aircraft_id)

    def add_flight_hours(self, aircraft_id: str, hours: float) -> Record:
        aircraft = self.store.get(aircraft_id)
        total = round(float(aircraft.get('total_flight_hours') or 0) + hours, 1)
        return self.store.update(aircraft_id, {'total_flight_hours': total})

    def status_of(self, aircraft_id: str) -> AircraftStatus:
        return self.ledger.status_for(aircraft_id)
