"""
Maintenance lifecycle.

    scheduled -> in_progress -> completed

Corrective work and in-flight incidents ground the aircraft for the life
of the event; completing the event lifts the grounding claim and the
aircraft returns to whatever its remaining claims say (normally available).
"""

import logging
from datetime import timedelta
from typing import Any, Mapping, Optional

from fleetdesk.entities import (
    MaintenanceStatus,
    MaintenanceType,
    Record,
    parse_timestamp,
    utc_now,
)
from fleetdesk.errors import PERMISSION_REMEDIATION, InvalidTransition, StoreError
from fleetdesk.lifecycle.aircraft import (
    AircraftLifecycle,
    is_grounding_event,
    maintenance_claim,
)
from fleetdesk.lifecycle.reports import TransitionResult, WriteFailure

logger = logging.getLogger(__name__)

NEXT_MAINTENANCE_DAYS = 30


class MaintenanceLifecycle:
    """Opens, starts and completes maintenance events."""

    def __init__(self, events, aircraft: AircraftLifecycle, blobs=None):
        """
        Args:
            events: EntityStore for MaintenanceEvent
            aircraft: Aircraft lifecycle (owns the allocation ledger)
            blobs: BlobStore for incident log files
        """
        self.events = events
        self.aircraft = aircraft
        self.blobs = blobs

    def open_event(
        self,
        data: Mapping[str, Any],
        log_file: Optional[bytes] = None,
        filename: Optional[str] = None,
    ) -> Record:
        """
        Record a maintenance event, grounding the aircraft when required.

        The grounding check runs before anything is written, so an aircraft
        in operation refuses the event with AircraftUnavailable.
        """
        aircraft_id = data.get('aircraft_id')
        if not aircraft_id:
            raise ValueError('Maintenance event needs an aircraft')

        maintenance_type = MaintenanceType(data.get('maintenance_type') or MaintenanceType.GENERAL)
        record = dict(data)
        record['maintenance_type'] = maintenance_type.value
        record['in_flight_incident'] = bool(data.get('in_flight_incident'))
        record['status'] = MaintenanceStatus.SCHEDULED.value
        record.setdefault('cost', 0)

        performed = parse_timestamp(data.get('maintenance_date')) or utc_now()
        record['maintenance_date'] = data.get('maintenance_date') or performed.date().isoformat()
        if not data.get('next_maintenance_date'):
            record['next_maintenance_date'] = (performed + timedelta(days=NEXT_MAINTENANCE_DAYS)).date().isoformat()

        grounding = is_grounding_event(record)
        if grounding:
            self.aircraft.check_groundable(aircraft_id)

        if log_file is not None and self.blobs is not None:
            record['log_file_url'] = self.blobs.store(log_file, filename or 'flight-log.bin')

        event = self.events.create(record)
        logger.info(f'Maintenance event {event["id"]} opened for aircraft {aircraft_id}')

        if grounding:
            self.aircraft.ground(aircraft_id, maintenance_claim(event['id']))

        return event

    def start_work(self, event_id: str) -> Record:
        event = self.events.get(event_id)
        if event.get('status') != MaintenanceStatus.SCHEDULED.value:
            raise InvalidTransition(f'Maintenance event {event_id} is {event.get("status")}, not scheduled')
        return self.events.update(event_id, {'status': MaintenanceStatus.IN_PROGRESS.value})

    def complete_event(self, event_id: str, force: bool = False) -> TransitionResult:
        """
        Close an event and return a grounded aircraft to service.

        Release failures keep the event open unless forced, the same way
        mission-day closure does.
        """
        event = self.events.get(event_id)
        if event.get('status') == MaintenanceStatus.COMPLETED.value:
            raise InvalidTransition(f'Maintenance event {event_id} is already completed')

        claim = maintenance_claim(event_id)
        aircraft_id = event.get('aircraft_id')
        report = None
        inconsistent = False

        if aircraft_id and claim in self.aircraft.ledger.claims_for(aircraft_id):
            report = self.aircraft.release([aircraft_id], claim, halt_on_permission=not force)
            if not report.ok:
                if not force:
                    return TransitionResult(
                        committed=False,
                        record=event,
                        report=report,
                        remediation=PERMISSION_REMEDIATION if report.permission_denied else None,
                    )
                self.aircraft.abandon_claims([aircraft_id], claim)
                inconsistent = True

        try:
            completed = self.events.update(event_id, {
                'status': MaintenanceStatus.COMPLETED.value,
                'completed_at': utc_now().isoformat(),
            })
        except StoreError as e:
            if report is not None:
                self.aircraft.reclaim([aircraft_id], claim)
            logger.error(f'Maintenance event {event_id} left open, completion refused: {e}')
            refused = TransitionResult(
                committed=False,
                record=event,
                report=report,
                write_failures=[WriteFailure.from_error('maintenance_event', event_id, e)],
            )
            refused.remediation = PERMISSION_REMEDIATION if refused.permission_denied else None
            return refused
        logger.info(f'Maintenance event {event_id} completed')

        return TransitionResult(
            committed=True,
            record=completed,
            report=report,
            inconsistent=inconsistent,
            remediation=PERMISSION_REMEDIATION if inconsistent and report.permission_denied else None,
        )
