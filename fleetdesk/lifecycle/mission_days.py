"""
Mission-day lifecycle for multi-day missions.

    open -> closed

Each day of a multi-day mission records who flew, which aircraft were
used, and free-text progress notes. Allocating an aircraft to a day claims
it for operation; closing the day releases every aircraft linked to it.
Saving notes never touches aircraft.
"""

import logging
from dataclasses import dataclass
from typing import Any, List, Optional

from fleetdesk.entities import (
    MissionDayStatus,
    MissionStatus,
    PersonnelRole,
    Record,
)
from fleetdesk.errors import (
    PERMISSION_REMEDIATION,
    InvalidTransition,
    PermissionDenied,
    StoreError,
)
from fleetdesk.lifecycle.aircraft import AircraftLifecycle, day_claim
from fleetdesk.lifecycle.reports import TransitionResult, WriteFailure

logger = logging.getLogger(__name__)

NOTES_SAVED_NOTICE = (
    'Notes saved. The day remains open and its aircraft remain in operation; '
    'close the day to release them.'
)


@dataclass
class AllocationResult:
    """A new day/aircraft link and whether the aircraft status followed."""
    link: Record
    status_updated: bool = True
    error: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            'link': self.link,
            'status_updated': self.status_updated,
            'error': self.error,
            'remediation': PERMISSION_REMEDIATION if not self.status_updated else None,
        }


class MissionDayLifecycle:
    """Creates, staffs, annotates, closes and deletes mission days."""

    def __init__(
        self,
        missions,
        days,
        day_aircraft,
        day_personnel,
        aircraft: AircraftLifecycle,
    ):
        self.missions = missions
        self.days = days
        self.day_aircraft = day_aircraft
        self.day_personnel = day_personnel
        self.aircraft = aircraft

    def days_for(self, mission_id: str) -> List[Record]:
        return self.days.filter({'mission_id': mission_id})

    def aircraft_links(self, day_id: str) -> List[Record]:
        return self.day_aircraft.filter({'mission_day_id': day_id})

    def personnel_links(self, day_id: str) -> List[Record]:
        return self.day_personnel.filter({'mission_day_id': day_id})

    def _require_open(self, day_id: str) -> Record:
        day = self.days.get(day_id)
        if day.get('status') != MissionDayStatus.OPEN.value:
            raise InvalidTransition(f'Mission day {day_id} is closed')
        return day

    def create_day(
        self,
        mission_id: str,
        date: Any,
        responsible_pilot_id: Optional[str],
        weather_summary: str = '',
        progress_notes: str = '',
    ) -> Record:
        """
        Add a day to an active multi-day mission.

        Raises:
            ValueError: no responsible pilot
            NotFound: unknown mission
            InvalidTransition: mission not active or not multi-day
        """
        if not responsible_pilot_id:
            raise ValueError('A responsible pilot is required to open a mission day')

        mission = self.missions.get(mission_id)
        if mission.get('status') != MissionStatus.ACTIVE.value:
            raise InvalidTransition(f'Mission {mission_id} is not active')
        if not mission.get('is_multi_day'):
            raise InvalidTransition(f'Mission {mission_id} is not a multi-day mission')

        day = self.days.create({
            'mission_id': mission_id,
            'date': date,
            'responsible_pilot_id': responsible_pilot_id,
            'weather_summary': weather_summary,
            'progress_notes': progress_notes,
            'status': MissionDayStatus.OPEN.value,
        })
        logger.info(f'Mission day {day["id"]} opened for mission {mission_id}')
        return day

    def allocate_aircraft(self, day_id: str, aircraft_id: str) -> AllocationResult:
        """
        Link an aircraft to an open day and put it into operation.

        When the status write is refused the link stays and the result
        reports status_updated=False.
        """
        day = self._require_open(day_id)
        self.aircraft.check_available(aircraft_id)

        link = self.day_aircraft.create({
            'mission_day_id': day_id,
            'mission_id': day.get('mission_id'),
            'aircraft_id': aircraft_id,
        })

        try:
            self.aircraft.assign(aircraft_id, day_claim(day_id))
        except PermissionDenied as e:
            logger.error(f'Aircraft {aircraft_id} linked to day {day_id} but status not updated: {e}')
            return AllocationResult(link=link, status_updated=False, error=str(e))

        return AllocationResult(link=link)

    def allocate_personnel(self, day_id: str, pilot_id: str, role=PersonnelRole.OBSERVER) -> Record:
        self._require_open(day_id)
        role = PersonnelRole(role)
        return self.day_personnel.create({
            'mission_day_id': day_id,
            'pilot_id': pilot_id,
            'role': role.value,
        })

    def save_notes(self, day_id: str, notes: str):
        """
        Update progress notes of an open day. Returns (day, operator notice).

        Raises:
            NotFound: unknown day
            InvalidTransition: day already closed
        """
        self._require_open(day_id)
        day = self.days.update(day_id, {'progress_notes': notes})
        return day, NOTES_SAVED_NOTICE

    def close_day(self, day_id: str, force: bool = False) -> TransitionResult:
        """
        Release every aircraft of the day, then close it.

        Without force, a permission refusal halts the release loop and any
        failure keeps the day open; the result lists each aircraft that was
        not released. With force the day closes anyway and the result is
        flagged inconsistent.
        """
        day = self._require_open(day_id)
        claim = day_claim(day_id)
        aircraft_ids = [link['aircraft_id'] for link in self.aircraft_links(day_id) if link.get('aircraft_id')]

        report = self.aircraft.release(aircraft_ids, claim, halt_on_permission=not force)

        inconsistent = False
        if not report.ok:
            if not force:
                logger.warning(f'Mission day {day_id} left open: aircraft {report.failed_ids} not released')
                return TransitionResult(
                    committed=False,
                    record=day,
                    report=report,
                    remediation=PERMISSION_REMEDIATION if report.permission_denied else None,
                )
            self.aircraft.abandon_claims(report.failed_ids, claim)
            inconsistent = True

        try:
            closed = self.days.update(day_id, {'status': MissionDayStatus.CLOSED.value})
        except StoreError as e:
            self.aircraft.reclaim(aircraft_ids, claim)
            logger.error(f'Mission day {day_id} left open, closure refused: {e}')
            refused = TransitionResult(
                committed=False,
                record=day,
                report=report,
                write_failures=[WriteFailure.from_error('mission_day', day_id, e)],
            )
            refused.remediation = PERMISSION_REMEDIATION if refused.permission_denied else None
            return refused
        logger.info(f'Mission day {day_id} closed, {len(report.released)} aircraft released')

        return TransitionResult(
            committed=True,
            record=closed,
            report=report,
            inconsistent=inconsistent,
            remediation=PERMISSION_REMEDIATION if inconsistent and report.permission_denied else None,
        )

    def delete_day(self, day_id: str) -> None:
        """
        Delete a day and its links.

        Aircraft status is left alone; any claim the day still holds stays
        in the ledger until an operator resets the aircraft.
        """
        self.days.get(day_id)
        for link in self.aircraft_links(day_id):
            self.day_aircraft.delete(link['id'])
        for link in self.personnel_links(day_id):
            self.day_personnel.delete(link['id'])
        self.days.delete(day_id)
        logger.info(f'Mission day {day_id} deleted')
