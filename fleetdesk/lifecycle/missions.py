"""
Mission lifecycle.

    active -> completed
    active -> cancelled

Opening a mission checks the airspace, numbers the mission, and puts its
aircraft into operation. Completing it releases the aircraft, books the
flight hours and appends a flight log. Release failures hold the mission
open unless the operator forces the transition.
"""

import logging
import re
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Mapping, Optional

from fleetdesk.conflicts import Conflict, ConflictNotifier, detect_conflicts
from fleetdesk.entities import (
    MissionStatus,
    Record,
    parse_timestamp,
    utc_now,
)
from fleetdesk.errors import (
    PERMISSION_REMEDIATION,
    ConflictsRequireAcknowledgement,
    InvalidTransition,
    PermissionDenied,
    StoreError,
)
from fleetdesk.lifecycle.aircraft import AircraftLifecycle, mission_claim
from fleetdesk.lifecycle.reports import ReleaseReport, TransitionResult, WriteFailure

logger = logging.getLogger(__name__)

PROTOCOL_PREFIX = 'ARP'
DEFAULT_UNIT_CODE = 'HQ'

# Fields that move the mission's airspace and trigger a new conflict check
GEOMETRY_FIELDS = ('latitude', 'longitude', 'radius')


def flight_hours_between(start: Optional[datetime], end: Optional[datetime]) -> float:
    """Elapsed hours rounded to one decimal, never negative."""
    if start is None or end is None:
        return 0.0
    seconds = max((end - start).total_seconds(), 0)
    return round(seconds / 3600, 1)


def unit_code(unit: Optional[str]) -> str:
    cleaned = re.sub(r'[^A-Za-z0-9]', '', unit or '').upper()
    return cleaned or DEFAULT_UNIT_CODE


def next_occurrence_number(missions: List[Record], unit: Optional[str], year: Optional[int] = None) -> str:
    """
    Next mission protocol number: <year>ARP<unit><5-digit sequence>.

    The sequence continues from the highest number already issued for the
    same year and unit.
    """
    year = year or utc_now().year
    prefix = f'{year}{PROTOCOL_PREFIX}{unit_code(unit)}'

    sequence = 0
    for mission in missions:
        number = mission.get('occurrence_number') or ''
        if not number.startswith(prefix):
            continue
        match = re.search(r'(\d{5})$', number)
        if match:
            sequence = max(sequence, int(match.group(1)))

    return f'{prefix}{sequence + 1:05d}'


@dataclass
class OpenMissionResult:
    """
    A newly opened mission, plus what happened around it.

    The mission is committed whenever this is returned. status_updated and
    notice_errors (target pilot id -> error) report follow-up writes that
    did not go through.
    """
    mission: Record
    conflicts: List[Conflict] = field(default_factory=list)
    notices: List[Record] = field(default_factory=list)
    status_updated: bool = True
    error: Optional[str] = None
    notice_errors: Dict[str, str] = field(default_factory=dict)
    permission_denied: bool = False

    @property
    def remediation(self) -> Optional[str]:
        return PERMISSION_REMEDIATION if self.permission_denied else None

    def to_dict(self) -> dict:
        return {
            'mission': self.mission,
            'conflicts': [c.to_dict() for c in self.conflicts],
            'notices': self.notices,
            'status_updated': self.status_updated,
            'error': self.error,
            'notice_errors': dict(self.notice_errors),
            'remediation': self.remediation,
        }


class MissionLifecycle:
    """Opens, edits, completes, cancels and purges missions."""

    def __init__(
        self,
        missions,
        aircraft: AircraftLifecycle,
        notifier: Optional[ConflictNotifier] = None,
        flight_logs=None,
        seasonal=None,
        days=None,
    ):
        """
        Args:
            missions: EntityStore for Mission
            aircraft: Aircraft lifecycle (owns the allocation ledger)
            notifier: Sends conflict notices when conflicts are acknowledged
            flight_logs: EntityStore for FlightLog
            seasonal: SeasonalReporter for seasonal-programme missions
            days: MissionDayLifecycle, used when purging
        """
        self.missions = missions
        self.aircraft = aircraft
        self.notifier = notifier
        self.flight_logs = flight_logs
        self.seasonal = seasonal
        self.days = days

    def _active_missions(self) -> List[Record]:
        return self.missions.filter({'status': MissionStatus.ACTIVE.value})

    def check_airspace(self, candidate: Mapping[str, Any], exclude_id: Optional[str] = None) -> List[Conflict]:
        return detect_conflicts(candidate, self._active_missions(), exclude_id=exclude_id)

    def _require_active(self, mission_id: str) -> Record:
        mission = self.missions.get(mission_id)
        if mission.get('status') != MissionStatus.ACTIVE.value:
            raise InvalidTransition(f'Mission {mission_id} is {mission.get("status")}, not active')
        return mission

    # -------------------------------------------------------------------------
    # Opening and editing
    # -------------------------------------------------------------------------

    def open_mission(self, data: Mapping[str, Any], acknowledge_conflicts: bool = False) -> OpenMissionResult:
        """
        Open a new mission.

        Raises:
            ValueError: name or coordinates missing
            ConflictsRequireAcknowledgement: airspace overlaps and the
                operator has not acknowledged it (nothing is written)
            AircraftUnavailable: aircraft is grounded
        """
        if not data.get('name'):
            raise ValueError('Mission name is required')
        if data.get('latitude') is None or data.get('longitude') is None:
            raise ValueError('Mission latitude and longitude are required')

        conflicts = self.check_airspace(data)
        if conflicts and not acknowledge_conflicts:
            raise ConflictsRequireAcknowledgement(conflicts)

        aircraft_id = data.get('aircraft_id')
        if aircraft_id:
            self.aircraft.check_available(aircraft_id)

        record = dict(data)
        record['status'] = MissionStatus.ACTIVE.value
        record['start_time'] = data.get('start_time') or utc_now().isoformat()
        record['occurrence_number'] = next_occurrence_number(self.missions.list(), data.get('unit'))
        record.setdefault('radius', 0)
        record.setdefault('is_multi_day', False)

        mission = self.missions.create(record)
        logger.info(f'Mission {mission["id"]} opened as {mission.get("occurrence_number")}')

        result = OpenMissionResult(mission=mission, conflicts=conflicts)

        if aircraft_id:
            try:
                self.aircraft.assign(aircraft_id, mission_claim(mission['id']))
            except PermissionDenied as e:
                result.status_updated = False
                result.error = str(e)
                result.permission_denied = True
                logger.error(f'Mission {mission["id"]} opened but aircraft {aircraft_id} status not updated: {e}')

        if conflicts and self.notifier is not None:
            failures: Dict[str, StoreError] = {}
            try:
                result.notices = self.notifier.notify(mission, conflicts, errors=failures)
            except StoreError as e:
                for conflict in conflicts:
                    failures.setdefault(conflict.mission.get('pilot_id') or conflict.mission_id, e)
                logger.error(f'Conflict notices for mission {mission["id"]} not sent: {e}')
            for target, error in failures.items():
                result.notice_errors[target] = str(error)
                if isinstance(error, PermissionDenied):
                    result.permission_denied = True

        return result

    def update_mission(
        self,
        mission_id: str,
        patch: Mapping[str, Any],
        acknowledge_conflicts: bool = False,
    ) -> Record:
        """
        Edit a mission.

        Moving or resizing an active mission re-runs the airspace check
        against every other active mission.
        """
        current = self.missions.get(mission_id)
        active = current.get('status') == MissionStatus.ACTIVE.value

        if active and any(f in patch for f in GEOMETRY_FIELDS):
            conflicts = self.check_airspace({**current, **patch}, exclude_id=mission_id)
            if conflicts and not acknowledge_conflicts:
                raise ConflictsRequireAcknowledgement(conflicts)

        if active and 'aircraft_id' in patch and patch['aircraft_id'] != current.get('aircraft_id'):
            raise InvalidTransition('Aircraft of an active mission cannot be swapped; complete or cancel it first')

        if 'status' in patch and patch['status'] != current.get('status'):
            raise InvalidTransition('Mission status changes go through complete or cancel')

        return self.missions.update(mission_id, patch)

    # -------------------------------------------------------------------------
    # Terminal transitions
    # -------------------------------------------------------------------------

    def _release_mission_aircraft(
        self,
        mission: Record,
        force: bool,
    ) -> Optional[ReleaseReport]:
        aircraft_id = mission.get('aircraft_id')
        if not aircraft_id:
            return None
        return self.aircraft.release(
            [aircraft_id],
            mission_claim(mission['id']),
            halt_on_permission=not force,
        )

    def _held_back(self, mission: Record, report: ReleaseReport) -> TransitionResult:
        logger.warning(f'Mission {mission["id"]} left active: aircraft {report.failed_ids} not released')
        return TransitionResult(
            committed=False,
            record=mission,
            report=report,
            remediation=PERMISSION_REMEDIATION if report.permission_denied else None,
        )

    def complete_mission(
        self,
        mission_id: str,
        end_time: Optional[Any] = None,
        description: Optional[str] = None,
        force: bool = False,
    ) -> TransitionResult:
        """
        Complete an active mission.

        The aircraft is released first, then the mission is marked
        completed. Flight hours (end minus start, rounded to one decimal)
        and the flight log are written only after that commit, so a
        refused completion can be retried without booking hours twice.
        Follow-up writes that fail are itemized on the result.
        """
        mission = self._require_active(mission_id)

        start = parse_timestamp(mission.get('start_time')) or parse_timestamp(mission.get('created_at'))
        end = parse_timestamp(end_time) or utc_now()
        hours = flight_hours_between(start, end)
        aircraft_id = mission.get('aircraft_id')
        claim = mission_claim(mission_id)

        report = self._release_mission_aircraft(mission, force)
        inconsistent = False
        if report is not None and not report.ok:
            if not force:
                return self._held_back(mission, report)
            self.aircraft.abandon_claims([aircraft_id], claim)
            inconsistent = True

        patch = {
            'status': MissionStatus.COMPLETED.value,
            'end_time': end.isoformat(),
            'flight_hours': hours,
        }
        if description:
            patch['description'] = description
        try:
            completed = self.missions.update(mission_id, patch)
        except StoreError as e:
            return self._transition_refused(mission, report, e)
        logger.info(f'Mission {mission_id} completed ({hours} h)')

        failures: List[WriteFailure] = []
        if aircraft_id:
            try:
                self.aircraft.add_flight_hours(aircraft_id, hours)
            except StoreError as e:
                failures.append(WriteFailure.from_error('flight_hours', aircraft_id, e))
                logger.error(f'Flight hours of mission {mission_id} not booked on aircraft {aircraft_id}: {e}')

        flight_log = None
        if self.flight_logs is not None:
            try:
                flight_log = self._append_flight_log(completed, end, hours)
            except StoreError as e:
                failures.append(WriteFailure.from_error('flight_log', mission_id, e))
                logger.error(f'Flight log for mission {mission_id} not written: {e}')

        if completed.get('is_seasonal_op') and self.seasonal is not None:
            try:
                self.seasonal.record(completed, flight_log)
            except Exception as e:
                failures.append(WriteFailure.from_error('seasonal_record', mission_id, e))
                logger.error(f'Seasonal report for mission {mission_id} failed: {e}')

        result = TransitionResult(
            committed=True,
            record=completed,
            report=report,
            inconsistent=inconsistent or bool(failures),
            write_failures=failures,
            extra={'flight_hours': hours, 'flight_log': flight_log},
        )
        if result.permission_denied:
            result.remediation = PERMISSION_REMEDIATION
        return result

    def _transition_refused(
        self,
        mission: Record,
        report: Optional[ReleaseReport],
        error: StoreError,
    ) -> TransitionResult:
        """The mission write failed after its aircraft was released, so the claim goes back."""
        aircraft_id = mission.get('aircraft_id')
        if aircraft_id:
            self.aircraft.reclaim([aircraft_id], mission_claim(mission['id']))
        logger.error(f'Mission {mission["id"]} left active, transition refused: {error}')

        result = TransitionResult(
            committed=False,
            record=mission,
            report=report,
            write_failures=[WriteFailure.from_error('mission', mission['id'], error)],
        )
        if result.permission_denied:
            result.remediation = PERMISSION_REMEDIATION
        return result

    def _append_flight_log(self, mission: Record, end: datetime, hours: float) -> Record:
        return self.flight_logs.create({
            'mission_id': mission['id'],
            'pilot_id': mission.get('pilot_id'),
            'aircraft_id': mission.get('aircraft_id'),
            'flight_date': end.date().isoformat(),
            'flight_hours': hours,
            'mission_type': mission.get('mission_type'),
        })

    def cancel_mission(self, mission_id: str, force: bool = False) -> TransitionResult:
        """Cancel an active mission. Releases the aircraft; no hours accrue."""
        mission = self._require_active(mission_id)

        report = self._release_mission_aircraft(mission, force)
        inconsistent = False
        if report is not None and not report.ok:
            if not force:
                return self._held_back(mission, report)
            self.aircraft.abandon_claims([mission['aircraft_id']], mission_claim(mission_id))
            inconsistent = True

        try:
            cancelled = self.missions.update(mission_id, {
                'status': MissionStatus.CANCELLED.value,
                'end_time': utc_now().isoformat(),
            })
        except StoreError as e:
            return self._transition_refused(mission, report, e)
        logger.info(f'Mission {mission_id} cancelled')

        return TransitionResult(
            committed=True,
            record=cancelled,
            report=report,
            inconsistent=inconsistent,
            remediation=PERMISSION_REMEDIATION if inconsistent and report.permission_denied else None,
        )

    def purge_mission(self, mission_id: str) -> Optional[ReleaseReport]:
        """
        Administrative delete of a mission and its days.

        An active mission's aircraft claim is released first; failures are
        logged and do not stop the purge.
        """
        mission = self.missions.get(mission_id)

        report = None
        if mission.get('status') == MissionStatus.ACTIVE.value:
            report = self._release_mission_aircraft(mission, force=True)
            if report is not None and not report.ok:
                self.aircraft.abandon_claims(report.failed_ids, mission_claim(mission_id))
                logger.warning(f'Purged mission {mission_id} left aircraft {report.failed_ids} unreleased')

        if self.days is not None:
            for day in self.days.days_for(mission_id):
                self.days.delete_day(day['id'])

        self.missions.delete(mission_id)
        logger.info(f'Mission {mission_id} purged')
        return report
