"""
Airspace conflict detection using NumPy.

A mission reserves a circular volume of airspace around its centre. Two
missions conflict when their circles, plus a fixed safety margin, overlap:

    distance(c1, c2) < r1 + r2 + SAFETY_MARGIN_M

Distances are great-circle (haversine) metres, computed for the candidate
against every active mission in one vectorised pass.

Detection is advisory: the operator may acknowledge the conflicts and
proceed, in which case the pilots of the overlapping missions receive a
ConflictNotice.
"""

import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, Optional

import numpy as np

from fleetdesk.entities import MissionStatus, Record, utc_now_iso
from fleetdesk.errors import StoreError

logger = logging.getLogger(__name__)

EARTH_RADIUS_M = 6_371_000.0
SAFETY_MARGIN_M = 100.0


def haversine_m(lat1, lon1, lat2, lon2) -> np.ndarray:
    """
    Great-circle distance in metres.

    Accepts scalars or arrays; broadcasting follows NumPy rules, so one
    candidate point can be measured against many missions at once.
    """
    lat1_rad = np.radians(lat1)
    lat2_rad = np.radians(lat2)
    delta_lat = lat2_rad - lat1_rad
    delta_lon = np.radians(np.asarray(lon2, dtype=float) - np.asarray(lon1, dtype=float))

    a = (
        np.sin(delta_lat / 2) ** 2 +
        np.cos(lat1_rad) * np.cos(lat2_rad) *
        np.sin(delta_lon / 2) ** 2
    )
    c = 2 * np.arctan2(np.sqrt(a), np.sqrt(1 - a))

    return EARTH_RADIUS_M * c


def _coordinate(record: Mapping[str, Any], key: str) -> Optional[float]:
    value = record.get(key)
    if value is None or value == '':
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


@dataclass
class Conflict:
    """One active mission whose airspace overlaps the candidate."""
    mission: Record
    distance_m: float
    required_separation_m: float

    @property
    def mission_id(self) -> Optional[str]:
        return self.mission.get('id')

    @property
    def overlap_m(self) -> float:
        return self.required_separation_m - self.distance_m

    def to_dict(self) -> dict:
        return {
            'mission_id': self.mission_id,
            'mission_name': self.mission.get('name'),
            'pilot_id': self.mission.get('pilot_id'),
            'distance_m': round(self.distance_m, 1),
            'required_separation_m': round(self.required_separation_m, 1),
        }


def detect_conflicts(
    candidate: Mapping[str, Any],
    missions: List[Record],
    exclude_id: Optional[str] = None,
) -> List[Conflict]:
    """
    Find active missions whose airspace overlaps the candidate's.

    Args:
        candidate: Mapping with latitude, longitude and radius (metres)
        missions: Missions to check against; non-active ones are ignored
        exclude_id: Mission id to skip (the candidate's own prior version)

    Returns:
        Conflicts sorted by distance, nearest first.
    """
    lat = _coordinate(candidate, 'latitude')
    lon = _coordinate(candidate, 'longitude')
    if lat is None or lon is None:
        return []
    radius = _coordinate(candidate, 'radius') or 0.0

    others = []
    for mission in missions:
        if mission.get('status') != MissionStatus.ACTIVE.value:
            continue
        if exclude_id is not None and mission.get('id') == exclude_id:
            continue
        if _coordinate(mission, 'latitude') is None or _coordinate(mission, 'longitude') is None:
            continue
        others.append(mission)

    if not others:
        return []

    lats = np.array([_coordinate(m, 'latitude') for m in others])
    lons = np.array([_coordinate(m, 'longitude') for m in others])
    radii = np.array([_coordinate(m, 'radius') or 0.0 for m in others])

    distances = haversine_m(lat, lon, lats, lons)
    required = radius + radii + SAFETY_MARGIN_M
    hits = np.flatnonzero(distances < required)

    conflicts = [
        Conflict(
            mission=others[i],
            distance_m=float(distances[i]),
            required_separation_m=float(required[i]),
        )
        for i in hits
    ]
    conflicts.sort(key=lambda c: c.distance_m)

    if conflicts:
        logger.info(f'{len(conflicts)} airspace conflict(s) for candidate at ({lat:.5f}, {lon:.5f})')
    return conflicts


class ConflictNotifier:
    """Creates and acknowledges conflict notices for affected pilots."""

    def __init__(self, notices, pilots=None):
        """
        Args:
            notices: EntityStore for ConflictNotice
            pilots: EntityStore for Pilot, used to resolve the new pilot's contact
        """
        self.notices = notices
        self.pilots = pilots

    def _pilot(self, pilot_id: Optional[str]) -> Record:
        if not pilot_id or self.pilots is None:
            return {}
        found = self.pilots.filter({'id': pilot_id})
        return found[0] if found else {}

    def notify(
        self,
        new_mission: Record,
        conflicts: List[Conflict],
        new_pilot: Optional[Record] = None,
        errors: Optional[Dict[str, StoreError]] = None,
    ) -> List[Record]:
        """
        Create one notice per conflict, addressed to the other mission's pilot.

        When an errors dict is given, a notice that cannot be written is
        recorded there under its target pilot id and the remaining notices
        are still sent. Otherwise the first failure propagates.
        """
        if not conflicts:
            return []

        pilot = new_pilot if new_pilot is not None else self._pilot(new_mission.get('pilot_id'))
        created = []
        for conflict in conflicts:
            target = conflict.mission.get('pilot_id')
            if not target:
                logger.warning(f'Mission {conflict.mission_id} has no pilot to notify')
                continue
            try:
                notice = self.notices.create({
                    'target_pilot_id': target,
                    'new_mission_id': new_mission.get('id'),
                    'new_mission_name': new_mission.get('name'),
                    'new_pilot_name': pilot.get('full_name'),
                    'new_pilot_phone': pilot.get('phone'),
                    'new_mission_altitude': new_mission.get('altitude'),
                    'new_mission_radius': new_mission.get('radius'),
                    'acknowledged': False,
                    'created_at': utc_now_iso(),
                })
            except StoreError as e:
                if errors is None:
                    raise
                errors[target] = e
                logger.error(f'Conflict notice for pilot {target} not written: {e}')
                continue
            created.append(notice)

        logger.info(f'Sent {len(created)} conflict notice(s) for mission {new_mission.get("id")}')
        return created

    def pending_for(self, pilot_id: str) -> List[Record]:
        return self.notices.filter({'target_pilot_id': pilot_id, 'acknowledged': False})

    def acknowledge(self, notice_id: str) -> Record:
        return self.notices.update(notice_id, {'acknowledged': True})
