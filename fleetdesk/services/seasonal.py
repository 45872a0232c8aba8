"""
Seasonal operations reporting.

Missions flagged as part of the seasonal programme get a secondary record
in the seasonal flights collection when they complete. The record feeds
the programme's own statistics and is not part of the mission lifecycle:
callers treat failures here as non-fatal.
"""

import logging
from typing import Optional

from fleetdesk.entities import Record, parse_timestamp

logger = logging.getLogger(__name__)


def duration_minutes(start_time, end_time) -> int:
    start = parse_timestamp(start_time)
    end = parse_timestamp(end_time)
    if start is None or end is None:
        return 0
    return max(round((end - start).total_seconds() / 60), 0)


class SeasonalReporter:
    """Writes seasonal flight records through their own entity store."""

    def __init__(self, store):
        self.store = store

    def record(self, mission: Record, flight_log: Optional[Record] = None) -> Record:
        minutes = duration_minutes(mission.get('start_time'), mission.get('end_time'))
        if not minutes and flight_log:
            minutes = round(float(flight_log.get('flight_hours') or 0) * 60)

        end = parse_timestamp(mission.get('end_time'))
        entry = self.store.create({
            'mission_id': mission.get('id'),
            'pilot_id': mission.get('pilot_id'),
            'aircraft_id': mission.get('aircraft_id'),
            'date': end.date().isoformat() if end else None,
            'location': mission.get('name'),
            'mission_type': mission.get('mission_type'),
            'start_time': mission.get('start_time'),
            'end_time': mission.get('end_time'),
            'flight_duration': minutes,
        })
        logger.info(f'Seasonal flight recorded for mission {mission.get("id")} ({minutes} min)')
        return entry
