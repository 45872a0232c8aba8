"""
Entity type descriptors and record helpers.

Records travel as plain dicts (the remote speaks JSON), so each entity type
is described by an EntityType: where it lives remotely, which mirror key
holds its local copy, how it is ordered by default, and which fields a
patch may touch. The mutable field set is the patch type for the entity;
anything outside it is rejected before a call is made.
"""

from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from enum import Enum
from typing import Any, Callable, Dict, FrozenSet, Iterable, List, Mapping, Optional, Tuple, Union

from fleetdesk.errors import InvalidPatch


class AircraftStatus(str, Enum):
    """Availability of a drone."""
    AVAILABLE = 'available'
    IN_OPERATION = 'in_operation'
    MAINTENANCE = 'maintenance'


class MissionStatus(str, Enum):
    ACTIVE = 'active'
    COMPLETED = 'completed'
    CANCELLED = 'cancelled'


class MissionDayStatus(str, Enum):
    OPEN = 'open'
    CLOSED = 'closed'


class MaintenanceStatus(str, Enum):
    SCHEDULED = 'scheduled'
    IN_PROGRESS = 'in_progress'
    COMPLETED = 'completed'


class MaintenanceType(str, Enum):
    PREVENTIVE = 'preventive'
    CORRECTIVE = 'corrective'
    INSPECTION = 'inspection'
    CALIBRATION = 'calibration'
    BATTERY = 'battery'
    PROPELLER = 'propeller'
    CAMERA = 'camera'
    GENERAL = 'general'


class PersonnelRole(str, Enum):
    PILOT_IN_COMMAND = 'pilot_in_command'
    OBSERVER = 'observer'


Record = Dict[str, Any]
Predicate = Union[Mapping[str, Any], Callable[[Record], bool]]


@dataclass(frozen=True)
class EntityType:
    """
    Static description of one record type.

    Fields:
        name: Logical name used in logs and the pending-operations log
        collection: Remote collection (table) name
        storage_key: Local mirror key
        mutable_fields: Fields an update may change; empty means immutable
        default_order: Order key used when list() gets none
        seed: Records placed in an empty mirror when the remote is down
    """
    name: str
    collection: str
    storage_key: str
    mutable_fields: FrozenSet[str] = frozenset()
    default_order: str = '-created_at'
    seed: Tuple[Record, ...] = field(default_factory=tuple)

    def validate_patch(self, patch: Mapping[str, Any]) -> Record:
        """Return a serialized copy of the patch, or raise InvalidPatch."""
        rejected = set(patch) - self.mutable_fields
        if rejected:
            raise InvalidPatch(self.name, rejected)
        return serialize_record(patch)


# Default fleet for a first start with no network and no mirror
DEFAULT_FLEET: Tuple[Record, ...] = (
    {
        'id': 'seed-1',
        'prefix': 'HARPIA 01',
        'brand': 'DJI',
        'model': 'Matrice 30T',
        'serial_number': 'SN12345678',
        'status': AircraftStatus.AVAILABLE.value,
        'total_flight_hours': 120.5,
        'created_at': '2024-01-01T00:00:00+00:00',
    },
    {
        'id': 'seed-2',
        'prefix': 'HARPIA 02',
        'brand': 'DJI',
        'model': 'Mavic 3 Thermal',
        'serial_number': 'SN87654321',
        'status': AircraftStatus.AVAILABLE.value,
        'total_flight_hours': 45.2,
        'created_at': '2024-01-01T00:00:00+00:00',
    },
)


MISSION = EntityType(
    name='Mission',
    collection='missions',
    storage_key='fleetdesk_missions',
    mutable_fields=frozenset({
        'name', 'status', 'end_time', 'flight_hours', 'description', 'notes',
        'radius', 'altitude', 'latitude', 'longitude', 'is_multi_day',
        'stream_url', 'aircraft_id', 'pilot_id',
    }),
)

AIRCRAFT = EntityType(
    name='Aircraft',
    collection='aircraft',
    storage_key='fleetdesk_aircraft',
    mutable_fields=frozenset({
        'status', 'total_flight_hours', 'prefix', 'model', 'brand',
        'serial_number', 'registration', 'last_check_at',
    }),
    seed=DEFAULT_FLEET,
)

PILOT = EntityType(
    name='Pilot',
    collection='pilots',
    storage_key='fleetdesk_pilots',
    mutable_fields=frozenset({'full_name', 'phone', 'unit', 'status', 'role'}),
)

MAINTENANCE_EVENT = EntityType(
    name='MaintenanceEvent',
    collection='maintenance_events',
    storage_key='fleetdesk_maintenance',
    mutable_fields=frozenset({
        'status', 'description', 'technician', 'cost', 'completed_at',
        'log_file_url', 'next_maintenance_date',
    }),
    default_order='-maintenance_date',
)

MISSION_DAY = EntityType(
    name='MissionDay',
    collection='mission_days',
    storage_key='fleetdesk_mission_days',
    mutable_fields=frozenset({
        'status', 'progress_notes', 'weather_summary', 'responsible_pilot_id', 'date',
    }),
    default_order='-date',
)

MISSION_DAY_AIRCRAFT = EntityType(
    name='MissionDayAircraftLink',
    collection='mission_day_aircraft',
    storage_key='fleetdesk_day_aircraft',
)

MISSION_DAY_PERSONNEL = EntityType(
    name='MissionDayPersonnelLink',
    collection='mission_day_personnel',
    storage_key='fleetdesk_day_personnel',
)

CONFLICT_NOTICE = EntityType(
    name='ConflictNotice',
    collection='conflict_notices',
    storage_key='fleetdesk_conflict_notices',
    mutable_fields=frozenset({'acknowledged'}),
)

FLIGHT_LOG = EntityType(
    name='FlightLog',
    collection='flight_logs',
    storage_key='fleetdesk_flight_logs',
    default_order='-flight_date',
)

SEASONAL_FLIGHT = EntityType(
    name='SeasonalFlight',
    collection='seasonal_flights',
    storage_key='fleetdesk_seasonal_flights',
    default_order='-date',
)

ENTITY_TYPES: Tuple[EntityType, ...] = (
    MISSION,
    AIRCRAFT,
    PILOT,
    MAINTENANCE_EVENT,
    MISSION_DAY,
    MISSION_DAY_AIRCRAFT,
    MISSION_DAY_PERSONNEL,
    CONFLICT_NOTICE,
    FLIGHT_LOG,
    SEASONAL_FLIGHT,
)


# -------------------------------------------------------------------------
# Record helpers
# -------------------------------------------------------------------------

def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def utc_now_iso() -> str:
    return utc_now().isoformat()


def parse_timestamp(value: Any) -> Optional[datetime]:
    """Parse an ISO-8601 string (or pass a datetime through) as aware UTC."""
    if value is None or value == '':
        return None
    if isinstance(value, datetime):
        parsed = value
    else:
        try:
            parsed = datetime.fromisoformat(str(value).replace('Z', '+00:00'))
        except ValueError:
            return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _serialize_value(value: Any) -> Any:
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, date):
        return value.isoformat()
    if isinstance(value, (list, tuple)):
        return [_serialize_value(v) for v in value]
    if isinstance(value, dict):
        return {k: _serialize_value(v) for k, v in value.items()}
    return value


def serialize_record(record: Mapping[str, Any]) -> Record:
    """Copy a record with enums and dates turned into JSON-friendly values."""
    return {key: _serialize_value(value) for key, value in record.items()}


def matches(record: Record, criteria: Mapping[str, Any]) -> bool:
    """Equality match on every field of the criteria."""
    return all(record.get(key) == _serialize_value(value) for key, value in criteria.items())


def apply_predicate(records: Iterable[Record], predicate: Predicate) -> List[Record]:
    if callable(predicate):
        return [r for r in records if predicate(r)]
    return [r for r in records if matches(r, predicate)]


def sort_records(records: Iterable[Record], order_by: Optional[str]) -> List[Record]:
    """
    Sort records by an order key ('field' or '-field').

    Records missing the field go last in either direction, which is how the
    remote orders NULLs for descending queries.
    """
    records = list(records)
    if not order_by:
        return records

    descending = order_by.startswith('-')
    column = order_by.lstrip('-')

    present = [r for r in records if r.get(column) is not None]
    missing = [r for r in records if r.get(column) is None]
    try:
        present.sort(key=lambda r: r[column], reverse=descending)
    except TypeError:
        present.sort(key=lambda r: str(r[column]), reverse=descending)
    return present + missing
