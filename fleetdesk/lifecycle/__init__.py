"""
Domain lifecycles built on the entity stores.

- AircraftLifecycle / AllocationLedger: claim-derived aircraft status
- MissionLifecycle: open, edit, complete, cancel, purge
- MissionDayLifecycle: days of multi-day missions
- MaintenanceLifecycle: grounding and return to service
"""

from fleetdesk.lifecycle.reports import (
    ReleaseFailure,
    WriteFailure,
    ReleaseReason,
    ReleaseReport,
    TransitionResult,
)
from fleetdesk.lifecycle.aircraft import (
    AircraftLifecycle,
    AllocationLedger,
    day_claim,
    maintenance_claim,
    mission_claim,
)
from fleetdesk.lifecycle.missions import MissionLifecycle, OpenMissionResult
from fleetdesk.lifecycle.mission_days import AllocationResult, MissionDayLifecycle
from fleetdesk.lifecycle.maintenance import MaintenanceLifecycle

__all__ = [
    'ReleaseFailure',
    'WriteFailure',
    'ReleaseReason',
    'ReleaseReport',
    'TransitionResult',
    'AircraftLifecycle',
    'AllocationLedger',
    'day_claim',
    'maintenance_claim',
    'mission_claim',
    'MissionLifecycle',
    'OpenMissionResult',
    'AllocationResult',
    'MissionDayLifecycle',
    'MaintenanceLifecycle',
]
