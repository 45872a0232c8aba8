"""
API module for FleetDesk.

Provides REST endpoints for:
- Fleet and maintenance
- Missions and mission days
- Conflict notices
- System status
"""

from fleetdesk.api.aircraft import aircraft_bp, maintenance_bp
from fleetdesk.api.missions import missions_bp
from fleetdesk.api.days import days_bp
from fleetdesk.api.conflicts import conflicts_bp
from fleetdesk.api.status import status_bp

__all__ = ['aircraft_bp', 'maintenance_bp', 'missions_bp', 'days_bp', 'conflicts_bp', 'status_bp']
