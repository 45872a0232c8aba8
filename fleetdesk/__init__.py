"""
FleetDesk - operations back end for a public-safety drone fleet.

Modules:
- store: entity stores with remote timeout race and local mirror fallback
- lifecycle: aircraft, mission, mission-day and maintenance workflows
- conflicts: airspace conflict detection and pilot notices
- services: uploads and seasonal reporting
- api: Flask blueprints
"""

__version__ = '1.0.0'
