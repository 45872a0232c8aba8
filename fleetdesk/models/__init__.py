"""
Database models for the FleetDesk local mirror.

The mirror is deliberately schema-light: entity records live as JSON
inside one row per entity type, so the mirror never needs a migration when
the remote schema grows a column.
"""

from fleetdesk.models.base import (
    Base,
    create_mirror_engine,
    make_session_factory,
    session_scope,
    init_db,
)
from fleetdesk.models.mirror import MirrorCollection, PendingOperation

__all__ = [
    'Base',
    'create_mirror_engine',
    'make_session_factory',
    'session_scope',
    'init_db',
    'MirrorCollection',
    'PendingOperation',
]
