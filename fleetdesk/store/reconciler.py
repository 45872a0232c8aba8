"""
Reconciliation between the local mirror and the remote backend.

Offline writes are recorded in the pending-operations log, but nothing
replays them yet. The reconciler reports the gap and leaves the log
untouched.
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, List

from fleetdesk.store.mirror import LocalMirror

logger = logging.getLogger(__name__)


@dataclass
class ReconcileReport:
    """Outcome of one reconciliation pass."""
    pending: int
    replayed: int = 0
    by_entity: Dict[str, int] = field(default_factory=dict)

    def to_dict(self) -> dict:
        return {
            'pending': self.pending,
            'replayed': self.replayed,
            'by_entity': dict(self.by_entity),
        }


class NoOpReconciler:
    """Reports pending offline operations without replaying any of them."""

    def __init__(self, mirror: LocalMirror):
        self.mirror = mirror

    def pending_count(self) -> int:
        return self.mirror.pending_count()

    def pending(self) -> List[dict]:
        return self.mirror.pending_operations()

    def drain(self) -> ReconcileReport:
        operations = self.mirror.pending_operations()
        by_entity: Dict[str, int] = {}
        for op in operations:
            by_entity[op['entity']] = by_entity.get(op['entity'], 0) + 1

        if operations:
            logger.warning(
                f'{len(operations)} offline operation(s) are pending and will not be '
                'replayed to the remote; they exist only in the local mirror'
            )
        return ReconcileReport(pending=len(operations), by_entity=by_entity)
