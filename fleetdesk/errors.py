"""
Exception taxonomy for the entity access layer and the lifecycles on top.

Store errors describe what happened to a single remote or mirror call.
Lifecycle errors describe why a domain transition was refused.

    StoreError
    ├── RemoteError
    │   ├── RemoteTimeout      remote exceeded the time budget
    │   ├── Unreachable        network-class failure
    │   └── PermissionDenied   remote explicitly refused
    ├── NotFound               mutation target missing from both stores
    └── InvalidPatch           patch touches a field that is not mutable

    LifecycleError
    ├── InvalidTransition
    ├── AircraftUnavailable
    └── ConflictsRequireAcknowledgement
"""

from typing import Iterable, List, Optional


PERMISSION_REMEDIATION = (
    'The remote backend refused the update. Ask an administrator to grant '
    'update permission on the affected collection and retry, or force the '
    'transition and correct the aircraft status manually.'
)


class StoreError(Exception):
    """Base class for entity store failures."""


class RemoteError(StoreError):
    """Remote backend call failed."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class RemoteTimeout(RemoteError):
    """Remote did not answer within the time budget."""


class Unreachable(RemoteError):
    """Remote could not be contacted (or is not configured)."""


class PermissionDenied(RemoteError):
    """Remote explicitly rejected the operation."""

    remediation = PERMISSION_REMEDIATION


class NotFound(StoreError):
    """Record is absent from the remote and from the local mirror."""

    def __init__(self, entity: str, record_id: str):
        super().__init__(f'{entity} {record_id} not found')
        self.entity = entity
        self.record_id = record_id


class InvalidPatch(StoreError):
    """Patch contains fields the entity type does not allow to change."""

    def __init__(self, entity: str, fields: Iterable[str]):
        self.fields = sorted(fields)
        super().__init__(f'{entity} does not allow updating: {", ".join(self.fields)}')


class LifecycleError(Exception):
    """Base class for refused domain transitions."""


class InvalidTransition(LifecycleError):
    """Requested state change is not allowed from the current state."""


class AircraftUnavailable(LifecycleError):
    """Aircraft cannot take the requested assignment."""


class ConflictsRequireAcknowledgement(LifecycleError):
    """Airspace conflicts were found and the operator has not acknowledged them."""

    def __init__(self, conflicts: List):
        self.conflicts = conflicts
        super().__init__(f'{len(conflicts)} active mission(s) overlap the requested airspace')
