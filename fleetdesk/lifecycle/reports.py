"""
Typed results for multi-step lifecycle workflows.

Workflows that touch several records in sequence (closing a day, completing
a mission) never collapse partial failure into one exception. They return
a report naming every aircraft that was released, failed or was skipped,
and a TransitionResult saying whether the parent transition was committed.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

from fleetdesk.entities import Record
from fleetdesk.errors import NotFound, PermissionDenied


class ReleaseReason(str, Enum):
    """Why an aircraft could not be released."""
    PERMISSION_DENIED = 'permission_denied'
    NOT_FOUND = 'not_found'
    ERROR = 'error'


@dataclass
class ReleaseFailure:
    aircraft_id: str
    reason: ReleaseReason
    message: str

    def to_dict(self) -> dict:
        return {
            'aircraft_id': self.aircraft_id,
            'reason': self.reason.value,
            'message': self.message,
        }


def failure_reason(error: Exception) -> ReleaseReason:
    """Classify a store error for itemized reports."""
    if isinstance(error, PermissionDenied):
        return ReleaseReason.PERMISSION_DENIED
    if isinstance(error, NotFound):
        return ReleaseReason.NOT_FOUND
    return ReleaseReason.ERROR


@dataclass
class WriteFailure:
    """
    A record write inside a workflow that did not go through.

    Fields:
        step: Workflow step that failed (e.g. 'mission', 'flight_hours')
        record_id: Record the write targeted, when known
        reason: Classified cause
        message: Error text
    """
    step: str
    record_id: Optional[str]
    reason: ReleaseReason
    message: str

    @classmethod
    def from_error(cls, step: str, record_id: Optional[str], error: Exception) -> 'WriteFailure':
        return cls(step, record_id, failure_reason(error), str(error))

    def to_dict(self) -> dict:
        return {
            'step': self.step,
            'record_id': self.record_id,
            'reason': self.reason.value,
            'message': self.message,
        }


@dataclass
class ReleaseReport:
    """
    Outcome of releasing a batch of aircraft from one claim.

    Fields:
        released: Aircraft whose status write succeeded
        failures: Aircraft whose status write failed, with the reason
        skipped: Aircraft never attempted because the loop halted
        halted: True when a permission refusal stopped the loop
        statuses: Derived status written (or intended) per aircraft
    """
    released: List[str] = field(default_factory=list)
    failures: List[ReleaseFailure] = field(default_factory=list)
    skipped: List[str] = field(default_factory=list)
    halted: bool = False
    statuses: Dict[str, str] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return not self.failures and not self.skipped

    @property
    def failed_ids(self) -> List[str]:
        return [f.aircraft_id for f in self.failures]

    @property
    def permission_denied(self) -> bool:
        return any(f.reason == ReleaseReason.PERMISSION_DENIED for f in self.failures)

    def to_dict(self) -> dict:
        return {
            'ok': self.ok,
            'released': list(self.released),
            'failures': [f.to_dict() for f in self.failures],
            'skipped': list(self.skipped),
            'halted': self.halted,
            'statuses': dict(self.statuses),
        }


@dataclass
class TransitionResult:
    """
    Outcome of a parent transition (close day, complete or cancel mission).

    committed is False when the transition was held back because aircraft
    could not be released. inconsistent is True when the operator forced
    the transition through despite failures, or when a follow-up write
    after the commit failed; the listed records then no longer match
    reality and need manual correction. write_failures itemizes every
    non-aircraft write that did not go through.
    """
    committed: bool
    record: Optional[Record] = None
    report: Optional[ReleaseReport] = None
    inconsistent: bool = False
    remediation: Optional[str] = None
    write_failures: List[WriteFailure] = field(default_factory=list)
    extra: Dict[str, Any] = field(default_factory=dict)

    @property
    def permission_denied(self) -> bool:
        if self.report is not None and self.report.permission_denied:
            return True
        return any(f.reason == ReleaseReason.PERMISSION_DENIED for f in self.write_failures)

    def to_dict(self) -> dict:
        data = {
            'committed': self.committed,
            'record': self.record,
            'report': self.report.to_dict() if self.report else None,
            'inconsistent': self.inconsistent,
            'remediation': self.remediation,
            'write_failures': [f.to_dict() for f in self.write_failures],
        }
        data.update(self.extra)
        return data
