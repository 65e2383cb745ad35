"""Domain entities for batch device import.

These are pure domain objects with no infrastructure dependencies.
They represent the core concepts of the import workflow: the input record,
the per-device import job and its state machine, status events, and the
final summary.
"""

from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Optional

# Synthetic error fields recorded when the poller gives up on a device
TIMEOUT_ERROR_CODE = -1
TIMEOUT_ERROR_NAME = "Timeout"

# Service error code for a hash already registered to a tenant
ALREADY_ASSIGNED_ERROR_CODE = 806


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ImportStatus(str, Enum):
    """Lifecycle of one device's import job."""

    PENDING = "pending"
    SUBMITTED = "submitted"
    POLLING = "polling"
    COMPLETE = "complete"
    ERROR = "error"
    TIMEOUT = "timeout"
    EXCEPTION = "exception"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES


TERMINAL_STATUSES = frozenset(
    {
        ImportStatus.COMPLETE,
        ImportStatus.ERROR,
        ImportStatus.TIMEOUT,
        ImportStatus.EXCEPTION,
    }
)

# Allowed forward transitions of the per-device state machine
ALLOWED_TRANSITIONS: dict[ImportStatus, frozenset[ImportStatus]] = {
    ImportStatus.PENDING: frozenset({ImportStatus.SUBMITTED, ImportStatus.EXCEPTION}),
    ImportStatus.SUBMITTED: frozenset({ImportStatus.POLLING, ImportStatus.EXCEPTION}),
    ImportStatus.POLLING: frozenset(TERMINAL_STATUSES),
}


class Severity(str, Enum):
    """Severity of a status event."""

    INFO = "info"
    SUCCESS = "success"
    WARNING = "warning"
    ERROR = "error"


class FailureCategory(str, Enum):
    """Reporting category of a failed device."""

    ALREADY_REGISTERED = "already registered"
    TIMED_OUT = "timed out"
    OTHER_ERROR = "other error"


@dataclass(frozen=True)
class DeviceRecord:
    """A single device row from the input file."""

    serial_number: str
    hardware_identifier: str
    group_tag: Optional[str] = None
    row_number: int = 0


@dataclass(frozen=True)
class StatusEvent:
    """A timestamped, severity-tagged progress message."""

    message: str
    severity: Severity = Severity.INFO
    timestamp: datetime = field(default_factory=_utcnow)
    serial_number: Optional[str] = None


@dataclass(frozen=True)
class RemoteState:
    """Import state reported by the service for one device identity.

    Every field is optional: the job id may be absent, and error fields are
    absent on success or while the job is still pending.
    """

    status: Optional[str] = None
    error_code: Optional[int] = None
    error_name: Optional[str] = None
    registration_id: Optional[str] = None
    job_id: Optional[str] = None

    @property
    def normalized_status(self) -> str:
        """Lower-cased, trimmed status ("" when absent)."""
        return (self.status or "").strip().lower()


class InvalidTransition(Exception):
    """Raised when an ImportJob is moved along an edge the state machine lacks."""


@dataclass
class ImportJob:
    """One device's in-flight registration.

    Owned by exactly one poller for its whole lifetime. The aggregator only
    ever sees copies taken with ``snapshot()`` once the job is terminal.
    """

    record: DeviceRecord
    job_id: Optional[str] = None
    status: ImportStatus = ImportStatus.PENDING
    error_code: Optional[int] = None
    error_name: Optional[str] = None
    registration_id: Optional[str] = None
    attempt: int = 0
    last_status_raw: str = ""
    exception_message: Optional[str] = None
    started_at: datetime = field(default_factory=_utcnow)
    finished_at: Optional[datetime] = None

    @property
    def serial_number(self) -> str:
        return self.record.serial_number

    @property
    def is_terminal(self) -> bool:
        return self.status.is_terminal

    @property
    def is_success(self) -> bool:
        return self.status == ImportStatus.COMPLETE

    def transition(self, new_status: ImportStatus) -> None:
        """Move to ``new_status``, enforcing the state machine.

        Raises:
            InvalidTransition: If the job is terminal or the edge is not allowed
        """
        allowed = ALLOWED_TRANSITIONS.get(self.status, frozenset())
        if new_status not in allowed:
            raise InvalidTransition(
                f"{self.serial_number}: cannot move from {self.status.value} "
                f"to {new_status.value}"
            )
        self.status = new_status
        if new_status.is_terminal:
            self.finished_at = _utcnow()

    def snapshot(self) -> "ImportJob":
        """Independent copy for handing to the aggregator."""
        return replace(self)

    def to_dict(self) -> dict:
        """Convert to dictionary for reports."""
        return {
            "serial_number": self.record.serial_number,
            "row_number": self.record.row_number,
            "group_tag": self.record.group_tag,
            "job_id": self.job_id,
            "status": self.status.value,
            "error_code": self.error_code,
            "error_name": self.error_name,
            "registration_id": self.registration_id,
            "attempts": self.attempt,
            "last_status_raw": self.last_status_raw,
            "exception_message": self.exception_message,
            "started_at": self.started_at.isoformat(),
            "finished_at": self.finished_at.isoformat() if self.finished_at else None,
        }


@dataclass
class ValidationIssue:
    """A validation problem found on one input row."""

    row_number: int
    field: str
    message: str


@dataclass
class ValidationReport:
    """Result of validating every record of an input file."""

    total_records: int
    valid_records: list[DeviceRecord] = field(default_factory=list)
    issues: list[ValidationIssue] = field(default_factory=list)

    @property
    def invalid_count(self) -> int:
        return len({issue.row_number for issue in self.issues})

    @property
    def valid_count(self) -> int:
        return len(self.valid_records)

    @property
    def is_valid(self) -> bool:
        return not self.issues


@dataclass
class DeviceFailure:
    """A failed device together with how it is reported to the operator."""

    job: ImportJob
    category: FailureCategory
    readable_error: str
    hint: str

    def to_dict(self) -> dict:
        data = self.job.to_dict()
        data.update(
            {
                "category": self.category.value,
                "readable_error": self.readable_error,
                "hint": self.hint,
            }
        )
        return data


@dataclass
class ImportSummary:
    """Final result of an import run.

    ``total_devices`` is the number of terminal jobs handed to the
    aggregator; success and failure counts are always derived from the
    terminal job lists, never tracked separately.
    ``skipped_records`` counts input rows that failed validation and were
    never submitted.
    """

    total_devices: int = 0
    completed_devices: list[ImportJob] = field(default_factory=list)
    failed_devices: list[ImportJob] = field(default_factory=list)
    failures: list[DeviceFailure] = field(default_factory=list)
    skipped_records: int = 0
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None

    @property
    def success_count(self) -> int:
        return len(self.completed_devices)

    @property
    def failure_count(self) -> int:
        return len(self.failed_devices)

    @property
    def duration_seconds(self) -> float:
        if not self.started_at or not self.completed_at:
            return 0.0
        return (self.completed_at - self.started_at).total_seconds()

    def to_dict(self) -> dict:
        """Convert to dictionary for the JSON report."""
        return {
            "total_devices": self.total_devices,
            "success_count": self.success_count,
            "failure_count": self.failure_count,
            "skipped_records": self.skipped_records,
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
            "duration_seconds": self.duration_seconds,
            "completed_devices": [job.to_dict() for job in self.completed_devices],
            "failed_devices": [failure.to_dict() for failure in self.failures],
        }
