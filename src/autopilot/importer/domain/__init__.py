"""Domain layer for batch device import."""

from .entities import (
    ALREADY_ASSIGNED_ERROR_CODE,
    TERMINAL_STATUSES,
    TIMEOUT_ERROR_CODE,
    TIMEOUT_ERROR_NAME,
    DeviceFailure,
    DeviceRecord,
    FailureCategory,
    ImportJob,
    ImportStatus,
    ImportSummary,
    InvalidTransition,
    RemoteState,
    Severity,
    StatusEvent,
    ValidationIssue,
    ValidationReport,
)
from .ports import ICredentialProvider, IRegistrationClient, IStatusObserver

__all__ = [
    # Entities
    "DeviceRecord",
    "ImportJob",
    "ImportStatus",
    "ImportSummary",
    "DeviceFailure",
    "FailureCategory",
    "RemoteState",
    "Severity",
    "StatusEvent",
    "ValidationIssue",
    "ValidationReport",
    "InvalidTransition",
    # Constants
    "TERMINAL_STATUSES",
    "TIMEOUT_ERROR_CODE",
    "TIMEOUT_ERROR_NAME",
    "ALREADY_ASSIGNED_ERROR_CODE",
    # Ports
    "IRegistrationClient",
    "ICredentialProvider",
    "IStatusObserver",
]
