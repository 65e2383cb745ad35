"""Summarize Import use case.

Builds the ImportSummary from the terminal job snapshots and turns each
failure into something an operator can act on.

Counts are always re-derived from the terminal job list. Incrementally
maintained progress counters are for display only and never feed the
summary.

Failure categories, first match wins:
    1. already registered: error name looks like "...AlreadyAssigned" /
       "...AlreadyExists" / "...AlreadyRegistered", or error code 806
    2. timed out: error code is the synthetic timeout code (-1)
    3. other error: everything else, including local exceptions
"""

import logging
import re
from datetime import datetime, timezone
from typing import Optional

from ..domain.entities import (
    ALREADY_ASSIGNED_ERROR_CODE,
    TIMEOUT_ERROR_CODE,
    DeviceFailure,
    FailureCategory,
    ImportJob,
    ImportStatus,
    ImportSummary,
    Severity,
)

logger = logging.getLogger(__name__)

ALREADY_ASSIGNED_PATTERN = re.compile(r"already\s*(assigned|exists|registered)", re.IGNORECASE)

# A capital letter that follows a non-space character
_INTERNAL_CAPITAL = re.compile(r"(?<=\S)(?=[A-Z])")

HINTS = {
    FailureCategory.ALREADY_REGISTERED: (
        "The hardware hash is already registered. Delete the existing "
        "registration (or have the previous tenant deregister the device) "
        "before importing it again."
    ),
    FailureCategory.TIMED_OUT: (
        "The service did not report a final status in time. The import may "
        "still complete; check the device list before importing it again."
    ),
    FailureCategory.OTHER_ERROR: (
        "The service rejected the device. Check the error code, correct the "
        "record and import it again."
    ),
}

EXCEPTION_HINT = (
    "The request could not be completed. Check network connectivity and "
    "permissions, then import the device again."
)


def readable_error_name(raw_name: Optional[str]) -> str:
    """Split a compact error identifier into words.

    Example:
        >>> readable_error_name("ZtdDeviceAlreadyAssigned")
        'Ztd Device Already Assigned'
    """
    if not raw_name:
        return ""
    return _INTERNAL_CAPITAL.sub(" ", raw_name).strip()


def classify_failure(job: ImportJob) -> FailureCategory:
    """Put a failed job into exactly one reporting category."""
    if job.error_name and ALREADY_ASSIGNED_PATTERN.search(job.error_name):
        return FailureCategory.ALREADY_REGISTERED
    if job.error_code == ALREADY_ASSIGNED_ERROR_CODE:
        return FailureCategory.ALREADY_REGISTERED
    if job.error_code == TIMEOUT_ERROR_CODE:
        return FailureCategory.TIMED_OUT
    return FailureCategory.OTHER_ERROR


def remediation_hint(job: ImportJob, category: FailureCategory) -> str:
    if job.status == ImportStatus.EXCEPTION:
        return EXCEPTION_HINT
    return HINTS[category]


def describe_failure(job: ImportJob) -> DeviceFailure:
    category = classify_failure(job)
    if job.status == ImportStatus.EXCEPTION:
        readable = job.exception_message or "Unexpected error"
    else:
        readable = readable_error_name(job.error_name) or "Unknown error"
    return DeviceFailure(
        job=job,
        category=category,
        readable_error=readable,
        hint=remediation_hint(job, category),
    )


class ResultAggregator:
    """Build the final ImportSummary from terminal job snapshots."""

    def summarize(
        self,
        jobs: list[ImportJob],
        started_at: Optional[datetime] = None,
        completed_at: Optional[datetime] = None,
    ) -> ImportSummary:
        """Aggregate terminal jobs, keeping their order.

        Raises:
            ValueError: If any job has not reached a terminal state
        """
        pending = [job.serial_number for job in jobs if not job.is_terminal]
        if pending:
            raise ValueError(f"Cannot summarize non-terminal jobs: {', '.join(pending)}")

        completed = [job for job in jobs if job.is_success]
        failed = [job for job in jobs if not job.is_success]

        summary = ImportSummary(
            total_devices=len(jobs),
            completed_devices=completed,
            failed_devices=failed,
            failures=[describe_failure(job) for job in failed],
            started_at=started_at,
            completed_at=completed_at or datetime.now(timezone.utc),
        )

        logger.info(
            f"Import summary: {summary.total_devices} total, "
            f"{summary.success_count} succeeded, {summary.failure_count} failed"
        )
        return summary


def format_report(summary: ImportSummary) -> list[tuple[str, Severity]]:
    """Render the summary as report lines, one per failed device."""
    lines: list[tuple[str, Severity]] = [
        (
            f"Import finished: {summary.success_count} of {summary.total_devices} "
            f"device(s) imported, {summary.failure_count} failed",
            Severity.SUCCESS if summary.failure_count == 0 else Severity.WARNING,
        )
    ]
    if summary.skipped_records:
        lines.append(
            (
                f"{summary.skipped_records} invalid record(s) were skipped",
                Severity.WARNING,
            )
        )

    for failure in summary.failures:
        job = failure.job
        code = f"error {job.error_code}" if job.error_code is not None else job.status.value
        lines.append(
            (
                f"{job.serial_number} (row {job.record.row_number}): "
                f"{failure.category.value}, {code}: {failure.readable_error}. "
                f"{failure.hint}",
                Severity.ERROR,
            )
        )

    return lines
