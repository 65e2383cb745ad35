"""Per-device import use case.

Drives one device from submission to a terminal state:

    PENDING ──submit──> SUBMITTED ──> POLLING ──> COMPLETE
       │                    │            ├──────> ERROR
       └──── failure ───────┴────────────├──────> TIMEOUT
                                         └──────> EXCEPTION

Polling policy:
    A fixed delay precedes each status query, for at most ``max_attempts``
    queries. There is no exponential backoff: the service takes roughly the
    same time to process every identity, so a fixed interval neither gives up
    early nor adds load.

    - "complete" ends in COMPLETE
    - "error" ends in ERROR with the service's error code and name
    - any other value (including none) keeps polling
    - a TransientQueryError consumes the attempt and polling continues
    - running out of attempts ends in TIMEOUT (code -1, name "Timeout");
      the service may still finish the job later
    - any other fault ends in EXCEPTION with the fault's message
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional

from ...api.exceptions import AutopilotError, TransientQueryError
from ..domain.entities import (
    TIMEOUT_ERROR_CODE,
    TIMEOUT_ERROR_NAME,
    DeviceRecord,
    ImportJob,
    ImportStatus,
    RemoteState,
    Severity,
)
from ..domain.ports import IRegistrationClient
from ..events import StatusEventBus

logger = logging.getLogger(__name__)

STATUS_COMPLETE = "complete"
STATUS_ERROR = "error"


@dataclass
class PollPolicy:
    """Fixed-interval polling policy.

    Attributes:
        interval: Seconds to wait before each status query
        max_attempts: Status queries before the device times out
    """
    interval: float = 15.0
    max_attempts: int = 20


def _fault_message(error: BaseException) -> str:
    if isinstance(error, AutopilotError):
        return error.message
    return str(error) or error.__class__.__name__


class DevicePoller:
    """Run the import state machine for a single device.

    A poller instance may be reused for many devices; each ``run`` call owns
    a fresh ImportJob that nothing else touches.
    """

    def __init__(
        self,
        client: IRegistrationClient,
        bus: StatusEventBus,
        policy: Optional[PollPolicy] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.client = client
        self.bus = bus
        self.policy = policy or PollPolicy()
        self._sleep = sleep

    async def run(self, record: DeviceRecord) -> ImportJob:
        """Import one device and return its terminal snapshot."""
        job = ImportJob(record=record)
        try:
            submitted = await self._submit(job)
            if submitted:
                await self._poll(job)
        except Exception as e:
            logger.exception(f"Unexpected fault importing {record.serial_number}")
            self._fail_with_exception(job, e)

        return job.snapshot()

    # ----------------------------------------
    # Submission
    # ----------------------------------------

    async def _submit(self, job: ImportJob) -> bool:
        serial = job.serial_number
        self._emit(job, f"{serial}: submitting import request", Severity.INFO)

        try:
            job.job_id = await self.client.submit_import(job.record)
        except Exception as e:
            logger.error(f"Submission failed for {serial}: {e}")
            self._fail_with_exception(job, e, phase="submission")
            return False

        job.transition(ImportStatus.SUBMITTED)
        self._emit(
            job,
            f"{serial}: submitted (job {job.job_id or 'id not assigned yet'})",
            Severity.INFO,
        )

        job.transition(ImportStatus.POLLING)
        self._emit(
            job,
            f"{serial}: waiting for the service to process the import "
            f"(up to {self.policy.max_attempts} checks, every {self.policy.interval:g}s)",
            Severity.INFO,
        )
        return True

    # ----------------------------------------
    # Polling
    # ----------------------------------------

    async def _poll(self, job: ImportJob) -> None:
        serial = job.serial_number
        max_attempts = self.policy.max_attempts

        for attempt in range(1, max_attempts + 1):
            await self._sleep(self.policy.interval)
            job.attempt = attempt

            try:
                state = await self.client.get_import_status(job.job_id, job.record)
            except TransientQueryError as e:
                logger.warning(f"Transient status failure for {serial}: {e}")
                self._emit(
                    job,
                    f"{serial}: status check {attempt}/{max_attempts} failed "
                    f"({e.message}); will retry",
                    Severity.WARNING,
                )
                continue

            if state.job_id and not job.job_id:
                job.job_id = state.job_id
            job.last_status_raw = state.status or ""
            self._emit(
                job,
                f"{serial}: status check {attempt}/{max_attempts}: "
                f"{job.last_status_raw or 'unknown'}",
                Severity.INFO,
            )

            status = state.normalized_status
            if status == STATUS_COMPLETE:
                self._complete(job, state)
                return
            if status == STATUS_ERROR:
                self._error(job, state)
                return

        self._timeout(job)

    # ----------------------------------------
    # Terminal Transitions
    # ----------------------------------------

    def _complete(self, job: ImportJob, state: RemoteState) -> None:
        job.registration_id = state.registration_id
        job.transition(ImportStatus.COMPLETE)
        logger.info(f"Import complete for {job.serial_number}")
        self._emit(
            job,
            f"{job.serial_number}: import complete"
            + (f" (registration {job.registration_id})" if job.registration_id else ""),
            Severity.SUCCESS,
        )

    def _error(self, job: ImportJob, state: RemoteState) -> None:
        job.error_code = state.error_code
        job.error_name = state.error_name
        job.registration_id = state.registration_id
        job.transition(ImportStatus.ERROR)
        logger.warning(
            f"Import rejected for {job.serial_number}: "
            f"{job.error_code} {job.error_name}"
        )
        self._emit(
            job,
            f"{job.serial_number}: import failed with error "
            f"{job.error_code if job.error_code is not None else '?'} "
            f"({job.error_name or 'no error name'})",
            Severity.ERROR,
        )

    def _timeout(self, job: ImportJob) -> None:
        job.error_code = TIMEOUT_ERROR_CODE
        job.error_name = TIMEOUT_ERROR_NAME
        job.transition(ImportStatus.TIMEOUT)
        logger.warning(
            f"Gave up on {job.serial_number} after {job.attempt} status checks"
        )
        self._emit(
            job,
            f"{job.serial_number}: no final status after {job.attempt} checks; "
            f"the service may still be processing it",
            Severity.ERROR,
        )

    def _fail_with_exception(
        self,
        job: ImportJob,
        error: BaseException,
        phase: str = "import",
    ) -> None:
        if job.is_terminal:
            return
        job.exception_message = _fault_message(error)
        job.transition(ImportStatus.EXCEPTION)
        self._emit(
            job,
            f"{job.serial_number}: {phase} failed: {job.exception_message}",
            Severity.ERROR,
        )

    def _emit(self, job: ImportJob, message: str, severity: Severity) -> None:
        self.bus.emit(message, severity, serial_number=job.serial_number)
