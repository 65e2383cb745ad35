"""Run Import use case.

Drives a batch of device records through the import pipeline:

    preconditions ──> validate ──> poll each valid device ──> summarize

Preconditions (checked in ``start()`` before any network call, each aborts
the run):
    - no other run active on this orchestrator (ImportAlreadyRunningError)
    - a valid credential is available (NotAuthenticatedError)
    - the file has records (EmptyFileError)

Validation is advisory and runs inside the background task: every problem
is reported by row, invalid rows are skipped and the remaining records are
imported. Only a file with no valid record at all ends the run with
RecordValidationError.

Sequencing:
    Devices are processed one at a time in file order by default, which
    keeps request rates low and progress output readable. With
    ``max_concurrency > 1`` a bounded number of devices is in flight at
    once; events of one device still arrive in order and the summary keeps
    file order.

Per-device failures never abort the batch: they end up in that device's
terminal state and the run moves on.
"""

import asyncio
import logging
import threading
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Iterable, Optional

from ...api.exceptions import (
    EmptyFileError,
    ImportAlreadyRunningError,
    NotAuthenticatedError,
    RecordValidationError,
)
from ..domain.entities import (
    DeviceRecord,
    ImportJob,
    ImportSummary,
    Severity,
    ValidationReport,
)
from ..domain.ports import ICredentialProvider, IRegistrationClient, IStatusObserver
from ..events import StatusEventBus
from ..settings import ImportSettings
from .poll_device import DevicePoller, PollPolicy
from .summarize import ResultAggregator, format_report
from .validate_records import RecordValidator

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RunProgress:
    """Point-in-time view of a run, safe to read from any context."""

    is_running: bool
    total: int
    processed: int
    succeeded: int
    failed: int


class RunState:
    """The orchestrator's run flag and progress counters.

    Shared between the background run and callers, so every access goes
    through the lock.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._running = False
        self._total = 0
        self._processed = 0
        self._succeeded = 0
        self._failed = 0

    def try_begin(self) -> bool:
        """Atomically claim the run flag. False if a run is already active."""
        with self._lock:
            if self._running:
                return False
            self._running = True
            return True

    def end(self) -> None:
        with self._lock:
            self._running = False

    def reset(self, total: int = 0) -> None:
        with self._lock:
            self._total = total
            self._processed = 0
            self._succeeded = 0
            self._failed = 0

    def record(self, job: ImportJob) -> None:
        with self._lock:
            self._processed += 1
            if job.is_success:
                self._succeeded += 1
            else:
                self._failed += 1

    @property
    def is_running(self) -> bool:
        with self._lock:
            return self._running

    def snapshot(self) -> RunProgress:
        with self._lock:
            return RunProgress(
                is_running=self._running,
                total=self._total,
                processed=self._processed,
                succeeded=self._succeeded,
                failed=self._failed,
            )


class ImportOrchestrator:
    """Run batch imports, at most one at a time.

    Usage:
        orchestrator = ImportOrchestrator(
            client=GraphRegistrationAdapter(DeviceIdentityManager(graph_client)),
            credentials=token_manager,
            observer=ConsoleObserver(),
        )
        summary = await orchestrator.run(records)

        # or, keeping the caller free while the run proceeds:
        task = orchestrator.start(records)
        while not task.done():
            print(orchestrator.progress)
            await asyncio.sleep(1)
        summary = task.result()
    """

    def __init__(
        self,
        client: IRegistrationClient,
        credentials: ICredentialProvider,
        observer: Optional[IStatusObserver] = None,
        settings: Optional[ImportSettings] = None,
        validator: Optional[RecordValidator] = None,
        aggregator: Optional[ResultAggregator] = None,
        poller: Optional[DevicePoller] = None,
    ):
        self.client = client
        self.credentials = credentials
        self.settings = settings or ImportSettings()
        self.bus = StatusEventBus(observer, drain_interval=self.settings.drain_interval)
        self.validator = validator or RecordValidator(self.settings.min_identifier_length)
        self.aggregator = aggregator or ResultAggregator()
        self.poller = poller or DevicePoller(
            client,
            self.bus,
            PollPolicy(
                interval=self.settings.poll_interval,
                max_attempts=self.settings.max_attempts,
            ),
        )

        self.state = RunState()
        self._terminal_jobs: list[Optional[ImportJob]] = []
        self._task: Optional[asyncio.Task] = None

    # ----------------------------------------
    # Public API
    # ----------------------------------------

    @property
    def is_running(self) -> bool:
        return self.state.is_running

    @property
    def progress(self) -> RunProgress:
        return self.state.snapshot()

    def start(self, records: Iterable[DeviceRecord]) -> "asyncio.Task[ImportSummary]":
        """Check preconditions and launch the run as a background task.

        Must be called from a running event loop. Returns immediately.

        Raises:
            ImportAlreadyRunningError: If a run is active
            NotAuthenticatedError: If no valid credential is available
            EmptyFileError: If there are no records

        The returned task raises RecordValidationError when no record is
        valid.
        """
        if not self.state.try_begin():
            logger.warning("Rejected import request: a run is already active")
            raise ImportAlreadyRunningError()

        try:
            records = list(records)
            self._reset(len(records))
            self._check_preconditions(records)
            self._task = asyncio.create_task(self._run(records))
        except BaseException:
            self.state.end()
            raise

        return self._task

    async def run(self, records: Iterable[DeviceRecord]) -> ImportSummary:
        """Run an import to completion and return its summary."""
        return await self.start(records)

    # ----------------------------------------
    # Preconditions
    # ----------------------------------------

    def _reset(self, total: int) -> None:
        # Leftovers from a previous run must not leak into this one
        self.bus.reset()
        self._terminal_jobs = []
        self.state.reset(total)

    def _check_preconditions(self, records: list[DeviceRecord]) -> None:
        if not self.credentials.is_authenticated():
            raise NotAuthenticatedError()
        if not records:
            raise EmptyFileError()

    def _validate(self, records: list[DeviceRecord]) -> ValidationReport:
        """Report every invalid row, then keep only the importable records."""
        report = self.validator.validate(records)
        if report.is_valid:
            return report

        for issue in report.issues:
            self.bus.emit(
                f"Row {issue.row_number}: {issue.field}: {issue.message}",
                Severity.ERROR,
            )

        if not report.valid_records:
            self.bus.emit(
                f"Validation failed: all {report.total_records} record(s) invalid; "
                f"nothing was imported",
                Severity.ERROR,
            )
            raise RecordValidationError(report.issues, total_records=report.total_records)

        self.bus.emit(
            f"Validation: {report.valid_count} of {report.total_records} record(s) valid; "
            f"skipping {report.invalid_count} invalid record(s)",
            Severity.WARNING,
        )
        return report

    # ----------------------------------------
    # Background Run
    # ----------------------------------------

    async def _run(self, records: list[DeviceRecord]) -> ImportSummary:
        started_at = datetime.now(timezone.utc)
        await self.bus.start()

        try:
            report = self._validate(records)
            records = report.valid_records
            self.state.reset(len(records))

            self.bus.emit(
                f"Starting import of {len(records)} device(s) "
                f"({self._mode_description()})",
                Severity.INFO,
            )
            logger.info(f"Import started: {len(records)} device(s), {self.settings!r}")

            self._terminal_jobs = [None] * len(records)
            if self.settings.max_concurrency == 1:
                for index, record in enumerate(records):
                    await self._import_one(index, record)
            else:
                semaphore = asyncio.Semaphore(self.settings.max_concurrency)

                async def bounded(index: int, record: DeviceRecord) -> None:
                    async with semaphore:
                        await self._import_one(index, record)

                await asyncio.gather(
                    *(bounded(i, record) for i, record in enumerate(records))
                )

            summary = self.aggregator.summarize(
                [job for job in self._terminal_jobs if job is not None],
                started_at=started_at,
                completed_at=datetime.now(timezone.utc),
            )
            summary.skipped_records = report.invalid_count
            for message, severity in format_report(summary):
                self.bus.emit(message, severity)

            logger.info(f"Import finished in {summary.duration_seconds:.1f}s")
            return summary

        finally:
            await self.bus.stop()
            self.state.end()

    async def _import_one(self, index: int, record: DeviceRecord) -> None:
        job = await self.poller.run(record)
        self._terminal_jobs[index] = job
        self.state.record(job)

    def _mode_description(self) -> str:
        if self.settings.max_concurrency == 1:
            return "sequential"
        return f"up to {self.settings.max_concurrency} at a time"
