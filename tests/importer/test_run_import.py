"""Tests for the import orchestrator."""

import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest

from src.autopilot.api.exceptions import (
    EmptyFileError,
    ImportAlreadyRunningError,
    NotAuthenticatedError,
    RecordValidationError,
)
from src.autopilot.importer import ImportSettings
from src.autopilot.importer.adapters import RecordingObserver
from src.autopilot.importer.domain.entities import (
    DeviceRecord,
    FailureCategory,
    ImportStatus,
    RemoteState,
    Severity,
)
from src.autopilot.importer.domain.ports import IRegistrationClient
from src.autopilot.importer.use_cases import ImportOrchestrator

HASH = "A" * 120


def records(*serials):
    return [
        DeviceRecord(serial_number=s, hardware_identifier=HASH, row_number=i + 2)
        for i, s in enumerate(serials)
    ]


class ScriptedClient(IRegistrationClient):
    """Registration client answering from a per-serial script of states.

    The last state of a script repeats once it runs out.
    """

    def __init__(self, scripts):
        self.scripts = {serial: list(states) for serial, states in scripts.items()}
        self.submitted = []
        self.queries = {serial: 0 for serial in scripts}
        self.gate = None

    async def submit_import(self, record):
        self.submitted.append(record.serial_number)
        if self.gate is not None:
            await self.gate.wait()
        return f"job-{record.serial_number}"

    async def get_import_status(self, job_id, record):
        self.queries[record.serial_number] += 1
        script = self.scripts[record.serial_number]
        state = script.pop(0) if len(script) > 1 else script[0]
        if isinstance(state, Exception):
            raise state
        return state


@pytest.fixture
def credentials():
    creds = MagicMock()
    creds.is_authenticated.return_value = True
    return creds


@pytest.fixture
def observer():
    return RecordingObserver()


@pytest.fixture
def settings():
    return ImportSettings(poll_interval=0, max_attempts=3, drain_interval=0.01)


def make_orchestrator(client, credentials, observer, settings):
    return ImportOrchestrator(
        client=client,
        credentials=credentials,
        observer=observer,
        settings=settings,
    )


# ============================================
# End-to-End Runs
# ============================================

class TestImportRun:
    """Full runs against a scripted service."""

    @pytest.mark.asyncio
    async def test_mixed_outcomes(self, credentials, observer, settings):
        client = ScriptedClient({
            "SN-A": [RemoteState(status="pending"), RemoteState(status="complete")],
            "SN-B": [RemoteState(status="error", error_code=806, error_name="ZtdDeviceAlreadyAssigned")],
            "SN-C": [RemoteState(status="pending")],
        })
        orchestrator = make_orchestrator(client, credentials, observer, settings)

        summary = await orchestrator.run(records("SN-A", "SN-B", "SN-C"))

        assert summary.total_devices == 3
        assert summary.success_count == 1
        assert summary.failure_count == 2
        assert [f.job.serial_number for f in summary.failures] == ["SN-B", "SN-C"]
        assert [f.category for f in summary.failures] == [
            FailureCategory.ALREADY_REGISTERED,
            FailureCategory.TIMED_OUT,
        ]
        assert summary.failed_devices[1].status == ImportStatus.TIMEOUT
        assert not orchestrator.is_running

    @pytest.mark.asyncio
    async def test_complete_on_first_poll_is_queried_once(self, credentials, observer, settings):
        client = ScriptedClient({
            "SN-A": [RemoteState(status="complete", registration_id="reg-A")],
            "SN-B": [RemoteState(status="error", error_code=806, error_name="ZtdDeviceAlreadyAssigned")],
            "SN-C": [RemoteState(status="pending")],
        })
        orchestrator = make_orchestrator(client, credentials, observer, settings)

        summary = await orchestrator.run(records("SN-A", "SN-B", "SN-C"))

        assert client.queries == {"SN-A": 1, "SN-B": 1, "SN-C": 3}
        assert summary.total_devices == 3
        assert summary.success_count == 1
        assert summary.failure_count == 2
        assert summary.completed_devices[0].serial_number == "SN-A"
        assert summary.completed_devices[0].attempt == 1
        assert [f.category for f in summary.failures] == [
            FailureCategory.ALREADY_REGISTERED,
            FailureCategory.TIMED_OUT,
        ]

    @pytest.mark.asyncio
    async def test_sequential_in_file_order(self, credentials, observer, settings):
        client = ScriptedClient({s: [RemoteState(status="complete")] for s in ("SN1", "SN2", "SN3")})
        orchestrator = make_orchestrator(client, credentials, observer, settings)

        await orchestrator.run(records("SN1", "SN2", "SN3"))

        assert client.submitted == ["SN1", "SN2", "SN3"]
        device_lines = [t for t in observer.texts() if t.startswith("SN")]
        serial_order = [t.split(":")[0] for t in device_lines]
        assert serial_order == sorted(serial_order)

    @pytest.mark.asyncio
    async def test_report_reaches_observer(self, credentials, observer, settings):
        client = ScriptedClient({
            "SN-A": [RemoteState(status="complete")],
            "SN-B": [RemoteState(status="error", error_code=806, error_name="ZtdDeviceAlreadyAssigned")],
        })
        orchestrator = make_orchestrator(client, credentials, observer, settings)

        await orchestrator.run(records("SN-A", "SN-B"))

        texts = observer.texts()
        assert any("Import finished: 1 of 2" in t for t in texts)
        assert any("Ztd Device Already Assigned" in t for t in observer.texts(Severity.ERROR))

    @pytest.mark.asyncio
    async def test_progress_counters(self, credentials, observer, settings):
        client = ScriptedClient({
            "SN-A": [RemoteState(status="complete")],
            "SN-B": [RemoteState(status="error", error_code=1, error_name="Bad")],
        })
        orchestrator = make_orchestrator(client, credentials, observer, settings)

        await orchestrator.run(records("SN-A", "SN-B"))

        progress = orchestrator.progress
        assert progress.total == 2
        assert progress.processed == 2
        assert progress.succeeded == 1
        assert progress.failed == 1
        assert progress.is_running is False

    @pytest.mark.asyncio
    async def test_bounded_concurrency_keeps_order(self, credentials, observer):
        settings = ImportSettings(poll_interval=0, max_attempts=3, max_concurrency=3, drain_interval=0.01)
        client = ScriptedClient({
            "SN1": [RemoteState(status="pending"), RemoteState(status="pending"), RemoteState(status="complete")],
            "SN2": [RemoteState(status="complete")],
            "SN3": [RemoteState(status="error", error_code=1, error_name="Bad")],
        })
        orchestrator = make_orchestrator(client, credentials, observer, settings)

        summary = await orchestrator.run(records("SN1", "SN2", "SN3"))

        assert summary.total_devices == 3
        assert [j.serial_number for j in summary.completed_devices] == ["SN1", "SN2"]
        assert [j.serial_number for j in summary.failed_devices] == ["SN3"]


# ============================================
# Preconditions
# ============================================

class TestPreconditions:
    """Runs that must not start."""

    @pytest.mark.asyncio
    async def test_not_authenticated(self, observer, settings):
        credentials = MagicMock()
        credentials.is_authenticated.return_value = False
        client = AsyncMock(spec=IRegistrationClient)
        orchestrator = make_orchestrator(client, credentials, observer, settings)

        with pytest.raises(NotAuthenticatedError):
            await orchestrator.run(records("SN1"))

        client.submit_import.assert_not_awaited()
        assert not orchestrator.is_running

    @pytest.mark.asyncio
    async def test_empty_file(self, credentials, observer, settings):
        orchestrator = make_orchestrator(AsyncMock(), credentials, observer, settings)

        with pytest.raises(EmptyFileError):
            await orchestrator.run([])

        assert not orchestrator.is_running

    @pytest.mark.asyncio
    async def test_second_run_rejected_while_active(self, credentials, observer, settings):
        client = ScriptedClient({"SN1": [RemoteState(status="complete")]})
        client.gate = asyncio.Event()
        orchestrator = make_orchestrator(client, credentials, observer, settings)

        task = orchestrator.start(records("SN1"))
        await asyncio.sleep(0)
        before = orchestrator.progress

        with pytest.raises(ImportAlreadyRunningError):
            orchestrator.start(records("SN9"))

        assert orchestrator.progress == before
        assert orchestrator.is_running

        client.gate.set()
        summary = await task

        assert summary.total_devices == 1
        assert client.submitted == ["SN1"]
        assert not orchestrator.is_running

    @pytest.mark.asyncio
    async def test_runs_do_not_share_state(self, credentials, observer, settings):
        client = ScriptedClient({
            "SN1": [RemoteState(status="complete")],
            "SN2": [RemoteState(status="error", error_code=1, error_name="Bad")],
        })
        orchestrator = make_orchestrator(client, credentials, observer, settings)

        first = await orchestrator.run(records("SN1", "SN2"))
        second = await orchestrator.run(records("SN1"))

        assert first.total_devices == 2
        assert second.total_devices == 1
        assert second.success_count == 1
        assert orchestrator.progress.processed == 1

    @pytest.mark.asyncio
    async def test_start_returns_before_completion(self, credentials, observer, settings):
        client = ScriptedClient({"SN1": [RemoteState(status="complete")]})
        orchestrator = make_orchestrator(client, credentials, observer, settings)

        task = orchestrator.start(records("SN1"))

        assert not task.done()
        assert orchestrator.is_running
        summary = await task
        assert summary.success_count == 1


# ============================================
# Validation
# ============================================

class TestValidation:
    """Invalid rows are reported and skipped; the rest is imported."""

    @pytest.mark.asyncio
    async def test_invalid_rows_skipped(self, credentials, observer, settings):
        client = ScriptedClient({s: [RemoteState(status="complete")] for s in ("SN1", "SN2")})
        orchestrator = make_orchestrator(client, credentials, observer, settings)
        batch = records("SN1", "SN2") + [
            DeviceRecord(serial_number="SN3", hardware_identifier="short", row_number=4)
        ]

        summary = await orchestrator.run(batch)

        assert client.submitted == ["SN1", "SN2"]
        assert summary.total_devices == 2
        assert summary.success_count == 2
        assert summary.skipped_records == 1
        assert orchestrator.progress.total == 2
        assert any("Row 4" in t for t in observer.texts(Severity.ERROR))
        assert any("2 of 3 record(s) valid" in t for t in observer.texts(Severity.WARNING))
        assert any("1 invalid record(s) were skipped" in t for t in observer.texts())

    @pytest.mark.asyncio
    async def test_no_valid_record_fails_run(self, credentials, observer, settings):
        client = AsyncMock(spec=IRegistrationClient)
        orchestrator = make_orchestrator(client, credentials, observer, settings)
        batch = [
            DeviceRecord(serial_number="SN1", hardware_identifier="short", row_number=2),
            DeviceRecord(serial_number="", hardware_identifier=HASH, row_number=3),
        ]

        with pytest.raises(RecordValidationError) as exc:
            await orchestrator.run(batch)

        assert [issue.row_number for issue in exc.value.issues] == [2, 3]
        client.submit_import.assert_not_awaited()
        errors = observer.texts(Severity.ERROR)
        assert any("Row 2" in t for t in errors)
        assert any("Row 3" in t for t in errors)
        assert any("nothing was imported" in t for t in errors)
        assert not orchestrator.is_running

    @pytest.mark.asyncio
    async def test_validation_runs_in_background(self, credentials, observer, settings):
        client = ScriptedClient({"SN1": [RemoteState(status="complete")]})
        orchestrator = make_orchestrator(client, credentials, observer, settings)
        orchestrator.validator = MagicMock(wraps=orchestrator.validator)
        batch = records("SN1") + [
            DeviceRecord(serial_number="SN2", hardware_identifier="short", row_number=3)
        ]

        task = orchestrator.start(batch)

        orchestrator.validator.validate.assert_not_called()
        assert observer.texts() == []

        await task

        orchestrator.validator.validate.assert_called_once()
        assert any("Row 3" in t for t in observer.texts(Severity.ERROR))
