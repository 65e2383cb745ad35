"""Use cases for batch device import."""

from .poll_device import DevicePoller, PollPolicy
from .run_import import ImportOrchestrator, RunProgress, RunState
from .summarize import (
    ResultAggregator,
    classify_failure,
    describe_failure,
    format_report,
    readable_error_name,
)
from .validate_records import RecordValidator

__all__ = [
    "RecordValidator",
    "DevicePoller",
    "PollPolicy",
    "ImportOrchestrator",
    "RunProgress",
    "RunState",
    "ResultAggregator",
    "classify_failure",
    "describe_failure",
    "format_report",
    "readable_error_name",
]
