"""Adapters connecting the import domain to files, the API and observers."""

from .csv_reader import CsvDeviceReader, match_columns
from .observers import CallbackObserver, ConsoleObserver, RecordingObserver
from .registration_adapter import GraphRegistrationAdapter, parse_remote_state

__all__ = [
    "CsvDeviceReader",
    "match_columns",
    "GraphRegistrationAdapter",
    "parse_remote_state",
    "ConsoleObserver",
    "CallbackObserver",
    "RecordingObserver",
]
