"""Batch device import.

This package implements the import engine: reading device records,
validating them, submitting each one to the device-management service,
polling every submission to a terminal state, and summarizing the run.

Structure:
    domain/     Entities and ports (no infrastructure dependencies)
    adapters/   CSV reader, API adapter, status observers
    use_cases/  Validation, per-device polling, orchestration, summary
    events.py   Status event bus between pollers and the observer
    settings.py Engine tunables
"""

from .events import StatusEventBus
from .settings import ImportSettings

__all__ = [
    "ImportSettings",
    "StatusEventBus",
]
