"""Port interfaces for batch device import.

These are abstract interfaces (ports) that define how the domain
interacts with external systems. Concrete implementations (adapters)
are provided in the adapters module.

This follows the Hexagonal Architecture pattern.
"""

from abc import ABC, abstractmethod
from typing import Optional

from .entities import DeviceRecord, RemoteState, Severity


class IRegistrationClient(ABC):
    """Port for the device-management service.

    Both operations are safe to retry.
    """

    @abstractmethod
    async def submit_import(self, record: DeviceRecord) -> Optional[str]:
        """Create an import job for one device.

        Args:
            record: Device to register

        Returns:
            Job id assigned by the service, or None if it did not assign one
        """
        ...

    @abstractmethod
    async def get_import_status(
        self,
        job_id: Optional[str],
        record: DeviceRecord,
    ) -> RemoteState:
        """Query the state of a device's import job.

        Queries the job resource when ``job_id`` is known, otherwise searches
        the collection for the record.

        Raises:
            TransientQueryError: On network errors, rate limiting or 5xx
        """
        ...


class ICredentialProvider(ABC):
    """Port for the identity provider."""

    @abstractmethod
    def is_authenticated(self) -> bool:
        """Return True if a valid credential is available right now."""
        ...


class IStatusObserver(ABC):
    """Port for whatever renders import progress."""

    @abstractmethod
    def notify(self, message: str, severity: Severity) -> None:
        """Receive one progress message."""
        ...
