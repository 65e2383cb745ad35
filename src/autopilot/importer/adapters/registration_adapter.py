"""Device-management API adapter.

This adapter wraps DeviceIdentityManager to implement the
IRegistrationClient port:

- Converts DeviceRecord into API calls
- Translates identity payloads into RemoteState
- Maps recoverable API/network failures of status queries, including a
  token refresh that could not reach the identity provider, to
  TransientQueryError
- Reads a 404 on a just-created identity as "not visible yet"
"""

import logging
from typing import Any, Optional

from ...api.device_identities import DeviceIdentityManager
from ...api.exceptions import (
    AuthenticationError,
    MalformedResponseError,
    NetworkError,
    NotFoundError,
    RateLimitError,
    ServerError,
    TokenFetchError,
    TransientQueryError,
)
from ..domain.entities import DeviceRecord, RemoteState
from ..domain.ports import IRegistrationClient

logger = logging.getLogger(__name__)

# Failures of a status query that the poll loop retries on its next attempt
TRANSIENT_QUERY_FAILURES = (NetworkError, ServerError, RateLimitError)


def _optional_int(value: Any) -> Optional[int]:
    if value is None or value == "":
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        raise MalformedResponseError(f"deviceErrorCode is not an integer: {value!r}")


def _optional_str(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def parse_remote_state(payload: Optional[dict]) -> RemoteState:
    """Build a RemoteState from an imported device identity payload.

    ``None`` (no matching identity yet) yields an empty state.

    Raises:
        MalformedResponseError: If ``state`` is present but not an object
    """
    if payload is None:
        return RemoteState()
    if not isinstance(payload, dict):
        raise MalformedResponseError(
            f"Expected a JSON object, got {type(payload).__name__}"
        )

    state = payload.get("state")
    if state is None:
        state = {}
    if not isinstance(state, dict):
        raise MalformedResponseError(
            f"Identity 'state' is not an object: {type(state).__name__}"
        )

    error_code = _optional_int(state.get("deviceErrorCode"))
    return RemoteState(
        status=_optional_str(state.get("deviceImportStatus")),
        # the service reports 0 while there is no error
        error_code=error_code if error_code else None,
        error_name=_optional_str(state.get("deviceErrorName")),
        registration_id=_optional_str(state.get("deviceRegistrationId")),
        job_id=_optional_str(payload.get("id")),
    )


class GraphRegistrationAdapter(IRegistrationClient):
    """IRegistrationClient backed by the device-management API."""

    def __init__(self, identity_manager: DeviceIdentityManager):
        self.manager = identity_manager

    async def submit_import(self, record: DeviceRecord) -> Optional[str]:
        """Create the import job. Errors propagate to the poller unchanged."""
        created = await self.manager.create_identity(
            serial_number=record.serial_number,
            hardware_identifier=record.hardware_identifier,
            group_tag=record.group_tag,
        )
        job_id = _optional_str(created.get("id"))
        if job_id is None:
            logger.info(
                f"No job id returned for {record.serial_number}; "
                f"status will be looked up in the collection"
            )
        return job_id

    async def get_import_status(
        self,
        job_id: Optional[str],
        record: DeviceRecord,
    ) -> RemoteState:
        """Query the job resource, or search the collection when no id exists."""
        try:
            if job_id:
                payload = await self.manager.get_identity(job_id)
            else:
                payload = await self.manager.find_identity(
                    record.serial_number, record.hardware_identifier
                )
        except NotFoundError:
            # the job resource can lag behind its create call
            logger.debug(f"{record.serial_number}: job {job_id} not visible yet")
            return RemoteState(job_id=job_id)
        except TRANSIENT_QUERY_FAILURES as e:
            raise self._transient(record, e)
        except AuthenticationError as e:
            if isinstance(e, TokenFetchError) or isinstance(e.cause, NetworkError):
                raise self._transient(record, e)
            raise

        return parse_remote_state(payload)

    @staticmethod
    def _transient(record: DeviceRecord, error: Exception) -> TransientQueryError:
        return TransientQueryError(
            f"Status query for {record.serial_number} failed: {getattr(error, 'message', error)}",
            serial_number=record.serial_number,
            cause=error,
        )
