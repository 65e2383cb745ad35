"""Errors raised by the import engine and its API layer.

Every error derives from ``AutopilotError`` and carries a machine-readable
``code``, free-form ``details`` and a ``recoverable`` flag. Subclasses only
override class attributes unless they carry extra data the engine reads.

    AutopilotError
    ├── ConfigurationError
    ├── AuthenticationError
    │   ├── NotAuthenticatedError       run precondition
    │   ├── TokenFetchError             token endpoint unreachable or failing
    │   ├── TokenExpiredError           401 from the API
    │   └── InvalidCredentialsError     client id/secret rejected
    ├── APIError                        non-2xx from the device-management API
    │   ├── RateLimitError              429
    │   ├── NotFoundError               404
    │   ├── ValidationError             400 / 409 / 422
    │   └── ServerError                 5xx
    ├── NetworkError                    connection failures and timeouts
    ├── TransientQueryError             status query worth retrying
    ├── MalformedResponseError          payload we cannot interpret
    ├── InputError                      problems with the device file
    │   ├── InvalidRecordError
    │   ├── MissingColumnError
    │   ├── EmptyFileError
    │   └── RecordValidationError
    └── ImportAlreadyRunningError
"""

from datetime import datetime, timezone
from typing import Any, Optional


class AutopilotError(Exception):
    """Base exception for the import engine.

    Attributes:
        message: Human-readable description
        code: Machine-readable code, e.g. "RATE_LIMITED"
        details: Extra context for logs and reports
        cause: Underlying exception, if any
        recoverable: Whether trying again later may succeed
    """

    code = "AUTOPILOT_ERROR"
    default_message = "Import engine error"
    recoverable = False

    def __init__(
        self,
        message: Optional[str] = None,
        *,
        code: Optional[str] = None,
        details: Optional[dict[str, Any]] = None,
        cause: Optional[BaseException] = None,
        recoverable: Optional[bool] = None,
    ):
        self.message = message or self.default_message
        super().__init__(self.message)
        if code:
            self.code = code
        if recoverable is not None:
            self.recoverable = recoverable
        self.details = dict(details or {})
        self.cause = cause
        self.timestamp = datetime.now(timezone.utc)
        if cause is not None:
            self.__cause__ = cause

    def __str__(self) -> str:
        return f"[{self.code}] {self.message}"

    def to_dict(self) -> dict[str, Any]:
        return {
            "error_type": self.__class__.__name__,
            "code": self.code,
            "message": self.message,
            "details": self.details,
            "recoverable": self.recoverable,
            "timestamp": self.timestamp.isoformat(),
            "cause": str(self.cause) if self.cause else None,
        }


class ConfigurationError(AutopilotError):
    code = "CONFIGURATION_ERROR"

    def __init__(self, message: str, missing_keys: Optional[list[str]] = None, **kwargs):
        super().__init__(message, **kwargs)
        self.missing_keys = list(missing_keys or [])
        if self.missing_keys:
            self.details["missing_keys"] = self.missing_keys


# ============================================
# Authentication
# ============================================

class AuthenticationError(AutopilotError):
    code = "AUTHENTICATION_ERROR"


class NotAuthenticatedError(AuthenticationError):
    code = "NOT_AUTHENTICATED"
    default_message = "No valid credential is available; sign in before importing"


class TokenFetchError(AuthenticationError):
    code = "TOKEN_FETCH_ERROR"
    default_message = "Could not obtain an access token"
    recoverable = True


class TokenExpiredError(AuthenticationError):
    code = "TOKEN_EXPIRED"
    default_message = "Access token expired or was rejected"
    recoverable = True


class InvalidCredentialsError(AuthenticationError):
    code = "INVALID_CREDENTIALS"
    default_message = "The identity provider rejected the client credentials"


# ============================================
# API Responses
# ============================================

class APIError(AutopilotError):
    """Non-2xx response from the device-management API.

    Attributes:
        status_code: HTTP status
        endpoint: Endpoint that was called
    """

    code = "API_ERROR"
    default_message = "Request to the device-management API failed"
    default_status = 0

    def __init__(
        self,
        message: Optional[str] = None,
        *,
        status_code: Optional[int] = None,
        endpoint: Optional[str] = None,
        response_body: Optional[str] = None,
        **kwargs,
    ):
        super().__init__(message, **kwargs)
        self.status_code = status_code if status_code is not None else self.default_status
        self.endpoint = endpoint
        self.details["status_code"] = self.status_code
        if endpoint:
            self.details["endpoint"] = endpoint
        if response_body:
            self.details["response_body"] = response_body[:500]


class RateLimitError(APIError):
    code = "RATE_LIMITED"
    default_message = "Rate limit exceeded"
    default_status = 429
    recoverable = True

    def __init__(self, message: Optional[str] = None, *, retry_after: int = 60, **kwargs):
        super().__init__(message, **kwargs)
        self.retry_after = retry_after
        self.details["retry_after"] = retry_after


class NotFoundError(APIError):
    code = "NOT_FOUND"
    default_message = "Resource not found"
    default_status = 404


class ValidationError(APIError):
    code = "VALIDATION_ERROR"
    default_message = "Request rejected by the service"
    default_status = 400


class ServerError(APIError):
    code = "SERVER_ERROR"
    default_message = "Server error"
    default_status = 500
    recoverable = True


class NetworkError(AutopilotError):
    code = "NETWORK_ERROR"
    default_message = "Network error"
    recoverable = True


# ============================================
# Import Status
# ============================================

class TransientQueryError(AutopilotError):
    """A status query failed in a way the next poll attempt may not.

    The poll loop consumes the attempt and carries on; this never becomes a
    device failure by itself.
    """

    code = "TRANSIENT_QUERY_ERROR"
    default_message = "Import status query failed"
    recoverable = True

    def __init__(self, message: Optional[str] = None, *, serial_number: Optional[str] = None, **kwargs):
        super().__init__(message, **kwargs)
        self.serial_number = serial_number
        if serial_number:
            self.details["serial_number"] = serial_number


class MalformedResponseError(AutopilotError):
    code = "MALFORMED_RESPONSE"
    default_message = "Malformed response from the device-management API"


# ============================================
# Input File
# ============================================

class InputError(AutopilotError):
    code = "INPUT_ERROR"


class InvalidRecordError(InputError):
    """One device record failed validation.

    Attributes:
        row_number: Row in the input file (header is row 1)
        field: Offending field name
    """

    code = "INVALID_RECORD"

    def __init__(
        self,
        message: str,
        *,
        row_number: Optional[int] = None,
        field: Optional[str] = None,
        **kwargs,
    ):
        super().__init__(message, **kwargs)
        self.row_number = row_number
        self.field = field


class MissingColumnError(InputError):
    code = "MISSING_COLUMN"

    def __init__(self, column: str, headers: Optional[list[str]] = None, **kwargs):
        super().__init__(f"Could not find a {column} column in the input file", **kwargs)
        self.column = column
        self.headers = list(headers or [])
        self.details["headers"] = self.headers


class EmptyFileError(InputError):
    code = "EMPTY_FILE"
    default_message = "Input file contains no device records"


class RecordValidationError(InputError):
    """No record of the file is importable.

    Attributes:
        issues: Every ValidationIssue found, in row order
    """

    code = "RECORD_VALIDATION_FAILED"

    def __init__(self, issues: list, total_records: int = 0, **kwargs):
        super().__init__(
            f"{len(issues)} issue(s) in {total_records} record(s); nothing to import",
            **kwargs,
        )
        self.issues = list(issues)
        self.total_records = total_records


class ImportAlreadyRunningError(AutopilotError):
    code = "IMPORT_ALREADY_RUNNING"
    default_message = "An import is already running; wait for it to finish"
    recoverable = True


__all__ = [
    "AutopilotError",
    "ConfigurationError",
    "AuthenticationError",
    "NotAuthenticatedError",
    "TokenFetchError",
    "TokenExpiredError",
    "InvalidCredentialsError",
    "APIError",
    "RateLimitError",
    "NotFoundError",
    "ValidationError",
    "ServerError",
    "NetworkError",
    "TransientQueryError",
    "MalformedResponseError",
    "InputError",
    "InvalidRecordError",
    "MissingColumnError",
    "EmptyFileError",
    "RecordValidationError",
    "ImportAlreadyRunningError",
]
