"""Device-management API layer.

GraphClient speaks HTTP, TokenManager supplies bearer tokens and
DeviceIdentityManager knows the imported device identity endpoint.
"""
from .auth import AccessToken, TokenManager
from .client import DEFAULT_BASE_URL, GraphClient
from .device_identities import DeviceIdentityManager
from .exceptions import (
    APIError,
    AuthenticationError,
    AutopilotError,
    ConfigurationError,
    EmptyFileError,
    ImportAlreadyRunningError,
    InputError,
    InvalidCredentialsError,
    InvalidRecordError,
    MalformedResponseError,
    MissingColumnError,
    NetworkError,
    NotAuthenticatedError,
    NotFoundError,
    RateLimitError,
    RecordValidationError,
    ServerError,
    TokenExpiredError,
    TokenFetchError,
    TransientQueryError,
    ValidationError,
)

__all__ = [
    "AccessToken",
    "TokenManager",
    "GraphClient",
    "DEFAULT_BASE_URL",
    "DeviceIdentityManager",
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
