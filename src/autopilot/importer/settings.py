"""Import engine configuration.

Settings are plain dataclass fields so tests can construct them directly;
``ImportSettings.from_env()`` reads overrides from the environment (a
``.env`` file is honoured via python-dotenv).

Environment Variables:
    IMPORT_POLL_INTERVAL_SECONDS: Fixed delay between status polls (default 15)
    IMPORT_MAX_POLL_ATTEMPTS: Polls before a device times out (default 20)
    IMPORT_MAX_CONCURRENCY: Devices processed at once (default 1, sequential)
    IMPORT_DRAIN_INTERVAL_SECONDS: Event bus drain interval (default 0.1)
    IMPORT_MIN_HASH_LENGTH: Shortest plausible hardware hash (default 100)
"""
import os
from dataclasses import dataclass

from dotenv import load_dotenv

from ..api.exceptions import ConfigurationError

load_dotenv()


@dataclass
class ImportSettings:
    """Tunables of the import engine.

    Attributes:
        poll_interval: Seconds between status polls. Fixed, no backoff.
        max_attempts: Status polls per device before giving up (Timeout)
        max_concurrency: Devices in flight at once (1 = file order, one by one)
        drain_interval: Seconds between event bus drains
        min_identifier_length: Hardware hashes shorter than this are rejected
    """
    poll_interval: float = 15.0
    max_attempts: int = 20
    max_concurrency: int = 1
    drain_interval: float = 0.1
    min_identifier_length: int = 100

    def __post_init__(self):
        if self.poll_interval < 0:
            raise ConfigurationError("poll_interval must be >= 0")
        if self.max_attempts < 1:
            raise ConfigurationError("max_attempts must be >= 1")
        if self.max_concurrency < 1:
            raise ConfigurationError("max_concurrency must be >= 1")
        if self.drain_interval <= 0:
            raise ConfigurationError("drain_interval must be > 0")
        if self.min_identifier_length < 0:
            raise ConfigurationError("min_identifier_length must be >= 0")

    @classmethod
    def from_env(cls) -> "ImportSettings":
        """Build settings from environment variables, falling back to defaults."""
        defaults = cls()
        return cls(
            poll_interval=_env_number("IMPORT_POLL_INTERVAL_SECONDS", defaults.poll_interval, float),
            max_attempts=_env_number("IMPORT_MAX_POLL_ATTEMPTS", defaults.max_attempts, int),
            max_concurrency=_env_number("IMPORT_MAX_CONCURRENCY", defaults.max_concurrency, int),
            drain_interval=_env_number("IMPORT_DRAIN_INTERVAL_SECONDS", defaults.drain_interval, float),
            min_identifier_length=_env_number("IMPORT_MIN_HASH_LENGTH", defaults.min_identifier_length, int),
        )

    def __repr__(self):
        return (
            f"ImportSettings("
            f"poll={self.poll_interval}s x{self.max_attempts}, "
            f"concurrency={self.max_concurrency}, "
            f"drain={self.drain_interval}s, "
            f"min_hash={self.min_identifier_length})"
        )


def _env_number(name: str, default, cast):
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return cast(raw)
    except ValueError:
        raise ConfigurationError(
            f"{name} must be a number, got {raw!r}",
            details={"variable": name},
        )
