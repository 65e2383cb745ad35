"""HTTP client for the device-management API.

``GraphClient`` is the only place that talks HTTP. It adds the bearer
token, turns error responses into typed exceptions and applies one retry
policy to every call:

    401            drop the token, fetch a new one, try again
    429            sleep for Retry-After, try again
    5xx, network   sleep 1s, 2s, 4s ... (capped), try again
    other 4xx      raise immediately

Collection reads follow ``@odata.nextLink`` until the last page.

Usage:
    async with GraphClient(token_manager) as client:
        created = await client.post("/importedDeviceIdentities", json_body=payload)
        identities = await client.fetch_all("/importedDeviceIdentities")
"""
import asyncio
import logging
import os
from typing import Any, AsyncIterator, Optional

import aiohttp

from .auth import TokenManager
from .exceptions import (
    APIError,
    NetworkError,
    NotFoundError,
    RateLimitError,
    ServerError,
    TokenExpiredError,
    ValidationError,
)

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://graph.microsoft.com/beta/deviceManagement"
MAX_BACKOFF_SECONDS = 60.0

STATUS_ERRORS: dict[int, type[APIError]] = {
    400: ValidationError,
    404: NotFoundError,
    409: ValidationError,
    422: ValidationError,
    429: RateLimitError,
}


def _retry_after(header: Optional[str]) -> int:
    try:
        return max(int(header), 0) if header else 60
    except ValueError:
        return 60


class GraphClient:
    """Async client for the device-management API.

    Attributes:
        base_url: Prefix for relative endpoints (AUTOPILOT_BASE_URL or the
            Graph beta deviceManagement root)
        max_attempts: Tries per call for retryable failures
    """

    def __init__(
        self,
        token_manager: TokenManager,
        base_url: Optional[str] = None,
        max_attempts: int = 3,
        request_timeout: float = 60.0,
    ):
        self.token_manager = token_manager
        self.base_url = (base_url or os.getenv("AUTOPILOT_BASE_URL") or DEFAULT_BASE_URL).rstrip("/")
        self.max_attempts = max_attempts
        self.request_timeout = request_timeout
        self._session: Optional[aiohttp.ClientSession] = None

    async def __aenter__(self) -> "GraphClient":
        self._session = aiohttp.ClientSession(
            timeout=aiohttp.ClientTimeout(total=self.request_timeout),
        )
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        if self._session:
            await self._session.close()
            self._session = None

    def _url(self, endpoint: str) -> str:
        # nextLink values are already absolute
        if endpoint.startswith(("http://", "https://")):
            return endpoint
        return f"{self.base_url}{endpoint}"

    @staticmethod
    def error_for_status(
        status: int,
        endpoint: str,
        body: str = "",
        retry_after: Optional[str] = None,
    ) -> APIError:
        """Typed exception for an error response."""
        if status == 401:
            return TokenExpiredError(details={"endpoint": endpoint})
        if status == 429:
            return RateLimitError(
                endpoint=endpoint, response_body=body, retry_after=_retry_after(retry_after)
            )
        if status >= 500:
            error_cls = ServerError
        else:
            error_cls = STATUS_ERRORS.get(status, APIError)
        return error_cls(
            f"HTTP {status} from {endpoint}",
            status_code=status,
            endpoint=endpoint,
            response_body=body,
        )

    async def _send(
        self,
        method: str,
        endpoint: str,
        params: Optional[dict] = None,
        json_body: Optional[dict] = None,
    ) -> Any:
        """One request, no retries."""
        if self._session is None:
            raise RuntimeError("GraphClient must be used as 'async with GraphClient(...)'")

        token = await self.token_manager.get_token()
        try:
            async with self._session.request(
                method,
                self._url(endpoint),
                params=params,
                json=json_body,
                headers={"Authorization": f"Bearer {token}"},
            ) as response:
                body = await response.text()
                if response.status >= 400:
                    raise self.error_for_status(
                        response.status, endpoint, body, response.headers.get("Retry-After")
                    )
                if not body.strip():
                    return {}
                return await response.json(content_type=None)
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise NetworkError(f"{method} {endpoint} failed: {str(e) or e.__class__.__name__}", cause=e)

    async def request(
        self,
        method: str,
        endpoint: str,
        params: Optional[dict] = None,
        json_body: Optional[dict] = None,
    ) -> Any:
        """Send a request under the retry policy and return the parsed body."""
        delay = 1.0
        for attempt in range(1, self.max_attempts + 1):
            last_attempt = attempt == self.max_attempts
            try:
                return await self._send(method, endpoint, params, json_body)
            except TokenExpiredError:
                if last_attempt:
                    raise
                logger.warning(f"Token rejected on {method} {endpoint}; refreshing")
                self.token_manager.invalidate()
            except RateLimitError as e:
                if last_attempt:
                    raise
                logger.warning(f"Rate limited on {endpoint}; waiting {e.retry_after}s")
                await asyncio.sleep(e.retry_after)
            except (ServerError, NetworkError) as e:
                if last_attempt:
                    raise
                logger.warning(f"{e.message}; retry {attempt}/{self.max_attempts - 1} in {delay:g}s")
                await asyncio.sleep(delay)
                delay = min(delay * 2, MAX_BACKOFF_SECONDS)

    async def get(self, endpoint: str, params: Optional[dict] = None) -> Any:
        return await self.request("GET", endpoint, params=params)

    async def post(self, endpoint: str, json_body: dict) -> Any:
        return await self.request("POST", endpoint, json_body=json_body)

    async def pages(self, endpoint: str, params: Optional[dict] = None) -> AsyncIterator[list]:
        """Yield the ``value`` list of each page of an OData collection."""
        next_endpoint: Optional[str] = endpoint
        while next_endpoint:
            data = await self.get(next_endpoint, params=params)
            if not isinstance(data, dict):
                return
            yield data.get("value") or []
            next_endpoint = data.get("@odata.nextLink")
            # nextLink carries its own query string
            params = None

    async def fetch_all(self, endpoint: str, params: Optional[dict] = None) -> list:
        items: list = []
        async for page in self.pages(endpoint, params):
            items.extend(page)
        return items
