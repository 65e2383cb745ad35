"""Access tokens for the device-management API.

The import engine needs two things from the identity provider: a bearer
token to put on requests, and an offline answer to "is a credential
available right now?" before a run starts. ``TokenManager`` provides both
using the OAuth2 client-credentials grant.

A refresh is a single request. If it fails on the network the caller sees
TokenFetchError (recoverable); the poll loop simply tries again on its next
attempt, so no retry loop lives here.

Environment Variables:
    AUTOPILOT_TENANT_ID: Directory tenant, used to derive the token URL
    AUTOPILOT_CLIENT_ID / AUTOPILOT_CLIENT_SECRET: App registration
    AUTOPILOT_TOKEN_URL: Token endpoint override (optional)
    AUTOPILOT_SCOPE: Requested scope (optional)
"""
import asyncio
import hashlib
import logging
import os
import time
from dataclasses import dataclass
from typing import Optional

import aiohttp
from dotenv import load_dotenv

from .exceptions import (
    ConfigurationError,
    InvalidCredentialsError,
    NetworkError,
    TokenFetchError,
)

load_dotenv()

logger = logging.getLogger(__name__)

DEFAULT_SCOPE = "https://graph.microsoft.com/.default"
TOKEN_URL_TEMPLATE = "https://login.microsoftonline.com/{tenant_id}/oauth2/v2.0/token"

# Treat a token as expired this many seconds before it really is
EXPIRY_MARGIN_SECONDS = 120
TOKEN_REQUEST_TIMEOUT = 30


@dataclass(frozen=True)
class AccessToken:
    value: str
    expires_at: float

    @property
    def is_expired(self) -> bool:
        return time.time() >= self.expires_at - EXPIRY_MARGIN_SECONDS

    @property
    def fingerprint(self) -> str:
        """Short hash of the token, safe to log."""
        return hashlib.sha256(self.value.encode()).hexdigest()[:8]


class TokenManager:
    """Client-credentials token source for GraphClient and the orchestrator.

    Implements the ICredentialProvider precondition through
    ``is_authenticated()``; GraphClient uses ``get_token()`` and
    ``invalidate()``.
    """

    def __init__(
        self,
        tenant_id: Optional[str] = None,
        client_id: Optional[str] = None,
        client_secret: Optional[str] = None,
        token_url: Optional[str] = None,
        scope: Optional[str] = None,
    ):
        tenant_id = tenant_id or os.getenv("AUTOPILOT_TENANT_ID")
        self.client_id = client_id or os.getenv("AUTOPILOT_CLIENT_ID")
        self.client_secret = client_secret or os.getenv("AUTOPILOT_CLIENT_SECRET")
        self.scope = scope or os.getenv("AUTOPILOT_SCOPE", DEFAULT_SCOPE)
        self.token_url = token_url or os.getenv("AUTOPILOT_TOKEN_URL")
        if not self.token_url and tenant_id:
            self.token_url = TOKEN_URL_TEMPLATE.format(tenant_id=tenant_id)

        missing = [
            name
            for name, value in (
                ("AUTOPILOT_CLIENT_ID", self.client_id),
                ("AUTOPILOT_CLIENT_SECRET", self.client_secret),
                ("AUTOPILOT_TENANT_ID", self.token_url),
            )
            if not value
        ]
        if missing:
            raise ConfigurationError(
                f"Missing credential settings: {', '.join(missing)}",
                missing_keys=missing,
            )

        self._token: Optional[AccessToken] = None
        self._lock = asyncio.Lock()

    def is_authenticated(self) -> bool:
        """True when an unexpired token is held. Never touches the network."""
        return self._token is not None and not self._token.is_expired

    def invalidate(self) -> None:
        """Forget the held token so the next ``get_token`` fetches a new one."""
        self._token = None

    async def get_token(self) -> str:
        """Return a valid access token, fetching one if needed.

        Raises:
            InvalidCredentialsError: If the client id/secret are rejected
            TokenFetchError: If the token endpoint cannot be reached or fails
        """
        async with self._lock:
            if not self.is_authenticated():
                self._token = await self._request_token()
            return self._token.value

    async def _request_token(self) -> AccessToken:
        form = {
            "grant_type": "client_credentials",
            "client_id": self.client_id,
            "client_secret": self.client_secret,
            "scope": self.scope,
        }
        try:
            async with aiohttp.ClientSession() as session:
                async with session.post(
                    self.token_url,
                    data=form,
                    timeout=aiohttp.ClientTimeout(total=TOKEN_REQUEST_TIMEOUT),
                ) as response:
                    if response.status in (400, 401):
                        body = await response.text()
                        raise InvalidCredentialsError(details={"response": body[:200]})
                    if response.status != 200:
                        raise TokenFetchError(
                            f"Token endpoint returned HTTP {response.status}",
                            details={"status_code": response.status},
                        )
                    data = await response.json()
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise TokenFetchError(
                "Token endpoint unreachable",
                cause=NetworkError(str(e) or e.__class__.__name__, cause=e),
            )

        if not data.get("access_token"):
            raise TokenFetchError("Token response has no access_token")

        token = AccessToken(
            value=data["access_token"],
            expires_at=time.time() + int(data.get("expires_in", 3600)),
        )
        logger.info(f"Access token {token.fingerprint} acquired")
        return token
