"""
IBM Cloud IAM bearer tokens.

An API key is exchanged for an access token at the IAM token endpoint.  The
token is reused until 80% of its lifetime has passed, then fetched again.
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Callable

import httpx

from watsonx_chat.errors import AuthenticationError

logger = logging.getLogger(__name__)

IAM_TOKEN_URL = "https://iam.cloud.ibm.com/identity/token"
GRANT_TYPE = "urn:ibm:params:oauth:grant-type:apikey"
REFRESH_FRACTION = 0.8


class IamAuthenticator:
    """
    Parameters
    ----------
    api_key:
        IBM Cloud API key.
    url:
        IAM token endpoint.
    timeout:
        HTTP request timeout in seconds.
    transport:
        Optional httpx transport, mainly for tests.
    clock:
        Returns the current time in seconds.
    """

    def __init__(
        self,
        api_key: str,
        url: str = IAM_TOKEN_URL,
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        if not api_key:
            raise AuthenticationError("An IAM API key is required")
        self._api_key = api_key
        self._url = url
        self._timeout = timeout
        self._transport = transport
        self._clock = clock
        self._lock = asyncio.Lock()
        self._token: str | None = None
        self._refresh_at = 0.0

    def needs_refresh(self) -> bool:
        return self._token is None or self._clock() >= self._refresh_at

    async def get_access_token(self) -> str:
        async with self._lock:
            if self.needs_refresh():
                await self._request_token()
            assert self._token is not None
            return self._token

    async def _request_token(self) -> None:
        issued = self._clock()
        try:
            async with httpx.AsyncClient(timeout=self._timeout, transport=self._transport) as client:
                resp = await client.post(
                    self._url,
                    data={"grant_type": GRANT_TYPE, "apikey": self._api_key},
                    headers={"Accept": "application/json"},
                )
        except httpx.TransportError as exc:
            raise AuthenticationError(f"IAM token request failed: {exc}") from exc

        if resp.status_code != 200:
            raise AuthenticationError(
                f"IAM token request failed: HTTP {resp.status_code}",
                status_code=resp.status_code,
            )

        data = resp.json()
        token = data.get("access_token")
        if not token:
            raise AuthenticationError("IAM response carried no access_token")

        expires_in = data.get("expires_in")
        if expires_in is None and data.get("expiration") is not None:
            expires_in = data["expiration"] - issued
        expires_in = float(expires_in or 0)

        self._token = token
        self._refresh_at = issued + expires_in * REFRESH_FRACTION
        logger.info("IAM token acquired, expires in %.0fs", expires_in)
