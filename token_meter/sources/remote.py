"""
Remote utilization client.

Fetches authoritative per-window utilization. Every failure degrades to an
unavailable SourceResult; nothing is raised to the caller.
"""

import asyncio
import logging
from typing import Any, Dict, Optional

import httpx

from token_meter.core.merger import RemoteUtilization, RemoteWindow, SourceResult
from token_meter.core.record_parser import parse_timestamp
from .credentials import CredentialProvider

logger = logging.getLogger(__name__)

BETA_HEADER = "oauth-2025-04-20"


class RemoteUsageClient:
    """Client for the OAuth usage endpoint.

    The bearer token is cached on the instance. It is invalidated and read
    again from the provider exactly once when the endpoint answers 401,
    never on a timer.
    """

    def __init__(
        self,
        endpoint: str,
        credentials: CredentialProvider,
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """Initialize the client.

        Args:
            endpoint: Full URL of the usage endpoint
            credentials: Source of the bearer token
            timeout: Request timeout in seconds
            transport: Optional httpx transport, mainly for tests
        """
        self.endpoint = endpoint
        self.credentials = credentials
        self.timeout = timeout
        self.transport = transport
        self._token: Optional[str] = None

    def invalidate_token(self) -> None:
        self._token = None

    async def _get_token(self) -> Optional[str]:
        if self._token is None:
            # Providers may read files; keep that off the event loop
            self._token = await asyncio.to_thread(self.credentials.read_token)
        return self._token

    async def fetch(self) -> SourceResult[RemoteUtilization]:
        """Fetch the utilization snapshot.

        Returns:
            SourceResult with the decoded snapshot, or the reason it is
            unavailable (no credentials, 401, non-200, network or decode error)
        """
        token = await self._get_token()
        if token is None:
            return SourceResult.unavailable("no credentials")

        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
                response = await self._get(client, token)
                if response.status_code == 401:
                    logger.info("Usage endpoint rejected cached token, re-reading credentials")
                    self.invalidate_token()
                    token = await self._get_token()
                    if token is None:
                        return SourceResult.unavailable("no credentials")
                    response = await self._get(client, token)
        except httpx.HTTPError as e:
            logger.info("Usage endpoint unreachable: %s", e)
            return SourceResult.unavailable(f"network error: {e}")

        if response.status_code == 401:
            self.invalidate_token()
            return SourceResult.unavailable("unauthorized")
        if response.status_code != 200:
            logger.info("Usage endpoint returned HTTP %s", response.status_code)
            return SourceResult.unavailable(f"HTTP {response.status_code}")

        try:
            return SourceResult.ok(decode_utilization(response.json()))
        except (ValueError, TypeError, KeyError) as e:
            logger.warning("Cannot decode usage endpoint response: %s", e)
            return SourceResult.unavailable(f"decode error: {e}")

    async def _get(self, client: httpx.AsyncClient, token: str) -> httpx.Response:
        return await client.get(
            self.endpoint,
            headers={
                "Authorization": f"Bearer {token}",
                "anthropic-beta": BETA_HEADER,
                "Content-Type": "application/json",
            },
        )


def decode_utilization(payload: Any) -> RemoteUtilization:
    """Decode the endpoint's JSON body.

    Raises:
        ValueError: If the body or a present window is malformed
    """
    if not isinstance(payload, dict):
        raise ValueError("response body must be an object")
    return RemoteUtilization(
        five_hour=_decode_window(payload.get("five_hour"), "five_hour"),
        seven_day=_decode_window(payload.get("seven_day"), "seven_day"),
        seven_day_opus=_decode_window(payload.get("seven_day_opus"), "seven_day_opus"),
    )


def _decode_window(data: Optional[Dict[str, Any]], name: str) -> Optional[RemoteWindow]:
    if data is None:
        return None
    if not isinstance(data, dict):
        raise ValueError(f"'{name}' must be an object")

    utilization = data.get("utilization")
    if isinstance(utilization, bool) or not isinstance(utilization, (int, float)):
        raise ValueError(f"'{name}.utilization' must be a number")

    resets_at = data.get("resets_at")
    parsed_reset = None
    if resets_at is not None:
        parsed_reset = parse_timestamp(resets_at)
        if parsed_reset is None:
            raise ValueError(f"'{name}.resets_at' is not an ISO-8601 instant")

    return RemoteWindow(utilization=float(utilization), resets_at=parsed_reset)
