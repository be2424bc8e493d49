"""HTTP client for Content Manager RPC endpoints."""

from __future__ import annotations

import logging
from typing import Any

import aiohttp
from multidict import CIMultiDict, CIMultiDictProxy
from yarl import URL

from .errors import (
    VcmChallengeError,
    VcmConnectionError,
    VcmInvalidResponseError,
    VcmInvalidStatusCodeError,
    VcmMetadataError,
    VcmProtocolError,
    VcmTimeout,
    VcmUnsupportedError,
)
from .models import AuthMetadata, InstanceMetadata, VcmResponse
from .protocol import (
    PATH_AUTH_METADATA,
    PATH_CHALLENGE,
    PATH_META,
    PATH_READY_FOR_PUBLISH,
    PATH_REQUEST_CHALLENGE,
    parse_auth_metadata,
    parse_instance_metadata,
    parse_token,
)

_LOGGER = logging.getLogger(__name__)


def build_url(base_url: str, path: str) -> str:
    """Resolve an absolute endpoint path against a base URL."""
    return str(URL(base_url).join(URL(path)))


async def _read_json(resp: aiohttp.ClientResponse, what: str) -> Any:
    try:
        return await resp.json(content_type=None)
    except ValueError as err:
        raise VcmInvalidResponseError(f"{what} response is not valid JSON") from err


class VcmHttpClient:
    """HTTP client wrapper for Content Manager RPC endpoints.

    Stateless with respect to the session: each call takes the base URL and,
    for authenticated endpoints, the bearer token to use.
    """

    def __init__(
        self,
        session: aiohttp.ClientSession,
        *,
        user_agent: str | None = None,
        request_timeout: float = 10.0,
        challenge_timeout: float = 20.0,
    ) -> None:
        self._session = session
        self._user_agent = user_agent
        self._request_timeout = request_timeout
        self._challenge_timeout = challenge_timeout

    def _headers(self, token: str | None = None) -> dict[str, str]:
        headers: dict[str, str] = {}
        if self._user_agent:
            headers["User-Agent"] = self._user_agent
        if token:
            headers["Authorization"] = f"Bearer {token}"
        return headers

    async def fetch_metadata(self, base_url: str) -> InstanceMetadata:
        """Fetch instance metadata from unauthenticated /v1/meta."""
        url = build_url(base_url, PATH_META)
        try:
            async with self._session.get(
                url,
                headers=self._headers(),
                timeout=aiohttp.ClientTimeout(total=self._request_timeout),
            ) as resp:
                if not 200 <= resp.status < 300:
                    raise VcmMetadataError(
                        resp.status, f"Metadata request failed with status {resp.status}"
                    )
                return parse_instance_metadata(await _read_json(resp, "Metadata"))
        except TimeoutError as err:
            raise VcmTimeout("Metadata request timed out") from err
        except aiohttp.ClientError as err:
            raise VcmConnectionError("Failed to fetch instance metadata") from err

    async def request_challenge(self, base_url: str, body: dict[str, Any]) -> None:
        """Ask the app to show a challenge code.

        The app MUST acknowledge with 204 No Content; anything else,
        including another 2xx, is a protocol violation.
        """
        url = build_url(base_url, PATH_REQUEST_CHALLENGE)
        try:
            async with self._session.post(
                url,
                json=body,
                headers=self._headers(),
                timeout=aiohttp.ClientTimeout(total=self._challenge_timeout),
            ) as resp:
                if resp.status != 204:
                    raise VcmProtocolError(
                        resp.status,
                        f"Unexpected response status code: {resp.status}",
                    )
        except TimeoutError as err:
            raise VcmTimeout("Challenge request timed out") from err
        except aiohttp.ClientError as err:
            raise VcmConnectionError("Challenge request failed") from err

    async def complete_challenge(self, base_url: str, body: dict[str, Any]) -> str:
        """Submit the challenge code and return the issued token."""
        url = build_url(base_url, PATH_CHALLENGE)
        try:
            async with self._session.post(
                url,
                json=body,
                headers=self._headers(),
                timeout=aiohttp.ClientTimeout(total=self._challenge_timeout),
            ) as resp:
                if not 200 <= resp.status < 300:
                    raise VcmChallengeError(
                        resp.status, f"Challenge failed with status code: {resp.status}"
                    )
                return parse_token(await _read_json(resp, "Challenge"))
        except TimeoutError as err:
            raise VcmTimeout("Challenge completion timed out") from err
        except aiohttp.ClientError as err:
            raise VcmConnectionError("Challenge completion failed") from err

    async def fetch_auth_metadata(self, base_url: str, token: str) -> AuthMetadata:
        """Fetch auth metadata; doubles as a token validation probe.

        Raises:
            VcmInvalidStatusCodeError: If the app returns anything but 200.
            VcmInvalidResponseError: If the body is not a JSON object.
        """
        url = build_url(base_url, PATH_AUTH_METADATA)
        try:
            async with self._session.get(
                url,
                headers=self._headers(token),
                timeout=aiohttp.ClientTimeout(total=self._request_timeout),
            ) as resp:
                if resp.status != 200:
                    raise VcmInvalidStatusCodeError(
                        resp.status,
                        f"Auth metadata request returned status {resp.status}",
                    )
                return parse_auth_metadata(await _read_json(resp, "Auth metadata"))
        except TimeoutError as err:
            raise VcmTimeout("Auth metadata request timed out") from err
        except aiohttp.ClientError as err:
            raise VcmConnectionError("Failed to fetch auth metadata") from err

    async def is_ready_for_publish(self, base_url: str, token: str) -> bool:
        """Check /v1/health/ready-for-publish.

        Returns:
            True on 204 No Content, False for any other status.

        Raises:
            VcmUnsupportedError: If the app does not implement the check (404).
        """
        url = build_url(base_url, PATH_READY_FOR_PUBLISH)
        try:
            async with self._session.get(
                url,
                headers=self._headers(token),
                timeout=aiohttp.ClientTimeout(total=self._request_timeout),
            ) as resp:
                if resp.status == 404:
                    raise VcmUnsupportedError(
                        "Instance does not support ready-for-publish check"
                    )
                return resp.status == 204
        except TimeoutError as err:
            raise VcmTimeout("Readiness check timed out") from err
        except aiohttp.ClientError as err:
            raise VcmConnectionError("Readiness check failed") from err

    async def request(
        self,
        method: str,
        base_url: str,
        path: str,
        *,
        token: str,
        json: Any = None,
        data: Any = None,
        timeout: float | None = None,
    ) -> VcmResponse:
        """Send an authenticated request and read the full response."""
        url = build_url(base_url, path)
        _LOGGER.debug("%s %s", method, url)
        try:
            async with self._session.request(
                method,
                url,
                json=json,
                data=data,
                headers=self._headers(token),
                timeout=aiohttp.ClientTimeout(
                    total=timeout if timeout is not None else self._request_timeout
                ),
            ) as resp:
                body = await resp.read()
                return VcmResponse(
                    status=resp.status,
                    headers=CIMultiDictProxy(CIMultiDict(resp.headers)),
                    body=body,
                )
        except TimeoutError as err:
            raise VcmTimeout(f"{method} {path} timed out") from err
        except aiohttp.ClientError as err:
            raise VcmConnectionError(f"{method} {path} failed") from err
