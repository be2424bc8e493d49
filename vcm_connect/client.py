"""RPC client for pairing with and talking to VRChat Content Manager.

This module owns the connection state machine. It handles:
- Pairing via the request-challenge / challenge handshake
- Session persistence through an injected SessionProvider
- Session restore, including launching a local app and waiting for it
- Token refresh with self-validation
- Authenticated request dispatch and 401 handling

Callers are expected to drive a client instance from one task at a time.
"""

from __future__ import annotations

import asyncio
import logging
import random
from collections.abc import Callable, Sequence
from pathlib import Path
from typing import Any, Final

import aiohttp
from yarl import URL

from .config import ClientSettings
from .errors import (
    VcmClientError,
    VcmInvalidStateError,
    VcmNoSessionError,
    VcmRefreshError,
    VcmResponseError,
    VcmTransportError,
    VcmUnauthorizedError,
    VcmUnsupportedError,
    VcmValidationError,
)
from .http import VcmHttpClient
from .models import ClientIdentity, ConnectionState, RpcSession, VcmResponse
from .protocol import (
    IDENTITY_PROMPT_WORDS,
    PATH_FILES,
    PATH_REFRESH,
    PATH_TASK_AVATAR,
    PATH_TASK_WORLD,
    build_avatar_task_body,
    build_challenge_body,
    build_refresh_body,
    build_request_challenge_body,
    parse_file_id,
    parse_token,
    pick_two_words,
)
from .providers import (
    ClientIdentityProvider,
    CompanionLauncher,
    SessionProvider,
    UriSchemeLauncher,
)
from .retry import retry

_LOGGER = logging.getLogger(__name__)

LOOPBACK_HOSTS: Final = frozenset({"localhost", "127.0.0.1", "::1", "[::1]"})

StateCallback = Callable[[ConnectionState, ConnectionState], None]
PromptCallback = Callable[[str | None], None]
ProgressCallback = Callable[[str], None]


def is_loopback_host(base_url: str) -> bool:
    """Check whether a base URL points at this machine."""
    return URL(base_url).host in LOOPBACK_HOSTS


def _normalize_base_url(base_url: str) -> str:
    url = URL(base_url)
    if not url.is_absolute() or url.scheme not in ("http", "https"):
        raise ValueError(f"Invalid base URL: {base_url!r}")
    return str(url)


class VcmRpcClient:
    """Client for a single authenticated session with the companion app.

    Usage:
        client = VcmRpcClient(http_session, identity_provider, session_provider)
        client.on_state_changed(my_state_handler)
        prompt = await client.request_challenge("http://localhost:5000")
        await client.complete_challenge(code_from_user)
        ...
        await client.restore_session()  # on the next start
    """

    def __init__(
        self,
        http_session: aiohttp.ClientSession,
        identity_provider: ClientIdentityProvider,
        session_provider: SessionProvider,
        *,
        launcher: CompanionLauncher | None = None,
        settings: ClientSettings | None = None,
        progress: ProgressCallback | None = None,
        random_source: random.Random | None = None,
        prompt_words: Sequence[str] = IDENTITY_PROMPT_WORDS,
    ) -> None:
        """Initialize client.

        Args:
            http_session: aiohttp session used for all requests (not owned)
            identity_provider: Source of the stable client id and display name
            session_provider: Persistent storage for the active session
            launcher: Launches the companion app; defaults to its URI scheme
            settings: Client tunables; defaults to ClientSettings()
            progress: Sink for human-readable restore progress messages
            random_source: Random source for identity prompts
            prompt_words: Word list for identity prompts
        """
        self._settings = settings or ClientSettings()
        self._http = VcmHttpClient(
            http_session,
            user_agent=self._settings.user_agent,
            request_timeout=self._settings.request_timeout,
            challenge_timeout=self._settings.challenge_timeout,
        )
        self._identity_provider = identity_provider
        self._session_provider = session_provider
        self._launcher = (
            launcher
            if launcher is not None
            else UriSchemeLauncher(self._settings.uri_scheme)
        )
        self._progress = progress
        self._random = random_source or random.SystemRandom()
        self._prompt_words = prompt_words
        self._client_id = identity_provider.get_client_id()

        # Session state
        self._state = ConnectionState.DISCONNECTED
        self._base_url: str | None = None
        self._token: str | None = None
        self._identity_prompt: str | None = None
        self._instance_name: str | None = None

        # Observers
        self._state_callbacks: list[StateCallback] = []
        self._prompt_callbacks: list[PromptCallback] = []

    # -------------------------------------------------------------------------
    # Public API: State
    # -------------------------------------------------------------------------

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def is_connected(self) -> bool:
        return self._state is ConnectionState.CONNECTED

    @property
    def base_url(self) -> str | None:
        return self._base_url

    @property
    def client_id(self) -> str:
        return self._client_id

    @property
    def identity(self) -> ClientIdentity:
        return ClientIdentity(
            client_id=self._client_id,
            client_name=self._identity_provider.get_client_name(),
        )

    @property
    def identity_prompt(self) -> str | None:
        """Prompt of the outstanding challenge, if any."""
        return self._identity_prompt

    @property
    def instance_name(self) -> str | None:
        return self._instance_name

    @property
    def settings(self) -> ClientSettings:
        return self._settings

    def on_state_changed(self, callback: StateCallback) -> Callable[[], None]:
        """Register callback for state changes.

        Callback receives (old_state, new_state) and is only called when the
        state actually changes. Returns a function that unregisters it.
        """
        self._state_callbacks.append(callback)
        return lambda: self._remove_callback(self._state_callbacks, callback)

    def on_identity_prompt_changed(
        self, callback: PromptCallback
    ) -> Callable[[], None]:
        """Register callback for identity prompt changes (None when cleared)."""
        self._prompt_callbacks.append(callback)
        return lambda: self._remove_callback(self._prompt_callbacks, callback)

    async def get_last_session(self) -> RpcSession | None:
        """Return the persisted session, if any."""
        return await self._session_provider.load()

    async def disconnect(self) -> None:
        """Drop the in-memory session without touching storage."""
        self._token = None
        self._base_url = None
        self._instance_name = None
        self._set_identity_prompt(None)
        self._set_state(ConnectionState.DISCONNECTED)

    async def forget_and_disconnect(self) -> None:
        """Disconnect and delete the persisted session."""
        try:
            await self.disconnect()
        finally:
            await self._session_provider.delete()

    async def is_connection_valid(self) -> bool:
        """Probe the connected app; disconnect if the session no longer works."""
        if self._state is not ConnectionState.CONNECTED:
            return False
        if self._base_url is None or self._token is None:
            return False

        try:
            await self._http.fetch_auth_metadata(self._base_url, self._token)
            return True
        except VcmClientError as err:
            _LOGGER.error(
                "[%s] Connection is not valid, disconnecting: %s", self._base_url, err
            )
            await self.disconnect()
            return False

    # -------------------------------------------------------------------------
    # Public API: Pairing
    # -------------------------------------------------------------------------

    async def request_challenge(self, base_url: str) -> str:
        """Start pairing with the app at base_url.

        Forgets any existing session first. On success the app shows a code
        together with the returned identity prompt, which the user compares
        with the prompt shown by this client.

        Returns:
            The identity prompt for this challenge.

        Raises:
            ValueError: If base_url is not an absolute http(s) URL.
            VcmMetadataError: If the app answers the metadata request with an
                error status.
            VcmProtocolError: If the app does not answer with 204.
            VcmTransportError: If the app is unreachable or times out
                (`VcmConnectionError` or `VcmTimeout`).
        """
        normalized = _normalize_base_url(base_url)
        await self.forget_and_disconnect()

        metadata = await self._http.fetch_metadata(normalized)

        identity_prompt = pick_two_words(self._prompt_words, self._random)
        self._set_identity_prompt(identity_prompt)

        body = build_request_challenge_body(
            client_id=self._client_id,
            identity_prompt=identity_prompt,
            client_name=self._identity_provider.get_client_name(),
        )
        try:
            await self._http.request_challenge(normalized, body)
        except VcmClientError:
            self._set_identity_prompt(None)
            raise

        self._base_url = normalized
        self._instance_name = metadata.instance_name
        self._set_state(ConnectionState.AWAITING_CHALLENGE)

        _LOGGER.info(
            "[%s] Challenge requested from instance %s",
            normalized,
            metadata.instance_name,
        )
        return identity_prompt

    async def complete_challenge(self, code: str) -> None:
        """Finish pairing with the code shown by the app.

        A rejected code leaves the client awaiting a challenge so the caller
        may retry. A token that fails validation forgets the session and
        disconnects.

        Raises:
            VcmInvalidStateError: If no challenge is outstanding.
            VcmChallengeError: If the app rejects the code.
            VcmInvalidResponseError: If the app returns no token.
            VcmValidationError: If the issued token fails validation.
        """
        if self._state is not ConnectionState.AWAITING_CHALLENGE:
            raise VcmInvalidStateError("Client is not awaiting a challenge")
        if self._base_url is None:
            raise VcmInvalidStateError(
                "Base URL is not set. Call request_challenge first"
            )
        if self._identity_prompt is None:
            raise VcmInvalidStateError(
                "Identity prompt is not set. Call request_challenge first"
            )

        base_url = self._base_url
        body = build_challenge_body(
            client_id=self._client_id,
            code=code,
            identity_prompt=self._identity_prompt,
        )
        token = await self._http.complete_challenge(base_url, body)

        self._token = token
        await self._validate_and_persist(base_url, token, "pairing")

        self._set_identity_prompt(None)
        self._set_state(ConnectionState.CONNECTED)
        _LOGGER.info("[%s] Paired with instance %s", base_url, self._instance_name)

    # -------------------------------------------------------------------------
    # Public API: Session Restore & Refresh
    # -------------------------------------------------------------------------

    async def restore_session(
        self, show_progress: bool = True, launch_app: bool | None = None
    ) -> bool:
        """Reconnect using the persisted session.

        Args:
            show_progress: Send progress messages to the progress sink.
            launch_app: Launch the local app if a loopback session is
                unreachable. Defaults to settings.launch_app_when_reconnect.

        Returns:
            True once connected with a refreshed token, False if the app was
            unreachable and launching it was not allowed.

        Raises:
            VcmNoSessionError: If there is no persisted session.
            VcmTransportError: If the app stays unreachable.
            VcmResponseError: If the host answers like a different server.
        """
        session = await self._session_provider.load()
        if session is None:
            raise VcmNoSessionError("No session to restore")

        if launch_app is None:
            launch_app = self._settings.launch_app_when_reconnect

        report = self._progress_reporter(session.host, show_progress)
        if not await self._restore_session_core(session, launch_app, report):
            return False

        metadata = await self._http.fetch_metadata(session.host)

        self._base_url = session.host
        self._token = session.token
        self._instance_name = metadata.instance_name
        self._set_identity_prompt(None)
        self._set_state(ConnectionState.CONNECTED)
        _LOGGER.info(
            "[%s] Session restored to instance %s", session.host, metadata.instance_name
        )

        await self.refresh_token()
        return True

    async def refresh_token(self) -> None:
        """Rotate the bearer token.

        The new token is validated before it is persisted. If validation
        fails, the session is forgotten and the client disconnects.

        Raises:
            VcmInvalidStateError: If the client is not connected.
            VcmRefreshError: If the app rejects the refresh.
            VcmValidationError: If the new token fails validation.
        """
        response = await self.send(
            "POST",
            PATH_REFRESH,
            json=build_refresh_body(
                client_name=self._identity_provider.get_client_name()
            ),
        )
        if not response.ok:
            raise VcmRefreshError(
                response.status,
                f"Token refresh failed with status {response.status}",
            )
        token = parse_token(response.json())

        base_url, _ = self._require_connected()
        self._token = token
        await self._validate_and_persist(base_url, token, "refresh")
        _LOGGER.debug("[%s] Token refreshed", base_url)

    # -------------------------------------------------------------------------
    # Public API: Authenticated Requests
    # -------------------------------------------------------------------------

    async def send(
        self,
        method: str,
        path: str,
        *,
        json: Any = None,
        data: Any = None,
        timeout: float | None = None,
    ) -> VcmResponse:
        """Send an authenticated request.

        Any status other than 401 is returned to the caller as-is. A 401
        forgets the session and disconnects.

        Raises:
            VcmInvalidStateError: If the client is not connected.
            VcmUnauthorizedError: If the app rejects the token.
        """
        base_url, token = self._require_connected()

        response = await self._http.request(
            method, base_url, path, token=token, json=json, data=data, timeout=timeout
        )
        if response.status == 401:
            _LOGGER.warning("[%s] Unauthorized response, disconnecting", base_url)
            await self.forget_and_disconnect()
            raise VcmUnauthorizedError()

        return response

    async def upload_file(self, file_path: Path, file_name: str | None = None) -> str:
        """Upload a file and return its server-side file id."""
        form = aiohttp.FormData()
        with file_path.open("rb") as f:
            form.add_field(
                "file",
                f,
                filename=file_name or file_path.name,
                content_type="application/octet-stream",
            )
            response = await self.send(
                "POST", PATH_FILES, data=form, timeout=self._settings.upload_timeout
            )
        _raise_for_status(response, "File upload")
        return parse_file_id(response.json())

    async def create_world_publish_task(self, payload: dict[str, Any]) -> None:
        response = await self.send("POST", PATH_TASK_WORLD, json=payload)
        _raise_for_status(response, "World publish task")

    async def create_avatar_publish_task(
        self,
        avatar_id: str,
        bundle_file_id: str,
        avatar_name: str,
        platform: str,
        unity_version: str,
        *,
        image_file_id: str | None = None,
        description: str | None = None,
        tags: Sequence[str] | None = None,
        release_status: str | None = None,
    ) -> None:
        body = build_avatar_task_body(
            avatar_id=avatar_id,
            bundle_file_id=bundle_file_id,
            avatar_name=avatar_name,
            platform=platform,
            unity_version=unity_version,
            image_file_id=image_file_id,
            description=description,
            tags=tags,
            release_status=release_status,
        )
        response = await self.send("POST", PATH_TASK_AVATAR, json=body)
        _raise_for_status(response, "Avatar publish task")

    # -------------------------------------------------------------------------
    # Internal: Restore
    # -------------------------------------------------------------------------

    async def _restore_session_core(
        self,
        session: RpcSession,
        launch_app: bool,
        report: ProgressCallback,
    ) -> bool:
        """Make sure the app behind the session is reachable.

        Returns False if the app is unreachable and launching was not allowed.
        """
        host = session.host

        report("Try requesting auth metadata from existing instance (if have)...")
        try:
            await self._http.fetch_auth_metadata(host, session.token)
            return True
        except VcmTransportError as err:
            if not is_loopback_host(host):
                raise
            if not launch_app:
                _LOGGER.info("[%s] Local app unreachable, not launching: %s", host, err)
                return False
            _LOGGER.warning(
                "[%s] Failed to restore session to local app, trying to launch it: %s",
                host,
                err,
            )

        report("Trying to launch local VRChat Content Publisher App...")
        self._launcher.launch()
        await asyncio.sleep(self._settings.launch_grace_period)

        policy = self._settings.connect_retry
        await retry(
            lambda: self._http.fetch_auth_metadata(host, session.token),
            max_attempts=policy.max_attempts,
            delay=policy.delay,
            on_attempt=lambda n: report(f"Attempt {n} to restore session to App."),
            description="session restore",
        )

        await self._wait_until_ready(session, report)
        return True

    async def _wait_until_ready(
        self, session: RpcSession, report: ProgressCallback
    ) -> None:
        """Poll ready-for-publish; advisory, never fails on exhaustion."""
        policy = self._settings.readiness_retry

        report("Checking if instance is ready for publish...")
        try:
            if await self._probe_ready(session):
                return

            await asyncio.sleep(self._settings.readiness_initial_delay)
            ready = await retry(
                lambda: self._probe_ready(session),
                max_attempts=policy.max_attempts,
                delay=policy.delay,
                retry_on=(),
                retry_if=lambda is_ready: not is_ready,
                on_attempt=lambda n: report(
                    f"Attempt {n} to check if instance is ready for publish..."
                ),
                description="ready-for-publish check",
            )
        except VcmUnsupportedError:
            _LOGGER.warning(
                "[%s] Instance does not support ready-for-publish check, "
                "assuming it's ready",
                session.host,
            )
            return

        if not ready:
            _LOGGER.warning(
                "[%s] Instance is not ready for publish after %d attempts, "
                "proceeding anyway",
                session.host,
                policy.max_attempts,
            )

    async def _probe_ready(self, session: RpcSession) -> bool:
        try:
            return await self._http.is_ready_for_publish(session.host, session.token)
        except VcmTransportError as err:
            _LOGGER.debug("[%s] Readiness check failed: %s", session.host, err)
            return False

    def _progress_reporter(self, host: str, show_progress: bool) -> ProgressCallback:
        sink = self._progress if show_progress else None

        def report(message: str) -> None:
            if sink is None:
                _LOGGER.info("[%s] %s", host, message)
                return
            _LOGGER.debug("[%s] %s", host, message)
            sink(message)

        return report

    # -------------------------------------------------------------------------
    # Internal: State Machine
    # -------------------------------------------------------------------------

    def _require_connected(self) -> tuple[str, str]:
        if self._state is not ConnectionState.CONNECTED:
            raise VcmInvalidStateError("Client is not connected")
        if self._base_url is None:
            raise VcmInvalidStateError(
                "Base URL is not set. Call request_challenge first"
            )
        if self._token is None:
            raise VcmInvalidStateError(
                "Not authenticated. Call complete_challenge first"
            )
        return self._base_url, self._token

    async def _validate_and_persist(self, base_url: str, token: str, what: str) -> None:
        """Validate a freshly issued token and persist the session.

        Any failure forgets the session and disconnects.
        """
        try:
            await self._http.fetch_auth_metadata(base_url, token)
            await self._session_provider.save(RpcSession(host=base_url, token=token))
        except Exception as err:
            _LOGGER.error(
                "[%s] Failed to validate token after %s, disconnecting: %s",
                base_url,
                what,
                err,
            )
            await self.forget_and_disconnect()
            raise VcmValidationError(
                f"Token validation after {what} failed: {err}"
            ) from err

    def _set_state(self, state: ConnectionState) -> None:
        """Update connection state and notify observers."""
        if self._state is state:
            return
        old_state = self._state
        _LOGGER.debug(
            "[%s] State: %s → %s", self._base_url, old_state.value, state.value
        )
        self._state = state
        for callback in list(self._state_callbacks):
            callback(old_state, state)

    def _set_identity_prompt(self, prompt: str | None) -> None:
        if self._identity_prompt == prompt:
            return
        self._identity_prompt = prompt
        for callback in list(self._prompt_callbacks):
            callback(prompt)

    @staticmethod
    def _remove_callback(callbacks: list[Any], callback: Any) -> None:
        if callback in callbacks:
            callbacks.remove(callback)


def _raise_for_status(response: VcmResponse, what: str) -> None:
    if not response.ok:
        raise VcmResponseError(
            response.status, f"{what} failed with status {response.status}"
        )
