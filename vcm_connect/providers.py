"""Collaborator interfaces used by the RPC client, with default implementations.

Hosts embedding the client usually provide their own storage and launcher;
the defaults here are file-based and suitable for a standalone tool.
"""

from __future__ import annotations

import asyncio
import json
import logging
import os
import socket
import stat
import uuid
import webbrowser
from collections.abc import Callable
from pathlib import Path
from typing import Protocol

from .config import DEFAULT_URI_SCHEME
from .models import RpcSession

_LOGGER = logging.getLogger(__name__)


class SessionProvider(Protocol):
    """Persistent storage for the single active session."""

    async def load(self) -> RpcSession | None: ...

    async def save(self, session: RpcSession) -> None: ...

    async def delete(self) -> None: ...


class ClientIdentityProvider(Protocol):
    """Supplies a stable client id and a display name."""

    def get_client_id(self) -> str: ...

    def get_client_name(self) -> str: ...


class CompanionLauncher(Protocol):
    """Fire-and-forget launch of the companion app."""

    def launch(self) -> None: ...


class JsonFileSessionProvider:
    """Session store backed by a JSON file.

    The file is chmod 0600 (owner-only read/write).
    """

    def __init__(self, path: Path) -> None:
        self._path = path

    @property
    def path(self) -> Path:
        return self._path

    async def load(self) -> RpcSession | None:
        """Load the stored session. Returns None if missing or unreadable."""
        if not self._path.exists():
            return None
        try:
            data = json.loads(self._path.read_text())
            return RpcSession.from_dict(data)
        except (OSError, ValueError, AttributeError) as err:
            _LOGGER.warning("Failed to load session from %s: %s", self._path, err)
            return None

    async def save(self, session: RpcSession) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        self._path.write_text(json.dumps(session.to_dict(), indent=2))
        os.chmod(self._path, stat.S_IRUSR | stat.S_IWUSR)
        _LOGGER.info("Saved session for %s", session.host)

    async def delete(self) -> None:
        if self._path.exists():
            self._path.unlink()
            _LOGGER.info("Deleted stored session at %s", self._path)


class FileClientIdentityProvider:
    """Client identity whose id is generated once and kept in a file."""

    def __init__(self, path: Path, client_name: str | None = None) -> None:
        self._path = path
        self._client_name = client_name
        self._client_id: str | None = None

    def get_client_id(self) -> str:
        if self._client_id is None:
            self._client_id = self._load_or_create_id()
        return self._client_id

    def get_client_name(self) -> str:
        return self._client_name or socket.gethostname()

    def _load_or_create_id(self) -> str:
        if self._path.exists():
            stored = self._path.read_text().strip()
            if stored:
                return stored
        client_id = str(uuid.uuid4())
        self._path.parent.mkdir(parents=True, exist_ok=True)
        self._path.write_text(client_id)
        _LOGGER.debug("Generated new client id at %s", self._path)
        return client_id


class UriSchemeLauncher:
    """Launch the companion app via its `<scheme>://launch` URI.

    `dispatch` runs the open call on the execution context the host requires
    (e.g. a UI thread). Without one, the call goes to the running loop's
    default executor.
    """

    def __init__(
        self,
        scheme: str = DEFAULT_URI_SCHEME,
        *,
        dispatch: Callable[[Callable[[], None]], None] | None = None,
    ) -> None:
        self._scheme = scheme
        self._dispatch = dispatch

    @property
    def uri(self) -> str:
        return f"{self._scheme}://launch"

    def launch(self) -> None:
        if self._dispatch is not None:
            self._dispatch(self._open)
            return
        asyncio.get_running_loop().run_in_executor(None, self._open)

    def _open(self) -> None:
        # Runs detached from the caller; failures are only ever logged
        try:
            opened = webbrowser.open(self.uri)
        except (webbrowser.Error, OSError) as err:
            _LOGGER.warning("Failed to open %s: %s", self.uri, err)
            return
        if not opened:
            _LOGGER.warning("No handler accepted %s", self.uri)
