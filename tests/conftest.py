"""Pytest configuration and fixtures for vcm_connect tests."""

from __future__ import annotations

import random
from collections.abc import Callable
from typing import Any
from unittest.mock import AsyncMock, MagicMock

import aiohttp
import pytest
from multidict import CIMultiDict
from yarl import URL

from vcm_connect import ClientSettings, RetryPolicy, RpcSession, VcmRpcClient

BASE_URL = "http://localhost:5000"


@pytest.fixture
def mock_session() -> MagicMock:
    """Create a mock aiohttp ClientSession."""
    return MagicMock(spec=aiohttp.ClientSession)


def create_mock_response(
    status: int = 200,
    json_data: Any = None,
    text_data: str | None = None,
    read_data: bytes | None = None,
) -> AsyncMock:
    """Create a configured mock response.

    Args:
        status: HTTP status code
        json_data: Data to return from json() call
        text_data: Data to return from text() call
        read_data: Data to return from read() call

    Returns:
        Configured AsyncMock response
    """
    response = AsyncMock()
    response.status = status
    response.headers = CIMultiDict()

    if json_data is not None:
        response.json.return_value = json_data
    if text_data is not None:
        response.text.return_value = text_data
    response.read.return_value = read_data if read_data is not None else b""

    response.__aenter__.return_value = response
    response.__aexit__.return_value = None

    return response


def route(responses: dict[str, list[Any]]) -> Callable[..., Any]:
    """Build a side_effect serving queued responses by URL path.

    Each call pops the next item for its path; the last item is repeated.
    Exception instances are raised instead of returned.
    """
    queues = {path: list(items) for path, items in responses.items()}

    def side_effect(*args: Any, **kwargs: Any) -> Any:
        path = URL(args[-1]).path
        queue = queues[path]
        item = queue.pop(0) if len(queue) > 1 else queue[0]
        if isinstance(item, BaseException):
            raise item
        return item

    return side_effect


def calls_to(mock: MagicMock, path: str) -> list[Any]:
    """Return the recorded calls whose URL has the given path."""
    return [c for c in mock.call_args_list if URL(c.args[-1]).path == path]


class InMemorySessionProvider:
    """Session store keeping the record in memory."""

    def __init__(self, session: RpcSession | None = None) -> None:
        self.session = session
        self.saved: list[RpcSession] = []
        self.delete_count = 0

    async def load(self) -> RpcSession | None:
        return self.session

    async def save(self, session: RpcSession) -> None:
        self.session = session
        self.saved.append(session)

    async def delete(self) -> None:
        self.session = None
        self.delete_count += 1


class StaticIdentityProvider:
    def get_client_id(self) -> str:
        return "client-123"

    def get_client_name(self) -> str:
        return "Test Editor"


class RecordingLauncher:
    def __init__(self) -> None:
        self.launch_count = 0

    def launch(self) -> None:
        self.launch_count += 1


@pytest.fixture
def fast_settings() -> ClientSettings:
    """Settings with every delay set to zero."""
    return ClientSettings(
        launch_grace_period=0,
        connect_retry=RetryPolicy(max_attempts=5, delay=0),
        readiness_initial_delay=0,
        readiness_retry=RetryPolicy(max_attempts=5, delay=0),
    )


@pytest.fixture
def session_store() -> InMemorySessionProvider:
    return InMemorySessionProvider()


@pytest.fixture
def launcher() -> RecordingLauncher:
    return RecordingLauncher()


@pytest.fixture
def progress_messages() -> list[str]:
    return []


@pytest.fixture
def client(
    mock_session: MagicMock,
    session_store: InMemorySessionProvider,
    launcher: RecordingLauncher,
    fast_settings: ClientSettings,
    progress_messages: list[str],
) -> VcmRpcClient:
    return VcmRpcClient(
        mock_session,
        StaticIdentityProvider(),
        session_store,
        launcher=launcher,
        settings=fast_settings,
        progress=progress_messages.append,
        random_source=random.Random(42),
    )


def pairing_routes(
    mock_session: MagicMock, token: str = "token-1", instance_name: str = "My PC"
) -> None:
    """Configure a companion app that accepts pairing."""
    mock_session.get.side_effect = route(
        {
            "/v1/meta": [
                create_mock_response(200, json_data={"instanceName": instance_name})
            ],
            "/v1/auth/metadata": [create_mock_response(200, json_data={})],
            "/v1/health/ready-for-publish": [create_mock_response(204)],
        }
    )
    mock_session.post.side_effect = route(
        {
            "/v1/auth/request-challenge": [create_mock_response(204)],
            "/v1/auth/challenge": [
                create_mock_response(200, json_data={"token": token})
            ],
        }
    )


@pytest.fixture
async def connected_client(
    client: VcmRpcClient, mock_session: MagicMock
) -> VcmRpcClient:
    """Client paired with BASE_URL using token-1."""
    pairing_routes(mock_session)
    await client.request_challenge(BASE_URL)
    await client.complete_challenge("123456")
    return client
