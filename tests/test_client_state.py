"""Test VcmRpcClient state machine and observers."""

from __future__ import annotations

from unittest.mock import MagicMock

import pytest

from vcm_connect import ConnectionState, VcmRpcClient
from vcm_connect.errors import VcmInvalidStateError

from .conftest import BASE_URL, InMemorySessionProvider, pairing_routes


def test_initial_state(client: VcmRpcClient) -> None:
    assert client.state is ConnectionState.DISCONNECTED
    assert not client.is_connected
    assert client.base_url is None
    assert client.identity_prompt is None
    assert client.client_id == "client-123"
    assert client.identity.client_name == "Test Editor"


class TestInvalidState:
    async def test_complete_challenge_when_disconnected(
        self, client: VcmRpcClient, mock_session: MagicMock
    ) -> None:
        with pytest.raises(VcmInvalidStateError, match="not awaiting a challenge"):
            await client.complete_challenge("123456")

        mock_session.post.assert_not_called()
        mock_session.get.assert_not_called()

    async def test_complete_challenge_when_connected(
        self, connected_client: VcmRpcClient, mock_session: MagicMock
    ) -> None:
        mock_session.post.reset_mock()

        with pytest.raises(VcmInvalidStateError):
            await connected_client.complete_challenge("123456")

        mock_session.post.assert_not_called()

    async def test_send_when_disconnected(
        self, client: VcmRpcClient, mock_session: MagicMock
    ) -> None:
        with pytest.raises(VcmInvalidStateError, match="not connected"):
            await client.send("GET", "/v1/auth/metadata")

        mock_session.request.assert_not_called()

    async def test_send_when_awaiting_challenge(
        self, client: VcmRpcClient, mock_session: MagicMock
    ) -> None:
        pairing_routes(mock_session)
        await client.request_challenge(BASE_URL)

        with pytest.raises(VcmInvalidStateError):
            await client.send("POST", "/v1/tasks/world", json={})

        mock_session.request.assert_not_called()

    async def test_refresh_when_disconnected(
        self, client: VcmRpcClient, mock_session: MagicMock
    ) -> None:
        with pytest.raises(VcmInvalidStateError):
            await client.refresh_token()

        mock_session.request.assert_not_called()


class TestNotifications:
    async def test_disconnect_when_disconnected_does_not_notify(
        self, client: VcmRpcClient
    ) -> None:
        changes: list[tuple[ConnectionState, ConnectionState]] = []
        client.on_state_changed(lambda old, new: changes.append((old, new)))

        await client.disconnect()
        await client.forget_and_disconnect()

        assert changes == []

    async def test_pairing_notifies_each_transition_once(
        self, client: VcmRpcClient, mock_session: MagicMock
    ) -> None:
        changes: list[tuple[ConnectionState, ConnectionState]] = []
        client.on_state_changed(lambda old, new: changes.append((old, new)))
        pairing_routes(mock_session)

        await client.request_challenge(BASE_URL)
        await client.complete_challenge("123456")

        assert changes == [
            (ConnectionState.DISCONNECTED, ConnectionState.AWAITING_CHALLENGE),
            (ConnectionState.AWAITING_CHALLENGE, ConnectionState.CONNECTED),
        ]

    async def test_observers_see_updated_fields(
        self, client: VcmRpcClient, mock_session: MagicMock
    ) -> None:
        seen: list[tuple[ConnectionState, str | None]] = []
        client.on_state_changed(lambda old, new: seen.append((new, client.base_url)))
        pairing_routes(mock_session)

        await client.request_challenge(BASE_URL)
        await client.complete_challenge("123456")
        await client.disconnect()

        assert seen == [
            (ConnectionState.AWAITING_CHALLENGE, BASE_URL),
            (ConnectionState.CONNECTED, BASE_URL),
            (ConnectionState.DISCONNECTED, None),
        ]

    async def test_unsubscribe(
        self, client: VcmRpcClient, mock_session: MagicMock
    ) -> None:
        changes: list[ConnectionState] = []
        unsubscribe = client.on_state_changed(lambda old, new: changes.append(new))
        unsubscribe()
        pairing_routes(mock_session)

        await client.request_challenge(BASE_URL)

        assert changes == []

    async def test_identity_prompt_notifications(
        self, client: VcmRpcClient, mock_session: MagicMock
    ) -> None:
        prompts: list[str | None] = []
        client.on_identity_prompt_changed(prompts.append)
        pairing_routes(mock_session)

        prompt = await client.request_challenge(BASE_URL)
        await client.complete_challenge("123456")

        assert prompts == [prompt, None]


class TestDisconnect:
    async def test_disconnect_keeps_stored_session(
        self,
        connected_client: VcmRpcClient,
        session_store: InMemorySessionProvider,
    ) -> None:
        await connected_client.disconnect()

        assert connected_client.state is ConnectionState.DISCONNECTED
        assert connected_client.base_url is None
        assert session_store.session is not None
        assert await connected_client.get_last_session() == session_store.session

    async def test_forget_and_disconnect_removes_stored_session(
        self,
        connected_client: VcmRpcClient,
        session_store: InMemorySessionProvider,
    ) -> None:
        await connected_client.forget_and_disconnect()

        assert connected_client.state is ConnectionState.DISCONNECTED
        assert session_store.session is None
        assert await connected_client.get_last_session() is None

    async def test_forget_and_disconnect_deletes_when_observer_raises(
        self,
        connected_client: VcmRpcClient,
        session_store: InMemorySessionProvider,
    ) -> None:
        def failing_observer(old: ConnectionState, new: ConnectionState) -> None:
            raise RuntimeError("observer failed")

        connected_client.on_state_changed(failing_observer)
        deletes_before = session_store.delete_count

        with pytest.raises(RuntimeError, match="observer failed"):
            await connected_client.forget_and_disconnect()

        assert connected_client.state is ConnectionState.DISCONNECTED
        assert session_store.session is None
        assert session_store.delete_count == deletes_before + 1
