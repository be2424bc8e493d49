"""Data types shared by the Content Manager RPC client."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from multidict import CIMultiDict, CIMultiDictProxy

from .errors import VcmInvalidResponseError


class ConnectionState(Enum):
    """Connection states of the RPC client."""

    DISCONNECTED = "disconnected"
    AWAITING_CHALLENGE = "awaiting_challenge"
    CONNECTED = "connected"


@dataclass(frozen=True)
class RpcSession:
    """Persisted session record.

    Attributes:
        host: Base URL of the companion app (e.g., "http://localhost:5000").
        token: Bearer token issued by the companion app.
    """

    host: str
    token: str

    def to_dict(self) -> dict[str, str]:
        return {"host": self.host, "token": self.token}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> RpcSession:
        """Build a session from a stored mapping.

        Raises:
            ValueError: If host or token is missing or empty.
        """
        host = data.get("host")
        token = data.get("token")
        if not isinstance(host, str) or not host:
            raise ValueError("Session host is missing")
        if not isinstance(token, str) or not token:
            raise ValueError("Session token is missing")
        return cls(host=host, token=token)


@dataclass(frozen=True)
class ClientIdentity:
    """Stable identity of this client as seen by the companion app."""

    client_id: str
    client_name: str


@dataclass(frozen=True)
class InstanceMetadata:
    """Response of GET /v1/meta."""

    instance_name: str | None
    raw: dict[str, Any] = field(default_factory=lambda: {})


@dataclass(frozen=True)
class AuthMetadata:
    """Response of GET /v1/auth/metadata."""

    raw: dict[str, Any] = field(default_factory=lambda: {})


@dataclass(frozen=True)
class VcmResponse:
    """Fully read HTTP response returned by authenticated sends."""

    status: int
    headers: CIMultiDictProxy[str] = field(
        default_factory=lambda: CIMultiDictProxy(CIMultiDict())
    )
    body: bytes = b""

    @property
    def ok(self) -> bool:
        return 200 <= self.status < 300

    def text(self) -> str:
        return self.body.decode("utf-8", errors="replace")

    def json(self) -> Any:
        """Decode the body as JSON."""
        if not self.body:
            raise VcmInvalidResponseError("Response body is empty")
        try:
            return json.loads(self.body)
        except ValueError as err:
            raise VcmInvalidResponseError("Response body is not valid JSON") from err
