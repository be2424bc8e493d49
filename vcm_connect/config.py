"""Client settings and their YAML loader.

Settings are plain data; the client never reads files on its own. Hosts
call `load_settings()` and pass the result to `VcmRpcClient`.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Final

import yaml

from .errors import SettingsLoadError

DEFAULT_URI_SCHEME: Final = "vrchat-content-manager"
DEFAULT_USER_AGENT: Final = "VRChatContentManager.ConnectEditorApp/snapshot"


@dataclass(frozen=True)
class RetryPolicy:
    """Fixed-delay retry budget.

    Attributes:
        max_attempts: Maximum number of attempts.
        delay: Delay between attempts (seconds).
    """

    max_attempts: int = 5
    delay: float = 5.0


@dataclass(frozen=True)
class ClientSettings:
    """Tunables for the RPC client.

    Attributes:
        launch_app_when_reconnect: Launch the local companion app when a
            loopback session cannot be restored directly.
        uri_scheme: URI scheme used to launch the companion app.
        user_agent: User-Agent header sent with every request.
        launch_grace_period: Wait after launching the app (seconds).
        connect_retry: Budget for probing the app after launch.
        readiness_initial_delay: Wait before polling readiness (seconds).
        readiness_retry: Budget for the ready-for-publish poll.
        request_timeout: Timeout for metadata, auth and health calls.
        challenge_timeout: Timeout for the pairing handshake calls.
        upload_timeout: Timeout for file uploads.
    """

    launch_app_when_reconnect: bool = True
    uri_scheme: str = DEFAULT_URI_SCHEME
    user_agent: str = DEFAULT_USER_AGENT
    launch_grace_period: float = 3.0
    connect_retry: RetryPolicy = field(default_factory=RetryPolicy)
    readiness_initial_delay: float = 3.0
    readiness_retry: RetryPolicy = field(default_factory=RetryPolicy)
    request_timeout: float = 10.0
    challenge_timeout: float = 20.0
    upload_timeout: float = 120.0


def _parse_retry_policy(data: Any, key: str) -> RetryPolicy:
    if data is None:
        return RetryPolicy()
    if not isinstance(data, dict):
        raise SettingsLoadError(f"'{key}' must be a mapping")
    max_attempts = data.get("max_attempts", RetryPolicy.max_attempts)
    if isinstance(max_attempts, bool) or not isinstance(max_attempts, int):
        raise SettingsLoadError(f"'{key}.max_attempts' must be an integer")
    if max_attempts < 1:
        raise SettingsLoadError(f"'{key}.max_attempts' must be at least 1")
    return RetryPolicy(
        max_attempts=max_attempts,
        delay=_parse_seconds(data.get("delay", RetryPolicy.delay), f"{key}.delay"),
    )


_BOOL_FIELDS: Final = ("launch_app_when_reconnect",)
_STRING_FIELDS: Final = ("uri_scheme", "user_agent")
_SECONDS_FIELDS: Final = (
    "launch_grace_period",
    "readiness_initial_delay",
    "request_timeout",
    "challenge_timeout",
    "upload_timeout",
)


def _parse_seconds(value: Any, key: str) -> float:
    # bool is an int subclass; "true" is never a duration
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise SettingsLoadError(f"'{key}' must be a number of seconds")
    if value < 0:
        raise SettingsLoadError(f"'{key}' must not be negative")
    return float(value)


def settings_from_dict(data: dict[str, Any]) -> ClientSettings:
    """Build settings from a mapping, ignoring unknown keys.

    Raises:
        SettingsLoadError: If a known key holds a value of the wrong type.
    """
    values: dict[str, Any] = {}
    for key in _BOOL_FIELDS:
        if key in data:
            if not isinstance(data[key], bool):
                raise SettingsLoadError(f"'{key}' must be true or false")
            values[key] = data[key]
    for key in _STRING_FIELDS:
        if key in data:
            if not isinstance(data[key], str) or not data[key]:
                raise SettingsLoadError(f"'{key}' must be a non-empty string")
            values[key] = data[key]
    for key in _SECONDS_FIELDS:
        if key in data:
            values[key] = _parse_seconds(data[key], key)

    return ClientSettings(
        connect_retry=_parse_retry_policy(data.get("connect_retry"), "connect_retry"),
        readiness_retry=_parse_retry_policy(
            data.get("readiness_retry"), "readiness_retry"
        ),
        **values,
    )


def load_settings(path: Path) -> ClientSettings:
    """Load settings from a YAML file.

    Raises:
        SettingsLoadError: If the file is missing, unparseable, or not a mapping.
    """
    if not path.exists():
        raise SettingsLoadError(f"File not found: {path}")
    try:
        with path.open() as f:
            data = yaml.safe_load(f) or {}
    except yaml.YAMLError as err:
        raise SettingsLoadError(f"Invalid YAML in {path}: {err}") from err
    if not isinstance(data, dict):
        raise SettingsLoadError(f"Settings in {path} must be a mapping")
    return settings_from_dict(data)
