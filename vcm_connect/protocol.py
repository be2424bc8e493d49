"""Wire helpers for the Content Manager RPC API (v1).

Request bodies are plain dicts with camelCase keys. Parsers raise
VcmInvalidResponseError when a success response lacks a required field.
"""

from __future__ import annotations

import random
from collections.abc import Sequence
from typing import Any, Final

from .errors import VcmInvalidResponseError
from .models import AuthMetadata, InstanceMetadata

PATH_META: Final = "/v1/meta"
PATH_REQUEST_CHALLENGE: Final = "/v1/auth/request-challenge"
PATH_CHALLENGE: Final = "/v1/auth/challenge"
PATH_REFRESH: Final = "/v1/auth/refresh"
PATH_AUTH_METADATA: Final = "/v1/auth/metadata"
PATH_READY_FOR_PUBLISH: Final = "/v1/health/ready-for-publish"
PATH_FILES: Final = "/v1/files"
PATH_TASK_WORLD: Final = "/v1/tasks/world"
PATH_TASK_AVATAR: Final = "/v1/tasks/avatar"

IDENTITY_PROMPT_WORDS: Final[tuple[str, ...]] = (
    "Red",
    "Blue",
    "Green",
    "Yellow",
    "Purple",
    "Orange",
    "Black",
    "White",
    "Gray",
    "Silver",
    "Gold",
    "Bronze",
    "Copper",
    "Iron",
    "Steel",
    "Wooden",
    "Plastic",
    "Glass",
    "Crystal",
    "Diamond",
)


def pick_two_words(words: Sequence[str], rng: random.Random) -> str:
    """Pick two words (with replacement) and join them with a space."""
    if not words:
        raise ValueError("Word list is empty")
    return f"{rng.choice(words)} {rng.choice(words)}"


def build_request_challenge_body(
    *, client_id: str, identity_prompt: str, client_name: str
) -> dict[str, Any]:
    return {
        "clientId": client_id,
        "identityPrompt": identity_prompt,
        "clientName": client_name,
    }


def build_challenge_body(
    *, client_id: str, code: str, identity_prompt: str
) -> dict[str, Any]:
    return {
        "clientId": client_id,
        "code": code,
        "identityPrompt": identity_prompt,
    }


def build_refresh_body(*, client_name: str) -> dict[str, Any]:
    return {"clientName": client_name}


def build_avatar_task_body(
    *,
    avatar_id: str,
    bundle_file_id: str,
    avatar_name: str,
    platform: str,
    unity_version: str,
    image_file_id: str | None = None,
    description: str | None = None,
    tags: Sequence[str] | None = None,
    release_status: str | None = None,
) -> dict[str, Any]:
    """Build the body for POST /v1/tasks/avatar.

    Optional fields are omitted when unset.
    """
    body: dict[str, Any] = {
        "avatarId": avatar_id,
        "bundleFileId": bundle_file_id,
        "avatarName": avatar_name,
        "platform": platform,
        "unityVersion": unity_version,
    }
    optional = {
        "imageFileId": image_file_id,
        "description": description,
        "tags": list(tags) if tags is not None else None,
        "releaseStatus": release_status,
    }
    body.update({key: value for key, value in optional.items() if value is not None})
    return body


def _require_mapping(data: Any, what: str) -> dict[str, Any]:
    if not isinstance(data, dict):
        raise VcmInvalidResponseError(f"{what} response is not a JSON object")
    return data


def _require_string(data: dict[str, Any], key: str, what: str) -> str:
    value = data.get(key)
    if not isinstance(value, str) or not value:
        raise VcmInvalidResponseError(f"{what} response has no '{key}'")
    return value


def parse_token(data: Any) -> str:
    """Extract the bearer token from a challenge or refresh response."""
    return _require_string(_require_mapping(data, "Token"), "token", "Token")


def parse_file_id(data: Any) -> str:
    return _require_string(_require_mapping(data, "Upload"), "fileId", "Upload")


def parse_instance_metadata(data: Any) -> InstanceMetadata:
    payload = _require_mapping(data, "Metadata")
    instance_name = payload.get("instanceName")
    if instance_name is not None and not isinstance(instance_name, str):
        raise VcmInvalidResponseError("Metadata response has invalid 'instanceName'")
    return InstanceMetadata(instance_name=instance_name, raw=payload)


def parse_auth_metadata(data: Any) -> AuthMetadata:
    return AuthMetadata(raw=_require_mapping(data, "Auth metadata"))
