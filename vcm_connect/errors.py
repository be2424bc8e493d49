"""Client error types for VRChat Content Manager RPC interactions."""

from __future__ import annotations


class VcmClientError(Exception):
    """Base error for Content Manager RPC client failures."""


class VcmInvalidStateError(VcmClientError):
    """Operation invoked while the client is in the wrong state."""


class VcmNoSessionError(VcmInvalidStateError):
    """No persisted session is available to restore."""


class VcmTransportError(VcmClientError):
    """Network-level failure; eligible for retry."""


class VcmTimeout(VcmTransportError):
    """Timeout while communicating with the companion app."""


class VcmConnectionError(VcmTransportError):
    """Network connection to the companion app failed."""


class VcmResponseError(VcmClientError):
    """HTTP response error from the companion app."""

    def __init__(self, status: int, message: str) -> None:
        super().__init__(message)
        self.status = status


class VcmInvalidStatusCodeError(VcmResponseError):
    """Unexpected status code on a structural check."""


class VcmMetadataError(VcmResponseError):
    """Instance metadata could not be fetched."""


class VcmProtocolError(VcmResponseError):
    """Server answered a handshake call with an unexpected status."""


class VcmChallengeError(VcmResponseError):
    """Challenge code was rejected."""


class VcmRefreshError(VcmResponseError):
    """Token refresh was rejected."""


class VcmUnauthorizedError(VcmResponseError):
    """Session was rejected by the server."""

    def __init__(self, message: str = "Unauthorized response") -> None:
        super().__init__(401, message)


class VcmInvalidResponseError(VcmClientError):
    """Success status, but the body is missing or malformed."""


class VcmUnsupportedError(VcmClientError):
    """Endpoint is not implemented by this companion version."""


class VcmValidationError(VcmClientError):
    """Post-authentication self-validation failed."""


class SettingsLoadError(VcmClientError):
    """Error loading client settings."""
