"""Client for pairing with and publishing through VRChat Content Manager."""

__version__ = "0.1.0"

from .client import VcmRpcClient, is_loopback_host
from .config import ClientSettings, RetryPolicy, load_settings
from .errors import (
    SettingsLoadError,
    VcmChallengeError,
    VcmClientError,
    VcmConnectionError,
    VcmInvalidResponseError,
    VcmInvalidStateError,
    VcmInvalidStatusCodeError,
    VcmMetadataError,
    VcmNoSessionError,
    VcmProtocolError,
    VcmRefreshError,
    VcmResponseError,
    VcmTimeout,
    VcmTransportError,
    VcmUnauthorizedError,
    VcmUnsupportedError,
    VcmValidationError,
)
from .http import VcmHttpClient
from .models import (
    AuthMetadata,
    ClientIdentity,
    ConnectionState,
    InstanceMetadata,
    RpcSession,
    VcmResponse,
)
from .protocol import IDENTITY_PROMPT_WORDS, pick_two_words
from .providers import (
    ClientIdentityProvider,
    CompanionLauncher,
    FileClientIdentityProvider,
    JsonFileSessionProvider,
    SessionProvider,
    UriSchemeLauncher,
)

__all__ = [
    "IDENTITY_PROMPT_WORDS",
    "AuthMetadata",
    "ClientIdentity",
    "ClientIdentityProvider",
    "ClientSettings",
    "CompanionLauncher",
    "ConnectionState",
    "FileClientIdentityProvider",
    "InstanceMetadata",
    "JsonFileSessionProvider",
    "RetryPolicy",
    "RpcSession",
    "SessionProvider",
    "SettingsLoadError",
    "UriSchemeLauncher",
    "VcmChallengeError",
    "VcmClientError",
    "VcmConnectionError",
    "VcmHttpClient",
    "VcmInvalidResponseError",
    "VcmInvalidStateError",
    "VcmInvalidStatusCodeError",
    "VcmMetadataError",
    "VcmNoSessionError",
    "VcmProtocolError",
    "VcmRefreshError",
    "VcmResponse",
    "VcmRpcClient",
    "VcmTimeout",
    "VcmTransportError",
    "VcmUnauthorizedError",
    "VcmUnsupportedError",
    "VcmValidationError",
    "__version__",
    "is_loopback_host",
    "load_settings",
    "pick_two_words",
]
