"""Public connector provider utilities."""

from services.connectors.providers import (
    PROVIDERS,
    BaseConnectorProvider,
    connector_capabilities,
    get_connector_provider,
    load_provider_descriptors,
    lookup_descriptor,
)
from services.connectors.state_store import (
    MemoryOAuthStateStore,
    OAuthStateStore,
    RedisOAuthStateStore,
    get_oauth_state_store,
)
from services.connectors.types import (
    AuthorizationRequest,
    CallbackOutcome,
    ConnectorError,
    ConnectorFlowError,
    DisconnectResult,
    NotConnectedError,
    PendingAuthorization,
    PlatformKey,
    ProviderDescriptor,
    ProviderIdentity,
    ProviderNotConfiguredError,
    RevokeOutcome,
    TokenSet,
    UnknownProviderError,
)

__all__ = [
    "PROVIDERS",
    "AuthorizationRequest",
    "BaseConnectorProvider",
    "CallbackOutcome",
    "ConnectorError",
    "ConnectorFlowError",
    "DisconnectResult",
    "MemoryOAuthStateStore",
    "NotConnectedError",
    "OAuthStateStore",
    "PendingAuthorization",
    "PlatformKey",
    "ProviderDescriptor",
    "ProviderIdentity",
    "ProviderNotConfiguredError",
    "RedisOAuthStateStore",
    "RevokeOutcome",
    "TokenSet",
    "UnknownProviderError",
    "connector_capabilities",
    "get_connector_provider",
    "get_oauth_state_store",
    "load_provider_descriptors",
    "lookup_descriptor",
]
