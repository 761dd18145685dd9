"""Connector provider contracts."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from types import MappingProxyType
from typing import Literal, Mapping, Optional, Tuple


PlatformKey = Literal["instagram", "twitter", "linkedin", "github", "youtube"]


class ConnectorError(RuntimeError):
    """Base class for connection lifecycle errors."""


class UnknownProviderError(ConnectorError):
    """Raised when a platform id has no registered provider."""

    def __init__(self, platform: str) -> None:
        super().__init__(f"Invalid platform: {platform}")
        self.platform = platform


class ProviderNotConfiguredError(ConnectorError):
    """Raised when a provider is missing client credentials."""

    def __init__(self, platform: str) -> None:
        super().__init__(
            f"{platform} OAuth is not configured. Please set the required environment variables."
        )
        self.platform = platform


class NotConnectedError(ConnectorError):
    """Raised when disconnecting a platform that has no connected account."""

    def __init__(self, profile_id: str, platform: str) -> None:
        super().__init__("Account not connected")
        self.profile_id = profile_id
        self.platform = platform


class ConnectorFlowError(ConnectorError):
    """Terminal failure of a single authorization callback.

    ``code`` and ``description`` are safe to show to the browser; ``detail``
    carries raw provider output for server-side logs only.
    """

    def __init__(
        self,
        code: str,
        *,
        platform: Optional[str] = None,
        description: Optional[str] = None,
        detail: Optional[str] = None,
    ) -> None:
        super().__init__(code)
        self.code = code
        self.platform = platform
        self.description = description
        self.detail = detail


@dataclass(frozen=True)
class ProviderDescriptor:
    platform: str
    client_id: str
    client_secret: str
    redirect_uri: str
    authorization_url: str
    token_url: str
    userinfo_url: str
    scopes: Tuple[str, ...] = ()
    requires_pkce: bool = False
    extra_auth_params: Mapping[str, str] = field(default_factory=lambda: MappingProxyType({}))

    @property
    def configured(self) -> bool:
        return bool(self.client_id) and bool(self.client_secret)


@dataclass(frozen=True)
class PendingAuthorization:
    profile_id: str
    platform: str
    created_at: datetime
    code_verifier: Optional[str] = None


@dataclass(frozen=True)
class AuthorizationRequest:
    platform: str
    url: str
    state: str


@dataclass(frozen=True)
class TokenSet:
    access_token: str
    refresh_token: Optional[str]
    expires_at: Optional[datetime]


@dataclass(frozen=True)
class ProviderIdentity:
    username: str
    account_id: str


@dataclass(frozen=True)
class CallbackOutcome:
    succeeded: bool
    platform: str
    error: Optional[str] = None
    description: Optional[str] = None

    @classmethod
    def success(cls, platform: str) -> "CallbackOutcome":
        return cls(succeeded=True, platform=platform)

    @classmethod
    def failure(
        cls,
        platform: str,
        error: str,
        description: Optional[str] = None,
    ) -> "CallbackOutcome":
        return cls(succeeded=False, platform=platform, error=error, description=description)


class RevokeOutcome(str, Enum):
    REVOKED = "revoked"
    NOT_SUPPORTED = "not_supported"
    FAILED = "failed"


@dataclass(frozen=True)
class DisconnectResult:
    platform: str
    revoke: RevokeOutcome
