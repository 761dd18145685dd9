"""OAuth connector providers and the provider registry."""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from datetime import datetime, timedelta, timezone
from functools import lru_cache
from types import MappingProxyType
from typing import Any, Dict, Mapping, Optional, Tuple, Type
from urllib.parse import urlencode

import httpx

from config import oauth_redirect_uri, settings
from services.connectors.pkce import CODE_CHALLENGE_METHOD
from services.connectors.types import (
    ConnectorFlowError,
    ProviderDescriptor,
    ProviderIdentity,
    RevokeOutcome,
    TokenSet,
    UnknownProviderError,
)

logger = logging.getLogger(__name__)


class BaseConnectorProvider(ABC):
    """Capability set every OAuth provider adapter implements.

    Shared control flow (state handling, persistence, link creation) lives in
    ``services.connections``; subclasses only describe what differs per
    provider: endpoints, token transport, identity shape, follower metric,
    revocation mechanics and public profile URLs.
    """

    platform: str
    authorization_url: str
    token_url: str
    userinfo_url: str
    scopes: Tuple[str, ...] = ()
    requires_pkce: bool = False
    # Send client credentials as HTTP Basic auth instead of in the form body
    token_basic_auth: bool = False
    # Zero counts for this provider mean "metric unavailable", not "no followers"
    hide_zero_count: bool = False

    def __init__(self, descriptor: ProviderDescriptor) -> None:
        self.descriptor = descriptor

    @classmethod
    def extra_auth_params(cls) -> Dict[str, str]:
        return {}

    @classmethod
    def describe(cls) -> ProviderDescriptor:
        prefix = cls.platform.upper()
        return ProviderDescriptor(
            platform=cls.platform,
            client_id=(getattr(settings, f"{prefix}_CLIENT_ID", "") or "").strip(),
            client_secret=(getattr(settings, f"{prefix}_CLIENT_SECRET", "") or "").strip(),
            redirect_uri=oauth_redirect_uri(cls.platform),
            authorization_url=cls.authorization_url,
            token_url=cls.token_url,
            userinfo_url=cls.userinfo_url,
            scopes=tuple(cls.scopes),
            requires_pkce=cls.requires_pkce,
            extra_auth_params=MappingProxyType(dict(cls.extra_auth_params())),
        )

    # ------------------------------------------------------------------
    # Authorization
    # ------------------------------------------------------------------

    def build_authorization_url(self, *, state: str, code_challenge: Optional[str] = None) -> str:
        descriptor = self.descriptor
        params = {
            "client_id": descriptor.client_id,
            "redirect_uri": descriptor.redirect_uri,
            "response_type": "code",
            "scope": " ".join(descriptor.scopes),
            "state": state,
        }
        if code_challenge:
            params["code_challenge"] = code_challenge
            params["code_challenge_method"] = CODE_CHALLENGE_METHOD
        for key, value in descriptor.extra_auth_params.items():
            if value:
                params[key] = value
        return f"{descriptor.authorization_url}?{urlencode(params)}"

    # ------------------------------------------------------------------
    # Token exchange
    # ------------------------------------------------------------------

    async def exchange_code(
        self,
        client: httpx.AsyncClient,
        *,
        code: str,
        code_verifier: Optional[str] = None,
    ) -> TokenSet:
        descriptor = self.descriptor
        body = {
            "client_id": descriptor.client_id,
            "client_secret": descriptor.client_secret,
            "code": code,
            "redirect_uri": descriptor.redirect_uri,
            "grant_type": "authorization_code",
        }
        if code_verifier:
            body["code_verifier"] = code_verifier

        auth = None
        if self.token_basic_auth:
            body.pop("client_id")
            body.pop("client_secret")
            auth = httpx.BasicAuth(descriptor.client_id, descriptor.client_secret)

        try:
            response = await client.post(
                descriptor.token_url,
                data=body,
                headers={"Accept": "application/json"},
                auth=auth,
            )
        except httpx.HTTPError as exc:
            raise ConnectorFlowError(
                "token_exchange_failed",
                platform=self.platform,
                detail=f"{type(exc).__name__}: {exc}",
            ) from exc

        if not response.is_success:
            raise ConnectorFlowError(
                "token_exchange_failed",
                platform=self.platform,
                detail=f"HTTP {response.status_code}: {response.text}",
            )

        try:
            payload = response.json()
        except ValueError as exc:
            raise ConnectorFlowError(
                "token_exchange_failed",
                platform=self.platform,
                detail="Token endpoint returned a non-JSON body",
            ) from exc

        return self.parse_token_payload(payload)

    def parse_token_payload(self, payload: Any) -> TokenSet:
        if not isinstance(payload, dict):
            payload = {}
        access_token = payload.get("access_token")
        if not access_token:
            raise ConnectorFlowError(
                "no_access_token",
                platform=self.platform,
                detail=f"Token response keys: {sorted(payload.keys())}",
            )

        expires_at = None
        expires_in = payload.get("expires_in")
        if expires_in not in (None, ""):
            try:
                expires_at = datetime.now(timezone.utc) + timedelta(seconds=int(expires_in))
            except (TypeError, ValueError):
                logger.warning("Ignoring malformed expires_in from %s: %r", self.platform, expires_in)

        return TokenSet(
            access_token=str(access_token),
            refresh_token=payload.get("refresh_token") or None,
            expires_at=expires_at,
        )

    # ------------------------------------------------------------------
    # Identity
    # ------------------------------------------------------------------

    def userinfo_request(self, access_token: str) -> Dict[str, Any]:
        return {"headers": {"Authorization": f"Bearer {access_token}"}}

    async def fetch_identity(self, client: httpx.AsyncClient, access_token: str) -> ProviderIdentity:
        try:
            response = await client.get(self.descriptor.userinfo_url, **self.userinfo_request(access_token))
        except httpx.HTTPError as exc:
            raise ConnectorFlowError(
                "user_info_failed",
                platform=self.platform,
                detail=f"{type(exc).__name__}: {exc}",
            ) from exc

        if not response.is_success:
            raise ConnectorFlowError(
                "user_info_failed",
                platform=self.platform,
                detail=f"HTTP {response.status_code}: {response.text}",
            )

        try:
            payload = response.json()
        except ValueError as exc:
            raise ConnectorFlowError(
                "user_info_failed",
                platform=self.platform,
                detail="User info endpoint returned a non-JSON body",
            ) from exc

        return self.normalize_identity(payload if isinstance(payload, dict) else {})

    def normalize_identity(self, payload: Mapping[str, Any]) -> ProviderIdentity:
        """Fallback for providers without a dedicated extraction rule."""
        return ProviderIdentity(username="Unknown", account_id="unknown")

    # ------------------------------------------------------------------
    # Metrics, revocation, public URL
    # ------------------------------------------------------------------

    @abstractmethod
    async def fetch_follower_count(self, client: httpx.AsyncClient, access_token: str) -> int:
        raise NotImplementedError

    supports_revoke: bool = False

    async def send_revoke(self, client: httpx.AsyncClient, access_token: str) -> httpx.Response:
        raise NotImplementedError

    async def revoke(self, client: httpx.AsyncClient, access_token: str) -> RevokeOutcome:
        """Best-effort token revocation; never raises."""
        if not self.supports_revoke:
            logger.info("%s does not support token revocation", self.platform)
            return RevokeOutcome.NOT_SUPPORTED
        try:
            response = await self.send_revoke(client, access_token)
        except httpx.HTTPError as exc:
            logger.warning("Error revoking %s token: %s", self.platform, exc)
            return RevokeOutcome.FAILED
        if not response.is_success:
            logger.warning(
                "Failed to revoke %s token: HTTP %s %s",
                self.platform,
                response.status_code,
                response.text[:500],
            )
            return RevokeOutcome.FAILED
        logger.info("Revoked %s token", self.platform)
        return RevokeOutcome.REVOKED

    @abstractmethod
    def build_profile_url(self, identity: ProviderIdentity) -> str:
        raise NotImplementedError

    async def _get_json(self, client: httpx.AsyncClient, url: str, **kwargs: Any) -> Any:
        response = await client.get(url, **kwargs)
        response.raise_for_status()
        return response.json()


def _strip_at(username: str) -> str:
    return username.replace("@", "")


class InstagramConnectorProvider(BaseConnectorProvider):
    platform = "instagram"
    authorization_url = "https://www.facebook.com/v18.0/dialog/oauth"
    token_url = "https://graph.facebook.com/v18.0/oauth/access_token"
    userinfo_url = "https://graph.facebook.com/me"
    scopes = ("instagram_basic", "instagram_manage_insights")

    @classmethod
    def extra_auth_params(cls) -> Dict[str, str]:
        return {"config_id": (settings.INSTAGRAM_CONFIG_ID or "").strip()}

    def userinfo_request(self, access_token: str) -> Dict[str, Any]:
        # Graph API takes the token as a query parameter
        return {"params": {"fields": "id,username", "access_token": access_token}}

    def normalize_identity(self, payload: Mapping[str, Any]) -> ProviderIdentity:
        account_id = str(payload.get("id") or "")
        username = payload.get("username") or account_id or "Instagram User"
        return ProviderIdentity(username=str(username), account_id=account_id)

    async def fetch_follower_count(self, client: httpx.AsyncClient, access_token: str) -> int:
        data = await self._get_json(
            client,
            self.userinfo_url,
            params={"fields": "followers_count", "access_token": access_token},
        )
        return int(data.get("followers_count") or 0)

    def build_profile_url(self, identity: ProviderIdentity) -> str:
        return f"https://instagram.com/{_strip_at(identity.username)}"


class TwitterConnectorProvider(BaseConnectorProvider):
    platform = "twitter"
    authorization_url = "https://twitter.com/i/oauth2/authorize"
    token_url = "https://api.twitter.com/2/oauth2/token"
    userinfo_url = "https://api.twitter.com/2/users/me"
    scopes = ("tweet.read", "users.read", "offline.access")
    requires_pkce = True
    token_basic_auth = True
    supports_revoke = True
    revoke_url = "https://api.twitter.com/2/oauth2/revoke"

    def normalize_identity(self, payload: Mapping[str, Any]) -> ProviderIdentity:
        data = payload.get("data") or {}
        username = data.get("username") or payload.get("username") or "Twitter User"
        account_id = data.get("id") or payload.get("id") or ""
        return ProviderIdentity(username=str(username), account_id=str(account_id))

    async def fetch_follower_count(self, client: httpx.AsyncClient, access_token: str) -> int:
        data = await self._get_json(
            client,
            self.userinfo_url,
            params={"user.fields": "public_metrics"},
            headers={"Authorization": f"Bearer {access_token}"},
        )
        metrics = (data.get("data") or {}).get("public_metrics") or {}
        return int(metrics.get("followers_count") or 0)

    async def send_revoke(self, client: httpx.AsyncClient, access_token: str) -> httpx.Response:
        return await client.post(
            self.revoke_url,
            data={"token": access_token, "token_type_hint": "access_token"},
            auth=httpx.BasicAuth(self.descriptor.client_id, self.descriptor.client_secret),
        )

    def build_profile_url(self, identity: ProviderIdentity) -> str:
        return f"https://twitter.com/{_strip_at(identity.username)}"


class LinkedInConnectorProvider(BaseConnectorProvider):
    platform = "linkedin"
    authorization_url = "https://www.linkedin.com/oauth/v2/authorization"
    token_url = "https://www.linkedin.com/oauth/v2/accessToken"
    userinfo_url = "https://api.linkedin.com/v2/userinfo"
    scopes = ("openid", "profile", "email")
    hide_zero_count = True

    def normalize_identity(self, payload: Mapping[str, Any]) -> ProviderIdentity:
        # OpenID Connect shape first, then the legacy v2 profile shape
        oidc_name = f"{payload.get('given_name') or ''} {payload.get('family_name') or ''}".strip()
        legacy_name = (
            f"{payload.get('localizedFirstName') or ''} {payload.get('localizedLastName') or ''}".strip()
        )
        username = payload.get("name") or oidc_name or legacy_name or "LinkedIn User"
        account_id = payload.get("sub") or payload.get("id") or ""
        return ProviderIdentity(username=str(username), account_id=str(account_id))

    async def fetch_follower_count(self, client: httpx.AsyncClient, access_token: str) -> int:
        logger.debug("LinkedIn does not expose a connection count through its API")
        return 0

    def build_profile_url(self, identity: ProviderIdentity) -> str:
        slug = "-".join(identity.username.lower().split())
        return f"https://linkedin.com/in/{slug}"


class GitHubConnectorProvider(BaseConnectorProvider):
    platform = "github"
    authorization_url = "https://github.com/login/oauth/authorize"
    token_url = "https://github.com/login/oauth/access_token"
    userinfo_url = "https://api.github.com/user"
    scopes = ("read:user",)
    token_basic_auth = True
    supports_revoke = True

    def normalize_identity(self, payload: Mapping[str, Any]) -> ProviderIdentity:
        username = payload.get("login") or payload.get("name") or "GitHub User"
        raw_id = payload.get("id")
        account_id = str(raw_id) if raw_id not in (None, "") else ""
        return ProviderIdentity(username=str(username), account_id=account_id)

    async def fetch_follower_count(self, client: httpx.AsyncClient, access_token: str) -> int:
        data = await self._get_json(
            client,
            self.userinfo_url,
            headers={"Authorization": f"Bearer {access_token}"},
        )
        return int(data.get("followers") or 0)

    async def send_revoke(self, client: httpx.AsyncClient, access_token: str) -> httpx.Response:
        return await client.request(
            "DELETE",
            f"https://api.github.com/applications/{self.descriptor.client_id}/token",
            json={"access_token": access_token},
            headers={"Accept": "application/vnd.github+json"},
            auth=httpx.BasicAuth(self.descriptor.client_id, self.descriptor.client_secret),
        )

    def build_profile_url(self, identity: ProviderIdentity) -> str:
        return f"https://github.com/{identity.username}"


class YouTubeConnectorProvider(BaseConnectorProvider):
    platform = "youtube"
    authorization_url = "https://accounts.google.com/o/oauth2/v2/auth"
    token_url = "https://oauth2.googleapis.com/token"
    userinfo_url = "https://www.googleapis.com/oauth2/v2/userinfo"
    scopes = (
        "https://www.googleapis.com/auth/youtube.readonly",
        "https://www.googleapis.com/auth/userinfo.profile",
    )
    supports_revoke = True
    channels_url = "https://www.googleapis.com/youtube/v3/channels"
    revoke_url = "https://oauth2.googleapis.com/revoke"

    def normalize_identity(self, payload: Mapping[str, Any]) -> ProviderIdentity:
        username = payload.get("name") or "YouTube User"
        return ProviderIdentity(username=str(username), account_id=str(payload.get("id") or ""))

    async def fetch_identity(self, client: httpx.AsyncClient, access_token: str) -> ProviderIdentity:
        identity = await super().fetch_identity(client, access_token)
        try:
            data = await self._get_json(
                client,
                self.channels_url,
                params={"part": "snippet", "mine": "true"},
                headers={"Authorization": f"Bearer {access_token}"},
            )
        except (httpx.HTTPError, ValueError) as exc:
            logger.warning("YouTube channel lookup failed, keeping Google identity: %s", exc)
            return identity

        items = data.get("items") if isinstance(data, dict) else None
        if not items:
            logger.info("No YouTube channel found for account %s", identity.account_id)
            return identity

        channel = items[0] or {}
        snippet = channel.get("snippet") or {}
        return ProviderIdentity(
            username=str(snippet.get("title") or identity.username),
            account_id=str(channel.get("id") or identity.account_id),
        )

    async def fetch_follower_count(self, client: httpx.AsyncClient, access_token: str) -> int:
        data = await self._get_json(
            client,
            self.channels_url,
            params={"part": "statistics", "mine": "true"},
            headers={"Authorization": f"Bearer {access_token}"},
        )
        items = data.get("items") or []
        if not items:
            return 0
        statistics = items[0].get("statistics") or {}
        return int(statistics.get("subscriberCount") or 0)

    async def send_revoke(self, client: httpx.AsyncClient, access_token: str) -> httpx.Response:
        return await client.post(
            self.revoke_url,
            params={"token": access_token},
            headers={"Content-Type": "application/x-www-form-urlencoded"},
        )

    def build_profile_url(self, identity: ProviderIdentity) -> str:
        if identity.account_id.startswith("UC"):
            return f"https://youtube.com/channel/{identity.account_id}"
        return "https://youtube.com"


PROVIDERS: Dict[str, Type[BaseConnectorProvider]] = {
    provider.platform: provider
    for provider in (
        InstagramConnectorProvider,
        TwitterConnectorProvider,
        LinkedInConnectorProvider,
        GitHubConnectorProvider,
        YouTubeConnectorProvider,
    )
}


@lru_cache(maxsize=1)
def load_provider_descriptors() -> Mapping[str, ProviderDescriptor]:
    """Build provider descriptors from settings once per process."""
    return MappingProxyType({platform: provider.describe() for platform, provider in PROVIDERS.items()})


def lookup_descriptor(platform: str) -> Optional[ProviderDescriptor]:
    return load_provider_descriptors().get(platform)


def get_connector_provider(platform: str) -> BaseConnectorProvider:
    provider_class = PROVIDERS.get(platform)
    descriptor = lookup_descriptor(platform)
    if provider_class is None or descriptor is None:
        raise UnknownProviderError(platform)
    return provider_class(descriptor)


def connector_capabilities() -> Dict[str, bool]:
    return {
        f"{platform}_oauth_available": descriptor.configured
        for platform, descriptor in load_provider_descriptors().items()
    }
