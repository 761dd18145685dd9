"""OAuth connection lifecycle: authorize, callback, list and disconnect."""

from __future__ import annotations

import logging
import secrets
from datetime import datetime, timezone
from typing import Any, Dict, List, Mapping, Optional

import httpx
from cryptography.fernet import InvalidToken

from models.connected_account import ConnectedAccount
from models.social_link import SocialLink
from services.connectors.pkce import generate_pkce_pair
from services.connectors.providers import BaseConnectorProvider, get_connector_provider
from services.connectors.state_store import OAuthStateStore
from services.connectors.types import (
    AuthorizationRequest,
    CallbackOutcome,
    ConnectorFlowError,
    DisconnectResult,
    NotConnectedError,
    PendingAuthorization,
    ProviderIdentity,
    ProviderNotConfiguredError,
    RevokeOutcome,
    TokenSet,
    UnknownProviderError,
)
from services.crypto import decrypt_token, encrypt_optional_token, encrypt_token
from services.storage import LinkStorage

logger = logging.getLogger(__name__)


def _first_param(params: Mapping[str, Any], key: str) -> Optional[str]:
    value = params.get(key)
    if isinstance(value, (list, tuple)):
        value = value[0] if value else None
    if value is None:
        return None
    text = str(value).strip()
    return text or None


async def begin_authorization(
    platform: str,
    profile_id: str,
    *,
    state_store: OAuthStateStore,
) -> AuthorizationRequest:
    """Register a pending state and return the provider consent URL."""
    provider = get_connector_provider(platform)
    if not provider.descriptor.configured:
        raise ProviderNotConfiguredError(platform)

    state = secrets.token_urlsafe(32)
    code_verifier = None
    code_challenge = None
    if provider.descriptor.requires_pkce:
        code_verifier, code_challenge = generate_pkce_pair()

    url = provider.build_authorization_url(state=state, code_challenge=code_challenge)
    await state_store.put(
        state,
        PendingAuthorization(
            profile_id=profile_id,
            platform=platform,
            created_at=datetime.now(timezone.utc),
            code_verifier=code_verifier,
        ),
    )
    logger.info("oauth_authorize profile=%s platform=%s pkce=%s", profile_id, platform, bool(code_verifier))
    return AuthorizationRequest(platform=platform, url=url, state=state)


async def handle_callback(
    platform: str,
    params: Mapping[str, Any],
    *,
    state_store: OAuthStateStore,
    storage: LinkStorage,
    http_client: httpx.AsyncClient,
) -> CallbackOutcome:
    """
    Complete an authorization attempt.

    Every call ends in exactly one terminal outcome. The pending state is
    consumed before any provider call is made, so replaying a callback with
    the same state always fails with ``invalid_state``.
    """
    error = _first_param(params, "error")
    if error:
        description = _first_param(params, "error_description")
        logger.warning("OAuth error from %s: %s %s", platform, error, description or "")
        return CallbackOutcome.failure(platform, error, description)

    code = _first_param(params, "code")
    state = _first_param(params, "state")
    if not code or not state:
        return CallbackOutcome.failure(platform, "missing_code_or_state")

    pending = await state_store.consume(state, platform)
    if pending is None:
        logger.warning("Rejected OAuth callback for %s: unknown, expired or mismatched state", platform)
        return CallbackOutcome.failure(platform, "invalid_state")

    try:
        provider = get_connector_provider(platform)
    except UnknownProviderError:
        return CallbackOutcome.failure(platform, "invalid_platform")

    try:
        code_verifier = pending.code_verifier if provider.descriptor.requires_pkce else None
        tokens = await provider.exchange_code(http_client, code=code, code_verifier=code_verifier)
        identity = await provider.fetch_identity(http_client, tokens.access_token)
        if not identity.account_id:
            raise ConnectorFlowError(
                "invalid_user_data",
                platform=platform,
                detail="Provider identity did not include an account id",
            )

        await _upsert_connected_account(storage, pending.profile_id, platform, tokens, identity)
        await _ensure_derived_link(storage, provider, pending.profile_id, identity)
        await storage.commit()
    except ConnectorFlowError as exc:
        logger.warning(
            "OAuth callback for %s failed with %s: %s",
            platform,
            exc.code,
            exc.detail or "no detail",
        )
        return CallbackOutcome.failure(platform, exc.code, exc.description)
    except Exception:
        logger.exception("OAuth callback error for %s", platform)
        return CallbackOutcome.failure(platform, "callback_error")

    logger.info(
        "oauth_connected profile=%s platform=%s account=%s",
        pending.profile_id,
        platform,
        identity.account_id,
    )
    return CallbackOutcome.success(platform)


async def _upsert_connected_account(
    storage: LinkStorage,
    profile_id: str,
    platform: str,
    tokens: TokenSet,
    identity: ProviderIdentity,
) -> ConnectedAccount:
    existing = await storage.get_connected_account(profile_id, platform)
    if existing:
        existing.access_token_encrypted = encrypt_token(tokens.access_token)
        if tokens.refresh_token:
            existing.refresh_token_encrypted = encrypt_token(tokens.refresh_token)
        existing.token_expires_at = tokens.expires_at
        existing.username = identity.username
        existing.account_id = identity.account_id
        return await storage.save_connected_account(existing)

    account = ConnectedAccount(
        profile_id=profile_id,
        platform=platform,
        account_id=identity.account_id,
        username=identity.username,
        access_token_encrypted=encrypt_token(tokens.access_token),
        refresh_token_encrypted=encrypt_optional_token(tokens.refresh_token),
        token_expires_at=tokens.expires_at,
        connected_at=datetime.now(timezone.utc),
    )
    return await storage.save_connected_account(account)


def _display_text(username: str) -> str:
    return username if username.startswith("@") else f"@{username}"


async def _ensure_derived_link(
    storage: LinkStorage,
    provider: BaseConnectorProvider,
    profile_id: str,
    identity: ProviderIdentity,
) -> Optional[SocialLink]:
    links = await storage.list_social_links(profile_id)
    if any(link.platform == provider.platform for link in links):
        return None

    url = provider.build_profile_url(identity)
    if not url:
        return None

    max_order = max((int(link.order or 0) for link in links), default=0)
    return await storage.create_social_link(
        profile_id=profile_id,
        platform=provider.platform,
        url=url,
        display_text=_display_text(identity.username),
        order=max_order + 1,
    )


async def list_connected_accounts(profile_id: str, *, storage: LinkStorage) -> List[Dict[str, Any]]:
    """Connected accounts for display; tokens are never included."""
    accounts = await storage.list_connected_accounts(profile_id)
    return [
        {
            "id": account.id,
            "profile_id": account.profile_id,
            "platform": account.platform,
            "username": account.username,
            "connected_at": account.connected_at,
        }
        for account in accounts
    ]


async def disconnect(
    profile_id: str,
    platform: str,
    *,
    storage: LinkStorage,
    http_client: httpx.AsyncClient,
) -> DisconnectResult:
    """Revoke (best effort) and remove a connected account and its links."""
    account = await storage.get_connected_account(profile_id, platform)
    if account is None:
        raise NotConnectedError(profile_id, platform)

    revoke = RevokeOutcome.NOT_SUPPORTED
    try:
        provider: Optional[BaseConnectorProvider] = get_connector_provider(platform)
    except UnknownProviderError:
        logger.info("No revocation endpoint configured for %s", platform)
        provider = None

    if provider is not None and account.access_token_encrypted:
        try:
            access_token = decrypt_token(account.access_token_encrypted)
        except InvalidToken:
            logger.warning("Stored %s token for profile %s could not be decrypted; skipping revoke", platform, profile_id)
            revoke = RevokeOutcome.FAILED
        else:
            revoke = await provider.revoke(http_client, access_token)

    await storage.delete_connected_account(account)
    removed_links = await storage.delete_social_links_by_platform(profile_id, platform)
    await storage.commit()

    logger.info(
        "oauth_disconnected profile=%s platform=%s revoke=%s links_removed=%s",
        profile_id,
        platform,
        revoke.value,
        removed_links,
    )
    return DisconnectResult(platform=platform, revoke=revoke)
