"""
Integration Hub OAuth2 lifecycle.

Shared by every OAuth-backed adapter (Google Calendar/Gmail/Drive/Docs/Sheets,
HubSpot, Notion):
- Provider registration (authorize URL, token URL, scopes, extra params)
- Authorization URL with CSRF state
- Authorization code exchange (connect callback only)
- Token freshness tracking with a 5 minute margin
- Refresh with a per-instance lock and an on_refresh hook for persistence
- Reauthentication error when a refresh is impossible
"""
from __future__ import annotations
from abc import abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, Awaitable, Callable
from urllib.parse import urlencode
import asyncio
import base64
import hashlib
import hmac
import json
import logging
import secrets
import time

import httpx

from hub.config import HubSettings
from hub.integrations.adapter_base import (
    AdapterDeps,
    AuthType,
    ConnectionTestResult,
    IntegrationAdapter,
    IntegrationRecord,
)
from hub.integrations.errors import (
    AuthenticationError,
    ConfigurationError,
    IntegrationError,
    ReauthenticationRequired,
)

logger = logging.getLogger(__name__)

REFRESH_MARGIN = timedelta(minutes=5)
TOKEN_TIMEOUT = 15.0
STATE_TTL_SECONDS = 600

# Token response keys that are stored verbatim next to the token pair
_TOKEN_KEYS = {"access_token", "refresh_token", "expires_in", "token_type", "scope"}


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ---------------------------------------------------------------------------
# Token
# ---------------------------------------------------------------------------

class TokenState(str, Enum):
    UNAUTHENTICATED = "unauthenticated"
    FRESH = "fresh"
    STALE = "stale"
    REFRESHING = "refreshing"


@dataclass
class OAuthToken:
    """Access/refresh token pair as stored in an integration's credentials.

    ``token_expires_at`` is persisted as epoch milliseconds.
    """
    access_token: str | None = None
    refresh_token: str | None = None
    expires_at: datetime | None = None
    token_type: str = "Bearer"
    scope: str | None = None
    extra: dict[str, Any] = field(default_factory=dict)

    def is_fresh(self, now: datetime | None = None) -> bool:
        if not self.access_token:
            return False
        # Unknown expiry: trust the token until the provider rejects it
        if self.expires_at is None:
            return True
        return self.expires_at > (now or _utcnow()) + REFRESH_MARGIN

    @classmethod
    def from_credentials(cls, creds: dict[str, Any]) -> "OAuthToken":
        expires_at = None
        raw = creds.get("token_expires_at")
        if raw:
            expires_at = datetime.fromtimestamp(float(raw) / 1000, tz=timezone.utc)
        return cls(
            access_token=creds.get("access_token"),
            refresh_token=creds.get("refresh_token"),
            expires_at=expires_at,
        )

    @classmethod
    def from_token_response(
        cls,
        data: dict[str, Any],
        previous: "OAuthToken | None" = None,
        now: datetime | None = None,
    ) -> "OAuthToken":
        """Build a token from a token-endpoint response.

        A refresh response without a new refresh_token keeps the old one.
        """
        if not data.get("access_token"):
            raise AuthenticationError("Token endpoint response did not include an access_token")
        expires_at = None
        if data.get("expires_in"):
            expires_at = (now or _utcnow()) + timedelta(seconds=int(data["expires_in"]))
        refresh = data.get("refresh_token") or (previous.refresh_token if previous else None)
        return cls(
            access_token=data["access_token"],
            refresh_token=refresh,
            expires_at=expires_at,
            token_type=data.get("token_type") or "Bearer",
            scope=data.get("scope") if isinstance(data.get("scope"), str) else None,
            extra={k: v for k, v in data.items() if k not in _TOKEN_KEYS},
        )

    def to_credentials(self) -> dict[str, Any]:
        creds: dict[str, Any] = dict(self.extra)
        creds["access_token"] = self.access_token
        creds["refresh_token"] = self.refresh_token
        creds["token_expires_at"] = (
            int(self.expires_at.timestamp() * 1000) if self.expires_at else None
        )
        return creds


# ---------------------------------------------------------------------------
# Provider config
# ---------------------------------------------------------------------------

@dataclass
class OAuthProviderConfig:
    """OAuth2 provider registration."""
    provider: str
    authorize_url: str
    token_url: str
    client_id: str
    client_secret: str
    redirect_uri: str
    scopes: list[str] = field(default_factory=list)
    extra_params: dict[str, str] = field(default_factory=dict)
    # "form": client credentials in a form body; "basic_json": Basic auth + JSON body
    token_auth: str = "form"
    supports_refresh: bool = True


def build_authorization_url(config: OAuthProviderConfig, state: str) -> str:
    params = {
        "client_id": config.client_id,
        "redirect_uri": config.redirect_uri,
        "response_type": "code",
    }
    if config.scopes:
        params["scope"] = " ".join(config.scopes)
    params.update(config.extra_params)
    params["state"] = state
    return f"{config.authorize_url}?{urlencode(params)}"


async def _post_token_endpoint(
    config: OAuthProviderConfig,
    payload: dict[str, str],
    transport: httpx.AsyncBaseTransport | None,
) -> httpx.Response:
    async with httpx.AsyncClient(transport=transport, timeout=TOKEN_TIMEOUT) as client:
        if config.token_auth == "basic_json":
            return await client.post(
                config.token_url,
                json=payload,
                auth=(config.client_id, config.client_secret),
            )
        return await client.post(
            config.token_url,
            data={
                **payload,
                "client_id": config.client_id,
                "client_secret": config.client_secret,
            },
        )


def sign_state(secret: str, tenant_id: str, provider: str, now: float | None = None) -> str:
    """CSRF state bound to the tenant and provider, valid for STATE_TTL_SECONDS."""
    body = json.dumps(
        {
            "t": tenant_id,
            "p": provider,
            "n": secrets.token_urlsafe(8),
            "e": int((now or time.time()) + STATE_TTL_SECONDS),
        },
        separators=(",", ":"),
    ).encode("utf-8")
    encoded = base64.urlsafe_b64encode(body).decode("ascii").rstrip("=")
    return f"{encoded}.{_state_mac(secret, encoded)}"


def verify_state(secret: str, state: str, provider: str, now: float | None = None) -> str:
    """Return the tenant id carried by a valid *state*."""
    encoded, _, mac = (state or "").partition(".")
    if not mac or not hmac.compare_digest(mac, _state_mac(secret, encoded)):
        raise AuthenticationError("Invalid OAuth state", provider=provider)
    data = json.loads(base64.urlsafe_b64decode(encoded + "=" * (-len(encoded) % 4)))
    if data.get("p") != provider:
        raise AuthenticationError("OAuth state was issued for another provider", provider=provider)
    if data.get("e", 0) < (now or time.time()):
        raise AuthenticationError("OAuth state has expired, please try again", provider=provider)
    return data["t"]


def _state_mac(secret: str, encoded: str) -> str:
    return hmac.new(secret.encode("utf-8"), encoded.encode("ascii"), hashlib.sha256).hexdigest()


async def exchange_code(
    config: OAuthProviderConfig,
    code: str,
    transport: httpx.AsyncBaseTransport | None = None,
) -> OAuthToken:
    """One-shot authorization code exchange for the connect callback."""
    try:
        resp = await _post_token_endpoint(
            config,
            {
                "grant_type": "authorization_code",
                "code": code,
                "redirect_uri": config.redirect_uri,
            },
            transport,
        )
    except httpx.HTTPError as exc:
        raise AuthenticationError(
            f"Failed to exchange code for token: {exc}", provider=config.provider
        ) from exc
    if not resp.is_success:
        raise AuthenticationError(
            f"Failed to exchange code for token: {resp.text[:300]}", provider=config.provider
        )
    try:
        return OAuthToken.from_token_response(resp.json())
    except (ValueError, AttributeError) as exc:
        raise AuthenticationError(
            "Failed to exchange code for token: invalid token response", provider=config.provider
        ) from exc


# ---------------------------------------------------------------------------
# Token manager
# ---------------------------------------------------------------------------

RefreshHook = Callable[[OAuthToken], Awaitable[None]]


class OAuthTokenManager:
    """Keeps one adapter instance's token valid.

    ``ensure_valid_token()`` is the only path from stale to fresh. Refreshes
    within one instance are serialised; separate instances may refresh
    independently.
    """

    def __init__(
        self,
        config: OAuthProviderConfig,
        token: OAuthToken,
        transport: httpx.AsyncBaseTransport | None = None,
        on_refresh: RefreshHook | None = None,
    ):
        self.config = config
        self.token = token
        self.transport = transport
        self.on_refresh = on_refresh
        self.refresh_count = 0
        self._refreshing = False
        self._lock = asyncio.Lock()

    @property
    def state(self) -> TokenState:
        if self._refreshing:
            return TokenState.REFRESHING
        if not self.token.access_token and not self.token.refresh_token:
            return TokenState.UNAUTHENTICATED
        if self.token.is_fresh():
            return TokenState.FRESH
        return TokenState.STALE

    async def ensure_valid_token(self) -> str:
        if self.token.is_fresh():
            return self.token.access_token  # type: ignore[return-value]
        async with self._lock:
            # Another coroutine on this instance may have refreshed already
            if not self.token.is_fresh():
                await self._refresh_locked()
        return self.token.access_token  # type: ignore[return-value]

    async def refresh(self) -> OAuthToken:
        """Force a refresh regardless of expiry (used after a provider 401)."""
        async with self._lock:
            await self._refresh_locked()
        return self.token

    async def _refresh_locked(self) -> None:
        provider = self.config.provider
        if not self.token.refresh_token or not self.config.supports_refresh:
            self._drop_tokens()
            raise ReauthenticationRequired(provider, "no refresh token available")

        logger.info("Refreshing %s access token", provider)
        self._refreshing = True
        try:
            new_token = await self._request_refresh()
        finally:
            self._refreshing = False

        # Keep provider extras (workspace ids etc.) from the initial grant
        new_token.extra = {**self.token.extra, **new_token.extra}
        self.token = new_token
        self.refresh_count += 1
        if self.on_refresh:
            await self.on_refresh(new_token)

    async def _request_refresh(self) -> OAuthToken:
        """Every failure drops the tokens and ends in ReauthenticationRequired."""
        provider = self.config.provider
        try:
            resp = await _post_token_endpoint(
                self.config,
                {"grant_type": "refresh_token", "refresh_token": self.token.refresh_token},
                self.transport,
            )
        except httpx.HTTPError as exc:
            logger.warning("%s token refresh failed: %s", provider, exc)
            self._drop_tokens()
            raise ReauthenticationRequired(provider, "token refresh request failed") from exc

        if not resp.is_success:
            logger.warning("%s token refresh rejected with HTTP %s", provider, resp.status_code)
            self._drop_tokens()
            raise ReauthenticationRequired(provider, f"token refresh failed with HTTP {resp.status_code}")

        try:
            return OAuthToken.from_token_response(resp.json(), previous=self.token)
        except (ValueError, AttributeError, AuthenticationError) as exc:
            logger.warning("%s token refresh returned an unusable response", provider)
            self._drop_tokens()
            raise ReauthenticationRequired(provider, "token endpoint returned an invalid response") from exc

    def _drop_tokens(self) -> None:
        self.token = OAuthToken(extra=self.token.extra)


# ---------------------------------------------------------------------------
# OAuth-backed adapter base
# ---------------------------------------------------------------------------

TokenPersistHook = Callable[[IntegrationRecord, dict[str, Any]], Awaitable[None]]


class OAuthAdapter(IntegrationAdapter):
    """Base for adapters whose credentials are an OAuth token pair."""

    auth_type = AuthType.OAUTH
    # GET endpoint used by test_connection
    test_path: str = ""
    display_name: str = ""

    def __init__(self, record: IntegrationRecord, deps: AdapterDeps | None = None):
        super().__init__(record, deps)
        # Set by the registry so refreshed tokens are written back to the row
        self.on_token_refresh: TokenPersistHook | None = None
        self.tokens = OAuthTokenManager(
            self.oauth_config(self.settings),
            OAuthToken.from_credentials(self.credentials),
            transport=self.deps.transport,
            on_refresh=self._token_refreshed,
        )

    @classmethod
    @abstractmethod
    def oauth_config(cls, settings: HubSettings) -> OAuthProviderConfig:
        ...

    @classmethod
    def get_authorization_url(cls, state: str, settings: HubSettings) -> str:
        config = cls.oauth_config(settings)
        if not config.client_id:
            raise ConfigurationError(
                f"OAuth client for {cls.provider} is not configured", provider=cls.provider
            )
        return build_authorization_url(config, state)

    @classmethod
    async def exchange_code_for_token(
        cls,
        code: str,
        settings: HubSettings,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> dict[str, Any]:
        """Exchange a callback code and return the credentials to store."""
        token = await exchange_code(cls.oauth_config(settings), code, transport)
        return token.to_credentials()

    async def _token_refreshed(self, token: OAuthToken) -> None:
        self.credentials.update(token.to_credentials())
        if self.on_token_refresh:
            await self.on_token_refresh(self.record, dict(self.credentials))

    # --- Contract ---

    async def authenticate(self, credentials: dict[str, Any]) -> None:
        if not credentials.get("access_token") and not credentials.get("refresh_token"):
            raise AuthenticationError(
                "Not authenticated - no tokens available. Connect through the OAuth flow.",
                provider=self.provider,
            )

    async def test_connection(self) -> ConnectionTestResult:
        try:
            await self._request("GET", self.test_path)
        except IntegrationError as exc:
            logger.info("%s connection test failed for %s: %s", self.provider, self.integration_id, exc)
            return ConnectionTestResult.failed(str(exc))
        return ConnectionTestResult.ok(f"Connected to {self.display_name} successfully")

    # --- HTTP ---

    async def _auth_headers(self) -> dict[str, str]:
        token = await self.tokens.ensure_valid_token()
        return {"Authorization": f"Bearer {token}"}

    def _on_unauthorized(self, resp: httpx.Response) -> None:
        raise ReauthenticationRequired(self.provider, "access token rejected")

    async def _send(self, method: str, url: str, **kwargs: Any) -> httpx.Response:
        try:
            return await super()._send(method, url, **kwargs)
        except ReauthenticationRequired:
            if not self.tokens.token.refresh_token or not self.tokens.config.supports_refresh:
                raise
            # One forced refresh and retry when the provider rejects a token
            # we believed was fresh
            await self.tokens.refresh()
            return await super()._send(method, url, **kwargs)
