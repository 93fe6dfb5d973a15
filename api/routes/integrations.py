"""Integrations API router — connect, configure, test, OAuth.

Standard router pattern:
- Tenant isolation via middleware (get_current_tenant)
- Registry injection via FastAPI Depends
- Integration errors mapped to HTTP status by the app's exception handler
- Credentials are accepted on write and never returned
"""

import logging
from urllib.parse import urlencode

from fastapi import APIRouter, Depends, Query
from fastapi.responses import RedirectResponse

from api.deps import get_registry, get_settings
from api.middleware import get_current_tenant
from api.schemas import (
    AuthorizeResponse,
    ConnectionTestResponse,
    IntegrationCreate,
    IntegrationUpdate,
    ProviderInfo,
)
from hub.config import HubSettings
from hub.integrations.adapter_base import IntegrationAdapter
from hub.integrations.errors import IntegrationError
from hub.integrations.oauth_manager import OAuthAdapter, sign_state, verify_state
from hub.integrations.providers import PROVIDER_ADAPTERS, get_adapter_class, normalize_provider
from hub.integrations.registry import IntegrationRegistry

logger = logging.getLogger(__name__)

router = APIRouter()


def _oauth_adapter_class(provider: str) -> type[OAuthAdapter]:
    cls = get_adapter_class(provider)
    if not issubclass(cls, OAuthAdapter):
        raise IntegrationError(f"{provider} does not use OAuth", provider=provider)
    return cls


# ============================================================================
# Catalog
# ============================================================================

@router.get("/providers", response_model=list[ProviderInfo])
async def list_providers():
    """Every supported provider with its connect form and action menu."""
    return [
        ProviderInfo(
            provider=provider,
            type=cls.integration_type.value,
            auth_type=cls.auth_type.value,
            config_schema=cls.get_config_schema().model_dump(),
            capabilities=cls.get_capabilities(),
            accepts_webhooks=cls.handle_webhook is not IntegrationAdapter.handle_webhook,
        )
        for provider, cls in PROVIDER_ADAPTERS.items()
    ]


# ============================================================================
# Integration CRUD
# ============================================================================

@router.get("")
async def list_integrations(registry: IntegrationRegistry = Depends(get_registry)):
    """The tenant's integrations, newest first, credentials redacted."""
    items = await registry.list_integrations(get_current_tenant())
    return {"data": items, "count": len(items)}


@router.post("", status_code=201)
async def create_integration(
    request: IntegrationCreate,
    registry: IntegrationRegistry = Depends(get_registry),
):
    """Connect an API-key or custom provider with submitted credentials."""
    return await registry.connect(
        tenant_id=get_current_tenant(),
        provider=request.provider,
        credentials=request.credentials,
        config=request.config,
        name=request.name,
        webhook_url=request.webhook_url,
    )


@router.patch("/{integration_id}")
async def update_integration(
    integration_id: str,
    request: IntegrationUpdate,
    registry: IntegrationRegistry = Depends(get_registry),
):
    """Reconfigure an integration; new credentials are re-validated."""
    return await registry.update_integration(
        integration_id,
        get_current_tenant(),
        credentials=request.credentials,
        config=request.config,
        name=request.name,
    )


@router.post("/{integration_id}/test", response_model=ConnectionTestResponse)
async def test_integration(
    integration_id: str,
    registry: IntegrationRegistry = Depends(get_registry),
):
    """Dashboard "Test" button."""
    result = await registry.test_integration(integration_id, get_current_tenant())
    return ConnectionTestResponse(**result.to_dict())


@router.post("/{integration_id}/disconnect")
async def disconnect_integration(
    integration_id: str,
    registry: IntegrationRegistry = Depends(get_registry),
):
    return await registry.disconnect(integration_id, get_current_tenant())


@router.delete("/{integration_id}", status_code=204)
async def delete_integration(
    integration_id: str,
    registry: IntegrationRegistry = Depends(get_registry),
):
    await registry.delete(integration_id, get_current_tenant())


# ============================================================================
# OAuth connect flow
# ============================================================================

@router.get("/{provider}/authorize", response_model=AuthorizeResponse)
async def authorize(
    provider: str,
    settings: HubSettings = Depends(get_settings),
):
    """Consent-screen URL with a signed, tenant-bound state parameter."""
    provider = normalize_provider(provider)
    cls = _oauth_adapter_class(provider)
    state = sign_state(settings.encryption_key, get_current_tenant(), provider)
    return AuthorizeResponse(
        provider=provider,
        authorization_url=cls.get_authorization_url(state, settings),
        state=state,
    )


@router.get("/{provider}/callback")
async def oauth_callback(
    provider: str,
    code: str | None = Query(None),
    state: str | None = Query(None),
    error: str | None = Query(None),
    registry: IntegrationRegistry = Depends(get_registry),
    settings: HubSettings = Depends(get_settings),
):
    """Provider redirect target: exchange the code, store tokens, back to the dashboard."""
    provider = normalize_provider(provider)
    dashboard = f"{settings.app_url.rstrip('/')}/integrations"

    if error or not code:
        logger.info("OAuth callback for %s returned without a code: %s", provider, error)
        return RedirectResponse(f"{dashboard}?{urlencode({'error': error or 'missing_code'})}")

    try:
        tenant_id = verify_state(settings.encryption_key, state or "", provider)
        await registry.complete_oauth(provider, tenant_id, code)
    except IntegrationError as exc:
        logger.warning("OAuth callback for %s failed: %s", provider, exc)
        return RedirectResponse(f"{dashboard}?{urlencode({'error': str(exc)})}")

    return RedirectResponse(f"{dashboard}?{urlencode({'connected': provider})}")
