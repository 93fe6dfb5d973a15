"""Inbound webhooks router.

- POST /api/webhooks/email: inbound mail events from the email provider,
  verified with HMAC-SHA256(secret, timestamp + body)
- POST /api/webhooks/{integration_id}: provider callbacks for one integration
  (Twilio posts form fields, others JSON)

These routes carry no tenant header; the integration row or the target agent
decides the tenant.
"""

import json
import logging

from fastapi import APIRouter, Depends, HTTPException, Request

from api.deps import get_agent_directory, get_registry, get_settings
from hub.config import HubSettings
from hub.integrations.agents import SqlAgentDirectory
from hub.integrations.providers.email import ResendEmailAdapter, verify_inbound_request
from hub.integrations.registry import IntegrationRegistry
from hub.observability.otel_setup import create_webhook_span

logger = logging.getLogger(__name__)

router = APIRouter()


async def _read_payload(request: Request) -> dict:
    content_type = request.headers.get("content-type", "")
    if "application/x-www-form-urlencoded" in content_type or "multipart/form-data" in content_type:
        form = await request.form()
        return {k: v for k, v in form.items() if isinstance(v, str)}
    try:
        payload = await request.json()
    except ValueError:
        raise HTTPException(status_code=400, detail="Invalid JSON payload")
    if not isinstance(payload, dict):
        raise HTTPException(status_code=400, detail="Expected a JSON object")
    return payload


# ============================================================================
# Inbound email
# ============================================================================

@router.post("/email")
async def inbound_email(
    request: Request,
    registry: IntegrationRegistry = Depends(get_registry),
    agents: SqlAgentDirectory = Depends(get_agent_directory),
    settings: HubSettings = Depends(get_settings),
):
    """Route each inbound email event to the agent that owns the recipient address."""
    body = await request.body()
    if not verify_inbound_request(settings.inbound_email_secret, body, dict(request.headers)):
        raise HTTPException(status_code=401, detail="Invalid signature")

    try:
        payload = json.loads(body)
    except ValueError:
        raise HTTPException(status_code=400, detail="Invalid JSON payload")

    events = payload if isinstance(payload, list) else [payload]
    results = []
    for event in events:
        if event.get("event") != "inbound":
            logger.debug("Ignoring email event %s", event.get("event"))
            continue

        recipients = event.get("to") or []
        recipient = recipients[0] if isinstance(recipients, list) and recipients else recipients
        agent = await agents.find_by_trigger("email", recipient) if recipient else None
        if agent is None:
            results.append({"handled": False, "reason": "no agent", "to": recipient})
            continue

        adapter = await registry.get_integration_by_provider(ResendEmailAdapter.provider, agent["tenant_id"])
        if adapter is None:
            logger.warning("Tenant %s has no connected email integration", agent["tenant_id"])
            results.append({"handled": False, "reason": "email not connected", "to": recipient})
            continue

        with create_webhook_span(None, adapter.integration_id, "email.inbound"):
            results.append(await adapter.handle_webhook(event))

    return {"success": True, "results": results}


# ============================================================================
# Per-integration provider callbacks
# ============================================================================

@router.post("/{integration_id}")
async def provider_webhook(
    integration_id: str,
    request: Request,
    registry: IntegrationRegistry = Depends(get_registry),
):
    adapter = await registry.get_integration_instance(integration_id)
    if adapter is None:
        raise HTTPException(status_code=404, detail="Integration not found")
    if not adapter.accepts_webhooks:
        raise HTTPException(status_code=400, detail=f"{adapter.provider} does not accept webhooks")

    # Read the raw body first; form parsing reuses the cached bytes
    body = await request.body()
    payload = await _read_payload(request)
    if not adapter.verify_webhook_signature(str(request.url), payload, dict(request.headers), body):
        raise HTTPException(status_code=401, detail="Invalid signature")

    with create_webhook_span(None, integration_id, f"{adapter.provider}.inbound"):
        return await adapter.handle_webhook(payload)
