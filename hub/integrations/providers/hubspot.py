"""HubSpot CRM v3 adapter (contacts and deals)."""
from __future__ import annotations
from typing import Any

from hub.config import HubSettings
from hub.integrations.adapter_base import AuthType, ConfigSchema, IntegrationType, require_params
from hub.integrations.oauth_manager import OAuthAdapter, OAuthProviderConfig

HUBSPOT_SCOPES = [
    "oauth",
    "crm.objects.contacts.read",
    "crm.objects.contacts.write",
    "crm.objects.deals.read",
    "crm.objects.deals.write",
]

CONTACT_PROPERTIES = ["email", "firstname", "lastname", "phone", "company"]
DEAL_PROPERTIES = ["dealname", "amount", "dealstage", "pipeline", "closedate"]


def _simplify(obj: dict[str, Any]) -> dict[str, Any]:
    return {
        "id": obj.get("id"),
        "properties": obj.get("properties") or {},
        "created_at": obj.get("createdAt"),
        "updated_at": obj.get("updatedAt"),
    }


class HubSpotAdapter(OAuthAdapter):
    provider = "hubspot"
    integration_type = IntegrationType.CRM
    base_url = "https://api.hubapi.com"
    test_path = "/crm/v3/objects/contacts?limit=1"
    display_name = "HubSpot"
    actions = {
        "create_contact": "create_contact",
        "update_contact": "update_contact",
        "get_contacts": "get_contacts",
        "search_contacts": "search_contacts",
        "create_deal": "create_deal",
        "update_deal": "update_deal",
        "get_deals": "get_deals",
    }

    @classmethod
    def oauth_config(cls, settings: HubSettings) -> OAuthProviderConfig:
        return OAuthProviderConfig(
            provider=cls.provider,
            authorize_url="https://app.hubspot.com/oauth/authorize",
            token_url="https://api.hubapi.com/oauth/v1/token",
            client_id=settings.hubspot.client_id,
            client_secret=settings.hubspot.client_secret,
            redirect_uri=settings.callback_url(cls.provider),
            scopes=list(HUBSPOT_SCOPES),
        )

    @classmethod
    def get_config_schema(cls) -> ConfigSchema:
        return ConfigSchema(type=AuthType.OAUTH, auth_url=f"/api/integrations/{cls.provider}/authorize")

    # --- Contacts ---

    async def create_contact(self, params: dict[str, Any]) -> dict[str, Any]:
        require_params(self.provider, "create_contact", params, "contact")
        data = await self._request(
            "POST", "/crm/v3/objects/contacts", json={"properties": params["contact"]}
        )
        return _simplify(data)

    async def update_contact(self, params: dict[str, Any]) -> dict[str, Any]:
        require_params(self.provider, "update_contact", params, "id", "contact")
        data = await self._request(
            "PATCH", f"/crm/v3/objects/contacts/{params['id']}", json={"properties": params["contact"]}
        )
        return _simplify(data)

    async def get_contacts(self, params: dict[str, Any]) -> list[dict[str, Any]]:
        data = await self._request(
            "GET",
            "/crm/v3/objects/contacts",
            params={"limit": params.get("limit") or 10, "properties": ",".join(CONTACT_PROPERTIES)},
        )
        return [_simplify(c) for c in (data or {}).get("results", [])]

    async def search_contacts(self, params: dict[str, Any]) -> list[dict[str, Any]]:
        require_params(self.provider, "search_contacts", params, "query")
        data = await self._request(
            "POST",
            "/crm/v3/objects/contacts/search",
            json={
                "query": params["query"],
                "limit": params.get("limit") or 10,
                "properties": CONTACT_PROPERTIES,
            },
        )
        return [_simplify(c) for c in (data or {}).get("results", [])]

    # --- Deals ---

    async def create_deal(self, params: dict[str, Any]) -> dict[str, Any]:
        require_params(self.provider, "create_deal", params, "deal")
        data = await self._request("POST", "/crm/v3/objects/deals", json={"properties": params["deal"]})
        return _simplify(data)

    async def update_deal(self, params: dict[str, Any]) -> dict[str, Any]:
        require_params(self.provider, "update_deal", params, "id", "deal")
        data = await self._request(
            "PATCH", f"/crm/v3/objects/deals/{params['id']}", json={"properties": params["deal"]}
        )
        return _simplify(data)

    async def get_deals(self, params: dict[str, Any]) -> list[dict[str, Any]]:
        data = await self._request(
            "GET",
            "/crm/v3/objects/deals",
            params={"limit": params.get("limit") or 10, "properties": ",".join(DEAL_PROPERTIES)},
        )
        return [_simplify(d) for d in (data or {}).get("results", [])]
