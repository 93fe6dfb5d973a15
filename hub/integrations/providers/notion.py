"""Notion adapter.

Notion OAuth tokens do not expire and have no refresh grant, so a rejected
token always means the user has to reconnect.
"""
from __future__ import annotations
from typing import Any

from hub.config import HubSettings
from hub.integrations.adapter_base import AuthType, ConfigSchema, IntegrationType, require_params
from hub.integrations.oauth_manager import OAuthAdapter, OAuthProviderConfig

NOTION_VERSION = "2022-06-28"

_HEADING_PREFIX = {"heading_1": "# ", "heading_2": "## ", "heading_3": "### ", "bulleted_list_item": "- "}


def _plain_text(rich: list[dict[str, Any]] | None) -> str | None:
    if not rich:
        return None
    return rich[0].get("plain_text")


def simplify_properties(properties: dict[str, Any]) -> dict[str, Any]:
    """Flatten the property types an agent can reason about; others are dropped."""
    out: dict[str, Any] = {}
    for key, value in properties.items():
        kind = value.get("type")
        if kind == "title":
            out[key] = _plain_text(value.get("title"))
        elif kind == "rich_text":
            out[key] = _plain_text(value.get("rich_text"))
        elif kind == "number":
            out[key] = value.get("number")
        elif kind in ("select", "status"):
            out[key] = (value.get(kind) or {}).get("name")
        elif kind == "date":
            out[key] = (value.get("date") or {}).get("start")
        elif kind == "checkbox":
            out[key] = value.get("checkbox")
    return out


def block_to_markdown(block: dict[str, Any]) -> str:
    kind = block.get("type", "")
    if kind == "paragraph":
        return _plain_text(block["paragraph"].get("rich_text")) or ""
    if kind in _HEADING_PREFIX:
        return _HEADING_PREFIX[kind] + (_plain_text(block[kind].get("rich_text")) or "")
    return ""


def _item_title(item: dict[str, Any]) -> str:
    title = ((item.get("properties") or {}).get("title") or {}).get("title")
    return _plain_text(title) or _plain_text(item.get("title")) or "Untitled"


class NotionAdapter(OAuthAdapter):
    provider = "notion"
    integration_type = IntegrationType.DOCUMENT
    base_url = "https://api.notion.com/v1"
    test_path = "/users/me"
    display_name = "Notion"
    actions = {
        "get_databases": "get_databases",
        "query_database": "query_database",
        "get_page": "get_page",
        "search": "search",
    }

    @classmethod
    def oauth_config(cls, settings: HubSettings) -> OAuthProviderConfig:
        notion = settings.notion
        return OAuthProviderConfig(
            provider=cls.provider,
            authorize_url="https://api.notion.com/v1/oauth/authorize",
            token_url="https://api.notion.com/v1/oauth/token",
            client_id=notion.client_id,
            client_secret=notion.client_secret,
            redirect_uri=notion.redirect_uri or settings.callback_url(cls.provider),
            extra_params={"owner": "user"},
            token_auth="basic_json",
            supports_refresh=False,
        )

    @classmethod
    def get_config_schema(cls) -> ConfigSchema:
        return ConfigSchema(type=AuthType.OAUTH, auth_url=f"/api/integrations/{cls.provider}/authorize")

    async def _auth_headers(self) -> dict[str, str]:
        headers = await super()._auth_headers()
        headers["Notion-Version"] = NOTION_VERSION
        return headers

    async def get_databases(self, params: dict[str, Any]) -> list[dict[str, Any]]:
        data = await self._request(
            "POST",
            "/search",
            json={"filter": {"value": "database", "property": "object"}, "page_size": 20},
        )
        return [
            {
                "id": db.get("id"),
                "title": _plain_text(db.get("title")) or "Untitled",
                "url": db.get("url"),
                "created_time": db.get("created_time"),
            }
            for db in (data or {}).get("results", [])
        ]

    async def query_database(self, params: dict[str, Any]) -> list[dict[str, Any]]:
        require_params(self.provider, "query_database", params, "databaseId")
        data = await self._request(
            "POST", f"/databases/{params['databaseId']}/query", json={"page_size": 20}
        )
        return [
            {
                "id": page.get("id"),
                "url": page.get("url"),
                "properties": simplify_properties(page.get("properties") or {}),
            }
            for page in (data or {}).get("results", [])
        ]

    async def get_page(self, params: dict[str, Any]) -> str:
        require_params(self.provider, "get_page", params, "pageId")
        page_id = params["pageId"]
        page = await self._request("GET", f"/pages/{page_id}")
        blocks = await self._request("GET", f"/blocks/{page_id}/children")
        body = "\n".join(block_to_markdown(b) for b in (blocks or {}).get("results", []))
        return f"# {_item_title(page)}\n\n{body}"

    async def search(self, params: dict[str, Any]) -> list[dict[str, Any]]:
        data = await self._request(
            "POST", "/search", json={"query": params.get("query") or "", "page_size": 10}
        )
        return [
            {
                "id": item.get("id"),
                "type": item.get("object"),
                "title": _item_title(item),
                "url": item.get("url"),
            }
            for item in (data or {}).get("results", [])
        ]
