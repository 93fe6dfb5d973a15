"""Google Docs adapter (documents are listed through Drive)."""
from __future__ import annotations
from typing import Any
from urllib.parse import quote

from hub.integrations.adapter_base import AuthType, ConfigSchema, IntegrationType, require_params
from hub.integrations.providers.google import DRIVE_FILES_URL, GoogleOAuthAdapter

DOCUMENT_MIME_TYPE = "application/vnd.google-apps.document"


def extract_text(document: dict[str, Any]) -> str:
    """Concatenate the text runs of every body paragraph."""
    chunks = []
    for element in (document.get("body") or {}).get("content", []):
        for run in (element.get("paragraph") or {}).get("elements", []):
            text = (run.get("textRun") or {}).get("content")
            if text:
                chunks.append(text)
    return "".join(chunks)


class GoogleDocsAdapter(GoogleOAuthAdapter):
    provider = "google-docs"
    integration_type = IntegrationType.DOCUMENT
    base_url = "https://docs.googleapis.com/v1/documents"
    test_path = f"{DRIVE_FILES_URL}?pageSize=1&q=" + quote(f"mimeType='{DOCUMENT_MIME_TYPE}'")
    display_name = "Google Docs"
    actions = {
        "list_documents": "list_documents",
        "get_document": "get_document",
        "get_document_content": "get_document_content",
        "search_documents": "search_documents",
    }

    @classmethod
    def get_config_schema(cls) -> ConfigSchema:
        return ConfigSchema(type=AuthType.OAUTH, auth_url=f"/api/integrations/{cls.provider}/authorize")

    async def list_documents(self, params: dict[str, Any]) -> list[dict[str, Any]]:
        return await self._list_drive_files(DOCUMENT_MIME_TYPE, params)

    async def search_documents(self, params: dict[str, Any]) -> list[dict[str, Any]]:
        require_params(self.provider, "search_documents", params, "query")
        return await self._list_drive_files(DOCUMENT_MIME_TYPE, params, name=params["query"])

    async def get_document(self, params: dict[str, Any]) -> dict[str, Any]:
        require_params(self.provider, "get_document", params, "document_id")
        return await self._request("GET", f"/{params['document_id']}")

    async def get_document_content(self, params: dict[str, Any]) -> dict[str, Any]:
        document = await self.get_document(params)
        return {
            "document_id": params["document_id"],
            "title": document.get("title"),
            "content": extract_text(document),
        }
