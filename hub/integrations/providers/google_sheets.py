"""Google Sheets v4 adapter."""
from __future__ import annotations
from typing import Any
from urllib.parse import quote

from hub.integrations.adapter_base import AuthType, ConfigSchema, IntegrationType, require_params
from hub.integrations.providers.google import DRIVE_FILES_URL, GoogleOAuthAdapter

SPREADSHEET_MIME_TYPE = "application/vnd.google-apps.spreadsheet"


class GoogleSheetsAdapter(GoogleOAuthAdapter):
    provider = "google-sheets"
    integration_type = IntegrationType.DOCUMENT
    base_url = "https://sheets.googleapis.com/v4/spreadsheets"
    test_path = f"{DRIVE_FILES_URL}?pageSize=1&q=" + quote(f"mimeType='{SPREADSHEET_MIME_TYPE}'")
    display_name = "Google Sheets"
    actions = {
        "list_spreadsheets": "list_spreadsheets",
        "get_spreadsheet": "get_spreadsheet",
        "get_sheet_data": "get_sheet_data",
        "search_spreadsheets": "search_spreadsheets",
    }

    @classmethod
    def get_config_schema(cls) -> ConfigSchema:
        return ConfigSchema(type=AuthType.OAUTH, auth_url=f"/api/integrations/{cls.provider}/authorize")

    async def list_spreadsheets(self, params: dict[str, Any]) -> list[dict[str, Any]]:
        return await self._list_drive_files(SPREADSHEET_MIME_TYPE, params)

    async def search_spreadsheets(self, params: dict[str, Any]) -> list[dict[str, Any]]:
        require_params(self.provider, "search_spreadsheets", params, "query")
        return await self._list_drive_files(SPREADSHEET_MIME_TYPE, params, name=params["query"])

    async def get_spreadsheet(self, params: dict[str, Any]) -> dict[str, Any]:
        require_params(self.provider, "get_spreadsheet", params, "spreadsheet_id")
        return await self._request("GET", f"/{params['spreadsheet_id']}")

    async def get_sheet_data(self, params: dict[str, Any]) -> dict[str, Any]:
        require_params(self.provider, "get_sheet_data", params, "spreadsheet_id", "range")
        path = f"/{params['spreadsheet_id']}/values/{quote(params['range'], safe='')}"
        return await self._request("GET", path)
