"""Shared Google OAuth registration for Calendar, Gmail, Drive, Docs and Sheets."""
from __future__ import annotations
from typing import Any

from hub.config import HubSettings
from hub.integrations.oauth_manager import OAuthAdapter, OAuthProviderConfig

GOOGLE_AUTHORIZE_URL = "https://accounts.google.com/o/oauth2/v2/auth"
GOOGLE_TOKEN_URL = "https://oauth2.googleapis.com/token"
DRIVE_FILES_URL = "https://www.googleapis.com/drive/v3/files"

_SCOPE_ROOT = "https://www.googleapis.com/auth/"

GOOGLE_SCOPES: dict[str, list[str]] = {
    "google-calendar": [f"{_SCOPE_ROOT}calendar", f"{_SCOPE_ROOT}calendar.events"],
    "gmail": [f"{_SCOPE_ROOT}gmail.readonly", f"{_SCOPE_ROOT}gmail.send", f"{_SCOPE_ROOT}gmail.modify"],
    "google-docs": [f"{_SCOPE_ROOT}documents.readonly", f"{_SCOPE_ROOT}documents"],
    "google-sheets": [f"{_SCOPE_ROOT}spreadsheets.readonly", f"{_SCOPE_ROOT}spreadsheets"],
    "google-drive": [f"{_SCOPE_ROOT}drive"],
}


class GoogleOAuthAdapter(OAuthAdapter):
    """Google adapters differ only in scopes and API surface."""

    @classmethod
    def oauth_config(cls, settings: HubSettings) -> OAuthProviderConfig:
        google = settings.google
        return OAuthProviderConfig(
            provider=cls.provider,
            authorize_url=GOOGLE_AUTHORIZE_URL,
            token_url=GOOGLE_TOKEN_URL,
            client_id=google.client_id,
            client_secret=google.client_secret,
            redirect_uri=google.redirect_uri or settings.callback_url(cls.provider),
            scopes=list(GOOGLE_SCOPES.get(cls.provider, [])),
            # offline + consent so Google always returns a refresh_token
            extra_params={"access_type": "offline", "prompt": "consent"},
        )

    async def _list_drive_files(self, mime_type: str, params: dict[str, Any], name: str | None = None) -> list[dict]:
        """Drive listing filtered to one Google Workspace document type."""
        query = f"mimeType='{mime_type}' and trashed=false"
        if name:
            query += f" and name contains '{_quote(name)}'"
        data = await self._request(
            "GET",
            DRIVE_FILES_URL,
            params={
                "q": query,
                "pageSize": params.get("limit") or 10,
                "fields": "files(id,name,modifiedTime,webViewLink)",
                "orderBy": "modifiedTime desc",
            },
        )
        return [
            {
                "id": f.get("id"),
                "name": f.get("name"),
                "modified_time": f.get("modifiedTime"),
                "url": f.get("webViewLink"),
            }
            for f in (data or {}).get("files", [])
        ]


def _quote(value: str) -> str:
    """Escape a literal for a Drive query string."""
    return value.replace("\\", "\\\\").replace("'", "\\'")
