"""Google Drive v3 adapter."""
from __future__ import annotations
from typing import Any
import base64
import json
import uuid

from hub.integrations.adapter_base import (
    AuthType,
    ConfigField,
    ConfigSchema,
    IntegrationType,
    require_params,
)
from hub.integrations.providers.google import DRIVE_FILES_URL, GoogleOAuthAdapter, _quote

FOLDER_MIME_TYPE = "application/vnd.google-apps.folder"
UPLOAD_URL = "https://www.googleapis.com/upload/drive/v3/files"
FILE_FIELDS = "files(id,name,mimeType,size,createdTime,parents)"


def build_multipart_body(metadata: dict[str, Any], content: bytes, mime_type: str) -> tuple[bytes, str]:
    """multipart/related body for uploadType=multipart: JSON metadata part, then the media."""
    boundary = uuid.uuid4().hex
    head = (
        f"--{boundary}\r\n"
        "Content-Type: application/json; charset=UTF-8\r\n\r\n"
        f"{json.dumps(metadata)}\r\n"
        f"--{boundary}\r\n"
        f"Content-Type: {mime_type}\r\n\r\n"
    ).encode()
    tail = f"\r\n--{boundary}--\r\n".encode()
    return head + content + tail, f"multipart/related; boundary={boundary}"


class GoogleDriveAdapter(GoogleOAuthAdapter):
    provider = "google-drive"
    integration_type = IntegrationType.STORAGE
    base_url = DRIVE_FILES_URL
    test_path = "https://www.googleapis.com/drive/v3/about?fields=user"
    display_name = "Google Drive"
    actions = {
        "list_files": "list_files",
        "search_files": "search_files",
        "create_folder": "create_folder",
        "upload_file": "upload_file",
        "download_file": "download_file",
    }

    @classmethod
    def get_config_schema(cls) -> ConfigSchema:
        return ConfigSchema(
            type=AuthType.OAUTH,
            auth_url=f"/api/integrations/{cls.provider}/authorize",
            fields=[
                ConfigField(
                    key="default_folder_id",
                    label="Default Folder ID",
                    description="Folder used for uploads when none is given",
                ),
            ],
        )

    async def list_files(self, params: dict[str, Any]) -> list[dict[str, Any]]:
        clauses = ["trashed=false"]
        if params.get("folder_id"):
            clauses.append(f"'{_quote(params['folder_id'])}' in parents")
        if params.get("query"):
            clauses.append(f"name contains '{_quote(params['query'])}'")
        data = await self._request(
            "GET",
            DRIVE_FILES_URL,
            params={
                "q": " and ".join(clauses),
                "pageSize": params.get("limit") or 100,
                "fields": FILE_FIELDS,
                "orderBy": "createdTime desc",
            },
        )
        return (data or {}).get("files", [])

    async def search_files(self, params: dict[str, Any]) -> list[dict[str, Any]]:
        require_params(self.provider, "search_files", params, "query")
        return await self.list_files({"query": params["query"], "limit": params.get("limit")})

    async def create_folder(self, params: dict[str, Any]) -> dict[str, Any]:
        require_params(self.provider, "create_folder", params, "name")
        parent = params.get("parent_folder_id")
        return await self._request(
            "POST",
            DRIVE_FILES_URL,
            json={
                "name": params["name"],
                "mimeType": FOLDER_MIME_TYPE,
                "parents": [parent] if parent else [],
            },
        )

    async def upload_file(self, params: dict[str, Any]) -> dict[str, Any]:
        require_params(self.provider, "upload_file", params, "name", "content")
        content = params["content"]
        if isinstance(content, str):
            content = content.encode("utf-8")
        folder = params.get("folder_id") or self.record.config.get("default_folder_id")
        mime_type = params.get("mime_type") or "application/octet-stream"
        metadata = {"name": params["name"], "parents": [folder] if folder else []}

        body, content_type = build_multipart_body(metadata, content, mime_type)
        return await self._request(
            "POST",
            UPLOAD_URL,
            params={"uploadType": "multipart"},
            content=body,
            headers={"Content-Type": content_type},
        )

    async def download_file(self, params: dict[str, Any]) -> dict[str, Any]:
        require_params(self.provider, "download_file", params, "file_id")
        resp = await self._send("GET", f"/{params['file_id']}", params={"alt": "media"})
        return {
            "file_id": params["file_id"],
            "mime_type": resp.headers.get("content-type"),
            "size": len(resp.content),
            "content_base64": base64.b64encode(resp.content).decode("ascii"),
        }
