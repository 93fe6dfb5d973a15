"""Google Calendar v3 adapter."""
from __future__ import annotations
from datetime import datetime, timedelta, timezone
from typing import Any
from urllib.parse import quote

from hub.integrations.adapter_base import (
    AuthType,
    ConfigField,
    ConfigSchema,
    IntegrationType,
    require_params,
)
from hub.integrations.providers.google import GoogleOAuthAdapter

SLOT_STEP = timedelta(minutes=30)


def _parse_time(value: Any) -> datetime:
    if isinstance(value, datetime):
        dt = value
    else:
        dt = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


def _iso(dt: datetime) -> str:
    return dt.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")


def compute_free_slots(
    start: datetime,
    end: datetime,
    duration_minutes: int,
    busy: list[dict[str, Any]],
) -> list[dict[str, str]]:
    """Candidate slots on a 30 minute grid that fit before *end* and miss every busy block."""
    length = timedelta(minutes=duration_minutes)
    blocks = [(_parse_time(b["start"]), _parse_time(b["end"])) for b in busy]
    slots = []
    current = start
    while current < end:
        slot_end = current + length
        overlaps = any(current < b_end and slot_end > b_start for b_start, b_end in blocks)
        if not overlaps and slot_end <= end:
            slots.append({"start": _iso(current), "end": _iso(slot_end)})
        current += SLOT_STEP
    return slots


class GoogleCalendarAdapter(GoogleOAuthAdapter):
    provider = "google-calendar"
    integration_type = IntegrationType.CALENDAR
    base_url = "https://www.googleapis.com/calendar/v3"
    test_path = "/users/me/calendarList"
    display_name = "Google Calendar"
    actions = {
        "create_event": "create_event",
        "update_event": "update_event",
        "delete_event": "delete_event",
        "get_events": "list_events",
        "list_events": "list_events",
        "check_availability": "check_availability",
        "find_available_slots": "find_available_slots",
    }

    @classmethod
    def get_config_schema(cls) -> ConfigSchema:
        return ConfigSchema(
            type=AuthType.OAUTH,
            auth_url=f"/api/integrations/{cls.provider}/authorize",
            fields=[
                ConfigField(
                    key="calendar_id",
                    label="Default Calendar ID",
                    placeholder="primary",
                    description='Calendar used by default ("primary" is your main calendar)',
                ),
            ],
        )

    def _calendar_id(self, params: dict[str, Any]) -> str:
        return params.get("calendarId") or self.record.config.get("calendar_id") or "primary"

    def _events_path(self, params: dict[str, Any]) -> str:
        return f"/calendars/{quote(self._calendar_id(params), safe='@.')}/events"

    async def create_event(self, params: dict[str, Any]) -> dict[str, Any]:
        require_params(self.provider, "create_event", params, "event")
        return await self._request("POST", self._events_path(params), json=params["event"])

    async def update_event(self, params: dict[str, Any]) -> dict[str, Any]:
        require_params(self.provider, "update_event", params, "eventId", "event")
        path = f"{self._events_path(params)}/{params['eventId']}"
        return await self._request("PATCH", path, json=params["event"])

    async def delete_event(self, params: dict[str, Any]) -> dict[str, Any]:
        require_params(self.provider, "delete_event", params, "eventId")
        await self._request("DELETE", f"{self._events_path(params)}/{params['eventId']}")
        return {"success": True, "event_id": params["eventId"]}

    async def list_events(self, params: dict[str, Any]) -> dict[str, Any]:
        return await self._request(
            "GET",
            self._events_path(params),
            params={
                "maxResults": params.get("maxResults") or 10,
                "orderBy": "startTime",
                "singleEvents": "true",
                "timeMin": params.get("timeMin") or _iso(datetime.now(timezone.utc)),
            },
        )

    async def check_availability(self, params: dict[str, Any]) -> dict[str, Any]:
        require_params(self.provider, "check_availability", params, "timeMin", "timeMax")
        return await self._request(
            "POST",
            "/freeBusy",
            json={
                "timeMin": params["timeMin"],
                "timeMax": params["timeMax"],
                "items": [{"id": self._calendar_id(params)}],
            },
        )

    async def find_available_slots(self, params: dict[str, Any]) -> list[dict[str, str]]:
        require_params(self.provider, "find_available_slots", params, "startDate", "endDate")
        start = _parse_time(params["startDate"])
        end = _parse_time(params["endDate"])
        calendar_id = self._calendar_id(params)
        free_busy = await self.check_availability(
            {"timeMin": _iso(start), "timeMax": _iso(end), "calendarId": calendar_id}
        )
        busy = ((free_busy or {}).get("calendars", {}).get(calendar_id) or {}).get("busy", [])
        return compute_free_slots(start, end, int(params.get("durationMinutes") or 30), busy)
