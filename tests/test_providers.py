"""Test provider adapters against mocked provider APIs."""
import base64
import json
import time
from datetime import datetime, timezone
from email import message_from_bytes
from urllib.parse import parse_qs

import httpx
import pytest

from conftest import FakeAgents, FakeExecutor, FakeUsage, MockApi, make_adapter, make_settings
from hub.integrations.adapter_base import AuthType
from hub.integrations.errors import (
    AuthenticationError,
    ConfigurationError,
    InvalidParamsError,
    ProviderError,
    UnknownActionError,
    UnknownProviderError,
    UsageLimitExceeded,
)
from hub.integrations.providers import (
    PROVIDER_ADAPTERS,
    get_adapter_class,
    normalize_provider,
)
from hub.integrations.providers.email import (
    ResendEmailAdapter,
    format_reply_html,
    inbound_signature,
    verify_inbound_request,
)
from hub.integrations.providers.gmail import GmailAdapter, build_raw_message, parse_message
from hub.integrations.providers.google_calendar import GoogleCalendarAdapter, compute_free_slots
from hub.integrations.providers.google_docs import GoogleDocsAdapter, extract_text
from hub.integrations.providers.google_drive import GoogleDriveAdapter
from hub.integrations.providers.google_sheets import GoogleSheetsAdapter
from hub.integrations.providers.notion import NotionAdapter, block_to_markdown, simplify_properties
from hub.integrations.providers.stripe import StripeAdapter, flatten_form, to_cents
from hub.integrations.providers.twilio import (
    TwilioSmsAdapter,
    twilio_signature,
    validate_custom_credentials,
)

FRESH = {"access_token": "tok", "refresh_token": "r1"}


def _b64url(text: str) -> str:
    return base64.urlsafe_b64encode(text.encode()).decode().rstrip("=")


# ============================================================================
# Dispatch table
# ============================================================================

def test_every_provider_is_registered():
    assert set(PROVIDER_ADAPTERS) == {
        "email", "twilio", "google-calendar", "hubspot", "stripe", "google-drive",
        "google-docs", "google-sheets", "notion", "gmail", "webhook",
    }


def test_provider_ids_are_normalized():
    assert normalize_provider("Google_Calendar") == "google-calendar"
    assert normalize_provider("resend") == "email"
    assert normalize_provider("sms") == "twilio"
    assert get_adapter_class("google_drive") is GoogleDriveAdapter


def test_unknown_provider_is_rejected():
    with pytest.raises(UnknownProviderError):
        get_adapter_class("zoom")


@pytest.mark.parametrize("cls", list(PROVIDER_ADAPTERS.values()))
def test_config_schema_matches_auth_type(cls):
    schema = cls.get_config_schema()
    assert schema.type == cls.auth_type
    assert cls.get_capabilities()
    for method_name in cls.actions.values():
        assert callable(getattr(cls, method_name))


def test_capabilities_list_action_names():
    assert "find_available_slots" in GoogleCalendarAdapter.get_capabilities()
    assert "get_events" in GoogleCalendarAdapter.get_capabilities()
    assert set(StripeAdapter.get_capabilities()) == {
        "create_payment", "create_customer", "create_subscription", "get_payment", "refund_payment",
    }


@pytest.mark.asyncio
async def test_unknown_action_fails_before_any_network_call(settings):
    api = MockApi()
    adapter = make_adapter(StripeAdapter, settings, credentials={"secret_key": "sk_test"}, api=api)
    with pytest.raises(UnknownActionError) as exc_info:
        await adapter.execute_action("launch_rocket", {})
    assert "launch_rocket" in str(exc_info.value)
    assert api.requests == []


@pytest.mark.asyncio
async def test_missing_params_are_rejected(settings):
    adapter = make_adapter(GoogleCalendarAdapter, settings, credentials=FRESH)
    with pytest.raises(InvalidParamsError):
        await adapter.execute_action("update_event", {"eventId": "e1"})


# ============================================================================
# Email (Resend)
# ============================================================================

@pytest.mark.asyncio
async def test_send_email_with_platform_key_records_usage(settings):
    api = MockApi({("POST", "/emails"): httpx.Response(200, json={"id": "em_1"})})
    usage = FakeUsage(plan="starter")
    adapter = make_adapter(
        ResendEmailAdapter, settings, credentials={"from_email": "support@acme.com"}, api=api, usage=usage
    )

    result = await adapter.execute_action(
        "send_email", {"to": "c@d.com", "subject": "Hi", "body": "Hello", "agent_id": "agent-1"}
    )
    assert result == {"success": True, "message_id": "em_1"}

    request = api.requests[0]
    assert request.headers["authorization"] == "Bearer re_platform"
    body = json.loads(request.content)
    assert body["from"] == "Agent Hub <support@acme.com>"
    assert body["to"] == ["c@d.com"]
    assert body["text"] == "Hello"

    record = usage.records[0]
    assert (record.channel, record.recipient, record.provider_message_id) == ("email", "c@d.com", "em_1")
    assert record.agent_id == "agent-1"
    assert record.billable


@pytest.mark.asyncio
async def test_custom_resend_key_takes_precedence(settings):
    api = MockApi({("POST", "/emails"): httpx.Response(200, json={"id": "em_2"})})
    adapter = make_adapter(
        ResendEmailAdapter,
        settings,
        credentials={"from_email": "a@b.com", "from_name": "Acme", "api_key": "re_custom"},
        api=api,
        usage=FakeUsage(),
    )
    await adapter.execute_action("send_email", {"to": ["x@y.com"], "subject": "s"})
    assert api.requests[0].headers["authorization"] == "Bearer re_custom"
    assert json.loads(api.requests[0].content)["from"] == "Acme <a@b.com>"


@pytest.mark.asyncio
async def test_email_limit_blocks_send(settings):
    api = MockApi()
    adapter = make_adapter(
        ResendEmailAdapter,
        settings,
        credentials={"from_email": "a@b.com"},
        api=api,
        usage=FakeUsage(plan="free", counts={"email": 10}),
    )
    with pytest.raises(UsageLimitExceeded) as exc_info:
        await adapter.execute_action("send_email", {"to": "x@y.com"})
    assert exc_info.value.message == "Email limit reached (10/10). Please upgrade your plan to send more emails."
    assert api.requests == []


@pytest.mark.asyncio
async def test_action_params_cannot_skip_limit(settings):
    api = MockApi({("POST", "/emails"): httpx.Response(200, json={"id": "em_3"})})
    usage = FakeUsage(plan="free", counts={"email": 10})
    adapter = make_adapter(ResendEmailAdapter, settings, credentials={"from_email": "a@b.com"}, api=api, usage=usage)

    with pytest.raises(UsageLimitExceeded):
        await adapter.execute_action("send_email", {"to": "x@y.com", "billable": False})
    assert api.requests == []

    await adapter.send_email({"to": "x@y.com"}, billable=False)
    assert not usage.records[0].billable


def test_inbound_email_verification():
    body = b'{"event": "inbound"}'
    headers = {
        "x-inbound-timestamp": "1700000000",
        "x-inbound-signature": inbound_signature("s3cret", body, "1700000000"),
    }
    assert verify_inbound_request("s3cret", body, headers, now=1700000010)
    assert not verify_inbound_request("s3cret", body + b" ", headers, now=1700000010)
    assert not verify_inbound_request("other", body, headers, now=1700000010)
    assert not verify_inbound_request("s3cret", body, {}, now=1700000010)
    # Outside the replay window
    assert not verify_inbound_request("s3cret", body, headers, now=1700000000 + 301)
    assert not verify_inbound_request("s3cret", body, {**headers, "x-inbound-timestamp": "soon"})


def test_inbound_email_verification_needs_secret():
    with pytest.raises(ConfigurationError, match="INBOUND_EMAIL_SECRET"):
        verify_inbound_request("", b"{}", {})


def test_email_adapter_verifies_with_platform_secret(settings):
    adapter = make_adapter(ResendEmailAdapter, make_settings(inbound_email_secret="s3cret"))
    body = b"{}"
    timestamp = str(int(time.time()))
    signed = {"x-inbound-timestamp": timestamp, "x-inbound-signature": inbound_signature("s3cret", body, timestamp)}

    assert adapter.verify_webhook_signature("https://hub.test/x", {}, signed, body)
    assert not adapter.verify_webhook_signature("https://hub.test/x", {}, {}, body)
    with pytest.raises(ConfigurationError):
        make_adapter(ResendEmailAdapter, settings).verify_webhook_signature("https://hub.test/x", {}, signed, body)


@pytest.mark.asyncio
async def test_metered_adapter_without_tracker_is_misconfigured(settings):
    adapter = make_adapter(ResendEmailAdapter, settings, credentials={"from_email": "a@b.com"})
    with pytest.raises(ConfigurationError):
        await adapter.execute_action("send_email", {"to": "x@y.com"})


@pytest.mark.asyncio
async def test_email_authenticate_checks_key_format(settings):
    adapter = make_adapter(ResendEmailAdapter, settings)
    with pytest.raises(AuthenticationError):
        await adapter.authenticate({"from_email": "a@b.com", "api_key": "sk_wrong"})
    with pytest.raises(AuthenticationError):
        await adapter.authenticate({"api_key": "re_ok"})
    await adapter.authenticate({"from_email": "a@b.com"})


@pytest.mark.asyncio
async def test_email_test_connection_reports_credential_source(settings):
    adapter = make_adapter(ResendEmailAdapter, settings, credentials={"from_email": "a@b.com"})
    result = await adapter.test_connection()
    assert result.success
    assert result.message == "Email configured (using platform credentials)"


@pytest.mark.asyncio
async def test_inbound_email_runs_agent_and_replies(settings):
    api = MockApi({("POST", "/emails"): httpx.Response(200, json={"id": "em_reply"})})
    agent = {"id": "agent-1", "triggers": [{"type": "email", "email_address": "support@acme.com"}]}
    executor = FakeExecutor(reply="We are on it.\nThanks")
    usage = FakeUsage()
    adapter = make_adapter(
        ResendEmailAdapter,
        settings,
        credentials={"from_email": "support@acme.com"},
        api=api,
        usage=usage,
        agents=FakeAgents([agent]),
        executor=executor,
    )

    result = await adapter.handle_webhook(
        {"from": "customer@x.com", "to": ["Support@Acme.com"], "subject": "Help", "text": "My order?"}
    )
    assert result == {"handled": True, "agent_id": "agent-1", "replied": True}
    assert executor.calls[0][1]["body"] == "My order?"

    sent = json.loads(api.requests[0].content)
    assert sent["to"] == ["customer@x.com"]
    assert sent["subject"] == "Re: Help"
    assert "<br>" in sent["html"]
    assert usage.records[0].agent_id == "agent-1"


@pytest.mark.asyncio
async def test_inbound_email_without_agent_is_not_handled(settings):
    adapter = make_adapter(
        ResendEmailAdapter, settings, credentials={"from_email": "a@b.com"},
        usage=FakeUsage(), agents=FakeAgents(), executor=FakeExecutor(),
    )
    result = await adapter.handle_webhook({"from": "c@d.com", "to": "nobody@acme.com", "subject": "x"})
    assert result == {"handled": False, "reason": "no agent"}


def test_reply_html_is_escaped():
    assert "&lt;script&gt;" in format_reply_html("<script>")


# ============================================================================
# SMS (Twilio)
# ============================================================================

@pytest.mark.asyncio
async def test_sms_at_plan_limit_makes_no_network_call(settings):
    api = MockApi()
    adapter = make_adapter(TwilioSmsAdapter, settings, api=api, usage=FakeUsage(plan="pro", counts={"sms": 100}))
    with pytest.raises(UsageLimitExceeded) as exc_info:
        await adapter.execute_action("send_sms", {"to": "+15557654321", "message": "hi"})
    assert (exc_info.value.used, exc_info.value.limit) == (100, 100)
    assert api.requests == []


@pytest.mark.asyncio
async def test_sms_unavailable_on_free_plan(settings):
    adapter = make_adapter(TwilioSmsAdapter, settings, usage=FakeUsage(plan="free"))
    with pytest.raises(UsageLimitExceeded, match="not available on your free plan"):
        await adapter.execute_action("send_sms", {"to": "+15557654321", "message": "hi"})


@pytest.mark.asyncio
async def test_send_sms_posts_form_with_basic_auth(settings):
    api = MockApi({("POST", "/Messages.json"): httpx.Response(201, json={"sid": "SM1", "status": "queued"})})
    usage = FakeUsage()
    adapter = make_adapter(TwilioSmsAdapter, settings, api=api, usage=usage)

    result = await adapter.execute_action("send_sms", {"to": "+15557654321", "message": "hello"})
    assert result == {"success": True, "message_sid": "SM1", "status": "queued"}

    request = api.requests[0]
    assert request.url.path == "/2010-04-01/Accounts/ACplatform/Messages.json"
    expected_auth = base64.b64encode(b"ACplatform:platform-token").decode()
    assert request.headers["authorization"] == f"Basic {expected_auth}"
    form = parse_qs(request.content.decode())
    assert form == {"From": ["+15550001111"], "To": ["+15557654321"], "Body": ["hello"]}
    assert usage.records[0].provider_message_id == "SM1"


@pytest.mark.asyncio
async def test_send_mms_requires_media(settings):
    adapter = make_adapter(TwilioSmsAdapter, settings, usage=FakeUsage())
    with pytest.raises(InvalidParamsError):
        await adapter.execute_action("send_mms", {"to": "+15557654321"})


@pytest.mark.asyncio
async def test_sms_history_filters_by_date(settings):
    api = MockApi({("GET", "/Messages.json"): httpx.Response(200, json={"messages": [{"sid": "SM1", "body": "hi"}]})})
    adapter = make_adapter(TwilioSmsAdapter, settings, api=api)

    history = await adapter.execute_action(
        "get_sms_history", {"limit": 5, "date_from": datetime(2026, 1, 2, tzinfo=timezone.utc)}
    )
    assert history[0]["sid"] == "SM1"
    query = dict(api.requests[0].url.params)
    assert query["PageSize"] == "5"
    assert query["DateSent>"] == "2026-01-02"


def test_custom_twilio_credentials_are_validated():
    with pytest.raises(AuthenticationError, match="AC"):
        validate_custom_credentials({"account_sid": "XX1", "auth_token": "t", "from_number": "+1"})
    with pytest.raises(AuthenticationError, match="Auth Token"):
        validate_custom_credentials({"account_sid": "AC1", "from_number": "+1"})
    with pytest.raises(AuthenticationError, match="E.164"):
        validate_custom_credentials({"account_sid": "AC1", "auth_token": "t", "from_number": "555"})
    validate_custom_credentials({"account_sid": "AC1", "auth_token": "t", "from_number": "+15551234567"})


@pytest.mark.asyncio
async def test_custom_twilio_account_is_verified_with_provider(settings):
    api = MockApi({("GET", "/Accounts/AC1.json"): httpx.Response(401, json={"message": "bad"})})
    adapter = make_adapter(TwilioSmsAdapter, settings, api=api)
    with pytest.raises(AuthenticationError, match="Failed to authenticate with Twilio"):
        await adapter.authenticate({"account_sid": "AC1", "auth_token": "t", "from_number": "+15551234567"})


def test_twilio_signature_verification(settings):
    adapter = make_adapter(TwilioSmsAdapter, settings)
    url = "https://hub.test/api/webhooks/int-1"
    params = {"From": "+15557654321", "To": "+15550001111", "Body": "hi"}
    signature = twilio_signature("platform-token", url, params)

    assert adapter.verify_webhook_signature(url, params, {"x-twilio-signature": signature})
    assert not adapter.verify_webhook_signature(url, {**params, "Body": "changed"}, {"x-twilio-signature": signature})
    assert not adapter.verify_webhook_signature(url, params, {})


@pytest.mark.asyncio
async def test_inbound_sms_is_free_and_replied(settings):
    api = MockApi({("POST", "/Messages.json"): httpx.Response(201, json={"sid": "SM2", "status": "queued"})})
    agent = {"id": "agent-1", "triggers": [{"type": "sms", "config": {"phone_number": "+15550001111"}}]}
    usage = FakeUsage()
    adapter = make_adapter(
        TwilioSmsAdapter, settings, api=api, usage=usage,
        agents=FakeAgents([agent]), executor=FakeExecutor(reply="Got it"),
    )

    result = await adapter.handle_webhook(
        {"From": "+15557654321", "To": "+15550001111", "Body": "hello", "MessageSid": "SMin"}
    )
    assert result == {"handled": True, "agent_id": "agent-1", "replied": True}

    inbound, outbound = usage.records
    assert (inbound.direction, inbound.billable) == ("inbound", False)
    assert (outbound.direction, outbound.billable) == ("outbound", True)
    assert parse_qs(api.requests[0].content.decode())["Body"] == ["Got it"]


# ============================================================================
# Stripe
# ============================================================================

def test_flatten_form_uses_bracket_keys():
    form = flatten_form({
        "amount": 1050,
        "customer": None,
        "metadata": {"order": "A1"},
        "items": [{"price": "price_1"}],
        "expand": ["customer"],
        "automatic_payment_methods": {"enabled": True},
    })
    assert form == {
        "amount": "1050",
        "metadata[order]": "A1",
        "items[0][price]": "price_1",
        "expand[0]": "customer",
        "automatic_payment_methods[enabled]": "true",
    }


def test_amounts_are_sent_in_cents():
    assert to_cents(10.5) == 1050
    assert to_cents("19.99") == 1999


@pytest.mark.asyncio
async def test_create_payment_intent(settings):
    api = MockApi({("POST", "/payment_intents"): httpx.Response(200, json={"id": "pi_1", "status": "requires_payment_method"})})
    adapter = make_adapter(StripeAdapter, settings, credentials={"secret_key": "sk_test_1"}, api=api)

    result = await adapter.execute_action("create_payment", {"amount": 25, "customer_id": "cus_1"})
    assert result["id"] == "pi_1"
    request = api.requests[0]
    assert request.headers["authorization"] == "Bearer sk_test_1"
    form = parse_qs(request.content.decode())
    assert form["amount"] == ["2500"]
    assert form["currency"] == ["usd"]
    assert form["customer"] == ["cus_1"]
    assert form["automatic_payment_methods[enabled]"] == ["true"]


@pytest.mark.asyncio
async def test_stripe_error_is_provider_error(settings):
    api = MockApi({("POST", "/refunds"): httpx.Response(400, json={"error": {"message": "No such payment_intent"}})})
    adapter = make_adapter(StripeAdapter, settings, credentials={"secret_key": "sk_test_1"}, api=api)
    with pytest.raises(ProviderError) as exc_info:
        await adapter.execute_action("refund_payment", {"payment_id": "pi_missing"})
    assert exc_info.value.status_code == 400
    assert "No such payment_intent" in str(exc_info.value)


@pytest.mark.asyncio
async def test_stripe_without_key_fails_connection_test(settings):
    adapter = make_adapter(StripeAdapter, settings)
    result = await adapter.test_connection()
    assert not result.success


# ============================================================================
# Google Calendar
# ============================================================================

def _utc(hour: int, minute: int = 0) -> datetime:
    return datetime(2026, 3, 2, hour, minute, tzinfo=timezone.utc)


def test_free_slots_skip_busy_blocks():
    slots = compute_free_slots(
        _utc(9), _utc(11), 30, [{"start": "2026-03-02T09:30:00Z", "end": "2026-03-02T10:00:00Z"}]
    )
    assert slots == [
        {"start": "2026-03-02T09:00:00Z", "end": "2026-03-02T09:30:00Z"},
        {"start": "2026-03-02T10:00:00Z", "end": "2026-03-02T10:30:00Z"},
        {"start": "2026-03-02T10:30:00Z", "end": "2026-03-02T11:00:00Z"},
    ]


def test_free_slots_must_end_inside_window():
    slots = compute_free_slots(_utc(9), _utc(11), 60, [])
    assert [s["start"] for s in slots] == [
        "2026-03-02T09:00:00Z", "2026-03-02T09:30:00Z", "2026-03-02T10:00:00Z",
    ]


@pytest.mark.asyncio
async def test_find_available_slots_uses_free_busy(settings):
    busy = {"calendars": {"team@acme.com": {"busy": [{"start": "2026-03-02T09:00:00Z", "end": "2026-03-02T10:00:00Z"}]}}}
    api = MockApi({("POST", "/freeBusy"): httpx.Response(200, json=busy)})
    adapter = make_adapter(
        GoogleCalendarAdapter, settings, credentials=FRESH, config={"calendar_id": "team@acme.com"}, api=api
    )

    slots = await adapter.execute_action(
        "find_available_slots",
        {"startDate": "2026-03-02T09:00:00Z", "endDate": "2026-03-02T11:00:00Z", "durationMinutes": 60},
    )
    assert slots == [{"start": "2026-03-02T10:00:00Z", "end": "2026-03-02T11:00:00Z"}]
    assert json.loads(api.requests[0].content)["items"] == [{"id": "team@acme.com"}]


@pytest.mark.asyncio
async def test_get_events_is_an_alias_of_list_events(settings):
    api = MockApi({("GET", "/calendars/primary/events"): httpx.Response(200, json={"items": []})})
    adapter = make_adapter(GoogleCalendarAdapter, settings, credentials=FRESH, api=api)

    assert await adapter.execute_action("get_events", {}) == {"items": []}
    query = dict(api.requests[0].url.params)
    assert query["singleEvents"] == "true"
    assert query["orderBy"] == "startTime"
    assert query["maxResults"] == "10"


# ============================================================================
# Gmail
# ============================================================================

def test_parse_message_prefers_plain_text_part():
    message = {
        "id": "m1",
        "threadId": "t1",
        "snippet": "Hi",
        "labelIds": ["INBOX", "UNREAD"],
        "payload": {
            "headers": [{"name": "From", "value": "a@b.com"}, {"name": "Subject", "value": "Hello"}],
            "parts": [
                {"mimeType": "text/html", "body": {"data": _b64url("<p>html</p>")}},
                {"mimeType": "text/plain", "body": {"data": _b64url("plain body")}},
            ],
        },
    }
    parsed = parse_message(message)
    assert parsed["from"] == "a@b.com"
    assert parsed["subject"] == "Hello"
    assert parsed["body"] == "plain body"
    assert parsed["is_unread"]


def test_raw_message_is_unpadded_base64url():
    raw = build_raw_message({"to": "a@b.com", "subject": "Hi", "body": "<b>Hello</b>"})
    assert "=" not in raw
    message = message_from_bytes(base64.urlsafe_b64decode(raw + "=" * (-len(raw) % 4)))
    assert message["To"] == "a@b.com"
    assert message["Subject"] == "Hi"
    assert message.get_content_type() == "text/html"


@pytest.mark.asyncio
async def test_recent_emails_fetches_each_message(settings):
    detail = {"id": "m1", "payload": {"headers": [], "body": {"data": _b64url("body")}}}
    api = MockApi({
        ("GET", "/messages"): httpx.Response(200, json={"messages": [{"id": "m1"}]}),
        ("GET", "/messages/m1"): httpx.Response(200, json=detail),
    })
    adapter = make_adapter(GmailAdapter, settings, credentials=FRESH, api=api)

    emails = await adapter.execute_action("get_recent_emails", {"limit": 5})
    assert [e["body"] for e in emails] == ["body"]
    assert dict(api.requests[0].url.params) == {"maxResults": "5", "q": "in:inbox"}


# ============================================================================
# Notion, Docs, Sheets, Drive
# ============================================================================

def test_notion_properties_are_simplified():
    properties = {
        "Name": {"type": "title", "title": [{"plain_text": "Launch"}]},
        "Stage": {"type": "status", "status": {"name": "Doing"}},
        "Points": {"type": "number", "number": 3},
        "Due": {"type": "date", "date": {"start": "2026-03-02"}},
        "Done": {"type": "checkbox", "checkbox": False},
        "Owner": {"type": "people", "people": []},
    }
    assert simplify_properties(properties) == {
        "Name": "Launch", "Stage": "Doing", "Points": 3, "Due": "2026-03-02", "Done": False,
    }


def test_notion_blocks_render_as_markdown():
    assert block_to_markdown({"type": "heading_2", "heading_2": {"rich_text": [{"plain_text": "Plan"}]}}) == "## Plan"
    assert block_to_markdown({"type": "paragraph", "paragraph": {"rich_text": []}}) == ""
    assert block_to_markdown({"type": "image", "image": {}}) == ""


@pytest.mark.asyncio
async def test_notion_page_is_rendered_with_title(settings):
    api = MockApi({
        ("GET", "/pages/p1"): httpx.Response(200, json={"properties": {"title": {"title": [{"plain_text": "Roadmap"}]}}}),
        ("GET", "/blocks/p1/children"): httpx.Response(200, json={"results": [
            {"type": "bulleted_list_item", "bulleted_list_item": {"rich_text": [{"plain_text": "Ship it"}]}},
        ]}),
    })
    adapter = make_adapter(NotionAdapter, settings, credentials={"access_token": "tok"}, api=api)
    assert await adapter.execute_action("get_page", {"pageId": "p1"}) == "# Roadmap\n\n- Ship it"


def test_docs_text_extraction():
    document = {"body": {"content": [
        {"paragraph": {"elements": [{"textRun": {"content": "Hello "}}, {"textRun": {"content": "world\n"}}]}},
        {"sectionBreak": {}},
    ]}}
    assert extract_text(document) == "Hello world\n"


@pytest.mark.asyncio
async def test_search_documents_filters_drive_by_name(settings):
    api = MockApi({("GET", "/drive/v3/files"): httpx.Response(200, json={"files": [
        {"id": "d1", "name": "Q1 plan", "modifiedTime": "2026-01-01T00:00:00Z", "webViewLink": "https://docs/d1"},
    ]})})
    adapter = make_adapter(GoogleDocsAdapter, settings, credentials=FRESH, api=api)

    docs = await adapter.execute_action("search_documents", {"query": "Q1's"})
    assert docs == [{"id": "d1", "name": "Q1 plan", "modified_time": "2026-01-01T00:00:00Z", "url": "https://docs/d1"}]
    q = api.requests[0].url.params["q"]
    assert "mimeType='application/vnd.google-apps.document'" in q
    assert "name contains 'Q1\\'s'" in q


@pytest.mark.asyncio
async def test_sheet_range_is_url_encoded(settings):
    api = MockApi({("GET", "/s1/values/Sheet1!A1:B2"): httpx.Response(200, json={"values": [["a", "b"]]})})
    adapter = make_adapter(GoogleSheetsAdapter, settings, credentials=FRESH, api=api)
    data = await adapter.execute_action("get_sheet_data", {"spreadsheet_id": "s1", "range": "Sheet1!A1:B2"})
    assert data == {"values": [["a", "b"]]}
    assert api.requests[0].url.raw_path.endswith(b"/values/Sheet1%21A1%3AB2")


@pytest.mark.asyncio
async def test_drive_download_returns_base64(settings):
    api = MockApi({("GET", "/files/f1"): httpx.Response(200, content=b"hello", headers={"content-type": "text/plain"})})
    adapter = make_adapter(GoogleDriveAdapter, settings, credentials=FRESH, api=api)

    result = await adapter.execute_action("download_file", {"file_id": "f1"})
    assert result == {"file_id": "f1", "mime_type": "text/plain", "size": 5, "content_base64": "aGVsbG8="}
    assert api.requests[0].url.params["alt"] == "media"


@pytest.mark.asyncio
async def test_drive_upload_uses_default_folder(settings):
    api = MockApi({("POST", "/upload/drive/v3/files"): httpx.Response(200, json={"id": "f2"})})
    adapter = make_adapter(
        GoogleDriveAdapter, settings, credentials=FRESH, config={"default_folder_id": "folder-1"}, api=api
    )

    assert await adapter.execute_action("upload_file", {"name": "notes.txt", "content": "hi"}) == {"id": "f2"}
    request = api.requests[0]
    assert request.url.params["uploadType"] == "multipart"
    assert request.headers["content-type"].startswith("multipart/related")
    assert b'"parents": ["folder-1"]' in request.content or b'"parents":["folder-1"]' in request.content


def test_oauth_providers_declare_oauth_schema():
    for cls in (GoogleCalendarAdapter, GmailAdapter, GoogleDriveAdapter, NotionAdapter):
        assert cls.get_config_schema().type is AuthType.OAUTH
