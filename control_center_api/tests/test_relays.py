import json
from types import SimpleNamespace

import httpx
import pytest

from control_center.core.settings import AppSettings
from control_center.schemas.relays import (
    AIChatRequest,
    ChatMessage,
    EmailRequest,
    GitHubDepsRequest,
    SlackField,
    SlackNotification,
)
from control_center.services.relays import (
    AIChatRelay,
    EmailRelay,
    GitHubDependencyScanner,
    RelayError,
    SlackRelay,
    build_sendgrid_payload,
    build_slack_payload,
    build_system_prompt,
    detect_integrations,
    parse_github_repo,
)


def _client(handler):
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


def _settings(**overrides):
    return AppSettings(**overrides)


# --- pure helpers ---------------------------------------------------------------------------


@pytest.mark.parametrize(
    "url,expected",
    [
        ("https://github.com/acme/shop", ("acme", "shop")),
        ("https://github.com/acme/shop.git", ("acme", "shop")),
        ("acme/shop", ("acme", "shop")),
        ("not a repo", (None, None)),
    ],
)
def test_parse_github_repo(url, expected):
    assert parse_github_repo(url) == expected


def test_parse_github_repo_falls_back_to_explicit_owner_repo():
    assert parse_github_repo(None, "octo", "cat") == ("octo", "cat")


def test_detect_integrations_reports_first_package_per_integration():
    package_json = {
        "dependencies": {"stripe": "^14", "@stripe/stripe-js": "^2", "react": "^18"},
        "devDependencies": {"@sentry/react": "^7", "react": "^18"},
    }
    detected, matched, total = detect_integrations(package_json)
    assert detected == ["stripe", "sentry"]
    assert matched[0].package == "stripe"
    assert total == 4


def test_slack_payload_blocks_and_color():
    notification = SlackNotification(
        type="alert",
        title="Site down",
        message="shop.example.com is not responding",
        severity="critical",
        fields=[SlackField(name="Site", value="shop")],
    )
    payload = build_slack_payload(notification)
    attachment = payload["attachments"][0]
    assert attachment["color"] == "#ff0000"
    blocks = attachment["blocks"]
    assert blocks[0]["text"]["text"] == "🚨 Site down"
    assert blocks[2]["fields"][0]["text"] == "*Site:*\nshop"
    assert blocks[-1]["type"] == "context"


def test_sendgrid_payload_puts_plain_text_first():
    request = EmailRequest(to=["a@example.com", "b@example.com"], subject="Hi", html="<p>Hi</p>", text="Hi")
    payload = build_sendgrid_payload(request, "noreply@example.com")
    assert [c["type"] for c in payload["content"]] == ["text/plain", "text/html"]
    assert payload["from"] == {"email": "noreply@example.com"}
    assert len(payload["personalizations"][0]["to"]) == 2


def test_system_prompt_differs_by_mode():
    assert "no modifications in chat mode" in build_system_prompt("chat")
    assert "In Modify mode" in build_system_prompt("modify")


# --- Slack ----------------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_slack_not_configured_is_503():
    async with _client(lambda request: httpx.Response(200)) as client:
        with pytest.raises(RelayError) as exc_info:
            await SlackRelay(client, _settings(SLACK_WEBHOOK_URL=None)).send(SlackNotification(title="t", message="m"))
    assert exc_info.value.status_code == 503
    assert exc_info.value.body.code == "SLACK_NOT_CONFIGURED"


@pytest.mark.asyncio
async def test_slack_missing_fields_is_400():
    async with _client(lambda request: httpx.Response(200)) as client:
        relay = SlackRelay(client, _settings(SLACK_WEBHOOK_URL="https://hooks.slack.test/x"))
        with pytest.raises(RelayError) as exc_info:
            await relay.send(SlackNotification(title="only title"))
    assert exc_info.value.status_code == 400


@pytest.mark.asyncio
async def test_slack_test_mode_makes_no_request():
    calls = []

    def handler(request):
        calls.append(request)
        return httpx.Response(200)

    async with _client(handler) as client:
        relay = SlackRelay(client, _settings(SLACK_WEBHOOK_URL="https://hooks.slack.test/x"))
        result = await relay.send(SlackNotification(title="t", message="m", test_mode=True))
    assert result.test_mode is True
    assert calls == []


@pytest.mark.asyncio
async def test_slack_upstream_error_status_is_surfaced():
    async with _client(lambda request: httpx.Response(403, text="invalid_token")) as client:
        relay = SlackRelay(client, _settings(SLACK_WEBHOOK_URL="https://hooks.slack.test/x"))
        with pytest.raises(RelayError) as exc_info:
            await relay.send(SlackNotification(title="t", message="m"))
    assert exc_info.value.status_code == 403
    assert exc_info.value.body.details == "invalid_token"


# --- SendGrid -------------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_email_sends_with_bearer_key():
    seen = {}

    def handler(request):
        seen["auth"] = request.headers["Authorization"]
        seen["body"] = json.loads(request.content)
        return httpx.Response(202)

    async with _client(handler) as client:
        relay = EmailRelay(client, _settings(SENDGRID_API_KEY="SG.key"))
        result = await relay.send(EmailRequest(to="ops@example.com", subject="Report", html="<b>ok</b>"))
    assert result.recipients == 1
    assert seen["auth"] == "Bearer SG.key"
    assert seen["body"]["personalizations"][0]["to"] == [{"email": "ops@example.com"}]


@pytest.mark.asyncio
async def test_email_missing_fields_is_400():
    async with _client(lambda request: httpx.Response(202)) as client:
        relay = EmailRelay(client, _settings(SENDGRID_API_KEY="SG.key"))
        with pytest.raises(RelayError) as exc_info:
            await relay.send(EmailRequest(to="ops@example.com"))
    assert exc_info.value.status_code == 400
    assert exc_info.value.body.as_dict() == {"success": False, "error": "Missing required fields: to, subject, html"}


# --- GitHub ---------------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_github_scan_detects_integrations():
    def handler(request):
        assert request.url.path == "/repos/acme/shop/contents/package.json"
        return httpx.Response(200, json={"name": "shop-ui", "dependencies": {"@supabase/supabase-js": "^2"}})

    async with _client(handler) as client:
        result = await GitHubDependencyScanner(client, _settings()).scan(
            GitHubDepsRequest(github_url="https://github.com/acme/shop")
        )
    assert result.project_name == "shop-ui"
    assert result.detected_integrations == ["supabase"]


@pytest.mark.asyncio
async def test_github_scan_maps_404_and_403():
    async with _client(lambda request: httpx.Response(404)) as client:
        with pytest.raises(RelayError) as not_found:
            await GitHubDependencyScanner(client, _settings()).scan(GitHubDepsRequest(owner="a", repo="b"))
    assert not_found.value.status_code == 404
    assert "public" in not_found.value.body.hint

    async with _client(lambda request: httpx.Response(403)) as client:
        with pytest.raises(RelayError) as forbidden:
            await GitHubDependencyScanner(client, _settings()).scan(GitHubDepsRequest(owner="a", repo="b"))
    assert forbidden.value.status_code == 403
    assert forbidden.value.body.hint == "Rate limit exceeded. Try again later."


@pytest.mark.asyncio
async def test_github_scan_rejects_unparseable_input():
    async with _client(lambda request: httpx.Response(200)) as client:
        with pytest.raises(RelayError) as exc_info:
            await GitHubDependencyScanner(client, _settings()).scan(GitHubDepsRequest())
    assert exc_info.value.status_code == 400


@pytest.mark.asyncio
async def test_github_scan_rejects_non_object_package_json():
    async with _client(lambda request: httpx.Response(200, json=["react", "stripe"])) as client:
        with pytest.raises(RelayError) as exc_info:
            await GitHubDependencyScanner(client, _settings()).scan(GitHubDepsRequest(owner="a", repo="b"))
    assert exc_info.value.status_code == 500
    assert exc_info.value.body.details == "package.json is not a JSON object"


def test_detect_integrations_ignores_non_object_sections():
    detected, matched, total = detect_integrations({"dependencies": ["stripe"], "devDependencies": {"openai": "^4"}})
    assert detected == ["openai"]
    assert total == 1


# --- AI chat --------------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_ai_chat_includes_site_context_and_returns_reply():
    seen = {}

    def handler(request):
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json={"choices": [{"message": {"content": "All good."}}]})

    site = SimpleNamespace(
        name="Shop", domain="shop.example.com", status="active", lovable_url=None,
        health_status="healthy", uptime_percentage=99.9,
    )
    async with _client(handler) as client:
        relay = AIChatRelay(client, _settings(AI_GATEWAY_API_KEY="key"))
        reply = await relay.chat(AIChatRequest(messages=[ChatMessage(role="user", content="status?")]), site=site)

    assert reply == "All good."
    system = seen["body"]["messages"][0]
    assert system["role"] == "system"
    assert "- Domain: shop.example.com" in system["content"]
    assert seen["body"]["messages"][1] == {"role": "user", "content": "status?"}


@pytest.mark.asyncio
@pytest.mark.parametrize("status,expected", [(429, 429), (402, 402), (500, 500)])
async def test_ai_chat_maps_gateway_errors(status, expected):
    async with _client(lambda request: httpx.Response(status, text="nope")) as client:
        relay = AIChatRelay(client, _settings(AI_GATEWAY_API_KEY="key"))
        with pytest.raises(RelayError) as exc_info:
            await relay.chat(AIChatRequest(messages=[ChatMessage(role="user", content="hi")]))
    assert exc_info.value.status_code == expected


@pytest.mark.asyncio
async def test_ai_chat_without_key_is_500():
    async with _client(lambda request: httpx.Response(200)) as client:
        with pytest.raises(RelayError) as exc_info:
            await AIChatRelay(client, _settings(AI_GATEWAY_API_KEY=None)).chat(AIChatRequest())
    assert exc_info.value.status_code == 500
    assert exc_info.value.body.error == "AI service not configured"
