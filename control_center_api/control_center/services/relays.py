"""
Outbound relays to third-party HTTP APIs: the AI chat gateway, Slack incoming
webhooks, SendGrid and the GitHub REST API.

Relays raise RelayError carrying the HTTP status and JSON body the route should
return; they never retry.
"""
from __future__ import annotations

import logging
import re
from datetime import datetime, timezone
from typing import Any, AsyncGenerator, Dict, List, Optional, Tuple

import httpx

from control_center.core.settings import AppSettings, get_app_settings
from control_center.db.models.sites import ImportedApp, Site
from control_center.schemas.relays import (
    AIChatRequest,
    EmailRequest,
    GitHubDepsRequest,
    GitHubDepsResult,
    MatchedPackage,
    PushResult,
    RelayErrorBody,
    RelayResult,
    SitePush,
    SlackNotification,
)

logger = logging.getLogger(__name__)


class RelayError(Exception):
    """Relay failure mapped to an HTTP status and error body."""

    def __init__(
        self,
        status_code: int,
        error: str,
        *,
        code: Optional[str] = None,
        hint: Optional[str] = None,
        details: Any = None,
    ) -> None:
        super().__init__(error)
        self.status_code = status_code
        self.body = RelayErrorBody(error=error, code=code, hint=hint, details=details)


# PUBLIC_INTERFACE
async def get_http_client() -> AsyncGenerator[httpx.AsyncClient, None]:
    """FastAPI dependency yielding a shared-config AsyncClient; tests override it with a MockTransport client."""
    settings = get_app_settings()
    async with httpx.AsyncClient(timeout=settings.HTTP_TIMEOUT_SECONDS) as client:
        yield client


# ---------------------------------------------------------------------------
# AI chat
# ---------------------------------------------------------------------------

MAX_TREE_FILES = 50


def _site_context(site: Site) -> str:
    return (
        "\nSite Context:\n"
        f"- Name: {site.name}\n"
        f"- Domain: {site.domain or 'Not configured'}\n"
        f"- Status: {site.status or 'unknown'}\n"
        f"- Lovable URL: {site.lovable_url or 'Not set'}\n"
        f"- Health: {site.health_status or 'unknown'}\n"
        f"- Uptime: {site.uptime_percentage or 0}%\n"
    )


def _github_context(app: ImportedApp) -> str:
    return (
        f"\nGitHub Repository: {app.github_repo_url}\n"
        f"- Owner: {app.github_repo_owner or 'unknown'}\n"
        f"- Repo: {app.github_repo_name or 'unknown'}\n"
        f"- Branch: {app.github_default_branch or 'main'}\n"
        f"- Visibility: {app.github_visibility or 'unknown'}\n"
    )


# PUBLIC_INTERFACE
def build_system_prompt(mode: str, site_context: str = "", github_context: str = "") -> str:
    """System prompt for the assistant; chat mode is read-only, modify mode may propose changes."""
    chat_only = mode == "chat"
    focus = (
        "Discuss and explain (no modifications in chat mode)"
        if chat_only
        else "Help make changes and modifications to sites"
    )
    closing = (
        "In Chat mode, you can only provide information and suggestions - no actual changes will be made."
        if chat_only
        else "In Modify mode, you can help implement changes that the user requests."
    )
    return (
        "You are an AI assistant for Control Center, a multi-tenant admin dashboard for managing "
        "Lovable-built websites.\n\n"
        "You help users:\n"
        "1. Understand their sites and their configuration\n"
        "2. Provide insights about site health, integrations, and status\n"
        "3. Answer questions about Control Center features\n"
        f"4. {focus}\n\n"
        f"{site_context}\n{github_context}\n\n"
        "Be helpful, concise, and accurate. If you don't have enough context, ask clarifying questions.\n"
        f"{closing}"
    )


class AIChatRelay:
    """Relays a conversation to the chat-completions gateway with dashboard context."""

    def __init__(self, client: httpx.AsyncClient, settings: Optional[AppSettings] = None) -> None:
        self.client = client
        self.settings = settings or get_app_settings()

    async def _repo_files(self, app: ImportedApp) -> List[str]:
        """First blob paths of the repository tree; empty when unavailable."""
        branch = app.github_default_branch or "main"
        url = f"{self.settings.GITHUB_API_URL}/repos/{app.github_repo_owner}/{app.github_repo_name}/git/trees/{branch}"
        try:
            resp = await self.client.get(
                url,
                params={"recursive": "1"},
                headers={
                    "Authorization": f"Bearer {self.settings.GITHUB_TOKEN}",
                    "Accept": "application/vnd.github+json",
                },
            )
        except httpx.HTTPError as exc:
            logger.info("Could not fetch GitHub tree for %s/%s: %s", app.github_repo_owner, app.github_repo_name, exc)
            return []
        if resp.status_code != 200:
            return []
        tree = resp.json().get("tree") or []
        return [f["path"] for f in tree if f.get("type") == "blob"][:MAX_TREE_FILES]

    async def build_context(self, site: Optional[Site], app: Optional[ImportedApp]) -> Tuple[str, str]:
        site_ctx = _site_context(site) if site else ""
        github_ctx = ""
        if app and app.github_repo_url:
            github_ctx = _github_context(app)
            if self.settings.GITHUB_TOKEN and app.github_repo_owner and app.github_repo_name:
                files = await self._repo_files(app)
                if files:
                    github_ctx += f"\nRepository Files (top {MAX_TREE_FILES}):\n" + "\n".join(files)
        return site_ctx, github_ctx

    # PUBLIC_INTERFACE
    async def chat(
        self,
        request: AIChatRequest,
        site: Optional[Site] = None,
        imported_app: Optional[ImportedApp] = None,
    ) -> str:
        """Return the assistant reply text."""
        if not self.settings.AI_GATEWAY_API_KEY:
            logger.error("AI gateway API key is not configured")
            raise RelayError(500, "AI service not configured")

        site_ctx, github_ctx = await self.build_context(site, imported_app)
        system_prompt = build_system_prompt(request.mode, site_ctx, github_ctx)
        payload = {
            "model": self.settings.AI_MODEL,
            "messages": [{"role": "system", "content": system_prompt}]
            + [m.model_dump() for m in request.messages],
        }
        logger.info("Calling AI gateway site=%s mode=%s github=%s", request.site_id, request.mode, bool(github_ctx))

        try:
            resp = await self.client.post(
                self.settings.AI_GATEWAY_URL,
                json=payload,
                headers={"Authorization": f"Bearer {self.settings.AI_GATEWAY_API_KEY}"},
            )
        except httpx.HTTPError as exc:
            logger.exception("AI gateway request failed")
            raise RelayError(500, str(exc)) from exc

        if resp.status_code == 429:
            raise RelayError(429, "Rate limit exceeded. Please try again later.")
        if resp.status_code == 402:
            raise RelayError(402, "AI credits exhausted. Please add credits to continue.")
        if resp.is_error:
            logger.error("AI gateway error: %s %s", resp.status_code, resp.text)
            raise RelayError(500, "AI service error")

        data = resp.json()
        choices = data.get("choices") or [{}]
        content = (choices[0].get("message") or {}).get("content")
        return content or "I could not generate a response."


# ---------------------------------------------------------------------------
# Slack
# ---------------------------------------------------------------------------

SEVERITY_COLORS = {
    "low": "#36a64f",
    "medium": "#ffcc00",
    "high": "#ff9900",
    "critical": "#ff0000",
}

TYPE_EMOJIS = {
    "alert": "🚨",
    "info": "ℹ️",
    "success": "✅",
    "warning": "⚠️",
}


# PUBLIC_INTERFACE
def build_slack_payload(notification: SlackNotification, now: Optional[datetime] = None) -> Dict[str, Any]:
    """Block Kit attachment: header with emoji, message section, optional fields, footer."""
    now = now or datetime.now(timezone.utc)
    emoji = TYPE_EMOJIS.get(notification.type, TYPE_EMOJIS["info"])
    blocks: List[Dict[str, Any]] = [
        {"type": "header", "text": {"type": "plain_text", "text": f"{emoji} {notification.title}", "emoji": True}},
        {"type": "section", "text": {"type": "mrkdwn", "text": notification.message}},
    ]
    if notification.fields:
        blocks.append({
            "type": "section",
            "fields": [{"type": "mrkdwn", "text": f"*{f.name}:*\n{f.value}"} for f in notification.fields],
        })
    blocks.append({
        "type": "context",
        "elements": [{"type": "mrkdwn", "text": f"Control Center • {now.isoformat()}"}],
    })
    return {"attachments": [{"color": SEVERITY_COLORS.get(notification.severity, SEVERITY_COLORS["low"]), "blocks": blocks}]}


class SlackRelay:
    """Posts notifications to the configured Slack incoming webhook."""

    def __init__(self, client: httpx.AsyncClient, settings: Optional[AppSettings] = None) -> None:
        self.client = client
        self.settings = settings or get_app_settings()

    # PUBLIC_INTERFACE
    async def send(self, notification: SlackNotification) -> RelayResult:
        webhook_url = self.settings.SLACK_WEBHOOK_URL
        if not webhook_url:
            logger.error("Slack webhook URL not configured")
            raise RelayError(503, "Slack webhook not configured", code="SLACK_NOT_CONFIGURED")
        if not notification.title or not notification.message:
            raise RelayError(400, "Missing required fields: title, message")
        if notification.test_mode:
            logger.info("Slack test mode - configuration verified")
            return RelayResult(message="Slack webhook configured correctly", test_mode=True)

        try:
            resp = await self.client.post(webhook_url, json=build_slack_payload(notification))
        except httpx.HTTPError as exc:
            logger.exception("Slack webhook request failed")
            raise RelayError(500, str(exc)) from exc
        if resp.is_error:
            logger.error("Slack webhook error: %s %s", resp.status_code, resp.text)
            raise RelayError(resp.status_code, "Failed to send Slack notification", details=resp.text)
        logger.info("Slack notification sent: %s", notification.title)
        return RelayResult(message="Slack notification sent")


# ---------------------------------------------------------------------------
# SendGrid
# ---------------------------------------------------------------------------

# PUBLIC_INTERFACE
def build_sendgrid_payload(request: EmailRequest, default_sender: str) -> Dict[str, Any]:
    """SendGrid v3 mail/send body; text/plain precedes text/html as SendGrid requires."""
    recipients = request.to if isinstance(request.to, list) else [request.to]
    content = []
    if request.text:
        content.append({"type": "text/plain", "value": request.text})
    content.append({"type": "text/html", "value": request.html})
    return {
        "personalizations": [{"to": [{"email": r} for r in recipients]}],
        "from": {"email": request.sender or default_sender},
        "subject": request.subject,
        "content": content,
    }


class EmailRelay:
    """Sends transactional mail through SendGrid."""

    def __init__(self, client: httpx.AsyncClient, settings: Optional[AppSettings] = None) -> None:
        self.client = client
        self.settings = settings or get_app_settings()

    # PUBLIC_INTERFACE
    async def send(self, request: EmailRequest) -> RelayResult:
        api_key = self.settings.SENDGRID_API_KEY
        if not api_key:
            logger.error("SendGrid API key not configured")
            raise RelayError(503, "Email service not configured", code="SENDGRID_NOT_CONFIGURED")
        if not request.to or not request.subject or not request.html:
            raise RelayError(400, "Missing required fields: to, subject, html")
        if request.test_mode:
            logger.info("Email test mode - configuration verified")
            return RelayResult(message="Email service configured correctly", test_mode=True)

        payload = build_sendgrid_payload(request, self.settings.DEFAULT_SENDER_EMAIL)
        recipients = payload["personalizations"][0]["to"]
        try:
            resp = await self.client.post(
                self.settings.SENDGRID_API_URL,
                json=payload,
                headers={"Authorization": f"Bearer {api_key}"},
            )
        except httpx.HTTPError as exc:
            logger.exception("SendGrid request failed")
            raise RelayError(500, str(exc)) from exc
        if resp.is_error:
            logger.error("SendGrid error: %s %s", resp.status_code, resp.text)
            raise RelayError(resp.status_code, "Failed to send email", details=resp.text)
        logger.info("Email sent to %d recipient(s)", len(recipients))
        return RelayResult(message="Email sent successfully", recipients=len(recipients))


# ---------------------------------------------------------------------------
# GitHub package.json scraper
# ---------------------------------------------------------------------------

NPM_TO_INTEGRATION: Dict[str, str] = {
    # Payments
    "@stripe/stripe-js": "stripe",
    "stripe": "stripe",
    "@paypal/react-paypal-js": "paypal",
    "paypal-rest-sdk": "paypal",
    # Database
    "@supabase/supabase-js": "supabase",
    "firebase": "firebase",
    "@firebase/app": "firebase",
    # Email
    "@sendgrid/mail": "sendgrid",
    "nodemailer": "sendgrid",
    "@mailchimp/mailchimp_marketing": "mailchimp",
    "resend": "resend",
    # Storage
    "@aws-sdk/client-s3": "aws-s3",
    "aws-sdk": "aws-s3",
    "cloudinary": "cloudinary",
    # Communication
    "@slack/web-api": "slack",
    "@slack/bolt": "slack",
    "discord.js": "discord",
    "twilio": "twilio",
    # Social
    "react-facebook-login": "facebook",
    "react-instagram-embed": "instagram",
    "react-twitter-widgets": "twitter",
    "twitter-api-v2": "twitter",
    "react-youtube": "youtube",
    "react-linkedin-login-oauth2": "linkedin",
    # Analytics
    "react-ga4": "google-analytics",
    "mixpanel-browser": "mixpanel",
    "posthog-js": "posthog",
    "@amplitude/analytics-browser": "amplitude",
    # Auth
    "@auth0/auth0-react": "auth0",
    "next-auth": "nextauth",
    "@clerk/clerk-react": "clerk",
    # Development and AI
    "@octokit/rest": "github",
    "openai": "openai",
    "@anthropic-ai/sdk": "anthropic",
    # Monitoring
    "@sentry/react": "sentry",
    "@sentry/browser": "sentry",
    "logrocket": "logrocket",
}

_REPO_PATTERNS = (
    re.compile(r"github\.com/([^/]+)/([^/?#]+)"),
    re.compile(r"^([^/]+)/([^/]+)$"),
)


# PUBLIC_INTERFACE
def parse_github_repo(github_url: Optional[str], owner: Optional[str] = None, repo: Optional[str] = None) -> Tuple[Optional[str], Optional[str]]:
    """Resolve (owner, repo) from a github.com URL or 'owner/repo'; explicit values are the fallback."""
    if github_url:
        for pattern in _REPO_PATTERNS:
            match = pattern.search(github_url.strip())
            if match and match.group(1) and match.group(2):
                return match.group(1), re.sub(r"\.git$", "", match.group(2))
    return owner, repo


# PUBLIC_INTERFACE
def detect_integrations(package_json: Dict[str, Any]) -> Tuple[List[str], List[MatchedPackage], int]:
    """
    Map dependencies and devDependencies onto integration ids.

    The first package seen for an integration is the one reported. Returns
    (integration ids, matched packages, distinct dependency count).
    """
    all_deps: Dict[str, Any] = {}
    for section in ("dependencies", "devDependencies"):
        deps = package_json.get(section)
        if isinstance(deps, dict):
            all_deps.update(deps)
    detected: List[str] = []
    matched: List[MatchedPackage] = []
    for dep in all_deps:
        integration_id = NPM_TO_INTEGRATION.get(dep)
        if integration_id and integration_id not in detected:
            detected.append(integration_id)
            matched.append(MatchedPackage(package=dep, integration=integration_id))
    return detected, matched, len(all_deps)


class GitHubDependencyScanner:
    """Fetches package.json from a public repository and detects integrations."""

    def __init__(self, client: httpx.AsyncClient, settings: Optional[AppSettings] = None) -> None:
        self.client = client
        self.settings = settings or get_app_settings()

    # PUBLIC_INTERFACE
    async def scan(self, request: GitHubDepsRequest) -> GitHubDepsResult:
        repo_owner, repo_name = parse_github_repo(request.github_url, request.owner, request.repo)
        if not repo_owner or not repo_name:
            raise RelayError(400, "Invalid GitHub URL or owner/repo not provided")

        logger.info("Fetching package.json from %s/%s", repo_owner, repo_name)
        headers = {"Accept": "application/vnd.github.v3.raw", "User-Agent": "Control-Center-App"}
        if self.settings.GITHUB_TOKEN:
            headers["Authorization"] = f"Bearer {self.settings.GITHUB_TOKEN}"
        url = f"{self.settings.GITHUB_API_URL}/repos/{repo_owner}/{repo_name}/contents/package.json"
        try:
            resp = await self.client.get(url, headers=headers)
        except httpx.HTTPError as exc:
            logger.exception("GitHub request failed")
            raise RelayError(500, "Failed to fetch dependencies", details=str(exc)) from exc

        if resp.status_code == 404:
            raise RelayError(
                404,
                "Repository or package.json not found",
                hint="Make sure the repository is public and contains a package.json file",
            )
        if resp.is_error:
            raise RelayError(
                resp.status_code,
                f"GitHub API error: {resp.status_code}",
                hint="Rate limit exceeded. Try again later." if resp.status_code == 403 else "Unknown error",
            )

        try:
            package_json = resp.json()
        except ValueError as exc:
            raise RelayError(500, "Failed to fetch dependencies", details="package.json is not valid JSON") from exc
        if not isinstance(package_json, dict):
            raise RelayError(500, "Failed to fetch dependencies", details="package.json is not a JSON object")

        detected, matched, total = detect_integrations(package_json)
        logger.info("Detected %d integrations from %d dependencies", len(detected), total)
        return GitHubDepsResult(
            repo_owner=repo_owner,
            repo_name=repo_name,
            project_name=package_json.get("name") or repo_name,
            detected_integrations=detected,
            matched_packages=matched,
            total_dependencies=total,
        )


# ---------------------------------------------------------------------------
# GitHub repository administration
# ---------------------------------------------------------------------------

class GitHubRepoRelay:
    """
    Token-authenticated GitHub REST calls on a single repository.

    Visibility changes use the repos API; pushes go through the git data API:
    branch ref -> head commit -> one blob per file -> tree -> commit -> ref update.
    """

    def __init__(self, client: httpx.AsyncClient, settings: Optional[AppSettings] = None) -> None:
        self.client = client
        self.settings = settings or get_app_settings()

    # PUBLIC_INTERFACE
    def require_token(self) -> str:
        token = self.settings.GITHUB_TOKEN
        if not token:
            raise RelayError(
                400,
                "GITHUB_TOKEN secret not configured",
                code="GITHUB_NOT_CONFIGURED",
                hint="Create a personal access token with the repo scope and set it as GITHUB_TOKEN",
            )
        return token

    def _headers(self) -> Dict[str, str]:
        token = self.require_token()
        return {
            "Authorization": f"Bearer {token}",
            "Accept": "application/vnd.github.v3+json",
            "User-Agent": "Control-Center",
        }

    async def _call(self, method: str, path: str, step: str, **kwargs: Any) -> Dict[str, Any]:
        headers = self._headers()
        try:
            resp = await self.client.request(method, f"{self.settings.GITHUB_API_URL}{path}", headers=headers, **kwargs)
        except httpx.HTTPError as exc:
            raise RelayError(502, f"Failed to {step}: {exc}") from exc
        if resp.is_error:
            raise RelayError(resp.status_code, f"Failed to {step}: {resp.status_code}", details=resp.text)
        return resp.json()

    # PUBLIC_INTERFACE
    async def get_repository(self, owner: str, repo: str) -> Dict[str, Any]:
        return await self._call("GET", f"/repos/{owner}/{repo}", "get repository")

    # PUBLIC_INTERFACE
    async def make_private(self, owner: str, repo: str) -> Dict[str, Any]:
        return await self._call(
            "PATCH",
            f"/repos/{owner}/{repo}",
            "change visibility",
            json={"private": True, "visibility": "private"},
        )

    # PUBLIC_INTERFACE
    async def push_site(self, site: SitePush) -> PushResult:
        """Commit the site's file changes on top of its branch; never raises for per-repo failures."""
        def result(status: str, message: str, **extra: Any) -> PushResult:
            return PushResult(site_id=site.site_id, site_name=site.site_name, status=status, message=message, **extra)

        if not site.changes:
            return result("skipped", "No changes to push")
        if not site.repo_owner or not site.repo_name:
            return result("skipped", "Repository information incomplete")

        branch = site.branch or "main"
        git = f"/repos/{site.repo_owner}/{site.repo_name}/git"
        try:
            ref = await self._call("GET", f"{git}/refs/heads/{branch}", "get branch")
            head_sha = ref["object"]["sha"]
            head = await self._call("GET", f"{git}/commits/{head_sha}", "get commit")

            tree_items = []
            for change in site.changes:
                try:
                    blob = await self._call(
                        "POST", f"{git}/blobs", "create blob",
                        json={"content": change.content, "encoding": change.encoding},
                    )
                except RelayError as exc:
                    logger.warning("Skipping %s in %s/%s: %s", change.path, site.repo_owner, site.repo_name, exc)
                    continue
                tree_items.append({"path": change.path, "mode": "100644", "type": "blob", "sha": blob["sha"]})
            if not tree_items:
                return result("skipped", "No files could be processed")

            tree = await self._call(
                "POST", f"{git}/trees", "create tree",
                json={"base_tree": head["tree"]["sha"], "tree": tree_items},
            )
            commit = await self._call(
                "POST", f"{git}/commits", "create commit",
                json={"message": site.commit_message, "tree": tree["sha"], "parents": [head_sha]},
            )
            await self._call(
                "PATCH", f"{git}/refs/heads/{branch}", "update branch",
                json={"sha": commit["sha"], "force": False},
            )
        except RelayError as exc:
            if exc.body.code == "GITHUB_NOT_CONFIGURED":
                raise
            logger.error("Push to %s/%s failed: %s", site.repo_owner, site.repo_name, exc)
            return result("failed", exc.body.error)

        sha = commit["sha"]
        logger.info("Pushed %d file(s) to %s/%s@%s: %s", len(tree_items), site.repo_owner, site.repo_name, branch, sha)
        return result(
            "success",
            f"Pushed {len(tree_items)} file(s)",
            commit_sha=sha,
            commit_url=f"https://github.com/{site.repo_owner}/{site.repo_name}/commit/{sha}",
        )
