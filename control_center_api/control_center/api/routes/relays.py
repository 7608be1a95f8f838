from __future__ import annotations

from uuid import UUID

import httpx
from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from control_center.core.deps import get_current_active_user, get_tenant_id, get_tenant_session, require_roles
from control_center.repositories.sites import ImportedAppRepository, SiteRepository
from control_center.schemas.relays import (
    AIChatRequest,
    AIChatResponse,
    EmailRequest,
    GitHubDepsRequest,
    GitHubDepsResult,
    PushReport,
    PushRequest,
    RelayResult,
    SlackNotification,
    VisibilityReport,
    VisibilityRequest,
)
from control_center.services.github_repos import GitHubRepoService
from control_center.services.relays import (
    AIChatRelay,
    EmailRelay,
    GitHubDependencyScanner,
    GitHubRepoRelay,
    RelayError,
    SlackRelay,
    get_http_client,
)

router = APIRouter(tags=["Relays"])


def _relay_error(exc: RelayError) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content=exc.body.as_dict())


# PUBLIC_INTERFACE
@router.post(
    "/ai/chat",
    response_model=AIChatResponse,
    summary="AI assistant chat",
    description=(
        "Relay the conversation to the chat-completion gateway with a system prompt built from "
        "the site and its imported GitHub repository. mode=modify asks for change proposals."
    ),
    dependencies=[Depends(get_current_active_user)],
)
async def ai_chat(
    payload: AIChatRequest,
    session: AsyncSession = Depends(get_tenant_session),
    client: httpx.AsyncClient = Depends(get_http_client),
):
    site = imported_app = None
    if payload.site_id:
        site = await SiteRepository(session).get(payload.site_id)
        imported_app = await ImportedAppRepository(session).get_for_site(payload.site_id)
    try:
        reply = await AIChatRelay(client).chat(payload, site=site, imported_app=imported_app)
    except RelayError as exc:
        return _relay_error(exc)
    return AIChatResponse(response=reply)


# PUBLIC_INTERFACE
@router.post(
    "/notifications/slack",
    response_model=RelayResult,
    summary="Send Slack notification",
    dependencies=[Depends(require_roles("admin", "editor"))],
)
async def send_slack(payload: SlackNotification, client: httpx.AsyncClient = Depends(get_http_client)):
    try:
        return await SlackRelay(client).send(payload)
    except RelayError as exc:
        return _relay_error(exc)


# PUBLIC_INTERFACE
@router.post(
    "/notifications/email",
    response_model=RelayResult,
    summary="Send email",
    description="Send mail through SendGrid. testMode only verifies configuration.",
    dependencies=[Depends(require_roles("admin", "editor", "mail:manage"))],
)
async def send_email(payload: EmailRequest, client: httpx.AsyncClient = Depends(get_http_client)):
    try:
        return await EmailRelay(client).send(payload)
    except RelayError as exc:
        return _relay_error(exc)


# PUBLIC_INTERFACE
@router.post(
    "/github/dependencies",
    response_model=GitHubDepsResult,
    summary="Detect integrations from package.json",
    description="Fetch package.json of a public GitHub repository and map its dependencies to integration ids.",
    dependencies=[Depends(get_current_active_user)],
)
async def github_dependencies(payload: GitHubDepsRequest, client: httpx.AsyncClient = Depends(get_http_client)):
    try:
        return await GitHubDependencyScanner(client).scan(payload)
    except RelayError as exc:
        return _relay_error(exc)


def get_github_repo_service(
    session: AsyncSession = Depends(get_tenant_session),
    tenant_id: UUID = Depends(get_tenant_id),
    client: httpx.AsyncClient = Depends(get_http_client),
) -> GitHubRepoService:
    return GitHubRepoService(session, GitHubRepoRelay(client), tenant_id)


# PUBLIC_INTERFACE
@router.post(
    "/github/visibility",
    response_model=VisibilityReport,
    summary="Scan or remediate repository visibility",
    description=(
        "action=scan lists the imported repositories from stored metadata. action=remediate switches every "
        "public repository to private (requires GITHUB_TOKEN) and writes the report to the audit log."
    ),
    dependencies=[Depends(require_roles("admin"))],
)
async def github_visibility(
    payload: VisibilityRequest,
    user=Depends(get_current_active_user),
    service: GitHubRepoService = Depends(get_github_repo_service),
):
    try:
        return await service.visibility(payload.action, user_id=user.id)
    except RelayError as exc:
        return _relay_error(exc)


# PUBLIC_INTERFACE
@router.post(
    "/github/push",
    response_model=PushReport,
    summary="Push file changes to site repositories",
    description="Commit the given files on each site's branch through the git data API; results are per site.",
    dependencies=[Depends(require_roles("admin", "sites:manage"))],
)
async def github_push(
    payload: PushRequest,
    user=Depends(get_current_active_user),
    service: GitHubRepoService = Depends(get_github_repo_service),
):
    try:
        return await service.push(payload, user_id=user.id)
    except RelayError as exc:
        return _relay_error(exc)
