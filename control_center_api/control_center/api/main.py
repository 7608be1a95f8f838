from __future__ import annotations

import asyncio
import logging
import time
from datetime import datetime, timezone
from typing import Any, Dict, Optional
from uuid import UUID, uuid4

from fastapi import APIRouter, Depends, FastAPI, Header, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi import WebSocket, WebSocketDisconnect
from jose import JWTError
from sqlalchemy import func, select, text
from sqlalchemy.exc import SQLAlchemyError

from control_center.core.settings import get_app_settings
from control_center.core.deps import get_tenant_id
from control_center.core.security import decode_token
from control_center.core.logging import configure_logging, correlation_id_var, tenant_id_var
from control_center.db.models.security import Tenant
from control_center.db.models.sites import Site
from control_center.db.run_migrations import main as run_alembic
from control_center.db.seed import seed_all
from control_center.db.session import get_engine
from control_center.schemas.common import ErrorInfo, ErrorResponse, MessageResponse, SystemHealth, TenantEcho
from control_center.services.realtime import broadcast_manager

# Routers
from control_center.api.routes.auth import router as auth_router
from control_center.api.routes.users import router as users_router
from control_center.api.routes.roles import router as roles_router
from control_center.api.routes.tenants import router as tenants_router
# Domain routers
from control_center.api.routes.sites import router as sites_router
from control_center.api.routes.credentials import router as credentials_router
from control_center.api.routes.mail import router as mail_router
from control_center.api.routes.billing import router as billing_router
from control_center.api.routes.whatsapp import router as whatsapp_router
from control_center.api.routes.godmode import router as godmode_router
from control_center.api.routes.scans import router as scans_router
from control_center.api.routes.integration_health import router as integration_health_router
from control_center.api.routes.logs import router as logs_router
from control_center.api.routes.relays import router as relays_router
from control_center.api.routes.social import router as social_router
from control_center.api.routes.reports import router as reports_router

# Configure structured logging once at import
configure_logging()
logger = logging.getLogger(__name__)

settings = get_app_settings()

_STARTED_AT = time.monotonic()

openapi_tags = [
    {"name": "System", "description": "System and operational endpoints."},
    {"name": "Health", "description": "Liveness, readiness and system health probes."},
    {"name": "Auth", "description": "Authentication and token endpoints."},
    {"name": "Users", "description": "User administration endpoints."},
    {"name": "Roles", "description": "Role administration endpoints."},
    {"name": "Tenants", "description": "Tenant registry."},
    {"name": "Sites", "description": "Managed websites, imported apps and site integrations."},
    {"name": "Credentials", "description": "Stored site credentials (masked on read)."},
    {"name": "Mail", "description": "Email accounts and mailbox messages."},
    {"name": "Billing", "description": "Payment providers, transactions and revenue summary."},
    {"name": "WhatsApp", "description": "WhatsApp chats, outbound messages and the Cloud API webhook."},
    {"name": "GodMode", "description": "Time-boxed elevated super-admin sessions."},
    {"name": "Scans", "description": "Daily bug and security integrity scans."},
    {"name": "Integration Health", "description": "Simulated integration health checks and alerts."},
    {"name": "Logs", "description": "Error and audit logs."},
    {"name": "Relays", "description": "AI chat, Slack, SendGrid and GitHub relays."},
    {"name": "Social", "description": "Username availability and password tooling."},
    {"name": "Reports", "description": "Exportable reports (CSV/Excel/PDF)."},
    {
        "name": "WebSocket",
        "description": "WebSocket usage, endpoints, and connection details.",
    },
]

# PUBLIC_INTERFACE
WEBSOCKET_ENDPOINTS = [
    {
        "path": "/ws/changes",
        "summary": "Per-tenant change feed (server push).",
        "query": ["token", "tenant_id?"],
        "headers": ["X-Tenant-ID"],
        "messages": {
            "client_to_server": ["ping"],
            "server_to_client": ["<table>.insert", "<table>.update", "<table>.delete", "health.alert", "pong"],
        },
    },
]

app = FastAPI(
    title=settings.APP_NAME,
    description=settings.APP_DESCRIPTION,
    version=settings.APP_VERSION,
    openapi_tags=openapi_tags,
)

# CORS - avoid wildcard with credentials
cors_allow_credentials = settings.CORS_ALLOW_CREDENTIALS
if settings.CORS_ORIGINS == ["*"] and cors_allow_credentials:
    logger.warning("CORS_ALLOW_CREDENTIALS=True with '*' origins is not permitted; disabling credentials.")
    cors_allow_credentials = False

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=cors_allow_credentials,
    allow_methods=settings.CORS_ALLOW_METHODS,
    allow_headers=settings.CORS_ALLOW_HEADERS,
)


@app.middleware("http")
async def request_context_middleware(request: Request, call_next):
    """
    Enrich request context with correlation_id and tenant_id for logging and error responses.
    Adds 'X-Correlation-ID' to every response.
    """
    corr = request.headers.get("X-Correlation-ID") or request.headers.get("X-Request-ID") or str(uuid4())
    tenant = request.headers.get("X-Tenant-ID")
    token_corr = correlation_id_var.set(corr)
    token_tenant = tenant_id_var.set(tenant)
    request.state.correlation_id = corr
    request.state.tenant_id = tenant

    logger.info("Incoming request %s %s", request.method, request.url.path)
    try:
        response = await call_next(request)
    finally:
        correlation_id_var.reset(token_corr)
        tenant_id_var.reset(token_tenant)

    response.headers["X-Correlation-ID"] = corr
    return response


def _build_error_response(
    request: Request,
    status_code: int,
    error_type: str,
    message: str,
    details: Any | None = None,
) -> JSONResponse:
    """Build a standardized ErrorResponse JSONResponse."""
    ts = datetime.now(tz=timezone.utc)
    corr = getattr(request.state, "correlation_id", None)
    tenant = getattr(request.state, "tenant_id", None)
    err = ErrorResponse(
        status=status_code,
        error=ErrorInfo(type=error_type, message=message, details=details),
        correlation_id=corr,
        tenant_id=tenant,
        path=request.url.path,
        method=request.method,
        timestamp=ts,
    )
    return JSONResponse(status_code=status_code, content=err.model_dump(mode="json"))


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException):
    """
    Global handler for HTTPException to produce a standardized error envelope.
    """
    detail = exc.detail if isinstance(exc.detail, str) else "HTTP Error"
    return _build_error_response(
        request=request,
        status_code=exc.status_code,
        error_type="http_error",
        message=str(detail),
        details=None if isinstance(exc.detail, str) else exc.detail,
    )


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """
    Global handler for request validation errors with a standard structure.
    """
    return _build_error_response(
        request=request,
        status_code=422,
        error_type="validation_error",
        message="Request validation failed",
        details=exc.errors(),
    )


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    """
    Catch-all handler to avoid leaking stack traces and to return a structured error.
    """
    logger.exception("Unhandled error processing request")
    return _build_error_response(
        request=request,
        status_code=500,
        error_type="internal_error",
        message="An unexpected error occurred",
        details=None,
    )


@app.on_event("startup")
async def on_startup() -> None:
    """
    Run migrations and optional seeding on service startup.

    Alembic's env.py drives its own event loop, so the upgrade runs in a worker thread.
    """
    if settings.RUN_MIGRATIONS_ON_STARTUP:
        try:
            logger.info("Running Alembic migrations: upgrade head")
            await asyncio.to_thread(run_alembic, ["upgrade", "head"])
            logger.info("Migrations completed.")
        except Exception as exc:
            logger.exception("Migration step failed: %s", exc)
            # Keep serving; /health/system reports the database as disconnected.

    if settings.AUTO_SEED:
        try:
            logger.info("Running database seeding...")
            await seed_all()
            logger.info("Seeding completed.")
        except Exception as exc:
            logger.exception("Seeding step failed: %s", exc)


# Build API v1 router and include sub-routers
api_v1 = APIRouter(prefix="/api/v1")

# PUBLIC_INTERFACE
@api_v1.get(
    "/health",
    response_model=MessageResponse,
    summary="Health Check",
    tags=["Health"],
)
def health_check() -> MessageResponse:
    """
    Basic liveness health check endpoint.

    Returns:
        MessageResponse: Simple confirmation that the service is running.
    """
    return MessageResponse(message="Healthy")


# PUBLIC_INTERFACE
@api_v1.get(
    "/health/tenant",
    response_model=TenantEcho,
    summary="Tenant Health Echo",
    description="Echoes the tenant context to verify header handling and RLS setup.",
    tags=["Health"],
)
async def tenant_health_echo(tenant_id=Depends(get_tenant_id)) -> TenantEcho:
    """
    Echo the provided tenant ID to verify multi-tenant request handling.

    Parameters:
        X-Tenant-ID (header): UUID of the tenant.
    Returns:
        TenantEcho: The tenant_id extracted from the header.
    """
    return TenantEcho(tenant_id=tenant_id)


async def _database_metrics(tenant_id: Optional[UUID]) -> Dict[str, int]:
    """
    Ping the database and count sites and tenants visible to the caller.

    The tenant GUC is set transaction-locally, so nothing leaks back into the pool.
    """
    async with get_engine().connect() as conn:
        await conn.execute(text("SELECT 1"))
        if tenant_id is not None:
            await conn.execute(text("SELECT set_config('app.tenant_id', :tid, true)"), {"tid": str(tenant_id)})
        sites = (await conn.execute(select(func.count(Site.id)))).scalar_one()
        tenants = (await conn.execute(select(func.count(Tenant.id)))).scalar_one()
    return {"sites": int(sites), "tenants": int(tenants)}


# PUBLIC_INTERFACE
@api_v1.get(
    "/health/system",
    response_model=SystemHealth,
    summary="System Health",
    description=(
        "Database connectivity plus site and tenant counts. Counts are scoped to X-Tenant-ID when given. "
        "Returns 503 with status=degraded when the database is unreachable."
    ),
    responses={503: {"model": SystemHealth}},
    tags=["Health"],
)
async def system_health(x_tenant_id: Optional[str] = Header(default=None, alias="X-Tenant-ID")):
    tenant_id: Optional[UUID] = None
    if x_tenant_id:
        try:
            tenant_id = UUID(x_tenant_id)
        except ValueError:
            raise HTTPException(status_code=400, detail="X-Tenant-ID must be a valid UUID.")

    checks = {"database": "connected", "auth": "active", "storage": "available"}
    metrics: Dict[str, int] = {"sites": 0, "tenants": 0}
    error: Optional[str] = None
    try:
        metrics = await _database_metrics(tenant_id)
    except (SQLAlchemyError, OSError) as exc:
        logger.warning("System health database probe failed: %s", exc)
        checks["database"] = "disconnected"
        error = str(exc)

    healthy = checks["database"] == "connected"
    body = SystemHealth(
        status="ok" if healthy else "degraded",
        timestamp=datetime.now(timezone.utc),
        version=settings.APP_VERSION,
        checks=checks,
        metrics=metrics,
        uptime_seconds=round(time.monotonic() - _STARTED_AT, 3),
        error=error,
    )
    logger.info("Health check performed: %s", body.status)
    if not healthy:
        return JSONResponse(status_code=503, content=body.model_dump(mode="json"))
    return body


# PUBLIC_INTERFACE
@api_v1.get(
    "/websocket-info",
    response_model=Dict[str, Any],
    summary="WebSocket Usage Information",
    description="Provides connection details for the change-feed WebSocket, including authentication and message format.",
    tags=["WebSocket"],
)
def websocket_info() -> Dict[str, Any]:
    """
    Describe how to connect to WebSocket endpoints in this service.

    Returns:
        JSON object with usage notes and endpoints list describing query params, headers, and message format.
    """
    return {
        "usage": (
            "Connect with a valid access JWT as a 'token' query parameter and include the 'X-Tenant-ID' header "
            "(or a 'tenant_id' query parameter where headers cannot be set). The server pushes one message per "
            "committed change: { type: '<table>.<operation>', payload: { table, operation, record_id, record }, "
            "at: ISO-8601, user_id?: string }. Send 'ping' to receive 'pong'."
        ),
        "security": {
            "token": "Access JWT; must contain 'sub' (user id) and 'tenant_id' matching the requested tenant.",
            "header": "X-Tenant-ID: UUID",
        },
        "endpoints": WEBSOCKET_ENDPOINTS,
        "notes": "WebSocket endpoints are not represented in OpenAPI schema; refer to this endpoint for usage.",
    }


# Include all routers under /api/v1
api_v1.include_router(auth_router)
api_v1.include_router(users_router)
api_v1.include_router(roles_router)
api_v1.include_router(tenants_router)
api_v1.include_router(sites_router)
api_v1.include_router(credentials_router)
api_v1.include_router(mail_router)
api_v1.include_router(billing_router)
api_v1.include_router(whatsapp_router)
api_v1.include_router(godmode_router)
api_v1.include_router(scans_router)
api_v1.include_router(integration_health_router)
api_v1.include_router(logs_router)
api_v1.include_router(relays_router)
api_v1.include_router(social_router)
api_v1.include_router(reports_router)

# Attach api_v1 to app
app.include_router(api_v1)


async def _reject(websocket: WebSocket, code: int) -> None:
    await websocket.close(code=code)
    raise WebSocketDisconnect(code=code)


async def _validate_ws_and_get_user(websocket: WebSocket) -> tuple[str, str]:
    """
    Validate an accepted WebSocket by checking the 'token' query param and the tenant
    ('X-Tenant-ID' header, falling back to the 'tenant_id' query param).

    Returns:
        (tenant_id, user_id)
    Raises:
        WebSocketDisconnect after closing with 4401 (unauthenticated) or 4403 (wrong tenant).
    """
    token = websocket.query_params.get("token")
    tenant_id = websocket.headers.get("x-tenant-id") or websocket.query_params.get("tenant_id")
    if not token or not tenant_id:
        await _reject(websocket, 4401)

    try:
        claims = decode_token(token, expected_type="access")
    except JWTError:
        await _reject(websocket, 4401)

    if str(claims.get("tenant_id")) != str(tenant_id):
        await _reject(websocket, 4403)

    user_id = claims.get("sub")
    if not user_id:
        await _reject(websocket, 4401)

    return str(tenant_id), str(user_id)


# PUBLIC_INTERFACE
@app.websocket("/ws/changes")
async def ws_changes(websocket: WebSocket):
    """
    WebSocket endpoint carrying the tenant's change feed.

    Security:
      - Query param 'token' must be a valid access JWT.
      - Header 'X-Tenant-ID' (or query 'tenant_id') must match the JWT tenant_id.
    Messages:
      - Server -> Client: '<table>.<operation>' change envelopes and 'health.alert' events.
      - Client -> Server: optional 'ping' to keepalive; other messages ignored.
    """
    await websocket.accept()
    try:
        tenant_id, user_id = await _validate_ws_and_get_user(websocket)
    except WebSocketDisconnect:
        return

    topic = broadcast_manager.changes_topic(tenant_id)
    await broadcast_manager.connect(topic, websocket)
    logger.info("Change feed subscriber %s joined %s", user_id, topic)

    try:
        while True:
            msg = await websocket.receive_text()
            if msg and msg.lower() == "ping":
                await websocket.send_text("pong")
    except WebSocketDisconnect:
        await broadcast_manager.disconnect(topic, websocket)
    except Exception:
        logger.exception("Error on ws_changes connection")
        await broadcast_manager.disconnect(topic, websocket)
        await websocket.close()
