"""EasyPages - admin front end for Cloudflare Pages.

This FastAPI service sits between an operator's browser and the Cloudflare
Pages API. Besides forwarding project, domain and env var calls, it adds two
workflows the raw API does not have:

1. **Archive Deployment**: Turn an uploaded zip/tarball into a deployment
   - POST /api/projects/{name}/upload - Hash, upload assets, submit manifest

2. **History Cleanup**: Delete old deployments without touching production
   - GET  /api/projects/{name}/deployments/all - All ids plus production id
   - POST /api/projects/{name}/deployments/bulk-delete - Explicit ids or all
   - DELETE /api/projects/{name}/deployments/{id} - One deployment

Other endpoints:
   - GET/POST /login, POST /logout - Session login gate
   - GET /api/csrf-token - CSRF token for the current session
   - GET/POST /api/projects, PATCH /api/projects/{name}
   - GET/POST /api/projects/{name}/deployments
   - GET/POST /api/projects/{name}/domains, DELETE .../domains/{domain}
   - GET/PUT /api/projects/{name}/env
   - GET /health
   - GET /{path} - Single-page frontend from STATIC_DIR

Security:
    - Every /api route needs an authenticated session
    - Unsafe methods need the session's CSRF token
    - Login, upload and project creation are rate limited per client
    - Archive entries are checked for path traversal before hashing
"""

from __future__ import annotations

import html
import logging

from fastapi import APIRouter, Body, Depends, FastAPI, File, Form, HTTPException, Request, UploadFile
from fastapi.responses import FileResponse, HTMLResponse, JSONResponse, RedirectResponse
from pydantic import BaseModel
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.middleware.sessions import SessionMiddleware

from easypages import auth, config
from easypages.archive import open_archive
from easypages.cleanup import delete_all, delete_many
from easypages.cloudflare import CloudflareClient
from easypages.errors import EasyPagesError, UpstreamError, ValidationError
from easypages.history import get_production_id, list_all
from easypages.manifest import build_manifest
from easypages.publisher import publish
from easypages.uploads import transient_upload
from easypages.validation import validate_domain_name, validate_project_name

_LOG = logging.getLogger(__name__)

# The secret must exist before the session middleware is built
SESSION_SECRET: str = config.load_session_secret()

app = FastAPI(title="EasyPages", version="1.0.0")

app.add_middleware(
    SessionMiddleware,
    secret_key=SESSION_SECRET,
    session_cookie=config.SESSION_COOKIE,
    max_age=config.SESSION_MAX_AGE,
    same_site="lax",
    https_only=False,
)

# Ensure directories exist
config.UPLOADS_DIR.mkdir(parents=True, exist_ok=True)

login_limiter = auth.RateLimiter(limit=5, window=15 * 60)
"""Login attempts per client: 5 per 15 minutes."""

upload_limiter = auth.RateLimiter(limit=10, window=60 * 60)
"""Archive uploads per client: 10 per hour."""

create_project_limiter = auth.RateLimiter(limit=20, window=15 * 60)
"""Project creations per client: 20 per 15 minutes."""

SECURITY_HEADERS: dict[str, str] = {
    "Content-Security-Policy": (
        "default-src 'self'; script-src 'self' 'unsafe-inline' 'unsafe-eval'; "
        "img-src 'self' data: https:; connect-src 'self' https://api.cloudflare.com"
    ),
    "X-Content-Type-Options": "nosniff",
    "X-Frame-Options": "SAMEORIGIN",
    "Referrer-Policy": "no-referrer",
}
"""Headers added to every response."""


# =============================================================================
# Application Lifecycle
# =============================================================================


@app.on_event("startup")
async def startup() -> None:
    """Warn about missing configuration; the server still starts."""
    if not config.is_cloudflare_configured():
        _LOG.error("CF_API_TOKEN or CF_ACCOUNT_ID is not set; API calls will fail")
    if not config.is_auth_configured():
        _LOG.error("AUTH_USER or AUTH_PASS is not set; login is disabled")


@app.middleware("http")
async def add_security_headers(request: Request, call_next):
    response = await call_next(request)
    for name, value in SECURITY_HEADERS.items():
        response.headers.setdefault(name, value)
    return response


# =============================================================================
# Error Handling
# =============================================================================


@app.exception_handler(EasyPagesError)
async def handle_easypages_error(request: Request, exc: EasyPagesError) -> JSONResponse:
    """Render domain errors as ``{"error", "details"}``."""
    if isinstance(exc, UpstreamError):
        _LOG.error("Upstream failure on %s %s: %s %s", request.method, request.url.path, exc.message, exc.details)
    return JSONResponse({"error": exc.message, "details": exc.details}, status_code=exc.status_code)


@app.exception_handler(StarletteHTTPException)
async def handle_http_error(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    return JSONResponse({"error": exc.detail}, status_code=exc.status_code, headers=exc.headers)


def get_client() -> CloudflareClient:
    """Dependency: Cloudflare client built from configuration."""
    return CloudflareClient.from_config()


def check_rate_limit(limiter: auth.RateLimiter, request: Request, message: str) -> None:
    """Raise 429 if the client is over ``limiter``'s budget."""
    if not limiter.hit(auth.client_key(request)):
        raise HTTPException(status_code=429, detail=message)


# =============================================================================
# Request Models
# =============================================================================


class CreateProjectRequest(BaseModel):
    name: str


class BuildConfig(BaseModel):
    command: str | None = None
    output_dir: str | None = None


class UpdateProjectRequest(BaseModel):
    build_config: BuildConfig | None = None


class AddDomainRequest(BaseModel):
    name: str


class EnvRequest(BaseModel):
    env: dict[str, str]


class BulkDeleteRequest(BaseModel):
    """Body of a bulk delete. ``ids`` omitted (or no body) means "all"."""

    ids: list[str] | None = None


# =============================================================================
# Login Gate
# =============================================================================

LOGIN_PAGE: str = """<!DOCTYPE html>
<html>
<head><meta charset="utf-8"><title>EasyPages - Login</title></head>
<body>
  <h1>EasyPages</h1>
  {error}
  <form method="post" action="/login">
    <input type="hidden" name="_csrf" value="{csrf}">
    <input type="text" name="username" placeholder="Username" autocomplete="username" required>
    <input type="password" name="password" placeholder="Password" autocomplete="current-password" required>
    <button type="submit">Sign in</button>
  </form>
</body>
</html>
"""


@app.get("/login", response_model=None)
async def login_page(request: Request, error: str | None = None) -> HTMLResponse | RedirectResponse:
    """Serve the login form with the session's CSRF token embedded."""
    if auth.is_authenticated(request):
        return RedirectResponse("/", status_code=303)

    message = "<p>Invalid username or password.</p>" if error else ""
    token = html.escape(auth.get_csrf_token(request), quote=True)
    return HTMLResponse(LOGIN_PAGE.format(error=message, csrf=token))


@app.post("/login", dependencies=[Depends(auth.verify_csrf)])
async def login(
    request: Request,
    username: str = Form(""),
    password: str = Form(""),
) -> RedirectResponse:
    """Check credentials and mark the session authenticated."""
    check_rate_limit(login_limiter, request, "Too many login attempts. Try again in 15 minutes.")

    if not config.is_auth_configured():
        raise HTTPException(status_code=500, detail="Server-side configuration error")

    if auth.verify_credentials(username, password):
        auth.login(request, username)
        _LOG.info("User %s logged in from %s", username, auth.client_key(request))
        return RedirectResponse("/", status_code=303)

    _LOG.warning("Failed login for %r from %s", username, auth.client_key(request))
    return RedirectResponse("/login?error=1", status_code=303)


@app.post("/logout", dependencies=[Depends(auth.verify_csrf)])
async def logout(request: Request) -> RedirectResponse:
    auth.logout(request)
    return RedirectResponse("/login", status_code=303)


@app.get("/health")
async def health() -> dict:
    """Health check endpoint for monitoring and load balancers."""
    return {
        "status": "healthy",
        "cloudflare_configured": config.is_cloudflare_configured(),
        "auth_configured": config.is_auth_configured(),
    }


# =============================================================================
# API: Projects
# =============================================================================

api = APIRouter(
    prefix="/api",
    dependencies=[Depends(auth.require_session), Depends(auth.verify_csrf)],
)


@api.get("/csrf-token")
async def csrf_token(request: Request) -> dict:
    return {"csrfToken": auth.get_csrf_token(request)}


@api.get("/projects")
async def list_projects(client: CloudflareClient = Depends(get_client)) -> list[dict]:
    """List Pages projects, reduced to the fields the dashboard shows."""
    projects = await client.list_projects()
    return [
        {
            "id": p.get("id"),
            "name": p.get("name"),
            "subdomain": p.get("subdomain"),
            "source": p.get("source"),
            "latest_deployment": p.get("latest_deployment") or {"status": "unknown"},
            "build_config": p.get("build_config"),
        }
        for p in projects
    ]


@api.post("/projects")
async def create_project(
    body: CreateProjectRequest,
    request: Request,
    client: CloudflareClient = Depends(get_client),
) -> dict:
    check_rate_limit(create_project_limiter, request, "Too many project creation requests.")
    validate_project_name(body.name)
    return await client.create_project(body.name)


@api.patch("/projects/{project_name}")
async def update_project(
    project_name: str,
    body: UpdateProjectRequest,
    client: CloudflareClient = Depends(get_client),
) -> dict:
    """Update build settings (command and output directory)."""
    validate_project_name(project_name)

    build_config: dict[str, str] = {}
    if body.build_config:
        if body.build_config.command is not None:
            build_config["build_command"] = body.build_config.command
        if body.build_config.output_dir is not None:
            build_config["destination_dir"] = body.build_config.output_dir

    return await client.update_project(project_name, {"build_config": build_config})


# =============================================================================
# API: Deployments
# =============================================================================


@api.get("/projects/{project_name}/deployments")
async def list_deployments(
    project_name: str,
    page: int = 1,
    client: CloudflareClient = Depends(get_client),
) -> list[dict]:
    validate_project_name(project_name)
    return await client.list_deployments(project_name, page=max(page, 1))


@api.post("/projects/{project_name}/deployments")
async def trigger_deployment(project_name: str, client: CloudflareClient = Depends(get_client)) -> dict:
    """Start a platform build from the connected git repository."""
    validate_project_name(project_name)
    return {"success": True, "result": await client.trigger_deployment(project_name)}


@api.get("/projects/{project_name}/deployments/all")
async def list_all_deployment_ids(project_name: str, client: CloudflareClient = Depends(get_client)) -> dict:
    """Every deployment id plus the protected production id.

    Lets the browser drive a chunked bulk delete with a progress bar.
    ``complete`` is false if the scan stopped early.
    """
    validate_project_name(project_name)
    history = await list_all(client, project_name)
    return {
        "ids": history.ids,
        "production_id": history.production_id,
        "total": len(history.ids),
        "complete": history.complete,
    }


@api.post("/projects/{project_name}/deployments/bulk-delete")
async def bulk_delete_deployments(
    project_name: str,
    body: BulkDeleteRequest | None = Body(None),
    client: CloudflareClient = Depends(get_client),
) -> dict:
    """Delete the given deployment ids, or all of them when none are given.

    The production deployment is looked up server-side and always skipped.
    """
    validate_project_name(project_name)

    if body is not None and body.ids is not None:
        protected_id = await get_production_id(client, project_name)
        result = await delete_many(client, project_name, body.ids, protected_id)
    else:
        result = await delete_all(client, project_name)

    return {
        "message": f"Deleted {result.deleted} deployments ({result.failed} failed)",
        "success": result.deleted,
        "failed": result.failed,
        "skipped": result.skipped,
    }


@api.delete("/projects/{project_name}/deployments/{deployment_id}")
async def delete_deployment(
    project_name: str,
    deployment_id: str,
    client: CloudflareClient = Depends(get_client),
) -> dict:
    validate_project_name(project_name)
    if deployment_id == await get_production_id(client, project_name):
        raise HTTPException(status_code=409, detail="Cannot delete the production deployment")
    await client.delete_deployment(project_name, deployment_id)
    return {"success": True}


@api.post("/projects/{project_name}/upload")
async def upload_archive(
    project_name: str,
    request: Request,
    file: UploadFile | None = File(None),
    client: CloudflareClient = Depends(get_client),
) -> dict:
    """Deploy a site from an uploaded zip or tarball.

    The archive is stored under UPLOADS_DIR only for the duration of the
    request and removed on every path, success or failure.
    """
    check_rate_limit(upload_limiter, request, "Upload limit exceeded. Try again later.")
    validate_project_name(project_name)

    if file is None:
        raise ValidationError("No file uploaded")

    content = await file.read()
    if not content:
        raise ValidationError("Uploaded file is empty")
    if len(content) > config.MAX_UPLOAD_SIZE:
        raise HTTPException(
            status_code=413,
            detail=f"Upload too large. Maximum size is {config.MAX_UPLOAD_SIZE // (1024 * 1024)} MB",
        )

    with transient_upload(content) as archive_path:
        build = build_manifest(open_archive(archive_path))
        await publish(client, project_name, build)

    return {
        "success": True,
        "message": "Deployment completed successfully",
        "files": len(build.manifest),
        "rejected": [r.name for r in build.rejected],
    }


# =============================================================================
# API: Domains and Settings
# =============================================================================


@api.get("/projects/{project_name}/domains")
async def list_domains(project_name: str, client: CloudflareClient = Depends(get_client)) -> list[dict]:
    validate_project_name(project_name)
    return await client.list_domains(project_name)


@api.post("/projects/{project_name}/domains")
async def add_domain(
    project_name: str,
    body: AddDomainRequest,
    client: CloudflareClient = Depends(get_client),
) -> dict:
    validate_project_name(project_name)
    validate_domain_name(body.name)
    return await client.add_domain(project_name, body.name)


@api.delete("/projects/{project_name}/domains/{domain_name}")
async def delete_domain(
    project_name: str,
    domain_name: str,
    client: CloudflareClient = Depends(get_client),
) -> dict:
    validate_project_name(project_name)
    validate_domain_name(domain_name)
    await client.delete_domain(project_name, domain_name)
    return {"success": True}


@api.get("/projects/{project_name}/env")
async def get_settings(project_name: str, client: CloudflareClient = Depends(get_client)) -> dict:
    """Production env vars (values only), build config and production branch."""
    validate_project_name(project_name)
    project = await client.get_project(project_name)

    env_vars = ((project.get("deployment_configs") or {}).get("production") or {}).get("env_vars") or {}
    build_config = project.get("build_config") or {}
    return {
        "env": {key: (value or {}).get("value") or "" for key, value in env_vars.items()},
        "build_config": {
            "command": build_config.get("build_command") or "",
            "output_dir": build_config.get("destination_dir") or "",
        },
        "production_branch": project.get("production_branch"),
    }


@api.put("/projects/{project_name}/env")
async def update_env(
    project_name: str,
    body: EnvRequest,
    client: CloudflareClient = Depends(get_client),
) -> dict:
    """Replace env vars on both the production and preview environments."""
    validate_project_name(project_name)
    env_vars = {key: {"type": "plain_text", "value": value} for key, value in body.env.items()}
    await client.update_project(project_name, {
        "deployment_configs": {
            "production": {"env_vars": env_vars},
            "preview": {"env_vars": env_vars},
        },
    })
    return {"success": True}


app.include_router(api)


# =============================================================================
# Static File Serving
# =============================================================================


@app.get("/assets/{path:path}")
async def serve_asset(path: str) -> FileResponse:
    """Serve frontend bundle assets (public, like the login page)."""
    assets_dir = (config.STATIC_DIR / "assets").resolve()
    file_path = (assets_dir / path).resolve()

    # Security: ensure we're still within the assets directory
    if not file_path.is_relative_to(assets_dir):
        raise HTTPException(status_code=403, detail="Access denied")

    if not file_path.is_file():
        raise HTTPException(status_code=404, detail="File not found")

    return FileResponse(file_path)


@app.get("/{path:path}", response_model=None)
async def serve_frontend(request: Request, path: str = "") -> FileResponse | HTMLResponse | RedirectResponse:
    """Serve the single-page frontend to authenticated sessions."""
    if path == "api" or path.startswith("api/"):
        raise HTTPException(status_code=404, detail="Not found")

    if not config.is_auth_configured():
        return HTMLResponse("<h1>Server-side configuration error</h1>", status_code=500)

    if not auth.is_authenticated(request):
        return RedirectResponse("/login", status_code=303)

    index_html = config.STATIC_DIR / "index.html"
    if index_html.exists():
        return FileResponse(index_html)
    return HTMLResponse("<h1>Frontend not built</h1>", status_code=503)
