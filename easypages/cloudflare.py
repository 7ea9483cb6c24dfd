"""Async client for the Cloudflare Pages API.

Thin wrapper over httpx: every call unwraps the ``{"success", "result",
"errors"}`` envelope and turns HTTP errors, connection failures and
``success: false`` responses into UpstreamError, carrying the platform's
``errors`` list as details.

Two credentials are in play:
    - the primary account token (CF_API_TOKEN) for every project call
    - a short-lived JWT from the upload-token endpoint, used only for the
      assets upload
"""

from __future__ import annotations

import logging
from typing import Any

import httpx

from easypages import config
from easypages.errors import UpstreamError

_LOG = logging.getLogger(__name__)


class CloudflareClient:
    """Cloudflare Pages API calls scoped to one account.

    Attributes:
        api_url: API base URL.
        account_id: Account owning the projects.
        timeout: Per-request timeout in seconds.
    """

    def __init__(
        self,
        api_token: str,
        account_id: str,
        api_url: str = "https://api.cloudflare.com/client/v4",
        timeout: float = 60.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """Initialize the client.

        Args:
            api_token: Primary account API token.
            account_id: Cloudflare account ID.
            api_url: API base URL.
            timeout: Per-request timeout in seconds.
            transport: Optional httpx transport (tests pass a MockTransport).
        """
        self._api_token = api_token
        self.account_id = account_id
        self.api_url = api_url.rstrip("/")
        self.timeout = timeout
        self._transport = transport

    @classmethod
    def from_config(cls) -> CloudflareClient:
        """Build a client from the process configuration."""
        return cls(
            api_token=config.CF_API_TOKEN,
            account_id=config.CF_ACCOUNT_ID,
            api_url=config.CF_API_URL,
            timeout=config.HTTP_TIMEOUT,
        )

    # -------------------------------------------------------------------------
    # Plumbing
    # -------------------------------------------------------------------------

    def _project_url(self, project: str, suffix: str = "") -> str:
        return f"{self.api_url}/accounts/{self.account_id}/pages/projects/{project}{suffix}"

    async def _request(
        self,
        method: str,
        url: str,
        *,
        token: str | None = None,
        **kwargs: Any,
    ) -> Any:
        """Send one request and return the envelope's ``result``.

        Args:
            method: HTTP method.
            url: Absolute URL.
            token: Bearer token override (defaults to the account token).
            **kwargs: Passed through to httpx (json, params, files...).

        Returns:
            The ``result`` member of the response envelope (may be None).

        Raises:
            UpstreamError: Connection failure, non-2xx status, or
                ``success: false``.
        """
        headers = {"Authorization": f"Bearer {token or self._api_token}"}
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                response = await client.request(method, url, headers=headers, **kwargs)
        except httpx.RequestError as e:
            _LOG.error("%s %s failed: %s", method, url, e)
            raise UpstreamError(f"Failed to connect to Cloudflare: {e}") from e

        try:
            body = response.json()
        except ValueError:
            body = {"raw": response.text}

        if response.status_code >= 400 or (isinstance(body, dict) and body.get("success") is False):
            details = body.get("errors", body) if isinstance(body, dict) else body
            _LOG.error("%s %s returned %s: %s", method, url, response.status_code, details)
            raise UpstreamError(
                f"Cloudflare API error ({response.status_code})",
                details=details,
                upstream_status=response.status_code,
            )

        return body.get("result") if isinstance(body, dict) else body

    # -------------------------------------------------------------------------
    # Projects
    # -------------------------------------------------------------------------

    async def list_projects(self) -> list[dict]:
        result = await self._request("GET", f"{self.api_url}/accounts/{self.account_id}/pages/projects")
        return result or []

    async def get_project(self, project: str) -> dict:
        return await self._request("GET", self._project_url(project)) or {}

    async def create_project(self, name: str, production_branch: str = "main") -> dict:
        return await self._request(
            "POST",
            f"{self.api_url}/accounts/{self.account_id}/pages/projects",
            json={"name": name, "production_branch": production_branch},
        )

    async def update_project(self, project: str, changes: dict) -> dict:
        return await self._request("PATCH", self._project_url(project), json=changes)

    # -------------------------------------------------------------------------
    # Deployments
    # -------------------------------------------------------------------------

    async def list_deployments(self, project: str, page: int = 1, per_page: int | None = None) -> list[dict]:
        """Fetch one page of a project's deployment history, newest first."""
        params: dict[str, int] = {"page": page}
        if per_page:
            params["per_page"] = per_page
        result = await self._request("GET", self._project_url(project, "/deployments"), params=params)
        return result or []

    async def trigger_deployment(self, project: str) -> dict:
        """Start a platform-side build from the connected repository."""
        return await self._request("POST", self._project_url(project, "/deployments"), json={})

    async def delete_deployment(self, project: str, deployment_id: str) -> None:
        await self._request("DELETE", self._project_url(project, f"/deployments/{deployment_id}"))

    async def get_upload_token(self, project: str) -> str:
        """Exchange the account token for a project-scoped upload JWT."""
        result = await self._request("GET", self._project_url(project, "/upload-token"))
        jwt = (result or {}).get("jwt")
        if not jwt:
            raise UpstreamError("Cloudflare returned no upload token", details=result)
        return jwt

    async def upload_assets(self, jwt: str, payload: list[dict]) -> Any:
        """Push base64 assets in one request, authenticated with the upload JWT."""
        return await self._request("POST", f"{self.api_url}/pages/assets/upload", token=jwt, json=payload)

    async def create_deployment(self, project: str, manifest_json: str) -> dict:
        """Create a deployment from a manifest sent as a multipart form field."""
        return await self._request(
            "POST",
            self._project_url(project, "/deployments"),
            files={"manifest": (None, manifest_json)},
        )

    # -------------------------------------------------------------------------
    # Domains
    # -------------------------------------------------------------------------

    async def list_domains(self, project: str) -> list[dict]:
        return await self._request("GET", self._project_url(project, "/domains")) or []

    async def add_domain(self, project: str, name: str) -> dict:
        return await self._request("POST", self._project_url(project, "/domains"), json={"name": name})

    async def delete_domain(self, project: str, name: str) -> None:
        await self._request("DELETE", self._project_url(project, f"/domains/{name}"))
