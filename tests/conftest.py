"""Shared fixtures: test environment, archive builders and a fake Cloudflare API."""

import io
import json
import os
import re
import tarfile
import tempfile
import zipfile

# Configuration is read at import time, so the environment is set before any
# easypages module is imported.
os.environ["UPLOADS_DIR"] = tempfile.mkdtemp(prefix="easypages-uploads-")
os.environ["SESSION_SECRET"] = "test-session-secret"
os.environ["AUTH_USER"] = "admin"
os.environ["AUTH_PASS"] = "hunter2"
os.environ["CF_API_TOKEN"] = "account-token"
os.environ["CF_ACCOUNT_ID"] = "acc123"

import httpx  # noqa: E402
import pytest  # noqa: E402

from easypages.cloudflare import CloudflareClient  # noqa: E402

API_URL = "https://api.test/client/v4"
ACCOUNT_TOKEN = "account-token"
UPLOAD_JWT = "upload-jwt"


# ---------------------------------------------------------------------------
# Archive builders
# ---------------------------------------------------------------------------


def make_zip(files, dirs=()):
    """Build zip bytes from a list of (name, data) pairs plus directory names."""
    buf = io.BytesIO()
    with zipfile.ZipFile(buf, "w", compression=zipfile.ZIP_STORED) as zf:
        for name in dirs:
            zf.writestr(name if name.endswith("/") else name + "/", b"")
        for name, data in files:
            zf.writestr(name, data)
    return buf.getvalue()


def make_tar(files, dirs=(), symlinks=()):
    """Build tar.gz bytes from (name, data) pairs, directory names and (name, target) links."""
    buf = io.BytesIO()
    with tarfile.open(fileobj=buf, mode="w:gz") as tar:
        for name in dirs:
            info = tarfile.TarInfo(name)
            info.type = tarfile.DIRTYPE
            tar.addfile(info)
        for name, data in files:
            info = tarfile.TarInfo(name)
            info.size = len(data)
            tar.addfile(info, io.BytesIO(data))
        for name, target in symlinks:
            info = tarfile.TarInfo(name)
            info.type = tarfile.SYMTYPE
            info.linkname = target
            tar.addfile(info)
    return buf.getvalue()


# ---------------------------------------------------------------------------
# Fake Cloudflare API
# ---------------------------------------------------------------------------


def _ok(result):
    return httpx.Response(200, json={"success": True, "errors": [], "messages": [], "result": result})


def _error(status, code, message):
    return httpx.Response(status, json={
        "success": False,
        "errors": [{"code": code, "message": message}],
        "messages": [],
        "result": None,
    })


def form_field(request, name):
    """Extract one field from a multipart request body."""
    boundary = request.headers["content-type"].split("boundary=")[1]
    for part in request.content.split(f"--{boundary}".encode()):
        head, _, body = part.partition(b"\r\n\r\n")
        if f'name="{name}"'.encode() in head:
            return body[:-2].decode() if body.endswith(b"\r\n") else body.decode()
    return None


class FakeCloudflare:
    """In-memory stand-in for the Pages API, served through httpx.MockTransport.

    Deployments are kept newest first, like the real API returns them.
    """

    def __init__(self, project="site", deployment_count=0, production_id=None):
        self.project = project
        self.deployments = [{"id": f"dep-{i:03d}"} for i in range(deployment_count)]
        self.production_id = production_id
        self.domains = []
        self.requests = []
        self.uploaded_batches = []
        self.manifests = []
        self.project_updates = []
        self.fail_project = False
        self.fail_upload_token = False
        self.fail_assets = False
        self.fail_create_deployment = False
        self.fail_pages = set()
        self.fail_deletes = set()

    def seed(self, count, production_id=None):
        """Replace history with ``count`` deployments dep-000 (newest) .. dep-N."""
        self.deployments = [{"id": f"dep-{i:03d}"} for i in range(count)]
        self.production_id = production_id

    # Queries used by assertions

    def calls(self, method, pattern):
        return [r for r in self.requests if r.method == method and re.search(pattern, r.url.path)]

    def deleted_ids(self):
        return [r.url.path.rsplit("/", 1)[1] for r in self.calls("DELETE", r"/deployments/[^/]+$")]

    # Routing

    def handler(self, request):
        self.requests.append(request)
        path = request.url.path.removeprefix("/client/v4")
        projects = "/accounts/acc123/pages/projects"

        if path == "/pages/assets/upload" and request.method == "POST":
            return self._upload_assets(request)
        if path == projects:
            if request.method == "GET":
                return _ok([{"id": "p1", "name": self.project, "subdomain": f"{self.project}.pages.dev"}])
            return _ok({"name": _json(request)["name"]})

        match = re.fullmatch(projects + r"/([a-z0-9-]+)(/.*)?", path)
        if not match:
            return _error(404, 7003, "No route")
        name, rest = match.group(1), match.group(2) or ""
        if name != self.project:
            return _error(404, 8000007, "Project not found")

        if rest == "":
            return self._project(request)
        if rest == "/upload-token":
            if self.fail_upload_token:
                return _error(403, 10000, "Authentication error")
            return _ok({"jwt": UPLOAD_JWT})
        if rest == "/deployments":
            if request.method == "GET":
                return self._list_deployments(request)
            return self._create_deployment(request)
        if rest.startswith("/deployments/") and request.method == "DELETE":
            return self._delete_deployment(rest.rsplit("/", 1)[1])
        if rest == "/domains":
            if request.method == "GET":
                return _ok(self.domains)
            domain = {"name": _json(request)["name"]}
            self.domains.append(domain)
            return _ok(domain)
        if rest.startswith("/domains/") and request.method == "DELETE":
            self.domains = [d for d in self.domains if d["name"] != rest.rsplit("/", 1)[1]]
            return _ok(None)
        return _error(404, 7003, "No route")

    def _project(self, request):
        if self.fail_project:
            return _error(500, 8000000, "Internal error")
        if request.method == "PATCH":
            self.project_updates.append(_json(request))
        record = {
            "name": self.project,
            "production_branch": "main",
            "build_config": {"build_command": "npm run build", "destination_dir": "dist"},
            "deployment_configs": {"production": {"env_vars": {"API_KEY": {"type": "plain_text", "value": "abc"}}}},
            "canonical_deployment": {"id": self.production_id} if self.production_id else None,
        }
        return _ok(record)

    def _upload_assets(self, request):
        if request.headers.get("authorization") != f"Bearer {UPLOAD_JWT}":
            return _error(401, 10000, "Bad upload token")
        if self.fail_assets:
            return _error(500, 8000000, "Asset upload failed")
        self.uploaded_batches.append(_json(request))
        return _ok(None)

    def _create_deployment(self, request):
        if request.headers.get("content-type", "").startswith("multipart/form-data"):
            if self.fail_create_deployment:
                return _error(400, 8000015, "Manifest references missing assets")
            self.manifests.append(json.loads(form_field(request, "manifest")))
            deployment = {"id": "dep-new", "url": f"https://abc.{self.project}.pages.dev"}
        else:
            deployment = {"id": "dep-triggered"}
        self.deployments.insert(0, deployment)
        return _ok(deployment)

    def _list_deployments(self, request):
        page = int(request.url.params.get("page", "1"))
        per_page = int(request.url.params.get("per_page", "25"))
        if page in self.fail_pages:
            return _error(500, 8000000, "Internal error")
        start = (page - 1) * per_page
        return _ok(self.deployments[start:start + per_page])

    def _delete_deployment(self, deployment_id):
        if deployment_id in self.fail_deletes:
            return _error(400, 8000034, "Deployment is aliased")
        self.deployments = [d for d in self.deployments if d["id"] != deployment_id]
        return _ok(None)


def _json(request):
    return json.loads(request.content)


@pytest.fixture
def fake_cf():
    """Fake Pages API with an empty project named "site"."""
    return FakeCloudflare()


@pytest.fixture
def cf_client(fake_cf):
    """CloudflareClient wired to fake_cf."""
    return CloudflareClient(
        api_token=ACCOUNT_TOKEN,
        account_id="acc123",
        api_url=API_URL,
        transport=httpx.MockTransport(fake_cf.handler),
    )


@pytest.fixture
def uploads_dir(tmp_path, monkeypatch):
    """Point UPLOADS_DIR at a fresh directory."""
    directory = tmp_path / "uploads"
    directory.mkdir()
    monkeypatch.setattr("easypages.config.UPLOADS_DIR", directory.resolve())
    return directory.resolve()
