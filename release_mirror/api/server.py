"""FastAPI server exposing cached listings and the download proxy."""

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI, HTTPException, Request
from fastapi.responses import HTMLResponse, JSONResponse, RedirectResponse
from pydantic import BaseModel, Field
from starlette.exceptions import HTTPException as StarletteHTTPException

from ..config import MirrorConfig
from ..crawler.repo_list import RepositoryList
from ..errors import ConfigError
from ..store.cache_store import CacheEntry, CacheStore
from ..sync.manager import SyncManager, SyncTrigger
from . import pages

logger = logging.getLogger(__name__)


# Response Models
class AssetLink(BaseModel):
    """Asset as served through the mirror."""
    name: str
    download_url: str
    mirror_url: str


class RepoSummary(BaseModel):
    """Cached state of one tracked repository."""
    repo: str
    status: str
    version: str | None = None
    updated_at: str | None = None
    last_error: str | None = None
    last_error_reason: str | None = None
    attempts: int = 0
    next_retry: float = 0
    meta: dict = Field(default_factory=dict)
    assets: list[AssetLink] = Field(default_factory=list)


class TriggerResponse(BaseModel):
    """Result of a manual sync request."""
    started: bool
    status: dict


def create_app(
    config: MirrorConfig,
    store: CacheStore,
    repo_list: RepositoryList,
    manager: SyncManager | None = None,
) -> FastAPI:
    """Create and configure the FastAPI application.

    The store is only read here. When a manager is given, its triggers run
    for the lifetime of the application.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        if manager is not None:
            await manager.start(sync_on_startup=config.sync_on_startup)
        yield
        if manager is not None:
            await manager.stop()

    app = FastAPI(
        title="Release Mirror",
        description="Cached release listings and download proxy for GitHub repositories",
        version="0.1.0",
        lifespan=lifespan,
    )

    def tracked_repos() -> list[str]:
        try:
            return repo_list.list()
        except ConfigError as e:
            logger.error("Repository list unavailable: %s", e)
            raise HTTPException(status_code=503, detail="Repository list unavailable")

    def mirror_url(download_url: str) -> str:
        return f"{config.mirror_base}{download_url}"

    def summarize(repo: str, entry: CacheEntry | None) -> RepoSummary:
        status = pages.sync_status(entry, config.max_retry_attempts)
        if entry is None:
            return RepoSummary(repo=repo, status=status)
        return RepoSummary(
            repo=repo,
            status=status,
            version=entry.version,
            updated_at=entry.updated_at,
            last_error=entry.last_error,
            last_error_reason=entry.last_error_reason,
            attempts=entry.sync.attempts,
            next_retry=entry.sync.next_retry,
            meta=entry.meta or {},
            assets=[
                AssetLink(
                    name=a["name"],
                    download_url=a["download_url"],
                    mirror_url=mirror_url(a["download_url"]),
                )
                for a in entry.assets or []
                if a.get("name") and a.get("download_url")
            ],
        )

    @app.exception_handler(StarletteHTTPException)
    async def http_error(request: Request, exc: StarletteHTTPException):
        if exc.status_code == 404 and not request.url.path.startswith("/api/"):
            return HTMLResponse(pages.render_not_found(), status_code=404)
        return JSONResponse({"detail": exc.detail}, status_code=exc.status_code)

    # Health check
    @app.get("/health")
    async def health():
        """Health check endpoint."""
        return {
            "status": "healthy",
            "cached_repositories": len(store),
            "sync_running": manager.is_running() if manager else False,
        }

    @app.get("/api/repos", response_model=list[RepoSummary])
    async def list_repos_json():
        """Cached state of every tracked repository."""
        return [summarize(repo, store.get(repo)) for repo in tracked_repos()]

    @app.get("/api/sync")
    async def sync_status():
        """Current or most recent sync pass."""
        if manager is None:
            raise HTTPException(status_code=503, detail="Sync engine not running")
        return manager.get_status()

    @app.post("/api/sync", response_model=TriggerResponse, status_code=202)
    async def trigger_sync():
        """Start a sync pass unless one is already running."""
        if manager is None:
            raise HTTPException(status_code=503, detail="Sync engine not running")
        if not manager.request_pass(SyncTrigger.MANUAL):
            raise HTTPException(status_code=409, detail="A sync pass is already running")
        return TriggerResponse(started=True, status=manager.get_status())

    @app.get("/", response_class=HTMLResponse)
    async def index():
        """Listing of all tracked repositories."""
        rows = [(repo, store.get(repo)) for repo in tracked_repos()]
        return pages.render_index(rows, config.max_retry_attempts)

    @app.get("/{owner}/{repo}", response_class=HTMLResponse)
    async def repo_detail(owner: str, repo: str):
        """Release detail for one repository."""
        full_name = f"{owner}/{repo}"
        entry = store.get(full_name)
        if entry is None or not entry.version:
            raise HTTPException(status_code=404, detail=f"Repository '{full_name}' not found")
        return pages.render_detail(full_name, entry)

    @app.get("/{owner}/{repo}/{filename}")
    async def download(owner: str, repo: str, filename: str):
        """Redirect to the mirrored URL of a release asset."""
        full_name = f"{owner}/{repo}"
        entry = store.get(full_name)
        asset = entry.find_asset(filename) if entry else None
        if asset is None or not asset.get("download_url"):
            raise HTTPException(status_code=404, detail=f"Asset '{filename}' not found")
        return RedirectResponse(mirror_url(asset["download_url"]), status_code=302)

    return app
