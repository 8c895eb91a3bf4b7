"""Main entry point for the release mirror."""

import argparse
import asyncio
import logging
import time
from datetime import datetime, timezone

from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from .api.pages import sync_status
from .config import DEFAULT_CONFIG_PATH, MirrorConfig, load_config
from .crawler.github_client import GitHubClient
from .crawler.repo_list import RepositoryList
from .errors import ConfigError
from .store.cache_store import CacheStore
from .sync.manager import SyncManager, SyncTrigger
from .sync.worker import SyncWorker

console = Console()
logger = logging.getLogger(__name__)


def setup_logging(level: str = "INFO") -> None:
    """Route all log records through a single rich handler."""
    handler = RichHandler(
        console=Console(stderr=True),
        show_path=False,
        log_time_format="[%Y-%m-%d %H:%M:%S]",
    )
    logging.basicConfig(
        level=level,
        format="<%(name)s> %(message)s",
        handlers=[handler],
        force=True,
    )


def build_manager(config: MirrorConfig, store: CacheStore, repo_list: RepositoryList) -> SyncManager:
    """Wire the GitHub client, worker and manager around a loaded store."""
    client = GitHubClient(
        token=config.github_token,
        base_url=config.github_api_url,
        timeout=config.request_timeout,
    )
    worker = SyncWorker(
        store,
        client,
        retry_base_delay=config.retry_base_delay,
        max_retry_attempts=config.max_retry_attempts,
        retry_pause=config.retry_pause,
    )
    return SyncManager(
        repo_list,
        store,
        worker,
        request_interval=config.request_interval,
        retry_request_interval=config.retry_request_interval,
        full_sync_interval=config.full_sync_interval,
        retry_sync_interval=config.retry_sync_interval,
    )


def run_server(config: MirrorConfig, store: CacheStore, repo_list: RepositoryList) -> None:
    """Serve HTTP and run the sync triggers until interrupted."""
    import uvicorn

    from .api.server import create_app

    manager = build_manager(config, store, repo_list)
    app = create_app(config, store, repo_list, manager=manager)
    console.print(f"[green]✓[/green] Serving on http://{config.host}:{config.port}")
    uvicorn.run(app, host=config.host, port=config.port, log_config=None)


def run_sync_once(config: MirrorConfig, store: CacheStore, repo_list: RepositoryList) -> int:
    """Run a single sync pass in the foreground."""
    manager = build_manager(config, store, repo_list)
    run = asyncio.run(manager.run_pass(SyncTrigger.MANUAL))
    if run is None or run.status != "completed":
        console.print(f"[red]✗[/red] Sync failed: {run.error if run else 'busy'}")
        return 1
    console.print(
        f"[bold]Synced {run.succeeded}/{run.total} repositories[/bold] "
        f"({run.failed} failed, {run.skipped} skipped)"
    )
    return 0


def print_status(config: MirrorConfig, store: CacheStore, repo_list: RepositoryList) -> None:
    """Print the cached state of every tracked repository."""
    now = time.time()
    table = Table(title=f"{len(store)} cached repositories")
    table.add_column("Repository")
    table.add_column("Version")
    table.add_column("Status")
    table.add_column("Attempts", justify="right")
    table.add_column("Next retry")

    for repo in repo_list.list():
        entry = store.get(repo)
        status = sync_status(entry, config.max_retry_attempts)
        next_retry = ""
        if entry and entry.sync.next_retry > now:
            next_retry = datetime.fromtimestamp(entry.sync.next_retry, tz=timezone.utc).strftime(
                "%Y-%m-%d %H:%M UTC"
            )
        table.add_row(
            repo,
            (entry.version if entry else None) or "-",
            status,
            str(entry.sync.attempts if entry else 0),
            next_retry,
        )

    console.print(table)


def main():
    """Main CLI entry point."""
    parser = argparse.ArgumentParser(
        description="Release Mirror - cache GitHub releases and proxy their downloads"
    )
    parser.add_argument(
        "--config", "-c",
        default=DEFAULT_CONFIG_PATH,
        help="Path to configuration file (optional)",
    )
    parser.add_argument(
        "--serve",
        action="store_true",
        help="Run the HTTP server with background sync",
    )
    parser.add_argument(
        "--sync",
        action="store_true",
        help="Run one sync pass and exit",
    )
    parser.add_argument(
        "--status",
        action="store_true",
        help="Show cached sync state of all tracked repositories",
    )
    parser.add_argument("--host", help="Override the bind address")
    parser.add_argument("--port", "-p", type=int, help="Override the listening port")
    parser.add_argument("--verbose", "-v", action="store_true", help="Debug logging")

    args = parser.parse_args()

    if not any([args.serve, args.sync, args.status]):
        parser.print_help()
        return

    try:
        config = load_config(args.config)
    except ConfigError as e:
        console.print(f"[red]Error:[/red] {e}")
        raise SystemExit(1)

    if args.host:
        config.host = args.host
    if args.port:
        config.port = args.port

    setup_logging("DEBUG" if args.verbose else config.log_level)

    repo_list = RepositoryList(config.repos_file)
    try:
        repos = repo_list.list()
    except ConfigError as e:
        console.print(f"[red]Error:[/red] {e}")
        raise SystemExit(1)
    logger.info("Tracking %d repositories from %s", len(repos), config.repos_file)

    store = CacheStore(config.cache_file)
    store.load()

    if args.status:
        print_status(config, store, repo_list)
    elif args.sync:
        raise SystemExit(run_sync_once(config, store, repo_list))
    else:
        run_server(config, store, repo_list)


if __name__ == "__main__":
    main()
