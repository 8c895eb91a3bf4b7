"""Plain HTML pages rendered from cache contents."""

from html import escape
from urllib.parse import quote

from ..store.cache_store import CacheEntry

_STYLE = """
<style>
  body { font-family: -apple-system, "Segoe UI", Roboto, sans-serif; margin: 0; background: #f8fafc; color: #1e293b; }
  header { background: #6366f1; color: white; padding: 1.5rem 2rem; }
  header a { color: white; }
  main { max-width: 1100px; margin: 0 auto; padding: 1.5rem 1rem; }
  .card { background: white; border-radius: 0.5rem; padding: 1rem 1.25rem; margin-bottom: 1rem; box-shadow: 0 1px 3px rgba(0,0,0,0.06); }
  .badge { display: inline-block; padding: 0.1rem 0.6rem; border-radius: 0.375rem; font-size: 0.85rem; background: #f1f5f9; }
  .ok { background: #e0f2fe; color: #0369a1; }
  .bad { background: #fee2e2; color: #dc2626; }
  .muted { color: #64748b; font-size: 0.9rem; }
  .controls { display: flex; gap: 0.75rem; margin-top: 1rem; }
  .controls input { flex: 1; padding: 0.5rem; border: 0; border-radius: 0.375rem; }
  .controls select { padding: 0.5rem; border: 0; border-radius: 0.375rem; }
</style>
"""

# Filters the listing by name/description and reorders it by stars or last
# sync, using the data-* attributes on each card.
_LISTING_SCRIPT = """
<script>
document.addEventListener("DOMContentLoaded", () => {
  const search = document.getElementById("search");
  const sort = document.getElementById("sort");
  const list = document.getElementById("repos");
  const cards = Array.from(list.children);
  function update() {
    const term = search.value.toLowerCase();
    const key = sort.value;
    const shown = cards.filter(c => (c.dataset.name + " " + c.dataset.desc).toLowerCase().includes(term));
    shown.sort((a, b) => key === "stars"
      ? Number(b.dataset.stars) - Number(a.dataset.stars)
      : b.dataset.updated.localeCompare(a.dataset.updated));
    list.replaceChildren(...shown);
  }
  search.addEventListener("input", update);
  sort.addEventListener("change", update);
});
</script>
"""


def _page(title: str, header: str, body: str, script: str = "") -> str:
    return (
        "<!DOCTYPE html>\n<html>\n<head>\n"
        '<meta charset="utf-8">\n'
        '<meta name="viewport" content="width=device-width, initial-scale=1">\n'
        f"<title>{escape(title)}</title>\n{_STYLE}{script}</head>\n<body>\n"
        f"<header>{header}</header>\n<main>\n{body}\n</main>\n</body>\n</html>\n"
    )


def display_version(version: str) -> str:
    return version if version.startswith("v") else f"v{version}"


def sync_status(entry: CacheEntry | None, max_retry_attempts: int) -> str:
    """One of ``never synced``, ``paused``, ``sync failed`` or ``synced``."""
    if entry is None:
        return "never synced"
    if entry.sync.attempts >= max_retry_attempts:
        return "paused"
    if not entry.version:
        return "sync failed"
    return "synced"


def render_index(rows: list[tuple[str, CacheEntry | None]], max_retry_attempts: int) -> str:
    """Listing of every tracked repository, cached or not."""
    cards = []
    for repo, entry in rows:
        meta = (entry.meta if entry else None) or {}
        status = sync_status(entry, max_retry_attempts)
        badges = []
        if entry and entry.version:
            badges.append(f'<span class="badge ok">{escape(display_version(entry.version))}</span>')
        if status in ("paused", "sync failed"):
            badges.append(f'<span class="badge bad">{status}</span>')
        if meta.get("stars"):
            badges.append(f'<span class="badge">&#9733; {meta["stars"]:,}</span>')
        if meta.get("language"):
            badges.append(f'<span class="badge">{escape(meta["language"])}</span>')

        description = ""
        if meta.get("description"):
            description = f'<p class="muted">{escape(meta["description"])}</p>'

        last_sync = entry.updated_at[:10] if entry and entry.updated_at else "never synced"
        updated = (entry.updated_at if entry else None) or ""
        cards.append(
            f'<div class="card" data-name="{escape(repo)}" data-desc="{escape(meta.get("description") or "")}"'
            f' data-stars="{meta.get("stars") or 0}" data-updated="{escape(updated)}">'
            f'<h3><a href="/{quote(repo)}">{escape(repo)}</a></h3>'
            f"{description}<p>{' '.join(badges)}</p>"
            f'<p class="muted">Last sync: {escape(last_sync)}</p>'
            "</div>"
        )

    header = (
        f"<h1>Release Mirror</h1><p>{len(rows)} repositories tracked</p>"
        '<div class="controls">'
        '<input type="search" id="search" placeholder="Search repositories...">'
        '<select id="sort"><option value="updated">Recently synced</option>'
        '<option value="stars">Most stars</option></select>'
        "</div>"
    )
    body = f'<div id="repos">{"".join(cards)}</div>'
    return _page("Release Mirror", header, body, script=_LISTING_SCRIPT)


def render_detail(repo: str, entry: CacheEntry) -> str:
    """Release assets of one repository with links through the file proxy."""
    items = []
    for asset in entry.assets or []:
        name = asset.get("name") or ""
        if asset.get("download_url"):
            link = f'<a href="/{quote(repo)}/{quote(name)}" download>download</a>'
        else:
            link = '<span class="bad">no link</span>'
        items.append(f'<div class="card"><strong>{escape(name)}</strong> {link}</div>')
    if not items:
        items.append('<p class="muted">This release has no assets.</p>')

    synced = f"Synced {escape(entry.updated_at)}" if entry.updated_at else ""
    header = (
        '<p><a href="/">&larr; All repositories</a></p>'
        f"<h1>{escape(repo)}</h1>"
        f"<p>{escape(display_version(entry.version or ''))} {synced}</p>"
    )
    return _page(f"{repo} - Release Mirror", header, "\n".join(items))


def render_not_found() -> str:
    header = "<h1>404 - Not Found</h1>"
    body = '<div class="card"><p>The requested resource does not exist.</p><a href="/">Back to the list</a></div>'
    return _page("Not Found - Release Mirror", header, body)
