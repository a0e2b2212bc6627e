# doggygallery/api/routes/gallery.py
# HTML pages: the music page and the directory gallery.
# The gallery route is a catch-all, so main.py includes this router last.

from __future__ import annotations

from pathlib import Path
from typing import List, Optional

from fastapi import APIRouter, Depends, Request
from fastapi.templating import Jinja2Templates

from doggygallery.api.deps import get_settings, get_types
from doggygallery.core.config import APP_NAME, EMOJI_PREFIX, GallerySettings
from doggygallery.core.errors import NotDirectoryError
from doggygallery.schemas.media import MediaKind
from doggygallery.services.archives import archive_contains_audio, is_archive, list_archive
from doggygallery.services.catalog import (
    FilterQuery,
    MediaTypes,
    list_directory,
    parent_of,
    parse_paging,
    scan_directory,
)
from doggygallery.services.lightbox import SWIPE_THRESHOLD, items_from_listing
from doggygallery.services.resolver import resolve_media_path, split_request_path
from doggygallery.utils.http import media_url, page_url, quote_path

TEMPLATES = Jinja2Templates(directory=str(Path(__file__).resolve().parents[2] / "templates"))
TEMPLATES.env.globals.update(
    app_name=APP_NAME,
    emoji_prefix=EMOJI_PREFIX,
    media_url=media_url,
    quote_path=quote_path,
    swipe_threshold=SWIPE_THRESHOLD,
)

public_router = APIRouter(tags=["pages"])


def _join(rel_dir: str, name: str) -> str:
    return f"{rel_dir}/{name}" if rel_dir else name


def _breadcrumbs(rel_path: str, base: str) -> List[dict]:
    """[{name, url}] from the root down to rel_path."""
    crumbs = [{"name": "Home", "url": base or "/"}]
    acc = ""
    for part in (rel_path.split("/") if rel_path else []):
        acc = _join(acc, part)
        crumbs.append({"name": part, "url": f"{base}/{quote_path(acc)}"})
    return crumbs


# ---------- music ----------

@public_router.get("/music")
@public_router.get("/music/{path:path}")
def music_page(
    request: Request,
    path: str = "",
    settings: GallerySettings = Depends(get_settings),
    types: MediaTypes = Depends(get_types),
):
    """Directories, audio archives and audio tracks; an archive path lists its audio members."""
    root = settings.media_dir
    target = resolve_media_path(root, path)
    # the name the user navigated by, so a symlinked dir keeps its URL
    rel_path = "/".join(split_request_path(path))

    subdirs: List[dict] = []
    archives: List[dict] = []
    if target.is_file():
        if not is_archive(target.name):
            raise NotDirectoryError(f"not a directory or archive: {target}")
        tracks = list_archive(target, rel_path, types)
    else:
        scan = scan_directory(root, target, types, rel_dir=rel_path)
        tracks = [i for i in scan.items if i.kind is MediaKind.audio]
        subdirs = [{"name": d, "url": f"/music/{quote_path(_join(rel_path, d))}"}
                   for d in scan.subdirectories]
        archives = [{"name": a.name, "url": f"/music/{quote_path(a.path)}"}
                    for a in scan.archives if archive_contains_audio(root / a.path, types)]

    parent = parent_of(rel_path)
    return TEMPLATES.TemplateResponse(request, "music.html", {
        "path": rel_path,
        "parent_url": None if parent is None else (f"/music/{quote_path(parent)}" if parent else "/music"),
        "breadcrumbs": _breadcrumbs(rel_path, "/music"),
        "subdirectories": subdirs,
        "archives": archives,
        "tracks": tracks,
        "playlist": [it.to_dict() for it in items_from_listing(tracks)],
    })


# ---------- gallery (catch-all, keep last) ----------

@public_router.get("/")
@public_router.get("/{path:path}")
def gallery_page(
    request: Request,
    path: str = "",
    page: Optional[str] = None,
    per_page: Optional[str] = None,
    type: Optional[str] = None,
    extension: Optional[str] = None,
    name: Optional[str] = None,
    settings: GallerySettings = Depends(get_settings),
    types: MediaTypes = Depends(get_types),
):
    """One page of a directory: subfolders, a thumbnail grid and the lightbox playlist."""
    page_n, size = parse_paging(page, per_page, default_per_page=settings.default_per_page,
                                max_per_page=settings.max_per_page)
    query = FilterQuery(type=type, extension=extension, name=name)
    listing = list_directory(settings.media_dir, path, types, query, page_n, size)

    base = f"/{quote_path(listing.path)}" if listing.path else "/"
    params = {"per_page": size, "type": query.type, "extension": query.extension, "name": query.name}
    prev_url = page_url(base, page=page_n - 1, **params) if page_n > 1 else None
    next_url = page_url(base, page=page_n + 1, **params) if page_n < listing.total_pages else None

    parent = listing.parent_path
    return TEMPLATES.TemplateResponse(request, "gallery.html", {
        "listing": listing,
        "query": query,
        "parent_url": None if parent is None else f"/{quote_path(parent)}",
        "breadcrumbs": _breadcrumbs(listing.path, ""),
        "subdirectories": [{"name": d, "url": f"/{quote_path(_join(listing.path, d))}"}
                           for d in listing.subdirectories],
        "prev_url": prev_url,
        "next_url": next_url,
        "lightbox_items": [it.to_dict() for it in items_from_listing(listing.entries)],
        "image_extensions": sorted(settings.image_ext),
        "video_extensions": sorted(settings.video_ext),
        "audio_extensions": sorted(settings.audio_ext),
    })
