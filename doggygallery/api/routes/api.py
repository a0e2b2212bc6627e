# doggygallery/api/routes/api.py
# JSON routes used by the browser scripts. Mounted under /api in main.py.

from __future__ import annotations

import io
from pathlib import Path
from typing import Optional

from fastapi import APIRouter, Depends
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import RedirectResponse, Response

from doggygallery.api.deps import get_settings, get_types
from doggygallery.core.config import GallerySettings
from doggygallery.core.errors import GalleryError, MediaNotFoundError
from doggygallery.schemas.media import ConfigInfo, DirectoryListing, MediaKind, RandomMedia
from doggygallery.services.archives import (
    ARCHIVE_MARKER,
    is_archive,
    read_member,
    split_archive_path,
)
from doggygallery.services.audio import ALBUM_ART_NAMES, find_album_art
from doggygallery.services.catalog import (
    FilterQuery,
    MediaTypes,
    parse_paging,
    pick_random,
    scan_directory,
    search_media,
)
from doggygallery.services.delivery import SNIFF_BYTES, open_media, validate_content
from doggygallery.services.lightbox import SWIPE_THRESHOLD
from doggygallery.services.resolver import resolve_media_path, split_request_path
from doggygallery.services.tags import EmbeddedArt, embedded_art
from doggygallery.utils.http import media_url

ART_CACHE_CONTROL = "public, max-age=86400"

api_router = APIRouter(tags=["api"])


@api_router.get("/config", response_model=ConfigInfo)
def api_config(settings: GallerySettings = Depends(get_settings)) -> ConfigInfo:
    """Non-secret settings the page scripts need (extension lists, page sizes, swipe threshold)."""
    return ConfigInfo(
        **settings.public_info(),
        swipe_threshold=SWIPE_THRESHOLD,
        album_art_names=list(ALBUM_ART_NAMES),
    )


@api_router.get("/filter", response_model=DirectoryListing)
def api_filter(
    type: Optional[str] = None,
    extension: Optional[str] = None,
    name: Optional[str] = None,
    path: Optional[str] = "",
    page: Optional[str] = None,
    per_page: Optional[str] = None,
    settings: GallerySettings = Depends(get_settings),
    types: MediaTypes = Depends(get_types),
) -> DirectoryListing:
    """
    Filtered listing under `path`. Searches subdirectories too unless
    [gallery] filter_recursive is off. Paging params are parsed leniently.
    """
    page_n, size = parse_paging(page, per_page, default_per_page=settings.default_per_page,
                                max_per_page=settings.max_per_page)
    query = FilterQuery(type=type, extension=extension, name=name)
    return search_media(settings.media_dir, path, types, query, page_n, size,
                        recursive=settings.filter_recursive)


@api_router.get("/random", response_model=RandomMedia)
def api_random(
    type: Optional[str] = None,
    path: Optional[str] = "",
    settings: GallerySettings = Depends(get_settings),
    types: MediaTypes = Depends(get_types),
) -> RandomMedia:
    """One random item from the whole tree below `path` (optionally of one kind)."""
    directory = resolve_media_path(settings.media_dir, path, expect_dir=True)
    rel_dir = "/".join(split_request_path(path))
    scan = scan_directory(settings.media_dir, directory, types, rel_dir=rel_dir, recursive=True)
    query = FilterQuery(type=type)
    item = pick_random([i for i in scan.items if query.matches(i)])
    if item is None:
        raise MediaNotFoundError("no media matches")
    return RandomMedia(item=item, url=media_url(item.path))


def _open_art(root: Path, candidate: str, types: MediaTypes) -> bool:
    """True if `candidate` would be served: inside the root, an image, and its bytes sniff as one."""
    try:
        if ARCHIVE_MARKER in candidate:
            archive_rel, member = split_archive_path(candidate)
            archive = resolve_media_path(root, archive_rel, expect_dir=False)
            if not is_archive(archive.name) or types.classify(member) is not MediaKind.image:
                return False
            data = read_member(archive, member)
            validate_content(data[:SNIFF_BYTES], MediaKind.image, types.extension_of(member), candidate)
            return True
        media = open_media(root, candidate, types)
        media.close()
        return True
    except GalleryError:
        return False


def _track_art(root: Path, track: str, types: MediaTypes) -> Optional[EmbeddedArt]:
    """Picture embedded in an audio track (on disk or inside an archive), or None."""
    if types.classify(track.rsplit("/", 1)[-1]) is not MediaKind.audio:
        return None
    extension = types.extension_of(track)
    try:
        if ARCHIVE_MARKER in track:
            archive_rel, member = split_archive_path(track)
            archive = resolve_media_path(root, archive_rel, expect_dir=False)
            if not is_archive(archive.name):
                return None
            return embedded_art(io.BytesIO(read_member(archive, member)), extension, track)
        media = open_media(root, track, types)
        try:
            return embedded_art(media.handle, extension, track)
        finally:
            media.close()
    except GalleryError:
        return None


@api_router.get("/album-art/{track:path}")
async def api_album_art(
    track: str,
    settings: GallerySettings = Depends(get_settings),
    types: MediaTypes = Depends(get_types),
):
    """
    Cover art for `track`: the picture embedded in its tags if there is one (served directly),
    else a redirect to the first cover file next to it that can actually be served
    (probe order: cover, folder, album; jpg before png), else to the placeholder image.
    """
    split_request_path(track)  # traversal / hidden checks before any probing
    root = settings.media_dir

    art = await run_in_threadpool(_track_art, root, track, types)
    if art is not None:
        return Response(art.data, media_type=art.content_type,
                        headers={"Cache-Control": ART_CACHE_CONTROL})

    async def probe(candidate: str) -> bool:
        return await run_in_threadpool(_open_art, root, candidate, types)

    url, resolved = await find_album_art(track, probe)
    return RedirectResponse(media_url(url) if resolved else url, status_code=307)
