# doggygallery/api/routes/media.py
# Byte-serving routes: /media/*, /archive/* and /thumb/*. Keep routes thin; services do the checks.

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Header, Query

from doggygallery.api.deps import get_settings, get_types
from doggygallery.core.config import GallerySettings
from doggygallery.core.errors import MediaNotFoundError, UnsupportedMediaTypeError
from doggygallery.schemas.media import MediaKind
from doggygallery.services.archives import is_archive, read_member, split_archive_path
from doggygallery.services.catalog import MediaTypes
from doggygallery.services.delivery import (
    SNIFF_BYTES,
    bytes_response,
    media_response,
    open_media,
    validate_content,
)
from doggygallery.services.resolver import resolve_media_path, to_rel_path
from doggygallery.utils.thumbs import serve_or_build_thumb

# Public router mounted without prefix (-> /media/*, /archive/*, /thumb/*); auth is added in main.py
public_router = APIRouter(tags=["media"])


@public_router.get("/media/{path:path}")
def serve_media(
    path: str,
    range_header: Optional[str] = Header(None, alias="range"),
    settings: GallerySettings = Depends(get_settings),
    types: MediaTypes = Depends(get_types),
):
    """Stream one media file; honours a single bytes= Range."""
    media = open_media(settings.media_dir, path, types)
    return media_response(media, range_header)


@public_router.get("/archive/{path:path}")
def serve_archive_member(
    path: str,
    range_header: Optional[str] = Header(None, alias="range"),
    settings: GallerySettings = Depends(get_settings),
    types: MediaTypes = Depends(get_types),
):
    """
    Serve '<archive>!/<member>'. Only audio (tracks) and images (cover art) are served,
    and the member's bytes are sniffed the same way as files on disk.
    """
    archive_rel, member = split_archive_path(path)
    archive = resolve_media_path(settings.media_dir, archive_rel, expect_dir=False)
    if not is_archive(archive.name):
        raise MediaNotFoundError(f"{archive_rel!r} is not an archive")

    kind = types.classify(member)
    if kind not in (MediaKind.audio, MediaKind.image):
        raise UnsupportedMediaTypeError(f"archive member not allowed: {member!r}")
    extension = types.extension_of(member)

    data = read_member(archive, member)
    validate_content(data[:SNIFF_BYTES], kind, extension, f"{archive.name}!/{member}")
    return bytes_response(data, extension, range_header)


@public_router.get("/thumb/{path:path}")
def serve_thumb(
    path: str,
    h: Optional[int] = Query(None, ge=16, le=1024),
    settings: GallerySettings = Depends(get_settings),
    types: MediaTypes = Depends(get_types),
):
    """Cached JPEG thumbnail; SVG and undecodable images redirect to /media."""
    abs_path = resolve_media_path(settings.media_dir, path, expect_dir=False)
    if types.classify(abs_path.name) is not MediaKind.image:
        raise UnsupportedMediaTypeError(f"not an image: {path!r}")
    rel = to_rel_path(settings.media_dir, abs_path)
    return serve_or_build_thumb(abs_path, rel, h or settings.thumb_height, settings.thumb_dir)
