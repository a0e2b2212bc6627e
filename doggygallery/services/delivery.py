# doggygallery/services/delivery.py
# Streaming delivery of a single media file.
#
# open_media() is the only place that enforces "media files only":
#   extension allowlist (before touching disk) -> resolve -> open once -> magic-byte sniff.
# The same open handle is then streamed, so the file checked is the file sent.

from __future__ import annotations
import logging
import mimetypes
import os
import stat
from dataclasses import dataclass
from pathlib import Path
from typing import BinaryIO, Iterator, Optional, Tuple

import filetype
from fastapi.responses import Response, StreamingResponse

from doggygallery.core.errors import (
    MediaIOError,
    MediaNotFoundError,
    RangeNotSatisfiableError,
    UnsupportedMediaTypeError,
)
from doggygallery.schemas.media import MediaKind
from doggygallery.services.resolver import resolve_media_path, split_request_path

LOGGER = logging.getLogger("doggygallery.delivery")

SNIFF_BYTES = 8192
CHUNK_SIZE = 64 * 1024
CACHE_CONTROL = "public, max-age=3600"
SVG_CSP = "default-src 'none'; style-src 'unsafe-inline'; sandbox"

# Explicit table so responses don't depend on the host's /etc/mime.types.
CONTENT_TYPES = {
    ".jpg": "image/jpeg", ".jpeg": "image/jpeg", ".png": "image/png", ".gif": "image/gif",
    ".webp": "image/webp", ".bmp": "image/bmp", ".svg": "image/svg+xml",
    ".mp4": "video/mp4", ".webm": "video/webm", ".mkv": "video/x-matroska",
    ".avi": "video/x-msvideo", ".mov": "video/quicktime", ".flv": "video/x-flv",
    ".wmv": "video/x-ms-wmv",
    ".mp3": "audio/mpeg", ".wav": "audio/wav", ".ogg": "audio/ogg", ".flac": "audio/flac",
    ".m4a": "audio/mp4", ".aac": "audio/aac", ".opus": "audio/ogg", ".wma": "audio/x-ms-wma",
}

# Container formats that legitimately carry either audio or video.
SHARED_CONTAINERS = {
    "video/mp4", "audio/mp4", "video/webm", "video/x-matroska", "audio/ogg", "video/x-ms-wmv",
}


def content_type_for(extension: str) -> str:
    return (CONTENT_TYPES.get(extension)
            or mimetypes.guess_type("file" + extension)[0]
            or "application/octet-stream")


def _looks_like_svg(head: bytes) -> bool:
    text = head.decode("utf-8", "ignore").lstrip("\ufeff").lstrip().lower()
    return (text.startswith("<?xml") or text.startswith("<svg") or text.startswith("<!--")
            or text.startswith("<!doctype svg")) and "<svg" in text


def validate_content(head: bytes, kind: MediaKind, extension: str, label: str) -> str:
    """
    Check the first bytes against the kind implied by the extension.
    Returns the detected MIME type; raises UnsupportedMediaTypeError on mismatch or unknown content.
    """
    if extension == ".svg":
        if not _looks_like_svg(head):
            LOGGER.warning("SVG validation failed for %s", label)
            raise UnsupportedMediaTypeError(f"{label} is not an SVG document")
        return "image/svg+xml"

    guess = filetype.guess(head)
    if guess is None:
        LOGGER.warning("Could not detect MIME type from contents of %s", label)
        raise UnsupportedMediaTypeError(f"unrecognized content in {label}")

    mime = guess.mime
    if not (mime.startswith(kind.value + "/") or mime in SHARED_CONTAINERS):
        LOGGER.warning("MIME validation failed for %s: extension says %s, content is %s",
                       label, kind.value, mime)
        raise UnsupportedMediaTypeError(f"{label}: {mime} does not match {kind.value}")

    LOGGER.debug("MIME validation passed for %s: %s", label, mime)
    return mime


def kind_for_request(requested: Optional[str], types) -> Tuple[MediaKind, str]:
    """Lexical checks only: path rules + extension allowlist. Nothing on disk is touched."""
    segments = split_request_path(requested)
    name = segments[-1] if segments else ""
    kind = types.classify(name)
    if kind is None:
        raise UnsupportedMediaTypeError(f"extension not allowed: {name!r}")
    return kind, types.extension_of(name)


@dataclass
class OpenedMedia:
    path: Path
    kind: MediaKind
    extension: str
    content_type: str
    size: int
    mtime: float
    handle: BinaryIO

    @property
    def is_svg(self) -> bool:
        return self.extension == ".svg"

    def close(self) -> None:
        self.handle.close()


def open_media(root: Path, requested: Optional[str], types) -> OpenedMedia:
    """serve(resolved_path) front half: validate, open, sniff. Caller owns the handle."""
    kind, extension = kind_for_request(requested, types)
    path = resolve_media_path(root, requested, expect_dir=False)
    # a permitted link name must not front for a non-media target
    if types.classify(path.name) is not kind:
        raise UnsupportedMediaTypeError(f"{requested!r} resolves to {path.name!r}")

    flags = os.O_RDONLY | getattr(os, "O_NOFOLLOW", 0) | getattr(os, "O_BINARY", 0)
    try:
        fd = os.open(path, flags)
    except FileNotFoundError:
        raise MediaNotFoundError(f"{path} vanished before open") from None
    except OSError as e:
        LOGGER.error("Failed to open %s: %s", path, e)
        raise MediaIOError(f"cannot open {path}: {e}") from e

    handle = os.fdopen(fd, "rb")
    try:
        st = os.fstat(handle.fileno())
        if not stat.S_ISREG(st.st_mode):
            raise MediaNotFoundError(f"{path} is not a regular file")
        head = handle.read(SNIFF_BYTES)
        validate_content(head, kind, extension, path.name)
        handle.seek(0)
    except OSError as e:
        handle.close()
        raise MediaIOError(f"cannot read {path}: {e}") from e
    except Exception:
        handle.close()
        raise

    return OpenedMedia(
        path=path,
        kind=kind,
        extension=extension,
        content_type=content_type_for(extension),
        size=st.st_size,
        mtime=st.st_mtime,
        handle=handle,
    )


def parse_range(header: Optional[str], size: int) -> Optional[Tuple[int, int]]:
    """
    Parse a single-range 'bytes=' header into inclusive (start, end).
      bytes=a-b  bytes=a-  bytes=-n
    Malformed or multi-range headers return None (serve the whole file).
    A start at/after EOF raises RangeNotSatisfiableError.
    """
    if not header:
        return None
    header = header.strip()
    if not header.lower().startswith("bytes="):
        return None
    ranges = header[6:].strip()
    if "," in ranges:
        return None
    start_s, sep, end_s = ranges.partition("-")
    start_s, end_s = start_s.strip(), end_s.strip()
    if not sep:
        return None

    if start_s == "":
        # suffix range: last n bytes
        if not end_s.isdigit():
            return None
        n = int(end_s)
        if n == 0 or size == 0:
            raise RangeNotSatisfiableError(size)
        return max(0, size - n), size - 1

    if not start_s.isdigit():
        return None
    start = int(start_s)
    if end_s == "":
        end = size - 1
    elif end_s.isdigit():
        end = int(end_s)
        if end < start:
            return None
    else:
        return None

    if start >= size:
        raise RangeNotSatisfiableError(size)
    return start, min(end, size - 1)


def iter_file(handle: BinaryIO, start: int, end: int, chunk_size: int = CHUNK_SIZE) -> Iterator[bytes]:
    """
    Yield bytes start..end (inclusive) and close the handle.
    A read error or early EOF ends the stream with an exception, so the client sees
    a body shorter than Content-Length rather than a silently complete file.
    """
    try:
        handle.seek(start)
        remaining = end - start + 1
        while remaining > 0:
            chunk = handle.read(min(chunk_size, remaining))
            if not chunk:
                raise MediaIOError(f"unexpected EOF with {remaining} bytes left")
            remaining -= len(chunk)
            yield chunk
    except OSError as e:
        LOGGER.error("Read failed mid-stream: %s", e)
        raise MediaIOError(f"read failed mid-stream: {e}") from e
    finally:
        handle.close()


def _base_headers(extension: str) -> dict:
    headers = {"Accept-Ranges": "bytes", "Cache-Control": CACHE_CONTROL}
    if extension == ".svg":
        # scripts embedded in an SVG must not run with the gallery's origin
        headers["Content-Security-Policy"] = SVG_CSP
        headers["Content-Disposition"] = "inline"
    return headers


def media_response(media: OpenedMedia, range_header: Optional[str]) -> StreamingResponse:
    """serve(resolved_path) back half: 200 or 206 streamed from the open handle."""
    try:
        rng = parse_range(range_header, media.size)
    except RangeNotSatisfiableError:
        media.close()
        raise

    headers = _base_headers(media.extension)
    if rng is not None:
        start, end = rng
        status_code = 206
        headers["Content-Range"] = f"bytes {start}-{end}/{media.size}"
    else:
        start, end = 0, media.size - 1
        status_code = 200
    headers["Content-Length"] = str(end - start + 1)

    return StreamingResponse(
        iter_file(media.handle, start, end),
        status_code=status_code,
        media_type=media.content_type,
        headers=headers,
    )


def bytes_response(data: bytes, extension: str, range_header: Optional[str]) -> Response:
    """Same header contract as media_response, for in-memory content (archive members)."""
    size = len(data)
    rng = parse_range(range_header, size)
    headers = _base_headers(extension)
    if rng is not None:
        start, end = rng
        headers["Content-Range"] = f"bytes {start}-{end}/{size}"
        return Response(data[start:end + 1], status_code=206,
                        media_type=content_type_for(extension), headers=headers)
    return Response(data, status_code=200, media_type=content_type_for(extension), headers=headers)
