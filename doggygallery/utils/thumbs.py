# doggygallery/utils/thumbs.py
from pathlib import Path
import hashlib
import io
import logging
import os
import tempfile

from PIL import Image, UnidentifiedImageError
from fastapi.responses import FileResponse, RedirectResponse, Response

from doggygallery.utils.http import quote_path

LOGGER = logging.getLogger("doggygallery.thumbs")

# Formats Pillow can decode; everything else (svg) goes straight to /media.
RASTER_EXT = {".jpg", ".jpeg", ".png", ".gif", ".webp", ".bmp"}


def thumb_key(cache_dir: Path, abs_path: Path, h: int) -> Path:
    """Cache key for path+mtime+height; an edited file gets a fresh thumbnail."""
    st = abs_path.stat()
    key = hashlib.sha1(f"{abs_path}|{st.st_mtime_ns}|h={h}".encode()).hexdigest()
    return cache_dir / f"{key}.jpg"


def make_thumb_bytes(abs_path: Path, h: int) -> bytes:
    """Load an image and return a resized JPEG as bytes with requested height."""
    with Image.open(abs_path) as im:
        im = im.convert("RGB")
        w, hh = im.size
        scale = (h / hh) if hh else 1.0
        new_w = max(int(w * scale), 1)
        im = im.resize((new_w, h))
        buf = io.BytesIO()
        im.save(buf, format="JPEG", quality=82)
        return buf.getvalue()


def _write_atomic(cache_path: Path, data: bytes) -> None:
    """Write to a temp file beside the target, then rename, so readers never see a partial JPEG."""
    fd, tmp = tempfile.mkstemp(dir=cache_path.parent, prefix=".", suffix=".part")
    try:
        with os.fdopen(fd, "wb") as fh:
            fh.write(data)
        os.replace(tmp, cache_path)
    except OSError:
        Path(tmp).unlink(missing_ok=True)
        raise


def serve_or_build_thumb(abs_path: Path, rel_path: str, h: int, cache_dir: Path):
    """
    Serve a cached thumbnail if present; otherwise build, cache, and serve it.
    Anything Pillow can't decode is redirected to the validated /media route
    instead of being sent from here.
    """
    fallback = RedirectResponse(f"/media/{quote_path(rel_path)}", status_code=307)
    if abs_path.suffix.lower() not in RASTER_EXT:
        return fallback

    cache_path = thumb_key(cache_dir, abs_path, h)
    if cache_path.exists():
        return FileResponse(cache_path, media_type="image/jpeg")
    try:
        img_bytes = make_thumb_bytes(abs_path, h)
    except (UnidentifiedImageError, OSError, ValueError, Image.DecompressionBombError) as e:
        LOGGER.warning("Thumbnail failed for %s: %s", abs_path, e)
        return fallback

    try:
        cache_dir.mkdir(parents=True, exist_ok=True)
        _write_atomic(cache_path, img_bytes)
    except OSError as e:
        # still serve the bytes; the next request just rebuilds
        LOGGER.warning("Could not cache thumbnail %s: %s", cache_path, e)
    return Response(img_bytes, media_type="image/jpeg")
