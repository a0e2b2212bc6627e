# doggygallery/utils/http.py
from pathlib import Path
from typing import Optional
import urllib.parse


def safe_rel_under(base: Path, target: Path) -> Optional[Path]:
    """
    Return target's path relative to base if target is inside base, else None.
    Both sides are canonicalized, so symlinks pointing out of base are caught.
    """
    try:
        return target.resolve().relative_to(base.resolve())
    except (ValueError, OSError, RuntimeError):
        return None


def quote_path(rel_path: str) -> str:
    """URL-quote a root-relative path, keeping '/' and the archive marker '!/' readable."""
    return urllib.parse.quote(rel_path, safe="/!")


def media_url(rel_path: str) -> str:
    """Browser URL for a media item; archive members go through /archive/."""
    prefix = "/archive/" if "!/" in rel_path else "/media/"
    return prefix + quote_path(rel_path)


def page_url(base: str, **params) -> str:
    """base?k=v with empty values dropped (pagination / filter links)."""
    q = {k: v for k, v in params.items() if v not in (None, "")}
    return f"{base}?{urllib.parse.urlencode(q)}" if q else base
